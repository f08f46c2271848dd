"""Configuration system for vspsplit.

YAML configuration with deep-merge support:
  base.yaml → override file → dict overrides

A configuration describes a population layout and, optionally, the VSP
splitter assigned to it. Splitters are described as nested dicts:

    splitter:
      type: product
      splitters:
        - type: sex
        - type: info
          field: age
          cutoff: [5, 10]

Each ``type`` maps to a splitter class; the remaining keys are passed to
its constructor. Composite types (``combined``, ``product``) take a
``splitters`` list that is built recursively.
"""

from __future__ import annotations

import dataclasses
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from vspsplit.composite import CombinedSplitter, ProductSplitter
from vspsplit.exceptions import SplitterConfigError
from vspsplit.population import Population
from vspsplit.splitters import (
    AffectionSplitter,
    GenotypeSplitter,
    InfoSplitter,
    ProportionSplitter,
    RangeSplitter,
    SexSplitter,
    VspSplitter,
)


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class PopulationSection:
    """Population layout and random initialization."""
    sizes: List[int] = field(default_factory=lambda: [100])
    ploidy: int = 2
    loci: int = 1
    info_fields: List[str] = field(default_factory=list)
    names: Optional[List[str]] = None
    seed: int = 42
    sex_ratio: float = 0.5          # probability of being male
    affected_prob: float = 0.0      # probability of being affected
    allele_freqs: Optional[List[float]] = None  # per-locus frequency of allele 1


@dataclass
class SplitterSection:
    """Splitter definition (nested dict, see module docstring). None = no splitter."""
    definition: Optional[Dict[str, Any]] = None


@dataclass
class VspConfig:
    """Complete configuration. Load from YAML via `load_config()`."""
    population: PopulationSection = field(default_factory=PopulationSection)
    splitter: SplitterSection = field(default_factory=SplitterSection)


# ═══════════════════════════════════════════════════════════════════════
# SPLITTER FACTORY
# ═══════════════════════════════════════════════════════════════════════

SPLITTER_TYPES = {
    'sex': SexSplitter,
    'affection': AffectionSplitter,
    'info': InfoSplitter,
    'proportion': ProportionSplitter,
    'range': RangeSplitter,
    'genotype': GenotypeSplitter,
    'combined': CombinedSplitter,
    'product': ProductSplitter,
}


def build_splitter(definition: Dict[str, Any]) -> VspSplitter:
    """Construct a splitter from a nested dict definition.

    Args:
        definition: Dict with a ``type`` key and constructor keywords.

    Returns:
        The constructed splitter.

    Raises:
        SplitterConfigError: Unknown type, bad keywords, or invalid values.
    """
    if not isinstance(definition, dict) or 'type' not in definition:
        raise SplitterConfigError(
            f"Splitter definition must be a dict with a 'type' key, got {definition!r}"
        )
    kwargs = dict(definition)
    kind = kwargs.pop('type')
    if kind not in SPLITTER_TYPES:
        raise SplitterConfigError(
            f"Unknown splitter type '{kind}'",
            f"use one of {sorted(SPLITTER_TYPES)}",
        )
    if kind in ('combined', 'product'):
        children = kwargs.get('splitters') or []
        kwargs['splitters'] = [build_splitter(child) for child in children]
    try:
        return SPLITTER_TYPES[kind](**kwargs)
    except TypeError as e:
        raise SplitterConfigError(f"Invalid arguments for '{kind}' splitter: {e}") from e


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values are replaced
    - Keys in override but not base are added

    Returns:
        The merged base dictionary.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict, prefix: str) -> Any:
    """Convert a dict to a dataclass, warning about unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    unknown = sorted(set(data) - valid_fields)
    if unknown:
        warnings.warn(
            f"Ignoring unknown {prefix} keys: {unknown}",
            UserWarning,
            stacklevel=3,
        )
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


def _yaml_to_config(data: Dict) -> VspConfig:
    """Convert a merged YAML dict to a VspConfig."""
    unknown = sorted(set(data) - {'population', 'splitter'})
    if unknown:
        warnings.warn(
            f"Ignoring unknown configuration sections: {unknown}",
            UserWarning,
            stacklevel=3,
        )
    pop_data = data.get('population')
    population = (
        _dict_to_section(PopulationSection, pop_data, 'population')
        if isinstance(pop_data, dict) else PopulationSection()
    )
    splitter_def = data.get('splitter')
    return VspConfig(
        population=population,
        splitter=SplitterSection(definition=splitter_def),
    )


def validate_config(config: VspConfig) -> None:
    """Validate configuration constraints. Raises ValueError on failure.

    The splitter definition is validated by building it, so splitter
    problems surface as SplitterConfigError (a ValueError).
    """
    p = config.population
    if isinstance(p.sizes, int):
        p.sizes = [p.sizes]
    if not p.sizes or any(int(s) < 0 for s in p.sizes):
        raise ValueError(
            f"population.sizes must be a non-empty list of non-negative sizes, got {p.sizes}"
        )
    if p.ploidy < 1:
        raise ValueError(f"population.ploidy must be >= 1, got {p.ploidy}")
    if p.loci < 0:
        raise ValueError(f"population.loci must be >= 0, got {p.loci}")
    if len(set(p.info_fields)) != len(p.info_fields):
        raise ValueError(f"population.info_fields has duplicates: {p.info_fields}")
    if p.names is not None and len(p.names) != len(p.sizes):
        raise ValueError(
            f"population.names has {len(p.names)} entries for {len(p.sizes)} subpopulations"
        )
    if p.seed < 0:
        raise ValueError("population.seed must be non-negative")
    if not 0.0 <= p.sex_ratio <= 1.0:
        raise ValueError(f"population.sex_ratio must be in [0, 1], got {p.sex_ratio}")
    if not 0.0 <= p.affected_prob <= 1.0:
        raise ValueError(
            f"population.affected_prob must be in [0, 1], got {p.affected_prob}"
        )
    if p.allele_freqs is not None:
        if len(p.allele_freqs) != p.loci:
            raise ValueError(
                f"population.allele_freqs must have {p.loci} entries, "
                f"got {len(p.allele_freqs)}"
            )
        if any(not 0.0 <= q <= 1.0 for q in p.allele_freqs):
            raise ValueError("population.allele_freqs must lie in [0, 1]")

    if config.splitter.definition is not None:
        build_splitter(config.splitter.definition)


def load_config(
    base_path: Union[str, Path],
    override_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict] = None,
) -> VspConfig:
    """Load and merge YAML configuration.

    Merge order: base → override file → dict overrides.

    Raises:
        FileNotFoundError: If base_path doesn't exist.
        ValueError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if override_path is not None:
        override_path = Path(override_path)
        if override_path.exists():
            with open(override_path) as f:
                deep_merge(config_dict, yaml.safe_load(f) or {})

    if overrides is not None:
        deep_merge(config_dict, overrides)

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def default_config() -> VspConfig:
    """Return a VspConfig with all default values."""
    config = VspConfig()
    validate_config(config)
    return config


def build_population(config: VspConfig) -> Population:
    """Create, initialize and split a population as configured."""
    p = config.population
    pop = Population(
        p.sizes,
        ploidy=p.ploidy,
        loci=p.loci,
        info_fields=p.info_fields,
        names=p.names,
    )
    pop.initialize(
        seed=p.seed,
        sex_ratio=p.sex_ratio,
        affected_prob=p.affected_prob,
        allele_freqs=p.allele_freqs,
    )
    if config.splitter.definition is not None:
        pop.set_virtual_splitter(build_splitter(config.splitter.definition))
    return pop
