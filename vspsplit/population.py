"""Population storage layer with per-individual visibility.

Individuals of all subpopulations are stored contiguously, subpopulation
by subpopulation:
  - individuals: IND_DTYPE structured array (sex, affected, visible)
  - genotypes:   (N, n_loci, ploidy) int16 allele array
  - info:        (N, n_info_fields) float64 information fields

A Population holds at most one VSP splitter (a private clone of the one
assigned), which defines the virtual subpopulations of every subpopulation.
Activating a VSP only rewrites the ``visible`` flags of one subpopulation;
storage order never changes, so the index of an individual within its
subpopulation is stable.

Usage:
    pop = Population([100, 50], loci=3, info_fields=['age'])
    pop.initialize(seed=42, sex_ratio=0.5)
    pop.set_virtual_splitter(SexSplitter())

    with pop.activated((0, 0)):          # males of subpopulation 0
        males = pop.visible_indices(0)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Sequence, Union

import numpy as np

from vspsplit.exceptions import ActivationError, InvalidVspError
from vspsplit.rng import create_rng_hierarchy, get_subpop_rng
from vspsplit.splitters import Activation, VspSplitter
from vspsplit.types import Sex, VspID, allocate_individuals, is_index

logger = logging.getLogger(__name__)


class Population:
    """Individuals grouped in subpopulations, with VSP activation support.

    Args:
        size: Subpopulation size, or a list of subpopulation sizes.
        ploidy: Number of allele copies per locus.
        loci: Number of loci.
        info_fields: Names of information fields (float values).
        names: Optional subpopulation names.
    """

    def __init__(
        self,
        size: Union[int, Sequence[int]],
        ploidy: int = 2,
        loci: int = 1,
        info_fields: Sequence[str] = (),
        names: Optional[Sequence[str]] = None,
    ):
        sizes = [size] if isinstance(size, (int, np.integer)) else list(size)
        if any(int(s) < 0 for s in sizes):
            raise ValueError(f"Subpopulation sizes must be non-negative, got {sizes}")
        if ploidy < 1:
            raise ValueError(f"ploidy must be >= 1, got {ploidy}")
        if loci < 0:
            raise ValueError(f"loci must be >= 0, got {loci}")
        info_fields = list(info_fields)
        if len(set(info_fields)) != len(info_fields):
            raise ValueError(f"Duplicate information fields in {info_fields}")
        if names is not None and len(names) != len(sizes):
            raise ValueError(
                f"{len(names)} names given for {len(sizes)} subpopulations"
            )

        self._sizes = np.asarray(sizes, dtype=np.int64)
        self._begin = np.concatenate([[0], np.cumsum(self._sizes)]).astype(np.int64)
        self.ploidy = int(ploidy)
        self.num_loci = int(loci)
        self.info_fields: List[str] = info_fields
        self.subpop_names: List[str] = list(names) if names is not None else []

        n = int(self._begin[-1])
        self.individuals = allocate_individuals(n)
        self.genotypes = np.zeros((n, self.num_loci, self.ploidy), dtype=np.int16)
        self.info = np.zeros((n, len(info_fields)), dtype=np.float64)

        self._splitter: Optional[VspSplitter] = None

    # ── layout ───────────────────────────────────────────────────────

    def num_subpop(self) -> int:
        return len(self._sizes)

    def pop_size(self) -> int:
        return int(self._begin[-1])

    def subpop_sizes(self) -> List[int]:
        return [int(s) for s in self._sizes]

    def validate_sub_pop(self, sub_pop) -> int:
        """Return ``sub_pop`` as an int, raising InvalidVspError if out of range."""
        n = self.num_subpop()
        if not is_index(sub_pop) or not 0 <= sub_pop < n:
            raise InvalidVspError("Subpopulation", sub_pop, n)
        return int(sub_pop)

    def validate_vsp(self, vsp) -> VspID:
        """Check that a (virtual) subpopulation exists in this population."""
        vsp = VspID.coerce(vsp)
        self.validate_sub_pop(vsp.sub_pop)
        if vsp.is_virtual():
            n_vsp = self.num_virtual_subpop()
            v = vsp.virtual_sub_pop
            if not is_index(v) or not 0 <= v < n_vsp:
                raise InvalidVspError("Virtual subpopulation", v, n_vsp)
        return vsp

    def subpop_begin(self, sub_pop: int) -> int:
        return int(self._begin[sub_pop])

    def subpop_end(self, sub_pop: int) -> int:
        return int(self._begin[sub_pop + 1])

    def subpop_slice(self, sub_pop: int) -> slice:
        return slice(int(self._begin[sub_pop]), int(self._begin[sub_pop + 1]))

    def subpop_size(self, subpop=None) -> int:
        """Size of the population, a subpopulation, or a virtual subpopulation.

        Args:
            subpop: None for the whole population, a subpopulation index,
                or a VspID / ``(sp, vsp)`` pair for a virtual subpopulation.
        """
        if subpop is None:
            return self.pop_size()
        vsp = self.validate_vsp(subpop)
        if vsp.is_virtual():
            return self._splitter.size(self, vsp.sub_pop, vsp.virtual_sub_pop)
        return int(self._sizes[vsp.sub_pop])

    def subpop_name(self, subpop) -> str:
        """Name of a subpopulation, with the VSP name appended for a VSP."""
        vsp = self.validate_vsp(subpop)
        name = self.subpop_names[vsp.sub_pop] if self.subpop_names else "unnamed"
        if vsp.is_virtual():
            return f"{name} - {self._splitter.name(vsp.virtual_sub_pop)}"
        return name

    # ── splitter management ──────────────────────────────────────────

    def set_virtual_splitter(self, splitter: Optional[VspSplitter]) -> None:
        """Assign (a clone of) ``splitter``, or remove it with None.

        Raises:
            ActivationError: The current splitter has an active VSP.
        """
        if self._splitter is not None and self._splitter.activated_sub_pop is not None:
            raise ActivationError(
                "Cannot replace the splitter while a virtual subpopulation is active"
            )
        self._splitter = splitter.clone() if splitter is not None else None
        logger.debug("Virtual splitter set to %r", self._splitter)

    def virtual_splitter(self) -> Optional[VspSplitter]:
        return self._splitter

    def num_virtual_subpop(self) -> int:
        return self._splitter.num_virtual_subpop() if self._splitter is not None else 0

    # ── activation ───────────────────────────────────────────────────

    def activate_virtual_subpop(self, vsp) -> Activation:
        """Make only the members of a VSP visible in its subpopulation."""
        vsp = self.validate_vsp(vsp)
        if not vsp.is_virtual():
            raise InvalidVspError("Virtual subpopulation", None, self.num_virtual_subpop())
        return self._splitter.activate(self, vsp.sub_pop, vsp.virtual_sub_pop)

    def deactivate_virtual_subpop(self, sub_pop: int) -> None:
        """Make all individuals of ``sub_pop`` visible again.

        Raises:
            ActivationError: No splitter, or ``sub_pop`` is not the active one.
        """
        if self._splitter is None:
            raise ActivationError("No virtual splitter is assigned to this population")
        self._splitter.deactivate(sub_pop)

    @contextmanager
    def activated(self, subpop) -> Iterator[VspID]:
        """Context manager: activate a VSP on entry, deactivate on exit.

        A non-virtual subpopulation is accepted and left fully visible, so
        consumers can treat subpopulations and VSPs alike.
        """
        vsp = self.validate_vsp(subpop)
        if not vsp.is_virtual():
            yield vsp
            return
        self.activate_virtual_subpop(vsp)
        try:
            yield vsp
        finally:
            self.deactivate_virtual_subpop(vsp.sub_pop)

    # ── visibility ───────────────────────────────────────────────────

    def visible_mask(self, sub_pop: int) -> np.ndarray:
        sub_pop = self.validate_sub_pop(sub_pop)
        return self.individuals['visible'][self.subpop_slice(sub_pop)].copy()

    def visible_indices(self, sub_pop: int) -> np.ndarray:
        """Indexes (relative to ``sub_pop``) of visible individuals."""
        return np.flatnonzero(self.visible_mask(sub_pop))

    def count_visible(self, sub_pop: int) -> int:
        sub_pop = self.validate_sub_pop(sub_pop)
        return int(np.count_nonzero(self.individuals['visible'][self.subpop_slice(sub_pop)]))

    def set_visible(self, sub_pop: int, mask: np.ndarray) -> None:
        """Write the visibility flags of ``sub_pop`` from a boolean mask."""
        sub_pop = self.validate_sub_pop(sub_pop)
        mask = np.asarray(mask, dtype=bool)
        if mask.shape != (self.subpop_size(sub_pop),):
            raise ValueError(
                f"Visibility mask of shape {mask.shape} does not match "
                f"subpopulation {sub_pop} of size {self.subpop_size(sub_pop)}"
            )
        self.individuals['visible'][self.subpop_slice(sub_pop)] = mask

    def reset_visible(self, sub_pop: int) -> None:
        sub_pop = self.validate_sub_pop(sub_pop)
        self.individuals['visible'][self.subpop_slice(sub_pop)] = True

    # ── information fields ───────────────────────────────────────────

    def info_field_index(self, name: str) -> int:
        try:
            return self.info_fields.index(name)
        except ValueError:
            raise KeyError(
                f"Information field '{name}' not found. "
                f"Available: {self.info_fields}"
            ) from None

    def info_field(self, name: str) -> np.ndarray:
        """View of information field ``name`` for all individuals."""
        return self.info[:, self.info_field_index(name)]

    def set_info_field(self, name: str, values, sub_pop: Optional[int] = None) -> None:
        """Set information field ``name`` for the population or one subpopulation."""
        idx = self.info_field_index(name)
        rows = slice(None) if sub_pop is None else self.subpop_slice(self.validate_sub_pop(sub_pop))
        self.info[rows, idx] = values

    # ── initialization ───────────────────────────────────────────────

    def initialize(
        self,
        seed: Union[int, Dict[str, np.random.Generator]] = 0,
        sex_ratio: float = 0.5,
        affected_prob: float = 0.0,
        allele_freqs: Optional[Sequence[float]] = None,
    ) -> None:
        """Randomly assign sex, affection status and biallelic genotypes.

        Each subpopulation draws from its own RNG stream, so its content
        does not depend on the sizes of other subpopulations.

        Args:
            seed: Master seed, or an RNG hierarchy from create_rng_hierarchy().
            sex_ratio: Probability that an individual is male.
            affected_prob: Probability that an individual is affected.
            allele_freqs: (n_loci,) frequency of allele 1 per locus
                (default 0.5 everywhere).
        """
        if not 0.0 <= sex_ratio <= 1.0:
            raise ValueError(f"sex_ratio must be in [0, 1], got {sex_ratio}")
        if not 0.0 <= affected_prob <= 1.0:
            raise ValueError(f"affected_prob must be in [0, 1], got {affected_prob}")
        if allele_freqs is None:
            freqs = np.full(self.num_loci, 0.5)
        else:
            freqs = np.asarray(allele_freqs, dtype=np.float64)
            if freqs.shape != (self.num_loci,):
                raise ValueError(
                    f"allele_freqs must have {self.num_loci} entries, got {freqs.shape}"
                )

        rngs = seed if isinstance(seed, dict) else create_rng_hierarchy(seed, self.num_subpop())
        for sp in range(self.num_subpop()):
            rng = get_subpop_rng(rngs, sp)
            rows = self.subpop_slice(sp)
            n = self.subpop_size(sp)
            male = rng.random(n) < sex_ratio
            self.individuals['sex'][rows] = np.where(male, Sex.MALE, Sex.FEMALE)
            self.individuals['affected'][rows] = rng.random(n) < affected_prob
            draws = rng.random((n, self.num_loci, self.ploidy))
            self.genotypes[rows] = (draws < freqs[np.newaxis, :, np.newaxis]).astype(np.int16)
        logger.debug(
            "Initialized %d individuals in %d subpopulations",
            self.pop_size(), self.num_subpop(),
        )

    def __repr__(self) -> str:
        return (f"<Population of size {self.pop_size()} in "
                f"{self.num_subpop()} subpopulations>")
