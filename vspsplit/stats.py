"""Per-(virtual)-subpopulation statistics.

Every function walks a SubPopList (all subpopulations by default),
activates each VSP in turn, reads the visible individuals, and deactivates
again before moving on. The population is left fully visible on return,
also when a statistic raises.
"""

from __future__ import annotations

from typing import Dict

import numpy as np

from vspsplit.population import Population
from vspsplit.types import Sex, SubPopList, VspID


def _subpops(pop: Population, subpops) -> SubPopList:
    if not isinstance(subpops, SubPopList):
        subpops = SubPopList(subpops)
    return subpops.use_subpops_from(pop)


def _visible_rows(pop: Population, sub_pop: int) -> np.ndarray:
    return pop.subpop_begin(sub_pop) + pop.visible_indices(sub_pop)


def vsp_sizes(pop: Population, subpops=None) -> Dict[VspID, int]:
    """Number of visible individuals in each (virtual) subpopulation."""
    sizes = {}
    for vsp in _subpops(pop, subpops):
        with pop.activated(vsp):
            sizes[vsp] = pop.count_visible(vsp.sub_pop)
    return sizes


def vsp_names(pop: Population, subpops=None) -> Dict[VspID, str]:
    return {vsp: pop.subpop_name(vsp) for vsp in _subpops(pop, subpops)}


def info_mean(pop: Population, field: str, subpops=None) -> Dict[VspID, float]:
    """Mean of information field ``field`` per (virtual) subpopulation.

    Empty (virtual) subpopulations get NaN.
    """
    column = pop.info_field(field)
    means = {}
    for vsp in _subpops(pop, subpops):
        with pop.activated(vsp):
            values = column[_visible_rows(pop, vsp.sub_pop)]
        means[vsp] = float(values.mean()) if values.size else float('nan')
    return means


def sex_ratio(pop: Population, subpops=None) -> Dict[VspID, float]:
    """Fraction of males per (virtual) subpopulation (NaN when empty)."""
    ratios = {}
    for vsp in _subpops(pop, subpops):
        with pop.activated(vsp):
            sexes = pop.individuals['sex'][_visible_rows(pop, vsp.sub_pop)]
        ratios[vsp] = float(np.mean(sexes == Sex.MALE)) if sexes.size else float('nan')
    return ratios


def allele_frequency(
    pop: Population,
    locus: int,
    allele: int = 1,
    subpops=None,
) -> Dict[VspID, float]:
    """Frequency of ``allele`` at ``locus`` per (virtual) subpopulation."""
    if not 0 <= locus < pop.num_loci:
        raise IndexError(f"Locus {locus} out of range (population has {pop.num_loci} loci)")
    freqs = {}
    for vsp in _subpops(pop, subpops):
        with pop.activated(vsp):
            alleles = pop.genotypes[_visible_rows(pop, vsp.sub_pop), locus, :]
        freqs[vsp] = float(np.mean(alleles == allele)) if alleles.size else float('nan')
    return freqs
