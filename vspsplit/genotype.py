"""Genotype pattern matching for genotype-defined virtual subpopulations.

Patterns are flat allele lists arranged by haplotype: for ``L`` loci and
ploidy ``P``, entry ``p * L + l`` is the allele at the ``l``-th locus on
copy ``p``. A VSP may list several patterns back to back; an individual
belongs to the VSP if it matches any of them.

Matching modes:
  - phased:   the (locus, copy) alleles equal the pattern exactly
  - unphased: at every locus, the multiset of alleles over all copies
              equals the multiset in the pattern. Loci are compared one by
              one, so an allele at one locus can never satisfy another.

Genotype arrays follow the population layout: (n_individuals, n_loci, ploidy).
"""

from __future__ import annotations

from typing import List, Sequence

import numpy as np

from vspsplit.exceptions import SplitterConfigError


# ═══════════════════════════════════════════════════════════════════════
# PATTERN NORMALIZATION & VALIDATION
# ═══════════════════════════════════════════════════════════════════════

def normalize_allele_groups(alleles) -> List[List[int]]:
    """Turn the ``alleles`` argument into one allele list per VSP.

    A flat sequence of ints defines one VSP; a sequence of sequences
    defines one VSP per inner sequence.

    Raises:
        SplitterConfigError: ``alleles`` is empty or mixes ints and lists.
    """
    if alleles is None or len(alleles) == 0:
        raise SplitterConfigError("At least one allele pattern is required")
    items = list(alleles)
    scalar = [isinstance(a, (int, np.integer)) for a in items]
    if all(scalar):
        return [[int(a) for a in items]]
    if any(scalar):
        raise SplitterConfigError(
            f"Alleles should be a list of alleles or a list of lists, got {alleles!r}"
        )
    return [[int(a) for a in group] for group in items]


def validate_patterns(
    loci: Sequence[int],
    groups: Sequence[Sequence[int]],
    ploidy: int,
) -> None:
    """Check loci, ploidy and pattern lengths.

    Raises:
        SplitterConfigError: On empty or negative loci, ploidy < 1, or a
            group whose length is not a positive multiple of
            ``len(loci) * ploidy``.
    """
    if len(loci) == 0:
        raise SplitterConfigError("At least one locus is required")
    if any(l < 0 for l in loci):
        raise SplitterConfigError(f"Locus indexes should be non-negative, got {list(loci)}")
    if ploidy < 1:
        raise SplitterConfigError(f"Ploidy should be at least 1, got {ploidy}")
    width = len(loci) * ploidy
    for i, group in enumerate(groups):
        if len(group) == 0 or len(group) % width != 0:
            raise SplitterConfigError(
                f"Allele pattern {i} has {len(group)} alleles, which is not a "
                f"multiple of {width} ({len(loci)} loci x ploidy {ploidy})"
            )
        if any(a < 0 for a in group):
            raise SplitterConfigError(f"Allele pattern {i} contains negative alleles")


def pattern_array(group: Sequence[int], n_loci: int, ploidy: int) -> np.ndarray:
    """Reshape a VSP's allele list to (n_patterns, n_loci, ploidy)."""
    arr = np.asarray(group, dtype=np.int64).reshape(-1, ploidy, n_loci)
    return arr.transpose(0, 2, 1).copy()


def format_pattern(group: Sequence[int], n_loci: int, ploidy: int) -> str:
    """Display string of a VSP's patterns, ``|``-separated between patterns."""
    width = n_loci * ploidy
    parts = []
    for start in range(0, len(group), width):
        parts.append(" ".join(str(a) for a in group[start:start + width]))
    return " | ".join(parts)


# ═══════════════════════════════════════════════════════════════════════
# MATCHING
# ═══════════════════════════════════════════════════════════════════════

def match_genotypes(
    genotypes: np.ndarray,
    patterns: np.ndarray,
    phase: bool,
) -> np.ndarray:
    """Vectorized pattern match for a block of individuals.

    Args:
        genotypes: (n, n_loci, ploidy) alleles at the splitter's loci.
        patterns: (n_patterns, n_loci, ploidy) accepted patterns.
        phase: If True, copy order is significant.

    Returns:
        (n,) bool, True where an individual matches any pattern.
    """
    geno = np.asarray(genotypes)
    n = geno.shape[0]
    result = np.zeros(n, dtype=bool)
    if n == 0:
        return result
    if not phase:
        # Sorting copies within each locus compares per-locus multisets
        geno = np.sort(geno, axis=2)
        patterns = np.sort(patterns, axis=2)
    for pat in patterns:
        result |= np.all(geno == pat[np.newaxis, :, :], axis=(1, 2))
    return result


def match_single(genotype: np.ndarray, patterns: np.ndarray, phase: bool) -> bool:
    """Pattern match for one individual's (n_loci, ploidy) genotype."""
    return bool(match_genotypes(np.asarray(genotype)[np.newaxis], patterns, phase)[0])
