"""Virtual subpopulation splitters.

A splitter defines a fixed number of named virtual subpopulations (VSPs)
for every subpopulation of a population. VSPs do not have to add up to the
whole subpopulation, nor do they have to be disjoint. Individuals are never
moved: a VSP is *activated* by writing each individual's ``visible`` flag,
and iteration over the subpopulation then skips invisible individuals.

Every splitter offers a predicate in two forms:
  - ``contains(pop, ind, vsp)``: one individual, index relative to its
    subpopulation
  - ``member_mask(pop, sub_pop, vsp)``: vectorized over the whole
    subpopulation, used by ``size``, ``activate`` and composite splitters

Leaf splitters defined here:
  SexSplitter, AffectionSplitter, InfoSplitter, ProportionSplitter,
  RangeSplitter, GenotypeSplitter

Composite splitters live in ``vspsplit.composite``.

Activation protocol:
  - ``activate`` fails if this splitter already has an active VSP
  - ``deactivate(sp)`` fails unless ``sp`` is the active subpopulation, and
    restores all individuals of ``sp`` to visible
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, TYPE_CHECKING

import numpy as np

from vspsplit.exceptions import ActivationError, InvalidVspError, SplitterConfigError
from vspsplit.genotype import (
    format_pattern,
    match_genotypes,
    match_single,
    normalize_allele_groups,
    pattern_array,
    validate_patterns,
)
from vspsplit.types import Sex, VspID, is_index

if TYPE_CHECKING:
    from vspsplit.population import Population


def _fmt(value) -> str:
    """Format a numeric bound the way VSP names display it."""
    return f"{float(value):g}"


# ═══════════════════════════════════════════════════════════════════════
# ACTIVATION RECORD
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Activation:
    """Returned by ``VspSplitter.activate``; records what is active."""
    sub_pop: int
    virtual_sub_pop: int
    pop: 'Population' = field(repr=False, compare=False)

    @property
    def vsp(self) -> VspID:
        return VspID(self.sub_pop, self.virtual_sub_pop)


# ═══════════════════════════════════════════════════════════════════════
# BASE CLASS
# ═══════════════════════════════════════════════════════════════════════

class VspSplitter(ABC):
    """Base class of all VSP splitters.

    Each VSP has a name. A default name is determined by each splitter but
    a list of ``names`` (one per VSP) replaces them.

    Only one splitter is assigned to a population, and it defines VSPs for
    all subpopulations. At most one VSP may be active per splitter instance.
    """

    def __init__(self, names: Optional[Sequence[str]] = None):
        if isinstance(names, str):
            names = [names]
        self._names: List[str] = list(names) if names else []
        self._activation: Optional[Activation] = None

    def _check_names(self) -> None:
        """Validate user names against the VSP count. Call at the end of __init__."""
        if self._names and len(self._names) != self.num_virtual_subpop():
            raise SplitterConfigError(
                f"{len(self._names)} names given for "
                f"{self.num_virtual_subpop()} virtual subpopulations"
            )

    def __deepcopy__(self, memo):
        cls = self.__class__
        new = cls.__new__(cls)
        memo[id(self)] = new
        for key, value in self.__dict__.items():
            if key == '_activation':
                new._activation = None
            else:
                setattr(new, key, copy.deepcopy(value, memo))
        return new

    def clone(self) -> 'VspSplitter':
        """Deep copy of this splitter, children included, without activation state."""
        return copy.deepcopy(self)

    @property
    def activated_sub_pop(self) -> Optional[int]:
        """Subpopulation with an active VSP under this splitter, or None."""
        return self._activation.sub_pop if self._activation is not None else None

    @property
    def activation(self) -> Optional[Activation]:
        return self._activation

    # ── abstract interface ────────────────────────────────────────────

    @abstractmethod
    def num_virtual_subpop(self) -> int:
        """Number of VSPs defined by this splitter."""

    @abstractmethod
    def _member_mask(self, pop: 'Population', sub_pop: int, vsp: int) -> np.ndarray:
        """Membership of every individual in ``sub_pop`` (ids already checked)."""

    @abstractmethod
    def _contains(self, pop: 'Population', sub_pop: int, ind: int, vsp: int) -> bool:
        """Membership of one individual (ids already checked)."""

    @abstractmethod
    def _default_name(self, vsp: int) -> str:
        """Name of ``vsp`` when no user names are given."""

    # ── checked public interface ──────────────────────────────────────

    def _check_vsp(self, vsp) -> int:
        n = self.num_virtual_subpop()
        if not is_index(vsp) or not 0 <= vsp < n:
            raise InvalidVspError("Virtual subpopulation", vsp, n)
        return int(vsp)

    def member_mask(self, pop: 'Population', sub_pop: int, vsp: int) -> np.ndarray:
        """Boolean array over ``sub_pop`` marking members of ``vsp``.

        Args:
            pop: Population holding the individuals.
            sub_pop: Subpopulation index.
            vsp: Virtual subpopulation index.

        Returns:
            (subpop_size,) bool array, independent of current visibility.
        """
        pop.validate_sub_pop(sub_pop)
        return self._member_mask(pop, sub_pop, self._check_vsp(vsp))

    def size(self, pop: 'Population', sub_pop: int, vsp: int) -> int:
        """Number of individuals of ``sub_pop`` in virtual subpopulation ``vsp``."""
        return int(np.count_nonzero(self.member_mask(pop, sub_pop, vsp)))

    def contains(self, pop: 'Population', ind: int, vsp) -> bool:
        """Return True if individual ``ind`` belongs to VSP ``vsp``.

        Args:
            pop: Population holding the individual.
            ind: Index relative to subpopulation ``vsp.sub_pop``, unaffected
                by the visibility of other individuals.
            vsp: VspID (or ``(sp, vsp)`` pair) naming a virtual subpopulation.

        Raises:
            InvalidVspError: Subpopulation, VSP or individual index out of range.
        """
        vsp = VspID.coerce(vsp)
        if not vsp.is_virtual():
            raise InvalidVspError("Virtual subpopulation", vsp.virtual_sub_pop,
                                  self.num_virtual_subpop())
        sub_pop = pop.validate_sub_pop(vsp.sub_pop)
        v = self._check_vsp(vsp.virtual_sub_pop)
        n = pop.subpop_size(sub_pop)
        if not is_index(ind) or not 0 <= ind < n:
            raise InvalidVspError("Individual index", ind, n)
        return bool(self._contains(pop, sub_pop, int(ind), v))

    def activate(self, pop: 'Population', sub_pop: int, vsp: int) -> Activation:
        """Mark members of ``vsp`` in ``sub_pop`` visible, all others invisible.

        Returns:
            Activation record for the now-active VSP.

        Raises:
            ActivationError: This splitter already has an active VSP.
            InvalidVspError: ``sub_pop`` or ``vsp`` out of range.
        """
        if self._activation is not None:
            raise ActivationError(
                f"Virtual subpopulation {self._activation.vsp} is already active",
                "deactivate it before activating another one",
            )
        mask = self.member_mask(pop, sub_pop, vsp)
        pop.set_visible(sub_pop, mask)
        self._activation = Activation(int(sub_pop), int(vsp), pop)
        return self._activation

    def deactivate(self, sub_pop: int) -> None:
        """Make all individuals of ``sub_pop`` visible again.

        Raises:
            ActivationError: ``sub_pop`` is not the activated subpopulation.
        """
        if self._activation is None or sub_pop != self._activation.sub_pop:
            raise ActivationError(
                f"Deactivate non-activated virtual subpopulation (subpopulation "
                f"{sub_pop}, active: {self.activated_sub_pop})"
            )
        self._activation.pop.reset_visible(sub_pop)
        self._activation = None

    def name(self, vsp: int) -> str:
        """Name of VSP ``vsp``: the user-given name, or the splitter default."""
        vsp = self._check_vsp(vsp)
        if self._names:
            return self._names[vsp]
        return self._default_name(vsp)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} with {self.num_virtual_subpop()} VSPs>"


# ═══════════════════════════════════════════════════════════════════════
# LEAF SPLITTERS
# ═══════════════════════════════════════════════════════════════════════

class SexSplitter(VspSplitter):
    """Two VSPs: male individuals (0) and female individuals (1)."""

    _SEXES = (Sex.MALE, Sex.FEMALE)

    def __init__(self, names: Optional[Sequence[str]] = None):
        super().__init__(names)
        self._check_names()

    def num_virtual_subpop(self) -> int:
        return 2

    def _member_mask(self, pop, sub_pop, vsp):
        sexes = pop.individuals['sex'][pop.subpop_slice(sub_pop)]
        return sexes == self._SEXES[vsp]

    def _contains(self, pop, sub_pop, ind, vsp):
        idx = pop.subpop_begin(sub_pop) + ind
        return pop.individuals['sex'][idx] == self._SEXES[vsp]

    def _default_name(self, vsp):
        return "MALE" if vsp == 0 else "FEMALE"


class AffectionSplitter(VspSplitter):
    """Two VSPs: unaffected individuals (0) and affected individuals (1)."""

    def __init__(self, names: Optional[Sequence[str]] = None):
        super().__init__(names)
        self._check_names()

    def num_virtual_subpop(self) -> int:
        return 2

    def _member_mask(self, pop, sub_pop, vsp):
        affected = pop.individuals['affected'][pop.subpop_slice(sub_pop)]
        return affected == (vsp == 1)

    def _contains(self, pop, sub_pop, ind, vsp):
        idx = pop.subpop_begin(sub_pop) + ind
        return bool(pop.individuals['affected'][idx]) == (vsp == 1)

    def _default_name(self, vsp):
        return "UNAFFECTED" if vsp == 0 else "AFFECTED"


class InfoSplitter(VspSplitter):
    """VSPs defined by the value of an information field.

    Exactly one of three modes is used:
      values: VSP i holds individuals whose field equals ``values[i]``.
      cutoff: ``cutoff=[1, 2]`` defines ``v < 1``, ``1 <= v < 2`` and
              ``v >= 2``. Cutoff values must be strictly increasing.
      ranges: each ``[lo, hi)`` pair defines a VSP. Ranges may overlap.
    """

    def __init__(
        self,
        field: str,
        values: Optional[Sequence[float]] = None,
        cutoff: Optional[Sequence[float]] = None,
        ranges: Optional[Sequence[Sequence[float]]] = None,
        names: Optional[Sequence[str]] = None,
    ):
        super().__init__(names)
        if not field:
            raise SplitterConfigError("An information field name is required")
        self.field = field
        self.values = [float(v) for v in values] if values is not None else []
        self.cutoff = [float(c) for c in cutoff] if cutoff is not None else []
        self.ranges = []
        for r in (ranges if ranges is not None else []):
            r = list(r)
            if len(r) != 2:
                raise SplitterConfigError(
                    f"Range {r} should be specified as a [lo, hi) pair"
                )
            lo, hi = float(r[0]), float(r[1])
            if lo >= hi:
                raise SplitterConfigError(f"Empty range [{_fmt(lo)}, {_fmt(hi)})")
            self.ranges.append((lo, hi))

        n_modes = sum(bool(m) for m in (self.values, self.cutoff, self.ranges))
        if n_modes != 1:
            raise SplitterConfigError(
                "One and only one of parameters values, cutoff and ranges "
                f"should be specified, got {n_modes}"
            )
        if any(a >= b for a, b in zip(self.cutoff, self.cutoff[1:])):
            raise SplitterConfigError(
                f"Cutoff values should be distinct and in increasing order, "
                f"got {self.cutoff}"
            )
        self._check_names()

    def num_virtual_subpop(self) -> int:
        if self.values:
            return len(self.values)
        if self.cutoff:
            return len(self.cutoff) + 1
        return len(self.ranges)

    def _test(self, v, vsp):
        """Membership of a value (scalar or array) in ``vsp``."""
        if self.values:
            return v == self.values[vsp]
        if self.cutoff:
            if vsp == 0:
                return v < self.cutoff[0]
            if vsp == len(self.cutoff):
                return v >= self.cutoff[-1]
            return (v >= self.cutoff[vsp - 1]) & (v < self.cutoff[vsp])
        lo, hi = self.ranges[vsp]
        return (v >= lo) & (v < hi)

    def _member_mask(self, pop, sub_pop, vsp):
        values = pop.info_field(self.field)[pop.subpop_slice(sub_pop)]
        return np.asarray(self._test(values, vsp), dtype=bool)

    def _contains(self, pop, sub_pop, ind, vsp):
        idx = pop.subpop_begin(sub_pop) + ind
        return bool(self._test(pop.info_field(self.field)[idx], vsp))

    def _default_name(self, vsp):
        if self.values:
            return f"{self.field} = {_fmt(self.values[vsp])}"
        if self.cutoff:
            if vsp == 0:
                return f"{self.field} < {_fmt(self.cutoff[0])}"
            if vsp == len(self.cutoff):
                return f"{self.field} >= {_fmt(self.cutoff[-1])}"
            return (f"{_fmt(self.cutoff[vsp - 1])} <= {self.field} < "
                    f"{_fmt(self.cutoff[vsp])}")
        lo, hi = self.ranges[vsp]
        return f"{_fmt(lo)} <= {self.field} < {_fmt(hi)}"


class ProportionSplitter(VspSplitter):
    """Contiguous blocks of a subpopulation, sized by proportion.

    Block i has ``floor(p_i * N + 0.5)`` individuals; the last block takes
    whatever remains so the blocks cover the subpopulation exactly.
    Proportions must be non-negative and sum to 1 (within 1e-5); they are
    not normalized.
    """

    TOLERANCE = 1e-5

    def __init__(
        self,
        proportions: Sequence[float],
        names: Optional[Sequence[str]] = None,
    ):
        super().__init__(names)
        self.proportions = [float(p) for p in (proportions if proportions is not None else [])]
        if not self.proportions:
            raise SplitterConfigError("At least one proportion is required")
        if any(p < 0 for p in self.proportions):
            raise SplitterConfigError(
                f"Proportions should be non-negative, got {self.proportions}"
            )
        total = sum(self.proportions)
        if abs(total - 1.0) > self.TOLERANCE:
            raise SplitterConfigError(
                f"Proportions should add up to one, got {total:g}",
                "proportions are not normalized",
            )
        self._check_names()

    def num_virtual_subpop(self) -> int:
        return len(self.proportions)

    def block_bounds(self, n: int) -> np.ndarray:
        """Start/end indexes of every block for a subpopulation of size ``n``.

        Returns:
            (num_virtual_subpop + 1,) int array; block i is
            ``[bounds[i], bounds[i + 1])``.
        """
        bounds = np.zeros(len(self.proportions) + 1, dtype=np.int64)
        count = 0
        for i, p in enumerate(self.proportions[:-1]):
            count += int(np.floor(p * n + 0.5))
            bounds[i + 1] = min(count, n)
        bounds[-1] = n
        return bounds

    def _member_mask(self, pop, sub_pop, vsp):
        n = pop.subpop_size(sub_pop)
        bounds = self.block_bounds(n)
        mask = np.zeros(n, dtype=bool)
        mask[bounds[vsp]:bounds[vsp + 1]] = True
        return mask

    def _contains(self, pop, sub_pop, ind, vsp):
        bounds = self.block_bounds(pop.subpop_size(sub_pop))
        return bounds[vsp] <= ind < bounds[vsp + 1]

    def _default_name(self, vsp):
        return f"Prop {_fmt(self.proportions[vsp])}"


class RangeSplitter(VspSplitter):
    """VSPs of individuals within index ranges.

    ``RangeSplitter([[0, 20], [40, 50]])`` defines two VSPs, individuals
    0..19 and 40..49. Ranges may overlap or leave gaps; ranges beyond the
    end of a subpopulation are clipped.
    """

    def __init__(
        self,
        ranges: Sequence[Sequence[int]],
        names: Optional[Sequence[str]] = None,
    ):
        super().__init__(names)
        self.ranges = []
        for r in (ranges if ranges is not None else []):
            r = list(r)
            if len(r) != 2:
                raise SplitterConfigError(
                    f"Range {r} should be specified as a [start, end) pair"
                )
            start, end = int(r[0]), int(r[1])
            if start < 0 or start > end:
                raise SplitterConfigError(f"Invalid individual range [{start}, {end})")
            self.ranges.append((start, end))
        if not self.ranges:
            raise SplitterConfigError("At least one range is required")
        self._check_names()

    def num_virtual_subpop(self) -> int:
        return len(self.ranges)

    def _member_mask(self, pop, sub_pop, vsp):
        n = pop.subpop_size(sub_pop)
        start, end = self.ranges[vsp]
        mask = np.zeros(n, dtype=bool)
        mask[min(start, n):min(end, n)] = True
        return mask

    def _contains(self, pop, sub_pop, ind, vsp):
        start, end = self.ranges[vsp]
        return start <= ind < end

    def _default_name(self, vsp):
        start, end = self.ranges[vsp]
        return f"Range [{start}, {end})"


class GenotypeSplitter(VspSplitter):
    """VSPs defined by individual genotype at ``loci``.

    Each item of ``alleles`` defines a VSP as one or more allele patterns;
    a flat list of ints defines a single VSP. A pattern lists
    ``len(loci) * ploidy`` alleles arranged by haplotype: first all loci on
    the first copy, then all loci on the second copy, and so on. An
    individual belongs to a VSP if it matches any of its patterns.

    With ``phase=False`` the alleles of each locus are compared as an
    unordered multiset, so ``loci=[0], alleles=[0, 1]`` accepts both
    ``0|1`` and ``1|0``. With ``phase=True`` copy order matters.
    """

    def __init__(
        self,
        loci,
        alleles,
        phase: bool = False,
        ploidy: int = 2,
        names: Optional[Sequence[str]] = None,
    ):
        super().__init__(names)
        if isinstance(loci, (int, np.integer)):
            loci = [loci]
        self.loci = [int(l) for l in loci]
        self.phase = bool(phase)
        self.ploidy = int(ploidy)
        self.alleles = normalize_allele_groups(alleles)
        validate_patterns(self.loci, self.alleles, self.ploidy)
        self._patterns = [
            pattern_array(group, len(self.loci), self.ploidy)
            for group in self.alleles
        ]
        self._check_names()

    def num_virtual_subpop(self) -> int:
        return len(self.alleles)

    def _check_population(self, pop) -> None:
        if pop.ploidy != self.ploidy:
            raise SplitterConfigError(
                f"Genotype splitter defined for ploidy {self.ploidy} "
                f"applied to a population of ploidy {pop.ploidy}"
            )
        if max(self.loci) >= pop.num_loci:
            raise SplitterConfigError(
                f"Locus index {max(self.loci)} out of range "
                f"(population has {pop.num_loci} loci)"
            )

    def _member_mask(self, pop, sub_pop, vsp):
        self._check_population(pop)
        geno = pop.genotypes[pop.subpop_slice(sub_pop)][:, self.loci, :]
        return match_genotypes(geno, self._patterns[vsp], self.phase)

    def _contains(self, pop, sub_pop, ind, vsp):
        self._check_population(pop)
        idx = pop.subpop_begin(sub_pop) + ind
        return match_single(pop.genotypes[idx][self.loci, :], self._patterns[vsp], self.phase)

    def _default_name(self, vsp):
        loci = ",".join(str(l) for l in self.loci)
        return f"Genotype {loci}: {format_pattern(self.alleles[vsp], len(self.loci), self.ploidy)}"
