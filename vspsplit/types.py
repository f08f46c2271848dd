"""Core data types for vspsplit.

This module is the SINGLE SOURCE OF TRUTH for:
  - IND_DTYPE: NumPy structured array dtype for individuals
  - Sex enumeration
  - ALL_AVAIL wildcard for (virtual) subpopulation lists
  - VspID: (subpopulation, virtual subpopulation) identifier
  - SubPopList: ordered list of VspIDs with lazy "all available" expansion

All modules import these types from here. No other module defines
individual fields.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Iterator, List, Optional, TYPE_CHECKING

import numpy as np

from vspsplit.exceptions import SplitterConfigError

if TYPE_CHECKING:
    from vspsplit.population import Population


# ═══════════════════════════════════════════════════════════════════════
# ENUMERATIONS & SENTINELS
# ═══════════════════════════════════════════════════════════════════════

class Sex(IntEnum):
    """Individual sex, stored in the ``sex`` field of IND_DTYPE."""
    MALE   = 1
    FEMALE = 2


class _AllAvailable:
    """Wildcard standing for every available (virtual) subpopulation."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return 'ALL_AVAIL'

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


ALL_AVAIL = _AllAvailable()


# ═══════════════════════════════════════════════════════════════════════
# IND_DTYPE — Canonical structured array for individuals
# ═══════════════════════════════════════════════════════════════════════

IND_DTYPE = np.dtype([
    ('sex',      np.int8),    # Sex enum (1=MALE, 2=FEMALE)
    ('affected', np.bool_),   # affection status
    ('visible',  np.bool_),   # iteration visibility; written by VSP activation
])


def allocate_individuals(n: int) -> np.ndarray:
    """Allocate an individual array of length ``n``.

    Individuals start male, unaffected and visible.

    Args:
        n: Number of individuals.

    Returns:
        Structured array of shape (n,) with IND_DTYPE.
    """
    inds = np.zeros(n, dtype=IND_DTYPE)
    inds['sex'] = Sex.MALE
    inds['visible'] = True
    return inds


# ═══════════════════════════════════════════════════════════════════════
# VSP IDENTIFIERS
# ═══════════════════════════════════════════════════════════════════════

def is_index(value) -> bool:
    """True for Python and numpy integers, excluding bools."""
    return isinstance(value, (int, np.integer)) and not isinstance(value, bool)


def _normalize_id(value):
    if value is None or value is ALL_AVAIL:
        return value
    if not is_index(value):
        raise SplitterConfigError(
            f"(Virtual) subpopulation ids should be integers, got {value!r}"
        )
    value = int(value)
    return value if value >= 0 else None


class VspID:
    """A subpopulation id paired with an optional virtual subpopulation id.

    ``VspID(1)`` is the whole subpopulation 1, ``VspID(1, 0)`` is the first
    VSP of subpopulation 1. Negative ids normalize to ``None``. Either slot
    may hold ``ALL_AVAIL``, which ``SubPopList.use_subpops_from`` expands.
    Instances are immutable and compare structurally.
    """

    __slots__ = ('_sub_pop', '_virtual_sub_pop')

    def __init__(self, sub_pop=None, virtual_sub_pop=None):
        object.__setattr__(self, '_sub_pop', _normalize_id(sub_pop))
        object.__setattr__(self, '_virtual_sub_pop', _normalize_id(virtual_sub_pop))

    def __setattr__(self, name, value):
        raise AttributeError("VspID is immutable")

    def __reduce__(self):
        return (VspID, (self._sub_pop, self._virtual_sub_pop))

    @classmethod
    def coerce(cls, obj) -> 'VspID':
        """Build a VspID from a VspID, an int, ALL_AVAIL or a (sp, vsp) pair."""
        if isinstance(obj, VspID):
            return obj
        if obj is None or obj is ALL_AVAIL or is_index(obj):
            return cls(obj)
        if isinstance(obj, (str, bytes)):
            raise SplitterConfigError(
                f"Cannot interpret string {obj!r} as a (virtual) subpopulation",
                "use an integer id or a (subPop, virtualSubPop) pair",
            )
        try:
            items = list(obj)
        except TypeError:
            raise SplitterConfigError(
                f"Cannot interpret {obj!r} as a (virtual) subpopulation"
            ) from None
        if len(items) > 2:
            raise SplitterConfigError(
                "VSP should be specified as a subPop and virtualSubPop ID pair, "
                f"got {obj!r}"
            )
        return cls(*items)

    @property
    def sub_pop(self) -> Optional[int]:
        return self._sub_pop

    @property
    def virtual_sub_pop(self) -> Optional[int]:
        return self._virtual_sub_pop

    def valid(self) -> bool:
        return self._sub_pop is not None

    def is_virtual(self) -> bool:
        return self._virtual_sub_pop is not None

    def __eq__(self, other) -> bool:
        if not isinstance(other, VspID):
            return NotImplemented
        return (self._sub_pop == other._sub_pop
                and self._virtual_sub_pop == other._virtual_sub_pop)

    def __hash__(self) -> int:
        return hash((self._sub_pop, self._virtual_sub_pop))

    def __repr__(self) -> str:
        return f"VspID({self._sub_pop!r}, {self._virtual_sub_pop!r})"

    def __str__(self) -> str:
        if self.is_virtual():
            return f"({self._sub_pop}, {self._virtual_sub_pop})"
        return str(self._sub_pop)


class SubPopList:
    """An ordered list of (virtual) subpopulations.

    Accepts ``None``/``ALL_AVAIL`` (all available subpopulations), a single
    subpopulation id, a single VspID, or a list of items understood by
    ``VspID.coerce``. The "all available" form is bound to a concrete
    population only when ``use_subpops_from`` is called, because the number
    of subpopulations and the population's splitter may change between
    calls.
    """

    def __init__(self, subpops=None):
        self._all_avail = subpops is None or subpops is ALL_AVAIL
        self._subpops: List[VspID] = []
        if self._all_avail:
            return
        if is_index(subpops) or isinstance(subpops, VspID):
            subpops = [subpops]
        for item in subpops:
            self._subpops.append(VspID.coerce(item))

    @property
    def all_avail(self) -> bool:
        return self._all_avail

    def __len__(self) -> int:
        return len(self._subpops)

    def __getitem__(self, idx: int) -> VspID:
        if not -len(self._subpops) <= idx < len(self._subpops):
            raise IndexError("Index out of range.")
        return self._subpops[idx]

    def __iter__(self) -> Iterator[VspID]:
        return iter(self._subpops)

    def __repr__(self) -> str:
        if self._all_avail:
            return "SubPopList(ALL_AVAIL)"
        return f"SubPopList({self._subpops!r})"

    def empty(self) -> bool:
        return not self._subpops

    def append(self, vsp) -> None:
        self._subpops.append(VspID.coerce(vsp))
        self._all_avail = False

    def contains(self, vsp) -> bool:
        return VspID.coerce(vsp) in self._subpops

    def overlap(self, sub_pop: int) -> bool:
        """True if any listed (virtual) subpopulation lies in ``sub_pop``."""
        return any(v.sub_pop == sub_pop for v in self._subpops)

    def use_subpops_from(self, pop: 'Population') -> 'SubPopList':
        """Return a concrete list bound to the current layout of ``pop``.

        Args:
            pop: Population whose subpopulations and splitter are used.

        Returns:
            New SubPopList without wildcards.

        Raises:
            SplitterConfigError: ALL_AVAIL VSPs requested without a splitter.
            InvalidVspError: A listed id is outside the population layout.
        """
        n_sp = pop.num_subpop()
        if self._all_avail:
            return SubPopList([VspID(sp) for sp in range(n_sp)])

        expanded: List[VspID] = []
        for vsp in self._subpops:
            sps = range(n_sp) if vsp.sub_pop is ALL_AVAIL else [vsp.sub_pop]
            for sp in sps:
                if vsp.virtual_sub_pop is ALL_AVAIL:
                    if pop.virtual_splitter() is None:
                        raise SplitterConfigError(
                            "No virtual subpopulation splitter is defined"
                        )
                    expanded.extend(
                        VspID(sp, v) for v in range(pop.num_virtual_subpop())
                    )
                else:
                    expanded.append(VspID(sp, vsp.virtual_sub_pop))

        for vsp in expanded:
            pop.validate_vsp(vsp)
        return SubPopList(expanded)
