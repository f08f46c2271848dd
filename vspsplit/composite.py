"""Composite splitters built from other splitters.

CombinedSplitter stacks the VSPs of its children, optionally merging them
into unions; ProductSplitter takes the intersections of one VSP from each
child. Both own deep copies of their children and evaluate membership by
delegating to the children's predicates, never to their activation.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

import numpy as np

from vspsplit.exceptions import SplitterConfigError
from vspsplit.splitters import VspSplitter
from vspsplit.types import is_index


def _own_children(splitters: Sequence[VspSplitter], kind: str) -> List[VspSplitter]:
    if splitters is None or len(splitters) == 0:
        raise SplitterConfigError(f"{kind} requires at least one splitter")
    children = []
    for i, s in enumerate(splitters):
        if not isinstance(s, VspSplitter):
            raise SplitterConfigError(
                f"{kind}: item {i} is not a VSP splitter, got {type(s).__name__}"
            )
        children.append(s.clone())
    return children


# ═══════════════════════════════════════════════════════════════════════
# STACKING UNION
# ═══════════════════════════════════════════════════════════════════════

class CombinedSplitter(VspSplitter):
    """Stack the VSPs of several splitters, optionally merging them.

    ``CombinedSplitter([SexSplitter(), AffectionSplitter()])`` defines four
    VSPs: male (0), female (1), unaffected (2) and affected (3).

    ``vsp_map`` defines a new set of VSPs, each a union of VSPs in the
    stacked numbering above. ``vsp_map=[(0, 2), (1, 3)]`` defines
    "male or unaffected" and "female or affected".
    """

    def __init__(
        self,
        splitters: Sequence[VspSplitter],
        vsp_map: Optional[Sequence[Sequence[int]]] = None,
        names: Optional[Sequence[str]] = None,
    ):
        super().__init__(names)
        self.splitters = _own_children(splitters, "CombinedSplitter")

        stacked: List[Tuple[int, int]] = [
            (child, local)
            for child, s in enumerate(self.splitters)
            for local in range(s.num_virtual_subpop())
        ]
        if vsp_map is None:
            self._vsp_map = [[pair] for pair in stacked]
        else:
            self._vsp_map = []
            for i, group in enumerate(vsp_map):
                if is_index(group):
                    group = [group]
                if len(group) == 0:
                    raise SplitterConfigError(f"vsp_map entry {i} is empty")
                pairs = []
                for v in group:
                    if not is_index(v) or not 0 <= v < len(stacked):
                        raise SplitterConfigError(
                            f"vsp_map entry {i}: VSP {v!r} out of range",
                            f"stacked VSPs are numbered 0 to {len(stacked) - 1}",
                        )
                    pairs.append(stacked[int(v)])
                self._vsp_map.append(pairs)
            if not self._vsp_map:
                raise SplitterConfigError("vsp_map defines no virtual subpopulation")
        self._check_names()

    @property
    def vsp_map(self) -> List[List[Tuple[int, int]]]:
        """(child, local VSP) pairs of every combined VSP."""
        return [list(pairs) for pairs in self._vsp_map]

    def num_virtual_subpop(self) -> int:
        return len(self._vsp_map)

    def _member_mask(self, pop, sub_pop, vsp):
        mask = np.zeros(pop.subpop_size(sub_pop), dtype=bool)
        for child, local in self._vsp_map[vsp]:
            mask |= self.splitters[child]._member_mask(pop, sub_pop, local)
        return mask

    def _contains(self, pop, sub_pop, ind, vsp):
        return any(
            self.splitters[child]._contains(pop, sub_pop, ind, local)
            for child, local in self._vsp_map[vsp]
        )

    def _default_name(self, vsp):
        return " or ".join(
            self.splitters[child].name(local) for child, local in self._vsp_map[vsp]
        )


# ═══════════════════════════════════════════════════════════════════════
# CROSS PRODUCT
# ═══════════════════════════════════════════════════════════════════════

class ProductSplitter(VspSplitter):
    """Intersections of the VSPs of several splitters.

    ``ProductSplitter([SexSplitter(), AffectionSplitter()])`` defines male
    unaffected, male affected, female unaffected and female affected
    individuals, in that order: the first child varies slowest.
    """

    def __init__(
        self,
        splitters: Sequence[VspSplitter],
        names: Optional[Sequence[str]] = None,
    ):
        super().__init__(names)
        self.splitters = _own_children(splitters, "ProductSplitter")
        self._radix = [s.num_virtual_subpop() for s in self.splitters]
        if any(r == 0 for r in self._radix):
            raise SplitterConfigError(
                "ProductSplitter children must define at least one VSP each"
            )
        self._num_vsp = int(np.prod(self._radix))
        self._check_names()

    def num_virtual_subpop(self) -> int:
        return self._num_vsp

    def local_vsps(self, vsp: int) -> List[int]:
        """Decompose a product VSP id into one local VSP id per child."""
        vsp = self._check_vsp(vsp)
        locals_ = [0] * len(self._radix)
        for i in range(len(self._radix) - 1, -1, -1):
            vsp, locals_[i] = divmod(vsp, self._radix[i])
        return locals_

    def _member_mask(self, pop, sub_pop, vsp):
        mask = np.ones(pop.subpop_size(sub_pop), dtype=bool)
        for child, local in zip(self.splitters, self.local_vsps(vsp)):
            mask &= child._member_mask(pop, sub_pop, local)
        return mask

    def _contains(self, pop, sub_pop, ind, vsp):
        return all(
            child._contains(pop, sub_pop, ind, local)
            for child, local in zip(self.splitters, self.local_vsps(vsp))
        )

    def _default_name(self, vsp):
        return ", ".join(
            child.name(local)
            for child, local in zip(self.splitters, self.local_vsps(vsp))
        )
