"""Tests for vspsplit.types — enums, individual arrays, VspID and SubPopList."""

import copy
import pickle

import numpy as np
import pytest

from vspsplit.exceptions import InvalidVspError, SplitterConfigError
from vspsplit.population import Population
from vspsplit.splitters import SexSplitter
from vspsplit.types import (
    ALL_AVAIL,
    IND_DTYPE,
    Sex,
    SubPopList,
    VspID,
    allocate_individuals,
)


# ── Enum & dtype tests ────────────────────────────────────────────────

class TestSexEnum:
    def test_values(self):
        assert Sex.MALE == 1
        assert Sex.FEMALE == 2

    def test_fits_int8_field(self):
        inds = allocate_individuals(2)
        inds['sex'][1] = Sex.FEMALE
        assert inds['sex'][1] == Sex.FEMALE


class TestIndDtype:
    def test_fields(self):
        assert IND_DTYPE.names == ('sex', 'affected', 'visible')

    def test_allocate_defaults(self):
        inds = allocate_individuals(5)
        assert inds.shape == (5,)
        assert np.all(inds['sex'] == Sex.MALE)
        assert not inds['affected'].any()
        assert inds['visible'].all()

    def test_allocate_empty(self):
        assert allocate_individuals(0).shape == (0,)


class TestAllAvail:
    def test_singleton(self):
        assert copy.deepcopy(ALL_AVAIL) is ALL_AVAIL
        assert repr(ALL_AVAIL) == 'ALL_AVAIL'


# ── VspID tests ───────────────────────────────────────────────────────

class TestVspID:
    def test_plain(self):
        v = VspID(2)
        assert v.sub_pop == 2
        assert v.virtual_sub_pop is None
        assert v.valid()
        assert not v.is_virtual()

    def test_virtual(self):
        v = VspID(1, 0)
        assert v.is_virtual()
        assert str(v) == "(1, 0)"
        assert str(VspID(3)) == "3"

    def test_negative_normalizes_to_none(self):
        assert VspID(-1).sub_pop is None
        assert not VspID(-1).valid()
        assert VspID(0, -1) == VspID(0)

    def test_equality_and_hash(self):
        assert VspID(1, 2) == VspID(1, 2)
        assert VspID(1, 2) != VspID(2, 1)
        assert len({VspID(1, 2), VspID(1, 2), VspID(1)}) == 2

    def test_immutable(self):
        with pytest.raises(AttributeError):
            VspID(1).sub_pop = 3

    def test_pickle(self):
        v = VspID(1, ALL_AVAIL)
        assert pickle.loads(pickle.dumps(VspID(4, 2))) == VspID(4, 2)
        assert copy.deepcopy(v).virtual_sub_pop is ALL_AVAIL

    def test_coerce(self):
        assert VspID.coerce(3) == VspID(3)
        assert VspID.coerce((1, 2)) == VspID(1, 2)
        assert VspID.coerce([0]) == VspID(0)
        assert VspID.coerce(np.int64(2)) == VspID(2)
        v = VspID(0, 1)
        assert VspID.coerce(v) is v

    def test_coerce_too_long(self):
        with pytest.raises(SplitterConfigError):
            VspID.coerce((0, 1, 2))

    def test_coerce_garbage(self):
        with pytest.raises(SplitterConfigError):
            VspID.coerce(1.5j)

    @pytest.mark.parametrize('text', ["12", "1", b"12", ""])
    def test_coerce_rejects_strings(self, text):
        with pytest.raises(SplitterConfigError):
            VspID.coerce(text)

    @pytest.mark.parametrize('value', [True, 1.5, (0, True), (0, 1.0)])
    def test_rejects_non_integer_ids(self, value):
        with pytest.raises(SplitterConfigError):
            VspID.coerce(value)

    def test_subpop_list_rejects_string(self):
        with pytest.raises(SplitterConfigError):
            SubPopList("12")


# ── SubPopList tests ──────────────────────────────────────────────────

@pytest.fixture
def pop():
    pop = Population([5, 4, 3])
    pop.set_virtual_splitter(SexSplitter())
    return pop


class TestSubPopList:
    def test_default_is_all_avail(self):
        assert SubPopList().all_avail
        assert SubPopList(ALL_AVAIL).all_avail
        assert SubPopList().empty()

    def test_from_items(self):
        spl = SubPopList([0, (1, 1), VspID(2)])
        assert len(spl) == 3
        assert spl[1] == VspID(1, 1)
        assert spl[-1] == VspID(2)
        assert list(spl) == [VspID(0), VspID(1, 1), VspID(2)]

    def test_single_item(self):
        assert list(SubPopList(2)) == [VspID(2)]
        assert list(SubPopList(VspID(1, 0))) == [VspID(1, 0)]

    def test_getitem_out_of_range(self):
        with pytest.raises(IndexError):
            SubPopList([0])[1]

    def test_append_contains_overlap(self):
        spl = SubPopList([])
        spl.append((2, 1))
        assert spl.contains((2, 1))
        assert not spl.contains(2)
        assert spl.overlap(2)
        assert not spl.overlap(0)

    def test_expand_all_avail(self, pop):
        spl = SubPopList().use_subpops_from(pop)
        assert list(spl) == [VspID(0), VspID(1), VspID(2)]
        assert not spl.all_avail

    def test_expand_all_vsps(self, pop):
        spl = SubPopList([(1, ALL_AVAIL)]).use_subpops_from(pop)
        assert list(spl) == [VspID(1, 0), VspID(1, 1)]

    def test_expand_all_subpops(self, pop):
        spl = SubPopList([(ALL_AVAIL, 1)]).use_subpops_from(pop)
        assert list(spl) == [VspID(0, 1), VspID(1, 1), VspID(2, 1)]

    def test_expand_both(self, pop):
        spl = SubPopList([(ALL_AVAIL, ALL_AVAIL)]).use_subpops_from(pop)
        assert len(spl) == 6
        assert spl[0] == VspID(0, 0)
        assert spl[5] == VspID(2, 1)

    def test_expand_follows_population(self):
        """The same list binds to whatever layout it is used with."""
        spl = SubPopList()
        assert len(spl.use_subpops_from(Population([1, 1]))) == 2
        assert len(spl.use_subpops_from(Population([1, 1, 1, 1]))) == 4

    def test_all_vsps_without_splitter(self):
        with pytest.raises(SplitterConfigError):
            SubPopList([(0, ALL_AVAIL)]).use_subpops_from(Population([3]))

    def test_out_of_range(self, pop):
        with pytest.raises(InvalidVspError):
            SubPopList([5]).use_subpops_from(pop)
        with pytest.raises(InvalidVspError):
            SubPopList([(0, 2)]).use_subpops_from(pop)
