"""
Tests for memory regions and the integrality of memory layouts.
"""

import pytest
from hypothesis import assume, given, settings, strategies as st

from airgen.constraints import TableShape
from airgen.errors import MemoryLayoutError
from airgen.field import GOLDILOCKS_PRIME
from airgen.memory_layout import (
    Address,
    DynamicMemoryLayout,
    IOList,
    MemoryRegion,
    StaticMemoryLayout,
)
from airgen.params import PARAMS_SMALL_PAGE, GeneratorParams


P = GOLDILOCKS_PRIME
SHAPE = TableShape(num_main_columns=10, num_aux_columns=4, num_challenges=5)
PAGE = PARAMS_SMALL_PAGE.mem_page_size


def static_layout(**overrides):
    pointers = dict(
        free_mem_page_ptr=0,
        curr_main_row_ptr=PAGE,
        curr_aux_row_ptr=PAGE + 100,
        next_main_row_ptr=PAGE + 200,
        next_aux_row_ptr=PAGE + 300,
        challenges_ptr=PAGE + 400,
    )
    pointers.update(overrides)
    return StaticMemoryLayout(**pointers)


class TestMemoryRegion:

    def test_contains(self):
        region = MemoryRegion("r", 10, 5)
        assert region.contains_address(10)
        assert region.contains_address(14)
        assert not region.contains_address(15)
        assert not region.contains_address(9)

    def test_disjoint(self):
        assert MemoryRegion("a", 0, 10).disjoint_from(MemoryRegion("b", 10, 10))
        assert not MemoryRegion("a", 0, 11).disjoint_from(MemoryRegion("b", 10, 10))
        assert not MemoryRegion("a", 12, 1).disjoint_from(MemoryRegion("b", 10, 10))

    def test_empty_region_disjoint(self):
        assert MemoryRegion("a", 5, 0).disjoint_from(MemoryRegion("b", 0, 10))

    def test_wraparound(self):
        assert MemoryRegion("a", P - 2, 3).wraps_around()
        assert not MemoryRegion("a", P - 3, 3).wraps_around()


class TestRegionSizes:

    def test_sizes_in_words(self):
        params = PARAMS_SMALL_PAGE
        assert IOList.FREE_MEM_PAGE.size_in_words(SHAPE, params) == PAGE
        assert IOList.CURR_MAIN_ROW.size_in_words(SHAPE, params) == 30
        assert IOList.NEXT_AUX_ROW.size_in_words(SHAPE, params) == 12
        assert IOList.CHALLENGES.size_in_words(SHAPE, params) == 15

    def test_static_regions(self):
        regions = static_layout().memory_regions(SHAPE, PARAMS_SMALL_PAGE)
        assert [r.name for r in regions] == [
            'free_mem_page', 'curr_main_row', 'curr_aux_row',
            'next_main_row', 'next_aux_row', 'challenges',
        ]

    def test_dynamic_regions(self):
        layout = DynamicMemoryLayout(free_mem_page_ptr=0, challenges_ptr=PAGE)
        regions = layout.memory_regions(SHAPE, PARAMS_SMALL_PAGE)
        assert [r.name for r in regions] == ['free_mem_page', 'challenges']


class TestIntegrality:

    def test_integral(self):
        assert static_layout().is_integral(SHAPE, PARAMS_SMALL_PAGE)
        static_layout().assert_integral(SHAPE, PARAMS_SMALL_PAGE)

    def test_overlapping_rows(self):
        layout = static_layout(curr_aux_row_ptr=PAGE + 20)
        assert not layout.is_integral(SHAPE, PARAMS_SMALL_PAGE)
        with pytest.raises(MemoryLayoutError):
            layout.assert_integral(SHAPE, PARAMS_SMALL_PAGE)

    def test_row_inside_free_page(self):
        layout = static_layout(challenges_ptr=PAGE - 1)
        assert not layout.is_integral(SHAPE, PARAMS_SMALL_PAGE)

    def test_wraparound_rejected(self):
        layout = static_layout(challenges_ptr=P - 3)
        assert not layout.is_integral(SHAPE, PARAMS_SMALL_PAGE)

    def test_pointer_outside_address_space(self):
        layout = static_layout(challenges_ptr=P + 1000)
        assert not layout.is_integral(SHAPE, PARAMS_SMALL_PAGE)

    def test_error_is_value_error(self):
        with pytest.raises(ValueError):
            static_layout(next_main_row_ptr=0).assert_integral(SHAPE, PARAMS_SMALL_PAGE)

    def test_dynamic(self):
        assert DynamicMemoryLayout(0, PAGE).is_integral(SHAPE, PARAMS_SMALL_PAGE)
        assert not DynamicMemoryLayout(0, PAGE - 3).is_integral(SHAPE, PARAMS_SMALL_PAGE)

    @given(
        pointers=st.lists(
            st.integers(min_value=0, max_value=P - 1), min_size=6, max_size=6
        )
    )
    @settings(max_examples=200)
    def test_integral_iff_disjoint_and_in_range(self, pointers):
        layout = StaticMemoryLayout(*pointers)
        sizes = [PAGE, 30, 12, 30, 12, 15]
        spans = list(zip(pointers, sizes))

        in_range = all(start + size <= P for start, size in spans)
        disjoint = all(
            a_start + a_size <= b_start or b_start + b_size <= a_start
            for i, (a_start, a_size) in enumerate(spans)
            for b_start, b_size in spans[i + 1:]
        )
        assert layout.is_integral(SHAPE, PARAMS_SMALL_PAGE) == (in_range and disjoint)

    @given(
        free=st.integers(min_value=0, max_value=P - PAGE),
        gap=st.integers(min_value=0, max_value=1 << 20),
    )
    @settings(max_examples=100)
    def test_packed_layouts_integral(self, free, gap):
        start = free + PAGE + gap
        assume(start + 200 <= P)
        layout = StaticMemoryLayout(free, start, start + 30, start + 42, start + 72, start + 84)
        assert layout.is_integral(SHAPE, PARAMS_SMALL_PAGE)


class TestResolve:

    def test_resolve(self):
        layout = static_layout(challenges_ptr=P - 1)
        assert layout.resolve(Address(IOList.CHALLENGES, 0)) == P - 1
        assert layout.resolve(Address(IOList.CHALLENGES, 2)) == 1
        assert layout.resolve(Address(IOList.CURR_AUX_ROW, 5)) == PAGE + 105

    def test_dynamic_has_no_rows(self):
        layout = DynamicMemoryLayout(free_mem_page_ptr=0, challenges_ptr=PAGE)
        with pytest.raises(MemoryLayoutError):
            layout.resolve(Address(IOList.CURR_MAIN_ROW, 0))


class TestParams:

    def test_out_array_offset(self):
        params = GeneratorParams()
        assert params.out_array_offset == (2**32 - 2**16) // 3
        assert params.max_num_constraints == (2**16 - 4) // 3

    def test_invalid(self):
        with pytest.raises(ValueError):
            GeneratorParams(target_degree=1)
        with pytest.raises(ValueError):
            GeneratorParams(mem_page_size=100, max_num_words_for_evaluated_constraints=100)
        with pytest.raises(ValueError):
            GeneratorParams(mem_page_size=100, max_num_words_for_evaluated_constraints=11)
