"""
Memory Layout of the Emitted Assembly

The assembly backend reads rows and challenges from RAM and writes
temporaries and evaluated constraints into a free memory page. Where these
live is decided by the caller:

- StaticMemoryLayout: every region is known when the code is instantiated.
- DynamicMemoryLayout: only the free page and the challenges are known; the
  four row pointers are passed on the stack at run time.

Every row element and challenge is an extension field element and occupies
three consecutive words, lowest coefficient first.

A layout is integral iff its regions are pairwise disjoint and none of them
wraps around the end of the address space.
"""

from dataclasses import dataclass, fields
from enum import Enum
from typing import Dict, List

from .constraints import TableShape
from .errors import MemoryLayoutError
from .field import EXTENSION_DEGREE, GOLDILOCKS_PRIME
from .params import GeneratorParams


class IOList(Enum):
    """Memory regions the emitted code may address."""
    FREE_MEM_PAGE = 'free_mem_page'
    CURR_MAIN_ROW = 'curr_main_row'
    CURR_AUX_ROW = 'curr_aux_row'
    NEXT_MAIN_ROW = 'next_main_row'
    NEXT_AUX_ROW = 'next_aux_row'
    CHALLENGES = 'challenges'

    def size_in_words(self, shape: TableShape, params: GeneratorParams) -> int:
        if self is IOList.FREE_MEM_PAGE:
            return params.mem_page_size
        if self is IOList.CHALLENGES:
            return shape.num_challenges * EXTENSION_DEGREE
        if self in (IOList.CURR_MAIN_ROW, IOList.NEXT_MAIN_ROW):
            return shape.num_main_columns * EXTENSION_DEGREE
        return shape.num_aux_columns * EXTENSION_DEGREE


@dataclass(frozen=True)
class Address:
    """A word address relative to the start of a memory region."""
    region: IOList
    offset: int

    def __str__(self) -> str:
        return f"{self.region.value}+{self.offset}"


@dataclass(frozen=True)
class MemoryRegion:
    """A contiguous range of words [start, start + size)."""
    name: str
    start: int
    size: int

    @property
    def end(self) -> int:
        return self.start + self.size

    def contains_address(self, address: int) -> bool:
        return self.start <= address < self.end

    def disjoint_from(self, other: 'MemoryRegion') -> bool:
        if self.size == 0 or other.size == 0:
            return True
        return self.end <= other.start or other.end <= self.start

    def wraps_around(self) -> bool:
        return self.end > GOLDILOCKS_PRIME


class MemoryLayout:
    """Common behavior of the static and the dynamic layout."""

    def pointers(self) -> Dict[IOList, int]:
        return {IOList(f.name[:-len('_ptr')]): getattr(self, f.name) for f in fields(self)}

    def memory_regions(self, shape: TableShape, params: GeneratorParams) -> List[MemoryRegion]:
        return [
            MemoryRegion(region.value, start, region.size_in_words(shape, params))
            for region, start in self.pointers().items()
        ]

    def is_integral(self, shape: TableShape, params: GeneratorParams) -> bool:
        try:
            self.assert_integral(shape, params)
        except MemoryLayoutError:
            return False
        return True

    def assert_integral(self, shape: TableShape, params: GeneratorParams) -> None:
        """Raise MemoryLayoutError unless the layout is integral."""
        regions = self.memory_regions(shape, params)
        for region in regions:
            if not 0 <= region.start < GOLDILOCKS_PRIME:
                raise MemoryLayoutError(f"Region {region.name} starts outside the address space")
            if region.wraps_around():
                raise MemoryLayoutError(f"Region {region.name} wraps around the address space")

        for i, region in enumerate(regions):
            for other in regions[i + 1:]:
                if not region.disjoint_from(other):
                    raise MemoryLayoutError(f"Regions {region.name} and {other.name} overlap")

    def resolve(self, address: Address) -> int:
        """Concrete word for a symbolic address."""
        pointer = self.pointers().get(address.region)
        if pointer is None:
            raise MemoryLayoutError(
                f"{type(self).__name__} has no region {address.region.value}"
            )
        return (pointer + address.offset) % GOLDILOCKS_PRIME


@dataclass(frozen=True)
class StaticMemoryLayout(MemoryLayout):
    """All regions fixed at instantiation time."""
    free_mem_page_ptr: int
    curr_main_row_ptr: int
    curr_aux_row_ptr: int
    next_main_row_ptr: int
    next_aux_row_ptr: int
    challenges_ptr: int


@dataclass(frozen=True)
class DynamicMemoryLayout(MemoryLayout):
    """Row pointers are supplied on the stack when the code runs."""
    free_mem_page_ptr: int
    challenges_ptr: int
