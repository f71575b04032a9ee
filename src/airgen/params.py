"""
Generator Parameters

GeneratorParams collects the fixed protocol parameters the compiler works
against: the target degree of the AIR and the shape of the scratch memory
page the emitted assembly is allowed to use.
"""

from dataclasses import dataclass

from .field import EXTENSION_DEGREE


@dataclass(frozen=True)
class GeneratorParams:
    """
    Public parameters of one compiler invocation.

    All parameters are immutable and hashable.
    """

    # ==========================================================================
    # Degree Lowering
    # ==========================================================================

    target_degree: int = 4
    """Maximal degree of any constraint after degree lowering."""

    # ==========================================================================
    # Scratch Memory (Assembly Backend)
    # ==========================================================================

    mem_page_size: int = 1 << 32
    """Number of words in the free memory page handed to the emitted code."""

    max_num_words_for_evaluated_constraints: int = 1 << 16
    """Words reserved at the end of the memory page for the output array."""

    num_pointer_pointers: int = 4
    """Words at the start of the page holding row pointers (dynamic mode)."""

    def __post_init__(self):
        if self.target_degree < 2:
            raise ValueError(f"Target degree must be > 1, got {self.target_degree}")
        if self.max_num_words_for_evaluated_constraints >= self.mem_page_size:
            raise ValueError(
                "Output array reservation must be smaller than the memory page, "
                f"got {self.max_num_words_for_evaluated_constraints} >= {self.mem_page_size}"
            )
        if self.out_array_offset_in_words % EXTENSION_DEGREE != 0:
            raise ValueError(
                f"Output array offset {self.out_array_offset_in_words} is not "
                f"a multiple of {EXTENSION_DEGREE}"
            )

    @property
    def out_array_offset_in_words(self) -> int:
        """Offset of the output array from the start of the scratch area, in words."""
        return self.mem_page_size - self.max_num_words_for_evaluated_constraints

    @property
    def out_array_offset(self) -> int:
        """Offset of the output array, in extension field elements."""
        return self.out_array_offset_in_words // EXTENSION_DEGREE

    @property
    def max_num_constraints(self) -> int:
        """Number of evaluated constraints that fit into the output array."""
        usable_words = self.max_num_words_for_evaluated_constraints - self.num_pointer_pointers
        return usable_words // EXTENSION_DEGREE


# =============================================================================
# Preset Configurations
# =============================================================================

DEFAULT_PARAMS = GeneratorParams()

# Small memory page: keeps reference machine memory and test layouts compact
PARAMS_SMALL_PAGE = GeneratorParams(
    mem_page_size=1 << 16,
    max_num_words_for_evaluated_constraints=1 << 10,
)
