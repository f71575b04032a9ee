"""
Assembly Backend

Emits straight-line stack machine code evaluating all constraints of a
constraint set. Two addressing modes exist:

STATIC:
    Every row pointer is known when the code is instantiated against a
    StaticMemoryLayout. The code starts with an empty stack.

DYNAMIC:
    The stack holds `_ *curr_main *curr_aux *next_main *next_aux`. The
    prologue stores the four pointers in the first words of the free memory
    page; rows are then loaded through one indirection. Temporaries and the
    output array move up by the number of pointer slots.

Scratch memory, relative to the start of the scratch area:

    [0, 3 * out_array_offset)           shared node n at 3 * n
    [3 * out_array_offset, page end)    evaluated constraint i at 3 * (out_array_offset + i)

The code ends by pushing a pointer to the output array. Addresses are
emitted symbolically, relative to a memory region, and resolved by
TasmTemplate.instantiate.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Sequence

from .circuit import BinOp, Circuit, CircuitBuilder, CircuitNode, CircuitVisitor, Row, Table
from .constraints import ConstraintSet, ConstraintType, TableShape
from .errors import CompilerInvariantError, MemoryLayoutError
from .field import EXTENSION_DEGREE, GOLDILOCKS_PRIME
from .isa import Instruction, addi, pop, push, read_mem, write_mem, xx_add, xx_mul
from .memory_layout import (
    Address,
    DynamicMemoryLayout,
    IOList,
    MemoryLayout,
    StaticMemoryLayout,
)
from .params import DEFAULT_PARAMS, GeneratorParams
from .sharing import EmissionScope, plan_shared_declarations


logger = logging.getLogger(__name__)

# Largest address offset that cannot overflow a u64 before modular reduction
MAX_ADDRESS_OFFSET = (1 << 64) - GOLDILOCKS_PRIME


class AddressingMode(Enum):
    STATIC = 'static'
    DYNAMIC = 'dynamic'


# Words of the free memory page holding the row pointers in dynamic mode
POINTER_SLOTS: Dict[IOList, int] = {
    IOList.CURR_MAIN_ROW: 0,
    IOList.CURR_AUX_ROW: 1,
    IOList.NEXT_MAIN_ROW: 2,
    IOList.NEXT_AUX_ROW: 3,
}


def row_region(row: Row, table: Table) -> IOList:
    if row is Row.CURRENT:
        return IOList.CURR_MAIN_ROW if table is Table.MAIN else IOList.CURR_AUX_ROW
    return IOList.NEXT_MAIN_ROW if table is Table.MAIN else IOList.NEXT_AUX_ROW


# =============================================================================
# Template
# =============================================================================

@dataclass
class TasmTemplate:
    """
    Assembly with symbolic addresses.

    Fields:
    - mode: Addressing mode the code was generated for
    - shape: Column and challenge counts the code reads
    - params: Memory page parameters
    - prologue: Pointer stores (dynamic mode), empty otherwise
    - buckets: Code per constraint type, in canonical order
    - epilogue: Push of the output array pointer
    - num_constraints: Number of evaluated constraints written
    """
    mode: AddressingMode
    shape: TableShape
    params: GeneratorParams
    prologue: List[Instruction] = field(default_factory=list)
    buckets: Dict[ConstraintType, List[Instruction]] = field(default_factory=dict)
    epilogue: List[Instruction] = field(default_factory=list)
    num_constraints: int = 0

    def instructions(self) -> List[Instruction]:
        result = list(self.prologue)
        for constraint_type in ConstraintType:
            result += self.buckets.get(constraint_type, [])
        return result + self.epilogue

    def instantiate(self, layout: MemoryLayout) -> List[Instruction]:
        """
        Resolve every symbolic address against a memory layout.

        Raises MemoryLayoutError if the layout does not match the addressing
        mode or is not integral.
        """
        expected = StaticMemoryLayout if self.mode is AddressingMode.STATIC else DynamicMemoryLayout
        if not isinstance(layout, expected):
            raise MemoryLayoutError(
                f"{self.mode.value} code needs a {expected.__name__}, got {type(layout).__name__}"
            )
        layout.assert_integral(self.shape, self.params)

        return [
            Instruction(inst.opcode, layout.resolve(inst.arg))
            if isinstance(inst.arg, Address) else inst
            for inst in self.instructions()
        ]

    def output_array_address(self, layout: MemoryLayout) -> int:
        return layout.resolve(self.epilogue[-1].arg)


# =============================================================================
# Node emission
# =============================================================================

class _NodeEmitter(CircuitVisitor):
    """Instructions leaving the value of one node on top of the stack."""

    def __init__(self, backend: 'TasmBackend', builder: CircuitBuilder, scope: EmissionScope):
        self.backend = backend
        self.builder = builder
        self.scope = scope

    def emit(self, node: CircuitNode) -> List[Instruction]:
        return self.fold(self.builder, node)

    def is_bound(self, node):
        return node.id in self.scope

    def visit_bound(self, node):
        return self.backend.load_shared_node(node.id)

    def visit_b_constant(self, node):
        return _push_coefficients((node.value.value, 0, 0))

    def visit_x_constant(self, node):
        return _push_coefficients(node.value.coefficients)

    def visit_input(self, node):
        indicator = node.value
        return self.backend.load_row_element(row_region(indicator.row, indicator.table), indicator.column)

    def visit_challenge(self, node):
        return self.backend.load_element(IOList.CHALLENGES, node.value)

    def visit_binary_operation(self, node, lhs, rhs):
        lhs.extend(rhs)
        lhs.append(xx_add() if node.op is BinOp.ADD else xx_mul())
        return lhs


def _push_coefficients(coefficients: Sequence[int]) -> List[Instruction]:
    c0, c1, c2 = coefficients
    return [push(c2), push(c1), push(c0)]


# =============================================================================
# Backend
# =============================================================================

class TasmBackend:
    """Generates assembly templates in one addressing mode."""

    def __init__(self, mode: AddressingMode, params: GeneratorParams = DEFAULT_PARAMS):
        self.mode = mode
        self.params = params

    @property
    def scratch_offset(self) -> int:
        """Start of the scratch area within the free memory page, in words."""
        if self.mode is AddressingMode.DYNAMIC:
            return self.params.num_pointer_pointers
        return 0

    def scratch_address(self, word_offset: int) -> Address:
        offset = self.scratch_offset + word_offset
        if offset >= MAX_ADDRESS_OFFSET:
            raise CompilerInvariantError(f"Address offset {offset} overflows")
        return Address(IOList.FREE_MEM_PAGE, offset)

    # =========================================================================
    # Loads and stores
    # =========================================================================

    def load_element(self, region: IOList, index: int) -> List[Instruction]:
        """Load element `index` of a statically addressed list."""
        offset = EXTENSION_DEGREE * index + EXTENSION_DEGREE - 1
        if offset >= MAX_ADDRESS_OFFSET:
            raise CompilerInvariantError(f"Address offset {offset} overflows")
        return [push(Address(region, offset)), read_mem(EXTENSION_DEGREE), pop(1)]

    def load_row_element(self, region: IOList, column: int) -> List[Instruction]:
        if self.mode is AddressingMode.STATIC:
            return self.load_element(region, column)

        word_index = EXTENSION_DEGREE * column + EXTENSION_DEGREE - 1
        if word_index >= MAX_ADDRESS_OFFSET:
            raise CompilerInvariantError(f"Address offset {word_index} overflows")
        return [
            push(Address(IOList.FREE_MEM_PAGE, POINTER_SLOTS[region])),
            read_mem(1),
            pop(1),
            addi(word_index),
            read_mem(EXTENSION_DEGREE),
            pop(1),
        ]

    def _check_shared_node_id(self, node_id: int) -> None:
        if node_id >= self.params.out_array_offset:
            raise CompilerInvariantError(
                f"Shared node {node_id} collides with the output array "
                f"at element {self.params.out_array_offset}"
            )

    def load_shared_node(self, node_id: int) -> List[Instruction]:
        self._check_shared_node_id(node_id)
        address = self.scratch_address(EXTENSION_DEGREE * node_id + EXTENSION_DEGREE - 1)
        return [push(address), read_mem(EXTENSION_DEGREE), pop(1)]

    def store_shared_node(self, node_id: int) -> List[Instruction]:
        self._check_shared_node_id(node_id)
        address = self.scratch_address(EXTENSION_DEGREE * node_id)
        return [push(address), write_mem(EXTENSION_DEGREE), pop(1)]

    def store_output(self, index: int) -> List[Instruction]:
        if index >= self.params.max_num_constraints:
            raise CompilerInvariantError(
                f"Too many constraints for the output array: at most "
                f"{self.params.max_num_constraints}"
            )
        address = self.scratch_address(EXTENSION_DEGREE * (self.params.out_array_offset + index))
        return [push(address), write_mem(EXTENSION_DEGREE), pop(1)]

    # =========================================================================
    # Code generation
    # =========================================================================

    def prologue(self) -> List[Instruction]:
        """Move the four row pointers from the stack into their slots."""
        if self.mode is AddressingMode.STATIC:
            return []
        code = []
        for region in sorted(POINTER_SLOTS, key=POINTER_SLOTS.get, reverse=True):
            slot = Address(IOList.FREE_MEM_PAGE, POINTER_SLOTS[region])
            code += [push(slot), write_mem(1), pop(1)]
        return code

    def epilogue(self) -> List[Instruction]:
        return [push(self.scratch_address(EXTENSION_DEGREE * self.params.out_array_offset))]

    def bucket_code(
        self,
        constraints: Sequence[Circuit],
        first_output_index: int,
    ) -> List[Instruction]:
        """
        Code for one bucket: shared nodes first, then every constraint.

        Base-typed constraints are written before extension-typed ones.
        """
        if not constraints:
            return []

        builder = constraints[0].builder
        plan = plan_shared_declarations(constraints)
        scope = EmissionScope()
        emitter = _NodeEmitter(self, builder, scope)

        code: List[Instruction] = []
        for node_id in plan.declaration_order:
            code += emitter.emit(builder.node(node_id))
            code += self.store_shared_node(node_id)
            scope.declare(node_id)

        base = [c for c in constraints if c.evaluates_to_base_element()]
        ext = [c for c in constraints if not c.evaluates_to_base_element()]
        for index, constraint in enumerate(base + ext, start=first_output_index):
            code += emitter.emit(constraint.node)
            code += self.store_output(index)
        return code

    def constraint_evaluation_code(self, constraints: ConstraintSet) -> TasmTemplate:
        template = TasmTemplate(
            mode=self.mode,
            shape=constraints.shape,
            params=self.params,
            prologue=self.prologue(),
            epilogue=self.epilogue(),
        )
        elements_written = 0
        for constraint_type, bucket in constraints.buckets().items():
            template.buckets[constraint_type] = self.bucket_code(bucket, elements_written)
            elements_written += len(bucket)

        template.num_constraints = elements_written
        logger.debug(
            "%s assembly: %d instructions for %d constraints",
            self.mode.value, len(template.instructions()), elements_written,
        )
        return template


def static_backend(params: GeneratorParams = DEFAULT_PARAMS) -> TasmBackend:
    return TasmBackend(AddressingMode.STATIC, params)


def dynamic_backend(params: GeneratorParams = DEFAULT_PARAMS) -> TasmBackend:
    return TasmBackend(AddressingMode.DYNAMIC, params)
