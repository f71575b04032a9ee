"""
Reference Stack Machine

A deterministic interpreter for the straight-line part of the instruction
vocabulary, used to execute generated constraint evaluation code.

- stack: Operand stack of base field elements (canonical ints), top last
- ram: Sparse memory, address -> base field element; unset words read as 0

Extension field elements on the stack occupy three slots, coefficient 0 on
top. In RAM they occupy three consecutive words, coefficient 0 at the
lowest address.

Executing an instruction outside the straight-line subset, or popping from an
empty stack, fails the run. A failed run records the reason.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .field import EXTENSION_DEGREE, GOLDILOCKS_PRIME, XFieldElement
from .isa import Instruction, Opcode


P = GOLDILOCKS_PRIME


class StackUnderflow(Exception):
    pass


@dataclass
class MachineState:
    """
    Complete machine state at a point in execution.

    Fields:
    - pc: Index of the next instruction
    - stack: Operand stack
    - ram: Random access memory
    - halted: Whether execution has terminated
    - failed: Whether execution failed (illegal operation)
    - failure_reason: Human-readable cause of the failure
    - written_addresses: Every word address written, in order
    """
    pc: int = 0
    stack: List[int] = field(default_factory=list)
    ram: Dict[int, int] = field(default_factory=dict)
    halted: bool = False
    failed: bool = False
    failure_reason: Optional[str] = None
    written_addresses: List[int] = field(default_factory=list)

    def pop(self) -> int:
        if not self.stack:
            raise StackUnderflow()
        return self.stack.pop()

    def push(self, value: int) -> None:
        self.stack.append(value % P)

    def pop_xfe(self) -> XFieldElement:
        coefficients = [self.pop() for _ in range(EXTENSION_DEGREE)]
        return XFieldElement(coefficients)

    def push_xfe(self, element: XFieldElement) -> None:
        for coefficient in reversed(element.coefficients):
            self.push(coefficient)

    # =========================================================================
    # RAM helpers
    # =========================================================================

    def write_elements(self, address: int, elements: Sequence) -> None:
        """Store extension field elements at consecutive word triples."""
        for i, element in enumerate(elements):
            element = XFieldElement.zero() + element
            for j, coefficient in enumerate(element.coefficients):
                self.ram[(address + EXTENSION_DEGREE * i + j) % P] = coefficient

    def read_elements(self, address: int, count: int) -> List[XFieldElement]:
        """Load extension field elements from consecutive word triples."""
        return [
            XFieldElement([
                self.ram.get((address + EXTENSION_DEGREE * i + j) % P, 0)
                for j in range(EXTENSION_DEGREE)
            ])
            for i in range(count)
        ]


class StackMachine:
    """
    Executes a list of instructions against a MachineState.

    Unlike a proof-carrying machine, the state is updated in place; run()
    returns the final state.
    """

    def __init__(self, instructions: Sequence[Instruction]):
        self.instructions = list(instructions)

    def step(self, state: MachineState) -> MachineState:
        """Execute one instruction."""
        if state.halted or state.failed:
            return state

        if state.pc >= len(self.instructions):
            state.halted = True
            return state

        inst = self.instructions[state.pc]
        state.pc += 1

        try:
            if inst.opcode == Opcode.NOP:
                pass

            elif inst.opcode == Opcode.PUSH:
                state.push(inst.arg)

            elif inst.opcode == Opcode.POP:
                for _ in range(inst.arg):
                    state.pop()

            elif inst.opcode == Opcode.ADDI:
                state.push(state.pop() + inst.arg)

            elif inst.opcode == Opcode.READ_MEM:
                pointer = state.pop()
                for i in range(inst.arg):
                    state.push(state.ram.get((pointer - i) % P, 0))
                state.push(pointer - inst.arg)

            elif inst.opcode == Opcode.WRITE_MEM:
                pointer = state.pop()
                for i in range(inst.arg):
                    address = (pointer + i) % P
                    state.ram[address] = state.pop()
                    state.written_addresses.append(address)
                state.push(pointer + inst.arg)

            elif inst.opcode == Opcode.XX_ADD:
                rhs = state.pop_xfe()
                lhs = state.pop_xfe()
                state.push_xfe(lhs + rhs)

            elif inst.opcode == Opcode.XX_MUL:
                rhs = state.pop_xfe()
                lhs = state.pop_xfe()
                state.push_xfe(lhs * rhs)

            elif inst.opcode == Opcode.HALT:
                state.halted = True

            else:
                state.failed = True
                state.failure_reason = f"unsupported instruction {inst}"

        except StackUnderflow:
            state.failed = True
            state.failure_reason = f"stack underflow in {inst} at {state.pc - 1}"

        return state

    def run(self, state: Optional[MachineState] = None) -> MachineState:
        """Run until halted or failed."""
        state = state if state is not None else MachineState()
        while not (state.halted or state.failed):
            self.step(state)
        return state

