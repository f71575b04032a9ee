"""
Tests for the instruction vocabulary and the reference stack machine.
"""

import pytest

from airgen.field import GOLDILOCKS_PRIME, XFieldElement
from airgen.isa import (
    CONTROL_FLOW_OPCODES,
    Instruction,
    Label,
    Opcode,
    addi,
    decode_program,
    encode_program,
    halt,
    pop,
    push,
    read_mem,
    write_mem,
    xx_add,
    xx_mul,
)
from airgen.memory_layout import Address, IOList
from airgen.vm import MachineState, StackMachine


P = GOLDILOCKS_PRIME


class TestInstructions:

    def test_text(self):
        assert str(push(7)) == "push 7"
        assert str(read_mem(3)) == "read_mem 3"
        assert str(xx_mul()) == "xx_mul"
        assert str(Label("loop")) == "loop:"

    def test_symbolic_text(self):
        assert str(push(Address(IOList.FREE_MEM_PAGE, 12))) == "push free_mem_page+12"

    def test_argument_required(self):
        with pytest.raises(ValueError):
            Instruction(Opcode.PUSH)
        with pytest.raises(ValueError):
            Instruction(Opcode.XX_ADD, 1)

    def test_number_of_words_checked(self):
        with pytest.raises(ValueError):
            pop(0)
        with pytest.raises(ValueError):
            read_mem(6)

    def test_control_flow_set(self):
        assert Opcode.CALL in CONTROL_FLOW_OPCODES
        assert Opcode.RECURSE_OR_RETURN in CONTROL_FLOW_OPCODES
        assert Opcode.PUSH not in CONTROL_FLOW_OPCODES
        assert Opcode.XX_MUL not in CONTROL_FLOW_OPCODES


class TestEncoding:
    """Word encoding [num_instructions, opcode, arg?, ...]."""

    def test_layout(self):
        words = encode_program([push(5), xx_add(), pop(1)])
        assert words == [3, Opcode.PUSH, 5, Opcode.XX_ADD, Opcode.POP, 1]

    def test_decode(self):
        program = [push(P - 1), read_mem(3), pop(1), addi(8), write_mem(3), xx_mul(), halt()]
        assert decode_program(encode_program(program)) == program

    def test_unresolved_address_not_encodable(self):
        with pytest.raises(ValueError):
            encode_program([push(Address(IOList.CHALLENGES, 2))])

    def test_non_canonical_argument_rejected(self):
        with pytest.raises(ValueError):
            encode_program([push(P)])

    def test_truncated(self):
        with pytest.raises(ValueError):
            decode_program([2, Opcode.PUSH, 1])

    def test_trailing_words(self):
        with pytest.raises(ValueError):
            decode_program([1, Opcode.XX_ADD, 0])


class TestStackMachine:

    def run(self, program, stack=None, ram=None):
        state = MachineState(stack=list(stack or []), ram=dict(ram or {}))
        return StackMachine(program).run(state)

    def test_push_pop(self):
        state = self.run([push(1), push(2), push(3), pop(2)])
        assert not state.failed
        assert state.halted
        assert state.stack == [1]

    def test_addi_wraps(self):
        state = self.run([push(P - 1), addi(2)])
        assert state.stack == [1]

    def test_read_mem(self):
        """read_mem n pushes ram[p], ..., ram[p-n+1], then p-n."""
        state = self.run([push(12), read_mem(3)], ram={10: 1, 11: 2, 12: 3})
        assert state.stack == [3, 2, 1, 9]

    def test_unset_memory_reads_zero(self):
        state = self.run([push(100), read_mem(1)])
        assert state.stack == [0, 99]

    def test_write_mem(self):
        """write_mem n stores the top element at p and pushes p+n."""
        state = self.run([push(30), push(20), push(10), push(100), write_mem(3)])
        assert state.ram == {100: 10, 101: 20, 102: 30}
        assert state.stack == [103]
        assert state.written_addresses == [100, 101, 102]

    def test_write_then_read_extension_element(self):
        element = XFieldElement((4, 5, 6))
        state = MachineState()
        state.push_xfe(element)
        state.stack += [200]
        state = StackMachine([write_mem(3), pop(1), push(202), read_mem(3), pop(1)]).run(state)
        assert state.pop_xfe() == element
        assert state.read_elements(200, 1) == [element]

    def test_xx_arithmetic(self):
        a, b = XFieldElement((1, 2, 3)), XFieldElement((4, 5, 6))
        for instruction, expected in ((xx_add(), a + b), (xx_mul(), a * b)):
            state = MachineState()
            state.push_xfe(a)
            state.push_xfe(b)
            state = StackMachine([instruction]).run(state)
            assert state.pop_xfe() == expected
            assert state.stack == []

    def test_underflow_fails(self):
        state = self.run([push(1), xx_add()])
        assert state.failed
        assert "underflow" in state.failure_reason

    def test_control_flow_unsupported(self):
        state = self.run([Instruction(Opcode.CALL, 0)])
        assert state.failed
        assert "call" in state.failure_reason

    def test_halt_stops(self):
        state = self.run([halt(), push(1)])
        assert state.halted
        assert state.stack == []
