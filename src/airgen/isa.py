"""
Stack Machine Instruction Vocabulary

The subset of the recursive verifier's instruction set the assembly backend
needs to know about: opcode encoding, argument encoding, and mnemonics.

Instructions used by the emitted code:
- push <a>:      Push base field element a
- pop <n>:       Pop n elements
- addi <a>:      Add a to the top of the stack
- read_mem <n>:  Pop pointer p, push ram[p], ..., ram[p-n+1], push p-n
- write_mem <n>: Pop pointer p, pop n elements into ram[p], ..., ram[p+n-1], push p+n
- xx_add:        Pop two extension elements, push their sum
- xx_mul:        Pop two extension elements, push their product

Control flow (never emitted, part of the vocabulary so that generated code
can be checked against it):
- call <addr>, return, recurse, recurse_or_return, skiz, halt

A program is encoded as a flat list of words:

    [num_instructions, opcode, arg?, opcode, arg?, ...]
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import List, Optional, Sequence, Union

from .field import GOLDILOCKS_PRIME


class Opcode(IntEnum):
    """Instruction opcodes."""
    HALT = 0x00
    NOP = 0x01

    # Op stack
    PUSH = 0x10
    POP = 0x11

    # Arithmetic
    ADDI = 0x20
    XX_ADD = 0x21
    XX_MUL = 0x22

    # Control flow
    SKIZ = 0x30
    CALL = 0x31
    RETURN = 0x32
    RECURSE = 0x33
    RECURSE_OR_RETURN = 0x34

    # Memory
    READ_MEM = 0x40
    WRITE_MEM = 0x41

    @property
    def mnemonic(self) -> str:
        return self.name.lower()

    @property
    def has_arg(self) -> bool:
        return self in _OPCODES_WITH_ARG


_OPCODES_WITH_ARG = frozenset({
    Opcode.PUSH, Opcode.POP, Opcode.ADDI, Opcode.CALL,
    Opcode.READ_MEM, Opcode.WRITE_MEM,
})

# Instructions that are not straight-line, plus halt
CONTROL_FLOW_OPCODES = frozenset({
    Opcode.CALL, Opcode.RETURN, Opcode.RECURSE, Opcode.RECURSE_OR_RETURN,
    Opcode.SKIZ, Opcode.HALT,
})

# pop, read_mem and write_mem take a number of words
MAX_NUMBER_OF_WORDS = 5


@dataclass(frozen=True)
class Label:
    """A label declaration in labelled assembly."""
    name: str

    def __str__(self) -> str:
        return f"{self.name}:"


@dataclass(frozen=True)
class Instruction:
    """
    A single instruction.

    The argument of push, addi and call is a base field element, encoded as
    its canonical integer. It may be a symbolic value (an address relative
    to a memory region) until it is resolved against a memory layout.
    """
    opcode: Opcode
    arg: Optional[Union[int, object]] = None

    def __post_init__(self):
        if self.opcode.has_arg and self.arg is None:
            raise ValueError(f"Instruction {self.opcode.mnemonic} needs an argument")
        if not self.opcode.has_arg and self.arg is not None:
            raise ValueError(f"Instruction {self.opcode.mnemonic} takes no argument")
        if self.opcode in (Opcode.POP, Opcode.READ_MEM, Opcode.WRITE_MEM):
            if not 1 <= self.arg <= MAX_NUMBER_OF_WORDS:
                raise ValueError(f"Invalid number of words for {self.opcode.mnemonic}: {self.arg}")

    @property
    def size(self) -> int:
        """Number of words in the encoding."""
        return 2 if self.opcode.has_arg else 1

    def encode(self) -> List[int]:
        """Encode instruction to words."""
        if not self.opcode.has_arg:
            return [int(self.opcode)]
        if not isinstance(self.arg, int):
            raise ValueError(f"Cannot encode unresolved argument {self.arg!r}")
        if not 0 <= self.arg < GOLDILOCKS_PRIME:
            raise ValueError(f"Argument {self.arg} is not a canonical field element")
        return [int(self.opcode), self.arg]

    def __str__(self) -> str:
        if self.arg is None:
            return self.opcode.mnemonic
        return f"{self.opcode.mnemonic} {self.arg}"


# =============================================================================
# Constructors
# =============================================================================

def push(arg) -> Instruction:
    return Instruction(Opcode.PUSH, arg)


def pop(n: int) -> Instruction:
    return Instruction(Opcode.POP, n)


def addi(arg) -> Instruction:
    return Instruction(Opcode.ADDI, arg)


def read_mem(n: int) -> Instruction:
    return Instruction(Opcode.READ_MEM, n)


def write_mem(n: int) -> Instruction:
    return Instruction(Opcode.WRITE_MEM, n)


def xx_add() -> Instruction:
    return Instruction(Opcode.XX_ADD)


def xx_mul() -> Instruction:
    return Instruction(Opcode.XX_MUL)


def halt() -> Instruction:
    return Instruction(Opcode.HALT)


# =============================================================================
# Program encoding
# =============================================================================

def encode_program(instructions: Sequence[Instruction]) -> List[int]:
    """Encode to [num_instructions, words...]."""
    words = [len(instructions)]
    for instruction in instructions:
        words.extend(instruction.encode())
    return words


def decode_program(words: Sequence[int]) -> List[Instruction]:
    """Decode from [num_instructions, words...]."""
    if not words:
        raise ValueError("Empty program encoding")
    num_instructions = words[0]
    instructions = []
    offset = 1

    for _ in range(num_instructions):
        if offset >= len(words):
            raise ValueError("Truncated program encoding")
        opcode = Opcode(words[offset])
        if opcode.has_arg:
            if offset + 1 >= len(words):
                raise ValueError("Truncated program encoding")
            instructions.append(Instruction(opcode, words[offset + 1] % GOLDILOCKS_PRIME))
            offset += 2
        else:
            instructions.append(Instruction(opcode))
            offset += 1

    if offset != len(words):
        raise ValueError(f"Trailing words in program encoding: {len(words) - offset}")
    return instructions
