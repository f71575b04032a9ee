"""
Error types raised by the constraint compiler.

Two kinds of failure exist:
- Broken compiler invariants (duplicate node ids, double declarations,
  malformed substitution rules, address overflow). These abort compilation.
- Invalid caller-supplied data, most notably memory layouts that are not
  integral. These are rejected before any code is instantiated.
"""


class AirGenError(Exception):
    """Base class for all errors raised by airgen."""


class CompilerInvariantError(AirGenError, RuntimeError):
    """An internal invariant of the compiler does not hold."""


class MemoryLayoutError(AirGenError, ValueError):
    """A memory layout handed to the assembly backend is not integral."""
