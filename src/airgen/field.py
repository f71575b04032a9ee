"""
Goldilocks Base Field and its Cubic Extension

Base field: F_p where p = 2^64 - 2^32 + 1
Extension:  F_p[x] / (x^3 - x + 1)

Constraint circuits are evaluated over both fields:
- Main table columns hold base field elements
- Auxiliary table columns and challenges hold extension field elements
- Every evaluated constraint is reported as an extension field element

The stack machine stores an extension element as three consecutive words
(c0 at the lowest address) and keeps it on the operand stack with c0 on top.
"""

from __future__ import annotations
from typing import Iterable, Tuple, Union


# Goldilocks prime: p = 2^64 - 2^32 + 1
GOLDILOCKS_PRIME = (1 << 64) - (1 << 32) + 1
P = GOLDILOCKS_PRIME

# Number of base field coefficients of an extension field element
EXTENSION_DEGREE = 3


class BFieldElement:
    """
    Element of the Goldilocks prime field.

    Represents values in F_p where p = 2^64 - 2^32 + 1.
    Arithmetic with an XFieldElement operand promotes to the extension.
    """

    __slots__ = ('value',)

    def __init__(self, value: int):
        """Create field element from integer."""
        self.value = value % GOLDILOCKS_PRIME

    # =========================================================================
    # Arithmetic Operations
    # =========================================================================

    def __add__(self, other):
        if isinstance(other, BFieldElement):
            return BFieldElement(self.value + other.value)
        if isinstance(other, int):
            return BFieldElement(self.value + other)
        return NotImplemented

    __radd__ = __add__

    def __sub__(self, other):
        if isinstance(other, BFieldElement):
            return BFieldElement(self.value - other.value)
        if isinstance(other, int):
            return BFieldElement(self.value - other)
        return NotImplemented

    def __rsub__(self, other):
        if isinstance(other, int):
            return BFieldElement(other - self.value)
        return NotImplemented

    def __mul__(self, other):
        if isinstance(other, BFieldElement):
            return BFieldElement(self.value * other.value)
        if isinstance(other, int):
            return BFieldElement(self.value * other)
        return NotImplemented

    __rmul__ = __mul__

    def __neg__(self) -> BFieldElement:
        """Negation in F_p."""
        return BFieldElement(GOLDILOCKS_PRIME - self.value if self.value else 0)

    def __pow__(self, exp: int) -> BFieldElement:
        """Exponentiation using square-and-multiply."""
        if exp < 0:
            return self.inverse() ** (-exp)
        return BFieldElement(pow(self.value, exp, GOLDILOCKS_PRIME))

    def inverse(self) -> BFieldElement:
        """
        Multiplicative inverse using Fermat's little theorem.

        a^-1 = a^(p-2) mod p
        """
        if self.value == 0:
            raise ZeroDivisionError("Cannot invert zero")
        return BFieldElement(pow(self.value, GOLDILOCKS_PRIME - 2, GOLDILOCKS_PRIME))

    def lift(self) -> XFieldElement:
        """Embed into the extension field."""
        return XFieldElement((self.value, 0, 0))

    # =========================================================================
    # Comparison Operations
    # =========================================================================

    def __eq__(self, other: object) -> bool:
        if isinstance(other, BFieldElement):
            return self.value == other.value
        if isinstance(other, int):
            return self.value == (other % GOLDILOCKS_PRIME)
        if isinstance(other, XFieldElement):
            return other == self
        return False

    def __ne__(self, other: object) -> bool:
        return not self.__eq__(other)

    def __hash__(self) -> int:
        return hash(self.value)

    def __repr__(self) -> str:
        return f"BFieldElement({self.value})"

    def __str__(self) -> str:
        return str(self.value)

    def is_zero(self) -> bool:
        return self.value == 0

    @classmethod
    def zero(cls) -> BFieldElement:
        """Additive identity."""
        return cls(0)

    @classmethod
    def one(cls) -> BFieldElement:
        """Multiplicative identity."""
        return cls(1)


# =============================================================================
# Extension Field
# =============================================================================

class XFieldElement:
    """
    Cubic extension of Goldilocks: F_p[x] / (x^3 - x + 1)

    Elements are c0 + c1*x + c2*x^2 with x^3 = x - 1.
    """

    __slots__ = ('coefficients',)

    def __init__(self, coefficients: Iterable[Union[int, BFieldElement]]):
        coefficients = tuple(
            c.value if isinstance(c, BFieldElement) else c % GOLDILOCKS_PRIME
            for c in coefficients
        )
        if len(coefficients) != EXTENSION_DEGREE:
            raise ValueError(
                f"Extension element needs {EXTENSION_DEGREE} coefficients, "
                f"got {len(coefficients)}"
            )
        self.coefficients: Tuple[int, int, int] = coefficients

    @staticmethod
    def _coerce(other) -> Tuple[int, int, int]:
        if isinstance(other, XFieldElement):
            return other.coefficients
        if isinstance(other, BFieldElement):
            return (other.value, 0, 0)
        if isinstance(other, int):
            return (other % GOLDILOCKS_PRIME, 0, 0)
        return None

    def __add__(self, other):
        rhs = self._coerce(other)
        if rhs is None:
            return NotImplemented
        return XFieldElement(a + b for a, b in zip(self.coefficients, rhs))

    __radd__ = __add__

    def __sub__(self, other):
        rhs = self._coerce(other)
        if rhs is None:
            return NotImplemented
        return XFieldElement(a - b for a, b in zip(self.coefficients, rhs))

    def __rsub__(self, other):
        lhs = self._coerce(other)
        if lhs is None:
            return NotImplemented
        return XFieldElement(a - b for a, b in zip(lhs, self.coefficients))

    def __mul__(self, other):
        rhs = self._coerce(other)
        if rhs is None:
            return NotImplemented
        a0, a1, a2 = self.coefficients
        b0, b1, b2 = rhs

        # schoolbook product, then reduce x^3 = x - 1 and x^4 = x^2 - x
        r0 = a0 * b0
        r1 = a0 * b1 + a1 * b0
        r2 = a0 * b2 + a1 * b1 + a2 * b0
        r3 = a1 * b2 + a2 * b1
        r4 = a2 * b2
        return XFieldElement((r0 - r3, r1 + r3 - r4, r2 + r4))

    __rmul__ = __mul__

    def __neg__(self) -> XFieldElement:
        return XFieldElement(-c for c in self.coefficients)

    def __pow__(self, exp: int) -> XFieldElement:
        if exp < 0:
            raise ValueError("Negative exponents are not supported in the extension field")
        result = XFieldElement.one()
        base = self
        while exp:
            if exp & 1:
                result = result * base
            base = base * base
            exp >>= 1
        return result

    def lift(self) -> XFieldElement:
        return self

    def unlift(self) -> BFieldElement:
        """Project onto the base field, if the element lives there."""
        if self.coefficients[1] or self.coefficients[2]:
            raise ValueError(f"{self!r} is not a base field element")
        return BFieldElement(self.coefficients[0])

    def __eq__(self, other: object) -> bool:
        rhs = self._coerce(other)
        if rhs is None:
            return False
        return self.coefficients == rhs

    def __ne__(self, other: object) -> bool:
        return not self.__eq__(other)

    def __hash__(self) -> int:
        if not self.coefficients[1] and not self.coefficients[2]:
            return hash(self.coefficients[0])
        return hash(self.coefficients)

    def __repr__(self) -> str:
        return f"XFieldElement({self.coefficients})"

    def __str__(self) -> str:
        c0, c1, c2 = self.coefficients
        return f"({c2}·x² + {c1}·x + {c0})"

    def is_zero(self) -> bool:
        return not any(self.coefficients)

    @classmethod
    def zero(cls) -> XFieldElement:
        return cls((0, 0, 0))

    @classmethod
    def one(cls) -> XFieldElement:
        return cls((1, 0, 0))


FieldElement = Union[BFieldElement, XFieldElement]
