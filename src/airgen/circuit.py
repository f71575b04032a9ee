"""
Constraint Circuits

A constraint circuit is a DAG of arithmetic expressions over

- two input rows (current and next) of two tables (main and auxiliary),
- verifier challenges,
- constants in the base field and in its cubic extension.

Nodes live in an arena owned by a CircuitBuilder and are addressed by
integer ids. Children are always created before their parents, so a parent's
id is strictly larger than the ids of its children.

The builder hash-conses every node: constructing a structurally identical
expression twice yields the same node. Combining two constants is folded
into a constant eagerly.

Usage:
    builder = CircuitBuilder()
    a = builder.current_main(0)
    b = builder.current_main(1)
    c = (a + b) * (a + b) - builder.challenge(0)
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from .errors import CompilerInvariantError
from .field import BFieldElement, XFieldElement


class ExpressionKind(Enum):
    """The closed set of node kinds."""
    B_CONSTANT = 'b_constant'
    X_CONSTANT = 'x_constant'
    INPUT = 'input'
    CHALLENGE = 'challenge'
    BINARY_OPERATION = 'binary_operation'


class BinOp(Enum):
    """Binary operations. Both are commutative."""
    ADD = '+'
    MUL = '*'

    def apply(self, lhs, rhs):
        if self is BinOp.ADD:
            return lhs + rhs
        return lhs * rhs


class Row(Enum):
    CURRENT = 'current'
    NEXT = 'next'


class Table(Enum):
    MAIN = 'main'
    AUX = 'aux'


@dataclass(frozen=True)
class InputIndicator:
    """Reference to one cell of the current or next row of a table."""
    row: Row
    table: Table
    column: int

    @property
    def is_current_row(self) -> bool:
        return self.row is Row.CURRENT

    @property
    def is_main_table_column(self) -> bool:
        return self.table is Table.MAIN

    def __str__(self) -> str:
        return f"{self.row.value}_{self.table.value}_row[{self.column}]"


@dataclass
class CircuitNode:
    """
    One node of the expression DAG.

    Fields:
    - id: Arena index, unique within the owning builder
    - kind: Expression kind
    - value: Constant value, InputIndicator or challenge index (leaves only)
    - op, lhs, rhs: Operator and child ids (binary operations only)
    - degree: Polynomial degree of the subexpression
    - is_base: Whether the subexpression evaluates to a base field element
    - ref_count: How often construction resolved to this node
    """
    id: int
    kind: ExpressionKind
    degree: int
    is_base: bool
    value: Union[BFieldElement, XFieldElement, InputIndicator, int, None] = None
    op: Optional[BinOp] = None
    lhs: Optional[int] = None
    rhs: Optional[int] = None
    ref_count: int = 1

    @property
    def is_binary_operation(self) -> bool:
        return self.kind is ExpressionKind.BINARY_OPERATION

    def children(self) -> Tuple[int, ...]:
        if self.is_binary_operation:
            return (self.lhs, self.rhs)
        return ()


# =============================================================================
# Exhaustive dispatch over expression kinds
# =============================================================================

_VISIT_METHODS = {
    ExpressionKind.B_CONSTANT: 'visit_b_constant',
    ExpressionKind.X_CONSTANT: 'visit_x_constant',
    ExpressionKind.INPUT: 'visit_input',
    ExpressionKind.CHALLENGE: 'visit_challenge',
    ExpressionKind.BINARY_OPERATION: 'visit_binary_operation',
}
if set(_VISIT_METHODS) != set(ExpressionKind):
    raise CompilerInvariantError("Visit methods do not cover every expression kind")


class CircuitVisitor:
    """
    Base class for every consumer that needs a case per expression kind.

    Subclasses must implement all five visit methods; both code generation
    backends go through this dispatch so that no kind can be handled by one
    backend and silently missed by the other.
    """

    def visit(self, node: CircuitNode, *operands):
        method = _VISIT_METHODS.get(node.kind)
        if method is None:
            raise CompilerInvariantError(f"Unhandled expression kind: {node.kind}")
        return getattr(self, method)(node, *operands)

    def is_bound(self, node: CircuitNode) -> bool:
        """Whether fold takes node as is, without descending into it."""
        return False

    def visit_bound(self, node: CircuitNode):
        raise NotImplementedError

    def fold(self, builder: 'CircuitBuilder', node: CircuitNode):
        """
        Visit the subtree below node, children before parents.

        A binary operation is visited with the results of its two operands.
        Runs on an explicit stack, so circuit depth is not limited by the
        interpreter's recursion limit.
        """
        results = []
        stack = [(node, False)]
        while stack:
            current, expanded = stack.pop()
            if expanded:
                rhs = results.pop()
                lhs = results.pop()
                results.append(self.visit(current, lhs, rhs))
            elif self.is_bound(current):
                results.append(self.visit_bound(current))
            elif current.is_binary_operation:
                stack.append((current, True))
                stack.append((builder.node(current.rhs), False))
                stack.append((builder.node(current.lhs), False))
            else:
                results.append(self.visit(current))
        return results.pop()

    def visit_b_constant(self, node: CircuitNode):
        raise NotImplementedError

    def visit_x_constant(self, node: CircuitNode):
        raise NotImplementedError

    def visit_input(self, node: CircuitNode):
        raise NotImplementedError

    def visit_challenge(self, node: CircuitNode):
        raise NotImplementedError

    def visit_binary_operation(self, node: CircuitNode, lhs, rhs):
        raise NotImplementedError


# =============================================================================
# Builder
# =============================================================================

Operand = Union['Circuit', BFieldElement, XFieldElement, int]


class CircuitBuilder:
    """
    Arena and hash-consing table for one circuit-building session.

    Node ids are issued monotonically starting at 0.
    """

    def __init__(self):
        self._nodes: List[CircuitNode] = []
        self._index: Dict[tuple, int] = {}

    def __len__(self) -> int:
        return len(self._nodes)

    def node(self, node_id: int) -> CircuitNode:
        """Look up a node by id."""
        return self._nodes[node_id]

    def _intern(self, key: tuple, make: Callable[[int], CircuitNode]) -> Circuit:
        existing = self._index.get(key)
        if existing is not None:
            self._nodes[existing].ref_count += 1
            return Circuit(self, existing)

        node_id = len(self._nodes)
        self._nodes.append(make(node_id))
        self._index[key] = node_id
        return Circuit(self, node_id)

    # =========================================================================
    # Leaves
    # =========================================================================

    def b_constant(self, value: Union[BFieldElement, int]) -> Circuit:
        value = value if isinstance(value, BFieldElement) else BFieldElement(value)
        key = (ExpressionKind.B_CONSTANT, value.value)
        return self._intern(key, lambda i: CircuitNode(
            id=i, kind=ExpressionKind.B_CONSTANT, degree=0, is_base=True, value=value,
        ))

    def x_constant(self, value: XFieldElement) -> Circuit:
        key = (ExpressionKind.X_CONSTANT, value.coefficients)
        return self._intern(key, lambda i: CircuitNode(
            id=i, kind=ExpressionKind.X_CONSTANT, degree=0, is_base=False, value=value,
        ))

    def input(self, indicator: InputIndicator) -> Circuit:
        key = (ExpressionKind.INPUT, indicator)
        return self._intern(key, lambda i: CircuitNode(
            id=i, kind=ExpressionKind.INPUT, degree=1,
            is_base=indicator.is_main_table_column, value=indicator,
        ))

    def current_main(self, column: int) -> Circuit:
        return self.input(InputIndicator(Row.CURRENT, Table.MAIN, column))

    def current_aux(self, column: int) -> Circuit:
        return self.input(InputIndicator(Row.CURRENT, Table.AUX, column))

    def next_main(self, column: int) -> Circuit:
        return self.input(InputIndicator(Row.NEXT, Table.MAIN, column))

    def next_aux(self, column: int) -> Circuit:
        return self.input(InputIndicator(Row.NEXT, Table.AUX, column))

    def challenge(self, index: int) -> Circuit:
        key = (ExpressionKind.CHALLENGE, index)
        return self._intern(key, lambda i: CircuitNode(
            id=i, kind=ExpressionKind.CHALLENGE, degree=1, is_base=False, value=index,
        ))

    def zero(self) -> Circuit:
        return self.b_constant(0)

    def one(self) -> Circuit:
        return self.b_constant(1)

    def minus_one(self) -> Circuit:
        return self.b_constant(-1)

    def constant(self, value: Operand) -> Circuit:
        """Coerce a circuit or a field value into a circuit of this builder."""
        if isinstance(value, Circuit):
            if value.builder is not self:
                raise ValueError("Cannot combine circuits of different builders")
            return value
        if isinstance(value, XFieldElement):
            return self.x_constant(value)
        if isinstance(value, (BFieldElement, int)):
            return self.b_constant(value)
        raise TypeError(f"Cannot convert {type(value)} to a circuit")

    # =========================================================================
    # Binary operations
    # =========================================================================

    def binop(self, op: BinOp, lhs: Operand, rhs: Operand) -> Circuit:
        """
        Combine two circuits.

        Constants are folded. Since both operators are commutative, the
        hash-consing table is consulted with both operand orders.
        """
        lhs = self.constant(lhs)
        rhs = self.constant(rhs)
        left, right = lhs.node, rhs.node

        if _is_constant(left) and _is_constant(right):
            folded = op.apply(left.value, right.value)
            if isinstance(folded, XFieldElement):
                return self.x_constant(folded)
            return self.b_constant(folded)

        swapped_key = (ExpressionKind.BINARY_OPERATION, op, right.id, left.id)
        if swapped_key in self._index:
            return self._intern(swapped_key, None)

        if op is BinOp.ADD:
            degree = max(left.degree, right.degree)
        else:
            degree = left.degree + right.degree

        key = (ExpressionKind.BINARY_OPERATION, op, left.id, right.id)
        return self._intern(key, lambda i: CircuitNode(
            id=i, kind=ExpressionKind.BINARY_OPERATION, degree=degree,
            is_base=left.is_base and right.is_base, op=op, lhs=left.id, rhs=right.id,
        ))

    def sum(self, summands: Sequence[Operand]) -> Circuit:
        result = self.zero()
        for summand in summands:
            result = result + summand
        return result

    def product(self, factors: Sequence[Operand]) -> Circuit:
        result = self.one()
        for factor in factors:
            result = result * factor
        return result

    # =========================================================================
    # Rewriting
    # =========================================================================

    def substitute(
        self,
        roots: Sequence[Circuit],
        node_id: int,
        replacement: Circuit,
    ) -> List[Circuit]:
        """
        Rebuild roots with every occurrence of node_id replaced.

        Subtrees not containing the node keep their ids.
        """
        memo: Dict[int, Circuit] = {node_id: replacement}

        for root in roots:
            stack = [(root.id, False)]
            while stack:
                current_id, expanded = stack.pop()
                if current_id in memo:
                    continue
                node = self._nodes[current_id]
                if not node.is_binary_operation:
                    memo[current_id] = Circuit(self, current_id)
                elif not expanded:
                    stack.append((current_id, True))
                    stack.append((node.rhs, False))
                    stack.append((node.lhs, False))
                else:
                    lhs = memo[node.lhs]
                    rhs = memo[node.rhs]
                    if lhs.id == node.lhs and rhs.id == node.rhs:
                        memo[current_id] = Circuit(self, current_id)
                    else:
                        memo[current_id] = self.binop(node.op, lhs, rhs)

        return [memo[root.id] for root in roots]


def _is_constant(node: CircuitNode) -> bool:
    return node.kind in (ExpressionKind.B_CONSTANT, ExpressionKind.X_CONSTANT)


# =============================================================================
# Circuit handles
# =============================================================================

class Circuit:
    """
    Handle to a node of a CircuitBuilder, with arithmetic operators.

    Two handles are equal iff they refer to the same node of the same builder.
    """

    __slots__ = ('builder', 'id')

    def __init__(self, builder: CircuitBuilder, node_id: int):
        self.builder = builder
        self.id = node_id

    @property
    def node(self) -> CircuitNode:
        return self.builder.node(self.id)

    @property
    def kind(self) -> ExpressionKind:
        return self.node.kind

    @property
    def degree(self) -> int:
        return self.node.degree

    @property
    def ref_count(self) -> int:
        return self.node.ref_count

    def evaluates_to_base_element(self) -> bool:
        return self.node.is_base

    def children(self) -> Tuple[Circuit, ...]:
        return tuple(Circuit(self.builder, child) for child in self.node.children())

    def walk(self) -> Iterator[CircuitNode]:
        """Yield every distinct node of this circuit once, children first."""
        seen = set()
        stack = [(self.id, False)]
        while stack:
            node_id, expanded = stack.pop()
            if node_id in seen:
                continue
            node = self.builder.node(node_id)
            if expanded or not node.is_binary_operation:
                seen.add(node_id)
                yield node
                continue
            stack.append((node_id, True))
            stack.append((node.rhs, False))
            stack.append((node.lhs, False))

    def references_next_row(self) -> bool:
        return any(
            node.kind is ExpressionKind.INPUT and not node.value.is_current_row
            for node in self.walk()
        )

    # =========================================================================
    # Operators
    # =========================================================================

    def __add__(self, other: Operand) -> Circuit:
        return self.builder.binop(BinOp.ADD, self, other)

    def __radd__(self, other: Operand) -> Circuit:
        return self.builder.binop(BinOp.ADD, other, self)

    def __mul__(self, other: Operand) -> Circuit:
        return self.builder.binop(BinOp.MUL, self, other)

    def __rmul__(self, other: Operand) -> Circuit:
        return self.builder.binop(BinOp.MUL, other, self)

    def __neg__(self) -> Circuit:
        return self.builder.binop(BinOp.MUL, self.builder.minus_one(), self)

    def __sub__(self, other: Operand) -> Circuit:
        return self + (-self.builder.constant(other))

    def __rsub__(self, other: Operand) -> Circuit:
        return self.builder.constant(other) + (-self)

    def __pow__(self, exponent: int) -> Circuit:
        if not isinstance(exponent, int) or exponent < 1:
            raise ValueError(f"Exponent must be a positive integer, got {exponent!r}")
        result = self
        for _ in range(exponent - 1):
            result = result * self
        return result

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Circuit):
            return self.builder is other.builder and self.id == other.id
        return False

    def __hash__(self) -> int:
        return hash((id(self.builder), self.id))

    def __repr__(self) -> str:
        return f"Circuit(id={self.id}, {self})"

    def __str__(self) -> str:
        return _to_string(self.builder, self.id)


def _leaf_to_string(node: CircuitNode) -> str:
    if node.kind is ExpressionKind.CHALLENGE:
        return f"challenges[{node.value}]"
    return str(node.value)


def _to_string(builder: CircuitBuilder, node_id: int) -> str:
    parts: List[str] = []
    stack = [(builder.node(node_id), False)]
    while stack:
        node, expanded = stack.pop()
        if expanded:
            rhs = parts.pop()
            lhs = parts.pop()
            parts.append(f"({lhs}) {node.op.value} ({rhs})")
        elif node.is_binary_operation:
            stack.append((node, True))
            stack.append((builder.node(node.rhs), False))
            stack.append((builder.node(node.lhs), False))
        else:
            parts.append(_leaf_to_string(node))
    return parts.pop()
