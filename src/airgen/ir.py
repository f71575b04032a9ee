"""
Evaluation IR

Target-independent representation of constraint evaluation code. The native
backend lowers circuits into this IR; renderers turn it into source text and
the interpreter below evaluates it directly.

An expression is one of:
- Constant:     a base or extension field constant
- RowElement:   a cell of the current or next row of the main or aux table
- ChallengeRef: a verifier challenge
- NodeRef:      a previously bound shared node
- Operation:    sum or product of two expressions
"""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Union

from .circuit import BinOp, Row, Table
from .field import FieldElement, XFieldElement


@dataclass(frozen=True)
class Constant:
    value: FieldElement


@dataclass(frozen=True)
class RowElement:
    row: Row
    table: Table
    column: int


@dataclass(frozen=True)
class ChallengeRef:
    index: int


@dataclass(frozen=True)
class NodeRef:
    node_id: int


@dataclass(frozen=True)
class Operation:
    op: BinOp
    lhs: 'Expr'
    rhs: 'Expr'


Expr = Union[Constant, RowElement, ChallengeRef, NodeRef, Operation]


@dataclass(frozen=True)
class Binding:
    """A shared node, evaluated once and referenced by NodeRef afterwards."""
    node_id: int
    expr: Expr
    is_base: bool


@dataclass
class EvaluationEnvironment:
    """
    Values the IR is evaluated against.

    Rows and challenges are sequences indexed by column / challenge index.
    next_* rows are only needed for transition constraints.
    """
    current_main_row: Sequence[FieldElement]
    current_aux_row: Sequence[XFieldElement]
    challenges: Sequence[XFieldElement]
    next_main_row: Sequence[FieldElement] = ()
    next_aux_row: Sequence[XFieldElement] = ()
    bound: Dict[int, FieldElement] = field(default_factory=dict)

    def row(self, row: Row, table: Table) -> Sequence[FieldElement]:
        if row is Row.CURRENT:
            return self.current_main_row if table is Table.MAIN else self.current_aux_row
        return self.next_main_row if table is Table.MAIN else self.next_aux_row


def _evaluate_leaf(expr: Expr, env: EvaluationEnvironment) -> FieldElement:
    if isinstance(expr, Constant):
        return expr.value
    if isinstance(expr, RowElement):
        return env.row(expr.row, expr.table)[expr.column]
    if isinstance(expr, ChallengeRef):
        return env.challenges[expr.index]
    if isinstance(expr, NodeRef):
        return env.bound[expr.node_id]
    raise TypeError(f"Unknown expression: {expr!r}")


def evaluate(expr: Expr, env: EvaluationEnvironment) -> FieldElement:
    """Evaluate one expression, operands first, on an explicit stack."""
    values: List[FieldElement] = []
    stack = [(expr, False)]
    while stack:
        current, expanded = stack.pop()
        if expanded:
            rhs = values.pop()
            lhs = values.pop()
            values.append(current.op.apply(lhs, rhs))
        elif isinstance(current, Operation):
            stack.append((current, True))
            stack.append((current.rhs, False))
            stack.append((current.lhs, False))
        else:
            values.append(_evaluate_leaf(current, env))
    return values.pop()


def bind_all(bindings: Sequence[Binding], env: EvaluationEnvironment) -> None:
    """Evaluate bindings in order, making them available to later expressions."""
    for binding in bindings:
        env.bound[binding.node_id] = evaluate(binding.expr, env)


def evaluate_all(
    bindings: Sequence[Binding],
    outputs: Sequence[Expr],
    env: EvaluationEnvironment,
) -> List[XFieldElement]:
    """Bind shared nodes, then evaluate every output as an extension element."""
    bind_all(bindings, env)
    return [evaluate(output, env).lift() for output in outputs]
