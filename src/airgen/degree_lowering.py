"""
Degree Lowering through Substitution

Rewrites a bucket of constraints such that every constraint has degree at
most a target degree D. A subexpression of moderate degree is replaced by a
reference to a fresh column, and a substitution rule

    new_column - subexpression = 0

is added. The rule is both a (degree <= D) constraint and the recipe for
filling the new column.

Node selection is deterministic: the first constraint of too high a degree,
in insertion order, is descended into. At a product of degree > D, the first
factor with 1 < degree <= D is picked; otherwise, and at every sum, the first
child of degree > D is descended into. Summands are never picked. Regenerating
with the same input yields the same columns.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .circuit import (
    BinOp,
    Circuit,
    CircuitBuilder,
    ExpressionKind,
    InputIndicator,
    Row,
    Table,
)
from .errors import CompilerInvariantError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DegreeLoweringInfo:
    """Target degree and the number of columns allocated so far."""
    target_degree: int
    num_main_cols: int
    num_aux_cols: int

    def __post_init__(self):
        if self.target_degree < 2:
            raise ValueError(f"Target degree must be > 1, got {self.target_degree}")


@dataclass
class SubstitutionRule:
    """
    A constraint of the shape `column - expression`.

    The column is always a current-row reference. The expression is the
    substituted subexpression, in terms of previously existing columns.
    """
    column: InputIndicator
    expression: Circuit
    constraint: Circuit

    @property
    def is_main(self) -> bool:
        return self.column.is_main_table_column

    @classmethod
    def from_constraint(cls, constraint: Circuit) -> 'SubstitutionRule':
        """
        Unwind `column + (-1) * expression` into its parts.

        Either operand order of both the sum and the product is accepted.
        """
        node = constraint.node
        if node.kind is not ExpressionKind.BINARY_OPERATION or node.op is not BinOp.ADD:
            raise CompilerInvariantError(f"Substitution rule must be a subtraction: {constraint}")

        for column, negated in (constraint.children(), reversed(constraint.children())):
            if column.kind is not ExpressionKind.INPUT:
                continue
            expression = _strip_negation(negated)
            if expression is not None:
                return cls(column=column.node.value, expression=expression, constraint=constraint)

        raise CompilerInvariantError(f"Substitution rule must be a subtraction: {constraint}")


def _strip_negation(circuit: Circuit) -> Optional[Circuit]:
    node = circuit.node
    if node.kind is not ExpressionKind.BINARY_OPERATION or node.op is not BinOp.MUL:
        return None
    lhs, rhs = circuit.children()
    if _is_minus_one(lhs):
        return rhs
    if _is_minus_one(rhs):
        return lhs
    return None


def _is_minus_one(circuit: Circuit) -> bool:
    return circuit.kind is ExpressionKind.B_CONSTANT and circuit.node.value == -1


@dataclass
class LoweredBucket:
    """
    Outcome of lowering one bucket.

    Fields:
    - constraints: The original constraints, now of degree <= target
    - main_rules: Substitution rules introducing main (base field) columns
    - aux_rules: Substitution rules introducing aux (extension field) columns
    """
    constraints: List[Circuit] = field(default_factory=list)
    main_rules: List[SubstitutionRule] = field(default_factory=list)
    aux_rules: List[SubstitutionRule] = field(default_factory=list)


def multicircuit_degree(constraints: Sequence[Circuit]) -> int:
    """Maximal degree of the slice, -1 for an empty slice."""
    return max((c.degree for c in constraints), default=-1)


def pick_node_to_substitute(constraints: Sequence[Circuit], target_degree: int) -> Circuit:
    """First-match selection of a factor of degree in (1, target_degree]."""
    too_high = next((c for c in constraints if c.degree > target_degree), None)
    if too_high is None:
        raise CompilerInvariantError("No constraint exceeds the target degree")

    current = too_high
    while True:
        children = current.children()
        # substituting a summand leaves the degree of the sum unchanged
        if current.node.op is BinOp.MUL:
            for child in children:
                if 1 < child.degree <= target_degree:
                    return child
        descend = next((child for child in children if child.degree > target_degree), None)
        if descend is None:
            raise CompilerInvariantError(f"Cannot lower degree of {too_high}")
        current = descend


def lower_to_degree(constraints: Sequence[Circuit], info: DegreeLoweringInfo) -> LoweredBucket:
    """
    Lower the degree of one bucket of constraints.

    New columns are numbered after info.num_main_cols and info.num_aux_cols.
    All constraints must belong to one builder.
    """
    result = LoweredBucket(constraints=list(constraints))
    if not constraints:
        return result

    builder: CircuitBuilder = constraints[0].builder
    target_degree = info.target_degree

    while multicircuit_degree(result.constraints) > target_degree:
        chosen = pick_node_to_substitute(result.constraints, target_degree)
        if chosen.evaluates_to_base_element():
            column = InputIndicator(
                Row.CURRENT, Table.MAIN, info.num_main_cols + len(result.main_rules)
            )
        else:
            column = InputIndicator(
                Row.CURRENT, Table.AUX, info.num_aux_cols + len(result.aux_rules)
            )
        new_variable = builder.input(column)
        result.constraints = builder.substitute(result.constraints, chosen.id, new_variable)

        # rules only ever reference columns introduced before them
        rule = SubstitutionRule.from_constraint(new_variable - chosen)
        if rule.constraint.degree > target_degree:
            raise CompilerInvariantError(
                f"Substitution rule for {column} has degree {rule.constraint.degree}"
            )
        if rule.column != column:
            raise CompilerInvariantError(f"Substitution rule for {column} unwound to {rule.column}")
        if column.is_main_table_column:
            result.main_rules.append(rule)
        else:
            result.aux_rules.append(rule)
        logger.debug(
            "substituted node %d of degree %d by %s", chosen.id, chosen.degree, column
        )

    return result
