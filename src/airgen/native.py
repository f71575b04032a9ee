"""
Native Backend

Lowers every constraint bucket into the evaluation IR:

    shared bindings (in sharing-plan order)
    base-typed constraints, in bucket order
    extension-typed constraints, in bucket order

and records, in the same order, the degree of every constraint. The degree
bound of a constraint of degree d is

    interpolant_degree * d - zerofier_degree

where the zerofier degree depends on the bucket and on the padded trace
height, both known only at evaluation time.

Evaluated constraints are always reported over the extension field. Two
entry points exist per bucket: one for main rows over the base field, one for
main rows over the extension field.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from .circuit import Circuit, CircuitNode, CircuitVisitor, CircuitBuilder
from .constraints import ConstraintSet, ConstraintType
from .field import XFieldElement
from .ir import (
    Binding,
    ChallengeRef,
    Constant,
    EvaluationEnvironment,
    Expr,
    NodeRef,
    Operation,
    RowElement,
    evaluate_all,
)
from .sharing import EmissionScope, SharingPlan, plan_shared_declarations


logger = logging.getLogger(__name__)


@dataclass
class BucketEvaluation:
    """
    Evaluation code of one constraint bucket.

    The output order, base-typed constraints first, is the order of both the
    evaluated values and the degree bounds.
    """
    constraint_type: ConstraintType
    bindings: List[Binding] = field(default_factory=list)
    base_constraints: List[Expr] = field(default_factory=list)
    ext_constraints: List[Expr] = field(default_factory=list)
    base_degrees: List[int] = field(default_factory=list)
    ext_degrees: List[int] = field(default_factory=list)

    @property
    def num_constraints(self) -> int:
        return len(self.base_constraints) + len(self.ext_constraints)

    @property
    def outputs(self) -> List[Expr]:
        return self.base_constraints + self.ext_constraints

    @property
    def degrees(self) -> List[int]:
        return self.base_degrees + self.ext_degrees

    def degree_bounds(self, interpolant_degree: int, padded_height: int) -> List[int]:
        zerofier_degree = self.constraint_type.zerofier_degree(padded_height)
        return [interpolant_degree * degree - zerofier_degree for degree in self.degrees]

    def evaluate(
        self,
        main_row: Sequence,
        aux_row: Sequence[XFieldElement],
        challenges: Sequence[XFieldElement],
        next_main_row: Sequence = (),
        next_aux_row: Sequence[XFieldElement] = (),
    ) -> List[XFieldElement]:
        """
        Interpret the evaluation code.

        main_row may hold base or extension field elements; for transition
        constraints the rows passed first are the current rows.
        """
        env = EvaluationEnvironment(
            current_main_row=main_row,
            current_aux_row=aux_row,
            challenges=challenges,
            next_main_row=next_main_row,
            next_aux_row=next_aux_row,
        )
        return evaluate_all(self.bindings, self.outputs, env)


class _ExpressionLowering(CircuitVisitor):
    """Turns one node into IR, referring to nodes already in scope."""

    def __init__(self, builder: CircuitBuilder, scope: EmissionScope):
        self.builder = builder
        self.scope = scope

    def lower(self, node: CircuitNode) -> Expr:
        return self.fold(self.builder, node)

    def is_bound(self, node):
        return node.id in self.scope

    def visit_bound(self, node):
        return NodeRef(node.id)

    def visit_b_constant(self, node):
        return Constant(node.value)

    def visit_x_constant(self, node):
        return Constant(node.value)

    def visit_input(self, node):
        indicator = node.value
        return RowElement(indicator.row, indicator.table, indicator.column)

    def visit_challenge(self, node):
        return ChallengeRef(node.value)

    def visit_binary_operation(self, node, lhs, rhs):
        return Operation(node.op, lhs, rhs)


def lower_expression(circuit: Circuit) -> Expr:
    """IR of a single circuit, fully inlined."""
    return _ExpressionLowering(circuit.builder, EmissionScope()).lower(circuit.node)


class NativeBackend:
    """Generates evaluation IR for all four buckets of a constraint set."""

    def bucket_evaluation(
        self,
        constraint_type: ConstraintType,
        constraints: Sequence[Circuit],
    ) -> BucketEvaluation:
        result = BucketEvaluation(constraint_type=constraint_type)
        if not constraints:
            return result

        builder = constraints[0].builder
        plan: SharingPlan = plan_shared_declarations(constraints)
        scope = EmissionScope()
        lowering = _ExpressionLowering(builder, scope)

        for node_id in plan.declaration_order:
            node = builder.node(node_id)
            result.bindings.append(Binding(node_id, lowering.lower(node), node.is_base))
            scope.declare(node_id)

        for constraint in constraints:
            expr = lowering.lower(constraint.node)
            if constraint.evaluates_to_base_element():
                result.base_constraints.append(expr)
                result.base_degrees.append(constraint.degree)
            else:
                result.ext_constraints.append(expr)
                result.ext_degrees.append(constraint.degree)

        logger.debug(
            "%s: %d shared bindings, %d base and %d ext constraints",
            constraint_type.value, len(result.bindings),
            len(result.base_constraints), len(result.ext_constraints),
        )
        return result

    def constraint_evaluation_code(self, constraints: ConstraintSet) -> 'NativeCode':
        buckets = {
            constraint_type: self.bucket_evaluation(constraint_type, bucket)
            for constraint_type, bucket in constraints.buckets().items()
        }
        return NativeCode(buckets=buckets)


@dataclass
class NativeCode:
    """Evaluation IR of all buckets, in canonical bucket order."""
    buckets: Dict[ConstraintType, BucketEvaluation]

    def bucket(self, constraint_type: ConstraintType) -> BucketEvaluation:
        return self.buckets[constraint_type]

    @property
    def num_constraints(self) -> int:
        return sum(bucket.num_constraints for bucket in self.buckets.values())

    def evaluate_all_constraints(
        self,
        current_main_row: Sequence,
        current_aux_row: Sequence[XFieldElement],
        next_main_row: Sequence,
        next_aux_row: Sequence[XFieldElement],
        challenges: Sequence[XFieldElement],
    ) -> List[XFieldElement]:
        """Concatenated evaluations of initial, consistency, transition, terminal."""
        values: List[XFieldElement] = []
        for constraint_type in ConstraintType:
            bucket = self.buckets[constraint_type]
            if constraint_type.is_dual_row:
                values += bucket.evaluate(
                    current_main_row, current_aux_row, challenges, next_main_row, next_aux_row
                )
            else:
                values += bucket.evaluate(current_main_row, current_aux_row, challenges)
        return values
