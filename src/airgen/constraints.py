"""
AIR Constraints (Algebraic Intermediate Representation)

A ConstraintSet holds the constraint circuits of an AIR, partitioned by role:

1. Initial:     hold on the first row only
2. Consistency: hold on every row, current row only
3. Transition:  relate every row to its successor
4. Terminal:    hold on the last row only

Order within a bucket is significant: downstream consumers index evaluated
constraints positionally. Degree lowering only ever appends.
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List

from .circuit import Circuit, CircuitBuilder
from .degree_lowering import (
    DegreeLoweringInfo,
    LoweredBucket,
    SubstitutionRule,
    lower_to_degree,
)


logger = logging.getLogger(__name__)


class ConstraintType(Enum):
    """Constraint buckets, in their canonical processing order."""
    INITIAL = 'initial'
    CONSISTENCY = 'consistency'
    TRANSITION = 'transition'
    TERMINAL = 'terminal'

    @property
    def is_dual_row(self) -> bool:
        """Whether constraints of this type may reference the next row."""
        return self is ConstraintType.TRANSITION

    def zerofier_degree(self, padded_height: int) -> int:
        """Degree of the polynomial vanishing where this constraint type must hold."""
        if self is ConstraintType.CONSISTENCY:
            return padded_height
        if self is ConstraintType.TRANSITION:
            return padded_height - 1
        return 1


@dataclass(frozen=True)
class TableShape:
    """Number of columns per table and number of challenges."""
    num_main_columns: int
    num_aux_columns: int
    num_challenges: int


@dataclass
class Substitutions:
    """Substitution rules of all four buckets for one table."""
    init: List[SubstitutionRule] = field(default_factory=list)
    cons: List[SubstitutionRule] = field(default_factory=list)
    tran: List[SubstitutionRule] = field(default_factory=list)
    term: List[SubstitutionRule] = field(default_factory=list)

    def of_type(self, constraint_type: ConstraintType) -> List[SubstitutionRule]:
        return {
            ConstraintType.INITIAL: self.init,
            ConstraintType.CONSISTENCY: self.cons,
            ConstraintType.TRANSITION: self.tran,
            ConstraintType.TERMINAL: self.term,
        }[constraint_type]

    def __len__(self) -> int:
        return len(self.init) + len(self.cons) + len(self.tran) + len(self.term)


@dataclass
class AllSubstitutions:
    """Main table and aux table substitutions, plus the lowering target."""
    main: Substitutions = field(default_factory=Substitutions)
    aux: Substitutions = field(default_factory=Substitutions)
    target_degree: int = 0


@dataclass
class ConstraintSet:
    """
    The four constraint buckets of an AIR, built with one CircuitBuilder.

    Fields:
    - builder: Owner of all nodes
    - shape: Column and challenge counts the constraints are written against
    - init, cons, tran, term: Constraint buckets
    """
    builder: CircuitBuilder
    shape: TableShape
    init: List[Circuit] = field(default_factory=list)
    cons: List[Circuit] = field(default_factory=list)
    tran: List[Circuit] = field(default_factory=list)
    term: List[Circuit] = field(default_factory=list)

    def of_type(self, constraint_type: ConstraintType) -> List[Circuit]:
        return {
            ConstraintType.INITIAL: self.init,
            ConstraintType.CONSISTENCY: self.cons,
            ConstraintType.TRANSITION: self.tran,
            ConstraintType.TERMINAL: self.term,
        }[constraint_type]

    def buckets(self) -> Dict[ConstraintType, List[Circuit]]:
        return {constraint_type: self.of_type(constraint_type) for constraint_type in ConstraintType}

    @property
    def num_constraints(self) -> int:
        return sum(len(bucket) for bucket in self.buckets().values())

    def validate(self) -> None:
        """
        Check builder ownership and row usage of all constraints.

        Raises ValueError for a foreign circuit, or for a single-row
        constraint that references the next row.
        """
        for constraint_type, bucket in self.buckets().items():
            for index, constraint in enumerate(bucket):
                if constraint.builder is not self.builder:
                    raise ValueError(
                        f"{constraint_type.value} constraint {index} belongs to another builder"
                    )
                if not constraint_type.is_dual_row and constraint.references_next_row():
                    raise ValueError(
                        f"{constraint_type.value} constraint {index} references the next row"
                    )

    # =========================================================================
    # Degree lowering
    # =========================================================================

    def lower_to_target_degree_through_substitutions(self, target_degree: int) -> AllSubstitutions:
        """
        Lower every bucket to the target degree, in canonical bucket order.

        Column counts thread through the buckets, so transition substitutions
        are numbered after consistency substitutions, and so on. The buckets
        are replaced by their lowered versions; the substitution rules are
        returned and not yet part of the buckets.
        """
        self.validate()
        info = DegreeLoweringInfo(
            target_degree=target_degree,
            num_main_cols=self.shape.num_main_columns,
            num_aux_cols=self.shape.num_aux_columns,
        )
        substitutions = AllSubstitutions(target_degree=target_degree)

        for constraint_type in ConstraintType:
            lowered: LoweredBucket = lower_to_degree(self.of_type(constraint_type), info)
            self.of_type(constraint_type)[:] = lowered.constraints
            substitutions.main.of_type(constraint_type).extend(lowered.main_rules)
            substitutions.aux.of_type(constraint_type).extend(lowered.aux_rules)
            info = replace(
                info,
                num_main_cols=info.num_main_cols + len(lowered.main_rules),
                num_aux_cols=info.num_aux_cols + len(lowered.aux_rules),
            )
            logger.debug(
                "lowered %s constraints: %d main and %d aux substitutions",
                constraint_type.value, len(lowered.main_rules), len(lowered.aux_rules),
            )

        logger.info(
            "degree lowering to %d added %d main and %d aux columns",
            target_degree, len(substitutions.main), len(substitutions.aux),
        )
        return substitutions

    def combine_with_substitution_induced_constraints(
        self, substitutions: AllSubstitutions
    ) -> 'ConstraintSet':
        """Append every bucket's main rules, then its aux rules, and widen the shape."""
        def combined(constraint_type: ConstraintType) -> List[Circuit]:
            return (
                list(self.of_type(constraint_type))
                + [rule.constraint for rule in substitutions.main.of_type(constraint_type)]
                + [rule.constraint for rule in substitutions.aux.of_type(constraint_type)]
            )

        shape = TableShape(
            num_main_columns=self.shape.num_main_columns + len(substitutions.main),
            num_aux_columns=self.shape.num_aux_columns + len(substitutions.aux),
            num_challenges=self.shape.num_challenges,
        )
        return ConstraintSet(
            builder=self.builder,
            shape=shape,
            init=combined(ConstraintType.INITIAL),
            cons=combined(ConstraintType.CONSISTENCY),
            tran=combined(ConstraintType.TRANSITION),
            term=combined(ConstraintType.TERMINAL),
        )
