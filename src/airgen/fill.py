"""
Degree Lowering Table

Columns introduced by degree lowering hold the value of the subexpression
they replaced. Every substitution rule `column - expression` doubles as the
recipe to fill that column:

- single-row rules (initial, consistency, terminal) are evaluated on every row
- transition rules are evaluated on every pair of consecutive rows and write
  into the first row of the pair; the last row is left untouched

Main columns are filled before aux columns, since aux rules may reference
derived main columns. Within a table, rules are applied in column order, so a
rule may reference any column introduced before it.
"""

import logging
from dataclasses import dataclass, field
from typing import List, MutableSequence, Sequence

from .constraints import AllSubstitutions, ConstraintType, TableShape
from .field import BFieldElement, XFieldElement
from .ir import EvaluationEnvironment, Expr, evaluate
from .native import lower_expression


logger = logging.getLogger(__name__)

Table = Sequence[MutableSequence]


@dataclass(frozen=True)
class FillRule:
    """Fills one derived column."""
    column: int
    constraint_type: ConstraintType
    expression: Expr

    @property
    def is_dual_row(self) -> bool:
        return self.constraint_type.is_dual_row


@dataclass
class DegreeLoweringTable:
    """
    Fill routines for all derived columns.

    Fields:
    - num_original_main_columns: Main columns before degree lowering
    - num_original_aux_columns: Aux columns before degree lowering
    - main_rules: Rules for derived main columns, in column order
    - aux_rules: Rules for derived aux columns, in column order
    """
    num_original_main_columns: int
    num_original_aux_columns: int
    main_rules: List[FillRule] = field(default_factory=list)
    aux_rules: List[FillRule] = field(default_factory=list)

    @classmethod
    def from_substitutions(
        cls, substitutions: AllSubstitutions, original_shape: TableShape
    ) -> 'DegreeLoweringTable':
        table = cls(
            num_original_main_columns=original_shape.num_main_columns,
            num_original_aux_columns=original_shape.num_aux_columns,
        )
        for constraint_type in ConstraintType:
            for rule in substitutions.main.of_type(constraint_type):
                table.main_rules.append(
                    FillRule(rule.column.column, constraint_type, lower_expression(rule.expression))
                )
            for rule in substitutions.aux.of_type(constraint_type):
                table.aux_rules.append(
                    FillRule(rule.column.column, constraint_type, lower_expression(rule.expression))
                )
        return table

    @property
    def num_main_columns(self) -> int:
        return self.num_original_main_columns + len(self.main_rules)

    @property
    def num_aux_columns(self) -> int:
        return self.num_original_aux_columns + len(self.aux_rules)

    # =========================================================================
    # Filling
    # =========================================================================

    def fill_derived_main_columns(self, main_table: Table) -> None:
        """Overwrite the derived columns of main_table in place."""
        _check_row_widths(main_table, self.num_main_columns, 'main')
        for rule in self.main_rules:
            for current, following in _row_windows(main_table, rule.is_dual_row):
                env = EvaluationEnvironment(
                    current_main_row=current,
                    current_aux_row=(),
                    challenges=(),
                    next_main_row=following,
                )
                current[rule.column] = _as_bfe(evaluate(rule.expression, env))
        logger.debug("filled %d derived main columns", len(self.main_rules))

    def fill_derived_aux_columns(
        self,
        main_table: Table,
        aux_table: Table,
        challenges: Sequence[XFieldElement],
    ) -> None:
        """Overwrite the derived columns of aux_table in place."""
        if len(main_table) != len(aux_table):
            raise ValueError(
                f"Main table has {len(main_table)} rows, aux table has {len(aux_table)}"
            )
        _check_row_widths(main_table, self.num_main_columns, 'main')
        _check_row_widths(aux_table, self.num_aux_columns, 'aux')

        for rule in self.aux_rules:
            pairs = zip(
                _row_windows(main_table, rule.is_dual_row),
                _row_windows(aux_table, rule.is_dual_row),
            )
            for (main_row, next_main_row), (aux_row, next_aux_row) in pairs:
                env = EvaluationEnvironment(
                    current_main_row=main_row,
                    current_aux_row=aux_row,
                    challenges=challenges,
                    next_main_row=next_main_row,
                    next_aux_row=next_aux_row,
                )
                aux_row[rule.column] = evaluate(rule.expression, env).lift()
        logger.debug("filled %d derived aux columns", len(self.aux_rules))


def _check_row_widths(table: Table, width: int, name: str) -> None:
    for index, row in enumerate(table):
        if len(row) != width:
            raise ValueError(f"Row {index} of the {name} table has {len(row)} columns, expected {width}")


def _row_windows(table: Table, dual_row: bool):
    if dual_row:
        return zip(table, table[1:])
    return ((row, ()) for row in table)


def _as_bfe(value) -> BFieldElement:
    if isinstance(value, XFieldElement):
        return value.unlift()
    return value
