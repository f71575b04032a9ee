"""
Hypothesis strategies shared by the property-based tests.

Constraint sets are drawn as recipes (plain data) and built by build_constraint_set,
so that the same recipe can be built twice with two fresh builders.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from hypothesis import strategies as st
from hypothesis.strategies import composite

from airgen.circuit import Circuit, CircuitBuilder
from airgen.constraints import ConstraintSet, ConstraintType, TableShape
from airgen.field import GOLDILOCKS_PRIME, BFieldElement, XFieldElement


NUM_MAIN_COLUMNS = 3
NUM_AUX_COLUMNS = 2
NUM_CHALLENGES = 2

SHAPE = TableShape(NUM_MAIN_COLUMNS, NUM_AUX_COLUMNS, NUM_CHALLENGES)

field_ints = st.integers(min_value=0, max_value=GOLDILOCKS_PRIME - 1)
small_ints = st.integers(min_value=0, max_value=20)


@st.composite
def bfield_elements(draw):
    return BFieldElement(draw(st.one_of(small_ints, field_ints)))


@st.composite
def xfield_elements(draw):
    return XFieldElement(draw(st.tuples(field_ints, field_ints, field_ints)))


# =============================================================================
# CONSTRAINT SET RECIPES
# =============================================================================

Operation = Tuple[str, int, int]


@dataclass
class Recipe:
    """Plain-data description of a constraint set."""
    b_constant: int
    x_constant: Tuple[int, int, int]
    buckets: Dict[ConstraintType, Tuple[List[Operation], int]] = field(default_factory=dict)


def _leaves(builder: CircuitBuilder, recipe: Recipe, dual_row: bool) -> List[Circuit]:
    leaves = [builder.current_main(i) for i in range(NUM_MAIN_COLUMNS)]
    leaves += [builder.current_aux(i) for i in range(NUM_AUX_COLUMNS)]
    leaves += [builder.challenge(i) for i in range(NUM_CHALLENGES)]
    leaves += [builder.b_constant(recipe.b_constant), builder.x_constant(XFieldElement(recipe.x_constant))]
    if dual_row:
        leaves += [builder.next_main(i) for i in range(NUM_MAIN_COLUMNS)]
        leaves += [builder.next_aux(i) for i in range(NUM_AUX_COLUMNS)]
    return leaves


def _num_leaves(dual_row: bool) -> int:
    single = NUM_MAIN_COLUMNS + NUM_AUX_COLUMNS + NUM_CHALLENGES + 2
    return single + NUM_MAIN_COLUMNS + NUM_AUX_COLUMNS if dual_row else single


def build_constraint_set(recipe: Recipe) -> ConstraintSet:
    builder = CircuitBuilder()
    constraint_set = ConstraintSet(builder=builder, shape=SHAPE)
    for constraint_type in ConstraintType:
        operations, num_outputs = recipe.buckets.get(constraint_type, ([], 0))
        pool = _leaves(builder, recipe, constraint_type.is_dual_row)
        for op, i, j in operations:
            lhs, rhs = pool[i], pool[j]
            if op == '+':
                pool.append(lhs + rhs)
            elif op == '-':
                pool.append(lhs - rhs)
            else:
                pool.append(lhs * rhs)
        if num_outputs:
            constraint_set.of_type(constraint_type).extend(pool[-num_outputs:])
    return constraint_set


@composite
def bucket_recipes(draw, dual_row: bool, max_operations: int = 8):
    if draw(st.integers(min_value=0, max_value=4)) == 0:
        return [], 0
    num_operations = draw(st.integers(min_value=1, max_value=max_operations))
    pool_size = _num_leaves(dual_row)
    operations = []
    for _ in range(num_operations):
        op = draw(st.sampled_from(['+', '-', '*', '*']))
        i = draw(st.integers(min_value=0, max_value=pool_size - 1))
        j = draw(st.integers(min_value=0, max_value=pool_size - 1))
        operations.append((op, i, j))
        pool_size += 1
    num_outputs = draw(st.integers(min_value=1, max_value=min(3, num_operations)))
    return operations, num_outputs


@composite
def recipes(draw, max_operations: int = 8):
    recipe = Recipe(
        b_constant=draw(st.one_of(small_ints, field_ints)),
        x_constant=draw(st.tuples(field_ints, field_ints, field_ints)),
    )
    for constraint_type in ConstraintType:
        recipe.buckets[constraint_type] = draw(
            bucket_recipes(constraint_type.is_dual_row, max_operations)
        )
    return recipe


@composite
def constraint_sets(draw, max_operations: int = 8):
    return build_constraint_set(draw(recipes(max_operations)))


# =============================================================================
# ROWS
# =============================================================================

@composite
def rows(draw, num_main_columns: int, num_aux_columns: int, num_challenges: int):
    """current main, current aux, next main, next aux, challenges."""
    main = st.lists(bfield_elements(), min_size=num_main_columns, max_size=num_main_columns)
    aux = st.lists(xfield_elements(), min_size=num_aux_columns, max_size=num_aux_columns)
    challenges = st.lists(xfield_elements(), min_size=num_challenges, max_size=num_challenges)
    return draw(main), draw(aux), draw(main), draw(aux), draw(challenges)


def lift_all(elements: Sequence) -> List[XFieldElement]:
    return [element.lift() for element in elements]
