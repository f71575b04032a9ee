"""
Example Constraint Sets

mini_constraints:
    A Fibonacci AIR with a running evaluation over the main columns. Every
    constraint has degree <= 2; degree lowering leaves it unchanged.

test_constraints:
    A synthetic AIR exercising every node kind and every lowering path:
    monomials just above the target degree, chains of substitutions,
    extension-typed subexpressions, and subexpressions shared across
    constraints and buckets.

Both are factory functions returning a fresh ConstraintSet built with a
fresh CircuitBuilder, so that repeated calls are independent.
"""

from .circuit import CircuitBuilder
from .constraints import ConstraintSet, TableShape
from .field import XFieldElement


def mini_constraints() -> ConstraintSet:
    """
    Main columns: a, b. Aux column: running evaluation e.

    e_0 = a_0,  e' = challenge_0 * e + a'
    """
    builder = CircuitBuilder()
    a, b = builder.current_main(0), builder.current_main(1)
    a_next, b_next = builder.next_main(0), builder.next_main(1)
    e, e_next = builder.current_aux(0), builder.next_aux(0)
    indeterminate = builder.challenge(0)

    return ConstraintSet(
        builder=builder,
        shape=TableShape(num_main_columns=2, num_aux_columns=1, num_challenges=1),
        init=[a - 1, b - 1, e - a],
        cons=[],
        tran=[
            a_next - b,
            b_next - (a + b),
            e_next - (indeterminate * e + a_next),
        ],
        term=[],
    )


def test_constraints() -> ConstraintSet:
    builder = CircuitBuilder()
    main = [builder.current_main(i) for i in range(4)]
    aux = [builder.current_aux(i) for i in range(2)]
    next_main = [builder.next_main(i) for i in range(4)]
    next_aux = [builder.next_aux(i) for i in range(2)]
    challenges = [builder.challenge(i) for i in range(3)]
    x = XFieldElement((2, 3, 5))

    shared_square = (main[0] + main[1]) * (main[0] + main[1])

    init = [
        main[0] - 1,
        main[1] ** 5 - main[2],
        aux[0] - challenges[0] * main[0],
    ]
    cons = [
        main[0] * main[1] * main[2] * main[3] * (main[0] + main[1]),
        x * aux[1] * main[0] ** 3,
        (main[2] - 1) ** 6,
        shared_square * shared_square + shared_square,
    ]
    tran = [
        next_main[0] - main[0] * main[1] * main[2] * main[3] * main[0],
        next_aux[0] - aux[0] * challenges[1] * (main[0] + next_main[1]) ** 3,
        next_aux[1] - aux[1] - challenges[2] * next_main[3],
        next_main[2] * shared_square,
    ]
    term = [
        main[3] ** 4 * challenges[2] - aux[1],
        shared_square * main[3] - x,
    ]

    return ConstraintSet(
        builder=builder,
        shape=TableShape(num_main_columns=4, num_aux_columns=2, num_challenges=3),
        init=init,
        cons=cons,
        tran=tran,
        term=term,
    )


# not a pytest test function
test_constraints.__test__ = False
