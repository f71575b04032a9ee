"""
Tests for reference counting and the binding order of shared nodes.
"""

import pytest
from hypothesis import given, settings

from airgen import airs
from airgen.circuit import CircuitBuilder
from airgen.constraints import ConstraintType
from airgen.errors import CompilerInvariantError
from airgen.sharing import (
    EmissionScope,
    assert_unique_ids,
    plan_shared_declarations,
    reference_counts,
)

from strategies import constraint_sets


class TestReferenceCounts:
    """Counts are numbers of root-to-node paths."""

    def test_square_of_sum(self):
        """In (a+b)*(a+b), a+b is referenced twice."""
        builder = CircuitBuilder()
        a, b = builder.current_main(0), builder.current_main(1)
        s = a + b
        c = (a + b) * (a + b)

        counts = reference_counts([c])
        assert counts[s.id] == 2
        assert counts[c.id] == 1
        assert counts[a.id] == 2
        assert c.degree == 2

    def test_repeat_visits_counted(self):
        """A node reached through two shared parents counts every path."""
        builder = CircuitBuilder()
        a, b = builder.current_main(0), builder.current_main(1)
        s = a + b
        t = s * s
        root = t * t

        counts = reference_counts([root])
        assert counts[t.id] == 2
        assert counts[s.id] == 4
        assert counts[a.id] == 4

    def test_counts_aggregate_over_slice(self):
        builder = CircuitBuilder()
        a, b = builder.current_main(0), builder.current_main(1)
        s = a * b
        counts = reference_counts([s + 1, s + 2, s])
        assert counts[s.id] == 3

    def test_empty_slice(self):
        assert reference_counts([]) == {}


class TestSharingPlan:

    def test_square_of_sum_binds_sum(self):
        builder = CircuitBuilder()
        a, b = builder.current_main(0), builder.current_main(1)
        s = a + b
        plan = plan_shared_declarations([s * s])
        assert plan.declaration_order == [s.id]

    def test_leaves_never_bound(self):
        builder = CircuitBuilder()
        a = builder.current_main(0)
        plan = plan_shared_declarations([a * a, a + 1])
        assert plan.declaration_order == []

    def test_children_bound_before_parents(self):
        """At equal counts, children come first."""
        builder = CircuitBuilder()
        a, b = builder.current_main(0), builder.current_main(1)
        s = a + b
        t = s * a
        plan = plan_shared_declarations([t, t])
        assert plan.declaration_order == [s.id, t.id]

    def test_higher_count_first(self):
        builder = CircuitBuilder()
        a, b = builder.current_main(0), builder.current_main(1)
        s = a + b
        t = s * s
        plan = plan_shared_declarations([t * t])
        assert plan.declaration_order == [s.id, t.id]
        assert plan.shared_nodes == {s.id, t.id}

    def test_mixed_builders_rejected(self):
        first = CircuitBuilder()
        second = CircuitBuilder()
        x = first.current_main(0) * first.current_main(1)
        y = second.current_aux(0) * second.current_aux(1)
        with pytest.raises(CompilerInvariantError):
            assert_unique_ids([x, y])
        with pytest.raises(CompilerInvariantError):
            plan_shared_declarations([x, y])

    def test_bundled_air(self):
        constraints = airs.test_constraints()
        for constraint_type in ConstraintType:
            plan_shared_declarations(constraints.of_type(constraint_type))


class TestEmissionScope:

    def test_declare_once(self):
        scope = EmissionScope()
        scope.declare(3)
        assert 3 in scope
        assert 4 not in scope
        assert len(scope) == 1

    def test_redeclaration_raises(self):
        scope = EmissionScope()
        scope.declare(3)
        with pytest.raises(CompilerInvariantError):
            scope.declare(3)


class TestSharingProperties:
    """Soundness of the binding order for arbitrary constraint sets."""

    @given(constraint_set=constraint_sets())
    @settings(max_examples=100, deadline=None)
    def test_every_shared_operation_bound_once(self, constraint_set):
        for bucket in constraint_set.buckets().values():
            plan = plan_shared_declarations(bucket)
            builder = constraint_set.builder
            order = plan.declaration_order

            assert len(order) == len(set(order))
            expected = {
                node_id for node_id, count in plan.ref_counts.items()
                if count >= 2 and builder.node(node_id).is_binary_operation
            }
            assert set(order) == expected

    @given(constraint_set=constraint_sets())
    @settings(max_examples=100, deadline=None)
    def test_shared_children_bound_before_parents(self, constraint_set):
        for bucket in constraint_set.buckets().values():
            plan = plan_shared_declarations(bucket)
            builder = constraint_set.builder
            position = {node_id: i for i, node_id in enumerate(plan.declaration_order)}
            for node_id in plan.declaration_order:
                for child in builder.node(node_id).children():
                    if child in position:
                        assert position[child] < position[node_id]

    @given(constraint_set=constraint_sets())
    @settings(max_examples=100, deadline=None)
    def test_counts_never_grow_towards_roots(self, constraint_set):
        for bucket in constraint_set.buckets().values():
            counts = reference_counts(bucket)
            builder = constraint_set.builder
            for node_id, count in counts.items():
                for child in builder.node(node_id).children():
                    assert counts[child] >= count
