"""
Common Subexpression Sharing

Decides which nodes of a slice of constraints are evaluated once, bound to a
variable (native backend) or a scratch memory slot (assembly backend), and
reused afterwards.

Reference counts are aggregated over the whole slice: walking every circuit
from every root, a node's counter is incremented on every visit, so the count
of a node equals the number of root-to-node paths. Consequently a child's
count is never smaller than the count of any of its parents.

Shared nodes are declared by descending count. Because of the property
above, every child of a node is either bound at an earlier, higher count, or
is bound at the same count immediately before its parent. No explicit
topological sort is needed.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Set

from .circuit import Circuit, CircuitBuilder, CircuitNode
from .errors import CompilerInvariantError


def assert_unique_ids(constraints: Sequence[Circuit]) -> None:
    """
    Check that no two distinct nodes of the slice share an id.

    Distinct nodes with equal ids can only stem from mixing circuits of
    different builders.
    """
    owners: Dict[int, CircuitBuilder] = {}
    for constraint in constraints:
        for node in constraint.walk():
            owner = owners.setdefault(node.id, constraint.builder)
            if owner is not constraint.builder:
                raise CompilerInvariantError(f"Repeated node id: {node.id}")


def reference_counts(constraints: Sequence[Circuit]) -> Dict[int, int]:
    """
    Count root-to-node paths for every node reachable from the slice.

    Every root occurrence counts, so a constraint listed twice counts twice.
    """
    counts: Dict[int, int] = {}
    if not constraints:
        return counts

    builder = constraints[0].builder
    for constraint in constraints:
        for node in constraint.walk():
            counts.setdefault(node.id, 0)
        counts[constraint.id] += 1

    # parents carry larger ids than their children
    for node_id in sorted(counts, reverse=True):
        node = builder.node(node_id)
        for child in node.children():
            counts[child] += counts[node_id]
    return counts


class EmissionScope:
    """
    The set of nodes already bound in one code emission pass.

    Created fresh for every pass over a bucket and never shared.
    """

    def __init__(self):
        self._declared: Set[int] = set()

    def __contains__(self, node_id: int) -> bool:
        return node_id in self._declared

    def __len__(self) -> int:
        return len(self._declared)

    def declare(self, node_id: int) -> None:
        if node_id in self._declared:
            raise CompilerInvariantError(f"Node {node_id} declared twice")
        self._declared.add(node_id)


@dataclass
class SharingPlan:
    """
    Result of the sharing analysis for one slice of constraints.

    Fields:
    - ref_counts: Aggregate reference count per reachable node id
    - declaration_order: Ids of the shared nodes, in the order they must be bound
    """
    ref_counts: Dict[int, int] = field(default_factory=dict)
    declaration_order: List[int] = field(default_factory=list)

    @property
    def shared_nodes(self) -> Set[int]:
        return set(self.declaration_order)


def plan_shared_declarations(constraints: Sequence[Circuit]) -> SharingPlan:
    """
    Compute reference counts and the binding order of shared nodes.

    Only binary operations are ever bound; leaves are cheap to reload.
    """
    assert_unique_ids(constraints)
    counts = reference_counts(constraints)
    relevant_counts = sorted({count for count in counts.values() if count > 1}, reverse=True)

    scope = EmissionScope()
    order: List[int] = []
    builder_node = constraints[0].builder.node if constraints else None

    def declare_of_count(root: CircuitNode, ref_count: int) -> None:
        stack = [(root, False)]
        while stack:
            node, expanded = stack.pop()
            if expanded:
                scope.declare(node.id)
                order.append(node.id)
                continue
            if node.id in scope or not node.is_binary_operation:
                continue

            if counts[node.id] > ref_count:
                raise CompilerInvariantError(
                    f"Node {node.id} with count {counts[node.id]} was not bound "
                    f"before reaching count {ref_count}"
                )
            # operands are declared before the node that uses them
            if counts[node.id] == ref_count:
                stack.append((node, True))
            stack.append((builder_node(node.rhs), False))
            stack.append((builder_node(node.lhs), False))

    for ref_count in relevant_counts:
        for constraint in constraints:
            declare_of_count(constraint.node, ref_count)

    return SharingPlan(ref_counts=counts, declaration_order=order)
