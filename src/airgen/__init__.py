"""
airgen: AIR Constraint Evaluation Generator

Compiles the arithmetic constraints of an AIR into evaluation code:

1. Circuits: hash-consed expression DAGs over rows, challenges and constants
2. Degree lowering: new columns until every constraint has degree <= D
3. Native backend: evaluation IR, interpretable and renderable as Python
4. Assembly backend: straight-line stack machine code, static and dynamic
   memory addressing

Usage:
    from airgen import CircuitBuilder, ConstraintSet, TableShape, generate

    builder = CircuitBuilder()
    a, b = builder.current_main(0), builder.next_main(0)
    constraints = ConstraintSet(
        builder=builder,
        shape=TableShape(num_main_columns=1, num_aux_columns=0, num_challenges=0),
        tran=[b - a * a * a * a * a],
    )
    artifacts = generate(constraints)
    sources = artifacts.render()
"""

from .errors import AirGenError, CompilerInvariantError, MemoryLayoutError
from .field import GOLDILOCKS_PRIME, BFieldElement, XFieldElement
from .params import DEFAULT_PARAMS, PARAMS_SMALL_PAGE, GeneratorParams
from .circuit import (
    BinOp,
    Circuit,
    CircuitBuilder,
    CircuitNode,
    CircuitVisitor,
    ExpressionKind,
    InputIndicator,
    Row,
    Table,
)
from .constraints import (
    AllSubstitutions,
    ConstraintSet,
    ConstraintType,
    Substitutions,
    TableShape,
)
from .sharing import EmissionScope, SharingPlan, plan_shared_declarations, reference_counts
from .degree_lowering import (
    DegreeLoweringInfo,
    SubstitutionRule,
    lower_to_degree,
    pick_node_to_substitute,
)
from .native import BucketEvaluation, NativeBackend, NativeCode
from .memory_layout import Address, DynamicMemoryLayout, IOList, StaticMemoryLayout
from .tasm import AddressingMode, TasmBackend, TasmTemplate, dynamic_backend, static_backend
from .fill import DegreeLoweringTable
from .generator import GeneratedArtifacts, generate

__version__ = "0.1.0"

__all__ = [
    # Errors
    'AirGenError',
    'CompilerInvariantError',
    'MemoryLayoutError',

    # Field
    'GOLDILOCKS_PRIME',
    'BFieldElement',
    'XFieldElement',

    # Parameters
    'GeneratorParams',
    'DEFAULT_PARAMS',
    'PARAMS_SMALL_PAGE',

    # Circuits
    'BinOp',
    'Circuit',
    'CircuitBuilder',
    'CircuitNode',
    'CircuitVisitor',
    'ExpressionKind',
    'InputIndicator',
    'Row',
    'Table',

    # Constraints
    'AllSubstitutions',
    'ConstraintSet',
    'ConstraintType',
    'Substitutions',
    'TableShape',

    # Sharing
    'EmissionScope',
    'SharingPlan',
    'plan_shared_declarations',
    'reference_counts',

    # Degree lowering
    'DegreeLoweringInfo',
    'SubstitutionRule',
    'lower_to_degree',
    'pick_node_to_substitute',
    'DegreeLoweringTable',

    # Backends
    'BucketEvaluation',
    'NativeBackend',
    'NativeCode',
    'Address',
    'AddressingMode',
    'DynamicMemoryLayout',
    'IOList',
    'StaticMemoryLayout',
    'TasmBackend',
    'TasmTemplate',
    'dynamic_backend',
    'static_backend',

    # Pipeline
    'GeneratedArtifacts',
    'generate',
]
