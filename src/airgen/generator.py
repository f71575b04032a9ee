"""
Generation Pipeline

    constraint set
        -> degree lowering (substitution rules, derived columns)
        -> combined constraint set
        -> native evaluation IR
        -> static and dynamic assembly templates

Usage:
    from airgen.airs import test_constraints
    from airgen.generator import generate

    artifacts = generate(test_constraints())
    for file_name, source in artifacts.render().items():
        ...
"""

import logging
from dataclasses import dataclass
from typing import Dict

from .constraints import AllSubstitutions, ConstraintSet, TableShape
from .errors import CompilerInvariantError
from .fill import DegreeLoweringTable
from .native import NativeBackend, NativeCode
from .params import DEFAULT_PARAMS, GeneratorParams
from .render import render_degree_lowering_module, render_native_module, render_tasm_module
from .tasm import TasmTemplate, dynamic_backend, static_backend


logger = logging.getLogger(__name__)

NATIVE_FILE_NAME = "constraints.py"
DEGREE_LOWERING_FILE_NAME = "degree_lowering_table.py"
TASM_FILE_NAME = "tasm_air_constraints.py"


@dataclass
class GeneratedArtifacts:
    """
    Everything produced from one constraint set.

    Fields:
    - original_shape: Table shape before degree lowering
    - constraints: Lowered constraints combined with all substitution rules
    - substitutions: The substitution rules, per table and bucket
    - native: Evaluation IR of the combined constraints
    - degree_lowering_table: Fill routines of the derived columns
    - static_tasm, dynamic_tasm: Assembly templates of the combined constraints
    """
    original_shape: TableShape
    constraints: ConstraintSet
    substitutions: AllSubstitutions
    native: NativeCode
    degree_lowering_table: DegreeLoweringTable
    static_tasm: TasmTemplate
    dynamic_tasm: TasmTemplate

    def render(self) -> Dict[str, str]:
        """File name -> Python source."""
        return {
            NATIVE_FILE_NAME: render_native_module(self.native, self.constraints.shape),
            DEGREE_LOWERING_FILE_NAME: render_degree_lowering_module(self.degree_lowering_table),
            TASM_FILE_NAME: render_tasm_module(self.static_tasm, self.dynamic_tasm),
        }


def generate(
    constraint_set: ConstraintSet,
    params: GeneratorParams = DEFAULT_PARAMS,
) -> GeneratedArtifacts:
    """
    Run the whole pipeline.

    The buckets of constraint_set are replaced by their degree-lowered
    versions.
    """
    original_shape = constraint_set.shape
    logger.info(
        "generating constraint evaluation code for %d constraints", constraint_set.num_constraints
    )

    substitutions = constraint_set.lower_to_target_degree_through_substitutions(params.target_degree)
    combined = constraint_set.combine_with_substitution_induced_constraints(substitutions)
    if combined.num_constraints > params.max_num_constraints:
        raise CompilerInvariantError(
            f"{combined.num_constraints} constraints exceed the output array "
            f"capacity of {params.max_num_constraints}"
        )

    native = NativeBackend().constraint_evaluation_code(combined)
    table = DegreeLoweringTable.from_substitutions(substitutions, original_shape)
    static_tasm = static_backend(params).constraint_evaluation_code(combined)
    dynamic_tasm = dynamic_backend(params).constraint_evaluation_code(combined)

    logger.info(
        "generated %d constraints over %d main and %d aux columns",
        combined.num_constraints, combined.shape.num_main_columns, combined.shape.num_aux_columns,
    )
    return GeneratedArtifacts(
        original_shape=original_shape,
        constraints=combined,
        substitutions=substitutions,
        native=native,
        degree_lowering_table=table,
        static_tasm=static_tasm,
        dynamic_tasm=dynamic_tasm,
    )
