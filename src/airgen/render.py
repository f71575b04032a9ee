"""
Source Renderers

Turns evaluation IR and assembly templates into Python modules. Generated
modules depend on nothing but airgen.field and airgen.isa.

Rendering is deterministic: the same input yields byte-identical text.
"""

from typing import List, Optional, Sequence, Tuple

from .circuit import BinOp, Row
from .constraints import ConstraintType, TableShape
from .field import BFieldElement, XFieldElement
from .fill import DegreeLoweringTable, FillRule
from .ir import Binding, ChallengeRef, Constant, Expr, NodeRef, Operation, RowElement
from .isa import Instruction
from .memory_layout import Address
from .native import BucketEvaluation, NativeCode
from .tasm import AddressingMode, TasmTemplate


HEADER = '"""{title}\n\nGenerated by airgen. Do not edit.\n"""\n'

INDENT = '    '

# parenthesis depth after which rendered subexpressions go to a temporary
MAX_NESTING = 32


# =============================================================================
# Expressions
# =============================================================================

def render_constant(value) -> str:
    if isinstance(value, XFieldElement):
        return f"XFieldElement({value.coefficients!r})"
    if isinstance(value, BFieldElement):
        return f"BFieldElement({value.value})"
    raise TypeError(f"Not a field element: {value!r}")


def _render_leaf(expr: Expr, dual_row: bool) -> str:
    if isinstance(expr, Constant):
        return render_constant(expr.value)
    if isinstance(expr, RowElement):
        return f"{_row_name(expr.row, expr.table.value, dual_row)}[{expr.column}]"
    if isinstance(expr, ChallengeRef):
        return f"challenges[{expr.index}]"
    if isinstance(expr, NodeRef):
        return f"node_{expr.node_id}"
    raise TypeError(f"Unknown expression: {expr!r}")


def render_expr(
    expr: Expr,
    dual_row: bool = True,
    temporaries: Optional[List[str]] = None,
) -> str:
    """
    Python expression for an IR expression.

    Rows are named current_main_row, next_aux_row, ...; single-row code
    drops the `current_` prefix.

    If temporaries is given, subexpressions nested MAX_NESTING levels deep
    are assigned to `tmp_<n>` variables instead, and the assignments are
    appended to temporaries. They must run before the returned expression.
    """
    parts: List[Tuple[str, int]] = []
    stack = [(expr, False)]
    while stack:
        current, expanded = stack.pop()
        if expanded:
            rhs, rhs_depth = parts.pop()
            lhs, lhs_depth = parts.pop()
            op = ' + ' if current.op is BinOp.ADD else ' * '
            text = f"({lhs}{op}{rhs})"
            depth = max(lhs_depth, rhs_depth) + 1
            if temporaries is not None and depth >= MAX_NESTING:
                name = f"tmp_{len(temporaries)}"
                temporaries.append(f"{name} = {text}")
                text, depth = name, 0
            parts.append((text, depth))
        elif isinstance(current, Operation):
            stack.append((current, True))
            stack.append((current.rhs, False))
            stack.append((current.lhs, False))
        else:
            parts.append((_render_leaf(current, dual_row), 0))
    return parts.pop()[0]


def _row_name(row: Row, table: str, dual_row: bool) -> str:
    if not dual_row:
        return f"{table}_row"
    return f"{row.value}_{table}_row"


def _render_bindings(bindings: Sequence[Binding], dual_row: bool, temporaries: List[str]) -> List[str]:
    lines = []
    for binding in bindings:
        start = len(temporaries)
        value = render_expr(binding.expr, dual_row, temporaries)
        lines += temporaries[start:]
        lines.append(f"node_{binding.node_id} = {value}")
    return lines


# =============================================================================
# Native evaluation module
# =============================================================================

def _signature(constraint_type: ConstraintType) -> str:
    if constraint_type.is_dual_row:
        return "current_main_row, current_aux_row, next_main_row, next_aux_row, challenges"
    return "main_row, aux_row, challenges"


def _render_bucket(bucket: BucketEvaluation) -> List[str]:
    name = bucket.constraint_type.value
    dual_row = bucket.constraint_type.is_dual_row
    signature = _signature(bucket.constraint_type)

    lines = [f"def _{name}_constraints({signature}):"]
    temporaries: List[str] = []
    body = _render_bindings(bucket.bindings, dual_row, temporaries)
    start = len(temporaries)
    outputs = [render_expr(expr, dual_row, temporaries) for expr in bucket.outputs]
    body += temporaries[start:]
    body.append("return [")
    body += [f"{INDENT}{output}," for output in outputs]
    body.append("]")
    lines += [INDENT + line for line in body]
    lines.append("")
    lines.append("")

    for suffix, row_kind in (("", "base"), ("_ext", "extension")):
        lines.append(f"def evaluate_{name}_constraints{suffix}({signature}):")
        lines.append(f'{INDENT}"""{name.capitalize()} constraints, main rows over the {row_kind} field."""')
        lines.append(f"{INDENT}return [value.lift() for value in _{name}_constraints({signature})]")
        lines.append("")
        lines.append("")

    lines.append(f"def {name}_quotient_degree_bounds(interpolant_degree, padded_height):")
    zerofier = {
        ConstraintType.INITIAL: "1",
        ConstraintType.CONSISTENCY: "padded_height",
        ConstraintType.TRANSITION: "padded_height - 1",
        ConstraintType.TERMINAL: "1",
    }[bucket.constraint_type]
    lines.append(f"{INDENT}zerofier_degree = {zerofier}")
    lines.append(
        f"{INDENT}return [interpolant_degree * degree - zerofier_degree "
        f"for degree in {bucket.degrees!r}]"
    )
    lines.append("")
    lines.append("")
    return lines


def render_native_module(code: NativeCode, shape: TableShape) -> str:
    lines = [HEADER.format(title="AIR constraint evaluation."), ""]
    lines.append("from airgen.field import BFieldElement, XFieldElement")
    lines.append("")
    lines += _render_shape(shape)
    for constraint_type in ConstraintType:
        bucket = code.bucket(constraint_type)
        lines.append(f"NUM_{constraint_type.name}_CONSTRAINTS = {bucket.num_constraints}")
    lines.append("")
    lines.append("")

    for constraint_type in ConstraintType:
        lines += _render_bucket(code.bucket(constraint_type))

    lines.append(
        "def evaluate_all_constraints("
        "current_main_row, current_aux_row, next_main_row, next_aux_row, challenges):"
    )
    lines.append(f"{INDENT}return (")
    for constraint_type in ConstraintType:
        args = _signature(constraint_type)
        if not constraint_type.is_dual_row:
            args = "current_main_row, current_aux_row, challenges"
        lines.append(f"{INDENT * 2}evaluate_{constraint_type.value}_constraints_ext({args})")
        if constraint_type is not ConstraintType.TERMINAL:
            lines[-1] += " +"
    lines.append(f"{INDENT})")
    return "\n".join(lines) + "\n"


def _render_shape(shape: TableShape) -> List[str]:
    return [
        f"NUM_MAIN_COLUMNS = {shape.num_main_columns}",
        f"NUM_AUX_COLUMNS = {shape.num_aux_columns}",
        f"NUM_CHALLENGES = {shape.num_challenges}",
    ]


# =============================================================================
# Degree lowering table module
# =============================================================================

def _render_fill_rule(rule: FillRule, table: str) -> List[str]:
    target = f"current_{table}_row[{rule.column}]"
    temporaries: List[str] = []
    value = render_expr(rule.expression, True, temporaries)
    if table == 'aux':
        loop_vars = "current_main_row, current_aux_row"
        rows = "zip(main_table, aux_table)"
        if rule.is_dual_row:
            loop_vars = "(current_main_row, next_main_row), (current_aux_row, next_aux_row)"
            rows = "zip(zip(main_table, main_table[1:]), zip(aux_table, aux_table[1:]))"
        value = f"XFieldElement.zero() + {value}"
    else:
        loop_vars = "current_main_row"
        rows = "main_table"
        if rule.is_dual_row:
            loop_vars = "current_main_row, next_main_row"
            rows = "zip(main_table, main_table[1:])"
    lines = [
        f"{INDENT}# {rule.constraint_type.value}",
        f"{INDENT}for {loop_vars} in {rows}:",
    ]
    lines += [INDENT * 2 + temporary for temporary in temporaries]
    lines.append(f"{INDENT * 2}{target} = {value}")
    return lines


def render_degree_lowering_module(table: DegreeLoweringTable) -> str:
    lines = [HEADER.format(title="Fill routines of columns introduced by degree lowering."), ""]
    lines.append("from airgen.field import BFieldElement, XFieldElement")
    lines.append("")
    lines.append(f"NUM_ORIGINAL_MAIN_COLUMNS = {table.num_original_main_columns}")
    lines.append(f"NUM_ORIGINAL_AUX_COLUMNS = {table.num_original_aux_columns}")
    lines.append(f"NUM_MAIN_COLUMNS = {table.num_main_columns}")
    lines.append(f"NUM_AUX_COLUMNS = {table.num_aux_columns}")
    lines.append("")
    lines.append("")
    lines.append("def _check_width(table, width):")
    lines.append(f"{INDENT}for row in table:")
    lines.append(f"{INDENT * 2}if len(row) != width:")
    lines.append(f"{INDENT * 3}raise ValueError(f\"Expected {{width}} columns, got {{len(row)}}\")")
    lines.append("")
    lines.append("")

    lines.append("def fill_derived_main_columns(main_table):")
    lines.append(f"{INDENT}_check_width(main_table, NUM_MAIN_COLUMNS)")
    for rule in table.main_rules:
        lines += _render_fill_rule(rule, 'main')
    lines.append("")
    lines.append("")

    lines.append("def fill_derived_aux_columns(main_table, aux_table, challenges):")
    lines.append(f"{INDENT}if len(main_table) != len(aux_table):")
    lines.append(f"{INDENT * 2}raise ValueError(\"Main and aux table differ in height\")")
    lines.append(f"{INDENT}_check_width(main_table, NUM_MAIN_COLUMNS)")
    lines.append(f"{INDENT}_check_width(aux_table, NUM_AUX_COLUMNS)")
    for rule in table.aux_rules:
        lines += _render_fill_rule(rule, 'aux')
    return "\n".join(lines) + "\n"


# =============================================================================
# Assembly module
# =============================================================================

def render_tasm_text(instructions: Sequence[Instruction]) -> str:
    """One instruction per line, symbolic addresses as region+offset."""
    return "\n".join(str(inst) for inst in instructions) + "\n"


def _render_instruction(inst: Instruction) -> str:
    if inst.arg is None:
        return f"Instruction(Opcode.{inst.opcode.name})"
    if isinstance(inst.arg, Address):
        arg = f"_address({inst.arg.region.value}_ptr, {inst.arg.offset})"
    else:
        arg = str(inst.arg)
    return f"Instruction(Opcode.{inst.opcode.name}, {arg})"


def _render_template(template: TasmTemplate, name: str, pointers: Sequence[str]) -> List[str]:
    lines = [f"def {name}({', '.join(pointers)}):"]
    lines.append(f"{INDENT}return [")
    lines += [f"{INDENT * 2}{_render_instruction(inst)}," for inst in template.instructions()]
    lines.append(f"{INDENT}]")
    return lines


def render_tasm_module(static: TasmTemplate, dynamic: TasmTemplate) -> str:
    if static.mode is not AddressingMode.STATIC or dynamic.mode is not AddressingMode.DYNAMIC:
        raise ValueError("Expected one static and one dynamic template")

    lines = [HEADER.format(title="AIR constraint evaluation in stack machine assembly."), ""]
    lines.append("from airgen.field import GOLDILOCKS_PRIME")
    lines.append("from airgen.isa import Instruction, Opcode")
    lines.append("")
    lines.append(f"NUM_CONSTRAINTS = {static.num_constraints}")
    lines.append("")
    lines.append("")
    lines.append("def _address(pointer, offset):")
    lines.append(f"{INDENT}return (pointer + offset) % GOLDILOCKS_PRIME")
    lines.append("")
    lines.append("")
    lines += _render_template(static, "static_air_constraint_evaluation", [
        "free_mem_page_ptr", "curr_main_row_ptr", "curr_aux_row_ptr",
        "next_main_row_ptr", "next_aux_row_ptr", "challenges_ptr",
    ])
    lines.append("")
    lines.append("")
    lines += _render_template(dynamic, "dynamic_air_constraint_evaluation", [
        "free_mem_page_ptr", "challenges_ptr",
    ])
    return "\n".join(lines) + "\n"
