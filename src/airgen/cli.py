"""
airgen: AIR Constraint Evaluation Generator

Usage:
    airgen generate [--constraints MOD:FUNC] [--output DIR] [--target-degree N] [--verbose]
    airgen inspect  [--constraints MOD:FUNC] [--target-degree N] [--verbose]
"""

import argparse
import importlib
import logging
import sys
from pathlib import Path
from typing import Callable, List, Optional

from .constraints import ConstraintSet, ConstraintType
from .errors import AirGenError
from .generator import generate
from .params import GeneratorParams


logger = logging.getLogger(__name__)

DEFAULT_CONSTRAINTS = 'airgen.airs:test_constraints'


def load_constraint_factory(spec: str) -> Callable[[], ConstraintSet]:
    """Resolve `package.module:function`."""
    module_name, sep, function_name = spec.partition(':')
    if not sep or not module_name or not function_name:
        raise ValueError(f"Expected MODULE:FUNCTION, got {spec!r}")
    module = importlib.import_module(module_name)
    factory = getattr(module, function_name, None)
    if not callable(factory):
        raise ValueError(f"{spec} is not a callable")
    return factory


def run_generate(args) -> int:
    constraints = load_constraint_factory(args.constraints)()
    artifacts = generate(constraints, GeneratorParams(target_degree=args.target_degree))

    args.output.mkdir(parents=True, exist_ok=True)
    for file_name, source in artifacts.render().items():
        path = args.output / file_name
        path.write_text(source)
        logger.info("wrote %s", path)
    return 0


def run_inspect(args) -> int:
    constraints = load_constraint_factory(args.constraints)()
    original_shape = constraints.shape
    artifacts = generate(constraints, GeneratorParams(target_degree=args.target_degree))
    combined = artifacts.constraints

    print(f"Target degree: {args.target_degree}")
    print(f"Main columns:  {original_shape.num_main_columns} -> {combined.shape.num_main_columns}")
    print(f"Aux columns:   {original_shape.num_aux_columns} -> {combined.shape.num_aux_columns}")
    print(f"Challenges:    {combined.shape.num_challenges}")
    print()
    print(f"{'bucket':12s} {'constraints':>11s} {'shared':>7s} {'max deg':>7s} "
          f"{'static':>7s} {'dynamic':>7s}")
    for constraint_type in ConstraintType:
        bucket = artifacts.native.bucket(constraint_type)
        print(
            f"{constraint_type.value:12s} {bucket.num_constraints:11d} "
            f"{len(bucket.bindings):7d} {max(bucket.degrees, default=-1):7d} "
            f"{len(artifacts.static_tasm.buckets[constraint_type]):7d} "
            f"{len(artifacts.dynamic_tasm.buckets[constraint_type]):7d}"
        )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog='airgen',
        description='airgen: AIR Constraint Evaluation Generator',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    airgen generate --output generated           # Bundled test AIR
    airgen generate --constraints my_air:build   # Your own constraint factory
    airgen inspect --target-degree 3             # Per-bucket statistics
        """
    )

    parser.add_argument(
        'command',
        choices=['generate', 'inspect'],
        help='Command to run'
    )

    parser.add_argument(
        '--constraints', '-c',
        default=DEFAULT_CONSTRAINTS,
        help=f'Constraint factory as MODULE:FUNCTION (default: {DEFAULT_CONSTRAINTS})'
    )

    parser.add_argument(
        '--output', '-o',
        type=Path,
        default=Path('./generated'),
        help='Output directory for generated modules'
    )

    parser.add_argument(
        '--target-degree',
        type=int,
        default=GeneratorParams.target_degree,
        help=f'Maximal constraint degree (default: {GeneratorParams.target_degree})'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Log every substitution'
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='[%(levelname)s] %(message)s',
    )

    try:
        if args.command == 'generate':
            return run_generate(args)
        return run_inspect(args)
    except (AirGenError, ValueError) as e:
        logger.error("%s", e)
        return 1


if __name__ == '__main__':
    sys.exit(main())
