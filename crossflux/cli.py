"""Command-line interface for CrossFlux.

This module provides CLI commands for running the cross-species flux
comparison from the command line.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("crossflux")


def _add_analysis_arguments(parser: argparse.ArgumentParser) -> None:
    """Options shared by the 'run' and 'compare' commands."""
    parser.add_argument(
        "-o", "--output",
        type=Path,
        default=Path("results"),
        help="Output directory (default: results/)",
    )
    parser.add_argument(
        "--metadata",
        type=Path,
        default=None,
        help="Reaction metadata table (reaction ID, equation, subsystem). "
        "Defaults to the metadata of --model",
    )
    parser.add_argument(
        "--names",
        nargs=2,
        default=["human", "mouse"],
        metavar=("FIRST", "SECOND"),
        help="Cohort names (default: human mouse)",
    )
    parser.add_argument(
        "-k", "--top-k",
        type=int,
        default=30,
        help="Number of top-ranked reactions to report (default: 30)",
    )
    parser.add_argument(
        "-p", "--pathway",
        action="append",
        default=[],
        metavar="LABEL[:COLOR]",
        help="Pathway to compare in detail, optionally with a plot color. "
        "May be given several times",
    )
    parser.add_argument(
        "--no-cube-root",
        action="store_true",
        help="Skip the cube-root transform of fluxes",
    )
    parser.add_argument(
        "-j", "--n-processes",
        type=int,
        default=1,
        help="Number of parallel processes (default: 1)",
    )
    parser.add_argument(
        "--no-plots",
        action="store_true",
        help="Do not render figures",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI.

    Returns
    -------
    argparse.ArgumentParser
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(
        prog="crossflux",
        description="CrossFlux - cross-species comparison of metabolic flux profiles",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Estimate fluxes for both cohorts and compare them
  crossflux run human.tsv mouse.tsv -m human --medium blood.json -o results/

  # Highlight pathways with their own plot colors
  crossflux run human.tsv mouse.tsv -m Human-GEM.xml \\
      -p "Glycolysis / Gluconeogenesis:red" -p "Fatty acid oxidation:blue"

  # Compare flux matrices computed elsewhere
  crossflux compare human_flux.tsv mouse_flux.tsv --metadata reactions.tsv

  # Inspect a metabolic model
  crossflux info Human-GEM.xml
""",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Show version and exit",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Run command
    run_parser = subparsers.add_parser(
        "run",
        help="Estimate fluxes from expression and compare the two cohorts",
        description="Load two expression matrices, estimate fluxes with a "
        "metabolic model and compare them",
    )
    run_parser.add_argument(
        "first",
        type=Path,
        help="Expression matrix of the first cohort (genes x samples)",
    )
    run_parser.add_argument(
        "second",
        type=Path,
        help="Expression matrix of the second cohort (genes x samples)",
    )
    run_parser.add_argument(
        "-m", "--model",
        type=str,
        default="human",
        help="Metabolic model: 'human', 'recon3d', or path to SBML/JSON file",
    )
    run_parser.add_argument(
        "--medium",
        type=Path,
        default=None,
        help="Medium file (JSON or CSV/TSV of exchange reactions and uptake rates)",
    )
    run_parser.add_argument(
        "--normalize",
        action="store_true",
        help="Library-size normalize expression before scoring",
    )
    run_parser.add_argument(
        "--target-sum",
        type=float,
        default=1e6,
        help="Target sum for normalization (default: 1e6)",
    )
    run_parser.add_argument(
        "--and-function",
        choices=["min", "mean", "median"],
        default="min",
        help="Aggregation of AND terms in GPR rules (default: min)",
    )
    run_parser.add_argument(
        "--or-function",
        choices=["max", "sum", "mean"],
        default="sum",
        help="Aggregation of OR terms in GPR rules (default: sum)",
    )
    run_parser.add_argument(
        "--lambda",
        dest="lambda_penalty",
        type=float,
        default=0.0,
        help="Neighbour smoothing weight for activity scores (0-1, default: 0)",
    )
    run_parser.add_argument(
        "--n-neighbors",
        type=int,
        default=10,
        help="Number of neighbours for score smoothing (default: 10)",
    )
    run_parser.add_argument(
        "--objective",
        type=str,
        default=None,
        help="Reaction to optimize (default: model objective)",
    )
    run_parser.add_argument(
        "--use-cache",
        action="store_true",
        help="Cache flux estimates for faster reruns",
    )
    run_parser.add_argument(
        "--cache-dir",
        type=Path,
        default=None,
        help="Cache directory (default: ~/.crossflux/cache)",
    )
    run_parser.add_argument(
        "--save-flux",
        action="store_true",
        help="Also write the untransformed fluxes and activity scores of both cohorts",
    )
    _add_analysis_arguments(run_parser)

    # Compare command
    compare_parser = subparsers.add_parser(
        "compare",
        help="Compare two precomputed flux matrices",
    )
    compare_parser.add_argument(
        "first",
        type=Path,
        help="Flux matrix of the first cohort (reactions x samples)",
    )
    compare_parser.add_argument(
        "second",
        type=Path,
        help="Flux matrix of the second cohort (reactions x samples)",
    )
    compare_parser.add_argument(
        "-m", "--model",
        type=str,
        default=None,
        help="Metabolic model providing reaction metadata when --metadata is not given",
    )
    _add_analysis_arguments(compare_parser)

    # Info command
    info_parser = subparsers.add_parser(
        "info",
        help="Show information about a metabolic model",
    )
    info_parser.add_argument(
        "model",
        type=str,
        help="Model name or path to model file",
    )

    return parser


def _comparison_config(args: argparse.Namespace):
    from crossflux.analysis import ComparisonConfig, PathwayHighlight

    return ComparisonConfig(
        names=tuple(args.names),
        top_k=args.top_k,
        highlights=[PathwayHighlight.parse(text) for text in args.pathway],
        normalize=not args.no_cube_root,
        n_processes=args.n_processes,
    )


def _read_matrix(path: Path):
    import pandas as pd

    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    sep = "," if path.suffix.lower() == ".csv" else "\t"
    matrix = pd.read_csv(path, sep=sep, index_col=0)
    matrix.index = matrix.index.astype(str)
    return matrix


def _write_config(args: argparse.Namespace, config, extra: dict) -> None:
    import json

    config_dict = {
        "command": args.command,
        "first": str(args.first),
        "second": str(args.second),
        "names": list(config.names),
        "top_k": config.top_k,
        "pathways": [
            {"label": h.label, "color": h.color} for h in config.highlights
        ],
        "cube_root": config.normalize,
    }
    config_dict.update(extra)
    with open(args.output / "config.json", "w") as f:
        json.dump(config_dict, f, indent=2)


def _report(result) -> None:
    """Log the headline numbers of a comparison."""
    logger.info(f"Shared reactions: {len(result.shared_reactions)}")
    logger.info(
        f"Mean profile correlation: rho={result.overall.rho:.3f}, "
        f"p={result.overall.p_value:.3g}"
    )
    logger.info(
        f"Pathway activity correlation: rho={result.activity_correlation.rho:.3f}, "
        f"p={result.activity_correlation.p_value:.3g}"
    )
    for highlight in result.highlights:
        if not highlight.has_data:
            logger.warning(f"{highlight.pathway}: no shared reactions")


def run_analysis(args: argparse.Namespace) -> int:
    """Estimate fluxes for both cohorts and compare them.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command-line arguments.

    Returns
    -------
    int
        Exit code (0 for success).
    """
    from crossflux.analysis import run_from_expression, save_comparison
    from crossflux.core import CobraFluxProvider, FluxCache, FluxConfig, load_expression
    from crossflux.models import (
        load_gem,
        load_medium,
        load_reaction_metadata,
        reaction_metadata,
    )

    config = _comparison_config(args)
    name_a, name_b = config.names

    logger.info("CrossFlux cross-species comparison")
    logger.info("=" * 50)
    logger.info(f"{name_a}: {args.first}")
    logger.info(f"{name_b}: {args.second}")
    logger.info(f"Model: {args.model}")
    logger.info(f"Output: {args.output}")

    args.output.mkdir(parents=True, exist_ok=True)

    logger.info("Loading expression data...")
    expression_a = load_expression(
        args.first, normalize=args.normalize, target_sum=args.target_sum
    )
    expression_b = load_expression(
        args.second, normalize=args.normalize, target_sum=args.target_sum
    )

    logger.info(f"Loading metabolic model: {args.model}")
    model = load_gem(args.model)
    medium = load_medium(args.medium) if args.medium is not None else None

    if args.metadata is not None:
        metadata = load_reaction_metadata(args.metadata)
    else:
        metadata = reaction_metadata(model)

    flux_config = FluxConfig(
        and_function=args.and_function,
        or_function=args.or_function,
        lambda_penalty=args.lambda_penalty,
        n_neighbors=args.n_neighbors,
        objective=args.objective,
        n_processes=args.n_processes,
    )
    provider = CobraFluxProvider(model, medium=medium, config=flux_config)

    cache = None
    if args.use_cache:
        cache = FluxCache.from_model(model, cache_dir=args.cache_dir, medium=medium)
        logger.info(f"Using flux cache: {cache.get_cache_info()['cache_dir']}")

    result = run_from_expression(
        expression_a, expression_b, provider, metadata, config, cache=cache
    )

    if args.save_flux:
        from crossflux.analysis import export_table

        for name, flux_result in result.flux_results.items():
            export_table(flux_result.fluxes, args.output / f"flux_{name}.tsv")
            export_table(flux_result.mras, args.output / f"mras_{name}.tsv")

    save_comparison(result, args.output, plots=not args.no_plots)
    _write_config(
        args,
        config,
        {
            "model": args.model,
            "medium": str(args.medium) if args.medium else None,
            "and_function": flux_config.and_function,
            "or_function": flux_config.or_function,
            "lambda_penalty": flux_config.lambda_penalty,
            "normalize_expression": args.normalize,
        },
    )
    _report(result)

    logger.info("Analysis complete!")
    logger.info(f"Results saved to: {args.output}/")
    return 0


def run_compare(args: argparse.Namespace) -> int:
    """Compare two precomputed flux matrices.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command-line arguments.

    Returns
    -------
    int
        Exit code (0 for success).
    """
    from crossflux.analysis import run_comparison, save_comparison
    from crossflux.models import load_gem, load_reaction_metadata, reaction_metadata

    if args.metadata is None and args.model is None:
        logger.error("Reaction metadata required: pass --metadata or --model")
        return 1

    config = _comparison_config(args)
    args.output.mkdir(parents=True, exist_ok=True)

    flux_a = _read_matrix(args.first)
    flux_b = _read_matrix(args.second)

    if args.metadata is not None:
        metadata = load_reaction_metadata(args.metadata)
    else:
        metadata = reaction_metadata(load_gem(args.model))

    result = run_comparison(flux_a, flux_b, metadata, config)
    save_comparison(result, args.output, plots=not args.no_plots)
    _write_config(args, config, {"metadata": str(args.metadata) if args.metadata else args.model})
    _report(result)

    logger.info(f"Results saved to: {args.output}/")
    return 0


def show_model_info(args: argparse.Namespace) -> int:
    """Show information about a metabolic model.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command-line arguments.

    Returns
    -------
    int
        Exit code (0 for success).
    """
    from crossflux.models import get_subsystem_reactions, load_gem

    try:
        model = load_gem(args.model)
    except (FileNotFoundError, ValueError) as e:
        logger.error(str(e))
        return 1

    print(f"\nModel Information: {model.id}")
    print("=" * 50)
    print(f"Name: {model.name or 'N/A'}")
    print(f"Reactions: {len(model.reactions)}")
    print(f"Metabolites: {len(model.metabolites)}")
    print(f"Genes: {len(model.genes)}")
    print(f"Exchange reactions: {len(model.exchanges)}")

    n_with_gpr = sum(1 for r in model.reactions if r.gene_reaction_rule)
    print(f"Reactions with GPR rules: {n_with_gpr}")

    subsystems = get_subsystem_reactions(model)
    print(f"Subsystems: {len(subsystems)}")

    if subsystems:
        print("\nTop 10 subsystems by reaction count:")
        sorted_subsystems = sorted(
            subsystems.items(), key=lambda x: len(x[1]), reverse=True
        )[:10]
        for name, rxns in sorted_subsystems:
            print(f"  {name}: {len(rxns)} reactions")

    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI.

    Parameters
    ----------
    argv : list[str], optional
        Command-line arguments. If None, uses sys.argv.

    Returns
    -------
    int
        Exit code.
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.version:
        from crossflux import __version__

        print(f"crossflux {__version__}")
        return 0

    if args.command is None:
        parser.print_help()
        return 0

    try:
        if args.command == "run":
            return run_analysis(args)
        elif args.command == "compare":
            return run_compare(args)
        elif args.command == "info":
            return show_model_info(args)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"Error: {e}")
        if args.verbose:
            import traceback

            traceback.print_exc()
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
