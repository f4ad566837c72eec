"""
Main CLI entry point for epmaquant.
"""

import argparse
import sys

from epmaquant.core.logging_config import setup_logging, get_logger

logger = get_logger("cli.main")


def quant_cmd(args):
    """Bulk quantification command."""
    import pandas as pd
    from epmaquant.core.config import load_config
    from epmaquant.quant.loader import build_solver

    logger.info(f"Loading configuration from {args.config}")
    config = load_config(args.config)
    solver, krs, conditions = build_solver(config)
    if args.normalize:
        solver.normalize = True

    result = solver.compute(krs, conditions)
    print(result.to_table(title=f"Quantification ({conditions})"))

    if args.output:
        row = dict(result.mass_fractions())
        row["total"] = result.analytical_total
        row["iterations"] = result.iterations
        row["converged"] = result.converged
        pd.DataFrame([row]).to_csv(args.output, index=False)
        logger.info(f"Result saved to {args.output}")

    if not result.converged:
        sys.exit(2)


def map_cmd(args):
    """Quantify every row of a k-ratio table."""
    import pandas as pd
    from epmaquant.core.config import load_config
    from epmaquant.quant.batch import kratio_sets_from_dataframe, quantify_map
    from epmaquant.quant.loader import build_solver, build_transition_set

    config = load_config(args.config)
    solver, _, conditions = build_solver(config)

    logger.info(f"Loading k-ratios from {args.kratios}")
    df = pd.read_csv(args.kratios, index_col=0)
    columns = {}
    for col in df.columns:
        if col.endswith(args.sigma_suffix):
            continue
        parts = col.split()
        entry = {"element": parts[0]}
        if len(parts) > 1:
            entry["family"] = parts[1]
        columns[col] = build_transition_set(entry, conditions.beam_energy_keV)

    batch = quantify_map(
        solver,
        kratio_sets_from_dataframe(df, columns, args.sigma_suffix),
        conditions,
        progress_every=args.progress_every,
    )
    print(batch.to_table())

    if args.output:
        batch.to_dataframe().to_csv(args.output)
        logger.info(f"Results saved to {args.output}")
    else:
        print(batch.to_dataframe().to_string())


def layers_cmd(args):
    """Layered (thin film) quantification command."""
    from epmaquant.core.config import load_config
    from epmaquant.quant.loader import build_layered

    logger.info(f"Loading configuration from {args.config}")
    config = load_config(args.config)
    solver, krs, layers, oxidizers = build_layered(config)

    result = solver.multi_layer(krs, layers, oxidizers)
    print(result.to_table())

    if not result.converged:
        sys.exit(2)


def lines_cmd(args):
    """List the tabulated X-ray lines of an element."""
    from epmaquant.atomic import xray_data
    from epmaquant.atomic.elements import as_element

    elm = as_element(args.element)
    print(f"{elm.symbol} (Z={elm.atomic_number}, A={elm.atomic_weight:.3f})")
    for xrts in xray_data.all_transition_sets(elm):
        shell = xrts.weighiest_transition.shell
        line = f"  {xrts.family.name}: edge {shell.edge_energy_keV:.3f} keV"
        if args.beam_energy is not None:
            line += f", U = {shell.overvoltage(args.beam_energy):.2f}"
        print(line)
        for xrt in sorted(xrts, key=lambda t: -t.weight):
            print(f"    {xrt.name:<6} {xrt.energy_keV:>8.4f} keV  weight {xrt.weight:.3f}")


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="epmaquant: composition from EPMA/EDS k-ratios",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("--version", action="version", version="%(prog)s 0.1.0")

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Set logging level (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Bulk quantification command
    quant_parser = subparsers.add_parser(
        "quant", help="Compute a bulk composition from measured k-ratios"
    )
    quant_parser.add_argument(
        "config", type=str, help="Path to configuration file (YAML or JSON)"
    )
    quant_parser.add_argument(
        "--output", type=str, default=None, help="Write the result as CSV to this path"
    )
    quant_parser.add_argument(
        "--normalize", action="store_true", help="Normalize the composition every iteration"
    )
    quant_parser.set_defaults(func=quant_cmd)

    # Map quantification command
    map_parser = subparsers.add_parser(
        "map", help="Quantify a table of k-ratios (one row per pixel)"
    )
    map_parser.add_argument(
        "config", type=str, help="Configuration with conditions, standards and rules"
    )
    map_parser.add_argument(
        "kratios",
        type=str,
        help="CSV with a pixel label column and columns named like 'Fe K'",
    )
    map_parser.add_argument(
        "--sigma-suffix",
        type=str,
        default="_sigma",
        help="Suffix of uncertainty columns (default: _sigma)",
    )
    map_parser.add_argument(
        "--progress-every", type=int, default=None, help="Log progress every N pixels"
    )
    map_parser.add_argument(
        "--output", type=str, default=None, help="Output CSV path (default: print to stdout)"
    )
    map_parser.set_defaults(func=map_cmd)

    # Layered quantification command
    layers_parser = subparsers.add_parser(
        "layers", help="Compute layer compositions and mass-thicknesses of a thin film stack"
    )
    layers_parser.add_argument(
        "config", type=str, help="Path to layered configuration file (YAML or JSON)"
    )
    layers_parser.set_defaults(func=layers_cmd)

    # Line listing command
    lines_parser = subparsers.add_parser("lines", help="List tabulated X-ray lines of an element")
    lines_parser.add_argument("element", type=str, help="Element symbol, e.g. Fe")
    lines_parser.add_argument(
        "--beam-energy", type=float, default=None, help="Beam energy (keV) for overvoltages"
    )
    lines_parser.set_defaults(func=lines_cmd)

    args = parser.parse_args()

    # Setup logging
    setup_logging(level=args.log_level)

    # Execute command
    if args.command is None:
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except Exception as e:
        logger.error(f"Error executing command: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
