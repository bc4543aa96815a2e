#!/usr/bin/env python3
"""
Main entry point for multispectral band coregistration.
Supports command-line execution and configuration file input.
"""

import argparse
import json
import sys
from pathlib import Path
import logging
from datetime import datetime

from coregistration import BandCoregistration, CoregistrationConfig
from defaults import (
    DEFAULT_MAX_SHIFT,
    DEFAULT_MIN_OVERLAP,
    DEFAULT_REFERENCE_BAND,
    DEFAULT_BAND_NAMES,
    DEFAULT_WORKERS,
    DEFAULT_OUTPUT_DIR
)
from utils import setup_logging, create_output_directory


def load_config(config_path: str) -> dict:
    """Load configuration from JSON file."""
    with open(config_path, 'r') as f:
        return json.load(f)


def save_config(config: dict, output_dir: Path):
    """Save configuration to output directory for reproducibility."""
    config_path = output_dir / 'run_config.json'
    with open(config_path, 'w') as f:
        json.dump(config, f, indent=2)
    logging.info(f"Configuration saved to: {config_path}")


def parse_band_argument(value: str):
    """Parse NAME=PATH into a (name, path) pair."""
    name, sep, path = value.partition('=')
    if not sep or not name or not path:
        raise argparse.ArgumentTypeError(f"Expected NAME=PATH, got '{value}'")
    return name, path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Align multispectral bands to a reference band by whole-pixel translation'
    )

    parser.add_argument(
        '--config',
        type=str,
        help='Path to configuration JSON file'
    )

    parser.add_argument(
        '--band',
        type=parse_band_argument,
        action='append',
        metavar='NAME=PATH',
        help='Single-band raster for one band, e.g. --band Red=red.tif (repeatable)'
    )

    parser.add_argument(
        '--stack',
        type=str,
        help='Multi-band raster holding all bands (overrides config)'
    )

    parser.add_argument(
        '--band-names',
        type=str,
        nargs='+',
        help=f'Band names for --stack in file order (default: {" ".join(DEFAULT_BAND_NAMES)})'
    )

    parser.add_argument(
        '--reference',
        type=str,
        help=f'Reference band name (default: {DEFAULT_REFERENCE_BAND})'
    )

    parser.add_argument(
        '--max-shift',
        type=int,
        help=f'Search window half-width in pixels (default: {DEFAULT_MAX_SHIFT})'
    )

    parser.add_argument(
        '--min-overlap',
        type=int,
        help=f'Valid overlap cells a shift must exceed (default: {DEFAULT_MIN_OVERLAP})'
    )

    parser.add_argument(
        '--workers',
        type=int,
        help=f'Threads used to score candidate shifts (default: {DEFAULT_WORKERS})'
    )

    parser.add_argument(
        '--output-dir',
        type=str,
        help=f'Output directory (default: {DEFAULT_OUTPUT_DIR})'
    )

    parser.add_argument(
        '--no-visualizations',
        action='store_true',
        help='Skip false color composite rendering'
    )

    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose output'
    )

    return parser


def build_config_dict(args) -> dict:
    """Merge the optional config file with command-line overrides."""
    config_dict = load_config(args.config) if args.config else {}

    if args.band:
        config_dict['band_paths'] = dict(args.band)
        config_dict.pop('stack_path', None)
    if args.stack:
        config_dict['stack_path'] = args.stack
        config_dict.pop('band_paths', None)
    if args.band_names:
        config_dict['band_names'] = args.band_names
    if args.reference:
        config_dict['reference_band'] = args.reference
    if args.max_shift is not None:
        config_dict['max_shift'] = args.max_shift
    if args.min_overlap is not None:
        config_dict['min_overlap'] = args.min_overlap
    if args.workers is not None:
        config_dict['workers'] = args.workers
    if args.output_dir:
        config_dict['output_dir'] = args.output_dir
    if args.no_visualizations:
        config_dict['create_visualizations'] = False
    if args.verbose:
        config_dict['verbose'] = True

    return config_dict


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    config_dict = build_config_dict(args)

    # Validate required parameters
    if not config_dict.get('band_paths') and not config_dict.get('stack_path'):
        print("Error: input bands are required")
        print("Provide them via --config file, --band NAME=PATH arguments or --stack")
        sys.exit(1)

    # Create configuration object
    config = CoregistrationConfig.from_dict(config_dict)

    # Setup output directory and logging
    output_dir = create_output_directory(config.output_dir)
    setup_logging(output_dir, verbose=config.verbose)

    logging.info("=" * 80)
    logging.info("MULTISPECTRAL BAND COREGISTRATION")
    logging.info("=" * 80)
    logging.info(f"Timestamp: {datetime.now().isoformat()}")
    if config.stack_path:
        logging.info(f"Stack: {config.stack_path} ({', '.join(config.band_names)})")
    else:
        for name, path in config.band_paths.items():
            logging.info(f"{name}: {path}")
    logging.info(f"Reference band: {config.reference_band}")
    logging.info(f"Max shift: {config.max_shift}")
    logging.info(f"Output directory: {output_dir}")
    logging.info("=" * 80)

    # Save configuration for reproducibility
    save_config(config_dict, output_dir)

    try:
        registrator = BandCoregistration(config, output_dir)

        registrator.load_bands()
        registrator.run()

        outputs = registrator.save_aligned_bands()

        if config.create_visualizations:
            logging.info("\nCreating false color composites...")
            registrator.create_visualizations()

        logging.info("\nGenerating coregistration report...")
        registrator.generate_report()

        logging.info("\n" + "=" * 80)
        logging.info("COREGISTRATION COMPLETED SUCCESSFULLY")
        for name, path in outputs.items():
            logging.info(f"  {name}: {path}")
        logging.info(f"All outputs saved to: {output_dir}")
        logging.info("=" * 80)

    except Exception as e:
        logging.error(f"Coregistration failed with error: {e}", exc_info=True)
        sys.exit(1)

    return output_dir


if __name__ == '__main__':
    main()
