#!/usr/bin/env python3
"""
ednataxa Command-Line Interface

Merges exported QIIME 2 feature tables with taxonomy and renders interactive
taxonomic charts; optionally runs the upstream QIIME 2 workflow first.
"""

import argparse
import sys
import logging
import time
from pathlib import Path
from typing import Dict, List, Optional

from . import __version__
from . import config, qiime, tables, utils, visualization
from .manifest import PairedSample

logger = logging.getLogger(__name__)


def build_config(
    config_path: Optional[Path] = None,
    **overrides,
) -> config.PipelineConfig:
    """
    Assemble the run configuration.

    Precedence, lowest first: defaults or config file, EDNATAXA_ environment
    variables, explicit overrides. Overrides that are None are ignored.
    """
    cfg = config.load_config_from_file(config_path) if config_path else config.get_default_config()

    env_overrides = config.load_config_from_env()
    if env_overrides:
        cfg = cfg.update(**env_overrides)

    explicit = {key: value for key, value in overrides.items() if value is not None}
    if explicit:
        cfg = cfg.update(**explicit)

    for warning in config.validate_config(cfg):
        logger.warning(f"Config: {warning}")

    return cfg


def run_plots(cfg: config.PipelineConfig) -> Dict[str, Path]:
    """
    Merge the exported tables and write the three taxonomic charts.

    Parameters
    ----------
    cfg : config.PipelineConfig
        Run configuration

    Returns
    -------
    Dict[str, Path]
        Written chart file per chart name

    Raises
    ------
    FileNotFoundError
        If an input table is missing
    ValueError
        If an input table lacks required columns
    visualization.ChartRenderError
        If any chart could not be written
    """
    logger.info("=" * 80)
    logger.info("ednataxa: Taxonomic Composition Charts")
    logger.info("=" * 80)
    logger.info(f"Feature table: {cfg.inputs.feature_table}")
    logger.info(f"Taxonomy table: {cfg.inputs.taxonomy_table}")
    logger.info(f"Output directory: {cfg.output_dir}")
    logger.info("")

    logger.info("Loading exported data...")
    merged = tables.load_merged_table(
        cfg.inputs.feature_table,
        cfg.inputs.taxonomy_table,
        sample_column=cfg.inputs.sample_column,
        ranks=cfg.taxonomy.ranks,
        unassigned=cfg.taxonomy.unassigned_label,
    )

    logger.info("Generating visualizations...")
    paths = visualization.render_charts(
        merged,
        output_dir=cfg.output_dir,
        viz_cfg=cfg.visualization,
        unassigned=cfg.taxonomy.unassigned_label,
    )

    logger.info("")
    logger.info("All visualizations created successfully!")
    for name, path in paths.items():
        logger.info(f"  - {name}: {path}")

    return paths


def _apply_config_log_level(cfg: config.PipelineConfig, args: argparse.Namespace) -> None:
    """Reconfigure logging when the level came from a config file or the environment."""
    if args.log_level is None and cfg.log_level.upper() != "INFO":
        utils.setup_logging(
            log_level=cfg.log_level,
            log_file=str(args.log_file) if args.log_file else None,
        )


def _plotlyjs_mode(value: Optional[str]):
    if value is None:
        return None
    return True if value == 'inline' else value


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--config',
        type=Path,
        default=None,
        help='YAML or JSON configuration file'
    )
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default=None,
        help='Logging verbosity (default: log_level from config/environment, else INFO)'
    )
    parser.add_argument(
        '--log-file',
        type=Path,
        default=None,
        help='Also write log messages to this file'
    )


def main_qiime(argv: Optional[List[str]] = None) -> int:
    """
    CLI entry point for the 'qiime' subcommand.

    Example:
        ednataxa qiime \
            --forward ERR3444605_1.fastq \
            --reverse ERR3444605_2.fastq \
            --sample-id tara-pacific-sample \
            --classifier silva-138-99-515-806-nb-classifier.qza
    """
    parser = argparse.ArgumentParser(
        prog="ednataxa qiime",
        description="Run QIIME 2 import, DADA2, classification and export, then plot",
    )
    parser.add_argument(
        '--forward',
        required=True,
        type=Path,
        help='Forward reads FASTQ (optionally gzipped)'
    )
    parser.add_argument(
        '--reverse',
        required=True,
        type=Path,
        help='Reverse reads FASTQ (optionally gzipped)'
    )
    parser.add_argument(
        '--sample-id',
        default='tara-pacific-sample',
        help='Sample id written to the manifest (default: tara-pacific-sample)'
    )
    parser.add_argument(
        '--classifier',
        type=Path,
        default=None,
        help='Pre-trained classifier artifact (.qza); must already exist'
    )
    parser.add_argument(
        '--work-dir',
        type=Path,
        default=Path('.'),
        help='Directory for artifacts, exports and charts (default: current directory)'
    )
    parser.add_argument(
        '--trunc-len-f',
        type=int,
        default=None,
        help='DADA2 forward truncation length (default: 240)'
    )
    parser.add_argument(
        '--trunc-len-r',
        type=int,
        default=None,
        help='DADA2 reverse truncation length (default: 240)'
    )
    parser.add_argument(
        '--threads',
        type=int,
        default=None,
        help='DADA2 threads, 0 for all cores (default: 1)'
    )
    parser.add_argument(
        '--no-plots',
        action='store_true',
        help='Stop after exporting the tables'
    )
    _add_common_arguments(parser)

    args = parser.parse_args(argv)

    utils.setup_logging(
        log_level=args.log_level or "INFO",
        log_file=str(args.log_file) if args.log_file else None,
    )

    start = time.time()
    try:
        cfg = build_config(
            args.config,
            log_level=args.log_level,
            qiime__classifier_path=args.classifier,
            qiime__trunc_len_f=args.trunc_len_f,
            qiime__trunc_len_r=args.trunc_len_r,
            qiime__n_threads=args.threads,
        )
        _apply_config_log_level(cfg, args)

        tools = qiime.check_qiime_tools()
        missing = [tool for tool, available in tools.items() if not available]
        if missing:
            logger.error(f"Required tools not found in PATH: {missing}")
            return 1

        sample = PairedSample(args.sample_id, args.forward, args.reverse)
        outputs = qiime.run_qiime_workflow([sample], work_dir=args.work_dir, cfg=cfg.qiime)
        logger.info(f"Exported feature table: {outputs.feature_table_tsv}")
        logger.info(f"Exported taxonomy: {outputs.taxonomy_tsv}")

        if not args.no_plots:
            cfg = cfg.update(
                inputs__feature_table=outputs.feature_table_tsv,
                inputs__taxonomy_table=outputs.taxonomy_tsv,
                inputs__sample_column=args.sample_id,
                output_dir=args.work_dir,
            )
            run_plots(cfg)

    except KeyboardInterrupt:
        print("\n\nWorkflow interrupted by user", file=sys.stderr)
        return 130
    except (FileNotFoundError, ValueError, qiime.QiimeError,
            visualization.ChartRenderError) as e:
        logger.error(f"Workflow failed: {e}")
        return 1
    except Exception as e:
        logger.error(f"Workflow failed with error: {e}", exc_info=True)
        return 1

    logger.info(f"Workflow complete in {utils.format_elapsed_time(time.time() - start)}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    argv = sys.argv[1:] if argv is None else list(argv)

    # Support subcommands such as:
    #   ednataxa qiime ...
    if argv and argv[0] == "qiime":
        return main_qiime(argv[1:])

    parser = argparse.ArgumentParser(
        prog="ednataxa",
        description='ednataxa: interactive taxonomic charts from QIIME 2 exports',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Plot exported-data/feature-table.tsv and exported-data/taxonomy.tsv
  # into the current directory
  ednataxa

  # Choose the sample column of a multi-sample table
  ednataxa --sample-column tara-pacific-sample

  # Custom inputs and output directory, linking plotly.js from the CDN
  ednataxa --feature-table ft.tsv --taxonomy tax.tsv --output-dir charts --include-plotlyjs cdn

  # Run the QIIME 2 workflow, then plot
  ednataxa qiime --forward R1.fastq --reverse R2.fastq --classifier silva.qza

Outputs:
  taxonomic_sunburst.html, taxonomic_treemap.html, taxonomic_pie_chart.html
        """
    )
    parser.add_argument(
        '--feature-table',
        type=Path,
        default=None,
        help='biom-convert TSV feature table (default: exported-data/feature-table.tsv)'
    )
    parser.add_argument(
        '--taxonomy',
        type=Path,
        default=None,
        help='QIIME 2 taxonomy TSV (default: exported-data/taxonomy.tsv)'
    )
    parser.add_argument(
        '--sample-column',
        default=None,
        help='Sample column to plot (default: first sample column)'
    )
    parser.add_argument(
        '--output-dir',
        type=Path,
        default=None,
        help='Directory for the chart files (default: current directory)'
    )
    parser.add_argument(
        '--include-plotlyjs',
        choices=['inline', 'cdn'],
        default=None,
        help='Embed plotly.js in each file (inline) or link it from the CDN (default: inline)'
    )
    _add_common_arguments(parser)
    parser.add_argument(
        '--version',
        action='version',
        version=f'ednataxa {__version__}'
    )

    args = parser.parse_args(argv)

    utils.setup_logging(
        log_level=args.log_level or "INFO",
        log_file=str(args.log_file) if args.log_file else None,
    )

    try:
        cfg = build_config(
            args.config,
            log_level=args.log_level,
            output_dir=args.output_dir,
            inputs__feature_table=args.feature_table,
            inputs__taxonomy_table=args.taxonomy,
            inputs__sample_column=args.sample_column,
            visualization__include_plotlyjs=_plotlyjs_mode(args.include_plotlyjs),
        )
        _apply_config_log_level(cfg, args)
        run_plots(cfg)
        return 0

    except KeyboardInterrupt:
        print("\n\nInterrupted by user", file=sys.stderr)
        return 130
    except (FileNotFoundError, ValueError, visualization.ChartRenderError) as e:
        logger.error(f"Error: {e}")
        return 1
    except Exception as e:
        logger.error(f"Plotting failed with error: {e}", exc_info=True)
        return 1


if __name__ == '__main__':
    sys.exit(main())
