"""Main CLI entry point for rnaloc-pipeline.

Provides command group with global options and subcommands for pipeline operations.
"""

import logging
import sys
from pathlib import Path

import click

from rnaloc_pipeline import __version__
from rnaloc_pipeline.config.loader import load_config
from rnaloc_pipeline.cli.validate_cmd import validate, validate_stage
from rnaloc_pipeline.cli.classify_cmd import classify, classify_stage
from rnaloc_pipeline.persistence import PipelineStore, ProvenanceTracker


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


@click.group()
@click.option(
    '--config',
    type=click.Path(exists=True, path_type=Path),
    default='config/default.yaml',
    help='Path to pipeline configuration YAML file'
)
@click.option(
    '--verbose',
    is_flag=True,
    help='Enable verbose logging (DEBUG level)'
)
@click.pass_context
def cli(ctx, config, verbose):
    """rnaloc-pipeline: validation and classification of subcellular RNA localization data.

    Re-derives normalized partition coefficients and categories of a curated
    gene table, then models localization category from RBP covariates.
    """
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logging.debug("Verbose logging enabled")


@cli.command()
@click.pass_context
def info(ctx):
    """Display pipeline information and configuration summary."""
    config_path = ctx.obj['config_path']

    click.echo(f"rnaloc-pipeline v{__version__}")
    click.echo(f"Config: {config_path}")
    click.echo()

    try:
        config = load_config(config_path)

        click.echo(f"Config Hash: {config.config_hash()[:16]}...")
        click.echo()

        click.echo(click.style("Dataset:", bold=True))
        click.echo(f"  Input: {config.input_path}")
        click.echo(f"  Version: {config.dataset.version}")
        if config.dataset.source:
            click.echo(f"  Source: {config.dataset.source}")
        click.echo()

        click.echo(click.style("Paths:", bold=True))
        click.echo(f"  Output Directory: {config.output_dir}")
        click.echo(f"  DuckDB Path: {config.duckdb_path}")
        click.echo()

        click.echo(click.style("Validation:", bold=True))
        click.echo(f"  Composition Tolerance: {config.validation.composition_tolerance:g}")
        click.echo(f"  Median Rounding Digits: {config.validation.rounding_digits}")
        click.echo(f"  Comparison Tolerance: {config.validation.comparison_tolerance:g}")
        click.echo()

        click.echo(click.style("Classifier:", bold=True))
        click.echo(f"  Max Iterations: {config.classifier.max_iterations}")
        click.echo(f"  Seed: {config.classifier.seed}")
        click.echo(f"  Grid: {config.classifier.grid_range} x {config.classifier.grid_steps} steps")
        click.echo(f"  Boundary Pairs: {len(config.classifier.boundary_pairs)}")

        if config.duckdb_path.exists():
            with PipelineStore.from_config(config) as store:
                checkpoints = store.list_checkpoints()
            if checkpoints:
                click.echo()
                click.echo(click.style("Stored Tables:", bold=True))
                for checkpoint in checkpoints:
                    click.echo(f"  {checkpoint['table_name']}: {checkpoint['row_count']} rows")

    except Exception as e:
        click.echo(click.style(f"Error loading config: {e}", fg='red'), err=True)
        ctx.exit(1)


@cli.command('run')
@click.option(
    '--skip-viz',
    is_flag=True,
    help='Skip plot generation'
)
@click.pass_context
def run(ctx, skip_viz):
    """Run validation then classification in one go.

    Outputs go to {output_dir}/validation and {output_dir}/classification.
    """
    config_path = ctx.obj['config_path']

    click.echo(click.style("=== Localization Pipeline ===", bold=True))
    click.echo()

    store = None
    try:
        config = load_config(config_path)
        store = PipelineStore.from_config(config)
        provenance = ProvenanceTracker.from_config(config)

        output_dir = Path(config.output_dir)

        click.echo(click.style("Stage 1: Validation", bold=True, fg='cyan'))
        report = validate_stage(config, store, provenance, output_dir / "validation", skip_viz=skip_viz)

        click.echo(click.style("Stage 2: Classification", bold=True, fg='cyan'))
        result = classify_stage(config, store, provenance, output_dir / "classification", skip_viz=skip_viz)

        provenance.save_to_store(store)
        provenance_path = provenance.save_sidecar(output_dir / "pipeline")

        click.echo(click.style("=== Pipeline Summary ===", bold=True))
        click.echo(f"Validation: {'PASSED ✓' if report.passed else 'FAILED ✗ (diagnostic only)'}")
        click.echo(f"Pseudo-R²: {result.pseudo_r_squared:.4f}")
        click.echo(f"Accuracy: {result.accuracy:.1%}")
        click.echo(f"Provenance: {provenance_path}")

    except Exception as e:
        click.echo(click.style(f"Pipeline failed: {e}", fg='red'), err=True)
        logger.exception("Pipeline failed")
        sys.exit(1)
    finally:
        if store is not None:
            store.close()


# Register commands
cli.add_command(validate)
cli.add_command(classify)


if __name__ == '__main__':
    cli()
