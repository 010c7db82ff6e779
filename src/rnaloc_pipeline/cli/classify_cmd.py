"""Classify command: fit the multinomial localization classifier.

Orchestrates the classifier stage:
- Reads the gene table (schema-validated)
- Imputes, sqrt-transforms and standardizes covariates
- Fits the multinomial model and the intercept-only null model
- Writes coefficients, diagnostics, confusion matrix, decision surfaces and plots
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click

from rnaloc_pipeline.classification import ClassificationResult, run_classification
from rnaloc_pipeline.config.loader import load_config, load_config_with_overrides
from rnaloc_pipeline.config.schema import PipelineConfig
from rnaloc_pipeline.dataset import (
    GENE_TABLE_NAME,
    load_from_checkpoint,
    load_gene_table,
    load_to_duckdb,
)
from rnaloc_pipeline.output import generate_classification_plots, write_table_output
from rnaloc_pipeline.persistence import PipelineStore, ProvenanceTracker

logger = logging.getLogger(__name__)

COEFFICIENTS_TABLE_NAME = "model_coefficients"
DIAGNOSTICS_TABLE_NAME = "model_diagnostics"
CONFUSION_TABLE_NAME = "confusion_matrix"
SURFACES_TABLE_NAME = "decision_surfaces"


def classify_stage(
    config: PipelineConfig,
    store: PipelineStore,
    provenance: ProvenanceTracker,
    output_dir: Path,
    skip_viz: bool = False,
    force: bool = False,
) -> ClassificationResult:
    """Run the classifier stage and write its outputs.

    Reuses the gene_table checkpoint when a validate run already stored it
    from the same input file, unless force is set. Otherwise the table is
    read from config.input_path and checkpointed.
    """
    settings = config.classifier

    click.echo(click.style("Loading gene table...", bold=True))
    df = None if force else load_from_checkpoint(store, config.input_path)
    if df is not None:
        click.echo(click.style(f"  {df.height} genes loaded from checkpoint", fg='green'))
    else:
        if not force and store.has_checkpoint(GENE_TABLE_NAME):
            click.echo(click.style(
                "  Stored gene table was read from a different input, reloading", fg='yellow'
            ))
        df = load_gene_table(config.input_path)
        load_to_duckdb(df, store, provenance, source_path=config.input_path)
        click.echo(click.style(f"  {df.height} genes loaded from {config.input_path}", fg='green'))
    click.echo()

    click.echo(click.style("Fitting multinomial model...", bold=True))
    click.echo(f"  Max iterations: {settings.max_iterations}, seed: {settings.seed}")

    result = run_classification(
        df,
        max_iterations=settings.max_iterations,
        seed=settings.seed,
        init_range=settings.init_range,
        boundary_pairs=settings.boundary_pairs,
        grid_range=settings.grid_range,
        grid_steps=settings.grid_steps,
    )
    diagnostics = result.diagnostics()

    if result.model.converged:
        click.echo(click.style(
            f"  Converged after {result.model.n_iterations} iterations", fg='green'
        ))
    else:
        click.echo(click.style(
            f"  Did not converge within {settings.max_iterations} iterations "
            f"({result.model.message}); diagnostics reflect the stopping point",
            fg='yellow'
        ))
    click.echo(f"  Deviance: {diagnostics['deviance']:.2f} (null: {diagnostics['null_deviance']:.2f})")
    click.echo(f"  Pseudo-R²: {diagnostics['pseudo_r_squared']:.4f}")
    click.echo(
        f"  Accuracy: {diagnostics['accuracy']:.1%} "
        f"(null model: {diagnostics['null_accuracy']:.1%})"
    )
    click.echo()

    provenance.record_step('fit_multinomial', {
        key: diagnostics[key]
        for key in (
            'n_observations', 'deviance', 'null_deviance', 'pseudo_r_squared',
            'accuracy', 'iterations', 'converged', 'seed',
        )
    })

    click.echo(click.style("Writing classification outputs...", bold=True))
    output_dir.mkdir(parents=True, exist_ok=True)

    outputs = {
        COEFFICIENTS_TABLE_NAME: (result.coefficients, "Multinomial coefficients with Wald statistics"),
        DIAGNOSTICS_TABLE_NAME: (result.diagnostics_table(), "Deviance, pseudo-R² and accuracy"),
        CONFUSION_TABLE_NAME: (result.confusion, "Confusion matrix (rows true, columns predicted)"),
        SURFACES_TABLE_NAME: (result.surfaces_table(), "Pairwise decision surfaces"),
    }
    for table_name, (table, description) in outputs.items():
        store.save_dataframe(table, table_name, description=description)
        paths = write_table_output(table, output_dir, table_name)
        click.echo(click.style(f"  {table_name}: {paths['tsv']}", fg='green'))

    if not skip_viz:
        plots = generate_classification_plots(
            result.confusion,
            result.surfaces,
            output_dir / "plots",
            classes=list(result.model.classes),
        )
        click.echo(click.style(f"  Plots: {len(plots)} written to {output_dir / 'plots'}", fg='green'))
    click.echo()

    return result


@click.command('classify')
@click.option(
    '--output-dir',
    type=click.Path(path_type=Path),
    default=None,
    help='Output directory for classification outputs (default: {output_dir}/classification)'
)
@click.option(
    '--max-iterations',
    type=int,
    default=None,
    help='Override the optimizer iteration budget'
)
@click.option(
    '--seed',
    type=int,
    default=None,
    help='Override the seed for starting coefficients'
)
@click.option(
    '--grid-steps',
    type=int,
    default=None,
    help='Override grid points per axis for decision surfaces'
)
@click.option(
    '--skip-viz',
    is_flag=True,
    help='Skip plot generation'
)
@click.option(
    '--force',
    is_flag=True,
    help='Reload the gene table from input_path even if a checkpoint exists'
)
@click.pass_context
def classify(ctx, output_dir: Optional[Path], max_iterations: Optional[int],
             seed: Optional[int], grid_steps: Optional[int], skip_viz: bool, force: bool):
    """Fit the multinomial classifier of localization category on covariates.

    The model is fitted on all genes; DF genes are one of the four classes.

    Examples:

        # Fit with configured settings
        rnaloc-pipeline classify

        # Coarser decision surfaces, no plots
        rnaloc-pipeline classify --grid-steps 100 --skip-viz
    """
    config_path = ctx.obj['config_path']

    click.echo(click.style("=== Localization Classifier ===", bold=True))
    click.echo()

    overrides = {
        f"classifier.{key}": value
        for key, value in (
            ("max_iterations", max_iterations),
            ("seed", seed),
            ("grid_steps", grid_steps),
        )
        if value is not None
    }

    store = None
    try:
        if overrides:
            config = load_config_with_overrides(config_path, overrides)
        else:
            config = load_config(config_path)

        store = PipelineStore.from_config(config)
        provenance = ProvenanceTracker.from_config(config)

        if output_dir is None:
            output_dir = Path(config.output_dir) / "classification"

        classify_stage(config, store, provenance, output_dir, skip_viz=skip_viz, force=force)

        provenance.save_to_store(store)
        provenance_path = provenance.save_sidecar(output_dir / "classification")

        click.echo(click.style("Classification complete!", fg='green', bold=True))
        click.echo(f"Provenance: {provenance_path}")

    except Exception as e:
        click.echo(click.style(f"Classify command failed: {e}", fg='red'), err=True)
        logger.exception("Classify command failed")
        sys.exit(1)
    finally:
        if store is not None:
            store.close()
