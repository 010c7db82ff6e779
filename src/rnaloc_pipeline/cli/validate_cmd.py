"""Validate command: reproduce derived columns of the gene table.

Commands for:
- Checking that raw partition coefficients sum to 1
- Re-deriving median-normalized coefficients under a rounding convention
- Checking that categories are the argmax of normalized coefficients
- Writing the validation report, the recomputed table and plots
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click

from rnaloc_pipeline.config.loader import load_config, load_config_with_overrides
from rnaloc_pipeline.config.schema import PipelineConfig
from rnaloc_pipeline.dataset import load_gene_table, load_to_duckdb
from rnaloc_pipeline.output import generate_validation_plots, write_table_output
from rnaloc_pipeline.persistence import PipelineStore, ProvenanceTracker
from rnaloc_pipeline.validation import ValidationReport, normalized_table, run_validation

logger = logging.getLogger(__name__)

NORMALIZED_TABLE_NAME = "normalized_coefficients"


def validate_stage(
    config: PipelineConfig,
    store: PipelineStore,
    provenance: ProvenanceTracker,
    output_dir: Path,
    skip_viz: bool = False,
) -> ValidationReport:
    """Run the validator stage and write its outputs.

    Args:
        config: Pipeline configuration
        store: Open PipelineStore
        provenance: ProvenanceTracker for this run
        output_dir: Directory for the report, tables and plots
        skip_viz: If True, don't render plots

    Returns:
        ValidationReport (mismatches are recorded in it, not raised)
    """
    settings = config.validation

    click.echo(click.style("Loading gene table...", bold=True))
    df = load_gene_table(config.input_path)
    load_to_duckdb(df, store, provenance, source_path=config.input_path)
    click.echo(click.style(f"  {df.height} genes loaded from {config.input_path}", fg='green'))
    click.echo()

    click.echo(click.style("Running validation checks...", bold=True))
    report, computed = run_validation(
        df,
        composition_tolerance=settings.composition_tolerance,
        rounding_digits=settings.rounding_digits,
        comparison_tolerance=settings.comparison_tolerance,
    )

    composition = report.composition
    click.echo(click.style(
        f"  Composition: {composition.failing_count}/{composition.total_records} genes "
        f"off by more than {composition.tolerance:g}",
        fg='green' if composition.passed else 'yellow'
    ))
    for column, check in report.normalization.items():
        click.echo(click.style(
            f"  {column}: {'PASSED' if check.passed else 'FAILED'} "
            f"(mean {check.difference_kind} difference {check.mean_difference:.3g})",
            fg='green' if check.passed else 'yellow'
        ))
    agreement = report.category_agreement
    click.echo(click.style(
        f"  Categories: {agreement.mismatch_count} mismatches, {agreement.tie_count} ties "
        f"in {agreement.checked_count} non-DF genes",
        fg='green' if agreement.passed else 'yellow'
    ))
    click.echo()

    provenance.record_step('run_validation', {
        'passed': report.passed,
        'composition_failures': composition.failing_count,
        'normalization_passed': report.normalization_passed,
        'rounding_digits': settings.rounding_digits,
        'category_mismatches': agreement.mismatch_count,
        'category_ties': agreement.tie_count,
    })

    click.echo(click.style("Writing validation outputs...", bold=True))
    output_dir.mkdir(parents=True, exist_ok=True)

    report_md = report.to_markdown(output_dir / "validation_report.md")
    report_json = report.to_json(output_dir / "validation_report.json")

    normalized = normalized_table(df, computed)
    store.save_dataframe(
        normalized,
        NORMALIZED_TABLE_NAME,
        description="Reported vs recomputed normalized partition coefficients",
    )
    paths = write_table_output(
        normalized,
        output_dir,
        NORMALIZED_TABLE_NAME,
        metadata={"rounding_digits": settings.rounding_digits},
    )

    click.echo(click.style(f"  Report: {report_md}", fg='green'))
    click.echo(click.style(f"  Report (JSON): {report_json}", fg='green'))
    click.echo(click.style(f"  Normalized table: {paths['tsv']}", fg='green'))

    if not skip_viz:
        plots = generate_validation_plots(df, normalized, output_dir / "plots")
        click.echo(click.style(f"  Plots: {len(plots)} written to {output_dir / 'plots'}", fg='green'))
    click.echo()

    return report


@click.command('validate')
@click.option(
    '--output-dir',
    type=click.Path(path_type=Path),
    default=None,
    help='Output directory for validation outputs (default: {output_dir}/validation)'
)
@click.option(
    '--rounding-digits',
    type=int,
    default=None,
    help='Override decimal places the column medians are rounded to (0 = no rounding)'
)
@click.option(
    '--skip-viz',
    is_flag=True,
    help='Skip plot generation'
)
@click.pass_context
def validate(ctx, output_dir: Optional[Path], rounding_digits: Optional[int], skip_viz: bool):
    """Validate the gene table's derived columns against its raw columns.

    Validation is diagnostic: mismatches are reported, never fatal, and the
    command exits 0 whether or not the checks pass.

    Examples:

        # Validate with the configured rounding convention
        rnaloc-pipeline validate

        # Show what happens without rounding the medians
        rnaloc-pipeline validate --rounding-digits 0
    """
    config_path = ctx.obj['config_path']

    click.echo(click.style("=== Gene Table Validation ===", bold=True))
    click.echo()

    store = None
    try:
        if rounding_digits is not None:
            config = load_config_with_overrides(
                config_path, {"validation.rounding_digits": rounding_digits}
            )
        else:
            config = load_config(config_path)

        store = PipelineStore.from_config(config)
        provenance = ProvenanceTracker.from_config(config)

        if output_dir is None:
            output_dir = Path(config.output_dir) / "validation"

        report = validate_stage(config, store, provenance, output_dir, skip_viz=skip_viz)

        provenance.save_to_store(store)
        provenance_path = provenance.save_sidecar(output_dir / "validation")

        status = click.style(
            "ALL CHECKS PASSED ✓" if report.passed else "CHECKS FAILED (see report) ✗",
            fg='green' if report.passed else 'yellow',
            bold=True,
        )
        click.echo(f"Overall Status: {status}")
        click.echo(f"Provenance: {provenance_path}")

    except Exception as e:
        click.echo(click.style(f"Validation command failed: {e}", fg='red'), err=True)
        logger.exception("Validation command failed")
        sys.exit(1)
    finally:
        if store is not None:
            store.close()
