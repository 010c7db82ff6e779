"""Integration tests for the CLI commands using CliRunner.

Tests:
- info with and without stored tables
- validate: reports, normalized table, checkpoint, rounding override
- classify: model outputs, checkpoint reuse, overrides
- run: both stages in one invocation
- error handling for a missing or malformed gene table
"""

import json

import polars as pl
import pytest
from click.testing import CliRunner

from conftest import make_gene_table, write_config
from rnaloc_pipeline.cli.main import cli
from rnaloc_pipeline.persistence import PipelineStore


@pytest.fixture
def runner():
    return CliRunner()


def test_cli_help(runner):
    """Test that the group lists every command."""
    result = runner.invoke(cli, ['--help'])

    assert result.exit_code == 0
    for command in ['info', 'validate', 'classify', 'run']:
        assert command in result.output


def test_info_command(runner, config_path):
    """Test that info prints settings from the config."""
    result = runner.invoke(cli, ['--config', str(config_path), 'info'])

    assert result.exit_code == 0
    assert 'rnaloc-pipeline v' in result.output
    assert 'Config Hash:' in result.output
    assert 'Median Rounding Digits: 4' in result.output
    assert 'Seed: 7' in result.output


def test_validate_help(runner, config_path):
    """Test validate options."""
    result = runner.invoke(cli, ['--config', str(config_path), 'validate', '--help'])

    assert result.exit_code == 0
    assert '--output-dir' in result.output
    assert '--rounding-digits' in result.output
    assert '--skip-viz' in result.output


def test_validate_generates_outputs(runner, config_path, tmp_path):
    """Test that validate writes reports, tables, plots and a checkpoint."""
    result = runner.invoke(cli, ['--config', str(config_path), 'validate'])

    assert result.exit_code == 0, result.output
    assert 'ALL CHECKS PASSED' in result.output

    output_dir = tmp_path / "results" / "validation"
    report = json.loads((output_dir / "validation_report.json").read_text())
    assert report["passed"] is True
    assert (output_dir / "validation_report.md").exists()
    assert (output_dir / "normalized_coefficients.tsv").exists()
    assert (output_dir / "normalized_coefficients.parquet").exists()
    assert (output_dir / "plots" / "category_counts.png").exists()
    assert (tmp_path / "results" / "validation.provenance.json").exists()

    with PipelineStore(tmp_path / "test.duckdb") as store:
        assert store.has_checkpoint("gene_table")
        assert store.has_checkpoint("normalized_coefficients")
        assert store.load_dataframe("_provenance").height == 1


def test_validate_without_rounding_reports_failure(runner, config_path, tmp_path):
    """Test that a failing convention is reported but exits 0."""
    result = runner.invoke(cli, [
        '--config', str(config_path),
        'validate',
        '--rounding-digits', '0',
        '--skip-viz',
    ])

    assert result.exit_code == 0, result.output
    assert 'CHECKS FAILED' in result.output

    report = json.loads(
        (tmp_path / "results" / "validation" / "validation_report.json").read_text()
    )
    assert report["passed"] is False
    assert report["rounding_digits"] == 0
    assert not (tmp_path / "results" / "validation" / "plots").exists()


def test_validate_custom_output_dir(runner, config_path, tmp_path):
    """Test --output-dir redirects the validation outputs."""
    custom = tmp_path / "custom"

    result = runner.invoke(cli, [
        '--config', str(config_path), 'validate', '--output-dir', str(custom), '--skip-viz'
    ])

    assert result.exit_code == 0, result.output
    assert (custom / "validation_report.md").exists()


def test_validate_missing_table(runner, tmp_path):
    """Test that a missing gene table exits with an error."""
    config_path = write_config(tmp_path, tmp_path / "missing.tsv")

    result = runner.invoke(cli, ['--config', str(config_path), 'validate'])

    assert result.exit_code == 1
    assert 'Validation command failed' in result.output


def test_validate_schema_error(runner, tmp_path, gene_table):
    """Test that a table missing a required column exits with an error."""
    path = tmp_path / "broken.tsv"
    gene_table.drop("npco_cy").write_csv(path, separator="\t", null_value="NA")
    config_path = write_config(tmp_path, path)

    result = runner.invoke(cli, ['--config', str(config_path), 'validate'])

    assert result.exit_code == 1
    assert 'npco_cy' in result.output


def test_classify_generates_outputs(runner, config_path, tmp_path):
    """Test that classify writes coefficients, diagnostics, confusion and surfaces."""
    result = runner.invoke(cli, ['--config', str(config_path), 'classify', '--skip-viz'])

    assert result.exit_code == 0, result.output
    assert 'Pseudo-R²' in result.output
    assert 'Classification complete!' in result.output

    output_dir = tmp_path / "results" / "classification"
    for name in ["model_coefficients", "model_diagnostics", "confusion_matrix", "decision_surfaces"]:
        assert (output_dir / f"{name}.tsv").exists()
        assert (output_dir / f"{name}.parquet").exists()

    confusion = pl.read_parquet(output_dir / "confusion_matrix.parquet")
    assert confusion["true_category"].to_list() == ["DF", "ER", "TG", "CY"]
    assert sum(confusion[c].sum() for c in ["DF", "ER", "TG", "CY"]) == 80

    surfaces = pl.read_parquet(output_dir / "decision_surfaces.parquet")
    assert surfaces.height == 25
    assert set(surfaces["covariate_x"].to_list()) == {"CLIP_TIS11B"}

    coefficients = pl.read_parquet(output_dir / "model_coefficients.parquet")
    assert coefficients.height == 3 * 33

    diagnostics = dict(pl.read_parquet(output_dir / "model_diagnostics.parquet").iter_rows())
    assert diagnostics["seed"] == "7"
    assert diagnostics["reference_category"] == "DF"


def test_classify_overrides(runner, config_path, tmp_path):
    """Test that CLI flags override classifier settings."""
    result = runner.invoke(cli, [
        '--config', str(config_path),
        'classify',
        '--grid-steps', '3',
        '--seed', '11',
        '--max-iterations', '1',
        '--skip-viz',
    ])

    assert result.exit_code == 0, result.output
    assert 'Did not converge' in result.output

    output_dir = tmp_path / "results" / "classification"
    surfaces = pl.read_parquet(output_dir / "decision_surfaces.parquet")
    assert surfaces.height == 9
    diagnostics = dict(pl.read_parquet(output_dir / "model_diagnostics.parquet").iter_rows())
    assert diagnostics["seed"] == "11"
    assert diagnostics["converged"] == "False"


def test_classify_reuses_checkpoint(runner, config_path, tmp_path):
    """Test that classify after validate loads the stored gene table."""
    runner.invoke(cli, ['--config', str(config_path), 'validate', '--skip-viz'])
    (tmp_path / "gene_table.tsv").unlink()

    result = runner.invoke(cli, ['--config', str(config_path), 'classify', '--skip-viz'])

    assert result.exit_code == 0, result.output
    assert 'loaded from checkpoint' in result.output

    forced = runner.invoke(cli, ['--config', str(config_path), 'classify', '--force', '--skip-viz'])
    assert forced.exit_code == 1


def test_classify_ignores_checkpoint_from_other_input(runner, config_path, tmp_path):
    """Test that a gene_table stored from another file is not reused."""
    runner.invoke(cli, ['--config', str(config_path), 'validate', '--skip-viz'])

    other_path = tmp_path / "other_table.tsv"
    make_gene_table(n_genes=100, seed=5).write_csv(other_path, separator="\t", null_value="NA")
    other_config = write_config(tmp_path, other_path)

    result = runner.invoke(cli, ['--config', str(other_config), 'classify', '--skip-viz'])

    assert result.exit_code == 0, result.output
    assert 'read from a different input' in result.output
    assert 'loaded from checkpoint' not in result.output

    diagnostics = dict(pl.read_parquet(
        tmp_path / "results" / "classification" / "model_diagnostics.parquet"
    ).iter_rows())
    assert diagnostics["n_observations"] == "100"

    with PipelineStore(tmp_path / "test.duckdb") as store:
        assert store.load_dataframe("gene_table").height == 100


def test_classify_plots(runner, config_path, tmp_path):
    """Test that classify renders the confusion matrix and surfaces."""
    result = runner.invoke(cli, ['--config', str(config_path), 'classify'])

    assert result.exit_code == 0, result.output
    plots_dir = tmp_path / "results" / "classification" / "plots"
    assert (plots_dir / "confusion_matrix.png").exists()
    assert (plots_dir / "decision_surface_CLIP_TIS11B_CLIP_HuR.png").exists()


def test_run_command(runner, config_path, tmp_path):
    """Test that run executes both stages and one provenance record."""
    result = runner.invoke(cli, ['--config', str(config_path), 'run', '--skip-viz'])

    assert result.exit_code == 0, result.output
    assert 'Stage 1: Validation' in result.output
    assert 'Stage 2: Classification' in result.output
    assert 'PASSED' in result.output

    provenance = json.loads((tmp_path / "results" / "pipeline.provenance.json").read_text())
    step_names = [step["step_name"] for step in provenance["processing_steps"]]
    assert step_names == ["load_gene_table", "run_validation", "fit_multinomial"]

    info = runner.invoke(cli, ['--config', str(config_path), 'info'])
    assert 'Stored Tables:' in info.output
    assert 'model_coefficients' in info.output
