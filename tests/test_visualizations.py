"""Tests for visualization generation."""

import matplotlib
import polars as pl
import pytest

from rnaloc_pipeline.classification import confusion_matrix
from rnaloc_pipeline.output.visualizations import (
    CATEGORY_COLORS,
    generate_classification_plots,
    generate_validation_plots,
    plot_category_counts,
    plot_confusion_matrix,
    plot_decision_surface,
    plot_normalization_residuals,
)
from rnaloc_pipeline.validation import derive_normalized, normalized_table


@pytest.fixture
def confusion() -> pl.DataFrame:
    return confusion_matrix(
        predicted=["ER", "TG", "CY", "DF", "ER"],
        actual=["ER", "TG", "ER", "DF", "CY"],
        classes=["DF", "ER", "TG", "CY"],
    )


@pytest.fixture
def surface() -> pl.DataFrame:
    """3x3 surface laid out with the first covariate varying slowest."""
    return pl.DataFrame({
        "CLIP_TIS11B": [-1.0] * 3 + [0.0] * 3 + [1.0] * 3,
        "CLIP_HuR": [-1.0, 0.0, 1.0] * 3,
        "predicted_category": ["ER", "ER", "CY", "ER", "CY", "CY", "TG", "TG", "CY"],
    })


def test_matplotlib_uses_agg_backend():
    """Test that plots render without a display."""
    assert matplotlib.get_backend().lower() == "agg"


def test_category_colors_cover_levels():
    """Test that every category has a color."""
    assert set(CATEGORY_COLORS) == {"DF", "ER", "TG", "CY"}


def test_plot_category_counts_creates_file(gene_table, tmp_path):
    """Test that the category count plot creates a PNG file."""
    output_path = tmp_path / "category_counts.png"

    result = plot_category_counts(gene_table, output_path)

    assert result == output_path
    assert output_path.exists()
    assert output_path.stat().st_size > 0


def test_plot_category_counts_with_missing_category(gene_table, tmp_path):
    """Test that genes without a category do not break the plot."""
    df = gene_table.with_columns(
        pl.when(pl.col("gene_name") == "GENE0").then(None).otherwise(pl.col("category")).alias("category")
    )

    assert plot_category_counts(df, tmp_path / "counts.png").exists()


def test_plot_normalization_residuals_creates_file(gene_table, tmp_path):
    """Test that the residual histogram creates a PNG file."""
    normalized = normalized_table(gene_table, derive_normalized(gene_table, rounding_digits=None))
    output_path = tmp_path / "residuals.png"

    assert plot_normalization_residuals(normalized, output_path) == output_path
    assert output_path.exists()


def test_plot_confusion_matrix_creates_file(confusion, tmp_path):
    """Test that the confusion heatmap creates a PNG file."""
    output_path = tmp_path / "confusion.png"

    assert plot_confusion_matrix(confusion, output_path) == output_path
    assert output_path.exists()


def test_plot_decision_surface_creates_file(surface, tmp_path):
    """Test that a decision surface renders to PNG."""
    output_path = tmp_path / "plots" / "surface.png"

    result = plot_decision_surface(
        surface, ("CLIP_TIS11B", "CLIP_HuR"), output_path, classes=["ER", "TG", "CY"]
    )

    assert result == output_path
    assert output_path.exists()


def test_generate_validation_plots(gene_table, tmp_path):
    """Test that both validation plots are generated."""
    normalized = normalized_table(gene_table, derive_normalized(gene_table))

    plots = generate_validation_plots(gene_table, normalized, tmp_path / "plots")

    assert set(plots) == {"category_counts", "normalization_residuals"}
    assert all(path.exists() for path in plots.values())


def test_generate_classification_plots(confusion, surface, tmp_path):
    """Test confusion matrix plus one surface per pair."""
    plots = generate_classification_plots(
        confusion,
        {("CLIP_TIS11B", "CLIP_HuR"): surface},
        tmp_path / "plots",
        classes=["DF", "ER", "TG", "CY"],
    )

    assert set(plots) == {"confusion_matrix", "decision_surface_CLIP_TIS11B_CLIP_HuR"}
    assert all(path.exists() for path in plots.values())


def test_generate_plots_survives_failure(confusion, tmp_path):
    """Test that a broken surface is skipped, the rest still rendered."""
    broken = pl.DataFrame({"a": [0.0], "b": [0.0], "predicted_category": ["NUCLEUS"]})

    plots = generate_classification_plots(
        confusion, {("a", "b"): broken}, tmp_path / "plots", classes=["DF", "ER"]
    )

    assert "confusion_matrix" in plots
    assert "decision_surface_a_b" not in plots
