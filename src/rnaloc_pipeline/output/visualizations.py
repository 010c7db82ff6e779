"""Visualization generation for validation and classification outputs."""

import logging
from pathlib import Path
from typing import Optional

import matplotlib
import numpy as np
import polars as pl

# Use Agg backend (non-interactive, safe for headless/CLI use)
matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import seaborn as sns  # noqa: E402
from matplotlib.colors import ListedColormap  # noqa: E402
from matplotlib.patches import Patch  # noqa: E402

from rnaloc_pipeline.dataset.models import CATEGORY_LEVELS  # noqa: E402

logger = logging.getLogger(__name__)

CATEGORY_COLORS = {
    "DF": "#95a5a6",
    "ER": "#3498db",
    "TG": "#e74c3c",
    "CY": "#2ecc71",
}


def _save(fig, output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=300, bbox_inches="tight")
    # Close figure to prevent memory leak across many surfaces
    plt.close(fig)
    return output_path


def plot_category_counts(df: pl.DataFrame, output_path: Path) -> Path:
    """
    Create bar chart of gene counts per localization category.

    Args:
        df: Gene table with a category column
        output_path: Path where PNG will be saved

    Returns:
        Path to the saved PNG file

    Notes:
        - Categories shown in DF, ER, TG, CY order, zero bars included
        - Genes without a category are shown as "NA" when present
    """
    counts = {
        row["category"]: row["count"]
        for row in df.group_by("category").agg(pl.len().alias("count")).to_dicts()
    }
    labels = list(CATEGORY_LEVELS)
    values = [counts.get(label, 0) for label in labels]
    if counts.get(None):
        labels.append("NA")
        values.append(counts[None])

    sns.set_theme(style="whitegrid", context="paper")
    fig, ax = plt.subplots(figsize=(8, 6))

    sns.barplot(
        x=labels,
        y=values,
        hue=labels,
        palette={**CATEGORY_COLORS, "NA": "#bdc3c7"},
        ax=ax,
        legend=False,
    )

    ax.set_xlabel("Localization Category")
    ax.set_ylabel("Genes")
    ax.set_title("Genes per Localization Category")

    _save(fig, output_path)
    logger.info(f"Saved category counts plot to {output_path}")
    return output_path


def plot_normalization_residuals(normalized: pl.DataFrame, output_path: Path) -> Path:
    """
    Create histogram of reported - computed normalized coefficients.

    Args:
        normalized: Table from validation.normalized_table (with
            npco_*_residual columns)
        output_path: Path where PNG will be saved

    Returns:
        Path to the saved PNG file
    """
    residual_columns = [c for c in normalized.columns if c.endswith("_residual")]
    long = normalized.select(residual_columns).unpivot(
        variable_name="column", value_name="residual"
    ).drop_nulls()

    pdf = long.to_pandas()

    sns.set_theme(style="whitegrid", context="paper")
    fig, ax = plt.subplots(figsize=(10, 6))

    if len(pdf) > 0:
        sns.histplot(data=pdf, x="residual", hue="column", bins=50, element="step", ax=ax)

    ax.set_xlabel("Reported - computed")
    ax.set_ylabel("Genes")
    ax.set_title("Normalized Coefficient Residuals")

    _save(fig, output_path)
    logger.info(f"Saved normalization residual plot to {output_path}")
    return output_path


def plot_confusion_matrix(confusion: pl.DataFrame, output_path: Path) -> Path:
    """
    Create heatmap of a confusion matrix (rows true, columns predicted).

    Args:
        confusion: Table from classification.confusion_matrix
        output_path: Path where PNG will be saved

    Returns:
        Path to the saved PNG file
    """
    classes = confusion["true_category"].to_list()
    counts = confusion.select(classes).to_numpy()

    sns.set_theme(style="white", context="paper")
    fig, ax = plt.subplots(figsize=(7, 6))

    sns.heatmap(
        counts,
        annot=True,
        fmt="d",
        cmap="Blues",
        xticklabels=classes,
        yticklabels=classes,
        cbar_kws={"label": "Genes"},
        ax=ax,
    )

    ax.set_xlabel("Predicted Category")
    ax.set_ylabel("True Category")
    ax.set_title("Confusion Matrix")

    _save(fig, output_path)
    logger.info(f"Saved confusion matrix plot to {output_path}")
    return output_path


def plot_decision_surface(
    surface: pl.DataFrame,
    varying_pair: tuple[str, str],
    output_path: Path,
    classes: Optional[list[str]] = None,
) -> Path:
    """
    Render a decision surface as a categorical heat map.

    Args:
        surface: Table from classification.decision_surface
        varying_pair: The two covariates swept (x axis, y axis)
        output_path: Path where PNG will be saved
        classes: Class levels for the legend (default: DF, ER, TG, CY)

    Returns:
        Path to the saved PNG file
    """
    first, second = varying_pair
    classes = list(classes) if classes is not None else list(CATEGORY_LEVELS)
    code = {label: k for k, label in enumerate(classes)}

    x_values = np.unique(surface[first].to_numpy())
    y_values = np.unique(surface[second].to_numpy())
    codes = np.array([code[label] for label in surface["predicted_category"].to_list()])
    # Surfaces are laid out with the first covariate varying slowest
    grid = codes.reshape(len(x_values), len(y_values)).T

    cmap = ListedColormap([CATEGORY_COLORS.get(label, "#7f8c8d") for label in classes])

    fig, ax = plt.subplots(figsize=(7, 6))
    ax.imshow(
        grid,
        origin="lower",
        extent=(x_values.min(), x_values.max(), y_values.min(), y_values.max()),
        aspect="auto",
        cmap=cmap,
        vmin=-0.5,
        vmax=len(classes) - 0.5,
        interpolation="nearest",
    )

    present = [label for label in classes if code[label] in set(codes.tolist())]
    ax.legend(
        handles=[Patch(color=CATEGORY_COLORS.get(label, "#7f8c8d"), label=label) for label in present],
        title="Predicted",
        loc="upper right",
    )
    ax.set_xlabel(f"{first} (scaled)")
    ax.set_ylabel(f"{second} (scaled)")
    ax.set_title(f"Decision Surface: {first} vs {second}")

    _save(fig, output_path)
    logger.info(f"Saved decision surface plot to {output_path}")
    return output_path


def generate_validation_plots(
    df: pl.DataFrame,
    normalized: pl.DataFrame,
    output_dir: Path,
) -> dict[str, Path]:
    """
    Generate the validator stage plots.

    Each plot is wrapped in try/except so one failure does not stop the rest.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    plots = {}

    try:
        plots["category_counts"] = plot_category_counts(df, output_dir / "category_counts.png")
    except Exception as e:
        logger.warning(f"Failed to create category counts plot: {e}")

    try:
        plots["normalization_residuals"] = plot_normalization_residuals(
            normalized, output_dir / "normalization_residuals.png"
        )
    except Exception as e:
        logger.warning(f"Failed to create normalization residual plot: {e}")

    logger.info(f"Generated {len(plots)} validation plots in {output_dir}")
    return plots


def generate_classification_plots(
    confusion: pl.DataFrame,
    surfaces: dict[tuple[str, str], pl.DataFrame],
    output_dir: Path,
    classes: Optional[list[str]] = None,
) -> dict[str, Path]:
    """
    Generate the classifier stage plots: confusion matrix and one decision
    surface per covariate pair.

    Returns:
        Dictionary mapping plot name to file path
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    plots = {}

    try:
        plots["confusion_matrix"] = plot_confusion_matrix(confusion, output_dir / "confusion_matrix.png")
    except Exception as e:
        logger.warning(f"Failed to create confusion matrix plot: {e}")

    for (first, second), surface in surfaces.items():
        name = f"decision_surface_{first}_{second}"
        try:
            plots[name] = plot_decision_surface(
                surface, (first, second), output_dir / f"{name}.png", classes=classes
            )
        except Exception as e:
            logger.warning(f"Failed to create decision surface plot {name}: {e}")

    logger.info(f"Generated {len(plots)} classification plots in {output_dir}")
    return plots
