"""Fit-quality diagnostics and decision surfaces for a fitted multinomial model."""

from typing import Mapping, Optional, Sequence

import numpy as np
import polars as pl
import structlog

from rnaloc_pipeline.classification.multinomial import FittedModel, class_levels, predict

logger = structlog.get_logger(__name__)

DEFAULT_GRID_RANGE = (-10.0, 10.0)
DEFAULT_GRID_STEPS = 500


def accuracy(predicted: Sequence[str], actual: Sequence[str]) -> float:
    """Fraction of genes whose predicted category equals the actual one."""
    predicted = np.asarray(list(predicted), dtype=object)
    actual = np.asarray(list(actual), dtype=object)
    if predicted.shape != actual.shape:
        raise ValueError(f"{predicted.size} predictions for {actual.size} labels")
    if actual.size == 0:
        raise ValueError("Cannot compute accuracy of zero predictions")
    return float(np.mean(predicted == actual))


def confusion_matrix(
    predicted: Sequence[str],
    actual: Sequence[str],
    classes: Optional[Sequence[str]] = None,
) -> pl.DataFrame:
    """Count genes per (true category, predicted category).

    Rows are true categories (column "true_category"), the remaining columns
    are predicted categories, both in class level order. Every class appears
    in both directions even with zero counts.

    Args:
        predicted: Predicted category per gene
        actual: True category per gene
        classes: Class levels (default: levels seen in either input)

    Returns:
        DataFrame with columns true_category, <class_1>, ..., <class_k>
    """
    predicted = list(predicted)
    actual = list(actual)
    if len(predicted) != len(actual):
        raise ValueError(f"{len(predicted)} predictions for {len(actual)} labels")

    classes = list(classes) if classes is not None else list(class_levels(actual + predicted))
    index = {label: k for k, label in enumerate(classes)}

    counts = np.zeros((len(classes), len(classes)), dtype=np.int64)
    for true_label, predicted_label in zip(actual, predicted):
        counts[index[true_label], index[predicted_label]] += 1

    table = {"true_category": classes}
    for k, label in enumerate(classes):
        table[label] = counts[:, k]

    return pl.DataFrame(table)


def correct_count(matrix: pl.DataFrame) -> int:
    """Sum of the diagonal of a confusion matrix from confusion_matrix()."""
    return int(sum(
        row[row["true_category"]] for row in matrix.to_dicts()
    ))


def decision_surface(
    model: FittedModel,
    fixed_means: Mapping[str, float],
    varying_pair: tuple[str, str],
    grid_range: tuple[float, float] = DEFAULT_GRID_RANGE,
    grid_steps: int = DEFAULT_GRID_STEPS,
) -> pl.DataFrame:
    """Predict categories over a grid of two covariates, the rest held fixed.

    Every covariate except the varying pair is set to its value in
    fixed_means (column means of the scaled matrix, i.e. ~0); the pair is
    swept over grid_steps evenly spaced values each. Pure function of the
    model.

    Args:
        model: Fitted model
        fixed_means: Value per covariate for the fixed ones
        varying_pair: The two covariates swept over the grid
        grid_range: (low, high) of the sweep, inclusive
        grid_steps: Points per axis

    Returns:
        DataFrame with grid_steps**2 rows and columns named after the two
        covariates plus predicted_category

    Raises:
        ValueError: For unknown covariates, a repeated covariate, a missing
            fixed value or fewer than one grid step
    """
    first, second = varying_pair
    covariates = list(model.covariates)

    unknown = [name for name in varying_pair if name not in covariates]
    if unknown:
        raise ValueError(f"Covariates {unknown} are not in the model")
    if first == second:
        raise ValueError(f"varying_pair repeats covariate {first}")
    if grid_steps < 1:
        raise ValueError(f"grid_steps must be positive, got {grid_steps}")

    missing = [c for c in covariates if c not in varying_pair and c not in fixed_means]
    if missing:
        raise ValueError(f"No fixed value for covariates {missing}")

    axis = np.linspace(grid_range[0], grid_range[1], grid_steps)
    first_values, second_values = np.meshgrid(axis, axis, indexing="ij")
    first_values = first_values.ravel()
    second_values = second_values.ravel()

    X = np.empty((first_values.size, len(covariates)))
    for j, name in enumerate(covariates):
        if name == first:
            X[:, j] = first_values
        elif name == second:
            X[:, j] = second_values
        else:
            X[:, j] = fixed_means[name]

    predicted = predict(model, X)

    logger.debug(
        "decision_surface_complete",
        pair=f"{first}:{second}",
        grid_steps=grid_steps,
        classes_present=sorted(set(predicted.tolist())),
    )

    return pl.DataFrame({
        first: first_values,
        second: second_values,
        "predicted_category": pl.Series(predicted.tolist(), dtype=pl.Utf8),
    })
