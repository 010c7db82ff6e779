"""End-to-end classification: preprocess, fit, evaluate, sweep decision surfaces."""

from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np
import polars as pl
import structlog

from rnaloc_pipeline.classification.evaluation import (
    DEFAULT_GRID_RANGE,
    DEFAULT_GRID_STEPS,
    accuracy,
    confusion_matrix,
    correct_count,
    decision_surface,
)
from rnaloc_pipeline.classification.multinomial import (
    DEFAULT_MAX_ITERATIONS,
    FittedModel,
    class_levels,
    coefficient_table,
    fit,
    fit_null,
    predict,
    pseudo_r_squared,
)
from rnaloc_pipeline.classification.preprocess import FeatureMatrix, build_feature_matrix
from rnaloc_pipeline.dataset.models import COVARIATES

logger = structlog.get_logger(__name__)


@dataclass
class ClassificationResult:
    """Everything the classifier stage produces for reporting."""
    features: FeatureMatrix
    model: FittedModel
    null_model: FittedModel
    predicted: np.ndarray
    coefficients: pl.DataFrame
    confusion: pl.DataFrame
    surfaces: dict[tuple[str, str], pl.DataFrame] = field(default_factory=dict)

    @property
    def accuracy(self) -> float:
        return accuracy(self.predicted, self.features.y)

    @property
    def null_accuracy(self) -> float:
        """Accuracy of always predicting the most frequent category."""
        _, counts = np.unique(self.features.y.astype(str), return_counts=True)
        return float(counts.max() / counts.sum()) if counts.size else float("nan")

    @property
    def pseudo_r_squared(self) -> float:
        return pseudo_r_squared(self.model, self.null_model)

    def diagnostics(self) -> dict:
        """Scalar fit diagnostics as a flat dict."""
        return {
            "n_observations": self.model.n_observations,
            "n_covariates": len(self.model.covariates),
            "classes": ",".join(self.model.classes),
            "reference_category": self.model.reference,
            "deviance": self.model.deviance,
            "null_deviance": self.null_model.deviance,
            "pseudo_r_squared": self.pseudo_r_squared,
            "aic": self.model.aic,
            "accuracy": self.accuracy,
            "null_accuracy": self.null_accuracy,
            "correct_predictions": correct_count(self.confusion),
            "iterations": self.model.n_iterations,
            "converged": self.model.converged,
            "seed": self.model.seed,
        }

    def diagnostics_table(self) -> pl.DataFrame:
        """Diagnostics as a two-column (metric, value) table."""
        items = self.diagnostics()
        return pl.DataFrame({
            "metric": list(items.keys()),
            "value": [str(v) for v in items.values()],
        })

    def surfaces_table(self) -> pl.DataFrame:
        """All decision surfaces stacked in long format.

        Columns: covariate_x, covariate_y, x, y, predicted_category.
        """
        frames = [
            surface.rename({first: "x", second: "y"}).select(
                pl.lit(first).alias("covariate_x"),
                pl.lit(second).alias("covariate_y"),
                "x",
                "y",
                "predicted_category",
            )
            for (first, second), surface in self.surfaces.items()
        ]
        if not frames:
            return pl.DataFrame(schema={
                "covariate_x": pl.Utf8,
                "covariate_y": pl.Utf8,
                "x": pl.Float64,
                "y": pl.Float64,
                "predicted_category": pl.Utf8,
            })
        return pl.concat(frames)


def run_classification(
    df: pl.DataFrame,
    covariates: Sequence[str] = COVARIATES,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    seed: Optional[int] = 0,
    init_range: float = 0.1,
    boundary_pairs: Sequence[tuple[str, str]] = (),
    grid_range: tuple[float, float] = DEFAULT_GRID_RANGE,
    grid_steps: int = DEFAULT_GRID_STEPS,
) -> ClassificationResult:
    """Fit the localization classifier on the full table and evaluate it.

    The model is fitted on every gene (no train/test split): the goal is a
    description of which covariates go with which category, not
    out-of-sample prediction.

    Args:
        df: Schema-validated gene table
        covariates: Covariates used as predictors
        max_iterations: Optimizer iteration budget
        seed: Seed for starting coefficients (model and null model)
        init_range: Half-width of the starting coefficient range
        boundary_pairs: Covariate pairs to compute decision surfaces for
        grid_range: Sweep range for decision surfaces
        grid_steps: Grid points per axis for decision surfaces

    Returns:
        ClassificationResult
    """
    logger.info(
        "run_classification_start",
        row_count=df.height,
        covariates=len(covariates),
        boundary_pairs=len(boundary_pairs),
    )

    features = build_feature_matrix(df, list(covariates))
    classes = class_levels(features.y)

    model = fit(
        features.X,
        features.y,
        covariates=features.covariates,
        max_iterations=max_iterations,
        seed=seed,
        init_range=init_range,
        classes=classes,
    )
    null_model = fit_null(features.y, max_iterations=max_iterations, seed=seed, classes=classes)

    predicted = predict(model, features.X)
    confusion = confusion_matrix(predicted, features.y, classes=classes)

    column_means = dict(zip(features.covariates, features.X.mean(axis=0).tolist()))
    surfaces = {
        tuple(pair): decision_surface(
            model,
            column_means,
            tuple(pair),
            grid_range=grid_range,
            grid_steps=grid_steps,
        )
        for pair in boundary_pairs
    }

    result = ClassificationResult(
        features=features,
        model=model,
        null_model=null_model,
        predicted=predicted,
        coefficients=coefficient_table(model),
        confusion=confusion,
        surfaces=surfaces,
    )

    logger.info(
        "run_classification_complete",
        deviance=model.deviance,
        null_deviance=null_model.deviance,
        pseudo_r_squared=result.pseudo_r_squared,
        accuracy=result.accuracy,
        converged=model.converged,
    )

    return result
