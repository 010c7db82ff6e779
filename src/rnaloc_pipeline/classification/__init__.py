"""Classifier stage: multinomial logistic regression of category on covariates."""

from rnaloc_pipeline.classification.preprocess import (
    FeatureMatrix,
    impute,
    transform_and_scale,
    build_feature_matrix,
)
from rnaloc_pipeline.classification.multinomial import (
    FittedModel,
    class_levels,
    fit,
    fit_null,
    deviance,
    pseudo_r_squared,
    predict,
    predict_proba,
    coefficient_table,
)
from rnaloc_pipeline.classification.evaluation import (
    accuracy,
    confusion_matrix,
    correct_count,
    decision_surface,
)
from rnaloc_pipeline.classification.pipeline import (
    ClassificationResult,
    run_classification,
)

__all__ = [
    "FeatureMatrix",
    "impute",
    "transform_and_scale",
    "build_feature_matrix",
    "FittedModel",
    "class_levels",
    "fit",
    "fit_null",
    "deviance",
    "pseudo_r_squared",
    "predict",
    "predict_proba",
    "coefficient_table",
    "accuracy",
    "confusion_matrix",
    "correct_count",
    "decision_surface",
    "ClassificationResult",
    "run_classification",
]
