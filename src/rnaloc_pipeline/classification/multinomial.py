"""Multinomial logistic regression fitted by maximum likelihood.

The first class level is the reference category: its linear predictor is
fixed at 0 and the model estimates one row of coefficients (intercept first,
then one per covariate) for each remaining class. No regularization is
applied.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import polars as pl
import structlog
from scipy.optimize import minimize
from scipy.special import log_softmax
from scipy.stats import norm

from rnaloc_pipeline.dataset.models import CATEGORY_LEVELS

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ITERATIONS = 1000
INTERCEPT_TERM = "(Intercept)"


@dataclass(frozen=True, eq=False)
class FittedModel:
    """A fitted multinomial logistic regression.

    Attributes:
        classes: Class labels in level order; classes[0] is the reference
        covariates: Covariate names, in design-matrix column order
        coefficients: Array (n_classes - 1, n_covariates + 1); column 0 is
            the intercept, row j belongs to classes[j + 1]
        standard_errors: Same shape as coefficients (inverse observed information)
        log_likelihood: Log-likelihood at the returned coefficients
        n_observations: Number of genes the model was fitted on
        n_iterations: Optimizer iterations used
        converged: False if the optimizer stopped before reaching a
            stationary point (e.g. iteration budget exhausted)
        seed: Seed of the random starting coefficients
    """
    classes: tuple[str, ...]
    covariates: tuple[str, ...]
    coefficients: np.ndarray
    standard_errors: np.ndarray
    log_likelihood: float
    n_observations: int
    n_iterations: int
    converged: bool
    seed: Optional[int] = None
    message: str = ""

    @property
    def reference(self) -> str:
        return self.classes[0]

    @property
    def deviance(self) -> float:
        return -2.0 * self.log_likelihood

    @property
    def n_parameters(self) -> int:
        return int(self.coefficients.size)

    @property
    def aic(self) -> float:
        return self.deviance + 2.0 * self.n_parameters


def class_levels(y: Sequence[str]) -> tuple[str, ...]:
    """Class levels present in y, in Category order (unknown labels sorted after)."""
    present = set(y)
    known = [c for c in CATEGORY_LEVELS if c in present]
    extra = sorted(present - set(CATEGORY_LEVELS))
    return tuple(known + extra)


def _design(X: np.ndarray) -> np.ndarray:
    X = np.asarray(X, dtype=np.float64)
    if X.ndim != 2:
        raise ValueError(f"X must be 2-dimensional, got shape {X.shape}")
    return np.hstack([np.ones((X.shape[0], 1)), X])


def _log_probabilities(design: np.ndarray, coefficients: np.ndarray) -> np.ndarray:
    eta = design @ coefficients.T
    eta = np.hstack([np.zeros((design.shape[0], 1)), eta])
    return log_softmax(eta, axis=1)


def _information_matrix(design: np.ndarray, probabilities: np.ndarray) -> np.ndarray:
    """Observed information (Hessian of the negative log-likelihood)."""
    p = probabilities[:, 1:]
    weights = -np.einsum("ij,ik->ijk", p, p)
    idx = np.arange(p.shape[1])
    weights[:, idx, idx] += p
    n_free, n_terms = p.shape[1], design.shape[1]
    info = np.einsum("ijk,ia,ib->jakb", weights, design, design)
    return info.reshape(n_free * n_terms, n_free * n_terms)


def _standard_errors(design: np.ndarray, coefficients: np.ndarray) -> np.ndarray:
    probabilities = np.exp(_log_probabilities(design, coefficients))
    covariance = np.linalg.pinv(_information_matrix(design, probabilities))
    variances = np.diag(covariance).copy()
    variances[variances < 0] = np.nan
    return np.sqrt(variances).reshape(coefficients.shape)


def fit(
    X: np.ndarray,
    y: Sequence[str],
    covariates: Optional[Sequence[str]] = None,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    seed: Optional[int] = 0,
    init_range: float = 0.1,
    classes: Optional[Sequence[str]] = None,
) -> FittedModel:
    """Fit a multinomial logistic regression by maximizing the log-likelihood.

    Uses BFGS with the analytic gradient. Starting coefficients are drawn
    uniformly from [-init_range, init_range] with a generator seeded by
    seed, so repeated fits with the same seed are identical. Running out of
    iterations is not an error: the model at the stopping point is returned
    with converged=False.

    Args:
        X: Covariate matrix (n_genes, n_covariates), may have zero columns
        y: Category label per gene
        covariates: Names of the columns of X (default x1, x2, ...)
        max_iterations: Optimizer iteration budget
        seed: Seed for the starting coefficients
        init_range: Half-width of the starting coefficient range
        classes: Class levels (default: levels present in y, Category order)

    Returns:
        FittedModel

    Raises:
        ValueError: If shapes disagree, fewer than two classes are present,
            or y holds labels outside classes
    """
    design = _design(X)
    y = np.asarray(list(y), dtype=object)
    n_obs, n_terms = design.shape

    if y.shape[0] != n_obs:
        raise ValueError(f"X has {n_obs} rows but y has {y.shape[0]} labels")

    classes = tuple(classes) if classes is not None else class_levels(y)
    if len(classes) < 2:
        raise ValueError(f"Need at least two classes to fit, got {list(classes)}")

    index = {label: k for k, label in enumerate(classes)}
    unknown = sorted(set(y) - set(index))
    if unknown:
        raise ValueError(f"Labels {unknown} are not among classes {list(classes)}")

    if covariates is None:
        covariates = [f"x{j + 1}" for j in range(n_terms - 1)]
    covariates = tuple(covariates)
    if len(covariates) != n_terms - 1:
        raise ValueError(f"{len(covariates)} covariate names for {n_terms - 1} columns")

    n_free = len(classes) - 1
    targets = np.zeros((n_obs, len(classes)))
    targets[np.arange(n_obs), [index[label] for label in y]] = 1.0

    def objective(flat: np.ndarray) -> tuple[float, np.ndarray]:
        coefficients = flat.reshape(n_free, n_terms)
        log_p = _log_probabilities(design, coefficients)
        nll = -float(np.sum(targets * log_p))
        residuals = targets[:, 1:] - np.exp(log_p[:, 1:])
        gradient = -(residuals.T @ design)
        return nll, gradient.ravel()

    rng = np.random.default_rng(seed)
    start = rng.uniform(-init_range, init_range, size=n_free * n_terms)

    logger.info(
        "multinomial_fit_start",
        n_observations=n_obs,
        n_covariates=n_terms - 1,
        classes=list(classes),
        max_iterations=max_iterations,
        seed=seed,
    )

    result = minimize(
        objective,
        start,
        jac=True,
        method="BFGS",
        options={"maxiter": max_iterations, "gtol": 1e-5},
    )

    coefficients = result.x.reshape(n_free, n_terms)
    converged = bool(result.status == 0)

    model = FittedModel(
        classes=classes,
        covariates=covariates,
        coefficients=coefficients,
        standard_errors=_standard_errors(design, coefficients),
        log_likelihood=-float(result.fun),
        n_observations=n_obs,
        n_iterations=int(result.nit),
        converged=converged,
        seed=seed,
        message=str(result.message),
    )

    if converged:
        logger.info(
            "multinomial_fit_complete",
            iterations=model.n_iterations,
            deviance=model.deviance,
            aic=model.aic,
        )
    else:
        logger.warning(
            "multinomial_fit_not_converged",
            iterations=model.n_iterations,
            deviance=model.deviance,
            reason=model.message,
        )

    return model


def fit_null(
    y: Sequence[str],
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    seed: Optional[int] = 0,
    classes: Optional[Sequence[str]] = None,
) -> FittedModel:
    """Fit the intercept-only model (predicts the marginal class distribution)."""
    y = list(y)
    return fit(
        np.empty((len(y), 0)),
        y,
        covariates=(),
        max_iterations=max_iterations,
        seed=seed,
        classes=classes,
    )


def deviance(model: FittedModel) -> float:
    """-2 x log-likelihood at the fitted coefficients."""
    return model.deviance


def pseudo_r_squared(model: FittedModel, null_model: FittedModel) -> float:
    """Deviance-based pseudo-R²: 1 - deviance(model) / deviance(null_model)."""
    null_deviance = null_model.deviance
    if null_deviance == 0:
        raise ValueError("Null model deviance is zero; pseudo-R² is undefined")
    return 1.0 - model.deviance / null_deviance


def predict_proba(model: FittedModel, X: np.ndarray) -> np.ndarray:
    """Class probabilities, shape (n_genes, n_classes), columns in model.classes order."""
    design = _design(X)
    if design.shape[1] != model.coefficients.shape[1]:
        raise ValueError(
            f"X has {design.shape[1] - 1} columns, model expects {len(model.covariates)}"
        )
    return np.exp(_log_probabilities(design, model.coefficients))


def predict(model: FittedModel, X: np.ndarray) -> np.ndarray:
    """Most probable class per gene.

    Exact probability ties go to the earlier class level; they are counted
    and logged because the choice is arbitrary.
    """
    probabilities = predict_proba(model, X)
    if probabilities.shape[0] == 0:
        return np.array([], dtype=object)

    row_max = probabilities.max(axis=1, keepdims=True)
    tie_count = int(((probabilities == row_max).sum(axis=1) > 1).sum())
    if tie_count:
        logger.warning("predict_ties", tie_count=tie_count)

    return np.asarray(model.classes, dtype=object)[probabilities.argmax(axis=1)]


def coefficient_table(model: FittedModel) -> pl.DataFrame:
    """One row per (category, term) with Wald statistics, most significant first.

    Columns: category, term, coefficient, std_error, z_value, p_value.
    """
    terms = [INTERCEPT_TERM, *model.covariates]
    rows = []
    for j, category in enumerate(model.classes[1:]):
        for a, term in enumerate(terms):
            coefficient = float(model.coefficients[j, a])
            std_error = float(model.standard_errors[j, a])
            if np.isfinite(std_error) and std_error > 0:
                z_value = coefficient / std_error
                p_value = float(2.0 * norm.sf(abs(z_value)))
            else:
                z_value, p_value = None, None
            rows.append({
                "category": category,
                "term": term,
                "coefficient": coefficient,
                "std_error": std_error if np.isfinite(std_error) else None,
                "z_value": z_value,
                "p_value": p_value,
            })

    schema = {
        "category": pl.Utf8,
        "term": pl.Utf8,
        "coefficient": pl.Float64,
        "std_error": pl.Float64,
        "z_value": pl.Float64,
        "p_value": pl.Float64,
    }
    table = pl.DataFrame(rows, schema=schema)
    return table.sort(["p_value", "category", "term"], nulls_last=True)
