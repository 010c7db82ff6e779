"""Re-derive median-normalized partition coefficients and compare with reported values.

The reported npco_* columns were produced upstream by dividing each raw
partition coefficient by its column median. Dividing by the raw median does
not reproduce them: the median was rounded to 4 decimal places first. The
rounding precision is therefore a parameter, so the convention can be
re-checked against new releases of the table.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
import polars as pl
import structlog

from rnaloc_pipeline.dataset.models import COMPARTMENTS
from rnaloc_pipeline.errors import DomainError

logger = structlog.get_logger(__name__)

DEFAULT_ROUNDING_DIGITS = 4

# Default tolerance of R's all.equal (sqrt of double machine epsilon)
DEFAULT_COMPARISON_TOLERANCE = 1.5e-8


@dataclass(frozen=True)
class NormalizationConstant:
    """Median of a raw coefficient column and the divisor derived from it."""
    column: str
    median: float
    divisor: float
    rounding_digits: Optional[int]


@dataclass(frozen=True)
class AllEqualResult:
    """Outcome of an all.equal-style numeric comparison.

    Attributes:
        passed: True if the mean difference is within tolerance
        mean_difference: Mean relative (or absolute) difference
        kind: "relative" or "absolute", depending on the target's scale
        message: Human-readable description of a failure, None when passed
    """
    passed: bool
    mean_difference: float
    kind: str
    message: Optional[str] = None


@dataclass(frozen=True)
class NormalizationCheck:
    """Comparison of one computed normalized column with the reported one.

    Residuals are reported - computed over genes where both are present.
    """
    column: str
    passed: bool
    mean_difference: float
    difference_kind: str
    residual_min: float
    residual_median: float
    residual_mean: float
    residual_max: float
    message: Optional[str] = None


def _column_values(df: pl.DataFrame, column: str) -> np.ndarray:
    return df[column].cast(pl.Float64).to_numpy().astype(np.float64)


def normalization_constants(
    df: pl.DataFrame,
    rounding_digits: Optional[int] = DEFAULT_ROUNDING_DIGITS,
) -> dict[str, NormalizationConstant]:
    """Compute the per-column divisor for each raw coefficient column.

    The median is taken over every gene with a value in that column (linear
    interpolation between the middle values for even counts), then rounded
    to rounding_digits decimal places. None or 0 disables rounding.

    Raises:
        DomainError: If a column has no values or its divisor is zero
    """
    constants = {}
    for compartment in COMPARTMENTS:
        raw_column = f"pco_{compartment}"
        values = _column_values(df, raw_column)
        values = values[~np.isnan(values)]
        if values.size == 0:
            raise DomainError(f"Cannot take the median of {raw_column}: no values")

        median = float(np.median(values))
        divisor = round(median, rounding_digits) if rounding_digits else median
        if divisor == 0:
            raise DomainError(
                f"Normalization divisor for {raw_column} is zero "
                f"(median={median}, rounding_digits={rounding_digits})"
            )

        constants[f"npco_{compartment}"] = NormalizationConstant(
            column=raw_column,
            median=median,
            divisor=divisor,
            rounding_digits=rounding_digits,
        )

    return constants


def derive_normalized(
    df: pl.DataFrame,
    rounding_digits: Optional[int] = DEFAULT_ROUNDING_DIGITS,
) -> dict[str, np.ndarray]:
    """Recompute npco_cy, npco_er and npco_tg from the raw coefficients.

    Each column is divided by a single scalar: its median rounded to
    rounding_digits decimal places. Pure function of its inputs.

    Args:
        df: Gene table with pco_cy, pco_er, pco_tg columns
        rounding_digits: Decimal places for the median (None or 0 = unrounded)

    Returns:
        Mapping from normalized column name to computed values (NaN where the
        raw coefficient is missing), in table row order
    """
    constants = normalization_constants(df, rounding_digits)

    normalized = {
        name: _column_values(df, constant.column) / constant.divisor
        for name, constant in constants.items()
    }

    logger.info(
        "derive_normalized_complete",
        row_count=df.height,
        rounding_digits=rounding_digits,
        divisors={name: c.divisor for name, c in constants.items()},
    )

    return normalized


def reported_normalized(df: pl.DataFrame) -> dict[str, np.ndarray]:
    """Extract the reported npco_* columns as arrays keyed like derive_normalized."""
    return {f"npco_{c}": _column_values(df, f"npco_{c}") for c in COMPARTMENTS}


def all_equal(
    target: np.ndarray,
    current: np.ndarray,
    tolerance: float = DEFAULT_COMPARISON_TOLERANCE,
) -> AllEqualResult:
    """Compare two numeric vectors the way R's all.equal does.

    Missing positions must coincide. Only positions where the values
    actually differ enter the statistic: over those, the mean absolute
    difference is divided by the mean absolute target value when that
    exceeds the tolerance (relative difference), otherwise used as is
    (absolute difference). The vectors are equal if no position differs
    or the result is within tolerance.
    """
    target = np.asarray(target, dtype=np.float64)
    current = np.asarray(current, dtype=np.float64)

    if target.shape != current.shape:
        return AllEqualResult(
            passed=False,
            mean_difference=float("nan"),
            kind="length",
            message=f"Lengths ({target.size}, {current.size}) differ",
        )

    target_na = np.isnan(target)
    current_na = np.isnan(current)
    if np.any(target_na != current_na):
        mismatched = int(np.sum(target_na != current_na))
        return AllEqualResult(
            passed=False,
            mean_difference=float("nan"),
            kind="missing",
            message=f"'is.NA' value mismatch in {mismatched} positions",
        )

    target = target[~target_na]
    current = current[~current_na]

    # Exactly equal positions are left out of the mean
    differs = target != current
    if not np.any(differs):
        return AllEqualResult(passed=True, mean_difference=0.0, kind="absolute")
    target = target[differs]
    current = current[differs]

    mean_difference = float(np.mean(np.abs(target - current)))
    kind = "absolute"
    target_scale = float(np.mean(np.abs(target)))
    if np.isfinite(target_scale) and target_scale > tolerance:
        mean_difference = mean_difference / target_scale
        kind = "relative"

    if np.isnan(mean_difference) or mean_difference > tolerance:
        return AllEqualResult(
            passed=False,
            mean_difference=mean_difference,
            kind=kind,
            message=f"Mean {kind} difference: {mean_difference:.7g}",
        )

    return AllEqualResult(passed=True, mean_difference=mean_difference, kind=kind)


def compare_normalized(
    computed: dict[str, np.ndarray],
    reported: dict[str, np.ndarray],
    tolerance: float = DEFAULT_COMPARISON_TOLERANCE,
) -> dict[str, NormalizationCheck]:
    """Check each computed normalized column against the reported one.

    Mismatches are logged and returned, never raised.

    Args:
        computed: Output of derive_normalized
        reported: Reported values keyed by the same column names
        tolerance: all.equal tolerance

    Returns:
        Mapping from column name to NormalizationCheck
    """
    checks = {}
    for column, computed_values in computed.items():
        reported_values = np.asarray(reported[column], dtype=np.float64)
        result = all_equal(reported_values, computed_values, tolerance=tolerance)

        residuals = reported_values - np.asarray(computed_values, dtype=np.float64)
        residuals = residuals[~np.isnan(residuals)]
        if residuals.size:
            summary = (
                float(np.min(residuals)),
                float(np.median(residuals)),
                float(np.mean(residuals)),
                float(np.max(residuals)),
            )
        else:
            summary = (float("nan"),) * 4

        checks[column] = NormalizationCheck(
            column=column,
            passed=result.passed,
            mean_difference=result.mean_difference,
            difference_kind=result.kind,
            residual_min=summary[0],
            residual_median=summary[1],
            residual_mean=summary[2],
            residual_max=summary[3],
            message=result.message,
        )

        if result.passed:
            logger.info(
                "compare_normalized_passed",
                column=column,
                mean_difference=result.mean_difference,
            )
        else:
            logger.warning(
                "compare_normalized_failed",
                column=column,
                reason=result.message,
                residual_mean=summary[2],
            )

    return checks


def normalized_table(
    df: pl.DataFrame,
    computed: dict[str, np.ndarray],
) -> pl.DataFrame:
    """Side-by-side table of reported and recomputed normalized coefficients."""
    columns = {"gene_name": df["gene_name"], "refseq_id": df["refseq_id"]}
    for column, values in computed.items():
        columns[column] = df[column]
        columns[f"{column}_computed"] = pl.Series(f"{column}_computed", values).fill_nan(None)
        columns[f"{column}_residual"] = df[column] - columns[f"{column}_computed"]
    return pl.DataFrame(columns)
