"""Compositionality check: raw partition coefficients must sum to 1."""

from dataclasses import dataclass, field

import polars as pl
import structlog

from rnaloc_pipeline.dataset.models import RAW_COEFFICIENT_COLUMNS

logger = structlog.get_logger(__name__)

DEFAULT_COMPOSITION_TOLERANCE = 1e-6

# Failing genes listed individually in the report
MAX_REPORTED_FAILURES = 20


@dataclass
class CompositionReport:
    """Result of the composition check.

    Attributes:
        total_records: Number of genes checked
        failing_count: Genes whose coefficient sum is off by more than tolerance
            (or has a missing coefficient)
        tolerance: Tolerance used
        max_abs_deviation: Largest |sum - 1| over genes with complete coefficients
        failing_genes: First failing gene names, in table order
    """
    total_records: int
    failing_count: int
    tolerance: float
    max_abs_deviation: float | None
    failing_genes: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.failing_count == 0


def composition_sums(df: pl.DataFrame) -> pl.Series:
    """Per-gene sum pco_cy + pco_er + pco_tg (null if any term is null)."""
    first, *rest = RAW_COEFFICIENT_COLUMNS
    total = pl.col(first)
    for col in rest:
        total = total + pl.col(col)
    return df.select(total.alias("composition_sum")).to_series()


def check_composition(
    df: pl.DataFrame,
    tolerance: float = DEFAULT_COMPOSITION_TOLERANCE,
) -> CompositionReport:
    """Flag genes whose raw partition coefficients do not sum to 1.

    Failing genes are reported, never corrected or dropped.

    Args:
        df: Gene table with gene_name and pco_cy/pco_er/pco_tg columns
        tolerance: Maximum accepted |sum - 1|

    Returns:
        CompositionReport with failing count and the tolerance used
    """
    logger.info("check_composition_start", row_count=df.height, tolerance=tolerance)

    checked = df.select("gene_name").with_columns(
        composition_sum=composition_sums(df)
    ).with_columns(
        abs_deviation=(pl.col("composition_sum") - 1.0).abs()
    )

    failing = checked.filter(
        pl.col("abs_deviation").is_null() | (pl.col("abs_deviation") > tolerance)
    )

    max_abs_deviation = checked["abs_deviation"].max()

    report = CompositionReport(
        total_records=df.height,
        failing_count=failing.height,
        tolerance=tolerance,
        max_abs_deviation=float(max_abs_deviation) if max_abs_deviation is not None else None,
        failing_genes=failing["gene_name"].head(MAX_REPORTED_FAILURES).to_list(),
    )

    if report.passed:
        logger.info(
            "check_composition_passed",
            total=report.total_records,
            max_abs_deviation=report.max_abs_deviation,
        )
    else:
        logger.warning(
            "check_composition_failed",
            total=report.total_records,
            failing=report.failing_count,
            max_abs_deviation=report.max_abs_deviation,
            examples=report.failing_genes[:5],
        )

    return report
