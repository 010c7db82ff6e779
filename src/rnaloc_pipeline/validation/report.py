"""Validation report: composition, normalization and category checks in one place."""

import json
import math
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

import polars as pl
import structlog

from rnaloc_pipeline.validation.categories import (
    CategoryAgreement,
    check_category_agreement,
)
from rnaloc_pipeline.validation.composition import (
    DEFAULT_COMPOSITION_TOLERANCE,
    CompositionReport,
    check_composition,
)
from rnaloc_pipeline.validation.normalization import (
    DEFAULT_COMPARISON_TOLERANCE,
    DEFAULT_ROUNDING_DIGITS,
    NormalizationCheck,
    compare_normalized,
    derive_normalized,
    normalization_constants,
    reported_normalized,
)

logger = structlog.get_logger(__name__)


@dataclass
class ValidationReport:
    """Diagnostic report of the validator stage.

    normalization holds the checks for the configured rounding convention;
    unrounded_normalization repeats them with the raw medians so the report
    shows whether rounding is actually needed to reproduce the table.
    """
    total_records: int
    rounding_digits: Optional[int]
    comparison_tolerance: float
    composition: CompositionReport
    normalization: dict[str, NormalizationCheck]
    unrounded_normalization: dict[str, NormalizationCheck]
    category_agreement: CategoryAgreement
    raw_category_agreement: CategoryAgreement
    normalization_divisors: dict[str, float] = field(default_factory=dict)

    @property
    def normalization_passed(self) -> bool:
        return all(check.passed for check in self.normalization.values())

    @property
    def passed(self) -> bool:
        return (
            self.composition.passed
            and self.normalization_passed
            and self.category_agreement.passed
        )

    def to_dict(self) -> dict:
        """Convert report to a JSON-serializable dictionary."""
        return {
            "total_records": self.total_records,
            "passed": self.passed,
            "rounding_digits": self.rounding_digits,
            "comparison_tolerance": self.comparison_tolerance,
            "composition": {**asdict(self.composition), "passed": self.composition.passed},
            "normalization": {k: asdict(v) for k, v in self.normalization.items()},
            "unrounded_normalization": {
                k: asdict(v) for k, v in self.unrounded_normalization.items()
            },
            "normalization_divisors": self.normalization_divisors,
            "category_agreement": {
                **asdict(self.category_agreement),
                "passed": self.category_agreement.passed,
            },
            "raw_category_agreement": {
                **asdict(self.raw_category_agreement),
                "passed": self.raw_category_agreement.passed,
            },
        }

    def to_json(self, path: Path) -> Path:
        """Write report as JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)
        return path

    def to_markdown(self, path: Path) -> Path:
        """Write report as a human-readable Markdown file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(format_validation_report(self))
        return path


def _status(passed: bool) -> str:
    return "PASSED ✓" if passed else "FAILED ✗"


def _fmt(value: float) -> str:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return "NA"
    return f"{value:.3g}"


def _normalization_rows(checks: dict[str, NormalizationCheck]) -> list[str]:
    rows = [
        "| Column | Status | Mean difference | Residual min | Residual median | Residual mean | Residual max |",
        "|--------|--------|-----------------|--------------|-----------------|---------------|--------------|",
    ]
    for column, check in checks.items():
        rows.append(
            f"| {column} | {_status(check.passed)} | {_fmt(check.mean_difference)} "
            f"({check.difference_kind}) | {_fmt(check.residual_min)} | "
            f"{_fmt(check.residual_median)} | {_fmt(check.residual_mean)} | "
            f"{_fmt(check.residual_max)} |"
        )
    return rows


def format_validation_report(report: ValidationReport) -> str:
    """Render a ValidationReport as Markdown text."""
    composition = report.composition
    agreement = report.category_agreement
    raw_agreement = report.raw_category_agreement
    digits = report.rounding_digits if report.rounding_digits else "none"

    lines = [
        "# Localization Table Validation Report",
        "",
        f"**Overall:** {_status(report.passed)}",
        f"**Genes:** {report.total_records}",
        "",
        "## Composition (pco_cy + pco_er + pco_tg = 1)",
        "",
        f"- Status: {_status(composition.passed)}",
        f"- Tolerance: {composition.tolerance:g}",
        f"- Failing genes: {composition.failing_count}",
        f"- Max |sum - 1|: {_fmt(composition.max_abs_deviation)}",
    ]
    if composition.failing_genes:
        lines.append(f"- Examples: {', '.join(composition.failing_genes)}")

    lines.extend([
        "",
        f"## Normalization (median rounded to {digits} decimal places)",
        "",
        f"Tolerance: {report.comparison_tolerance:g}. Residuals are reported - computed.",
        "",
        *_normalization_rows(report.normalization),
        "",
        "Divisors: " + ", ".join(
            f"{column}={divisor:g}" for column, divisor in report.normalization_divisors.items()
        ),
        "",
        "### Unrounded medians",
        "",
        *_normalization_rows(report.unrounded_normalization),
        "",
        "## Category Assignment (argmax of coefficients, non-DF genes)",
        "",
        "| Coefficients | Status | Checked | Mismatches | Ties |",
        "|--------------|--------|---------|------------|------|",
        f"| normalized ({agreement.coefficient_prefix}) | {_status(agreement.passed)} | "
        f"{agreement.checked_count} | {agreement.mismatch_count} | {agreement.tie_count} |",
        f"| raw ({raw_agreement.coefficient_prefix}) | {_status(raw_agreement.passed)} | "
        f"{raw_agreement.checked_count} | {raw_agreement.mismatch_count} | {raw_agreement.tie_count} |",
        "",
    ])
    if agreement.mismatched_genes:
        lines.append(f"Mismatching genes (normalized): {', '.join(agreement.mismatched_genes)}")
        lines.append("")

    return "\n".join(lines)


def run_validation(
    df: pl.DataFrame,
    composition_tolerance: float = DEFAULT_COMPOSITION_TOLERANCE,
    rounding_digits: Optional[int] = DEFAULT_ROUNDING_DIGITS,
    comparison_tolerance: float = DEFAULT_COMPARISON_TOLERANCE,
) -> tuple[ValidationReport, dict]:
    """Run every validator check over the gene table.

    Validation is diagnostic: failures end up in the report and the logs,
    nothing is raised for a mismatch.

    Args:
        df: Schema-validated gene table
        composition_tolerance: Tolerance for the composition check
        rounding_digits: Rounding convention for the median divisors
        comparison_tolerance: all.equal tolerance for normalized columns

    Returns:
        Tuple of (ValidationReport, computed normalized columns)
    """
    logger.info(
        "run_validation_start",
        row_count=df.height,
        rounding_digits=rounding_digits,
    )

    composition = check_composition(df, tolerance=composition_tolerance)

    reported = reported_normalized(df)
    computed = derive_normalized(df, rounding_digits=rounding_digits)
    normalization = compare_normalized(computed, reported, tolerance=comparison_tolerance)

    unrounded = derive_normalized(df, rounding_digits=None)
    unrounded_normalization = compare_normalized(unrounded, reported, tolerance=comparison_tolerance)

    divisors = {
        column: constant.divisor
        for column, constant in normalization_constants(df, rounding_digits).items()
    }

    report = ValidationReport(
        total_records=df.height,
        rounding_digits=rounding_digits,
        comparison_tolerance=comparison_tolerance,
        composition=composition,
        normalization=normalization,
        unrounded_normalization=unrounded_normalization,
        category_agreement=check_category_agreement(df, "npco"),
        raw_category_agreement=check_category_agreement(df, "pco"),
        normalization_divisors=divisors,
    )

    logger.info(
        "run_validation_complete",
        passed=report.passed,
        composition_failures=composition.failing_count,
        normalization_passed=report.normalization_passed,
        category_mismatches=report.category_agreement.mismatch_count,
    )

    return report, computed
