"""Validator stage: reproduce derived columns of the gene table from its raw ones.

Checks that raw partition coefficients are compositional, re-derives the
median-normalized coefficients under a configurable rounding convention,
and verifies that categories are the argmax of the normalized coefficients.
"""

from rnaloc_pipeline.validation.composition import (
    CompositionReport,
    check_composition,
)
from rnaloc_pipeline.validation.normalization import (
    AllEqualResult,
    NormalizationCheck,
    all_equal,
    compare_normalized,
    derive_normalized,
    normalization_constants,
    normalized_table,
    reported_normalized,
)
from rnaloc_pipeline.validation.categories import (
    CategoryAgreement,
    check_category_agreement,
    max_category,
)
from rnaloc_pipeline.validation.report import (
    ValidationReport,
    format_validation_report,
    run_validation,
)

__all__ = [
    "CompositionReport",
    "check_composition",
    "AllEqualResult",
    "NormalizationCheck",
    "all_equal",
    "compare_normalized",
    "derive_normalized",
    "normalization_constants",
    "normalized_table",
    "reported_normalized",
    "CategoryAgreement",
    "check_category_agreement",
    "max_category",
    "ValidationReport",
    "format_validation_report",
    "run_validation",
]
