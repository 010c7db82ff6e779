"""Category assignment check: non-DF labels should be the argmax compartment."""

from dataclasses import dataclass, field

import numpy as np
import polars as pl
import structlog

from rnaloc_pipeline.dataset.models import COMPARTMENTS, Category

logger = structlog.get_logger(__name__)

MAX_REPORTED_MISMATCHES = 20


@dataclass
class CategoryAgreement:
    """Agreement between reported categories and argmax-derived ones.

    Attributes:
        coefficient_prefix: Coefficient triplet used ("npco" or "pco")
        checked_count: Genes with a non-DF reported category
        mismatch_count: Checked genes whose argmax compartment differs
        tie_count: Checked genes with a tied maximum (no derived category)
        mismatched_genes: First mismatching gene names
    """
    coefficient_prefix: str
    checked_count: int
    mismatch_count: int
    tie_count: int
    mismatched_genes: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.mismatch_count == 0 and self.tie_count == 0


def max_category(df: pl.DataFrame, coefficient_prefix: str = "npco") -> pl.Series:
    """Pick the compartment with the largest coefficient for each gene.

    Scans the {prefix}_er, {prefix}_tg, {prefix}_cy columns. Genes with a
    missing coefficient, or with two compartments sharing the maximum, get a
    null category; ties are logged since no tie-break is defined.

    Args:
        df: Gene table with the coefficient triplet
        coefficient_prefix: "npco" for normalized, "pco" for raw coefficients

    Returns:
        String Series named "max_category" with values ER, TG, CY or null
    """
    columns = [f"{coefficient_prefix}_{c}" for c in COMPARTMENTS]
    values = df.select(columns).cast(pl.Float64).to_numpy()
    labels = np.array([c.upper() for c in COMPARTMENTS], dtype=object)

    if values.shape[0] == 0:
        return pl.Series("max_category", [], dtype=pl.Utf8)

    incomplete = np.isnan(values).any(axis=1)
    filled = np.where(np.isnan(values), -np.inf, values)
    row_max = filled.max(axis=1, keepdims=True)
    tied = ((filled == row_max).sum(axis=1) > 1) & ~incomplete

    assigned = labels[filled.argmax(axis=1)]
    assigned[incomplete | tied] = None

    tie_count = int(tied.sum())
    if tie_count:
        logger.warning(
            "max_category_ties",
            coefficient_prefix=coefficient_prefix,
            tie_count=tie_count,
            examples=df.filter(pl.Series(tied))["gene_name"].head(5).to_list()
            if "gene_name" in df.columns else [],
        )

    return pl.Series("max_category", assigned.tolist(), dtype=pl.Utf8)


def check_category_agreement(
    df: pl.DataFrame,
    coefficient_prefix: str = "npco",
) -> CategoryAgreement:
    """Compare reported non-DF categories with max_category.

    DF genes and genes without a category are not checked: DF is assigned
    upstream on grounds other than the argmax.
    """
    derived = df.select("gene_name", "category").with_columns(
        max_category(df, coefficient_prefix)
    )

    checked = derived.filter(
        pl.col("category").is_not_null() & (pl.col("category") != Category.DF.value)
    )
    ties = checked.filter(pl.col("max_category").is_null())
    mismatched = checked.filter(
        pl.col("max_category").is_not_null() & (pl.col("max_category") != pl.col("category"))
    )

    agreement = CategoryAgreement(
        coefficient_prefix=coefficient_prefix,
        checked_count=checked.height,
        mismatch_count=mismatched.height,
        tie_count=ties.height,
        mismatched_genes=mismatched["gene_name"].head(MAX_REPORTED_MISMATCHES).to_list(),
    )

    log = logger.info if agreement.passed else logger.warning
    log(
        "check_category_agreement_complete",
        coefficient_prefix=coefficient_prefix,
        checked=agreement.checked_count,
        mismatches=agreement.mismatch_count,
        ties=agreement.tie_count,
    )

    return agreement
