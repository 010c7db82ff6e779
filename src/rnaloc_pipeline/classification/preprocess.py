"""Turn the raw covariate table into a model-ready feature matrix.

Steps, in order: impute missing covariates, sqrt-transform, z-score.
"""

from dataclasses import dataclass

import numpy as np
import polars as pl
import structlog

from rnaloc_pipeline.dataset.models import COVARIATES, LENGTH_COVARIATE
from rnaloc_pipeline.errors import DomainError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class FeatureMatrix:
    """Standardized covariates aligned with category labels.

    Attributes:
        X: Array of shape (n_genes, n_covariates), table row order
        y: Category label per gene
        covariates: Column names of X
        gene_names: Gene name per row
    """
    X: np.ndarray
    y: np.ndarray
    covariates: list[str]
    gene_names: list[str]


def impute(df: pl.DataFrame, covariates: list[str] = COVARIATES) -> pl.DataFrame:
    """Fill missing covariate values.

    The 3'UTR length gets the median of its observed values; every other
    covariate is a count where a missing value means no evidence, so it
    becomes 0.

    Args:
        df: Gene table with covariate columns
        covariates: Covariate columns to impute

    Returns:
        New DataFrame with no nulls in the covariate columns

    Raises:
        DomainError: If the length covariate has no observed values
    """
    fills = []
    missing_counts = {}

    for col in covariates:
        null_count = df[col].null_count()
        if null_count:
            missing_counts[col] = null_count

        if col == LENGTH_COVARIATE:
            median = df[col].median()
            if median is None:
                raise DomainError(
                    f"Cannot impute {col}: column has no observed values (median undefined)"
                )
            fills.append(pl.col(col).cast(pl.Float64).fill_null(float(median)))
        else:
            fills.append(pl.col(col).cast(pl.Float64).fill_null(0.0))

    df = df.with_columns(fills)

    logger.info(
        "impute_complete",
        row_count=df.height,
        imputed_cells=sum(missing_counts.values()),
        imputed_columns=len(missing_counts),
    )

    return df


def transform_and_scale(df: pl.DataFrame, covariates: list[str] = COVARIATES) -> pl.DataFrame:
    """Square-root transform each covariate, then z-score it.

    Standardization uses the sample standard deviation (n - 1), the same
    convention as R's scale(). A constant column cannot be scaled and is
    only centred (all zeros). Non-covariate columns pass through.

    Args:
        df: Imputed gene table
        covariates: Covariate columns to transform

    Returns:
        New DataFrame with transformed covariate columns

    Raises:
        DomainError: If a covariate holds a negative or missing value
    """
    negative = [col for col in covariates if df.filter(pl.col(col) < 0).height > 0]
    if negative:
        raise DomainError(f"sqrt transform requires non-negative covariates; negative values in {negative}")

    missing = [col for col in covariates if df[col].null_count() > 0]
    if missing:
        raise DomainError(f"Covariates must be imputed before scaling; missing values in {missing}")

    df = df.with_columns([pl.col(col).cast(pl.Float64).sqrt() for col in covariates])

    constant = [col for col in covariates if not (df[col].std(ddof=1) or 0.0) > 0.0]
    if constant:
        logger.warning("transform_constant_columns", columns=constant)

    df = df.with_columns([
        (pl.col(col) - pl.col(col).mean()).alias(col)
        if col in constant
        else ((pl.col(col) - pl.col(col).mean()) / pl.col(col).std(ddof=1)).alias(col)
        for col in covariates
    ])

    logger.info("transform_and_scale_complete", row_count=df.height, columns=len(covariates))

    return df


def build_feature_matrix(df: pl.DataFrame, covariates: list[str] = COVARIATES) -> FeatureMatrix:
    """Impute, transform and scale covariates into a FeatureMatrix.

    No gene is dropped: DF genes stay in as one of the target classes.

    Raises:
        DomainError: If a gene has no category, or a preprocessing
            precondition fails
    """
    missing_category = df["category"].null_count()
    if missing_category:
        raise DomainError(
            f"{missing_category} genes have no category; every gene needs a target label"
        )

    scaled = transform_and_scale(impute(df, covariates), covariates)

    return FeatureMatrix(
        X=scaled.select(covariates).to_numpy().astype(np.float64),
        y=np.asarray(scaled["category"].to_list(), dtype=object),
        covariates=list(covariates),
        gene_names=scaled["gene_name"].to_list(),
    )
