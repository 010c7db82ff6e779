"""Load the curated gene table and validate its schema."""

from pathlib import Path
from typing import Optional

import polars as pl
import structlog
from pydantic import ValidationError

from rnaloc_pipeline.dataset.models import (
    CATEGORY_LEVELS,
    COVARIATES,
    GENE_TABLE_NAME,
    IDENTITY_COLUMNS,
    NORMALIZED_COEFFICIENT_COLUMNS,
    RAW_COEFFICIENT_COLUMNS,
    REQUIRED_COLUMNS,
    GeneRecord,
)
from rnaloc_pipeline.errors import SchemaError
from rnaloc_pipeline.persistence import PipelineStore, ProvenanceTracker

logger = structlog.get_logger(__name__)

NUMERIC_COLUMNS = RAW_COEFFICIENT_COLUMNS + NORMALIZED_COEFFICIENT_COLUMNS + COVARIATES


def validate_schema(df: pl.DataFrame) -> pl.DataFrame:
    """Check required columns and coerce them to their canonical dtypes.

    Args:
        df: Raw gene table as read from disk

    Returns:
        DataFrame with identity/category columns as strings and all
        coefficient and covariate columns as Float64. Extra columns are kept.

    Raises:
        SchemaError: If required columns are missing, a numeric column cannot
            be cast, a category label is unknown, a covariate is negative, or a
            row fails GeneRecord validation (e.g. a missing gene name).
    """
    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        logger.error("schema_missing_columns", missing=missing)
        raise SchemaError(f"Gene table is missing required columns: {missing}")

    try:
        df = df.with_columns(
            [pl.col(col).cast(pl.Utf8) for col in IDENTITY_COLUMNS + ["category"]]
            + [pl.col(col).cast(pl.Float64, strict=True) for col in NUMERIC_COLUMNS]
        )
    except pl.exceptions.PolarsError as e:
        raise SchemaError(f"Gene table has non-numeric coefficient/covariate values: {e}") from e

    unknown = (
        df.filter(pl.col("category").is_not_null() & ~pl.col("category").is_in(CATEGORY_LEVELS))
        ["category"].unique().to_list()
    )
    if unknown:
        raise SchemaError(
            f"Unknown category labels {sorted(unknown)}; expected one of {CATEGORY_LEVELS}"
        )

    negative = [
        col for col in RAW_COEFFICIENT_COLUMNS + COVARIATES
        if df.filter(pl.col(col) < 0).height > 0
    ]
    if negative:
        raise SchemaError(f"Negative values in non-negative columns: {negative}")

    validate_records(df)

    logger.info(
        "schema_valid",
        row_count=df.height,
        column_count=len(df.columns),
        missing_category=df["category"].null_count(),
    )

    return df


def validate_records(df: pl.DataFrame) -> None:
    """Check every row against the GeneRecord contract.

    Raises:
        SchemaError: On the first row that fails model validation
    """
    for row in df.select(REQUIRED_COLUMNS).iter_rows(named=True):
        try:
            GeneRecord.from_row(row)
        except ValidationError as e:
            raise SchemaError(
                f"Gene {row['gene_name']!r} violates the gene record schema: {e}"
            ) from e


def read_gene_table(path: Path | str) -> pl.DataFrame:
    """Read a gene table from TSV, CSV or Parquet without validation."""
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Gene table not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".parquet":
        return pl.read_parquet(path)
    if suffix in (".tsv", ".txt"):
        return pl.read_csv(path, separator="\t", null_values=["NA", ""], infer_schema_length=10000)
    if suffix == ".csv":
        return pl.read_csv(path, null_values=["NA", ""], infer_schema_length=10000)

    raise ValueError(f"Unsupported gene table format: {path.suffix} (use .tsv, .csv or .parquet)")


def load_gene_table(path: Path | str) -> pl.DataFrame:
    """Read the curated gene table and validate its schema.

    Args:
        path: TSV, CSV or Parquet file with one row per gene

    Returns:
        Schema-validated DataFrame

    Raises:
        FileNotFoundError: If the file doesn't exist
        SchemaError: If the table doesn't match the expected schema
    """
    logger.info("load_gene_table_start", path=str(path))

    df = validate_schema(read_gene_table(path))

    category_counts = {
        row["category"]: row["len"]
        for row in df.group_by("category").agg(pl.len()).to_dicts()
    }
    logger.info(
        "load_gene_table_complete",
        row_count=df.height,
        categories={str(k): v for k, v in category_counts.items()},
    )

    return df


def gene_table_description(source_path: Path | str) -> str:
    """Checkpoint description naming the file the gene table was read from."""
    return f"Curated gene localization table from {Path(source_path).resolve()}"


def load_from_checkpoint(store: PipelineStore, source_path: Path | str) -> Optional[pl.DataFrame]:
    """Return the stored gene table if it was read from source_path.

    Returns None when there is no gene_table checkpoint or it was stored
    from a different input file.
    """
    checkpoint = store.get_checkpoint(GENE_TABLE_NAME)
    if checkpoint is None:
        return None

    expected = gene_table_description(source_path)
    if checkpoint["description"] != expected:
        logger.warning(
            "gene_table_checkpoint_stale",
            stored=checkpoint["description"],
            expected=expected,
        )
        return None

    return store.load_dataframe(GENE_TABLE_NAME)


def load_to_duckdb(
    df: pl.DataFrame,
    store: PipelineStore,
    provenance: ProvenanceTracker,
    description: str = "",
    source_path: Optional[Path | str] = None,
) -> None:
    """Save the validated gene table to DuckDB with provenance.

    Creates or replaces the gene_table table (idempotent).

    Args:
        df: Schema-validated gene table
        store: PipelineStore instance for DuckDB persistence
        provenance: ProvenanceTracker instance for metadata recording
        description: Optional description for checkpoint metadata
        source_path: File the table was read from, recorded in the
            description so a later run can tell whether the checkpoint
            matches its input
    """
    if not description:
        description = (
            gene_table_description(source_path) if source_path is not None
            else "Curated gene localization table"
        )

    store.save_dataframe(
        df=df,
        table_name=GENE_TABLE_NAME,
        description=description,
        replace=True,
    )

    provenance.record_step("load_gene_table", {
        "row_count": df.height,
        "missing_category": df["category"].null_count(),
        "missing_covariate_cells": int(sum(df[col].null_count() for col in COVARIATES)),
    })

    logger.info("gene_table_saved", table=GENE_TABLE_NAME, row_count=df.height)
