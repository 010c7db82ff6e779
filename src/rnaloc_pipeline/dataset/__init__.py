"""Curated gene localization table: data model, schema checks and loading."""

from rnaloc_pipeline.dataset.models import (
    Category,
    Covariate,
    GeneRecord,
    CATEGORY_LEVELS,
    COVARIATES,
    LENGTH_COVARIATE,
    REQUIRED_COLUMNS,
    GENE_TABLE_NAME,
)
from rnaloc_pipeline.dataset.load import (
    validate_schema,
    read_gene_table,
    load_gene_table,
    load_from_checkpoint,
    load_to_duckdb,
    gene_table_description,
)

__all__ = [
    "Category",
    "Covariate",
    "GeneRecord",
    "CATEGORY_LEVELS",
    "COVARIATES",
    "LENGTH_COVARIATE",
    "REQUIRED_COLUMNS",
    "GENE_TABLE_NAME",
    "validate_schema",
    "read_gene_table",
    "load_gene_table",
    "load_from_checkpoint",
    "load_to_duckdb",
    "gene_table_description",
]
