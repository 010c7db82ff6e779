"""Shared fixtures: a synthetic curated gene table and a matching config."""

from pathlib import Path

import numpy as np
import polars as pl
import pytest

from rnaloc_pipeline.dataset.models import COMPARTMENTS, COVARIATES, LENGTH_COVARIATE

# Covariate whose counts are raised in each category
ENRICHED_COVARIATE = {
    "ER": "CLIP_PUM2",
    "TG": "CLIP_TIS11B",
    "CY": "CLIP_HuR",
}


def make_gene_table(
    n_genes: int = 80,
    seed: int = 0,
    rounding_digits: int | None = 4,
    missing_rate: float = 0.1,
) -> pl.DataFrame:
    """
    Build a gene table whose derived columns follow the curation rules.

    - pco_* drawn from a Dirichlet per gene (sum to 1)
    - npco_* = pco_* / median rounded to rounding_digits
    - every 4th gene is DF, the rest get the argmax compartment of npco_*
    - enriched covariates track the category so the classifier has signal
    - missing_rate of each covariate's cells are null
    """
    rng = np.random.default_rng(seed)
    labels = np.array(["DF", "ER", "TG", "CY"], dtype=object)[np.arange(n_genes) % 4]

    alpha = np.full((n_genes, 3), 2.0)
    for k, compartment in enumerate(COMPARTMENTS):
        alpha[labels == compartment.upper(), k] = 8.0
    pco = np.vstack([rng.dirichlet(a) for a in alpha])

    divisors = []
    for k in range(3):
        median = float(np.median(pco[:, k]))
        divisors.append(round(median, rounding_digits) if rounding_digits else median)
    npco = np.column_stack([pco[:, k] / divisors[k] for k in range(3)])

    compartments = np.array([c.upper() for c in COMPARTMENTS], dtype=object)
    argmax = compartments[npco.argmax(axis=1)]
    labels = np.where(labels == "DF", "DF", argmax)

    data = {
        "gene_name": [f"GENE{i}" for i in range(n_genes)],
        "refseq_id": [f"NM_{i:06d}" for i in range(n_genes)],
        "category": labels.tolist(),
    }
    for k, compartment in enumerate(COMPARTMENTS):
        data[f"pco_{compartment}"] = pco[:, k]
        data[f"npco_{compartment}"] = npco[:, k]

    enriched = {covariate: label for label, covariate in ENRICHED_COVARIATE.items()}
    for covariate in COVARIATES:
        if covariate == LENGTH_COVARIATE:
            values = rng.lognormal(mean=7.0, sigma=0.5, size=n_genes)
            values = np.where(labels == "TG", values * 2.0, values)
        else:
            values = rng.poisson(1.0, size=n_genes).astype(float)
            if covariate in enriched:
                boost = rng.poisson(4.0, size=n_genes)
                values = np.where(labels == enriched[covariate], values + boost, values)
        missing = rng.random(n_genes) < missing_rate
        data[covariate] = pl.Series(
            covariate,
            [None if m else float(v) for v, m in zip(values, missing)],
            dtype=pl.Float64,
        )

    return pl.DataFrame(data)


def write_config(tmp_path, input_path, **classifier) -> Path:
    """Write a pipeline config YAML pointing at input_path inside tmp_path."""
    settings = {
        "max_iterations": 200,
        "seed": 7,
        "grid_steps": 5,
    }
    settings.update(classifier)
    classifier_yaml = "\n".join(f"  {key}: {value}" for key, value in settings.items())

    config_path = tmp_path / "test_config.yaml"
    config_path.write_text(f"""
input_path: {input_path}
output_dir: {tmp_path / "results"}
duckdb_path: {tmp_path / "test.duckdb"}
dataset:
  version: test
validation:
  composition_tolerance: 1.0e-6
  rounding_digits: 4
  comparison_tolerance: 1.5e-8
classifier:
{classifier_yaml}
  grid_range: [-2.0, 2.0]
  boundary_pairs:
    - [CLIP_TIS11B, CLIP_HuR]
""")
    return config_path


@pytest.fixture
def gene_table() -> pl.DataFrame:
    """80-gene synthetic table with consistent derived columns."""
    return make_gene_table()


@pytest.fixture
def gene_table_path(tmp_path, gene_table):
    """The synthetic table written as TSV (NA for missing)."""
    path = tmp_path / "gene_table.tsv"
    gene_table.write_csv(path, separator="\t", null_value="NA")
    return path


@pytest.fixture
def config_path(tmp_path, gene_table_path):
    """Config YAML for the synthetic table with a small classifier budget."""
    return write_config(tmp_path, gene_table_path)
