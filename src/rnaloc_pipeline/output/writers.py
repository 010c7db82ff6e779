"""Dual-format TSV+Parquet writer with provenance sidecar."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence

import polars as pl
import yaml


def write_table_output(
    df: pl.DataFrame | pl.LazyFrame,
    output_dir: Path,
    filename_base: str,
    sort_by: Optional[Sequence[str]] = None,
    metadata: Optional[dict] = None,
) -> dict:
    """
    Write a result table to TSV and Parquet formats with a provenance sidecar.

    Produces identical data in both formats so results can be read by
    spreadsheet users and dataframe tools alike.

    Args:
        df: Polars DataFrame or LazyFrame (collected if lazy)
        output_dir: Directory to write output files (created if doesn't exist)
        filename_base: Base filename without extension
        sort_by: Optional columns to sort by for deterministic output
        metadata: Optional extra entries for the provenance sidecar

    Returns:
        Dictionary with output file paths:
        {
            "tsv": Path to TSV file,
            "parquet": Path to Parquet file,
            "provenance": Path to YAML provenance sidecar
        }
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    if isinstance(df, pl.LazyFrame):
        df = df.collect()

    if sort_by:
        df = df.sort(list(sort_by), nulls_last=True)

    tsv_path = output_dir / f"{filename_base}.tsv"
    parquet_path = output_dir / f"{filename_base}.parquet"
    provenance_path = output_dir / f"{filename_base}.provenance.yaml"

    df.write_csv(tsv_path, separator="\t", include_header=True, null_value="NA")
    df.write_parquet(parquet_path, compression="snappy")

    provenance = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "output_files": [tsv_path.name, parquet_path.name],
        "row_count": df.height,
        "column_count": len(df.columns),
        "column_names": df.columns,
    }
    if metadata:
        provenance["metadata"] = metadata

    with open(provenance_path, "w") as f:
        yaml.dump(provenance, f, default_flow_style=False, sort_keys=False)

    return {
        "tsv": tsv_path,
        "parquet": parquet_path,
        "provenance": provenance_path,
    }
