"""Pydantic models for pipeline configuration."""

import hashlib
import json
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from rnaloc_pipeline.dataset.models import COVARIATES


class DatasetInfo(BaseModel):
    """Provenance information for the curated gene table."""

    version: str = Field(
        default="unversioned",
        description="Version label of the curated gene table",
    )
    source: str = Field(
        default="",
        description="Free-text description of where the table came from",
    )


class ValidationSettings(BaseModel):
    """Tolerances and rounding convention for the validator stage."""

    composition_tolerance: float = Field(
        default=1e-6,
        gt=0.0,
        description="Maximum |pco_cy + pco_er + pco_tg - 1| accepted per gene",
    )
    rounding_digits: Optional[int] = Field(
        default=4,
        ge=0,
        le=15,
        description="Decimal places the column medians are rounded to (null or 0 = no rounding)",
    )
    comparison_tolerance: float = Field(
        default=1.5e-8,
        gt=0.0,
        description="Tolerance for the mean relative difference between computed and reported values",
    )


class ClassifierSettings(BaseModel):
    """Settings for the multinomial classification stage."""

    max_iterations: int = Field(
        default=1000,
        ge=1,
        description="Iteration budget for the likelihood optimizer",
    )
    seed: int = Field(
        default=42,
        ge=0,
        description="Seed for the optimizer's random starting coefficients",
    )
    init_range: float = Field(
        default=0.1,
        ge=0.0,
        description="Starting coefficients are drawn uniformly from [-init_range, init_range]",
    )
    grid_range: tuple[float, float] = Field(
        default=(-10.0, 10.0),
        description="Range swept by each varying covariate in decision surfaces",
    )
    grid_steps: int = Field(
        default=500,
        ge=2,
        description="Grid points per axis in decision surfaces",
    )
    boundary_pairs: list[tuple[str, str]] = Field(
        default_factory=list,
        description="Covariate pairs to render decision surfaces for",
    )

    @field_validator("grid_range")
    @classmethod
    def check_grid_range(cls, v: tuple[float, float]) -> tuple[float, float]:
        """Require an increasing grid range."""
        if v[0] >= v[1]:
            raise ValueError(f"grid_range must be increasing, got {v}")
        return v

    @field_validator("boundary_pairs")
    @classmethod
    def check_boundary_pairs(cls, v: list[tuple[str, str]]) -> list[tuple[str, str]]:
        """Reject pairs that name unknown covariates or repeat one covariate."""
        for first, second in v:
            unknown = [name for name in (first, second) if name not in COVARIATES]
            if unknown:
                raise ValueError(f"Unknown covariate(s) in boundary_pairs: {unknown}")
            if first == second:
                raise ValueError(f"boundary pair repeats covariate {first}")
        return v


class PipelineConfig(BaseModel):
    """Main pipeline configuration."""

    input_path: Path = Field(
        ...,
        description="Curated gene table (TSV, CSV or Parquet)",
    )
    output_dir: Path = Field(
        ...,
        description="Directory for result tables, reports and plots",
    )
    duckdb_path: Path = Field(
        ...,
        description="Path to DuckDB database file",
    )
    dataset: DatasetInfo = Field(
        default_factory=DatasetInfo,
        description="Dataset provenance information",
    )
    validation: ValidationSettings = Field(
        default_factory=ValidationSettings,
        description="Validator settings",
    )
    classifier: ClassifierSettings = Field(
        default_factory=ClassifierSettings,
        description="Classifier settings",
    )

    @field_validator("output_dir")
    @classmethod
    def create_directory(cls, v: Path) -> Path:
        """Create directory if it doesn't exist."""
        v.mkdir(parents=True, exist_ok=True)
        return v

    def config_hash(self) -> str:
        """
        Compute SHA-256 hash of the configuration.

        Returns a deterministic hash based on all config values,
        useful for tracking which settings produced a set of results.
        """
        config_dict = self.model_dump(mode="python")
        config_json = json.dumps(
            config_dict,
            sort_keys=True,
            default=str,
        )
        return hashlib.sha256(config_json.encode()).hexdigest()
