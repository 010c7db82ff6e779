"""Tests for configuration loading and validation."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from rnaloc_pipeline.config import load_config, load_config_with_overrides
from rnaloc_pipeline.config.schema import ClassifierSettings, PipelineConfig, ValidationSettings

DEFAULT_CONFIG = Path(__file__).parent.parent / "config" / "default.yaml"


def test_load_valid_config():
    """Test loading valid default configuration."""
    config = load_config(DEFAULT_CONFIG)

    assert isinstance(config, PipelineConfig)
    assert config.validation.rounding_digits == 4
    assert config.validation.comparison_tolerance == 1.5e-8
    assert config.classifier.max_iterations == 1000
    assert config.classifier.grid_steps == 500
    assert config.classifier.grid_range == (-10.0, 10.0)
    assert ("CLIP_TIS11B", "Anno_3UTR_length") in config.classifier.boundary_pairs


def test_load_test_config(config_path, gene_table_path):
    """Test loading a config written by the shared fixture."""
    config = load_config(config_path)

    assert config.input_path == gene_table_path
    assert config.dataset.version == "test"
    assert config.classifier.seed == 7
    assert config.output_dir.exists()


def test_invalid_config_missing_field(tmp_path):
    """Test that missing required field raises ValidationError."""
    invalid_config = tmp_path / "invalid.yaml"
    invalid_config.write_text("""
output_dir: results
duckdb_path: data/pipeline.duckdb
""")

    with pytest.raises(ValidationError) as exc_info:
        load_config(invalid_config)

    assert "input_path" in str(exc_info.value)


def test_missing_config_file(tmp_path):
    """Test that a nonexistent config path raises FileNotFoundError."""
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_defaults_applied(tmp_path):
    """Test that omitted sections fall back to their defaults."""
    config_file = tmp_path / "minimal.yaml"
    config_file.write_text(f"""
input_path: data/gene_table.tsv
output_dir: {tmp_path / "out"}
duckdb_path: {tmp_path / "db.duckdb"}
""")

    config = load_config(config_file)

    assert config.validation == ValidationSettings()
    assert config.classifier == ClassifierSettings()
    assert config.dataset.version == "unversioned"


def test_rounding_digits_null_allowed():
    """Test that rounding_digits may be null (unrounded medians)."""
    settings = ValidationSettings(rounding_digits=None)
    assert settings.rounding_digits is None


def test_negative_rounding_digits_rejected():
    """Test that negative rounding_digits raises ValidationError."""
    with pytest.raises(ValidationError):
        ValidationSettings(rounding_digits=-1)


def test_grid_range_must_increase():
    """Test that a non-increasing grid range is rejected."""
    with pytest.raises(ValidationError) as exc_info:
        ClassifierSettings(grid_range=(5.0, -5.0))

    assert "increasing" in str(exc_info.value)


def test_unknown_boundary_covariate_rejected():
    """Test that boundary pairs must name known covariates."""
    with pytest.raises(ValidationError) as exc_info:
        ClassifierSettings(boundary_pairs=[("CLIP_TIS11B", "CLIP_NOPE")])

    assert "CLIP_NOPE" in str(exc_info.value)


def test_repeated_boundary_covariate_rejected():
    """Test that a pair repeating one covariate is rejected."""
    with pytest.raises(ValidationError):
        ClassifierSettings(boundary_pairs=[("CLIP_HuR", "CLIP_HuR")])


def test_grid_steps_minimum():
    """Test that grid_steps below 2 is rejected."""
    with pytest.raises(ValidationError):
        ClassifierSettings(grid_steps=1)


def test_config_hash_deterministic(config_path):
    """Test that config hash is deterministic and changes with config."""
    config1 = load_config(config_path)
    config2 = load_config(config_path)

    assert config1.config_hash() == config2.config_hash()
    assert len(config1.config_hash()) == 64

    config3 = load_config_with_overrides(config_path, {"classifier.seed": 99})
    assert config3.config_hash() != config1.config_hash()


def test_config_overrides(config_path):
    """Test that dotted overrides reach nested settings."""
    config = load_config_with_overrides(config_path, {
        "validation.rounding_digits": 0,
        "classifier.grid_steps": 10,
    })

    assert config.validation.rounding_digits == 0
    assert config.classifier.grid_steps == 10
    assert config.classifier.seed == 7


def test_invalid_override_rejected(config_path):
    """Test that overrides are validated like file values."""
    with pytest.raises(ValidationError):
        load_config_with_overrides(config_path, {"classifier.max_iterations": 0})


def test_output_dir_created(tmp_path):
    """Test that output_dir is created on load."""
    output_dir = tmp_path / "new" / "results"
    assert not output_dir.exists()

    PipelineConfig(
        input_path=tmp_path / "table.tsv",
        output_dir=output_dir,
        duckdb_path=tmp_path / "db.duckdb",
    )

    assert output_dir.exists()
