"""Persistence layer for stage outputs and provenance tracking."""

from rnaloc_pipeline.persistence.duckdb_store import PipelineStore
from rnaloc_pipeline.persistence.provenance import ProvenanceTracker

__all__ = ["PipelineStore", "ProvenanceTracker"]
