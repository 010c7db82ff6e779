"""rnaloc-pipeline: validation and classification of subcellular RNA localization data."""

__version__ = "0.1.0"
