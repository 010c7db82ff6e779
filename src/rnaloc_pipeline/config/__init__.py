from .loader import load_config, load_config_with_overrides
from .schema import PipelineConfig, DatasetInfo, ValidationSettings, ClassifierSettings

__all__ = [
    "load_config",
    "load_config_with_overrides",
    "PipelineConfig",
    "DatasetInfo",
    "ValidationSettings",
    "ClassifierSettings",
]
