"""Output generation: dual-format result tables and plots."""

from rnaloc_pipeline.output.visualizations import (
    CATEGORY_COLORS,
    generate_classification_plots,
    generate_validation_plots,
    plot_category_counts,
    plot_confusion_matrix,
    plot_decision_surface,
    plot_normalization_residuals,
)
from rnaloc_pipeline.output.writers import write_table_output

__all__ = [
    "write_table_output",
    "CATEGORY_COLORS",
    "generate_validation_plots",
    "generate_classification_plots",
    "plot_category_counts",
    "plot_normalization_residuals",
    "plot_confusion_matrix",
    "plot_decision_surface",
]
