"""Per-project split configuration and its resolved form."""

from matrix_splitter.metadata.resolver import (
    DEFAULT_CONFIG,
    ProjectConfig,
    ResolvedMetadata,
    load_project_config,
    resolve,
)

__all__ = [
    "DEFAULT_CONFIG",
    "ProjectConfig",
    "ResolvedMetadata",
    "load_project_config",
    "resolve",
]
