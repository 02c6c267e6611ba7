"""Job matrix construction: filter syntax, manifest collection, expansion."""

from matrix_splitter.matrix.builder import JobDescriptor, JobKind, build, expand_project
from matrix_splitter.matrix.collect import CollectionResult, collect_manifests
from matrix_splitter.matrix.filters import DEFAULT_SYNTAX, FilterSyntax, Selector, load_filter_syntax

__all__ = [
    "DEFAULT_SYNTAX",
    "CollectionResult",
    "FilterSyntax",
    "JobDescriptor",
    "JobKind",
    "Selector",
    "build",
    "collect_manifests",
    "expand_project",
    "load_filter_syntax",
]
