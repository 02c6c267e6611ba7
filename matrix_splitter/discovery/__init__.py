"""Test listing discovery and the manifest artifacts it produces."""

from matrix_splitter.discovery.artifacts import artifact_paths, read_manifest, write_manifest
from matrix_splitter.discovery.listing import (
    HeadingLine,
    IdentityLine,
    ProjectManifest,
    SplitMode,
    TestEntry,
    classify_line,
    collect_entries,
    discover,
)

__all__ = [
    "HeadingLine",
    "IdentityLine",
    "ProjectManifest",
    "SplitMode",
    "TestEntry",
    "artifact_paths",
    "classify_line",
    "collect_entries",
    "discover",
    "read_manifest",
    "write_manifest",
]
