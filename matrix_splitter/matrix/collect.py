"""Gather manifest artifacts from all discovered projects.

A malformed project is reported and left out so that one broken artifact
does not block the matrix for every other project.  A project that was
expected but left no artifacts at all points at an upstream pipeline
failure and is raised.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from matrix_splitter.discovery.artifacts import (
    LIST_SUFFIX,
    METADATA_SUFFIX,
    artifact_paths,
    read_manifest,
)
from matrix_splitter.discovery.listing import ProjectManifest
from matrix_splitter.errors import ManifestFormatError, MissingManifestError
from matrix_splitter.metadata.resolver import ResolvedMetadata


@dataclass
class CollectionResult:
    """Projects ready for the matrix build, plus those that were skipped."""

    pairs: list[tuple[ProjectManifest, ResolvedMetadata]] = field(default_factory=list)
    opted_out: list[str] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)


def collect_manifests(
    artifacts_dir: Path,
    expected: Iterable[str] = (),
) -> CollectionResult:
    """Load every artifact pair in *artifacts_dir*, sorted by project name.

    Args:
        artifacts_dir: Directory holding ``*.tests.list`` and
            ``*.tests.metadata.json`` files.
        expected: Project names that must have produced artifacts.

    Raises:
        MissingManifestError: If an expected project left no artifacts at all.
    """
    result = CollectionResult()
    projects: set[str] = set()
    if artifacts_dir.is_dir():
        for suffix in (LIST_SUFFIX, METADATA_SUFFIX):
            projects.update(p.name[: -len(suffix)] for p in artifacts_dir.glob(f"*{suffix}"))

    for project in sorted(projects):
        list_path, meta_path = artifact_paths(artifacts_dir, project)
        if not meta_path.exists():
            _skip(result, project, f"{project}: metadata file missing")
            continue
        if not list_path.exists():
            _skip(result, project, f"{project}: list file missing")
            continue
        try:
            manifest, metadata = read_manifest(list_path, meta_path)
        except ManifestFormatError as e:
            _skip(result, project, str(e))
            continue
        if manifest is None:
            result.opted_out.append(project)
            continue
        result.pairs.append((manifest, metadata))

    missing = [name for name in expected if name not in projects]
    if missing:
        raise MissingManifestError(missing)

    return result


def _skip(result: CollectionResult, project: str, message: str) -> None:
    print(f"Warning: skipping project {message}", file=sys.stderr)
    result.skipped[project] = message
