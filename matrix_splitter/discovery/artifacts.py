"""Manifest artifact files written by discovery and read by the matrix build.

Each project gets two human-diffable files in the artifacts directory:

``<project>.tests.list``
    One entry per line: ``class:<name>`` in class mode, or ``group:<name>``
    lines followed by an ``uncollected`` sentinel in collection mode.

``<project>.tests.metadata.json``
    Flat JSON object of scalar fields (identity, mode, timeouts, flags).
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from matrix_splitter.discovery.listing import ProjectManifest, SplitMode
from matrix_splitter.errors import ManifestFormatError
from matrix_splitter.metadata.resolver import ResolvedMetadata

LIST_SUFFIX = ".tests.list"
METADATA_SUFFIX = ".tests.metadata.json"
UNCOLLECTED_SENTINEL = "uncollected"

# Metadata JSON key -> ResolvedMetadata attribute
_METADATA_FIELDS: dict[str, str] = {
    "projectName": "project_name",
    "namePrefix": "name_prefix",
    "splitEnabled": "split_enabled",
    "sessionTimeout": "session_timeout",
    "hangTimeout": "hang_timeout",
    "uncollectedSessionTimeout": "uncollected_session_timeout",
    "uncollectedHangTimeout": "uncollected_hang_timeout",
    "requiresPackages": "requires_packages",
    "requiresSdk": "requires_sdk",
    "requiresBrowserInstall": "requires_browser_install",
}

_BOOL_FIELDS = frozenset({
    "splitEnabled", "requiresPackages", "requiresSdk", "requiresBrowserInstall",
})


def artifact_paths(artifacts_dir: Path, project_name: str) -> tuple[Path, Path]:
    """Return the (list, metadata) paths for a project."""
    return (
        artifacts_dir / f"{project_name}{LIST_SUFFIX}",
        artifacts_dir / f"{project_name}{METADATA_SUFFIX}",
    )


def render_list(manifest: ProjectManifest) -> str:
    """Render the ``.tests.list`` text for a manifest."""
    if manifest.mode is SplitMode.CLASS:
        lines = [f"class:{name}" for name in sorted(manifest.classes)]
    else:
        lines = [f"group:{name}" for name in sorted(manifest.groups)]
        if manifest.has_ungrouped:
            lines.append(UNCOLLECTED_SENTINEL)
    return "".join(line + "\n" for line in lines)


def render_metadata(
    metadata: ResolvedMetadata, mode: SplitMode | None
) -> str:
    """Render the metadata JSON text.

    *mode* is None for projects that opted out of splitting and were
    never discovered.
    """
    data: dict[str, Any] = {
        key: getattr(metadata, attr) for key, attr in _METADATA_FIELDS.items()
    }
    data["mode"] = mode.value if mode is not None else ""
    data["skipGroups"] = ";".join(sorted(metadata.skip_groups))
    return json.dumps(data, indent=2, sort_keys=True) + "\n"


def write_manifest(
    artifacts_dir: Path,
    manifest: ProjectManifest | None,
    metadata: ResolvedMetadata,
) -> tuple[Path, Path]:
    """Write a project's artifact pair.

    Both texts are rendered before anything is written.  A *manifest* of
    None records an opted-out project: the metadata is written with an
    empty list file.

    Returns:
        The (list, metadata) paths written.
    """
    list_text = render_list(manifest) if manifest is not None else ""
    meta_text = render_metadata(metadata, manifest.mode if manifest else None)

    list_path, meta_path = artifact_paths(artifacts_dir, metadata.project_name)
    artifacts_dir.mkdir(parents=True, exist_ok=True)
    meta_path.write_text(meta_text, encoding="utf-8")
    list_path.write_text(list_text, encoding="utf-8")
    return list_path, meta_path


def _parse_metadata(project: str, text: str) -> dict[str, Any]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ManifestFormatError(f"{project}: invalid JSON in metadata: {e.msg}") from e
    if not isinstance(data, dict):
        raise ManifestFormatError(f"{project}: metadata is not a JSON object")

    for key in list(_METADATA_FIELDS) + ["mode", "skipGroups"]:
        if key not in data:
            raise ManifestFormatError(f"{project}: metadata missing field '{key}'")
        value = data[key]
        if key in _BOOL_FIELDS:
            if not isinstance(value, bool):
                raise ManifestFormatError(f"{project}: metadata field '{key}' must be a boolean")
        elif not isinstance(value, str):
            raise ManifestFormatError(f"{project}: metadata field '{key}' must be a string")
    return data


def _parse_list(project: str, text: str) -> tuple[list[str], list[str], bool]:
    classes: list[str] = []
    groups: list[str] = []
    uncollected = False
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line:
            continue
        if line == UNCOLLECTED_SENTINEL:
            uncollected = True
            continue
        kind, sep, name = line.partition(":")
        if not sep or not name:
            raise ManifestFormatError(f"{project}: malformed list entry on line {lineno}: {line!r}")
        if kind == "class":
            classes.append(name)
        elif kind == "group":
            groups.append(name)
        else:
            raise ManifestFormatError(f"{project}: unknown list entry kind '{kind}' on line {lineno}")
    return classes, groups, uncollected


def read_manifest(
    list_path: Path, meta_path: Path
) -> tuple[ProjectManifest | None, ResolvedMetadata]:
    """Read a project's artifact pair back.

    Returns:
        (manifest, metadata).  The manifest is None for projects that
        opted out of splitting.

    Raises:
        ManifestFormatError: If either file is unreadable or inconsistent.
    """
    project = list_path.name[: -len(LIST_SUFFIX)] if list_path.name.endswith(LIST_SUFFIX) else list_path.name
    try:
        meta_text = meta_path.read_text(encoding="utf-8")
        list_text = list_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ManifestFormatError(f"{project}: cannot read artifact: {e.strerror}") from e
    except UnicodeDecodeError as e:
        raise ManifestFormatError(f"{project}: artifact is not valid UTF-8") from e

    data = _parse_metadata(project, meta_text)
    if data["projectName"] != project:
        raise ManifestFormatError(
            f"{project}: metadata projectName is '{data['projectName']}'"
        )

    metadata = ResolvedMetadata(
        skip_groups=frozenset(g for g in data["skipGroups"].split(";") if g),
        **{attr: data[key] for key, attr in _METADATA_FIELDS.items()},
    )

    if not metadata.split_enabled:
        return None, metadata

    classes, groups, uncollected = _parse_list(project, list_text)
    try:
        mode = SplitMode(data["mode"])
    except ValueError:
        raise ManifestFormatError(f"{project}: unknown mode '{data['mode']}'") from None

    if mode is SplitMode.CLASS:
        if groups or uncollected or not classes:
            raise ManifestFormatError(f"{project}: list does not match class mode")
    elif classes or not groups:
        raise ManifestFormatError(f"{project}: list does not match collection mode")

    manifest = ProjectManifest(
        project_name=project,
        name_prefix=metadata.name_prefix,
        mode=mode,
        groups=tuple(sorted(set(groups))),
        classes=tuple(sorted(set(classes))),
        has_ungrouped=uncollected,
    )
    return manifest, metadata
