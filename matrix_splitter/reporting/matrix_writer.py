"""Serialization of the job matrix for CI fan-out.

The matrix is written as ``{"include": [...]}``, the shape GitHub Actions
expects for ``strategy.matrix``.  Field names are camelCase and their order
is fixed, so identical job lists always serialize to identical bytes.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Sequence

import yaml

from matrix_splitter.matrix.builder import JobDescriptor


def job_to_dict(job: JobDescriptor) -> dict[str, Any]:
    """Serialize one job descriptor."""
    return {
        "name": job.name,
        "project": job.project,
        "kind": job.kind.value,
        "label": job.label,
        "filterExpression": job.filter_expression,
        "sessionTimeout": job.session_timeout,
        "hangTimeout": job.hang_timeout,
        "requiresPackages": job.requires_packages,
        "requiresSdk": job.requires_sdk,
        "requiresBrowserInstall": job.requires_browser_install,
    }


def matrix_to_dict(jobs: Sequence[JobDescriptor]) -> dict[str, Any]:
    """Serialize the whole matrix."""
    return {"include": [job_to_dict(job) for job in jobs]}


def write_json(jobs: Sequence[JobDescriptor], path: Path) -> None:
    """Write the matrix as indented JSON."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(matrix_to_dict(jobs), f, indent=2)
        f.write("\n")


def write_yaml(jobs: Sequence[JobDescriptor], path: Path) -> None:
    """Write the matrix as YAML, preserving field order."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump(
            matrix_to_dict(jobs), f, default_flow_style=False, sort_keys=False
        )


def write_github_output(jobs: Sequence[JobDescriptor], path: Path) -> None:
    """Append ``matrix=<compact json>`` to a GitHub Actions output file."""
    compact = json.dumps(matrix_to_dict(jobs), separators=(",", ":"))
    with open(path, "a") as f:
        f.write(f"matrix={compact}\n")
