"""CI job matrix construction.

Expands each project's manifest into job descriptors: one job per class in
class mode, or one job per collection plus a trailing ``Uncollected``
catch-all in collection mode.  Output order is fully determined by the
input order, so identical inputs always produce identical matrices.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable

from matrix_splitter.discovery.listing import ProjectManifest, SplitMode, TestEntry
from matrix_splitter.errors import ConfigError
from matrix_splitter.matrix.filters import DEFAULT_SYNTAX, FilterSyntax, Selector, render
from matrix_splitter.metadata.resolver import ResolvedMetadata

GROUP_LABEL_PREFIX = "Collection_"
CATCHALL_LABEL = "Uncollected"


class JobKind(str, enum.Enum):
    """Kind of a matrix entry."""

    PER_CLASS = "per_class"
    PER_GROUP = "per_group"
    CATCHALL = "catchall"


@dataclass(frozen=True)
class JobDescriptor:
    """One CI matrix entry."""

    project: str
    name_prefix: str
    kind: JobKind
    label: str
    filter_expression: str
    selector: Selector
    session_timeout: str
    hang_timeout: str
    requires_packages: bool = False
    requires_sdk: bool = False
    requires_browser_install: bool = False

    @property
    def name(self) -> str:
        """Job name shown in CI."""
        return f"{self.project}_{self.label}"

    def selects(self, entry: TestEntry) -> bool:
        """Whether this job's filter would run *entry*."""
        return self.selector.selects(entry, self.name_prefix)


def short_name(qualified_name: str, name_prefix: str) -> str:
    """Strip ``prefix.`` from a qualified name for display."""
    lead = name_prefix + "."
    if qualified_name.startswith(lead):
        return qualified_name[len(lead):]
    return qualified_name


def _job(
    manifest: ProjectManifest,
    metadata: ResolvedMetadata,
    kind: JobKind,
    label: str,
    selector: Selector,
    syntax: FilterSyntax,
) -> JobDescriptor:
    catchall = kind is JobKind.CATCHALL
    return JobDescriptor(
        project=manifest.project_name,
        name_prefix=manifest.name_prefix,
        kind=kind,
        label=label,
        filter_expression=render(selector, syntax),
        selector=selector,
        session_timeout=(
            metadata.uncollected_session_timeout if catchall else metadata.session_timeout
        ),
        hang_timeout=(
            metadata.uncollected_hang_timeout if catchall else metadata.hang_timeout
        ),
        requires_packages=metadata.requires_packages,
        requires_sdk=metadata.requires_sdk,
        requires_browser_install=metadata.requires_browser_install,
    )


def expand_project(
    manifest: ProjectManifest,
    metadata: ResolvedMetadata,
    syntax: FilterSyntax = DEFAULT_SYNTAX,
) -> list[JobDescriptor]:
    """Expand one project into its jobs (empty when splitting is disabled).

    Raises:
        ConfigError: If the manifest and metadata name different projects.
    """
    if not metadata.split_enabled:
        return []
    if manifest.project_name != metadata.project_name:
        raise ConfigError(
            f"{manifest.project_name}: metadata belongs to project "
            f"'{metadata.project_name}'"
        )

    jobs: list[JobDescriptor] = []
    if manifest.mode is SplitMode.CLASS:
        for class_name in sorted(manifest.classes):
            jobs.append(_job(
                manifest, metadata, JobKind.PER_CLASS,
                short_name(class_name, manifest.name_prefix),
                Selector(include_class=class_name),
                syntax,
            ))
        return jobs

    groups = tuple(sorted(manifest.groups))
    for group in groups:
        jobs.append(_job(
            manifest, metadata, JobKind.PER_GROUP,
            GROUP_LABEL_PREFIX + group,
            Selector(include_group=group),
            syntax,
        ))
    # Always emitted in collection mode so ungrouped and skipped-group
    # tests have a home.
    jobs.append(_job(
        manifest, metadata, JobKind.CATCHALL,
        CATCHALL_LABEL,
        Selector(exclude_groups=groups),
        syntax,
    ))
    return jobs


def build(
    pairs: Iterable[tuple[ProjectManifest, ResolvedMetadata]],
    syntax: FilterSyntax = DEFAULT_SYNTAX,
) -> tuple[JobDescriptor, ...]:
    """Build the combined job matrix for all projects.

    Projects are expanded in the order given.  A project either contributes
    all of its jobs or, if its expansion fails, the whole build fails before
    anything is returned.

    Returns:
        Ordered tuple of job descriptors; empty for empty input.
    """
    jobs: list[JobDescriptor] = []
    for manifest, metadata in pairs:
        jobs.extend(expand_project(manifest, metadata, syntax))
    return tuple(jobs)
