"""Test listing parser and split mode discovery.

Parses the line-oriented output of a test binary's ``--list-tests`` mode.
Each line is classified into a small tagged variant: a grouping heading
(``Collection: DatabaseTests``), a test identity (``Proj.Tests.Foo.Bar``),
or nothing.  Identity lines inherit the group of the most recent heading.
Unknown lines are skipped so that banners and runner chatter never break
discovery.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import Iterable, Union

from matrix_splitter.errors import DiscoveryError

# Default heading pattern: "Group: <name>" or "Collection: <name>"
DEFAULT_HEADING_PATTERN = r"^\s*(?:group|collection)\s*:\s*(?P<name>\S(?:.*\S)?)\s*$"

# Characters that end the qualified name on an identity line
_NAME_TERMINATORS = re.compile(r"[\s(]")


class SplitMode(str, enum.Enum):
    """How a project's tests are partitioned into jobs."""

    COLLECTION = "collection"
    CLASS = "class"


@dataclass(frozen=True)
class TestEntry:
    """One discovered test."""

    __test__ = False

    qualified_name: str
    group_name: str | None = None


@dataclass(frozen=True)
class HeadingLine:
    """A grouping announcement; applies to the identity lines that follow."""

    group: str


@dataclass(frozen=True)
class IdentityLine:
    """A single test identity matching the project prefix."""

    qualified_name: str


ParsedLine = Union[HeadingLine, IdentityLine]


@dataclass(frozen=True)
class ProjectManifest:
    """Discovery result for one test project.

    ``groups`` is populated only in collection mode and ``classes`` only in
    class mode; both are sorted.  ``has_ungrouped`` records whether any test
    belongs to no group or to a skipped group, i.e. whether the catch-all
    job has work to do.
    """

    project_name: str
    name_prefix: str
    mode: SplitMode
    groups: tuple[str, ...] = ()
    classes: tuple[str, ...] = ()
    has_ungrouped: bool = False


def classify_line(
    line: str,
    name_prefix: str,
    heading_pattern: re.Pattern[str] | None = None,
) -> ParsedLine | None:
    """Classify one listing line.

    Returns a ``HeadingLine`` or ``IdentityLine``, or *None* when the line
    is neither.  Headings are checked first, so a heading whose group name
    happens to start with the prefix is still a heading.
    """
    if heading_pattern is None:
        heading_pattern = _DEFAULT_HEADING_RE

    match = heading_pattern.match(line)
    if match is not None:
        return HeadingLine(group=match.group("name"))

    stripped = line.strip()
    if not stripped:
        return None
    token = _NAME_TERMINATORS.split(stripped, maxsplit=1)[0]
    if token.startswith(name_prefix + ".") and len(token) > len(name_prefix) + 1:
        return IdentityLine(qualified_name=token)
    return None


def collect_entries(
    raw_listing: Iterable[str],
    name_prefix: str,
    heading_pattern: re.Pattern[str] | None = None,
) -> list[TestEntry]:
    """Scan a listing in order and return its test entries.

    Identity lines take the group of the most recent heading.  A test
    listed twice under the same group is recorded once; order of first
    appearance is kept.
    """
    current_group: str | None = None
    entries: list[TestEntry] = []
    seen: set[TestEntry] = set()

    for raw in raw_listing:
        parsed = classify_line(raw.rstrip("\r\n"), name_prefix, heading_pattern)
        if isinstance(parsed, HeadingLine):
            current_group = parsed.group
        elif isinstance(parsed, IdentityLine):
            entry = TestEntry(parsed.qualified_name, current_group)
            if entry not in seen:
                seen.add(entry)
                entries.append(entry)

    return entries


def class_name_of(qualified_name: str, name_prefix: str) -> str:
    """Trim a test's qualified name to its class.

    ``Proj.Tests.Foo.Bar`` -> ``Proj.Tests.Foo``.  A name with a single
    segment below the prefix is already class-level and returned unchanged.
    """
    remainder = qualified_name[len(name_prefix) + 1:]
    if "." not in remainder:
        return qualified_name
    return qualified_name.rsplit(".", 1)[0]


def discover(
    raw_listing: Iterable[str],
    name_prefix: str,
    skip_groups: Iterable[str] = (),
    project_name: str = "",
    heading_pattern: re.Pattern[str] | None = None,
) -> ProjectManifest:
    """Derive a project's split manifest from its test listing.

    Args:
        raw_listing: Lines of ``--list-tests`` output.
        name_prefix: Namespace prefix every test of the project starts with.
        skip_groups: Group names folded into the catch-all bucket.
        project_name: Project identifier (defaults to *name_prefix*).
        heading_pattern: Compiled heading regex with a ``name`` group.

    Returns:
        The project's ``ProjectManifest``.

    Raises:
        DiscoveryError: If *name_prefix* is empty, no test matches it, or a
            collection or class name contains a double quote.
    """
    project_name = project_name or name_prefix
    if not name_prefix:
        raise DiscoveryError(f"{project_name or '<unnamed>'}: namePrefix is empty")

    entries = collect_entries(raw_listing, name_prefix, heading_pattern)
    if not entries:
        raise DiscoveryError(
            f"{project_name}: no tests matching prefix '{name_prefix}' in listing"
        )

    skipped = frozenset(skip_groups)
    effective_groups = {
        e.group_name
        for e in entries
        if e.group_name is not None and e.group_name not in skipped
    }

    if effective_groups:
        _reject_quoted(project_name, "collection", effective_groups)
        has_ungrouped = any(
            e.group_name is None or e.group_name in skipped for e in entries
        )
        return ProjectManifest(
            project_name=project_name,
            name_prefix=name_prefix,
            mode=SplitMode.COLLECTION,
            groups=tuple(sorted(effective_groups)),
            has_ungrouped=has_ungrouped,
        )

    classes = {class_name_of(e.qualified_name, name_prefix) for e in entries}
    _reject_quoted(project_name, "class", classes)
    return ProjectManifest(
        project_name=project_name,
        name_prefix=name_prefix,
        mode=SplitMode.CLASS,
        classes=tuple(sorted(classes)),
    )


def _reject_quoted(project_name: str, kind: str, names: Iterable[str]) -> None:
    # Filter templates wrap names in double quotes.
    for name in sorted(names):
        if '"' in name:
            raise DiscoveryError(
                f"{project_name}: {kind} name contains a double quote: {name}"
            )


def compile_heading_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a heading regex, requiring a ``name`` capture group."""
    compiled = re.compile(pattern, re.IGNORECASE)
    if "name" not in compiled.groupindex:
        raise ValueError(
            f"Heading pattern must define a 'name' group: {pattern!r}"
        )
    return compiled


_DEFAULT_HEADING_RE = compile_heading_pattern(DEFAULT_HEADING_PATTERN)
