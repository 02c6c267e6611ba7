"""Runner filter syntax.

The flags a test runner accepts for "run this class", "run this
collection" and "skip this collection" belong to the runner, not to the
splitter, so they are carried as templates.  Jobs keep a structured
``Selector``; the filter string is only ever rendered from it.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from matrix_splitter.discovery.listing import TestEntry, class_name_of
from matrix_splitter.errors import ConfigError

TEMPLATE_KEYS = ("class_template", "group_template", "exclude_group_template")


@dataclass(frozen=True)
class FilterSyntax:
    """Filter flag templates; ``{name}`` is replaced by a class or group."""

    class_template: str = '--filter-class "{name}"'
    group_template: str = '--filter-collection "{name}"'
    exclude_group_template: str = '--filter-not-collection "{name}"'
    separator: str = " "


DEFAULT_SYNTAX = FilterSyntax()


@dataclass(frozen=True)
class Selector:
    """What a job selects: one class, one group, or all but some groups.

    Exactly one of ``include_class`` / ``include_group`` is set for
    per-class and per-group jobs.  A catch-all selector sets neither and
    lists the groups it excludes; an empty exclusion list selects everything.
    """

    include_class: str | None = None
    include_group: str | None = None
    exclude_groups: tuple[str, ...] = field(default_factory=tuple)

    def selects(self, entry: TestEntry, name_prefix: str) -> bool:
        """Whether a test entry would be run under this selector."""
        if self.include_class is not None:
            return class_name_of(entry.qualified_name, name_prefix) == self.include_class
        if self.include_group is not None:
            return entry.group_name == self.include_group
        return entry.group_name not in self.exclude_groups


def render(selector: Selector, syntax: FilterSyntax = DEFAULT_SYNTAX) -> str:
    """Render a selector into the runner's filter argument string."""
    if selector.include_class is not None:
        return syntax.class_template.format(name=selector.include_class)
    if selector.include_group is not None:
        return syntax.group_template.format(name=selector.include_group)
    return syntax.separator.join(
        syntax.exclude_group_template.format(name=g) for g in selector.exclude_groups
    )


def syntax_from_mapping(data: dict[str, Any]) -> FilterSyntax:
    """Build a FilterSyntax from a mapping, keeping defaults for absent keys.

    Raises:
        ConfigError: On unknown keys or templates without ``{name}``.
    """
    known = set(TEMPLATE_KEYS) | {"separator"}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"filter syntax: unknown key(s): {', '.join(unknown)}")

    overrides: dict[str, str] = {}
    for key, value in data.items():
        if not isinstance(value, str):
            raise ConfigError(f"filter syntax: {key} must be a string")
        if key in TEMPLATE_KEYS:
            if "{name}" not in value:
                raise ConfigError(f"filter syntax: {key} must contain '{{name}}'")
            try:
                value.format(name="x")
            except (KeyError, IndexError, ValueError) as e:
                raise ConfigError(f"filter syntax: {key} is not a valid template") from e
        overrides[key] = value
    return replace(DEFAULT_SYNTAX, **overrides)


def load_filter_syntax(path: Path | None) -> FilterSyntax:
    """Load filter syntax overrides from a YAML file (None -> defaults)."""
    if path is None:
        return DEFAULT_SYNTAX
    try:
        data = yaml.safe_load(path.read_text())
    except OSError as e:
        raise ConfigError(f"filter syntax: cannot read {path}: {e.strerror}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"filter syntax: invalid YAML in {path}") from e
    if data is None:
        return DEFAULT_SYNTAX
    if not isinstance(data, dict):
        raise ConfigError(f"filter syntax: {path} must contain a mapping")
    return syntax_from_mapping(data)
