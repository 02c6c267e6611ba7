"""Per-project split configuration and its resolution against defaults.

Project settings come from build-system properties exported to a YAML (or
JSON) file.  List-valued settings accept either a YAML list or the
semicolon-separated string form build systems use for item lists.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml

from matrix_splitter.errors import ConfigError

# Default configuration values
DEFAULT_CONFIG: dict[str, Any] = {
    "split_enabled": False,
    "skip_groups": [],
    "session_timeout": "20m",
    "hang_timeout": "10m",
    "uncollected_session_timeout": None,
    "uncollected_hang_timeout": None,
    "requires_packages": False,
    "requires_sdk": False,
    "requires_browser_install": False,
}

# Keys accepted in a project config file besides DEFAULT_CONFIG's
IDENTITY_KEYS = ("project_name", "name_prefix")

_DURATION_RE = re.compile(r"^(?:(?P<h>\d+)h)?(?:(?P<m>\d+)m)?(?:(?P<s>\d+)s)?$")

_TRUE_STRINGS = frozenset({"true", "yes", "on", "1"})
_FALSE_STRINGS = frozenset({"false", "no", "off", "0", ""})


@dataclass(frozen=True)
class ProjectConfig:
    """Operator-declared split settings for one project.

    ``uncollected_*`` timeouts of *None* mean "same as the regular value".
    """

    project_name: str = ""
    name_prefix: str = ""
    split_enabled: bool = False
    skip_groups: frozenset[str] = field(default_factory=frozenset)
    session_timeout: str = DEFAULT_CONFIG["session_timeout"]
    hang_timeout: str = DEFAULT_CONFIG["hang_timeout"]
    uncollected_session_timeout: str | None = None
    uncollected_hang_timeout: str | None = None
    requires_packages: bool = False
    requires_sdk: bool = False
    requires_browser_install: bool = False


@dataclass(frozen=True)
class ResolvedMetadata:
    """ProjectConfig with defaults applied and durations normalized."""

    project_name: str
    name_prefix: str
    split_enabled: bool
    skip_groups: frozenset[str]
    session_timeout: str
    hang_timeout: str
    uncollected_session_timeout: str
    uncollected_hang_timeout: str
    requires_packages: bool = False
    requires_sdk: bool = False
    requires_browser_install: bool = False


def normalize_duration(value: str, project: str, field_name: str) -> str:
    """Validate a duration like ``20m`` or ``1h30m`` and normalize it.

    Zero components are dropped (``0h20m`` -> ``20m``); an all-zero
    duration normalizes to ``0s``.

    Raises:
        ConfigError: If *value* is not a duration string.
    """
    text = str(value).strip().lower()
    match = _DURATION_RE.match(text)
    if not text or match is None:
        raise ConfigError(
            f"{project or '<unnamed>'}: invalid duration for {field_name}: {value!r}"
        )
    parts = [
        f"{int(match.group(unit))}{unit}"
        for unit in ("h", "m", "s")
        if match.group(unit) and int(match.group(unit))
    ]
    return "".join(parts) or "0s"


def resolve(config: ProjectConfig) -> ResolvedMetadata:
    """Merge a project's declared config over the defaults.

    Raises:
        ConfigError: If splitting is enabled without a project name or
            name prefix, or a timeout is not a valid duration.
    """
    project = config.project_name
    if config.split_enabled:
        if not config.project_name:
            raise ConfigError(
                f"{config.name_prefix or '<unnamed>'}: split enabled but projectName is empty"
            )
        if not config.name_prefix:
            raise ConfigError(f"{project}: split enabled but namePrefix is empty")

    session = normalize_duration(config.session_timeout, project, "sessionTimeout")
    hang = normalize_duration(config.hang_timeout, project, "hangTimeout")

    uncollected_session = session
    if config.uncollected_session_timeout is not None:
        uncollected_session = normalize_duration(
            config.uncollected_session_timeout, project, "uncollectedSessionTimeout"
        )
    uncollected_hang = hang
    if config.uncollected_hang_timeout is not None:
        uncollected_hang = normalize_duration(
            config.uncollected_hang_timeout, project, "uncollectedHangTimeout"
        )

    return ResolvedMetadata(
        project_name=config.project_name,
        name_prefix=config.name_prefix,
        split_enabled=config.split_enabled,
        skip_groups=frozenset(config.skip_groups),
        session_timeout=session,
        hang_timeout=hang,
        uncollected_session_timeout=uncollected_session,
        uncollected_hang_timeout=uncollected_hang,
        requires_packages=config.requires_packages,
        requires_sdk=config.requires_sdk,
        requires_browser_install=config.requires_browser_install,
    )


def parse_group_list(value: Any) -> frozenset[str]:
    """Parse a list of group names from a YAML list or ``a;b;c`` string."""
    if value is None:
        return frozenset()
    if isinstance(value, str):
        items: Iterable[Any] = value.split(";")
    elif isinstance(value, (list, tuple, set, frozenset)):
        items = value
    else:
        raise ConfigError(f"expected a list of group names, got {value!r}")
    return frozenset(str(item).strip() for item in items if str(item).strip())


def _parse_bool(value: Any, project: str, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise ConfigError(f"{project or '<unnamed>'}: invalid boolean for {field_name}: {value!r}")


def config_from_mapping(
    data: Mapping[str, Any], project_name: str | None = None
) -> ProjectConfig:
    """Build a ProjectConfig from a parsed config mapping.

    Missing keys take their DEFAULT_CONFIG values.  *project_name*, when
    given, overrides the mapping's ``project_name``.

    Raises:
        ConfigError: On unknown keys or values of the wrong shape.
    """
    name = project_name or str(data.get("project_name") or "")
    unknown = sorted(set(data) - set(DEFAULT_CONFIG) - set(IDENTITY_KEYS))
    if unknown:
        raise ConfigError(
            f"{name or '<unnamed>'}: unknown config key(s): {', '.join(unknown)}"
        )

    merged = {**DEFAULT_CONFIG, **data}
    try:
        skip_groups = parse_group_list(merged["skip_groups"])
    except ConfigError as e:
        raise ConfigError(f"{name or '<unnamed>'}: skipGroups: {e}") from e

    def _optional(key: str) -> str | None:
        val = merged[key]
        return None if val is None else str(val)

    return ProjectConfig(
        project_name=name,
        name_prefix=str(merged.get("name_prefix") or ""),
        split_enabled=_parse_bool(merged["split_enabled"], name, "splitEnabled"),
        skip_groups=skip_groups,
        session_timeout=str(merged["session_timeout"]),
        hang_timeout=str(merged["hang_timeout"]),
        uncollected_session_timeout=_optional("uncollected_session_timeout"),
        uncollected_hang_timeout=_optional("uncollected_hang_timeout"),
        requires_packages=_parse_bool(merged["requires_packages"], name, "requiresPackages"),
        requires_sdk=_parse_bool(merged["requires_sdk"], name, "requiresSdk"),
        requires_browser_install=_parse_bool(
            merged["requires_browser_install"], name, "requiresBrowserInstall"
        ),
    )


def load_project_config(
    path: Path | None, project_name: str | None = None
) -> ProjectConfig:
    """Load a project's config file (YAML or JSON).

    A *path* of None yields the defaults, which leave splitting disabled.

    Raises:
        ConfigError: If the file is unreadable or not a mapping.
    """
    if path is None:
        return config_from_mapping({}, project_name)

    label = project_name or path.name
    try:
        data = yaml.safe_load(path.read_text())
    except OSError as e:
        raise ConfigError(f"{label}: cannot read config file {path}: {e.strerror}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"{label}: invalid YAML in config file {path}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"{label}: config file {path} must contain a mapping")
    return config_from_mapping(data, project_name)
