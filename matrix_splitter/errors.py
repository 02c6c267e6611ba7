"""Exception types raised by the splitter.

Library code raises these; only the CLI turns them into diagnostics and
exit codes.
"""

from __future__ import annotations


class SplitterError(Exception):
    """Base class for all splitter failures."""


class ConfigError(SplitterError):
    """Declared project configuration is internally inconsistent."""


class DiscoveryError(SplitterError):
    """A test listing yielded no usable entries for the configured prefix."""


class ManifestFormatError(SplitterError):
    """A manifest artifact pair on disk could not be read back."""


class MissingManifestError(SplitterError):
    """Projects expected to contribute jobs have no manifest artifacts."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = sorted(missing)
        super().__init__(
            "no manifest artifacts for expected project(s): "
            + ", ".join(self.missing)
        )
