"""Unit tests for filter syntax rendering and loading."""

from __future__ import annotations

import tempfile
from pathlib import Path

import pytest

from matrix_splitter.discovery.listing import TestEntry
from matrix_splitter.errors import ConfigError
from matrix_splitter.matrix.filters import (
    DEFAULT_SYNTAX,
    FilterSyntax,
    Selector,
    load_filter_syntax,
    render,
    syntax_from_mapping,
)

PREFIX = "Proj.Tests"


class TestRender:
    """Tests for rendering selectors with the default syntax."""

    def test_class(self):
        assert render(Selector(include_class="Proj.Tests.A")) == '--filter-class "Proj.Tests.A"'

    def test_group(self):
        assert render(Selector(include_group="DB")) == '--filter-collection "DB"'

    def test_exclusions_joined(self):
        selector = Selector(exclude_groups=("DB", "Net"))
        assert render(selector) == (
            '--filter-not-collection "DB" --filter-not-collection "Net"'
        )

    def test_no_exclusions_selects_everything(self):
        """An empty conjunction renders to an empty filter."""
        assert render(Selector()) == ""

    def test_custom_syntax(self):
        syntax = FilterSyntax(
            class_template="-class {name}",
            group_template="-trait Category={name}",
            exclude_group_template="-notrait Category={name}",
            separator=" ",
        )
        assert render(Selector(include_group="DB"), syntax) == "-trait Category=DB"
        assert render(Selector(exclude_groups=("A", "B")), syntax) == (
            "-notrait Category=A -notrait Category=B"
        )


class TestSelects:
    """Tests for selector evaluation against test entries."""

    def test_class_selector(self):
        selector = Selector(include_class="Proj.Tests.A")
        assert selector.selects(TestEntry("Proj.Tests.A.X"), PREFIX)
        assert not selector.selects(TestEntry("Proj.Tests.AB.X"), PREFIX)
        assert not selector.selects(TestEntry("Proj.Tests.A.Inner.X"), PREFIX)

    def test_group_selector(self):
        selector = Selector(include_group="DB")
        assert selector.selects(TestEntry("Proj.Tests.A.X", "DB"), PREFIX)
        assert not selector.selects(TestEntry("Proj.Tests.A.X", "Net"), PREFIX)
        assert not selector.selects(TestEntry("Proj.Tests.A.X"), PREFIX)

    def test_exclusion_selector(self):
        selector = Selector(exclude_groups=("DB",))
        assert not selector.selects(TestEntry("Proj.Tests.A.X", "DB"), PREFIX)
        assert selector.selects(TestEntry("Proj.Tests.A.X", "Net"), PREFIX)
        assert selector.selects(TestEntry("Proj.Tests.A.X"), PREFIX)


class TestSyntaxFromMapping:
    """Tests for filter syntax overrides."""

    def test_partial_override_keeps_defaults(self):
        syntax = syntax_from_mapping({"group_template": "--trait \"Category={name}\""})
        assert syntax.group_template == "--trait \"Category={name}\""
        assert syntax.class_template == DEFAULT_SYNTAX.class_template

    def test_unknown_key(self):
        with pytest.raises(ConfigError, match="method_template"):
            syntax_from_mapping({"method_template": "{name}"})

    def test_template_without_placeholder(self):
        with pytest.raises(ConfigError, match="class_template"):
            syntax_from_mapping({"class_template": "--filter-class"})

    def test_template_with_stray_placeholder(self):
        with pytest.raises(ConfigError, match="not a valid template"):
            syntax_from_mapping({"class_template": "{name} {other}"})

    def test_non_string_value(self):
        with pytest.raises(ConfigError, match="separator"):
            syntax_from_mapping({"separator": 1})


class TestLoadFilterSyntax:
    """Tests for reading filter syntax files."""

    def test_none_is_default(self):
        assert load_filter_syntax(None) is DEFAULT_SYNTAX

    def test_yaml_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "syntax.yaml"
            path.write_text("separator: ' & '\n")
            syntax = load_filter_syntax(path)
            assert syntax.separator == " & "
            assert render(Selector(exclude_groups=("A", "B")), syntax) == (
                '--filter-not-collection "A" & --filter-not-collection "B"'
            )

    def test_empty_file_is_default(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "syntax.yaml"
            path.write_text("")
            assert load_filter_syntax(path) == DEFAULT_SYNTAX

    def test_not_a_mapping(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "syntax.yaml"
            path.write_text("- a\n")
            with pytest.raises(ConfigError, match="mapping"):
                load_filter_syntax(path)
