"""Unit tests for the CI tool."""

from __future__ import annotations

import io
import json
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from ci_tool.main import (
    cmd_build_matrix,
    cmd_discover,
    cmd_show_matrix,
    main,
    parse_args,
)

CLASS_LISTING = """\
xUnit.net v3 In-Process Runner
Proj.Tests.C.Third
Proj.Tests.A.First
Proj.Tests.B.Second
"""

COLLECTION_LISTING = """\
Proj.Tests.Plain.Works
Collection: DB
  Proj.Tests.Db.Insert
  Proj.Tests.Db.Delete
Collection: Net
  Proj.Tests.Net.Ping
"""

SPLIT_CONFIG = """\
project_name: Proj
name_prefix: Proj.Tests
split_enabled: true
uncollected_session_timeout: 5m
"""


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


def _discover_args(tmpdir: Path, listing: str, config: str | None = SPLIT_CONFIG, **kwargs):
    argv = [
        "discover",
        "--listing", str(_write(tmpdir / "listing.txt", listing)),
        "--output-dir", str(tmpdir / "split"),
    ]
    if config is not None:
        argv += ["--config", str(_write(tmpdir / "split.yaml", config))]
    for key, value in kwargs.items():
        flag = "--" + key.replace("_", "-")
        argv += [flag] if value is True else [flag, value]
    return parse_args(argv)


class TestParseArgs:
    """Tests for argument parsing."""

    def test_discover_command(self):
        args = parse_args(["discover", "--listing", "-", "--project", "P"])
        assert args.command == "discover"
        assert args.listing == "-"
        assert args.project == "P"
        assert args.output_dir == Path(".tests/split")
        assert args.enable is False

    def test_discover_requires_listing(self):
        with pytest.raises(SystemExit):
            parse_args(["discover"])

    def test_build_matrix_command(self):
        args = parse_args([
            "build-matrix", "--expect", "A", "--expect", "B", "--format", "yaml",
        ])
        assert args.command == "build-matrix"
        assert args.expect == ["A", "B"]
        assert args.format == "yaml"
        assert args.output is None

    def test_build_matrix_defaults(self):
        args = parse_args(["build-matrix"])
        assert args.expect == []
        assert args.format == "json"
        assert args.artifacts_dir == Path(".tests/split")

    def test_show_matrix_command(self):
        args = parse_args(["show-matrix", "--artifacts-dir", "/tmp/x"])
        assert args.command == "show-matrix"
        assert args.artifacts_dir == Path("/tmp/x")


class TestDiscover:
    """Tests for the discover subcommand."""

    def test_class_mode(self, capsys):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            assert cmd_discover(_discover_args(root, CLASS_LISTING)) == 0
            list_text = (root / "split" / "Proj.tests.list").read_text()
            assert list_text == (
                "class:Proj.Tests.A\nclass:Proj.Tests.B\nclass:Proj.Tests.C\n"
            )
            assert "class mode, 3 class(es)" in capsys.readouterr().out

    def test_collection_mode(self, capsys):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            assert cmd_discover(_discover_args(root, COLLECTION_LISTING)) == 0
            list_text = (root / "split" / "Proj.tests.list").read_text()
            assert list_text == "group:DB\ngroup:Net\nuncollected\n"
            meta = json.loads((root / "split" / "Proj.tests.metadata.json").read_text())
            assert meta["mode"] == "collection"
            assert meta["uncollectedSessionTimeout"] == "5m"
            assert "2 collection(s) + uncollected" in capsys.readouterr().out

    def test_skip_groups_flag(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            args = _discover_args(root, COLLECTION_LISTING, skip_groups="Net")
            assert cmd_discover(args) == 0
            list_text = (root / "split" / "Proj.tests.list").read_text()
            assert list_text == "group:DB\nuncollected\n"

    def test_flags_without_config_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            args = _discover_args(
                root, CLASS_LISTING, config=None,
                project="Cli", prefix="Proj.Tests", enable=True,
            )
            assert cmd_discover(args) == 0
            assert (root / "split" / "Cli.tests.list").exists()

    def test_listing_from_stdin(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            args = _discover_args(root, "")
            args.listing = "-"
            stdin = io.TextIOWrapper(io.BytesIO(CLASS_LISTING.encode()))
            with patch("sys.stdin", stdin):
                assert cmd_discover(args) == 0
            assert (root / "split" / "Proj.tests.list").exists()

    def test_undecodable_listing_lines_ignored(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            args = _discover_args(root, "", enable=True)
            Path(args.listing).write_bytes(b"Proj.Tests.A.M\n\xff\xfe garbage\n")
            assert cmd_discover(args) == 0
            list_text = (root / "split" / "Proj.tests.list").read_text()
            assert list_text == "class:Proj.Tests.A\n"

    def test_undecodable_stdin_ignored(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            args = _discover_args(root, "")
            args.listing = "-"
            stdin = io.TextIOWrapper(io.BytesIO(b"\xff\xfe\nProj.Tests.B.Second\n"))
            with patch("sys.stdin", stdin):
                assert cmd_discover(args) == 0
            list_text = (root / "split" / "Proj.tests.list").read_text()
            assert list_text == "class:Proj.Tests.B\n"

    def test_quoted_collection_name_fails(self, capsys):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            listing = 'Collection: A "B"\n  Proj.Tests.Db.Insert\n'
            assert cmd_discover(_discover_args(root, listing)) == 1
            assert not (root / "split" / "Proj.tests.list").exists()
            err = capsys.readouterr().err
            assert err == 'Error: Proj: collection name contains a double quote: A "B"\n'

    def test_disabled_writes_metadata_only(self, capsys):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            args = _discover_args(root, CLASS_LISTING, config="project_name: Proj\n")
            assert cmd_discover(args) == 0
            assert (root / "split" / "Proj.tests.list").read_text() == ""
            meta = json.loads((root / "split" / "Proj.tests.metadata.json").read_text())
            assert meta["splitEnabled"] is False
            assert "splitting disabled" in capsys.readouterr().out

    def test_config_error_writes_nothing(self, capsys):
        """Split enabled with an empty prefix fails before any artifact."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            config = "project_name: Proj\nsplit_enabled: true\nname_prefix: ''\n"
            assert cmd_discover(_discover_args(root, CLASS_LISTING, config=config)) == 1
            assert not (root / "split").exists()
            err = capsys.readouterr().err
            assert err == "Error: Proj: split enabled but namePrefix is empty\n"

    def test_zero_matches(self, capsys):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            args = _discover_args(root, CLASS_LISTING, prefix="NoSuch.Thing")
            assert cmd_discover(args) == 1
            assert not (root / "split").exists()
            err = capsys.readouterr().err
            assert err.startswith("Error: Proj: no tests matching prefix 'NoSuch.Thing'")

    def test_missing_listing(self, capsys):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            args = _discover_args(root, CLASS_LISTING)
            args.listing = str(root / "missing.txt")
            assert cmd_discover(args) == 1
            assert "cannot read listing" in capsys.readouterr().err

    def test_missing_project_name(self, capsys):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            args = _discover_args(root, CLASS_LISTING, config="name_prefix: Proj.Tests\n")
            assert cmd_discover(args) == 1
            assert "projectName is empty" in capsys.readouterr().err

    def test_invalid_heading_pattern(self, capsys):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            args = _discover_args(root, CLASS_LISTING, heading_pattern="^(?P<nm>.+)$")
            assert cmd_discover(args) == 1
            assert "invalid heading pattern" in capsys.readouterr().err

    def test_custom_heading_pattern(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            listing = "[Slow]\nProj.Tests.S.X\nProj.Tests.F.Y\n"
            args = _discover_args(
                root, listing, heading_pattern=r"^\[(?P<name>[^\]]+)\]$",
            )
            assert cmd_discover(args) == 0
            assert (root / "split" / "Proj.tests.list").read_text() == "group:Slow\n"


class TestBuildMatrix:
    """Tests for the build-matrix subcommand."""

    def _discover(self, root: Path, listing: str) -> Path:
        assert cmd_discover(_discover_args(root, listing)) == 0
        return root / "split"

    def test_writes_json(self, capsys):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            split = self._discover(root, COLLECTION_LISTING)
            out = root / "matrix.json"
            args = parse_args([
                "build-matrix", "--artifacts-dir", str(split), "--output", str(out),
                "--github-output", str(root / "gh"),
            ])
            assert cmd_build_matrix(args) == 0
            data = json.loads(out.read_text())
            assert [e["name"] for e in data["include"]] == [
                "Proj_Collection_DB", "Proj_Collection_Net", "Proj_Uncollected",
            ]
            assert "Matrix: 3 jobs" in capsys.readouterr().out

    def test_writes_yaml(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            split = self._discover(root, CLASS_LISTING)
            out = root / "matrix.yaml"
            args = parse_args([
                "build-matrix", "--artifacts-dir", str(split),
                "--output", str(out), "--format", "yaml",
                "--github-output", str(root / "gh"),
            ])
            assert cmd_build_matrix(args) == 0
            assert "label: A" in out.read_text()

    def test_github_output_from_environment(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            split = self._discover(root, CLASS_LISTING)
            gh = root / "gh_output"
            args = parse_args(["build-matrix", "--artifacts-dir", str(split)])
            with patch.dict("os.environ", {"GITHUB_OUTPUT": str(gh)}):
                assert cmd_build_matrix(args) == 0
            assert gh.read_text().startswith("matrix={")

    def test_empty_artifacts_is_valid(self, capsys):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            out = root / "matrix.json"
            args = parse_args([
                "build-matrix", "--artifacts-dir", str(root / "none"),
                "--output", str(out), "--github-output", str(root / "gh"),
            ])
            assert cmd_build_matrix(args) == 0
            assert json.loads(out.read_text()) == {"include": []}

    def test_expected_missing_fails(self, capsys):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            split = self._discover(root, CLASS_LISTING)
            out = root / "matrix.json"
            args = parse_args([
                "build-matrix", "--artifacts-dir", str(split),
                "--output", str(out), "--expect", "Proj", "--expect", "Gone",
                "--github-output", str(root / "gh"),
            ])
            assert cmd_build_matrix(args) == 1
            assert not out.exists()
            assert "Gone" in capsys.readouterr().err

    def test_invalid_filter_syntax(self, capsys):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            split = self._discover(root, CLASS_LISTING)
            syntax = _write(root / "syntax.yaml", "class_template: --class\n")
            args = parse_args([
                "build-matrix", "--artifacts-dir", str(split),
                "--filter-syntax", str(syntax), "--github-output", str(root / "gh"),
            ])
            assert cmd_build_matrix(args) == 1
            assert "class_template" in capsys.readouterr().err


class TestShowMatrix:
    """Tests for the show-matrix subcommand."""

    def test_table(self, capsys):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            assert cmd_discover(_discover_args(root, COLLECTION_LISTING)) == 0
            capsys.readouterr()
            args = parse_args(["show-matrix", "--artifacts-dir", str(root / "split")])
            assert cmd_show_matrix(args) == 0
            out = capsys.readouterr().out
            assert "Proj_Collection_DB" in out
            assert "5m/10m" in out
            assert "Total: 3 jobs (1 catchall, 2 per_group)" in out

    def test_no_jobs(self, capsys):
        with tempfile.TemporaryDirectory() as tmpdir:
            args = parse_args(["show-matrix", "--artifacts-dir", tmpdir])
            assert cmd_show_matrix(args) == 0
            assert "No jobs found" in capsys.readouterr().out


class TestMain:
    """Tests for the main dispatcher."""

    def test_no_command(self, capsys):
        with pytest.raises(SystemExit):
            main([])

    def test_dispatch_show_matrix(self, capsys):
        with tempfile.TemporaryDirectory() as tmpdir:
            assert main(["show-matrix", "--artifacts-dir", tmpdir]) == 0
