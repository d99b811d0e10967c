"""Tests for project file selection."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from shipsync.client.files import IgnorePatterns, get_files, read_manifest
from shipsync.client.types import InputError


def make_project(root: Path, files: dict[str, str]) -> Path:
    for name, content in files.items():
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


def relative(root: Path, paths: list[str]) -> list[str]:
    return [Path(p).relative_to(root.resolve()).as_posix() for p in paths]


class TestReadManifest:
    """Tests for read_manifest."""

    def test_reads_package_json(self, tmp_path: Path) -> None:
        """Should parse package.json."""
        make_project(tmp_path, {"package.json": json.dumps({"name": "app"})})
        assert read_manifest(tmp_path) == {"name": "app"}

    def test_missing_directory(self, tmp_path: Path) -> None:
        """Should reject a directory that does not exist."""
        with pytest.raises(InputError, match="Could not read directory"):
            read_manifest(tmp_path / "missing")

    def test_missing_manifest(self, tmp_path: Path) -> None:
        """Should reject a project without package.json."""
        with pytest.raises(InputError, match="Failed to read JSON"):
            read_manifest(tmp_path)

    def test_manifest_not_an_object(self, tmp_path: Path) -> None:
        """Should reject a manifest that is not a JSON object."""
        make_project(tmp_path, {"package.json": "[1, 2]"})
        with pytest.raises(InputError):
            read_manifest(tmp_path)


class TestIgnorePatterns:
    """Tests for IgnorePatterns."""

    def test_default_patterns(self) -> None:
        """Should ignore VCS and dependency directories."""
        patterns = IgnorePatterns()
        assert patterns.should_ignore("node_modules", is_dir=True)
        assert patterns.should_ignore(".git", is_dir=True)
        assert patterns.should_ignore("src/.DS_Store")
        assert not patterns.should_ignore("src/index.js")

    def test_directory_only_pattern(self) -> None:
        """Should apply trailing-slash patterns to directories only."""
        patterns = IgnorePatterns(["build/"])
        assert patterns.should_ignore("build", is_dir=True)
        assert not patterns.should_ignore("build")

    def test_load_from_file(self, tmp_path: Path) -> None:
        """Should skip comments and blank lines."""
        ignore_file = tmp_path / ".gitignore"
        ignore_file.write_text("# comment\n\n*.log\n/dist\n")
        patterns = IgnorePatterns()
        patterns.load_from_file(ignore_file)

        assert "*.log" in patterns.patterns
        assert "dist" in patterns.patterns
        assert patterns.should_ignore("logs/app.log")


class TestGetFiles:
    """Tests for get_files."""

    def test_lists_sorted_absolute_paths(self, tmp_path: Path) -> None:
        """Should return absolute paths in sorted order."""
        make_project(tmp_path, {
            "package.json": "{}",
            "lib/b.js": "b",
            "index.js": "i",
        })

        files = get_files(tmp_path, {})

        assert all(Path(p).is_absolute() for p in files)
        assert relative(tmp_path, files) == ["index.js", "lib/b.js", "package.json"]

    def test_skips_default_ignores(self, tmp_path: Path) -> None:
        """Should skip node_modules and .git."""
        make_project(tmp_path, {
            "package.json": "{}",
            "node_modules/dep/index.js": "x",
            ".git/HEAD": "ref",
            "index.js": "i",
        })

        assert relative(tmp_path, get_files(tmp_path, {})) == ["index.js", "package.json"]

    def test_npmignore_preferred_over_gitignore(self, tmp_path: Path) -> None:
        """Should use .npmignore when both ignore files exist."""
        make_project(tmp_path, {
            "package.json": "{}",
            ".npmignore": "test/\n",
            ".gitignore": "dist/\n",
            "test/a.js": "t",
            "dist/bundle.js": "d",
        })

        files = relative(tmp_path, get_files(tmp_path, {}))

        assert "dist/bundle.js" in files
        assert "test/a.js" not in files

    def test_files_whitelist(self, tmp_path: Path) -> None:
        """Should restrict to the manifest's files list plus package.json."""
        make_project(tmp_path, {
            "package.json": "{}",
            "lib/index.js": "l",
            "bin/cli.js": "b",
            "README.md": "r",
        })

        files = get_files(tmp_path, {"files": ["lib", "*.md"]})

        assert relative(tmp_path, files) == ["README.md", "lib/index.js", "package.json"]
