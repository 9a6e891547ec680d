"""Unit tests for source discovery."""

import pytest

from looker.discovery import discover_source_files, read_source_files


@pytest.mark.unit
class TestDiscoverSourceFiles:
    def test_finds_c_and_h_files_in_sorted_order(self, write_sources):
        root = write_sources(
            {
                "z.c": "int z;",
                "a/b.h": "int b;",
                "a/a.c": "int a;",
                "README.md": "# docs",
                "Makefile": "all:",
                "upper.C": "int upper;",
            }
        )
        found = discover_source_files(root)
        assert [path.relative_to(root).as_posix() for path in found] == ["a/a.c", "a/b.h", "upper.C", "z.c"]

    def test_skips_vcs_and_index_directories(self, write_sources):
        root = write_sources(
            {
                "main.c": "int main;",
                ".git/objects/x.c": "int x;",
                ".looker/cached.c": "int cached;",
                "vendor/lib.c": "int lib;",
            }
        )
        found = discover_source_files(root, skip_dirs=[".git", "vendor"], index_dir=root / ".looker")
        assert [path.relative_to(root).as_posix() for path in found] == ["main.c"]

    def test_custom_extensions(self, write_sources):
        root = write_sources({"a.c": "", "b.inc": "", "c.h": ""})
        found = discover_source_files(root, extensions=[".inc"])
        assert [path.name for path in found] == ["b.inc"]

    def test_missing_root_yields_nothing(self, tmp_path):
        assert discover_source_files(tmp_path / "absent") == []


@pytest.mark.unit
class TestReadSourceFiles:
    def test_reads_bytes_with_relative_paths(self, write_sources):
        root = write_sources({"src/a.c": "int a;\n"})
        sources, skipped = read_source_files(root, discover_source_files(root), max_file_bytes=1024)
        assert skipped == []
        assert len(sources) == 1
        assert sources[0].path == "src/a.c"
        assert sources[0].content == b"int a;\n"
        assert sources[0].mtime_ns is not None

    def test_oversize_files_are_skipped(self, write_sources):
        root = write_sources({"big.c": "x" * 100, "small.c": "int s;"})
        sources, skipped = read_source_files(root, discover_source_files(root), max_file_bytes=10)
        assert [source.path for source in sources] == ["small.c"]
        assert [(item.path, item.reason) for item in skipped] == [("big.c", "too_large")]

    def test_unreadable_files_are_skipped(self, write_sources):
        root = write_sources({"ok.c": "int ok;"})
        sources, skipped = read_source_files(root, [root / "gone.c", root / "ok.c"], max_file_bytes=1024)
        assert [source.path for source in sources] == ["ok.c"]
        assert [(item.path, item.reason) for item in skipped] == [("gone.c", "io_error")]
