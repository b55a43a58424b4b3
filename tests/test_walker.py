"""Tests for directory walking and listing helpers."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from docshelf.scanner.walker import is_pdf_name, iter_pdf_paths, list_directory, stat_record


class TestIsPdfName:
    @pytest.mark.parametrize("name", ["a.pdf", "B.PDF", "c.Pdf"])
    def test_pdf_names(self, name: str) -> None:
        assert is_pdf_name(name)

    @pytest.mark.parametrize("name", ["a.txt", "pdf", "a.pdf.bak", "a.pd"])
    def test_other_names(self, name: str) -> None:
        assert not is_pdf_name(name)


class TestIterPdfPaths:
    """Test iter_pdf_paths function."""

    def test_directory_with_pdfs(self, tmp_path: Path) -> None:
        """Should find all PDFs in directory."""
        (tmp_path / "doc1.pdf").write_text("dummy1")
        (tmp_path / "doc2.pdf").write_text("dummy2")
        (tmp_path / "not_pdf.txt").write_text("text")

        paths = list(iter_pdf_paths(tmp_path))

        assert {p.name for p in paths} == {"doc1.pdf", "doc2.pdf"}

    def test_nested_directories(self, tmp_path: Path) -> None:
        """Should find PDFs in nested directories."""
        subdir = tmp_path / "subdir" / "deeper"
        subdir.mkdir(parents=True)
        (tmp_path / "root.pdf").write_text("root")
        (subdir / "nested.pdf").write_text("nested")

        paths = list(iter_pdf_paths(tmp_path))

        assert {p.name for p in paths} == {"root.pdf", "nested.pdf"}

    def test_case_insensitive_extension(self, tmp_path: Path) -> None:
        (tmp_path / "upper.PDF").write_text("x")
        (tmp_path / "mixed.Pdf").write_text("y")

        paths = list(iter_pdf_paths(tmp_path))

        assert {p.name for p in paths} == {"upper.PDF", "mixed.Pdf"}

    def test_directory_named_like_pdf_is_skipped(self, tmp_path: Path) -> None:
        (tmp_path / "folder.pdf").mkdir()
        (tmp_path / "folder.pdf" / "inner.pdf").write_text("x")

        paths = list(iter_pdf_paths(tmp_path))

        assert [p.name for p in paths] == ["inner.pdf"]
        assert all(p.is_file() for p in paths)

    def test_hidden_directories_skipped(self, tmp_path: Path) -> None:
        hidden = tmp_path / ".cache"
        hidden.mkdir()
        (hidden / "secret.pdf").write_text("x")
        (tmp_path / "visible.pdf").write_text("y")

        assert [p.name for p in iter_pdf_paths(tmp_path)] == ["visible.pdf"]
        assert len(list(iter_pdf_paths(tmp_path, skip_hidden=False))) == 2

    def test_excluded_directories(self, tmp_path: Path) -> None:
        (tmp_path / "Android").mkdir()
        (tmp_path / "Android" / "app.pdf").write_text("x")
        (tmp_path / "keep.pdf").write_text("y")

        paths = list(iter_pdf_paths(tmp_path, exclude_dirs=["Android"]))

        assert [p.name for p in paths] == ["keep.pdf"]

    def test_symlinks_not_followed(self, tmp_path: Path) -> None:
        real = tmp_path / "real.pdf"
        real.write_text("x")
        (tmp_path / "link.pdf").symlink_to(real)

        assert [p.name for p in iter_pdf_paths(tmp_path)] == ["real.pdf"]

    def test_empty_directory(self, tmp_path: Path) -> None:
        assert list(iter_pdf_paths(tmp_path)) == []

    def test_missing_root_raises(self, tmp_path: Path) -> None:
        with pytest.raises(OSError):
            list(iter_pdf_paths(tmp_path / "missing"))


class TestStatRecord:
    def test_builds_record(self, tmp_path: Path) -> None:
        pdf = tmp_path / "a.pdf"
        pdf.write_bytes(b"x" * 10)
        os.utime(pdf, (100, 100))

        record = stat_record(pdf, scanned_at=5)

        assert record is not None
        assert record.path == str(pdf)
        assert record.display_name == "a.pdf"
        assert record.size_bytes == 10
        assert record.last_modified_at == 100_000
        assert record.source_uri == pdf.as_uri()
        assert record.last_scanned_at == 5

    def test_missing_file(self, tmp_path: Path) -> None:
        assert stat_record(tmp_path / "gone.pdf", scanned_at=1) is None


class TestListDirectory:
    """Test single-directory listing."""

    def test_directories_first_then_files_alphabetically(self, tmp_path: Path) -> None:
        (tmp_path / "zeta").mkdir()
        (tmp_path / "Alpha").mkdir()
        (tmp_path / "b.pdf").write_text("b")
        (tmp_path / "A.pdf").write_text("a")
        (tmp_path / "c.PDF").write_text("c")

        entries = list_directory(tmp_path)

        assert [e.name for e in entries] == ["Alpha", "zeta", "A.pdf", "b.pdf", "c.PDF"]
        assert [e.is_directory for e in entries] == [True, True, False, False, False]

    def test_non_recursive(self, tmp_path: Path) -> None:
        sub = tmp_path / "sub"
        sub.mkdir()
        (sub / "nested.pdf").write_text("x")

        entries = list_directory(tmp_path)

        assert [e.name for e in entries] == ["sub"]
        assert entries[0].size_bytes == 0

    def test_filters_hidden_and_non_pdf(self, tmp_path: Path) -> None:
        (tmp_path / ".hidden.pdf").write_text("x")
        (tmp_path / ".git").mkdir()
        (tmp_path / "notes.txt").write_text("x")
        (tmp_path / "doc.pdf").write_text("x")

        assert [e.name for e in list_directory(tmp_path)] == ["doc.pdf"]

    def test_unreadable_path_returns_empty(self, tmp_path: Path) -> None:
        assert list_directory(tmp_path / "missing") == []

    def test_file_path_returns_empty(self, tmp_path: Path) -> None:
        pdf = tmp_path / "a.pdf"
        pdf.write_text("x")

        assert list_directory(pdf) == []
