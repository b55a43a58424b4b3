"""Tests for retention selection and deletion helpers."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from docshelf.dedup.retention import (
    decide,
    delete_files,
    reclaimable_size,
    remove_files,
    select_all_except_newest,
    select_all_except_oldest,
    total_size,
)
from docshelf.models import DuplicateGroup, DuplicateMember, RetentionPolicy


def _group(*mtimes: int, size: int = 100) -> DuplicateGroup:
    return DuplicateGroup(
        "hash",
        tuple(DuplicateMember(f"/docs/{i}.pdf", size, mtime) for i, mtime in enumerate(mtimes)),
    )


class TestSelection:
    """Test keep-newest / keep-oldest selection."""

    def test_keep_newest(self) -> None:
        group = DuplicateGroup(
            "hash",
            (DuplicateMember("/a.pdf", 100, 100), DuplicateMember("/b.pdf", 100, 200)),
        )

        assert select_all_except_newest(group) == {"/a.pdf"}

    def test_keep_oldest(self) -> None:
        group = DuplicateGroup(
            "hash",
            (DuplicateMember("/a.pdf", 100, 100), DuplicateMember("/b.pdf", 100, 200)),
        )

        assert select_all_except_oldest(group) == {"/b.pdf"}

    @pytest.mark.parametrize(
        "mtimes",
        [(1, 2), (5, 1, 3), (10, 40, 20, 30), (7, 7, 7), (3, 9, 9, 1, 4)],
    )
    def test_exactly_one_member_retained(self, mtimes: tuple[int, ...]) -> None:
        group = _group(*mtimes)
        newest = max(group.members, key=lambda m: m.last_modified_at).last_modified_at
        oldest = min(group.members, key=lambda m: m.last_modified_at).last_modified_at

        newest_deleted = select_all_except_newest(group)
        oldest_deleted = select_all_except_oldest(group)

        assert len(newest_deleted) == len(mtimes) - 1
        assert len(oldest_deleted) == len(mtimes) - 1
        (kept_newest,) = set(group.paths) - newest_deleted
        (kept_oldest,) = set(group.paths) - oldest_deleted
        by_path = {m.path: m for m in group.members}
        assert by_path[kept_newest].last_modified_at == newest
        assert by_path[kept_oldest].last_modified_at == oldest

    def test_ties_are_deterministic(self) -> None:
        group = _group(5, 5, 5)

        assert select_all_except_newest(group) == select_all_except_newest(group)
        assert select_all_except_newest(group) == {"/docs/1.pdf", "/docs/2.pdf"}


class TestDecide:
    def test_keep_newest_decision(self) -> None:
        group = _group(100, 300, 200, size=50)

        decision = decide(group, RetentionPolicy.KEEP_NEWEST)

        assert decision.retained == "/docs/1.pdf"
        assert decision.to_delete == frozenset({"/docs/0.pdf", "/docs/2.pdf"})
        assert decision.reclaimable_bytes == 100
        assert decision.policy is RetentionPolicy.KEEP_NEWEST
        assert decision.content_hash == "hash"

    def test_keep_oldest_decision(self) -> None:
        decision = decide(_group(100, 300, 200), RetentionPolicy.KEEP_OLDEST)

        assert decision.retained == "/docs/0.pdf"
        assert decision.retained not in decision.to_delete

    @pytest.mark.parametrize(
        ("policy", "retained"),
        [("keepNewest", "/docs/1.pdf"), ("keepOldest", "/docs/0.pdf")],
    )
    def test_accepts_plain_policy_values(self, policy: str, retained: str) -> None:
        decision = decide(_group(100, 300, 200), policy)

        assert decision.retained == retained
        assert decision.policy is RetentionPolicy(policy)

    def test_unknown_policy_rejected(self) -> None:
        with pytest.raises(ValueError):
            decide(_group(1, 2), "keepLargest")

    def test_reclaimable_size(self) -> None:
        groups = [_group(1, 2, size=10), _group(1, 2, 3, size=20)]

        assert reclaimable_size(groups, RetentionPolicy.KEEP_NEWEST) == 50


class TestTotalSize:
    def test_sums_existing_files(self, tmp_path: Path) -> None:
        a = tmp_path / "a.pdf"
        b = tmp_path / "b.pdf"
        a.write_bytes(b"x" * 10)
        b.write_bytes(b"x" * 15)

        assert total_size([str(a), str(b)]) == 25

    def test_missing_files_count_zero(self, tmp_path: Path) -> None:
        a = tmp_path / "a.pdf"
        a.write_bytes(b"x" * 10)

        assert total_size([str(a), str(tmp_path / "gone.pdf")]) == 10

    def test_empty(self) -> None:
        assert total_size([]) == 0


class TestDeleteFiles:
    def test_deletes_all(self, tmp_path: Path) -> None:
        paths = []
        for name in ("a.pdf", "b.pdf"):
            path = tmp_path / name
            path.write_bytes(b"x")
            paths.append(str(path))

        assert delete_files(paths) == 2
        assert not any(os.path.exists(p) for p in paths)

    def test_failure_does_not_abort(self, tmp_path: Path) -> None:
        a = tmp_path / "a.pdf"
        b = tmp_path / "b.pdf"
        a.write_bytes(b"x")
        b.write_bytes(b"x")
        real_remove = os.remove

        def remove(path: str) -> None:
            if path == str(a):
                raise PermissionError("read-only")
            real_remove(path)

        with patch("docshelf.dedup.retention.os.remove", side_effect=remove):
            count = delete_files([str(a), str(b)])

        assert count == 1
        assert a.exists()
        assert not b.exists()

    def test_remove_files_reports_only_removed_paths(self, tmp_path: Path) -> None:
        a = tmp_path / "a.pdf"
        b = tmp_path / "b.pdf"
        a.write_bytes(b"x")
        b.write_bytes(b"x")
        real_remove = os.remove

        def remove(path: str) -> None:
            if path == str(a):
                raise PermissionError("read-only")
            real_remove(path)

        with patch("docshelf.dedup.retention.os.remove", side_effect=remove):
            removed = remove_files([str(a), str(b), str(tmp_path / "gone.pdf")])

        assert removed == [str(b)]

    def test_missing_file_not_counted(self, tmp_path: Path) -> None:
        assert delete_files([str(tmp_path / "gone.pdf")]) == 0

    def test_directory_not_counted(self, tmp_path: Path) -> None:
        folder = tmp_path / "folder.pdf"
        folder.mkdir()

        assert delete_files([str(folder)]) == 0
        assert folder.exists()
