"""Retention policies over duplicate groups.

Selection is pure: it only looks at the metadata captured in the group.
``total_size`` and ``delete_files`` touch the filesystem and are tolerant of
files that disappeared in the meantime.
"""

from __future__ import annotations

import logging
import os
from typing import Iterable, Sequence

from docshelf.models import DuplicateGroup, DuplicateMember, RetentionDecision, RetentionPolicy

LOGGER = logging.getLogger(__name__)


def _newest_first(group: DuplicateGroup) -> list[DuplicateMember]:
    by_path = sorted(group.members, key=lambda member: member.path)
    return sorted(by_path, key=lambda member: member.last_modified_at, reverse=True)


def _oldest_first(group: DuplicateGroup) -> list[DuplicateMember]:
    by_path = sorted(group.members, key=lambda member: member.path)
    return sorted(by_path, key=lambda member: member.last_modified_at)


def select_all_except_newest(group: DuplicateGroup) -> set[str]:
    """Mark every member except the most recently modified one."""
    return {member.path for member in _newest_first(group)[1:]}


def select_all_except_oldest(group: DuplicateGroup) -> set[str]:
    """Mark every member except the least recently modified one."""
    return {member.path for member in _oldest_first(group)[1:]}


def decide(group: DuplicateGroup, policy: RetentionPolicy | str) -> RetentionDecision:
    policy = RetentionPolicy(policy)
    ordered = _newest_first(group) if policy is RetentionPolicy.KEEP_NEWEST else _oldest_first(group)
    retained, *rest = ordered
    return RetentionDecision(
        content_hash=group.content_hash,
        policy=policy,
        retained=retained.path,
        to_delete=frozenset(member.path for member in rest),
        reclaimable_bytes=sum(member.size_bytes for member in rest),
    )


def reclaimable_size(groups: Sequence[DuplicateGroup], policy: RetentionPolicy | str) -> int:
    return sum(decide(group, policy).reclaimable_bytes for group in groups)


def total_size(paths: Iterable[str]) -> int:
    """Sum the current on-disk size of ``paths``; missing files count as 0."""
    total = 0
    for path in paths:
        try:
            total += os.stat(path).st_size
        except OSError:
            continue
    return total


def remove_files(paths: Iterable[str]) -> list[str]:
    """Delete each path independently and return the paths actually removed.

    Callers must evict exactly those paths from the file index afterwards.
    """
    removed: list[str] = []
    for path in paths:
        try:
            os.remove(path)
        except FileNotFoundError:
            LOGGER.debug("Already gone: %s", path)
            continue
        except OSError as exc:
            LOGGER.warning("Failed to delete %s: %s", path, exc)
            continue
        removed.append(path)
    LOGGER.info("Deleted %d files", len(removed))
    return removed


def delete_files(paths: Iterable[str]) -> int:
    """Delete each path independently and return how many were removed."""
    return len(remove_files(paths))
