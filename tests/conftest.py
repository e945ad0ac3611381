"""Pytest configuration for shared test fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_project_root_on_path(source_file: Path) -> None:
    """Add the repository root to ``sys.path`` when running from subpackages."""

    for candidate in [source_file.parent, *source_file.parents]:
        shared_dir = candidate / "shared"
        if shared_dir.is_dir():
            project_root = str(candidate)
            if project_root not in sys.path:
                sys.path.insert(0, project_root)
            break


_ensure_project_root_on_path(Path(__file__).resolve())

from shared.testing.environment import apply_required_test_environment

apply_required_test_environment()


@pytest.fixture
def kv():
    from shared.kvstore import MemoryKeyValueStore

    return MemoryKeyValueStore()


@pytest.fixture
def sample_store():
    """Global and WOC buckets used by the resolver examples."""

    from shared.mentions.store import ChannelEntry, MentionBucket, MentionStore

    return MentionStore(
        global_bucket=MentionBucket.build(
            {"Leadership": "111", "R5": "555"},
            [ChannelEntry("announcements", "900", "g1", "2024-01-01T00:00:00.000Z")],
        ),
        alliances={
            "WOC": MentionBucket.build(
                {"R5": "<@&999>"},
                [ChannelEntry("war-room", "901", "a1", "2024-01-01T00:00:00.000Z")],
            ),
        },
    )
