"""Unit tests for latest-version resolution and version formatting."""

from __future__ import annotations

import itertools

import pytest

from flowsync.exceptions import NoVersionsFound
from flowsync.models.registry import VersionMeta
from flowsync.versions import format_timestamp, format_version, latest, sort_versions


def _versions(*numbers: int) -> list[VersionMeta]:
    return [VersionMeta(version=n, comments=f"v{n}") for n in numbers]


class TestLatest:
    """Tests for latest()."""

    def test_picks_numeric_maximum(self) -> None:
        """[3, 1, 5] resolves to the version-5 entry."""
        assert latest(_versions(3, 1, 5)).version == 5

    def test_independent_of_input_order(self) -> None:
        """Every permutation of the input resolves to the same entry."""
        for order in itertools.permutations([2, 10, 9, 1]):
            assert latest(_versions(*order)).version == 10

    def test_numeric_not_lexicographic(self) -> None:
        """Version 10 beats version 9 even though "9" > "10" as strings."""
        assert latest(_versions(9, 10)).version == 10

    def test_single_version(self) -> None:
        """A one-element list returns that element."""
        only = VersionMeta(version=1)
        assert latest([only]) is only

    def test_empty_raises(self) -> None:
        """An empty version list raises NoVersionsFound."""
        with pytest.raises(NoVersionsFound):
            latest([])

    def test_accepts_iterator(self) -> None:
        """Generators are consumed once and still resolved."""
        assert latest(v for v in _versions(4, 7)).version == 7


class TestFormatting:
    """Tests for sort_versions(), format_timestamp() and format_version()."""

    def test_sort_newest_first(self) -> None:
        """sort_versions orders by version number descending."""
        assert [v.version for v in sort_versions(_versions(3, 1, 12, 5))] == [12, 5, 3, 1]

    def test_format_timestamp_utc(self) -> None:
        """Epoch milliseconds render as a UTC timestamp."""
        assert format_timestamp(1_704_110_400_000) == "2024-01-01 12:00:00 UTC"

    def test_format_timestamp_missing(self) -> None:
        """A missing timestamp renders as 'unknown'."""
        assert format_timestamp(None) == "unknown"

    def test_format_version_latest(self) -> None:
        """The latest version is tagged and all fields are shown."""
        meta = VersionMeta(version=5, comments="Add retry", timestamp=1_704_110_400_000, author="alice")
        assert format_version(meta, is_latest=True) == (
            "Version 5 (LATEST) | 2024-01-01 12:00:00 UTC | alice | Add retry"
        )

    def test_format_version_without_comment(self) -> None:
        """Missing comments and author fall back to placeholders."""
        assert format_version(VersionMeta(version=2)) == "Version 2 | unknown | No comment"
