"""Tests for deciding which candidate tags are deleted."""

import pytest

from ecr_lifecycle.error_utils import ErrorCategory
from ecr_lifecycle.tag_matching import decide_delete_tags, matches_exclusion


class TestDecideDeleteTags:
    """Tests for decide_delete_tags"""

    @pytest.mark.parametrize(
        "candidates, in_use, patterns, expected",
        [
            (
                ["v1.0.0", "v1.0.1", "v1.0.2", "stable"],
                ["v1.0.1", "stable"],
                [],
                ["v1.0.0", "v1.0.2"],
            ),
            (
                ["latest", "stable", "v1-prd", "v1-stg"],
                [],
                ["latest", ".+-prd"],
                ["stable", "v1-stg"],
            ),
            (
                ["latest", "stable", "v1-prd", "v1-stg", "v1.0.0", "v1.0.1"],
                ["v1.0.1", "stable"],
                ["latest", ".+-prd"],
                ["v1-stg", "v1.0.0"],
            ),
        ],
        ids=["with in use", "with regex", "with both"],
    )
    def test_decide_delete_tags(self, candidates, in_use, patterns, expected):
        assert decide_delete_tags(candidates, in_use, patterns) == expected

    def test_duplicates_are_preserved(self):
        assert decide_delete_tags(["v1", "v2", "v1"], ["v2"], []) == ["v1", "v1"]

    def test_in_use_requires_exact_match(self):
        assert decide_delete_tags(["v1.0", "v1.0.1"], ["v1.0"], []) == ["v1.0.1"]

    def test_patterns_are_unanchored(self):
        assert decide_delete_tags(["release-latest-1", "v2"], [], ["latest"]) == ["v2"]

    def test_empty_candidates(self):
        assert decide_delete_tags([], ["v1"], ["v.*"]) == []

    def test_malformed_pattern_does_not_protect(self):
        diagnostics = []

        result = decide_delete_tags(["v1", "keep-me"], [], ["[unclosed", "keep"], diagnostics)

        assert result == ["v1"]
        assert diagnostics
        assert all(d.category == ErrorCategory.EXCLUSION_PATTERN for d in diagnostics)
        assert {d.subject for d in diagnostics} == {"[unclosed"}

    def test_in_use_tags_skip_pattern_evaluation(self):
        diagnostics = []

        assert decide_delete_tags(["v1"], ["v1"], ["[unclosed"], diagnostics) == []
        assert diagnostics == []


class TestMatchesExclusion:
    """Tests for matches_exclusion"""

    def test_first_match_wins(self):
        diagnostics = []
        assert matches_exclusion("latest", ["latest", "[unclosed"], diagnostics) is True
        assert diagnostics == []

    def test_no_patterns(self):
        assert matches_exclusion("latest", []) is False
