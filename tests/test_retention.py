"""Tests for retention policies."""

from datetime import datetime, timedelta, timezone

import pytest

from ecr_lifecycle.retention import (
    DeletionCandidateSet,
    ImageCountMoreThan,
    RegistryImageRecord,
    SinceImagePushed,
    deletion_candidates,
    policy_from_config,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _image(days_ago, tags, digest="dummydigest"):
    return RegistryImageRecord(
        pushed_at=NOW - timedelta(days=days_ago, hours=1),
        digest=digest,
        tags=tuple(tags),
    )


class TestRegistryImageRecord:
    """Tests for building records from ECR responses"""

    def test_from_ecr_with_tags(self):
        record = RegistryImageRecord.from_ecr(
            {"imagePushedAt": NOW, "imageDigest": "sha256:abc", "imageTags": ["v1", "latest"]}
        )
        assert record == RegistryImageRecord(pushed_at=NOW, digest="sha256:abc", tags=("v1", "latest"))

    def test_from_ecr_without_tags(self):
        record = RegistryImageRecord.from_ecr({"imagePushedAt": NOW, "imageDigest": "sha256:abc"})
        assert record.tags == ()


class TestSinceImagePushed:
    """Tests for the age based policy"""

    def test_get_candidates_by_since_image_pushed(self):
        images = [_image(11, ["11days"]), _image(9, ["9days"]), _image(10, ["10days"])]

        result = deletion_candidates(images, SinceImagePushed(10), NOW)

        assert result == DeletionCandidateSet(tags=["11days", "10days"], digests=[])

    def test_with_no_tag(self):
        images = [_image(11, [], "11daysdigest"), _image(9, [], "9daysdigest"), _image(10, [], "10daysdigest")]

        result = deletion_candidates(images, SinceImagePushed(10), NOW)

        assert result == DeletionCandidateSet(tags=[], digests=["11daysdigest", "10daysdigest"])

    def test_tag_and_digest(self):
        images = [
            _image(9, ["9days"]),
            _image(10, ["10days"]),
            _image(9, [], "9daysdigest"),
            _image(10, [], "10daysdigest"),
        ]

        result = deletion_candidates(images, SinceImagePushed(10), NOW)

        assert result.tags == ["10days"]
        assert result.digests == ["10daysdigest"]

    def test_deadline_is_strict(self):
        exactly = RegistryImageRecord(pushed_at=NOW - timedelta(days=10), digest="d", tags=("edge",))

        assert deletion_candidates([exactly], SinceImagePushed(10), NOW).is_empty()

    def test_every_tag_of_an_image_is_a_candidate(self):
        result = deletion_candidates([_image(20, ["a", "b"]), _image(30, ["b"])], SinceImagePushed(10), NOW)

        assert result.tags == ["a", "b", "b"]

    def test_naive_timestamps_are_treated_as_utc(self):
        naive = RegistryImageRecord(pushed_at=datetime(2024, 5, 1), digest="d", tags=("old",))

        assert deletion_candidates([naive], SinceImagePushed(10), NOW).tags == ["old"]

    def test_defaults_to_current_time(self):
        recent = RegistryImageRecord(pushed_at=datetime.now(timezone.utc), digest="d", tags=("new",))
        old = RegistryImageRecord(
            pushed_at=datetime.now(timezone.utc) - timedelta(days=400), digest="d", tags=("old",)
        )

        assert deletion_candidates([recent, old], SinceImagePushed(365)).tags == ["old"]


class TestImageCountMoreThan:
    """Tests for the count based policy"""

    def test_get_candidates_by_image_count(self):
        images = [_image(1, ["1day"]), _image(3, ["3days"]), _image(2, ["2days"])]

        result = deletion_candidates(images, ImageCountMoreThan(2), NOW)

        assert result == DeletionCandidateSet(tags=["3days"], digests=[])

    def test_with_no_tag(self):
        images = [_image(1, [], "1daydigest"), _image(3, [], "3daysdigest"), _image(2, [], "2daysdigest")]

        result = deletion_candidates(images, ImageCountMoreThan(2), NOW)

        assert result == DeletionCandidateSet(tags=[], digests=["3daysdigest"])

    def test_tag_and_digest(self):
        images = [
            _image(3, ["3days"]),
            _image(2, ["2days"]),
            _image(3, [], "3daysdigest"),
            _image(2, [], "2daysdigest"),
        ]

        result = deletion_candidates(images, ImageCountMoreThan(2), NOW)

        assert result.tags == ["3days"]
        assert result.digests == ["3daysdigest"]

    def test_count_at_or_below_limit_keeps_everything(self):
        images = [_image(100, ["a"]), _image(200, ["b"])]

        assert deletion_candidates(images, ImageCountMoreThan(2), NOW).is_empty()
        assert deletion_candidates(images, ImageCountMoreThan(5), NOW).is_empty()

    def test_ties_keep_input_order(self):
        same_time = NOW - timedelta(days=1)
        images = [
            RegistryImageRecord(pushed_at=same_time, digest="d1", tags=("first",)),
            RegistryImageRecord(pushed_at=same_time, digest="d2", tags=("second",)),
            RegistryImageRecord(pushed_at=same_time, digest="d3", tags=("third",)),
        ]

        result = deletion_candidates(images, ImageCountMoreThan(1), NOW)

        assert result.tags == ["second", "third"]

    def test_zero_limit_selects_everything_newest_first(self):
        images = [_image(5, ["old"]), _image(1, ["new"])]

        assert deletion_candidates(images, ImageCountMoreThan(0), NOW).tags == ["new", "old"]

    def test_input_is_not_reordered(self):
        images = [_image(1, ["1day"]), _image(3, ["3days"]), _image(2, ["2days"])]
        snapshot = list(images)

        deletion_candidates(images, ImageCountMoreThan(1), NOW)

        assert images == snapshot


class TestPolicyFromConfig:
    """Tests for building a policy from commonLifecycle"""

    def test_since_image_pushed(self):
        assert policy_from_config("sinceImagePushed", 30) == SinceImagePushed(days=30)

    def test_image_count_more_than(self):
        assert policy_from_config("imageCountMoreThan", 10) == ImageCountMoreThan(limit=10)

    @pytest.mark.parametrize("policy_type", ["", None, "imageCount", "SinceImagePushed"])
    def test_unknown_type(self, policy_type):
        with pytest.raises(ValueError, match="retention type"):
            policy_from_config(policy_type, 10)

    @pytest.mark.parametrize("number", [None, -1, "10", 1.5, True])
    def test_invalid_number(self, number):
        with pytest.raises(ValueError, match="non-negative integer"):
            policy_from_config("sinceImagePushed", number)

    @pytest.mark.parametrize("days", [1000000, 10 ** 10])
    def test_days_beyond_datetime_range(self, days):
        with pytest.raises(ValueError, match="earliest representable date"):
            policy_from_config("sinceImagePushed", days)

    def test_representable_days_are_accepted(self):
        policy = policy_from_config("sinceImagePushed", 700000)

        assert deletion_candidates([_image(1, ["v1"])], policy, NOW).is_empty()


class TestCandidateRouting:
    """Each image contributes its tags or its digest, never both"""

    def test_mutual_exclusivity(self):
        images = [
            _image(40, ["a"], "da"),
            _image(41, [], "db"),
            _image(42, ["c", "d"], "dc"),
            _image(43, [], "dd"),
        ]

        result = deletion_candidates(images, SinceImagePushed(1), NOW)

        assert result.tags == ["a", "c", "d"]
        assert result.digests == ["db", "dd"]
        assert not set(result.digests) & {"da", "dc"}

    def test_idempotent(self):
        images = [_image(1, ["1day"]), _image(3, ["3days"]), _image(2, [], "2daysdigest")]

        first = deletion_candidates(images, ImageCountMoreThan(1), NOW)
        second = deletion_candidates(images, ImageCountMoreThan(1), NOW)

        assert first == second
