"""
Retention policies for ECR images.

A retention policy decides which images stored in a repository are old or
excess enough to be considered for deletion. Two policies are supported:

- SinceImagePushed: images pushed more than ``days`` days ago
- ImageCountMoreThan: everything except the ``limit`` most recently pushed images

Eligible images are returned as a DeletionCandidateSet. Tagged images are
identified by their tags, untagged images by their digest.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

SINCE_IMAGE_PUSHED = "sinceImagePushed"
IMAGE_COUNT_MORE_THAN = "imageCountMoreThan"
POLICY_TYPES = (SINCE_IMAGE_PUSHED, IMAGE_COUNT_MORE_THAN)


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps are treated as UTC so they compare with ECR's aware ones
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class RegistryImageRecord:
    """One image of a repository, as returned by ECR DescribeImages"""

    pushed_at: datetime
    digest: str
    tags: Tuple[str, ...] = ()

    @classmethod
    def from_ecr(cls, detail: Dict[str, Any]) -> "RegistryImageRecord":
        """Build a record from an entry of ``imageDetails``"""
        return cls(
            pushed_at=detail["imagePushedAt"],
            digest=detail["imageDigest"],
            tags=tuple(detail.get("imageTags") or ()),
        )


@dataclass
class DeletionCandidateSet:
    """Images selected by a retention policy"""

    tags: List[str] = field(default_factory=list)
    digests: List[str] = field(default_factory=list)

    def add(self, record: RegistryImageRecord) -> None:
        # An untagged image can only be addressed by its digest
        if record.tags:
            self.tags.extend(record.tags)
        else:
            self.digests.append(record.digest)

    def is_empty(self) -> bool:
        return not self.tags and not self.digests


@dataclass(frozen=True)
class SinceImagePushed:
    """Images pushed strictly before ``now - days`` are eligible"""

    days: int

    def eligible(self, images: Sequence[RegistryImageRecord], now: datetime) -> List[RegistryImageRecord]:
        deadline = _as_utc(now) - timedelta(days=self.days)
        return [image for image in images if _as_utc(image.pushed_at) < deadline]

    def __str__(self) -> str:
        return f"{SINCE_IMAGE_PUSHED}({self.days} days)"


@dataclass(frozen=True)
class ImageCountMoreThan:
    """All but the ``limit`` most recently pushed images are eligible"""

    limit: int

    def eligible(self, images: Sequence[RegistryImageRecord], now: datetime) -> List[RegistryImageRecord]:
        if len(images) <= self.limit:
            return []
        # sorted() is stable, so images pushed at the same time keep their input order
        newest_first = sorted(images, key=lambda image: _as_utc(image.pushed_at), reverse=True)
        return newest_first[self.limit:]

    def __str__(self) -> str:
        return f"{IMAGE_COUNT_MORE_THAN}({self.limit} images)"


RetentionPolicy = Union[SinceImagePushed, ImageCountMoreThan]


def policy_from_config(policy_type: str, number: int) -> RetentionPolicy:
    """Build a retention policy from the ``commonLifecycle`` config section

    Raises:
        ValueError: If the policy type is unknown or the number is invalid
    """
    if isinstance(number, bool) or not isinstance(number, int) or number < 0:
        raise ValueError(f"retention number must be a non-negative integer, got: {number!r}")
    if policy_type == SINCE_IMAGE_PUSHED:
        try:
            datetime.now(timezone.utc) - timedelta(days=number)
        except OverflowError as e:
            raise ValueError(f"retention days reach before the earliest representable date, got: {number}") from e
        return SinceImagePushed(days=number)
    if policy_type == IMAGE_COUNT_MORE_THAN:
        return ImageCountMoreThan(limit=number)
    raise ValueError(f"retention type must be one of {', '.join(POLICY_TYPES)}, got: {policy_type!r}")


def deletion_candidates(
    images: Sequence[RegistryImageRecord],
    policy: RetentionPolicy,
    now: Optional[datetime] = None,
) -> DeletionCandidateSet:
    """Return the images of one repository that the policy allows to delete.

    Args:
        images: Records of a single repository
        policy: Retention policy to apply
        now: Reference time for age based policies (default: current UTC time)

    Returns:
        DeletionCandidateSet with the tags of tagged images and the digests of
        untagged images, in evaluation order
    """
    if now is None:
        now = datetime.now(timezone.utc)

    candidates = DeletionCandidateSet()
    for image in policy.eligible(images, now):
        candidates.add(image)
    return candidates
