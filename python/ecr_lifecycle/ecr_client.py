"""
ECR client for registry metadata and image deletion.

Wraps the boto3 ECR client with the three operations the cleanup needs:
describing repositories, describing the images of a repository and
batch-deleting images by tag or digest.
"""

from typing import Any, Dict, List, Optional, Sequence

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ecr_lifecycle.error_utils import create_ecr_error
from ecr_lifecycle.logging_utils import get_logger
from ecr_lifecycle.retention import RegistryImageRecord

# BatchDeleteImage accepts at most 100 image ids per request
BATCH_DELETE_MAX_IDS = 100

logger = get_logger(__name__)


def image_identifiers(tags: Sequence[str], digests: Sequence[str]) -> List[Dict[str, str]]:
    """Build BatchDeleteImage ``imageIds`` from tags and digests"""
    return [{"imageTag": tag} for tag in tags] + [{"imageDigest": digest} for digest in digests]


class EcrRegistry:
    """Standardized ECR client for registry operations"""

    def __init__(self, session: boto3.Session, region: Optional[str] = None):
        """Initialize EcrRegistry

        Args:
            session: boto3 session holding the credentials for the registry account
            region: Region of the registry (default: session region)
        """
        self.region = region or session.region_name
        self.client = session.client("ecr", region_name=self.region)

    def describe_repositories(self, names: Optional[Sequence[str]] = None) -> List[Dict[str, Any]]:
        """Describe the given repositories, or every repository when names is empty.

        Raises:
            ActionableError: If the repositories cannot be described
        """
        kwargs = {}
        if names:
            kwargs["repositoryNames"] = list(names)

        repositories = []
        try:
            paginator = self.client.get_paginator("describe_repositories")
            for page in paginator.paginate(**kwargs):
                repositories.extend(page["repositories"])
        except (ClientError, BotoCoreError) as e:
            raise create_ecr_error("describe repositories", e) from e
        return repositories

    def describe_images(self, repository_name: str) -> List[RegistryImageRecord]:
        """Return every image of a repository.

        Raises:
            ActionableError: If the images cannot be described
        """
        records = []
        try:
            paginator = self.client.get_paginator("describe_images")
            for page in paginator.paginate(repositoryName=repository_name):
                records.extend(RegistryImageRecord.from_ecr(detail) for detail in page["imageDetails"])
        except (ClientError, BotoCoreError) as e:
            raise create_ecr_error("describe images", e, repository_name) from e
        return records

    def batch_delete_image(self, repository_name: str, tags: Sequence[str], digests: Sequence[str]) -> List[Dict[str, Any]]:
        """Delete images of a repository by tag and by digest.

        Returns:
            Per-image failures reported by ECR (empty when everything was deleted)

        Raises:
            ActionableError: If a delete request fails as a whole
        """
        image_ids = image_identifiers(tags, digests)
        failures = []
        try:
            for start in range(0, len(image_ids), BATCH_DELETE_MAX_IDS):
                response = self.client.batch_delete_image(
                    repositoryName=repository_name,
                    imageIds=image_ids[start:start + BATCH_DELETE_MAX_IDS],
                )
                failures.extend(response.get("failures", []))
        except (ClientError, BotoCoreError) as e:
            raise create_ecr_error("batch delete image", e, repository_name) from e

        logger.debug(f"Deleted {len(image_ids) - len(failures)}/{len(image_ids)} image ids from {repository_name}")
        return failures
