"""
ECR lifecycle cleanup workflow.

Ties the pieces together: images in use are collected from every reference
EKS cluster, then each target ECR repository is evaluated against the
retention policy and unused, non-excluded images are deleted (or only
logged in dry-run mode).
"""

import concurrent.futures
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

import boto3

from ecr_lifecycle.auth import assume_role_session, get_kubernetes_api_client, session_from_credentials
from ecr_lifecycle.config_manager import ClusterDescriptor, ConfigManager
from ecr_lifecycle.ecr_client import EcrRegistry
from ecr_lifecycle.error_utils import Diagnostic
from ecr_lifecycle.image_usage import ClusterWorkloadSource, in_use_image_tags, list_unique_images
from ecr_lifecycle.logging_utils import get_logger
from ecr_lifecycle.retention import RetentionPolicy, deletion_candidates
from ecr_lifecycle.tag_matching import decide_delete_tags

STATUS_DELETED = "deleted"
STATUS_DRY_RUN = "dry_run"
STATUS_NOTHING_TO_DELETE = "nothing_to_delete"
STATUS_FAILED = "failed"


@dataclass
class RepositoryResult:
    """Outcome of the cleanup of one repository"""

    repository: str
    status: str
    tags: List[str] = field(default_factory=list)
    digests: List[str] = field(default_factory=list)
    failures: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None


class LifecycleCleaner:
    """Deletes ECR images that are past retention and not used by any workload"""

    def __init__(
        self,
        config: ConfigManager,
        session: Optional[boto3.Session] = None,
        dry_run: bool = False,
        registry: Optional[EcrRegistry] = None,
        workload_source_factory: Optional[Callable[[ClusterDescriptor], ClusterWorkloadSource]] = None,
        now: Optional[datetime] = None,
    ):
        """Initialize the cleaner

        Args:
            config: Loaded and validated configuration
            session: Base AWS session (required unless registry and workload_source_factory are given)
            dry_run: Only log the images that would be deleted
            registry: ECR client (default: built from the session and ecr.roleARN)
            workload_source_factory: Builds the workload source of a cluster (default: EKS via the session)
            now: Reference time for the age based retention policy (default: current time)
        """
        self.config = config
        self.session = session
        self.dry_run = dry_run
        self.now = now
        self.policy: RetentionPolicy = config.get_retention_policy()
        self.ignore_patterns = config.get_ignore_patterns()
        self.max_workers = config.get_max_workers()
        self.logger = get_logger(self.__class__.__name__)

        if registry is None:
            ecr_region = config.get_ecr_region()
            registry = EcrRegistry(assume_role_session(session, config.get_ecr_role_arn(), ecr_region), ecr_region)
        self.registry = registry

        self._base_credentials = None
        if workload_source_factory is None:
            # Resolved once here; cluster workers each build their own session from it
            self._base_credentials = session.get_credentials().get_frozen_credentials()
        self.workload_source_factory = workload_source_factory or self._eks_workload_source

    def _eks_workload_source(self, cluster: ClusterDescriptor) -> ClusterWorkloadSource:
        region = self.config.get_cluster_region(cluster)
        worker_session = session_from_credentials(self._base_credentials, region)
        cluster_session = assume_role_session(worker_session, cluster.role_arn, region)
        api_client = get_kubernetes_api_client(cluster_session, cluster.cluster_name)
        return ClusterWorkloadSource(api_client, cluster.cluster_name)

    def _map(self, func: Callable, items: Sequence) -> List:
        """Apply func to every item, in parallel when max_workers > 1, keeping item order"""
        if self.max_workers <= 1 or len(items) <= 1:
            return [func(item) for item in items]
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            return list(executor.map(func, items))

    # ------------------------------------------------------------------
    # In-use images
    # ------------------------------------------------------------------

    def _cluster_pod_specs(self, cluster: ClusterDescriptor) -> List[Any]:
        try:
            source = self.workload_source_factory(cluster)
            return source.list_pod_specs()
        except Exception as e:
            self.logger.error(f"Cluster {cluster.cluster_name}: failed to list workloads, skipping. {e}")
            return []

    def collect_in_use_images(self) -> List[str]:
        """Return the unique image references used by workloads of every configured cluster"""
        clusters = self.config.get_clusters()
        pod_specs = []
        for specs in self._map(self._cluster_pod_specs, clusters):
            pod_specs.extend(specs)
        images = list_unique_images(pod_specs)
        self.logger.info(f"Found {len(images)} unique images in use across {len(clusters)} clusters")
        return images

    # ------------------------------------------------------------------
    # Repositories
    # ------------------------------------------------------------------

    def list_repositories(self) -> List[Dict[str, Any]]:
        """Describe the target repositories

        Raises:
            ActionableError: If ECR cannot be queried
        """
        if self.config.is_all_repositories():
            return self.registry.describe_repositories()
        return self.registry.describe_repositories(self.config.get_repositories())

    def _log_diagnostics(self, repository_name: str, diagnostics: List[Diagnostic]) -> None:
        # Identical reports collapse, so a broken pattern is logged once per repository
        for diagnostic in dict.fromkeys(diagnostics):
            self.logger.error(f"Repository {repository_name}: {diagnostic}")

    def process_repository(self, repository: Dict[str, Any], images_in_use: Sequence[str]) -> RepositoryResult:
        """Evaluate and clean a single repository"""
        name = repository["repositoryName"]
        diagnostics: List[Diagnostic] = []
        in_use_tags = in_use_image_tags(images_in_use, repository["repositoryUri"], diagnostics)

        try:
            records = self.registry.describe_images(name)
        except Exception as e:
            self.logger.error(f"Repository {name}: failed to describe images, skipping. {e}")
            return RepositoryResult(name, STATUS_FAILED, error=str(e))

        candidates = deletion_candidates(records, self.policy, self.now)
        if candidates.is_empty():
            self._log_diagnostics(name, diagnostics)
            self.logger.info(f"Repository {name}: no candidate images to delete")
            return RepositoryResult(name, STATUS_NOTHING_TO_DELETE)

        self.logger.info(
            f"Repository {name}: candidate tags: {candidates.tags}, candidate digests: {candidates.digests}, "
            f"in use tags: {in_use_tags}"
        )
        delete_tags = decide_delete_tags(candidates.tags, in_use_tags, self.ignore_patterns, diagnostics)
        self._log_diagnostics(name, diagnostics)
        delete_digests = list(candidates.digests)

        if not delete_tags and not delete_digests:
            self.logger.info(f"Repository {name}: no images to delete")
            return RepositoryResult(name, STATUS_NOTHING_TO_DELETE)

        if self.dry_run:
            self.logger.info(
                f"DRY RUN: images to be deleted -> Repository: {name}, Tags: {delete_tags}, Digests: {delete_digests}"
            )
            return RepositoryResult(name, STATUS_DRY_RUN, delete_tags, delete_digests)

        self.logger.info(f"Repository {name}: deleting images. Tags: {delete_tags}, Digests: {delete_digests}")
        try:
            failures = self.registry.batch_delete_image(name, delete_tags, delete_digests)
        except Exception as e:
            self.logger.error(f"Repository {name}: failed to delete images. {e}")
            return RepositoryResult(name, STATUS_FAILED, delete_tags, delete_digests, error=str(e))

        for failure in failures:
            self.logger.warning(
                f"Repository {name}: could not delete {failure.get('imageId')}: "
                f"{failure.get('failureCode')} {failure.get('failureReason')}"
            )
        return RepositoryResult(name, STATUS_DELETED, delete_tags, delete_digests, failures)

    def run(self) -> List[RepositoryResult]:
        """Run the whole cleanup

        Raises:
            ActionableError: If the target repositories cannot be described
        """
        images_in_use = self.collect_in_use_images()
        repositories = self.list_repositories()
        self.logger.info(f"Processing {len(repositories)} repositories with policy {self.policy}")

        results = self._map(lambda repository: self.process_repository(repository, images_in_use), repositories)
        self.log_summary(results)
        return results

    def log_summary(self, results: List[RepositoryResult]) -> None:
        """Log a standardized deletion summary"""
        mode = "DRY RUN: " if self.dry_run else ""
        self.logger.info(f"{mode}Cleanup Summary:")
        self.logger.info(f"   Repositories processed: {len(results)}")

        affected = [r for r in results if r.status in (STATUS_DELETED, STATUS_DRY_RUN)]
        image_ids = sum(len(r.tags) + len(r.digests) for r in affected)
        failed_ids = sum(len(r.failures) for r in affected)
        self.logger.info(f"   {'Would delete' if self.dry_run else 'Deleted'}: {image_ids - failed_ids} image ids")
        if failed_ids:
            self.logger.info(f"   Rejected by ECR: {failed_ids} image ids")

        failed = [r.repository for r in results if r.status == STATUS_FAILED]
        if failed:
            self.logger.info(f"   Failed repositories: {', '.join(failed)}")
