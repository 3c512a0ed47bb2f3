"""Image usage detection for Kubernetes workloads.

This module discovers which container images are currently referenced by
workloads running in a cluster:

- Pods (every namespace)
- Deployments, DaemonSets and StatefulSets (their pod templates)
- CronJobs (the pod template of their job template)

Image references found in all pod specs are deduplicated and then matched
against an ECR repository URI to obtain the tags that are in use.
"""

from typing import Any, Iterable, List, Optional, Sequence

from kubernetes import client
from kubernetes.client.rest import ApiException

from ecr_lifecycle.error_utils import Diagnostic, ErrorCategory, create_kubernetes_error
from ecr_lifecycle.logging_utils import get_logger

logger = get_logger(__name__)


def unique_images(images: Iterable[str]) -> List[str]:
    """Deduplicate image references, keeping the first occurrence order"""
    result = []
    seen = set()
    for image in images:
        if image not in seen:
            seen.add(image)
            result.append(image)
    return result


def pod_spec_images(pod_spec: Any) -> List[str]:
    """Return the images of a pod spec: containers first, then init containers"""
    containers = list(pod_spec.containers or []) + list(pod_spec.init_containers or [])
    return [container.image for container in containers if container.image]


def list_unique_images(pod_specs: Iterable[Any]) -> List[str]:
    """Collect the unique image references of a collection of pod specs.

    Args:
        pod_specs: Objects shaped like ``V1PodSpec`` (``containers`` and
            ``init_containers`` lists of objects with an ``image`` attribute)

    Returns:
        Image references in first-seen order, without duplicates
    """
    return unique_images(image for spec in pod_specs for image in pod_spec_images(spec))


def in_use_image_tags(
    images: Sequence[str],
    repository_uri: str,
    diagnostics: Optional[List[Diagnostic]] = None,
) -> List[str]:
    """Extract the tags of the image references belonging to a repository.

    A reference belongs to the repository when it contains the repository URI.
    The tag is the text after the ``:``. Digest references such as
    ``repo@sha256:...`` and references that do not split into exactly two
    parts (no tag, or a registry with a port) cannot be parsed safely and
    are reported to ``diagnostics`` instead.

    Args:
        images: Unique image references
        repository_uri: ECR repository URI (e.g. 123456789012.dkr.ecr.us-east-1.amazonaws.com/app)
        diagnostics: Optional list collecting unparseable references

    Returns:
        Tags in use, in reference order
    """
    result = []
    for image in images:
        if repository_uri not in image:
            continue
        parts = image.split(":")
        if len(parts) == 2 and "@" not in image:
            result.append(parts[1])
        elif diagnostics is not None:
            diagnostics.append(Diagnostic(ErrorCategory.IMAGE_REFERENCE, image, "cannot detect tag from image"))
    return result


class ClusterWorkloadSource:
    """Lists the pod specs of every workload of one Kubernetes cluster"""

    def __init__(self, api_client: client.ApiClient, cluster_name: str):
        self.cluster_name = cluster_name
        self.core_v1 = client.CoreV1Api(api_client)
        self.apps_v1 = client.AppsV1Api(api_client)
        self.batch_v1 = client.BatchV1Api(api_client)
        self.logger = logger

    def list_pod_specs(self) -> List[Any]:
        """Return the pod specs of pods and of pod-creating controllers.

        Raises:
            ActionableError: If any of the list calls fails
        """
        specs = []
        try:
            pods = self.core_v1.list_pod_for_all_namespaces(watch=False)
            specs.extend(pod.spec for pod in pods.items)

            deployments = self.apps_v1.list_deployment_for_all_namespaces(watch=False)
            specs.extend(d.spec.template.spec for d in deployments.items)

            daemon_sets = self.apps_v1.list_daemon_set_for_all_namespaces(watch=False)
            specs.extend(ds.spec.template.spec for ds in daemon_sets.items)

            stateful_sets = self.apps_v1.list_stateful_set_for_all_namespaces(watch=False)
            specs.extend(sts.spec.template.spec for sts in stateful_sets.items)

            cron_jobs = self.batch_v1.list_cron_job_for_all_namespaces(watch=False)
            specs.extend(cj.spec.job_template.spec.template.spec for cj in cron_jobs.items)
        except ApiException as e:
            raise create_kubernetes_error(self.cluster_name, "list workloads", e) from e

        self.logger.info(
            f"Cluster {self.cluster_name}: {len(pods.items)} pods, {len(deployments.items)} deployments, "
            f"{len(daemon_sets.items)} daemonsets, {len(stateful_sets.items)} statefulsets, "
            f"{len(cron_jobs.items)} cronjobs"
        )
        return [spec for spec in specs if spec is not None]
