"""
Authentication provider implementations for AWS and EKS.

This module contains the actual authentication logic: resolving the base AWS
credentials, assuming cross-account roles and building Kubernetes API
clients for EKS clusters from an IAM bearer token.
"""

import base64
import logging
import re
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError, ProfileNotFound
from botocore.signers import RequestSigner
from kubernetes import client as k8s_client
from kubernetes import config as k8s_config

from ecr_lifecycle.error_utils import (
    create_assume_role_error,
    create_aws_credentials_error,
    create_kubernetes_error,
)

ROLE_SESSION_NAME = "ecr-lifecycle-cleanup"
STS_TOKEN_EXPIRES_IN = 60
EKS_TOKEN_PREFIX = "k8s-aws-v1."


def base_session(region: str, profile: Optional[str] = None) -> boto3.Session:
    """Create the base AWS session from the default credential chain.

    Args:
        region: Default AWS region
        profile: Optional shared config profile

    Returns:
        boto3 Session with resolvable credentials

    Raises:
        ActionableError: If no credentials can be found
    """
    try:
        session = boto3.Session(profile_name=profile or None, region_name=region)
        credentials = session.get_credentials()
    except (ProfileNotFound, BotoCoreError) as e:
        raise create_aws_credentials_error(region, profile, e) from e

    if credentials is None:
        raise create_aws_credentials_error(region, profile)

    logging.debug(f"Loaded base AWS credentials (method: {credentials.method})")
    return session


def session_from_credentials(credentials, region: str) -> boto3.Session:
    """Build a new session in ``region`` from frozen credentials.

    boto3 sessions are not thread-safe, so every worker gets its own.
    """
    return boto3.Session(
        aws_access_key_id=credentials.access_key,
        aws_secret_access_key=credentials.secret_key,
        aws_session_token=credentials.token,
        region_name=region,
    )


def assume_role_session(session: boto3.Session, role_arn: Optional[str], region: str) -> boto3.Session:
    """Return a session for ``region`` using ``role_arn`` if one is given.

    Without a role the caller's credentials are reused in the requested region.

    Args:
        session: Base session used to call STS
        role_arn: IAM role to assume, or None/empty
        region: Region of the returned session

    Raises:
        ActionableError: If the role cannot be assumed
    """
    if not role_arn:
        if session.region_name == region:
            return session
        return session_from_credentials(session.get_credentials().get_frozen_credentials(), region)

    logging.info(f"Assuming role {role_arn} in region {region}")
    try:
        sts = session.client("sts", region_name=region)
        response = sts.assume_role(RoleArn=role_arn, RoleSessionName=ROLE_SESSION_NAME)
    except (ClientError, BotoCoreError) as e:
        raise create_assume_role_error(role_arn, e) from e

    credentials = response["Credentials"]
    return boto3.Session(
        aws_access_key_id=credentials["AccessKeyId"],
        aws_secret_access_key=credentials["SecretAccessKey"],
        aws_session_token=credentials["SessionToken"],
        region_name=region,
    )


def get_eks_bearer_token(session: boto3.Session, cluster_name: str) -> str:
    """Create an EKS authentication token for the session's identity.

    The token is a presigned STS GetCallerIdentity URL bound to the cluster
    through the ``x-k8s-aws-id`` header, base64url encoded without padding.
    """
    region = session.region_name
    sts = session.client("sts", region_name=region)
    signer = RequestSigner(
        sts.meta.service_model.service_id,
        region,
        "sts",
        "v4",
        session.get_credentials(),
        session.events,
    )

    params = {
        "method": "GET",
        "url": f"https://sts.{region}.amazonaws.com/?Action=GetCallerIdentity&Version=2011-06-15",
        "body": {},
        "headers": {"x-k8s-aws-id": cluster_name},
        "context": {},
    }

    signed_url = signer.generate_presigned_url(
        params,
        region_name=region,
        expires_in=STS_TOKEN_EXPIRES_IN,
        operation_name="",
    )
    base64_url = base64.urlsafe_b64encode(signed_url.encode("utf-8")).decode("utf-8")

    # remove any base64 encoding padding
    return EKS_TOKEN_PREFIX + re.sub(r"=*", "", base64_url)


def get_kubernetes_api_client(session: boto3.Session, cluster_name: str) -> k8s_client.ApiClient:
    """Build a Kubernetes API client for an EKS cluster.

    Args:
        session: Session whose identity is mapped in the cluster
        cluster_name: EKS cluster name

    Returns:
        ApiClient bound to the cluster endpoint, independent of the global
        kubernetes configuration

    Raises:
        ActionableError: If the cluster cannot be described
    """
    try:
        eks = session.client("eks", region_name=session.region_name)
        cluster = eks.describe_cluster(name=cluster_name)["cluster"]
    except (ClientError, BotoCoreError) as e:
        raise create_kubernetes_error(cluster_name, "describe cluster", e) from e

    kubeconfig = {
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [{
            "name": cluster_name,
            "cluster": {
                "certificate-authority-data": cluster["certificateAuthority"]["data"],
                "server": cluster["endpoint"],
            },
        }],
        "contexts": [{"name": cluster_name, "context": {"cluster": cluster_name, "user": cluster_name}}],
        "current-context": cluster_name,
        "preferences": {},
        "users": [{"name": cluster_name, "user": {"token": get_eks_bearer_token(session, cluster_name)}}],
    }

    logging.debug(f"Building Kubernetes client for cluster {cluster_name} at {cluster['endpoint']}")
    return k8s_config.new_client_from_config_dict(config_dict=kubeconfig)
