"""
Authentication providers for AWS and EKS.

This module provides authentication helpers for:
- AWS base credentials and cross-account role assumption
- EKS clusters (IAM bearer token and Kubernetes API client)
"""

from ecr_lifecycle.auth.providers import (
    assume_role_session,
    base_session,
    get_eks_bearer_token,
    get_kubernetes_api_client,
    session_from_credentials,
)

__all__ = [
    "assume_role_session",
    "base_session",
    "get_eks_bearer_token",
    "get_kubernetes_api_client",
    "session_from_credentials",
]
