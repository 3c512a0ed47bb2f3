"""
Error message utilities for providing actionable guidance to users.

Fatal errors are raised as ActionableError with suggested fixes. Record-scoped
problems found while evaluating images (unparseable image references, broken
exclusion patterns) are collected as Diagnostic entries instead, so the pure
evaluation functions never have to log.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCategory(Enum):
    """Categories of errors for better error handling"""
    AUTHENTICATION = "authentication"
    CONFIGURATION = "configuration"
    PERMISSION = "permission"
    RESOURCE = "resource"
    IMAGE_REFERENCE = "image_reference"
    EXCLUSION_PATTERN = "exclusion_pattern"
    UNKNOWN = "unknown"


class ActionableError(Exception):
    """Exception with actionable guidance for users"""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN,
                 suggestions: Optional[List[str]] = None, details: Optional[Dict[str, Any]] = None):
        """Initialize actionable error

        Args:
            message: Primary error message
            category: Error category for classification
            suggestions: List of suggested fixes
            details: Additional context information
        """
        self.message = message
        self.category = category
        self.suggestions = suggestions or []
        self.details = details or {}
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message with suggestions"""
        lines = [self.message]

        if self.suggestions:
            lines.append("Suggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")

        if self.details:
            lines.append("Additional details:")
            for key, value in self.details.items():
                lines.append(f"   {key}: {value}")

        return "\n".join(lines)


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal problem with a single record, reported to the caller"""

    category: ErrorCategory
    subject: str
    message: str

    def __str__(self) -> str:
        return f"{self.message}: {self.subject}"


def _is_access_denied(error_str: str) -> bool:
    return "accessdenied" in error_str or "not authorized" in error_str or "403" in error_str


def create_aws_credentials_error(region: str, profile: Optional[str], error: Optional[Exception] = None) -> ActionableError:
    """Create actionable error when base AWS credentials cannot be resolved"""
    suggestions = [
        "Configure AWS credentials (aws configure)",
        "Or set AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY environment variables",
        "When running in EKS, verify the service account is annotated with an IAM role",
    ]

    if profile:
        suggestions.insert(0, f"Verify the profile '{profile}' exists in ~/.aws/config or ~/.aws/credentials")

    details = {"region": region, "profile": profile or "(default chain)"}
    if error is not None:
        details["error_type"] = type(error).__name__
        details["error_message"] = str(error)

    return ActionableError(
        message="Unable to load AWS credentials",
        category=ErrorCategory.AUTHENTICATION,
        suggestions=suggestions,
        details=details,
    )


def create_assume_role_error(role_arn: str, error: Exception) -> ActionableError:
    """Create actionable error for STS AssumeRole failures"""
    error_str = str(error).lower()

    suggestions = [
        f"Verify the role exists: {role_arn}",
        "Check the role trust policy allows the current principal to assume it",
        "Verify the current principal has sts:AssumeRole permission",
    ]

    if "expired" in error_str:
        suggestions.insert(0, "Refresh the base AWS credentials, the session token has expired")

    return ActionableError(
        message=f"Failed to assume role {role_arn}",
        category=ErrorCategory.AUTHENTICATION,
        suggestions=suggestions,
        details={
            "role_arn": role_arn,
            "error_type": type(error).__name__,
            "error_message": str(error)
        }
    )


def create_ecr_error(operation: str, error: Exception, repository: Optional[str] = None) -> ActionableError:
    """Create actionable error for ECR API failures"""
    error_str = str(error).lower()

    suggestions = [
        "Verify the ECR region in config.yaml (ecr.region or region)",
        "Check IAM permissions for ecr:DescribeRepositories, ecr:DescribeImages and ecr:BatchDeleteImage",
    ]

    if "repositorynotfound" in error_str or "does not exist" in error_str:
        suggestions.insert(0, "Check the repository names listed in ecr.repos")

    if _is_access_denied(error_str):
        suggestions.insert(0, "Check the IAM policy of the role used for ECR (ecr.roleARN)")

    details = {
        "operation": operation,
        "error_type": type(error).__name__,
        "error_message": str(error)
    }
    if repository:
        details["repository"] = repository

    return ActionableError(
        message=f"ECR operation failed: {operation}",
        category=ErrorCategory.PERMISSION if _is_access_denied(error_str) else ErrorCategory.RESOURCE,
        suggestions=suggestions,
        details=details,
    )


def create_kubernetes_error(cluster_name: str, operation: str, error: Exception) -> ActionableError:
    """Create actionable error for EKS / Kubernetes API failures"""
    error_str = str(error).lower()

    suggestions = [
        f"Verify the cluster '{cluster_name}' exists in the configured region",
        "Check the IAM role is mapped in the cluster (aws-auth ConfigMap or access entries)",
        "Verify RBAC allows listing pods, deployments, daemonsets, statefulsets and cronjobs cluster-wide",
    ]

    if "403" in error_str or "forbidden" in error_str:
        suggestions.insert(0, "Check Kubernetes RBAC permissions")

    if "401" in error_str or "unauthorized" in error_str:
        suggestions.insert(0, "Verify the bearer token was issued for the right cluster and role")

    return ActionableError(
        message=f"Kubernetes operation failed on cluster {cluster_name}: {operation}",
        category=ErrorCategory.PERMISSION if "403" in error_str or "forbidden" in error_str else ErrorCategory.RESOURCE,
        suggestions=suggestions,
        details={
            "cluster": cluster_name,
            "operation": operation,
            "error_type": type(error).__name__,
            "error_message": str(error)
        }
    )


def create_config_error(field: str, value: Any, reason: str) -> ActionableError:
    """Create actionable error for configuration validation failures"""
    suggestions = [
        f"Fix '{field}' in the config file passed with --config-file",
        "Compare it with config.example.yaml",
    ]

    if field.startswith("commonLifecycle"):
        suggestions.insert(1, "commonLifecycle.type must be sinceImagePushed or imageCountMoreThan")

    return ActionableError(
        message=f"Configuration error: Invalid value for '{field}'",
        category=ErrorCategory.CONFIGURATION,
        suggestions=suggestions,
        details={
            "field": field,
            "value": value,
            "reason": reason
        }
    )
