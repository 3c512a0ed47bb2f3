#!/usr/bin/env python3
"""
Configuration Manager for ECR Lifecycle Cleanup

This module handles loading, validating and exposing the YAML configuration
file: target ECR repositories, reference EKS clusters, the retention policy
and the tag exclusion patterns.
"""

import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import yaml

from ecr_lifecycle.error_utils import create_config_error
from ecr_lifecycle.retention import POLICY_TYPES, RetentionPolicy, policy_from_config

DEFAULT_CONFIG_FILE = "/config.yaml"


class ConfigLoadError(Exception):
    """Raised when the configuration file cannot be read or parsed"""


class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""


@dataclass(frozen=True)
class ClusterDescriptor:
    """A reference EKS cluster whose workloads mark images as in use"""

    cluster_name: str
    region: Optional[str] = None
    role_arn: Optional[str] = None


class ConfigManager:
    """Manages configuration for the ECR lifecycle cleanup"""

    def __init__(self, config_file: str = None, validate: bool = True):
        """Initialize ConfigManager

        Args:
            config_file: Path to configuration YAML file (defaults to CONFIG_FILE env var or /config.yaml)
            validate: If True, validate configuration on initialization

        Raises:
            ConfigLoadError: If the file is missing or is not valid YAML
            ConfigValidationError: If validate is True and the configuration is invalid
        """
        # Allow override via environment variable for containerized deployments
        if config_file is None:
            config_file = os.environ.get("CONFIG_FILE", DEFAULT_CONFIG_FILE)
        self.config_file = config_file
        self.config = self._load_config()

        if validate:
            self.validate_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file with defaults"""
        default_config = {
            "region": None,
            "profile": None,
            "ecr": {"region": None, "roleARN": None, "repos": [], "allRepositories": False},
            "eks": [],
            "commonLifecycle": {},
            "ignoreRegex": [],
            "maxWorkers": 1,
        }

        try:
            with open(self.config_file, "r") as f:
                user_config = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigLoadError(f"Unable to read config file {self.config_file}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigLoadError(f"Unable to parse config file {self.config_file}: {e}") from e

        if not isinstance(user_config, dict):
            raise ConfigLoadError(
                f"Config file {self.config_file} must contain a mapping, got: {type(user_config).__name__}"
            )
        return self._merge_config(default_config, user_config)

    def _merge_config(self, default: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge user config with defaults"""
        result = default.copy()
        for key, value in user.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    # AWS configuration
    def get_default_region(self) -> Optional[str]:
        """Get default region from config, falling back to AWS_REGION / AWS_DEFAULT_REGION"""
        return self.config.get("region") or os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION")

    def get_aws_profile(self) -> Optional[str]:
        """Get the shared config profile, if any"""
        return self.config.get("profile") or None

    # ECR configuration
    def _ecr(self) -> Dict[str, Any]:
        ecr = self.config.get("ecr")
        return ecr if isinstance(ecr, dict) else {}

    def get_ecr_region(self) -> Optional[str]:
        """Get ECR region, defaulting to the default region"""
        return self._ecr().get("region") or self.get_default_region()

    def get_ecr_role_arn(self) -> Optional[str]:
        """Get the role to assume for ECR calls, if any"""
        return self._ecr().get("roleARN") or None

    def get_repositories(self) -> List[str]:
        """Get repository names to clean"""
        return list(self._ecr().get("repos") or [])

    def is_all_repositories(self) -> bool:
        """Whether every repository of the registry is cleaned"""
        return bool(self._ecr().get("allRepositories", False))

    # EKS configuration
    def get_clusters(self) -> List[ClusterDescriptor]:
        """Get reference clusters"""
        clusters = []
        for entry in self.config.get("eks") or []:
            if not isinstance(entry, dict):
                continue
            clusters.append(
                ClusterDescriptor(
                    cluster_name=entry.get("clusterName"),
                    region=entry.get("region") or None,
                    role_arn=entry.get("roleARN") or None,
                )
            )
        return clusters

    def get_cluster_region(self, cluster: ClusterDescriptor) -> Optional[str]:
        """Get the region of a cluster, defaulting to the default region"""
        return cluster.region or self.get_default_region()

    # Lifecycle configuration
    def _lifecycle(self) -> Dict[str, Any]:
        lifecycle = self.config.get("commonLifecycle")
        return lifecycle if isinstance(lifecycle, dict) else {}

    def get_retention_policy(self) -> RetentionPolicy:
        """Get the retention policy from commonLifecycle

        Raises:
            ActionableError: If the lifecycle section is invalid
        """
        lifecycle = self._lifecycle()
        try:
            return policy_from_config(lifecycle.get("type"), lifecycle.get("number"))
        except ValueError as e:
            raise create_config_error("commonLifecycle", lifecycle, str(e)) from e

    def get_ignore_patterns(self) -> List[str]:
        """Get tag exclusion patterns"""
        patterns = self.config.get("ignoreRegex") or []
        return [str(pattern) for pattern in patterns] if isinstance(patterns, list) else []

    # Processing configuration
    def get_max_workers(self) -> int:
        """Get max workers from config, with type coercion"""
        workers = self.config.get("maxWorkers", 1)
        try:
            return int(workers)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"maxWorkers must be an integer, got: {workers} (type: {type(workers).__name__})"
            )

    def validate_config(self) -> None:
        """Validate configuration values

        Raises:
            ConfigValidationError: If configuration is invalid
        """
        errors = []
        warnings = []

        if not self.get_default_region():
            errors.append("`region` is required (or set AWS_REGION)")

        # Validate lifecycle configuration
        lifecycle = self.config.get("commonLifecycle")
        if not lifecycle or not isinstance(lifecycle, dict):
            errors.append("`commonLifecycle` must not be empty")
        else:
            if lifecycle.get("type") not in POLICY_TYPES:
                errors.append(f"`commonLifecycle.type` must be `{'` or `'.join(POLICY_TYPES)}`, got: {lifecycle.get('type')}")
            number = lifecycle.get("number")
            if isinstance(number, bool) or not isinstance(number, int) or number < 0:
                errors.append(f"`commonLifecycle.number` must be a non-negative integer, got: {number}")
            elif lifecycle.get("type") in POLICY_TYPES:
                try:
                    policy_from_config(lifecycle.get("type"), number)
                except ValueError as e:
                    errors.append(f"`commonLifecycle.number` is out of range: {e}")

        # Validate ECR configuration
        ecr = self.config.get("ecr")
        if not isinstance(ecr, dict):
            errors.append("`ecr` must be a mapping")
        else:
            repos = ecr.get("repos") or []
            if not isinstance(repos, list):
                errors.append("`ecr.repos` must be a list of repository names")
            elif not repos and not self.is_all_repositories():
                errors.append("at least one `ecr.repos` must be specified (or set `ecr.allRepositories: true`)")
            elif repos and self.is_all_repositories():
                warnings.append("`ecr.allRepositories` is enabled, `ecr.repos` is ignored")

        # Validate EKS configuration
        clusters = self.config.get("eks") or []
        if not isinstance(clusters, list):
            errors.append("`eks` must be a list of clusters")
        else:
            for i, entry in enumerate(clusters):
                if not isinstance(entry, dict) or not entry.get("clusterName"):
                    errors.append(f"`eks[{i}].clusterName` is required")
            if not clusters:
                warnings.append("no `eks` clusters configured, no image will be considered in use")

        # Validate exclusion patterns
        patterns = self.config.get("ignoreRegex") or []
        if not isinstance(patterns, list):
            errors.append("`ignoreRegex` must be a list of regular expressions")
        else:
            for pattern in patterns:
                try:
                    re.compile(str(pattern))
                except re.error as e:
                    warnings.append(f"`ignoreRegex` pattern '{pattern}' is invalid and will never match ({e})")

        max_workers = self.config.get("maxWorkers", 1)
        if isinstance(max_workers, bool) or not isinstance(max_workers, int) or max_workers < 1:
            errors.append(f"`maxWorkers` must be a positive integer, got: {max_workers}")

        # Log warnings
        for warning in warnings:
            logging.warning(f"Configuration warning: {warning}")

        # Raise error if there are validation errors
        if errors:
            error_msg = "Configuration validation failed:\n  " + "\n  ".join(errors)
            logging.error(error_msg)
            raise ConfigValidationError(error_msg)

    def print_config(self):
        """Log current configuration"""
        logging.info("Current Configuration:")
        logging.info(f"  Config File: {self.config_file}")
        logging.info(f"  Default Region: {self.get_default_region()}")
        logging.info(f"  AWS Profile: {self.get_aws_profile() or 'Not set'}")
        logging.info(f"  ECR Region: {self.get_ecr_region()}")
        logging.info(f"  ECR Role: {self.get_ecr_role_arn() or 'Not set'}")
        if self.is_all_repositories():
            logging.info("  Repositories: all")
        else:
            logging.info(f"  Repositories: {', '.join(self.get_repositories())}")
        for cluster in self.get_clusters():
            logging.info(
                f"  Cluster: {cluster.cluster_name} (region: {self.get_cluster_region(cluster)}, "
                f"role: {cluster.role_arn or 'Not set'})"
            )
        logging.info(f"  Retention Policy: {self.get_retention_policy()}")
        logging.info(f"  Ignore Patterns: {self.get_ignore_patterns()}")
        logging.info(f"  Max Workers: {self.get_max_workers()}")
