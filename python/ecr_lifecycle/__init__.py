"""Deletes ECR images that are past retention and not used by any EKS workload."""

__version__ = "0.1.0"
