#!/usr/bin/env python3
"""
Delete unused ECR images according to a retention policy.

Images referenced by workloads in the configured EKS clusters are never
deleted. Among the remaining images of each target repository, those
selected by the retention policy (older than N days, or beyond the N most
recently pushed) are deleted unless one of their tags matches an
exclusion pattern.

Usage:
    # Log what would be deleted
    python delete_unused_images.py --config-file config.yaml --dry-run

    # Delete
    python delete_unused_images.py --config-file config.yaml
"""

import argparse
import os
import sys

from ecr_lifecycle.auth import base_session
from ecr_lifecycle.cleanup import LifecycleCleaner
from ecr_lifecycle.config_manager import DEFAULT_CONFIG_FILE, ConfigLoadError, ConfigManager, ConfigValidationError
from ecr_lifecycle.error_utils import ActionableError
from ecr_lifecycle.logging_utils import get_logger, log_exception, setup_logging

logger = get_logger(__name__)


def parse_arguments(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="Delete ECR images that are past retention and not used by any EKS workload",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Dry run: only log the images that would be deleted
  python delete_unused_images.py --dry-run

  # Use a specific config file
  python delete_unused_images.py --config-file ./config.yaml
        """
    )

    parser.add_argument(
        '--config-file',
        default=os.environ.get("CONFIG_FILE", DEFAULT_CONFIG_FILE),
        help=f'Location of config file (default: CONFIG_FILE env var or {DEFAULT_CONFIG_FILE})'
    )

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Only log the images that would be deleted'
    )

    return parser.parse_args(argv)


def main(argv=None):
    """Main function"""
    setup_logging()
    args = parse_arguments(argv)

    logger.info("Starting ECR lifecycle cleanup")

    try:
        config = ConfigManager(config_file=args.config_file)
    except (ConfigLoadError, ConfigValidationError) as e:
        logger.error(f"Unable to load application config: {e}")
        sys.exit(1)

    profile = config.get_aws_profile()
    if profile:
        logger.info("Overriding AWS_PROFILE with the profile specified in the config file")
        os.environ["AWS_PROFILE"] = profile

    if args.dry_run:
        logger.info("DRY RUN mode: no image will be deleted")

    try:
        config.print_config()
        session = base_session(config.get_default_region(), profile)
        cleaner = LifecycleCleaner(config, session, dry_run=args.dry_run)
        cleaner.run()
    except ActionableError as e:
        log_exception(logger, f"ECR lifecycle cleanup aborted:\n{e}", e)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.warning("Operation interrupted by user")
        sys.exit(1)

    logger.info("ECR lifecycle cleanup completed")


if __name__ == "__main__":
    main()
