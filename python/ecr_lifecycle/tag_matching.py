#!/usr/bin/env python3
"""
Tag matching utilities for ECR image tags.

Decides which deletion candidate tags are actually safe to delete: tags used
by a running workload and tags matching an exclusion pattern are kept.
"""

import re
from typing import List, Optional, Sequence

from ecr_lifecycle.error_utils import Diagnostic, ErrorCategory


def matches_exclusion(tag: str, patterns: Sequence[str], diagnostics: Optional[List[Diagnostic]] = None) -> bool:
    """Check if a tag matches any of the exclusion patterns.

    Patterns are unanchored regular expressions (``re.search``), evaluated in
    order until the first match. A pattern that does not compile is reported
    to ``diagnostics`` and treated as not matching.

    Args:
        tag: Image tag (e.g., "v1-prd")
        patterns: Regular expressions protecting tags from deletion
        diagnostics: Optional list collecting malformed pattern reports

    Returns:
        True if the tag is protected, False otherwise
    """
    for pattern in patterns:
        try:
            if re.search(pattern, tag):
                return True
        except re.error as e:
            if diagnostics is not None:
                diagnostics.append(
                    Diagnostic(ErrorCategory.EXCLUSION_PATTERN, pattern, f"failed to evaluate exclusion pattern ({e})")
                )
    return False


def decide_delete_tags(
    candidates: Sequence[str],
    in_use: Sequence[str],
    exclusion_patterns: Sequence[str],
    diagnostics: Optional[List[Diagnostic]] = None,
) -> List[str]:
    """Filter deletion candidates down to the tags that can be deleted.

    In-use tags are checked first (exact match); exclusion patterns are only
    evaluated for tags that are not in use. Candidate order and duplicates
    are preserved.

    Args:
        candidates: Tags selected by the retention policy
        in_use: Tags referenced by running workloads
        exclusion_patterns: Regular expressions protecting tags
        diagnostics: Optional list collecting malformed pattern reports

    Returns:
        Tags that are neither in use nor excluded
    """
    used = set(in_use)
    result = []
    for candidate in candidates:
        if candidate in used:
            continue
        if matches_exclusion(candidate, exclusion_patterns, diagnostics):
            continue
        result.append(candidate)
    return result
