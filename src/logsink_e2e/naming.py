"""Naming utilities for run-scoped Kubernetes objects.

Every object a scenario creates is named ``<prefix><base>``. Distinct
prefixes let concurrent runs share one cluster (and one namespace) without
observing each other's pods.

Functions:
    generate_run_prefix: Create a unique, DNS-safe run prefix
    normalize_prefix: Turn free-form text into a valid prefix
    validate_name: Check if a name is a valid DNS-1123 label
    validate_namespace: Alias of validate_name for namespace names

Example:
    from logsink_e2e.naming import generate_run_prefix

    prefix = generate_run_prefix("ci")
    # Returns: "ci-a1b2c3d4-"
"""

from __future__ import annotations

import re
import uuid

# DNS-1123 label constraints (namespaces, pods, services, jobs)
MAX_NAME_LENGTH = 63
NAME_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")

# Longest base name appended to a prefix ("syslog-receiver")
LONGEST_BASE_NAME = len("syslog-receiver")
MAX_PREFIX_LENGTH = MAX_NAME_LENGTH - LONGEST_BASE_NAME


class InvalidNameError(ValueError):
    """Raised when a name or prefix is invalid for Kubernetes."""

    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"Invalid name '{name}': {reason}")


def _clean(text: str) -> str:
    """Lowercase, hyphenate underscores, drop invalid characters."""
    normalized = text.lower().replace("_", "-")
    return re.sub(r"[^a-z0-9-]", "", normalized).strip("-")


def normalize_prefix(prefix: str) -> str:
    """Normalize a run prefix.

    Lowercases the text, converts underscores to hyphens, drops invalid
    characters and guarantees a single trailing hyphen so that
    ``prefix + "syslog-receiver"`` is a valid object name. Service names
    must also start with a letter (DNS-1035), so a prefix starting with a
    digit is rejected. An empty prefix stays empty (objects are then named
    by their base name only).

    Args:
        prefix: Free-form prefix, e.g. "CI_Run".

    Returns:
        Normalized prefix, e.g. "ci-run-".

    Raises:
        InvalidNameError: If the prefix is too long to leave room for the
            longest object base name, or does not start with a letter.
    """
    normalized = _clean(prefix)
    if not normalized:
        return ""

    if not normalized[0].isalpha():
        raise InvalidNameError(prefix, "prefix must start with a letter")

    normalized = f"{normalized}-"
    if len(normalized) > MAX_PREFIX_LENGTH:
        raise InvalidNameError(
            prefix,
            f"prefix must be at most {MAX_PREFIX_LENGTH} characters",
        )
    return normalized


def generate_run_prefix(base: str = "e2e") -> str:
    """Generate a unique prefix for one scenario run.

    Args:
        base: Human-readable part of the prefix. Underscores are converted
            to hyphens. A base not starting with a letter gets an
            "e2e-" lead.

    Returns:
        Unique prefix ending in a hyphen (e.g., "e2e-a1b2c3d4-").

    Example:
        >>> p1 = generate_run_prefix()
        >>> p2 = generate_run_prefix()
        >>> p1 != p2
        True
        >>> p1.endswith("-")
        True
    """
    suffix = uuid.uuid4().hex[:8]
    max_base_length = MAX_PREFIX_LENGTH - len(suffix) - 2
    normalized = _clean(base)
    if not normalized:
        normalized = "e2e"
    elif not normalized[0].isalpha():
        normalized = f"e2e-{normalized}"
    normalized = normalized[:max_base_length].rstrip("-")

    prefix = f"{normalized}-{suffix}-"
    if not validate_name(prefix + "x"):
        raise InvalidNameError(prefix, "Generated prefix does not match K8s naming rules")
    return prefix


def validate_name(name: str) -> bool:
    """Check if a name is a valid DNS-1123 label.

    Args:
        name: The object name to validate.

    Returns:
        True if valid, False otherwise.

    Example:
        >>> validate_name("e2e-a1b2c3d4-syslog-receiver")
        True
        >>> validate_name("Syslog_Receiver")
        False
    """
    if not name or len(name) > MAX_NAME_LENGTH:
        return False
    return bool(NAME_PATTERN.match(name))


def validate_namespace(namespace: str) -> bool:
    """Check if a namespace name is valid for Kubernetes."""
    return validate_name(namespace)


__all__ = [
    "InvalidNameError",
    "MAX_NAME_LENGTH",
    "MAX_PREFIX_LENGTH",
    "generate_run_prefix",
    "normalize_prefix",
    "validate_name",
    "validate_namespace",
]
