"""Naming utilities for release versions and component versions.

Component version names are produced from a release component's naming
pattern, e.g. ``api-{release_version}.{increment}``. Supported tokens:

- ``{release_version}``: name of the release version
- ``{built_version}``: name of the built version or patch
- ``{patch}``: same value as ``{built_version}``
- ``{increment}``: the component version's increment

Release version defaults follow the latest release name: ``41`` → ``42``,
``v2.3`` → ``v2.4``, anything else → ``New Release``.
"""
import logging
import re
from typing import Optional

from .models import ReleaseTrack

logger = logging.getLogger("release-core.versioning")

ALLOWED_TOKENS = ("{release_version}", "{built_version}", "{patch}", "{increment}")

STATIC_RELEASE_VERSION_NAME = "New Release"
DEFAULT_RELEASE_TRACK = ReleaseTrack.FUTURE

_TOKEN_RE = re.compile(r"\{[^}]+\}")
_NUMERIC_RE = re.compile(r"^(\d+)$")
_MAJOR_MINOR_RE = re.compile(r"^(v?)(\d+)\.(\d+)$", re.IGNORECASE)


def validate_pattern(pattern: str) -> tuple[bool, list[str]]:
    """
    Validate a component naming pattern.

    Args:
        pattern: Naming pattern to check

    Returns:
        Tuple of (is_valid, errors)
    """
    errors: list[str] = []

    for token in _TOKEN_RE.findall(pattern):
        if token not in ALLOWED_TOKENS:
            errors.append(f"Unknown token: {token}")

    depth = 0
    for ch in pattern:
        if ch == "{":
            depth += 1
        elif ch == "}":
            if depth == 0:
                errors.append("Unmatched closing brace: '}'")
            else:
                depth -= 1
    if depth > 0:
        errors.append("Unmatched opening brace: '{'")

    return len(errors) == 0, errors


def is_pattern_usable(pattern: Optional[str]) -> bool:
    """True when a pattern is non-blank and valid."""
    if not pattern or not pattern.strip():
        return False
    valid, _ = validate_pattern(pattern)
    return valid


def expand_pattern(
    pattern: str,
    release_version: str,
    built_version: str,
    increment: int,
) -> str:
    """Replace every token occurrence in ``pattern``."""
    return (
        pattern
        .replace("{release_version}", release_version)
        .replace("{built_version}", built_version)
        .replace("{patch}", built_version)
        .replace("{increment}", str(increment))
    )


def build_token_values(release_version: str, built_version: str, increment: int) -> dict:
    """Snapshot of the token values used to name a component version."""
    return {
        "release_version": release_version,
        "built_version": built_version,
        "increment": increment,
    }


def parse_increment(name: str) -> int:
    """
    Parse the increment from the last dot-separated segment of a name.

    ``"2025.3.4"`` → 4; names without a numeric last segment → 0.
    """
    last = name.strip().split(".")[-1]
    return int(last) if last.isascii() and last.isdecimal() else 0


def next_release_name(latest_name: Optional[str]) -> str:
    """Suggest the next release version name after ``latest_name``."""
    name = (latest_name or "").strip()

    numeric = _NUMERIC_RE.match(name)
    if numeric:
        return str(int(numeric.group(1)) + 1)

    major_minor = _MAJOR_MINOR_RE.match(name)
    if major_minor:
        prefix, major, minor = major_minor.groups()
        return f"{prefix}{major}.{int(minor) + 1}"

    return STATIC_RELEASE_VERSION_NAME


def release_defaults(latest_name: Optional[str]) -> dict:
    """Default values for a new release version form."""
    return {
        "name": next_release_name(latest_name),
        "release_track": DEFAULT_RELEASE_TRACK,
    }
