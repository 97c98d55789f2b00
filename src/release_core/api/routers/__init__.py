"""API routers for the Release Tracker."""

from . import action_history, auth, built_versions, jira, patches, release_components, release_versions, users

__all__ = [
    "action_history",
    "auth",
    "built_versions",
    "jira",
    "patches",
    "release_components",
    "release_versions",
    "users",
]
