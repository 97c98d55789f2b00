"""Release Tracker core: release versions, built versions, patches and Jira sync."""

__version__ = "1.0.0"
