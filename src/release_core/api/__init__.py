"""REST API for release_core."""
