"""Patches API router (``/patches/{id}/...``).

Creating and transitioning patches happens under their release version,
see ``release_versions``.
"""
from ...records import PATCH
from .records import build_record_router

router = build_record_router(PATCH, "/patches", "patches")
