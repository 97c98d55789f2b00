"""Built Versions API router (``/built-versions/{id}/...``)."""
from ...records import BUILT_VERSION
from .records import build_record_router

router = build_record_router(BUILT_VERSION, "/built-versions", "built-versions")
