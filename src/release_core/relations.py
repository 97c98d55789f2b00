"""Optional relations that can be embedded in release version responses.

Clients request relations with ``?relations=patches,patches.transitions``.
Nested relations require their parent to be requested too.
"""
from typing import Iterable, NamedTuple, Optional

from .errors import ServiceError

# relation → parent relation (None for top-level)
PARENT_RELATION: dict[str, Optional[str]] = {
    "creater": None,
    "patches": None,
    "patches.deployedComponents": "patches",
    "patches.transitions": "patches",
}

ALLOWED_RELATIONS = tuple(PARENT_RELATION)


class InvalidRelationError(ServiceError):
    code = "INVALID_RELATION"


class RelationState(NamedTuple):
    include_creater: bool
    include_patches: bool
    include_patch_components: bool
    include_patch_transitions: bool


def parse_relations(raw: Optional[Iterable[str]]) -> list[str]:
    """Split comma separated relation values into a flat, trimmed list."""
    requested: list[str] = []
    for value in raw or []:
        for part in value.split(","):
            part = part.strip()
            if part:
                requested.append(part)
    return requested


def validate_relations(requested: Iterable[str]) -> tuple[list[str], list[str], list[str]]:
    """
    Check requested relations against the allow-list.

    Returns:
        Tuple of (valid, invalid, missing_parents); duplicates are dropped
    """
    invalid: list[str] = []
    deduped: list[str] = []
    for relation in requested:
        if relation not in PARENT_RELATION:
            invalid.append(relation)
        elif relation not in deduped:
            deduped.append(relation)

    valid: list[str] = []
    missing_parents: list[str] = []
    for relation in deduped:
        parent = PARENT_RELATION[relation]
        if parent and parent not in deduped:
            missing_parents.append(relation)
        else:
            valid.append(relation)

    return valid, invalid, missing_parents


def resolve_relations(raw: Optional[Iterable[str]]) -> RelationState:
    """
    Validate requested relations and return which ones to load.

    Raises:
        InvalidRelationError: If any relation is unknown or lacks its parent
    """
    valid, invalid, missing_parents = validate_relations(parse_relations(raw))
    if invalid or missing_parents:
        raise InvalidRelationError(
            "Invalid relations requested",
            details={
                "invalidRelations": invalid,
                "missingParentRelations": missing_parents,
                "allowedRelations": list(ALLOWED_RELATIONS),
            },
        )
    return RelationState(
        include_creater="creater" in valid,
        include_patches=any(r.startswith("patches") for r in valid),
        include_patch_components="patches.deployedComponents" in valid,
        include_patch_transitions="patches.transitions" in valid,
    )
