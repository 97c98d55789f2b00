"""Development fixtures and the ``release-core-seed`` command.

Seeded rows are owned by a placeholder user until a real user claims them
with ``release-core-seed claim --email you@example.com``.
"""
import argparse
import logging
import sys
from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import UUID, uuid5

from sqlalchemy.orm import Session

from . import crud, models
from .auth import create_access_token, get_or_create_user
from .config import Settings, get_settings
from .database import SessionLocal
from .models import PatchAction, PatchStatus, ReleaseScope, ReleaseTrack
from .records import BUILT_VERSION, PATCH, RecordKind
from .versioning import build_token_values, expand_pattern

logger = logging.getLogger("release-core.seed")

SEED_PLACEHOLDER_USER_ID = UUID("018f1a50-0000-7000-9000-000000000200")
SEED_PLACEHOLDER_USER_NAME = "Seed Owner"

# Namespace for deterministic IDs of seeded patches and built versions
SEED_NAMESPACE = UUID("018f1a50-0000-7000-9000-0000000003ff")

USER_FIXTURES = [
    {
        "id": UUID("018f1a50-0000-7000-9000-000000000201"),
        "name": "Adam Scott",
        "email": "adam.scott@example.com",
    },
    {
        "id": UUID("018f1a50-0000-7000-9000-000000000202"),
        "name": "Melanie Mayer",
        "email": "melanie.mayer@example.com",
    },
]

COMPONENT_FIXTURES = {
    "ios_app": {
        "id": UUID("018f1a50-0000-7000-8000-000000000101"),
        "name": "iOS App",
        "color": "violet",
        "naming_pattern": "app.ios.{built_version}",
        "release_scope": ReleaseScope.GLOBAL,
        "created_at": datetime(2024, 12, 1, 12, 0),
    },
    "android_app": {
        "id": UUID("018f1a50-0000-7000-8000-000000000102"),
        "name": "Android App",
        "color": "emerald",
        "naming_pattern": "app.android.{built_version}",
        "release_scope": ReleaseScope.GLOBAL,
        "created_at": datetime(2024, 12, 1, 12, 5),
    },
    "admin_php": {
        "id": UUID("018f1a50-0000-7000-8000-000000000103"),
        "name": "Global Admin PHP",
        "color": "slate",
        "naming_pattern": "admin.{built_version}",
        "release_scope": ReleaseScope.GLOBAL,
        "created_at": datetime(2024, 12, 1, 12, 10),
    },
    "backend": {
        "id": UUID("018f1a50-0000-7000-8000-000000000104"),
        "name": "NestJS Backend",
        "color": "rose",
        "naming_pattern": "backend.np.{built_version}",
        "release_scope": ReleaseScope.VERSION_BOUND,
        "created_at": datetime(2024, 12, 1, 12, 15),
    },
    "desktop": {
        "id": UUID("018f1a50-0000-7000-8000-000000000105"),
        "name": "Desktop Angular",
        "color": "purple",
        "naming_pattern": "desktop.np.{release_version}-{increment}",
        "release_scope": ReleaseScope.VERSION_BOUND,
        "created_at": datetime(2024, 12, 1, 12, 20),
    },
}

RELEASE_FIXTURES = [
    {
        "id": UUID("018f1a50-0000-7000-9000-000000000301"),
        "name": "177",
        "release_track": ReleaseTrack.ACTIVE,
        "created_at": datetime(2025, 1, 5, 9, 0),
        "records": [
            {
                "name": "177.0",
                "increment": 0,
                "status": PatchStatus.DEPRECATED,
                "created_at": datetime(2025, 1, 5, 9, 15),
                "components": ["ios_app", "android_app"],
            },
            {
                "name": "177.1",
                "increment": 1,
                "status": PatchStatus.ACTIVE,
                "created_at": datetime(2025, 1, 6, 8, 0),
                "components": ["ios_app", "android_app", "admin_php", "backend"],
            },
            {
                "name": "177.2",
                "increment": 2,
                "status": PatchStatus.IN_DEPLOYMENT,
                "created_at": datetime(2025, 1, 8, 10, 30),
                "components": ["desktop", "backend"],
            },
            {
                "name": "177.3",
                "increment": 3,
                "status": PatchStatus.IN_DEVELOPMENT,
                "created_at": datetime(2025, 1, 9, 14, 0),
                "components": [],
            },
        ],
    },
    {
        "id": UUID("018f1a50-0000-7000-9000-000000000302"),
        "name": "26.1",
        "release_track": ReleaseTrack.BETA,
        "created_at": datetime(2025, 2, 12, 11, 45),
        "records": [
            {
                "name": "26.1.0",
                "increment": 0,
                "status": PatchStatus.IN_DEVELOPMENT,
                "created_at": datetime(2025, 2, 12, 12, 0),
                "components": ["ios_app", "android_app", "admin_php"],
            },
        ],
    },
]

# Transitions leading from in_development to each status
TRANSITION_CHAINS: dict[PatchStatus, list[tuple[PatchAction, PatchStatus, PatchStatus]]] = {
    PatchStatus.IN_DEVELOPMENT: [],
    PatchStatus.IN_DEPLOYMENT: [
        (PatchAction.START_DEPLOYMENT, PatchStatus.IN_DEVELOPMENT, PatchStatus.IN_DEPLOYMENT),
    ],
    PatchStatus.ACTIVE: [
        (PatchAction.START_DEPLOYMENT, PatchStatus.IN_DEVELOPMENT, PatchStatus.IN_DEPLOYMENT),
        (PatchAction.MARK_ACTIVE, PatchStatus.IN_DEPLOYMENT, PatchStatus.ACTIVE),
    ],
    PatchStatus.DEPRECATED: [
        (PatchAction.START_DEPLOYMENT, PatchStatus.IN_DEVELOPMENT, PatchStatus.IN_DEPLOYMENT),
        (PatchAction.MARK_ACTIVE, PatchStatus.IN_DEPLOYMENT, PatchStatus.ACTIVE),
        (PatchAction.DEPRECATE, PatchStatus.ACTIVE, PatchStatus.DEPRECATED),
    ],
}

# Models whose created_by_id is handed over by claim_seed_ownership
OWNERSHIP_TARGETS = (
    models.ReleaseComponent,
    models.ReleaseVersion,
    models.Patch,
    models.PatchTransition,
    models.BuiltVersion,
    models.BuiltVersionTransition,
    models.ActionLog,
)


class SeedEnvironmentError(RuntimeError):
    """Raised when seeding is attempted outside development."""


def record_fixture_id(kind: RecordKind, release_name: str, record_name: str) -> UUID:
    return uuid5(SEED_NAMESPACE, f"{kind.name}:{release_name}:{record_name}")


def _cleanup(db: Session, placeholder_email: str) -> None:
    release_ids = [r["id"] for r in RELEASE_FIXTURES]
    for release in db.query(models.ReleaseVersion).filter(models.ReleaseVersion.id.in_(release_ids)).all():
        db.delete(release)
    db.flush()

    component_ids = [c["id"] for c in COMPONENT_FIXTURES.values()]
    for kind in (PATCH, BUILT_VERSION):
        db.query(kind.component_model).filter(
            kind.component_model.release_component_id.in_(component_ids)
        ).delete(synchronize_session="fetch")
    db.query(models.ReleaseComponent).filter(
        models.ReleaseComponent.id.in_(component_ids)
    ).delete(synchronize_session="fetch")

    user_ids = [SEED_PLACEHOLDER_USER_ID] + [u["id"] for u in USER_FIXTURES]
    emails = [placeholder_email] + [u["email"] for u in USER_FIXTURES]
    db.query(models.User).filter(
        models.User.id.in_(user_ids) | models.User.email.in_(emails)
    ).delete(synchronize_session="fetch")
    db.flush()


def _seed_users(db: Session, placeholder_email: str) -> None:
    db.add(models.User(
        id=SEED_PLACEHOLDER_USER_ID,
        email=placeholder_email,
        name=SEED_PLACEHOLDER_USER_NAME,
    ))
    for fixture in USER_FIXTURES:
        db.add(models.User(**fixture))
    db.flush()


def _seed_components(db: Session) -> None:
    for fixture in COMPONENT_FIXTURES.values():
        db.add(models.ReleaseComponent(**fixture, created_by_id=SEED_PLACEHOLDER_USER_ID))
    db.flush()


def _seed_records(db: Session, kind: RecordKind, release: models.ReleaseVersion, fixtures: list[dict]) -> int:
    """Create one kind of record for a release; returns the number created."""
    counters: dict[str, int] = {}
    for fixture in sorted(fixtures, key=lambda f: f["created_at"]):
        record = kind.model(
            id=record_fixture_id(kind, release.name, fixture["name"]),
            version_id=release.id,
            name=fixture["name"],
            increment=fixture["increment"],
            current_status=fixture["status"],
            token_values={"release_version": release.name, "increment": fixture["increment"]},
            created_by_id=SEED_PLACEHOLDER_USER_ID,
            created_at=fixture["created_at"],
            updated_at=fixture["created_at"],
        )
        db.add(record)
        db.flush()

        for key in fixture["components"]:
            component = COMPONENT_FIXTURES[key]
            increment = counters.get(key, -1) + 1
            counters[key] = increment
            db.add(kind.component_model(
                **{kind.fk: record.id},
                release_component_id=component["id"],
                name=expand_pattern(component["naming_pattern"], release.name, record.name, increment),
                increment=increment,
                token_values=build_token_values(release.name, record.name, increment),
                created_at=fixture["created_at"],
                updated_at=fixture["created_at"],
            ))

        for index, (action, from_status, to_status) in enumerate(TRANSITION_CHAINS[fixture["status"]]):
            db.add(kind.transition_model(
                **{kind.fk: record.id},
                from_status=from_status,
                to_status=to_status,
                action=action,
                created_by_id=SEED_PLACEHOLDER_USER_ID,
                created_at=fixture["created_at"] + timedelta(seconds=index + 1),
            ))
    db.flush()
    return len(fixtures)


def seed_database(db: Session, settings: Optional[Settings] = None) -> dict[str, int]:
    """
    Replace the development fixtures.

    Existing fixture rows (matched by their fixed IDs) are removed first, so
    running the seed twice leaves one copy.

    Raises:
        SeedEnvironmentError: If ``ENVIRONMENT`` is not ``development``
    """
    settings = settings or get_settings()
    if settings.environment != "development":
        raise SeedEnvironmentError(
            f"Seeds can only run in development. ENVIRONMENT={settings.environment or '(unset)'}"
        )

    summary = {"users": 0, "components": 0, "releases": 0, "patches": 0, "built_versions": 0}
    try:
        _cleanup(db, settings.seed_placeholder_email)
        _seed_users(db, settings.seed_placeholder_email)
        summary["users"] = len(USER_FIXTURES) + 1
        _seed_components(db)
        summary["components"] = len(COMPONENT_FIXTURES)

        for fixture in RELEASE_FIXTURES:
            release = models.ReleaseVersion(
                id=fixture["id"],
                name=fixture["name"],
                release_track=fixture["release_track"],
                last_used_increment=max((r["increment"] for r in fixture["records"]), default=None),
                created_by_id=SEED_PLACEHOLDER_USER_ID,
                created_at=fixture["created_at"],
                updated_at=fixture["created_at"],
            )
            db.add(release)
            db.flush()
            summary["releases"] += 1
            summary["patches"] += _seed_records(db, PATCH, release, fixture["records"])
            summary["built_versions"] += _seed_records(db, BUILT_VERSION, release, fixture["records"])

        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Seeded release fixtures: {summary}")
    return summary


def claim_seed_ownership(db: Session, email: str) -> bool:
    """
    Hand every record owned by the placeholder user over to ``email``.

    The placeholder user is deleted afterwards.

    Returns:
        False when there is nothing to claim

    Raises:
        LookupError: If no user has that email
    """
    target = crud.get_user_by_email(db, email)
    if target is None:
        raise LookupError(f"User {email} not found while claiming seed ownership")
    if target.id == SEED_PLACEHOLDER_USER_ID:
        return False

    placeholder = db.get(models.User, SEED_PLACEHOLDER_USER_ID)
    if placeholder is None:
        return False

    try:
        for model in OWNERSHIP_TARGETS:
            db.query(model).filter(model.created_by_id == placeholder.id).update(
                {model.created_by_id: target.id}, synchronize_session=False
            )
        db.delete(placeholder)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Seed data claimed by {email}")
    return True


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Release Tracker development data")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("seed", help="Reset and load the development fixtures")

    claim = subparsers.add_parser("claim", help="Hand seeded records to a user")
    claim.add_argument("--email", required=True)

    create_user = subparsers.add_parser("create-user", help="Create a user and print an access token")
    create_user.add_argument("--email", required=True)
    create_user.add_argument("--name", default=None)
    create_user.add_argument("--token-name", default="cli")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    db = SessionLocal()
    try:
        if args.command == "seed":
            summary = seed_database(db)
            for key, count in summary.items():
                print(f"  {key:15s} {count}")
        elif args.command == "claim":
            if claim_seed_ownership(db, args.email):
                print(f"Seed data now owned by {args.email}")
            else:
                print("Nothing to claim")
        elif args.command == "create-user":
            user = get_or_create_user(db, args.email, args.name)
            _, raw = create_access_token(db, user, args.token_name)
            print(f"User:  {user.email} ({user.id})")
            print(f"Token: {raw}")
    except (SeedEnvironmentError, LookupError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
