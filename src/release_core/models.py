"""SQLAlchemy database models."""
from datetime import datetime, timezone
from uuid import uuid4
import enum

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    Date,
    DateTime,
    ForeignKey,
    Enum,
    Boolean,
    UniqueConstraint,
    Index,
    LargeBinary,
    JSON,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, relationship

# Base class for all models
Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns below."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _enum_values(enum_cls):
    return [e.value for e in enum_cls]


class ReleaseTrack(str, enum.Enum):
    """Where a release version sits in the rollout pipeline."""

    FUTURE = "Future"
    BETA = "Beta"
    ROLLOUT = "Rollout"
    ACTIVE = "Active"
    ARCHIVED = "Archived"


class ReleaseScope(str, enum.Enum):
    """Whether a component ships with every increment or only when selected."""

    GLOBAL = "global"
    VERSION_BOUND = "version_bound"


class PatchStatus(str, enum.Enum):
    """Lifecycle status shared by patches and built versions."""

    IN_DEVELOPMENT = "in_development"
    IN_DEPLOYMENT = "in_deployment"
    ACTIVE = "active"
    DEPRECATED = "deprecated"


class PatchAction(str, enum.Enum):
    """Persisted transition actions."""

    START_DEPLOYMENT = "start_deployment"
    CANCEL_DEPLOYMENT = "cancel_deployment"
    MARK_ACTIVE = "mark_active"
    REVERT_TO_DEPLOYMENT = "revert_to_deployment"
    DEPRECATE = "deprecate"
    REACTIVATE = "reactivate"


class ActionStatus(str, enum.Enum):
    """Outcome of a logged user action or subaction."""

    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class JiraReleaseStatus(str, enum.Enum):
    """Release state of a Jira project version."""

    RELEASED = "Released"
    UNRELEASED = "Unreleased"
    ARCHIVED = "Archived"


# Shared column types so PostgreSQL creates each enum type once
release_track_type = Enum(ReleaseTrack, name="release_track", values_callable=_enum_values)
release_scope_type = Enum(ReleaseScope, name="release_scope", values_callable=_enum_values)
patch_status_type = Enum(PatchStatus, name="patch_status", values_callable=_enum_values)
patch_action_type = Enum(PatchAction, name="patch_action", values_callable=_enum_values)
action_status_type = Enum(ActionStatus, name="action_status", values_callable=_enum_values)
jira_release_status_type = Enum(JiraReleaseStatus, name="jira_release_status", values_callable=_enum_values)


class User(Base):
    """Application user. Authenticates with personal access tokens."""

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid4)
    email = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    def __repr__(self) -> str:
        return f"<User {self.email}>"


class PersonalAccessToken(Base):
    """
    Personal Access Token for API authentication.

    Tokens are hashed before storage (like passwords); the raw value is
    only returned once, at creation time.
    """

    __tablename__ = "personal_access_tokens"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    token_hash = Column(String(255), nullable=False, unique=True, index=True)  # SHA-256 hash of token
    last_used_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)
    revoked_at = Column(DateTime, nullable=True)

    user = relationship("User", backref="access_tokens")

    @property
    def is_active(self) -> bool:
        """Check if token is active (not revoked and not expired)."""
        if self.revoked_at:
            return False
        if self.expires_at and self.expires_at < _utcnow():
            return False
        return True

    def __repr__(self) -> str:
        return f"<PersonalAccessToken {self.name} for user_id={self.user_id}>"


class ReleaseVersion(Base):
    """
    A named release (e.g. "2025.3") grouping its built versions and patches.

    ``last_used_increment`` tracks the highest increment handed out to an
    auto-created successor so names stay unique within the release.
    """

    __tablename__ = "release_versions"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False, unique=True)
    release_track = Column(release_track_type, nullable=False, default=ReleaseTrack.FUTURE)
    last_used_increment = Column(Integer, nullable=True)
    created_by_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    creator = relationship("User", foreign_keys=[created_by_id])
    patches = relationship(
        "Patch",
        back_populates="version",
        cascade="all, delete-orphan",
        order_by="Patch.created_at",
    )
    built_versions = relationship(
        "BuiltVersion",
        back_populates="version",
        cascade="all, delete-orphan",
        order_by="BuiltVersion.created_at",
    )

    def __repr__(self) -> str:
        return f"<ReleaseVersion {self.name} ({self.release_track})>"


class ReleaseComponent(Base):
    """A deployable component whose versions are named from ``naming_pattern``."""

    __tablename__ = "release_components"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False, unique=True)
    color = Column(String(32), nullable=False)
    naming_pattern = Column(String(255), nullable=False)
    release_scope = Column(release_scope_type, nullable=False, default=ReleaseScope.VERSION_BOUND)
    created_by_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    creator = relationship("User", foreign_keys=[created_by_id])

    def __repr__(self) -> str:
        return f"<ReleaseComponent {self.name}>"


# =============================================================================
# Built versions
# =============================================================================


class BuiltVersion(Base):
    """A deployable build increment of a release version."""

    __tablename__ = "built_versions"
    __table_args__ = (
        UniqueConstraint("version_id", "name", name="uq_built_versions_version_name"),
    )

    id = Column(Uuid, primary_key=True, default=uuid4)
    version_id = Column(Uuid, ForeignKey("release_versions.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    increment = Column(Integer, nullable=False, default=0)
    current_status = Column(patch_status_type, nullable=False, default=PatchStatus.IN_DEVELOPMENT)
    token_values = Column(JSONType, nullable=False, default=dict)
    created_by_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    version = relationship("ReleaseVersion", back_populates="built_versions")
    creator = relationship("User", foreign_keys=[created_by_id])
    transitions = relationship(
        "BuiltVersionTransition",
        back_populates="built_version",
        cascade="all, delete-orphan",
        order_by="BuiltVersionTransition.created_at",
    )
    component_versions = relationship(
        "ComponentVersion",
        back_populates="built_version",
        cascade="all, delete-orphan",
        order_by="ComponentVersion.created_at",
    )

    def __repr__(self) -> str:
        return f"<BuiltVersion {self.name} ({self.current_status})>"


class BuiltVersionTransition(Base):
    """Audit row for a built version status change."""

    __tablename__ = "built_version_transitions"

    id = Column(Uuid, primary_key=True, default=uuid4)
    built_version_id = Column(Uuid, ForeignKey("built_versions.id", ondelete="CASCADE"), nullable=False, index=True)
    from_status = Column(patch_status_type, nullable=False)
    to_status = Column(patch_status_type, nullable=False)
    action = Column(patch_action_type, nullable=False)
    created_by_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)

    built_version = relationship("BuiltVersion", back_populates="transitions")


class ComponentVersion(Base):
    """The version of one release component shipped in a built version."""

    __tablename__ = "component_versions"
    __table_args__ = (
        UniqueConstraint("built_version_id", "release_component_id", name="uq_component_versions_built_component"),
    )

    id = Column(Uuid, primary_key=True, default=uuid4)
    built_version_id = Column(Uuid, ForeignKey("built_versions.id", ondelete="CASCADE"), nullable=False, index=True)
    release_component_id = Column(Uuid, ForeignKey("release_components.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    increment = Column(Integer, nullable=False, default=0)
    token_values = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=_utcnow)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    built_version = relationship("BuiltVersion", back_populates="component_versions")
    release_component = relationship("ReleaseComponent")


# =============================================================================
# Patches
# =============================================================================


class Patch(Base):
    """A patch increment of a release version."""

    __tablename__ = "patches"
    __table_args__ = (
        UniqueConstraint("version_id", "name", name="uq_patches_version_name"),
    )

    id = Column(Uuid, primary_key=True, default=uuid4)
    version_id = Column(Uuid, ForeignKey("release_versions.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    increment = Column(Integer, nullable=False, default=0)
    current_status = Column(patch_status_type, nullable=False, default=PatchStatus.IN_DEVELOPMENT)
    token_values = Column(JSONType, nullable=False, default=dict)
    created_by_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    version = relationship("ReleaseVersion", back_populates="patches")
    creator = relationship("User", foreign_keys=[created_by_id])
    transitions = relationship(
        "PatchTransition",
        back_populates="patch",
        cascade="all, delete-orphan",
        order_by="PatchTransition.created_at",
    )
    component_versions = relationship(
        "PatchComponentVersion",
        back_populates="patch",
        cascade="all, delete-orphan",
        order_by="PatchComponentVersion.created_at",
    )

    def __repr__(self) -> str:
        return f"<Patch {self.name} ({self.current_status})>"


class PatchTransition(Base):
    """Audit row for a patch status change."""

    __tablename__ = "patch_transitions"

    id = Column(Uuid, primary_key=True, default=uuid4)
    patch_id = Column(Uuid, ForeignKey("patches.id", ondelete="CASCADE"), nullable=False, index=True)
    from_status = Column(patch_status_type, nullable=False)
    to_status = Column(patch_status_type, nullable=False)
    action = Column(patch_action_type, nullable=False)
    created_by_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)

    patch = relationship("Patch", back_populates="transitions")


class PatchComponentVersion(Base):
    """The version of one release component deployed with a patch."""

    __tablename__ = "patch_component_versions"
    __table_args__ = (
        UniqueConstraint("patch_id", "release_component_id", name="uq_patch_component_versions_patch_component"),
    )

    id = Column(Uuid, primary_key=True, default=uuid4)
    patch_id = Column(Uuid, ForeignKey("patches.id", ondelete="CASCADE"), nullable=False, index=True)
    release_component_id = Column(Uuid, ForeignKey("release_components.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    increment = Column(Integer, nullable=False, default=0)
    token_values = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=_utcnow)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    patch = relationship("Patch", back_populates="component_versions")
    release_component = relationship("ReleaseComponent")


# =============================================================================
# Action history
# =============================================================================


class ActionLog(Base):
    """A user-initiated action (e.g. "patch.transition") and its outcome."""

    __tablename__ = "action_logs"
    __table_args__ = (
        Index("ix_action_logs_session_created", "session_token", "created_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid4)
    action_type = Column(String(100), nullable=False)
    message = Column(Text, nullable=False)
    status = Column(action_status_type, nullable=False, default=ActionStatus.SUCCESS)
    session_token = Column(String(255), nullable=True)
    workflow_id = Column(String(255), nullable=True)
    # "metadata" is reserved on declarative classes
    action_metadata = Column("metadata", JSONType, nullable=True)
    created_by_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow, index=True)

    subactions = relationship(
        "ActionSubactionLog",
        back_populates="action",
        cascade="all, delete-orphan",
        order_by="ActionSubactionLog.created_at",
    )


class ActionSubactionLog(Base):
    """A step recorded inside an ActionLog."""

    __tablename__ = "action_subaction_logs"

    id = Column(Uuid, primary_key=True, default=uuid4)
    action_id = Column(Uuid, ForeignKey("action_logs.id", ondelete="CASCADE"), nullable=False, index=True)
    subaction_type = Column(String(100), nullable=False)
    message = Column(Text, nullable=False)
    status = Column(action_status_type, nullable=False, default=ActionStatus.SUCCESS)
    subaction_metadata = Column("metadata", JSONType, nullable=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)

    action = relationship("ActionLog", back_populates="subactions")


# =============================================================================
# Jira integration
# =============================================================================


class JiraCredential(Base):
    """
    Per-user Jira credentials.

    The API token is Fernet-encrypted before storage (see crypto.py) and
    never returned by the API.
    """

    __tablename__ = "jira_credentials"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    email = Column(String(255), nullable=True)
    encrypted_api_token = Column(LargeBinary, nullable=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    user = relationship("User", backref="jira_credential")


class JiraVersion(Base):
    """A Jira project version mirrored locally by the sync job."""

    __tablename__ = "jira_versions"

    id = Column(Uuid, primary_key=True, default=uuid4)
    jira_id = Column(String(64), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    project_id = Column(String(64), nullable=True)
    release_status = Column(jira_release_status_type, nullable=False, default=JiraReleaseStatus.UNRELEASED)
    released = Column(Boolean, nullable=False, default=False)
    archived = Column(Boolean, nullable=False, default=False)
    start_date = Column(Date, nullable=True)
    release_date = Column(Date, nullable=True)
    raw = Column(JSONType, nullable=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    def __repr__(self) -> str:
        return f"<JiraVersion {self.name} ({self.release_status})>"
