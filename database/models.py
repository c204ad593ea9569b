"""
SQLAlchemy ORM models for users, OAuth apps, integrations and campaigns.

Column types are dialect-neutral (``Uuid``, ``JSON``) with JSONB on
PostgreSQL, so the same models run against SQLite in tests.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, relationship

JsonType = JSON().with_variant(JSONB(), "postgresql")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    user_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False)
    display_name = Column(String(255))
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=_now)

    oauth_apps = relationship("OAuthApp", cascade="all, delete-orphan")
    integrations = relationship("Integration", cascade="all, delete-orphan")


class OAuthApp(Base):
    __tablename__ = "oauth_apps"
    __table_args__ = (UniqueConstraint("user_id", "platform", name="uq_oauth_apps_user_platform"),)

    app_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    platform = Column(String(50), nullable=False)
    client_id = Column(Text, nullable=False)
    client_secret = Column(Text)            # iv:tag:ciphertext, nullable
    redirect_uri = Column(Text, nullable=False)
    scopes = Column(JsonType, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_now)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)


class Integration(Base):
    __tablename__ = "integrations"
    __table_args__ = (UniqueConstraint("user_id", "platform", name="uq_integrations_user_platform"),)

    integration_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    platform = Column(String(50), nullable=False)
    oauth_app_id = Column(Uuid, ForeignKey("oauth_apps.app_id", ondelete="SET NULL"))
    # Encrypted. OAuth platforms: the raw token. API-key platforms: a JSON credential bundle.
    access_token = Column(Text)
    refresh_token = Column(Text)
    expires_at = Column(DateTime(timezone=True))
    is_active = Column(Boolean, nullable=False, default=True)
    audit = Column(JsonType, nullable=False, default=dict)
    provider_meta = Column(JsonType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=_now)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)


class Campaign(Base):
    __tablename__ = "campaigns"

    campaign_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    integration_id = Column(Uuid, ForeignKey("integrations.integration_id", ondelete="SET NULL"))
    platform = Column(String(50), nullable=False)
    platform_campaign_id = Column(String(255))
    name = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default="active")
    spend = Column(String(32), nullable=False, default="0")   # decimal string
    clicks = Column(Integer, nullable=False, default=0)
    impressions = Column(Integer, nullable=False, default=0)
    conversions = Column(Integer, nullable=False, default=0)
    metadata_ = Column("metadata", JsonType, default=dict)
    created_at = Column(DateTime(timezone=True), default=_now)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)


class OAuthStateNonce(Base):
    """One row per consumed OAuth ``state`` nonce; the primary key rejects replays."""

    __tablename__ = "oauth_state_nonces"

    nonce = Column(String(64), primary_key=True)
    user_id = Column(Uuid, nullable=False)
    platform = Column(String(50), nullable=False)
    consumed_at = Column(DateTime(timezone=True), default=_now)
