from datetime import datetime

from sqlalchemy import (
    String,
    Integer,
    Boolean,
    Text,
    JSON,
    DateTime,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from accounts_oauth.common import timeutils
from accounts_oauth.core.db import Base


class Client(Base):
    __tablename__ = "oauth_clients"

    client_id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        index=True,
    )

    client_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
    )

    # Exact-match sets; stored as JSON lists
    redirect_uris: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
    )

    allowed_scopes: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=timeutils.utc_now,
    )


class Consent(Base):
    __tablename__ = "oauth_consents"
    __table_args__ = (
        UniqueConstraint("user_id", "client_id", name="uq_oauth_consents_user_client"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    client_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("oauth_clients.client_id"),
        nullable=False,
    )

    # space-delimited
    scope: Mapped[str] = mapped_column(Text, nullable=False)

    granted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    revoked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )


class AuthorizationCode(Base):
    __tablename__ = "oauth_authorization_codes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    code_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    client_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("oauth_clients.client_id"),
        nullable=False,
    )

    user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    redirect_uri: Mapped[str] = mapped_column(Text, nullable=False)

    scope: Mapped[str] = mapped_column(Text, nullable=False)

    code_challenge: Mapped[str | None] = mapped_column(String(128), nullable=True)

    code_challenge_method: Mapped[str | None] = mapped_column(String(16), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # null -> set exactly once, by a conditional UPDATE
    used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )


class AccessToken(Base):
    __tablename__ = "oauth_access_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    client_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("oauth_clients.client_id"),
        nullable=False,
    )

    user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    scope: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    revoked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )


class RefreshToken(Base):
    __tablename__ = "oauth_refresh_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    access_token_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("oauth_access_tokens.id"),
        nullable=False,
    )

    client_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("oauth_clients.client_id"),
        nullable=False,
    )

    user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    revoked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # always loaded explicitly (joinedload); async sessions cannot lazy-load
    access_token: Mapped[AccessToken] = relationship(AccessToken, lazy="raise")
