"""Session, flow and notification models for the session auth engine."""

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from core.config.settings import ValidationMode

UNKNOWN = "Unknown"
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)
# Range of epoch milliseconds that still maps to a datetime
_MIN_EXPIRES_MS = (datetime.min.replace(tzinfo=timezone.utc) - _EPOCH) // _ONE_MS
_MAX_EXPIRES_MS = (datetime.max.replace(tzinfo=timezone.utc) - _EPOCH) // _ONE_MS


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_scopes(scopes: Optional[Iterable[str]]) -> Tuple[str, ...]:
    """Scopes as a tuple. A bare string is rejected rather than split into characters."""
    if scopes is None:
        return ()
    if isinstance(scopes, str):
        raise TypeError(f"scopes must be a collection of strings, not the string {scopes!r}")
    return tuple(scopes)


def _normalize_timestamp(value: Optional[datetime]) -> Optional[datetime]:
    """UTC, millisecond precision (the resolution of the persisted blob)."""
    if value is None:
        return None
    # Handle timezone-naive timestamps by assuming UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


@dataclass(frozen=True)
class Session:
    """One authenticated account binding held by the registry."""
    id: str
    access_token: str
    account_label: str
    scopes: FrozenSet[str] = frozenset()
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None

    def __post_init__(self):
        object.__setattr__(self, "scopes", frozenset(normalize_scopes(self.scopes)))
        object.__setattr__(self, "expires_at", _normalize_timestamp(self.expires_at))

    @property
    def account_id(self) -> str:
        return self.id

    def has_scopes(self, required: Optional[Iterable[str]]) -> bool:
        """True when every required scope is granted to this session."""
        return set(normalize_scopes(required)) <= self.scopes

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check the locally stamped expiry; sessions without one never expire locally."""
        if self.expires_at is None:
            return False
        return (now or utc_now()) >= self.expires_at

    def with_access_token(self, access_token: str) -> "Session":
        return dataclasses.replace(self, access_token=access_token)

    def to_record(self) -> Dict[str, Any]:
        """Serialize to the camelCase record kept in secret storage."""
        return StoredSession.from_session(self).model_dump(by_alias=True, exclude_none=True)

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "Session":
        """Validate a persisted record; raises pydantic.ValidationError if malformed."""
        return StoredSession.model_validate(data).to_session()


class StoredSession(BaseModel):
    """Schema of one persisted session record."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(min_length=1)
    access_token: str = Field(alias="accessToken", min_length=1)
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")
    account_label: str = Field(alias="accountLabel")
    scopes: List[str]
    expires_at: Optional[int] = Field(
        default=None, alias="expiresAt", ge=_MIN_EXPIRES_MS, le=_MAX_EXPIRES_MS,
        description="Epoch milliseconds",
    )

    @classmethod
    def from_session(cls, session: Session) -> "StoredSession":
        expires_at = None
        if session.expires_at is not None:
            expires_at = (session.expires_at - _EPOCH) // _ONE_MS
        return cls(
            id=session.id,
            access_token=session.access_token,
            refresh_token=session.refresh_token,
            account_label=session.account_label,
            scopes=sorted(session.scopes),
            expires_at=expires_at,
        )

    def to_session(self) -> Session:
        expires_at = None
        if self.expires_at is not None:
            expires_at = _EPOCH + timedelta(milliseconds=self.expires_at)
        return Session(
            id=self.id,
            access_token=self.access_token,
            account_label=self.account_label,
            scopes=frozenset(self.scopes),
            refresh_token=self.refresh_token,
            expires_at=expires_at,
        )


@dataclass(frozen=True)
class ChangeEvent:
    """Sessions added, removed and changed by one mutating operation."""
    added: Tuple[Session, ...] = ()
    removed: Tuple[Session, ...] = ()
    changed: Tuple[Session, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "added", tuple(self.added))
        object.__setattr__(self, "removed", tuple(self.removed))
        object.__setattr__(self, "changed", tuple(self.changed))

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.changed)


class FlowState(Enum):
    """Browser login flow state."""
    IDLE = "idle"
    AWAITING_CALLBACK = "awaiting_callback"
    RESOLVED = "resolved"
    MISMATCHED = "mismatched"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass
class PendingAuthFlow:
    """State of one in-flight browser login."""
    state: str
    redirect_uri: str
    auth_url: str
    deadline: datetime
    scopes: Tuple[str, ...] = ()
    started_at: datetime = field(default_factory=utc_now)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utc_now()) >= self.deadline

    def remaining_seconds(self, now: Optional[datetime] = None) -> float:
        delta = self.deadline - (now or utc_now())
        return max(0.0, delta.total_seconds())

    @classmethod
    def start(cls, state: str, redirect_uri: str, auth_url: str,
              timeout_seconds: float, scopes: Iterable[str] = ()) -> "PendingAuthFlow":
        now = utc_now()
        return cls(
            state=state,
            redirect_uri=redirect_uri,
            auth_url=auth_url,
            deadline=now + timedelta(seconds=timeout_seconds),
            scopes=tuple(scopes),
            started_at=now,
        )


@dataclass(frozen=True)
class CallbackPayload:
    """Login result carried by the browser callback."""
    access_token: str
    display_name: str = UNKNOWN
    email: str = UNKNOWN
    active: bool = False

    @classmethod
    def from_query(cls, query: Mapping[str, str]) -> "CallbackPayload":
        return cls(
            access_token=query["access_token"],
            display_name=query.get("displayName") or UNKNOWN,
            email=query.get("email") or UNKNOWN,
            active=query.get("active") == "true",
        )


@dataclass(frozen=True)
class UserInfo:
    """User profile returned by the auth service."""
    id: str
    display_name: str
    email: Optional[str] = None
    active: bool = True

    @classmethod
    def from_response(cls, data: Mapping[str, Any]) -> "UserInfo":
        """Create from the userinfo response body."""
        user_id = data["id"]
        if user_id is None or user_id == "":
            raise ValueError("userinfo id is empty")
        display_name = data.get("displayName") or data.get("name") or UNKNOWN
        active = data.get("active")
        return cls(
            id=str(user_id),
            display_name=display_name,
            email=data.get("email"),
            active=True if active is None else bool(active),
        )


@dataclass(frozen=True)
class LoginCredentials:
    username: str
    password: str = field(repr=False)


__all__ = [
    "CallbackPayload",
    "ChangeEvent",
    "FlowState",
    "LoginCredentials",
    "PendingAuthFlow",
    "Session",
    "StoredSession",
    "UNKNOWN",
    "UserInfo",
    "ValidationMode",
    "normalize_scopes",
    "utc_now",
]
