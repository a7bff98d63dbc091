from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional


@dataclass
class DeviceCode:
    device_code: str
    user_code: str
    verification_uri: str
    expires_in: int
    interval: int = 0
    verification_uri_complete: str = ""

    @property
    def display_uri(self) -> str:
        target = self.verification_uri.strip()
        if not target:
            target = self.verification_uri_complete.strip()
        return target


@dataclass
class TokenGrant:
    access_token: str
    expires_in: int
    token_type: str = ""
    refresh_token: Optional[str] = None
    scope: str = ""


class OAuthErrorCode(Enum):
    AUTHORIZATION_PENDING = "authorization_pending"
    SLOW_DOWN = "slow_down"
    EXPIRED_TOKEN = "expired_token"
    ACCESS_DENIED = "access_denied"
    OTHER = "other"

    @classmethod
    def parse(cls, raw: str) -> "OAuthErrorCode":
        for member in cls:
            if member is not cls.OTHER and member.value == raw:
                return member
        return cls.OTHER


@dataclass
class OAuthError:
    raw_code: str
    description: str = ""

    @property
    def code(self) -> OAuthErrorCode:
        return OAuthErrorCode.parse(self.raw_code)


@dataclass
class Credential:
    access_token: str
    expires_at: datetime
    refresh_token: Optional[str] = None
    scopes: FrozenSet[str] = field(default_factory=frozenset)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at


@dataclass
class NoteSummary:
    id: str
    title: str
    language: str = ""
    tags: List[str] = field(default_factory=list)
    snippet: str = ""
    folder_id: Optional[str] = None
    updated_at: Optional[datetime] = None


@dataclass
class NoteDraft:
    collection_id: str
    folder_id: str
    title: str
    code: str
    language: str = ""
    tags: List[str] = field(default_factory=list)
    note: str = ""

    def to_payload(self) -> Dict[str, Any]:
        return {
            "collection_id": self.collection_id,
            "folder_id": self.folder_id,
            "title": self.title,
            "language": self.language,
            "tags": list(self.tags),
            "code": self.code,
            "note": self.note,
        }


@dataclass
class NoteUpdate:
    """Partial note update; ``None`` means "leave unchanged"."""

    code: Optional[str] = None
    title: Optional[str] = None
    language: Optional[str] = None
    tags: Optional[List[str]] = None
    note: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for key in ("code", "title", "language", "tags", "note"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = list(value) if key == "tags" else value
        return payload
