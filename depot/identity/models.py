"""Admin credential and authenticated identity models."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Literal
from uuid import uuid4

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AdminCredential(BaseModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    login: str
    password_hash: str
    created_at: datetime = Field(default_factory=_now)


@dataclass
class AdminIdentity:
    admin_id: str
    login: str
    provider: Literal["jwt", "static"] = "jwt"
    claims: Dict[str, Any] = field(default_factory=dict)
