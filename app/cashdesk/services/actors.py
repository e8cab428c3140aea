"""Actors of a cash session.

Role strings are resolved into one of two variants exactly once, at the edge.
The lifecycle controller only asks an actor what it may do.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from app.cashdesk.core.config import settings

ELEVATED_ROLE = "ELEVATED"


@dataclass(frozen=True)
class Actor:
    actor_id: str
    role: str
    username: str | None = None

    can_certify_drawer: ClassVar[bool] = False

    @property
    def label(self) -> str:
        return self.username or self.actor_id


@dataclass(frozen=True)
class ElevatedActor(Actor):
    """Manager/admin: closes without a second review and validates pending closures."""

    can_certify_drawer: ClassVar[bool] = True


@dataclass(frozen=True)
class OperatorActor(Actor):
    """Attendant: every closure waits for an elevated actor's review."""


def resolve_actor(*, actor_id: str, role: str | None, username: str | None = None) -> Actor:
    normalized = (role or "").strip().upper()
    if normalized == ELEVATED_ROLE or normalized in settings.elevated_roles:
        return ElevatedActor(actor_id=str(actor_id), role=normalized, username=username)
    return OperatorActor(actor_id=str(actor_id), role=normalized or "OPERATOR", username=username)
