"""
Actor context passed into reservation operations.

Authentication happens upstream; by the time a request reaches the
reservation services the caller has already been resolved to an id and role.
"""
from dataclasses import dataclass
from typing import Optional

from django.db import models


class ActorRole(models.TextChoices):
    PATIENT = 'PATIENT', 'Patient'
    PHARMACY = 'PHARMACY', 'Pharmacy'
    ADMIN = 'ADMIN', 'Admin'
    SYSTEM = 'SYSTEM', 'System'


@dataclass(frozen=True)
class Actor:
    """
    A resolved caller.

    actor_id is the Patient id for patients and the Pharmacy id for
    pharmacies. The system actor (sweeper, scheduled jobs) has no id.
    """
    actor_id: Optional[int]
    role: str

    @property
    def is_system(self) -> bool:
        return self.role == ActorRole.SYSTEM

    def as_dict(self):
        return {'actor_id': self.actor_id, 'role': str(self.role)}


SYSTEM_ACTOR = Actor(actor_id=None, role=ActorRole.SYSTEM)


def actor_from_request(request) -> Actor:
    """
    Build an Actor from the X-Actor-Id / X-Actor-Role headers set by the
    auth gateway in front of the API.

    Raises:
        Forbidden: If the headers are missing or malformed, or claim SYSTEM.
    """
    from .exceptions import Forbidden

    role = request.headers.get('X-Actor-Role', '').strip().upper()
    raw_id = request.headers.get('X-Actor-Id', '').strip()

    if role not in (ActorRole.PATIENT, ActorRole.PHARMACY, ActorRole.ADMIN):
        raise Forbidden("Missing or unsupported actor role")

    actor_id = None
    if raw_id:
        try:
            actor_id = int(raw_id)
        except ValueError:
            raise Forbidden(f"Invalid actor id: {raw_id!r}")

    if actor_id is None and role != ActorRole.ADMIN:
        raise Forbidden("Actor id is required")

    return Actor(actor_id=actor_id, role=role)
