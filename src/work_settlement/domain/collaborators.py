"""External collaborator protocols.

The settlement core consumes identity lookups, geolocation fixes and an
instant-payment rail as opaque collaborators. These are Protocols
(structural subtyping) so concrete adapters don't need to inherit from a
base class - they just need to match the shape.

The domain layer has ZERO imports from httpx, OpenPix or any external service.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class UserProfile:
    """What the core needs to know about a party.

    Attributes:
        id: Stable user identifier.
        name: Display name, used in contract text and charge descriptions.
        pix_key: Instant-payment key of the user, if registered.
    """

    id: str
    name: str
    pix_key: str | None = None


@dataclass(frozen=True)
class GeoPoint:
    """A location fix captured by the client at check-in or check-out."""

    latitude: float
    longitude: float
    time: datetime

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"longitude out of range: {self.longitude}")


@dataclass(frozen=True)
class PaymentCode:
    """A scannable/copyable payment code produced by the rail for one charge."""

    correlation_id: str
    payload: str
    value_minor_units: int
    expires_at: datetime | None = None
    raw: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "correlation_id": self.correlation_id,
            "payload": self.payload,
            "value_minor_units": self.value_minor_units,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }


@runtime_checkable
class UserDirectory(Protocol):
    """Identity/profile lookup. The core never validates identity itself."""

    async def get_user(self, user_id: str) -> UserProfile | None:
        """Return the profile for ``user_id`` or None if unknown."""
        ...


@dataclass(frozen=True)
class ChargeRequest:
    """The subset of a charge the payment rail needs to render a code."""

    correlation_id: str
    value_minor_units: int
    receiver_id: str
    receiver_name: str | None
    receiver_pix_key: str | None
    description: str
    expires_at: datetime | None = None


@runtime_checkable
class PaymentRail(Protocol):
    """Instant-payment rail integration (e.g. PIX via OpenPix).

    Concrete implementations:
        - services/payment_rail.py  (PixRail, simulated or OpenPix)
    """

    async def render(self, request: ChargeRequest) -> PaymentCode:
        """Produce the payment code the payer scans or copies."""
        ...

    async def fetch_status(self, correlation_id: str) -> str | None:
        """Return the rail-side charge status (pending/paid/expired), None if unknown."""
        ...
