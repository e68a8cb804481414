"""Office geofence and fake-GPS check.

Checks run in a fixed order and the first failure wins: location service,
permission, mock provider, distance from the office.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from facepass.config import GeofenceConfig
from facepass.errors import PositionUnavailableError
from facepass.geometry import haversine_m
from facepass.stores import PositionProvider
from facepass.types import Position, Reason

logger = logging.getLogger(__name__)


def format_distance(meters: float) -> str:
    """Human-readable distance: ``"50m"`` below 1 km, ``"1.2km"`` above."""
    if meters < 1000:
        return f"{meters:.0f}m"
    return f"{meters / 1000:.1f}km"


@dataclass
class GeofenceResult:
    """Outcome of a geofence validation.

    Attributes:
        valid: True when the user may record attendance from here.
        reason: None when valid, otherwise the first failing check.
        distance_m: Distance to the office, when a position was evaluated.
        position: The evaluated position, if any.
        message: User-facing explanation.
    """

    valid: bool
    reason: Optional[Reason] = None
    distance_m: Optional[float] = None
    position: Optional[Position] = None
    message: str = ""


class GeofenceValidator:
    """Validates positions against the configured office circle."""

    def __init__(self, config: GeofenceConfig | None = None):
        self.config = config or GeofenceConfig()

    def distance_to_office(self, position: Position) -> float:
        return haversine_m(
            self.config.office_lat, self.config.office_lng, position.lat, position.lng
        )

    def validate(
        self,
        position: Optional[Position],
        service_enabled: bool = True,
        permission_granted: bool = True,
    ) -> GeofenceResult:
        if not service_enabled:
            return GeofenceResult(
                valid=False,
                reason=Reason.LOCATION_DISABLED,
                message="Location services are disabled. Please enable GPS in your device settings.",
            )
        if not permission_granted:
            return GeofenceResult(
                valid=False,
                reason=Reason.PERMISSION_DENIED,
                message="Location permission denied",
            )
        if position is None:
            return GeofenceResult(
                valid=False,
                reason=Reason.POSITION_UNAVAILABLE,
                message="Failed to get location",
            )
        if position.is_mocked:
            logger.warning("Mock location reported at %s", position.format())
            return GeofenceResult(
                valid=False,
                reason=Reason.MOCK_LOCATION_DETECTED,
                position=position,
                message="Mock location detected. Please disable fake GPS apps and try again.",
            )

        dist = self.distance_to_office(position)
        if dist > self.config.radius_m:
            logger.debug("geofence: %.1fm outside %.0fm radius", dist, self.config.radius_m)
            return GeofenceResult(
                valid=False,
                reason=Reason.OUTSIDE_RADIUS,
                distance_m=dist,
                position=position,
                message=(
                    f"You are {format_distance(dist)} away from the office. You must be "
                    f"within {format_distance(self.config.radius_m)} to clock in/out."
                ),
            )

        return GeofenceResult(
            valid=True,
            distance_m=dist,
            position=position,
            message="Location verified. You are at the office.",
        )

    def validate_from(self, provider: PositionProvider) -> GeofenceResult:
        """Query the provider and validate its current position."""
        if not provider.is_service_enabled():
            return self.validate(None, service_enabled=False)
        if not provider.has_permission():
            return self.validate(None, permission_granted=False)
        try:
            position = provider.current(self.config.position_timeout_s)
        except PositionUnavailableError as e:
            logger.warning("Position unavailable: %s", e)
            return GeofenceResult(
                valid=False,
                reason=Reason.POSITION_UNAVAILABLE,
                message=f"Failed to get location: {e}",
            )
        return self.validate(position)


__all__ = ["GeofenceResult", "GeofenceValidator", "format_distance"]
