"""
Where is the user? Resolves a location query to coordinates.

Accepts either a literal "lat, lng" pair (as a browser geolocation would
hand over) or a place name, which is geocoded with Nominatim restricted to
Italy. The outcome is always a LocationResult; geocoder errors are mapped to
a status so the concierge can show the right message.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import Optional

from geopy.exc import (
    GeocoderAuthenticationFailure,
    GeocoderInsufficientPrivileges,
    GeocoderServiceError,
    GeocoderTimedOut,
    GeocoderUnavailable,
)
from geopy.geocoders import Nominatim

logger = logging.getLogger(__name__)

OK = "ok"
DENIED = "denied"
UNSUPPORTED = "unsupported"
NOT_FOUND = "not_found"
UNAVAILABLE = "unavailable"

_COORDS_RE = re.compile(r"^\s*(-?\d{1,2}(?:\.\d+)?)\s*[,;\s]\s*(-?\d{1,3}(?:\.\d+)?)\s*$")


@dataclass(frozen=True)
class LocationResult:
    status: str
    lat: Optional[float] = None
    lng: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.status == OK


def _user_agent() -> str:
    return os.getenv("NOMINATIM_USER_AGENT", "terrefvg-farm-map")


def parse_coordinates(text: str) -> Optional[tuple[float, float]]:
    """Parse "46.06, 13.23" style input, None if it is not a valid pair."""
    m = _COORDS_RE.match(text or "")
    if not m:
        return None
    lat, lng = float(m.group(1)), float(m.group(2))
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        return None
    return lat, lng


def locate(query: str, geolocator=None) -> LocationResult:
    """Resolve *query* to coordinates."""
    if not query or not query.strip():
        return LocationResult(UNSUPPORTED)

    coords = parse_coordinates(query)
    if coords:
        return LocationResult(OK, coords[0], coords[1])

    geolocator = geolocator or Nominatim(user_agent=_user_agent())
    try:
        place = geolocator.geocode(query.strip(), country_codes="it", timeout=5)
    except (GeocoderInsufficientPrivileges, GeocoderAuthenticationFailure) as exc:
        logger.warning("Geocoder refused the request: %s", exc)
        return LocationResult(DENIED)
    except (GeocoderTimedOut, GeocoderUnavailable, GeocoderServiceError) as exc:
        logger.warning("Geocoder unavailable for %r: %s", query, exc)
        return LocationResult(UNAVAILABLE)

    if place is None:
        return LocationResult(NOT_FOUND)
    return LocationResult(OK, place.latitude, place.longitude)
