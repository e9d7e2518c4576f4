"""
Travel advice from the user's position to a farm, grounded in Google Maps.

Asks Gemini for a short (max 3 sentences) directional answer with the Google
Maps grounding tool enabled. Grounding and JSON-schema output cannot be
combined on this backend, so the answer is free text plus whatever sources
the grounding metadata carries.

Usage (from the concierge):
    from agents.RouteAgent import get_travel_advice

    advice = get_travel_advice(46.06, 13.23, "f4")
    advice.text, advice.citations

Every failure resolves to a fallback TravelAdvice; nothing is raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence
from urllib.parse import urlencode

from google.genai import types

from FarmInfo import FarmRecord
from farm_data import FARMS, get_farm

try:
    from .gemini import MissingCredentialsError, get_client, model_name, response_text
except ImportError:
    from gemini import MissingCredentialsError, get_client, model_name, response_text  # type: ignore

log = logging.getLogger(__name__)

DESTINATION_NOT_FOUND = "Impossibile trovare le informazioni sulla destinazione."
MISSING_KEY = "Chiave API mancante."
NO_ROUTE = "Non sono riuscito a calcolare il percorso."
ADVICE_FAILED = "Errore durante il calcolo dei consigli di viaggio."

_DIRECTIONS_URL = "https://www.google.com/maps/dir/"


@dataclass(frozen=True)
class Citation:
    title: Optional[str] = None
    uri: Optional[str] = None


@dataclass(frozen=True)
class TravelAdvice:
    text: str
    citations: List[Citation] = field(default_factory=list)
    grounded: bool = False


# ---------------------------------------------------------------------------
# Request building
# ---------------------------------------------------------------------------

def build_prompt(lat: float, lng: float, farm: FarmRecord) -> str:
    return (
        f"L'utente si trova alle coordinate {lat}, {lng}.\n"
        f'Deve raggiungere l\'azienda agricola "{farm.name}" in "{farm.address}".\n\n'
        "Verifica la posizione reale con Google Maps e considera le strade "
        "principali e il traffico tipico. Dai un consiglio breve (massimo 3 frasi) "
        "su come arrivare: direzione da prendere e tipo di strada "
        "(autostrada, statale, strada di montagna)."
    )


def _generation_config(lat: float, lng: float) -> types.GenerateContentConfig:
    # No response_mime_type here: JSON output is not allowed with the Maps tool
    return types.GenerateContentConfig(
        tools=[types.Tool(google_maps=types.GoogleMaps())],
        tool_config=types.ToolConfig(
            retrieval_config=types.RetrievalConfig(
                lat_lng=types.LatLng(latitude=lat, longitude=lng),
            ),
        ),
    )


# ---------------------------------------------------------------------------
# Grounding metadata
# ---------------------------------------------------------------------------

def extract_citations(response) -> List[Citation]:
    """Collect {title, uri} sources from the first candidate's grounding chunks.

    Maps sources win over web sources; chunks carrying neither are skipped.
    """
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []

    citations: List[Citation] = []
    for chunk in chunks:
        source = getattr(chunk, "maps", None) or getattr(chunk, "web", None)
        if source is None:
            continue
        title = getattr(source, "title", None)
        uri = getattr(source, "uri", None)
        if not title and not uri:
            continue
        citations.append(Citation(title=title, uri=uri))
    return citations


def maps_directions_url(lat: float, lng: float, farm: FarmRecord) -> str:
    """Google Maps driving directions link from (lat, lng) to the farm."""
    params = {
        "api": 1,
        "origin": f"{lat},{lng}",
        "destination": f"{farm.lat},{farm.lng}",
        "travelmode": "driving",
    }
    return f"{_DIRECTIONS_URL}?{urlencode(params)}"


# ---------------------------------------------------------------------------
# Core public API
# ---------------------------------------------------------------------------

def get_travel_advice(
    lat: float,
    lng: float,
    farm_id: str,
    farms: Optional[Sequence[FarmRecord]] = None,
) -> TravelAdvice:
    """Short grounded directions from (lat, lng) to the farm *farm_id*."""
    farm = get_farm(farm_id, FARMS if farms is None else farms)
    if farm is None:
        log.debug("Travel advice requested for unknown farm %s", farm_id)
        return TravelAdvice(text=DESTINATION_NOT_FOUND)

    try:
        client = get_client()
    except MissingCredentialsError:
        log.error("API key is missing, cannot compute travel advice")
        return TravelAdvice(text=MISSING_KEY)

    try:
        response = client.models.generate_content(
            model=model_name(),
            contents=build_prompt(lat, lng, farm),
            config=_generation_config(lat, lng),
        )
    except Exception as exc:
        log.warning("Travel advice request failed for %s: %s", farm_id, exc)
        return TravelAdvice(text=ADVICE_FAILED)

    text = response_text(response)
    try:
        citations = extract_citations(response)
    except Exception as exc:
        log.warning("Could not read grounding metadata: %s", exc)
        citations = []

    if not text:
        return TravelAdvice(text=NO_ROUTE, citations=citations)
    return TravelAdvice(text=text, citations=citations, grounded=bool(citations))
