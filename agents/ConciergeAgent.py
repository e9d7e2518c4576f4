"""
Itinerary synthesis against the Gemini backend.

One schema-constrained generate_content call turns a free-text request plus
a compact projection of the farm catalog into a short visit itinerary:

    result = generate_itinerary("vini rossi e formaggi forti")
    if result.ok:
        show(result.itinerary)

The call never raises. Missing credentials, transport errors and payloads
that do not match the schema all come back as an ItineraryFailure, and the
caller shows a neutral message. There are no retries.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from google.genai import types
from pydantic import ValidationError

from FarmInfo import FarmRecord, Itinerary
from farm_data import FARMS, catalog_projection

try:
    from .gemini import MissingCredentialsError, get_client, model_name, response_text
except ImportError:
    from gemini import MissingCredentialsError, get_client, model_name, response_text  # type: ignore

logger = logging.getLogger(__name__)

MAX_STOPS = 3

# Failure reasons
EMPTY_REQUEST = "empty_request"
MISSING_CREDENTIALS = "missing_credentials"
EMPTY_RESPONSE = "empty_response"
INVALID_RESPONSE = "invalid_response"
TRANSPORT_ERROR = "transport_error"


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ItinerarySuccess:
    itinerary: Itinerary
    ok = True


@dataclass(frozen=True)
class ItineraryFailure:
    reason: str
    detail: str = ""
    ok = False

    @property
    def itinerary(self) -> None:
        return None


ItineraryResult = Union[ItinerarySuccess, ItineraryFailure]


# ---------------------------------------------------------------------------
# Prompt + schema
# ---------------------------------------------------------------------------

SYSTEM_INSTRUCTION = f"""\
Sei il concierge digitale di "TerreFVG", la rete di aziende agricole del \
Friuli Venezia Giulia. Crea itinerari brevi, al massimo {MAX_STOPS} tappe, \
partendo dalla richiesta dell'utente. Scegli ESCLUSIVAMENTE aziende presenti \
nei dati forniti e usa il loro id. Per ogni tappa spiega in modo convincente \
perche' e' adatta proprio a questo utente."""

ITINERARY_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        "title": types.Schema(
            type=types.Type.STRING,
            description="Titolo accattivante dell'itinerario",
        ),
        "description": types.Schema(
            type=types.Type.STRING,
            description="Breve descrizione generale dell'esperienza",
        ),
        "steps": types.Schema(
            type=types.Type.ARRAY,
            items=types.Schema(
                type=types.Type.OBJECT,
                properties={
                    "farmId": types.Schema(
                        type=types.Type.STRING,
                        description="id dell'azienda scelta",
                    ),
                    "reason": types.Schema(
                        type=types.Type.STRING,
                        description="Perche' visitare questa tappa, riferito alla richiesta",
                    ),
                },
                required=["farmId", "reason"],
            ),
        ),
    },
    required=["title", "description", "steps"],
)


def build_prompt(user_request: str, farms: Sequence[FarmRecord]) -> str:
    """Catalog projection as compact JSON followed by the quoted request."""
    context = json.dumps(catalog_projection(farms), ensure_ascii=False, separators=(",", ":"))
    return (
        "Aziende disponibili (JSON):\n"
        f"{context}\n\n"
        f'Richiesta dell\'utente: "{user_request.strip()}"\n\n'
        "Rispondi con un itinerario JSON valido."
    )


def _generation_config() -> types.GenerateContentConfig:
    return types.GenerateContentConfig(
        system_instruction=SYSTEM_INSTRUCTION,
        response_mime_type="application/json",
        response_schema=ITINERARY_SCHEMA,
    )


def parse_itinerary(raw: str) -> Itinerary:
    """Validate a backend payload against the itinerary model.

    Raises pydantic.ValidationError when the payload is not a conforming
    JSON document.
    """
    return Itinerary.model_validate_json(raw)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def generate_itinerary(
    user_request: str,
    farms: Optional[Sequence[FarmRecord]] = None,
) -> ItineraryResult:
    """Ask the backend for an itinerary built from the farm catalog."""
    if not user_request or not user_request.strip():
        return ItineraryFailure(EMPTY_REQUEST)

    farms = FARMS if farms is None else farms

    try:
        client = get_client()
    except MissingCredentialsError:
        logger.error("API key is missing, cannot generate itinerary")
        return ItineraryFailure(MISSING_CREDENTIALS)

    try:
        response = client.models.generate_content(
            model=model_name(),
            contents=build_prompt(user_request, farms),
            config=_generation_config(),
        )
    except Exception as exc:
        logger.warning("Itinerary request failed: %s", exc)
        return ItineraryFailure(TRANSPORT_ERROR, str(exc))

    raw = response_text(response)
    if not raw:
        logger.warning("Itinerary response was empty")
        return ItineraryFailure(EMPTY_RESPONSE)

    try:
        itinerary = parse_itinerary(raw)
    except ValidationError as exc:
        logger.warning("Itinerary response did not match schema: %s", exc)
        return ItineraryFailure(INVALID_RESPONSE, raw[:200])

    if len(itinerary.steps) > MAX_STOPS:
        logger.warning(
            "Backend returned %d stops (asked for at most %d)",
            len(itinerary.steps), MAX_STOPS,
        )
    return ItinerarySuccess(itinerary)
