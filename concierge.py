"""
Concierge chat session - turns chat input into itineraries and directions.

The transcript is an append-only log. Backend work runs on a small thread
pool; each job appends its own reply when it finishes, but only if the
session generation it was started under is still current. close() bumps the
generation, so replies arriving after the chat was closed are dropped.
"""
from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional

from FarmInfo import Itinerary
from farm_data import FARMS, get_farm

try:
    from agents.ConciergeAgent import MISSING_CREDENTIALS, TRANSPORT_ERROR, generate_itinerary
    from agents.LocationAgent import DENIED, NOT_FOUND, UNSUPPORTED, locate
    from agents.RouteAgent import TravelAdvice, get_travel_advice, maps_directions_url
except ImportError:
    from ConciergeAgent import MISSING_CREDENTIALS, TRANSPORT_ERROR, generate_itinerary  # type: ignore
    from LocationAgent import DENIED, NOT_FOUND, UNSUPPORTED, locate  # type: ignore
    from RouteAgent import TravelAdvice, get_travel_advice, maps_directions_url  # type: ignore

logger = logging.getLogger(__name__)

USER = "user"
BOT = "bot"

WELCOME = (
    "Ciao! Sono la tua guida digitale per TerreFVG. Cosa ti piacerebbe fare oggi? "
    "Posso suggerirti percorsi per vini, formaggi, relax o gite in famiglia."
)
NO_ITINERARY = (
    "L'IA non è riuscita a generare un itinerario specifico. "
    "Prova a riformulare la richiesta."
)
CONNECTION_ERROR = "Si è verificato un errore di connessione."
NOT_CONFIGURED = "Il concierge non è configurato: manca la chiave API."
DIRECTIONS_REQUEST = "Calcola il percorso dalla mia posizione utilizzando Google Maps."
GEO_UNSUPPORTED = "Mi dispiace, non ho ricevuto nessuna posizione di partenza."
GEO_DENIED = "Non sono riuscito ad accedere alla tua posizione. Verifica i permessi."
GEO_NOT_FOUND = "Non ho trovato il luogo indicato. Prova con un indirizzo o con le coordinate."
GEO_UNAVAILABLE = "Il servizio di localizzazione non risponde. Riprova tra poco."
NO_STEPS = "Questo itinerario non ha tappe da raggiungere."
ADVICE_ERROR = "Non sono riuscito a calcolare i consigli di viaggio al momento."

SUGGESTIONS = [
    ("🍷 Vino e Formaggio", "Voglio assaggiare vini rossi e formaggi forti"),
    ("👨‍👩‍👧‍👦 Famiglia", "Gita domenicale con bambini, miele e animali"),
    ("🛍️ Shopping", "Shopping gastronomico veloce"),
]


@dataclass(frozen=True)
class ChatMessage:
    id: str
    role: str
    text: str
    itinerary: Optional[Itinerary] = None
    advice: Optional[TravelAdvice] = None
    directions_url: Optional[str] = None


def _message_id() -> str:
    return uuid.uuid4().hex[:8]


class ConciergeSession:
    def __init__(self, farms=FARMS, executor: Optional[ThreadPoolExecutor] = None):
        self.farms = tuple(farms)
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(max_workers=2)
        self.generation = 0
        self.last_itinerary: Optional[Itinerary] = None
        self._messages: List[ChatMessage] = [ChatMessage(_message_id(), BOT, WELCOME)]
        self._lock = threading.Lock()
        self._pending = 0

    # -- transcript -----------------------------------------------------------

    @property
    def messages(self) -> List[ChatMessage]:
        with self._lock:
            return list(self._messages)

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._pending > 0

    def show_suggestions(self) -> bool:
        """Prompt chips are offered until the conversation starts."""
        return len(self.messages) == 1

    def _append(self, role, text, **extra) -> ChatMessage:
        message = ChatMessage(_message_id(), role, text, **extra)
        with self._lock:
            self._messages.append(message)
        return message

    def _deliver(self, generation, text, **extra) -> Optional[ChatMessage]:
        with self._lock:
            if generation != self.generation:
                logger.debug("Dropping reply from closed concierge generation %d", generation)
                return None
            message = ChatMessage(_message_id(), BOT, text, **extra)
            self._messages.append(message)
            return message

    def _submit(self, job, *args) -> Future:
        with self._lock:
            self._pending += 1
            generation = self.generation

        def run():
            try:
                return job(generation, *args)
            finally:
                with self._lock:
                    self._pending -= 1

        return self.executor.submit(run)

    # -- itinerary ------------------------------------------------------------

    def ask(self, text: str) -> Optional[Future]:
        """Send a request to the concierge; None when the input is blank."""
        if not text or not text.strip():
            return None
        self._append(USER, text.strip())
        self.last_itinerary = None
        return self._submit(self._itinerary_job, text.strip())

    def _itinerary_job(self, generation, text):
        try:
            result = generate_itinerary(text, self.farms)
        except Exception as exc:
            logger.warning("Itinerary request failed: %s", exc)
            return self._deliver(generation, CONNECTION_ERROR)

        if not result.ok:
            if result.reason == MISSING_CREDENTIALS:
                reply = NOT_CONFIGURED
            elif result.reason == TRANSPORT_ERROR:
                reply = CONNECTION_ERROR
            else:
                reply = NO_ITINERARY
            return self._deliver(generation, reply)

        itinerary = result.itinerary
        message = self._deliver(
            generation,
            f"Ho creato un itinerario perfetto per te: {itinerary.title}.",
            itinerary=itinerary,
        )
        if message is not None:
            self.last_itinerary = itinerary
        return message

    def describe_step(self, farm_id: str) -> str:
        farm = get_farm(farm_id, self.farms)
        return farm.name if farm else f"Azienda (ID: {farm_id})"

    # -- directions -----------------------------------------------------------

    def directions(self, itinerary: Itinerary, location_query: str) -> Optional[Future]:
        """Travel advice from the user's position to the itinerary's first stop."""
        if not location_query or not location_query.strip():
            self._append(BOT, GEO_UNSUPPORTED)
            return None
        self._append(USER, DIRECTIONS_REQUEST)
        return self._submit(self._directions_job, itinerary, location_query.strip())

    def _directions_job(self, generation, itinerary, location_query):
        try:
            position = locate(location_query)
            if not position.ok:
                reply = {
                    DENIED: GEO_DENIED,
                    UNSUPPORTED: GEO_UNSUPPORTED,
                    NOT_FOUND: GEO_NOT_FOUND,
                }.get(position.status, GEO_UNAVAILABLE)
                return self._deliver(generation, reply)

            if not itinerary.steps:
                return self._deliver(generation, NO_STEPS)

            first = itinerary.steps[0]
            advice = get_travel_advice(position.lat, position.lng, first.farm_id, self.farms)
            farm = get_farm(first.farm_id, self.farms)
            url = maps_directions_url(position.lat, position.lng, farm) if farm else None
            return self._deliver(generation, advice.text, advice=advice, directions_url=url)
        except Exception as exc:
            logger.warning("Directions request failed: %s", exc)
            return self._deliver(generation, ADVICE_ERROR)

    # -- lifecycle ------------------------------------------------------------

    def close(self) -> None:
        """Invalidate in-flight replies and release a session-owned pool.

        The transcript stays as it is.
        """
        with self._lock:
            self.generation += 1
        if self._owns_executor:
            self.executor.shutdown(wait=False)
