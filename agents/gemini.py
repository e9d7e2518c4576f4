"""
Shared access to the Gemini generative-language backend.

Configuration is read lazily so that dotenv has loaded by the time a
request is made:
    GEMINI_API_KEY (or API_KEY)   backend credential
    GEMINI_MODEL                  model name, default gemini-2.5-flash
    GEMINI_TIMEOUT_MS             per-request timeout, default 30000
"""

from __future__ import annotations

import logging
import os
import threading

from google import genai
from google.genai import types

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"

_clients: dict[tuple[str, int], genai.Client] = {}
_clients_lock = threading.Lock()


class MissingCredentialsError(RuntimeError):
    """No backend credential is configured."""


def get_api_key() -> str:
    return os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY", "")


def has_credentials() -> bool:
    return bool(get_api_key())


def model_name() -> str:
    return os.getenv("GEMINI_MODEL", DEFAULT_MODEL)


def _timeout_ms() -> int:
    try:
        return int(os.getenv("GEMINI_TIMEOUT_MS", "30000"))
    except ValueError:
        return 30000


def get_client() -> genai.Client:
    """Return a cached client for the configured credential."""
    api_key = get_api_key()
    if not api_key:
        raise MissingCredentialsError("GEMINI_API_KEY is not set")

    key = (api_key, _timeout_ms())
    with _clients_lock:
        client = _clients.get(key)
        if client is None:
            logger.debug("Creating Gemini client (timeout=%sms)", key[1])
            client = genai.Client(
                api_key=api_key,
                http_options=types.HttpOptions(timeout=key[1]),
            )
            _clients[key] = client
    return client


def response_text(response) -> str:
    """Text of a generate_content response, empty when there is none."""
    if response is None:
        return ""
    try:
        text = response.text
    except (AttributeError, ValueError):
        text = None
    return (text or "").strip()
