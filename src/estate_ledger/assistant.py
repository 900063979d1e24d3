"""Text generation for agreement clauses and free-form sales questions.

The language model sits behind the small :class:`TextGenerator` protocol so the
rest of the package never depends on a particular provider. The helper
functions at the bottom always return text: a missing API key, a transport
failure, or an unusable response becomes a message for the user instead of an
exception.
"""

from __future__ import annotations

import json
import os
from typing import Any, Dict, List, Mapping, Optional, Protocol, Union

import requests

from . import log
from .data_manager import (
    ConfigSettings,
    Snapshot,
    serialize_developer,
    serialize_payment,
    serialize_sale,
)

GEMINI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

MISSING_KEY_CLAUSE = "API Key missing. Cannot generate text."
MISSING_KEY_ANALYSIS = "API Key missing."
CLAUSE_ERROR = "Error generating content. Please try again."
ANALYSIS_ERROR = "Error analyzing data."
EMPTY_CLAUSE = "Could not generate clause."
EMPTY_ANALYSIS = "No analysis generated."


class AssistantError(Exception):
    """Raised by a text generator when no usable text could be produced."""


class TextGenerator(Protocol):
    def generate(self, prompt: str) -> str:
        ...


class GeminiTextGenerator:
    """Calls the Gemini ``generateContent`` REST endpoint with ``requests``."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "gemini-2.5-flash",
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()

    def generate(self, prompt: str) -> str:
        """Send ``prompt`` and return the concatenated text of the first candidate.

        Raises:
            AssistantError: On transport failures, non-200 responses, and
                responses without candidate text.
        """
        try:
            response = self.session.post(
                GEMINI_ENDPOINT.format(model=self.model),
                headers={"x-goog-api-key": self.api_key},
                json={"contents": [{"parts": [{"text": prompt}]}]},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise AssistantError(f"Request to {self.model} failed: {exc}") from exc

        if response.status_code != 200:
            raise AssistantError(f"{self.model} returned HTTP {response.status_code}")

        try:
            payload = response.json()
            parts = payload["candidates"][0]["content"]["parts"]
            return "".join(part.get("text", "") for part in parts)
        except (ValueError, KeyError, IndexError, TypeError, AttributeError) as exc:
            raise AssistantError(f"Malformed response from {self.model}: {exc}") from exc


def build_text_generator(
    settings: ConfigSettings,
    environ: Optional[Mapping[str, str]] = None,
) -> Optional[GeminiTextGenerator]:
    """Create a generator when the configured API key variable is set."""

    environ = os.environ if environ is None else environ
    api_key = environ.get(settings.api_key_env, "")
    if not api_key:
        log.warning("Environment variable '%s' is not set; text generation disabled", settings.api_key_env)
        return None
    return GeminiTextGenerator(
        api_key,
        model=settings.assistant_model,
        timeout=settings.assistant_timeout,
    )


def _generate(generator: TextGenerator, prompt: str) -> Optional[str]:
    # Callers only ever see fallback strings, whatever the generator raises.
    try:
        return generator.generate(prompt)
    except Exception:
        log.exception("Text generation failed")
        return None


def generate_agreement_clause(generator: Optional[TextGenerator], requirement: str) -> str:
    """Draft a formal contract clause for ``requirement``."""

    if generator is None:
        return MISSING_KEY_CLAUSE
    prompt = (
        "Draft a legal clause for a real estate sales agreement based on the following requirement. "
        f'Keep it formal, precise, and suitable for a contract: "{requirement}"'
    )
    text = _generate(generator, prompt)
    if text is None:
        return CLAUSE_ERROR
    return text or EMPTY_CLAUSE


def sales_data_payload(snapshot: Snapshot) -> Dict[str, List[Dict[str, Any]]]:
    """Serialize the sales, developers, and payments quoted by analysis prompts."""

    return {
        "sales": [serialize_sale(sale) for sale in snapshot.sales],
        "developers": [serialize_developer(developer) for developer in snapshot.developers],
        "payments": [serialize_payment(payment) for payment in snapshot.payments],
    }


def analyze_sales_data(
    generator: Optional[TextGenerator],
    query: str,
    data: Union[Snapshot, Mapping[str, Any]],
    *,
    agency_name: str = "Estate Ledger",
) -> str:
    """Answer ``query`` from a snapshot or a payload built by :func:`sales_data_payload`."""

    if generator is None:
        return MISSING_KEY_ANALYSIS
    if isinstance(data, Snapshot):
        data = sales_data_payload(data)
    prompt = (
        f'You are an intelligent data analyst for a real estate company called "{agency_name}".\n\n'
        f"Here is the current database in JSON format:\n{json.dumps(data)}\n\n"
        f'Please answer the following question from the user based strictly on this data:\n"{query}"\n\n'
        "Provide a concise summary. Use markdown for formatting tables or lists if needed."
    )
    text = _generate(generator, prompt)
    if text is None:
        return ANALYSIS_ERROR
    return text or EMPTY_ANALYSIS
