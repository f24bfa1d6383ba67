from __future__ import annotations

import logging
from typing import Any, Protocol

import requests

from resumematch.config import Settings
from resumematch.types import ConversionPayload

logger = logging.getLogger(__name__)


class DocumentConverter(Protocol):
    """External document-to-markdown capability."""

    @property
    def available(self) -> bool: ...

    def to_markdown(self, *, name: str, content: bytes, mime_type: str) -> list[ConversionPayload]: ...


class UnavailableConverter:
    available = False

    def __init__(self, reason: str = "document conversion is not configured"):
        self.reason = reason

    def to_markdown(self, *, name: str, content: bytes, mime_type: str) -> list[ConversionPayload]:
        raise RuntimeError(self.reason)


class HttpDocumentConverter:
    """Posts the file to a conversion endpoint that answers with markdown.

    Accepted bodies: a list of items, a single item, or ``{"result": [...]}``.
    """

    available = True

    def __init__(self, *, url: str, api_key: str = "", timeout_sec: int = 60):
        self.url = url
        self.api_key = api_key
        self.timeout_sec = timeout_sec

    def to_markdown(self, *, name: str, content: bytes, mime_type: str) -> list[ConversionPayload]:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        response = requests.post(
            self.url,
            files={"file": (name, content, mime_type)},
            headers=headers,
            timeout=self.timeout_sec,
        )
        response.raise_for_status()
        return payloads_from_json(response.json())


def payloads_from_json(body: Any) -> list[ConversionPayload]:
    if isinstance(body, dict) and isinstance(body.get("result"), list | dict):
        body = body["result"]
    if isinstance(body, dict):
        body = [body]
    if not isinstance(body, list):
        return []

    payloads: list[ConversionPayload] = []
    for item in body:
        if not isinstance(item, dict):
            continue
        payloads.append(
            ConversionPayload(
                name=str(item.get("name", "")),
                markdown=item.get("markdown") if isinstance(item.get("markdown"), str) else None,
                data=item.get("data") if isinstance(item.get("data"), str) else None,
            )
        )
    return payloads


def normalize_conversion(payloads: list[ConversionPayload] | None) -> str | None:
    """Return the markdown of the first payload, whichever field carries it."""
    if not payloads:
        return None
    first = payloads[0]
    content = first.markdown or first.data
    if content is None or not content.strip():
        return None
    return content


def build_converter(settings: Settings) -> DocumentConverter:
    if not settings.conversion_api_url:
        logger.info("No conversion endpoint configured; PDF/DOCX use local extraction only")
        return UnavailableConverter()
    return HttpDocumentConverter(
        url=settings.conversion_api_url,
        api_key=settings.conversion_api_key,
        timeout_sec=settings.conversion_timeout_sec,
    )
