from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from urllib.parse import urlparse

import requests

from resumematch.errors import ValidationError

logger = logging.getLogger(__name__)


USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


@dataclass(slots=True)
class FetchedFile:
    content: bytes
    filename: str | None
    mime_type: str | None


def fetch_file(url: str, timeout_sec: int = 30, max_bytes: int | None = None) -> FetchedFile:
    try:
        response = requests.get(url, timeout=timeout_sec, headers={"User-Agent": USER_AGENT})
        response.raise_for_status()
    except requests.RequestException as exc:
        logger.warning("Failed to fetch file %s: %s", url, exc)
        raise ValidationError(f"Could not download {url}: {exc}") from exc

    content = response.content
    if max_bytes is not None and len(content) > max_bytes:
        raise ValidationError(f"File at {url} is larger than {max_bytes} bytes")

    mime_type = response.headers.get("Content-Type", "").split(";")[0].strip() or None
    filename = PurePosixPath(urlparse(url).path).name or None
    return FetchedFile(content=content, filename=filename, mime_type=mime_type)
