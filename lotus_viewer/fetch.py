"""Fetch keys and byte retrieval for the Background and Overlay volumes."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from http.client import HTTPException
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import urlopen

from . import config
from .errors import NetworkError
from .utils import format_number

LOGGER = logging.getLogger(__name__)

AsyncFetcher = Callable[[str], Awaitable[bytes]]


@dataclass(frozen=True)
class OverlayRequest:
    """All parameters that identify one overlay map upstream.

    Two requests with equal fields resolve to the same URL and are therefore
    interchangeable for caching purposes.
    """

    query: str
    voxel: float = 2.0
    fwhm: float = 10.0
    kernel: str = "gauss"
    radius: float = 6.0

    def params(self) -> dict:
        return {
            "voxel": format_number(self.voxel),
            "fwhm": format_number(self.fwhm),
            "kernel": str(self.kernel),
            "r": format_number(self.radius),
        }


def overlay_url(request: Optional[OverlayRequest], api_base: str = config.DEFAULT_API_BASE) -> str:
    """URL of the overlay map for *request*; empty when there is no query."""

    if request is None or not request.query:
        return ""
    base = api_base.rstrip("/")
    return f"{base}/query/{quote(request.query, safe='')}/nii?{urlencode(request.params())}"


def _is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def fetch_bytes(source: str, timeout: float = config.FETCH_TIMEOUT_S) -> bytes:
    """Return the bytes at *source* (http(s) URL or local path).

    Raises
    ------
    NetworkError
        On HTTP errors, unreachable hosts or unreadable files.
    """

    if not _is_url(source):
        try:
            return Path(source).read_bytes()
        except OSError as exc:
            raise NetworkError(f"GET {source} → {exc}") from exc

    try:
        with urlopen(source, timeout=timeout) as response:
            return response.read()
    except HTTPError as exc:
        try:
            body = exc.read().decode("utf-8", errors="replace")
        except OSError:
            body = ""
        raise NetworkError(f"GET {source} → {exc.code} {body}".rstrip()) from exc
    except (URLError, OSError) as exc:
        reason = getattr(exc, "reason", exc)
        raise NetworkError(f"GET {source} → {reason}") from exc
    except HTTPException as exc:
        # Truncated bodies and malformed responses are not OSErrors.
        raise NetworkError(f"GET {source} → {exc!r}") from exc


async def fetch_bytes_async(source: str) -> bytes:
    """Run :func:`fetch_bytes` in the default executor."""

    loop = asyncio.get_running_loop()
    LOGGER.info("Fetching %s", source)
    return await loop.run_in_executor(None, fetch_bytes, source)
