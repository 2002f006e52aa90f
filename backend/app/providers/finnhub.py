from __future__ import annotations

import json
import logging
import math
import socket
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from app.config.settings import settings

logger = logging.getLogger(__name__)

_QUOTE_PATH = "/quote"
_DEFAULT_TIMEOUT = 8.0


def _build_url(base_url: str, path: str, params: dict[str, str]) -> str:
    return f"{base_url.rstrip('/')}{path}?{urlencode(params)}"


def has_usable_price(payload: dict) -> bool:
    price = payload.get("c")
    if isinstance(price, bool) or not isinstance(price, (int, float)):
        return False
    # json.loads accepts NaN and Infinity.
    if not math.isfinite(price):
        return False
    # Finnhub answers unknown symbols with c=0 rather than an error.
    return price != 0


def fetch_quote(
    symbol: str,
    api_key: str,
    *,
    base_url: str | None = None,
    timeout: float = _DEFAULT_TIMEOUT,
) -> dict | None:
    """Fetch a single Finnhub quote.

    Returns the decoded quote object (``c`` current price, ``dp`` percent
    change, ...) or ``None`` when the request failed or the response carries
    no usable price. Never raises.
    """
    url = _build_url(
        base_url or settings.finnhub_base_url,
        _QUOTE_PATH,
        {"symbol": symbol, "token": api_key},
    )
    request = Request(url, headers={"Accept": "application/json"})
    try:
        with urlopen(request, timeout=timeout) as response:
            body = response.read().decode("utf-8")
        payload = json.loads(body)
    except HTTPError as exc:
        reason = "rate limited" if exc.code == 429 else f"HTTP {exc.code}"
        logger.warning("Finnhub quote for %s failed: %s", symbol, reason)
        return None
    except (
        URLError,
        json.JSONDecodeError,
        UnicodeDecodeError,
        TimeoutError,
        socket.timeout,
        OSError,
    ) as exc:
        logger.warning("Finnhub quote for %s failed: %s", symbol, exc)
        return None

    if not isinstance(payload, dict):
        logger.warning("Finnhub quote for %s returned a non-object body", symbol)
        return None

    # A quote without a price counts as a failed lookup, which sends the
    # whole snapshot to the fallback path.
    if not has_usable_price(payload):
        logger.warning("Finnhub quote for %s has no usable price", symbol)
        return None

    return payload
