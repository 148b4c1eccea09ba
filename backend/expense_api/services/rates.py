"""Exchange-rate proxy.

Providers are tried in order and the first one returning a usable rates map
wins. The keyed provider is only tried when an API key is configured. Each
upstream call has its own timeout, and a timeout, transport error, non-2xx
status, non-JSON body or unrecognised shape all count as "unusable".
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from expense_api.core.errors import UpstreamError
from expense_api.models.rates import RatesResponse

logger = logging.getLogger(__name__)

DEFAULT_BASE = "USD"


@dataclass(frozen=True)
class RateProvider:
    name: str
    url: Callable[[str], str]
    get_rates: Callable[[dict[str, Any]], Any]
    get_base: Callable[[dict[str, Any]], Any]


def keyed_provider(api_key: str) -> RateProvider:
    return RateProvider(
        name="exchangerate-api",
        url=lambda base: f"https://v6.exchangerate-api.com/v6/{quote(api_key, safe='')}/latest/{quote(base, safe='')}",
        get_rates=lambda p: p.get("conversion_rates"),
        get_base=lambda p: p.get("base_code"),
    )


FALLBACK_PROVIDERS: tuple[RateProvider, ...] = (
    RateProvider(
        name="exchangerate.host",
        url=lambda base: f"https://api.exchangerate.host/latest?base={quote(base, safe='')}",
        get_rates=lambda p: p.get("rates"),
        get_base=lambda p: p.get("base"),
    ),
    RateProvider(
        name="open.er-api",
        url=lambda base: f"https://open.er-api.com/v6/latest/{quote(base, safe='')}",
        get_rates=lambda p: p.get("rates") or p.get("conversion_rates"),
        get_base=lambda p: p.get("base_code") or p.get("base"),
    ),
    RateProvider(
        name="exchangerate-api-v4",
        url=lambda base: f"https://api.exchangerate-api.com/v4/latest/{quote(base, safe='')}",
        get_rates=lambda p: p.get("rates") or p.get("conversion_rates"),
        get_base=lambda p: p.get("base") or p.get("base_code"),
    ),
)


def normalize_base(base: str | None) -> str:
    cleaned = (base or "").strip().upper()
    return cleaned or DEFAULT_BASE


def coerce_rates(raw: Any) -> dict[str, float] | None:
    if not isinstance(raw, dict) or not raw:
        return None
    rates: dict[str, float] = {}
    for code, value in raw.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        rates[str(code).upper()] = float(value)
    return rates or None


class RatesService:
    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str = "",
        timeout: float = 5.0,
        fallbacks: tuple[RateProvider, ...] = FALLBACK_PROVIDERS,
    ) -> None:
        self._http = http
        self._timeout = timeout
        self._providers = ((keyed_provider(api_key),) if api_key else ()) + tuple(fallbacks)

    @property
    def provider_names(self) -> list[str]:
        return [p.name for p in self._providers]

    async def _fetch_json(self, provider: RateProvider, base: str) -> dict[str, Any] | None:
        try:
            resp = await self._http.get(provider.url(base), timeout=self._timeout)
        except httpx.TimeoutException:
            logger.warning("Rates provider %s timed out after %.1fs", provider.name, self._timeout)
            return None
        except httpx.HTTPError as exc:
            logger.warning("Rates provider %s request failed: %s", provider.name, exc)
            return None
        if not resp.is_success:
            logger.warning("Rates provider %s returned HTTP %s", provider.name, resp.status_code)
            return None
        try:
            payload = resp.json()
        except ValueError:
            logger.warning("Rates provider %s returned non-JSON body: %.200s", provider.name, resp.text)
            return None
        if not isinstance(payload, dict):
            logger.warning("Rates provider %s returned unexpected JSON type %s", provider.name, type(payload).__name__)
            return None
        return payload

    async def get_rates(self, base: str | None = None) -> RatesResponse:
        base = normalize_base(base)
        for provider in self._providers:
            payload = await self._fetch_json(provider, base)
            if payload is None:
                continue
            rates = coerce_rates(provider.get_rates(payload))
            if rates is None:
                logger.warning("Rates provider %s returned JSON without rates: %.400s", provider.name, payload)
                continue
            reported_base = provider.get_base(payload)
            return RatesResponse(
                rates=rates,
                ts=int(time.time() * 1000),
                base=str(reported_base).upper() if reported_base else base,
                provider=provider.name,
            )

        logger.error("Rates proxy: all upstreams failed for base=%s, tried=%s", base, self.provider_names)
        raise UpstreamError(details=f"Tried providers: {', '.join(self.provider_names) or 'none'}")
