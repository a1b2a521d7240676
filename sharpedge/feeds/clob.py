"""
Polymarket CLOB batch price client.

Endpoints:
- POST /prices   body [{"token_id", "side"}] -> {token_id: {"BUY": p, "SELL": p}}
- POST /spreads  body [{"token_id"}]         -> {token_id: spread}

BUY is the best bid (what buyers are bidding), SELL the best ask.
Token ids are chunked to the provider's request-size ceiling and chunks
run a few at a time. A failing chunk is logged and skipped, and tokens the
provider did not quote are left out, so callers keep whatever prices they
already had for those tokens.
"""

import asyncio
from typing import Optional

import httpx
import orjson
import structlog

from config.settings import ClobSettings
from sharpedge.models.schemas import TokenPrice, is_valid_number

logger = structlog.get_logger()


def chunked(items: list[str], size: int) -> list[list[str]]:
    size = max(1, size)
    return [items[i:i + size] for i in range(0, len(items), size)]


def _to_price(value) -> Optional[float]:
    """CLOB prices arrive as strings; anything non-numeric is None."""
    if value is None:
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    return price if is_valid_number(price) else None


class ClobPriceClient:
    """
    Batch best bid/ask and spread fetcher.

    Usage:
        clob = ClobPriceClient(settings.clob, http_client)
        prices = await clob.get_prices(["123", "456"])
    """

    def __init__(
        self,
        config: ClobSettings,
        client: httpx.AsyncClient,
    ):
        self.config = config
        self.logger = logger.bind(feed="clob")

        self._http_client = client
        self._semaphore = asyncio.Semaphore(max(1, config.max_concurrent_chunks))

        self.requests_made = 0
        self.failed_chunks = 0

    async def _post(self, endpoint: str, body: list[dict]) -> dict:
        self.requests_made += 1
        response = await self._http_client.post(
            f"{self.config.api_url.rstrip('/')}{endpoint}",
            content=orjson.dumps(body),
            headers={"Content-Type": "application/json"},
        )
        response.raise_for_status()
        data = orjson.loads(response.content)
        if not isinstance(data, dict):
            raise ValueError(f"unexpected {endpoint} payload: {type(data).__name__}")
        return data

    async def _fetch_chunk(self, token_ids: list[str]) -> dict[str, TokenPrice]:
        async with self._semaphore:
            try:
                prices, spreads = await asyncio.gather(
                    self._post(
                        "/prices",
                        [{"token_id": t, "side": side} for t in token_ids for side in ("BUY", "SELL")],
                    ),
                    self._post("/spreads", [{"token_id": t} for t in token_ids]),
                )
            except (httpx.HTTPError, ValueError) as e:
                self.failed_chunks += 1
                self.logger.warning(
                    "Price chunk failed, keeping stale prices",
                    tokens=len(token_ids),
                    error=str(e),
                )
                return {}

        results = {}
        for token_id in token_ids:
            quote = prices.get(token_id) or {}
            if not isinstance(quote, dict):
                quote = {}
            best_bid = _to_price(quote.get("BUY"))
            best_ask = _to_price(quote.get("SELL"))
            if best_bid is None and best_ask is None:
                continue
            results[token_id] = TokenPrice(
                token_id=token_id,
                best_bid=best_bid,
                best_ask=best_ask,
                spread=_to_price(spreads.get(token_id)),
            )
        return results

    async def get_prices(self, token_ids: list[str]) -> dict[str, TokenPrice]:
        """
        Fetch best bid/ask/spread for many tokens.

        Returns:
            token_id -> TokenPrice for every quoted token in a successful chunk
        """
        unique = list(dict.fromkeys(t for t in token_ids if t))
        if not unique:
            return {}

        chunks = chunked(unique, self.config.chunk_size)
        results = await asyncio.gather(*(self._fetch_chunk(chunk) for chunk in chunks))

        merged: dict[str, TokenPrice] = {}
        for chunk_result in results:
            merged.update(chunk_result)

        self.logger.debug(
            "Fetched prices",
            tokens=len(unique),
            chunks=len(chunks),
            priced=len(merged),
            requests_made=self.requests_made,
        )
        return merged
