"""
jupiter_client.py - Jupiter quote (QuoteOracle) and swap-build (SwapPlanner) client

Policy:
1. JUPITER ROUTES - Jupiter picks the route. We sign and send. No manual routing.
2. TRADE-SIZED QUOTES - Quotes are requested at the real trade size so the
   implied price includes the impact of actually executing.
3. TYPED FAILURES - HTTP status and error payloads are classified once, here.
   Callers switch on the exception type, never on message text.

Status mapping:
    2xx                          -> parsed result
    429                          -> RateLimited (retried by RetryPolicy)
    no-route / not-tradable body -> NotTradable
    anything else                -> RemoteError
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

import httpx
from loguru import logger

from ...errors import NotTradable, RateLimited, RemoteError
from .retry import RetryPolicy


# Jupiter errorCode values that mean "there is no way to trade this"
NOT_TRADABLE_CODES = frozenset({
    "COULD_NOT_FIND_ANY_ROUTE",
    "NO_ROUTES_FOUND",
    "ROUTE_NOT_FOUND",
    "TOKEN_NOT_TRADABLE",
    "NOT_SUPPORTED",
    "CIRCULAR_ARBITRAGE_IS_DISABLED",
})

NOT_TRADABLE_PHRASES = (
    "no route",
    "route not found",
    "could not find any route",
    "not tradable",
    "liquidity",
)


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass(frozen=True)
class Quote:
    """A trade-sized quote. Immutable; consumed at most once by plan_swap()."""
    input_mint: str
    output_mint: str
    in_amount: int
    out_amount: int
    slippage_bps: int
    price_impact_pct: str
    route_plan: Tuple[Any, ...]
    raw: Mapping[str, Any] = field(repr=False, compare=False)

    @classmethod
    def from_response(cls, data: Mapping[str, Any]) -> "Quote":
        try:
            return cls(
                input_mint=str(data["inputMint"]),
                output_mint=str(data["outputMint"]),
                in_amount=int(data["inAmount"]),
                out_amount=int(data["outAmount"]),
                slippage_bps=int(data.get("slippageBps", 0)),
                price_impact_pct=str(data.get("priceImpactPct", "0")),
                route_plan=tuple(data["routePlan"]),
                raw=dict(data),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise RemoteError(f"invalid quote response: {type(e).__name__}: {e}") from e


@dataclass(frozen=True)
class SwapPlan:
    """Unsigned swap transaction. Valid until last_valid_block_height passes."""
    swap_transaction: bytes = field(repr=False)
    last_valid_block_height: int
    prioritization_fee_lamports: Optional[int] = None


# =============================================================================
# CLIENT
# =============================================================================

class JupiterClient:
    """
    Jupiter HTTP client.

    get_quote()  - QuoteOracle
    plan_swap()  - SwapPlanner
    Both run through the same RetryPolicy.
    """

    REQUIRED_QUOTE_FIELDS = ("inputMint", "outputMint", "inAmount", "outAmount", "routePlan")
    REQUIRED_SWAP_FIELDS = ("swapTransaction", "lastValidBlockHeight")

    def __init__(
        self,
        base_url: str,
        http_timeout: float = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.http_timeout = http_timeout
        self.retry = retry_policy or RetryPolicy()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.http_timeout, transport=self._transport)
        return self._client

    async def close(self):
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # =========================================================================
    # QUOTE
    # =========================================================================

    async def get_quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int,
    ) -> Quote:
        """
        Get a trade-sized quote.

        Args:
            input_mint: Input token mint address
            output_mint: Output token mint address
            amount: Amount in the input token's smallest unit (> 0)
            slippage_bps: Slippage tolerance in basis points

        Raises:
            NotTradable, RateLimitExceeded, RemoteError
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValueError(f"amount must be a positive integer, got {amount!r}")

        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(amount),
            "slippageBps": str(slippage_bps),
            "onlyDirectRoutes": "false",
            "asLegacyTransaction": "false",
            "restrictIntermediateTokens": "true",
        }

        async def _once() -> Quote:
            client = await self._get_client()
            logger.debug(f"JUPITER_QUOTE | request | {input_mint[:8]}->{output_mint[:8]} | amount={amount}")
            try:
                resp = await client.get(f"{self.base_url}/quote", params=params)
            except httpx.TimeoutException as e:
                raise RemoteError(f"quote timeout: {e}") from e
            except httpx.HTTPError as e:
                raise RemoteError(f"quote transport error: {type(e).__name__}: {e}") from e

            data = self._check_response(resp, "quote", input_mint, output_mint)
            missing = [f for f in self.REQUIRED_QUOTE_FIELDS if f not in data]
            if missing:
                raise RemoteError(f"invalid quote response, missing fields: {missing}")

            quote = Quote.from_response(data)
            logger.debug(
                f"JUPITER_QUOTE | success | in={quote.in_amount} out={quote.out_amount} "
                f"| impact={quote.price_impact_pct}%"
            )
            return quote

        return await self.retry.call("JUPITER_QUOTE", _once)

    # =========================================================================
    # SWAP BUILD
    # =========================================================================

    @staticmethod
    def build_swap_request(
        quote: Quote,
        user_pubkey: str,
        priority_fee_lamports: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Swap-build body.

        Dynamic slippage is capped at the quote's own slippage. The priority fee
        field is omitted entirely when no ceiling is set (None or 0).
        """
        payload: Dict[str, Any] = {
            "quoteResponse": dict(quote.raw),
            "userPublicKey": user_pubkey,
            "dynamicComputeUnitLimit": True,
            "dynamicSlippage": {"maxBps": quote.slippage_bps},
        }
        if priority_fee_lamports:
            payload["prioritizationFeeLamports"] = {
                "priorityLevelWithMaxLamports": {
                    "maxLamports": int(priority_fee_lamports),
                    "priorityLevel": "veryHigh",
                },
            }
        return payload

    async def plan_swap(
        self,
        quote: Quote,
        user_pubkey: str,
        priority_fee_lamports: Optional[int] = None,
    ) -> SwapPlan:
        """
        Turn an accepted quote into an unsigned swap transaction.

        Raises:
            RateLimitExceeded, RemoteError
        """
        payload = self.build_swap_request(quote, user_pubkey, priority_fee_lamports)

        async def _once() -> SwapPlan:
            client = await self._get_client()
            try:
                resp = await client.post(f"{self.base_url}/swap", json=payload)
            except httpx.TimeoutException as e:
                raise RemoteError(f"swap timeout: {e}") from e
            except httpx.HTTPError as e:
                raise RemoteError(f"swap transport error: {type(e).__name__}: {e}") from e

            data = self._check_response(resp, "swap", quote.input_mint, quote.output_mint)
            missing = [f for f in self.REQUIRED_SWAP_FIELDS if f not in data]
            if missing:
                raise RemoteError(f"invalid swap response, missing fields: {missing}")

            try:
                tx_bytes = base64.b64decode(data["swapTransaction"], validate=True)
                last_valid = int(data["lastValidBlockHeight"])
            except (binascii.Error, TypeError, ValueError) as e:
                raise RemoteError(f"invalid swap response: {type(e).__name__}: {e}") from e

            fee = data.get("prioritizationFeeLamports")
            logger.debug(
                f"JUPITER_SWAP | success | tx_size={len(tx_bytes)} bytes "
                f"| last_valid_block_height={last_valid} | priority={fee if fee is not None else 'n/a'}"
            )
            return SwapPlan(
                swap_transaction=tx_bytes,
                last_valid_block_height=last_valid,
                prioritization_fee_lamports=int(fee) if fee is not None else None,
            )

        return await self.retry.call("JUPITER_SWAP", _once)

    # =========================================================================
    # RESPONSE CLASSIFICATION
    # =========================================================================

    @staticmethod
    def _check_response(resp: httpx.Response, what: str, input_mint: str, output_mint: str) -> Dict[str, Any]:
        if resp.status_code == 429:
            raise RateLimited(f"{what}: rate limited", status_code=429, body=resp.text)

        if not resp.is_success:
            body = resp.text
            error_code, message = _extract_error(resp)
            if _is_not_tradable(error_code, message or body):
                logger.warning(
                    f"JUPITER_{what.upper()} | not tradable | {input_mint[:8]}->{output_mint[:8]} "
                    f"| code={error_code or '-'} | {message or body[:200]}"
                )
                raise NotTradable(input_mint, output_mint, detail=message or body[:200], status_code=resp.status_code)
            raise RemoteError(
                f"{what} failed: {resp.status_code} {resp.reason_phrase} - {body[:500]}",
                status_code=resp.status_code,
                body=body,
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise RemoteError(f"{what}: response is not JSON") from e
        if not isinstance(data, dict):
            raise RemoteError(f"{what}: unexpected response type {type(data).__name__}")
        return data


def _extract_error(resp: httpx.Response) -> Tuple[Optional[str], str]:
    try:
        data = resp.json()
    except ValueError:
        return None, ""
    if not isinstance(data, dict):
        return None, ""
    code = data.get("errorCode")
    message = data.get("error") or data.get("message") or ""
    return (str(code) if code else None), str(message)


def _is_not_tradable(error_code: Optional[str], text: str) -> bool:
    if error_code and error_code.upper() in NOT_TRADABLE_CODES:
        return True
    lowered = text.lower()
    return any(phrase in lowered for phrase in NOT_TRADABLE_PHRASES)


__all__ = ["JupiterClient", "Quote", "SwapPlan", "NOT_TRADABLE_CODES"]
