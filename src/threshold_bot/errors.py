"""
errors.py - Failure taxonomy for the threshold bot

Every failure the core can raise derives from BotError so the engine can catch
at the tick boundary without swallowing programming errors silently.

    BotError
    ├── ConfigError              fatal, raised before the loop starts
    ├── RemoteError              Jupiter returned a non-success response
    │   ├── RateLimited          HTTP 429, the only thing RetryPolicy retries
    │   ├── RateLimitExceeded    retries exhausted
    │   └── NotTradable          no route / token not tradable (skip signal)
    ├── TransactionError
    │   ├── SubmissionError      RPC rejected the raw transaction
    │   ├── OnChainFailure       tx landed but execution reported an error
    │   └── BlockhashExpired     validity window passed, outcome unknown
    ├── InsufficientBalance      nothing to trade (skip signal)
    └── AccountLayoutError       token-account bytes too short to decode
"""

from __future__ import annotations

from typing import Optional


class BotError(Exception):
    """Base class for every expected failure in the bot."""


class ConfigError(BotError):
    """Missing or invalid required setting."""


# =============================================================================
# REMOTE (JUPITER) FAILURES
# =============================================================================

class RemoteError(BotError):
    """Non-success response from the quote or swap-build service."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class RateLimited(RemoteError):
    """Remote answered 429."""


class RateLimitExceeded(RemoteError):
    """Still rate limited after the configured number of retries."""

    def __init__(self, operation: str, attempts: int):
        super().__init__(
            f"{operation}: rate limit exceeded after {attempts} attempts",
            status_code=429,
        )
        self.operation = operation
        self.attempts = attempts


class NotTradable(RemoteError):
    """No viable route exists for the pair. Callers skip the asset."""

    def __init__(self, input_mint: str, output_mint: str, detail: str = "", status_code: Optional[int] = None):
        super().__init__(
            f"not tradable: {input_mint} -> {output_mint} ({detail or 'no route'})",
            status_code=status_code,
            body=detail,
        )
        self.input_mint = input_mint
        self.output_mint = output_mint
        self.detail = detail


# =============================================================================
# TRANSACTION FAILURES
# =============================================================================

class TransactionError(BotError):
    """Base for failures after a swap plan was handed to the executor."""

    def __init__(self, message: str, signature: Optional[str] = None):
        super().__init__(message)
        self.signature = signature


class SubmissionError(TransactionError):
    """The network rejected the raw transaction (malformed, preflight failed)."""


class OnChainFailure(TransactionError):
    """The transaction landed but its execution result is an error."""

    def __init__(self, signature: str, detail: str):
        super().__init__(f"transaction {signature} failed on-chain: {detail}", signature=signature)
        self.detail = detail


class BlockhashExpired(TransactionError):
    """Confirmation window passed without a status. The tx may or may not have landed."""

    def __init__(self, signature: str, last_valid_block_height: int):
        super().__init__(
            f"transaction {signature} not confirmed before block height {last_valid_block_height}",
            signature=signature,
        )
        self.last_valid_block_height = last_valid_block_height


# =============================================================================
# SKIP SIGNALS / DECODING
# =============================================================================

class InsufficientBalance(BotError):
    """Wallet cannot cover the requested trade."""

    def __init__(self, asset: str, have: int, need: int):
        super().__init__(f"insufficient {asset}: have {have}, need {need}")
        self.asset = asset
        self.have = have
        self.need = need


class AccountLayoutError(BotError):
    """Raw token-account data does not match the expected layout."""


__all__ = [
    "BotError",
    "ConfigError",
    "RemoteError",
    "RateLimited",
    "RateLimitExceeded",
    "NotTradable",
    "TransactionError",
    "SubmissionError",
    "OnChainFailure",
    "BlockhashExpired",
    "InsufficientBalance",
    "AccountLayoutError",
]
