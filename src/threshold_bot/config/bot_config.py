"""
bot_config.py - Boot-time configuration for the threshold bot

Core Principles:
1. FAIL CLOSED - A missing or malformed setting raises ConfigError. No guessing.
2. NO ENV READS AFTER BOOT - Load .env once, build frozen config, never read env again.
3. BASE58 ONLY - Private key must be base58 that decodes to exactly 64 bytes.

Layering (lowest to highest precedence):
    built-in defaults  <  [bot] table of a TOML settings file  <  environment
"""

from __future__ import annotations

import os
import re
import sys
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

import base58
import toml
from dotenv import load_dotenv
from loguru import logger
from solders.keypair import Keypair

from ..errors import ConfigError
from .solana_tokens import LAMPORTS_PER_SOL, WSOL_MINT, find_by_mint, resolve_mint


DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"
DEFAULT_JUPITER_API_URL = "https://lite-api.jup.ag/swap/v1"

_SOL_AMOUNT = re.compile(r"^\d+(\.\d+)?$")
_B58_CHARS = set("123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz")


# =============================================================================
# CONFIG TYPES
# =============================================================================

@dataclass(frozen=True)
class ThresholdConfig:
    """
    Strategy thresholds. Immutable for the process lifetime.

    Prices are integer lamports per one whole quote token, so comparisons
    against quote-derived prices are exact.
    """
    trade_size_lamports: int
    slippage_bps: int
    buy_at_or_below_lamports_per_token: int
    sell_at_or_above_lamports_per_token: int
    check_interval_ms: int = 5000
    priority_fee_lamports: int = 1_000_000  # 0 = omit the fee field
    quote_token_decimals: int = 6

    def __post_init__(self):
        if self.trade_size_lamports <= 0:
            raise ConfigError("trade_size_lamports must be > 0")
        if not 0 < self.slippage_bps <= 10_000:
            raise ConfigError(f"slippage_bps out of range: {self.slippage_bps}")
        if self.check_interval_ms <= 0:
            raise ConfigError("check_interval_ms must be > 0")
        if self.priority_fee_lamports < 0:
            raise ConfigError("priority_fee_lamports must be >= 0")
        if not 0 <= self.quote_token_decimals <= 18:
            raise ConfigError(f"Invalid decimals: {self.quote_token_decimals}")
        if self.buy_at_or_below_lamports_per_token < 0 or self.sell_at_or_above_lamports_per_token < 0:
            raise ConfigError("price thresholds must be >= 0")


@dataclass(frozen=True)
class BotConfig:
    """
    Immutable process config. Built once at boot.

    NEVER call os.getenv() anywhere else in the codebase.
    """
    wallet_pubkey: str
    quote_mint: str
    thresholds: ThresholdConfig
    rpc_url: str = DEFAULT_RPC_URL
    jupiter_base_url: str = DEFAULT_JUPITER_API_URL
    base_mint: str = WSOL_MINT
    http_timeout_seconds: float = 30.0
    max_retries: int = 3
    min_liquidation_lamports: int = 100_000  # 0.0001 SOL
    log_level: str = "INFO"
    log_dir: Optional[str] = None

    def __post_init__(self):
        if not self.rpc_url:
            raise ConfigError("rpc_url is required")
        if not self.quote_mint:
            raise ConfigError("quote_mint is required")
        if self.quote_mint == self.base_mint:
            raise ConfigError("quote token must differ from the WSOL base asset")
        if self.max_retries < 0:
            raise ConfigError("max_retries must be >= 0")

    def log_summary(self) -> None:
        t = self.thresholds
        logger.info(f"CONFIG | wallet={self.wallet_pubkey}")
        logger.info(f"CONFIG | quote_token={self.quote_mint} | base=WSOL ({self.base_mint})")
        logger.info(f"CONFIG | interval={t.check_interval_ms}ms | slippage={t.slippage_bps}bps ({t.slippage_bps / 100:.2f}%)")
        logger.info(f"CONFIG | buy when price <= {format_lamports_as_sol(t.buy_at_or_below_lamports_per_token)} SOL/token")
        logger.info(f"CONFIG | sell when price >= {format_lamports_as_sol(t.sell_at_or_above_lamports_per_token)} SOL/token")
        logger.info(
            f"CONFIG | buy_amount={format_lamports_as_sol(t.trade_size_lamports)} SOL "
            f"({t.trade_size_lamports} lamports) | decimals={t.quote_token_decimals}"
        )
        logger.info(f"CONFIG | priority_fee_max={t.priority_fee_lamports or 'omitted'} | rpc={self.rpc_url}")


# =============================================================================
# UNIT HELPERS
# =============================================================================

def parse_sol_to_lamports(sol: str) -> int:
    """Exact "0.001499" -> 1499000. Up to 9 decimals, no scientific notation."""
    trimmed = str(sol).strip()
    if not _SOL_AMOUNT.match(trimmed):
        raise ConfigError(f'Invalid SOL amount format: "{sol}"')
    whole, _, frac = trimmed.partition(".")
    if len(frac) > 9:
        raise ConfigError(f'SOL amount has more than 9 decimals: "{sol}"')
    return int(whole) * LAMPORTS_PER_SOL + int((frac + "000000000")[:9])


def format_lamports_as_sol(lamports: int) -> str:
    sign = "-" if lamports < 0 else ""
    whole, frac = divmod(abs(lamports), LAMPORTS_PER_SOL)
    return f"{sign}{whole}.{frac:09d}"


def load_keypair(private_key_b58: str) -> Keypair:
    """
    Load keypair from base58 private key.

    ACCEPTS: Base58 string decoding to exactly 64 bytes.
    NEVER LOG: The key bytes or decoded value.
    """
    if not private_key_b58 or not isinstance(private_key_b58, str):
        raise ConfigError("PRIVATE_KEY is empty or not set")

    private_key_b58 = private_key_b58.strip()
    if not all(c in _B58_CHARS for c in private_key_b58):
        raise ConfigError("PRIVATE_KEY contains invalid characters (must be base58)")

    try:
        key_bytes = base58.b58decode(private_key_b58)
    except Exception as e:
        raise ConfigError(f"Failed to decode PRIVATE_KEY as base58: {type(e).__name__}") from None

    if len(key_bytes) != 64:
        raise ConfigError(f"PRIVATE_KEY decoded to {len(key_bytes)} bytes, expected 64")

    try:
        return Keypair.from_bytes(key_bytes)
    except Exception as e:
        raise ConfigError(f"Failed to create keypair: {type(e).__name__}") from None


# =============================================================================
# LOADING
# =============================================================================

def _load_settings_file(path: Optional[str]) -> Dict[str, Any]:
    if not path:
        return {}
    if not os.path.exists(path):
        raise ConfigError(f"settings file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = toml.load(f)
    except toml.TomlDecodeError as e:
        raise ConfigError(f"invalid TOML in {path}: {e}") from e
    section = data.get("bot", {}) or {}
    return {str(k).upper(): v for k, v in section.items()}


class _Settings:
    """Merged view over file values and environment overrides."""

    def __init__(self, file_values: Mapping[str, Any], env: Mapping[str, str]):
        self._file = file_values
        self._env = env

    def raw(self, name: str) -> Optional[str]:
        value = self._env.get(name)
        if value is None or str(value).strip() == "":
            value = self._file.get(name)
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    def required(self, name: str) -> str:
        value = self.raw(name)
        if value is None:
            raise ConfigError(f"Missing required setting: {name}")
        return value

    def get_int(self, name: str, default: Optional[int], minimum: int = 0) -> int:
        value = self.raw(name)
        if value is None:
            if default is None:
                raise ConfigError(f"Missing required setting: {name}")
            return default
        try:
            parsed = int(value)
        except ValueError:
            raise ConfigError(f"{name} must be an integer. Got: {value}") from None
        if parsed < minimum:
            raise ConfigError(f"{name} must be >= {minimum}. Got: {value}")
        return parsed

    def get_float(self, name: str, default: float) -> float:
        value = self.raw(name)
        if value is None:
            return default
        try:
            parsed = float(value)
        except ValueError:
            raise ConfigError(f"{name} must be a number. Got: {value}") from None
        if parsed <= 0:
            raise ConfigError(f"{name} must be > 0. Got: {value}")
        return parsed

    def get_sol(self, name: str, default: str) -> int:
        return parse_sol_to_lamports(self.raw(name) or default)


def load_config(
    env: Optional[Mapping[str, str]] = None,
    settings_path: Optional[str] = None,
    require_trade_size: bool = True,
) -> Tuple[BotConfig, Keypair]:
    """
    THE ONLY FUNCTION THAT READS THE ENVIRONMENT.

    Returns: (BotConfig, Keypair)
    Raises: ConfigError on any missing or invalid value.

    `require_trade_size=False` lets sell-only commands run without IN_AMOUNT.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    settings = _Settings(_load_settings_file(settings_path or env.get("BOT_SETTINGS")), env)

    keypair = load_keypair(settings.required("PRIVATE_KEY"))

    quote_raw = settings.required("QUOTE_TOKEN_ADDRESS")
    try:
        quote_mint = resolve_mint(quote_raw)
    except Exception:
        raise ConfigError(f"QUOTE_TOKEN_ADDRESS is not a known symbol or valid mint: {quote_raw}") from None

    base_raw = settings.raw("BASE_TOKEN_ADDRESS")
    if base_raw and base_raw != WSOL_MINT:
        logger.warning("CONFIG | BASE_TOKEN_ADDRESS is not WSOL | overriding base to WSOL")

    known = find_by_mint(quote_mint)
    decimals = settings.get_int("QUOTE_TOKEN_DECIMALS", known.decimals if known else 6)

    trade_size = settings.get_int("IN_AMOUNT", None if require_trade_size else 1, minimum=1)

    thresholds = ThresholdConfig(
        trade_size_lamports=trade_size,
        slippage_bps=settings.get_int("SLIPPAGE_BPS", 50, minimum=1),
        buy_at_or_below_lamports_per_token=settings.get_sol("BUY_BELOW_SOL", "0.000018"),
        sell_at_or_above_lamports_per_token=settings.get_sol("SELL_ABOVE_SOL", "0.000020"),
        check_interval_ms=settings.get_int("CHECK_INTERVAL_MS", 5000, minimum=1),
        priority_fee_lamports=settings.get_int("PRIORITY_FEE_LAMPORTS", 1_000_000),
        quote_token_decimals=decimals,
    )

    config = BotConfig(
        wallet_pubkey=str(keypair.pubkey()),
        quote_mint=quote_mint,
        thresholds=thresholds,
        rpc_url=settings.raw("RPC_URL") or DEFAULT_RPC_URL,
        jupiter_base_url=(settings.raw("JUPITER_API_URL") or DEFAULT_JUPITER_API_URL).rstrip("/"),
        http_timeout_seconds=settings.get_float("HTTP_TIMEOUT", 30.0),
        max_retries=settings.get_int("MAX_RETRIES", 3),
        min_liquidation_lamports=settings.get_sol("MIN_SOL_VALUE", "0.0001"),
        log_level=(settings.raw("LOG_LEVEL") or "INFO").upper(),
        log_dir=settings.raw("LOG_DIR"),
    )

    return config, keypair


def load_config_or_exit(
    settings_path: Optional[str] = None,
    require_trade_size: bool = True,
) -> Tuple[BotConfig, Keypair]:
    """CLI wrapper: print the ConfigError and exit 1."""
    try:
        return load_config(settings_path=settings_path, require_trade_size=require_trade_size)
    except ConfigError as e:
        print(f"FATAL: {e}", file=sys.stderr)
        sys.exit(1)


__all__ = [
    "ThresholdConfig",
    "BotConfig",
    "DEFAULT_RPC_URL",
    "DEFAULT_JUPITER_API_URL",
    "parse_sol_to_lamports",
    "format_lamports_as_sol",
    "load_keypair",
    "load_config",
    "load_config_or_exit",
]
