"""
Solana token metadata and token-program identifiers.

Shared by the engine, the one-shot operations and the config loader.

If any mint changes, update the constants below.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from solders.pubkey import Pubkey


@dataclass(frozen=True)
class SolanaToken:
    symbol: str
    mint: str
    decimals: int


# NOTE: Mint addresses are the widely used mainnet mints; verify before live.
WSOL = SolanaToken(symbol="SOL", mint="So11111111111111111111111111111111111111112", decimals=9)
USDC = SolanaToken(symbol="USDC", mint="EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", decimals=6)
USDT = SolanaToken(symbol="USDT", mint="Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB", decimals=6)
BONK = SolanaToken(symbol="BONK", mint="DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263", decimals=5)
TRUMP = SolanaToken(symbol="TRUMP", mint="6p6xgHyF7AeE6TZkSmFsko444wqoP15icUSqi2jfGiPN", decimals=6)
JUP = SolanaToken(symbol="JUP", mint="JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN", decimals=6)
WIF = SolanaToken(symbol="WIF", mint="EKpQGSJtjMFqKZ9KQanSqYXRcF8fBopzLHYxdM65zcjm", decimals=6)

WSOL_MINT = WSOL.mint
LAMPORTS_PER_SOL = 1_000_000_000

TOKEN_MAP: Dict[str, SolanaToken] = {
    t.symbol: t
    for t in [WSOL, USDC, USDT, BONK, TRUMP, JUP, WIF]
}

_BY_MINT: Dict[str, SolanaToken] = {t.mint: t for t in TOKEN_MAP.values()}


class TokenProgram(Enum):
    """
    Token-account program variants.

    A mint lives under exactly one of these; a wallet can hold accounts under
    both at once, so balances must be read from each.
    """
    STANDARD = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
    EXTENDED = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"  # Token-2022

    @property
    def program_id(self) -> Pubkey:
        return Pubkey.from_string(self.value)

    @property
    def label(self) -> str:
        return "Token-2022" if self is TokenProgram.EXTENDED else "Standard Token"

    @classmethod
    def from_owner(cls, owner: Pubkey) -> Optional["TokenProgram"]:
        """Map an account owner to a program variant, None for anything else."""
        owner_str = str(owner)
        for program in cls:
            if program.value == owner_str:
                return program
        return None


def get_token(symbol: str) -> SolanaToken:
    key = symbol.upper()
    if key not in TOKEN_MAP:
        raise KeyError(f"Token not configured: {symbol}")
    return TOKEN_MAP[key]


def find_by_mint(mint: str) -> Optional[SolanaToken]:
    return _BY_MINT.get(mint)


def resolve_mint(value: str) -> str:
    """Accept either a registry symbol ("BONK") or a raw mint address."""
    raw = value.strip()
    if raw.upper() in TOKEN_MAP:
        return TOKEN_MAP[raw.upper()].mint
    # Raises ValueError on anything that is not a valid base58 pubkey
    return str(Pubkey.from_string(raw))


__all__ = [
    "SolanaToken",
    "WSOL",
    "USDC",
    "USDT",
    "BONK",
    "TRUMP",
    "JUP",
    "WIF",
    "WSOL_MINT",
    "LAMPORTS_PER_SOL",
    "TOKEN_MAP",
    "TokenProgram",
    "get_token",
    "find_by_mint",
    "resolve_mint",
]
