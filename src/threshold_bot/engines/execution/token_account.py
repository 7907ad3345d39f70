"""
token_account.py - Token-account records and raw layout decoding

Layout contract (both token programs share the base layout; Token-2022
extensions only begin after byte 165):

    offset  size  field
    0       32    mint
    32      32    owner
    64      8     amount (u64, little-endian)
    72      ...   delegate, state, ... (not read)

Only the first 72 bytes are required to read the balance.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from solders.pubkey import Pubkey

from ...config.solana_tokens import TokenProgram
from ...errors import AccountLayoutError


MINT_OFFSET = 0
OWNER_OFFSET = 32
AMOUNT_OFFSET = 64
AMOUNT_SIZE = 8
MIN_ACCOUNT_LEN = AMOUNT_OFFSET + AMOUNT_SIZE

_U64_LE = struct.Struct("<Q")


@dataclass(frozen=True)
class TokenAccountBalance:
    """One token account as reported by the RPC node."""
    address: Pubkey
    mint: str
    amount: int
    program: TokenProgram


@dataclass(frozen=True)
class RawTokenAccount:
    mint: Pubkey
    owner: Pubkey
    amount: int


def decode_amount(data: bytes) -> int:
    """Read the u64 balance at offset 64."""
    if len(data) < MIN_ACCOUNT_LEN:
        raise AccountLayoutError(f"token account data too short: {len(data)} < {MIN_ACCOUNT_LEN} bytes")
    (amount,) = _U64_LE.unpack_from(data, AMOUNT_OFFSET)
    return amount


def decode_token_account(data: bytes) -> RawTokenAccount:
    if len(data) < MIN_ACCOUNT_LEN:
        raise AccountLayoutError(f"token account data too short: {len(data)} < {MIN_ACCOUNT_LEN} bytes")
    return RawTokenAccount(
        mint=Pubkey.from_bytes(bytes(data[MINT_OFFSET:MINT_OFFSET + 32])),
        owner=Pubkey.from_bytes(bytes(data[OWNER_OFFSET:OWNER_OFFSET + 32])),
        amount=decode_amount(data),
    )


__all__ = [
    "TokenAccountBalance",
    "RawTokenAccount",
    "decode_amount",
    "decode_token_account",
    "AMOUNT_OFFSET",
    "MIN_ACCOUNT_LEN",
]
