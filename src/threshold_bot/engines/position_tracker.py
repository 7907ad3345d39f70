"""
position_tracker.py - Live position derived from on-chain balances

The position is never stored. Every read sums the owner's accounts for the
mint under both token programs, queried one program at a time so a balance is
only ever counted once.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

from loguru import logger
from solders.pubkey import Pubkey

from ..config.solana_tokens import TokenProgram
from ..ports.chain import ChainGateway
from .execution.token_account import TokenAccountBalance


@dataclass(frozen=True)
class Position:
    mint: str
    balance_units: int
    accounts: Tuple[TokenAccountBalance, ...] = ()

    @property
    def is_open(self) -> bool:
        return self.balance_units > 0


class PositionTracker:

    def __init__(self, gateway: ChainGateway):
        self.gateway = gateway

    async def current_position(self, owner: Pubkey, mint: str) -> Position:
        accounts: List[TokenAccountBalance] = []
        for program in TokenProgram:
            found = await self.gateway.get_token_accounts(owner, program, mint=mint)
            accounts.extend(a for a in found if a.mint == mint)

        total = sum(a.amount for a in accounts)
        logger.debug(f"POSITION | mint={mint[:8]}... | balance={total} | accounts={len(accounts)}")
        return Position(mint=mint, balance_units=total, accounts=tuple(accounts))

    async def current_holding(self, owner: Pubkey, mint: str) -> int:
        return (await self.current_position(owner, mint)).balance_units


__all__ = ["Position", "PositionTracker"]
