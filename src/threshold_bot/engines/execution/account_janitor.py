"""
account_janitor.py - Close emptied token accounts to reclaim rent

Policy:
1. RE-READ FIRST - The account is fetched and decoded before anything is built.
   Missing, foreign-owned, undecodable or non-empty accounts are left alone.
2. RE-CHECK A LAGGING NODE - Right after a sell the node can still report the
   pre-sell amount. A non-zero read is re-checked up to `attempts` times,
   `pause` seconds apart, before the account is left alone.
3. NEVER RAISES - Cleanup is best effort. Every failure is logged and reported
   as False so a completed sell is never turned into an error.
4. IDEMPOTENT - A second call on a closed account finds nothing and returns False.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from loguru import logger
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction
from spl.token.instructions import CloseAccountParams, close_account

from ...config.solana_tokens import TokenProgram
from ...errors import AccountLayoutError
from ...ports.chain import ChainGateway
from .token_account import decode_token_account


DEFAULT_ATTEMPTS = 3
DEFAULT_PAUSE_SECONDS = 2.0


class AccountJanitor:

    def __init__(
        self,
        gateway: ChainGateway,
        signer: Keypair,
        attempts: int = DEFAULT_ATTEMPTS,
        pause: float = DEFAULT_PAUSE_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.gateway = gateway
        self.signer = signer
        self.attempts = max(1, attempts)
        self.pause = pause
        self.sleep = sleep

    async def _read_amount(self, token_account: Pubkey, program: TokenProgram, owner: Pubkey) -> Optional[int]:
        """Current amount, or None when the account must be left alone."""
        acct = str(token_account)
        snapshot = await self.gateway.get_account(token_account)
        if snapshot is None:
            logger.debug(f"ACCOUNT_CLOSE | skip | {acct} | not found")
            return None

        owning_program = TokenProgram.from_owner(snapshot.owner)
        if owning_program is not program:
            found = owning_program.label if owning_program else snapshot.owner
            logger.warning(f"ACCOUNT_CLOSE | skip | {acct} | owner={found} expected {program.label}")
            return None

        try:
            record = decode_token_account(snapshot.data)
        except AccountLayoutError as e:
            logger.warning(f"ACCOUNT_CLOSE | skip | {acct} | {e}")
            return None
        if record.owner != owner:
            logger.warning(f"ACCOUNT_CLOSE | skip | {acct} | authority={record.owner} is not {owner}")
            return None
        return record.amount

    async def close_if_empty(self, token_account: Pubkey, program: TokenProgram, owner: Pubkey) -> bool:
        """Close `token_account` if it exists, belongs to `program` and holds zero. True on confirmed close."""
        acct = str(token_account)
        try:
            for attempt in range(1, self.attempts + 1):
                if attempt > 1:
                    await self.sleep(self.pause)
                amount = await self._read_amount(token_account, program, owner)
                if amount is None:
                    return False
                if amount == 0:
                    break
                logger.info(f"ACCOUNT_CLOSE | balance={amount} | {acct} | check {attempt}/{self.attempts}")
            else:
                logger.info(f"ACCOUNT_CLOSE | skip | {acct} | still holds {amount} after {self.attempts} checks")
                return False

            ix = close_account(
                CloseAccountParams(
                    account=token_account,
                    dest=owner,
                    owner=owner,
                    program_id=program.program_id,
                    signers=[],
                )
            )
            latest = await self.gateway.get_latest_blockhash()
            msg = MessageV0.try_compile(
                payer=owner,
                instructions=[ix],
                address_lookup_table_accounts=[],
                recent_blockhash=latest.blockhash,
            )
            tx = VersionedTransaction(msg, [self.signer])

            signature = await self.gateway.send_raw_transaction(bytes(tx))
            confirmation = await self.gateway.confirm_transaction(
                signature, latest.blockhash, latest.last_valid_block_height
            )
            if not confirmation.confirmed:
                reason = confirmation.error or ("expired" if confirmation.expired else "unconfirmed")
                logger.error(f"ACCOUNT_CLOSE | failed | {acct} | sig={signature} | {reason}")
                return False

            logger.info(f"ACCOUNT_CLOSE | closed | {acct} | program={program.label} | sig={signature}")
            return True

        except Exception as e:
            logger.error(f"ACCOUNT_CLOSE | error | {acct} | {type(e).__name__}: {e}")
            return False


__all__ = ["AccountJanitor", "DEFAULT_ATTEMPTS", "DEFAULT_PAUSE_SECONDS"]
