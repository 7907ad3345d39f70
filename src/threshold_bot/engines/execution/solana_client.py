"""
solana_client.py - Solana RPC gateway

Thin adapter from the ChainGateway port onto solana-py's AsyncClient.
All reads and confirmations use 'confirmed' commitment.

Confirmation is block-height bounded: we poll the signature status every
poll_interval seconds until it reports success or an error, or until the
chain's block height passes the transaction's last valid block height. We
never resubmit; if the window closes, the outcome is reported as expired and
the caller re-derives state from balances.
"""

from __future__ import annotations

import asyncio
from typing import List, Optional

from loguru import logger
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException
from solana.rpc.types import TokenAccountOpts, TxOpts
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction_status import TransactionConfirmationStatus

from ...config.solana_tokens import TokenProgram
from ...errors import SubmissionError
from ...ports.chain import AccountSnapshot, ChainGateway, Confirmation, LatestBlockhash
from .token_account import TokenAccountBalance


_CONFIRMED_LEVELS = (
    TransactionConfirmationStatus.Confirmed,
    TransactionConfirmationStatus.Finalized,
)


class SolanaGateway(ChainGateway):
    """
    ChainGateway over solana-py.

    Usage:
        gateway = SolanaGateway(rpc_url)
        lamports = await gateway.get_native_balance(owner)
        sig = await gateway.send_raw_transaction(tx_bytes)
        result = await gateway.confirm_transaction(sig, blockhash, last_valid_block_height)
    """

    def __init__(
        self,
        rpc_url: str,
        poll_interval: float = 0.5,
        client: Optional[AsyncClient] = None,
    ):
        self.rpc_url = rpc_url
        self.poll_interval = poll_interval
        self._client: Optional[AsyncClient] = client

    async def _get_client(self) -> AsyncClient:
        """Get or create RPC client."""
        if self._client is None:
            self._client = AsyncClient(self.rpc_url, commitment=Confirmed)
        return self._client

    async def close(self):
        """Close RPC client."""
        if self._client:
            await self._client.close()
            self._client = None

    # =========================================================================
    # BALANCES / ACCOUNTS
    # =========================================================================

    async def get_native_balance(self, owner: Pubkey) -> int:
        """SOL balance in lamports."""
        client = await self._get_client()
        resp = await client.get_balance(owner, commitment=Confirmed)
        return int(resp.value)

    async def get_token_accounts(
        self,
        owner: Pubkey,
        program: TokenProgram,
        mint: Optional[str] = None,
    ) -> List[TokenAccountBalance]:
        """
        Token accounts of `owner` under one program, optionally filtered by mint.

        The RPC filter is by program id; the mint filter is applied locally so
        an account is only ever reported under the program that owns it.
        """
        client = await self._get_client()
        resp = await client.get_token_accounts_by_owner_json_parsed(
            owner,
            TokenAccountOpts(program_id=program.program_id),
            commitment=Confirmed,
        )

        accounts: List[TokenAccountBalance] = []
        for keyed in resp.value:
            parsed = keyed.account.data.parsed
            info = parsed.get("info", {}) if isinstance(parsed, dict) else {}
            account_mint = info.get("mint")
            amount_str = info.get("tokenAmount", {}).get("amount")
            if account_mint is None or amount_str is None:
                logger.debug(f"TOKEN_ACCOUNTS | unparsed account skipped | {keyed.pubkey}")
                continue
            if mint is not None and account_mint != mint:
                continue
            accounts.append(
                TokenAccountBalance(
                    address=keyed.pubkey,
                    mint=account_mint,
                    amount=int(amount_str),
                    program=program,
                )
            )
        return accounts

    async def get_account(self, address: Pubkey) -> Optional[AccountSnapshot]:
        client = await self._get_client()
        resp = await client.get_account_info(address, commitment=Confirmed)
        account = resp.value
        if account is None:
            return None
        return AccountSnapshot(
            address=address,
            owner=account.owner,
            lamports=int(account.lamports),
            data=bytes(account.data),
        )

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    async def get_latest_blockhash(self) -> LatestBlockhash:
        client = await self._get_client()
        resp = await client.get_latest_blockhash(commitment=Confirmed)
        return LatestBlockhash(
            blockhash=resp.value.blockhash,
            last_valid_block_height=int(resp.value.last_valid_block_height),
        )

    async def send_raw_transaction(self, tx_bytes: bytes) -> str:
        """Submit once with preflight. Rejections become SubmissionError."""
        client = await self._get_client()
        try:
            resp = await client.send_raw_transaction(
                tx_bytes,
                opts=TxOpts(skip_preflight=False, preflight_commitment=Confirmed, max_retries=3),
            )
        except RPCException as e:
            logger.error(f"TX_SEND | rejected | {e}")
            raise SubmissionError(f"transaction rejected: {e}") from e
        signature = str(resp.value)
        logger.info(f"TX_SENT | sig={signature}")
        return signature

    async def confirm_transaction(
        self,
        signature: str,
        blockhash: Hash,
        last_valid_block_height: int,
    ) -> Confirmation:
        client = await self._get_client()
        sig = Signature.from_string(signature)

        while True:
            status_resp = await client.get_signature_statuses([sig])
            status = status_resp.value[0] if status_resp.value else None

            if status is not None:
                if status.err is not None:
                    error_msg = str(status.err)
                    logger.error(f"TX_FAILED | sig={signature} | error={error_msg}")
                    return Confirmation(signature=signature, confirmed=False, error=error_msg)
                if status.confirmation_status in _CONFIRMED_LEVELS:
                    logger.info(f"TX_CONFIRMED | sig={signature} | conf={status.confirmation_status}")
                    return Confirmation(signature=signature, confirmed=True)

            height = (await client.get_block_height(commitment=Confirmed)).value
            if height > last_valid_block_height:
                logger.warning(
                    f"TX_EXPIRED | sig={signature} | blockhash={blockhash} "
                    f"| height={height} > last_valid={last_valid_block_height}"
                )
                return Confirmation(signature=signature, confirmed=False, expired=True)

            await asyncio.sleep(self.poll_interval)


__all__ = ["SolanaGateway"]
