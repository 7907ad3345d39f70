"""
swap_executor.py - Sign, submit and confirm a Jupiter swap transaction

Steps:
1. Deserialize the unsigned VersionedTransaction from the swap plan
2. Re-sign the message with the wallet keypair
3. Submit once (preflight on)
4. Confirm against the transaction's own blockhash and the plan's
   last_valid_block_height

There is no resubmission. An expired window raises BlockhashExpired and the
caller re-derives position from balances on the next tick.
"""

from __future__ import annotations

from loguru import logger
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from ...errors import BlockhashExpired, OnChainFailure, SubmissionError
from ...ports.chain import ChainGateway
from .jupiter_client import SwapPlan


class SwapExecutor:

    def __init__(self, gateway: ChainGateway):
        self.gateway = gateway

    async def execute(self, plan: SwapPlan, signer: Keypair) -> str:
        """
        Returns the confirmed signature.

        Raises:
            SubmissionError, OnChainFailure, BlockhashExpired
        """
        try:
            tx = VersionedTransaction.from_bytes(plan.swap_transaction)
        except Exception as e:
            logger.error(f"TX_DESERIALIZE | error | {e}")
            raise SubmissionError(f"could not deserialize swap transaction: {e}") from e

        try:
            signed_tx = VersionedTransaction(tx.message, [signer])
        except Exception as e:
            logger.error(f"TX_SIGN | error | {e}")
            raise SubmissionError(f"could not sign swap transaction: {e}") from e

        signature = await self.gateway.send_raw_transaction(bytes(signed_tx))

        confirmation = await self.gateway.confirm_transaction(
            signature,
            tx.message.recent_blockhash,
            plan.last_valid_block_height,
        )
        if confirmation.error is not None:
            raise OnChainFailure(signature, confirmation.error)
        if confirmation.expired or not confirmation.confirmed:
            raise BlockhashExpired(signature, plan.last_valid_block_height)

        logger.info(f"SWAP_CONFIRMED | sig={signature} | https://solscan.io/tx/{signature}")
        return signature


__all__ = ["SwapExecutor"]
