"""
one_shot.py - Manual single-shot operations

buy_once()         - one trade-sized buy of the configured token, no threshold check
sell_once()        - sell the whole position, then close the emptied accounts
liquidate_wallet() - sell every non-WSOL token worth at least a minimum to SOL

All three reuse the loop's building blocks (quote, plan, execute, janitor).
NotTradable is a skip signal here: the asset is reported and left in place.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from loguru import logger
from solders.keypair import Keypair

from ..config.bot_config import BotConfig, format_lamports_as_sol
from ..config.solana_tokens import WSOL_MINT, TokenProgram
from ..errors import BotError, InsufficientBalance, NotTradable
from ..ports.chain import ChainGateway
from .execution.account_janitor import AccountJanitor
from .execution.jupiter_client import JupiterClient, Quote
from .execution.swap_executor import SwapExecutor
from .execution.token_account import TokenAccountBalance
from .position_tracker import PositionTracker


SALE_PAUSE_SECONDS = 1.0


@dataclass(frozen=True)
class TradeReceipt:
    signature: str
    input_mint: str
    output_mint: str
    in_amount: int
    out_amount: int  # quoted, not measured
    closed_accounts: int = 0
    native_change: Optional[int] = None  # SOL balance after the swap minus before, in lamports


@dataclass(frozen=True)
class AssetOutcome:
    """An asset liquidation did not sell, and why."""
    mint: str
    account: str
    amount: int
    program: TokenProgram
    reason: str


@dataclass
class LiquidationReport:
    sold: List[TradeReceipt] = field(default_factory=list)
    skipped: List[AssetOutcome] = field(default_factory=list)
    failed: List[AssetOutcome] = field(default_factory=list)
    closed_accounts: int = 0
    total_quoted_lamports: int = 0
    native_before: int = 0
    native_after: int = 0

    @property
    def native_gained(self) -> int:
        return self.native_after - self.native_before


class OneShotTrader:

    def __init__(
        self,
        cfg: BotConfig,
        keypair: Keypair,
        jupiter: JupiterClient,
        gateway: ChainGateway,
        tracker: Optional[PositionTracker] = None,
        executor: Optional[SwapExecutor] = None,
        janitor: Optional[AccountJanitor] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.cfg = cfg
        self.keypair = keypair
        self.owner = keypair.pubkey()
        self.jupiter = jupiter
        self.gateway = gateway
        self.tracker = tracker or PositionTracker(gateway)
        self.executor = executor or SwapExecutor(gateway)
        self.janitor = janitor or AccountJanitor(gateway, keypair)
        self.sleep = sleep

    async def close(self):
        await self.jupiter.close()
        await self.gateway.close()

    async def _swap(self, quote: Quote) -> str:
        fee = self.cfg.thresholds.priority_fee_lamports or None
        plan = await self.jupiter.plan_swap(quote, str(self.owner), fee)
        return await self.executor.execute(plan, self.keypair)

    async def _close_accounts(self, accounts: List[TokenAccountBalance]) -> int:
        closed = 0
        for account in accounts:
            if await self.janitor.close_if_empty(account.address, account.program, self.owner):
                closed += 1
        return closed

    # =========================================================================
    # BUY / SELL ONCE
    # =========================================================================

    async def buy_once(self) -> TradeReceipt:
        """
        Raises:
            InsufficientBalance, NotTradable, RemoteError, TransactionError
        """
        t = self.cfg.thresholds
        native = await self.gateway.get_native_balance(self.owner)
        logger.info(f"BUY_ONCE | balance={format_lamports_as_sol(native)} SOL")
        if native < t.trade_size_lamports:
            raise InsufficientBalance("SOL", native, t.trade_size_lamports)

        quote = await self.jupiter.get_quote(self.cfg.base_mint, self.cfg.quote_mint, t.trade_size_lamports, t.slippage_bps)
        logger.info(f"BUY_ONCE | quote | in={quote.in_amount} lamports | out={quote.out_amount} units")
        signature = await self._swap(quote)
        native_change = await self.gateway.get_native_balance(self.owner) - native
        logger.info(
            f"BUY_ONCE | filled | sig={signature} | balance_change={format_lamports_as_sol(native_change)} SOL"
        )
        return TradeReceipt(
            signature=signature,
            input_mint=quote.input_mint,
            output_mint=quote.output_mint,
            in_amount=quote.in_amount,
            out_amount=quote.out_amount,
            native_change=native_change,
        )

    async def sell_once(self, close_account: bool = True) -> TradeReceipt:
        """
        Raises:
            InsufficientBalance (nothing held), NotTradable, RemoteError, TransactionError
        """
        position = await self.tracker.current_position(self.owner, self.cfg.quote_mint)
        if not position.is_open:
            raise InsufficientBalance(self.cfg.quote_mint, 0, 1)

        logger.info(f"SELL_ONCE | amount={position.balance_units} units | accounts={len(position.accounts)}")
        native_before = await self.gateway.get_native_balance(self.owner)
        quote = await self.jupiter.get_quote(
            self.cfg.quote_mint, self.cfg.base_mint, position.balance_units, self.cfg.thresholds.slippage_bps
        )
        logger.info(f"SELL_ONCE | quote | out={format_lamports_as_sol(quote.out_amount)} SOL")
        signature = await self._swap(quote)
        native_change = await self.gateway.get_native_balance(self.owner) - native_before
        logger.info(f"SELL_ONCE | filled | sig={signature} | received={format_lamports_as_sol(native_change)} SOL")

        closed = await self._close_accounts(list(position.accounts)) if close_account else 0
        return TradeReceipt(
            signature=signature,
            input_mint=quote.input_mint,
            output_mint=quote.output_mint,
            in_amount=quote.in_amount,
            out_amount=quote.out_amount,
            closed_accounts=closed,
            native_change=native_change,
        )

    # =========================================================================
    # LIQUIDATE
    # =========================================================================

    async def _holdings(self) -> List[TokenAccountBalance]:
        holdings: List[TokenAccountBalance] = []
        for program in TokenProgram:
            accounts = await self.gateway.get_token_accounts(self.owner, program)
            logger.info(f"LIQUIDATE | scan | {program.label} | accounts={len(accounts)}")
            holdings.extend(a for a in accounts if a.amount > 0 and a.mint != WSOL_MINT)
        return holdings

    async def liquidate_wallet(self, min_value_lamports: Optional[int] = None) -> LiquidationReport:
        """Sell every token account worth at least min_value_lamports to SOL."""
        minimum = self.cfg.min_liquidation_lamports if min_value_lamports is None else min_value_lamports
        slippage = self.cfg.thresholds.slippage_bps
        report = LiquidationReport(native_before=await self.gateway.get_native_balance(self.owner))

        holdings = await self._holdings()
        logger.info(
            f"LIQUIDATE | start | tokens={len(holdings)} | min_value={format_lamports_as_sol(minimum)} SOL"
        )

        sales = 0
        for account in holdings:
            mint = account.mint
            outcome = dict(mint=mint, account=str(account.address), amount=account.amount, program=account.program)

            try:
                valuation = await self.jupiter.get_quote(mint, WSOL_MINT, account.amount, slippage)
            except NotTradable:
                logger.info(f"LIQUIDATE | skip | {mint} | not tradable ({account.program.label})")
                report.skipped.append(AssetOutcome(reason=f"not tradable ({account.program.label})", **outcome))
                continue
            except BotError as e:
                logger.error(f"LIQUIDATE | quote failed | {mint} | {e}")
                report.failed.append(AssetOutcome(reason=f"quote failed: {e}", **outcome))
                continue

            if valuation.out_amount < minimum:
                logger.info(
                    f"LIQUIDATE | skip | {mint} | value={format_lamports_as_sol(valuation.out_amount)} SOL below minimum"
                )
                report.skipped.append(AssetOutcome(reason="below minimum value", **outcome))
                continue

            report.total_quoted_lamports += valuation.out_amount

            if sales:
                await self.sleep(SALE_PAUSE_SECONDS)
            sales += 1

            try:
                quote = await self.jupiter.get_quote(mint, WSOL_MINT, account.amount, slippage)
                signature = await self._swap(quote)
            except NotTradable:
                logger.info(f"LIQUIDATE | skip | {mint} | not tradable at sale ({account.program.label})")
                report.skipped.append(AssetOutcome(reason=f"not tradable ({account.program.label})", **outcome))
                continue
            except BotError as e:
                logger.error(f"LIQUIDATE | sell failed | {mint} | amount={account.amount} | {e}")
                report.failed.append(AssetOutcome(reason=str(e), **outcome))
                report.closed_accounts += await self._close_accounts([account])
                continue

            closed = await self._close_accounts([account])
            report.closed_accounts += closed
            report.sold.append(
                TradeReceipt(
                    signature=signature,
                    input_mint=mint,
                    output_mint=WSOL_MINT,
                    in_amount=quote.in_amount,
                    out_amount=quote.out_amount,
                    closed_accounts=closed,
                )
            )
            logger.info(
                f"LIQUIDATE | sold | {mint} | {format_lamports_as_sol(quote.out_amount)} SOL | sig={signature}"
            )

        report.native_after = await self.gateway.get_native_balance(self.owner)
        self._log_report(report)
        return report

    @staticmethod
    def _log_report(report: LiquidationReport):
        logger.info(
            f"LIQUIDATE | done | sold={len(report.sold)} skipped={len(report.skipped)} "
            f"failed={len(report.failed)} closed={report.closed_accounts}"
        )
        logger.info(
            f"LIQUIDATE | quoted_total={format_lamports_as_sol(report.total_quoted_lamports)} SOL "
            f"| balance {format_lamports_as_sol(report.native_before)} -> "
            f"{format_lamports_as_sol(report.native_after)} SOL "
            f"| net={format_lamports_as_sol(report.native_gained)} SOL"
        )
        for item in report.skipped:
            logger.info(f"LIQUIDATE | skipped | {item.mint} | {item.reason}")
        for item in report.failed:
            logger.warning(f"LIQUIDATE | failed | {item.mint} | {item.reason}")


__all__ = [
    "OneShotTrader",
    "TradeReceipt",
    "AssetOutcome",
    "LiquidationReport",
    "SALE_PAUSE_SECONDS",
]
