"""
threshold_engine.py - Single-pair threshold strategy loop

Core Principles:
1. LEVEL-TRIGGERED - Holding is re-derived from chain balance every tick. The
   engine never flips its own state after a trade.
2. TRADE-SIZED PRICE - The price is implied by a quote at the real trade size.
   A missing price never trades.
3. ONE FLIGHT - One tick at a time, one swap in flight at a time.
4. NOTHING IS FATAL - Any failure inside a tick is logged and the loop goes on.

The decision layer (derive_state, buy_price, sell_price, evaluate,
next_sleep_seconds) is pure. ThresholdEngine is the effect shell around it.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from loguru import logger
from solders.keypair import Keypair

from ..config.bot_config import BotConfig, ThresholdConfig, format_lamports_as_sol
from ..errors import BotError, InsufficientBalance, NotTradable
from ..ports.chain import ChainGateway
from .execution.account_janitor import AccountJanitor
from .execution.jupiter_client import JupiterClient, Quote
from .execution.swap_executor import SwapExecutor
from .position_tracker import Position, PositionTracker


# =============================================================================
# DECISION TYPES
# =============================================================================

class TradeAction(Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"
    SKIP = "SKIP"
    ERROR = "ERROR"


@dataclass(frozen=True)
class LoopState:
    holding: bool


@dataclass(frozen=True)
class Decision:
    action: TradeAction
    price: Optional[int]  # lamports per whole quote token
    reason: str


@dataclass
class TickResult:
    held_at_start: bool  # derived from chain balance before any trade this tick
    action: TradeAction
    price: Optional[int] = None
    signature: Optional[str] = None
    error: Optional[str] = None
    closed_accounts: int = 0
    duration_ms: float = 0.0


# =============================================================================
# PURE DECISION LAYER
# =============================================================================

def derive_state(balance_units: int) -> LoopState:
    return LoopState(holding=balance_units > 0)


def buy_price(quote: Quote, decimals: int) -> Optional[int]:
    """Lamports paid per whole token: in_amount * 10^decimals // out_amount."""
    if quote.out_amount <= 0:
        return None
    return quote.in_amount * 10 ** decimals // quote.out_amount


def sell_price(quote: Quote, decimals: int) -> Optional[int]:
    """Lamports received per whole token: out_amount * 10^decimals // in_amount."""
    if quote.in_amount <= 0:
        return None
    return quote.out_amount * 10 ** decimals // quote.in_amount


def evaluate(state: LoopState, quote: Quote, thresholds: ThresholdConfig) -> Decision:
    """
    Not holding: BUY iff price <= buy threshold.
    Holding:     SELL iff price >= sell threshold.
    Anything else, including a missing price, is HOLD.
    """
    decimals = thresholds.quote_token_decimals

    if not state.holding:
        price = buy_price(quote, decimals)
        if price is None:
            return Decision(TradeAction.HOLD, None, "no_price")
        if price <= thresholds.buy_at_or_below_lamports_per_token:
            return Decision(TradeAction.BUY, price, "price_at_or_below_buy_threshold")
        return Decision(TradeAction.HOLD, price, "price_above_buy_threshold")

    price = sell_price(quote, decimals)
    if price is None:
        return Decision(TradeAction.HOLD, None, "no_price")
    if price >= thresholds.sell_at_or_above_lamports_per_token:
        return Decision(TradeAction.SELL, price, "price_at_or_above_sell_threshold")
    return Decision(TradeAction.HOLD, price, "price_below_sell_threshold")


def next_sleep_seconds(interval_ms: int, elapsed_seconds: float) -> float:
    return max(0.0, interval_ms / 1000 - elapsed_seconds)


def _fmt_price(price: Optional[int]) -> str:
    return "n/a" if price is None else f"{format_lamports_as_sol(price)} SOL"


# =============================================================================
# ENGINE
# =============================================================================

class ThresholdEngine:
    """
    Buys trade_size_lamports of WSOL worth of the quote token when cheap,
    sells the whole position when dear.

    Usage:
        engine = ThresholdEngine(cfg, keypair, jupiter, gateway)
        await engine.run()
    """

    def __init__(
        self,
        cfg: BotConfig,
        keypair: Keypair,
        jupiter: JupiterClient,
        gateway: ChainGateway,
        tracker: Optional[PositionTracker] = None,
        executor: Optional[SwapExecutor] = None,
        janitor: Optional[AccountJanitor] = None,
    ):
        self.cfg = cfg
        self.keypair = keypair
        self.owner = keypair.pubkey()
        self.jupiter = jupiter
        self.gateway = gateway
        self.tracker = tracker or PositionTracker(gateway)
        self.executor = executor or SwapExecutor(gateway)
        self.janitor = janitor or AccountJanitor(gateway, keypair)
        self._stop = asyncio.Event()
        self._tick_lock = asyncio.Lock()

    @property
    def thresholds(self) -> ThresholdConfig:
        return self.cfg.thresholds

    def request_stop(self) -> None:
        """Interrupts the inter-tick sleep. An in-flight tick runs to completion."""
        self._stop.set()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    # =========================================================================
    # TICK
    # =========================================================================

    async def tick(self) -> TickResult:
        async with self._tick_lock:
            loop = asyncio.get_running_loop()
            tick_start = loop.time()
            held_at_start = False

            try:
                position = await self.tracker.current_position(self.owner, self.cfg.quote_mint)
                state = derive_state(position.balance_units)
                held_at_start = state.holding
                if state.holding:
                    result = await self._sell_path(state, position)
                else:
                    result = await self._buy_path(state)

            except NotTradable as e:
                logger.warning(f"TICK | skip | mint={self.cfg.quote_mint} | not tradable | {e.detail or e}")
                result = TickResult(held_at_start=held_at_start, action=TradeAction.SKIP, error=str(e))
            except InsufficientBalance as e:
                logger.warning(f"TICK | hold | insufficient_balance | {e}")
                result = TickResult(
                    held_at_start=held_at_start, action=TradeAction.HOLD, error="insufficient_balance"
                )
            except BotError as e:
                logger.error(
                    f"TICK | error | mint={self.cfg.quote_mint} | held_at_start={held_at_start} "
                    f"| {type(e).__name__}: {e}"
                )
                result = TickResult(
                    held_at_start=held_at_start,
                    action=TradeAction.ERROR,
                    signature=getattr(e, "signature", None),
                    error=str(e),
                )
            except Exception as e:
                logger.exception(
                    f"TICK | unexpected | mint={self.cfg.quote_mint} | held_at_start={held_at_start} | {e}"
                )
                result = TickResult(
                    held_at_start=held_at_start, action=TradeAction.ERROR, error=f"{type(e).__name__}: {e}"
                )

            result.duration_ms = (loop.time() - tick_start) * 1000
            self._log_tick(result)
            return result

    async def _buy_path(self, state: LoopState) -> TickResult:
        t = self.thresholds
        native = await self.gateway.get_native_balance(self.owner)
        if native < t.trade_size_lamports:
            raise InsufficientBalance("SOL", native, t.trade_size_lamports)

        quote = await self.jupiter.get_quote(
            self.cfg.base_mint, self.cfg.quote_mint, t.trade_size_lamports, t.slippage_bps
        )
        decision = evaluate(state, quote, t)
        logger.info(
            f"QUOTE | buy | in={quote.in_amount} out={quote.out_amount} "
            f"| price={_fmt_price(decision.price)}/token "
            f"| buy_at_or_below={_fmt_price(t.buy_at_or_below_lamports_per_token)} | {decision.reason}"
        )
        if decision.action != TradeAction.BUY:
            return TickResult(held_at_start=False, action=TradeAction.HOLD, price=decision.price)

        logger.info(
            f"BUY_SIGNAL | mint={self.cfg.quote_mint} | spend={t.trade_size_lamports} lamports "
            f"| expect={quote.out_amount} units"
        )
        plan = await self.jupiter.plan_swap(quote, str(self.owner), t.priority_fee_lamports or None)
        signature = await self.executor.execute(plan, self.keypair)
        logger.info(f"BUY_FILLED | mint={self.cfg.quote_mint} | sig={signature}")
        return TickResult(held_at_start=False, action=TradeAction.BUY, price=decision.price, signature=signature)

    async def _sell_path(self, state: LoopState, position: Position) -> TickResult:
        t = self.thresholds
        quote = await self.jupiter.get_quote(
            self.cfg.quote_mint, self.cfg.base_mint, position.balance_units, t.slippage_bps
        )
        decision = evaluate(state, quote, t)
        logger.info(
            f"QUOTE | sell | in={quote.in_amount} out={quote.out_amount} "
            f"| price={_fmt_price(decision.price)}/token "
            f"| sell_at_or_above={_fmt_price(t.sell_at_or_above_lamports_per_token)} | {decision.reason}"
        )
        if decision.action != TradeAction.SELL:
            return TickResult(held_at_start=True, action=TradeAction.HOLD, price=decision.price)

        logger.info(
            f"SELL_SIGNAL | mint={self.cfg.quote_mint} | amount={position.balance_units} units "
            f"| expect={quote.out_amount} lamports"
        )
        plan = await self.jupiter.plan_swap(quote, str(self.owner), t.priority_fee_lamports or None)
        signature = await self.executor.execute(plan, self.keypair)
        logger.info(f"SELL_FILLED | mint={self.cfg.quote_mint} | sig={signature}")

        closed = 0
        for account in position.accounts:
            if await self.janitor.close_if_empty(account.address, account.program, self.owner):
                closed += 1
        return TickResult(
            held_at_start=True,
            action=TradeAction.SELL,
            price=decision.price,
            signature=signature,
            closed_accounts=closed,
        )

    # =========================================================================
    # LOOP
    # =========================================================================

    async def run(self, max_ticks: Optional[int] = None):
        """
        Tick at the configured interval until stopped.

        Sleep is max(0, interval - tick duration) and ends early on request_stop().
        """
        await self._log_startup_state()
        logger.info(f"ENGINE_START | interval={self.thresholds.check_interval_ms}ms")

        loop = asyncio.get_running_loop()
        ticks = 0
        try:
            while not self._stop.is_set():
                tick_start = loop.time()
                await self.tick()
                ticks += 1
                if max_ticks is not None and ticks >= max_ticks:
                    break

                sleep_time = next_sleep_seconds(self.thresholds.check_interval_ms, loop.time() - tick_start)
                if sleep_time > 0:
                    try:
                        await asyncio.wait_for(self._stop.wait(), timeout=sleep_time)
                    except asyncio.TimeoutError:
                        pass
        finally:
            await self.shutdown()

    async def shutdown(self):
        await self.jupiter.close()
        await self.gateway.close()
        logger.info("ENGINE_SHUTDOWN")

    async def _log_startup_state(self):
        try:
            position = await self.tracker.current_position(self.owner, self.cfg.quote_mint)
        except Exception as e:
            logger.warning(f"ENGINE_START | could not read starting position | {type(e).__name__}: {e}")
            return
        if position.is_open:
            logger.info(
                f"ENGINE_START | holding {position.balance_units} units of {self.cfg.quote_mint} "
                f"| accounts={len(position.accounts)} | waiting to sell"
            )
        else:
            logger.info(f"ENGINE_START | no position in {self.cfg.quote_mint} | waiting to buy")

    def _log_tick(self, result: TickResult):
        if result.action in (TradeAction.BUY, TradeAction.SELL):
            logger.info(
                f"TRADE | {result.action.value} | sig={result.signature} "
                f"| closed_accounts={result.closed_accounts}"
            )
        logger.debug(
            f"TICK | {result.action.value} | held_at_start={result.held_at_start} "
            f"| price={_fmt_price(result.price)} | {result.duration_ms:.0f}ms"
        )


__all__ = [
    "TradeAction",
    "LoopState",
    "Decision",
    "TickResult",
    "derive_state",
    "buy_price",
    "sell_price",
    "evaluate",
    "next_sleep_seconds",
    "ThresholdEngine",
]
