"""
threshold-bot command line

Usage:
    threshold-bot                          # same as `run`
    threshold-bot run                      # threshold buy/sell loop
    threshold-bot buy-once                 # one trade-sized buy, no threshold check
    threshold-bot sell-once [--keep-account]
    threshold-bot liquidate [--min-sol 0.0001]
    threshold-bot --settings bot.toml run
"""

from __future__ import annotations

import argparse
import asyncio
from typing import List, Optional

from loguru import logger

from .application.engine_factory import build_one_shot_trader, build_threshold_engine
from .config.bot_config import BotConfig, format_lamports_as_sol, load_config_or_exit, parse_sol_to_lamports
from .errors import BotError, ConfigError
from .utils import shutdown
from .utils.logging_setup import configure_logging


def _banner(cfg: BotConfig, command: str):
    logger.info("=" * 60)
    logger.info(f"THRESHOLD BOT | {command}")
    logger.info("=" * 60)
    cfg.log_summary()


def _sol_change(lamports: Optional[int]) -> str:
    return "unknown" if lamports is None else format_lamports_as_sol(lamports)


# =============================================================================
# COMMANDS
# =============================================================================

async def command_run(args, cfg: BotConfig, keypair) -> int:
    engine = build_threshold_engine(cfg, keypair)
    shutdown.on_stop(engine.request_stop)
    shutdown.install_signal_handlers(asyncio.get_running_loop())
    await engine.run()
    logger.info(f"ENGINE_EXIT | {'stop requested' if shutdown.stopping() else 'loop ended'}")
    return 0


async def command_buy_once(args, cfg: BotConfig, keypair) -> int:
    trader = build_one_shot_trader(cfg, keypair)
    try:
        receipt = await trader.buy_once()
    except BotError as e:
        logger.error(f"BUY_ONCE | failed | {type(e).__name__}: {e}")
        return 1
    finally:
        await trader.close()
    logger.info(
        f"BUY_ONCE | done | quoted={receipt.out_amount} units "
        f"| balance_change={_sol_change(receipt.native_change)} SOL | sig={receipt.signature}"
    )
    return 0


async def command_sell_once(args, cfg: BotConfig, keypair) -> int:
    trader = build_one_shot_trader(cfg, keypair)
    try:
        receipt = await trader.sell_once(close_account=not args.keep_account)
    except BotError as e:
        logger.error(f"SELL_ONCE | failed | {type(e).__name__}: {e}")
        return 1
    finally:
        await trader.close()
    logger.info(
        f"SELL_ONCE | done | received={_sol_change(receipt.native_change)} SOL "
        f"| quoted={format_lamports_as_sol(receipt.out_amount)} SOL "
        f"| closed_accounts={receipt.closed_accounts} | sig={receipt.signature}"
    )
    return 0


async def command_liquidate(args, cfg: BotConfig, keypair) -> int:
    minimum = None
    if args.min_sol is not None:
        try:
            minimum = parse_sol_to_lamports(args.min_sol)
        except ConfigError as e:
            logger.error(f"LIQUIDATE | {e}")
            return 2

    trader = build_one_shot_trader(cfg, keypair)
    try:
        report = await trader.liquidate_wallet(minimum)
    finally:
        await trader.close()
    return 1 if report.failed else 0


COMMANDS = {
    "run": (command_run, True),
    "buy-once": (command_buy_once, True),
    "sell-once": (command_sell_once, False),
    "liquidate": (command_liquidate, False),
}


# =============================================================================
# ENTRY
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="threshold-bot",
        description="Single-pair threshold trading bot (Jupiter / Solana)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
    threshold-bot run          Threshold buy/sell loop (default)
    threshold-bot buy-once     One trade-sized buy of the configured token
    threshold-bot sell-once    Sell the whole position and close the account
    threshold-bot liquidate    Sell every token worth at least MIN_SOL_VALUE
        """,
    )
    parser.add_argument("--settings", default=None, help="TOML settings file ([bot] table)")

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("run", help="Threshold buy/sell loop")
    subparsers.add_parser("buy-once", help="One trade-sized buy")
    parser_sell = subparsers.add_parser("sell-once", help="Sell the whole position")
    parser_sell.add_argument("--keep-account", action="store_true", help="Do not close the emptied token account")
    parser_liq = subparsers.add_parser("liquidate", help="Sell every token to SOL")
    parser_liq.add_argument("--min-sol", default=None, help="Skip tokens worth less than this many SOL")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    command = args.command or "run"
    handler, needs_trade_size = COMMANDS[command]

    cfg, keypair = load_config_or_exit(settings_path=args.settings, require_trade_size=needs_trade_size)
    configure_logging(cfg.log_level, cfg.log_dir)
    _banner(cfg, command)

    try:
        return asyncio.run(handler(args, cfg, keypair))
    except KeyboardInterrupt:
        logger.info("INTERRUPTED")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
