"""Configuration: token registry and boot-time settings."""

from .bot_config import (
    BotConfig,
    ThresholdConfig,
    format_lamports_as_sol,
    load_config,
    load_config_or_exit,
    load_keypair,
    parse_sol_to_lamports,
)
from .solana_tokens import WSOL_MINT, SolanaToken, TokenProgram, get_token, resolve_mint

__all__ = [
    "BotConfig",
    "ThresholdConfig",
    "format_lamports_as_sol",
    "load_config",
    "load_config_or_exit",
    "load_keypair",
    "parse_sol_to_lamports",
    "WSOL_MINT",
    "SolanaToken",
    "TokenProgram",
    "get_token",
    "resolve_mint",
]
