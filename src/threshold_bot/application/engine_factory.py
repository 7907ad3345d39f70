"""Factory helpers wiring config into the engine and the one-shot trader."""

from __future__ import annotations

from typing import Tuple

from solders.keypair import Keypair

from ..config.bot_config import BotConfig
from ..engines.execution.jupiter_client import JupiterClient
from ..engines.execution.retry import RetryPolicy
from ..engines.execution.solana_client import SolanaGateway
from ..engines.one_shot import OneShotTrader
from ..engines.threshold_engine import ThresholdEngine


def build_clients(cfg: BotConfig) -> Tuple[JupiterClient, SolanaGateway]:
    jupiter = JupiterClient(
        cfg.jupiter_base_url,
        http_timeout=cfg.http_timeout_seconds,
        retry_policy=RetryPolicy(max_retries=cfg.max_retries),
    )
    return jupiter, SolanaGateway(cfg.rpc_url)


def build_threshold_engine(cfg: BotConfig, keypair: Keypair) -> ThresholdEngine:
    jupiter, gateway = build_clients(cfg)
    return ThresholdEngine(cfg, keypair, jupiter, gateway)


def build_one_shot_trader(cfg: BotConfig, keypair: Keypair) -> OneShotTrader:
    jupiter, gateway = build_clients(cfg)
    return OneShotTrader(cfg, keypair, jupiter, gateway)
