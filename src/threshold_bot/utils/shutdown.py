from __future__ import annotations

import asyncio
import signal
import threading
from typing import Callable, List, Optional

from loguru import logger

_STOP_EVENT = threading.Event()
_CALLBACKS: List[Callable[[], None]] = []


def on_stop(callback: Callable[[], None]) -> None:
    """Run `callback` when a stop is requested (e.g. engine.request_stop)."""
    _CALLBACKS.append(callback)


def request_stop() -> None:
    _STOP_EVENT.set()
    for callback in list(_CALLBACKS):
        callback()


def stopping() -> bool:
    return _STOP_EVENT.is_set()


def reset() -> None:
    _STOP_EVENT.clear()
    _CALLBACKS.clear()


def install_signal_handlers(loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
    # With a loop, the stop is handed to the loop thread so asyncio events wake up.
    def _handler(signum, frame):  # pragma: no cover
        logger.info(f"SHUTDOWN | signal={signal.Signals(signum).name} | stopping after current tick")
        if loop is not None:
            loop.call_soon_threadsafe(request_stop)
        else:
            request_stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            signal.signal(sig, _handler)
        except (ValueError, OSError) as e:
            logger.debug(f"SHUTDOWN | cannot install handler for {sig.name} | {e}")
