import asyncio

import pytest

from fakes import WALLET, FakeExecutor, FakeGateway, FakeJanitor, FakeJupiter, make_config, price_quotes
from threshold_bot.engines.threshold_engine import ThresholdEngine
from threshold_bot.utils import shutdown


@pytest.fixture(autouse=True)
def _clean_stop_state():
    shutdown.reset()
    yield
    shutdown.reset()


def test_request_stop_runs_callbacks():
    called = []
    shutdown.on_stop(lambda: called.append(True))
    assert not shutdown.stopping()
    shutdown.request_stop()
    assert shutdown.stopping()
    assert called == [True]


@pytest.mark.anyio
async def test_stop_request_ends_running_engine():
    gateway = FakeGateway(native_balance=0)
    jupiter = FakeJupiter(price_quotes(buy_out=1, sell_out=1))
    engine = ThresholdEngine(make_config(), WALLET, jupiter, gateway,
                             executor=FakeExecutor(gateway), janitor=FakeJanitor())
    shutdown.on_stop(engine.request_stop)

    task = asyncio.create_task(engine.run())
    await asyncio.sleep(0.05)
    shutdown.request_stop()
    await asyncio.wait_for(task, timeout=1.0)

    assert gateway.closed and jupiter.closed
