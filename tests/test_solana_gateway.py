from types import SimpleNamespace

import pytest
from solana.rpc.core import RPCException
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction_status import TransactionConfirmationStatus

from fakes import QUOTE_MINT, WALLET
from threshold_bot.config.solana_tokens import USDC, TokenProgram
from threshold_bot.engines.execution.solana_client import SolanaGateway
from threshold_bot.errors import SubmissionError

SIG = str(Signature.new_unique())


def _status(err=None, level=TransactionConfirmationStatus.Confirmed):
    return SimpleNamespace(err=err, confirmation_status=level)


class _FakeRpc:
    def __init__(self, statuses=(), heights=(), token_accounts=(), send_error=None):
        self.statuses = list(statuses)
        self.heights = list(heights)
        self.token_accounts = list(token_accounts)
        self.send_error = send_error
        self.token_opts = []
        self.closed = False

    async def get_signature_statuses(self, sigs):
        return SimpleNamespace(value=[self.statuses.pop(0) if self.statuses else None])

    async def get_block_height(self, commitment=None):
        return SimpleNamespace(value=self.heights.pop(0) if self.heights else 0)

    async def get_token_accounts_by_owner_json_parsed(self, owner, opts, commitment=None):
        self.token_opts.append(opts)
        return SimpleNamespace(value=self.token_accounts)

    async def send_raw_transaction(self, tx_bytes, opts=None):
        if self.send_error is not None:
            raise self.send_error
        return SimpleNamespace(value=Signature.from_string(SIG))

    async def get_balance(self, owner, commitment=None):
        return SimpleNamespace(value=123)

    async def close(self):
        self.closed = True


def _parsed(mint, amount):
    data = SimpleNamespace(parsed={"info": {"mint": mint, "tokenAmount": {"amount": str(amount)}}})
    return SimpleNamespace(pubkey=Pubkey.new_unique(), account=SimpleNamespace(data=data))


def _gateway(rpc):
    return SolanaGateway("http://rpc.test", poll_interval=0, client=rpc)


@pytest.mark.anyio
async def test_confirm_waits_for_confirmed_status():
    rpc = _FakeRpc(
        statuses=[None, _status(level=TransactionConfirmationStatus.Processed), _status()],
        heights=[10, 11],
    )
    result = await _gateway(rpc).confirm_transaction(SIG, Hash.new_unique(), 100)
    assert result.confirmed
    assert result.error is None


@pytest.mark.anyio
async def test_confirm_reports_on_chain_error():
    rpc = _FakeRpc(statuses=[_status(err="InstructionError(1, Custom(6001))")])
    result = await _gateway(rpc).confirm_transaction(SIG, Hash.new_unique(), 100)
    assert not result.confirmed
    assert "6001" in result.error


@pytest.mark.anyio
async def test_confirm_expires_after_last_valid_block_height():
    rpc = _FakeRpc(statuses=[None, None, None], heights=[99, 100, 101])
    result = await _gateway(rpc).confirm_transaction(SIG, Hash.new_unique(), 100)
    assert result.expired
    assert not result.confirmed


@pytest.mark.anyio
async def test_token_accounts_filtered_per_program_and_mint():
    rpc = _FakeRpc(token_accounts=[_parsed(QUOTE_MINT, 600), _parsed(USDC.mint, 5)])
    accounts = await _gateway(rpc).get_token_accounts(WALLET.pubkey(), TokenProgram.EXTENDED, mint=QUOTE_MINT)
    assert [(a.mint, a.amount, a.program) for a in accounts] == [(QUOTE_MINT, 600, TokenProgram.EXTENDED)]
    assert rpc.token_opts[0].program_id == TokenProgram.EXTENDED.program_id


@pytest.mark.anyio
async def test_send_rejection_is_submission_error():
    rpc = _FakeRpc(send_error=RPCException("Transaction simulation failed"))
    with pytest.raises(SubmissionError):
        await _gateway(rpc).send_raw_transaction(b"tx")


@pytest.mark.anyio
async def test_send_returns_signature_and_close_releases_client():
    rpc = _FakeRpc()
    gateway = _gateway(rpc)
    assert await gateway.send_raw_transaction(b"tx") == SIG
    assert await gateway.get_native_balance(WALLET.pubkey()) == 123
    await gateway.close()
    assert rpc.closed
