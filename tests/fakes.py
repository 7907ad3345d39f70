"""In-memory collaborators for engine and one-shot tests."""

from __future__ import annotations

import struct
from typing import Callable, Dict, List, Optional, Union

from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature

from threshold_bot.config.bot_config import BotConfig, ThresholdConfig
from threshold_bot.config.solana_tokens import JUP, WSOL_MINT, TokenProgram
from threshold_bot.engines.execution.jupiter_client import Quote, SwapPlan
from threshold_bot.engines.execution.token_account import TokenAccountBalance
from threshold_bot.ports.chain import AccountSnapshot, ChainGateway, Confirmation, LatestBlockhash


QUOTE_MINT = JUP.mint
WALLET = Keypair.from_seed(bytes([7] * 32))


def make_quote(input_mint: str, output_mint: str, in_amount: int, out_amount: int, slippage_bps: int = 50) -> Quote:
    raw = {
        "inputMint": input_mint,
        "outputMint": output_mint,
        "inAmount": str(in_amount),
        "outAmount": str(out_amount),
        "slippageBps": slippage_bps,
        "priceImpactPct": "0.01",
        "routePlan": [{"swapInfo": {"label": "Fake"}, "percent": 100}],
    }
    return Quote.from_response(raw)


def make_config(
    trade_size: int = 100_000_000,
    buy_at_or_below: int = 1_499_000,
    sell_at_or_above: int = 1_700_000,
    decimals: int = 6,
    priority_fee: int = 1_000_000,
    quote_mint: str = QUOTE_MINT,
) -> BotConfig:
    return BotConfig(
        wallet_pubkey=str(WALLET.pubkey()),
        quote_mint=quote_mint,
        thresholds=ThresholdConfig(
            trade_size_lamports=trade_size,
            slippage_bps=50,
            buy_at_or_below_lamports_per_token=buy_at_or_below,
            sell_at_or_above_lamports_per_token=sell_at_or_above,
            check_interval_ms=5000,
            priority_fee_lamports=priority_fee,
            quote_token_decimals=decimals,
        ),
    )


def token_account_bytes(mint: Pubkey, owner: Pubkey, amount: int, total_len: int = 165) -> bytes:
    head = bytes(mint) + bytes(owner) + struct.pack("<Q", amount)
    return head + bytes(total_len - len(head))


def balance(mint: str, amount: int, program: TokenProgram = TokenProgram.STANDARD,
            address: Optional[Pubkey] = None) -> TokenAccountBalance:
    return TokenAccountBalance(
        address=address or Pubkey.new_unique(),
        mint=mint,
        amount=amount,
        program=program,
    )


class FakeGateway(ChainGateway):
    def __init__(self, native_balance: int = 0):
        self.native_balance = native_balance
        self.token_accounts: Dict[TokenProgram, List[TokenAccountBalance]] = {p: [] for p in TokenProgram}
        self.accounts: Dict[Pubkey, AccountSnapshot] = {}
        self.blockhash = Hash.new_unique()
        self.last_valid_block_height = 1_000
        self.sent: List[bytes] = []
        self.send_error: Optional[Exception] = None
        self.confirmations: List[Confirmation] = []
        self.confirm_calls: List[tuple] = []
        self.on_send: Optional[Callable[[bytes], None]] = None
        self.token_account_queries: List[tuple] = []
        self.closed = False

    def add_token_account(self, account: TokenAccountBalance) -> TokenAccountBalance:
        self.token_accounts[account.program].append(account)
        return account

    def set_holding(self, mint: str, amount: int, program: TokenProgram = TokenProgram.STANDARD):
        self.token_accounts[program] = [a for a in self.token_accounts[program] if a.mint != mint]
        if amount > 0:
            self.add_token_account(balance(mint, amount, program))

    async def get_native_balance(self, owner: Pubkey) -> int:
        return self.native_balance

    async def get_token_accounts(self, owner, program, mint=None):
        self.token_account_queries.append((program, mint))
        return [a for a in self.token_accounts[program] if mint is None or a.mint == mint]

    async def get_account(self, address: Pubkey) -> Optional[AccountSnapshot]:
        return self.accounts.get(address)

    async def get_latest_blockhash(self) -> LatestBlockhash:
        return LatestBlockhash(blockhash=self.blockhash, last_valid_block_height=self.last_valid_block_height)

    async def send_raw_transaction(self, tx_bytes: bytes) -> str:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(tx_bytes)
        if self.on_send is not None:
            self.on_send(tx_bytes)
        return str(Signature.new_unique())

    async def confirm_transaction(self, signature, blockhash, last_valid_block_height) -> Confirmation:
        self.confirm_calls.append((signature, blockhash, last_valid_block_height))
        if self.confirmations:
            outcome = self.confirmations.pop(0)
            return Confirmation(signature=signature, confirmed=outcome.confirmed,
                                error=outcome.error, expired=outcome.expired)
        return Confirmation(signature=signature, confirmed=True)

    async def close(self) -> None:
        self.closed = True


QuoteResponder = Callable[[str, str, int], Union[Quote, Exception]]


class FakeJupiter:
    """Quotes at a fixed price unless a responder says otherwise."""

    def __init__(self, responder: QuoteResponder):
        self.responder = responder
        self.quote_calls: List[tuple] = []
        self.plan_calls: List[tuple] = []
        self.plan_error: Optional[Exception] = None
        self.closed = False

    async def get_quote(self, input_mint, output_mint, amount, slippage_bps):
        self.quote_calls.append((input_mint, output_mint, amount, slippage_bps))
        result = self.responder(input_mint, output_mint, amount)
        if isinstance(result, Exception):
            raise result
        return result

    async def plan_swap(self, quote, user_pubkey, priority_fee_lamports=None):
        self.plan_calls.append((quote, user_pubkey, priority_fee_lamports))
        if self.plan_error is not None:
            raise self.plan_error
        return SwapPlan(swap_transaction=b"unsigned", last_valid_block_height=1_000)

    async def close(self):
        self.closed = True


class FakeExecutor:
    """Settles balances on the gateway as if the swap landed."""

    def __init__(self, gateway: FakeGateway):
        self.gateway = gateway
        self.executed: List[SwapPlan] = []
        self.error: Optional[Exception] = None
        self.settle: Optional[Callable[[], None]] = None

    async def execute(self, plan, signer) -> str:
        if self.error is not None:
            raise self.error
        self.executed.append(plan)
        if self.settle is not None:
            self.settle()
        return f"sig{len(self.executed)}"


class FakeJanitor:
    def __init__(self, result: bool = True):
        self.result = result
        self.calls: List[tuple] = []

    async def close_if_empty(self, token_account, program, owner) -> bool:
        self.calls.append((token_account, program, owner))
        return self.result


def price_quotes(buy_out: int, sell_out: int) -> QuoteResponder:
    """Buy quotes return `buy_out` units for any input; sell quotes return `sell_out` lamports."""
    def _respond(input_mint, output_mint, amount):
        if input_mint == WSOL_MINT:
            return make_quote(input_mint, output_mint, amount, buy_out)
        return make_quote(input_mint, output_mint, amount, sell_out)
    return _respond
