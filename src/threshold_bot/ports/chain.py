from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from solders.hash import Hash
from solders.pubkey import Pubkey

from ..config.solana_tokens import TokenProgram
from ..engines.execution.token_account import TokenAccountBalance


@dataclass(frozen=True)
class AccountSnapshot:
    """Raw account as stored on chain."""

    address: Pubkey
    owner: Pubkey
    lamports: int
    data: bytes


@dataclass(frozen=True)
class LatestBlockhash:
    blockhash: Hash
    last_valid_block_height: int


@dataclass(frozen=True)
class Confirmation:
    """Outcome of a confirmation poll. `expired` means no status inside the window."""

    signature: str
    confirmed: bool
    error: Optional[str] = None
    expired: bool = False


class ChainGateway(ABC):
    """Balance, account and transaction access to the chain."""

    @abstractmethod
    async def get_native_balance(self, owner: Pubkey) -> int:
        ...

    @abstractmethod
    async def get_token_accounts(
        self,
        owner: Pubkey,
        program: TokenProgram,
        mint: Optional[str] = None,
    ) -> List[TokenAccountBalance]:
        ...

    @abstractmethod
    async def get_account(self, address: Pubkey) -> Optional[AccountSnapshot]:
        ...

    @abstractmethod
    async def get_latest_blockhash(self) -> LatestBlockhash:
        ...

    @abstractmethod
    async def send_raw_transaction(self, tx_bytes: bytes) -> str:
        ...

    @abstractmethod
    async def confirm_transaction(
        self,
        signature: str,
        blockhash: Hash,
        last_valid_block_height: int,
    ) -> Confirmation:
        ...

    async def close(self) -> None:
        return None
