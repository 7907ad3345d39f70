import pytest
from solders.pubkey import Pubkey

from threshold_bot.engines.execution.token_account import (
    AMOUNT_OFFSET,
    MIN_ACCOUNT_LEN,
    decode_amount,
    decode_token_account,
)
from threshold_bot.errors import AccountLayoutError

MINT = Pubkey.from_string("JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN")
OWNER = Pubkey.from_string("9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM")

# 400_000 units = 0x061A80, little-endian at bytes 64..72
AMOUNT_BYTES = bytes([0x80, 0x1A, 0x06, 0x00, 0x00, 0x00, 0x00, 0x00])

# A Token-2022 account: 165-byte base, account-type byte, then an extension TLV.
TOKEN_2022_FIXTURE = (
    bytes(MINT)
    + bytes(OWNER)
    + AMOUNT_BYTES
    + bytes(4) + bytes(32)        # delegate (none)
    + bytes([1])                  # state = initialized
    + bytes(4) + bytes(8)         # is_native (none)
    + bytes(8)                    # delegated_amount
    + bytes(4) + bytes(32)        # close_authority (none)
    + bytes([2])                  # account type = Account
    + bytes([7, 0, 0, 0])         # extension: ImmutableOwner, length 0
)


def test_layout_offsets():
    assert AMOUNT_OFFSET == 64
    assert MIN_ACCOUNT_LEN == 72
    assert len(TOKEN_2022_FIXTURE) == 170


def test_decode_amount_from_extended_account_fixture():
    assert decode_amount(TOKEN_2022_FIXTURE) == 400_000


def test_decode_full_record():
    record = decode_token_account(TOKEN_2022_FIXTURE)
    assert record.mint == MINT
    assert record.owner == OWNER
    assert record.amount == 400_000


def test_exactly_72_bytes_is_enough():
    assert decode_amount(TOKEN_2022_FIXTURE[:72]) == 400_000


def test_max_u64():
    data = bytes(64) + b"\xff" * 8
    assert decode_amount(data) == 2**64 - 1


@pytest.mark.parametrize("length", [0, 32, 64, 71])
def test_short_data_raises(length):
    with pytest.raises(AccountLayoutError):
        decode_amount(TOKEN_2022_FIXTURE[:length])
