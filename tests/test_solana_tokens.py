import pytest
from solders.pubkey import Pubkey

from threshold_bot.config.solana_tokens import TokenProgram, find_by_mint, get_token, resolve_mint


def test_solana_token_mints_are_correct_for_jupiter_universe() -> None:
    assert get_token("SOL").mint == "So11111111111111111111111111111111111111112"
    assert get_token("USDC").mint == "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
    assert get_token("JUP").mint == "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN"
    assert get_token("BONK").mint == "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"
    assert get_token("TRUMP").mint == "6p6xgHyF7AeE6TZkSmFsko444wqoP15icUSqi2jfGiPN"


def test_get_token_is_case_insensitive() -> None:
    assert get_token("jup").mint == get_token("JUP").mint


def test_unknown_symbol_raises() -> None:
    with pytest.raises(KeyError):
        get_token("NOPE")


def test_resolve_mint_accepts_symbol_or_address() -> None:
    assert resolve_mint("bonk") == get_token("BONK").mint
    custom = "7GCihgDB8fe6KNjn2MYtkzZcRjQy3t9GHdC8uHYmW2hr"
    assert resolve_mint(f"  {custom} ") == custom
    with pytest.raises(ValueError):
        resolve_mint("not-a-mint")


def test_find_by_mint() -> None:
    assert find_by_mint(get_token("WIF").mint).decimals == 6
    assert find_by_mint("7GCihgDB8fe6KNjn2MYtkzZcRjQy3t9GHdC8uHYmW2hr") is None


def test_token_programs() -> None:
    assert str(TokenProgram.STANDARD.program_id) == "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
    assert str(TokenProgram.EXTENDED.program_id) == "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"
    assert TokenProgram.from_owner(TokenProgram.EXTENDED.program_id) is TokenProgram.EXTENDED
    assert TokenProgram.from_owner(Pubkey.default()) is None
    assert TokenProgram.EXTENDED.label == "Token-2022"
