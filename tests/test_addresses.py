import pytest
from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from pumptrade.config.programs import PUMP_PROGRAM_ID, TOKEN_2022_PROGRAM_ID
from pumptrade.curve import addresses
from pumptrade.curve.addresses import derive_address
from pumptrade.errors import AddressDerivationError


def test_known_program_singletons():
    assert str(addresses.global_address()) == "4wTV1YmiEkRvAtNtsSGPtUrqRYQMe5SKy2uB4Jjaxnjf"
    assert str(addresses.event_authority_address()) == "Ce6TQqeHC9p8KetsN6JsjHK7UTZk7nasjjnr7XxXp9F1"


def test_derivation_is_deterministic():
    mint = Pubkey.new_unique()
    first = derive_address([b"bonding-curve", bytes(mint)], PUMP_PROGRAM_ID)
    second = derive_address([b"bonding-curve", bytes(mint)], PUMP_PROGRAM_ID)
    assert first == second
    assert 0 <= first.bump <= 255
    assert addresses.bonding_curve_address(mint) == first.address


def test_distinct_keys_give_distinct_addresses():
    a, b = Pubkey.new_unique(), Pubkey.new_unique()
    assert addresses.bonding_curve_address(a) != addresses.bonding_curve_address(b)
    assert addresses.creator_vault_address(a) != addresses.user_volume_accumulator_address(a)


def test_associated_token_address_matches_spl():
    owner, mint = Pubkey.new_unique(), Pubkey.new_unique()
    assert addresses.associated_token_address(owner, mint) == get_associated_token_address(owner, mint)


def test_token_program_changes_ata():
    owner, mint = Pubkey.new_unique(), Pubkey.new_unique()
    legacy = addresses.associated_token_address(owner, mint)
    token_2022 = addresses.associated_token_address(owner, mint, TOKEN_2022_PROGRAM_ID)
    assert legacy != token_2022


def test_oversized_seed_rejected():
    with pytest.raises(AddressDerivationError):
        derive_address([b"x" * 33], PUMP_PROGRAM_ID)


def test_too_many_seeds_rejected():
    with pytest.raises(AddressDerivationError):
        derive_address([b"s"] * 16, PUMP_PROGRAM_ID)


def test_bump_search_matches_solders():
    mint = Pubkey.new_unique()
    seeds = [b"bonding-curve", bytes(mint)]
    expected, bump = Pubkey.find_program_address(seeds, PUMP_PROGRAM_ID)
    derived = derive_address(seeds, PUMP_PROGRAM_ID)
    assert (derived.address, derived.bump) == (expected, bump)


def test_no_off_curve_bump_is_fatal(monkeypatch):
    monkeypatch.setattr(addresses, "_on_curve", lambda candidate: True)
    with pytest.raises(AddressDerivationError, match="no valid program address"):
        derive_address([b"global"], PUMP_PROGRAM_ID)
