from decimal import Decimal

import pytest
from solders.pubkey import Pubkey

from pumptrade.domain.models import Side, TradeRequest
from pumptrade.errors import InputValidationError


def test_request_coerces_amount_to_decimal():
    mint = Pubkey.new_unique()
    request = TradeRequest(Side.SELL, str(mint), 2.5, 100)
    assert request.amount == Decimal("2.5")
    assert request.mint_pubkey == mint


@pytest.mark.parametrize("mint", [123, None, b"\x00" * 32, "not-a-mint"])
def test_request_rejects_malformed_mint(mint):
    with pytest.raises(InputValidationError, match="invalid mint address"):
        TradeRequest(Side.BUY, mint, Decimal("1"))


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1"), Decimal("NaN"), Decimal("Infinity")])
def test_request_rejects_non_positive_amount(amount):
    with pytest.raises(InputValidationError):
        TradeRequest(Side.BUY, str(Pubkey.new_unique()), amount)


def test_request_rejects_unknown_side():
    with pytest.raises(InputValidationError, match="unknown side"):
        TradeRequest("BUY", str(Pubkey.new_unique()), Decimal("1"))
