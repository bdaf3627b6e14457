"""
Event Parser Tests.

============================================================
PURPOSE
============================================================
Tests for classification and normalization of raw events.

TEST CATEGORIES:
- Transfer direction and counterparty
- Mint, burn and clawback mapping
- Topic shape validation
- SAC asset metadata
- Fee events and refunds
- Generic contract events

============================================================
"""

import pytest

from soroban_activity.codec import strkey
from soroban_activity.codec.scval import (
    ScAddress,
    ScI128,
    ScMap,
    ScString,
    ScSymbol,
    ScU32,
    ScU64,
    ScVec,
)
from soroban_activity.models import Direction, EventType
from soroban_activity.parsers import (
    amount_from_scval,
    extract_sac_metadata,
    get_event_type,
    parse_activity_event,
    parse_contract_event,
    parse_event_value,
    parse_fee_event,
    parse_token_event,
)


def addr(address):
    return ScAddress.from_strkey(address)


# ============================================================
# TRANSFERS
# ============================================================

class TestTransfer:
    """Tests for transfer normalization."""

    def test_sent_transfer(self, make_event, account_a, account_b, tx_hash):
        """Test a transfer from the target is SENT with the recipient as counterparty."""
        raw = make_event(
            [ScSymbol("transfer"), addr(account_a), addr(account_b)],
            ScI128.from_int(10_000_000),
            ledger=1000,
        )

        event = parse_token_event(raw, account_a)

        assert event.type == EventType.TRANSFER
        assert event.amount == 10_000_000
        assert event.from_address == account_a
        assert event.to_address == account_b
        assert event.direction == Direction.SENT
        assert event.counterparty == account_b
        assert event.ledger == 1000
        assert event.tx_hash == tx_hash

    def test_received_transfer(self, make_event, account_a, account_b):
        """Test a transfer to the target is RECEIVED with the sender as counterparty."""
        raw = make_event(
            [ScSymbol("transfer"), addr(account_b), addr(account_a)],
            ScI128.from_int(5),
        )

        event = parse_token_event(raw, account_a)

        assert event.direction == Direction.RECEIVED
        assert event.counterparty == account_b

    def test_no_target_leaves_direction_unset(self, make_event, account_a, account_b):
        """Test contract-scoped views get no direction."""
        raw = make_event([ScSymbol("transfer"), addr(account_a), addr(account_b)], ScI128.from_int(1))

        event = parse_token_event(raw)

        assert event.direction is None
        assert event.counterparty is None

    def test_non_address_topic_dropped(self, make_event, account_a):
        """Test a string at an address position drops the event."""
        raw = make_event(
            [ScSymbol("transfer"), addr(account_a), ScString("not-an-address")],
            ScI128.from_int(1),
        )

        assert parse_token_event(raw, account_a) is None

    def test_missing_topic_dropped(self, make_event, account_a):
        """Test a truncated topic list drops the event."""
        raw = make_event([ScSymbol("transfer"), addr(account_a)], ScI128.from_int(1))

        assert parse_token_event(raw, account_a) is None

    def test_muxed_map_amount(self, make_event, account_a, account_b):
        """Test amounts inside an {amount, to_muxed_id} map are extracted."""
        value = ScMap((
            (ScSymbol("amount"), ScI128.from_int(777)),
            (ScSymbol("to_muxed_id"), ScU64(42)),
        ))
        raw = make_event([ScSymbol("transfer"), addr(account_a), addr(account_b)], value)

        assert parse_token_event(raw, account_a).amount == 777

    def test_negative_amount_kept(self, make_event, account_a, account_b):
        """Test a negative token amount is kept as its magnitude."""
        raw = make_event([ScSymbol("transfer"), addr(account_a), addr(account_b)], ScI128.from_int(-1))

        event = parse_token_event(raw, account_a)

        assert event is not None
        assert event.amount == 1
        assert event.direction == Direction.SENT

    def test_transfer_to_liquidity_pool(self, make_event, account_a):
        """Test a transfer into a pool keeps the L... recipient."""
        pool = strkey.encode_liquidity_pool(bytes([0x5A]) * 32)
        raw = make_event([ScSymbol("transfer"), addr(account_a), addr(pool)], ScI128.from_int(250))

        event = parse_token_event(raw, account_a)

        assert event.to_address == pool
        assert event.to_address.startswith("L")
        assert event.counterparty == pool
        assert event.amount == 250

    def test_transfer_to_muxed_account(self, make_event, account_a):
        """Test a muxed recipient renders as an M... address."""
        muxed = strkey.encode_muxed_account(bytes([0xBB]) * 32, 9001)
        raw = make_event([ScSymbol("transfer"), addr(account_a), addr(muxed)], ScI128.from_int(3))

        event = parse_token_event(raw, muxed)

        assert event.to_address == muxed
        assert event.direction == Direction.RECEIVED
        assert event.counterparty == account_a

    def test_transfer_from_claimable_balance(self, make_event, account_b):
        """Test a claimable balance sender renders as a B... address."""
        balance = strkey.encode_claimable_balance(bytes([0x0C]) * 32)
        raw = make_event([ScSymbol("transfer"), addr(balance), addr(account_b)], ScI128.from_int(8))

        event = parse_token_event(raw, account_b)

        assert event.from_address == balance
        assert event.from_address.startswith("B")
        assert event.direction == Direction.RECEIVED

    def test_value_wrapped_in_xdr_dict(self, make_event, account_a, account_b):
        """Test the {"xdr": ...} value shape is accepted."""
        raw = make_event([ScSymbol("transfer"), addr(account_a), addr(account_b)], ScI128.from_int(9))
        raw["value"] = {"xdr": raw["value"]}

        assert parse_token_event(raw, account_a).amount == 9


# ============================================================
# MINT / BURN / CLAWBACK
# ============================================================

class TestOtherTokenEvents:
    """Tests for mint, burn and clawback mapping."""

    def test_mint(self, make_event, account_a, account_c):
        """Test mint is RECEIVED from the admin."""
        raw = make_event([ScSymbol("mint"), addr(account_c), addr(account_a)], ScI128.from_int(100))

        event = parse_token_event(raw, account_a)

        assert event.type == EventType.MINT
        assert event.from_address == account_c
        assert event.to_address == account_a
        assert event.direction == Direction.RECEIVED
        assert event.counterparty == account_c

    def test_burn(self, make_event, account_a):
        """Test burn is SENT with no recipient."""
        raw = make_event([ScSymbol("burn"), addr(account_a)], ScI128.from_int(3))

        event = parse_token_event(raw, account_a)

        assert event.type == EventType.BURN
        assert event.from_address == account_a
        assert event.to_address is None
        assert event.direction == Direction.SENT
        assert event.counterparty is None

    def test_clawback(self, make_event, account_a, account_c):
        """Test clawback moves funds from the source to the admin."""
        raw = make_event([ScSymbol("clawback"), addr(account_c), addr(account_a)], ScI128.from_int(8))

        event = parse_token_event(raw, account_a)

        assert event.type == EventType.CLAWBACK
        assert event.from_address == account_a
        assert event.to_address == account_c
        assert event.direction == Direction.SENT
        assert event.counterparty == account_c

    @pytest.mark.parametrize("symbol", ["approve", "set_admin", "fee"])
    def test_non_token_symbols_ignored(self, make_event, account_a, account_b, symbol):
        """Test unknown and fee symbols are not token events."""
        raw = make_event([ScSymbol(symbol), addr(account_a), addr(account_b)], ScI128.from_int(1))

        assert parse_token_event(raw, account_a) is None

    def test_type_must_be_symbol(self, make_event, account_a, account_b):
        """Test a string 'transfer' in topic[0] is not classified."""
        raw = make_event([ScString("transfer"), addr(account_a), addr(account_b)], ScI128.from_int(1))

        assert parse_token_event(raw, account_a) is None

    def test_undecodable_topics(self, make_event, account_a):
        """Test garbage topics are dropped without raising."""
        raw = make_event([], raw_topics=["!!!", "AAAA"])

        assert parse_token_event(raw, account_a) is None


# ============================================================
# SAC METADATA
# ============================================================

class TestSacMetadata:
    """Tests for the optional asset topic."""

    def test_credit_asset(self, make_event, account_a, account_b):
        """Test 'CODE:ISSUER' yields the code as symbol and full string as name."""
        asset = f"USDC:{account_b}"
        raw = make_event(
            [ScSymbol("transfer"), addr(account_a), addr(account_b), ScString(asset)],
            ScI128.from_int(1),
        )

        event = parse_token_event(raw, account_a)

        assert event.sac_symbol == "USDC"
        assert event.sac_name == asset

    def test_native_asset(self):
        """Test 'native' maps to XLM."""
        assert extract_sac_metadata(ScString("native")) == ("XLM", "native")

    def test_non_string_topic(self, account_a):
        """Test an address in the last position carries no metadata."""
        assert extract_sac_metadata(addr(account_a)) is None
        assert extract_sac_metadata(ScString("plain")) is None

    def test_custom_token_has_no_metadata(self, make_event, account_a, account_b):
        """Test three-topic events leave SAC fields unset."""
        raw = make_event([ScSymbol("transfer"), addr(account_a), addr(account_b)], ScI128.from_int(1))

        event = parse_token_event(raw, account_a)

        assert event.sac_symbol is None
        assert event.sac_name is None


# ============================================================
# FEES
# ============================================================

class TestFeeEvents:
    """Tests for fee normalization."""

    def test_fee_charge(self, make_event, account_a):
        """Test a positive fee is a charge."""
        raw = make_event([ScSymbol("fee"), addr(account_a)], ScI128.from_int(100))

        event = parse_fee_event(raw, account_a)

        assert event.type == EventType.FEE
        assert event.amount == 100
        assert event.is_refund is False
        assert event.direction == Direction.SENT
        assert event.from_address == account_a

    def test_fee_refund(self, make_event, account_a):
        """Test a negative fee is a refund with a positive magnitude."""
        raw = make_event([ScSymbol("fee"), addr(account_a)], ScI128.from_int(-50))

        event = parse_fee_event(raw, account_a)

        assert event.amount == 50
        assert event.is_refund is True
        assert event.direction == Direction.RECEIVED

    def test_activity_router(self, make_event, account_a, account_b):
        """Test parse_activity_event routes on the type symbol."""
        fee = make_event([ScSymbol("fee"), addr(account_a)], ScI128.from_int(10), event_id="fee-1")
        transfer = make_event(
            [ScSymbol("transfer"), addr(account_b), addr(account_a)],
            ScI128.from_int(20),
            event_id="t-1",
        )
        other = make_event([ScSymbol("approve"), addr(account_a)], ScI128.from_int(1))

        assert parse_activity_event(fee, account_a).type == EventType.FEE
        assert parse_activity_event(transfer, account_a).direction == Direction.RECEIVED
        assert parse_activity_event(other, account_a) is None


# ============================================================
# VALUES & GENERIC EVENTS
# ============================================================

class TestValues:
    """Tests for value helpers and generic events."""

    def test_parse_event_value_defaults_to_zero(self):
        """Test missing or undecodable values read as 0."""
        assert parse_event_value(None) == 0
        assert parse_event_value("") == 0
        assert parse_event_value("@@@") == 0

    def test_amount_from_non_integer(self):
        """Test non-integer payloads have no amount."""
        assert amount_from_scval(ScString("1")) is None
        assert amount_from_scval(ScU32(5)) == 5

    def test_get_event_type(self):
        """Test the type symbol is read from topic[0]."""
        assert get_event_type([ScSymbol("mint")]) == "mint"
        assert get_event_type([]) is None
        assert get_event_type([None]) is None

    def test_contract_event(self, make_event, account_a, token_contract):
        """Test generic events decode topics and values to plain values."""
        raw = make_event(
            [ScSymbol("swap"), addr(account_a), ScU32(3)],
            ScVec((ScI128.from_int(1), ScI128.from_int(2))),
        )

        event = parse_contract_event(raw)

        assert event.event_type == "swap"
        assert event.topics == [account_a, 3]
        assert event.value == [1, 2]
        assert event.contract_id == token_contract

    def test_contract_event_without_topics(self, make_event):
        """Test an event with no topics is typed 'unknown'."""
        event = parse_contract_event(make_event([]))

        assert event.event_type == "unknown"
        assert event.topics == []
        assert event.value is None
