"""
Event Parsers - classify raw getEvents records and normalize them.

Token events must match the expected topic shape exactly:

    transfer: [symbol, from: Address, to: Address, (asset: String)?]
    mint:     [symbol, admin: Address, to: Address, (asset: String)?]
    burn:     [symbol, from: Address, (asset: String)?]
    clawback: [symbol, admin: Address, from: Address, (asset: String)?]

Anything that claims one of these types but has a non-address value at a
required position is dropped, never guessed at.
"""

import logging
from typing import Any, Optional

from soroban_activity.codec.scval import (
    INTEGER_TYPES,
    ScAddress,
    ScMap,
    ScString,
    ScSymbol,
    ScVal,
    to_native,
    try_decode_scval,
    type_name,
)
from soroban_activity.exceptions import NonConformingEventError
from soroban_activity.models import ActivityEvent, ContractEvent, Direction, EventType


logger = logging.getLogger(__name__)


NATIVE_ASSET_NAME = "native"
NATIVE_SYMBOL = "XLM"

# Required address positions per event type
ADDRESS_POSITIONS: dict[EventType, tuple[int, ...]] = {
    EventType.TRANSFER: (1, 2),
    EventType.MINT: (1, 2),
    EventType.BURN: (1,),
    EventType.CLAWBACK: (1, 2),
}


# ─────────────────────────────────────────────────────────────
# Field helpers
# ─────────────────────────────────────────────────────────────


def parse_topics(topic_xdrs: Optional[list[str]]) -> list[Optional[ScVal]]:
    """Decode each topic; undecodable topics become None."""
    return [try_decode_scval(topic) for topic in (topic_xdrs or [])]


def is_address(value: Optional[ScVal]) -> bool:
    return isinstance(value, ScAddress)


def raw_value_xdr(event: dict[str, Any]) -> Optional[str]:
    """The event value field; older nodes wrap it as {"xdr": ...}."""
    value = event.get("value")
    if isinstance(value, dict):
        return value.get("xdr")
    return value


def extract_sac_metadata(topic: Optional[ScVal]) -> Optional[tuple[str, str]]:
    """
    (symbol, name) from a SAC asset topic.

    "USDC:GA5Z..." -> ("USDC", "USDC:GA5Z..."), "native" -> ("XLM", "native").
    """
    if not isinstance(topic, ScString):
        return None
    asset = topic.value
    if ":" in asset:
        return asset.split(":", 1)[0], asset
    if asset == NATIVE_ASSET_NAME:
        return NATIVE_SYMBOL, NATIVE_ASSET_NAME
    return None


def amount_from_scval(value: Optional[ScVal]) -> Optional[int]:
    """
    Integer amount from a value payload.

    Supports a direct integer and a map with an `amount` entry (muxed
    transfers carry {amount, to_muxed_id}).
    """
    if isinstance(value, INTEGER_TYPES):
        return value.value
    if isinstance(value, ScMap):
        return amount_from_scval(value.get("amount"))
    return None


def parse_event_value(value_xdr: Optional[str]) -> int:
    """Signed amount of an event value, 0 when absent or undecodable."""
    amount = amount_from_scval(try_decode_scval(value_xdr))
    return amount if amount is not None else 0


def get_event_type(topics: list[Optional[ScVal]]) -> Optional[str]:
    """The event-type symbol in topic[0], if any."""
    if not topics or not isinstance(topics[0], ScSymbol):
        return None
    return topics[0].value


def _require_address(
    topics: list[Optional[ScVal]],
    index: int,
    event_type: EventType,
    event_id: Optional[str],
) -> str:
    topic = topics[index] if index < len(topics) else None
    if not isinstance(topic, ScAddress):
        raise NonConformingEventError(
            f"{event_type.value} topic[{index}] is {type_name(topic)}, expected address",
            event_id=event_id,
            event_type=event_type.value,
            topic_index=index,
        )
    return topic.to_strkey()


# ─────────────────────────────────────────────────────────────
# Token events
# ─────────────────────────────────────────────────────────────


def parse_token_event(
    event: dict[str, Any],
    target_address: Optional[str] = None,
) -> Optional[ActivityEvent]:
    """
    Normalize a transfer/mint/burn/clawback event.

    Args:
        event: Raw getEvents record
        target_address: Address whose perspective sets `direction`

    Returns:
        ActivityEvent, or None for unrecognized or non-conforming events
    """
    topics = parse_topics(event.get("topic"))
    symbol = get_event_type(topics)
    if symbol is None:
        return None

    try:
        event_type = EventType(symbol)
    except ValueError:
        return None
    if event_type not in ADDRESS_POSITIONS:
        return None

    event_id = event.get("id")
    try:
        addresses = [
            _require_address(topics, index, event_type, event_id)
            for index in ADDRESS_POSITIONS[event_type]
        ]
    except NonConformingEventError as e:
        logger.debug(f"[parser] Dropping non-conforming event {event_id}: {e.message}")
        return None

    amount = parse_event_value(raw_value_xdr(event))
    if amount < 0:
        logger.debug(f"[parser] Keeping {event_type.value} event {event_id} with negative amount {amount} as its magnitude")
        amount = -amount

    sac = extract_sac_metadata(topics[-1])

    base = dict(
        id=event_id or "",
        tx_hash=event.get("txHash", ""),
        contract_id=event.get("contractId", ""),
        ledger=int(event.get("ledger", 0)),
        timestamp=event.get("ledgerClosedAt"),
        type=event_type,
        amount=amount,
        sac_symbol=sac[0] if sac else None,
        sac_name=sac[1] if sac else None,
        in_successful_contract_call=event.get("inSuccessfulContractCall"),
    )

    if event_type == EventType.TRANSFER:
        from_address, to_address = addresses
        direction = None
        counterparty = None
        if target_address is not None:
            direction = Direction.SENT if from_address == target_address else Direction.RECEIVED
            counterparty = to_address if direction == Direction.SENT else from_address
        return ActivityEvent(
            **base,
            from_address=from_address,
            to_address=to_address,
            direction=direction,
            counterparty=counterparty,
        )

    if event_type == EventType.MINT:
        admin, recipient = addresses
        return ActivityEvent(
            **base,
            from_address=admin,
            to_address=recipient,
            direction=Direction.RECEIVED,
            counterparty=admin,
        )

    if event_type == EventType.BURN:
        (from_address,) = addresses
        return ActivityEvent(
            **base,
            from_address=from_address,
            to_address=None,
            direction=Direction.SENT,
            counterparty=None,
        )

    # clawback: admin takes funds from source
    admin, source = addresses
    return ActivityEvent(
        **base,
        from_address=source,
        to_address=admin,
        direction=Direction.SENT,
        counterparty=admin,
    )


def parse_fee_event(event: dict[str, Any], address: str) -> ActivityEvent:
    """
    Normalize a fee event. Always attributed to `address`.

    A negative underlying amount is a refund.
    """
    value = parse_event_value(raw_value_xdr(event))
    is_refund = value < 0
    return ActivityEvent(
        id=event.get("id", ""),
        tx_hash=event.get("txHash", ""),
        contract_id=event.get("contractId", ""),
        ledger=int(event.get("ledger", 0)),
        timestamp=event.get("ledgerClosedAt"),
        type=EventType.FEE,
        amount=abs(value),
        from_address=address,
        direction=Direction.RECEIVED if is_refund else Direction.SENT,
        is_refund=is_refund,
        in_successful_contract_call=event.get("inSuccessfulContractCall"),
    )


def parse_activity_event(event: dict[str, Any], address: str) -> Optional[ActivityEvent]:
    """Route an address-activity event to the fee or token parser by its type symbol."""
    topics = parse_topics((event.get("topic") or [])[:1])
    symbol = get_event_type(topics)
    if symbol is None:
        return None
    if symbol == EventType.FEE.value:
        return parse_fee_event(event, address)
    return parse_token_event(event, address)


# ─────────────────────────────────────────────────────────────
# Generic contract events
# ─────────────────────────────────────────────────────────────


def _display_value(value: Optional[ScVal]) -> Any:
    if value is None:
        return None
    try:
        return to_native(value)
    except TypeError:
        return value.type.name.lower()


def parse_contract_event(event: dict[str, Any]) -> ContractEvent:
    """Decode any contract event for invocation display."""
    topics = [_display_value(topic) for topic in parse_topics(event.get("topic"))]

    event_type = topics[0] if topics and topics[0] is not None else "unknown"
    value = _display_value(try_decode_scval(raw_value_xdr(event)))

    return ContractEvent(
        id=event.get("id", ""),
        tx_hash=event.get("txHash", ""),
        contract_id=event.get("contractId", ""),
        ledger=int(event.get("ledger", 0)),
        timestamp=event.get("ledgerClosedAt"),
        type=event.get("type", "contract"),
        event_type=event_type if isinstance(event_type, str) else str(event_type),
        topics=topics[1:],
        value=value,
        in_successful_contract_call=event.get("inSuccessfulContractCall"),
    )
