"""
Event Query Filters - getEvents filter construction.

All builders are pure. Patterns inside one filter are OR'd by the node.

Invariants:
- Fee filters always carry exactly one contract id (the native asset
  contract). An unrestricted fee query is too expensive for the node.
- Address-anchored token filters never carry a contract-id restriction.
"""

from soroban_activity.codec.scval import ScAddress, ScSymbol, encode_scval
from soroban_activity.exceptions import DecodeError, InvalidAddressError
from soroban_activity.models import EventFilter, EventType


WILDCARD = "*"
MULTI_WILDCARD = "**"


def symbol_topic(name: str) -> str:
    return encode_scval(ScSymbol(name))


def address_topic(address: str) -> str:
    try:
        return encode_scval(ScAddress.from_strkey(address))
    except DecodeError as e:
        raise InvalidAddressError(f"Invalid address: {address}", address=address) from e


def _symbols() -> dict[EventType, str]:
    return {event_type: symbol_topic(event_type.value) for event_type in EventType}


def build_token_event_filters(target_address: str) -> EventFilter:
    """
    Token events touching one address, any contract.

    The trailing "**" tolerates the optional 4th asset topic on SAC events.
    """
    sym = _symbols()
    target = address_topic(target_address)
    return EventFilter(
        topics=(
            (sym[EventType.TRANSFER], target, WILDCARD, MULTI_WILDCARD),  # transfers from
            (sym[EventType.TRANSFER], WILDCARD, target, MULTI_WILDCARD),  # transfers to
            (sym[EventType.MINT], WILDCARD, target, MULTI_WILDCARD),      # mint to
            (sym[EventType.BURN], target, MULTI_WILDCARD),                # burn from
            (sym[EventType.CLAWBACK], WILDCARD, target, MULTI_WILDCARD),  # clawback from
        ),
    )


def build_fee_event_filters(target_address: str, fee_contract_id: str) -> EventFilter:
    """Fee events charged to one address, restricted to the fee-emitting contract."""
    if not fee_contract_id:
        raise ValueError("Fee filters require the native asset contract id")
    # Validates the contract id shape
    address_topic(fee_contract_id)
    return EventFilter(
        topics=((symbol_topic(EventType.FEE.value), address_topic(target_address)),),
        contract_ids=(fee_contract_id,),
    )


def _all_token_patterns() -> tuple[tuple[str, ...], ...]:
    sym = _symbols()
    return (
        (sym[EventType.TRANSFER], WILDCARD, WILDCARD, MULTI_WILDCARD),
        (sym[EventType.MINT], WILDCARD, WILDCARD, MULTI_WILDCARD),
        (sym[EventType.BURN], WILDCARD, MULTI_WILDCARD),
        (sym[EventType.CLAWBACK], WILDCARD, WILDCARD, MULTI_WILDCARD),
    )


def build_token_activity_filters(contract_id: str) -> EventFilter:
    """All token events of one contract."""
    address_topic(contract_id)
    return EventFilter(topics=_all_token_patterns(), contract_ids=(contract_id,))


def build_network_activity_filters() -> EventFilter:
    """All token events network-wide."""
    return EventFilter(topics=_all_token_patterns())


def build_transfers_only_filters() -> EventFilter:
    """Narrower network-wide filter used when the broad one hits the processing limit."""
    return EventFilter(
        topics=((symbol_topic(EventType.TRANSFER.value), WILDCARD, WILDCARD, MULTI_WILDCARD),),
    )


def build_contract_filters(contract_id: str) -> EventFilter:
    """Every event emitted by one contract, no topic restriction."""
    address_topic(contract_id)
    return EventFilter(contract_ids=(contract_id,))
