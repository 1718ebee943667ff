"""Domain enumerations for the provenance escrow.

Phase and Stage values are integers because they are hashed into binding
tags and exported in snapshots with the same numbering as the on-chain
contract. Event and backend types are strings.
"""

import enum


class Phase(enum.IntEnum):
    """Lifecycle phases of a product escrow.

    Transitions are enforced by the PhaseMachine guard.
    See domain/state_machine.py for the transition table.
    """

    LISTED = 0
    PURCHASED = 1
    ORDER_CONFIRMED = 2
    BOUND = 3
    DELIVERED = 4
    EXPIRED = 5


class Stage(enum.IntEnum):
    """Lifecycle stage a Verifiable Credential is anchored to."""

    LISTING = 0
    PURCHASE = 1
    DELIVERY = 2


class EventType(enum.StrEnum):
    """Types of events appended to an escrow's event log.

    Every successful state change produces at least one event.
    """

    # Factory events
    PRODUCT_CREATED = "PRODUCT_CREATED"
    IMPLEMENTATION_UPDATED = "IMPLEMENTATION_UPDATED"
    FACTORY_PAUSED = "FACTORY_PAUSED"
    FACTORY_UNPAUSED = "FACTORY_UNPAUSED"

    # Listing
    PUBLIC_PRICE_SET = "PUBLIC_PRICE_SET"
    PRICE_COMMITMENT_SET = "PRICE_COMMITMENT_SET"

    # Purchase / order
    PURCHASED = "PURCHASED"
    ORDER_CONFIRMED = "ORDER_CONFIRMED"
    PHASE_CHANGED = "PHASE_CHANGED"
    VC_UPDATED = "VC_UPDATED"

    # Transport
    TRANSPORTER_CREATED = "TRANSPORTER_CREATED"
    SECURITY_DEPOSIT = "SECURITY_DEPOSIT"
    BID_WITHDRAWN = "BID_WITHDRAWN"
    TRANSPORTER_SELECTED = "TRANSPORTER_SELECTED"

    # Settlement
    DELIVERY_CONFIRMED = "DELIVERY_CONFIRMED"
    FUNDS_TRANSFERRED = "FUNDS_TRANSFERRED"
    PENALTY_APPLIED = "PENALTY_APPLIED"

    # Timeouts
    SELLER_TIMEOUT = "SELLER_TIMEOUT"
    BID_TIMEOUT = "BID_TIMEOUT"
    DELIVERY_TIMEOUT = "DELIVERY_TIMEOUT"


class ProverType(enum.StrEnum):
    """Proof backends selectable through ProofBackendFactory."""

    HTTP = "http"
    SIMULATED = "simulated"
