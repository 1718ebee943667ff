"""ProductEscrow — one escrow instance per listed product.

The instance custodies the buyer's payment, transporter security deposits
and the delivery fee the seller pays when binding a transporter. Funds sit
in the payment ledger under the instance's address and always satisfy

    balance == purchase_amount + sum(bid deposits) + delivery_fee

Every state-changing operation runs through ``_atomic``:
    1. the per-instance lock is taken; a re-entrant call from the same
       thread is rejected with ReentrantCallError instead of deadlocking,
    2. the state is snapshotted and a payment journal is opened,
    3. checks and state effects run before any outbound transfer,
    4. on any exception both the state and the ledger are restored, so
       no caller ever observes a half-applied operation.

Events are buffered during an operation and only published (appended to
the event log and written to structlog) once it has committed.
"""

from __future__ import annotations

import copy
import functools
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from provenance_escrow.domain.commitments import (
    ZERO_BYTES32,
    commitments_match,
    is_zero,
    normalize_address,
    reveal_commitment,
    to_bytes32_hex,
)
from provenance_escrow.domain.enums import EventType, Phase, Stage
from provenance_escrow.domain.exceptions import (
    AlreadyPurchasedError,
    AuthorizationError,
    CommitmentFrozenError,
    CommitmentNotSetError,
    DeadlineError,
    FundsError,
    InvalidPhaseTransitionError,
    ReentrantCallError,
    StateError,
    TransporterAlreadyAssignedError,
    ValidationError,
)
from provenance_escrow.domain.state_machine import validate_transition
from provenance_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from provenance_escrow.services.payment_service import PaymentService

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

DEFAULT_WINDOW_SECONDS = 2 * 24 * 3600
DEFAULT_MAX_BIDS = 20


@dataclass(frozen=True)
class EscrowTerms:
    """Immutable per-template parameters copied into every instance."""

    seller_window: int = DEFAULT_WINDOW_SECONDS
    bid_window: int = DEFAULT_WINDOW_SECONDS
    delivery_window: int = DEFAULT_WINDOW_SECONDS
    max_bids: int = DEFAULT_MAX_BIDS

    def __post_init__(self) -> None:
        for name in ("seller_window", "bid_window", "delivery_window"):
            if getattr(self, name) <= 0:
                raise ValidationError(f"{name} must be positive", field=name)
        if self.max_bids <= 0:
            raise ValidationError("max_bids must be positive", field="max_bids")


@dataclass
class TransporterBid:
    """A transporter candidate's offer."""

    address: str
    fee: int
    deposit: int = 0


@dataclass(frozen=True)
class EscrowEvent:
    """One entry in an escrow's append-only event log."""

    event_type: EventType
    product_id: int
    actor: str | None
    timestamp: float
    data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "event_type": self.event_type.value,
            "product_id": self.product_id,
            "actor": self.actor,
            "timestamp": self.timestamp,
            "data": dict(self.data),
        }


@dataclass
class _EscrowState:
    """Everything an operation may mutate. Snapshotted for rollback."""

    phase: Phase = Phase.LISTED
    price_commitment: str = ZERO_BYTES32
    commitment_frozen: bool = False
    public_price: int | None = None
    purchased: bool = False
    buyer: str | None = None
    purchase_amount: int = 0
    purchase_timestamp: float | None = None
    order_confirmed_timestamp: float | None = None
    bound_timestamp: float | None = None
    bids: dict[str, TransporterBid] = field(default_factory=dict)
    transporter: str | None = None
    delivery_fee: int = 0
    vc_cids: dict[Stage, str | None] = field(
        default_factory=lambda: dict.fromkeys(Stage)
    )
    vc_history: list[tuple[Stage, str]] = field(default_factory=list)
    purchase_tx_commitment: str | None = None
    delivery_tx_commitment: str | None = None


def _atomic(method: F) -> F:
    """Run an escrow operation under the instance guard."""

    @functools.wraps(method)
    def wrapper(self: ProductEscrow, *args: Any, **kwargs: Any) -> Any:
        with self._guard(method.__name__):
            return method(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


class ProductEscrow:
    """Escrow state machine for a single product.

    Instances are created by EscrowFactory; callers identify themselves by
    address on every operation.
    """

    def __init__(
        self,
        product_id: int,
        address: str,
        owner: str,
        name: str,
        price_commitment: str,
        payments: PaymentService,
        terms: EscrowTerms | None = None,
        clock: Callable[[], float] = time.time,
        listing_price: int | None = None,
    ) -> None:
        listing_commitment = to_bytes32_hex(price_commitment, "price_commitment")
        if is_zero(listing_commitment):
            raise ValidationError("price commitment must be non-zero", field="price_commitment")
        if listing_price is not None and listing_price <= 0:
            raise ValidationError("listing price must be positive", field="price")

        self._product_id = product_id
        self._address = normalize_address(address, "address")
        self._owner = normalize_address(owner, "owner")
        self._name = name
        self._payments = payments
        self._terms = terms or EscrowTerms()
        self._clock = clock
        self._listing_price = listing_price
        self._listing_commitment = listing_commitment

        self._state = _EscrowState(price_commitment=self._listing_commitment)
        self._events: list[EscrowEvent] = []
        self._pending: list[EscrowEvent] = []

        self._lock = threading.Lock()
        self._holder: int | None = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def product_id(self) -> int:
        return self._product_id

    @property
    def address(self) -> str:
        return self._address

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def name(self) -> str:
        return self._name

    @property
    def terms(self) -> EscrowTerms:
        return self._terms

    @property
    def phase(self) -> Phase:
        return self._state.phase

    @property
    def listing_commitment(self) -> str:
        """Commitment given at creation. Never changes."""
        return self._listing_commitment

    @property
    def price_commitment(self) -> str:
        """Commitment the delivery reveal must open; frozen by set_price_commitment."""
        return self._state.price_commitment

    @property
    def commitment_frozen(self) -> bool:
        return self._state.commitment_frozen

    @property
    def public_price(self) -> int | None:
        return self._state.public_price

    @property
    def purchased(self) -> bool:
        return self._state.purchased

    @property
    def buyer(self) -> str | None:
        return self._state.buyer

    @property
    def purchase_amount(self) -> int:
        return self._state.purchase_amount

    @property
    def transporter(self) -> str | None:
        return self._state.transporter

    @property
    def delivery_fee(self) -> int:
        return self._state.delivery_fee

    @property
    def transporter_count(self) -> int:
        return len(self._state.bids)

    @property
    def purchase_tx_commitment(self) -> str | None:
        return self._state.purchase_tx_commitment

    @property
    def delivery_tx_commitment(self) -> str | None:
        return self._state.delivery_tx_commitment

    @property
    def events(self) -> tuple[EscrowEvent, ...]:
        return tuple(self._events)

    @property
    def vc_history(self) -> tuple[tuple[Stage, str], ...]:
        return tuple(self._state.vc_history)

    def vc_cid(self, stage: Stage) -> str | None:
        return self._state.vc_cids[Stage(stage)]

    def bids(self) -> dict[str, TransporterBid]:
        return {addr: copy.copy(bid) for addr, bid in self._state.bids.items()}

    def bid_of(self, transporter: str) -> TransporterBid | None:
        bid = self._state.bids.get(normalize_address(transporter, "transporter"))
        return copy.copy(bid) if bid is not None else None

    @property
    def balance(self) -> int:
        """Funds actually held under the escrow's address."""
        return self._payments.balance_of(self._address)

    @property
    def accounted_balance(self) -> int:
        """Funds the escrow's bookkeeping says it should hold."""
        with self._read():
            return self._accounted()

    @property
    def is_balanced(self) -> bool:
        with self._read():
            return self.balance == self._accounted()

    def deadline(self) -> float | None:
        """Deadline of the window running in the current phase, if any."""
        state = self._state
        if state.phase == Phase.PURCHASED and state.purchase_timestamp is not None:
            return state.purchase_timestamp + self._terms.seller_window
        if state.phase == Phase.ORDER_CONFIRMED and state.order_confirmed_timestamp is not None:
            return state.order_confirmed_timestamp + self._terms.bid_window
        if state.phase == Phase.BOUND and state.bound_timestamp is not None:
            return state.bound_timestamp + self._terms.delivery_window
        return None

    def verify_revealed_value(self, value: int, blinding: str | bytes) -> bool:
        """Check a (value, blinding) opening against the stored price commitment."""
        try:
            revealed = reveal_commitment(value, blinding)
        except ValidationError:
            return False
        return commitments_match(revealed, self._state.price_commitment)

    def snapshot(self) -> dict:
        """Export the persisted view of this instance."""
        with self._read():
            state = self._state
            return {
                "product_id": self._product_id,
                "address": self._address,
                "name": self._name,
                "owner": self._owner,
                "phase": state.phase.name,
                "listing_commitment": self._listing_commitment,
                "price_commitment": state.price_commitment,
                "commitment_frozen": state.commitment_frozen,
                "public_price": state.public_price,
                "purchased": state.purchased,
                "buyer": state.buyer,
                "purchase_amount": state.purchase_amount,
                "transporter": state.transporter,
                "delivery_fee": state.delivery_fee,
                "bids": {addr: asdict(bid) for addr, bid in state.bids.items()},
                "vc_cids": {stage.name: cid for stage, cid in state.vc_cids.items()},
                "purchase_tx_commitment": state.purchase_tx_commitment,
                "delivery_tx_commitment": state.delivery_tx_commitment,
                "balance": self.balance,
                "deadline": self.deadline(),
            }

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    @_atomic
    def set_public_price(self, caller: str, price_wei: int) -> None:
        """Publish a plain price. Leaves the commitment and its freeze flag alone."""
        caller = self._require_owner(caller)
        self._require_listing()
        if isinstance(price_wei, bool) or not isinstance(price_wei, int) or price_wei <= 0:
            raise ValidationError("public price must be a positive integer", field="price_wei")

        self._state.public_price = price_wei
        self._emit(EventType.PUBLIC_PRICE_SET, caller, price_wei=price_wei)

    @_atomic
    def set_price_commitment(
        self,
        caller: str,
        commitment: str,
        price_wei: int | None = None,
    ) -> None:
        """Set the price commitment once and freeze it.

        Raises:
            ValidationError: If the commitment is zero.
            CommitmentFrozenError: If a commitment was already set.
        """
        caller = self._require_owner(caller)
        self._require_listing()
        normalized = to_bytes32_hex(commitment, "commitment")
        if is_zero(normalized):
            raise ValidationError("price commitment must be non-zero", field="commitment")
        if self._state.commitment_frozen:
            raise CommitmentFrozenError(self._product_id)
        if price_wei is not None and (isinstance(price_wei, bool) or price_wei <= 0):
            raise ValidationError("public price must be positive", field="price_wei")

        self._state.price_commitment = normalized
        self._state.commitment_frozen = True
        if price_wei is not None:
            self._state.public_price = price_wei
        self._emit(
            EventType.PRICE_COMMITMENT_SET,
            caller,
            commitment=normalized,
            public_price_enabled=price_wei is not None,
        )

    # ------------------------------------------------------------------
    # Purchase
    # ------------------------------------------------------------------

    @_atomic
    def purchase(self, caller: str, value: int) -> None:
        """Buy the product, moving ``value`` wei from the caller into escrow.

        Raises:
            AlreadyPurchasedError: On any attempt after the first success.
            AuthorizationError: If the seller tries to buy.
            CommitmentNotSetError: If the price commitment is not frozen yet.
            FundsError: If ``value`` is not positive or differs from a known price.
        """
        caller = normalize_address(caller, "caller")
        if self._state.purchased:
            raise AlreadyPurchasedError(self._product_id)
        if caller == self._owner:
            raise AuthorizationError("Seller cannot purchase their own product")
        if not self._state.commitment_frozen:
            raise CommitmentNotSetError(self._product_id)
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise FundsError("Purchase value must be a positive integer of wei")
        expected = self._expected_price()
        if expected is not None and value != expected:
            raise FundsError("Purchase value does not match the listed price", code="WRONG_PRICE")

        self._advance("purchase")
        state = self._state
        state.purchased = True
        state.buyer = caller
        state.purchase_amount = value
        state.purchase_timestamp = self._clock()

        self._payments.transfer(caller, self._address, value)
        self._emit(EventType.PURCHASED, caller, buyer=caller)

    @_atomic
    def confirm_order(
        self,
        caller: str,
        vc_cid: str,
        purchase_tx_commitment: str = ZERO_BYTES32,
    ) -> None:
        """Seller confirms the order and anchors the Purchase-stage VC.

        The purchase tx-hash commitment may be zero when none was produced.
        """
        caller = self._require_owner(caller)
        self._require_phase(Phase.PURCHASED, "confirm_order")
        self._require_before(self._state.purchase_timestamp, self._terms.seller_window, "seller")
        cid = self._require_cid(vc_cid)
        tx_commitment = to_bytes32_hex(purchase_tx_commitment, "purchase_tx_commitment")

        self._advance("confirm_order")
        self._state.order_confirmed_timestamp = self._clock()
        self._state.purchase_tx_commitment = tx_commitment
        self._anchor(Stage.PURCHASE, cid, caller)
        self._emit(EventType.ORDER_CONFIRMED, caller, vc_cid=cid)

    confirm_order_with_commitment = confirm_order

    # ------------------------------------------------------------------
    # Transporters
    # ------------------------------------------------------------------

    @_atomic
    def create_transporter(self, caller: str, fee: int) -> None:
        """Register the caller as a transporter candidate asking ``fee`` wei."""
        caller = normalize_address(caller, "caller")
        if self._state.phase >= Phase.BOUND:
            raise StateError(
                f"Bidding closed in phase {self._state.phase.name}", code="BIDDING_CLOSED"
            )
        if isinstance(fee, bool) or not isinstance(fee, int) or fee < 0:
            raise ValidationError("fee must be a non-negative integer", field="fee")
        if caller in self._state.bids:
            raise StateError(f"Transporter {caller} already bid", code="DUPLICATE_BID")
        if len(self._state.bids) >= self._terms.max_bids:
            raise StateError(
                f"Bid limit of {self._terms.max_bids} reached", code="BID_LIMIT_REACHED"
            )

        self._state.bids[caller] = TransporterBid(address=caller, fee=fee)
        self._emit(EventType.TRANSPORTER_CREATED, caller, fee=fee)

    @_atomic
    def security_deposit(self, caller: str, value: int) -> None:
        """Add ``value`` wei to the caller's security deposit."""
        caller = normalize_address(caller, "caller")
        bid = self._state.bids.get(caller)
        if bid is None:
            raise AuthorizationError(f"{caller} is not a transporter candidate")
        if self._state.phase in (Phase.DELIVERED, Phase.EXPIRED):
            raise StateError(
                f"Deposits closed in phase {self._state.phase.name}", code="DEPOSITS_CLOSED"
            )
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise FundsError("Deposit must be a positive integer of wei")

        bid.deposit += value
        self._payments.transfer(caller, self._address, value)
        self._emit(EventType.SECURITY_DEPOSIT, caller, amount=value)

    @_atomic
    def withdraw_bid(self, caller: str) -> int:
        """Withdraw a non-selected bid and refund its deposit in full.

        Returns:
            The refunded amount in wei.
        """
        caller = normalize_address(caller, "caller")
        if caller == self._state.transporter:
            raise TransporterAlreadyAssignedError(self._product_id, caller)
        bid = self._state.bids.get(caller)
        if bid is None:
            raise AuthorizationError(f"{caller} has no bid on product {self._product_id}")

        refund = bid.deposit
        del self._state.bids[caller]
        if refund:
            self._payments.transfer(self._address, caller, refund)
        self._emit(EventType.BID_WITHDRAWN, caller, refund=refund)
        return refund

    @_atomic
    def set_transporter(self, caller: str, transporter: str, value: int) -> None:
        """Seller binds a candidate, paying its fee into escrow.

        Raises:
            TransporterAlreadyAssignedError: If a transporter is already bound.
            DeadlineError: If the bid window has closed.
            FundsError: If ``value`` differs from the candidate's fee.
        """
        caller = self._require_owner(caller)
        transporter = normalize_address(transporter, "transporter")
        if self._state.transporter is not None:
            raise TransporterAlreadyAssignedError(self._product_id, self._state.transporter)
        self._require_phase(Phase.ORDER_CONFIRMED, "assign_transporter")
        self._require_before(
            self._state.order_confirmed_timestamp, self._terms.bid_window, "bid"
        )
        bid = self._state.bids.get(transporter)
        if bid is None:
            raise ValidationError(f"{transporter} is not a candidate", field="transporter")
        if value != bid.fee:
            raise FundsError("Delivery fee must equal the candidate's bid", code="WRONG_FEE")

        self._advance("assign_transporter")
        self._state.transporter = transporter
        self._state.delivery_fee = value
        self._state.bound_timestamp = self._clock()
        if value:
            self._payments.transfer(caller, self._address, value)
        self._emit(EventType.TRANSPORTER_SELECTED, caller, transporter=transporter, fee=value)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    @_atomic
    def reveal_and_confirm_delivery(
        self,
        caller: str,
        value: int,
        blinding: str | bytes,
        vc_cid: str,
    ) -> None:
        """Buyer opens the price commitment and confirms receipt.

        Pays the seller the held purchase amount and the transporter its
        fee plus deposit.
        """
        caller = self._require_buyer(caller)
        self._require_phase(Phase.BOUND, "confirm_delivery")
        if not commitments_match(reveal_commitment(value, blinding), self._state.price_commitment):
            raise ValidationError(
                "Revealed value and blinding do not open the price commitment",
                field="blinding",
            )
        cid = self._require_cid(vc_cid)

        state = self._state
        transporter = state.transporter
        assert transporter is not None
        bid = state.bids[transporter]
        seller_payout = state.purchase_amount
        transporter_payout = state.delivery_fee + bid.deposit

        self._advance("confirm_delivery")
        state.purchase_amount = 0
        state.delivery_fee = 0
        bid.deposit = 0
        self._anchor(Stage.DELIVERY, cid, caller)

        self._payout(self._owner, seller_payout, "seller")
        self._payout(transporter, transporter_payout, "transporter")
        self._emit(EventType.DELIVERY_CONFIRMED, caller, vc_cid=cid)

    # ------------------------------------------------------------------
    # VC anchoring
    # ------------------------------------------------------------------

    @_atomic
    def update_vc_cid(self, caller: str, vc_cid: str) -> Stage:
        """Anchor a VC cid in the slot of the current stage.

        Returns:
            The stage whose slot was written.
        """
        caller = normalize_address(caller, "caller")
        if caller not in (self._owner, self._state.buyer):
            raise AuthorizationError("Only the seller or the buyer can anchor a VC")
        if self._state.phase == Phase.EXPIRED:
            raise StateError("Escrow expired", code="ESCROW_EXPIRED")
        cid = self._require_cid(vc_cid)

        stage = self._current_stage()
        self._anchor(stage, cid, caller)
        return stage

    @_atomic
    def update_vc_cid_after_delivery(
        self,
        caller: str,
        vc_cid: str,
        delivery_tx_commitment: str = ZERO_BYTES32,
    ) -> None:
        """Buyer re-anchors the Delivery VC together with its tx-hash commitment."""
        caller = self._require_buyer(caller)
        if self._state.phase != Phase.DELIVERED:
            raise StateError(
                f"Delivery VC can only be updated after delivery, phase is {self._state.phase.name}"
            )
        cid = self._require_cid(vc_cid)
        self._state.delivery_tx_commitment = to_bytes32_hex(
            delivery_tx_commitment, "delivery_tx_commitment"
        )
        self._anchor(Stage.DELIVERY, cid, caller)

    # ------------------------------------------------------------------
    # Timeouts
    # ------------------------------------------------------------------

    @_atomic
    def seller_timeout(self, caller: str) -> int:
        """Expire a purchase the seller never confirmed; refunds the buyer."""
        caller = normalize_address(caller, "caller")
        self._require_phase(Phase.PURCHASED, "seller_timeout")
        self._require_after(self._state.purchase_timestamp, self._terms.seller_window, "seller")
        refund = self._expire("seller_timeout")
        self._emit(EventType.SELLER_TIMEOUT, caller, refund=refund)
        return refund

    @_atomic
    def bid_timeout(self, caller: str) -> int:
        """Expire an order no transporter was bound for; refunds the buyer."""
        caller = normalize_address(caller, "caller")
        self._require_phase(Phase.ORDER_CONFIRMED, "bid_timeout")
        self._require_after(
            self._state.order_confirmed_timestamp, self._terms.bid_window, "bid"
        )
        refund = self._expire("bid_timeout")
        self._emit(EventType.BID_TIMEOUT, caller, refund=refund)
        return refund

    @_atomic
    def delivery_timeout(self, caller: str) -> int:
        """Expire an undelivered order.

        The buyer is refunded and receives the transporter's deposit as a
        penalty; the unearned delivery fee goes back to the seller.
        """
        caller = normalize_address(caller, "caller")
        self._require_phase(Phase.BOUND, "delivery_timeout")
        self._require_after(self._state.bound_timestamp, self._terms.delivery_window, "delivery")

        state = self._state
        transporter = state.transporter
        assert transporter is not None
        bid = state.bids[transporter]
        penalty = bid.deposit
        fee = state.delivery_fee
        bid.deposit = 0
        state.delivery_fee = 0

        refund = self._expire("delivery_timeout")
        buyer = state.buyer
        assert buyer is not None
        self._payout(buyer, penalty, "penalty")
        self._payout(self._owner, fee, "fee_refund")
        if penalty:
            self._emit(
                EventType.PENALTY_APPLIED, caller, transporter=transporter, amount=penalty
            )
        self._emit(EventType.DELIVERY_TIMEOUT, caller, refund=refund)
        return refund

    # ------------------------------------------------------------------
    # Guard
    # ------------------------------------------------------------------

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        if self._holder == threading.get_ident():
            raise ReentrantCallError(self._product_id, operation)
        with self._lock:
            self._holder = threading.get_ident()
            saved = copy.deepcopy(self._state)
            self._pending = []
            try:
                with self._payments.transaction():
                    yield
            except BaseException:
                self._state = saved
                self._pending = []
                raise
            finally:
                self._holder = None
            published, self._pending = self._pending, []
            self._events.extend(published)
        self._publish(published)

    @contextmanager
    def _read(self) -> Iterator[None]:
        if self._holder == threading.get_ident():
            yield
            return
        with self._lock:
            yield

    def _publish(self, events: list[EscrowEvent]) -> None:
        for event in events:
            logger.info(
                f"escrow.{event.event_type.value.lower()}",
                product_id=event.product_id,
                actor=event.actor,
                **event.data,
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _emit(self, event_type: EventType, actor: str | None, **data: Any) -> None:
        self._pending.append(
            EscrowEvent(
                event_type=event_type,
                product_id=self._product_id,
                actor=actor,
                timestamp=self._clock(),
                data=data,
            )
        )

    def _advance(self, event_name: str) -> None:
        old = self._state.phase
        new = validate_transition(old, event_name)
        self._state.phase = new
        self._emit(EventType.PHASE_CHANGED, None, old_phase=old.name, new_phase=new.name)

    def _anchor(self, stage: Stage, cid: str, actor: str) -> None:
        self._state.vc_cids[stage] = cid
        self._state.vc_history.append((stage, cid))
        self._emit(EventType.VC_UPDATED, actor, stage=stage.name, vc_cid=cid)

    def _expire(self, event_name: str) -> int:
        """Move to EXPIRED and refund the held purchase amount to the buyer."""
        state = self._state
        refund = state.purchase_amount
        buyer = state.buyer
        assert buyer is not None
        self._advance(event_name)
        state.purchase_amount = 0
        self._payout(buyer, refund, "refund")
        return refund

    def _payout(self, recipient: str, amount: int, reason: str) -> None:
        if not amount:
            return
        tx_hash = self._payments.transfer(self._address, recipient, amount)
        data: dict[str, Any] = {"to": recipient, "reason": reason, "tx_hash": tx_hash}
        # seller payouts and buyer refunds equal the price
        if reason not in ("seller", "refund") or self._state.public_price is not None:
            data["amount"] = amount
        self._emit(EventType.FUNDS_TRANSFERRED, None, **data)

    def _accounted(self) -> int:
        state = self._state
        deposits = sum(bid.deposit for bid in state.bids.values())
        return state.purchase_amount + deposits + state.delivery_fee

    def _expected_price(self) -> int | None:
        if self._state.public_price is not None:
            return self._state.public_price
        return self._listing_price

    def _current_stage(self) -> Stage:
        phase = self._state.phase
        if phase == Phase.LISTED:
            return Stage.LISTING
        if phase == Phase.DELIVERED:
            return Stage.DELIVERY
        return Stage.PURCHASE

    def _require_owner(self, caller: str) -> str:
        caller = normalize_address(caller, "caller")
        if caller != self._owner:
            raise AuthorizationError("Only the seller can perform this operation")
        return caller

    def _require_buyer(self, caller: str) -> str:
        caller = normalize_address(caller, "caller")
        if self._state.buyer is None or caller != self._state.buyer:
            raise AuthorizationError("Only the buyer can perform this operation")
        return caller

    def _require_listing(self) -> None:
        if self._state.phase != Phase.LISTED or self._state.purchased:
            raise StateError(
                f"Listing is closed in phase {self._state.phase.name}", code="LISTING_CLOSED"
            )

    def _require_phase(self, phase: Phase, event_name: str) -> None:
        if self._state.phase != phase:
            raise InvalidPhaseTransitionError(self._state.phase.name, event_name)

    def _require_cid(self, vc_cid: str) -> str:
        if not isinstance(vc_cid, str) or not vc_cid.strip():
            raise ValidationError("VC cid must be a non-empty string", field="vc_cid")
        return vc_cid.strip()

    def _require_before(self, start: float | None, window: int, label: str) -> None:
        assert start is not None
        deadline = start + window
        if self._clock() >= deadline:
            raise DeadlineError(f"The {label} window has closed", deadline)

    def _require_after(self, start: float | None, window: int, label: str) -> None:
        assert start is not None
        deadline = start + window
        if self._clock() < deadline:
            raise DeadlineError(f"The {label} window is still open", deadline)

    def __repr__(self) -> str:
        return (
            f"ProductEscrow(product_id={self._product_id}, address={self._address}, "
            f"phase={self._state.phase.name})"
        )
