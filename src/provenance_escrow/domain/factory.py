"""EscrowFactory — creates and indexes product escrows.

Each product gets a fresh ProductEscrow built from the factory's current
EscrowTemplate. The template is immutable, so instances never share
mutable configuration; swapping the template only affects products
created afterwards.

Addresses follow the EVM derivations:
    create_product                 keccak256(factory ‖ nonce)[12:]
    create_product_deterministic   keccak256(0xff ‖ factory ‖ salt ‖ code_hash)[12:]
"""

from __future__ import annotations

import json
import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any

from eth_abi.packed import encode_packed
from eth_utils import keccak, to_checksum_address

from provenance_escrow.domain.commitments import (
    is_zero,
    normalize_address,
    parse_hex,
    to_bytes32_hex,
)
from provenance_escrow.domain.enums import EventType
from provenance_escrow.domain.escrow import EscrowEvent, EscrowTerms, ProductEscrow
from provenance_escrow.domain.exceptions import (
    AuthorizationError,
    ProductNotFoundError,
    StateError,
    ValidationError,
)
from provenance_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from provenance_escrow.services.payment_service import PaymentService

logger = get_logger(__name__)


@dataclass(frozen=True)
class EscrowTemplate:
    """Immutable blueprint every new instance is configured from."""

    version: str = "1"
    terms: EscrowTerms = field(default_factory=EscrowTerms)

    @property
    def code_hash(self) -> bytes:
        """Stable 32-byte digest identifying this template."""
        canonical = json.dumps(
            {"version": self.version, "terms": asdict(self.terms)},
            sort_keys=True,
            separators=(",", ":"),
        )
        return keccak(text=canonical)


class ProductIdAllocator:
    """Hands out strictly increasing product ids starting at 1."""

    def __init__(self, start: int = 0) -> None:
        self._last = start
        self._lock = threading.Lock()

    @property
    def last(self) -> int:
        return self._last

    def next(self) -> int:
        with self._lock:
            self._last += 1
            return self._last


def _default_factory_address(owner: str) -> str:
    digest = keccak(encode_packed(["string", "address"], ["escrow-factory", owner]))
    return to_checksum_address(digest[12:])


class EscrowFactory:
    """Creates product escrows and keeps them in creation order.

    Usage:
        factory = EscrowFactory(owner=admin, payments=PaymentService())
        escrow = factory.create_product(seller, "Olive oil", commitment)
    """

    def __init__(
        self,
        owner: str,
        payments: PaymentService,
        template: EscrowTemplate | None = None,
        clock: Callable[[], float] = time.time,
        address: str | None = None,
    ) -> None:
        self._owner = normalize_address(owner, "owner")
        self._address = (
            normalize_address(address, "address")
            if address is not None
            else _default_factory_address(self._owner)
        )
        self._payments = payments
        self._template = template or EscrowTemplate()
        self._clock = clock
        self._ids = ProductIdAllocator()
        self._nonce = 0
        self._paused = False

        self._products: list[ProductEscrow] = []
        self._by_address: dict[str, ProductEscrow] = {}
        self._events: list[EscrowEvent] = []
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def address(self) -> str:
        return self._address

    @property
    def template(self) -> EscrowTemplate:
        return self._template

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def product_count(self) -> int:
        return len(self._products)

    @property
    def events(self) -> tuple[EscrowEvent, ...]:
        return tuple(self._events)

    def __iter__(self) -> Iterator[ProductEscrow]:
        return iter(tuple(self._products))

    def __len__(self) -> int:
        return len(self._products)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_product(
        self,
        seller: str,
        name: str,
        price_commitment: str,
        price: int | None = None,
    ) -> ProductEscrow:
        """Create a product escrow at the next nonce-derived address.

        Raises:
            StateError: If the factory is paused.
            ValidationError: If the commitment is zero or the name empty.
        """
        with self._lock:
            self._check_creatable(name)
            address = self._nonce_address(self._nonce)
            escrow = self._build(seller, name, price_commitment, price, address)
            self._nonce += 1
        return escrow

    def create_product_deterministic(
        self,
        seller: str,
        name: str,
        price_commitment: str,
        salt: str | bytes,
        price: int | None = None,
    ) -> ProductEscrow:
        """Create a product escrow at ``predict_product_address(salt)``.

        Raises:
            StateError: If the salt was already used.
        """
        salt_bytes = parse_hex(salt, "salt", size=32)
        with self._lock:
            self._check_creatable(name)
            address = self._salted_address(salt_bytes)
            if address in self._by_address:
                raise StateError(f"Salt already used for {address}", code="SALT_USED")
            return self._build(seller, name, price_commitment, price, address)

    def predict_product_address(self, salt: str | bytes) -> str:
        """Address ``create_product_deterministic`` would use for ``salt``."""
        return self._salted_address(parse_hex(salt, "salt", size=32))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_product(self, address: str) -> ProductEscrow:
        try:
            return self._by_address[normalize_address(address, "address")]
        except (KeyError, ValidationError) as err:
            raise ProductNotFoundError(str(address)) from err

    def get_products_range(self, offset: int, count: int) -> list[ProductEscrow]:
        """Return up to ``count`` products in creation order starting at ``offset``."""
        if offset < 0 or count < 0:
            raise ValidationError("offset and count must be non-negative")
        products = tuple(self._products)
        return list(products[offset : offset + count])

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def pause(self, caller: str) -> None:
        self._require_owner(caller)
        with self._lock:
            if self._paused:
                raise StateError("Factory already paused", code="PAUSED")
            self._paused = True
            self._record(EventType.FACTORY_PAUSED, 0, caller)

    def unpause(self, caller: str) -> None:
        self._require_owner(caller)
        with self._lock:
            if not self._paused:
                raise StateError("Factory is not paused", code="NOT_PAUSED")
            self._paused = False
            self._record(EventType.FACTORY_UNPAUSED, 0, caller)

    def set_implementation(self, caller: str, template: EscrowTemplate) -> None:
        """Replace the template used for products created from now on.

        Allowed while paused. Existing instances keep their configuration.
        """
        self._require_owner(caller)
        if template is None:
            raise ValidationError("template must not be empty", field="template")
        with self._lock:
            old = self._template
            self._template = template
            self._record(
                EventType.IMPLEMENTATION_UPDATED,
                0,
                caller,
                old_code_hash="0x" + old.code_hash.hex(),
                new_code_hash="0x" + template.code_hash.hex(),
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_creatable(self, name: str) -> None:
        if self._paused:
            raise StateError("Factory is paused", code="PAUSED")
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("product name must be non-empty", field="name")

    def _build(
        self,
        seller: str,
        name: str,
        price_commitment: str,
        price: int | None,
        address: str,
    ) -> ProductEscrow:
        # Called under self._lock; the id is only taken once the escrow exists.
        seller = normalize_address(seller, "seller")
        commitment = to_bytes32_hex(price_commitment, "price_commitment")
        if is_zero(commitment):
            raise ValidationError("price commitment must be non-zero", field="price_commitment")
        if price is not None and (
            isinstance(price, bool) or not isinstance(price, int) or price <= 0
        ):
            raise ValidationError("listing price must be positive", field="price")
        product_id = self._ids.last + 1
        escrow = ProductEscrow(
            product_id=product_id,
            address=address,
            owner=seller,
            name=name.strip(),
            price_commitment=commitment,
            payments=self._payments,
            terms=self._template.terms,
            clock=self._clock,
            listing_price=price,
        )
        self._ids.next()
        self._products.append(escrow)
        self._by_address[address] = escrow
        self._record(EventType.PRODUCT_CREATED, product_id, seller, product=address)
        return escrow

    def _record(self, event_type: EventType, product_id: int, actor: str, **data: Any) -> None:
        event = EscrowEvent(
            event_type=event_type,
            product_id=product_id,
            actor=normalize_address(actor, "caller"),
            timestamp=self._clock(),
            data=data,
        )
        self._events.append(event)
        logger.info(
            f"factory.{event_type.value.lower()}",
            product_id=product_id,
            actor=event.actor,
            **data,
        )

    def _require_owner(self, caller: str) -> None:
        if normalize_address(caller, "caller") != self._owner:
            raise AuthorizationError("Only the factory owner can perform this operation")

    def _nonce_address(self, nonce: int) -> str:
        digest = keccak(encode_packed(["address", "uint256"], [self._address, nonce]))
        return to_checksum_address(digest[12:])

    def _salted_address(self, salt: bytes) -> str:
        digest = keccak(
            b"\xff" + bytes.fromhex(self._address[2:]) + salt + self._template.code_hash
        )
        return to_checksum_address(digest[12:])
