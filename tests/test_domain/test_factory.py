"""Tests for EscrowFactory creation, lookup and administration."""

from __future__ import annotations

import pytest
from conftest import (
    BUYER,
    FACTORY_OWNER,
    PLACEHOLDER_COMMITMENT,
    PRICE,
    SELLER,
    FakeClock,
    price_commitment_for,
)
from eth_utils import keccak, to_checksum_address

from provenance_escrow.domain.commitments import ZERO_BYTES32
from provenance_escrow.domain.enums import EventType, Phase
from provenance_escrow.domain.escrow import EscrowTerms
from provenance_escrow.domain.exceptions import (
    AuthorizationError,
    ProductNotFoundError,
    StateError,
    ValidationError,
)
from provenance_escrow.domain.factory import EscrowFactory, EscrowTemplate, ProductIdAllocator
from provenance_escrow.services.payment_service import PaymentService

SALT = "0x" + "5a" * 32


class TestCreateProduct:
    def test_ids_increase_from_one(self, factory: EscrowFactory) -> None:
        first = factory.create_product(SELLER, "A", PLACEHOLDER_COMMITMENT)
        second = factory.create_product(SELLER, "B", PLACEHOLDER_COMMITMENT)
        assert (first.product_id, second.product_id) == (1, 2)
        assert first.address != second.address
        assert factory.product_count == 2

    def test_instance_configuration(self, factory: EscrowFactory) -> None:
        escrow = factory.create_product(SELLER, "  Olive oil ", PLACEHOLDER_COMMITMENT)
        assert escrow.owner == SELLER
        assert escrow.name == "Olive oil"
        assert escrow.phase == Phase.LISTED
        assert escrow.terms == factory.template.terms
        assert escrow.listing_commitment == PLACEHOLDER_COMMITMENT
        assert escrow.price_commitment == PLACEHOLDER_COMMITMENT
        assert not escrow.commitment_frozen

    def test_records_creation_event(self, factory: EscrowFactory) -> None:
        escrow = factory.create_product(SELLER, "A", PLACEHOLDER_COMMITMENT)
        event = factory.events[-1]
        assert event.event_type == EventType.PRODUCT_CREATED
        assert event.product_id == escrow.product_id
        assert event.data["product"] == escrow.address

    def test_zero_commitment_rejected(self, factory: EscrowFactory) -> None:
        with pytest.raises(ValidationError):
            factory.create_product(SELLER, "A", ZERO_BYTES32)
        assert factory.product_count == 0

    @pytest.mark.parametrize(
        ("commitment", "price"),
        [
            (PLACEHOLDER_COMMITMENT, 0),
            ("0x" + "11" * 16, None),
            ("0x" + "11" * 33, None),
            ("not hex", None),
        ],
    )
    def test_failed_creation_does_not_consume_id(
        self, factory: EscrowFactory, commitment: str, price: int | None
    ) -> None:
        with pytest.raises(ValidationError):
            factory.create_product(SELLER, "A", commitment, price=price)
        assert factory.product_count == 0
        assert factory.events == ()

        escrow = factory.create_product(SELLER, "A", PLACEHOLDER_COMMITMENT)
        assert escrow.product_id == 1
        assert factory.product_count == 1

    def test_failed_deterministic_creation_leaves_salt_free(self, factory: EscrowFactory) -> None:
        with pytest.raises(ValidationError):
            factory.create_product_deterministic(SELLER, "A", "0x" + "11" * 16, SALT)
        escrow = factory.create_product_deterministic(SELLER, "A", PLACEHOLDER_COMMITMENT, SALT)
        assert escrow.product_id == 1
        assert escrow.address == factory.predict_product_address(SALT)

    def test_commitment_normalised(self, factory: EscrowFactory) -> None:
        escrow = factory.create_product(SELLER, "A", "AB" * 32)
        assert escrow.listing_commitment == "0x" + "ab" * 32

    def test_empty_name_rejected(self, factory: EscrowFactory) -> None:
        with pytest.raises(ValidationError):
            factory.create_product(SELLER, "   ", PLACEHOLDER_COMMITMENT)

    def test_bad_seller_rejected(self, factory: EscrowFactory) -> None:
        with pytest.raises(ValidationError):
            factory.create_product("0xnope", "A", PLACEHOLDER_COMMITMENT)

    def test_instances_do_not_share_state(self, factory: EscrowFactory) -> None:
        first = factory.create_product(SELLER, "A", PLACEHOLDER_COMMITMENT)
        second = factory.create_product(SELLER, "B", PLACEHOLDER_COMMITMENT)
        first.set_price_commitment(SELLER, price_commitment_for(first))
        first.purchase(BUYER, PRICE)
        assert second.phase == Phase.LISTED
        assert not second.commitment_frozen
        assert second.price_commitment == PLACEHOLDER_COMMITMENT
        assert second.buyer is None


class TestDeterministicCreation:
    def test_address_matches_prediction(self, factory: EscrowFactory) -> None:
        predicted = factory.predict_product_address(SALT)
        escrow = factory.create_product_deterministic(SELLER, "A", PLACEHOLDER_COMMITMENT, SALT)
        assert escrow.address == predicted

    def test_prediction_formula(self, factory: EscrowFactory) -> None:
        digest = keccak(
            b"\xff"
            + bytes.fromhex(factory.address[2:])
            + bytes.fromhex(SALT[2:])
            + factory.template.code_hash
        )
        assert factory.predict_product_address(SALT) == to_checksum_address(digest[12:])

    def test_salt_reuse_rejected(self, factory: EscrowFactory) -> None:
        factory.create_product_deterministic(SELLER, "A", PLACEHOLDER_COMMITMENT, SALT)
        with pytest.raises(StateError) as exc_info:
            factory.create_product_deterministic(SELLER, "B", PLACEHOLDER_COMMITMENT, SALT)
        assert exc_info.value.code == "SALT_USED"

    def test_short_salt_rejected(self, factory: EscrowFactory) -> None:
        with pytest.raises(ValidationError):
            factory.predict_product_address("0x01")

    def test_template_change_moves_prediction(self, factory: EscrowFactory) -> None:
        before = factory.predict_product_address(SALT)
        factory.set_implementation(FACTORY_OWNER, EscrowTemplate(version="2"))
        assert factory.predict_product_address(SALT) != before


class TestQueries:
    def test_get_product_any_casing(self, factory: EscrowFactory) -> None:
        escrow = factory.create_product(SELLER, "A", PLACEHOLDER_COMMITMENT)
        assert factory.get_product(escrow.address.lower()) is escrow

    def test_unknown_address(self, factory: EscrowFactory) -> None:
        with pytest.raises(ProductNotFoundError):
            factory.get_product(BUYER)

    def test_invalid_address_is_not_found(self, factory: EscrowFactory) -> None:
        with pytest.raises(ProductNotFoundError):
            factory.get_product("not-an-address")

    def test_range_is_clamped(self, factory: EscrowFactory) -> None:
        created = [factory.create_product(SELLER, f"P{i}", PLACEHOLDER_COMMITMENT) for i in range(5)]
        assert factory.get_products_range(1, 2) == created[1:3]
        assert factory.get_products_range(3, 100) == created[3:]
        assert factory.get_products_range(10, 5) == []
        assert list(factory) == created
        assert len(factory) == 5

    def test_negative_range_rejected(self, factory: EscrowFactory) -> None:
        with pytest.raises(ValidationError):
            factory.get_products_range(-1, 1)


class TestAdministration:
    def test_pause_blocks_creation(self, factory: EscrowFactory) -> None:
        factory.pause(FACTORY_OWNER)
        assert factory.is_paused
        with pytest.raises(StateError) as exc_info:
            factory.create_product(SELLER, "A", PLACEHOLDER_COMMITMENT)
        assert exc_info.value.code == "PAUSED"

        factory.unpause(FACTORY_OWNER)
        factory.create_product(SELLER, "A", PLACEHOLDER_COMMITMENT)

    def test_pause_does_not_freeze_instances(self, factory: EscrowFactory) -> None:
        escrow = factory.create_product(SELLER, "A", PLACEHOLDER_COMMITMENT)
        escrow.set_price_commitment(SELLER, price_commitment_for(escrow))
        factory.pause(FACTORY_OWNER)
        escrow.purchase(BUYER, PRICE)
        assert escrow.phase == Phase.PURCHASED

    def test_only_owner(self, factory: EscrowFactory) -> None:
        with pytest.raises(AuthorizationError):
            factory.pause(SELLER)
        with pytest.raises(AuthorizationError):
            factory.set_implementation(SELLER, EscrowTemplate(version="2"))

    def test_double_pause(self, factory: EscrowFactory) -> None:
        factory.pause(FACTORY_OWNER)
        with pytest.raises(StateError):
            factory.pause(FACTORY_OWNER)

    def test_unpause_when_running(self, factory: EscrowFactory) -> None:
        with pytest.raises(StateError) as exc_info:
            factory.unpause(FACTORY_OWNER)
        assert exc_info.value.code == "NOT_PAUSED"

    def test_set_implementation_affects_new_products_only(
        self, payments: PaymentService, clock: FakeClock
    ) -> None:
        factory = EscrowFactory(owner=FACTORY_OWNER, payments=payments, clock=clock)
        old = factory.create_product(SELLER, "Old", PLACEHOLDER_COMMITMENT)

        factory.pause(FACTORY_OWNER)
        short = EscrowTemplate(version="2", terms=EscrowTerms(seller_window=60))
        factory.set_implementation(FACTORY_OWNER, short)
        factory.unpause(FACTORY_OWNER)
        new = factory.create_product(SELLER, "New", PLACEHOLDER_COMMITMENT)

        assert old.terms.seller_window == EscrowTerms().seller_window
        assert new.terms.seller_window == 60
        event = next(e for e in factory.events if e.event_type == EventType.IMPLEMENTATION_UPDATED)
        assert event.data["old_code_hash"] != event.data["new_code_hash"]

    def test_empty_template_rejected(self, factory: EscrowFactory) -> None:
        with pytest.raises(ValidationError):
            factory.set_implementation(FACTORY_OWNER, None)  # type: ignore[arg-type]


class TestProductIdAllocator:
    def test_sequence(self) -> None:
        ids = ProductIdAllocator()
        assert [ids.next() for _ in range(3)] == [1, 2, 3]
        assert ids.last == 3
