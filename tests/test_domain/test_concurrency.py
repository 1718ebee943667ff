"""Concurrency and re-entrancy tests for ProductEscrow and EscrowFactory."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from conftest import (
    BUYER,
    DEPOSIT,
    FEE,
    PLACEHOLDER_COMMITMENT,
    PRICE,
    SELLER,
    STARTING_BALANCE,
    TRANSPORTER,
    blinding_for,
)

from provenance_escrow.domain.enums import Phase
from provenance_escrow.domain.escrow import ProductEscrow
from provenance_escrow.domain.exceptions import (
    AlreadyPurchasedError,
    EscrowError,
    ReentrantCallError,
)
from provenance_escrow.domain.factory import EscrowFactory
from provenance_escrow.services.payment_service import PaymentService


class TestConcurrentPurchase:
    def test_exactly_one_buyer_wins(
        self, listed: ProductEscrow, payments: PaymentService
    ) -> None:
        buyers = [f"0x{0xB000 + i:040x}" for i in range(16)]
        for buyer in buyers:
            payments.fund(buyer, STARTING_BALANCE)
        barrier = threading.Barrier(len(buyers))

        def attempt(buyer: str) -> bool:
            barrier.wait()
            try:
                listed.purchase(buyer, PRICE)
            except AlreadyPurchasedError:
                return False
            return True

        with ThreadPoolExecutor(max_workers=len(buyers)) as pool:
            results = list(pool.map(attempt, buyers))

        assert results.count(True) == 1
        winner = buyers[results.index(True)]
        assert listed.buyer.lower() == winner.lower()
        assert listed.balance == PRICE
        assert listed.is_balanced
        losers = [b for b, won in zip(buyers, results, strict=True) if not won]
        assert all(payments.balance_of(b) == STARTING_BALANCE for b in losers)


class TestConcurrentCreation:
    def test_ids_unique_and_dense(self, factory: EscrowFactory) -> None:
        def create(i: int) -> int:
            return factory.create_product(SELLER, f"P{i}", PLACEHOLDER_COMMITMENT).product_id

        with ThreadPoolExecutor(max_workers=8) as pool:
            ids = list(pool.map(create, range(50)))

        assert sorted(ids) == list(range(1, 51))
        assert len({p.address for p in factory}) == 50


class TestReentrancy:
    def test_reentrant_payout_is_rejected_and_rolled_back(
        self, bound: ProductEscrow, payments: PaymentService
    ) -> None:
        seen: list[Exception] = []

        def reenter(sender: str, amount: int) -> None:
            try:
                bound.withdraw_bid(TRANSPORTER)
            except ReentrantCallError as exc:
                seen.append(exc)
                raise

        payments.register_receiver(TRANSPORTER, reenter)
        with pytest.raises(ReentrantCallError):
            bound.reveal_and_confirm_delivery(BUYER, PRICE, blinding_for(bound), "QmD")

        assert len(seen) == 1
        assert bound.phase == Phase.BOUND
        assert bound.balance == PRICE + FEE + DEPOSIT
        assert bound.is_balanced

    def test_hook_touching_another_escrow_is_allowed(
        self, bound: ProductEscrow, factory: EscrowFactory, payments: PaymentService
    ) -> None:
        other = factory.create_product(SELLER, "Other", PLACEHOLDER_COMMITMENT)

        def bid_elsewhere(sender: str, amount: int) -> None:
            other.create_transporter(TRANSPORTER, FEE)

        payments.register_receiver(TRANSPORTER, bid_elsewhere)
        bound.reveal_and_confirm_delivery(BUYER, PRICE, blinding_for(bound), "QmD")

        assert bound.phase == Phase.DELIVERED
        assert other.transporter_count == 1

    def test_lock_released_after_failure(self, listed: ProductEscrow) -> None:
        with pytest.raises(EscrowError):
            listed.purchase(SELLER, PRICE)
        listed.purchase(BUYER, PRICE)
        assert listed.phase == Phase.PURCHASED


class TestConsistentReads:
    def test_balance_views_wait_for_running_operation(
        self, bound: ProductEscrow, payments: PaymentService
    ) -> None:
        entered = threading.Event()
        release = threading.Event()

        def hold_seller_payout(sender: str, amount: int) -> None:
            entered.set()
            release.wait(timeout=5)

        payments.register_receiver(SELLER, hold_seller_payout)
        worker = threading.Thread(
            target=bound.reveal_and_confirm_delivery,
            args=(BUYER, PRICE, blinding_for(bound), "QmD"),
        )
        worker.start()
        assert entered.wait(timeout=5)

        results: list[tuple[int, bool]] = []
        reader = threading.Thread(
            target=lambda: results.append((bound.accounted_balance, bound.is_balanced))
        )
        reader.start()
        reader.join(timeout=0.2)
        assert reader.is_alive()

        release.set()
        worker.join(timeout=5)
        reader.join(timeout=5)
        assert results == [(0, True)]
        assert bound.phase == Phase.DELIVERED
