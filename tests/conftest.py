"""Shared test fixtures for the provenance escrow test suite.

Provides:
    - Fixed wallet addresses and a manually advanced clock
    - A funded payment ledger and a factory wired to it
    - Escrows already driven to each interesting phase
"""

from __future__ import annotations

import pytest

from provenance_escrow.domain.commitments import deterministic_blinding, reveal_commitment
from provenance_escrow.domain.escrow import EscrowTerms, ProductEscrow
from provenance_escrow.domain.factory import EscrowFactory, EscrowTemplate
from provenance_escrow.provers.simulated import SimulatedProofBackend
from provenance_escrow.services.payment_service import PaymentService
from provenance_escrow.services.verification_service import ValueCommitmentVerifier

ETHER = 10**18
DAY = 24 * 3600
WINDOW = 2 * DAY

FACTORY_OWNER = "0x00000000000000000000000000000000000000F0"
SELLER = "0x1111111111111111111111111111111111111111"
BUYER = "0x2222222222222222222222222222222222222222"
TRANSPORTER = "0x3333333333333333333333333333333333333333"
OTHER_TRANSPORTER = "0x4444444444444444444444444444444444444444"
STRANGER = "0x5555555555555555555555555555555555555555"

PRICE = ETHER
FEE = ETHER // 20
DEPOSIT = ETHER // 10
PLACEHOLDER_COMMITMENT = "0x" + "11" * 32
STARTING_BALANCE = 10 * ETHER


class FakeClock:
    """Clock the tests move forward by hand."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Infrastructure Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def payments() -> PaymentService:
    """Ledger with every test wallet funded."""
    ledger = PaymentService()
    for wallet in (SELLER, BUYER, TRANSPORTER, OTHER_TRANSPORTER, STRANGER):
        ledger.fund(wallet, STARTING_BALANCE)
    return ledger


@pytest.fixture
def factory(payments: PaymentService, clock: FakeClock) -> EscrowFactory:
    template = EscrowTemplate(terms=EscrowTerms(WINDOW, WINDOW, WINDOW, max_bids=20))
    return EscrowFactory(owner=FACTORY_OWNER, payments=payments, template=template, clock=clock)


@pytest.fixture
def verifier() -> ValueCommitmentVerifier:
    return ValueCommitmentVerifier(SimulatedProofBackend())


# ---------------------------------------------------------------------------
# Escrow Fixtures
# ---------------------------------------------------------------------------


def price_commitment_for(escrow: ProductEscrow, price: int = PRICE) -> str:
    """Commitment the buyer can open with the seller's deterministic blinding."""
    return reveal_commitment(price, deterministic_blinding(escrow.address, escrow.owner))


def blinding_for(escrow: ProductEscrow) -> str:
    return deterministic_blinding(escrow.address, escrow.owner)


@pytest.fixture
def listed(factory: EscrowFactory) -> ProductEscrow:
    """A listed escrow whose frozen commitment opens to PRICE."""
    escrow = factory.create_product(SELLER, "Olive oil", PLACEHOLDER_COMMITMENT)
    escrow.set_price_commitment(SELLER, price_commitment_for(escrow))
    return escrow


@pytest.fixture
def purchased(listed: ProductEscrow) -> ProductEscrow:
    listed.purchase(BUYER, PRICE)
    return listed


@pytest.fixture
def confirmed(purchased: ProductEscrow) -> ProductEscrow:
    purchased.confirm_order(SELLER, "QmPurchaseVc")
    return purchased


@pytest.fixture
def bound(confirmed: ProductEscrow) -> ProductEscrow:
    confirmed.create_transporter(TRANSPORTER, FEE)
    confirmed.security_deposit(TRANSPORTER, DEPOSIT)
    confirmed.set_transporter(SELLER, TRANSPORTER, FEE)
    return confirmed


@pytest.fixture
def delivered(bound: ProductEscrow) -> ProductEscrow:
    bound.reveal_and_confirm_delivery(BUYER, PRICE, blinding_for(bound), "QmDeliveryVc")
    return bound
