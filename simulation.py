#!/usr/bin/env python3
"""
Provenance Escrow — End-to-End Simulation
=========================================

Drives seller, buyer and transporter bots through complete escrow
lifecycles against an in-process ledger and proof backend:

    Scenario 1: Happy path with bound price proofs and a revealed delivery
    Scenario 2: Seller never confirms; the buyer is refunded after the window
    Scenario 3: Transporter never delivers; its deposit goes to the buyer
    Scenario 4: A proof replayed into another stage or product is rejected

Usage:
    python simulation.py                     # all scenarios, simulated prover
    python simulation.py --scenario 3        # one scenario
    python simulation.py --prover http       # use the prover service at ZKP_BACKEND_URL
"""

from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass, field

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "src"))

from provenance_escrow.logging_config import get_logger, setup_logging  # noqa: E402

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from provenance_escrow.domain.binding import CommitmentBinder  # noqa: E402
from provenance_escrow.domain.commitments import (  # noqa: E402
    deterministic_blinding,
    reveal_commitment,
)
from provenance_escrow.domain.enums import Stage  # noqa: E402
from provenance_escrow.domain.escrow import ProductEscrow  # noqa: E402
from provenance_escrow.domain.exceptions import EscrowError  # noqa: E402
from provenance_escrow.domain.factory import EscrowFactory  # noqa: E402
from provenance_escrow.domain.proof_protocol import ZKProof  # noqa: E402
from provenance_escrow.infrastructure.vc_store import (  # noqa: E402
    CachedContentStore,
    InMemoryContentStore,
    put_json,
)
from provenance_escrow.provers import ProofBackendFactory  # noqa: E402
from provenance_escrow.services.payment_service import PaymentService  # noqa: E402
from provenance_escrow.services.verification_service import (  # noqa: E402
    ValueCommitmentVerifier,
)

CHAIN_ID = 11155111
ETHER = 10**18
DAY = 24 * 3600

FACTORY_OWNER = "0x00000000000000000000000000000000000000F0"
SELLER = "0x1111111111111111111111111111111111111111"
BUYER = "0x2222222222222222222222222222222222222222"
TRANSPORTER = "0x3333333333333333333333333333333333333333"
RIVAL_TRANSPORTER = "0x4444444444444444444444444444444444444444"

_prover_type = "simulated"


def set_prover(prover_type: str) -> None:
    global _prover_type
    _prover_type = prover_type


class SimClock:
    """Manually advanced clock shared by the factory and its escrows."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class World:
    """Everything one scenario runs against."""

    clock: SimClock
    payments: PaymentService
    factory: EscrowFactory
    binder: CommitmentBinder
    verifier: ValueCommitmentVerifier
    store: CachedContentStore


def build_world() -> World:
    clock = SimClock()
    payments = PaymentService()
    for wallet in (SELLER, BUYER, TRANSPORTER, RIVAL_TRANSPORTER):
        payments.fund(wallet, 10 * ETHER)
    return World(
        clock=clock,
        payments=payments,
        factory=EscrowFactory(owner=FACTORY_OWNER, payments=payments, clock=clock),
        binder=CommitmentBinder(chain_id=CHAIN_ID),
        verifier=ValueCommitmentVerifier(ProofBackendFactory.create({"type": _prover_type})),
        store=CachedContentStore(InMemoryContentStore()),
    )


# ---------------------------------------------------------------------------
# Bots
# ---------------------------------------------------------------------------
@dataclass
class SellerBot:
    """Lists products and issues the VCs for each stage."""

    world: World
    address: str = SELLER
    price: int = ETHER

    def list_product(self, name: str) -> tuple[ProductEscrow, ZKProof]:
        """List with a placeholder commitment, then freeze the real one.

        The blinding depends on the escrow address, which only exists
        after creation, so the commitment is set in a second call.
        """
        world = self.world
        placeholder = "0x" + "11" * 32
        escrow = world.factory.create_product(self.address, name, placeholder)
        blinding = deterministic_blinding(escrow.address, self.address)
        escrow.set_price_commitment(self.address, reveal_commitment(self.price, blinding))

        tag = world.binder.tag_for(escrow.address, escrow.product_id, Stage.LISTING)
        proof = world.verifier.generate(self.price, blinding, tag)
        listing_vc = self.issue_vc(escrow, Stage.LISTING, proof)
        escrow.update_vc_cid(self.address, listing_vc)
        print(f"  🏷️  Listed #{escrow.product_id} '{name}' at {escrow.address}")
        return escrow, proof

    def issue_vc(
        self,
        escrow: ProductEscrow,
        stage: Stage,
        proof: ZKProof,
        previous_cid: str | None = None,
    ) -> str:
        document = {
            "type": ["VerifiableCredential", "ProductProvenance"],
            "issuer": self.address,
            "credentialSubject": {
                "productId": escrow.product_id,
                "escrowAddr": escrow.address,
                "stage": stage.name,
                "priceCommitment": escrow.price_commitment,
                "previousVCCid": previous_cid,
                "proof": proof.to_dict(),
            },
        }
        return put_json(self.world.store, document)


@dataclass
class BuyerBot:
    """Checks the seller's proof, pays, and confirms delivery."""

    world: World
    address: str = BUYER

    def check_listing(self, escrow: ProductEscrow, proof: ZKProof) -> bool:
        context = self.world.binder.context_for(escrow.address, escrow.product_id, Stage.LISTING)
        ok = self.world.verifier.verify_in_context(proof, context)
        print(f"  🔍 Buyer checks listing proof: {'valid' if ok else 'REJECTED'}")
        return ok

    def buy(self, escrow: ProductEscrow, price: int) -> None:
        escrow.purchase(self.address, price)
        print(f"  💸 Buyer paid {price / ETHER:.2f} ETH into escrow")

    def confirm_delivery(self, escrow: ProductEscrow, price: int, vc_cid: str) -> None:
        blinding = deterministic_blinding(escrow.address, escrow.owner)
        escrow.reveal_and_confirm_delivery(self.address, price, blinding, vc_cid)
        print("  📦 Buyer revealed the price and confirmed delivery")


@dataclass
class TransporterBot:
    """Bids on a shipment and posts a security deposit."""

    world: World
    address: str
    fee: int
    deposit: int
    bids: list[int] = field(default_factory=list)

    def bid(self, escrow: ProductEscrow) -> None:
        escrow.create_transporter(self.address, self.fee)
        escrow.security_deposit(self.address, self.deposit)
        self.bids.append(escrow.product_id)
        print(
            f"  🚚 {self.address[:10]}… bids {self.fee / ETHER:.2f} ETH "
            f"with {self.deposit / ETHER:.2f} ETH deposit"
        )


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    """Print a prominent banner."""
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    """Print a section header."""
    print(f"\n--- {text} ---\n")


def print_balances(world: World, escrow: ProductEscrow) -> None:
    payments = world.payments
    print("  💰 Balances:")
    for label, wallet in (
        ("seller", SELLER),
        ("buyer", BUYER),
        ("transporter", TRANSPORTER),
        ("escrow", escrow.address),
    ):
        print(f"    {label:<12} {payments.balance_of(wallet) / ETHER:>10.4f} ETH")
    status = "balanced" if escrow.is_balanced else "UNBALANCED"
    print(f"  Escrow books: {status}")


def print_event_log(escrow: ProductEscrow) -> None:
    """Print the full event log for an escrow."""
    print("\n  📜 Event log:")
    for i, event in enumerate(escrow.events, 1):
        detail = ", ".join(f"{k}={v}" for k, v in event.data.items() if k != "tx_hash")
        print(f"    {i:>2}. [{event.event_type}] {detail}")
    print()


# ===========================================================================
# Scenario 1: Happy Path
# ===========================================================================
def scenario_1_happy_path() -> None:
    banner("SCENARIO 1: Happy Path — bound proofs, bidding, revealed delivery")
    world = build_world()
    seller = SellerBot(world)
    buyer = BuyerBot(world)
    carrier = TransporterBot(world, TRANSPORTER, fee=ETHER // 20, deposit=ETHER // 10)
    rival = TransporterBot(world, RIVAL_TRANSPORTER, fee=ETHER // 10, deposit=ETHER // 10)

    section("Step 1: Seller lists the product")
    escrow, listing_proof = seller.list_product("Single-origin olive oil, 12 x 1L")

    section("Step 2: Buyer verifies and pays")
    if not buyer.check_listing(escrow, listing_proof):
        raise RuntimeError("listing proof should verify")
    buyer.buy(escrow, seller.price)

    section("Step 3: Seller confirms the order")
    blinding = deterministic_blinding(escrow.address, SELLER)
    purchase_tag = world.binder.tag_for(
        escrow.address, escrow.product_id, Stage.PURCHASE, escrow.vc_cid(Stage.LISTING)
    )
    purchase_proof = world.verifier.generate(seller.price, blinding, purchase_tag)
    purchase_vc = seller.issue_vc(
        escrow, Stage.PURCHASE, purchase_proof, escrow.vc_cid(Stage.LISTING)
    )
    escrow.confirm_order(SELLER, purchase_vc)
    print(f"  ✅ Order confirmed, purchase VC {purchase_vc}")

    section("Step 4: Transporters bid, seller picks the cheapest")
    carrier.bid(escrow)
    rival.bid(escrow)
    world.clock.advance(DAY)
    refund = escrow.withdraw_bid(RIVAL_TRANSPORTER)
    print(f"  ↩️  Rival withdrew and got {refund / ETHER:.2f} ETH back")
    escrow.set_transporter(SELLER, TRANSPORTER, carrier.fee)

    section("Step 5: Delivery")
    world.clock.advance(DAY)
    delivery_tag = world.binder.tag_for(
        escrow.address, escrow.product_id, Stage.DELIVERY, purchase_vc
    )
    delivery_proof = world.verifier.generate(seller.price, blinding, delivery_tag)
    delivery_vc = seller.issue_vc(escrow, Stage.DELIVERY, delivery_proof, purchase_vc)
    buyer.confirm_delivery(escrow, seller.price, delivery_vc)

    tx_tag = world.binder.tx_hash_tag_for(escrow.address, escrow.product_id, BUYER)
    tx_commitment = world.verifier.commit_tx_hash("0x" + "ab" * 32, tx_tag)
    escrow.update_vc_cid_after_delivery(BUYER, delivery_vc, "0x" + tx_commitment.commitment)
    print(f"  🔗 Delivery tx hash committed: 0x{tx_commitment.commitment[:16]}…")

    print_balances(world, escrow)
    print_event_log(escrow)
    print(f"  🎯 Final phase: {escrow.phase.name}")


# ===========================================================================
# Scenario 2: Seller Timeout
# ===========================================================================
def scenario_2_seller_timeout() -> None:
    banner("SCENARIO 2: Seller Timeout — buyer refunded after the window")
    world = build_world()
    seller = SellerBot(world)
    buyer = BuyerBot(world)

    escrow, _ = seller.list_product("Hand-thrown ceramic bowl")
    buyer.buy(escrow, seller.price)

    section("Step 1: Buyer tries to reclaim too early")
    world.clock.advance(DAY)
    try:
        escrow.seller_timeout(BUYER)
    except EscrowError as exc:
        print(f"  ⛔ Rejected: {exc.message}")

    section("Step 2: Window elapses")
    world.clock.advance(DAY)
    refund = escrow.seller_timeout(BUYER)
    print(f"  ↩️  Buyer refunded {refund / ETHER:.2f} ETH")

    print_balances(world, escrow)
    print_event_log(escrow)
    print(f"  🎯 Final phase: {escrow.phase.name}")


# ===========================================================================
# Scenario 3: Delivery Timeout
# ===========================================================================
def scenario_3_delivery_timeout() -> None:
    banner("SCENARIO 3: Delivery Timeout — transporter deposit forfeited")
    world = build_world()
    seller = SellerBot(world)
    buyer = BuyerBot(world)
    carrier = TransporterBot(world, TRANSPORTER, fee=ETHER // 20, deposit=ETHER // 5)

    escrow, _ = seller.list_product("Vintage film camera")
    buyer.buy(escrow, seller.price)
    escrow.confirm_order(SELLER, "QmPurchasePlaceholder")
    carrier.bid(escrow)
    escrow.set_transporter(SELLER, TRANSPORTER, carrier.fee)

    section("Step 1: Delivery window runs out")
    world.clock.advance(2 * DAY)
    refund = escrow.delivery_timeout(BUYER)
    print(f"  ↩️  Buyer refunded {refund / ETHER:.2f} ETH plus the deposit")

    print_balances(world, escrow)
    print_event_log(escrow)
    print(f"  🎯 Final phase: {escrow.phase.name}")


# ===========================================================================
# Scenario 4: Proof Replay
# ===========================================================================
def scenario_4_replay_rejected() -> None:
    banner("SCENARIO 4: Replay — a bound proof only verifies in its own context")
    world = build_world()
    seller = SellerBot(world)

    escrow_a, proof_a = seller.list_product("Batch A")
    escrow_b, _ = seller.list_product("Batch B")

    def check(label: str, escrow: ProductEscrow, stage: Stage) -> None:
        context = world.binder.context_for(escrow.address, escrow.product_id, stage)
        ok = world.verifier.verify_in_context(proof_a, context)
        print(f"  {'✅' if ok else '🚫'} {label}: {'accepted' if ok else 'rejected'}")

    check("Original context", escrow_a, Stage.LISTING)
    check("Same product, purchase stage", escrow_a, Stage.PURCHASE)
    check("Other product, listing stage", escrow_b, Stage.LISTING)

    stripped = world.verifier.verify(proof_a.commitment, proof_a.proof)
    print(f"  {'✅' if stripped else '🚫'} Tag stripped: {'accepted' if stripped else 'rejected'}")


# ===========================================================================
# Main
# ===========================================================================
SCENARIOS = {
    1: scenario_1_happy_path,
    2: scenario_2_seller_timeout,
    3: scenario_3_delivery_timeout,
    4: scenario_4_replay_rejected,
}


def run_all() -> None:
    """Run all scenarios sequentially."""
    print("\n" + "🚀" * 35)
    print("  PROVENANCE ESCROW — SIMULATION")
    print(f"  Prover: {_prover_type}")
    print("🚀" * 35 + "\n")

    for scenario in SCENARIOS.values():
        scenario()

    print("\n" + "=" * 70)
    print("  ✅ ALL SCENARIOS COMPLETED SUCCESSFULLY")
    print("=" * 70 + "\n")


def run_scenario(num: int) -> None:
    """Run a specific scenario."""
    if num not in SCENARIOS:
        print(f"Unknown scenario {num}. Available: {', '.join(map(str, SCENARIOS))}")
        return
    SCENARIOS[num]()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Provenance Escrow Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1-4). Default: run all.",
    )
    parser.add_argument(
        "--prover",
        choices=ProofBackendFactory.get_supported_types(),
        default="simulated",
        help="Proof backend to use. 'http' needs the prover service running.",
    )
    args = parser.parse_args()
    set_prover(args.prover)

    if args.scenario == 0:
        run_all()
    else:
        run_scenario(args.scenario)
