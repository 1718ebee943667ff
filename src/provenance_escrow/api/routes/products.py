"""Product escrow REST API routes.

Handlers are synchronous: escrow operations take a per-instance lock and
FastAPI runs sync handlers in its threadpool.

Routes:
    POST   /api/v1/products                                   — List a product
    POST   /api/v1/products/deterministic                     — List at a salt-derived address
    GET    /api/v1/products/predict/{salt}                    — Predict a salted address
    GET    /api/v1/products                                   — Page through products
    GET    /api/v1/products/{address}                         — Snapshot of one escrow
    GET    /api/v1/products/{address}/events                  — Event log
    POST   /api/v1/products/{address}/{operation}             — Escrow operations
    POST   /api/v1/factory/pause | /unpause                   — Factory administration
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from provenance_escrow.api.deps import get_factory
from provenance_escrow.domain.escrow import ProductEscrow
from provenance_escrow.domain.factory import EscrowFactory
from provenance_escrow.logging_config import get_logger
from provenance_escrow.schemas.escrow import (
    CallerRequest,
    ConfirmOrderRequest,
    CreateDeterministicProductRequest,
    CreateProductRequest,
    CreateTransporterRequest,
    EscrowEventResponse,
    EscrowSnapshot,
    ProductListResponse,
    PurchaseRequest,
    RefundResponse,
    RevealDeliveryRequest,
    SecurityDepositRequest,
    SetPriceCommitmentRequest,
    SetPublicPriceRequest,
    SetTransporterRequest,
    UpdateVcAfterDeliveryRequest,
    UpdateVcRequest,
)

router = APIRouter(prefix="/api/v1", tags=["Products"])
logger = get_logger(__name__)


def _snapshot(escrow: ProductEscrow) -> EscrowSnapshot:
    return EscrowSnapshot.model_validate(escrow.snapshot())


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


@router.post(
    "/products",
    response_model=EscrowSnapshot,
    status_code=201,
    summary="List a new product",
)
def create_product(
    request: CreateProductRequest,
    factory: EscrowFactory = Depends(get_factory),
) -> EscrowSnapshot:
    escrow = factory.create_product(
        seller=request.seller,
        name=request.name,
        price_commitment=request.price_commitment,
        price=request.price,
    )
    return _snapshot(escrow)


@router.post(
    "/products/deterministic",
    response_model=EscrowSnapshot,
    status_code=201,
    summary="List a new product at a predictable address",
)
def create_product_deterministic(
    request: CreateDeterministicProductRequest,
    factory: EscrowFactory = Depends(get_factory),
) -> EscrowSnapshot:
    escrow = factory.create_product_deterministic(
        seller=request.seller,
        name=request.name,
        price_commitment=request.price_commitment,
        salt=request.salt,
        price=request.price,
    )
    return _snapshot(escrow)


@router.get("/products/predict/{salt}", summary="Predict a deterministic product address")
def predict_product_address(
    salt: str,
    factory: EscrowFactory = Depends(get_factory),
) -> dict:
    return {"salt": salt, "address": factory.predict_product_address(salt)}


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@router.get("/products", response_model=ProductListResponse, summary="Page through products")
def list_products(
    offset: int = Query(default=0, ge=0),
    count: int = Query(default=50, ge=0, le=500),
    factory: EscrowFactory = Depends(get_factory),
) -> ProductListResponse:
    products = factory.get_products_range(offset, count)
    return ProductListResponse(
        total=factory.product_count,
        products=[_snapshot(p) for p in products],
    )


@router.get("/products/{address}", response_model=EscrowSnapshot, summary="Escrow snapshot")
def get_product(
    address: str,
    factory: EscrowFactory = Depends(get_factory),
) -> EscrowSnapshot:
    return _snapshot(factory.get_product(address))


@router.get(
    "/products/{address}/events",
    response_model=list[EscrowEventResponse],
    summary="Escrow event log",
)
def get_product_events(
    address: str,
    factory: EscrowFactory = Depends(get_factory),
) -> list[EscrowEventResponse]:
    escrow = factory.get_product(address)
    return [EscrowEventResponse(**event.to_dict()) for event in escrow.events]


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


@router.post("/products/{address}/public-price", response_model=EscrowSnapshot)
def set_public_price(
    address: str,
    request: SetPublicPriceRequest,
    factory: EscrowFactory = Depends(get_factory),
) -> EscrowSnapshot:
    escrow = factory.get_product(address)
    escrow.set_public_price(request.caller, request.price_wei)
    return _snapshot(escrow)


@router.post("/products/{address}/price-commitment", response_model=EscrowSnapshot)
def set_price_commitment(
    address: str,
    request: SetPriceCommitmentRequest,
    factory: EscrowFactory = Depends(get_factory),
) -> EscrowSnapshot:
    escrow = factory.get_product(address)
    escrow.set_price_commitment(request.caller, request.commitment, request.price_wei)
    return _snapshot(escrow)


# ---------------------------------------------------------------------------
# Purchase
# ---------------------------------------------------------------------------


@router.post("/products/{address}/purchase", response_model=EscrowSnapshot)
def purchase(
    address: str,
    request: PurchaseRequest,
    factory: EscrowFactory = Depends(get_factory),
) -> EscrowSnapshot:
    escrow = factory.get_product(address)
    escrow.purchase(request.caller, request.value)
    return _snapshot(escrow)


@router.post("/products/{address}/confirm-order", response_model=EscrowSnapshot)
def confirm_order(
    address: str,
    request: ConfirmOrderRequest,
    factory: EscrowFactory = Depends(get_factory),
) -> EscrowSnapshot:
    escrow = factory.get_product(address)
    escrow.confirm_order(request.caller, request.vc_cid, request.purchase_tx_commitment)
    return _snapshot(escrow)


# ---------------------------------------------------------------------------
# Transporters
# ---------------------------------------------------------------------------


@router.post("/products/{address}/transporters", response_model=EscrowSnapshot)
def create_transporter(
    address: str,
    request: CreateTransporterRequest,
    factory: EscrowFactory = Depends(get_factory),
) -> EscrowSnapshot:
    escrow = factory.get_product(address)
    escrow.create_transporter(request.caller, request.fee)
    return _snapshot(escrow)


@router.post("/products/{address}/security-deposit", response_model=EscrowSnapshot)
def security_deposit(
    address: str,
    request: SecurityDepositRequest,
    factory: EscrowFactory = Depends(get_factory),
) -> EscrowSnapshot:
    escrow = factory.get_product(address)
    escrow.security_deposit(request.caller, request.value)
    return _snapshot(escrow)


@router.post("/products/{address}/withdraw-bid", response_model=RefundResponse)
def withdraw_bid(
    address: str,
    request: CallerRequest,
    factory: EscrowFactory = Depends(get_factory),
) -> RefundResponse:
    escrow = factory.get_product(address)
    refunded = escrow.withdraw_bid(request.caller)
    return RefundResponse(product_id=escrow.product_id, refunded=refunded, phase=escrow.phase.name)


@router.post("/products/{address}/transporter", response_model=EscrowSnapshot)
def set_transporter(
    address: str,
    request: SetTransporterRequest,
    factory: EscrowFactory = Depends(get_factory),
) -> EscrowSnapshot:
    escrow = factory.get_product(address)
    escrow.set_transporter(request.caller, request.transporter, request.value)
    return _snapshot(escrow)


# ---------------------------------------------------------------------------
# Delivery and VCs
# ---------------------------------------------------------------------------


@router.post("/products/{address}/confirm-delivery", response_model=EscrowSnapshot)
def reveal_and_confirm_delivery(
    address: str,
    request: RevealDeliveryRequest,
    factory: EscrowFactory = Depends(get_factory),
) -> EscrowSnapshot:
    escrow = factory.get_product(address)
    escrow.reveal_and_confirm_delivery(
        request.caller, request.value, request.blinding, request.vc_cid
    )
    return _snapshot(escrow)


@router.post("/products/{address}/vc", response_model=EscrowSnapshot)
def update_vc_cid(
    address: str,
    request: UpdateVcRequest,
    factory: EscrowFactory = Depends(get_factory),
) -> EscrowSnapshot:
    escrow = factory.get_product(address)
    escrow.update_vc_cid(request.caller, request.vc_cid)
    return _snapshot(escrow)


@router.post("/products/{address}/vc-after-delivery", response_model=EscrowSnapshot)
def update_vc_cid_after_delivery(
    address: str,
    request: UpdateVcAfterDeliveryRequest,
    factory: EscrowFactory = Depends(get_factory),
) -> EscrowSnapshot:
    escrow = factory.get_product(address)
    escrow.update_vc_cid_after_delivery(
        request.caller, request.vc_cid, request.delivery_tx_commitment
    )
    return _snapshot(escrow)


# ---------------------------------------------------------------------------
# Timeouts
# ---------------------------------------------------------------------------

_TIMEOUTS = {
    "seller-timeout": ProductEscrow.seller_timeout,
    "bid-timeout": ProductEscrow.bid_timeout,
    "delivery-timeout": ProductEscrow.delivery_timeout,
}


@router.post("/products/{address}/{timeout}", response_model=RefundResponse)
def trigger_timeout(
    address: str,
    timeout: str,
    request: CallerRequest,
    factory: EscrowFactory = Depends(get_factory),
) -> RefundResponse:
    """Expire an escrow whose window has run out. Callable by anyone."""
    operation = _TIMEOUTS.get(timeout)
    escrow = factory.get_product(address)
    if operation is None:
        raise HTTPException(status_code=404, detail=f"Unknown operation '{timeout}'")
    refunded = operation(escrow, request.caller)
    return RefundResponse(product_id=escrow.product_id, refunded=refunded, phase=escrow.phase.name)


# ---------------------------------------------------------------------------
# Factory administration
# ---------------------------------------------------------------------------


@router.post("/factory/pause", summary="Pause product creation")
def pause_factory(
    request: CallerRequest,
    factory: EscrowFactory = Depends(get_factory),
) -> dict:
    factory.pause(request.caller)
    return {"paused": factory.is_paused}


@router.post("/factory/unpause", summary="Resume product creation")
def unpause_factory(
    request: CallerRequest,
    factory: EscrowFactory = Depends(get_factory),
) -> dict:
    factory.unpause(request.caller)
    return {"paused": factory.is_paused}
