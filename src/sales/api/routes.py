"""FastAPI routes for the Sales domain: orders, their ledger, maintenance sweeps.

The caller's identity arrives in ``X-Actor-Id`` / ``X-Actor-Admin`` headers,
resolved upstream by the identity service. ``If-Match`` carries the order
version a mutation was prepared against.

Routes that process commands are plain functions: FastAPI runs them in its
threadpool, so a retry backing off on a flaky store never stalls the event loop.
"""

import json
import os
from dataclasses import asdict

from fastapi import APIRouter, Header, HTTPException, Query
from fastapi.responses import JSONResponse
from protean.utils.globals import current_domain

from sales.api.schemas import (
    AddDocumentRequest,
    AddNoteRequest,
    CancelOrderRequest,
    CompleteInspectionRequest,
    ConfigureGatewayRequest,
    CreateOrderRequest,
    CreateTransactionRequest,
    GatewayConfigResponse,
    LedgerBalanceResponse,
    ScheduleInspectionRequest,
    SweepResponse,
    TransactionOutcomeRequest,
    TransactionPageResponse,
    UpdateDeliveryRequest,
    UpdateStatusRequest,
)
from sales.exceptions import OrderAccessDenied
from sales.gateway import get_gateway
from sales.gateway.fake_adapter import FakeGateway
from sales.ledger.queries import list_order_transactions, list_transactions
from sales.ledger.reconciliation import reconcile_order
from sales.ledger.recording import CreateTransaction
from sales.ledger.refunds import DispatchPendingRefunds
from sales.ledger.webhook import RecordTransactionOutcome
from sales.order.access import resolve_role
from sales.order.attachments import AddOrderDocument, AddOrderNote
from sales.order.cancellation import CancelOrder
from sales.order.creation import CreateOrder
from sales.order.delivery import UpdateDelivery
from sales.order.expiry import ExpireUnpaidOrders
from sales.order.inspection import CompleteInspection, ScheduleInspection
from sales.order.order import Order
from sales.order.queries import get_order, list_orders
from sales.order.status import UpdateOrderStatus
from sales.utils.retry import retry_with_backoff

order_router = APIRouter(prefix="/orders", tags=["orders"])


def _process(command):
    return retry_with_backoff(lambda: current_domain.process(command, asynchronous=False))


def _json(model, status_code=200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=model.model_dump(mode="json"))


def _expected_version(if_match: str | None) -> int | None:
    if if_match is None:
        return None
    try:
        return int(if_match.strip().strip('"').removeprefix("W/").strip('"'))
    except ValueError:
        raise HTTPException(status_code=400, detail="If-Match must carry an order version") from None


def _require_admin(is_admin: bool) -> None:
    if not is_admin:
        raise OrderAccessDenied("This operation is restricted to admins")


def _address_json(address) -> str | None:
    return json.dumps(address.model_dump(exclude_none=True)) if address else None


# ---------------------------------------------------------------------------
# Ledger (static paths first so they never match /{order_id})
# ---------------------------------------------------------------------------
@order_router.post("/transactions", status_code=201)
def create_transaction(
    body: CreateTransactionRequest,
    x_actor_id: str = Header(),
    x_actor_admin: bool = Header(default=False),
) -> JSONResponse:
    """Record a pending ledger entry against an order."""
    command = CreateTransaction(
        order_id=body.order_id,
        actor_id=x_actor_id,
        is_admin=x_actor_admin,
        transaction_type=body.transaction_type,
        amount=body.amount,
        currency=body.currency,
        payment_intent_id=body.payment_intent_id,
        description=body.description,
        transaction_metadata=json.dumps(body.metadata) if body.metadata else None,
    )
    return _json(_process(command), status_code=201)


@order_router.get("/transactions/all", response_model=TransactionPageResponse)
async def list_all_transactions(
    x_actor_admin: bool = Header(default=False),
    order_id: str | None = None,
    transaction_type: str | None = None,
    state: str | None = None,
    provider: str | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    limit: int = Query(default=20, ge=1, le=100),
    cursor: str | None = None,
) -> TransactionPageResponse:
    """List ledger entries across all orders (admins only)."""
    _require_admin(x_actor_admin)
    page = list_transactions(
        order_id=order_id,
        transaction_type=transaction_type,
        state=state,
        provider=provider,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=limit,
        cursor=cursor,
    )
    return TransactionPageResponse(items=page.items, total=page.total, next_cursor=page.next_cursor)


@order_router.post("/transactions/webhook")
def transaction_webhook(
    body: TransactionOutcomeRequest,
    x_gateway_signature: str = Header(default=""),
) -> JSONResponse:
    """Apply a payment-provider callback to a ledger entry."""
    gateway = get_gateway()
    if not gateway.verify_webhook_signature(json.dumps(body.model_dump()), x_gateway_signature):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    command = RecordTransactionOutcome(
        transaction_id=body.transaction_id,
        payment_intent_id=body.payment_intent_id,
        outcome=body.outcome,
        charge_id=body.charge_id,
        payment_method_type=body.payment_method_type,
        last4=body.last4,
        receipt_url=body.receipt_url,
        failure_code=body.failure_code,
        failure_message=body.failure_message,
    )
    return _json(_process(command))


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------
@order_router.post("/maintenance/expire-deposits", response_model=SweepResponse)
def expire_deposits(x_actor_admin: bool = Header(default=False)) -> SweepResponse:
    """Cancel orders whose deposit is past due (run by a scheduler)."""
    _require_admin(x_actor_admin)
    return SweepResponse(processed=_process(ExpireUnpaidOrders()))


@order_router.post("/maintenance/dispatch-refunds", response_model=SweepResponse)
def dispatch_refunds(x_actor_admin: bool = Header(default=False)) -> SweepResponse:
    """Send pending refunds to the payment gateway (run by a scheduler)."""
    _require_admin(x_actor_admin)
    return SweepResponse(processed=_process(DispatchPendingRefunds()))


@order_router.post("/gateway/configure", response_model=GatewayConfigResponse)
def configure_gateway(body: ConfigureGatewayRequest) -> GatewayConfigResponse:
    """Configure the FakeGateway behavior (non-production only)."""
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail="Gateway configuration not available in production")

    gateway = get_gateway()
    if not isinstance(gateway, FakeGateway):
        raise HTTPException(status_code=400, detail="Gateway configuration only available for FakeGateway")

    gateway.configure(
        should_succeed=body.should_succeed,
        failure_reason=body.failure_reason,
        transient_failures=body.transient_failures,
    )
    return GatewayConfigResponse(
        gateway=type(gateway).__name__,
        should_succeed=gateway.should_succeed,
        failure_reason=gateway.failure_reason,
        transient_failures=gateway.transient_failures,
    )


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
@order_router.post("", status_code=201)
def create_order(body: CreateOrderRequest, x_actor_id: str = Header()) -> JSONResponse:
    """Place an order on a published listing; the caller is the buyer."""
    command = CreateOrder(
        listing_id=body.listing_id,
        buyer_id=x_actor_id,
        agreed_price=body.agreed_price,
        deposit_amount=body.deposit_amount,
        delivery_method=body.delivery_method,
        delivery_address=_address_json(body.delivery_address),
        special_instructions=body.special_instructions,
        notes=body.notes,
    )
    return _json(_process(command), status_code=201)


@order_router.get("")
async def search_orders(
    x_actor_id: str = Header(),
    x_actor_admin: bool = Header(default=False),
    buyer_id: str | None = None,
    seller_id: str | None = None,
    listing_id: str | None = None,
    state: str | None = None,
    vin_last_four: str | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    limit: int = Query(default=20, ge=1, le=100),
    cursor: str | None = None,
) -> JSONResponse:
    page = list_orders(
        actor_id=x_actor_id,
        is_admin=x_actor_admin,
        buyer_id=buyer_id,
        seller_id=seller_id,
        listing_id=listing_id,
        state=state,
        vin_last_four=vin_last_four,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=limit,
        cursor=cursor,
    )
    return JSONResponse(
        content={
            "items": [view.model_dump(mode="json") for view in page.items],
            "total": page.total,
            "next_cursor": page.next_cursor,
        }
    )


@order_router.get("/{order_id}")
async def read_order(
    order_id: str,
    x_actor_id: str = Header(),
    x_actor_admin: bool = Header(default=False),
) -> JSONResponse:
    return _json(get_order(order_id, x_actor_id, x_actor_admin))


@order_router.patch("/{order_id}/status")
def update_status(
    order_id: str,
    body: UpdateStatusRequest,
    x_actor_id: str = Header(),
    x_actor_admin: bool = Header(default=False),
    if_match: str | None = Header(default=None),
) -> JSONResponse:
    command = UpdateOrderStatus(
        order_id=order_id,
        actor_id=x_actor_id,
        is_admin=x_actor_admin,
        state=body.state,
        substatus=body.substatus,
        reason=body.reason,
        expected_version=_expected_version(if_match),
    )
    return _json(_process(command))


@order_router.post("/{order_id}/cancel")
def cancel_order(
    order_id: str,
    body: CancelOrderRequest,
    x_actor_id: str = Header(),
    x_actor_admin: bool = Header(default=False),
    if_match: str | None = Header(default=None),
) -> JSONResponse:
    command = CancelOrder(
        order_id=order_id,
        actor_id=x_actor_id,
        is_admin=x_actor_admin,
        reason=body.reason,
        issue_refund=body.issue_refund,
        refund_amount=body.refund_amount,
        expected_version=_expected_version(if_match),
    )
    return _json(_process(command))


@order_router.post("/{order_id}/inspection/schedule")
def schedule_inspection(
    order_id: str,
    body: ScheduleInspectionRequest,
    x_actor_id: str = Header(),
    x_actor_admin: bool = Header(default=False),
    if_match: str | None = Header(default=None),
) -> JSONResponse:
    command = ScheduleInspection(
        order_id=order_id,
        actor_id=x_actor_id,
        is_admin=x_actor_admin,
        scheduled_at=body.scheduled_at,
        location=body.location,
        inspector=body.inspector,
        expected_version=_expected_version(if_match),
    )
    return _json(_process(command))


@order_router.post("/{order_id}/inspection/complete")
def complete_inspection(
    order_id: str,
    body: CompleteInspectionRequest,
    x_actor_id: str = Header(),
    x_actor_admin: bool = Header(default=False),
    if_match: str | None = Header(default=None),
) -> JSONResponse:
    command = CompleteInspection(
        order_id=order_id,
        actor_id=x_actor_id,
        is_admin=x_actor_admin,
        approved=body.approved,
        findings=body.findings,
        report_url=body.report_url,
        expected_version=_expected_version(if_match),
    )
    return _json(_process(command))


@order_router.patch("/{order_id}/delivery")
def update_delivery(
    order_id: str,
    body: UpdateDeliveryRequest,
    x_actor_id: str = Header(),
    x_actor_admin: bool = Header(default=False),
    if_match: str | None = Header(default=None),
) -> JSONResponse:
    command = UpdateDelivery(
        order_id=order_id,
        actor_id=x_actor_id,
        is_admin=x_actor_admin,
        delivery_method=body.method,
        delivery_address=_address_json(body.address),
        scheduled_date=body.scheduled_date,
        estimated_arrival=body.estimated_arrival,
        tracking_number=body.tracking_number,
        carrier=body.carrier,
        special_instructions=body.special_instructions,
        expected_version=_expected_version(if_match),
    )
    return _json(_process(command))


@order_router.post("/{order_id}/notes", status_code=201)
def add_note(
    order_id: str,
    body: AddNoteRequest,
    x_actor_id: str = Header(),
    x_actor_admin: bool = Header(default=False),
    if_match: str | None = Header(default=None),
) -> JSONResponse:
    command = AddOrderNote(
        order_id=order_id,
        actor_id=x_actor_id,
        is_admin=x_actor_admin,
        content=body.content,
        author_name=body.author_name,
        is_internal=body.is_internal,
        expected_version=_expected_version(if_match),
    )
    return _json(_process(command), status_code=201)


@order_router.post("/{order_id}/documents", status_code=201)
def add_document(
    order_id: str,
    body: AddDocumentRequest,
    x_actor_id: str = Header(),
    x_actor_admin: bool = Header(default=False),
    if_match: str | None = Header(default=None),
) -> JSONResponse:
    command = AddOrderDocument(
        order_id=order_id,
        actor_id=x_actor_id,
        is_admin=x_actor_admin,
        document_type=body.document_type,
        name=body.name,
        url=body.url,
        expected_version=_expected_version(if_match),
    )
    return _json(_process(command), status_code=201)


@order_router.get("/{order_id}/transactions", response_model=TransactionPageResponse)
async def read_order_transactions(
    order_id: str,
    x_actor_id: str = Header(),
    x_actor_admin: bool = Header(default=False),
    transaction_type: str | None = None,
    state: str | None = None,
    provider: str | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    limit: int = Query(default=20, ge=1, le=100),
    cursor: str | None = None,
) -> TransactionPageResponse:
    page = list_order_transactions(
        order_id,
        x_actor_id,
        x_actor_admin,
        transaction_type=transaction_type,
        state=state,
        provider=provider,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=limit,
        cursor=cursor,
    )
    return TransactionPageResponse(items=page.items, total=page.total, next_cursor=page.next_cursor)


@order_router.get("/{order_id}/ledger", response_model=LedgerBalanceResponse)
async def read_order_ledger(
    order_id: str,
    x_actor_id: str = Header(),
    x_actor_admin: bool = Header(default=False),
) -> LedgerBalanceResponse:
    """How the order's ledger stands against its pricing."""
    order = current_domain.repository_for(Order).get(order_id)
    resolve_role(order, x_actor_id, x_actor_admin)
    balance = reconcile_order(order_id)
    return LedgerBalanceResponse(**asdict(balance))
