"""Pydantic request/response schemas for the Sales API.

These are external contracts (anti-corruption layer), separate from
internal Protean commands. Order and transaction responses reuse the read
models in ``sales.order.views`` and ``sales.ledger.views``.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from sales.ledger.views import TransactionView


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class DeliveryAddressSchema(BaseModel):
    street: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None


# ---------------------------------------------------------------------------
# Order Request Schemas
# ---------------------------------------------------------------------------
class CreateOrderRequest(BaseModel):
    listing_id: str
    agreed_price: float = Field(gt=0)
    deposit_amount: float = Field(ge=0)
    delivery_method: str | None = None
    delivery_address: DeliveryAddressSchema | None = None
    special_instructions: str | None = None
    notes: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "listing_id": "lst-001",
                    "agreed_price": 45000,
                    "deposit_amount": 2000,
                    "delivery_method": "pickup",
                }
            ]
        }
    }


class UpdateStatusRequest(BaseModel):
    state: str
    substatus: str | None = None
    reason: str | None = None


class CancelOrderRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)
    issue_refund: bool = False
    refund_amount: float | None = Field(default=None, gt=0)


class ScheduleInspectionRequest(BaseModel):
    scheduled_at: datetime
    location: str | None = None
    inspector: str | None = None


class CompleteInspectionRequest(BaseModel):
    approved: bool
    findings: str | None = None
    report_url: str | None = None


class UpdateDeliveryRequest(BaseModel):
    method: str | None = None
    address: DeliveryAddressSchema | None = None
    scheduled_date: datetime | None = None
    estimated_arrival: datetime | None = None
    tracking_number: str | None = None
    carrier: str | None = None
    special_instructions: str | None = None


class AddNoteRequest(BaseModel):
    content: str = Field(min_length=1)
    author_name: str | None = None
    is_internal: bool = False


class AddDocumentRequest(BaseModel):
    document_type: str
    name: str
    url: str


# ---------------------------------------------------------------------------
# Ledger Request Schemas
# ---------------------------------------------------------------------------
class CreateTransactionRequest(BaseModel):
    order_id: str
    transaction_type: str
    amount: float = Field(gt=0)
    currency: str | None = None
    payment_intent_id: str | None = None
    description: str | None = None
    metadata: dict | None = None


class TransactionOutcomeRequest(BaseModel):
    transaction_id: str | None = None
    payment_intent_id: str | None = None
    outcome: str
    charge_id: str | None = None
    payment_method_type: str | None = None
    last4: str | None = None
    receipt_url: str | None = None
    failure_code: str | None = None
    failure_message: str | None = None


class ConfigureGatewayRequest(BaseModel):
    should_succeed: bool = True
    failure_reason: str = "Refund declined"
    transient_failures: int = Field(default=0, ge=0)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class TransactionPageResponse(BaseModel):
    items: list[TransactionView]
    total: int
    next_cursor: str | None = None


class LedgerBalanceResponse(BaseModel):
    order_id: str
    total_amount: float
    collected: float
    refunded: float
    outstanding: float
    is_consistent: bool


class SweepResponse(BaseModel):
    status: str = "ok"
    processed: int


class GatewayConfigResponse(BaseModel):
    gateway: str
    should_succeed: bool
    failure_reason: str
    transient_failures: int
