"""Read model of a ledger entry."""

from datetime import datetime

from pydantic import BaseModel


class TransactionView(BaseModel):
    id: str
    order_id: str
    transaction_type: str
    amount: float
    currency: str
    description: str | None = None
    metadata: dict
    provider: str
    payment_intent_id: str | None = None
    charge_id: str | None = None
    payment_method_type: str | None = None
    last4: str | None = None
    receipt_url: str | None = None
    idempotency_key: str | None = None
    state: str
    failure_code: str | None = None
    failure_message: str | None = None
    processed_at: datetime | None = None
    created_at: datetime | None = None
    created_by: str | None = None
    updated_at: datetime | None = None
    updated_by: str | None = None


def build_transaction_view(transaction) -> TransactionView:
    return TransactionView(
        id=str(transaction.id),
        order_id=str(transaction.order_id),
        transaction_type=transaction.transaction_type,
        amount=transaction.amount,
        currency=transaction.currency,
        description=transaction.description,
        metadata=transaction.parsed_metadata,
        provider=transaction.provider,
        payment_intent_id=transaction.payment_intent_id,
        charge_id=transaction.charge_id,
        payment_method_type=transaction.payment_method_type,
        last4=transaction.last4,
        receipt_url=transaction.receipt_url,
        idempotency_key=transaction.idempotency_key,
        state=transaction.state,
        failure_code=transaction.failure_code,
        failure_message=transaction.failure_message,
        processed_at=transaction.processed_at,
        created_at=transaction.created_at,
        created_by=transaction.created_by,
        updated_at=transaction.updated_at,
        updated_by=transaction.updated_by,
    )
