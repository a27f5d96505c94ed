"""Order ↔ ledger reconciliation.

Nothing here writes. ``reconcile_order`` reports how the ledger stands
against an order's pricing; ``find_refund_gaps`` lists canceled orders that
claim a refund the ledger has no record of.
"""

from dataclasses import dataclass

from protean.utils.globals import current_domain

from sales.ledger.transaction import INBOUND_TYPES, OrderTransaction, TransactionState, TransactionType
from sales.order.order import Order, OrderState
from sales.utils.paging import collect_all

_CENT_TOLERANCE = 0.005


@dataclass(frozen=True)
class LedgerBalance:
    order_id: str
    total_amount: float
    collected: float
    refunded: float
    outstanding: float
    is_consistent: bool


def transactions_for_order(order_id) -> list:
    query = current_domain.repository_for(OrderTransaction)._dao.query.filter(order_id=str(order_id))
    return collect_all(query)


def reconcile_order(order_id) -> LedgerBalance:
    order = current_domain.repository_for(Order).get(order_id)
    transactions = transactions_for_order(order.id)

    # Captured inbound money, including captures later refunded in full
    collected = sum(
        t.amount
        for t in transactions
        if TransactionType(t.transaction_type) in INBOUND_TYPES
        and t.state in (TransactionState.SUCCEEDED.value, TransactionState.REFUNDED.value)
    )
    refunded = sum(
        t.amount
        for t in transactions
        if t.transaction_type == TransactionType.REFUND.value and t.state == TransactionState.SUCCEEDED.value
    ) + sum(
        t.amount
        for t in transactions
        if TransactionType(t.transaction_type) in INBOUND_TYPES and t.state == TransactionState.REFUNDED.value
    )

    total = order.pricing.total_amount
    return LedgerBalance(
        order_id=str(order.id),
        total_amount=total,
        collected=round(collected, 2),
        refunded=round(refunded, 2),
        outstanding=round(max(total - collected, 0.0), 2),
        is_consistent=collected <= total + _CENT_TOLERANCE and refunded <= collected + _CENT_TOLERANCE,
    )


def find_refund_gaps() -> list[str]:
    """Ids of canceled orders flagged as refunded with no refund entry at all."""
    canceled = collect_all(
        current_domain.repository_for(Order)._dao.query.filter(state=OrderState.CANCELED.value)
    )
    gaps = []
    for order in canceled:
        if order.refund_amount is None:
            continue
        refunds = [
            t for t in transactions_for_order(order.id) if t.transaction_type == TransactionType.REFUND.value
        ]
        if not refunds:
            gaps.append(str(order.id))
    return gaps
