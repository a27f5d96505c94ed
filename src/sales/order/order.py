"""Order aggregate: the record of one vehicle purchase, from deposit to hand-over.

State Machine (12 states):
    PENDING_DEPOSIT → DEPOSIT_PAID → INSPECTION_SCHEDULED → INSPECTION_COMPLETED →
    PENDING_PAYMENT → PAYMENT_COMPLETED → READY_FOR_DELIVERY → IN_TRANSIT →
    DELIVERED → COMPLETED
    any non-terminal state → CANCELED or DISPUTED
    DISPUTED → any state except PENDING_DEPOSIT (resolution)

Every state-changing operation appends exactly one TimelineEvent and bumps
``version``. The timeline is append-only; notes and documents are pure
appends that bump the version without touching the timeline.
"""

import json
from datetime import UTC, datetime, timedelta
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from sales.domain import sales
from sales.exceptions import VersionConflict
from sales.order.events import (
    DeliveryScheduled,
    OrderCanceled,
    OrderCreated,
    OrderStateChanged,
)

SYSTEM_ACTOR = "system"
DEPOSIT_EXPIRED_REASON = "Deposit not received by due date"

_CENT_TOLERANCE = 0.005


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderState(Enum):
    PENDING_DEPOSIT = "pending_deposit"
    DEPOSIT_PAID = "deposit_paid"
    INSPECTION_SCHEDULED = "inspection_scheduled"
    INSPECTION_COMPLETED = "inspection_completed"
    PENDING_PAYMENT = "pending_payment"
    PAYMENT_COMPLETED = "payment_completed"
    READY_FOR_DELIVERY = "ready_for_delivery"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELED = "canceled"
    DISPUTED = "disputed"


class TimelineEventType(Enum):
    ORDER_CREATED = "order_created"
    DEPOSIT_RECEIVED = "deposit_received"
    INSPECTION_SCHEDULED = "inspection_scheduled"
    INSPECTION_APPROVED = "inspection_approved"
    INSPECTION_REJECTED = "inspection_rejected"
    PAYMENT_REQUESTED = "payment_requested"
    PAYMENT_RECEIVED = "payment_received"
    READY_FOR_DELIVERY = "ready_for_delivery"
    DELIVERY_SCHEDULED = "delivery_scheduled"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELED = "canceled"
    DISPUTE_RAISED = "dispute_raised"
    DISPUTE_RESOLVED = "dispute_resolved"
    ORDER_EXPIRED = "order_expired"


class DeliveryMethod(Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"
    SHIPPING = "shipping"


class DocumentType(Enum):
    PURCHASE_AGREEMENT = "purchase_agreement"
    BILL_OF_SALE = "bill_of_sale"
    INSPECTION_REPORT = "inspection_report"
    TITLE = "title"
    RECEIPT = "receipt"
    OTHER = "other"


TERMINAL_STATES = frozenset({OrderState.COMPLETED, OrderState.CANCELED})

_ALL_STATES = frozenset(OrderState)

# State machine transition map
_VALID_TRANSITIONS = {
    OrderState.PENDING_DEPOSIT: {OrderState.DEPOSIT_PAID, OrderState.CANCELED, OrderState.DISPUTED},
    OrderState.DEPOSIT_PAID: {
        OrderState.INSPECTION_SCHEDULED,
        OrderState.PENDING_PAYMENT,
        OrderState.CANCELED,
        OrderState.DISPUTED,
    },
    OrderState.INSPECTION_SCHEDULED: {
        OrderState.INSPECTION_SCHEDULED,  # Reschedule
        OrderState.INSPECTION_COMPLETED,
        OrderState.CANCELED,
        OrderState.DISPUTED,
    },
    OrderState.INSPECTION_COMPLETED: {OrderState.PENDING_PAYMENT, OrderState.CANCELED, OrderState.DISPUTED},
    OrderState.PENDING_PAYMENT: {OrderState.PAYMENT_COMPLETED, OrderState.CANCELED, OrderState.DISPUTED},
    OrderState.PAYMENT_COMPLETED: {OrderState.READY_FOR_DELIVERY, OrderState.CANCELED, OrderState.DISPUTED},
    OrderState.READY_FOR_DELIVERY: {
        OrderState.IN_TRANSIT,
        OrderState.DELIVERED,
        OrderState.CANCELED,
        OrderState.DISPUTED,
    },
    OrderState.IN_TRANSIT: {OrderState.DELIVERED, OrderState.CANCELED, OrderState.DISPUTED},
    OrderState.DELIVERED: {OrderState.COMPLETED, OrderState.CANCELED, OrderState.DISPUTED},
    OrderState.DISPUTED: _ALL_STATES - {OrderState.PENDING_DEPOSIT, OrderState.DISPUTED},
    OrderState.COMPLETED: set(),  # Terminal
    OrderState.CANCELED: set(),  # Terminal
}

# Timeline event recorded when an order enters a state
_STATE_EVENT_TYPES = {
    OrderState.PENDING_DEPOSIT: TimelineEventType.ORDER_CREATED,
    OrderState.DEPOSIT_PAID: TimelineEventType.DEPOSIT_RECEIVED,
    OrderState.INSPECTION_SCHEDULED: TimelineEventType.INSPECTION_SCHEDULED,
    OrderState.INSPECTION_COMPLETED: TimelineEventType.INSPECTION_APPROVED,
    OrderState.PENDING_PAYMENT: TimelineEventType.PAYMENT_REQUESTED,
    OrderState.PAYMENT_COMPLETED: TimelineEventType.PAYMENT_RECEIVED,
    OrderState.READY_FOR_DELIVERY: TimelineEventType.READY_FOR_DELIVERY,
    OrderState.IN_TRANSIT: TimelineEventType.IN_TRANSIT,
    OrderState.DELIVERED: TimelineEventType.DELIVERED,
    OrderState.COMPLETED: TimelineEventType.COMPLETED,
    OrderState.CANCELED: TimelineEventType.CANCELED,
    OrderState.DISPUTED: TimelineEventType.DISPUTE_RAISED,
}


def allowed_transitions(state: OrderState) -> frozenset:
    return frozenset(_VALID_TRANSITIONS.get(state, set()))


def timeline_event_for(previous: OrderState, target: OrderState) -> TimelineEventType:
    """Event type logged when an order moves from ``previous`` to ``target``."""
    if previous == OrderState.DISPUTED and target != OrderState.DISPUTED:
        return TimelineEventType.DISPUTE_RESOLVED
    try:
        return _STATE_EVENT_TYPES[target]
    except KeyError:
        raise ValidationError({"state": [f"No timeline event is defined for state {target}"]}) from None


def _parse_choice(enum_cls, value, field):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError({field: [f"Unknown {field}: {value}"]}) from None


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=UTC)


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@sales.value_object(part_of="Order")
class ListingSnapshot:
    """The listing and vehicle as they were when the order was placed.

    Later edits to the listing never reach the order. ``vin`` is sensitive:
    buyers only ever see ``vin_last_four``.
    """

    listing_id = Identifier(required=True)
    title = String(required=True, max_length=255)
    vin = String(required=True, max_length=17)
    vin_last_four = String(required=True, max_length=4)
    make = String(required=True, max_length=100)
    model = String(required=True, max_length=100)
    year = Integer(required=True)
    trim = String(max_length=100)
    mileage = Integer(min_value=0)
    exterior_color = String(max_length=50)
    interior_color = String(max_length=50)


@sales.value_object(part_of="Order")
class OrderPricing:
    """Money snapshot locked at creation.

    ``total = agreed + tax + fee`` and ``balance = total - deposit``, to the cent.
    """

    list_price = Float(required=True, min_value=0.0)
    agreed_price = Float(required=True, min_value=0.0)
    deposit_amount = Float(required=True, min_value=0.0)
    tax_amount = Float(required=True, min_value=0.0)
    fee_amount = Float(required=True, min_value=0.0)
    total_amount = Float(required=True, min_value=0.0)
    balance_amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="USD")

    @invariant.post
    def total_is_agreed_price_plus_tax_and_fee(self):
        expected = self.agreed_price + self.tax_amount + self.fee_amount
        if abs(self.total_amount - expected) > _CENT_TOLERANCE:
            raise ValidationError({"total_amount": ["Total must equal agreed price plus tax and fee"]})

    @invariant.post
    def balance_is_total_minus_deposit(self):
        if abs(self.balance_amount - (self.total_amount - self.deposit_amount)) > _CENT_TOLERANCE:
            raise ValidationError({"balance_amount": ["Balance must equal total minus deposit"]})


@sales.value_object(part_of="Order")
class DeliveryAddress:
    street = String(max_length=255)
    city = String(max_length=100)
    state = String(max_length=100)
    postal_code = String(max_length=20)
    country = String(max_length=100)


@sales.value_object(part_of="Order")
class DeliveryDetails:
    method = String(choices=DeliveryMethod, required=True)
    scheduled_date = DateTime()
    estimated_arrival = DateTime()
    tracking_number = String(max_length=255)
    carrier = String(max_length=100)
    special_instructions = String(max_length=1000)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@sales.entity(part_of="Order")
class TimelineEvent:
    """One entry in the order's append-only audit trail."""

    event_type = String(choices=TimelineEventType, required=True)
    description = String(max_length=500)
    performed_by = String(required=True, max_length=255)
    event_metadata = Text()  # JSON object
    occurred_at = DateTime(required=True)


@sales.entity(part_of="Order")
class OrderNote:
    content = Text(required=True)
    author_id = Identifier(required=True)
    author_name = String(max_length=255)
    is_internal = Boolean(default=False)
    created_at = DateTime(required=True)


@sales.entity(part_of="Order")
class OrderDocument:
    document_type = String(choices=DocumentType, required=True)
    name = String(required=True, max_length=255)
    url = String(required=True, max_length=1000)
    uploaded_by = Identifier(required=True)
    uploaded_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@sales.aggregate
class Order:
    buyer_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    listing = ValueObject(ListingSnapshot)
    pricing = ValueObject(OrderPricing)
    deposit_paid_at = DateTime()
    balance_paid_at = DateTime()

    # Status
    state = String(choices=OrderState, default=OrderState.PENDING_DEPOSIT.value)
    substatus = String(max_length=100)
    canceled_by = String(max_length=255)
    cancel_reason = String(max_length=500)
    refund_amount = Float()
    refunded_at = DateTime()

    # Lifecycle timestamps
    deposit_due_at = DateTime()
    inspection_scheduled_at = DateTime()
    inspection_completed_at = DateTime()
    payment_due_at = DateTime()
    delivery_scheduled_at = DateTime()
    delivered_at = DateTime()
    completed_at = DateTime()
    canceled_at = DateTime()

    delivery = ValueObject(DeliveryDetails)
    delivery_address = ValueObject(DeliveryAddress)

    timeline_events = HasMany(TimelineEvent)
    notes = HasMany(OrderNote)
    documents = HasMany(OrderDocument)

    # Audit
    created_at = DateTime()
    created_by = String(max_length=255)
    updated_at = DateTime()
    updated_by = String(max_length=255)
    version = Integer(default=1)

    # -------------------------------------------------------------------
    # Invariants
    # -------------------------------------------------------------------
    @invariant.post
    def canceled_orders_record_when_and_why(self):
        if self.state == OrderState.CANCELED.value and (self.canceled_at is None or not self.cancel_reason):
            raise ValidationError({"state": ["A canceled order must record when and why it was canceled"]})

    @invariant.post
    def refund_requires_refund_timestamp(self):
        if self.refund_amount is not None and self.refunded_at is None:
            raise ValidationError({"refund_amount": ["A refund must record when it was issued"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        buyer_id,
        listing,
        breakdown,
        deposit_due_days,
        delivery_method=None,
        delivery_address=None,
        special_instructions=None,
        note=None,
    ):
        """Open an order in PENDING_DEPOSIT for a published listing.

        Args:
            buyer_id: The purchasing user.
            listing: A ``ListingRecord`` from the listing catalog.
            breakdown: The ``PriceBreakdown`` computed for the agreed price.
            deposit_due_days: Days until the deposit is due.
            delivery_method: Optional ``DeliveryMethod`` value.
            delivery_address: Optional dict with street, city, state, postal_code, country.
            special_instructions: Optional delivery instructions.
            note: Optional buyer note, stored as a public note.
        """
        now = datetime.now(UTC)
        vehicle = listing.vehicle

        order = cls(
            buyer_id=buyer_id,
            seller_id=listing.seller_id,
            listing=ListingSnapshot(
                listing_id=listing.listing_id,
                title=listing.title,
                vin=vehicle.vin,
                vin_last_four=vehicle.vin[-4:],
                make=vehicle.make,
                model=vehicle.model,
                year=vehicle.year,
                trim=vehicle.trim,
                mileage=vehicle.mileage,
                exterior_color=vehicle.exterior_color,
                interior_color=vehicle.interior_color,
            ),
            pricing=OrderPricing(
                list_price=breakdown.list_price,
                agreed_price=breakdown.agreed_price,
                deposit_amount=breakdown.deposit_amount,
                tax_amount=breakdown.tax_amount,
                fee_amount=breakdown.fee_amount,
                total_amount=breakdown.total_amount,
                balance_amount=breakdown.balance_amount,
                currency=breakdown.currency,
            ),
            state=OrderState.PENDING_DEPOSIT.value,
            deposit_due_at=now + timedelta(days=deposit_due_days),
            delivery=(
                DeliveryDetails(
                    method=_parse_choice(DeliveryMethod, delivery_method, "delivery_method").value,
                    special_instructions=special_instructions,
                )
                if delivery_method
                else None
            ),
            delivery_address=DeliveryAddress(**delivery_address) if delivery_method and delivery_address else None,
            created_at=now,
            created_by=str(buyer_id),
            updated_at=now,
            updated_by=str(buyer_id),
            version=1,
        )

        order._append_timeline_event(
            TimelineEventType.ORDER_CREATED,
            "Order created",
            buyer_id,
            {"listing_id": str(listing.listing_id), "agreed_price": breakdown.agreed_price},
            now,
        )
        if note:
            order.add_notes(
                OrderNote(content=note, author_id=buyer_id, author_name="Buyer", is_internal=False, created_at=now)
            )

        order.raise_(
            OrderCreated(
                order_id=str(order.id),
                buyer_id=str(buyer_id),
                seller_id=str(listing.seller_id),
                listing_id=str(listing.listing_id),
                agreed_price=breakdown.agreed_price,
                deposit_amount=breakdown.deposit_amount,
                total_amount=breakdown.total_amount,
                currency=breakdown.currency,
                deposit_due_at=order.deposit_due_at,
                created_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @property
    def current_state(self) -> OrderState:
        return OrderState(self.state)

    @property
    def is_terminal(self) -> bool:
        return self.current_state in TERMINAL_STATES

    @property
    def amount_collected(self) -> float:
        """Money the buyer has paid so far, per the recorded payment timestamps."""
        collected = 0.0
        if self.deposit_paid_at is not None:
            collected += self.pricing.deposit_amount
        if self.balance_paid_at is not None:
            collected += self.pricing.balance_amount
        return round(collected, 2)

    def assert_version(self, expected_version):
        """Reject a write prepared against a stale copy of the order."""
        if expected_version is not None and int(expected_version) != self.version:
            raise VersionConflict(str(self.id), expected_version, self.version)

    def _assert_can_transition(self, target: OrderState):
        current = self.current_state
        if target not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"state": [f"Cannot transition from {current.value} to {target.value}"]})

    def _append_timeline_event(self, event_type, description, performed_by, metadata, occurred_at):
        self.add_timeline_events(
            TimelineEvent(
                event_type=event_type.value,
                description=description,
                performed_by=str(performed_by),
                event_metadata=json.dumps(metadata or {}, default=str),
                occurred_at=occurred_at,
            )
        )

    def _touch(self, actor_id, now):
        self.updated_at = now
        self.updated_by = str(actor_id)
        self.version = (self.version or 0) + 1

    def _stamp_state_timestamps(self, target: OrderState, now):
        if target == OrderState.DEPOSIT_PAID:
            self.deposit_paid_at = self.deposit_paid_at or now
        elif target == OrderState.INSPECTION_SCHEDULED:
            # No appointment time on a bare status change; keep one already booked
            self.inspection_scheduled_at = self.inspection_scheduled_at or now
        elif target == OrderState.INSPECTION_COMPLETED:
            self.inspection_completed_at = now
        elif target == OrderState.PAYMENT_COMPLETED:
            self.balance_paid_at = self.balance_paid_at or now
            self.payment_due_at = self.payment_due_at or now
        elif target == OrderState.DELIVERED:
            self.delivered_at = now
        elif target == OrderState.COMPLETED:
            self.completed_at = now
        elif target == OrderState.CANCELED:
            self.canceled_at = now

    def _raise_state_changed(self, previous, event_type, actor_id, now):
        self.raise_(
            OrderStateChanged(
                order_id=str(self.id),
                previous_state=previous.value,
                new_state=self.state,
                event_type=event_type.value,
                performed_by=str(actor_id),
                buyer_id=str(self.buyer_id),
                seller_id=str(self.seller_id),
                changed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Lifecycle transitions
    # -------------------------------------------------------------------
    def update_status(self, new_state, actor_id, substatus=None, reason=None):
        """Move the order along the state machine and log the matching timeline event."""
        target = _parse_choice(OrderState, new_state, "state")
        previous = self.current_state
        self._assert_can_transition(target)
        event_type = timeline_event_for(previous, target)
        now = datetime.now(UTC)

        with atomic_change(self):
            self.state = target.value
            self.substatus = substatus
            self._stamp_state_timestamps(target, now)
            if target == OrderState.CANCELED:
                self.canceled_by = str(actor_id)
                self.cancel_reason = reason or "Canceled via status update"
            self._append_timeline_event(
                event_type,
                reason or f"Order status changed to {target.value}",
                actor_id,
                {"previous_state": previous.value, "new_state": target.value, "substatus": substatus},
                now,
            )
            self._touch(actor_id, now)

        self._raise_state_changed(previous, event_type, actor_id, now)

    def cancel(self, actor_id, reason, issue_refund=False, refund_amount=None):
        """Cancel the order. Returns the refund owed to the buyer, or None.

        A refund is only owed once the deposit has been paid; it defaults to
        the deposit and can never exceed what the buyer has paid.
        """
        previous = self.current_state
        if previous == OrderState.COMPLETED:
            raise ValidationError({"state": ["Cannot cancel a completed order"]})
        if previous == OrderState.CANCELED:
            raise ValidationError({"state": ["Order is already canceled"]})

        refund = None
        if issue_refund and self.deposit_paid_at is not None:
            refund = round(refund_amount if refund_amount is not None else self.pricing.deposit_amount, 2)
            if refund <= 0:
                raise ValidationError({"refund_amount": ["Refund amount must be positive"]})
            if refund > self.amount_collected + _CENT_TOLERANCE:
                raise ValidationError(
                    {"refund_amount": [f"Refund cannot exceed the {self.amount_collected:.2f} collected"]}
                )

        now = datetime.now(UTC)
        with atomic_change(self):
            self.state = OrderState.CANCELED.value
            self.canceled_by = str(actor_id)
            self.cancel_reason = reason
            self.canceled_at = now
            if refund is not None:
                self.refund_amount = refund
                self.refunded_at = now
            self._append_timeline_event(
                TimelineEventType.CANCELED,
                f"Order canceled: {reason}",
                actor_id,
                {"previous_state": previous.value, "issue_refund": bool(issue_refund), "refund_amount": refund},
                now,
            )
            self._touch(actor_id, now)

        self.raise_(
            OrderCanceled(
                order_id=str(self.id),
                previous_state=previous.value,
                canceled_by=str(actor_id),
                reason=reason,
                refund_amount=refund,
                buyer_id=str(self.buyer_id),
                seller_id=str(self.seller_id),
                canceled_at=now,
            )
        )
        return refund

    def is_deposit_overdue(self, as_of: datetime) -> bool:
        if self.current_state != OrderState.PENDING_DEPOSIT or self.deposit_paid_at is not None:
            return False
        if self.deposit_due_at is None:
            return False
        return _as_utc(self.deposit_due_at) <= _as_utc(as_of)

    def expire(self, as_of: datetime):
        """Cancel an order whose deposit never arrived."""
        if not self.is_deposit_overdue(as_of):
            raise ValidationError({"state": ["Only orders with an overdue deposit can expire"]})

        now = datetime.now(UTC)
        with atomic_change(self):
            self.state = OrderState.CANCELED.value
            self.canceled_by = SYSTEM_ACTOR
            self.cancel_reason = DEPOSIT_EXPIRED_REASON
            self.canceled_at = now
            self._append_timeline_event(
                TimelineEventType.ORDER_EXPIRED,
                DEPOSIT_EXPIRED_REASON,
                SYSTEM_ACTOR,
                {"previous_state": OrderState.PENDING_DEPOSIT.value, "deposit_due_at": self.deposit_due_at},
                now,
            )
            self._touch(SYSTEM_ACTOR, now)

        self.raise_(
            OrderCanceled(
                order_id=str(self.id),
                previous_state=OrderState.PENDING_DEPOSIT.value,
                canceled_by=SYSTEM_ACTOR,
                reason=DEPOSIT_EXPIRED_REASON,
                buyer_id=str(self.buyer_id),
                seller_id=str(self.seller_id),
                canceled_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------
    def schedule_inspection(self, actor_id, scheduled_at, location=None, inspector=None):
        previous = self.current_state
        self._assert_can_transition(OrderState.INSPECTION_SCHEDULED)
        now = datetime.now(UTC)

        with atomic_change(self):
            self.state = OrderState.INSPECTION_SCHEDULED.value
            self.inspection_scheduled_at = scheduled_at
            self._append_timeline_event(
                TimelineEventType.INSPECTION_SCHEDULED,
                f"Inspection scheduled for {scheduled_at.isoformat()}",
                actor_id,
                {"scheduled_at": scheduled_at, "location": location, "inspector": inspector},
                now,
            )
            self._touch(actor_id, now)

        self._raise_state_changed(previous, TimelineEventType.INSPECTION_SCHEDULED, actor_id, now)

    def complete_inspection(self, actor_id, approved, findings=None, report_url=None):
        previous = self.current_state
        self._assert_can_transition(OrderState.INSPECTION_COMPLETED)
        event_type = TimelineEventType.INSPECTION_APPROVED if approved else TimelineEventType.INSPECTION_REJECTED
        now = datetime.now(UTC)

        with atomic_change(self):
            self.state = OrderState.INSPECTION_COMPLETED.value
            self.inspection_completed_at = now
            self._append_timeline_event(
                event_type,
                "Inspection passed" if approved else "Inspection failed",
                actor_id,
                {"approved": bool(approved), "findings": findings, "report_url": report_url},
                now,
            )
            if report_url:
                self.add_documents(
                    OrderDocument(
                        document_type=DocumentType.INSPECTION_REPORT.value,
                        name="Inspection report",
                        url=report_url,
                        uploaded_by=actor_id,
                        uploaded_at=now,
                    )
                )
            self._touch(actor_id, now)

        self._raise_state_changed(previous, event_type, actor_id, now)

    # -------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------
    def update_delivery(
        self,
        actor_id,
        method=None,
        address=None,
        scheduled_date=None,
        estimated_arrival=None,
        tracking_number=None,
        carrier=None,
        special_instructions=None,
    ):
        """Merge delivery changes into the order.

        Only a new ``scheduled_date`` is logged on the timeline; the other
        fields change silently. Fields left as None keep their current value.
        """
        if self.is_terminal:
            raise ValidationError({"state": [f"Cannot change delivery of a {self.state} order"]})

        current = self.delivery
        if current is None and method is None:
            raise ValidationError({"delivery_method": ["A delivery method is required"]})

        merged = DeliveryDetails(
            method=_parse_choice(DeliveryMethod, method, "delivery_method").value if method else current.method,
            scheduled_date=scheduled_date or (current.scheduled_date if current else None),
            estimated_arrival=estimated_arrival or (current.estimated_arrival if current else None),
            tracking_number=tracking_number or (current.tracking_number if current else None),
            carrier=carrier or (current.carrier if current else None),
            special_instructions=(
                special_instructions
                if special_instructions is not None
                else (current.special_instructions if current else None)
            ),
        )
        now = datetime.now(UTC)

        with atomic_change(self):
            self.delivery = merged
            if address:
                existing = self.delivery_address.to_dict() if self.delivery_address else {}
                patch = {key: value for key, value in address.items() if value is not None}
                self.delivery_address = DeliveryAddress(**{**existing, **patch})
            if scheduled_date:
                self.delivery_scheduled_at = scheduled_date
                self._append_timeline_event(
                    TimelineEventType.DELIVERY_SCHEDULED,
                    f"Delivery scheduled for {scheduled_date.isoformat()}",
                    actor_id,
                    {"method": merged.method, "carrier": merged.carrier, "tracking_number": merged.tracking_number},
                    now,
                )
            self._touch(actor_id, now)

        if scheduled_date:
            self.raise_(
                DeliveryScheduled(
                    order_id=str(self.id),
                    scheduled_date=scheduled_date,
                    method=merged.method,
                    buyer_id=str(self.buyer_id),
                    seller_id=str(self.seller_id),
                    details=json.dumps(
                        {
                            "carrier": merged.carrier,
                            "tracking_number": merged.tracking_number,
                            "estimated_arrival": merged.estimated_arrival,
                        },
                        default=str,
                    ),
                )
            )

    # -------------------------------------------------------------------
    # Notes and documents
    # -------------------------------------------------------------------
    def add_note(self, actor_id, content, author_name=None, is_internal=False):
        if not content or not content.strip():
            raise ValidationError({"content": ["Note content cannot be empty"]})

        now = datetime.now(UTC)
        note = OrderNote(
            content=content,
            author_id=actor_id,
            author_name=author_name,
            is_internal=bool(is_internal),
            created_at=now,
        )
        with atomic_change(self):
            self.add_notes(note)
            self._touch(actor_id, now)
        return note

    def add_document(self, actor_id, document_type, name, url):
        now = datetime.now(UTC)
        document = OrderDocument(
            document_type=_parse_choice(DocumentType, document_type, "document_type").value,
            name=name,
            url=url,
            uploaded_by=actor_id,
            uploaded_at=now,
        )
        with atomic_change(self):
            self.add_documents(document)
            self._touch(actor_id, now)
        return document
