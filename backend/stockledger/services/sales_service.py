# Overview: Service-layer operations for sales and voids; one unit of work per sale.

from __future__ import annotations

import logging
from datetime import timedelta

from ..errors import (
    AuthorizationError,
    InsufficientStockError,
    SaleAlreadyVoidedError,
    ValidationError,
    WindowExpiredError,
)
from ..models import Sale, SaleItem, VoidedSale
from ..models.inventory import CHANGE_SALE, CHANGE_RETURN
from ..models.sales import PAYMENT_CASH, PAYMENT_METHODS, SALE_STATUS_ACTIVE, SALE_STATUS_VOIDED
from ..time_utils import utcnow
from .inventory_service import ensure_record
from .ledger_service import record_change
from .session_service import ActorContext
from .unit_of_work import UnitOfWork
"""
Sale Invariants (authoritative)

- A sale is recorded completely or not at all: every item is checked against
  its inventory record before the first write, and any shortfall aborts the
  whole sale with per-item details.
- Each sale item appends exactly one SALE entry (quantity_change = -quantity,
  reference_type = "SALE", reference_id = sale id).
- total_cents = sum of line totals; line total = quantity * unit price.
- ACTIVE -> VOIDED is the only transition and it is terminal.
- Voiding appends one RETURN entry per item (reference_type = "SALE_VOID"),
  so stock after a void equals stock before the sale.
- Non-privileged actors void only their own store's sales, only within the
  void window. ADMIN and MANAGER may void any sale.
"""

logger = logging.getLogger(__name__)

VOID_WINDOW = timedelta(hours=24)
MIN_VOID_REASON_LENGTH = 10
MAX_VOID_REASON_LENGTH = 255


def _parse_items(items) -> list[dict]:
    if not items or not isinstance(items, (list, tuple)):
        raise ValidationError("Sale requires at least one item")

    parsed = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError("Each item must be an object", {"index": index})
        product_id = item.get("product_id")
        quantity = item.get("quantity")
        price = item.get("price_cents")

        if product_id is None:
            raise ValidationError("Item requires product_id", {"index": index})
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(
                "Item quantity must be a positive integer", {"index": index, "quantity": quantity}
            )
        if price is not None and (isinstance(price, bool) or not isinstance(price, int) or price < 0):
            raise ValidationError(
                "Item price_cents must be a non-negative integer", {"index": index, "price_cents": price}
            )
        parsed.append({"product_id": product_id, "quantity": quantity, "price_cents": price})
    return parsed


def _check_store_scope(actor: ActorContext, store_id: int) -> None:
    if not actor.is_privileged and actor.store_id is not None and actor.store_id != store_id:
        raise AuthorizationError(
            "You can only act on your own store",
            {"actor_store_id": actor.store_id, "store_id": store_id},
        )


def record_sale(
    uow: UnitOfWork,
    *,
    store_id: int,
    actor: ActorContext,
    items: list[dict],
    payment_method: str = PAYMENT_CASH,
    customer: dict | None = None,
) -> Sale:
    """
    Record a sale and decrement stock for every item.

    Raises ValidationError, NotFoundError, AuthorizationError or
    InsufficientStockError (details["items"] lists every short product).
    """
    lines = _parse_items(items)
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"Unknown payment method {payment_method!r}",
            {"payment_method": payment_method, "allowed": list(PAYMENT_METHODS)},
        )
    _check_store_scope(actor, store_id)
    customer = customer or {}

    requested: dict[int, int] = {}
    for line in lines:
        requested[line["product_id"]] = requested.get(line["product_id"], 0) + line["quantity"]

    with uow:
        uow.catalog.require_store(store_id)

        # Lock in product order so concurrent sales acquire rows consistently
        records = {}
        products = {}
        for product_id in sorted(requested):
            products[product_id] = uow.catalog.require_product(product_id)
            records[product_id] = uow.inventory.get_by_key(product_id, store_id, lock=True)

        insufficient = []
        for product_id, quantity in requested.items():
            record = records[product_id]
            available = record.quantity if record is not None else 0
            if available < quantity:
                insufficient.append({
                    "product_id": product_id,
                    "product_name": products[product_id].name,
                    "available": available,
                    "requested": quantity,
                })
        if insufficient:
            raise InsufficientStockError(
                "Insufficient stock to record sale",
                {"store_id": store_id, "items": insufficient},
            )

        sale = uow.sales.add(Sale(
            store_id=store_id,
            actor_id=actor.user_id,
            status=SALE_STATUS_ACTIVE,
            payment_method=payment_method,
            total_cents=0,
            customer_name=customer.get("name"),
            customer_email=customer.get("email"),
            customer_phone=customer.get("phone"),
            created_at=utcnow(),
        ))

        total = 0
        for line in lines:
            product_id = line["product_id"]
            record = records[product_id]
            unit_price = line["price_cents"]
            if unit_price is None:
                unit_price = record.effective_price_cents

            entry = record_change(
                uow,
                record,
                quantity_change=-line["quantity"],
                change_type=CHANGE_SALE,
                actor_id=actor.user_id,
                reference_id=str(sale.id),
                reference_type="SALE",
                notes=f"Sale #{sale.id}: {line['quantity']} units",
            )
            line_total = unit_price * line["quantity"]
            uow.sales.add_item(SaleItem(
                sale_id=sale.id,
                product_id=product_id,
                quantity=line["quantity"],
                unit_price_cents=unit_price,
                line_total_cents=line_total,
                history_entry_id=entry.id,
            ))
            total += line_total

        sale.total_cents = total
        uow.commit()
        return sale


def get_sale(uow: UnitOfWork, sale_id: int) -> Sale:
    return uow.sales.require(sale_id)


def _void_blockers(sale: Sale, actor: ActorContext, now, window: timedelta) -> list:
    """Return (error_class, message) pairs that forbid actor voiding sale."""
    blockers = []
    if sale.status == SALE_STATUS_VOIDED:
        blockers.append((SaleAlreadyVoidedError, "This sale has already been voided"))
        return blockers

    if actor.is_privileged:
        return blockers

    if actor.store_id != sale.store_id:
        blockers.append((AuthorizationError, "You can only void sales from your own store"))
    if now - sale.created_at > window:
        hours = int(window.total_seconds() // 3600)
        blockers.append((WindowExpiredError, f"Sales can only be voided within {hours} hours"))
    return blockers


def check_void_eligibility(
    uow: UnitOfWork,
    *,
    sale_id: int,
    actor: ActorContext,
    window: timedelta | None = None,
) -> dict:
    """Read-only pre-check. Never raises for business rules, only for unknown sales."""
    window = window or VOID_WINDOW
    sale = uow.sales.require(sale_id)
    now = utcnow()

    reasons = [message for _, message in _void_blockers(sale, actor, now, window)]
    warnings = []
    if not reasons and now - sale.created_at > window:
        warnings.append("Sale is older than the standard void window")
    if not reasons and not sale.items:
        warnings.append("Sale has no items; no stock will be restored")

    return {
        "sale_id": sale.id,
        "can_be_voided": not reasons,
        "reasons": reasons,
        "warnings": warnings,
    }


def void_sale(
    uow: UnitOfWork,
    *,
    sale_id: int,
    actor: ActorContext,
    reason: str,
    window: timedelta | None = None,
) -> Sale:
    """
    Void a sale and restore its stock.

    Raises ValidationError (reason shorter than 10 characters),
    SaleAlreadyVoidedError, AuthorizationError or WindowExpiredError.
    """
    reason = (reason or "").strip()
    if len(reason) < MIN_VOID_REASON_LENGTH:
        raise ValidationError(
            f"Void reason must be at least {MIN_VOID_REASON_LENGTH} characters",
            {"reason_length": len(reason)},
        )
    if len(reason) > MAX_VOID_REASON_LENGTH:
        raise ValidationError(
            f"Void reason must be at most {MAX_VOID_REASON_LENGTH} characters",
            {"reason_length": len(reason)},
        )
    window = window or VOID_WINDOW

    with uow:
        sale = uow.sales.require(sale_id, lock=True)
        now = utcnow()

        blockers = _void_blockers(sale, actor, now, window)
        if blockers:
            error_class, message = blockers[0]
            raise error_class(message, {"sale_id": sale.id})

        for item in sale.items:
            record = ensure_record(uow, item.product_id, sale.store_id)
            record_change(
                uow,
                record,
                quantity_change=item.quantity,
                change_type=CHANGE_RETURN,
                actor_id=actor.user_id,
                reference_id=str(sale.id),
                reference_type="SALE_VOID",
                notes=f"Sale voided: {reason}",
            )

        sale.status = SALE_STATUS_VOIDED
        sale.voided_by_user_id = actor.user_id
        sale.voided_at = now
        sale.void_reason = reason
        uow.sales.add_void(VoidedSale(
            sale_id=sale.id,
            actor_id=actor.user_id,
            reason=reason,
            original_total_cents=sale.total_cents,
            created_at=now,
        ))

        uow.commit()
        logger.info("Sale %s voided by user %s", sale_id, actor.user_id)
        return sale


def list_voided_sales(
    uow: UnitOfWork,
    *,
    store_id: int | None = None,
    actor_id: int | None = None,
    start=None,
    end=None,
    page: int = 1,
    limit: int = 50,
) -> dict:
    page = max(1, page)
    limit = max(1, min(limit, 500))
    query = uow.sales.search_voids(store_id=store_id, actor_id=actor_id, start=start, end=end)

    all_rows = query.all()
    total = len(all_rows)
    rows = all_rows[(page - 1) * limit: page * limit]
    amount = sum(v.original_total_cents for v in all_rows)

    return {
        "voided_sales": [v.to_dict() for v in rows],
        "total": total,
        "page": page,
        "total_pages": (total + limit - 1) // limit,
        "summary": {
            "total_voids": total,
            "total_amount_voided_cents": amount,
            "average_void_amount_cents": amount // total if total else 0,
        },
    }
