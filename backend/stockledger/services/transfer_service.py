# Overview: Service-layer operations for inter-store product transfers.

"""
Inter-store transfer service.

Moves stock of one product from a source store to a destination store.
Both sides are booked in the same unit of work: a TRANSFER_OUT entry on the
source record and a TRANSFER_IN entry on the destination record, sharing
reference_id = str(transfer.id) and reference_type = "TRANSFER".

LIFECYCLE:
1. PENDING: Transfer requested, no stock has moved
2. COMPLETED: Stock moved (terminal)
3. CANCELLED: Withdrawn before completion (terminal)
4. REJECTED: Refused by the receiving side, reason required (terminal)

record_transfer() is initiate + complete in one unit, for transfers that need
no approval step.
"""

from __future__ import annotations

from ..errors import (
    AuthorizationError,
    InvalidTransferStatusError,
    InventoryNotFoundError,
    SameStoreError,
    ValidationError,
)
from ..models import ProductTransfer
from ..models.inventory import CHANGE_TRANSFER_IN, CHANGE_TRANSFER_OUT
from ..models.transfers import (
    TRANSFER_STATUS_PENDING,
    TRANSFER_STATUS_COMPLETED,
    TRANSFER_STATUS_CANCELLED,
    TRANSFER_STATUS_REJECTED,
    TRANSFER_STATUSES,
)
from ..time_utils import utcnow
from .inventory_service import ensure_record, ensure_sufficient
from .ledger_service import record_change
from .session_service import ActorContext
from .unit_of_work import UnitOfWork


TRANSFER_REFERENCE_TYPE = "TRANSFER"


def _validate_request(from_store_id: int, to_store_id: int, quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("Transfer quantity must be a positive integer", {"quantity": quantity})
    if from_store_id == to_store_id:
        raise SameStoreError(
            "Cannot transfer to the same store",
            {"from_store_id": from_store_id, "to_store_id": to_store_id},
        )


def _initiate_inner(
    uow: UnitOfWork,
    *,
    product_id: int,
    from_store_id: int,
    to_store_id: int,
    quantity: int,
    actor: ActorContext,
    reason: str | None,
    notes: str | None,
) -> ProductTransfer:
    uow.catalog.require_store(from_store_id, "Source store")
    uow.catalog.require_store(to_store_id, "Destination store")
    uow.catalog.require_product(product_id)

    source = uow.inventory.get_by_key(product_id, from_store_id, lock=True)
    if source is None:
        raise InventoryNotFoundError(
            "No inventory found for product in source store",
            {"product_id": product_id, "store_id": from_store_id},
        )
    ensure_sufficient(source, quantity, product_id=product_id, store_id=from_store_id)

    now = utcnow()
    return uow.transfers.add(ProductTransfer(
        product_id=product_id,
        from_store_id=from_store_id,
        to_store_id=to_store_id,
        from_inventory_id=source.id,
        quantity=quantity,
        status=TRANSFER_STATUS_PENDING,
        reason=reason,
        notes=notes,
        initiated_by_user_id=actor.user_id,
        created_at=now,
        updated_at=now,
    ))


def _complete_inner(uow: UnitOfWork, transfer: ProductTransfer, actor: ActorContext) -> ProductTransfer:
    if transfer.status != TRANSFER_STATUS_PENDING:
        raise InvalidTransferStatusError(
            f"Cannot complete transfer in {transfer.status} status",
            {"transfer_id": transfer.id, "status": transfer.status},
        )

    source = uow.inventory.require(transfer.from_inventory_id, lock=True)
    ensure_sufficient(source, transfer.quantity, product_id=transfer.product_id, store_id=transfer.from_store_id)
    destination = ensure_record(uow, transfer.product_id, transfer.to_store_id, template=source)

    reference_id = transfer.reference_id
    record_change(
        uow,
        source,
        quantity_change=-transfer.quantity,
        change_type=CHANGE_TRANSFER_OUT,
        actor_id=actor.user_id,
        reference_id=reference_id,
        reference_type=TRANSFER_REFERENCE_TYPE,
        notes=f"Transfer #{reference_id} to store {transfer.to_store_id}",
    )
    record_change(
        uow,
        destination,
        quantity_change=transfer.quantity,
        change_type=CHANGE_TRANSFER_IN,
        actor_id=actor.user_id,
        reference_id=reference_id,
        reference_type=TRANSFER_REFERENCE_TYPE,
        notes=f"Transfer #{reference_id} from store {transfer.from_store_id}",
    )

    now = utcnow()
    transfer.to_inventory_id = destination.id
    transfer.status = TRANSFER_STATUS_COMPLETED
    transfer.completed_by_user_id = actor.user_id
    transfer.completed_at = now
    transfer.updated_at = now
    uow.flush()
    return transfer


def initiate_transfer(
    uow: UnitOfWork,
    *,
    product_id: int,
    from_store_id: int,
    to_store_id: int,
    quantity: int,
    actor: ActorContext,
    reason: str | None = None,
    notes: str | None = None,
) -> ProductTransfer:
    """
    Create a PENDING transfer. No stock moves yet.

    Raises:
        ValidationError: quantity is not a positive integer
        SameStoreError: source and destination are the same store
        NotFoundError: unknown store or product
        InventoryNotFoundError: source store does not stock the product
        InsufficientStockError: source store has fewer units than requested
    """
    _validate_request(from_store_id, to_store_id, quantity)
    with uow:
        transfer = _initiate_inner(
            uow,
            product_id=product_id,
            from_store_id=from_store_id,
            to_store_id=to_store_id,
            quantity=quantity,
            actor=actor,
            reason=reason,
            notes=notes,
        )
        uow.commit()
        return transfer


def complete_transfer(uow: UnitOfWork, *, transfer_id: int, actor: ActorContext) -> ProductTransfer:
    """
    Move the stock of a PENDING transfer.

    Stock is re-checked at completion; the source may have sold units since
    the transfer was initiated.
    """
    with uow:
        transfer = uow.transfers.require(transfer_id, lock=True)
        _complete_inner(uow, transfer, actor)
        uow.commit()
        return transfer


def record_transfer(
    uow: UnitOfWork,
    *,
    product_id: int,
    from_store_id: int,
    to_store_id: int,
    quantity: int,
    actor: ActorContext,
    reason: str | None = None,
    notes: str | None = None,
) -> ProductTransfer:
    """Initiate and complete a transfer atomically. Returns it in COMPLETED status."""
    _validate_request(from_store_id, to_store_id, quantity)
    with uow:
        transfer = _initiate_inner(
            uow,
            product_id=product_id,
            from_store_id=from_store_id,
            to_store_id=to_store_id,
            quantity=quantity,
            actor=actor,
            reason=reason,
            notes=notes,
        )
        _complete_inner(uow, transfer, actor)
        uow.commit()
        return transfer


def _close(
    uow: UnitOfWork,
    transfer_id: int,
    actor: ActorContext,
    status: str,
    reason: str | None,
) -> ProductTransfer:
    with uow:
        transfer = uow.transfers.require(transfer_id, lock=True)
        if transfer.status != TRANSFER_STATUS_PENDING:
            raise InvalidTransferStatusError(
                f"Cannot {'cancel' if status == TRANSFER_STATUS_CANCELLED else 'reject'} "
                f"transfer in {transfer.status} status",
                {"transfer_id": transfer.id, "status": transfer.status},
            )
        if (
            status == TRANSFER_STATUS_CANCELLED
            and not actor.is_privileged
            and actor.store_id != transfer.from_store_id
        ):
            raise AuthorizationError(
                "You can only cancel transfers leaving your own store",
                {"actor_store_id": actor.store_id, "from_store_id": transfer.from_store_id},
            )

        now = utcnow()
        transfer.status = status
        transfer.closed_by_user_id = actor.user_id
        transfer.closed_at = now
        transfer.close_reason = reason
        transfer.updated_at = now
        uow.commit()
        return transfer


def cancel_transfer(
    uow: UnitOfWork,
    *,
    transfer_id: int,
    actor: ActorContext,
    reason: str | None = None,
) -> ProductTransfer:
    return _close(uow, transfer_id, actor, TRANSFER_STATUS_CANCELLED, (reason or "").strip() or None)


def reject_transfer(uow: UnitOfWork, *, transfer_id: int, actor: ActorContext, reason: str) -> ProductTransfer:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Rejection reason is required")
    return _close(uow, transfer_id, actor, TRANSFER_STATUS_REJECTED, reason)


def get_transfer(uow: UnitOfWork, transfer_id: int) -> ProductTransfer:
    return uow.transfers.require(transfer_id)


def list_transfers(
    uow: UnitOfWork,
    *,
    store_id: int | None = None,
    status: str | None = None,
    limit: int = 200,
) -> list[ProductTransfer]:
    if status is not None and status not in TRANSFER_STATUSES:
        raise ValidationError(f"Unknown transfer status {status!r}", {"allowed": list(TRANSFER_STATUSES)})
    return uow.transfers.list(store_id=store_id, status=status, limit=max(1, min(limit, 500)))
