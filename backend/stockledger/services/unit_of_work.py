# Overview: Unit of work and per-aggregate repositories over one SQLAlchemy session.

"""
Every service operation receives an explicit UnitOfWork instead of reaching for a
global session. The caller owns the session (the Flask layer hands in db.session,
tests and the CLI may hand in any Session) and the unit owns the transaction:

    with uow:
        ...reads and writes through uow.inventory, uow.ledger, ...
        uow.commit()

Leaving the block with an exception rolls everything back. Driver lock errors and
stale version counters are re-raised as ConcurrencyConflictError.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session, scoped_session

from ..errors import NotFoundError, InventoryNotFoundError
from ..models import (
    Store,
    Product,
    User,
    InventoryRecord,
    InventoryHistoryEntry,
    Sale,
    SaleItem,
    VoidedSale,
    ProductTransfer,
    SessionToken,
    RefreshToken,
)
from .concurrency import begin_write, lock_for_update, is_conflict, as_conflict


class CatalogRepository:
    """Read-only lookups into stores, products and users."""

    def __init__(self, session: Session):
        self.session = session

    def get_store(self, store_id: int) -> Optional[Store]:
        return self.session.get(Store, store_id)

    def require_store(self, store_id: int, label: str = "Store") -> Store:
        store = self.get_store(store_id)
        if store is None:
            raise NotFoundError(f"{label} {store_id} not found", {"store_id": store_id})
        return store

    def get_product(self, product_id: int) -> Optional[Product]:
        # Polymorphic load: returns TireProduct / BaleProduct, never a bare row
        return self.session.get(Product, product_id)

    def require_product(self, product_id: int) -> Product:
        product = self.get_product(product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found", {"product_id": product_id})
        return product

    def get_user(self, user_id: int) -> Optional[User]:
        return self.session.get(User, user_id)

    def find_user_by_email(self, email: str) -> Optional[User]:
        return self.session.query(User).filter(func.lower(User.email) == email.strip().lower()).first()


class InventoryRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, inventory_id: int, *, lock: bool = False) -> Optional[InventoryRecord]:
        query = self.session.query(InventoryRecord).filter_by(id=inventory_id)
        if lock:
            query = lock_for_update(query)
        return query.first()

    def require(self, inventory_id: int, *, lock: bool = False) -> InventoryRecord:
        record = self.get(inventory_id, lock=lock)
        if record is None:
            raise InventoryNotFoundError(
                f"Inventory record {inventory_id} not found", {"inventory_id": inventory_id}
            )
        return record

    def get_by_key(self, product_id: int, store_id: int, *, lock: bool = False) -> Optional[InventoryRecord]:
        query = self.session.query(InventoryRecord).filter_by(product_id=product_id, store_id=store_id)
        if lock:
            query = lock_for_update(query)
        return query.first()

    def add(self, record: InventoryRecord) -> InventoryRecord:
        self.session.add(record)
        self.session.flush()
        return record

    def list(
        self,
        *,
        inventory_id: int | None = None,
        store_id: int | None = None,
        product_id: int | None = None,
    ) -> list[InventoryRecord]:
        query = self.session.query(InventoryRecord)
        if inventory_id is not None:
            query = query.filter(InventoryRecord.id == inventory_id)
        if store_id is not None:
            query = query.filter(InventoryRecord.store_id == store_id)
        if product_id is not None:
            query = query.filter(InventoryRecord.product_id == product_id)
        return query.order_by(InventoryRecord.id.asc()).all()

    def list_needing_restock(self, store_id: int | None = None) -> list[InventoryRecord]:
        query = self.session.query(InventoryRecord).filter(
            InventoryRecord.reorder_level.isnot(None),
            InventoryRecord.quantity <= InventoryRecord.reorder_level,
        )
        if store_id is not None:
            query = query.filter(InventoryRecord.store_id == store_id)
        return query.order_by(InventoryRecord.store_id.asc(), InventoryRecord.product_id.asc()).all()


class LedgerRepository:
    """Append and read InventoryHistoryEntry rows. There is no update or delete."""

    def __init__(self, session: Session):
        self.session = session

    def append(self, entry: InventoryHistoryEntry) -> InventoryHistoryEntry:
        self.session.add(entry)
        self.session.flush()  # assigns entry.id without committing
        return entry

    def entries_for(self, inventory_id: int) -> list[InventoryHistoryEntry]:
        return (
            self.session.query(InventoryHistoryEntry)
            .filter(InventoryHistoryEntry.inventory_id == inventory_id)
            .order_by(InventoryHistoryEntry.created_at.asc(), InventoryHistoryEntry.id.asc())
            .all()
        )

    def search(
        self,
        *,
        inventory_id: int | None = None,
        store_ids: Iterable[int] | None = None,
        product_ids: Iterable[int] | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        change_types: Iterable[str] | None = None,
        newest_first: bool = False,
    ):
        """Filtered query over the ledger joined to its records; ascending by default."""
        query = self.session.query(InventoryHistoryEntry).join(
            InventoryRecord, InventoryHistoryEntry.inventory_id == InventoryRecord.id
        )
        if inventory_id is not None:
            query = query.filter(InventoryHistoryEntry.inventory_id == inventory_id)
        if store_ids:
            query = query.filter(InventoryRecord.store_id.in_(list(store_ids)))
        if product_ids:
            query = query.filter(InventoryRecord.product_id.in_(list(product_ids)))
        if start is not None:
            query = query.filter(InventoryHistoryEntry.created_at >= start)
        if end is not None:
            query = query.filter(InventoryHistoryEntry.created_at <= end)
        if change_types:
            query = query.filter(InventoryHistoryEntry.change_type.in_(list(change_types)))

        if newest_first:
            return query.order_by(InventoryHistoryEntry.created_at.desc(), InventoryHistoryEntry.id.desc())
        return query.order_by(InventoryHistoryEntry.created_at.asc(), InventoryHistoryEntry.id.asc())

    def by_reference(self, reference_type: str, reference_id: str) -> list[InventoryHistoryEntry]:
        return (
            self.session.query(InventoryHistoryEntry)
            .filter_by(reference_type=reference_type, reference_id=str(reference_id))
            .order_by(InventoryHistoryEntry.created_at.asc(), InventoryHistoryEntry.id.asc())
            .all()
        )


class SaleRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, sale_id: int, *, lock: bool = False) -> Optional[Sale]:
        query = self.session.query(Sale).filter_by(id=sale_id)
        if lock:
            query = lock_for_update(query)
        return query.first()

    def require(self, sale_id: int, *, lock: bool = False) -> Sale:
        sale = self.get(sale_id, lock=lock)
        if sale is None:
            raise NotFoundError(f"Sale {sale_id} not found", {"sale_id": sale_id})
        return sale

    def add(self, sale: Sale) -> Sale:
        self.session.add(sale)
        self.session.flush()
        return sale

    def add_item(self, item: SaleItem) -> SaleItem:
        self.session.add(item)
        self.session.flush()
        return item

    def add_void(self, voided: VoidedSale) -> VoidedSale:
        self.session.add(voided)
        self.session.flush()
        return voided

    def search_voids(
        self,
        *,
        store_id: int | None = None,
        actor_id: int | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ):
        query = self.session.query(VoidedSale).join(Sale, VoidedSale.sale_id == Sale.id)
        if store_id is not None:
            query = query.filter(Sale.store_id == store_id)
        if actor_id is not None:
            query = query.filter(VoidedSale.actor_id == actor_id)
        if start is not None:
            query = query.filter(VoidedSale.created_at >= start)
        if end is not None:
            query = query.filter(VoidedSale.created_at <= end)
        return query.order_by(VoidedSale.created_at.desc(), VoidedSale.id.desc())


class TransferRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, transfer_id: int, *, lock: bool = False) -> Optional[ProductTransfer]:
        query = self.session.query(ProductTransfer).filter_by(id=transfer_id)
        if lock:
            query = lock_for_update(query)
        return query.first()

    def require(self, transfer_id: int, *, lock: bool = False) -> ProductTransfer:
        transfer = self.get(transfer_id, lock=lock)
        if transfer is None:
            raise NotFoundError(f"Transfer {transfer_id} not found", {"transfer_id": transfer_id})
        return transfer

    def add(self, transfer: ProductTransfer) -> ProductTransfer:
        self.session.add(transfer)
        self.session.flush()
        return transfer

    def list(self, *, store_id: int | None = None, status: str | None = None, limit: int = 200) -> list[ProductTransfer]:
        query = self.session.query(ProductTransfer)
        if store_id is not None:
            query = query.filter(
                (ProductTransfer.from_store_id == store_id) | (ProductTransfer.to_store_id == store_id)
            )
        if status is not None:
            query = query.filter(ProductTransfer.status == status)
        return query.order_by(ProductTransfer.created_at.desc(), ProductTransfer.id.desc()).limit(limit).all()


class TokenRepository:
    """Access sessions and the refresh-token chain."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, token):
        self.session.add(token)
        self.session.flush()
        return token

    def get_refresh(self, token_id: int) -> Optional[RefreshToken]:
        return self.session.get(RefreshToken, token_id)

    def find_refresh_by_hash(self, token_hash: str) -> Optional[RefreshToken]:
        return self.session.query(RefreshToken).filter_by(token_hash=token_hash).first()

    def revoke_refresh_if_active(self, token_id: int, *, revoked_at: datetime, reason: str) -> bool:
        """
        Compare-and-set revoke. Returns False when another unit already revoked it.

        The WHERE revoked = false guard is what makes a token single-use under
        concurrency: only one UPDATE can match.
        """
        result = self.session.execute(
            update(RefreshToken)
            .where(RefreshToken.id == token_id, RefreshToken.revoked.is_(False))
            .values(revoked=True, revoked_at=revoked_at, revoked_reason=reason)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def active_refresh_for_user(self, user_id: int, now: datetime) -> list[RefreshToken]:
        return (
            self.session.query(RefreshToken)
            .filter(
                RefreshToken.user_id == user_id,
                RefreshToken.revoked.is_(False),
                RefreshToken.expires_at > now,
            )
            .order_by(RefreshToken.created_at.desc())
            .all()
        )

    def link_successor(self, token_id: int, successor_id: int) -> None:
        self.session.execute(
            update(RefreshToken)
            .where(RefreshToken.id == token_id)
            .values(replaced_by_id=successor_id)
            .execution_options(synchronize_session=False)
        )

    def refresh_for_user(self, user_id: int, *, since: datetime | None = None) -> list[RefreshToken]:
        query = self.session.query(RefreshToken).filter(RefreshToken.user_id == user_id)
        if since is not None:
            query = query.filter(RefreshToken.expires_at > since)
        return query.order_by(RefreshToken.created_at.desc(), RefreshToken.id.desc()).all()

    def delete_refresh_expired_before(self, cutoff: datetime) -> int:
        # Refresh tokens are not ledger entries; expired rows may be purged
        tokens = self.session.query(RefreshToken).filter(RefreshToken.expires_at < cutoff).all()
        ids = {t.id for t in tokens}
        # Detach forward links pointing at rows about to go
        if ids:
            self.session.execute(
                update(RefreshToken)
                .where(RefreshToken.replaced_by_id.in_(ids))
                .values(replaced_by_id=None)
                .execution_options(synchronize_session=False)
            )
        for token in tokens:
            self.session.delete(token)
        self.session.flush()
        return len(tokens)

    def find_session_by_hash(self, token_hash: str) -> Optional[SessionToken]:
        return self.session.query(SessionToken).filter_by(token_hash=token_hash).first()

    def live_sessions_for_user(self, user_id: int) -> list[SessionToken]:
        return (
            self.session.query(SessionToken)
            .filter(SessionToken.user_id == user_id, SessionToken.is_revoked.is_(False))
            .all()
        )


class UnitOfWork:
    """One atomic transaction over the repositories."""

    def __init__(self, session: Session):
        # db.session is a scoped proxy; bind the unit to the concrete session
        if isinstance(session, scoped_session):
            session = session()
        self.session = session
        self.catalog = CatalogRepository(session)
        self.inventory = InventoryRepository(session)
        self.ledger = LedgerRepository(session)
        self.sales = SaleRepository(session)
        self.transfers = TransferRepository(session)
        self.tokens = TokenRepository(session)

    def __enter__(self) -> "UnitOfWork":
        try:
            begin_write(self.session)
        except Exception as exc:
            self.session.rollback()
            if is_conflict(exc):
                raise as_conflict(exc) from exc
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            # Work that was not committed explicitly is discarded
            if self.session.in_transaction():
                self.session.rollback()
            return False
        self.session.rollback()
        if is_conflict(exc):
            raise as_conflict(exc) from exc
        return False

    def flush(self) -> None:
        self.session.flush()

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()
