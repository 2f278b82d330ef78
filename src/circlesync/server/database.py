"""Sync store using SQLAlchemy with SQLite.

This module provides:
- SyncedItem persistence, including tombstones
- SyncedShare persistence
- SyncedItemLock acquisition through a unique constraint
- Stale lock cleanup
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy import create_engine, delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from circlesync.core.errors import ConflictError, SyncedShareAlreadyExistsError
from circlesync.server.models import Base, SyncedItemLockRow, SyncedItemRow, SyncedShareRow
from circlesync.sync.entities import SyncedItem, SyncedItemLock, SyncedShare

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def _item_from_row(row: SyncedItemRow) -> SyncedItem:
    return SyncedItem(
        single_id=row.single_id,
        instance=row.instance,
        app_id=row.app_id,
        item_type=row.item_type,
        item_id=row.item_id,
        checksum=row.checksum,
        deleted=row.deleted,
    )


def _share_from_row(row: SyncedShareRow) -> SyncedShare:
    return SyncedShare(single_id=row.single_id, circle_id=row.circle_id)


def _lock_from_row(row: SyncedItemLockRow) -> SyncedItemLock:
    return SyncedItemLock(
        update_type=row.update_type,
        update_type_id=row.update_type_id,
        time=row.time,
        verify_checksum=row.verify_checksum,
        checksum=row.checksum,
    )


class SyncStore:
    """SQLAlchemy store for synced items, shares and locks.

    Uses SQLite with WAL mode so readers never wait on writers. Every
    method runs in its own short-lived session and returns detached
    entity dataclasses.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the store.

        Args:
            db_path: Path to the SQLite database file.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        # check_same_thread=False: concurrent requests share the engine
        self._engine: Engine = create_engine(
            f"sqlite:///{self._db_path}",
            connect_args={"check_same_thread": False, "timeout": 30},
            echo=False,
        )

        with self._engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA journal_mode=WAL")

        Base.metadata.create_all(self._engine)

    @property
    def path(self) -> Path:
        return self._db_path

    def close(self) -> None:
        """Close the database connection."""
        self._engine.dispose()

    def _session(self) -> Session:
        """Create a new database session."""
        return Session(self._engine)

    # === SyncedItem operations ===

    def create_item(self, item: SyncedItem) -> SyncedItem:
        """Store a new SyncedItem.

        Args:
            item: Item to store.

        Returns:
            The stored item.

        Raises:
            IntegrityError: If the single_id or the (instance, app_id,
                item_type, item_id) tuple already exists.
        """
        with self._session() as session:
            row = SyncedItemRow(
                single_id=item.single_id,
                instance=item.instance,
                app_id=item.app_id,
                item_type=item.item_type,
                item_id=item.item_id,
                checksum=item.checksum,
                deleted=item.deleted,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _item_from_row(row)

    def get_item(self, app_id: str, item_type: str, item_id: str) -> SyncedItem | None:
        """Get an item by its host-application identity.

        Args:
            app_id: Application id.
            item_type: Item type.
            item_id: Identifier inside the application.

        Returns:
            SyncedItem if found, None otherwise.
        """
        with self._session() as session:
            stmt = (
                select(SyncedItemRow)
                .where(
                    SyncedItemRow.app_id == app_id,
                    SyncedItemRow.item_type == item_type,
                    SyncedItemRow.item_id == item_id,
                )
                .order_by(SyncedItemRow.id)
                .limit(1)
            )
            row = session.execute(stmt).scalar_one_or_none()
            return _item_from_row(row) if row else None

    def get_item_by_single_id(self, single_id: str) -> SyncedItem | None:
        """Get an item by its federation-wide identifier."""
        with self._session() as session:
            stmt = select(SyncedItemRow).where(SyncedItemRow.single_id == single_id)
            row = session.execute(stmt).scalar_one_or_none()
            return _item_from_row(row) if row else None

    def list_items(
        self,
        app_id: str | None = None,
        item_type: str | None = None,
        include_deleted: bool = True,
    ) -> list[SyncedItem]:
        """List items, optionally filtered by origin.

        Args:
            app_id: Only items of this application.
            item_type: Only items of this type.
            include_deleted: Whether tombstones are listed.

        Returns:
            Items ordered by application, type and item id.
        """
        with self._session() as session:
            stmt = select(SyncedItemRow)
            if app_id:
                stmt = stmt.where(SyncedItemRow.app_id == app_id)
            if item_type:
                stmt = stmt.where(SyncedItemRow.item_type == item_type)
            if not include_deleted:
                stmt = stmt.where(SyncedItemRow.deleted.is_(False))
            stmt = stmt.order_by(
                SyncedItemRow.app_id, SyncedItemRow.item_type, SyncedItemRow.item_id
            )
            return [_item_from_row(row) for row in session.execute(stmt).scalars().all()]

    def update_item_checksum(self, single_id: str, checksum: str) -> bool:
        """Store the checksum of the latest known state of an item.

        Returns:
            True if the item exists, False otherwise.
        """
        with self._session() as session:
            stmt = select(SyncedItemRow).where(SyncedItemRow.single_id == single_id)
            row = session.execute(stmt).scalar_one_or_none()
            if row is None:
                return False
            row.checksum = checksum
            session.commit()
            return True

    def save_remote_item(self, item: SyncedItem) -> SyncedItem:
        """Create or refresh the local copy of an item owned elsewhere.

        Args:
            item: Item as received from its owner.

        Returns:
            The stored item.
        """
        with self._session() as session:
            stmt = select(SyncedItemRow).where(SyncedItemRow.single_id == item.single_id)
            row = session.execute(stmt).scalar_one_or_none()
            if row is None:
                row = SyncedItemRow(
                    single_id=item.single_id,
                    instance=item.instance,
                    app_id=item.app_id,
                    item_type=item.item_type,
                    item_id=item.item_id,
                    checksum=item.checksum,
                    deleted=item.deleted,
                )
                session.add(row)
            else:
                row.checksum = item.checksum
                row.deleted = item.deleted
            session.commit()
            session.refresh(row)
            return _item_from_row(row)

    def tombstone_item(self, single_id: str) -> list[SyncedShare]:
        """Flag an item as deleted and drop its shares in one transaction.

        Args:
            single_id: Item to delete.

        Returns:
            Shares that were removed.
        """
        with self._session() as session:
            stmt = select(SyncedItemRow).where(SyncedItemRow.single_id == single_id)
            row = session.execute(stmt).scalar_one_or_none()
            if row is None:
                return []

            share_rows = list(
                session.execute(
                    select(SyncedShareRow).where(SyncedShareRow.single_id == single_id)
                ).scalars().all()
            )
            removed = [_share_from_row(share) for share in share_rows]
            for share in share_rows:
                session.delete(share)

            row.deleted = True
            session.commit()
            return removed

    # === SyncedShare operations ===

    def create_share(self, share: SyncedShare) -> SyncedShare:
        """Store a new share.

        Raises:
            SyncedShareAlreadyExistsError: If the pair is already shared.
        """
        with self._session() as session:
            session.add(SyncedShareRow(single_id=share.single_id, circle_id=share.circle_id))
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise SyncedShareAlreadyExistsError(
                    f"{share.single_id} is already shared with {share.circle_id}"
                ) from e
            return share

    def get_share(self, single_id: str, circle_id: str) -> SyncedShare | None:
        """Get the share of an item with a circle."""
        with self._session() as session:
            stmt = select(SyncedShareRow).where(
                SyncedShareRow.single_id == single_id,
                SyncedShareRow.circle_id == circle_id,
            )
            row = session.execute(stmt).scalar_one_or_none()
            return _share_from_row(row) if row else None

    def list_shares(self, single_id: str) -> list[SyncedShare]:
        """List the circles an item is shared with."""
        with self._session() as session:
            stmt = (
                select(SyncedShareRow)
                .where(SyncedShareRow.single_id == single_id)
                .order_by(SyncedShareRow.circle_id)
            )
            return [_share_from_row(row) for row in session.execute(stmt).scalars().all()]

    def list_circle_shares(self, circle_id: str) -> list[SyncedShare]:
        """List the items shared with a circle."""
        with self._session() as session:
            stmt = (
                select(SyncedShareRow)
                .where(SyncedShareRow.circle_id == circle_id)
                .order_by(SyncedShareRow.single_id)
            )
            return [_share_from_row(row) for row in session.execute(stmt).scalars().all()]

    def delete_share(self, single_id: str, circle_id: str) -> bool:
        """Hard-delete a share.

        Returns:
            True if a share was removed.
        """
        with self._session() as session:
            result = session.execute(
                delete(SyncedShareRow).where(
                    SyncedShareRow.single_id == single_id,
                    SyncedShareRow.circle_id == circle_id,
                )
            )
            session.commit()
            return result.rowcount > 0

    # === SyncedItemLock operations ===

    def acquire_lock(self, lock: SyncedItemLock) -> SyncedItemLock:
        """Atomically insert a lock.

        Args:
            lock: Lock to insert; its time is set to now when zero.

        Returns:
            The stored lock.

        Raises:
            ConflictError: If a lock already exists for the same target.
        """
        if not lock.time:
            lock.time = int(time.time())
        with self._session() as session:
            session.add(
                SyncedItemLockRow(
                    update_type=lock.update_type,
                    update_type_id=lock.update_type_id,
                    time=lock.time,
                    verify_checksum=lock.verify_checksum,
                    checksum=lock.checksum,
                )
            )
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise ConflictError(
                    f"{lock.update_type} {lock.update_type_id} is currently locked, "
                    "try again later"
                ) from e
            return lock

    def get_lock(self, update_type: str, update_type_id: str) -> SyncedItemLock | None:
        """Get the lock held on a target, if any."""
        with self._session() as session:
            stmt = select(SyncedItemLockRow).where(
                SyncedItemLockRow.update_type == update_type,
                SyncedItemLockRow.update_type_id == update_type_id,
            )
            row = session.execute(stmt).scalar_one_or_none()
            return _lock_from_row(row) if row else None

    def list_locks(self) -> list[SyncedItemLock]:
        """List all locks, oldest first."""
        with self._session() as session:
            stmt = select(SyncedItemLockRow).order_by(SyncedItemLockRow.time)
            return [_lock_from_row(row) for row in session.execute(stmt).scalars().all()]

    def confirm_lock(self, lock: SyncedItemLock) -> bool:
        """Persist verify_checksum and the prospective checksum of a held lock.

        Returns:
            True if the lock is still held.
        """
        with self._session() as session:
            stmt = select(SyncedItemLockRow).where(
                SyncedItemLockRow.update_type == lock.update_type,
                SyncedItemLockRow.update_type_id == lock.update_type_id,
                SyncedItemLockRow.time == lock.time,
            )
            row = session.execute(stmt).scalar_one_or_none()
            if row is None:
                return False
            row.verify_checksum = lock.verify_checksum
            row.checksum = lock.checksum
            session.commit()
            return True

    def release_lock(self, lock: SyncedItemLock) -> bool:
        """Remove a lock.

        Only the lock created at lock.time is removed, so a holder whose lock
        went stale and was taken over cannot release the new holder's lock.

        Returns:
            True if the lock was removed.
        """
        with self._session() as session:
            result = session.execute(
                delete(SyncedItemLockRow).where(
                    SyncedItemLockRow.update_type == lock.update_type,
                    SyncedItemLockRow.update_type_id == lock.update_type_id,
                    SyncedItemLockRow.time == lock.time,
                )
            )
            session.commit()
            return result.rowcount > 0

    def clean_stale_locks(self, timeout: int, now: float | None = None) -> int:
        """Delete locks older than timeout seconds.

        Args:
            timeout: Lock lifetime in seconds.
            now: Reference time in epoch seconds (defaults to current time).

        Returns:
            Number of locks deleted.
        """
        cutoff = int(now if now is not None else time.time()) - timeout
        with self._session() as session:
            result = session.execute(
                delete(SyncedItemLockRow).where(SyncedItemLockRow.time < cutoff)
            )
            session.commit()
            count = result.rowcount
        if count:
            logger.info("Removed %d stale lock(s) older than %ds", count, timeout)
        return count
