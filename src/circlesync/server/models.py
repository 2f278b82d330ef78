"""SQLAlchemy models for the federated sync store.

This module defines the database schema using SQLAlchemy ORM.
"""

from __future__ import annotations

from sqlalchemy import Boolean, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""


class SyncedItemRow(Base):
    """An item known to the protocol; deleted items are kept as tombstones."""

    __tablename__ = "synced_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    single_id: Mapped[str] = mapped_column(String(31), unique=True, nullable=False)
    # Empty for items owned by this instance
    instance: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    app_id: Mapped[str] = mapped_column(String(63), nullable=False)
    item_type: Mapped[str] = mapped_column(String(63), nullable=False)
    item_id: Mapped[str] = mapped_column(String(127), nullable=False)
    checksum: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        UniqueConstraint("instance", "app_id", "item_type", "item_id", name="uq_synced_items_item"),
        Index("idx_synced_items_item", "app_id", "item_type", "item_id"),
    )


class SyncedShareRow(Base):
    """Share of a synced item with a circle."""

    __tablename__ = "synced_shares"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    single_id: Mapped[str] = mapped_column(String(31), nullable=False)
    circle_id: Mapped[str] = mapped_column(String(31), nullable=False)

    __table_args__ = (
        UniqueConstraint("single_id", "circle_id", name="uq_synced_shares_pair"),
        Index("idx_synced_shares_circle", "circle_id"),
    )


class SyncedItemLockRow(Base):
    """Lock on an in-flight mutation; the unique constraint makes acquisition atomic."""

    __tablename__ = "synced_item_locks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    update_type: Mapped[str] = mapped_column(String(15), nullable=False)
    update_type_id: Mapped[str] = mapped_column(String(127), nullable=False)
    # Epoch seconds
    time: Mapped[int] = mapped_column(Integer, nullable=False)
    verify_checksum: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    checksum: Mapped[str] = mapped_column(Text, default="", nullable=False)

    __table_args__ = (
        UniqueConstraint("update_type", "update_type_id", name="uq_synced_item_locks_target"),
        Index("idx_synced_item_locks_time", "time"),
    )
