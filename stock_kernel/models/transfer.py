"""
Module: stock_kernel.models.transfer
Responsibility: ORM persistence for stock in transit between two locations.
    A transfer line carries two ordered mini-ledgers: ``sending_batches``
    (which sender batches the stock left, and how much of each has since
    been received) and ``receiving_batches`` (the batches materialized at
    the receiver).
Architecture position: Kernel > Models.

Invariants enforced:
    X1 -- Closure: total_quantity == returned_quantity
          + sum(receiving_batches.quantity) + in_transit, with in_transit >= 0.
          ``is_closed`` is DERIVED from these quantities; there is no stored
          state flag that could drift.
    X2 -- Per sending entry: 0 <= received_qty <= quantity (CHECK).
    X3 -- Sending entries keep send-time order via ``position``; receive
          walks them forward, return walks them backward.
    X4 -- The line is mutated only as a whole aggregate under a row lock
          (TransferService loads it with ``SELECT ... FOR UPDATE``).

Audit relevance:
    A sending entry with received_qty == 0 that is fully returned is removed
    outright: it never contributed to any receipt.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import ActorTrackedBase, Base, UUIDString

_ZERO = Decimal("0")


class Transfer(ActorTrackedBase):
    __tablename__ = "transfers"

    __table_args__ = (
        Index("idx_transfer_sender", "sender_location_id"),
        Index("idx_transfer_receiver", "receiver_location_id"),
    )

    sequence_id: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    sender_location_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    receiver_location_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    note: Mapped[str | None] = mapped_column(
        String(4000),
        nullable=True,
    )

    lines: Mapped[list[TransferLine]] = relationship(
        back_populates="transfer",
        cascade="all, delete-orphan",
        order_by="TransferLine.position",
        lazy="selectin",
    )

    @property
    def is_closed(self) -> bool:
        return all(line.is_closed for line in self.lines)

    def __repr__(self) -> str:
        return f"<Transfer {self.sequence_id}: {self.sender_location_id} -> {self.receiver_location_id}>"


class TransferLine(Base):
    __tablename__ = "transfer_lines"

    __table_args__ = (
        CheckConstraint("total_quantity > 0", name="ck_transfer_line_total_positive"),
        CheckConstraint("returned_quantity >= 0", name="ck_transfer_line_returned_non_negative"),
        Index("idx_transfer_line_transfer", "transfer_id"),
    )

    transfer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("transfers.id"),
        nullable=False,
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    total_quantity: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    returned_quantity: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=_ZERO,
    )

    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    transfer: Mapped[Transfer] = relationship(back_populates="lines")

    # INVARIANT X3
    sending_batches: Mapped[list[TransferSendingBatch]] = relationship(
        back_populates="line",
        cascade="all, delete-orphan",
        order_by="TransferSendingBatch.position",
        lazy="selectin",
    )

    receiving_batches: Mapped[list[TransferReceivingBatch]] = relationship(
        back_populates="line",
        cascade="all, delete-orphan",
        order_by="TransferReceivingBatch.position",
        lazy="selectin",
    )

    @property
    def received_quantity(self) -> Decimal:
        return sum((b.quantity for b in self.receiving_batches), _ZERO)

    @property
    def in_transit_quantity(self) -> Decimal:
        """Neither received nor returned yet.  Negative means corruption."""
        return self.total_quantity - self.returned_quantity - self.received_quantity

    # INVARIANT X1
    @property
    def is_closed(self) -> bool:
        return self.total_quantity == self.returned_quantity + self.received_quantity


class TransferSendingBatch(Base):
    """Sender-side allocation line with its received counter."""

    __tablename__ = "transfer_sending_batches"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_sending_batch_quantity_positive"),
        # INVARIANT X2
        CheckConstraint("received_qty >= 0", name="ck_sending_batch_received_non_negative"),
        CheckConstraint("received_qty <= quantity", name="ck_sending_batch_received_within_sent"),
        Index("idx_sending_batch_line", "line_id"),
        Index("idx_sending_batch_batch", "batch_id"),
    )

    line_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("transfer_lines.id"),
        nullable=False,
    )

    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("batches.id"),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    received_qty: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=_ZERO,
    )

    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    line: Mapped[TransferLine] = relationship(back_populates="sending_batches")

    @property
    def unreceived_quantity(self) -> Decimal:
        return self.quantity - self.received_qty


class TransferReceivingBatch(Base):
    """Receiver-side allocation line pointing at a batch created on receipt."""

    __tablename__ = "transfer_receiving_batches"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_receiving_batch_quantity_positive"),
        Index("idx_receiving_batch_line", "line_id"),
    )

    line_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("transfer_lines.id"),
        nullable=False,
    )

    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("batches.id"),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    line: Mapped[TransferLine] = relationship(back_populates="receiving_batches")
