"""
Module: stock_kernel.models.transaction
Responsibility: ORM persistence for purchase/sale documents -- the header,
    its product lines, the allocation lines embedded in each product line,
    and payments recorded against the header.
Architecture position: Kernel > Models.  May import from db/ and
    domain.policy.

Invariants enforced:
    T1 -- sequence_id is unique (TRXPU-n / TRXSA-n).
    T2 -- A purchase line owns exactly one allocation line pointing at the
          batch it created; a sale line owns one allocation line per batch
          it drew from, ordered by ``position``.
    T3 -- Allocation line quantity > 0 (CHECK constraint).
    T4 -- Payment amount > 0 (CHECK constraint).

Audit relevance:
    Allocation lines reference batches by id only; a batch may be touched
    by many documents over its life.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import ActorTrackedBase, Base, UUIDString
from stock_kernel.domain.policy import PaymentType, TransactionType


class Transaction(ActorTrackedBase):
    """Purchase or sale header."""

    __tablename__ = "transactions"

    __table_args__ = (
        Index("idx_transaction_location", "location_id"),
        Index("idx_transaction_contact", "contact_id"),
    )

    # INVARIANT T1
    sequence_id: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    transaction_type: Mapped[TransactionType] = mapped_column(
        String(20),
        nullable=False,
    )

    contact_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("contacts.id"),
        nullable=False,
    )

    location_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    note: Mapped[str | None] = mapped_column(
        String(4000),
        nullable=True,
    )

    lines: Mapped[list[TransactionLine]] = relationship(
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="TransactionLine.position",
        lazy="selectin",
    )

    payments: Mapped[list[Payment]] = relationship(
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="Payment.created_at",
        lazy="selectin",
    )

    @property
    def total_paid(self) -> Decimal:
        return sum((p.amount for p in self.payments), Decimal("0"))

    def __repr__(self) -> str:
        return f"<Transaction {self.sequence_id} ({self.transaction_type})>"


class TransactionLine(Base):
    """One product on a purchase or sale."""

    __tablename__ = "transaction_lines"

    __table_args__ = (
        Index("idx_transaction_line_transaction", "transaction_id"),
        Index("idx_transaction_line_product", "product_id"),
    )

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("transactions.id"),
        nullable=False,
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    # Unit cost for purchases, unit selling price for sales
    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    # Sales only
    vat_percentage: Mapped[Decimal | None] = mapped_column(
        Numeric(9, 4),
        nullable=True,
    )

    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    transaction: Mapped[Transaction] = relationship(back_populates="lines")

    # INVARIANT T2
    batches: Mapped[list[TransactionLineBatch]] = relationship(
        back_populates="line",
        cascade="all, delete-orphan",
        order_by="TransactionLineBatch.position",
        lazy="selectin",
    )

    @property
    def quantity(self) -> Decimal:
        return sum((b.quantity for b in self.batches), Decimal("0"))


class TransactionLineBatch(Base):
    """Allocation line ``{batch_id, quantity}`` embedded in a transaction line."""

    __tablename__ = "transaction_line_batches"

    __table_args__ = (
        # INVARIANT T3
        CheckConstraint("quantity > 0", name="ck_trx_line_batch_quantity_positive"),
        Index("idx_trx_line_batch_line", "line_id"),
        Index("idx_trx_line_batch_batch", "batch_id"),
    )

    line_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("transaction_lines.id"),
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

    line: Mapped[TransactionLine] = relationship(back_populates="batches")


class Payment(ActorTrackedBase):
    """Money paid to a supplier (PAID) or received from a customer (RECEIVED)."""

    __tablename__ = "payments"

    __table_args__ = (
        # INVARIANT T4
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
        Index("idx_payment_transaction", "transaction_id"),
    )

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("transactions.id"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    payment_type: Mapped[PaymentType] = mapped_column(
        String(20),
        nullable=False,
    )

    remark: Mapped[str | None] = mapped_column(
        String(4000),
        nullable=True,
    )

    transaction: Mapped[Transaction] = relationship(back_populates="payments")
