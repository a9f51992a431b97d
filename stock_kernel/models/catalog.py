"""
Module: stock_kernel.models.catalog
Responsibility: Read models for the reference data the ledger consults but
    does not own -- products and contacts.  Their CRUD lives with external
    collaborators; the ledger only reads the columns declared here.
Architecture position: Kernel > Models.  May import from db/ and domain.policy.

Columns consumed by the ledger:
    Product.name / unit_name -- shortfall messages.
    Product.low_quantity     -- low-stock threshold (null = never alert).
    Contact.contact_type     -- supplier/customer pairing check.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base
from stock_kernel.domain.policy import ContactType


class Product(Base):
    """Catalog product as seen by the ledger."""

    __tablename__ = "products"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Display unit, e.g. "pcs", "kg"
    unit_name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="pcs",
    )

    low_quantity: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Product {self.id}: {self.name}>"


class Contact(Base):
    """Supplier or customer."""

    __tablename__ = "contacts"

    __table_args__ = (
        Index("idx_contact_type", "contact_type"),
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    contact_type: Mapped[ContactType] = mapped_column(
        String(20),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Contact {self.id}: {self.name} ({self.contact_type})>"
