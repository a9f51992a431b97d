"""
Concurrent stock-out and sequence numbering against real row locks.

Stock can never go negative and document numbers are never handed out
twice, no matter how many sessions race for the same batch or counter.

Run with: DATABASE_URL=postgresql://... pytest tests/concurrency/test_stock_races.py -v
Skip with: pytest -m "not slow_locks"
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from threading import Barrier
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from stock_kernel.domain.clock import SystemClock
from stock_kernel.domain.dtos import PurchaseItem, SaleItem, TransferItem
from stock_kernel.domain.policy import ContactType, InventoryMethod
from stock_kernel.exceptions import InsufficientRemainingQuantityError, InsufficientStockError
from stock_kernel.models.batch import Batch
from stock_kernel.models.catalog import Contact, Product
from stock_kernel.models.transaction import Transaction
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.services.settings_service import SettingsService
from stock_services.transaction_recorder import TransactionRecorder
from stock_services.transfer_service import TransferService

pytestmark = [pytest.mark.postgres, pytest.mark.slow_locks]

THREADS = 8


@pytest.fixture
def seeded(pg_session_factory, test_actor_id):
    """Committed store with one product and 10 units in a single batch."""
    session = pg_session_factory()
    SettingsService(session).initialize(method=InventoryMethod.FIFO, expiry_considered=False)
    SequenceService(session).initialize_sequences()
    product = Product(name="Paracetamol 500mg", unit_name="pcs")
    supplier = Contact(name="Acme Wholesale", contact_type=ContactType.SUPPLIER.value)
    customer = Contact(name="Jane Walk-in", contact_type=ContactType.CUSTOMER.value)
    session.add_all([product, supplier, customer])
    session.commit()

    location_id = uuid4()
    TransactionRecorder(session).record_purchase(
        location_id=location_id,
        contact_id=supplier.id,
        items=[PurchaseItem(product_id=product.id, quantity=Decimal("10"), unit_price=Decimal("3"))],
        actor_id=test_actor_id,
    )
    return {
        "product_id": product.id,
        "customer_id": customer.id,
        "location_id": location_id,
    }


def _run_concurrently(worker, count=THREADS):
    barrier = Barrier(count)

    def _wrapped(i):
        barrier.wait()
        return worker(i)

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(_wrapped, range(count)))


class TestConcurrentSales:

    def test_stock_never_negative(self, seeded, pg_session_factory, test_actor_id):
        """Eight sessions each try to sell 3 of 10 units; at most three succeed."""

        def sell(_):
            session = pg_session_factory()
            try:
                TransactionRecorder(session, SystemClock()).record_sale(
                    location_id=seeded["location_id"],
                    contact_id=seeded["customer_id"],
                    items=[SaleItem(seeded["product_id"], Decimal("3"), Decimal("5"))],
                    actor_id=test_actor_id,
                )
                return True
            except InsufficientStockError:
                return False
            finally:
                session.close()

        results = _run_concurrently(sell)

        check = pg_session_factory()
        in_stock = check.execute(
            select(func.sum(Batch.quantity_in_stock)).where(Batch.product_id == seeded["product_id"])
        ).scalar_one()
        assert sum(results) == 3
        assert in_stock == Decimal("1")

    def test_sale_numbers_unique(self, seeded, pg_session_factory, test_actor_id):
        def sell(_):
            session = pg_session_factory()
            try:
                trx = TransactionRecorder(session).record_sale(
                    location_id=seeded["location_id"],
                    contact_id=seeded["customer_id"],
                    items=[SaleItem(seeded["product_id"], Decimal("1"), Decimal("5"))],
                    actor_id=test_actor_id,
                )
                return trx.sequence_id
            finally:
                session.close()

        sequence_ids = _run_concurrently(sell)

        assert sorted(sequence_ids, key=lambda s: int(s.split("-")[1])) == [
            f"TRXSA-{n}" for n in range(1, THREADS + 1)
        ]
        check = pg_session_factory()
        count = check.execute(
            select(func.count()).select_from(Transaction).where(Transaction.transaction_type == "sale")
        ).scalar_one()
        assert count == THREADS


class TestConcurrentTransfers:

    def test_receive_and_return_race(self, seeded, pg_session_factory, test_actor_id):
        """Receivers and returners racing on one line never overdraw it."""
        receiver = uuid4()
        session = pg_session_factory()
        transfer = TransferService(session).send(
            seeded["location_id"], receiver,
            [TransferItem(seeded["product_id"], Decimal("10"))],
            test_actor_id,
        )
        transfer_id, line_id = transfer.id, transfer.lines[0].id
        session.close()

        def act(i):
            s = pg_session_factory()
            service = TransferService(s)
            try:
                if i % 2:
                    service.receive(transfer_id, line_id, receiver, Decimal("2"), test_actor_id)
                else:
                    service.return_product(
                        transfer_id, line_id, seeded["location_id"], Decimal("2"), test_actor_id
                    )
                return True
            except InsufficientRemainingQuantityError:
                return False
            finally:
                s.close()

        results = _run_concurrently(act)

        check = pg_session_factory()
        line = TransferService(check).get_transfer(transfer_id).lines[0]
        assert sum(results) == 5
        assert line.returned_quantity + line.received_quantity == Decimal("10")
        assert line.in_transit_quantity == Decimal("0")
