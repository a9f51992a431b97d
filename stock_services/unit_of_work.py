"""
Unit-of-work boundary shared by the recorders and the transfer service.

Every public write operation runs inside ``unit_of_work``: the session is
committed when the block completes and rolled back on any exception.
Ledger errors keep their class; SQLAlchemy failures are wrapped in
TransactionAbortedError with the original chained as ``__cause__``.
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stock_kernel.exceptions import StockLedgerError, TransactionAbortedError
from stock_kernel.logging_config import get_logger

logger = get_logger("services.unit_of_work")


@contextmanager
def unit_of_work(session: Session, operation: str) -> Generator[Session, None, None]:
    try:
        yield session
        session.commit()
    except StockLedgerError:
        session.rollback()
        logger.warning("unit_of_work_rolled_back", extra={"operation": operation}, exc_info=True)
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        logger.warning("unit_of_work_aborted", extra={"operation": operation}, exc_info=True)
        raise TransactionAbortedError(operation, str(exc)) from exc
    except Exception:
        session.rollback()
        logger.warning("unit_of_work_rolled_back", extra={"operation": operation}, exc_info=True)
        raise
