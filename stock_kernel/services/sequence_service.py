"""
SequenceService -- document numbers from locked counter rows.

Responsibility:
    Hands out the numbers behind TRXPU-, TRXSA-, TSFR-, ADJ-INC- and ADJ-DEC-
    identifiers.  Purchases, sales and transfers each have their own
    counter; both adjustment directions draw from the shared "adjustment"
    counter, so ADJ-INC-1 may be followed by ADJ-DEC-2.

Architecture position:
    Kernel > Services.  Called by the recorders and TransferService inside
    their unit of work, once per new document.

Invariants enforced:
    S1 -- A number is taken by incrementing the counter row under
          ``SELECT ... FOR UPDATE``; it becomes visible only when the
          document that carries it commits.  Numbers are never derived from
          the highest existing document id.
    S2 -- Counter rows are created by ``initialize_sequences()`` at store
          bootstrap and nowhere else.  A missing row raises
          ConfigNotFoundError instead of silently restarting at 1.
    S3 -- A rolled-back document may leave a gap.  A number is never
          issued twice.

Failure modes:
    - ConfigNotFoundError: the store was never bootstrapped.
    - Concurrent writers wait on the counter row lock.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from stock_kernel.db.base import Base
from stock_kernel.domain.policy import SEQUENCE_COUNTER_NAMES, DocumentType
from stock_kernel.exceptions import ConfigNotFoundError
from stock_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """Last number issued for one counter ("purchase", "sale", "transfer", "adjustment")."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    last_issued: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """
    Counter access for one session.  Never commits.

    Usage:
        SequenceService(session).next_document_id(DocumentType.SALE)  # "TRXSA-42"
    """

    def __init__(self, session: Session):
        self._session = session

    def _counter(self, name: str, *, lock: bool) -> SequenceCounter | None:
        stmt = select(SequenceCounter).where(SequenceCounter.name == name)
        if lock:
            stmt = stmt.with_for_update()
        return self._session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Take the next number from ``sequence_name`` (S1).

        The counter row stays locked until the caller's transaction ends.

        Raises:
            ConfigNotFoundError: no such counter (S2).
        """
        counter = self._counter(sequence_name, lock=True)
        if counter is None:
            logger.error("sequence_counter_missing", extra={"sequence_name": sequence_name})
            raise ConfigNotFoundError("sequence counter", sequence_name)

        counter.last_issued += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.last_issued},
        )
        return counter.last_issued

    def next_document_id(self, document_type: DocumentType) -> str:
        """Prefixed identifier for a new document, e.g. ``ADJ-DEC-7``."""
        return f"{document_type.prefix}{self.next_value(document_type.counter_name)}"

    def current_value(self, sequence_name: str) -> int | None:
        """Last number issued, or None when the counter does not exist."""
        counter = self._counter(sequence_name, lock=False)
        return None if counter is None else counter.last_issued

    def reset(self, sequence_name: str, value: int = 0) -> None:
        """
        Force a counter to ``value``, creating it if needed.

        For tests and data migrations only: lowering a live counter reissues
        document numbers.
        """
        counter = self._counter(sequence_name, lock=True)
        if counter is None:
            self._session.add(SequenceCounter(name=sequence_name, last_issued=value))
        else:
            counter.last_issued = value
        self._session.flush()

    def initialize_sequences(self) -> list[str]:
        """
        Create each missing counter at 0 and return the names created.

        Counters that already exist keep their values, so bootstrap can
        run against a live store.
        """
        existing = set(
            self._session.execute(
                select(SequenceCounter.name).where(SequenceCounter.name.in_(SEQUENCE_COUNTER_NAMES))
            ).scalars()
        )
        created = [name for name in SEQUENCE_COUNTER_NAMES if name not in existing]
        self._session.add_all(SequenceCounter(name=name, last_issued=0) for name in created)
        self._session.flush()

        if created:
            logger.info("sequence_counters_initialized", extra={"counters_created": created})
        return created
