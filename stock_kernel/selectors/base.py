"""
Read-only query objects over the stock ledger.

A selector borrows the caller's session and never adds, flushes or commits
through it; what it hands back are frozen DTOs from ``domain.dtos`` or plain
Decimals, never live ORM rows a caller could mutate.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):

    def __init__(self, session: Session):
        self.session = session
