"""
BaseService -- abstract base for all kernel services.

Every service receives a SQLAlchemy ``Session`` from its caller and uses
``session.flush()`` only.  The caller (``Database.session_scope()`` or a
test fixture) owns commit and rollback, which is what lets a delivery's
stock update and its automatic NCR succeed or fail together.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from stock_kernel.db.base import Base
from stock_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()`` on the outer transaction.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()
