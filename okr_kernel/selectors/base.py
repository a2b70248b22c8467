"""
Module: okr_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.  Selectors
    form the read side of the kernel: period lookups and hierarchy, the live
    OKR data the lifecycle reads, incompleteness detection, and snapshot /
    audit history.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: Selectors accept a Session from the caller but MUST NOT
      call session.add(), session.delete(), session.commit(), or session.flush().
    - DTO return convention: public methods return frozen domain DTOs, not ORM
      instances.  ``*_for_update`` / ``*_model`` helpers used by services are
      the documented exceptions.
    - Session ownership: the caller owns the session and its transaction.

Failure modes:
    - Lookups return None (or an empty list) on absence; ``get_*`` variants
      raise PeriodNotFoundError / ObjectiveNotFoundError.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from okr_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs or computed results.  They MUST NOT mutate any data.
    """

    def __init__(self, session: Session):
        self.session = session
