"""
Module: hr_kernel.selectors.base
Responsibility: Abstract base for read-only selectors.
Architecture position: Kernel > Selectors.  Selectors never add, delete,
    flush or commit; the caller owns the session and its transaction.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from hr_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Selectors receive a session and return DTOs or computed results."""

    def __init__(self, session: Session):
        self.session = session
