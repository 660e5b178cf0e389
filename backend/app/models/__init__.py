"""SQLAlchemy ORM models for Case Links.

All models are exported from this module for convenient imports:
    from app.models import Case, CaseLink

- case.py: Case (Tier 0 - computed savings report)
- case_link.py: CaseLink (Tier 1 - magic link credential pair)
"""

from app.models.base import Base, TimestampMixin
from app.models.case import Case
from app.models.case_link import CaseLink

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    # Tier 0
    "Case",
    # Tier 1
    "CaseLink",
]
