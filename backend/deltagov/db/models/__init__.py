"""Database model registry. Import all models here so Alembic can discover them."""

from deltagov.db.models.bill import Bill, Version
from deltagov.db.models.delta import CachedDelta, DeltaStatus

__all__ = [
    "Bill",
    "CachedDelta",
    "DeltaStatus",
    "Version",
]
