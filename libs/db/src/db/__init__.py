"""db: shared database library (SQLAlchemy/Alembic).

Public exports
--------------
- ``Base`` and ``metadata`` for Alembic autogenerate/targeting
- ORM models in ``db.models.btm`` (re-exported for convenience)
- Engine/session helpers in ``db.client``
"""

from __future__ import annotations

from .models.btm import (
    AtmProfile,
    Base,
    CashPickup,
    Commission,
    CommissionDetail,
    Deposit,
    DepositPickupLink,
    Person,
    SalesRep,
    TickerMapping,
    Transaction,
    Upload,
)

# Re-export SQLAlchemy metadata for Alembic's env.py
metadata = Base.metadata

__all__ = [
    "Base",
    "metadata",
    "AtmProfile",
    "CashPickup",
    "Commission",
    "CommissionDetail",
    "Deposit",
    "DepositPickupLink",
    "Person",
    "SalesRep",
    "TickerMapping",
    "Transaction",
    "Upload",
]
