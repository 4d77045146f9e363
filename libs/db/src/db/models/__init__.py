"""Shared SQLAlchemy models registry for the back-office database.

Currently includes the BTM domain models used by ``btm_backoffice``.
"""

from .btm import (
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

__all__ = [
    "Base",
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
