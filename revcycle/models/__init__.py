"""
Database Models.
"""

from revcycle.models.base import Base, Money, TimeStampedModel
from revcycle.models.claim import Claim, ClaimLine, RevenueCycleEvent
from revcycle.models.remittance import AppliedRemittance, RemittanceBatchRecord

__all__ = [
    "Base",
    "Money",
    "TimeStampedModel",
    "Claim",
    "ClaimLine",
    "RevenueCycleEvent",
    "AppliedRemittance",
    "RemittanceBatchRecord",
]
