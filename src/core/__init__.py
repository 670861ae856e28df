"""
Core module - shared enums and errors for the whole stack.
"""

from src.core.enums import (
    AdoptionStage,
    TransactionType,
    TransactionSubtype,
    CounterpartyType,
    CohortType,
    ProductivityStatus,
    RiskLevel,
    ScoreColor,
    BehaviorPattern,
    FlowType,
)
from src.core.errors import (
    AnalyticsError,
    NotFoundError,
    ValidationError,
    InsufficientDataError,
    ComputationError,
)

__all__ = [
    "AdoptionStage",
    "TransactionType",
    "TransactionSubtype",
    "CounterpartyType",
    "CohortType",
    "ProductivityStatus",
    "RiskLevel",
    "ScoreColor",
    "BehaviorPattern",
    "FlowType",
    "AnalyticsError",
    "NotFoundError",
    "ValidationError",
    "InsufficientDataError",
    "ComputationError",
]
