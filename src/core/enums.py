"""
Core Enums - shared types for the whole wallet analytics stack.

Defines:
- AdoptionStage: ordered adoption funnel (created -> power_user)
- TransactionType / TransactionSubtype / CounterpartyType: classifier output
- CohortType: retention cohort granularity
- ProductivityStatus / RiskLevel / ScoreColor: productivity classification
- ShieldedAddressType / ShieldedBehaviorType / FlowType / BehaviorPattern:
  shielded-pool behavior analysis
"""

from enum import Enum
from typing import List, Optional


class AdoptionStage(str, Enum):
    """Adoption funnel stages, in funnel order.

    The order of declaration IS the funnel order. A wallet never holds
    stage N+1 without stage N, and an achieved stage is never cleared.
    """

    CREATED = "created"  # Wallet registered
    FIRST_TX = "first_tx"  # First on-chain transaction
    FEATURE_USAGE = "feature_usage"  # Repeated use with meaningful volume
    RECURRING = "recurring"  # Activity spread across days and weeks
    POWER_USER = "power_user"  # Sustained high-volume usage

    @classmethod
    def ordered(cls) -> List["AdoptionStage"]:
        """All stages in funnel order."""
        return list(cls)

    @property
    def order(self) -> int:
        """Zero-based position in the funnel."""
        return AdoptionStage.ordered().index(self)

    @property
    def previous(self) -> Optional["AdoptionStage"]:
        stages = AdoptionStage.ordered()
        return stages[self.order - 1] if self.order > 0 else None

    @property
    def next(self) -> Optional["AdoptionStage"]:
        stages = AdoptionStage.ordered()
        return stages[self.order + 1] if self.order + 1 < len(stages) else None

    @classmethod
    def transitions(cls) -> List[tuple["AdoptionStage", "AdoptionStage"]]:
        """Adjacent (from, to) pairs in funnel order."""
        stages = cls.ordered()
        return list(zip(stages, stages[1:]))


class TransactionType(str, Enum):
    """Semantic transaction type derived by the classifier."""

    TRANSFER = "transfer"
    SWAP = "swap"
    BRIDGE = "bridge"
    SHIELDED = "shielded"
    CONTRACT = "contract"
    MINT = "mint"
    BURN = "burn"


class TransactionSubtype(str, Enum):
    """Direction of a transaction relative to the tracked wallet."""

    INCOMING = "incoming"
    OUTGOING = "outgoing"
    SELF = "self"
    MULTI_PARTY = "multi_party"


class CounterpartyType(str, Enum):
    EXCHANGE = "exchange"
    DEFI = "defi"
    WALLET = "wallet"
    CONTRACT = "contract"
    UNKNOWN = "unknown"


class AddressType(str, Enum):
    """Chain address family of a tracked wallet."""

    TRANSPARENT = "transparent"
    SHIELDED = "shielded"
    UNIFIED = "unified"


class Network(str, Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"


class CohortType(str, Enum):
    """Cohort bucket size. Weekly cohorts start on Monday, monthly on the 1st."""

    WEEKLY = "weekly"
    MONTHLY = "monthly"


class TrendPeriod(str, Enum):
    """Bucket size for conversion trends."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class Severity(str, Enum):
    """Drop-off severity tier."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ProductivityStatus(str, Enum):
    HEALTHY = "healthy"  # total >= 70
    AT_RISK = "at_risk"  # 40..69
    CHURN = "churn"  # < 40


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ScoreColor(str, Enum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


class ShieldedAddressType(str, Enum):
    """Shielded address families recognised by prefix."""

    SAPLING = "sapling"
    SPROUT = "sprout"
    UNIFIED = "unified"


class ShieldedBehaviorType(str, Enum):
    """Daily/period privacy behavior of a single wallet."""

    FULL_PRIVACY = "full_privacy"
    ENTRY_FOCUSED = "entry_focused"
    EXIT_FOCUSED = "exit_focused"
    MIXED_PRIVACY = "mixed_privacy"
    TRANSPARENT_ONLY = "transparent_only"


class ShieldedUserType(str, Enum):
    """Wallet segment by share of shielded transactions."""

    SHIELDED_HEAVY = "shielded_heavy"  # > 70%
    SHIELDED_MODERATE = "shielded_moderate"  # > 30%
    SHIELDED_LIGHT = "shielded_light"  # > 5%
    TRANSPARENT_ONLY = "transparent_only"


class FlowType(str, Enum):
    """Type of a single shielded flow."""

    SINGLE_TRANSACTION = "single_transaction"
    TRANSPARENT_ONLY = "transparent_only"
    PRIVACY_HOLDING = "privacy_holding"
    PRIVACY_MIXING = "privacy_mixing"
    PRIVACY_ACCUMULATION = "privacy_accumulation"
    PRIVACY_SPENDING = "privacy_spending"
    INTERNAL_SHIELDED = "internal_shielded"


class FlowComplexity(str, Enum):
    SIMPLE = "simple"  # <= 2 tx
    MODERATE = "moderate"  # <= 5 tx
    COMPLEX = "complex"  # <= 10 tx
    ADVANCED = "advanced"


class TransitionType(str, Enum):
    """Pool transition between two consecutive transactions."""

    T_TO_Z = "t_to_z"
    Z_TO_T = "z_to_t"
    T_TO_T = "t_to_t"
    Z_TO_Z = "z_to_z"


class BehaviorPattern(str, Enum):
    """Primary privacy archetype of a wallet."""

    SHIELDED_NATIVE = "shielded_native"
    PRIVACY_ACCUMULATOR = "privacy_accumulator"
    PRIVACY_HOLDER = "privacy_holder"
    PRIVACY_CYCLER = "privacy_cycler"
    PRIVACY_MIXER = "privacy_mixer"
    TRANSPARENT_ONLY = "transparent_only"


class EngagementLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
