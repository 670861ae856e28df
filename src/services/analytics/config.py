"""
Wallet Analytics Configuration

Every weight and threshold used by the analytics engine lives here.
Services receive an AnalyticsConfig instance; DEFAULT_CONFIG is used when
none is injected.
"""
import operator
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from src.core.enums import AdoptionStage
from src.core.errors import ValidationError


# (threshold, points) ladders are checked top-down, first match wins
Ladder = List[Tuple[float, float]]

_COMPARATORS = {
    "ge": operator.ge,
    "gt": operator.gt,
    "le": operator.le,
    "lt": operator.lt,
}


@dataclass
class StageCriteria:
    """Cumulative predicate for one adoption stage. 0 disables a criterion."""
    min_transactions: int = 0
    min_volume_zatoshi: int = 0       # sum of |value delta|
    min_active_days: int = 0          # distinct UTC days with a transaction
    min_span_days: float = 0.0        # first tx -> current tx
    min_distinct_types: int = 0       # distinct tx_type values


@dataclass
class AdoptionPolicy:
    """Adoption funnel criteria."""
    criteria: Dict[AdoptionStage, StageCriteria] = field(
        default_factory=lambda: {
            AdoptionStage.FIRST_TX: StageCriteria(min_transactions=1),
            AdoptionStage.FEATURE_USAGE: StageCriteria(
                min_transactions=3,
                min_volume_zatoshi=100_000,
            ),
            AdoptionStage.RECURRING: StageCriteria(
                min_transactions=5,
                min_volume_zatoshi=1_000_000,
                min_active_days=3,
                min_span_days=7,
            ),
            AdoptionStage.POWER_USER: StageCriteria(
                min_transactions=10,
                min_volume_zatoshi=10_000_000,
                min_active_days=7,
                min_span_days=30,
            ),
        }
    )
    confidence_saturation: float = 2.0  # margin ratio at which confidence hits 1.0
    drop_off_high: float = 70.0
    drop_off_medium: float = 50.0


@dataclass
class ConversionPolicy:
    """Stage conversion / drop-off analysis."""
    min_sample_size: int = 10           # per transition
    min_segment_sample_size: int = 5    # per cohort segment
    min_trend_sample_size: int = 20
    severity_high: float = 70.0
    severity_medium: float = 50.0
    severity_low: float = 30.0          # drop-offs below are not reported
    insignificant_priority_penalty: int = 1
    high_severity_health_penalty: float = 10.0
    health_needs_attention: float = 60.0
    health_critical: float = 40.0
    top_actions: int = 3
    impact_alert: float = 10.0
    trend_lookback_days: int = 90


@dataclass
class RetentionPolicy:
    """Cohort retention."""
    weeks: int = 4
    trend_stable_band: float = 2.0      # +/- points treated as stable
    anomaly_threshold: float = 5.0      # |week_1 change| in points
    heatmap_limit: int = 20
    trend_periods: int = 12
    new_vs_returning_days: int = 28


@dataclass
class ProductivityPolicy:
    """
    Productivity scoring.

    total = sum(component * weight); weights must sum to 1.0.
    """
    weights: Dict[str, float] = field(
        default_factory=lambda: {
            "retention": 0.30,
            "adoption": 0.25,
            "churn": 0.20,
            "frequency": 0.15,
            "activity": 0.10,
        }
    )

    status_healthy: float = 70.0
    status_at_risk: float = 40.0
    risk_low: float = 60.0
    risk_medium: float = 30.0
    color_green: float = 70.0
    color_yellow: float = 40.0

    retention_window_days: int = 30
    churn_window_days: int = 60
    activity_window_days: int = 7

    # retention component
    retention_active_days: Ladder = field(default_factory=lambda: [(15, 30), (8, 20), (4, 10), (1, 5)])
    retention_recency_days: Ladder = field(default_factory=lambda: [(1, 30), (3, 20), (7, 10), (14, 5)])
    retention_volume: Ladder = field(default_factory=lambda: [(1e8, 20), (1e7, 15), (1e6, 10), (0, 5)])  # strictly above
    counterparty_points: float = 5.0
    counterparty_cap: float = 20.0

    # adoption component
    fast_stage_hours: Dict[AdoptionStage, float] = field(
        default_factory=lambda: {
            AdoptionStage.FIRST_TX: 24,
            AdoptionStage.FEATURE_USAGE: 72,
            AdoptionStage.RECURRING: 168,
        }
    )
    fast_stage_bonus: float = 5.0

    # churn component (penalties subtracted from 100)
    # inactivity: strictly more days than threshold; ratio: strictly below;
    # quiet week: at most that many active days
    churn_inactivity_days: Ladder = field(default_factory=lambda: [(30, 50), (14, 30), (7, 15), (3, 5)])
    churn_activity_ratio: Ladder = field(default_factory=lambda: [(0.1, 30), (0.2, 20), (0.3, 10)])
    churn_quiet_week: Ladder = field(default_factory=lambda: [(0, 20), (1, 10)])
    churn_declining_penalty: float = 10.0

    # frequency component
    frequency_transactions: Ladder = field(default_factory=lambda: [(50, 40), (20, 30), (10, 20), (5, 10), (1, 5)])
    frequency_active_days: Ladder = field(default_factory=lambda: [(15, 30), (10, 20), (5, 15), (2, 10), (1, 5)])
    frequency_gap_hours: Ladder = field(default_factory=lambda: [(168, 30), (720, 15)])

    # activity component
    activity_days: Ladder = field(default_factory=lambda: [(7, 50), (5, 40), (3, 30), (2, 20), (1, 10)])
    activity_transactions: Ladder = field(default_factory=lambda: [(20, 30), (10, 20), (5, 15), (2, 10), (1, 5)])
    activity_complexity: Ladder = field(default_factory=lambda: [(80, 20), (50, 15), (25, 10), (1, 5)])

    def validate(self) -> None:
        expected = {"retention", "adoption", "churn", "frequency", "activity"}
        if set(self.weights) != expected:
            raise ValidationError(
                "Productivity weights must cover exactly the five components",
                {"components": sorted(self.weights)},
            )
        total = sum(self.weights.values())
        if abs(total - 1.0) > 1e-6:
            raise ValidationError(
                f"Productivity weights must sum to 1.0, got {total:.4f}",
                {"weights": self.weights},
            )


@dataclass
class ShieldedPolicy:
    """Shielded pool and behavior-flow analysis."""
    full_privacy_ratio: float = 0.8
    mixed_privacy_ratio: float = 0.2
    flow_idle_gap_minutes: float = 1440.0
    holding_minutes: float = 1440.0
    high_loyalty: float = 75.0
    medium_loyalty: float = 50.0
    common_characteristic_share: float = 0.2

    pattern_base_loyalty: Dict[str, float] = field(
        default_factory=lambda: {
            "shielded_native": 80.0,
            "privacy_accumulator": 75.0,
            "privacy_holder": 70.0,
            "privacy_cycler": 65.0,
            "privacy_mixer": 60.0,
            "transparent_only": 40.0,
        }
    )
    long_duration_bonus: float = 15.0
    efficiency_weight: float = 0.1
    flow_count_points: float = 2.0
    flow_count_cap: int = 5
    single_flow_penalty: float = 5.0
    complex_flow_bonus: float = 5.0

    # shielded-vs-transparent comparison materiality
    tx_difference: float = 0.5
    volume_difference_pct: float = 20.0
    retention_difference: float = 5.0
    session_difference_hours: float = 1.0


@dataclass
class AnalyticsConfig:
    """Bundle of all analytics policies."""
    adoption: AdoptionPolicy = field(default_factory=AdoptionPolicy)
    conversion: ConversionPolicy = field(default_factory=ConversionPolicy)
    retention: RetentionPolicy = field(default_factory=RetentionPolicy)
    productivity: ProductivityPolicy = field(default_factory=ProductivityPolicy)
    shielded: ShieldedPolicy = field(default_factory=ShieldedPolicy)


DEFAULT_CONFIG = AnalyticsConfig()


def ladder_points(value: float, ladder: Ladder, compare: str = "ge") -> float:
    """
    Points for value from a (threshold, points) ladder.

    Steps are checked in order and the first one where
    `value <compare> threshold` holds wins; no match gives 0.

    Args:
        value: Observed metric
        ladder: (threshold, points) steps
        compare: "ge", "gt", "le" or "lt"
    """
    op = _COMPARATORS[compare]
    for threshold, points in ladder:
        if op(value, threshold):
            return float(points)
    return 0.0
