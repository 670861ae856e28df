"""
Wallet Analytics Module - adoption, conversion, retention, productivity and
shielded behavior analytics for tracked Zcash wallets.

Provides:
- WalletAnalyticsService: facade with Redis caching of project views
- one engine class per area (AdoptionStageTracker, ConversionAnalyzer, ...)
- AnalyticsConfig: every threshold and weight, injectable

Usage:
    from src.services.analytics import WalletAnalyticsService

    async with session_maker() as session:
        analytics = WalletAnalyticsService(session)
        status = await analytics.adoption.get_status(wallet_id=42)
"""

from src.services.analytics.service import WalletAnalyticsService
from src.services.analytics.adoption import AdoptionStageTracker
from src.services.analytics.behavior_flow import BehaviorFlowTracker
from src.services.analytics.cache import AnalyticsCacheLayer
from src.services.analytics.classifier import KnownAddresses, TransactionProcessor
from src.services.analytics.cohorts import CohortService
from src.services.analytics.config import AnalyticsConfig, DEFAULT_CONFIG
from src.services.analytics.conversion import ConversionAnalyzer
from src.services.analytics.productivity import ProductivityScorer
from src.services.analytics.retention import RetentionEngine
from src.services.analytics.shielded import ShieldedAnalyzer

__all__ = [
    # Facade
    "WalletAnalyticsService",
    # Engines
    "AdoptionStageTracker",
    "BehaviorFlowTracker",
    "CohortService",
    "ConversionAnalyzer",
    "ProductivityScorer",
    "RetentionEngine",
    "ShieldedAnalyzer",
    "TransactionProcessor",
    # Support
    "AnalyticsCacheLayer",
    "AnalyticsConfig",
    "DEFAULT_CONFIG",
    "KnownAddresses",
]
