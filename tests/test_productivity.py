"""
Tests for the productivity scoring engine
"""

from datetime import timedelta

import pytest

from src.core.errors import NotFoundError, ValidationError
from src.services.analytics.adoption import AdoptionStageTracker
from src.services.analytics.config import AnalyticsConfig, ProductivityPolicy, ladder_points
from src.services.analytics.productivity import ProductivityScorer, classify_risk, classify_status

from helpers import days_after


AS_OF = days_after(60)


@pytest.fixture
async def busy_wallet(repo, make_wallet, make_activity):
    """Active every day of the last 30, three transactions a day."""
    wallet = await make_wallet()
    await AdoptionStageTracker(repo).initialize(wallet.id)
    for offset in range(30):
        day = AS_OF.date() - timedelta(days=offset)
        await make_activity(wallet.id, day, transactions=3, volume=1_000_000, returning=offset < 29)
    return wallet


def test_ladder_points():
    ladder = [(10, 30), (5, 20), (1, 10)]
    assert ladder_points(12, ladder) == 30.0
    assert ladder_points(5, ladder) == 20.0
    assert ladder_points(0, ladder) == 0.0
    assert ladder_points(2, [(1, 30), (3, 20)], "le") == 20.0


def test_status_and_risk_boundaries():
    policy = ProductivityPolicy()
    assert classify_status(70.0, policy).value == "healthy"
    assert classify_status(69.99, policy).value == "at_risk"
    assert classify_status(39.99, policy).value == "churn"
    assert classify_risk(60.0, 60.0, policy).value == "low"
    assert classify_risk(40.0, 20.0, policy).value == "medium"
    assert classify_risk(0.0, 0.0, policy).value == "high"


def test_weights_must_sum_to_one():
    bad = ProductivityPolicy(weights={
        "retention": 0.30, "adoption": 0.25, "churn": 0.20, "frequency": 0.15, "activity": 0.05,
    })
    with pytest.raises(ValidationError):
        bad.validate()

    missing = ProductivityPolicy(weights={"retention": 1.0})
    with pytest.raises(ValidationError):
        ProductivityScorer(repo=None, config=AnalyticsConfig(productivity=missing))


@pytest.mark.asyncio
async def test_idle_wallet_scores_as_churn(repo, make_wallet):
    wallet = await make_wallet()
    await AdoptionStageTracker(repo).initialize(wallet.id)

    score = await ProductivityScorer(repo).calculate(wallet.id, as_of=AS_OF)
    components = {c.name: c.score for c in score.components}

    assert components["activity"] == 0.0
    assert components["frequency"] == 0.0
    assert components["churn"] == 0.0
    assert components["adoption"] == 20.0
    assert score.total_score == 5.0
    assert score.status == "churn"
    assert score.risk_level == "high"
    assert score.color == "red"


@pytest.mark.asyncio
async def test_busy_wallet_is_healthy(repo, busy_wallet):
    score = await ProductivityScorer(repo).calculate(busy_wallet.id, as_of=AS_OF)
    components = {c.name: c.score for c in score.components}

    assert components == {
        "retention": 75.0,
        "adoption": 20.0,
        "churn": 100.0,
        "frequency": 100.0,
        "activity": 90.0,
    }
    assert score.total_score == 71.5
    assert score.status == "healthy"
    assert score.risk_level == "low"
    assert score.color == "green"


@pytest.mark.asyncio
async def test_total_matches_weighted_components(repo, busy_wallet):
    score = await ProductivityScorer(repo).calculate(busy_wallet.id, as_of=AS_OF)
    assert score.total_score == round(sum(c.weighted for c in score.components), 2)


@pytest.mark.asyncio
async def test_update_persists_score(repo, busy_wallet):
    scorer = ProductivityScorer(repo)
    await scorer.update(busy_wallet.id, as_of=AS_OF)
    await scorer.update(busy_wallet.id, as_of=AS_OF)

    stored = await repo.get_score(busy_wallet.id)
    assert stored.total_score == 71.5
    assert stored.retention_score == 75.0
    assert stored.status == "healthy"


@pytest.mark.asyncio
async def test_bulk_isolates_failures(repo, make_wallet):
    wallet = await make_wallet()
    result = await ProductivityScorer(repo).bulk([wallet.id, 999_999])

    assert result.total == 2
    assert result.succeeded == 1
    assert result.failed == 1
    failed = next(item for item in result.items if not item.success)
    assert failed.id == 999_999
    assert "not found" in failed.error


@pytest.mark.asyncio
async def test_project_summary(repo, make_wallet, busy_wallet):
    scorer = ProductivityScorer(repo)
    await scorer.update(busy_wallet.id, as_of=AS_OF)

    idle = await make_wallet(busy_wallet.project_id)
    await scorer.update(idle.id, as_of=AS_OF)

    summary = await scorer.project_summary(busy_wallet.project_id)
    assert summary.total_wallets == 2
    assert summary.scored_wallets == 2
    assert summary.health_percentage == 50.0
    assert summary.status_distribution["healthy"] == 1
    assert summary.status_distribution["churn"] == 1

    with pytest.raises(NotFoundError):
        await scorer.project_summary(424242)
