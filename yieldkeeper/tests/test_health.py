"""Tests for Phase 2 health validation."""

from __future__ import annotations

import pytest

from yieldkeeper.core.health import HealthValidator, compute_health_factor
from yieldkeeper.core.models import VaultCandidate
from yieldkeeper.tests.conftest import ASSET, ETHER, FakeOracle, addr


def _make_candidate(
    owner: str | None = None,
    collateral: int = 2 * ETHER,
    debt: int = 1000 * ETHER,
    pending_yield: int = 2 * 10**15,
    asset: str = ASSET,
) -> VaultCandidate:
    return VaultCandidate(
        owner=owner or addr(1),
        collateral_amount=collateral,
        debt_amount=debt,
        pending_yield=pending_yield,
        collateral_asset=asset,
    )


def _make_validator(oracle: FakeOracle, min_hf: int = 150, batch: int = 20) -> HealthValidator:
    return HealthValidator(oracle, min_health_factor=min_hf, batch_size=batch)


class TestComputeHealthFactor:
    def test_floor_division(self) -> None:
        assert compute_health_factor(3000, 1000) == 300
        assert compute_health_factor(1499, 1000) == 149

    def test_zero_debt_is_undefined(self) -> None:
        assert compute_health_factor(3000, 0) is None

    def test_large_integers_stay_exact(self) -> None:
        assert compute_health_factor(3 * 10**30 + 1, 10**30) == 300


class TestValidation:
    async def test_healthy_vault_is_eligible(self) -> None:
        """collateral value 3000, debt 1000 → health 300 ≥ 150."""
        oracle = FakeOracle(price=1500 * ETHER)
        (decision,) = await _make_validator(oracle).validate([_make_candidate()])
        assert decision.fresh_collateral_value == 3000 * ETHER
        assert decision.health_factor == 300
        assert decision.eligible

    async def test_low_health_excluded(self) -> None:
        """collateral value 1000, debt 1000 → health 100 < 150."""
        oracle = FakeOracle(price=500 * ETHER)
        (decision,) = await _make_validator(oracle).validate([_make_candidate()])
        assert decision.health_factor == 100
        assert not decision.eligible
        assert "100%" in decision.reason

    async def test_threshold_is_inclusive(self) -> None:
        oracle = FakeOracle(price=750 * ETHER)
        (decision,) = await _make_validator(oracle).validate([_make_candidate()])
        assert decision.health_factor == 150
        assert decision.eligible

    async def test_zero_value_excluded(self) -> None:
        oracle = FakeOracle(price=0)
        (decision,) = await _make_validator(oracle).validate([_make_candidate()])
        assert not decision.eligible
        assert decision.health_factor is None
        assert decision.reason == "zero collateral value"

    async def test_zero_debt_never_priced(self) -> None:
        oracle = FakeOracle()
        (decision,) = await _make_validator(oracle).validate([_make_candidate(debt=0)])
        assert not decision.eligible
        assert decision.health_factor is None
        assert oracle.calls == []


class TestFreshness:
    """Prices are read per candidate, every time."""

    async def test_each_candidate_priced(self) -> None:
        oracle = FakeOracle()
        candidates = [_make_candidate(owner=addr(i)) for i in range(5)]
        await _make_validator(oracle).validate(candidates)
        assert len(oracle.calls) == 5

    async def test_price_change_between_cycles_is_seen(self) -> None:
        oracle = FakeOracle(price=1500 * ETHER)
        validator = _make_validator(oracle)
        candidate = _make_candidate()

        (first,) = await validator.validate([candidate])
        oracle.prices[ASSET] = 500 * ETHER
        (second,) = await validator.validate([candidate])

        assert first.eligible
        assert not second.eligible
        assert len(oracle.calls) == 2


class TestBatching:
    async def test_batch_width_bounds_concurrency(self) -> None:
        oracle = FakeOracle()
        candidates = [_make_candidate(owner=addr(i)) for i in range(45)]
        decisions = await _make_validator(oracle, batch=20).validate(candidates)
        assert len(decisions) == 45
        assert oracle.max_in_flight == 20

    async def test_decisions_keep_discovery_order(self) -> None:
        oracle = FakeOracle()
        candidates = [_make_candidate(owner=addr(i)) for i in range(7)]
        candidates.insert(3, _make_candidate(owner=addr(99), debt=0))
        decisions = await _make_validator(oracle, batch=3).validate(candidates)
        assert [d.candidate.owner for d in decisions] == [c.owner for c in candidates]

    def test_rejects_non_positive_batch(self) -> None:
        with pytest.raises(ValueError):
            HealthValidator(FakeOracle(), min_health_factor=150, batch_size=0)


class TestPriceErrors:
    async def test_failed_price_omits_only_that_candidate(self) -> None:
        bad_asset = "0x" + "bb" * 20
        oracle = FakeOracle()
        oracle.failing_assets = {bad_asset}
        candidates = [
            _make_candidate(owner=addr(0)),
            _make_candidate(owner=addr(1), asset=bad_asset),
            _make_candidate(owner=addr(2)),
        ]
        decisions = await _make_validator(oracle).validate(candidates)
        assert [d.candidate.owner for d in decisions] == [addr(0), addr(2)]
