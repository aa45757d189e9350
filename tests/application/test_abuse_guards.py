"""Testes para os guardas anti-abuso: rate limit, cooldown e conflito de fluxo."""

from __future__ import annotations

import asyncio

import pytest

from powerwatch.application.action_gate import ActionGate
from powerwatch.application.conflict_guard import StateConflictGuard
from powerwatch.application.cooldown_manager import ActionCooldownManager
from powerwatch.application.guard_context import GuardContext
from powerwatch.application.rate_limiter import ActionRateLimiter
from powerwatch.config.settings import Settings
from powerwatch.domain.enums import GuardKind


@pytest.fixture
def context(mono_clock) -> GuardContext:
    return GuardContext(retention_seconds=3600, sweep_interval_seconds=0.01, clock=mono_clock)


class TestActionRateLimiter:
    def test_second_immediate_call_is_blocked(self, context, mono_clock) -> None:
        limiter = ActionRateLimiter(context, window_seconds=1.0)

        assert limiter.check_action("u1", "x").allowed is True
        second = limiter.check_action("u1", "x")
        assert second.allowed is False
        assert second.reason == "cooldown"

        mono_clock.advance(1.0)
        assert limiter.check_action("u1", "x").allowed is True

    def test_single_clock_per_user_across_actions(self, context) -> None:
        limiter = ActionRateLimiter(context)
        limiter.check_action("u1", "x")
        assert limiter.check_action("u1", "y").allowed is False

    def test_users_are_independent(self, context) -> None:
        limiter = ActionRateLimiter(context)
        limiter.check_action("u1", "x")
        assert limiter.check_action("u2", "x").allowed is True

    def test_reset(self, context) -> None:
        limiter = ActionRateLimiter(context)
        limiter.check_action("u1", "x")
        assert limiter.reset("u1") is True
        assert limiter.check_action("u1", "x").allowed is True


class TestActionCooldownManager:
    def test_fresh_pair_is_allowed(self, context) -> None:
        manager = ActionCooldownManager(context)
        result = manager.check_cooldown("u1", "wizard_start")
        assert result.allowed is True
        assert result.remaining_seconds is None

    def test_check_is_read_only(self, context) -> None:
        manager = ActionCooldownManager(context)
        manager.check_cooldown("u1", "wizard_start")
        manager.check_cooldown("u1", "wizard_start")
        assert context.cooldowns == {}

    def test_after_record_blocks_with_remaining(self, context, mono_clock) -> None:
        manager = ActionCooldownManager(context, default_cooldown_seconds=30)
        manager.record_action("u1", "wizard_start")

        result = manager.check_cooldown("u1", "wizard_start")
        assert result.allowed is False
        assert result.remaining_seconds == 30

        mono_clock.advance(29.2)
        assert manager.check_cooldown("u1", "wizard_start").remaining_seconds == 1

        mono_clock.advance(0.8)
        assert manager.check_cooldown("u1", "wizard_start").allowed is True

    def test_per_action_duration(self, context, mono_clock) -> None:
        manager = ActionCooldownManager(context, cooldowns={"ip_setup": 5})
        manager.record_action("u1", "ip_setup")
        mono_clock.advance(5)
        assert manager.check_cooldown("u1", "ip_setup").allowed is True

    def test_reset_all_actions_of_user(self, context) -> None:
        manager = ActionCooldownManager(context)
        manager.record_action("u1", "a")
        manager.record_action("u1", "b")
        manager.record_action("u2", "a")
        assert manager.reset("u1") == 2
        assert manager.check_cooldown("u2", "a").allowed is False


class TestStateConflictGuard:
    def test_conflict_lifecycle(self, context) -> None:
        guard = StateConflictGuard(context)
        guard.set_active_flow("u1", "wizard")

        conflict = guard.check_conflict("u1", "ip_setup")
        assert conflict.has_conflict is True
        assert conflict.current_flow == "wizard"

        same = guard.check_conflict("u1", "wizard")
        assert same.has_conflict is False

        guard.clear_active_flow("u1")
        assert guard.check_conflict("u1", "ip_setup").has_conflict is False

    def test_set_overwrites(self, context) -> None:
        guard = StateConflictGuard(context)
        guard.set_active_flow("u1", "wizard")
        guard.set_active_flow("u1", "ip_setup")
        assert guard.get_active_flow("u1") == "ip_setup"

    def test_clear_missing_is_noop(self, context) -> None:
        StateConflictGuard(context).clear_active_flow("nobody")


class TestActionGate:
    def test_chain_order(self, context, mono_clock) -> None:
        gate = ActionGate(
            ActionRateLimiter(context),
            ActionCooldownManager(context, default_cooldown_seconds=10),
            StateConflictGuard(context),
        )

        assert gate.evaluate("u1", "wizard_start", flow="wizard").allowed is True
        gate.complete("u1", "wizard_start")

        rate = gate.evaluate("u1", "wizard_start")
        assert rate.denied_by == GuardKind.RATE_LIMIT

        mono_clock.advance(2)
        cooldown = gate.evaluate("u1", "wizard_start")
        assert cooldown.denied_by == GuardKind.COOLDOWN
        assert cooldown.remaining_seconds == 8

        mono_clock.advance(2)
        gate.conflicts.set_active_flow("u1", "wizard")
        conflict = gate.evaluate("u1", "ip_change", flow="ip_setup")
        assert conflict.allowed is False
        assert conflict.denied_by == GuardKind.CONFLICT
        assert conflict.current_flow == "wizard"

    def test_from_settings(self, context) -> None:
        settings = Settings(action_cooldowns={"ip_change": 5.0})
        gate = ActionGate.from_settings(context, settings)
        assert gate.evaluate("u1", "ip_change").allowed is True


class TestGuardContextSweep:
    def test_sweep_evicts_idle_entries(self, context, mono_clock) -> None:
        ActionRateLimiter(context).check_action("u1", "x")
        ActionCooldownManager(context).record_action("u1", "x")
        StateConflictGuard(context).set_active_flow("u1", "wizard")
        assert context.size() == 3

        mono_clock.advance(3599)
        assert context.sweep() == 0

        StateConflictGuard(context).set_active_flow("u2", "wizard")
        mono_clock.advance(2)
        assert context.sweep() == 3
        assert context.size() == 1
        assert "u2" in context.conflicts

    def test_sweep_keeps_cooldown_longer_than_retention(self, context, mono_clock) -> None:
        """Cooldown de 2h continua valendo após o sweep de retenção de 1h."""
        manager = ActionCooldownManager(context, cooldowns={"ip_change": 7200})
        manager.record_action("u1", "ip_change")

        mono_clock.advance(3700)
        assert context.sweep() == 0
        result = manager.check_cooldown("u1", "ip_change")
        assert result.allowed is False
        assert result.remaining_seconds == 3500

        mono_clock.advance(3501)
        assert context.sweep() == 1
        assert manager.check_cooldown("u1", "ip_change").allowed is True

    def test_rejects_non_positive_retention(self) -> None:
        with pytest.raises(ValueError):
            GuardContext(retention_seconds=0)

    @pytest.mark.asyncio
    async def test_start_stop_owns_task(self, context, mono_clock) -> None:
        ActionRateLimiter(context).check_action("u1", "x")
        mono_clock.advance(7200)

        async with context:
            assert context.is_sweeping is True
            await asyncio.sleep(0.05)

        assert context.is_sweeping is False
        assert context.size() == 0

    @pytest.mark.asyncio
    async def test_stop_without_start(self, context) -> None:
        await context.stop()
        assert context.is_sweeping is False
