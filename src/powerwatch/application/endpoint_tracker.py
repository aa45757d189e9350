"""Tracker de estado dos endpoints monitorados (debounce + notificação).

Máquina de estados por usuário sobre um sinal up/down obtido por polling:
- Toda mudança observada reinicia a janela de estabilização
- Só após a janela completa a transição é confirmada
- A notificação da mudança confirmada passa pelo cooldown de notificação
- Falhas de probe, persistência e envio nunca corrompem o estado em memória

Estados: UNKNOWN, CONFIRMED_UP, CONFIRMED_DOWN, cada um com flag pending.
O estado em memória é a fonte de verdade; a persistência acompanha.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from powerwatch.application.messages import render_state_change
from powerwatch.domain.address_validation import AddressValidator
from powerwatch.domain.endpoint import MonitoredEndpoint
from powerwatch.domain.enums import CycleOutcome, EndpointPhase, EndpointState, ProbeResult
from powerwatch.domain.notification_cooldown import NotificationCooldownGuard
from powerwatch.domain.protocols.endpoint_store import EndpointStateStore
from powerwatch.domain.results import AddressValidationResult, DispatchResult
from powerwatch.observability.context import correlation_scope
from powerwatch.observability.logging import get_logger, mask_user_id

if TYPE_CHECKING:
    from powerwatch.config.settings import Settings
    from powerwatch.domain.protocols.notifier import Notifier
    from powerwatch.domain.protocols.probe import ReachabilityProbe

logger: logging.Logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True, slots=True)
class ProbeHealth:
    """Último probe executado para o usuário (somente memória, não persistido)."""

    last_probe_at: datetime
    last_probe_ok: bool


@dataclass(frozen=True, slots=True)
class EndpointStatusView:
    """Visão somente leitura do estado de um usuário (para UI/admin).

    last_probe_ok=False com last_known_state estável indica endpoint
    monitorado cujo probe está falhando (timeout), não endpoint saudável.
    """

    user_id: str
    phase: EndpointPhase
    pending: bool
    last_known_state: EndpointState
    stabilization_remaining_seconds: int
    cooldown_remaining_seconds: int
    notification_due: EndpointState | None
    last_notification_at: datetime | None
    last_probe_at: datetime | None = None
    last_probe_ok: bool | None = None


class EndpointStateTracker:
    """Executa ciclos de monitoramento por usuário e decide notificações."""

    def __init__(
        self,
        probe: ReachabilityProbe,
        store: EndpointStateStore,
        notifier: Notifier,
        *,
        cooldown_guard: NotificationCooldownGuard | None = None,
        validator: AddressValidator | None = None,
        min_stabilization_seconds: float = 30.0,
        default_debounce_minutes: int = 5,
        probe_timeout_seconds: float = 5.0,
        store_timeout_seconds: float = 5.0,
        notify_timeout_seconds: float = 10.0,
        flush_timeout_seconds: float = 10.0,
        timezone: str = "Europe/Kyiv",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._probe = probe
        self._store = store
        self._notifier = notifier
        self._cooldown = cooldown_guard or NotificationCooldownGuard()
        self._validator = validator or AddressValidator()
        self._min_stabilization = min_stabilization_seconds
        self._default_debounce = default_debounce_minutes
        self._probe_timeout = probe_timeout_seconds
        self._store_timeout = store_timeout_seconds
        self._notify_timeout = notify_timeout_seconds
        self._flush_timeout = flush_timeout_seconds
        self._timezone = timezone
        self._clock = clock or _utcnow

        self._entries: dict[str, MonitoredEndpoint] = {}
        self._dirty: set[str] = set()
        self._in_flight: set[str] = set()
        self._probe_health: dict[str, ProbeHealth] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        probe: ReachabilityProbe,
        store: EndpointStateStore,
        notifier: Notifier,
        clock: Callable[[], datetime] | None = None,
    ) -> EndpointStateTracker:
        return cls(
            probe,
            store,
            notifier,
            cooldown_guard=NotificationCooldownGuard(settings.notification_cooldown_seconds),
            min_stabilization_seconds=settings.min_stabilization_seconds,
            default_debounce_minutes=settings.default_debounce_minutes,
            probe_timeout_seconds=settings.probe_timeout_seconds,
            store_timeout_seconds=settings.store_timeout_seconds,
            notify_timeout_seconds=settings.notify_timeout_seconds,
            flush_timeout_seconds=settings.flush_timeout_seconds,
            timezone=settings.timezone,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Registro de endpoints
    # ------------------------------------------------------------------

    async def register(
        self,
        user_id: str,
        address: str,
        debounce_minutes: int | None = None,
    ) -> AddressValidationResult:
        """Valida e cria/atualiza o endpoint do usuário.

        Endereço inválido é rejeitado aqui e nunca chega ao tracker.
        Troca de endereço reinicia a máquina de estados, mas preserva o
        relógio de cooldown (last_notification_at nunca retrocede).
        """
        result = self._validator.validate(address)
        if not result.valid:
            logger.info(
                "Endpoint address rejected",
                extra={"user_id": mask_user_id(user_id), "reason": result.reason},
            )
            return result

        if debounce_minutes is not None and debounce_minutes < 0:
            raise ValueError("debounce_minutes não pode ser negativo")

        address = address.strip()
        now = self._clock()
        existing = self._entries.get(user_id)

        if existing is not None and existing.address == address:
            if debounce_minutes is not None:
                existing.debounce_minutes = debounce_minutes
                existing.updated_at = now
            entry = existing
        else:
            minutes = debounce_minutes
            if minutes is None:
                minutes = existing.debounce_minutes if existing else self._default_debounce
            entry = MonitoredEndpoint(
                user_id=user_id,
                address=address,
                debounce_minutes=minutes,
                last_notification_at=existing.last_notification_at if existing else None,
                updated_at=now,
            )
            self._entries[user_id] = entry
            logger.info(
                "Endpoint registered",
                extra={
                    "user_id": mask_user_id(user_id),
                    "debounce_minutes": minutes,
                    "replaced": existing is not None,
                },
            )

        await self._persist(entry)
        return result

    async def unregister(self, user_id: str) -> bool:
        """Remove o endpoint da memória e do store; True se existia."""
        entry = self._entries.pop(user_id, None)
        self._dirty.discard(user_id)
        self._probe_health.pop(user_id, None)
        if entry is None:
            return False

        try:
            await asyncio.wait_for(
                self._store.delete_endpoint_state(user_id), timeout=self._store_timeout
            )
        except Exception as e:
            logger.error(
                "Failed to delete endpoint state",
                extra={"user_id": mask_user_id(user_id), "error_type": type(e).__name__},
            )
        logger.info("Endpoint unregistered", extra={"user_id": mask_user_id(user_id)})
        return True

    async def set_debounce(self, user_id: str, minutes: int) -> bool:
        """Aplica a configuração de debounce do usuário; False se não monitorado."""
        if minutes < 0:
            raise ValueError("debounce_minutes não pode ser negativo")
        entry = self._entries.get(user_id)
        if entry is None:
            return False
        entry.debounce_minutes = minutes
        entry.updated_at = self._clock()
        await self._persist(entry)
        return True

    async def restore(self, user_ids: Iterable[str] | None = None) -> int:
        """Recarrega estados persistidos no startup; retorna quantos.

        Sem user_ids, restaura todos os usuários listados pelo store.
        Entradas já presentes em memória não são sobrescritas.
        """
        if user_ids is None:
            try:
                user_ids = await asyncio.wait_for(
                    self._store.list_user_ids(), timeout=self._store_timeout
                )
            except Exception as e:
                logger.error(
                    "Failed to list persisted endpoints",
                    extra={"error_type": type(e).__name__},
                )
                return 0

        restored = 0
        for user_id in user_ids:
            if user_id in self._entries:
                continue
            try:
                entry = await asyncio.wait_for(
                    self._store.load_endpoint_state(user_id), timeout=self._store_timeout
                )
            except Exception as e:
                logger.error(
                    "Failed to restore endpoint state",
                    extra={"user_id": mask_user_id(user_id), "error_type": type(e).__name__},
                )
                continue
            if entry is None:
                continue
            self._entries[user_id] = entry
            restored += 1

        logger.info("Endpoint states restored", extra={"restored": restored})
        return restored

    # ------------------------------------------------------------------
    # Ciclo de monitoramento
    # ------------------------------------------------------------------

    async def run_cycle(self, user_id: str) -> CycleOutcome:
        """Executa um ciclo para o usuário (invocado pelo scheduler externo).

        Um ciclo ainda em andamento para o mesmo usuário faz este retornar
        SKIPPED_BUSY imediatamente (sem enfileirar).
        """
        if user_id not in self._entries:
            return CycleOutcome.NOT_MONITORED
        if user_id in self._in_flight:
            logger.debug("Cycle already running, skipping", extra={"user_id": mask_user_id(user_id)})
            return CycleOutcome.SKIPPED_BUSY

        self._in_flight.add(user_id)
        try:
            with correlation_scope():
                return await self._run_cycle(user_id)
        finally:
            self._in_flight.discard(user_id)

    async def _run_cycle(self, user_id: str) -> CycleOutcome:
        address = self._entries[user_id].address
        result = await self._run_probe(user_id, address)

        entry = self._entries.get(user_id)
        if entry is None:
            return CycleOutcome.NOT_MONITORED

        now = self._clock()
        self._probe_health[user_id] = ProbeHealth(
            last_probe_at=now, last_probe_ok=not result.is_failure
        )

        if result.is_failure:
            logger.warning(
                "Probe failed, retrying next cycle",
                extra={"user_id": mask_user_id(user_id)},
            )
            return CycleOutcome.PROBE_FAILED

        outcome, mutated = await self._advance(entry, result.as_state(), now)

        if mutated or user_id in self._dirty:
            await self._persist(entry)
        return outcome

    async def _advance(
        self, entry: MonitoredEndpoint, observed: EndpointState, now: datetime
    ) -> tuple[CycleOutcome, bool]:
        """Aplica um resultado de probe ao estado; retorna (outcome, mutou)."""
        user = mask_user_id(entry.user_id)

        if observed != entry.last_known_state:
            was_pending = entry.pending
            previous = entry.last_known_state
            entry.record_transition(observed, now)
            logger.info(
                "Endpoint transition observed",
                extra={
                    "user_id": user,
                    "from_state": previous,
                    "to_state": observed,
                    "window_restarted": was_pending,
                },
            )
            return CycleOutcome.TRANSITION, True

        if entry.pending:
            remaining = entry.stabilization_remaining(now, self._min_stabilization)
            if remaining.total_seconds() > 0:
                logger.debug(
                    "Transition pending stabilization",
                    extra={"user_id": user, "remaining_seconds": round(remaining.total_seconds())},
                )
                return CycleOutcome.PENDING, False

            previous_phase = entry.confirm(now)
            logger.info(
                "Transition confirmed",
                extra={"user_id": user, "from_phase": previous_phase, "to_phase": entry.phase},
            )

            if previous_phase is EndpointPhase.UNKNOWN:
                # Primeira confirmação é a linha de base: nada a notificar.
                entry.reported_state = observed
                entry.notification_due = None
                return CycleOutcome.BASELINE, True

            if observed == entry.reported_state:
                # Flap: voltou ao estado que o usuário já conhece.
                entry.notification_due = None
                return CycleOutcome.STABILIZED, True

            entry.notification_due = observed
            outcome = await self._dispatch_due(entry, now)
            return outcome, True

        if entry.notification_due is not None:
            outcome = await self._dispatch_due(entry, now)
            return outcome, outcome is CycleOutcome.NOTIFIED

        return CycleOutcome.UNCHANGED, False

    async def _dispatch_due(self, entry: MonitoredEndpoint, now: datetime) -> CycleOutcome:
        """Envia a notificação devida se o cooldown permitir."""
        due = entry.notification_due
        user = mask_user_id(entry.user_id)

        if not self._cooldown.may_send(entry, now):
            logger.info(
                "Notification suppressed by cooldown",
                extra={
                    "user_id": user,
                    "state": due,
                    "remaining_seconds": self._cooldown.remaining_seconds(entry, now),
                },
            )
            return CycleOutcome.SUPPRESSED_COOLDOWN

        try:
            message = render_state_change(
                due,
                changed_at=entry.confirmed_since or now,
                previous_stable_at=entry.previous_confirmed_since,
                tz=self._timezone,
            )
        except Exception as e:
            logger.warning(
                "Notification rendering failed",
                extra={"user_id": user, "state": due, "error_type": type(e).__name__},
            )
            return CycleOutcome.NOTIFY_FAILED

        result = await self._send(entry.user_id, message)
        if result.is_circuit_open:
            logger.info(
                "Notification deferred, delivery circuit open",
                extra={
                    "user_id": user,
                    "state": due,
                    "retry_after_seconds": result.retry_after_seconds,
                },
            )
            return CycleOutcome.NOTIFY_FAILED
        if not result.ok:
            logger.warning(
                "Notification dispatch failed, will retry",
                extra={"user_id": user, "state": due, "error": result.error},
            )
            return CycleOutcome.NOTIFY_FAILED

        entry.mark_notified(due, now)
        logger.info("Notification dispatched", extra={"user_id": user, "state": due})
        return CycleOutcome.NOTIFIED

    async def _run_probe(self, user_id: str, address: str) -> ProbeResult:
        try:
            return await asyncio.wait_for(
                self._probe.probe(address), timeout=self._probe_timeout
            )
        except TimeoutError:
            logger.warning(
                "Probe timed out",
                extra={"user_id": mask_user_id(user_id), "timeout_seconds": self._probe_timeout},
            )
        except Exception as e:
            logger.warning(
                "Probe raised unexpectedly",
                extra={"user_id": mask_user_id(user_id), "error_type": type(e).__name__},
            )
        return ProbeResult.TIMEOUT

    async def _send(self, user_id: str, message: str) -> DispatchResult:
        try:
            return await asyncio.wait_for(
                self._notifier.send(user_id, message), timeout=self._notify_timeout
            )
        except TimeoutError:
            return DispatchResult.failed("timeout")
        except Exception as e:
            return DispatchResult.failed(type(e).__name__)

    # ------------------------------------------------------------------
    # Persistência
    # ------------------------------------------------------------------

    async def _persist(self, entry: MonitoredEndpoint) -> bool:
        """Salva a entrada; em falha mantém marcada como suja para retry."""
        try:
            await asyncio.wait_for(
                self._store.save_endpoint_state(entry.user_id, entry),
                timeout=self._store_timeout,
            )
        except Exception as e:
            self._dirty.add(entry.user_id)
            logger.error(
                "Failed to persist endpoint state",
                extra={"user_id": mask_user_id(entry.user_id), "error_type": type(e).__name__},
            )
            return False

        self._dirty.discard(entry.user_id)
        return True

    async def flush_all(self, timeout: float | None = None) -> int:
        """Persiste todas as entradas (shutdown); bloqueia até concluir ou timeout.

        Returns:
            Quantidade de entradas salvas com sucesso
        """
        entries = list(self._entries.values())
        if not entries:
            return 0

        budget = timeout if timeout is not None else self._flush_timeout
        saved = 0

        async def _save(entry: MonitoredEndpoint) -> None:
            nonlocal saved
            if await self._persist(entry):
                saved += 1

        try:
            await asyncio.wait_for(
                asyncio.gather(*(_save(entry) for entry in entries)), timeout=budget
            )
        except TimeoutError:
            logger.error(
                "Flush timed out",
                extra={"saved": saved, "total": len(entries), "timeout_seconds": budget},
            )
        else:
            logger.info("Endpoint states flushed", extra={"saved": saved, "total": len(entries)})
        return saved

    # ------------------------------------------------------------------
    # Consultas
    # ------------------------------------------------------------------

    def get_entry(self, user_id: str) -> MonitoredEndpoint | None:
        return self._entries.get(user_id)

    def monitored_users(self) -> list[str]:
        return list(self._entries)

    def get_status(self, user_id: str) -> EndpointStatusView | None:
        entry = self._entries.get(user_id)
        if entry is None:
            return None
        now = self._clock()
        remaining = entry.stabilization_remaining(now, self._min_stabilization)
        health = self._probe_health.get(user_id)
        return EndpointStatusView(
            user_id=user_id,
            phase=entry.phase,
            pending=entry.pending,
            last_known_state=entry.last_known_state,
            stabilization_remaining_seconds=math.ceil(remaining.total_seconds()),
            cooldown_remaining_seconds=self._cooldown.remaining_seconds(entry, now),
            notification_due=entry.notification_due,
            last_notification_at=entry.last_notification_at,
            last_probe_at=health.last_probe_at if health else None,
            last_probe_ok=health.last_probe_ok if health else None,
        )

    def stats(self) -> dict[str, Any]:
        entries = self._entries.values()
        return {
            "monitored": len(self._entries),
            "pending": sum(1 for e in entries if e.pending),
            "notifications_due": sum(1 for e in entries if e.notification_due is not None),
            "dirty": len(self._dirty),
            "in_flight": len(self._in_flight),
        }
