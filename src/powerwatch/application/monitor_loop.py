"""Driver periódico do monitoramento.

Dispara um ciclo do tracker por usuário monitorado a cada intervalo, com
limite de probes concorrentes. No shutdown, persiste todo o estado.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import Counter
from typing import TYPE_CHECKING

from powerwatch.domain.enums import CycleOutcome
from powerwatch.observability.logging import get_logger
from powerwatch.observability.timing import timed

if TYPE_CHECKING:
    from powerwatch.application.endpoint_tracker import EndpointStateTracker
    from powerwatch.config.settings import Settings

logger: logging.Logger = get_logger(__name__)

# (limite de usuários, intervalo em segundos) em ordem crescente
_DYNAMIC_INTERVALS: tuple[tuple[int, float], ...] = (
    (50, 2.0),
    (200, 5.0),
    (1000, 10.0),
)
_MAX_INTERVAL_SECONDS: float = 30.0


def resolve_poll_interval(override: float, user_count: int) -> float:
    """Intervalo entre passadas.

    Override positivo vence; 0 usa o intervalo dinâmico pelo número de
    usuários ativos.
    """
    if override > 0:
        return float(override)
    for limit, interval in _DYNAMIC_INTERVALS:
        if user_count < limit:
            return interval
    return _MAX_INTERVAL_SECONDS


class MonitorLoop:
    """Task assíncrona que executa passadas de monitoramento."""

    def __init__(
        self,
        tracker: EndpointStateTracker,
        poll_interval_seconds: float = 0,
        max_concurrent_probes: int = 10,
        flush_timeout_seconds: float = 10.0,
    ) -> None:
        if max_concurrent_probes < 1:
            raise ValueError("max_concurrent_probes deve ser >= 1")
        self._tracker = tracker
        self._poll_override = poll_interval_seconds
        self._max_concurrent = max_concurrent_probes
        self._flush_timeout = flush_timeout_seconds
        self._task: asyncio.Task[None] | None = None
        self._pass_running = False

    @classmethod
    def from_settings(cls, tracker: EndpointStateTracker, settings: Settings) -> MonitorLoop:
        return cls(
            tracker,
            poll_interval_seconds=settings.poll_interval_seconds,
            max_concurrent_probes=settings.max_concurrent_probes,
            flush_timeout_seconds=settings.flush_timeout_seconds,
        )

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def current_interval(self) -> float:
        return resolve_poll_interval(self._poll_override, len(self._tracker.monitored_users()))

    async def run_once(self) -> Counter[CycleOutcome]:
        """Executa uma passada sobre todos os usuários monitorados.

        Uma passada que sobrepõe outra ainda em execução é ignorada
        (retorna contador vazio).
        """
        if self._pass_running:
            logger.warning("Previous monitor pass still running, skipping")
            return Counter()

        self._pass_running = True
        try:
            users = self._tracker.monitored_users()
            semaphore = asyncio.Semaphore(self._max_concurrent)

            async def _bounded(user_id: str) -> CycleOutcome:
                async with semaphore:
                    return await self._tracker.run_cycle(user_id)

            with timed("monitor_pass", users=len(users)):
                outcomes = await asyncio.gather(*(_bounded(u) for u in users))
        finally:
            self._pass_running = False

        summary = Counter(outcomes)
        if summary:
            logger.debug(
                "Monitor pass completed",
                extra={"outcomes": {k.value: v for k, v in summary.items()}},
            )
        return summary

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    "Monitor pass failed",
                    extra={"error_type": type(e).__name__},
                )
            await asyncio.sleep(self.current_interval())

    async def start(self) -> None:
        """Inicia a task periódica (idempotente)."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._loop(), name="monitor-loop")
        logger.info(
            "Monitor loop started",
            extra={
                "poll_interval_seconds": self.current_interval(),
                "max_concurrent_probes": self._max_concurrent,
            },
        )

    async def stop(self) -> int:
        """Cancela a task e persiste todo o estado; retorna entradas salvas."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        saved = await self._tracker.flush_all(timeout=self._flush_timeout)
        logger.info("Monitor loop stopped", extra={"flushed": saved})
        return saved
