"""Contexto explícito dos guardas anti-abuso.

Substitui mapas mutáveis em escopo de módulo por um objeto construído e
injetado: cada guarda recebe o contexto, testes constroem instâncias
isoladas e controlam o relógio.

Responsabilidades:
- Possuir os mapas por usuário (rate limit, cooldown, fluxo ativo)
- Fornecer o relógio (monotônico por padrão, injetável)
- Remover entradas ociosas (sweep) via task própria com start/stop
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from powerwatch.observability.logging import get_logger

if TYPE_CHECKING:
    from powerwatch.config.settings import Settings

logger: logging.Logger = get_logger(__name__)


@dataclass(slots=True)
class CooldownEntry:
    """Última execução de uma ação e o cooldown vigente para ela."""

    last_action_at: float
    duration_seconds: float


@dataclass(slots=True)
class ConflictEntry:
    """Fluxo interativo ativo de um usuário."""

    active_flow: str
    updated_at: float


class GuardContext:
    """Dono de todo o estado por usuário dos guardas (não persistido)."""

    def __init__(
        self,
        retention_seconds: float = 3600.0,
        sweep_interval_seconds: float = 600.0,
        clock: Callable[[], float] | None = None,
    ) -> None:
        if retention_seconds <= 0:
            raise ValueError("retention_seconds deve ser > 0")
        self._retention = retention_seconds
        self._sweep_interval = sweep_interval_seconds
        self._clock = clock or time.monotonic
        self._sweep_task: asyncio.Task[None] | None = None

        self.rate_limits: dict[str, float] = {}
        self.cooldowns: dict[tuple[str, str], CooldownEntry] = {}
        self.conflicts: dict[str, ConflictEntry] = {}

    @classmethod
    def from_settings(
        cls, settings: Settings, clock: Callable[[], float] | None = None
    ) -> GuardContext:
        return cls(
            retention_seconds=settings.guard_retention_seconds,
            sweep_interval_seconds=settings.guard_sweep_interval_seconds,
            clock=clock,
        )

    @property
    def retention_seconds(self) -> float:
        return self._retention

    @property
    def is_sweeping(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    def now(self) -> float:
        return self._clock()

    def size(self) -> int:
        """Total de entradas em memória (todos os mapas)."""
        return len(self.rate_limits) + len(self.cooldowns) + len(self.conflicts)

    def sweep(self, now: float | None = None) -> int:
        """Remove entradas ociosas há mais que a retenção; retorna quantas."""
        current = self.now() if now is None else now
        cutoff = current - self._retention

        stale_rate = [k for k, ts in self.rate_limits.items() if ts < cutoff]
        for k in stale_rate:
            del self.rate_limits[k]

        # Cooldown mais longo que a retenção só sai depois de expirar
        stale_cooldown = [
            k
            for k, e in self.cooldowns.items()
            if current - e.last_action_at > max(self._retention, e.duration_seconds)
        ]
        for k in stale_cooldown:
            del self.cooldowns[k]

        stale_conflict = [k for k, e in self.conflicts.items() if e.updated_at < cutoff]
        for k in stale_conflict:
            del self.conflicts[k]

        removed = len(stale_rate) + len(stale_cooldown) + len(stale_conflict)
        if removed:
            logger.info(
                "Guard entries swept",
                extra={
                    "removed": removed,
                    "remaining": self.size(),
                    "retention_seconds": self._retention,
                },
            )
        return removed

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.sweep()

    async def start(self) -> None:
        """Inicia a task de sweep periódico (idempotente)."""
        if self.is_sweeping:
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop(), name="guard-sweep")
        logger.debug(
            "Guard sweep started",
            extra={"interval_seconds": self._sweep_interval},
        )

    async def stop(self) -> None:
        """Cancela a task de sweep e aguarda o término."""
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.debug("Guard sweep stopped")

    async def __aenter__(self) -> GuardContext:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.stop()
