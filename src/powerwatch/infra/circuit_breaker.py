"""Circuit breaker do canal de entrega de notificações.

Só indisponibilidade do canal conta como falha (timeout, 429, 5xx, erro de
transporte). Rejeições específicas de um chat (403 bot bloqueado, 400 chat
inexistente) provam que a API está no ar e fecham o circuito.

Com o circuito aberto o envio nem é tentado: o notifier devolve
DispatchResult.circuit_open e a notificação devida fica pendente para o
próximo ciclo, sem gastar retries de HTTP em cada usuário monitorado.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from enum import StrEnum

from powerwatch.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


class BreakerState(StrEnum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class NotifierCircuitBreaker:
    """Estados:
    - closed: envios passam; conta indisponibilidades consecutivas
    - open: nenhum envio até recovery_seconds desde a abertura
    - half_open: um único envio de teste decide entre fechar e reabrir

    Síncrono: todo acesso acontece no event loop do monitor, sem await
    entre leitura e escrita do estado.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_seconds: float = 60.0,
        name: str = "telegram",
        clock: Callable[[], float] | None = None,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold deve ser >= 1")
        if recovery_seconds <= 0:
            raise ValueError("recovery_seconds deve ser > 0")
        self._threshold = failure_threshold
        self._recovery = recovery_seconds
        self._name = name
        self._clock = clock or time.monotonic
        self._state = BreakerState.CLOSED
        self._failures = 0
        self._opened_at = 0.0
        self._trial_in_flight = False

    @property
    def state(self) -> BreakerState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failures

    def allow(self) -> bool:
        """True se o próximo envio pode ser tentado."""
        if self._state is BreakerState.CLOSED:
            return True

        if self._state is BreakerState.OPEN:
            if self._clock() - self._opened_at < self._recovery:
                return False
            self._transition(BreakerState.HALF_OPEN)

        if self._trial_in_flight:
            return False
        self._trial_in_flight = True
        return True

    def record_delivery(self) -> None:
        """API respondeu (mesmo que rejeitando o chat): canal disponível."""
        if self._state is not BreakerState.CLOSED:
            self._transition(BreakerState.CLOSED)
        self._failures = 0
        self._trial_in_flight = False

    def record_outage(self) -> None:
        """Canal indisponível após os retries do cliente HTTP."""
        self._trial_in_flight = False
        if self._state is BreakerState.HALF_OPEN:
            self._open()
            return
        self._failures += 1
        if self._state is BreakerState.CLOSED and self._failures >= self._threshold:
            self._open()

    def retry_after_seconds(self) -> int:
        """Segundos (teto) até o próximo envio de teste; 0 se já permitido."""
        if self._state is not BreakerState.OPEN:
            return 0
        remaining = self._recovery - (self._clock() - self._opened_at)
        return max(0, math.ceil(remaining))

    def _open(self) -> None:
        self._opened_at = self._clock()
        self._transition(BreakerState.OPEN)

    def _transition(self, new_state: BreakerState) -> None:
        previous = self._state
        self._state = new_state
        log = logger.warning if new_state is BreakerState.OPEN else logger.info
        log(
            "Notifier circuit state changed",
            extra={
                "breaker": self._name,
                "from_state": previous.value,
                "to_state": new_state.value,
                "failures": self._failures,
            },
        )
