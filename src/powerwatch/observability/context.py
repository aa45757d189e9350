"""Contexto de correlação por ciclo de monitoramento."""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    """Retorna o correlation_id corrente (ou vazio)."""

    return _correlation_id.get()


@contextmanager
def correlation_scope(prefix: str = "cycle") -> Iterator[str]:
    """Gera um correlation_id para o escopo e restaura o anterior ao sair.

    Cada ciclo do tracker roda dentro de um escopo próprio, então todos os
    logs emitidos durante probe, persistência e envio compartilham o mesmo id.
    """

    correlation_id = f"{prefix}-{uuid.uuid4().hex[:12]}"
    token = _correlation_id.set(correlation_id)
    try:
        yield correlation_id
    finally:
        _correlation_id.reset(token)
