"""Garante no máximo um fluxo interativo ativo por usuário."""

from __future__ import annotations

import logging

from powerwatch.application.guard_context import ConflictEntry, GuardContext
from powerwatch.domain.results import ConflictResult
from powerwatch.observability.logging import get_logger, mask_user_id

logger: logging.Logger = get_logger(__name__)


class StateConflictGuard:
    """Conflito = usuário já está em outro fluxo mutuamente exclusivo."""

    def __init__(self, context: GuardContext) -> None:
        self._context = context

    def check_conflict(self, user_id: str, flow_name: str) -> ConflictResult:
        entry = self._context.conflicts.get(user_id)
        if entry is None or entry.active_flow == flow_name:
            return ConflictResult(has_conflict=False)

        logger.debug(
            "Flow conflict detected",
            extra={
                "user_id": mask_user_id(user_id),
                "requested_flow": flow_name,
                "current_flow": entry.active_flow,
            },
        )
        return ConflictResult(has_conflict=True, current_flow=entry.active_flow)

    def set_active_flow(self, user_id: str, flow_name: str) -> None:
        """Sobrescreve incondicionalmente o fluxo ativo."""
        self._context.conflicts[user_id] = ConflictEntry(
            active_flow=flow_name, updated_at=self._context.now()
        )

    def clear_active_flow(self, user_id: str) -> None:
        self._context.conflicts.pop(user_id, None)

    def get_active_flow(self, user_id: str) -> str | None:
        entry = self._context.conflicts.get(user_id)
        return entry.active_flow if entry else None
