"""Renderização das mensagens de mudança de estado."""

from __future__ import annotations

from datetime import datetime
from html import escape
from zoneinfo import ZoneInfo

from powerwatch.domain.enums import EndpointState


def format_duration(seconds: float) -> str:
    """Formata duração de forma compacta (ex.: "45s", "12 min", "2h 05min")."""
    total = max(0, int(seconds))
    if total < 60:
        return f"{total}s"

    minutes = total // 60
    if minutes < 60:
        return f"{minutes} min"

    hours, rest = divmod(minutes, 60)
    if rest == 0:
        return f"{hours}h"
    return f"{hours}h {rest:02d}min"


def render_state_change(
    state: EndpointState,
    changed_at: datetime,
    previous_stable_at: datetime | None = None,
    tz: str = "Europe/Kyiv",
    address_label: str | None = None,
) -> str:
    """Monta o texto (HTML) da notificação para o novo estado confirmado.

    Args:
        state: Estado confirmado (UP ou DOWN)
        changed_at: Momento em que a transição começou
        previous_stable_at: Desde quando o estado anterior estava estável
        tz: Timezone para exibição do horário
        address_label: Rótulo opcional do endpoint (já sanitizado pelo chamador)
    """
    if state is EndpointState.UNKNOWN:
        raise ValueError("não há notificação para estado desconhecido")

    local_time = changed_at.astimezone(ZoneInfo(tz)).strftime("%H:%M")

    if state is EndpointState.UP:
        headline = f"🟢 <b>{local_time} Endpoint is reachable again</b>"
        duration_prefix = "It was unreachable for"
    else:
        headline = f"🔴 <b>{local_time} Endpoint is unreachable</b>"
        duration_prefix = "It was reachable for"

    lines = [headline]
    if address_label:
        lines.append(f"📍 {escape(address_label)}")

    if previous_stable_at is not None:
        seconds = (changed_at - previous_stable_at).total_seconds()
        duration = "less than a minute" if seconds < 60 else format_duration(seconds)
        lines.append(f"🕓 {duration_prefix} {duration}")

    return "\n".join(lines)
