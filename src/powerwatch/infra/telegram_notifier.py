"""Notifier concreto via Telegram Bot API (sendMessage)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from powerwatch.domain.protocols.notifier import Notifier
from powerwatch.domain.results import DispatchResult
from powerwatch.infra.circuit_breaker import NotifierCircuitBreaker
from powerwatch.infra.http import HttpClient, HttpError, create_http_client
from powerwatch.observability.logging import get_logger, mask_user_id

if TYPE_CHECKING:
    from powerwatch.config.settings import Settings

logger: logging.Logger = get_logger(__name__)


class TelegramNotifier(Notifier):
    """Envia mensagens HTML para o chat do usuário (user_id = chat_id).

    Nunca levanta em falha de entrega: toda falha vira DispatchResult.failed.
    Com breaker aberto devolve DispatchResult.circuit_open sem chamar a API.
    """

    def __init__(
        self,
        bot_token: str,
        http_client: HttpClient,
        api_base_url: str = "https://api.telegram.org",
        breaker: NotifierCircuitBreaker | None = None,
    ) -> None:
        if not bot_token:
            raise ValueError("bot_token é obrigatório")
        self._http = http_client
        self._url = f"{api_base_url.rstrip('/')}/bot{bot_token}/sendMessage"
        self._breaker = breaker

    @property
    def breaker(self) -> NotifierCircuitBreaker | None:
        return self._breaker

    @classmethod
    def from_settings(
        cls, settings: Settings, http_client: HttpClient | None = None
    ) -> TelegramNotifier:
        breaker = None
        if settings.telegram_circuit_breaker_enabled:
            breaker = NotifierCircuitBreaker(
                failure_threshold=settings.telegram_circuit_breaker_failure_threshold,
                recovery_seconds=settings.telegram_circuit_breaker_recovery_seconds,
            )
        return cls(
            bot_token=settings.telegram_bot_token or "",
            http_client=http_client or create_http_client(settings),
            api_base_url=settings.telegram_api_base_url,
            breaker=breaker,
        )

    async def send(self, user_id: str, message: str) -> DispatchResult:
        user = mask_user_id(user_id)
        if self._breaker is not None and not self._breaker.allow():
            return DispatchResult.circuit_open(self._breaker.retry_after_seconds())

        payload = {
            "chat_id": user_id,
            "text": message,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        try:
            response = await self._http.post(self._url, json=payload)
            body = response.json()
        except HttpError as e:
            # 4xx de um chat específico não indica API fora do ar
            self._record(available=not e.is_retryable)
            logger.warning(
                "Telegram send failed",
                extra={"user_id": user, "status_code": e.status_code},
            )
            return DispatchResult.failed(str(e))
        except ValueError:
            self._record(available=True)
            logger.warning("Telegram response is not JSON", extra={"user_id": user})
            return DispatchResult.failed("invalid_response")
        except Exception:
            self._record(available=False)
            raise

        self._record(available=True)
        if not body.get("ok"):
            description = str(body.get("description") or "telegram_error")
            logger.warning(
                "Telegram rejected message",
                extra={"user_id": user, "description": description},
            )
            return DispatchResult.failed(description)

        message_id = (body.get("result") or {}).get("message_id")
        logger.debug("Telegram message sent", extra={"user_id": user})
        return DispatchResult.delivered(str(message_id) if message_id is not None else None)

    def _record(self, available: bool) -> None:
        if self._breaker is None:
            return
        if available:
            self._breaker.record_delivery()
        else:
            self._breaker.record_outage()

    async def close(self) -> None:
        await self._http.close()
