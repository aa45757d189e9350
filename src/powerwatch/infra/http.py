"""Cliente HTTP de saída com timeout e retry.

Usado pelo TelegramNotifier. Características:
- Retry com backoff exponencial para 429/5xx e erros de transporte
- Timeout sempre definido
- Logs estruturados sem token do bot (URLs sanitizadas)
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from powerwatch.observability.logging import get_logger

if TYPE_CHECKING:
    from powerwatch.config.settings import Settings

logger: logging.Logger = get_logger(__name__)

# Token do Bot API aparece no path: /bot<token>/sendMessage
_BOT_TOKEN_PATTERN = re.compile(r"/bot[^/]+/")


def sanitize_url(url: str) -> str:
    """Remove o token do bot da URL para logging."""
    return _BOT_TOKEN_PATTERN.sub("/bot***/", url)


@dataclass
class HttpClientConfig:
    """Configuração do cliente HTTP (defaults conservadores)."""

    timeout_seconds: float = 10.0
    max_retries: int = 2
    backoff_base_seconds: float = 0.5
    backoff_max_seconds: float = 5.0
    default_headers: dict[str, str] = field(default_factory=dict)


class HttpError(Exception):
    """Falha de requisição HTTP sem expor URL ou payload."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        is_retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.is_retryable = is_retryable


def is_retryable_status(status_code: int) -> bool:
    """429 e 5xx permitem retry."""
    return status_code == 429 or 500 <= status_code < 600


def backoff_delay(attempt: int, base_seconds: float, max_seconds: float) -> float:
    return min((2**attempt) * base_seconds, max_seconds)


class HttpClient:
    """Wrapper assíncrono sobre httpx.AsyncClient.

    Uso típico:
        async with HttpClient(config) as client:
            response = await client.post(url, json=payload)
    """

    def __init__(
        self,
        config: HttpClientConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or HttpClientConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._config.timeout_seconds),
                headers=self._config.default_headers,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> HttpClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Executa a requisição com retry.

        Raises:
            HttpError: status não retentável ou retries esgotados
        """
        return await self._request_with_retry(method, url, **kwargs)

    async def _request_with_retry(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        client = self._get_client()
        cfg = self._config
        last_error: HttpError | None = None

        for attempt in range(cfg.max_retries + 1):
            try:
                response = await client.request(method, url, **kwargs)
            except httpx.TransportError as exc:
                logger.warning(
                    "HTTP transport error",
                    extra={
                        "method": method,
                        "url": sanitize_url(url),
                        "attempt": attempt + 1,
                        "error_type": type(exc).__name__,
                    },
                )
                last_error = HttpError(type(exc).__name__, is_retryable=True)
            else:
                if response.is_success:
                    logger.debug(
                        "HTTP request succeeded",
                        extra={"method": method, "status_code": response.status_code},
                    )
                    return response
                if not is_retryable_status(response.status_code):
                    logger.warning(
                        "HTTP request failed (non retryable)",
                        extra={
                            "method": method,
                            "url": sanitize_url(url),
                            "status_code": response.status_code,
                        },
                    )
                    raise HttpError(
                        f"HTTP {response.status_code}",
                        status_code=response.status_code,
                        is_retryable=False,
                    )
                last_error = HttpError(
                    f"HTTP {response.status_code}",
                    status_code=response.status_code,
                    is_retryable=True,
                )

            if attempt < cfg.max_retries:
                delay = backoff_delay(attempt, cfg.backoff_base_seconds, cfg.backoff_max_seconds)
                logger.info(
                    "Waiting before HTTP retry",
                    extra={"backoff_seconds": delay, "next_attempt": attempt + 2},
                )
                await asyncio.sleep(delay)

        logger.error(
            "HTTP retries exhausted",
            extra={"method": method, "url": sanitize_url(url), "attempts": cfg.max_retries + 1},
        )
        raise last_error or HttpError("Falha após todos os retries")

    async def post(
        self, url: str, json: dict[str, Any] | None = None, **kwargs: Any
    ) -> httpx.Response:
        return await self.request("POST", url, json=json, **kwargs)


def create_http_client(settings: Settings | None = None) -> HttpClient:
    """Cria o HttpClient do notifier a partir de Settings."""
    if settings is None:
        from powerwatch.config.settings import get_settings

        settings = get_settings()

    config = HttpClientConfig(
        timeout_seconds=settings.telegram_request_timeout_seconds,
        max_retries=settings.telegram_max_retries,
        default_headers={"User-Agent": f"{settings.service_name}/{settings.version}"},
    )
    logger.info(
        "HTTP client created",
        extra={"timeout_seconds": config.timeout_seconds, "max_retries": config.max_retries},
    )
    return HttpClient(config)
