"""Testes para o lado HTTP da infraestrutura: probe, cliente, breaker do notifier e Telegram."""

from __future__ import annotations

import json

import httpx
import pytest

from powerwatch.config.settings import Settings
from powerwatch.domain.enums import ProbeResult
from powerwatch.infra.circuit_breaker import BreakerState, NotifierCircuitBreaker
from powerwatch.infra.http import (
    HttpClient,
    HttpClientConfig,
    HttpError,
    backoff_delay,
    create_http_client,
    is_retryable_status,
    sanitize_url,
)
from powerwatch.infra.probe_http import HttpReachabilityProbe, build_probe_url
from powerwatch.infra.telegram_notifier import TelegramNotifier


def _client_with(handler, **config) -> HttpClient:
    config.setdefault("backoff_base_seconds", 0.0)
    return HttpClient(HttpClientConfig(**config), transport=httpx.MockTransport(handler))


class TestBuildProbeUrl:
    @pytest.mark.parametrize(
        ("address", "expected"),
        [
            ("8.8.8.8", "http://8.8.8.8:80"),
            ("example.com:8080", "http://example.com:8080"),
            ("2001:db8::1", "http://[2001:db8::1]:80"),
            ("[2001:db8::1]:8443", "http://[2001:db8::1]:8443"),
        ],
    )
    def test_url(self, address: str, expected: str) -> None:
        assert build_probe_url(address) == expected


class TestHttpReachabilityProbe:
    @pytest.mark.asyncio
    async def test_any_response_is_up(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(503)

        probe = HttpReachabilityProbe(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        assert await probe.probe("8.8.8.8") == ProbeResult.UP
        assert seen[0].method == "HEAD"
        assert seen[0].url.host == "8.8.8.8"

    @pytest.mark.asyncio
    async def test_connection_error_is_down(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        probe = HttpReachabilityProbe(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        assert await probe.probe("8.8.8.8") == ProbeResult.DOWN

    @pytest.mark.asyncio
    async def test_connect_timeout_is_down(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timeout", request=request)

        async with HttpReachabilityProbe(
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        ) as probe:
            assert await probe.probe("example.com:8080") == ProbeResult.DOWN

    @pytest.mark.asyncio
    async def test_malformed_address_is_failure(self) -> None:
        assert await HttpReachabilityProbe().probe("8.8.8.8:0") == ProbeResult.TIMEOUT


class TestHttpHelpers:
    def test_sanitize_bot_token(self) -> None:
        url = "https://api.telegram.org/bot123:SECRET/sendMessage"
        assert sanitize_url(url) == "https://api.telegram.org/bot***/sendMessage"

    def test_retryable_status(self) -> None:
        assert is_retryable_status(429) is True
        assert is_retryable_status(502) is True
        assert is_retryable_status(404) is False

    def test_backoff_is_capped(self) -> None:
        assert backoff_delay(0, 0.5, 5.0) == 0.5
        assert backoff_delay(2, 0.5, 5.0) == 2.0
        assert backoff_delay(10, 0.5, 5.0) == 5.0

    def test_create_from_settings(self) -> None:
        client = create_http_client(Settings(telegram_max_retries=4))
        assert client._config.max_retries == 4


class TestHttpClient:
    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self) -> None:
        attempts = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            attempts["n"] += 1
            if attempts["n"] < 3:
                return httpx.Response(502)
            return httpx.Response(200, json={"ok": True})

        async with _client_with(handler, max_retries=2) as client:
            response = await client.post("https://example.com/x", json={})
        assert response.status_code == 200
        assert attempts["n"] == 3

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self) -> None:
        attempts = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            attempts["n"] += 1
            return httpx.Response(400)

        client = _client_with(handler, max_retries=3)
        with pytest.raises(HttpError) as exc_info:
            await client.post("https://example.com/x")
        assert exc_info.value.status_code == 400
        assert exc_info.value.is_retryable is False
        assert attempts["n"] == 1


class TestNotifierCircuitBreaker:
    def test_opens_at_threshold(self, mono_clock) -> None:
        breaker = NotifierCircuitBreaker(failure_threshold=2, recovery_seconds=10, clock=mono_clock)
        breaker.record_outage()
        assert breaker.state == BreakerState.CLOSED
        breaker.record_outage()
        assert breaker.state == BreakerState.OPEN
        assert breaker.allow() is False

        mono_clock.advance(2.5)
        assert breaker.retry_after_seconds() == 8

    def test_single_trial_in_half_open(self, mono_clock) -> None:
        breaker = NotifierCircuitBreaker(failure_threshold=1, recovery_seconds=10, clock=mono_clock)
        breaker.record_outage()

        mono_clock.advance(10)
        assert breaker.allow() is True
        assert breaker.state == BreakerState.HALF_OPEN
        assert breaker.allow() is False

        breaker.record_delivery()
        assert breaker.state == BreakerState.CLOSED
        assert breaker.failure_count == 0
        assert breaker.allow() is True

    def test_failed_trial_reopens(self, mono_clock) -> None:
        breaker = NotifierCircuitBreaker(failure_threshold=3, recovery_seconds=10, clock=mono_clock)
        for _ in range(3):
            breaker.record_outage()

        mono_clock.advance(10)
        assert breaker.allow() is True
        breaker.record_outage()
        assert breaker.state == BreakerState.OPEN
        assert breaker.retry_after_seconds() == 10

    def test_delivery_resets_consecutive_count(self) -> None:
        breaker = NotifierCircuitBreaker(failure_threshold=2)
        breaker.record_outage()
        breaker.record_delivery()
        breaker.record_outage()
        assert breaker.state == BreakerState.CLOSED

    def test_rejects_invalid_parameters(self) -> None:
        with pytest.raises(ValueError):
            NotifierCircuitBreaker(failure_threshold=0)
        with pytest.raises(ValueError):
            NotifierCircuitBreaker(recovery_seconds=0)


class TestTelegramNotifier:
    @pytest.mark.asyncio
    async def test_send_posts_html_message(self) -> None:
        captured: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True, "result": {"message_id": 77}})

        notifier = TelegramNotifier("123:abc", _client_with(handler))
        result = await notifier.send("555", "<b>hi</b>")

        assert result.ok is True
        assert result.message_id == "77"
        assert captured["url"] == "https://api.telegram.org/bot123:abc/sendMessage"
        assert captured["body"]["chat_id"] == "555"
        assert captured["body"]["parse_mode"] == "HTML"

    @pytest.mark.asyncio
    async def test_http_failure_becomes_failed_result(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, json={"ok": False, "description": "blocked"})

        result = await TelegramNotifier("t", _client_with(handler)).send("555", "x")
        assert result.ok is False
        assert result.error == "HTTP 403"

    @pytest.mark.asyncio
    async def test_api_not_ok_becomes_failed_result(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"ok": False, "description": "chat not found"})

        result = await TelegramNotifier("t", _client_with(handler)).send("555", "x")
        assert result.error == "chat not found"

    def test_requires_token(self) -> None:
        with pytest.raises(ValueError):
            TelegramNotifier.from_settings(Settings())

    def test_from_settings_builds_breaker(self) -> None:
        notifier = TelegramNotifier.from_settings(
            Settings(telegram_bot_token="123:abc", telegram_circuit_breaker_failure_threshold=3)
        )
        assert notifier.breaker is not None
        assert notifier.breaker.state == BreakerState.CLOSED

        disabled = TelegramNotifier.from_settings(
            Settings(telegram_bot_token="123:abc", telegram_circuit_breaker_enabled=False)
        )
        assert disabled.breaker is None

    @pytest.mark.asyncio
    async def test_open_circuit_skips_api_call(self, mono_clock) -> None:
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            return httpx.Response(200, json={"ok": True, "result": {"message_id": 1}})

        breaker = NotifierCircuitBreaker(failure_threshold=1, recovery_seconds=30, clock=mono_clock)
        breaker.record_outage()
        notifier = TelegramNotifier("t", _client_with(handler), breaker=breaker)

        result = await notifier.send("555", "x")
        assert result.ok is False
        assert result.is_circuit_open is True
        assert result.retry_after_seconds == 30
        assert calls["n"] == 0

    @pytest.mark.asyncio
    async def test_chat_rejection_keeps_circuit_closed(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, json={"ok": False, "description": "blocked"})

        breaker = NotifierCircuitBreaker(failure_threshold=1)
        notifier = TelegramNotifier("t", _client_with(handler), breaker=breaker)
        for _ in range(3):
            result = await notifier.send("555", "x")
            assert result.is_circuit_open is False
        assert breaker.state == BreakerState.CLOSED

    @pytest.mark.asyncio
    async def test_repeated_outage_opens_circuit(self) -> None:
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            return httpx.Response(502)

        breaker = NotifierCircuitBreaker(failure_threshold=2)
        notifier = TelegramNotifier("t", _client_with(handler, max_retries=0), breaker=breaker)

        assert (await notifier.send("1", "x")).error == "HTTP 502"
        assert (await notifier.send("2", "x")).error == "HTTP 502"
        assert breaker.state == BreakerState.OPEN

        third = await notifier.send("3", "x")
        assert third.is_circuit_open is True
        assert calls["n"] == 2
