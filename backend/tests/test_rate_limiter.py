"""
Tests for the per-client rate limiter and its middleware.
"""
import pytest
from fastapi import APIRouter
from httpx import AsyncClient, ASGITransport

from liga.core.rate_limit_config import RateLimit, RateLimitSettings
from liga.core.rate_limiter import InMemoryRateLimiter, get_client_ip

DEFAULT_LIMIT = RateLimit(max_requests=200, window_ms=15 * 60 * 1000)


class FakeClock:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestRateLimit:

    def test_default_window(self):
        assert DEFAULT_LIMIT.window_seconds == 900
        assert DEFAULT_LIMIT.policy == "200;w=900"

    def test_from_settings(self, test_settings):
        limit = RateLimit.from_settings(test_settings)
        assert limit == DEFAULT_LIMIT

    def test_settings_whitelist_parsing(self, test_settings):
        config = RateLimitSettings.from_settings(
            test_settings.model_copy(update={"RATE_LIMIT_WHITELIST_IPS": "10.0.0.1, 10.0.0.2,"})
        )
        assert config.whitelist_ips == ["10.0.0.1", "10.0.0.2"]
        assert config.real_ip_header is None


class TestInMemoryRateLimiter:

    @pytest.mark.anyio
    async def test_200_allowed_then_rejected(self):
        limiter = InMemoryRateLimiter(clock=FakeClock())

        results = [await limiter.check_rate_limit("ip:1.2.3.4", DEFAULT_LIMIT) for _ in range(200)]
        assert all(r.allowed for r in results)
        assert results[0].remaining == 199
        assert results[-1].remaining == 0

        rejected = await limiter.check_rate_limit("ip:1.2.3.4", DEFAULT_LIMIT)
        assert rejected.allowed is False
        assert rejected.remaining == 0
        assert rejected.retry_after == 900

    @pytest.mark.anyio
    async def test_window_resets(self):
        clock = FakeClock()
        limiter = InMemoryRateLimiter(clock=clock)
        limit = RateLimit(max_requests=2, window_ms=60_000)

        await limiter.check_rate_limit("k", limit)
        await limiter.check_rate_limit("k", limit)
        clock.now += 30
        blocked = await limiter.check_rate_limit("k", limit)
        assert blocked.allowed is False
        assert blocked.reset_after == 30

        clock.now += 30
        again = await limiter.check_rate_limit("k", limit)
        assert again.allowed is True
        assert again.remaining == 1

    @pytest.mark.anyio
    async def test_keys_are_independent(self):
        limiter = InMemoryRateLimiter(clock=FakeClock())
        limit = RateLimit(max_requests=1, window_ms=60_000)

        assert (await limiter.check_rate_limit("ip:a", limit)).allowed
        assert not (await limiter.check_rate_limit("ip:a", limit)).allowed
        assert (await limiter.check_rate_limit("ip:b", limit)).allowed

    @pytest.mark.anyio
    async def test_cleanup_expired(self):
        clock = FakeClock()
        limiter = InMemoryRateLimiter(clock=clock)
        await limiter.check_rate_limit("short", RateLimit(max_requests=5, window_ms=10_000))
        await limiter.check_rate_limit("long", DEFAULT_LIMIT)

        clock.now += 20
        removed = await limiter.cleanup_expired()

        assert removed == 1
        assert limiter.get_stats()["active_windows"] == 1

    @pytest.mark.anyio
    async def test_reset(self):
        limiter = InMemoryRateLimiter(clock=FakeClock())
        limit = RateLimit(max_requests=1, window_ms=60_000)
        await limiter.check_rate_limit("k", limit)

        await limiter.reset("k")

        assert (await limiter.check_rate_limit("k", limit)).allowed


class FakeRequest:
    def __init__(self, headers=None, host="9.9.9.9"):
        self.headers = headers or {}
        self.client = type("Client", (), {"host": host})() if host else None


def test_client_ip_ignores_proxy_header_by_default():
    request = FakeRequest(headers={"X-Forwarded-For": "1.1.1.1"})
    assert get_client_ip(request) == "9.9.9.9"


def test_client_ip_from_trusted_header():
    request = FakeRequest(headers={"X-Forwarded-For": "1.1.1.1, 10.0.0.1"})
    assert get_client_ip(request, "X-Forwarded-For") == "1.1.1.1"


def test_client_ip_unknown():
    assert get_client_ip(FakeRequest(host=None)) == "unknown"


@pytest.mark.integration
class TestRateLimitMiddleware:

    @pytest.mark.anyio
    async def test_201st_request_is_rejected(self, client):
        for i in range(200):
            res = await client.get("/healthz")
            assert res.status_code == 200, i

        res = await client.get("/healthz")

        assert res.status_code == 429
        assert res.json() == {"error": "Demasiadas solicitudes, inténtalo de nuevo más tarde."}
        assert res.headers["ratelimit-limit"] == "200"
        assert res.headers["ratelimit-remaining"] == "0"
        assert res.headers["ratelimit-policy"] == "200;w=900"
        assert int(res.headers["retry-after"]) > 0

    @pytest.mark.anyio
    async def test_standard_headers_without_legacy_ones(self, client):
        res = await client.get("/")

        assert res.headers["ratelimit-limit"] == "200"
        assert res.headers["ratelimit-remaining"] == "199"
        assert "ratelimit-reset" in res.headers
        assert "x-ratelimit-limit" not in res.headers
        assert "x-ratelimit-remaining" not in res.headers

    @pytest.mark.anyio
    async def test_rejected_request_does_not_reach_handler(self, make_app):
        calls = []
        router = APIRouter()

        @router.get("/")
        async def market():
            calls.append(1)
            return {}

        app = make_app(routers={"mercado": router}, RATE_LIMIT_MAX=2)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            statuses = [(await ac.get("/api/mercado/")).status_code for _ in range(3)]

        assert statuses == [200, 200, 429]
        assert calls == [1, 1]

    @pytest.mark.anyio
    async def test_disabled(self, make_app):
        app = make_app(RATE_LIMIT_MAX=1, RATE_LIMIT_ENABLED=False)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            statuses = [(await ac.get("/healthz")).status_code for _ in range(3)]

        assert statuses == [200, 200, 200]

    @pytest.mark.anyio
    async def test_whitelisted_ip(self, make_app):
        app = make_app(RATE_LIMIT_MAX=1, RATE_LIMIT_WHITELIST_IPS="127.0.0.1")
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            statuses = [(await ac.get("/healthz")).status_code for _ in range(3)]

        assert statuses == [200, 200, 200]
