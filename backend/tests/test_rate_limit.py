"""Tests for rate limit keys and client IP resolution behind trusted proxies."""

from datetime import timedelta

import pytest
from starlette.requests import Request

from app import rate_limit
from app.auth import AUTH_COOKIE_NAME, create_access_token
from app.rate_limit import get_client_ip, get_rate_limit_key


def make_request(
    client_ip: str,
    forwarded_for: str | None = None,
    authorization: str | None = None,
    cookie: str | None = None,
) -> Request:
    headers = []
    if forwarded_for is not None:
        headers.append((b"x-forwarded-for", forwarded_for.encode()))
    if authorization is not None:
        headers.append((b"authorization", authorization.encode()))
    if cookie is not None:
        headers.append((b"cookie", f"{AUTH_COOKIE_NAME}={cookie}".encode()))
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/",
            "headers": headers,
            "client": (client_ip, 12345),
        }
    )


@pytest.fixture(autouse=True)
def reset_trusted_networks(monkeypatch):
    monkeypatch.setattr(rate_limit, "_trusted_networks", None)
    monkeypatch.delenv("TRUSTED_PROXY_CIDRS", raising=False)


class TestGetClientIp:
    def test_direct_connection(self):
        assert get_client_ip(make_request("203.0.113.7")) == "203.0.113.7"

    def test_trusted_proxy_forwards_client(self):
        request = make_request("10.0.1.5", "198.51.100.4, 10.0.1.5")
        assert get_client_ip(request) == "198.51.100.4"

    def test_untrusted_proxy_cannot_spoof(self):
        request = make_request("8.8.8.8", "1.2.3.4")
        assert get_client_ip(request) == "8.8.8.8"

    def test_trusted_proxy_without_header(self):
        assert get_client_ip(make_request("127.0.0.1")) == "127.0.0.1"


class TestTrustedCidrsFromEnv:
    def test_custom_cidrs(self, monkeypatch):
        monkeypatch.setenv("TRUSTED_PROXY_CIDRS", "203.0.113.0/24, not-a-cidr")

        assert get_client_ip(make_request("203.0.113.9", "1.2.3.4")) == "1.2.3.4"
        # Defaults no longer apply
        assert get_client_ip(make_request("10.0.1.5", "1.2.3.4")) == "10.0.1.5"

    def test_invalid_entries_are_ignored(self, monkeypatch):
        monkeypatch.setenv("TRUSTED_PROXY_CIDRS", "bogus")
        assert rate_limit._load_trusted_cidrs() == []


class TestRateLimitKey:
    def test_bearer_token_keys_by_user(self, settings):
        token = create_access_token("user-1", "client", settings)
        request = make_request("203.0.113.7", authorization=f"Bearer {token}")

        assert get_rate_limit_key(request) == "user:user-1"

    def test_cookie_token_keys_by_user(self, settings):
        token = create_access_token("user-2", "worker", settings)
        request = make_request("203.0.113.7", cookie=token)

        assert get_rate_limit_key(request) == "user:user-2"

    def test_users_behind_one_ip_get_separate_buckets(self, settings):
        first = make_request(
            "203.0.113.7",
            authorization=f"Bearer {create_access_token('a', 'client', settings)}",
        )
        second = make_request(
            "203.0.113.7",
            authorization=f"Bearer {create_access_token('b', 'client', settings)}",
        )

        assert get_rate_limit_key(first) != get_rate_limit_key(second)

    @pytest.mark.parametrize("authorization", ["Bearer not-a-jwt", "Basic dXNlcjpwYXNz"])
    def test_unverified_credentials_fall_back_to_ip(self, authorization):
        request = make_request("203.0.113.7", authorization=authorization)
        assert get_rate_limit_key(request) == "203.0.113.7"

    def test_expired_token_falls_back_to_ip(self, settings):
        token = create_access_token("user-1", "client", settings, expires_delta=timedelta(minutes=-5))
        request = make_request("203.0.113.7", authorization=f"Bearer {token}")

        assert get_rate_limit_key(request) == "203.0.113.7"

    def test_anonymous_request_keys_by_ip(self):
        assert get_rate_limit_key(make_request("203.0.113.7")) == "203.0.113.7"
