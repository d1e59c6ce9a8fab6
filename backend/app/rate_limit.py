"""Rate limiting configuration for the Nimmit backend.

Authenticated requests are limited per user so that clients behind one
NAT or office proxy do not share a bucket. Anonymous requests fall back to
the client IP, and forwarded headers are only trusted from known proxies.
"""

import ipaddress
import os
from typing import Optional

from fastapi import HTTPException
from slowapi import Limiter
from slowapi.util import get_remote_address

from .auth import AUTH_COOKIE_NAME, decode_token
from .config import get_settings
from .logging_config import get_logger

logger = get_logger("nimmit.api.rate_limit")

# Trusted proxy CIDRs, the only sources allowed to set X-Forwarded-For.
# Override with TRUSTED_PROXY_CIDRS env var (comma-separated CIDRs).
_DEFAULT_TRUSTED_CIDRS = [
    "10.0.0.0/8",  # Hosting provider internal network
    "172.16.0.0/12",  # Docker/private
    "192.168.0.0/16",  # Local dev
    "127.0.0.0/8",  # Localhost
    "::1/128",  # IPv6 localhost
]


def _load_trusted_cidrs() -> list[ipaddress.IPv4Network | ipaddress.IPv6Network]:
    """Load trusted proxy CIDRs from env or defaults."""
    raw = os.environ.get("TRUSTED_PROXY_CIDRS", "")
    cidrs = [s.strip() for s in raw.split(",") if s.strip()] if raw else _DEFAULT_TRUSTED_CIDRS
    networks = []
    for cidr in cidrs:
        try:
            networks.append(ipaddress.ip_network(cidr, strict=False))
        except ValueError:
            logger.warning(f"Ignoring invalid trusted proxy CIDR | cidr={cidr}")
    return networks


_trusted_networks: Optional[list] = None


def _get_trusted_networks():
    global _trusted_networks
    if _trusted_networks is None:
        _trusted_networks = _load_trusted_cidrs()
    return _trusted_networks


def _is_trusted_proxy(ip_str: str) -> bool:
    """Check if an IP is in the trusted proxy list."""
    try:
        addr = ipaddress.ip_address(ip_str)
    except ValueError:
        return False
    return any(addr in network for network in _get_trusted_networks())


def get_client_ip(request) -> str:
    """Resolve client IP, only honoring X-Forwarded-For from trusted proxies.

    When the direct connection comes from a trusted proxy the leftmost
    X-Forwarded-For entry is the original client. Otherwise the direct
    connection IP is used so the header cannot be spoofed.
    """
    direct_ip = get_remote_address(request)

    if _is_trusted_proxy(direct_ip):
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            client_ip = forwarded_for.split(",")[0].strip()
            if client_ip:
                return client_ip

    return direct_ip


def _request_token(request) -> str | None:
    scheme, _, credentials = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get(AUTH_COOKIE_NAME)


def get_rate_limit_key(request) -> str:
    """Bucket by user id when the request carries a valid token, else by IP.

    Forged or expired tokens fall back to the IP.
    """
    token = _request_token(request)
    if token:
        try:
            payload = decode_token(token, get_settings())
        except HTTPException:
            payload = None
        if payload is not None:
            return f"user:{payload['sub']}"
    return get_client_ip(request)


limiter = Limiter(key_func=get_rate_limit_key)
