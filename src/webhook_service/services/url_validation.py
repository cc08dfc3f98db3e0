"""Destination URL checks for webhook endpoints (syntax + SSRF guard)."""
from __future__ import annotations

import ipaddress

from pydantic import HttpUrl, TypeAdapter, ValidationError

from webhook_service.core.exceptions import InvalidEndpointError

_URL_ADAPTER = TypeAdapter(HttpUrl)

_LOCAL_SUFFIXES = (".local", ".localhost", ".internal", ".localdomain", ".home.arpa")


def _parse_ip(host: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    host = host.strip("[]")
    try:
        return ipaddress.ip_address(host)
    except ValueError:
        pass
    # decimal form, e.g. 2130706433 == 127.0.0.1
    if host.isdigit() and int(host) <= 0xFFFFFFFF:
        return ipaddress.IPv4Address(int(host))
    return None


def _is_internal_ip(ip: ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return (
        ip.is_loopback
        or ip.is_private
        or ip.is_link_local
        or ip.is_reserved
        or ip.is_multicast
        or ip.is_unspecified
    )


def is_local_hostname(host: str) -> bool:
    host = host.strip().lower().rstrip(".")
    return host == "localhost" or host.endswith(_LOCAL_SUFFIXES)


def validate_target_url(url: str, *, allow_private: bool = False, require_https: bool = False) -> str:
    """Return the URL unchanged if acceptable, otherwise raise InvalidEndpointError."""
    try:
        parsed = _URL_ADAPTER.validate_python(url)
    except ValidationError as exc:
        raise InvalidEndpointError("url must be a valid http(s) URL") from exc

    if require_https and parsed.scheme != "https":
        raise InvalidEndpointError("url must use HTTPS")
    host = parsed.host or ""
    if not host:
        raise InvalidEndpointError("url must contain a valid hostname")
    if allow_private:
        return url

    if is_local_hostname(host):
        raise InvalidEndpointError("url cannot point to localhost or local domains")
    ip = _parse_ip(host)
    if ip is not None and _is_internal_ip(ip):
        raise InvalidEndpointError("url cannot point to localhost or private networks")
    return url
