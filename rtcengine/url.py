"""
Stream locator parsing and signaling endpoint derivation.

A locator looks like ``<scheme>://<host>[:<port>]/<app>/<stream>[?k=v&...]``.
:func:`parse` turns it into a :class:`UrlDescriptor` and :func:`build_endpoint`
derives the HTTP url the offer is posted to.  Query values are kept verbatim;
nothing is percent-decoded.
"""

from __future__ import annotations

import dataclasses
import logging
import random as _random
import re
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional, Tuple
from urllib.parse import urlsplit

from .errors import MalformedUrl

LOG = logging.getLogger(__name__)

DEFAULT_SCHEME = "rtmp"
DEFAULT_VHOST = "__defaultVhost__"
DEFAULT_API_PATH = "/rtc/v1/whip/"
DEFAULT_SCHEMA = "http:"

LEGACY_VHOST_ESCAPE = "...vhost..."
RECOGNIZED_KEYS = ("url", "schema", "server", "port", "vhost", "app", "stream", "domain")
CONTROL_KEYS = ("api", "play")

SCHEME_PORTS: Dict[str, int] = {"http": 80, "https": 443, "rtmp": 1935}
RTC_SCHEMES = ("webrtc", "rtc")
RTC_PORT = 1985
SECURE_PORT = 443
TRANSACTION_ID_LENGTH = 7

_DOTTED_QUAD = re.compile(r"^(\d+)\.(\d+)\.(\d+)\.(\d+)$")


@dataclass(frozen=True, slots=True)
class UrlDescriptor:
    """
    Structured view of a stream locator.
    """

    raw_url: str
    scheme: str
    host: str
    port: int
    vhost: str
    app_path: str
    stream_name: str
    path: str = "/"
    query_params: Mapping[str, str] = field(default_factory=dict)

    @property
    def port_resolved(self) -> bool:
        return self.port != -1

    def to_dict(self) -> dict:
        return {
            "url": self.raw_url,
            "scheme": self.scheme,
            "host": self.host,
            "port": int(self.port),
            "vhost": self.vhost,
            "app": self.app_path,
            "stream": self.stream_name,
            "path": self.path,
            "query": dict(self.query_params),
        }


@dataclass(frozen=True, slots=True)
class SignalingEndpoint:
    """
    HTTP endpoint derived from a :class:`UrlDescriptor`.
    """

    api_url: str
    stream_url: str
    transaction_id: str
    schema: str
    port: int
    descriptor: UrlDescriptor

    def to_dict(self) -> dict:
        return {
            "apiUrl": self.api_url,
            "streamUrl": self.stream_url,
            "tid": self.transaction_id,
            "schema": self.schema,
            "port": int(self.port),
        }


def _split_path(path: str) -> Tuple[str, str]:
    cut = path.rfind("/")
    return path[1:cut] if cut > 0 else "", path[cut + 1 :]


def _legacy_vhost(app: str) -> Tuple[str, Optional[str]]:
    app = app.replace(LEGACY_VHOST_ESCAPE, "?vhost=")
    marker = app.find("?")
    if marker < 0:
        return app, None
    params = app[marker:]
    app = app[:marker]
    start = params.find("vhost=")
    if start <= 0:
        return app, None
    vhost = params[start + len("vhost=") :]
    amp = vhost.find("&")
    if amp >= 0:
        vhost = vhost[:amp]
    return app, vhost


def parse_query(query: str) -> Dict[str, str]:
    """
    Split ``k=v&k2=v2`` into a dict.  The first ``=`` separates key and value,
    a bare key maps to ``""`` and empty segments are ignored.
    """

    params: Dict[str, str] = {}
    if not query:
        return params
    for segment in query.split("&"):
        if not segment:
            continue
        key, _, value = segment.partition("=")
        params[key] = value
    return params


def parse(
    raw: str,
    *,
    default_path: str = DEFAULT_API_PATH,
    default_schema: str = DEFAULT_SCHEMA,
) -> UrlDescriptor:
    """
    Parse ``raw`` into a :class:`UrlDescriptor`.

    ``default_path`` and ``default_schema`` are accepted so callers can pass the
    same defaults to :func:`parse` and :func:`build_endpoint`; parsing itself
    does not depend on them.
    """

    if raw is None:
        raise MalformedUrl("", "empty url")
    url = str(raw).strip()
    if not url:
        raise MalformedUrl(url, "empty url")
    if "://" not in url:
        url = f"{DEFAULT_SCHEME}://{url}"

    try:
        parts = urlsplit(url)
        host = parts.hostname
        explicit_port = parts.port
    except ValueError as exc:
        raise MalformedUrl(url, str(exc)) from exc
    if not parts.scheme:
        raise MalformedUrl(url, "missing scheme")
    if not host:
        raise MalformedUrl(url, "missing host")

    scheme = parts.scheme.lower()
    path = parts.path or "/"
    app, stream = _split_path(path)

    vhost = host
    app, legacy_vhost = _legacy_vhost(app)
    if legacy_vhost is not None:
        vhost = legacy_vhost
    if vhost == host and _DOTTED_QUAD.match(host):
        vhost = DEFAULT_VHOST

    port = explicit_port if explicit_port is not None else SCHEME_PORTS.get(scheme, -1)

    fields: Dict[str, object] = {
        "url": url,
        "schema": scheme,
        "server": host,
        "port": port,
        "vhost": vhost,
        "app": app,
        "stream": stream,
        "domain": None,
    }
    query = parse_query(parts.query)
    for key, value in query.items():
        if key not in RECOGNIZED_KEYS:
            continue
        if key == "port":
            try:
                fields["port"] = int(value)
            except ValueError as exc:
                raise MalformedUrl(url, f"invalid port {value!r}") from exc
        else:
            fields[key] = value
    if fields["domain"] is not None:
        fields["vhost"] = fields["domain"]

    if fields["port"] == -1 and scheme in RTC_SCHEMES:
        fields["port"] = SECURE_PORT if query.get("schema") == "https" else RTC_PORT

    descriptor = UrlDescriptor(
        raw_url=str(fields["url"]),
        scheme=str(fields["schema"]),
        host=str(fields["server"]),
        port=int(fields["port"]),  # type: ignore[arg-type]
        vhost=str(fields["vhost"]),
        app_path=str(fields["app"]),
        stream_name=str(fields["stream"]),
        path=path,
        query_params=MappingProxyType(query),
    )
    LOG.debug(
        "Parsed %s: scheme=%s host=%s port=%s vhost=%s app=%s stream=%s",
        raw,
        descriptor.scheme,
        descriptor.host,
        descriptor.port,
        descriptor.vhost,
        descriptor.app_path,
        descriptor.stream_name,
    )
    return descriptor


def transaction_id(
    random: Callable[[], float] = _random.random,
    clock: Callable[[], float] = time.time,
) -> str:
    """
    Seven lowercase hex characters for log correlation.  Not a secret.
    """

    millis = clock() * 1000.0
    value = int(random() * millis * 100)
    digits = format(max(0, value), "x")[:TRANSACTION_ID_LENGTH]
    return digits.rjust(TRANSACTION_ID_LENGTH, "0")


def build_endpoint(
    descriptor: UrlDescriptor,
    default_path: str = DEFAULT_API_PATH,
    default_schema: str = DEFAULT_SCHEMA,
    *,
    random: Callable[[], float] = _random.random,
    clock: Callable[[], float] = time.time,
) -> SignalingEndpoint:
    """
    Derive the HTTP signaling endpoint for ``descriptor``.

    Query parameters other than ``api`` and ``play`` are forwarded.  Each one is
    appended as ``&k=v`` and the first ``<api>&`` is then rewritten to
    ``<api>?``; servers rely on the exact resulting string, so the rewrite is
    kept literal.
    """

    params = descriptor.query_params
    schema = params.get("schema", default_schema) or default_schema
    if not schema.endswith(":"):
        schema += ":"

    if descriptor.port_resolved:
        port = descriptor.port
    elif schema == "https:":
        port = SECURE_PORT
    else:
        port = RTC_PORT

    api = params.get("play", default_path) or "/"
    if not api.endswith("/"):
        api += "/"

    host = f"[{descriptor.host}]" if ":" in descriptor.host else descriptor.host
    api_url = f"{schema}//{host}:{port}{api}"
    for key, value in params.items():
        if key in CONTROL_KEYS:
            continue
        api_url += f"&{key}={value}"
    api_url = api_url.replace(api + "&", api + "?", 1)

    endpoint = SignalingEndpoint(
        api_url=api_url,
        stream_url=descriptor.raw_url,
        transaction_id=transaction_id(random=random, clock=clock),
        schema=schema,
        port=port,
        descriptor=descriptor,
    )
    LOG.debug("Endpoint for %s: %s (tid=%s)", descriptor.raw_url, api_url, endpoint.transaction_id)
    return endpoint


def resolve_endpoint(
    raw: str,
    default_path: str = DEFAULT_API_PATH,
    default_schema: str = DEFAULT_SCHEMA,
    **kwargs,
) -> SignalingEndpoint:
    """
    Parse ``raw`` and build its endpoint.

    An ``http``/``https`` locator already names the signaling url and is posted
    exactly as written; only the transaction id and descriptor are derived.
    """

    descriptor = parse(raw, default_path=default_path, default_schema=default_schema)
    if descriptor.scheme not in ("http", "https"):
        return build_endpoint(descriptor, default_path, default_schema, **kwargs)

    endpoint = build_endpoint(descriptor, descriptor.path, f"{descriptor.scheme}:", **kwargs)
    return dataclasses.replace(endpoint, api_url=str(raw).strip(), port=descriptor.port)


__all__ = [
    "DEFAULT_VHOST",
    "SignalingEndpoint",
    "UrlDescriptor",
    "build_endpoint",
    "parse",
    "parse_query",
    "resolve_endpoint",
    "transaction_id",
]
