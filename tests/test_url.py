"""Tests covering locator parsing and endpoint derivation."""

from __future__ import annotations

import re

import pytest

from rtcengine.errors import MalformedUrl
from rtcengine.url import (
    DEFAULT_VHOST,
    build_endpoint,
    parse,
    parse_query,
    resolve_endpoint,
    transaction_id,
)

TID_PATTERN = re.compile(r"^[0-9a-f]{7}$")


def test_scheme_defaults_to_rtmp() -> None:
    descriptor = parse("host/app/stream")

    assert descriptor.scheme == "rtmp"
    assert descriptor.raw_url == "rtmp://host/app/stream"
    assert descriptor.host == "host"
    assert descriptor.port == 1935
    assert descriptor.app_path == "app"
    assert descriptor.stream_name == "stream"


def test_path_splits_on_last_slash() -> None:
    descriptor = parse("rtmp://example.com/live/sub/s1")

    assert descriptor.app_path == "live/sub"
    assert descriptor.stream_name == "s1"
    assert descriptor.path == "/live/sub/s1"


def test_whip_url_has_empty_stream_name() -> None:
    descriptor = parse("http://localhost:1985/rtc/v1/whip/?app=live&stream=livestream")

    # The app/stream query keys overwrite the path-derived fields.
    assert descriptor.app_path == "live"
    assert descriptor.stream_name == "livestream"
    assert descriptor.path == "/rtc/v1/whip/"
    assert descriptor.port == 1985


def test_dotted_quad_host_uses_default_vhost() -> None:
    descriptor = parse("rtmp://127.0.0.1/live/s")

    assert descriptor.vhost == DEFAULT_VHOST
    assert descriptor.host == "127.0.0.1"


def test_named_host_is_its_own_vhost() -> None:
    assert parse("rtmp://example.com/live/s").vhost == "example.com"


def test_vhost_query_overrides_host() -> None:
    assert parse("rtmp://example.com/live/s?vhost=foo.com").vhost == "foo.com"


def test_vhost_query_overrides_dotted_quad() -> None:
    assert parse("rtmp://10.0.0.1/live/s?vhost=foo.com").vhost == "foo.com"


def test_domain_wins_over_vhost() -> None:
    descriptor = parse("rtmp://example.com/live/s?domain=d.com&vhost=v.com")

    assert descriptor.vhost == "d.com"
    assert descriptor.query_params["vhost"] == "v.com"


def test_legacy_vhost_escape_in_app() -> None:
    descriptor = parse("rtmp://10.0.0.1/live...vhost...foo.com/s")

    assert descriptor.app_path == "live"
    assert descriptor.vhost == "foo.com"
    assert descriptor.stream_name == "s"


def test_webrtc_port_defaults() -> None:
    assert parse("webrtc://example.com/live/s").port == 1985
    assert parse("rtc://example.com/live/s").port == 1985
    assert parse("webrtc://example.com/live/s?schema=https").port == 443


def test_scheme_port_defaults() -> None:
    assert parse("http://example.com/live/s").port == 80
    assert parse("https://example.com/live/s").port == 443
    assert parse("rtmp://example.com/live/s").port == 1935
    assert parse("srt://example.com/live/s").port == -1


def test_explicit_port_and_query_override() -> None:
    assert parse("webrtc://example.com:8000/live/s").port == 8000
    assert parse("webrtc://example.com:8000/live/s?port=9000").port == 9000
    assert parse("srt://example.com/live/s?port=7000").port == 7000


def test_recognized_keys_update_fields() -> None:
    descriptor = parse(
        "rtmp://example.com/live/s?server=other.com&app=vod&stream=movie&schema=https&url=rtmp://x/y/z"
    )

    assert descriptor.host == "other.com"
    assert descriptor.app_path == "vod"
    assert descriptor.stream_name == "movie"
    assert descriptor.scheme == "https"
    assert descriptor.raw_url == "rtmp://x/y/z"


def test_query_values_are_verbatim() -> None:
    descriptor = parse("rtmp://example.com/live/s?token=a%20b&sig=x=y&flag&&")

    assert descriptor.query_params == {"token": "a%20b", "sig": "x=y", "flag": ""}


def test_query_params_are_read_only() -> None:
    descriptor = parse("rtmp://example.com/live/s?a=1")

    with pytest.raises(TypeError):
        descriptor.query_params["a"] = "2"  # type: ignore[index]


def test_parse_query_skips_empty_segments() -> None:
    assert parse_query("") == {}
    assert parse_query("a=1&&b=2&") == {"a": "1", "b": "2"}


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "   ",
        "http://:80/live/s",
        "rtmp://example.com:notaport/live/s",
        "rtmp://example.com/live/s?port=abc",
        "http://[::1/live/s",
    ],
)
def test_malformed_urls(raw: str) -> None:
    with pytest.raises(MalformedUrl):
        parse(raw)


def test_malformed_url_is_value_error() -> None:
    with pytest.raises(ValueError):
        parse("rtmp://example.com:99999/live/s")


def test_endpoint_for_whip_locator_keeps_query_order() -> None:
    descriptor = parse("http://localhost:1985/rtc/v1/whip/?app=live&stream=livestream")
    endpoint = build_endpoint(descriptor, "/rtc/v1/whip/", "http:")

    assert endpoint.api_url == "http://localhost:1985/rtc/v1/whip/?app=live&stream=livestream"
    assert endpoint.stream_url == descriptor.raw_url
    assert endpoint.port == 1985


def test_endpoint_excludes_control_keys() -> None:
    descriptor = parse(
        "webrtc://localhost/rtc/v1/whip-play/?app=live&stream=livestream&play=/rtc/v1/whip-play/"
    )
    endpoint = build_endpoint(descriptor, "/rtc/v1/whip/", "http:")

    assert "app=live&stream=livestream" in endpoint.api_url
    assert "play=" not in endpoint.api_url
    assert endpoint.api_url == "http://localhost:1985/rtc/v1/whip-play/?app=live&stream=livestream"


def test_endpoint_drops_api_key_and_appends_slash() -> None:
    descriptor = parse("webrtc://example.com/live/s?api=1985&play=/custom/play")
    endpoint = build_endpoint(descriptor, "/rtc/v1/whip/", "http:")

    assert endpoint.api_url == "http://example.com:1985/custom/play/"


def test_endpoint_without_query_has_no_separator() -> None:
    endpoint = build_endpoint(parse("webrtc://example.com/live/s"), "/rtc/v1/whip", "http:")

    assert endpoint.api_url == "http://example.com:1985/rtc/v1/whip/"


def test_endpoint_port_for_unresolved_schemes() -> None:
    plain = build_endpoint(parse("srt://example.com/live/s"), "/rtc/v1/whip/", "http:")
    secure = build_endpoint(parse("srt://example.com/live/s?schema=https"), "/rtc/v1/whip/", "http:")

    assert plain.port == 1985
    assert secure.schema == "https:"
    assert secure.port == 443
    assert secure.api_url == "https://example.com:443/rtc/v1/whip/?schema=https"


def test_first_forwarded_parameter_starts_the_query() -> None:
    descriptor = parse("webrtc://example.com/live/s?b=2&a=1")
    endpoint = build_endpoint(descriptor, "/rtc/v1/whip/", "http:")

    assert endpoint.api_url.endswith("/rtc/v1/whip/?b=2&a=1")
    assert endpoint.api_url.count("?") == 1


def test_transaction_id_is_deterministic_with_injected_sources() -> None:
    assert transaction_id(random=lambda: 0.5, clock=lambda: 1000.0) == "2faf080"


@pytest.mark.parametrize("value", [0.0, 1e-12, 0.25, 0.999999])
def test_transaction_id_shape(value: float) -> None:
    tid = transaction_id(random=lambda: value)

    assert TID_PATTERN.match(tid)


def test_endpoint_transaction_ids_are_seven_hex_chars() -> None:
    descriptor = parse("webrtc://example.com/live/s")

    for _ in range(50):
        assert TID_PATTERN.match(build_endpoint(descriptor).transaction_id)


@pytest.mark.parametrize(
    "raw",
    [
        "webrtc://example.com/live/s",
        "http://localhost:1985/rtc/v1/whip/?app=live&stream=livestream",
        "rtc://10.0.0.1:8000/live/s?schema=https",
        "srt://example.com/live/s?schema=https",
    ],
)
def test_api_url_round_trips_host_and_port(raw: str) -> None:
    original = parse(raw)
    endpoint = build_endpoint(original)
    reparsed = parse(endpoint.api_url)

    assert reparsed.host == original.host
    assert reparsed.port == endpoint.port
    if original.port_resolved:
        assert reparsed.port == original.port


def test_resolve_endpoint_uses_whip_locator_path() -> None:
    endpoint = resolve_endpoint("https://media.example.com/rtc/v1/whip/?app=live&stream=s", "/ignored/", "http:")

    assert endpoint.api_url == "https://media.example.com/rtc/v1/whip/?app=live&stream=s"
    assert endpoint.port == 443
    assert endpoint.schema == "https:"


def test_resolve_endpoint_posts_whip_locator_as_written() -> None:
    raw = "https://whip.example.com/whip/endpoint?api=x&token=a&token=b"
    endpoint = resolve_endpoint(raw, "/rtc/v1/whip/", "http:")

    assert endpoint.api_url == raw
    assert endpoint.stream_url == raw
    assert endpoint.descriptor.app_path == "whip"
    assert endpoint.descriptor.stream_name == "endpoint"
    assert len(endpoint.transaction_id) == 7


def test_resolve_endpoint_uses_defaults_for_stream_schemes() -> None:
    endpoint = resolve_endpoint("webrtc://media.example.com/live/s", "/rtc/v1/whip-play/", "http:")

    assert endpoint.api_url == "http://media.example.com:1985/rtc/v1/whip-play/"
    assert endpoint.descriptor.app_path == "live"
