import json
import re
from datetime import timedelta

import pytest

from souin.configurationtypes import (
    AbstractConfiguration,
    CacheKeys,
    DefaultCache,
    Key,
    format_duration,
    parse_duration,
)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("10s", timedelta(seconds=10)),
        ("1h30m", timedelta(hours=1, minutes=30)),
        ("300ms", timedelta(milliseconds=300)),
        ("1.5h", timedelta(hours=1.5)),
        ("-1m", timedelta(minutes=-1)),
        ("0", timedelta(0)),
        ("250us", timedelta(microseconds=250)),
    ],
)
def test_parse_duration(text, expected):
    assert parse_duration(text) == expected


@pytest.mark.parametrize("text", ["", "10", "1x", "s", "1h-2m", "abc"])
def test_parse_duration_rejects_invalid(text):
    with pytest.raises(ValueError):
        parse_duration(text)


def test_format_duration_pinned_values():
    assert format_duration(timedelta(0)) == "0s"
    assert format_duration(timedelta(hours=1)) == "1h0m0s"
    assert format_duration(timedelta(milliseconds=10)) == "10ms"


@pytest.mark.parametrize(
    "value",
    [
        timedelta(seconds=10),
        timedelta(hours=2, minutes=3, seconds=4, microseconds=5),
        timedelta(milliseconds=1, microseconds=500),
        timedelta(microseconds=7),
        timedelta(minutes=-5),
        timedelta(days=2, seconds=1),
    ],
)
def test_format_parse_round_trip(value):
    assert parse_duration(format_duration(value)) == value


def test_key_from_mapping_and_to_dict():
    key = Key.from_mapping({"disable_host": True, "headers": ["Authorization"]})
    assert key.disable_host is True
    assert key.disable_body is False
    assert key.headers == ["Authorization"]
    assert key.to_dict() == {"disable_host": True, "headers": ["Authorization"]}


def test_key_to_dict_omits_empty_fields():
    assert Key().to_dict() == {}
    assert Key.from_mapping(None) == Key()


def test_cache_keys_from_mapping_keeps_order():
    keys = CacheKeys.from_mapping(
        {".*": {"disable_method": True}, "/api/.+": None, "/other": {"hide": True}}
    )
    assert [p.pattern for p, _ in keys] == [".*", "/api/.+", "/other"]
    assert len(keys) == 3
    entries = list(keys)
    assert entries[0][1].disable_method is True
    assert entries[1][1] == Key()
    assert entries[2][1].hide is True


def test_cache_keys_invalid_pattern():
    with pytest.raises(re.error):
        CacheKeys.from_mapping({"(": {}})


def test_cache_keys_json_round_trip():
    source = json.dumps(
        {
            ".+": {"disable_body": True, "headers": ["X-Header"]},
            "/path": {"disable_query": True},
        }
    )
    keys = CacheKeys.from_json(source.encode())
    again = CacheKeys.from_json(keys.to_json())
    assert [(p.pattern, k) for p, k in again] == [(p.pattern, k) for p, k in keys]
    assert json.loads(keys.to_json()) == json.loads(source)


def test_cache_keys_from_json_requires_object():
    with pytest.raises(ValueError):
        CacheKeys.from_json("[1, 2]")


def test_cache_keys_empty_to_json():
    assert json.loads(CacheKeys().to_json()) == {}


def test_default_cache_from_mapping():
    cache = DefaultCache.from_mapping(
        {
            "allowed_http_verbs": ["GET", "POST"],
            "cache_name": "Something",
            "mode": "bypass",
            "ttl": "10s",
            "stale": "1m",
            "timeout": {"backend": "1s", "cache": "1ms"},
            "key": {"disable_host": True},
            "redis": {"url": "localhost:6379"},
            "cdn": {"api_key": "placeholder", "dynamic": True},
            "port": {"web": "80", "tls": "443"},
            "regex": {"exclude": "/excluded"},
            "storers": ["memory"],
        }
    )
    assert cache.allowed_http_verbs == ["GET", "POST"]
    assert cache.cache_name == "Something"
    assert cache.mode == "bypass"
    assert cache.ttl == timedelta(seconds=10)
    assert cache.stale == timedelta(minutes=1)
    assert cache.timeout.backend == timedelta(seconds=1)
    assert cache.timeout.cache == timedelta(milliseconds=1)
    assert cache.key.disable_host is True
    assert cache.redis.url == "localhost:6379"
    assert cache.cdn.api_key == "placeholder"
    assert cache.cdn.dynamic is True
    assert cache.port.web == "80"
    assert cache.port.tls == "443"
    assert cache.regex.exclude == "/excluded"
    assert cache.storers == ["memory"]


def test_default_cache_from_empty_mapping_matches_defaults():
    assert DefaultCache.from_mapping({}) == DefaultCache()
    assert DefaultCache.from_mapping(None) == DefaultCache()


def test_default_cache_invalid_duration():
    with pytest.raises(ValueError):
        DefaultCache.from_mapping({"ttl": "ten seconds"})


def test_abstract_configuration_defaults_are_independent():
    first = AbstractConfiguration()
    second = AbstractConfiguration()
    first.urls["x"] = None
    assert second.urls == {}
    assert first.default_cache == DefaultCache()
    assert len(first.cache_keys) == 0