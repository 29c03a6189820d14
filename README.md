# souin

Building blocks for an HTTP caching layer: typed configuration, per-request
cache contexts, cache-key computation, request coalescing storage,
surrogate-key ("ykey") tag storage and the interfaces a storage backend
implements. The package has no dependencies beyond the standard library.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Configuration

`souin.configurationtypes` holds the configuration model as dataclasses
(`DefaultCache`, `URL`, `Key`, `CacheKeys`, `Timeout`, `CDN`, `API`,
`SurrogateKeys`, `AbstractConfiguration` and others).
`DefaultCache.from_mapping` builds the default cache settings from a plain
mapping, for example a YAML or JSON document you have already loaded. Durations
use the `1s`, `10ms`, `1h30m` notation and become `datetime.timedelta` values;
an invalid duration raises `ValueError`.

```python
from souin.configurationtypes import (
    AbstractConfiguration, DefaultCache, format_duration, parse_duration,
)

default_cache = DefaultCache.from_mapping({
    "cache_name": "Souin",
    "allowed_http_verbs": ["GET", "HEAD"],
    "ttl": "10s",
    "timeout": {"backend": "10s", "cache": "10ms"},
    "key": {"disable_host": True},
})
configuration = AbstractConfiguration(default_cache=default_cache)

parse_duration("1m30s")                    # timedelta(seconds=90)
format_duration(parse_duration("1500ms"))  # "1.5s"
```

Per-path key overrides are expressed with `CacheKeys`, an ordered list of
compiled patterns and `Key` settings:

```python
from souin.configurationtypes import CacheKeys

keys = CacheKeys.from_json('{".+\\\\.css": {"disable_body": true, "headers": ["Accept"]}}')
keys.to_json()
```

`souin.helpers.initialize_regexp(configuration)` joins every pattern in
`configuration.urls` into one alternation.

## Request contexts

`souin.context` computes what the cache needs to know about each request: the
cache key, whether the method is cacheable, the bypass mode, timeouts, the
GraphQL body hash and the `Cache-Status` name. A `Request` is immutable; each
step returns a copy carrying more values, read back with `Request.value` and a
`ContextKey`.

```python
from souin.context import ContextKey, Request, get_context

context = get_context()
context.init(configuration)

request = Request(method="GET", host="domain.com", path="/path", raw_query="x=1")
request = context.set_base_context(request)
request = context.set_context(request)

request.value(ContextKey.KEY)               # "GET-http-domain.com-/path?x=1"
request.value(ContextKey.SUPPORTED_METHOD)  # True
```

With the `disable_host` setting of the configuration above, the key would be
`"GET-http-/path?x=1"`. `parse_request_cache_control` parses a request
`Cache-Control` header into a `RequestCacheControl`.

## Request coalescing

`souin.layer_storage.CoalescingLayerStorage` remembers which keys must not be
coalesced; `exists(key)` is true while a key has not been marked with `set`.
It can be used as a context manager, and `set` raises `RuntimeError` after
`close`.

## Surrogate keys

`souin.ykeys.initialize_ykeys` builds a `YKeyStorage` from tag definitions
(`SurrogateKeys` with an optional URL pattern and header patterns), or returns
`None` when there are none. URLs are attached to tags with `add_to_tags`,
matching tags for a response are found with `get_validated_tags`, and
`invalidate_tags` returns the URLs to purge while removing them from every tag.

## Providers and transport

`souin.providers` defines `AbstractProvider` and `ReconnectProvider`, the
abstract base classes a storage backend implements, the `Transport` state and
`RetrieverResponseProperties`, whose `set_matched_url_from_request` picks the
`URL` settings for a request from the configured URL patterns.

## What this package does not do

It ships no storage backend implementation, no HTTP server or reverse proxy
and no command-line program, and it does not read configuration files: you
load the document yourself and pass the mapping to the `from_mapping` methods.