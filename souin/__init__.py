"""HTTP cache building blocks: configuration types, request contexts, cache keys, coalescing and surrogate-key storage."""

__version__ = "0.1.0"