"""Helpers built on top of the configuration."""

from __future__ import annotations

import re

from souin.configurationtypes import AbstractConfiguration


def initialize_regexp(configuration: AbstractConfiguration) -> re.Pattern[str]:
    """Combine every configured URL pattern into one alternation."""
    return re.compile("|".join(f"({pattern})" for pattern in configuration.urls))