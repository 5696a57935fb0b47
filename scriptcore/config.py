# scriptcore/config.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx

from scriptcore.core.errors import ConfigurationError
from scriptcore.interfaces.types import REDIRECT_MODES


@dataclass(frozen=True)
class RuntimeConfig:
    """
    Settings for a ScriptContext.

    :param min_interval_ms: Floor for repeating timer intervals.
    :param max_workers: Worker threads available to the I/O bridge.
    :param base_url: Base for resolving relative fetch URLs.
    :param user_agent: Default User-Agent header for fetch.
    :param request_timeout: Transport timeout in seconds, None to rely on signals only.
    :param default_redirect: Redirect mode used when a request does not set one.
    :param idle_poll_interval: Longest the executor sleeps before re-checking for work.
    :param history_limit: History entries kept by the runtime monitor.
    """

    min_interval_ms: float = 4
    max_workers: int = 4
    base_url: Optional[str] = None
    user_agent: Optional[str] = "scriptcore/0.1"
    request_timeout: Optional[float] = None
    default_redirect: str = "follow"
    idle_poll_interval: float = 0.01
    history_limit: int = 1000

    def __post_init__(self) -> None:
        if self.min_interval_ms < 0:
            raise ConfigurationError("min_interval_ms cannot be negative", {"min_interval_ms": self.min_interval_ms})
        if self.max_workers < 1:
            raise ConfigurationError("max_workers must be at least 1", {"max_workers": self.max_workers})
        if self.request_timeout is not None and self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be positive", {"request_timeout": self.request_timeout})
        if self.default_redirect not in REDIRECT_MODES:
            raise ConfigurationError(
                f"default_redirect must be one of {', '.join(REDIRECT_MODES)}",
                {"default_redirect": self.default_redirect},
            )
        if self.idle_poll_interval <= 0:
            raise ConfigurationError("idle_poll_interval must be positive")
        if self.history_limit < 1:
            raise ConfigurationError("history_limit must be positive")
        if self.base_url is not None:
            try:
                absolute = httpx.URL(self.base_url).is_absolute_url
            except httpx.InvalidURL as exc:
                raise ConfigurationError(f"base_url is not a valid URL: {self.base_url}") from exc
            if not absolute:
                raise ConfigurationError(f"base_url must be absolute: {self.base_url}")
