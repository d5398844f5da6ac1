"""Environment-driven settings for the Steam API client."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from loguru import logger


API_HOST = "api.steampowered.com"
COM_HOST = "steamcommunity.com"
USER_AGENT = "Steam 1291812 / iPhone"
# Seconds the server may hold a poll open; also the minimum it may advertise.
POLL_TIMEOUT = 30
HTTP_TIMEOUT_DEFAULT = 60.0


@dataclass(frozen=True)
class ApiConfig:
    """Connection settings shared by the transport and the API engine."""

    api_host: str = API_HOST
    com_host: str = COM_HOST
    user_agent: str = USER_AGENT
    http_timeout: float = HTTP_TIMEOUT_DEFAULT
    umqid: Optional[str] = None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring invalid {}={!r}, using {}", name, raw, default)
        return default


def load_config() -> ApiConfig:
    """Build an ApiConfig from ``STEAM_*`` / ``STEAMCHAT_*`` variables.

    The HTTP timeout is clamped so a long poll can never time out on the
    client before the server answers it.
    """

    timeout = max(POLL_TIMEOUT + 5.0, _env_float("STEAMCHAT_HTTP_TIMEOUT", HTTP_TIMEOUT_DEFAULT))
    return ApiConfig(
        api_host=(os.getenv("STEAM_API_HOST") or API_HOST).strip(),
        com_host=(os.getenv("STEAM_COM_HOST") or COM_HOST).strip(),
        user_agent=os.getenv("STEAMCHAT_USER_AGENT") or USER_AGENT,
        http_timeout=timeout,
        umqid=os.getenv("STEAMCHAT_UMQID") or None,
    )
