"""Async protocol engine for the Steam community web-chat API."""

from loguru import logger

from steamchat.api import (
    ApiCall,
    ApiMessage,
    ErrorKind,
    FriendSummary,
    MessageType,
    SteamApi,
    SteamApiError,
)
from steamchat.utils.config import ApiConfig, load_config

# Library modules stay quiet until an application enables them
logger.disable("steamchat")

__all__ = [
    "ApiCall",
    "ApiConfig",
    "ApiMessage",
    "ErrorKind",
    "FriendSummary",
    "MessageType",
    "SteamApi",
    "SteamApiError",
    "load_config",
]
