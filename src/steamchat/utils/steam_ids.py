"""Helpers for converting between SteamID64 values and account ids."""

from __future__ import annotations


STEAMID_BASE = 76561197960265728
PROFILE_URL = "https://steamcommunity.com/profiles/{steamid}/"


def _parse_int(value: str | int) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Invalid Steam identifier {value!r}")
    if isinstance(value, int):
        return value
    text = value.strip()
    if not text:
        raise ValueError("Steam identifier cannot be empty")
    return int(text, 10)


def accountid_from_steamid(steamid: str | int) -> int:
    """Return the 32-bit account id for a SteamID64.

    Accepts either an integer or its decimal string form. A ValueError is
    raised for anything that is not a base-10 integer.
    """

    return _parse_int(steamid) - STEAMID_BASE


def steamid_from_accountid(accountid: str | int) -> int:
    """Return the SteamID64 for an account id."""

    return _parse_int(accountid) + STEAMID_BASE


def steamid_str(accountid: str | int) -> str:
    return str(steamid_from_accountid(accountid))


def profile_url(steamid: str) -> str:
    """Return the community profile URL for a SteamID64 string."""

    return PROFILE_URL.format(steamid=steamid)
