"""Credential state for the mobile login flow."""

from __future__ import annotations

import base64
from typing import Optional

from cryptography.hazmat.primitives.asymmetric import padding, rsa
from loguru import logger


CAPTCHA_URL = "https://steamcommunity.com/public/captcha.php?gid={gid}"


class SteamAuth:
    """RSA key material and pending login challenges for one account.

    The key arrives as hex strings from ``/mobilelogin/getrsakey/``; the
    password is encrypted with PKCS#1 v1.5 and sent base64-encoded. Captcha
    and e-mail (Steam Guard) challenge ids are remembered so the next login
    attempt can answer them.
    """

    def __init__(self) -> None:
        self.mod: Optional[int] = None
        self.exp: Optional[int] = None
        self.time: Optional[str] = None
        self.cgid: Optional[str] = None
        self.esid: Optional[str] = None

    @staticmethod
    def _parse_hex(value: str) -> Optional[int]:
        try:
            parsed = int(value, 16)
        except (TypeError, ValueError):
            return None
        return parsed if parsed > 0 else None

    def set_key_mod(self, value: str) -> bool:
        mod = self._parse_hex(value)
        if mod is None:
            return False
        self.mod = mod
        return True

    def set_key_exp(self, value: str) -> bool:
        exp = self._parse_hex(value)
        if exp is None:
            return False
        self.exp = exp
        return True

    def encrypt(self, password: str) -> Optional[str]:
        """Return the base64 ciphertext for ``password`` or None on failure."""

        if self.mod is None or self.exp is None:
            return None
        try:
            key = rsa.RSAPublicNumbers(self.exp, self.mod).public_key()
            cipher = key.encrypt(password.encode("utf-8"), padding.PKCS1v15())
        except ValueError as exc:
            logger.warning("Password encryption failed: {}", exc)
            return None
        return base64.b64encode(cipher).decode("ascii")

    def captcha(self, gid: Optional[str]) -> None:
        self.cgid = gid

    def email(self, steamid: Optional[str]) -> None:
        self.esid = steamid

    @property
    def captcha_url(self) -> Optional[str]:
        if not self.cgid:
            return None
        return CAPTCHA_URL.format(gid=self.cgid)
