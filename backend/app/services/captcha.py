"""
Human verification (Geetest v4)

The gate is a yes/no check. Transport errors, timeouts and malformed
answers all count as a rejection.
"""
import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx
from fastapi import Request

from app.core.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class CaptchaChallenge:
    lot_number: str = ""
    captcha_output: str = ""
    pass_token: str = ""
    gen_time: str = ""
    captcha_id: str = ""

    @classmethod
    def from_request(cls, request: Request) -> "CaptchaChallenge":
        headers = request.headers
        return cls(
            lot_number=headers.get("x-geetest-lot-number", ""),
            captcha_output=headers.get("x-geetest-captcha-output", ""),
            pass_token=headers.get("x-geetest-pass-token", ""),
            gen_time=headers.get("x-geetest-gen-time", ""),
            captcha_id=headers.get("x-geetest-captcha-id", ""),
        )

    @property
    def is_complete(self) -> bool:
        return all((self.lot_number, self.captcha_output, self.pass_token, self.gen_time, self.captcha_id))


class CaptchaVerifier(Protocol):
    enabled: bool

    async def verify(self, challenge: CaptchaChallenge) -> bool:
        ...


class DisabledCaptchaVerifier:
    """Used when no Geetest credentials are configured."""

    enabled = False

    async def verify(self, challenge: CaptchaChallenge) -> bool:
        return True


class GeetestVerifier:
    enabled = True

    def __init__(self, captcha_id: str, captcha_key: str, api_url: str, timeout: float = 5.0):
        self.captcha_id = captcha_id
        self.captcha_key = captcha_key
        self.api_url = api_url
        self.timeout = timeout

    def sign(self, lot_number: str) -> str:
        return hmac.new(
            self.captcha_key.encode("utf-8"),
            lot_number.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    async def verify(self, challenge: CaptchaChallenge) -> bool:
        if not challenge.is_complete:
            logger.info("Captcha rejected: missing challenge headers")
            return False
        if challenge.captcha_id != self.captcha_id:
            logger.warning("Captcha rejected: captcha id mismatch")
            return False

        form = {
            "lot_number": challenge.lot_number,
            "captcha_output": challenge.captcha_output,
            "pass_token": challenge.pass_token,
            "gen_time": challenge.gen_time,
            "sign_token": self.sign(challenge.lot_number),
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(self.api_url, params={"captcha_id": self.captcha_id}, data=form)
            if resp.status_code != 200:
                logger.warning(f"Captcha validate returned HTTP {resp.status_code}")
                return False
            body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Captcha validate failed: {type(e).__name__}: {e}")
            return False

        if body.get("result") == "success":
            return True

        logger.info(f"Captcha rejected: {body.get('reason', 'unknown reason')}")
        return False


def build_captcha_verifier(settings: Settings) -> CaptchaVerifier:
    if settings.captcha_enabled:
        return GeetestVerifier(
            captcha_id=settings.GEETEST_ID,
            captcha_key=settings.GEETEST_KEY,
            api_url=settings.GEETEST_API_URL,
            timeout=settings.CAPTCHA_TIMEOUT_SECONDS,
        )
    return DisabledCaptchaVerifier()
