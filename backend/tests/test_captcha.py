"""
Tests for the Geetest v4 verifier.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

import httpx

from app.services.captcha import CaptchaChallenge, GeetestVerifier

API_URL = "https://gcaptcha4.geetest.com/validate"


def _challenge(**overrides):
    values = dict(
        lot_number="lot-1",
        captcha_output="out",
        pass_token="pass",
        gen_time="1700000000",
        captcha_id="cid",
    )
    values.update(overrides)
    return CaptchaChallenge(**values)


def _patched_client(response=None, error=None):
    client = MagicMock()
    client.post = AsyncMock(return_value=response, side_effect=error)
    client_cls = MagicMock()
    client_cls.return_value.__aenter__.return_value = client
    client_cls.return_value.__aexit__.return_value = False
    return client_cls, client


class TestGeetestVerifier:
    @pytest.fixture
    def verifier(self):
        return GeetestVerifier("cid", "secret-key", API_URL, timeout=1)

    @pytest.mark.asyncio
    async def test_incomplete_challenge_rejected(self, verifier):
        assert await verifier.verify(_challenge(pass_token="")) is False

    @pytest.mark.asyncio
    async def test_foreign_captcha_id_rejected(self, verifier):
        assert await verifier.verify(_challenge(captcha_id="other")) is False

    @pytest.mark.asyncio
    async def test_success(self, verifier):
        client_cls, client = _patched_client(httpx.Response(200, json={"result": "success"}))
        with patch("app.services.captcha.httpx.AsyncClient", client_cls):
            assert await verifier.verify(_challenge()) is True

        kwargs = client.post.call_args.kwargs
        assert kwargs["params"] == {"captcha_id": "cid"}
        assert kwargs["data"]["sign_token"] == verifier.sign("lot-1")

    @pytest.mark.asyncio
    async def test_failure_result(self, verifier):
        client_cls, _ = _patched_client(httpx.Response(200, json={"result": "fail", "reason": "bad"}))
        with patch("app.services.captcha.httpx.AsyncClient", client_cls):
            assert await verifier.verify(_challenge()) is False

    @pytest.mark.asyncio
    async def test_http_error_rejected(self, verifier):
        client_cls, _ = _patched_client(httpx.Response(500, text="oops"))
        with patch("app.services.captcha.httpx.AsyncClient", client_cls):
            assert await verifier.verify(_challenge()) is False

    @pytest.mark.asyncio
    async def test_transport_error_rejected(self, verifier):
        client_cls, _ = _patched_client(error=httpx.ConnectTimeout("slow"))
        with patch("app.services.captcha.httpx.AsyncClient", client_cls):
            assert await verifier.verify(_challenge()) is False

    def test_sign_is_hmac_sha256(self, verifier):
        assert len(verifier.sign("lot-1")) == 64
        assert verifier.sign("lot-1") != verifier.sign("lot-2")
