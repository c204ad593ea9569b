"""
Tests for the signed OAuth state parameter and nonce replay tracking.
"""

import base64
import json
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from connectors.encryption import SecretCipher
from connectors.errors import ValidationError
from connectors.state import OAuthStateSigner
from database.helpers import consume_state_nonce
from database.models import OAuthStateNonce


class _Clock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return _Clock()


@pytest.fixture
def signer(clock, cipher):
    return OAuthStateSigner(secret="state-secret", ttl_seconds=600, clock=clock, cipher=cipher)


def _payload(state):
    encoded = state.split(".")[0]
    return json.loads(base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4)))


class TestIssueVerify:
    def test_round_trip_binds_context(self, signer):
        state = signer.issue("user-1", "googleAds", "app-1")
        binding = signer.verify(state, platform="googleAds")
        assert binding.user_id == "user-1"
        assert binding.platform == "googleAds"
        assert binding.app_id == "app-1"
        assert binding.code_verifier is None
        assert len(binding.nonce) == 32

    def test_code_verifier_is_carried(self, signer):
        state = signer.issue("user-1", "twitter", "app-1", code_verifier="verifier-abc")
        assert signer.verify(state).code_verifier == "verifier-abc"

    def test_code_verifier_is_sealed(self, signer):
        state = signer.issue("user-1", "twitter", "app-1", code_verifier="verifier-abc")
        sealed = _payload(state)["code_verifier"]
        assert "verifier-abc" not in sealed
        assert len(sealed.split(":")) == 3

    def test_each_state_has_a_fresh_nonce(self, signer):
        nonces = {signer.verify(signer.issue("u", "meta", "a")).nonce for _ in range(10)}
        assert len(nonces) == 10

    def test_state_is_url_safe(self, signer):
        state = signer.issue("user-1", "googleAds", "app-1", code_verifier="v" * 43)
        assert all(c.isalnum() or c in "-_." for c in state)


class TestRejection:
    def test_tampered_signature(self, signer):
        state = signer.issue("user-1", "meta", "app-1")
        with pytest.raises(ValidationError):
            signer.verify(state[:-1] + ("0" if state[-1] != "0" else "1"))

    def test_tampered_payload(self, signer):
        state = signer.issue("user-1", "meta", "app-1")
        encoded, signature = state.split(".")
        payload = json.loads(base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4)))
        payload["user_id"] = "attacker"
        forged = base64.urlsafe_b64encode(json.dumps(payload).encode()).rstrip(b"=").decode()
        with pytest.raises(ValidationError):
            signer.verify(f"{forged}.{signature}")

    def test_verifier_sealed_with_another_key(self, clock):
        foreign = OAuthStateSigner(secret="state-secret", clock=clock, cipher=SecretCipher("other-key"))
        state = foreign.issue("user-1", "twitter", "app-1", code_verifier="verifier-abc")
        ours = OAuthStateSigner(secret="state-secret", clock=clock, cipher=SecretCipher("test-encryption-key"))
        with pytest.raises(ValidationError):
            ours.verify(state)

    def test_other_secret(self, signer, clock):
        state = signer.issue("user-1", "meta", "app-1")
        with pytest.raises(ValidationError):
            OAuthStateSigner(secret="other", clock=clock).verify(state)

    def test_expired(self, signer, clock):
        state = signer.issue("user-1", "meta", "app-1")
        clock.now += 601
        with pytest.raises(ValidationError, match="expired"):
            signer.verify(state)

    def test_within_ttl(self, signer, clock):
        state = signer.issue("user-1", "meta", "app-1")
        clock.now += 599
        assert signer.verify(state).user_id == "user-1"

    def test_platform_mismatch(self, signer):
        state = signer.issue("user-1", "meta", "app-1")
        with pytest.raises(ValidationError, match="platform"):
            signer.verify(state, platform="googleAds")

    @pytest.mark.parametrize("state", ["", "no-dot", ".sig", "payload.", "a.b.c"])
    def test_garbage(self, signer, state):
        with pytest.raises(ValidationError):
            signer.verify(state)


class TestNonceConsumption:
    @pytest.mark.asyncio
    async def test_second_use_is_a_replay(self, session, user_id):
        assert await consume_state_nonce(session, "n-1", user_id, "googleAds") is True
        assert await consume_state_nonce(session, "n-1", user_id, "googleAds") is False

    @pytest.mark.asyncio
    async def test_expired_nonces_are_pruned(self, session, user_id):
        old = datetime.now(timezone.utc) - timedelta(hours=2)
        session.add(OAuthStateNonce(nonce="stale", user_id=uuid.UUID(user_id), platform="meta", consumed_at=old))
        await session.flush()

        assert await consume_state_nonce(session, "fresh", user_id, "meta", ttl_seconds=600) is True

        remaining = (await session.execute(select(OAuthStateNonce.nonce))).scalars().all()
        assert remaining == ["fresh"]

    @pytest.mark.asyncio
    async def test_nonces_within_ttl_are_kept(self, session, user_id):
        recent = datetime.now(timezone.utc) - timedelta(minutes=5)
        session.add(OAuthStateNonce(nonce="recent", user_id=uuid.UUID(user_id), platform="meta", consumed_at=recent))
        await session.flush()

        await consume_state_nonce(session, "fresh", user_id, "meta", ttl_seconds=600)

        remaining = (await session.execute(select(OAuthStateNonce.nonce))).scalars().all()
        assert sorted(remaining) == ["fresh", "recent"]
