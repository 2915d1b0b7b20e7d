"""
Tests for the Security Token Issuer
"""
import jwt
import pytest

from phishsim.core.config import TokenConfig
from phishsim.infrastructure.security.token_issuer import (
    SecurityTokenError,
    SecurityTokenIssuer,
    extract_bearer,
)

NOW = 1_780_000_000


class TestIssue:
    """Tests for token issuing"""

    def test_claims_and_header(self, token_issuer):
        """Token carries iat, exp = iat + 300 and the outbound subject"""
        token = token_issuer.issue(now=NOW)

        header = jwt.get_unverified_header(token)
        claims = jwt.decode(token, options={"verify_signature": False})

        assert header["alg"] == "HS256"
        assert header["typ"] == "JWT"
        assert claims == {"iat": NOW, "exp": NOW + 300, "sub": "fyphish"}

    def test_custom_subject(self, token_issuer):
        """Subject can be overridden per call"""
        token = token_issuer.issue(subject="n8n", now=NOW)
        assert jwt.decode(token, options={"verify_signature": False})["sub"] == "n8n"

    def test_missing_secret_refuses_to_sign(self):
        """An empty secret never signs"""
        issuer = SecurityTokenIssuer(TokenConfig(secret=""))
        with pytest.raises(SecurityTokenError):
            issuer.issue()


class TestVerify:
    """Tests for token verification"""

    def test_round_trip(self, token_issuer):
        """Issued token verifies with the accepted subjects"""
        token = token_issuer.issue(subject="n8n", now=NOW)
        claims = token_issuer.verify(token, expected_subject=("n8n", "fyphish"), now=NOW + 10)
        assert claims["sub"] == "n8n"

    def test_expired(self, token_issuer):
        """Token older than its expiry is rejected"""
        token = token_issuer.issue(now=NOW)
        with pytest.raises(SecurityTokenError, match="expired"):
            token_issuer.verify(token, now=NOW + 301)

    def test_valid_at_expiry(self, token_issuer):
        """now == exp is still accepted"""
        token = token_issuer.issue(now=NOW)
        token_issuer.verify(token, now=NOW + 300)

    def test_iat_too_far_in_future(self, token_issuer):
        """iat more than 300 seconds ahead is rejected"""
        token = token_issuer.issue(now=NOW + 1000)
        with pytest.raises(SecurityTokenError, match="future"):
            token_issuer.verify(token, now=NOW)

    def test_wrong_secret(self, token_issuer):
        """Signature from another key is rejected"""
        forged = SecurityTokenIssuer(TokenConfig(secret="another-secret-0123456789abcdefghij")).issue(now=NOW)
        with pytest.raises(SecurityTokenError, match="signature"):
            token_issuer.verify(forged, now=NOW)

    def test_wrong_subject(self, token_issuer):
        """Subject outside the accepted set is rejected"""
        token = token_issuer.issue(subject="mallory", now=NOW)
        with pytest.raises(SecurityTokenError, match="subject"):
            token_issuer.verify(token, expected_subject=("n8n", "fyphish"), now=NOW)

    def test_single_subject_string(self, token_issuer):
        """A single expected subject can be passed as a string"""
        token = token_issuer.issue(subject="n8n", now=NOW)
        assert token_issuer.verify(token, expected_subject="n8n", now=NOW)["sub"] == "n8n"

    def test_malformed(self, token_issuer):
        """Garbage is rejected"""
        with pytest.raises(SecurityTokenError):
            token_issuer.verify("not-a-jwt", now=NOW)

    def test_missing_exp_claim(self, token_issuer, token_config):
        """Tokens without exp are rejected"""
        token = jwt.encode({"iat": NOW, "sub": "n8n"}, token_config.secret, algorithm="HS256")
        with pytest.raises(SecurityTokenError):
            token_issuer.verify(token, now=NOW)


class TestExtractBearer:
    """Tests for Authorization header parsing"""

    def test_valid(self):
        assert extract_bearer("Bearer abc.def.ghi") == "abc.def.ghi"

    def test_missing(self):
        with pytest.raises(SecurityTokenError, match="Missing"):
            extract_bearer(None)

    @pytest.mark.parametrize("header", ["abc", "Basic abc", "Bearer ", "Token abc"])
    def test_malformed(self, header):
        with pytest.raises(SecurityTokenError, match="format"):
            extract_bearer(header)
