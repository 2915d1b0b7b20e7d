"""
Security Token Issuer
Short-lived HS256 tokens authenticating calls across the dispatch boundary.

Security Features:
- Shared secret held by this service and the external engine
- 5-minute expiry, regenerated per outbound call
- Constant-time signature comparison (PyJWT)
- Subject binding on verification

Tokens are not revocable; replay inside the expiry window is accepted for a
server-to-server webhook.
"""
import logging
import time
from typing import Any, Dict, Iterable, Optional, Union

import jwt

from phishsim.core.config import TokenConfig

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


class SecurityTokenError(Exception):
    """Raised when a token cannot be issued or fails verification"""
    pass


def extract_bearer(authorization: Optional[str]) -> str:
    """
    Pull the token out of an `Authorization: Bearer <token>` header.

    Raises:
        SecurityTokenError: If the header is missing or malformed
    """
    if not authorization:
        raise SecurityTokenError("Missing Authorization header")
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1].strip():
        raise SecurityTokenError("Invalid Authorization header format")
    return parts[1].strip()


class SecurityTokenIssuer:
    """
    Mint and verify HS256 tokens with claims {iat, exp, sub}.

    Usage:
        issuer = SecurityTokenIssuer(TokenConfig(secret="..."))
        token = issuer.issue()
        claims = issuer.verify(token, expected_subject=("n8n", "fyphish"))
    """

    def __init__(self, config: TokenConfig):
        self.config = config

    def _secret(self) -> str:
        if not self.config.secret:
            raise SecurityTokenError("JWT secret not configured")
        return self.config.secret

    def issue(self, subject: Optional[str] = None, now: Optional[float] = None) -> str:
        """
        Issue a token for `subject` (defaults to the configured outbound subject).

        Args:
            subject: Value of the `sub` claim
            now: Issue time as a unix timestamp (defaults to the current time)

        Returns:
            Compact JWT string
        """
        issued_at = int(now if now is not None else time.time())
        claims = {
            "iat": issued_at,
            "exp": issued_at + self.config.ttl_seconds,
            "sub": subject or self.config.subject,
        }
        return jwt.encode(claims, self._secret(), algorithm=ALGORITHM, headers={"typ": "JWT"})

    def verify(
        self,
        token: str,
        expected_subject: Union[str, Iterable[str], None] = None,
        now: Optional[float] = None
    ) -> Dict[str, Any]:
        """
        Verify signature, expiry and subject.

        Args:
            token: Compact JWT string
            expected_subject: Accepted subject or subjects; None skips the check
            now: Verification time as a unix timestamp

        Returns:
            Decoded claims

        Raises:
            SecurityTokenError: On any verification failure
        """
        secret = self._secret()
        try:
            claims = jwt.decode(
                token,
                secret,
                algorithms=[ALGORITHM],
                options={
                    "require": ["exp", "iat"],
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.InvalidSignatureError:
            raise SecurityTokenError("invalid token signature")
        except jwt.InvalidTokenError as e:
            raise SecurityTokenError(f"invalid token: {e}")

        current = int(now if now is not None else time.time())

        exp = claims.get("exp")
        if not isinstance(exp, int) or current > exp:
            raise SecurityTokenError(f"token expired at {exp} (now: {current})")

        iat = claims.get("iat")
        if isinstance(iat, int) and iat > current + self.config.max_clock_skew_seconds:
            raise SecurityTokenError(f"token iat is in the future: {iat} (now: {current})")

        if expected_subject is not None:
            accepted = {expected_subject} if isinstance(expected_subject, str) else set(expected_subject)
            if claims.get("sub") not in accepted:
                raise SecurityTokenError(f"unexpected token subject: {claims.get('sub')}")

        logger.debug(f"Token verified (sub: {claims.get('sub')}, iat: {iat}, exp: {exp})")
        return claims
