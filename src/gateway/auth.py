"""
Connection authentication.

Access tokens are HS256 JWTs issued by the platform's auth service with
claims ``sub`` (account id), ``email``, ``role`` and ``type == "access"``.
"""

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Mapping, Optional

from jose import JWTError, jwt
from pydantic import ValidationError

from common.config import AuthConfig
from common.logging import get_logger
from common.models import Identity, Role, utcnow

logger = get_logger(__name__)

ACCESS_TOKEN_TYPE = "access"


def extract_bearer_token(auth_header: Optional[str]) -> Optional[str]:
    """Token from an ``Authorization: Bearer ...`` header value."""
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header[len("Bearer ") :] or None


class Authenticator(ABC):
    """Turns connection credentials into a verified identity."""

    @abstractmethod
    async def authenticate(self, token: Optional[str]) -> Optional[Identity]:
        """Returns None when the credentials are missing or invalid."""

    async def authenticate_request(
        self, headers: Mapping[str, str], query_params: Mapping[str, str]
    ) -> Optional[Identity]:
        """Look for ``?token=`` first, then the Authorization header."""
        token = query_params.get("token") or extract_bearer_token(headers.get("authorization"))
        return await self.authenticate(token)


class JWTAuthenticator(Authenticator):
    """Verifies platform access tokens with python-jose."""

    def __init__(self, secret: str, config: Optional[AuthConfig] = None):
        if not secret:
            raise ValueError("JWT secret must not be empty")
        self._secret = secret
        self.config = config or AuthConfig()

    async def authenticate(self, token: Optional[str]) -> Optional[Identity]:
        if not token:
            logger.info(event="auth_rejected", reason="missing_token")
            return None

        try:
            claims = jwt.decode(token, self._secret, algorithms=[self.config.algorithm])
        except JWTError as e:
            logger.info(event="auth_rejected", reason="invalid_token", error=str(e))
            return None

        if claims.get("type") != ACCESS_TOKEN_TYPE:
            logger.info(event="auth_rejected", reason="wrong_token_type")
            return None

        try:
            return Identity(id=claims["sub"], email=claims["email"], role=claims["role"])
        except (KeyError, ValidationError) as e:
            logger.info(event="auth_rejected", reason="bad_claims", error=str(e))
            return None

    def create_access_token(
        self, account_id: str, email: str, role: Role, expires_in: Optional[int] = None
    ) -> str:
        """Issue an access token. Production tokens come from the auth service."""
        now = utcnow()
        ttl = self.config.access_token_ttl if expires_in is None else expires_in
        claims = {
            "sub": account_id,
            "email": email,
            "role": Role(role).value,
            "type": ACCESS_TOKEN_TYPE,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=ttl)).timestamp()),
        }
        return jwt.encode(claims, self._secret, algorithm=self.config.algorithm)
