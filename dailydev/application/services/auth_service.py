from __future__ import annotations

import logging
from typing import Optional

from fastapi import HTTPException, status
from jose import JWTError, jwt

from ...domain.models import AuthenticatedUser

logger = logging.getLogger(__name__)


class AuthService:
    """Verifies identity-provider access tokens issued to app users."""

    def __init__(
        self,
        secret_key: str,
        audience: Optional[str] = None,
        algorithm: str = "HS256",
    ) -> None:
        if not secret_key:
            raise RuntimeError("Missing required environment variable: SUPABASE_JWT_SECRET")
        self._secret_key = secret_key
        self._audience = audience
        self._algorithm = algorithm

    def verify_token(self, token: str) -> AuthenticatedUser:
        try:
            if self._audience:
                payload = jwt.decode(
                    token,
                    self._secret_key,
                    algorithms=[self._algorithm],
                    audience=self._audience,
                )
            else:
                payload = jwt.decode(
                    token,
                    self._secret_key,
                    algorithms=[self._algorithm],
                    options={"verify_aud": False},
                )
        except JWTError as exc:
            logger.info("Rejected access token: %s", exc)
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token.") from exc

        user_id = payload.get("sub")
        if not user_id:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token.")
        return AuthenticatedUser(
            id=str(user_id),
            email=payload.get("email"),
            user_metadata=payload.get("user_metadata") or {},
        )
