"""
Admin session handling: bcrypt-checked sign-in, HS256 JWT bearer tokens
(PyJWT), has-session check and sign-out by revoking the token id.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Set

import bcrypt
import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

# sample values from docs and .env templates
PLACEHOLDER_SECRETS = frozenset({"change-me", "changeme", "secret"})


class AdminAuth:
    def __init__(
        self,
        secret: str,
        admin_email: str,
        admin_password_hash: str,
        algorithm: str = "HS256",
        expiry_minutes: int = 60,
    ):
        if not secret:
            raise ValueError("JWT_SECRET must be set")
        if secret.strip().lower() in PLACEHOLDER_SECRETS:
            raise ValueError("JWT_SECRET is a placeholder value, set a private secret")
        self.secret = secret
        self.algorithm = algorithm
        self.expiry_minutes = expiry_minutes
        self.admin_email = admin_email.lower().strip()
        self.admin_password_hash = admin_password_hash
        self._revoked: Set[str] = set()

    def check_credentials(self, email: str, password: str) -> bool:
        if not self.admin_password_hash or email.lower().strip() != self.admin_email:
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), self.admin_password_hash.encode("utf-8"))
        except ValueError:
            logger.error("ADMIN_PASSWORD_HASH is not a valid bcrypt hash")
            return False

    def sign_in(self, email: str, password: str) -> Optional[str]:
        if not self.check_credentials(email, password):
            logger.warning("Failed admin sign-in for %s", email)
            return None
        now = datetime.now(timezone.utc)
        payload = {
            "sub": self.admin_email,
            "role": "admin",
            "iat": now,
            "exp": now + timedelta(minutes=self.expiry_minutes),
            "jti": str(uuid.uuid4()),
        }
        logger.info("Admin %s signed in", self.admin_email)
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Optional[Dict[str, Any]]:
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None
        if payload.get("jti") in self._revoked:
            return None
        return payload

    def sign_out(self, token: str) -> bool:
        payload = self.verify(token)
        if not payload:
            return False
        self._revoked.add(payload["jti"])
        logger.info("Admin %s signed out", payload.get("sub"))
        return True


def get_auth(request: Request) -> AdminAuth:
    return request.app.state.auth


async def get_optional_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    auth: AdminAuth = Depends(get_auth),
) -> Optional[Dict[str, Any]]:
    if credentials is None:
        return None
    return auth.verify(credentials.credentials)


async def get_current_admin(
    session: Optional[Dict[str, Any]] = Depends(get_optional_session),
) -> Dict[str, Any]:
    """
    Dependency for admin-only routes:

        @app.get("/admin/orders")
        async def admin_orders(admin: dict = Depends(get_current_admin)):
            ...
    """
    if not session:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session
