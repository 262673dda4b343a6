# app/core/security.py - Caller identity carried in portal-issued JWTs
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional, List, FrozenSet
import secrets

import jwt
from fastapi import HTTPException, status

from app.core.config import settings


class SecurityError(Exception):
    """A caller token could not be minted"""
    pass


ADMIN = "ADMIN"
ACCOUNTANT = "ACCOUNTANT"
PRINCIPAL = "PRINCIPAL"
PARENT = "PARENT"

# Everyone who works in the accounts office
STAFF_ROLES = frozenset({ADMIN, ACCOUNTANT, PRINCIPAL})
# May take money and create obligations
COLLECTOR_ROLES = frozenset({ADMIN, ACCOUNTANT})
# May approve concessions and expenses
ADJUDICATOR_ROLES = frozenset({ADMIN, PRINCIPAL})

TOKEN_TYPE = "access"


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


@dataclass(frozen=True)
class CallerIdentity:
    """Who is calling, and which students they may see. Issued elsewhere."""

    user_id: str
    name: str
    roles: FrozenSet[str] = field(default_factory=frozenset)
    student_ids: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def is_staff(self) -> bool:
        return bool(self.roles & STAFF_ROLES)

    def has_any_role(self, roles) -> bool:
        return bool(self.roles & set(roles))

    def can_access_student(self, student_id: str) -> bool:
        return self.is_staff or student_id in self.student_ids

    @property
    def display(self) -> str:
        return self.name or self.user_id


class TokenManager:
    """Verifies caller tokens; minting exists for the portal's tooling and tests"""

    def __init__(self):
        self.secret_key = settings.JWT_SECRET
        self.algorithm = settings.JWT_ALGORITHM
        self.issuer = settings.JWT_ISSUER
        self.audience = settings.JWT_AUDIENCE
        self.lifetime = timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)

    def create_access_token(
        self,
        subject: str,
        name: str = "",
        roles: Optional[List[str]] = None,
        student_ids: Optional[List[str]] = None,
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        issued_at = datetime.now(timezone.utc)
        claims = {
            "sub": str(subject),
            "name": name,
            "roles": list(roles or []),
            "student_ids": list(student_ids or []),
            "iat": issued_at,
            "exp": issued_at + (expires_delta or self.lifetime),
            "iss": self.issuer,
            "aud": self.audience,
            "type": TOKEN_TYPE,
            "jti": secrets.token_hex(16),
        }
        try:
            return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)
        except jwt.PyJWTError as e:
            raise SecurityError(f"Could not sign caller token: {e}")

    def decode_token(self, token: str) -> Dict[str, Any]:
        """
        Verify signature, expiry, issuer and audience.

        Raises:
            HTTPException: 401 for any token the portal did not issue
        """
        try:
            claims = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
            )
        except jwt.ExpiredSignatureError:
            raise _unauthorized("Token has expired")
        except jwt.InvalidTokenError as e:
            raise _unauthorized(f"Invalid token: {e}")

        if claims.get("type") != TOKEN_TYPE:
            raise _unauthorized("Invalid token type. Expected access")
        return claims

    def identity_from_token(self, token: str) -> CallerIdentity:
        claims = self.decode_token(token)
        if not claims.get("sub"):
            raise _unauthorized("Token missing subject")
        return CallerIdentity(
            user_id=str(claims["sub"]),
            name=claims.get("name") or "",
            roles=frozenset(r.upper() for r in claims.get("roles") or []),
            student_ids=frozenset(str(s) for s in claims.get("student_ids") or []),
        )


token_manager = TokenManager()
