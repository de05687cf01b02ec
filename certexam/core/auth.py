from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from typing import Optional, Dict, Any
from datetime import datetime, timedelta, timezone
import hashlib
import uuid
import bcrypt
import jwt
from certexam.core.config import Settings
from certexam.core.errors import BadRequest, Unauthorized, Forbidden

class TokenData(BaseModel):
    id: str
    role: str
    email: str

bearer = HTTPBearer(auto_error=False)

class CredentialService:
    """bcrypt password hashing; bcrypt only reads the first 72 bytes so longer secrets are refused."""

    def __init__(self, rounds: int = 12):
        self.rounds = rounds

    def hash(self, password: str) -> str:
        try:
            return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")
        except ValueError:
            raise BadRequest("Password must be at most 72 bytes")

    def verify(self, password: str, hashed: str) -> bool:
        try:
            return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            return False

def digest_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()

class TokenService:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.algorithm = settings.JWT_ALGORITHM

    def _encode(self, claims: Dict[str, Any], ttl: timedelta, secret: str) -> str:
        now = datetime.now(timezone.utc)
        payload = dict(claims, iat=int(now.timestamp()), exp=int((now + ttl).timestamp()))
        return jwt.encode(payload, secret, algorithm=self.algorithm)

    def issue_access(self, user) -> str:
        return self._encode(
            {"id": user.id, "role": user.role, "email": user.email, "type": "access"},
            timedelta(minutes=self.settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            self.settings.JWT_ACCESS_SECRET.get_secret_value(),
        )

    def issue_refresh(self, user) -> str:
        return self._encode(
            {"id": user.id, "email": user.email, "type": "refresh", "jti": uuid.uuid4().hex},
            timedelta(days=self.settings.REFRESH_TOKEN_EXPIRE_DAYS),
            self.settings.JWT_REFRESH_SECRET.get_secret_value(),
        )

    def decode_access(self, token: str) -> TokenData:
        try:
            payload = jwt.decode(token, self.settings.JWT_ACCESS_SECRET.get_secret_value(), algorithms=[self.algorithm])
        except jwt.PyJWTError:
            raise Unauthorized("Invalid or expired token")
        if payload.get("type") != "access":
            raise Unauthorized("Invalid or expired token")
        return TokenData(id=payload["id"], role=payload["role"], email=payload["email"])

    def decode_refresh(self, token: str) -> Dict[str, Any]:
        try:
            payload = jwt.decode(token, self.settings.JWT_REFRESH_SECRET.get_secret_value(), algorithms=[self.algorithm])
        except jwt.PyJWTError:
            raise Unauthorized("Invalid or expired refresh token")
        if payload.get("type") != "refresh":
            raise Unauthorized("Invalid or expired refresh token")
        return payload

def get_current_user(request: Request, creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer)) -> TokenData:
    token = creds.credentials if creds else request.cookies.get("accessToken")
    if not token:
        raise Unauthorized("Access token required")
    return TokenService(request.app.state.settings).decode_access(token)

def require_roles(*required: str):
    def checker(user: TokenData = Depends(get_current_user)):
        if user.role not in required:
            raise Forbidden("Access denied")
        return user
    return checker
