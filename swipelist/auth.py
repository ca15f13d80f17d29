import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import jwt, JWTError
from fastapi import Request, HTTPException

JWT_SECRET = os.environ.get("JWT_SECRET", "change-me-in-production")
JWT_ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")
JWT_AUDIENCE = os.environ.get("JWT_AUDIENCE", "authenticated") or None
ACCESS_TOKEN_TTL = timedelta(hours=1)


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: str

    @property
    def display_name(self) -> str:
        return display_name_for(self.email)


def normalize_email(value: str | None) -> str:
    return (value or "").strip().lower()


def display_name_for(email: str) -> str:
    return email.split("@", 1)[0]


def create_access_token(user_id: str, email: str, ttl: timedelta = ACCESS_TOKEN_TTL) -> str:
    """Mint a token shaped like the auth provider's; used by tests and local tooling."""
    payload = {
        "sub": str(user_id),
        "email": email,
        "exp": datetime.now(timezone.utc) + ttl,
    }
    if JWT_AUDIENCE:
        payload["aud"] = JWT_AUDIENCE
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(
            token,
            JWT_SECRET,
            algorithms=[JWT_ALGORITHM],
            audience=JWT_AUDIENCE,
            options={"verify_aud": JWT_AUDIENCE is not None},
        )
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")


def extract_bearer_token(request: Request) -> str:
    header = request.headers.get("authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")
    return token.strip()


async def get_current_identity(request: Request) -> Identity:
    payload = decode_token(extract_bearer_token(request))
    user_id = payload.get("sub")
    email = normalize_email(payload.get("email"))
    if not user_id or not email:
        raise HTTPException(status_code=401, detail="Invalid token")
    return Identity(user_id=str(user_id), email=email)
