import asyncio
import unittest
from datetime import datetime, timedelta, timezone
from unittest import mock

from fastapi import HTTPException
from jose import jwt
from starlette.requests import Request

from swipelist.auth import (
    JWT_ALGORITHM,
    JWT_AUDIENCE,
    JWT_SECRET,
    create_access_token,
    get_current_identity,
)


def _request(authorization: str | None) -> Request:
    headers = []
    if authorization is not None:
        headers.append((b"authorization", authorization.encode()))
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers})


def _resolve(authorization: str | None):
    return asyncio.run(get_current_identity(_request(authorization)))


class TestIdentityResolution(unittest.TestCase):
    def test_resolves_identity_and_normalizes_email(self):
        token = create_access_token("user-1", "  Alice@Example.COM ")
        identity = _resolve(f"Bearer {token}")
        self.assertEqual(identity.user_id, "user-1")
        self.assertEqual(identity.email, "alice@example.com")
        self.assertEqual(identity.display_name, "alice")

    def test_scheme_is_case_insensitive(self):
        token = create_access_token("user-1", "alice@example.com")
        self.assertEqual(_resolve(f"bearer {token}").email, "alice@example.com")

    def test_rejects_missing_or_malformed_header(self):
        for header in (None, "", "Basic abc", "Bearer"):
            with self.assertRaises(HTTPException) as ctx:
                _resolve(header)
            self.assertEqual(ctx.exception.status_code, 401)

    def test_rejects_expired_token(self):
        token = create_access_token("user-1", "alice@example.com", ttl=timedelta(seconds=-30))
        with self.assertRaises(HTTPException) as ctx:
            _resolve(f"Bearer {token}")
        self.assertEqual(ctx.exception.status_code, 401)

    def test_rejects_foreign_signature(self):
        payload = {"sub": "user-1", "email": "alice@example.com"}
        if JWT_AUDIENCE:
            payload["aud"] = JWT_AUDIENCE
        token = jwt.encode(payload, JWT_SECRET + "-other", algorithm=JWT_ALGORITHM)
        with self.assertRaises(HTTPException):
            _resolve(f"Bearer {token}")

    def test_rejects_token_without_email(self):
        payload = {"sub": "user-1"}
        if JWT_AUDIENCE:
            payload["aud"] = JWT_AUDIENCE
        token = jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)
        with self.assertRaises(HTTPException) as ctx:
            _resolve(f"Bearer {token}")
        self.assertEqual(ctx.exception.status_code, 401)

    def test_rejects_wrong_audience(self):
        payload = {"sub": "user-1", "email": "alice@example.com", "aud": "someone-else"}
        token = jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)
        with mock.patch("swipelist.auth.JWT_AUDIENCE", "authenticated"):
            with self.assertRaises(HTTPException) as ctx:
                _resolve(f"Bearer {token}")
        self.assertEqual(ctx.exception.status_code, 401)

    def test_disabled_audience_accepts_any_aud_claim(self):
        payload = {
            "sub": "user-1",
            "email": "alice@example.com",
            "aud": "authenticated",
            "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
        }
        token = jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)
        with mock.patch("swipelist.auth.JWT_AUDIENCE", None):
            identity = _resolve(f"Bearer {token}")
        self.assertEqual(identity.email, "alice@example.com")


if __name__ == "__main__":
    unittest.main()
