#!/usr/bin/env python3
"""
Session Authentication
======================

Cookie-based login for the router dashboard and API.

Features:
- JWT session token carried in an HttpOnly cookie
- Single admin account, overridable from the environment
- Redirect to /login for unauthenticated requests
"""

import os
import secrets
from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Callable, Dict, Optional

import jwt
from flask import redirect, request
from loguru import logger

SESSION_COOKIE = "auth-session"
DEFAULT_USERNAME = "admin"
DEFAULT_PASSWORD = "admin"
SESSION_MAX_AGE_DAYS = 7


class SessionAuth:
    """
    Issues and validates session cookies.

    Credentials and the signing secret come from the ``auth`` config
    section; the ``AUTH_USERNAME``, ``AUTH_PASSWORD`` and
    ``SESSION_SECRET`` environment variables take precedence.
    """

    def __init__(self, auth_config: Optional[Dict] = None, environ=None):
        auth_config = auth_config or {}
        environ = os.environ if environ is None else environ

        self.username = environ.get("AUTH_USERNAME") or auth_config.get("username", DEFAULT_USERNAME)
        self.password = environ.get("AUTH_PASSWORD") or auth_config.get("password", DEFAULT_PASSWORD)
        self.max_age = timedelta(days=auth_config.get("session_max_age_days", SESSION_MAX_AGE_DAYS))
        self.secure_cookie = auth_config.get("secure_cookie", False)

        secret = environ.get("SESSION_SECRET")
        if not secret:
            logger.warning("Using randomly generated session secret. Set SESSION_SECRET for production.")
            secret = secrets.token_hex(32)
        self.secret_key = secret

        logger.info("SessionAuth initialized")

    def authenticate(self, username: str, password: str) -> bool:
        valid = (
            _same(username, self.username)
            and _same(password, self.password)
        )
        if valid:
            logger.info(f"User {username} authenticated successfully")
        else:
            logger.warning(f"Failed authentication attempt for {username}")
        return valid

    def generate_token(self, username: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "username": username,
            "iat": now,
            "exp": now + self.max_age,
        }
        return jwt.encode(payload, self.secret_key, algorithm="HS256")

    def decode_token(self, token: str) -> Optional[dict]:
        """
        Decode and validate a session token.

        Returns:
            Decoded payload dict or None if invalid
        """
        try:
            return jwt.decode(token, self.secret_key, algorithms=["HS256"])

        except jwt.ExpiredSignatureError:
            logger.warning("Session expired")
            return None

        except jwt.InvalidTokenError:
            logger.warning("Invalid session token")
            return None

    def current_user(self) -> Optional[dict]:
        token = request.cookies.get(SESSION_COOKIE)
        if not token:
            return None
        return self.decode_token(token)

    def start_session(self, response, username: str):
        response.set_cookie(
            SESSION_COOKIE,
            self.generate_token(username),
            max_age=int(self.max_age.total_seconds()),
            httponly=True,
            secure=self.secure_cookie,
            samesite="Lax",
            path="/",
        )
        return response

    def end_session(self, response):
        response.delete_cookie(SESSION_COOKIE, path="/")
        return response

    def require_auth(self, f: Callable) -> Callable:
        """Decorator: redirect to /login unless a valid session cookie is present."""
        @wraps(f)
        def wrapper(*args, **kwargs):
            user = self.current_user()
            if not user:
                return redirect("/login", code=303)

            request.user = user
            return f(*args, **kwargs)

        return wrapper


def _same(given, expected) -> bool:
    """Constant-time comparison that accepts any text, including non-ASCII."""
    given = "" if given is None else str(given)
    return secrets.compare_digest(given.encode("utf-8"), str(expected).encode("utf-8"))
