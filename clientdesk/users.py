"""
User accounts for the web login.

Passwords are stored as PBKDF2-SHA256 hashes with a per-user salt.
"""

import hashlib
import logging
import secrets
import sqlite3
from dataclasses import dataclass

from . import config
from .db import get_connection, now_iso, use_connection

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 200_000


@dataclass
class User:
    id: int
    username: str
    full_name: str
    email: str | None = None
    is_active: bool = True
    created_at: str | None = None
    last_login_at: str | None = None


def _row_to_user(row) -> User:
    return User(
        id=row["id"],
        username=row["username"],
        full_name=row["full_name"] or "",
        email=row["email"],
        is_active=bool(row["is_active"]),
        created_at=row["created_at"],
        last_login_at=row["last_login_at"],
    )


def hash_password(password: str, salt: str) -> str:
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ITERATIONS)
    return digest.hex()


def get_user(user_id: int, conn: sqlite3.Connection | None = None) -> User | None:
    with use_connection(conn) as c:
        row = c.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
    return _row_to_user(row) if row else None


def find_user(username: str) -> User | None:
    with get_connection() as conn:
        row = conn.execute(
            "SELECT * FROM users WHERE username = ? COLLATE NOCASE", (username,)
        ).fetchone()
    return _row_to_user(row) if row else None


def count_users() -> int:
    with get_connection() as conn:
        return conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]


def create_user(
    username: str, password: str, full_name: str = "", email: str | None = None
) -> User:
    """Create a login. Raises ValueError on blank input or a taken username."""
    username = (username or "").strip()
    if not username:
        raise ValueError("username is required")
    if not password:
        raise ValueError("password is required")
    if find_user(username):
        raise ValueError(f"User {username!r} already exists")

    salt = secrets.token_hex(16)
    with get_connection() as conn:
        cursor = conn.execute(
            """
            INSERT INTO users (username, full_name, email, password_salt, password_hash,
                               is_active, created_at)
            VALUES (?, ?, ?, ?, ?, 1, ?)
            """,
            (username, full_name or username, email, salt, hash_password(password, salt), now_iso()),
        )
        user = get_user(cursor.lastrowid, conn)

    logger.info("Created user %s", username)
    return user


def authenticate(username: str, password: str) -> User | None:
    """Return the user when the credentials match an active account."""
    if not username or not password:
        return None

    with get_connection() as conn:
        row = conn.execute(
            "SELECT * FROM users WHERE username = ? COLLATE NOCASE", (username,)
        ).fetchone()
        if row is None or not row["is_active"]:
            logger.info("Login failed for %s", username)
            return None

        expected = row["password_hash"]
        if not secrets.compare_digest(hash_password(password, row["password_salt"]), expected):
            logger.info("Login failed for %s", username)
            return None

        conn.execute("UPDATE users SET last_login_at = ? WHERE id = ?", (now_iso(), row["id"]))
        user = get_user(row["id"], conn)

    logger.info("User %s logged in", user.username)
    return user


def ensure_admin_user() -> User | None:
    """Create the bootstrap admin when no users exist. Returns it if created."""
    if count_users() > 0:
        return None

    if config.ADMIN_PASSWORD == "admin":
        logger.warning(
            "Creating bootstrap user %r with the default password; "
            "set CLIENTDESK_ADMIN_PASSWORD",
            config.ADMIN_USERNAME,
        )
    return create_user(config.ADMIN_USERNAME, config.ADMIN_PASSWORD, full_name="Administrator")
