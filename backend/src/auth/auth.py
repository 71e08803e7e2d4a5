import hashlib
import secrets
import sqlite3
from datetime import datetime, timedelta

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from backend.config import settings
from backend.data.database_setup import get_db_connection
from backend.src.lms.data import new_id

ROLES = ("teacher", "student", "admin")

security = HTTPBearer(auto_error=False)


def hash_password(password):
    """Hash password using SHA-256."""
    return hashlib.sha256(password.encode()).hexdigest()


def public_user(row):
    return {"id": row["id"], "email": row["email"], "full_name": row["full_name"], "role": row["role"]}


def create_user(conn, email, password, full_name, role, grade=None, class_name=None):
    """Insert a user (and a student profile for students). Caller owns the transaction.

    Raises sqlite3.IntegrityError on a duplicate email.
    """
    user_id = new_id()
    conn.execute(
        "INSERT INTO users (id, email, password, full_name, role) VALUES (?, ?, ?, ?, ?)",
        (user_id, email, hash_password(password), full_name, role),
    )
    student_id = None
    if role == "student":
        student_id = new_id()
        conn.execute(
            "INSERT INTO students (id, user_id, name, email, grade, class) VALUES (?, ?, ?, ?, ?, ?)",
            (student_id, user_id, full_name, email, grade, class_name),
        )
    return user_id, student_id


def login_user(conn, email, password):
    """Return the user row for valid credentials, otherwise None."""
    return conn.execute(
        "SELECT id, email, full_name, role FROM users WHERE email = ? AND password = ?",
        (email, hash_password(password)),
    ).fetchone()


def issue_token(conn, user_id):
    token = secrets.token_hex(16)
    now = datetime.now()
    expires = now + timedelta(days=settings.TOKEN_EXPIRE_DAYS)
    with conn:
        conn.execute(
            "INSERT INTO auth_tokens (token, user_id, created_at, expires_at) VALUES (?, ?, ?, ?)",
            (token, user_id, now.isoformat(), expires.isoformat()),
        )
    return token, expires.isoformat()


def revoke_token(conn, token):
    with conn:
        conn.execute("DELETE FROM auth_tokens WHERE token = ?", (token,))


def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)):
    """Get current user from a bearer token"""
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")

    conn = get_db_connection()
    try:
        token_data = conn.execute(
            "SELECT user_id, expires_at FROM auth_tokens WHERE token = ?",
            (credentials.credentials,),
        ).fetchone()
        if not token_data or datetime.fromisoformat(token_data["expires_at"]) < datetime.now():
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

        user = conn.execute(
            "SELECT id, email, full_name, role FROM users WHERE id = ?",
            (token_data["user_id"],),
        ).fetchone()
    except sqlite3.Error as e:
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        conn.close()

    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

    current = public_user(user)
    current["token"] = credentials.credentials
    return current
