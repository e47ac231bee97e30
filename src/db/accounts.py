# src/db/accounts.py
from __future__ import annotations

import sqlite3
from typing import Dict, List, Optional

from werkzeug.security import check_password_hash, generate_password_hash

from db.database import connect, fetch_all, fetch_one, transaction
from db.errors import ConflictError, NotFoundError, Unauthorized, ValidationError
from db.models import DEFAULT_DIVISION, Address, Division, Identity, Role, User
from utils.logger import get_logger
from utils.pure import like_pattern, now_ts

_logger = get_logger(__name__)

COUNTRY = "Perú"
DIVISION_PREF_KEY = "admin_division"


def require_identity(identity: Optional[Identity]) -> Identity:
    if identity is None:
        raise Unauthorized("no authenticated user")
    return identity


def require_staff(identity: Optional[Identity]) -> Identity:
    identity = require_identity(identity)
    if not identity.is_staff:
        raise Unauthorized(f"user {identity.user_id} is not staff")
    return identity


def require_admin(identity: Optional[Identity]) -> Identity:
    identity = require_identity(identity)
    if identity.role is not Role.ADMIN:
        raise Unauthorized(f"user {identity.user_id} is not an admin")
    return identity


# ---------------------------
# Registration & login
# ---------------------------


async def email_available(email: str) -> bool:
    async with connect() as conn:
        row = await fetch_one(
            conn, "SELECT 1 FROM users WHERE email = ? LIMIT 1;", (email.strip().lower(),)
        )
    return row is None


async def register_user(name: str, email: str, password: str) -> User:
    """Create a customer account with a hashed password; emails are stored lower-cased."""
    email = email.strip().lower()
    async with connect() as conn:
        try:
            cur = await conn.execute(
                """
                INSERT INTO users (name, email, password, role, created_at)
                VALUES (?, ?, ?, 'USER', ?);
                """,
                (name, email, generate_password_hash(password), now_ts()),
            )
        except sqlite3.IntegrityError as exc:
            raise ConflictError(f"email {email} already registered", field="email") from exc
        user_id = cur.lastrowid
        await cur.close()
        row = await fetch_one(conn, "SELECT * FROM users WHERE id = ?;", (user_id,))
    _logger.info(f"Registered user {user_id} ({email})")
    return User.from_row(row)


async def authenticate(email: str, password: str) -> Optional[Identity]:
    """Return the caller's Identity if the credentials match; accounts without a password never match."""
    async with connect() as conn:
        row = await fetch_one(
            conn,
            "SELECT id, role, password FROM users WHERE email = ?;",
            (email.strip().lower(),),
        )
    if not row or not row["password"] or not check_password_hash(row["password"], password):
        return None
    return Identity(user_id=row["id"], role=Role(row["role"]))


async def get_user(user_id: int) -> Optional[User]:
    async with connect() as conn:
        row = await fetch_one(conn, "SELECT * FROM users WHERE id = ?;", (user_id,))
    return User.from_row(row) if row else None


async def ensure_admin(name: str, email: str, password: str) -> User:
    """Create the bootstrap admin account unless that email already exists."""
    email = email.strip().lower()
    async with connect() as conn:
        await conn.execute(
            """
            INSERT INTO users (name, email, password, role, created_at)
            VALUES (?, ?, ?, 'ADMIN', ?)
            ON CONFLICT (email) DO NOTHING;
            """,
            (name, email, generate_password_hash(password), now_ts()),
        )
        row = await fetch_one(conn, "SELECT * FROM users WHERE email = ?;", (email,))
    return User.from_row(row)


# ---------------------------
# Staff & customer administration
# ---------------------------


async def list_staff() -> List[User]:
    async with connect() as conn:
        rows = await fetch_all(
            conn,
            "SELECT * FROM users WHERE role IN ('ADMIN', 'SELLER') ORDER BY created_at DESC;",
        )
    return [User.from_row(r) for r in rows]


async def save_staff_user(data: Dict, user_id: Optional[int] = None) -> User:
    """Create or edit a user from the admin panel.

    A blank password keeps the current one on edit and is rejected on create.
    """
    email = data["email"].strip().lower()
    password = (data.get("password") or "").strip()
    role = Role(data.get("role", Role.SELLER)).value
    async with connect() as conn:
        try:
            if user_id is None:
                if not password:
                    raise ValidationError("password required", {"password": "required"})
                cur = await conn.execute(
                    """
                    INSERT INTO users (name, email, password, role, image, created_at)
                    VALUES (?, ?, ?, ?, ?, ?);
                    """,
                    (
                        data["name"],
                        email,
                        generate_password_hash(password),
                        role,
                        data.get("image"),
                        now_ts(),
                    ),
                )
                user_id = cur.lastrowid
            else:
                cur = await conn.execute(
                    """
                    UPDATE users
                    SET name = ?, email = ?, role = ?, image = ?,
                        password = COALESCE(?, password)
                    WHERE id = ?;
                    """,
                    (
                        data["name"],
                        email,
                        role,
                        data.get("image"),
                        generate_password_hash(password) if password else None,
                        user_id,
                    ),
                )
                if not cur.rowcount:
                    raise NotFoundError(f"user {user_id} not found")
            await cur.close()
        except sqlite3.IntegrityError as exc:
            raise ConflictError(f"email {email} already in use", field="email") from exc
        row = await fetch_one(conn, "SELECT * FROM users WHERE id = ?;", (user_id,))
    _logger.info(f"Saved user {user_id} with role {role}")
    return User.from_row(row)


async def delete_user(user_id: int) -> None:
    async with connect() as conn:
        cur = await conn.execute("DELETE FROM users WHERE id = ?;", (user_id,))
        deleted = cur.rowcount
        await cur.close()
    if not deleted:
        raise NotFoundError(f"user {user_id} not found")
    _logger.info(f"Deleted user {user_id}")


async def search_customers(query: str, limit: int = 5) -> List[User]:
    """Customers whose name or email contains ``query``; shorter than 3 chars returns nothing."""
    query = (query or "").strip().lower()
    if len(query) < 3:
        return []
    like = like_pattern(query)
    async with connect() as conn:
        rows = await fetch_all(
            conn,
            """
            SELECT * FROM users
            WHERE role = 'USER' AND (LOWER(name) LIKE ? ESCAPE '\\' OR email LIKE ? ESCAPE '\\')
            ORDER BY name
            LIMIT ?;
            """,
            (like, like, limit),
        )
    return [User.from_row(r) for r in rows]


async def admin_reset_password(user_id: int, new_password: str) -> None:
    async with connect() as conn:
        cur = await conn.execute(
            "UPDATE users SET password = ? WHERE id = ?;",
            (generate_password_hash(new_password), user_id),
        )
        updated = cur.rowcount
        await cur.close()
    if not updated:
        raise NotFoundError(f"user {user_id} not found")
    _logger.info(f"Password reset for user {user_id}")


async def update_customer_profile(user_id: int, name: str, email: str) -> User:
    email = email.strip().lower()
    async with connect() as conn:
        try:
            cur = await conn.execute(
                "UPDATE users SET name = ?, email = ? WHERE id = ?;", (name, email, user_id)
            )
        except sqlite3.IntegrityError as exc:
            raise ConflictError(f"email {email} already in use", field="email") from exc
        updated = cur.rowcount
        await cur.close()
        if not updated:
            raise NotFoundError(f"user {user_id} not found")
        row = await fetch_one(conn, "SELECT * FROM users WHERE id = ?;", (user_id,))
    return User.from_row(row)


# ---------------------------
# Admin preferences
# ---------------------------


async def get_admin_division(user_id: int) -> Division:
    """Stored division preference, or the default when absent or not a known division."""
    async with connect() as conn:
        row = await fetch_one(
            conn,
            "SELECT value FROM admin_preferences WHERE user_id = ? AND key = ?;",
            (user_id, DIVISION_PREF_KEY),
        )
    try:
        return Division(row["value"]) if row else DEFAULT_DIVISION
    except ValueError:
        return DEFAULT_DIVISION


async def set_admin_division(user_id: int, division: Division) -> None:
    division = Division(division)
    async with connect() as conn:
        await conn.execute(
            """
            INSERT INTO admin_preferences (user_id, key, value) VALUES (?, ?, ?)
            ON CONFLICT (user_id, key) DO UPDATE SET value = excluded.value;
            """,
            (user_id, DIVISION_PREF_KEY, division.value),
        )


# ---------------------------
# Addresses
# ---------------------------


def derive_location(data: Dict) -> Dict[str, str]:
    """City and province columns from the submitted ubigeo fields."""
    department = data.get("department") or ""
    province = data.get("province") or ""
    city = data.get("district") or data.get("city") or ""
    if department and province and "-" not in province:
        province = f"{department} - {province}"
    return {"city": city, "province": province}


async def get_user_address(identity: Identity) -> Optional[Address]:
    identity = require_identity(identity)
    async with connect() as conn:
        row = await fetch_one(
            conn,
            "SELECT * FROM addresses WHERE user_id = ? ORDER BY id LIMIT 1;",
            (identity.user_id,),
        )
    return Address.from_row(row) if row else None


async def set_user_address(identity: Identity, data: Dict) -> tuple[Address, bool]:
    """Create or replace the caller's address. Returns (address, created)."""
    identity = require_identity(identity)
    values = {
        "first_name": data["first_name"],
        "last_name": data["last_name"],
        "address": data["address"],
        "address2": data.get("address2"),
        "phone": data["phone"],
        "dni": data.get("dni"),
        **derive_location(data),
        "country": COUNTRY,
    }
    # one address row per user
    async with connect() as conn, transaction(conn):
        stored = await fetch_one(
            conn,
            "SELECT id FROM addresses WHERE user_id = ? ORDER BY id LIMIT 1;",
            (identity.user_id,),
        )
        if stored:
            assignments = ", ".join(f"{k} = ?" for k in values)
            await conn.execute(
                f"UPDATE addresses SET {assignments} WHERE id = ? AND user_id = ?;",
                tuple(values.values()) + (stored["id"], identity.user_id),
            )
            address_id = stored["id"]
        else:
            cols = ", ".join(["user_id", *values, "created_at"])
            marks = ", ".join("?" * (len(values) + 2))
            cur = await conn.execute(
                f"INSERT INTO addresses ({cols}) VALUES ({marks});",
                (identity.user_id, *values.values(), now_ts()),
            )
            address_id = cur.lastrowid
            await cur.close()
        row = await fetch_one(
            conn,
            "SELECT * FROM addresses WHERE id = ? AND user_id = ?;",
            (address_id, identity.user_id),
        )
    return Address.from_row(row), stored is None


async def delete_user_address(identity: Identity, address_id: int) -> None:
    """Delete one of the caller's addresses; another user's id is reported as not found."""
    identity = require_identity(identity)
    async with connect() as conn:
        cur = await conn.execute(
            "DELETE FROM addresses WHERE id = ? AND user_id = ?;",
            (address_id, identity.user_id),
        )
        deleted = cur.rowcount
        await cur.close()
    if not deleted:
        raise NotFoundError(f"address {address_id} not found for user {identity.user_id}")
    _logger.info(f"User {identity.user_id} deleted address {address_id}")
