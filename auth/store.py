"""
auth/store.py -- SQLAlchemy Core persistence layer for identities and roles.

Pattern: Repository + Data Mapper.
IdentityStore is the repository; _row_to_identity / _row_to_role are the
mappers. Route and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Schema:
  users             -- identities (password_hash is "<salt>:<key>" hex)
  roles             -- named roles, seeded with admin and user
  permissions       -- "<resource>.<action>" capability names, seeded
  role_permissions  -- which role grants which permission, seeded
  user_roles        -- the (identity, role) bindings

Seeding is idempotent: rows are inserted only if their unique name is absent,
so constructing the store on every startup is safe.

Layer rule: no imports from api/, vault/, or audit/.
"""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    func,
    select,
)
from sqlalchemy.engine import Engine

from auth.models import Identity, Role, RoleBinding
from core.db import make_engine, new_id, now_iso

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("email", String(255), unique=True),
    Column("password_hash", String(255), nullable=False),
    Column("totp_secret", String(255)),  # NULL until TOTP is enabled
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

roles = Table(
    "roles",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("description", Text),
    Column("created_at", String(32), nullable=False),
)

permissions = Table(
    "permissions",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("resource", String(255), nullable=False),
    Column("action", String(255), nullable=False),
)

role_permissions = Table(
    "role_permissions",
    metadata,
    Column("role_id", String(36), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
    Column("permission_id", String(36), ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False),
    PrimaryKeyConstraint("role_id", "permission_id"),
)

user_roles = Table(
    "user_roles",
    metadata,
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("role_id", String(36), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
    Column("assigned_at", String(32), nullable=False),
    PrimaryKeyConstraint("user_id", "role_id"),
)

ADMIN_ROLE = "admin"
USER_ROLE = "user"

_SEED_ROLES: dict[str, str] = {
    ADMIN_ROLE: "Full system administrator",
    USER_ROLE: "Regular user with limited access",
}

_SEED_PERMISSIONS: list[str] = [
    "users.read",
    "users.write",
    "roles.read",
    "roles.write",
    "secrets.read",
    "secrets.write",
    "audit.read",
]

_SEED_GRANTS: dict[str, list[str]] = {
    ADMIN_ROLE: list(_SEED_PERMISSIONS),
    USER_ROLE: ["users.read", "secrets.read", "secrets.write", "audit.read"],
}


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class IdentityStore:
    """Repository for Identity, Role and RoleBinding data.

    Usage:
        store = IdentityStore("sqlite:///:memory:")
        uid = store.create_identity(Identity(username="alice", password_hash=record))
        store.assign_role(uid, "admin")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = make_engine(db_url)
        metadata.create_all(self.engine)
        self._seed()

    def _seed(self) -> None:
        with self.engine.begin() as conn:
            role_ids: dict[str, str] = {}
            for name, description in _SEED_ROLES.items():
                rid = conn.execute(select(roles.c.id).where(roles.c.name == name)).scalar()
                if rid is None:
                    rid = new_id()
                    conn.execute(roles.insert().values(id=rid, name=name, description=description, created_at=now_iso()))
                role_ids[name] = rid

            perm_ids: dict[str, str] = {}
            for name in _SEED_PERMISSIONS:
                pid = conn.execute(select(permissions.c.id).where(permissions.c.name == name)).scalar()
                if pid is None:
                    pid = new_id()
                    resource, action = name.split(".", 1)
                    conn.execute(permissions.insert().values(id=pid, name=name, resource=resource, action=action))
                perm_ids[name] = pid

            for role_name, granted in _SEED_GRANTS.items():
                existing = set(
                    conn.execute(
                        select(role_permissions.c.permission_id).where(role_permissions.c.role_id == role_ids[role_name])
                    ).scalars()
                )
                for perm in granted:
                    if perm_ids[perm] not in existing:
                        conn.execute(
                            role_permissions.insert().values(role_id=role_ids[role_name], permission_id=perm_ids[perm])
                        )

    # ------------------------------------------------------------------
    # Identity queries
    # ------------------------------------------------------------------

    def count_identities(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(users)).scalar()
        return result or 0

    def create_identity(self, identity: Identity) -> str:
        """Insert a new identity and return its id.

        Raises sqlalchemy.exc.IntegrityError if the username or email already
        exists. Callers turn that into a 409.
        """
        identity_id = identity.id or new_id()
        stamp = now_iso()
        with self.engine.begin() as conn:
            conn.execute(
                users.insert().values(
                    id=identity_id,
                    username=identity.username,
                    email=identity.email,
                    password_hash=identity.password_hash,
                    totp_secret=identity.totp_secret,
                    is_active=identity.is_active,
                    created_at=stamp,
                    updated_at=stamp,
                )
            )
        return identity_id

    def get_by_username(self, username: str) -> Identity | None:
        """Look up an identity by exact username (case-sensitive)."""
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.username == username)).fetchone()
        return _row_to_identity(row) if row is not None else None

    def get_by_id(self, identity_id: str) -> Identity | None:
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.id == identity_id)).fetchone()
        return _row_to_identity(row) if row is not None else None

    def list_identities(self) -> list[Identity]:
        """Return all identities, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(users.select().order_by(users.c.created_at.desc())).fetchall()
        return [_row_to_identity(r) for r in rows]

    def set_active(self, identity_id: str, is_active: bool) -> bool:
        """Returns True if a row was updated, False if identity_id was not found."""
        with self.engine.begin() as conn:
            result = conn.execute(
                users.update().where(users.c.id == identity_id).values(is_active=is_active, updated_at=now_iso())
            )
        return result.rowcount > 0

    def set_totp_secret(self, identity_id: str, secret: str | None) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(
                users.update().where(users.c.id == identity_id).values(totp_secret=secret, updated_at=now_iso())
            )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Roles and bindings
    # ------------------------------------------------------------------

    def list_roles(self) -> list[Role]:
        with self.engine.connect() as conn:
            rows = conn.execute(roles.select().order_by(roles.c.name)).fetchall()
        return [_row_to_role(r) for r in rows]

    def get_role_by_id(self, role_id: str) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(roles.select().where(roles.c.id == role_id)).fetchone()
        return _row_to_role(row) if row is not None else None

    def get_role_by_name(self, name: str) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(roles.select().where(roles.c.name == name)).fetchone()
        return _row_to_role(row) if row is not None else None

    def get_role_names(self, identity_id: str) -> list[str]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(roles.c.name)
                .select_from(user_roles.join(roles, roles.c.id == user_roles.c.role_id))
                .where(user_roles.c.user_id == identity_id)
                .order_by(roles.c.name)
            ).scalars()
            return list(rows)

    def list_bindings(self, identity_id: str) -> list[RoleBinding]:
        """Return the identity's role bindings ordered by role name."""
        return [RoleBinding(identity_id=identity_id, role_name=name) for name in self.get_role_names(identity_id)]

    def has_role(self, identity_id: str, role_name: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(user_roles.c.user_id)
                .select_from(user_roles.join(roles, roles.c.id == user_roles.c.role_id))
                .where((user_roles.c.user_id == identity_id) & (roles.c.name == role_name))
                .limit(1)
            ).fetchone()
        return row is not None

    def assign_role(self, identity_id: str, role_name: str) -> bool:
        """Bind role_name to the identity.

        Returns True if a new binding was written, False if it already existed.
        Raises LookupError if the role or identity does not exist.
        """
        with self.engine.begin() as conn:
            role_id = conn.execute(select(roles.c.id).where(roles.c.name == role_name)).scalar()
            if role_id is None:
                raise LookupError(f"Unknown role: {role_name}")
            if conn.execute(select(users.c.id).where(users.c.id == identity_id)).scalar() is None:
                raise LookupError("Unknown identity")
            exists = conn.execute(
                select(user_roles.c.user_id).where(
                    (user_roles.c.user_id == identity_id) & (user_roles.c.role_id == role_id)
                )
            ).fetchone()
            if exists is not None:
                return False
            conn.execute(user_roles.insert().values(user_id=identity_id, role_id=role_id, assigned_at=now_iso()))
        return True

    def revoke_role(self, identity_id: str, role_name: str) -> bool:
        with self.engine.begin() as conn:
            role_id = conn.execute(select(roles.c.id).where(roles.c.name == role_name)).scalar()
            if role_id is None:
                return False
            result = conn.execute(
                user_roles.delete().where((user_roles.c.user_id == identity_id) & (user_roles.c.role_id == role_id))
            )
        return result.rowcount > 0

    def get_permissions(self, identity_id: str) -> set[str]:
        """Return every permission name granted through the identity's roles."""
        joined = user_roles.join(role_permissions, role_permissions.c.role_id == user_roles.c.role_id).join(
            permissions, permissions.c.id == role_permissions.c.permission_id
        )
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(permissions.c.name).select_from(joined).where(user_roles.c.user_id == identity_id)
            ).scalars()
            return set(rows)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_identity(row) -> Identity:
    return Identity(
        id=row.id,
        username=row.username,
        email=row.email,
        password_hash=row.password_hash,
        totp_secret=row.totp_secret,
        is_active=bool(row.is_active),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_role(row) -> Role:
    return Role(id=row.id, name=row.name, description=row.description or "")
