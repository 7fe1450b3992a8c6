"""
vault/store.py -- SQLAlchemy Core persistence for SecretRecord.

Every read and delete is scoped by owner id in the WHERE clause [IDOR guard].
A record owned by someone else is indistinguishable from a missing record:
both return None / False, and the route answers 404 for both.

Security: all queries use bound parameters.
"""

from __future__ import annotations

from sqlalchemy import Column, MetaData, String, Table, Text, select
from sqlalchemy.engine import Engine

from core.db import make_engine, new_id, now_iso
from vault.models import SecretRecord

_metadata = MetaData()

_secrets = Table(
    "secrets",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("description", Text),
    Column("encrypted_data", Text, nullable=False),
    Column("created_by", String(36), nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


class SecretStore:
    def __init__(self, db_url: str) -> None:
        self.engine: Engine = make_engine(db_url)
        _metadata.create_all(self.engine)

    def create_secret(self, record: SecretRecord) -> str:
        """Insert and return the new id. Raises IntegrityError on a duplicate name."""
        secret_id = new_id()
        stamp = now_iso()
        with self.engine.begin() as conn:
            conn.execute(
                _secrets.insert().values(
                    id=secret_id,
                    name=record.name,
                    description=record.description,
                    encrypted_data=record.envelope,
                    created_by=record.owner_id,
                    created_at=stamp,
                    updated_at=stamp,
                )
            )
        return secret_id

    def list_for_owner(self, owner_id: str) -> list[SecretRecord]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_secrets).where(_secrets.c.created_by == owner_id).order_by(_secrets.c.created_at.desc())
            ).fetchall()
        return [_row_to_secret(r) for r in rows]

    def get_for_owner(self, secret_id: str, owner_id: str) -> SecretRecord | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_secrets).where((_secrets.c.id == secret_id) & (_secrets.c.created_by == owner_id))
            ).fetchone()
        return _row_to_secret(row) if row is not None else None

    def delete_for_owner(self, secret_id: str, owner_id: str) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(
                _secrets.delete().where((_secrets.c.id == secret_id) & (_secrets.c.created_by == owner_id))
            )
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


def _row_to_secret(row) -> SecretRecord:
    return SecretRecord(
        id=row.id,
        name=row.name,
        description=row.description or "",
        envelope=row.encrypted_data,
        owner_id=row.created_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
