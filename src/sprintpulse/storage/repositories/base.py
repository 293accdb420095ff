from typing import Any, Dict, Generic, List, Optional, Sequence, Type, TypeVar
import uuid

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

T = TypeVar("T")

class UpsertRepository(Generic[T]):
    """
    Repository base for rows keyed by a natural unique key.

    Writes are single INSERT ... ON CONFLICT DO UPDATE statements on Postgres
    and SQLite, so concurrent writers of the same key resolve last-write-wins.
    Other dialects fall back to select-then-update inside the caller's session.
    """

    model: Type[T]
    key_columns: Sequence[str] = ()

    def get_by_key(self, session: Session, **key: Any) -> Optional[T]:
        stmt = select(self.model).where(
            *[getattr(self.model, name) == key[name] for name in self.key_columns]
        )
        return session.scalars(stmt).first()

    def upsert(self, session: Session, key: Dict[str, Any], values: Dict[str, Any]) -> T:
        """
        Insert or overwrite the row identified by ``key``.

        Args:
            session: Database session (caller commits)
            key: Natural key columns and values
            values: Remaining column values

        Returns:
            The persisted row
        """
        dialect = session.get_bind().dialect.name

        if dialect in ("postgresql", "sqlite"):
            insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
            stmt = insert(self.model).values(id=str(uuid.uuid4()), **key, **values)
            stmt = stmt.on_conflict_do_update(
                index_elements=list(self.key_columns),
                set_={**values, "updated_at": func.now()},
            )
            session.execute(stmt)
            session.expire_all()
            return self.get_by_key(session, **key)

        existing = self.get_by_key(session, **key)
        if existing is None:
            existing = self.model(id=str(uuid.uuid4()), **key, **values)
            session.add(existing)
        else:
            for name, value in values.items():
                setattr(existing, name, value)
        session.flush()
        return existing

    def list_for_project(self, session: Session, project_id: str, limit: int = 100) -> List[T]:
        stmt = (
            select(self.model)
            .where(self.model.project_id == project_id)
            .order_by(self.model.day.desc())
            .limit(limit)
        )
        return list(session.scalars(stmt).all())
