"""Persistencia de usuarios sobre SQLAlchemy (colaborador de almacenamiento del directorio)."""

import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from account_service.db import Base
from account_service.models import User

logger = logging.getLogger(__name__)

# Campos por los que se permite buscar con find_by_key
LOOKUP_FIELDS = {"id", "email", "name", "status"}


class UserStore:
    """
    Handle explícito sobre la tabla 'users'.

    Cada método abre su propia sesión y ejecuta una única transacción corta,
    de modo que operaciones sobre registros distintos no se bloquean entre sí.
    Las excepciones de SQLAlchemy se propagan sin traducir; el directorio
    decide cómo exponerlas.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
        )

    def initialize(self) -> None:
        """Crea las tablas (y el índice único de email) si no existen."""
        Base.metadata.create_all(bind=self.engine)
        logger.info("Tablas de base de datos (users) verificadas/creadas.")

    def close(self) -> None:
        self.engine.dispose()
        logger.info("Conexiones a la base de datos cerradas.")

    def find_by_key(self, field: str, value: Any) -> Optional[User]:
        if field not in LOOKUP_FIELDS:
            raise ValueError(f"Campo de búsqueda no soportado: {field}")
        with self.SessionLocal() as db:
            return db.query(User).filter(getattr(User, field) == value).first()

    def find_by_id(self, user_id: str) -> Optional[User]:
        with self.SessionLocal() as db:
            return db.get(User, user_id)

    def find_all(self) -> List[User]:
        with self.SessionLocal() as db:
            return db.query(User).all()

    def insert(self, user: User) -> User:
        with self.SessionLocal() as db:
            try:
                db.add(user)
                db.commit()
                db.refresh(user)
            except Exception:
                db.rollback()
                raise
            return user

    def update_by_id(self, user_id: str, fields: Dict[str, Any]) -> Optional[User]:
        """Aplica solo los campos recibidos (merge), nunca reemplaza el registro completo."""
        with self.SessionLocal() as db:
            user = db.get(User, user_id)
            if user is None:
                return None
            try:
                for key, value in fields.items():
                    setattr(user, key, value)
                db.commit()
                db.refresh(user)
            except Exception:
                db.rollback()
                raise
            return user

    def delete_by_id(self, user_id: str) -> Optional[User]:
        with self.SessionLocal() as db:
            user = db.get(User, user_id)
            if user is None:
                return None
            try:
                db.delete(user)
                db.commit()
            except Exception:
                db.rollback()
                raise
            return user

    def delete_by_ids(self, user_ids: Sequence[str]) -> int:
        with self.SessionLocal() as db:
            try:
                deleted = (
                    db.query(User)
                    .filter(User.id.in_(list(user_ids)))
                    .delete(synchronize_session=False)
                )
                db.commit()
            except Exception:
                db.rollback()
                raise
            return deleted
