"""Define el modelo de la tabla 'users' usando SQLAlchemy ORM."""

import enum
import uuid

from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime

from account_service.db import Base


class UserStatus(str, enum.Enum):
    """Estado del ciclo de vida de una cuenta."""
    ACTIVE = "active"
    INACTIVE = "inactive"


def generate_user_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    # Identificador opaco, generado al insertar e inmutable
    id = Column(String(36), primary_key=True, default=generate_user_id)
    name = Column(String(100), nullable=False)
    # El índice único es la garantía real de unicidad del email
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default=UserStatus.ACTIVE.value)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
