"""Modelos Pydantic (schemas) para validación de datos de entrada/salida en el Account Service."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from account_service.models import UserStatus

# --- Schemas de Usuario ---

class UserCreate(BaseModel):
    # Opcionales: la presencia la valida el directorio (400, no 422)
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class UserUpdate(BaseModel):
    """Actualización parcial: solo se aplican los campos enviados."""
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    status: Optional[UserStatus] = None


class UserResponse(BaseModel):
    """Vista pública del usuario. Nunca incluye el hash de la contraseña."""
    id: str
    name: str
    email: str
    status: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class UserBulkDelete(BaseModel):
    ids: Any = None


# --- Schemas de Login ---

class UserLogin(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class Token(BaseModel):
    """Token de acceso JWT devuelto tras un login exitoso."""
    token: str
