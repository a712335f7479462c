"""Reglas del ciclo de vida de cuentas: registro, login, actualización y borrado."""

import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from account_service.models import User, UserStatus
from account_service.store import UserStore
from account_service.utils import CredentialService, MAX_PASSWORD_BYTES

logger = logging.getLogger(__name__)

# Campos que una actualización puede modificar
UPDATABLE_FIELDS = ("name", "email", "password", "status")


# --- Errores del directorio ---

class AccountError(Exception):
    """Error base del directorio de cuentas."""

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class InvalidInputError(AccountError):
    pass


class ConflictError(AccountError):
    pass


class NotFoundError(AccountError):
    pass


class InvalidCredentialsError(AccountError):
    pass


class StoreUnavailableError(AccountError):
    pass


@contextmanager
def store_errors(operation: str):
    """Traduce las excepciones de persistencia a errores del directorio."""
    try:
        yield
    except IntegrityError as e:
        logger.warning(f"Violación de unicidad durante '{operation}': {e.orig}")
        raise ConflictError("User already exists") from e
    except SQLAlchemyError as e:
        logger.error(f"Error de base de datos durante '{operation}': {e}", exc_info=True)
        raise StoreUnavailableError("Server Error") from e


class AccountDirectory:
    """Directorio de usuarios respaldado por un UserStore."""

    def __init__(self, store: UserStore, credentials: CredentialService):
        self.store = store
        self.credentials = credentials

    @staticmethod
    def _check_password_length(password: str) -> None:
        # bcrypt solo usa los primeros 72 bytes
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise InvalidInputError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")

    def register(self, name: Optional[str], email: Optional[str], password: Optional[str]) -> User:
        if not name or not email or not password:
            raise InvalidInputError("Fill inputs.")
        self._check_password_length(password)

        logger.info(f"Registro iniciado para email: {email}")
        with store_errors("register"):
            # Validación previa; el índice único de email es quien garantiza la unicidad
            if self.store.find_by_key("email", email):
                raise ConflictError("User already exists")

            user = User(
                name=name,
                email=email,
                password_hash=self.credentials.hash(password),
                status=UserStatus.ACTIVE.value,
            )
            user = self.store.insert(user)

        logger.info(f"Usuario registrado con id: {user.id}")
        return user

    def list_users(self) -> List[User]:
        with store_errors("list"):
            return self.store.find_all()

    def authenticate(self, email: Optional[str], password: Optional[str]) -> str:
        """Devuelve un token firmado para el usuario si las credenciales son correctas."""
        if not email or not password:
            raise InvalidInputError("Fill inputs.")

        with store_errors("authenticate"):
            user = self.store.find_by_key("email", email)
        if user is None:
            logger.warning(f"Login fallido, email no registrado: {email}")
            raise NotFoundError("User not found")

        if not self.credentials.verify(password, user.password_hash):
            logger.warning(f"Login fallido, contraseña incorrecta para user_id: {user.id}")
            raise InvalidCredentialsError("Incorrect password!")

        logger.info(f"Login exitoso para user_id: {user.id}")
        return self.credentials.issue_token(user.id)

    def delete_one(self, user_id: str) -> List[User]:
        with store_errors("delete_one"):
            deleted = self.store.delete_by_id(user_id)
            if deleted is None:
                raise NotFoundError("User not found")
            logger.info(f"Usuario {user_id} eliminado.")
            return self.store.find_all()

    def update(self, user_id: str, fields: Dict[str, Any]) -> User:
        """
        Actualiza solo los campos presentes en `fields`.

        Los campos ausentes o nulos conservan su valor almacenado; una contraseña
        nueva se guarda siempre como hash.
        """
        changes = {
            key: value for key, value in fields.items()
            if key in UPDATABLE_FIELDS and value is not None
        }
        # Un campo enviado vacío no puede borrar el valor almacenado
        if any(changes.get(key) == "" for key in ("name", "email", "password")):
            raise InvalidInputError("Fill inputs.")
        if "password" in changes:
            self._check_password_length(changes["password"])
            changes["password_hash"] = self.credentials.hash(changes.pop("password"))
        if isinstance(changes.get("status"), UserStatus):
            changes["status"] = changes["status"].value

        with store_errors("update"):
            if changes:
                user = self.store.update_by_id(user_id, changes)
            else:
                user = self.store.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        logger.info(f"Usuario {user_id} actualizado: {sorted(changes)}")
        return user

    def delete_many(self, user_ids: Any) -> List[User]:
        if (
            not user_ids
            or not isinstance(user_ids, (list, tuple))
            or not all(isinstance(user_id, str) for user_id in user_ids)
        ):
            raise InvalidInputError("Please provide valid user IDs to delete")

        with store_errors("delete_many"):
            deleted_count = self.store.delete_by_ids(user_ids)
            if deleted_count == 0:
                raise NotFoundError("Users not found")
            logger.info(f"{deleted_count} usuarios eliminados.")
            return self.store.find_all()
