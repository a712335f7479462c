"""Funciones de utilidad para el servicio de cuentas: hash de contraseñas y manejo de JWT."""

import os
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from passlib.context import CryptContext
from jose import JWTError, jwt
from dotenv import load_dotenv

# Carga variables de entorno desde .env
load_dotenv()

logger = logging.getLogger(__name__)

# --- Configuración de Seguridad ---
ALGORITHM = "HS256"

ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24))

# Factor de trabajo de bcrypt (2^rounds iteraciones)
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", 10))

# bcrypt ignora todo lo que pase de 72 bytes
MAX_PASSWORD_BYTES = 72


class CredentialService:
    """
    Hash/verificación de contraseñas y emisión de tokens de acceso.

    No guarda estado: todo depende de la clave de firma y del factor de trabajo
    con que se construye.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = ALGORITHM,
        expire_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES,
        rounds: int = BCRYPT_ROUNDS,
    ):
        if not secret_key:
            raise ValueError("Se requiere una clave secreta para firmar tokens.")
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes
        self.pwd_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
        )

    @classmethod
    def from_env(cls) -> "CredentialService":
        """
        Construye el servicio leyendo JWT_SECRET_KEY del entorno.

        Raises:
            RuntimeError: si JWT_SECRET_KEY no está definida.
        """
        secret_key = os.getenv("JWT_SECRET_KEY")
        if not secret_key:
            logger.critical("JWT_SECRET_KEY no está definida en las variables de entorno.")
            raise RuntimeError("JWT_SECRET_KEY no está definida.")
        return cls(secret_key)

    def hash(self, password: str) -> str:
        """Genera el hash de una contraseña plana usando bcrypt (sal nueva en cada llamada)."""
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"La contraseña supera {MAX_PASSWORD_BYTES} bytes.")
        return self.pwd_context.hash(password)

    def verify(self, plain_password: str, hashed_password: str) -> bool:
        """Verifica una contraseña plana contra un hash almacenado."""
        # Nunca se aceptan contraseñas que bcrypt truncaría
        if len(plain_password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            return False
        try:
            return self.pwd_context.verify(plain_password, hashed_password)
        except (ValueError, TypeError) as e:
            logger.warning(f"Hash almacenado ilegible: {e}")
            return False

    def issue_token(self, user_id: str) -> str:
        """
        Genera un token de acceso JWT para el usuario.

        Args:
            user_id: Identificador del usuario; viaja en el claim 'sub'.

        Returns:
            String del JWT codificado.
        """
        expire = datetime.now(timezone.utc) + timedelta(minutes=self.expire_minutes)
        to_encode = {"sub": str(user_id), "exp": expire}
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def decode_token(self, token: str) -> Optional[Dict]:
        """
        Decodifica y valida un token JWT.

        Returns:
            El payload si la firma es válida y no ha expirado; en caso contrario, None.
        """
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError as e:
            logger.warning(f"Fallo en decodificación de token: {e}")
            return None
