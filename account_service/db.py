"""Configuración de la conexión a la base de datos usando SQLAlchemy para el Account Service."""

import os
import logging
import time
from typing import Optional

from sqlalchemy import create_engine, exc
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Carga variables de entorno desde el archivo .env
load_dotenv()

# Crea una clase base (Base) para los modelos declarativos
Base = declarative_base()


def get_database_url() -> Optional[str]:
    """
    Resuelve la cadena de conexión.
    Usa DATABASE_URL si existe; si no, la compone con DB_USER, DB_PASS, DB_HOST y DB_NAME.
    """
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        if database_url.startswith("mysql://"):
            database_url = database_url.replace("mysql://", "mysql+pymysql://", 1)
        return database_url

    required_db_vars = {"DB_USER", "DB_PASS", "DB_HOST", "DB_NAME"}
    missing_vars = required_db_vars - set(os.environ)
    if missing_vars:
        logger.error(f"Faltan variables de entorno para la base de datos: {', '.join(sorted(missing_vars))}")
        return None

    return (
        f"mysql+pymysql://{os.getenv('DB_USER')}:{os.getenv('DB_PASS')}"
        f"@{os.getenv('DB_HOST')}/{os.getenv('DB_NAME')}"
    )


def create_db_engine(database_url: str, max_attempts: int = 30, wait_time: float = 10) -> Engine:
    """
    Crea el engine y verifica la conexión, reintentando mientras la base de datos arranca.

    Raises:
        RuntimeError: si no se logra conectar tras `max_attempts` intentos.
    """
    attempts = 0
    while attempts < max_attempts:
        attempts += 1
        try:
            logger.info(f"Intentando conectar a la base de datos (Intento {attempts}/{max_attempts})...")
            engine = create_engine(database_url, pool_pre_ping=True)

            # Intenta conectar para verificar credenciales Y que la BD exista
            with engine.connect():
                logger.info("Conexión a la base de datos establecida exitosamente.")
            return engine

        except exc.SQLAlchemyError as e:
            logger.warning(f"Fallo al conectar a la base de datos: {e}")
            if attempts < max_attempts:
                time.sleep(wait_time)

    logger.error("No se pudo conectar a la base de datos después de %d intentos.", max_attempts)
    raise RuntimeError("Servicio de base de datos no disponible.")
