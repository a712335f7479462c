"""
Configuraciones y fixtures compartidos para las pruebas automatizadas con pytest.
Levanta el Account Service en memoria (SQLite) para no depender de servicios externos.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from account_service.directory import AccountDirectory
from account_service.main import create_app
from account_service.store import UserStore
from account_service.utils import CredentialService

# Secreto de firma usado solo en pruebas
TEST_SECRET = "test_secret_key_only_for_pytest"
ALGORITHM = "HS256"
# Factor de trabajo mínimo de bcrypt para que las pruebas sean rápidas
TEST_ROUNDS = 4


@pytest.fixture
def credentials():
    return CredentialService(TEST_SECRET, rounds=TEST_ROUNDS)


@pytest.fixture
def store():
    """Store sobre una base SQLite en memoria compartida por todos los hilos."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    user_store = UserStore(engine)
    user_store.initialize()
    yield user_store
    user_store.close()


@pytest.fixture
def directory(store, credentials):
    return AccountDirectory(store, credentials)


@pytest.fixture
def client(store, credentials):
    """Cliente HTTP contra la app con el store y las credenciales inyectados."""
    app = create_app(store=store, credentials=credentials)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def registered_user(client):
    """Registra un usuario de prueba (contraseña "pw1") y devuelve la respuesta pública."""
    payload = {"name": "A", "email": "a@x.com", "password": "pw1"}
    r = client.post("/register", json=payload)
    assert r.status_code == 200, f"Registro del usuario de prueba falló: {r.text}"
    return r.json()
