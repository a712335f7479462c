"""Pruebas de las reglas del ciclo de vida de cuentas (AccountDirectory)."""

import pytest
from jose import jwt
from sqlalchemy.exc import OperationalError

from account_service.directory import (
    AccountDirectory,
    ConflictError,
    InvalidCredentialsError,
    InvalidInputError,
    NotFoundError,
    StoreUnavailableError,
)
from account_service.models import UserStatus
from account_service.store import UserStore
from conftest import TEST_SECRET, ALGORITHM


class BrokenStore(UserStore):
    """Store cuyo acceso a la base de datos siempre falla."""

    def _fail(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("database is down"))

    find_by_key = find_by_id = find_all = insert = _fail
    update_by_id = delete_by_id = delete_by_ids = _fail


# --- Registro ---

def test_register_creates_active_user_with_hashed_password(directory, credentials):
    user = directory.register("A", "a@x.com", "pw1")

    assert user.id
    assert user.status == UserStatus.ACTIVE.value
    assert user.password_hash != "pw1"
    assert credentials.verify("pw1", user.password_hash)


def test_register_duplicate_email_conflicts(directory, store):
    directory.register("A", "a@x.com", "pw1")

    with pytest.raises(ConflictError):
        directory.register("Otro", "a@x.com", "pw2")

    matches = [u for u in store.find_all() if u.email == "a@x.com"]
    assert len(matches) == 1, "Debe existir exactamente un registro para el email."


def test_register_conflict_when_precheck_misses(store, credentials):
    """El índice único detecta el duplicado aunque la validación previa no lo vea."""

    class RacyStore(UserStore):
        def find_by_key(self, field, value):
            return None

    racy = RacyStore(store.engine)
    directory = AccountDirectory(racy, credentials)
    directory.register("A", "a@x.com", "pw1")

    with pytest.raises(ConflictError):
        directory.register("B", "a@x.com", "pw2")
    assert len(store.find_all()) == 1


@pytest.mark.parametrize("name, email, password", [
    (None, "a@x.com", "pw1"),
    ("A", "", "pw1"),
    ("A", "a@x.com", None),
])
def test_register_requires_all_fields(directory, name, email, password):
    with pytest.raises(InvalidInputError):
        directory.register(name, email, password)


# --- Autenticación ---

def test_authenticate_returns_token_for_user(directory):
    user = directory.register("A", "a@x.com", "pw1")

    token = directory.authenticate("a@x.com", "pw1")

    payload = jwt.decode(token, TEST_SECRET, algorithms=[ALGORITHM])
    assert payload["sub"] == user.id


def test_authenticate_wrong_password(directory):
    directory.register("A", "a@x.com", "pw1")

    with pytest.raises(InvalidCredentialsError):
        directory.authenticate("a@x.com", "wrong")


def test_authenticate_unknown_email(directory):
    with pytest.raises(NotFoundError):
        directory.authenticate("nobody@x.com", "pw1")


@pytest.mark.parametrize("email, password", [("", "pw1"), ("a@x.com", ""), (None, None)])
def test_authenticate_requires_both_fields(directory, email, password):
    with pytest.raises(InvalidInputError):
        directory.authenticate(email, password)


# --- Borrado individual ---

def test_delete_one_removes_only_that_user(directory):
    first = directory.register("A", "a@x.com", "pw1")
    second = directory.register("B", "b@x.com", "pw2")

    remaining = directory.delete_one(first.id)

    assert [u.id for u in remaining] == [second.id]


def test_delete_one_unknown_id(directory):
    with pytest.raises(NotFoundError):
        directory.delete_one("does-not-exist")


# --- Actualización ---

def test_update_status_only_keeps_other_fields(directory):
    user = directory.register("A", "a@x.com", "pw1")

    updated = directory.update(user.id, {"status": "inactive"})

    assert updated.status == "inactive"
    assert updated.name == "A"
    assert updated.email == "a@x.com"
    assert updated.password_hash == user.password_hash


def test_update_ignores_null_fields(directory):
    user = directory.register("A", "a@x.com", "pw1")

    updated = directory.update(user.id, {"name": None, "email": None, "status": UserStatus.INACTIVE})

    assert updated.name == "A"
    assert updated.email == "a@x.com"
    assert updated.status == "inactive"


def test_update_password_is_rehashed(directory, credentials):
    user = directory.register("A", "a@x.com", "pw1")

    updated = directory.update(user.id, {"password": "pw2"})

    assert updated.password_hash != "pw2"
    assert credentials.verify("pw2", updated.password_hash)
    assert directory.authenticate("a@x.com", "pw2")
    with pytest.raises(InvalidCredentialsError):
        directory.authenticate("a@x.com", "pw1")


def test_update_with_no_changes_returns_current_record(directory):
    user = directory.register("A", "a@x.com", "pw1")

    assert directory.update(user.id, {}).email == "a@x.com"


def test_update_unknown_id(directory):
    with pytest.raises(NotFoundError):
        directory.update("does-not-exist", {"name": "Z"})
    with pytest.raises(NotFoundError):
        directory.update("does-not-exist", {})


def test_update_email_to_existing_one_conflicts(directory):
    directory.register("A", "a@x.com", "pw1")
    other = directory.register("B", "b@x.com", "pw2")

    with pytest.raises(ConflictError):
        directory.update(other.id, {"email": "a@x.com"})


@pytest.mark.parametrize("fields", [{"password": ""}, {"email": ""}, {"name": ""}, {"email": "", "name": ""}])
def test_update_rejects_empty_fields(directory, fields):
    user = directory.register("A", "a@x.com", "pw1")

    with pytest.raises(InvalidInputError):
        directory.update(user.id, fields)

    stored = directory.store.find_by_id(user.id)
    assert stored.name == "A"
    assert stored.email == "a@x.com"
    assert directory.authenticate("a@x.com", "pw1")


# --- Límite de 72 bytes de bcrypt ---

def test_register_rejects_password_over_72_bytes(directory):
    with pytest.raises(InvalidInputError):
        directory.register("A", "a@x.com", "a" * 72 + "one")
    assert directory.list_users() == []


def test_update_rejects_password_over_72_bytes(directory):
    user = directory.register("A", "a@x.com", "pw1")

    with pytest.raises(InvalidInputError):
        directory.update(user.id, {"password": "ñ" * 37})
    assert directory.authenticate("a@x.com", "pw1")


def test_authenticate_rejects_password_sharing_72_byte_prefix(directory):
    directory.register("A", "a@x.com", "a" * 72)

    assert directory.authenticate("a@x.com", "a" * 72)
    with pytest.raises(InvalidCredentialsError):
        directory.authenticate("a@x.com", "a" * 72 + "two")


# --- Borrado masivo ---

@pytest.mark.parametrize("ids", [None, [], (), "abc", {"id": "abc"}, 42, [["x"]], [{"a": 1}], ["ok", 1]])
def test_delete_many_rejects_invalid_ids(directory, ids):
    with pytest.raises(InvalidInputError):
        directory.delete_many(ids)


def test_delete_many_all_unknown(directory):
    directory.register("A", "a@x.com", "pw1")

    with pytest.raises(NotFoundError):
        directory.delete_many(["nope-1", "nope-2"])
    assert len(directory.list_users()) == 1


def test_delete_many_mixed_ids_removes_existing(directory):
    first = directory.register("A", "a@x.com", "pw1")
    second = directory.register("B", "b@x.com", "pw2")
    third = directory.register("C", "c@x.com", "pw3")

    remaining = directory.delete_many([first.id, "nope", third.id])

    assert [u.id for u in remaining] == [second.id]


# --- Fallos de persistencia ---

def test_store_failures_surface_as_store_unavailable(store, credentials):
    directory = AccountDirectory(BrokenStore(store.engine), credentials)

    with pytest.raises(StoreUnavailableError):
        directory.list_users()
    with pytest.raises(StoreUnavailableError):
        directory.register("A", "a@x.com", "pw1")
    with pytest.raises(StoreUnavailableError):
        directory.authenticate("a@x.com", "pw1")
    with pytest.raises(StoreUnavailableError):
        directory.delete_one("abc")
    with pytest.raises(StoreUnavailableError):
        directory.update("abc", {"name": "Z"})
    with pytest.raises(StoreUnavailableError):
        directory.delete_many(["abc"])
