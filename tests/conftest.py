"""
Shared fixtures: a throwaway SQLite database per test, seeded accounts and a Flask client.
"""
import asyncio
import os
import tempfile

# Must be set before config is imported
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="vibrakas-logs-"))
os.environ["PAYMENT_API_KEY"] = ""
os.environ["SMTP_HOST"] = ""

import pytest

from config import config
from db import db, User, Role, TreasurerAccount, UserRepository, TreasurerAccountRepository
from services.audit_service import RequestContext
from services.auth_service import hash_password
from utils.retry import reset_circuit_breakers

PASSWORD = "rahasia123"


def run(coro):
    """Run a coroutine from a sync fixture or test without touching the current loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@pytest.fixture
def database(tmp_path, monkeypatch):
    """Fresh schema in a temporary file; gateway and SMTP in offline mode."""
    monkeypatch.setattr(db, "db_path", str(tmp_path / "vibrakas.db"))
    monkeypatch.setattr(config, "UPLOAD_DIR", tmp_path / "uploads")
    monkeypatch.setattr(config, "BACKUP_DIR", tmp_path / "backups")
    monkeypatch.setattr(config, "BCRYPT_ROUNDS", 4)
    monkeypatch.setattr(config, "PAYMENT_API_KEY", "")
    monkeypatch.setattr(config, "PAYMENT_PRIVATE_KEY", "private-key")
    monkeypatch.setattr(config, "SMTP_HOST", "")
    monkeypatch.setattr(config, "QRIS_ENABLED", False)
    monkeypatch.setattr(config, "INTERNAL_API_TOKEN", "")
    monkeypatch.setattr(config, "RETRY_DELAY", 0.0)
    reset_circuit_breakers()
    run(db.initialize())
    yield db
    reset_circuit_breakers()


def make_user(name: str, email: str, role: Role = Role.ANGGOTA, balance: int = 0) -> User:
    return run(UserRepository.create(User(
        name=name,
        email=email,
        password_hash=hash_password(PASSWORD),
        role=role,
        balance=balance,
        email_verified=True
    )))


@pytest.fixture
def admin(database) -> User:
    return make_user("Admin Kas", "admin@example.com", Role.ADMIN)


@pytest.fixture
def bendahara(database) -> User:
    return make_user("Bendahara Kas", "bendahara@example.com", Role.BENDAHARA)


@pytest.fixture
def member(database) -> User:
    return make_user("Anggota Satu", "anggota@example.com", Role.ANGGOTA, balance=50000)


@pytest.fixture
def other_member(database) -> User:
    return make_user("Anggota Dua", "anggota2@example.com", Role.ANGGOTA)


@pytest.fixture
def admin_ctx(admin) -> RequestContext:
    return RequestContext(actor_id=admin.id, ip_address="127.0.0.1", user_agent="pytest")


@pytest.fixture
def treasurer_account(database) -> TreasurerAccount:
    return run(TreasurerAccountRepository.create(TreasurerAccount(
        bank_name="BCA",
        account_name="Bendahara Vibra",
        account_number="1234567890",
        qris_image="/uploads/qris-1.png",
        display_order=1
    )))


@pytest.fixture
def app(database):
    from app import create_app
    flask_app = create_app()
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


def login(client, email: str, password: str = PASSWORD):
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.get_json()
    return response
