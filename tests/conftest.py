from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from contract_tracker import config, models
from contract_tracker.auth import get_current_user, hash_password
from contract_tracker.database import Base, get_db
from contract_tracker.main import app


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def upload_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "UPLOAD_DIR", str(tmp_path))
    return tmp_path


def make_user(db, role="editor", email=None, password="correct-horse"):
    pwd_hash, salt = hash_password(password)
    user = models.User(
        email=email or f"{role}@example.com",
        password_hash=pwd_hash,
        password_salt=salt,
        display_name=role.title(),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def contract_data(**overrides):
    today = date.today()
    data = {
        "name": "Acme Hosting",
        "type": "vendor",
        "start_date": today - timedelta(days=200),
        "end_date": today + timedelta(days=165),
    }
    data.update(overrides)
    return data


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def client_as(db, client):
    """Factory returning (client, user) authenticated with the given role"""

    def _client_as(role="editor"):
        user = make_user(db, role=role)
        app.dependency_overrides[get_current_user] = lambda: user
        return client, user

    return _client_as
