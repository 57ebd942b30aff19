"""
Pytest configuration and fixtures for the library API tests.
"""

import os
from datetime import date

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ADMIN_EMAILS"] = '["admin@example.com"]'
os.environ["JWT_SECRET_KEY"] = "test-secret-key-with-enough-length"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import library_app.auth as auth
import library_app.models as models
from library_app.database import Base, get_db
from library_app.images import ImageStorage, get_image_storage
from library_app.main import app
from library_app.security import get_password_hash


# =============================================================================
# Database
# =============================================================================

@pytest.fixture
def engine():
    """In-memory SQLite shared by every connection of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


# =============================================================================
# Domain objects
# =============================================================================

def make_user(db, email, role=auth.ROLE_USER, password="secret123"):
    user = models.User(
        id=f"user-{email.split('@')[0]}",
        email=email,
        hashed_password=get_password_hash(password),
        first_name="Test",
        last_name="User",
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def user(db_session):
    return make_user(db_session, "reader@example.com")


@pytest.fixture
def other_user(db_session):
    return make_user(db_session, "other@example.com")


@pytest.fixture
def admin(db_session):
    return make_user(db_session, "admin@example.com", role=auth.ROLE_ADMIN)


@pytest.fixture
def author(db_session):
    author = models.Author(first_name="Jane", last_name="Doe", birth_date=date(1970, 5, 1), country="UK")
    db_session.add(author)
    db_session.commit()
    db_session.refresh(author)
    return author


@pytest.fixture
def book(db_session, author):
    book = models.Book(
        isbn="123",
        title="The Quiet Library",
        genre="Mystery",
        description="A mystery among the shelves.",
        author_id=author.id,
    )
    db_session.add(book)
    db_session.commit()
    db_session.refresh(book)
    return book


# =============================================================================
# HTTP
# =============================================================================

@pytest.fixture
def image_storage(tmp_path):
    return ImageStorage(str(tmp_path / "images"), "/images")


@pytest.fixture
def client(db_session, image_storage):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_image_storage] = lambda: image_storage
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def user_headers(user):
    return {"Authorization": f"Bearer {auth.issue_access_token(user)}"}


@pytest.fixture
def other_headers(other_user):
    return {"Authorization": f"Bearer {auth.issue_access_token(other_user)}"}


@pytest.fixture
def admin_headers(admin):
    return {"Authorization": f"Bearer {auth.issue_access_token(admin)}"}
