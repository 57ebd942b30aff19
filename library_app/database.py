from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from library_app.config import settings


def build_engine(url: str):
    """
    Engine for PostgreSQL in production; SQLite URLs get a single-thread-safe setup
    """
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            echo=settings.DB_ECHO,
        )
    return create_engine(
        url,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_pre_ping=True,
        echo=settings.DB_ECHO,
    )


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

# Dependency for a request-scoped session
def get_db():
    """
    One session per request; every multi-write operation commits once on it
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
