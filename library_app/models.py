from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Date, Index, text
from sqlalchemy.orm import relationship
from library_app.database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every column in this schema stores"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Author(Base):
    __tablename__ = "authors"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    birth_date = Column(Date, nullable=True)
    country = Column(String(100), nullable=False, default="")

    # Relationship
    books = relationship("Book", back_populates="author")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Book(Base):
    __tablename__ = "books"

    id = Column(Integer, primary_key=True, index=True)
    isbn = Column(String(20), unique=True, nullable=False)
    title = Column(String(200), nullable=False)
    genre = Column(String(100), nullable=False, default="")
    description = Column(String(500), nullable=False, default="")
    image_path = Column(String(255), nullable=True)

    # Foreign keys
    author_id = Column(Integer, ForeignKey("authors.id"), nullable=False, index=True)

    # Cache of the open rental, written in the same transaction as the ledger
    taken_at = Column(DateTime, nullable=True)
    return_at = Column(DateTime, nullable=True)

    # Relationships
    author = relationship("Author", back_populates="books")
    rentals = relationship("BookRental", back_populates="book", cascade="all, delete-orphan")


class BookRental(Base):
    __tablename__ = "book_rentals"

    id = Column(Integer, primary_key=True, index=True)
    book_id = Column(Integer, ForeignKey("books.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    borrowed_at = Column(DateTime, nullable=False, default=utcnow)
    due_at = Column(DateTime, nullable=True)
    returned_at = Column(DateTime, nullable=True)

    book = relationship("Book", back_populates="rentals")
    user = relationship("User", back_populates="rentals")

    __table_args__ = (
        # At most one open rental per book
        Index(
            "ix_book_rentals_open_book",
            "book_id",
            unique=True,
            sqlite_where=text("returned_at IS NULL"),
            postgresql_where=text("returned_at IS NULL"),
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.returned_at is None


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    role = Column(String(20), nullable=False, default="User")
    refresh_token = Column(String(255), nullable=True, index=True)
    refresh_token_expiry_time = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    rentals = relationship("BookRental", back_populates="user")
