import logging
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.exc import IntegrityError
from typing import Iterable, List, Optional, Set

import library_app.models as models
import library_app.schemas as schemas
from library_app.exceptions import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# ====================== HELPERS ======================

def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()

# ====================== AUTHOR QUERIES ======================

def get_author(db: Session, author_id: int) -> Optional[models.Author]:
    """
    Author by ID, or None
    """
    return db.query(models.Author).filter(models.Author.id == author_id).first()

def find_author_by_id(db: Session, author_id: int) -> models.Author:
    db_author = get_author(db, author_id)
    if db_author is None:
        raise NotFoundError(f"Author with ID {author_id} not found.")
    return db_author

def find_author_by_name(db: Session, name: str) -> Optional[models.Author]:
    """
    Exact "First Last" match.

    Case-sensitive and without whitespace normalization: "jane doe" or
    "Jane  Doe" do not find "Jane Doe".
    """
    full_name = models.Author.first_name + " " + models.Author.last_name
    return db.query(models.Author).filter(full_name == name).first()

def get_authors(db: Session) -> List[models.Author]:
    return db.query(models.Author).order_by(models.Author.id).all()

# ====================== AUTHOR WRITES ======================

def create_author(db: Session, author: schemas.AuthorCreate) -> models.Author:
    db_author = models.Author(**author.model_dump())
    db.add(db_author)
    db.commit()
    db.refresh(db_author)

    logger.info(f"Author created: {db_author.id} {db_author.full_name}")
    return db_author

def update_author(
    db: Session,
    author_id: int,
    author_update: schemas.AuthorUpdate
) -> models.Author:
    if author_id != author_update.id:
        raise ValidationError("ID in URL does not match the author's ID.")

    db_author = find_author_by_id(db, author_id)

    update_data = author_update.model_dump(exclude={"id"})
    for field, value in update_data.items():
        setattr(db_author, field, value)

    db.commit()
    db.refresh(db_author)
    return db_author

def delete_author(db: Session, author_id: int) -> None:
    """
    Delete an author; refused while any book still references it
    """
    db_author = find_author_by_id(db, author_id)

    books_count = db.query(models.Book).filter(models.Book.author_id == author_id).count()
    if books_count:
        raise ConflictError(
            f"Author with ID {author_id} still has {books_count} book(s).",
        )

    db.delete(db_author)
    db.commit()
    logger.info(f"Author deleted: {author_id}")

# ====================== BOOK QUERIES ======================

def get_book(db: Session, book_id: int, load_author: bool = True) -> Optional[models.Book]:
    query = db.query(models.Book)

    if load_author:
        query = query.options(joinedload(models.Book.author))

    return query.filter(models.Book.id == book_id).first()

def find_book_by_id(db: Session, book_id: int) -> models.Book:
    db_book = get_book(db, book_id)
    if db_book is None:
        raise NotFoundError("Book not found")
    return db_book

def get_book_by_isbn(db: Session, isbn: str) -> Optional[models.Book]:
    return (
        db.query(models.Book)
        .options(joinedload(models.Book.author))
        .filter(models.Book.isbn == isbn)
        .first()
    )

def find_book_by_isbn(db: Session, isbn: str) -> models.Book:
    db_book = get_book_by_isbn(db, isbn)
    if db_book is None:
        raise NotFoundError(f"Book with ISBN {isbn} not found")
    return db_book

def find_books_filtered(
    db: Session,
    search: Optional[str] = None,
    genre: Optional[str] = None,
    author_name: Optional[str] = None,
) -> List[models.Book]:
    """
    Books filtered by title substring (case-insensitive), exact genre and
    exact author name. An author name that matches nobody yields no books.
    """
    query = db.query(models.Book).options(joinedload(models.Book.author))

    if not _is_blank(author_name):
        db_author = find_author_by_name(db, author_name)
        if db_author is None:
            return []
        query = query.filter(models.Book.author_id == db_author.id)

    if not _is_blank(search):
        query = query.filter(models.Book.title.icontains(search, autoescape=True))
    if not _is_blank(genre):
        query = query.filter(models.Book.genre == genre)

    return query.order_by(models.Book.id).all()

def get_books_by_author(db: Session, author_id: int) -> List[models.Book]:
    db_author = find_author_by_id(db, author_id)
    return (
        db.query(models.Book)
        .options(joinedload(models.Book.author))
        .filter(models.Book.author_id == db_author.id)
        .order_by(models.Book.id)
        .all()
    )

def open_rental_book_ids(db: Session, book_ids: Iterable[int]) -> Set[int]:
    """
    Subset of the given books that currently have an open rental
    """
    book_ids = list(book_ids)
    if not book_ids:
        return set()
    rows = (
        db.query(models.BookRental.book_id)
        .filter(
            models.BookRental.book_id.in_(book_ids),
            models.BookRental.returned_at.is_(None),
        )
        .all()
    )
    return {row.book_id for row in rows}

# ====================== BOOK WRITES ======================

def _ensure_author_exists(db: Session, author_id: int) -> None:
    if get_author(db, author_id) is None:
        raise ValidationError("Author not found.")

def _ensure_isbn_free(db: Session, isbn: str, book_id: Optional[int] = None) -> None:
    query = db.query(models.Book).filter(models.Book.isbn == isbn)
    if book_id is not None:
        query = query.filter(models.Book.id != book_id)
    if query.first() is not None:
        raise ConflictError(f"Book with ISBN {isbn} already exists.")

def _commit_book(db: Session, db_book: models.Book) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError(f"Book with ISBN {db_book.isbn} already exists.")

def create_book(
    db: Session,
    book: schemas.BookCreate,
    image_path: Optional[str] = None
) -> models.Book:
    _ensure_author_exists(db, book.author_id)
    _ensure_isbn_free(db, book.isbn)

    db_book = models.Book(**book.model_dump(), image_path=image_path)
    db.add(db_book)
    _commit_book(db, db_book)

    logger.info(f"Book created: {db_book.id} {db_book.title!r}")
    return get_book(db, db_book.id)

def update_book(
    db: Session,
    book_id: int,
    book_update: schemas.BookUpdate,
    image_path: Optional[str] = None
) -> models.Book:
    """
    Overwrite the catalog fields of a book. Rental state is not editable here.
    """
    if book_id != book_update.id:
        raise ValidationError("ID mismatch")

    db_book = find_book_by_id(db, book_id)
    _ensure_author_exists(db, book_update.author_id)
    _ensure_isbn_free(db, book_update.isbn, book_id=book_id)

    update_data = book_update.model_dump(exclude={"id"})
    for field, value in update_data.items():
        setattr(db_book, field, value)
    if image_path is not None:
        db_book.image_path = image_path

    _commit_book(db, db_book)
    return get_book(db, book_id)

def set_book_image(db: Session, book_id: int, image_path: str) -> Optional[str]:
    """
    Point a book at a new image; returns the path it referenced before
    """
    db_book = find_book_by_id(db, book_id)
    old_path = db_book.image_path
    db_book.image_path = image_path
    db.commit()
    return old_path

def delete_book(db: Session, book_id: int) -> Optional[str]:
    """
    Delete a book together with its rental history.
    Refused while the book is checked out.
    Returns the image path the book referenced so the caller can drop the file.
    """
    db_book = find_book_by_id(db, book_id)
    if open_rental_book_ids(db, [book_id]):
        raise ConflictError("Book is currently borrowed and cannot be deleted.")

    image_path = db_book.image_path
    db.delete(db_book)
    db.commit()
    logger.info(f"Book deleted: {book_id}")
    return image_path
