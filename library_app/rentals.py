"""
Rental lifecycle: borrow, return, availability and due-date notifications.

A book is available iff no rental row for it has ``returned_at IS NULL``.
The rental ledger is the source of truth; ``Book.taken_at`` and
``Book.return_at`` mirror the open rental and are written only in the same
transaction that opens or closes it. The unique partial index
``ix_book_rentals_open_book`` backs the one-open-rental-per-book rule at the
storage layer, so two racing borrows cannot both commit.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

import library_app.crud as crud
import library_app.models as models
import library_app.schemas as schemas
from library_app.config import settings
from library_app.exceptions import (
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

NO_ACTIVE_RENTALS_MESSAGE = "No active rentals."


def _require_user(user_id: Optional[str]) -> None:
    if not user_id:
        raise UnauthorizedError("User ID is required")


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def get_open_rental(db: Session, book_id: int) -> Optional[models.BookRental]:
    return (
        db.query(models.BookRental)
        .filter(
            models.BookRental.book_id == book_id,
            models.BookRental.returned_at.is_(None),
        )
        .first()
    )


def get_active_rental(db: Session, book_id: int, user_id: str) -> Optional[models.BookRental]:
    return (
        db.query(models.BookRental)
        .filter(
            models.BookRental.book_id == book_id,
            models.BookRental.user_id == user_id,
            models.BookRental.returned_at.is_(None),
        )
        .first()
    )


def is_available(db: Session, book_id: int) -> bool:
    """True iff the book has no open rental."""
    return get_open_rental(db, book_id) is None


def is_book_rented_by_user(db: Session, book_id: int, user_id: str) -> bool:
    _require_user(user_id)
    return get_active_rental(db, book_id, user_id) is not None


def borrow(
    db: Session,
    user_id: str,
    book_id: int,
    return_at: datetime,
    now: Optional[datetime] = None,
) -> models.BookRental:
    """
    Open a rental of ``book_id`` for ``user_id`` due at ``return_at``.

    Raises UnauthorizedError without a user, NotFoundError for an unknown
    book, ValidationError when the due date is not in the future and
    ConflictError when the book already has an open rental.
    """
    _require_user(user_id)
    now = now or models.utcnow()
    return_at = _to_naive_utc(return_at)

    db_book = (
        db.query(models.Book)
        .filter(models.Book.id == book_id)
        .with_for_update()
        .first()
    )
    if db_book is None:
        raise NotFoundError("Book not found")

    if return_at <= now:
        raise ValidationError("Return date must be in the future.")

    if get_open_rental(db, book_id) is not None:
        logger.warning(f"Borrow rejected: book {book_id} is already borrowed (user {user_id})")
        raise ConflictError("Book is already borrowed.")

    rental = models.BookRental(
        book_id=book_id,
        user_id=user_id,
        borrowed_at=now,
        due_at=return_at,
    )
    db.add(rental)
    db_book.taken_at = now
    db_book.return_at = return_at

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning(f"Borrow lost a race: book {book_id} was borrowed concurrently (user {user_id})")
        raise ConflictError("Book is already borrowed.")

    db.refresh(rental)
    logger.info(f"Book {book_id} borrowed by user {user_id} until {return_at.isoformat()}")
    return rental


def return_book(
    db: Session,
    user_id: str,
    book_id: int,
    now: Optional[datetime] = None,
) -> models.BookRental:
    """
    Close the caller's open rental of ``book_id``. The row is kept as history.
    """
    _require_user(user_id)
    now = now or models.utcnow()

    rental = get_active_rental(db, book_id, user_id)
    if rental is None:
        raise NotFoundError("Rental not found")

    rental.returned_at = now
    db_book = crud.get_book(db, book_id, load_author=False)
    if db_book is not None:
        db_book.taken_at = None
        db_book.return_at = None

    db.commit()
    db.refresh(rental)
    logger.info(f"Book {book_id} returned by user {user_id}")
    return rental


def rental_to_schema(rental: models.BookRental) -> schemas.Rental:
    book = rental.book
    author = book.author if book is not None else None
    return schemas.Rental(
        id=rental.id,
        book_id=rental.book_id,
        user_id=rental.user_id,
        title=book.title if book is not None else "",
        genre=book.genre if book is not None else "",
        description=book.description if book is not None else "",
        author_name=author.full_name if author is not None else "Unknown",
        borrowed_at=rental.borrowed_at,
        return_at=rental.due_at,
        returned_at=rental.returned_at,
        is_active=rental.is_active,
    )


def _rentals_query(db: Session):
    return db.query(models.BookRental).options(
        joinedload(models.BookRental.book).joinedload(models.Book.author)
    )


def user_rentals(db: Session, user_id: str) -> List[schemas.Rental]:
    """Every rental of the user, open ones and history, newest first."""
    _require_user(user_id)
    rentals = (
        _rentals_query(db)
        .filter(models.BookRental.user_id == user_id)
        .order_by(models.BookRental.borrowed_at.desc(), models.BookRental.id.desc())
        .all()
    )
    return [rental_to_schema(rental) for rental in rentals]


def rentals_for_book(db: Session, book_id: int) -> List[schemas.Rental]:
    crud.find_book_by_id(db, book_id)
    rentals = (
        _rentals_query(db)
        .filter(models.BookRental.book_id == book_id)
        .order_by(models.BookRental.borrowed_at.desc(), models.BookRental.id.desc())
        .all()
    )
    return [rental_to_schema(rental) for rental in rentals]


def classify_due_date(
    due_at: datetime,
    now: datetime,
    window: timedelta = timedelta(hours=24),
) -> Optional[str]:
    """
    ``error`` when overdue, ``warning`` when due within ``window``
    (half-open: now <= due_at < now + window), otherwise None.
    """
    if due_at < now:
        return "error"
    if due_at - now < window:
        return "warning"
    return None


def notifications(
    db: Session,
    user_id: str,
    now: Optional[datetime] = None,
) -> List[schemas.Notification]:
    _require_user(user_id)
    now = now or models.utcnow()
    window = timedelta(hours=settings.DUE_SOON_HOURS)

    rentals = (
        _rentals_query(db)
        .filter(
            models.BookRental.user_id == user_id,
            models.BookRental.returned_at.is_(None),
        )
        .order_by(models.BookRental.due_at)
        .all()
    )
    if not rentals:
        return [schemas.Notification(message=NO_ACTIVE_RENTALS_MESSAGE, type="info")]

    result = []
    for rental in rentals:
        if rental.due_at is None:
            continue
        if rental.book is None:
            logger.error(f"Rental {rental.id} references missing book {rental.book_id}")
            continue

        severity = classify_due_date(rental.due_at, now, window)
        if severity == "error":
            message = f'The return date for "{rental.book.title}" has passed!'
        elif severity == "warning":
            message = f'"{rental.book.title}" is due back within {settings.DUE_SOON_HOURS} hours.'
        else:
            continue
        result.append(schemas.Notification(message=message, type=severity))

    return result
