from typing import List, Optional, Set

from sqlalchemy.orm import Session

import library_app.crud as crud
import library_app.models as models
import library_app.schemas as schemas


def author_to_pydantic(db_author: models.Author) -> schemas.Author:
    """
    SQLAlchemy Author -> pydantic Author
    """
    return schemas.Author.model_validate(db_author)


def book_to_pydantic(db_book: models.Book, is_available: bool) -> schemas.Book:
    """
    SQLAlchemy Book -> pydantic Book; availability comes from the rental ledger
    """
    author_name = db_book.author.full_name if db_book.author is not None else "Unknown"

    book_data = {
        "id": db_book.id,
        "isbn": db_book.isbn,
        "title": db_book.title,
        "genre": db_book.genre or "",
        "description": db_book.description or "",
        "author_id": db_book.author_id,
        "author_name": author_name,
        "taken_at": db_book.taken_at,
        "return_at": db_book.return_at,
        "image_path": db_book.image_path,
        "is_available": is_available,
    }

    return schemas.Book(**book_data)


def books_to_pydantic(db: Session, db_books: List[models.Book]) -> List[schemas.Book]:
    """
    Batch conversion with a single availability query for the whole page
    """
    borrowed: Set[int] = crud.open_rental_book_ids(db, (book.id for book in db_books))
    return [book_to_pydantic(book, book.id not in borrowed) for book in db_books]


def book_response(db: Session, db_book: Optional[models.Book]) -> schemas.Book:
    return books_to_pydantic(db, [db_book])[0]
