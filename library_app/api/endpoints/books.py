import logging
from fastapi import APIRouter, Depends, File, Form, Header, status, Request, Response, UploadFile
from sqlalchemy.orm import Session
from typing import List, Optional

import library_app.crud as crud
import library_app.models as models
import library_app.rentals as rentals
import library_app.schemas as schemas
from library_app.database import get_db
from library_app.idempotency import run_idempotent
from library_app.images import ImageStorage, get_image_storage
from library_app.policies import admin_user, authenticated_user
from library_app.rate_limiter import limiter
import library_app.utils as utils

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/books", tags=["books"])


def _has_file(upload: Optional[UploadFile]) -> bool:
    return upload is not None and bool(upload.filename)


# Static paths are registered before "/{book_id}/..." so "user" or "isbn" never parse as an id

@router.get("", response_model=List[schemas.Book])
@limiter.limit("100/minute")
async def read_books(
    request: Request,
    response: Response,
    search: Optional[str] = None,
    genre: Optional[str] = None,
    author: Optional[str] = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(authenticated_user)
):
    """
    Books filtered by title substring, genre and "First Last" author name
    """
    books = crud.find_books_filtered(db, search=search, genre=genre, author_name=author)
    return utils.books_to_pydantic(db, books)

@router.get("/user/rentals", response_model=List[schemas.Rental])
@limiter.limit("100/minute")
async def read_user_rentals(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    user: models.User = Depends(authenticated_user)
):
    return rentals.user_rentals(db, user.id)

@router.get("/user/rentals/notifications", response_model=List[schemas.Notification])
@limiter.limit("100/minute")
async def read_user_notifications(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    user: models.User = Depends(authenticated_user)
):
    """
    Overdue (error) and due-soon (warning) notices for the caller's open rentals
    """
    return rentals.notifications(db, user.id)

@router.get("/isbn/{isbn}", response_model=schemas.Book)
@limiter.limit("100/minute")
async def read_book_by_isbn(
    request: Request,
    response: Response,
    isbn: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(authenticated_user)
):
    return utils.book_response(db, crud.find_book_by_isbn(db, isbn))

@router.post("/borrow", response_model=schemas.Rental)
@limiter.limit("30/minute")
async def borrow_book(
    request: Request,
    response: Response,
    borrow_request: schemas.BorrowRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: Session = Depends(get_db),
    user: models.User = Depends(authenticated_user)
):
    """
    Borrow a book until returnAt. 409 when somebody already holds it.

    Supports idempotent retries through the Idempotency-Key header
    """
    def action():
        rental = rentals.borrow(
            db,
            user_id=user.id,
            book_id=borrow_request.book_id,
            return_at=borrow_request.return_at,
        )
        return rentals.rental_to_schema(rental).model_dump(mode="json", by_alias=True)

    return run_idempotent(idempotency_key, f"borrow:{user.id}", action)

@router.post("/return/{book_id}", response_model=schemas.Rental)
@limiter.limit("30/minute")
async def return_book(
    request: Request,
    response: Response,
    book_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(authenticated_user)
):
    rental = rentals.return_book(db, user_id=user.id, book_id=book_id)
    return rentals.rental_to_schema(rental)

@router.get("/{book_id}", response_model=schemas.Book)
@limiter.limit("100/minute")
async def read_book(
    request: Request,
    response: Response,
    book_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(authenticated_user)
):
    return utils.book_response(db, crud.find_book_by_id(db, book_id))

@router.get("/{book_id}/rentals", response_model=List[schemas.Rental])
@limiter.limit("100/minute")
async def read_book_rentals(
    request: Request,
    response: Response,
    book_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(authenticated_user)
):
    return rentals.rentals_for_book(db, book_id)

@router.get("/{book_id}/availability", response_model=schemas.AvailabilityResponse)
@limiter.limit("100/minute")
async def read_book_availability(
    request: Request,
    response: Response,
    book_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(authenticated_user)
):
    crud.find_book_by_id(db, book_id)
    return schemas.AvailabilityResponse(book_id=book_id, is_available=rentals.is_available(db, book_id))

@router.get("/{book_id}/is-rented", response_model=schemas.IsRentedResponse)
@limiter.limit("100/minute")
async def read_is_rented(
    request: Request,
    response: Response,
    book_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(authenticated_user)
):
    """
    Whether the caller currently holds this book
    """
    return schemas.IsRentedResponse(is_rented=rentals.is_book_rented_by_user(db, book_id, user.id))

@router.post("", response_model=schemas.Book, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def create_book(
    request: Request,
    response: Response,
    isbn: str = Form(..., min_length=1, max_length=20),
    title: str = Form(..., min_length=1, max_length=200),
    genre: str = Form("", max_length=100),
    description: str = Form("", max_length=500),
    author_id: int = Form(..., alias="authorId", gt=0),
    image: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    storage: ImageStorage = Depends(get_image_storage),
    admin: models.User = Depends(admin_user)
):
    """
    Create a book from multipart form fields with an optional cover image
    """
    book = schemas.BookCreate(
        isbn=isbn, title=title, genre=genre, description=description, author_id=author_id,
    )

    image_path = storage.save(image) if _has_file(image) else None
    try:
        db_book = crud.create_book(db=db, book=book, image_path=image_path)
    except Exception:
        storage.delete(image_path)
        raise

    response.headers["Location"] = f"{request.url.path.rstrip('/')}/{db_book.id}"
    return utils.book_response(db, db_book)

@router.put("/{book_id}", response_model=schemas.Book)
@limiter.limit("60/minute")
async def update_book(
    request: Request,
    response: Response,
    book_id: int,
    form_id: int = Form(..., alias="id"),
    isbn: str = Form(..., min_length=1, max_length=20),
    title: str = Form(..., min_length=1, max_length=200),
    genre: str = Form("", max_length=100),
    description: str = Form("", max_length=500),
    author_id: int = Form(..., alias="authorId", gt=0),
    image: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    storage: ImageStorage = Depends(get_image_storage),
    admin: models.User = Depends(admin_user)
):
    """
    Replace a book's catalog fields; a new image replaces and deletes the old one
    """
    book_update = schemas.BookUpdate(
        id=form_id, isbn=isbn, title=title, genre=genre, description=description, author_id=author_id,
    )
    old_image_path = None
    new_image_path = None
    if _has_file(image):
        old_image_path = crud.find_book_by_id(db, book_id).image_path
        new_image_path = storage.save(image)

    try:
        db_book = crud.update_book(db, book_id=book_id, book_update=book_update, image_path=new_image_path)
    except Exception:
        storage.delete(new_image_path)
        raise

    if new_image_path:
        storage.delete(old_image_path)
    return utils.book_response(db, db_book)

@router.post("/{book_id}/upload-image", response_model=schemas.ImageUploadResponse)
@limiter.limit("30/minute")
async def upload_book_image(
    request: Request,
    response: Response,
    book_id: int,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    storage: ImageStorage = Depends(get_image_storage),
    admin: models.User = Depends(admin_user)
):
    crud.find_book_by_id(db, book_id)
    image_path = storage.save(file)
    try:
        old_image_path = crud.set_book_image(db, book_id, image_path)
    except Exception:
        storage.delete(image_path)
        raise

    storage.delete(old_image_path)
    return schemas.ImageUploadResponse(image_path=image_path)

@router.delete("/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
async def delete_book(
    request: Request,
    response: Response,
    book_id: int,
    db: Session = Depends(get_db),
    storage: ImageStorage = Depends(get_image_storage),
    admin: models.User = Depends(admin_user)
):
    image_path = crud.delete_book(db, book_id=book_id)
    storage.delete(image_path)
    return None
