from fastapi import APIRouter, Depends, status, Request, Response
from sqlalchemy.orm import Session
from typing import List

import library_app.crud as crud
import library_app.models as models
import library_app.schemas as schemas
from library_app.database import get_db
from library_app.policies import admin_user, authenticated_user
from library_app.rate_limiter import limiter
import library_app.utils as utils

router = APIRouter(prefix="/authors", tags=["authors"])

@router.get("", response_model=List[schemas.Author])
@limiter.limit("100/minute")
async def read_authors(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    user: models.User = Depends(authenticated_user)
):
    """
    List all authors
    """
    return [utils.author_to_pydantic(author) for author in crud.get_authors(db)]

@router.get("/{author_id}", response_model=schemas.Author)
@limiter.limit("100/minute")
async def read_author(
    request: Request,
    response: Response,
    author_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(authenticated_user)
):
    """
    Author by ID
    """
    return utils.author_to_pydantic(crud.find_author_by_id(db, author_id))

@router.get("/{author_id}/books", response_model=List[schemas.Book])
@limiter.limit("100/minute")
async def read_author_books(
    request: Request,
    response: Response,
    author_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(authenticated_user)
):
    """
    Books written by the author; empty when the author has none
    """
    return utils.books_to_pydantic(db, crud.get_books_by_author(db, author_id))

@router.post("", response_model=schemas.Author, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def create_author(
    request: Request,
    response: Response,
    author: schemas.AuthorCreate,
    db: Session = Depends(get_db),
    admin: models.User = Depends(admin_user)
):
    db_author = crud.create_author(db=db, author=author)
    response.headers["Location"] = f"{request.url.path.rstrip('/')}/{db_author.id}"
    return utils.author_to_pydantic(db_author)

@router.put("/{author_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("60/minute")
async def update_author(
    request: Request,
    response: Response,
    author_id: int,
    author_update: schemas.AuthorUpdate,
    db: Session = Depends(get_db),
    admin: models.User = Depends(admin_user)
):
    """
    Replace an author; the body id must match the path id
    """
    crud.update_author(db, author_id=author_id, author_update=author_update)
    return None

@router.delete("/{author_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
async def delete_author(
    request: Request,
    response: Response,
    author_id: int,
    db: Session = Depends(get_db),
    admin: models.User = Depends(admin_user)
):
    crud.delete_author(db, author_id=author_id)
    return None
