from pydantic import BaseModel, Field, EmailStr
from pydantic.alias_generators import to_camel
from typing import Optional, List, Literal
from datetime import datetime, date

# Common schemas
class CamelModel(BaseModel):
    """Wire format is camelCase; Python code keeps snake_case names"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True

# Authors
class AuthorBase(CamelModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    birth_date: Optional[date] = None
    country: str = Field("", max_length=100)

class AuthorCreate(AuthorBase):
    pass

class AuthorUpdate(AuthorBase):
    id: int

class Author(AuthorBase):
    id: int

# Books
class BookBase(CamelModel):
    isbn: str = Field(..., min_length=1, max_length=20)
    title: str = Field(..., min_length=1, max_length=200)
    genre: str = Field("", max_length=100)
    description: str = Field("", max_length=500)
    author_id: int = Field(..., gt=0)

class BookCreate(BookBase):
    pass

class BookUpdate(BookBase):
    id: int

class Book(BookBase):
    id: int
    author_name: str = "Unknown"
    taken_at: Optional[datetime] = None
    return_at: Optional[datetime] = None
    image_path: Optional[str] = None
    is_available: bool = True

class ImageUploadResponse(CamelModel):
    image_path: str

# Rentals
class BorrowRequest(CamelModel):
    book_id: int
    return_at: datetime

class Rental(CamelModel):
    id: int
    book_id: int
    user_id: str
    title: str
    genre: str = ""
    description: str = ""
    author_name: str = "Unknown"
    borrowed_at: datetime
    return_at: Optional[datetime] = None
    returned_at: Optional[datetime] = None
    is_active: bool

class Notification(CamelModel):
    message: str
    type: Literal["error", "warning", "info"]

class IsRentedResponse(CamelModel):
    is_rented: bool

class AvailabilityResponse(CamelModel):
    book_id: int
    is_available: bool

class MessageResponse(CamelModel):
    message: str

# Auth
class UserForRegistration(CamelModel):
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6)
    confirm_password: Optional[str] = None

class RegistrationResponse(CamelModel):
    is_successful_registration: bool = False
    errors: List[str] = []

class UserForAuthentication(CamelModel):
    email: EmailStr
    password: str

class RefreshTokenRequest(CamelModel):
    refresh_token: str

class AuthResponse(CamelModel):
    is_auth_successful: bool = False
    error_message: Optional[str] = None
    token: Optional[str] = None
    refresh_token: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
