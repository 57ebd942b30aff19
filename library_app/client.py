import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests
from requests.exceptions import HTTPError

logger = logging.getLogger(__name__)


class LibraryClient:
    """Client for the Library Management API."""

    BASE_URL = "http://localhost:8000/api"

    def __init__(self, base_url: Optional[str] = None, session: Optional[requests.Session] = None):
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
        })
        self.token: Optional[str] = None
        self.refresh_token: Optional[str] = None

    def _make_request(self, method: str, endpoint: str, **kwargs) -> Any:
        """Send a request; raises requests.HTTPError on a non-2xx answer."""
        url = f"{self.base_url}{endpoint}"
        headers = kwargs.pop("headers", {})
        if self.token:
            headers.setdefault("Authorization", f"Bearer {self.token}")

        response = self.session.request(method, url, headers=headers, **kwargs)
        try:
            response.raise_for_status()
        except HTTPError:
            logger.error(f"{method} {url} failed with {response.status_code}: {response.text}")
            raise
        # 204 answers have no body
        return response.json() if response.content else None

    def _store_tokens(self, auth_response: Dict[str, Any]) -> Dict[str, Any]:
        self.token = auth_response.get("token")
        self.refresh_token = auth_response.get("refreshToken")
        return auth_response

    # --- Session lifecycle ---
    def register(
        self,
        first_name: str,
        last_name: str,
        email: str,
        password: str,
        confirm_password: str,
    ) -> Dict[str, Any]:
        return self._make_request("POST", "/auth/register", json={
            "firstName": first_name,
            "lastName": last_name,
            "email": email,
            "password": password,
            "confirmPassword": confirm_password,
        })

    def login(self, email: str, password: str) -> Dict[str, Any]:
        result = self._make_request("POST", "/auth/authenticate", json={"email": email, "password": password})
        return self._store_tokens(result)

    def refresh(self) -> Dict[str, Any]:
        result = self._make_request("POST", "/auth/refresh", json={"refreshToken": self.refresh_token})
        return self._store_tokens(result)

    def logout(self) -> None:
        self._make_request("POST", "/auth/logout")
        self.token = None
        self.refresh_token = None

    # --- Catalog ---
    def get_books(self, search: str = "", genre: str = "", author: str = "") -> List[Dict[str, Any]]:
        params = {key: value for key, value in (("search", search), ("genre", genre), ("author", author)) if value}
        return self._make_request("GET", "/books", params=params)

    def get_book(self, book_id: int) -> Dict[str, Any]:
        return self._make_request("GET", f"/books/{book_id}")

    def get_book_by_isbn(self, isbn: str) -> Dict[str, Any]:
        return self._make_request("GET", f"/books/isbn/{isbn}")

    # --- Rentals ---
    def borrow_book(
        self,
        book_id: int,
        return_at: datetime,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else {}
        return self._make_request(
            "POST",
            "/books/borrow",
            json={"bookId": book_id, "returnAt": return_at.isoformat()},
            headers=headers,
        )

    def return_book(self, book_id: int) -> Dict[str, Any]:
        return self._make_request("POST", f"/books/return/{book_id}")

    def get_user_rentals(self) -> List[Dict[str, Any]]:
        return self._make_request("GET", "/books/user/rentals")

    def get_notifications(self) -> List[Dict[str, Any]]:
        return self._make_request("GET", "/books/user/rentals/notifications")

    def is_rented(self, book_id: int) -> bool:
        return self._make_request("GET", f"/books/{book_id}/is-rented")["isRented"]
