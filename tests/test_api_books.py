"""
Integration tests for the books endpoints.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

import library_app.models as models


def future(days=3):
    return (models.utcnow() + timedelta(days=days)).isoformat()


class TestBookQueries:
    """Read endpoints."""

    def test_requires_authentication(self, client, book):
        response = client.get("/api/books")

        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHORIZED"

    def test_rejects_invalid_token(self, client, book):
        response = client.get("/api/books", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401

    def test_list_books(self, client, book, user_headers):
        response = client.get("/api/books", headers=user_headers)

        assert response.status_code == 200
        data = response.json()
        assert len(data) == 1
        assert data[0]["isbn"] == "123"
        assert data[0]["authorName"] == "Jane Doe"
        assert data[0]["isAvailable"] is True
        assert data[0]["takenAt"] is None

    def test_filter_by_unknown_author_is_empty(self, client, book, user_headers):
        response = client.get("/api/books", params={"author": "Nonexistent Person"}, headers=user_headers)

        assert response.status_code == 200
        assert response.json() == []

    def test_filter_by_search_and_genre(self, client, book, user_headers):
        hit = client.get("/api/books", params={"search": "quiet", "genre": "Mystery"}, headers=user_headers)
        miss = client.get("/api/books", params={"search": "quiet", "genre": "Horror"}, headers=user_headers)

        assert [b["id"] for b in hit.json()] == [book.id]
        assert miss.json() == []

    def test_get_book(self, client, book, user_headers):
        response = client.get(f"/api/books/{book.id}", headers=user_headers)

        assert response.status_code == 200
        assert response.json()["title"] == "The Quiet Library"

    def test_get_missing_book(self, client, user_headers):
        response = client.get("/api/books/999", headers=user_headers)

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_get_by_isbn(self, client, book, user_headers):
        assert client.get("/api/books/isbn/123", headers=user_headers).json()["id"] == book.id
        assert client.get("/api/books/isbn/124", headers=user_headers).status_code == 404


class TestRentalEndpoints:
    """Borrow/return over HTTP."""

    def test_borrow_and_return_flow(self, client, book, user_headers):
        borrow = client.post(
            "/api/books/borrow",
            json={"bookId": book.id, "returnAt": future()},
            headers=user_headers,
        )
        assert borrow.status_code == 200
        assert borrow.json()["isActive"] is True

        availability = client.get(f"/api/books/{book.id}/availability", headers=user_headers)
        assert availability.json() == {"bookId": book.id, "isAvailable": False}
        assert client.get(f"/api/books/{book.id}/is-rented", headers=user_headers).json() == {"isRented": True}

        listed = client.get(f"/api/books/{book.id}", headers=user_headers).json()
        assert listed["isAvailable"] is False
        assert listed["takenAt"] is not None

        returned = client.post(f"/api/books/return/{book.id}", headers=user_headers)
        assert returned.status_code == 200
        assert returned.json()["returnedAt"] is not None

        listed = client.get(f"/api/books/{book.id}", headers=user_headers).json()
        assert listed["isAvailable"] is True
        assert listed["takenAt"] is None
        assert listed["returnAt"] is None

    def test_double_borrow_conflicts(self, client, book, user_headers, other_headers):
        body = {"bookId": book.id, "returnAt": future()}
        assert client.post("/api/books/borrow", json=body, headers=user_headers).status_code == 200

        response = client.post("/api/books/borrow", json=body, headers=other_headers)

        assert response.status_code == 409
        assert response.json()["code"] == "CONFLICT"

    def test_borrow_unknown_book(self, client, user_headers):
        response = client.post(
            "/api/books/borrow", json={"bookId": 999, "returnAt": future()}, headers=user_headers,
        )

        assert response.status_code == 404

    def test_borrow_missing_fields(self, client, book, user_headers):
        response = client.post("/api/books/borrow", json={"bookId": book.id}, headers=user_headers)

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_return_without_rental(self, client, book, user_headers):
        response = client.post(f"/api/books/return/{book.id}", headers=user_headers)

        assert response.status_code == 404

    def test_user_rentals_and_notifications(self, client, book, user_headers):
        client.post(
            "/api/books/borrow",
            json={"bookId": book.id, "returnAt": (models.utcnow() + timedelta(hours=2)).isoformat()},
            headers=user_headers,
        )

        rentals = client.get("/api/books/user/rentals", headers=user_headers)
        notifications = client.get("/api/books/user/rentals/notifications", headers=user_headers)

        assert rentals.status_code == 200
        assert [r["bookId"] for r in rentals.json()] == [book.id]
        assert [n["type"] for n in notifications.json()] == ["warning"]

    def test_notifications_without_rentals(self, client, user_headers):
        response = client.get("/api/books/user/rentals/notifications", headers=user_headers)

        assert response.json() == [{"message": "No active rentals.", "type": "info"}]

    def test_book_rentals(self, client, book, user_headers):
        client.post("/api/books/borrow", json={"bookId": book.id, "returnAt": future()}, headers=user_headers)

        response = client.get(f"/api/books/{book.id}/rentals", headers=user_headers)

        assert response.status_code == 200
        assert len(response.json()) == 1


class TestBookAdministration:
    """Admin-only writes."""

    def book_form(self, author, **overrides):
        form = {
            "isbn": "978-0",
            "title": "New Arrivals",
            "genre": "Drama",
            "description": "Fresh off the press.",
            "authorId": str(author.id),
        }
        form.update(overrides)
        return form

    def test_regular_user_is_forbidden(self, client, author, user_headers):
        response = client.post("/api/books", data=self.book_form(author), headers=user_headers)

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"

    def test_create_book(self, client, author, admin_headers):
        response = client.post("/api/books", data=self.book_form(author), headers=admin_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["title"] == "New Arrivals"
        assert data["authorName"] == "Jane Doe"
        assert data["imagePath"] is None
        assert response.headers["Location"].endswith(f"/api/books/{data['id']}")

    def test_create_book_with_image(self, client, author, admin_headers, image_storage):
        response = client.post(
            "/api/books",
            data=self.book_form(author),
            files={"image": ("cover.PNG", b"\x89PNG-bytes", "image/png")},
            headers=admin_headers,
        )

        assert response.status_code == 201
        image_path = response.json()["imagePath"]
        assert image_path.startswith("/images/") and image_path.endswith(".png")
        assert image_storage.path_for(image_path).read_bytes() == b"\x89PNG-bytes"

    def test_create_book_unknown_author_discards_image(self, client, admin_headers, image_storage):
        response = client.post(
            "/api/books",
            data={"isbn": "1", "title": "T", "authorId": "99"},
            files={"image": ("cover.png", b"data", "image/png")},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert not any(image_storage.directory.iterdir())

    def test_create_book_storage_failure_discards_image(self, client, author, admin_headers, image_storage):
        with patch("library_app.crud.create_book", side_effect=OperationalError("INSERT", {}, Exception("db down"))):
            with pytest.raises(OperationalError):
                client.post(
                    "/api/books",
                    data=self.book_form(author),
                    files={"image": ("cover.png", b"data", "image/png")},
                    headers=admin_headers,
                )

        assert not any(image_storage.directory.iterdir())

    def test_create_book_duplicate_isbn(self, client, book, author, admin_headers):
        response = client.post("/api/books", data=self.book_form(author, isbn="123"), headers=admin_headers)

        assert response.status_code == 409

    def test_update_book(self, client, book, author, admin_headers):
        form = self.book_form(author, id=str(book.id), title="Renamed")

        response = client.put(f"/api/books/{book.id}", data=form, headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["title"] == "Renamed"

    def test_update_book_id_mismatch(self, client, book, author, admin_headers):
        form = self.book_form(author, id=str(book.id + 1))

        response = client.put(f"/api/books/{book.id}", data=form, headers=admin_headers)

        assert response.status_code == 400

    def test_update_book_replaces_image(self, client, book, author, admin_headers, image_storage):
        first = client.post(
            f"/api/books/{book.id}/upload-image",
            files={"file": ("a.jpg", b"first", "image/jpeg")},
            headers=admin_headers,
        ).json()["imagePath"]

        response = client.put(
            f"/api/books/{book.id}",
            data=self.book_form(author, id=str(book.id)),
            files={"image": ("b.jpg", b"second", "image/jpeg")},
            headers=admin_headers,
        )

        second = response.json()["imagePath"]
        assert second != first
        assert not image_storage.path_for(first).exists()
        assert image_storage.path_for(second).read_bytes() == b"second"

    def test_upload_empty_image(self, client, book, admin_headers):
        response = client.post(
            f"/api/books/{book.id}/upload-image",
            files={"file": ("a.jpg", b"", "image/jpeg")},
            headers=admin_headers,
        )

        assert response.status_code == 400

    def test_delete_book(self, client, book, admin_headers, user_headers):
        assert client.delete(f"/api/books/{book.id}", headers=admin_headers).status_code == 204
        assert client.get(f"/api/books/{book.id}", headers=user_headers).status_code == 404

    def test_delete_borrowed_book_conflicts(self, client, book, admin_headers, user_headers):
        client.post("/api/books/borrow", json={"bookId": book.id, "returnAt": future()}, headers=user_headers)

        response = client.delete(f"/api/books/{book.id}", headers=admin_headers)

        assert response.status_code == 409


class TestIdempotentBorrow:
    """Idempotency-Key replay on borrow."""

    @pytest.fixture
    def fake_redis(self):
        store = {}

        class FakeRedis:
            def set(self, key, value, nx=False, ex=None):
                if nx and key in store:
                    return None
                store[key] = value
                return True

            def setex(self, key, ttl, value):
                store[key] = value

            def get(self, key):
                return store.get(key)

            def delete(self, key):
                store.pop(key, None)

        with patch("library_app.idempotency.redis_client", FakeRedis()):
            yield store

    def test_retry_replays_first_response(self, client, book, user_headers, fake_redis):
        headers = dict(user_headers, **{"Idempotency-Key": "borrow-1"})
        body = {"bookId": book.id, "returnAt": future()}

        first = client.post("/api/books/borrow", json=body, headers=headers)
        second = client.post("/api/books/borrow", json=body, headers=headers)

        assert first.status_code == second.status_code == 200
        assert first.json() == second.json()

    def test_failed_request_releases_key(self, client, user_headers, fake_redis):
        headers = dict(user_headers, **{"Idempotency-Key": "borrow-2"})

        response = client.post("/api/books/borrow", json={"bookId": 999, "returnAt": future()}, headers=headers)

        assert response.status_code == 404
        assert not any(key.endswith("borrow-2") for key in fake_redis)
