import pytest
from fastapi.testclient import TestClient

import api as api_module
from book import BookPatch
from config import settings
from spreadsheet import read_rows, to_bytes

ADMIN = {"X-API-Key": settings.api_key}


@pytest.fixture
def client(lib):
    api_module.app.dependency_overrides[api_module.get_library] = lambda: lib
    try:
        yield TestClient(api_module.app)
    finally:
        api_module.app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["total_books"] == 3


def test_student_login(client):
    response = client.post("/login/student", json={"email": "Alice@Test.com"})
    assert response.status_code == 200
    assert response.json()["id"] == "S1"
    assert response.json()["borrowed_books"] == []

    assert client.post("/login/student", json={"email": "nobody@test.com"}).status_code == 404


def test_admin_login(client):
    assert client.post("/login/admin", json={"password": settings.api_key}).status_code == 200
    assert client.post("/login/admin", json={"password": "wrong"}).status_code == 403


def test_list_and_search_books(client):
    assert len(client.get("/books").json()) == 3
    assert [b["id"] for b in client.get("/books", params={"q": "fiction"}).json()] == ["2"]
    assert client.get("/books/2").json()["author"] == "Harper Lee"
    assert client.get("/books/404").status_code == 404


def test_book_admin_endpoints_require_key(client):
    payload = {"title": "Dune", "author": "Frank Herbert", "total_copies": 2}
    assert client.post("/books", json=payload, headers={"X-API-Key": "invalid-key"}).status_code == 403

    response = client.post("/books", json=payload, headers=ADMIN)
    assert response.status_code == 201
    book = response.json()
    assert book["available_copies"] == 2
    assert book["category"] == "General"

    response = client.put(f"/books/{book['id']}", json={"category": "SF"}, headers=ADMIN)
    assert response.status_code == 200
    assert response.json()["category"] == "SF"

    assert client.put(f"/books/{book['id']}", json={}, headers=ADMIN).status_code == 400
    assert client.put("/books/404", json={"title": "x"}, headers=ADMIN).status_code == 404

    assert client.delete(f"/books/{book['id']}", headers=ADMIN).status_code == 200
    assert client.delete(f"/books/{book['id']}", headers=ADMIN).status_code == 404


def test_borrow_and_return_flow(client):
    response = client.post("/transactions", json={"student_id": "S1", "book_id": "3"})
    assert response.status_code == 201
    tx = response.json()
    assert tx["status"] == "pending"
    assert tx["book_title"] == "React Design Patterns"

    duplicate = client.post("/transactions", json={"student_id": "S1", "book_id": "3"})
    assert duplicate.status_code == 409

    pending = client.get("/transactions/pending", headers=ADMIN).json()
    assert [p["id"] for p in pending] == [tx["id"]]

    approved = client.post(f"/transactions/{tx['id']}/approve", headers=ADMIN).json()
    assert approved["found"] is True
    assert approved["transaction"]["status"] == "issued"
    assert client.get("/books/3").json()["available_copies"] == 1

    response = client.post("/transactions", json={"student_id": "S1", "book_id": "3", "kind": "return"})
    assert response.json()["status"] == "return_requested"
    returned = client.post(f"/transactions/{tx['id']}/approve", headers=ADMIN).json()
    assert returned["transaction"]["status"] == "returned"
    assert returned["transaction"]["return_date"]

    history = client.get("/students/S1/transactions").json()
    assert [h["status"] for h in history] == ["returned"]


def test_return_without_loan_is_404(client):
    response = client.post("/transactions", json={"student_id": "S2", "book_id": "1", "kind": "return"})
    assert response.status_code == 404


def test_approve_without_stock_is_409(client, lib):
    lib.update_book("3", BookPatch(available_copies=0))
    tx = client.post("/transactions", json={"student_id": "S2", "book_id": "3"}).json()
    response = client.post(f"/transactions/{tx['id']}/approve", headers=ADMIN)
    assert response.status_code == 409
    assert response.json()["detail"] == "Book not available"


def test_decide_unknown_transaction(client):
    response = client.post("/transactions/nope/reject", headers=ADMIN)
    assert response.status_code == 200
    assert response.json() == {"transaction_id": "nope", "found": False, "transaction": None}
    assert client.post("/transactions/nope/archive", headers=ADMIN).status_code == 422


def test_stats_and_students(client):
    assert client.get("/stats").status_code in (401, 403)
    assert client.get("/stats", headers=ADMIN).json()["total_students"] == 2
    assert [s["id"] for s in client.get("/students", headers=ADMIN).json()] == ["S1", "S2"]


def test_export_and_import(client, lib):
    response = client.get("/export/books")
    assert response.status_code == 200
    assert "books.xlsx" in response.headers["content-disposition"]
    assert len(read_rows(response.content)) == 3

    upload = to_bytes([{"id": "S7", "name": "Carol", "email": "carol@test.com", "phone": "1",
                        "borrowed_books": "[]"}])
    response = client.post("/import/students", content=upload, headers=ADMIN)
    assert response.json() == {"collection": "students", "imported": 1}
    assert lib.get_student_by_email("carol@test.com").id == "S7"

    assert client.post("/import/students", content=b"garbage", headers=ADMIN).status_code == 400
    assert client.get("/export/authors").status_code == 404
