import pytest
from fastapi.testclient import TestClient
from typer.testing import CliRunner

from bookstore.api import create_app
from bookstore.crud import CrudEngine
from bookstore.database import open_database
from bookstore.main import app as cli_app

pytestmark = pytest.mark.integration


def test_full_catalog_lifecycle(db_file):
    """Console commands and the HTTP API working on one catalog file."""
    runner = CliRunner()
    assert runner.invoke(cli_app, ["--db", db_file, "add", "genres", "-f", "name=Novel"]).exit_code == 0

    with open_database(db_file) as db:
        with TestClient(create_app(CrudEngine(db))) as client:
            # Create
            response = client.post("/api/books", data={
                "title": "Dead Souls",
                "genre_id": "1",
                "publication_date": "01.01.1842",
                "popularity_score": "9",
            })
            assert response.status_code == 200
            response = client.post("/api/authors", data={"surname": "Gogol", "name": "Nikolai"})
            assert response.status_code == 200

            book_id = client.get("/api/books").json()[0][0]
            author_id = client.get("/api/authors").json()[0][0]
            response = client.post("/api/book_authors", data={"book_id": book_id, "author_id": author_id})
            assert response.status_code == 200

            # Update
            response = client.put(f"/api/books/{book_id}", data={"is_available": "нет"})
            assert response.status_code == 200
            book = client.get("/api/books").json()[0]
            assert book[3] == 1
            assert book[4] == 0
            assert book[5] == "1842-01-01"

            # Deleting the genre keeps the book but clears its reference
            assert client.delete("/api/genres/1").status_code == 200
            assert client.get("/api/books").json()[0][3] is None

            # Deleting the book removes its author links
            assert client.delete(f"/api/books/{book_id}").status_code == 200
            assert client.get("/api/book_authors").json() == []
            assert len(client.get("/api/authors").json()) == 1

    result = runner.invoke(cli_app, ["--db", db_file, "show", "authors"])
    assert "Gogol | Nikolai" in result.stdout
