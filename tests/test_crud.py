import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from bookstore.crud import CrudEngine, CrudRequest
from bookstore.errors import (
    NoFieldsToUpdate,
    RecordNotFound,
    StoreError,
    UnknownTable,
    UnsupportedOperation,
    ValidationFailed,
)
from bookstore.query_builder import Operation

BOOK_ID = "550e8400-e29b-41d4-a716-446655440000"


@pytest.mark.parametrize("operation, kwargs", [
    (Operation.SELECT_ALL, {}),
    (Operation.INSERT, {"fields": {"name": "x"}}),
    (Operation.UPDATE_BY_ID, {"target_id": "1", "fields": {"name": "x"}}),
    (Operation.DELETE_BY_ID, {"target_id": "1"}),
])
def test_unknown_table_never_touches_the_store(spy, operation, kwargs):
    engine = CrudEngine(spy)
    with pytest.raises(UnknownTable):
        engine.execute(CrudRequest("reviews", operation, **kwargs))
    assert spy.calls == []


def test_validation_collects_every_invalid_field(spy):
    engine = CrudEngine(spy)
    with pytest.raises(ValidationFailed) as exc:
        engine.insert("books", {
            "description": "no title here",
            "popularity_score": "11",
            "is_available": "maybe",
            "publication_date": "2020-01-01",
        })
    assert set(exc.value.field_errors) == {"title", "popularity_score", "is_available", "publication_date"}
    assert spy.calls == []


def test_update_validates_only_present_fields(spy):
    engine = CrudEngine(spy)
    with pytest.raises(ValidationFailed) as exc:
        engine.update("authors", BOOK_ID, {"surname": "  ", "birth_date": "yesterday"})
    assert set(exc.value.field_errors) == {"surname", "birth_date"}
    assert spy.calls == []


def test_unknown_and_server_managed_columns_are_rejected(spy):
    engine = CrudEngine(spy)
    with pytest.raises(ValidationFailed) as exc:
        engine.insert("books", {"title": "X", "id": BOOK_ID, "created_at": "now", "isbn": "123"})
    assert set(exc.value.field_errors) == {"id", "created_at", "isbn"}
    assert spy.calls == []


def test_insert_sends_coerced_values(spy):
    engine = CrudEngine(spy)
    result = engine.insert("books", {"title": " X ", "is_available": "да", "popularity_score": "7"})
    assert result.rows_affected == 1
    (kind, sql, params), = spy.calls
    assert kind == "execute"
    assert sql == "INSERT INTO books (id, title, is_available, popularity_score) VALUES (gen_random_uuid(), ?, ?, ?)"
    assert params == ("X", True, 7)


def test_update_genre_id_is_coerced_to_integer(spy):
    CrudEngine(spy).update("genres", "3", {"name": "Drama"})
    assert spy.calls == [("execute", "UPDATE genres SET name = ? WHERE id = ?", ("Drama", 3))]


def test_update_book_compares_identifier(spy):
    CrudEngine(spy).update("books", BOOK_ID.upper(), {"title": "Onegin"})
    assert spy.calls == [("execute", "UPDATE books SET title = ? WHERE id = UUID(?)", ("Onegin", BOOK_ID))]


@pytest.mark.parametrize("bad_id", ["", "   ", "abc", "1", "' OR 1=1 --", None])
def test_delete_with_malformed_opaque_id_fails_before_store(spy, bad_id):
    with pytest.raises(ValidationFailed) as exc:
        CrudEngine(spy).delete("books", bad_id)
    assert "id" in exc.value.field_errors
    assert spy.calls == []


@pytest.mark.parametrize("bad_id", ["", "0", "-1", "3.5", BOOK_ID])
def test_delete_with_malformed_surrogate_id_fails(spy, bad_id):
    with pytest.raises(ValidationFailed):
        CrudEngine(spy).delete("genres", bad_id)
    assert spy.calls == []


def test_update_without_fields(spy):
    with pytest.raises(NoFieldsToUpdate):
        CrudEngine(spy).update("genres", "1", {})
    assert spy.calls == []


def test_link_rows_cannot_be_deleted_by_id(spy):
    with pytest.raises(UnsupportedOperation):
        CrudEngine(spy).delete("book_authors", BOOK_ID)


def test_zero_affected_rows_is_not_found(spy):
    spy.rowcount = 0
    with pytest.raises(RecordNotFound):
        CrudEngine(spy).delete("genres", "42")


def test_store_errors_propagate_unchanged(spy):
    def failing_execute(sql, params=()):
        raise StoreError("UNIQUE constraint failed: genres.name")

    spy.execute = failing_execute
    with pytest.raises(StoreError, match="UNIQUE constraint failed"):
        CrudEngine(spy).insert("genres", {"name": "Poetry"})


def test_request_is_immutable():
    fields = {"name": "Poetry"}
    request = CrudRequest("genres", Operation.INSERT, fields=fields)
    fields["name"] = "Changed"
    assert request.fields["name"] == "Poetry"
    with pytest.raises(TypeError):
        request.fields["name"] = "Drama"


# ------------------------- Against sqlite ------------------------- #
def test_author_round_trip(engine):
    engine.insert("authors", {"surname": "Pushkin", "name": "Alexander", "birth_date": "06.06.1799"})

    result = engine.select_all("authors")
    assert result.columns == ["id", "surname", "name", "patronymic", "birth_date", "biography"]
    assert len(result.rows) == 1
    row = dict(zip(result.columns, result.rows[0]))
    assert row["surname"] == "Pushkin"
    assert row["name"] == "Alexander"
    assert row["patronymic"] is None
    assert row["birth_date"] == "1799-06-06"
    assert len(row["id"]) == 36


def test_explicit_empty_optional_field_is_stored_as_null(engine):
    engine.insert("authors", {"surname": "Gogol", "name": "Nikolai", "patronymic": "Vasilyevich"})
    author_id = engine.select_all("authors").rows[0][0]

    engine.update("authors", author_id, {"patronymic": ""})
    assert engine.select_all("authors").rows[0][3] is None


def test_update_and_delete_by_opaque_id(engine):
    engine.insert("books", {"title": "Eugene Onegin"})
    book_id = engine.select_all("books").rows[0][0]

    engine.update("books", book_id.upper(), {"popularity_score": "10", "is_available": "n"})
    row = engine.select_all("books").rows[0]
    assert row[6] == 10
    assert row[4] == 0

    engine.delete("books", book_id)
    assert engine.select_all("books").rows == []
    with pytest.raises(RecordNotFound):
        engine.delete("books", book_id)


def test_genres_get_sequential_ids(engine):
    engine.insert("genres", {"name": "Poetry"})
    engine.insert("genres", {"name": "Drama"})
    assert engine.select_all("genres").rows == [[1, "Poetry"], [2, "Drama"]]

    engine.update("genres", "2", {"name": "Tragedy"})
    assert engine.select_all("genres").rows[1] == [2, "Tragedy"]


def test_link_table_enforces_references(engine):
    engine.insert("books", {"title": "Ruslan and Ludmila"})
    engine.insert("authors", {"surname": "Pushkin", "name": "Alexander"})
    book_id = engine.select_all("books").rows[0][0]
    author_id = engine.select_all("authors").rows[0][0]

    engine.insert("book_authors", {"book_id": book_id, "author_id": author_id})
    assert engine.select_all("book_authors").rows == [[book_id, author_id]]

    with pytest.raises(StoreError, match="FOREIGN KEY"):
        engine.insert("book_authors", {"book_id": book_id, "author_id": "550e8400-e29b-41d4-a716-446655440000"})


def test_concurrent_inserts_and_selects_never_see_partial_rows(engine):
    errors = []
    start = threading.Barrier(6)

    def writer(n):
        start.wait()
        for i in range(25):
            engine.insert("authors", {"surname": f"Surname-{n}-{i}", "name": f"Name-{n}-{i}"})

    def reader(_):
        start.wait()
        for _ in range(25):
            for row in engine.select_all("authors").rows:
                surname, name = row[1], row[2]
                if surname is None or name is None or surname.split("-", 1)[1] != name.split("-", 1)[1]:
                    errors.append(row)

    with ThreadPoolExecutor(max_workers=6) as pool:
        futures = [pool.submit(writer, n) for n in range(4)] + [pool.submit(reader, n) for n in range(2)]
        for future in futures:
            future.result()

    assert errors == []
    assert len(engine.select_all("authors").rows) == 100


@pytest.mark.parametrize("fields", [
    {"title": "X", "genre_id": "99999999999999999999"},
    {"title": "X", "genre_id": "2147483648"},
])
def test_oversized_integer_fields_fail_validation(engine, fields):
    with pytest.raises(ValidationFailed) as exc:
        engine.insert("books", fields)
    assert set(exc.value.field_errors) == {"genre_id"}
    assert engine.select_all("books").rows == []


def test_oversized_target_id_fails_validation(engine):
    with pytest.raises(ValidationFailed) as exc:
        engine.delete("genres", "99999999999999999999")
    assert "id" in exc.value.field_errors
