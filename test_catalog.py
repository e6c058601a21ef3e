from datetime import date

import pytest
from sqlalchemy import event

import models
from circulation import issue_copy
from crud import add_book, add_copy, delete_book, delete_copy, list_books, book_form_options, update_book, add_member
from errors import NotFound, ReferentialConstraintViolation, UniqueConstraintViolation
from schemas import BookCreate, BookUpdate, MemberCreate


def sample_book(**overrides):
    data = {
        "title": "Dune",
        "isbn": "9780441013593",
        "publication_date": date(1965, 8, 1),
        "category": "Science Fiction",
        "publisher": "Chilton",
        "author": "Frank Herbert",
    }
    data.update(overrides)
    return BookCreate(**data)


def test_add_book_creates_lookups_link_and_first_copy(db):
    book = add_book(sample_book(), db, today=date(2024, 5, 1))

    assert book.publisher.name == "Chilton"
    assert book.category.name == "Science Fiction"
    assert [a.name for a in book.authors] == ["Frank Herbert"]
    assert len(book.copies) == 1
    copy = book.copies[0]
    assert copy.status == models.COPY_AVAILABLE
    assert copy.purchase_date == date(2024, 5, 1)
    assert copy.shelf_location == "General Shelf"


def test_add_book_reuses_existing_publisher_and_author(db):
    add_book(sample_book(), db)
    add_book(sample_book(title="Dune Messiah", isbn="9780441172696"), db)

    assert db.query(models.Publisher).count() == 1
    assert db.query(models.Author).count() == 1
    assert db.query(models.Category).count() == 1


def test_duplicate_isbn_leaves_no_new_rows(db):
    add_book(sample_book(), db)
    before = (
        db.query(models.Book).count(),
        db.query(models.book_authors).count(),
        db.query(models.BookCopy).count(),
    )

    with pytest.raises(UniqueConstraintViolation):
        add_book(sample_book(title="Another", author="Someone Else", publisher="Other House"), db)

    after = (
        db.query(models.Book).count(),
        db.query(models.book_authors).count(),
        db.query(models.BookCopy).count(),
    )
    assert after == before
    assert db.query(models.Publisher).filter(models.Publisher.name == "Other House").first() is None


def test_list_books_reports_authors_and_copy_count(db):
    book = add_book(sample_book(), db)
    add_copy(book.id, "Shelf B", db)

    items = list_books(db)
    assert len(items) == 1
    assert items[0]["authors"] == "Frank Herbert"
    assert items[0]["total_copies"] == 2
    assert items[0]["publisher_name"] == "Chilton"


def test_book_form_options_lists_known_names(db):
    add_book(sample_book(), db)
    options = book_form_options(db)
    assert options == {
        "publishers": ["Chilton"],
        "categories": ["Science Fiction"],
        "authors": ["Frank Herbert"],
    }


def test_update_book_rejects_isbn_of_another_book(db):
    add_book(sample_book(), db)
    other = add_book(sample_book(title="Emma", isbn="9780141439587"), db)

    with pytest.raises(UniqueConstraintViolation):
        update_book(other.id, BookUpdate(title="Emma", isbn="9780441013593"), db)


def test_update_missing_book_returns_none(db):
    assert update_book(999, BookUpdate(title="x", isbn="1"), db) is None


def test_add_copy_to_missing_book(db):
    with pytest.raises(NotFound):
        add_copy(42, "Shelf A", db)


def test_delete_copy_without_history(db):
    book = add_book(sample_book(), db)
    copy = add_copy(book.id, "Shelf A", db)

    assert delete_copy(copy.id, db) == book.id
    assert db.query(models.BookCopy).filter(models.BookCopy.id == copy.id).first() is None
    assert delete_copy(copy.id, db) is None


def test_delete_copy_with_loan_history_is_blocked(db):
    book = add_book(sample_book(), db)
    member = add_member(MemberCreate(name="Ann", email="ann@example.com", phone="555-0100"), db)
    copy_id = book.copies[0].id
    issue_copy(member.id, copy_id, date(2024, 3, 1), db, today=date(2024, 2, 15))

    with pytest.raises(ReferentialConstraintViolation):
        delete_copy(copy_id, db)
    assert db.query(models.BookCopy).filter(models.BookCopy.id == copy_id).first() is not None


def test_delete_book_removes_links_and_copies(db):
    book = add_book(sample_book(), db)

    assert delete_book(book.id, db) is True
    assert db.query(models.Book).count() == 0
    assert db.query(models.book_authors).count() == 0
    assert db.query(models.BookCopy).count() == 0
    assert delete_book(book.id, db) is False


def test_delete_book_with_loan_history_is_blocked(db):
    book = add_book(sample_book(), db)
    member = add_member(MemberCreate(name="Ann", email="ann@example.com", phone="555-0100"), db)
    issue_copy(member.id, book.copies[0].id, date(2024, 3, 1), db, today=date(2024, 2, 15))

    with pytest.raises(ReferentialConstraintViolation):
        delete_book(book.id, db)
    assert db.query(models.Book).count() == 1


def test_failure_inside_create_chain_rolls_back_every_row(session_factory, db):
    def insert_same_isbn_elsewhere(session, flush_context, instances):
        # another writer takes the ISBN after the duplicate check has passed
        other = session_factory()
        try:
            other.add(models.Book(title="Dune (other)", isbn="9780441013593"))
            other.commit()
        finally:
            other.close()

    event.listen(db, "before_flush", insert_same_isbn_elsewhere, once=True)

    with pytest.raises(UniqueConstraintViolation):
        add_book(sample_book(publisher="Fresh House", author="New Author", category="New Category"), db)

    db.expire_all()
    assert db.query(models.Book).count() == 1
    assert db.query(models.Publisher).count() == 0
    assert db.query(models.Category).count() == 0
    assert db.query(models.Author).count() == 0
    assert db.query(models.book_authors).count() == 0
    assert db.query(models.BookCopy).count() == 0
