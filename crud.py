import calendar
import logging
from datetime import date
from typing import List, Optional

from passlib.context import CryptContext
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from database import atomic, today as current_date
from errors import UniqueConstraintViolation, NotFound, classify_integrity_error
from models import Author, Book, BookCopy, Category, Fine, Member, Publisher, Staff, COPY_AVAILABLE, FINE_UNPAID
from models import Transaction as Txn
from schemas import (
    BookCreate,
    BookUpdate,
    MemberCreate,
    MemberUpdate,
    StaffCreate,
)

logger = logging.getLogger(__name__)

DEFAULT_SHELF = "General Shelf"
MEMBERSHIP_TYPES = ["Monthly", "Annual"]
STAFF_ROLES = ["Admin", "Librarian", "Assistant"]

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


# --- Lookup upserts ---
def _get_or_create(db: Session, model, name: str):
    row = db.query(model).filter(model.name == name).first()
    if row is None:
        row = model(name=name)
        db.add(row)
        db.flush()
    return row


# --- Book CRUD ---
def add_book(book_data: BookCreate, db: Session, today: Optional[date] = None) -> Book:
    """Create a book together with its publisher, category, author link and first copy.

    The whole chain commits or rolls back as one unit, so a duplicate ISBN
    leaves no stray publisher/author links or copies behind.
    """
    today = today or current_date()
    if db.query(Book).filter(Book.isbn == book_data.isbn).first():
        raise UniqueConstraintViolation("A book with this ISBN already exists.")

    try:
        with atomic(db):
            publisher = _get_or_create(db, Publisher, book_data.publisher)
            category = _get_or_create(db, Category, book_data.category)
            author = _get_or_create(db, Author, book_data.author)
            new_book = Book(
                title=book_data.title,
                isbn=book_data.isbn,
                publication_date=book_data.publication_date,
                publisher=publisher,
                category=category,
                authors=[author],
            )
            db.add(new_book)
            db.flush()
            db.add(BookCopy(
                book_id=new_book.id,
                status=COPY_AVAILABLE,
                purchase_date=today,
                shelf_location=book_data.shelf_location or DEFAULT_SHELF,
            ))
    except IntegrityError as e:
        raise classify_integrity_error(
            e, "A book with this ISBN already exists.", "Invalid catalog reference."
        ) from e
    db.refresh(new_book)
    logger.info("Added book %s (%s)", new_book.id, new_book.isbn)
    return new_book


def list_books(db: Session) -> List[dict]:
    books = (
        db.query(Book)
        .options(
            selectinload(Book.publisher),
            selectinload(Book.category),
            selectinload(Book.authors),
            selectinload(Book.copies),
        )
        .order_by(Book.id)
        .all()
    )
    results = []
    for b in books:
        author_names = sorted({a.name for a in b.authors})
        results.append({
            'id': b.id,
            'title': b.title,
            'isbn': b.isbn,
            'publication_date': b.publication_date,
            'publisher_name': getattr(b.publisher, 'name', None),
            'category_name': getattr(b.category, 'name', None),
            'authors': ", ".join(author_names) if author_names else None,
            'total_copies': len(b.copies),
        })
    return results


def book_form_options(db: Session) -> dict:
    """Existing lookup names, for pre-filling the add-book form."""
    return {
        'publishers': [p.name for p in db.query(Publisher).order_by(Publisher.name).all()],
        'categories': [c.name for c in db.query(Category).order_by(Category.name).all()],
        'authors': [a.name for a in db.query(Author).order_by(Author.name).all()],
    }


def get_book_by_id(book_id: int, db: Session) -> Optional[Book]:
    return db.query(Book).filter(Book.id == book_id).first()


def get_book_detail(book_id: int, db: Session) -> Optional[dict]:
    book = get_book_by_id(book_id, db)
    if not book:
        return None
    return {
        'id': book.id,
        'title': book.title,
        'isbn': book.isbn,
        'publication_date': book.publication_date,
        'publisher_name': getattr(book.publisher, 'name', None),
        'category_name': getattr(book.category, 'name', None),
    }


def update_book(book_id: int, book_data: BookUpdate, db: Session) -> Optional[Book]:
    book = get_book_by_id(book_id, db)
    if not book:
        return None
    if book_data.isbn != book.isbn:
        exists = db.query(Book).filter(Book.isbn == book_data.isbn).first()
        if exists:
            raise UniqueConstraintViolation("A book with this ISBN already exists.")

    try:
        with atomic(db):
            book.title = book_data.title
            book.isbn = book_data.isbn
            book.publication_date = book_data.publication_date
    except IntegrityError as e:
        raise classify_integrity_error(
            e, "A book with this ISBN already exists.", "Invalid catalog reference."
        ) from e
    db.refresh(book)
    return book


def delete_book(book_id: int, db: Session) -> bool:
    book = get_book_by_id(book_id, db)
    if not book:
        return False
    try:
        with atomic(db):
            db.delete(book)
    except IntegrityError as e:
        raise classify_integrity_error(
            e, "Book could not be deleted.", "Book has copies with loan history and cannot be deleted."
        ) from e
    logger.info("Deleted book %s", book_id)
    return True


# --- Copy CRUD ---
def get_copies(book_id: int, db: Session) -> List[BookCopy]:
    return db.query(BookCopy).filter(BookCopy.book_id == book_id).order_by(BookCopy.id).all()


def add_copy(book_id: int, shelf_location: Optional[str], db: Session, today: Optional[date] = None) -> BookCopy:
    if not get_book_by_id(book_id, db):
        raise NotFound("Book not found")
    new_copy = BookCopy(
        book_id=book_id,
        status=COPY_AVAILABLE,
        purchase_date=today or current_date(),
        shelf_location=shelf_location,
    )
    with atomic(db):
        db.add(new_copy)
    db.refresh(new_copy)
    return new_copy


def delete_copy(copy_id: int, db: Session) -> Optional[int]:
    """Delete a copy and return the id of the book it belonged to, or None if missing."""
    copy = db.query(BookCopy).filter(BookCopy.id == copy_id).first()
    if not copy:
        return None
    book_id = copy.book_id
    try:
        with atomic(db):
            db.delete(copy)
    except IntegrityError as e:
        raise classify_integrity_error(
            e, "Copy could not be deleted.", "Error deleting copy: it has loan history."
        ) from e
    return book_id


# --- Member CRUD ---
def add_months(start: date, months: int) -> date:
    """Shift a date by whole months, clamping to the last day of the target month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def membership_expiry(membership_type: Optional[str], start: date) -> Optional[date]:
    if membership_type == "Monthly":
        return add_months(start, 1)
    if membership_type == "Annual":
        return add_months(start, 12)
    return None


def add_member(member_data: MemberCreate, db: Session, today: Optional[date] = None) -> Member:
    today = today or current_date()
    new_member = Member(
        name=member_data.name,
        email=member_data.email,
        phone=member_data.phone,
        address=member_data.address,
        join_date=today,
        membership_type=member_data.membership_type,
        expiry_date=membership_expiry(member_data.membership_type, today),
    )
    try:
        with atomic(db):
            db.add(new_member)
    except IntegrityError as e:
        raise classify_integrity_error(
            e, "A member with this email or phone already exists.", "Invalid member data."
        ) from e
    db.refresh(new_member)
    return new_member


def get_members(db: Session, skip: int = 0, limit: int = 100) -> List[Member]:
    return db.query(Member).order_by(Member.id).offset(skip).limit(limit).all()


def get_member_by_id(member_id: int, db: Session) -> Optional[Member]:
    return db.query(Member).filter(Member.id == member_id).first()


def update_member(member_id: int, member_data: MemberUpdate, db: Session) -> Optional[Member]:
    member = get_member_by_id(member_id, db)
    if not member:
        return None
    data = member_data.model_dump(exclude_unset=True)
    try:
        with atomic(db):
            for key, value in data.items():
                # name is required; the other fields may be cleared with an explicit null
                if key == "name" and value is None:
                    continue
                setattr(member, key, value)
    except IntegrityError as e:
        raise classify_integrity_error(
            e, "A member with this email or phone already exists.", "Invalid member data."
        ) from e
    db.refresh(member)
    return member


def delete_member(member_id: int, db: Session) -> bool:
    member = get_member_by_id(member_id, db)
    if not member:
        return False
    try:
        with atomic(db):
            db.delete(member)
    except IntegrityError as e:
        raise classify_integrity_error(
            e, "Member could not be deleted.", "Member has loan history and cannot be deleted."
        ) from e
    return True


# --- Staff CRUD ---
def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def add_staff(staff_data: StaffCreate, db: Session) -> Staff:
    new_staff = Staff(
        name=staff_data.name,
        username=staff_data.username,
        password_hash=get_password_hash(staff_data.password),
        role=staff_data.role,
    )
    try:
        with atomic(db):
            db.add(new_staff)
    except IntegrityError as e:
        raise classify_integrity_error(
            e, "A staff member with this username already exists.", "Invalid staff data."
        ) from e
    db.refresh(new_staff)
    return new_staff


def get_staff(db: Session, skip: int = 0, limit: int = 100) -> List[Staff]:
    return db.query(Staff).order_by(Staff.id).offset(skip).limit(limit).all()


def get_staff_by_id(staff_id: int, db: Session) -> Optional[Staff]:
    return db.query(Staff).filter(Staff.id == staff_id).first()


def delete_staff(staff_id: int, db: Session) -> bool:
    staff = get_staff_by_id(staff_id, db)
    if not staff:
        return False
    try:
        with atomic(db):
            db.delete(staff)
    except IntegrityError as e:
        raise classify_integrity_error(
            e, "Staff member could not be deleted.", "Staff member has issued loans and cannot be deleted."
        ) from e
    return True


def ensure_default_staff(db: Session, username: str, password: str) -> Staff:
    """Create the account loans are issued under when the staff table is empty."""
    existing = db.query(Staff).order_by(Staff.id).first()
    if existing:
        return existing
    staff = add_staff(StaffCreate(name="Administrator", username=username, password=password, role="Admin"), db)
    logger.info("Created default staff account '%s'", username)
    return staff


# --- Dashboard ---
def recent_transactions(db: Session, limit: int = 5) -> List[dict]:
    rows = (
        db.query(Txn.id, Member.name, Book.title, Txn.issue_date, Txn.return_date)
        .join(Member, Txn.member_id == Member.id)
        .join(BookCopy, Txn.copy_id == BookCopy.id)
        .join(Book, BookCopy.book_id == Book.id)
        .order_by(Txn.id.desc())
        .limit(limit)
        .all()
    )
    results = []
    for r in rows:
        results.append({
            'id': r[0],
            'member_name': r[1],
            'title': r[2],
            'issue_date': r[3],
            'return_date': r[4],
        })
    return results


def dashboard(db: Session) -> dict:
    """Headline counts and the latest loans for the home page."""
    counts = {}
    counts['books'] = db.query(Book).count()
    counts['members'] = db.query(Member).count()
    counts['active_loans'] = db.query(Txn).filter(Txn.return_date.is_(None)).count()
    pending = db.query(func.coalesce(func.sum(Fine.amount), 0)).filter(Fine.status == FINE_UNPAID).scalar()
    counts['pending_fines'] = float(pending or 0)
    return {'counts': counts, 'recent_transactions': recent_transactions(db)}
