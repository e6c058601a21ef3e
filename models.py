from sqlalchemy import Column, Integer, String, Float, Date, ForeignKey, Table
from sqlalchemy.orm import relationship
from database import Base

COPY_AVAILABLE = "Available"
COPY_ON_LOAN = "On Loan"

FINE_UNPAID = "Unpaid"
FINE_PAID = "Paid"


book_authors = Table(
    "book_authors",
    Base.metadata,
    Column("book_id", Integer, ForeignKey("books.id", ondelete="CASCADE"), primary_key=True),
    Column("author_id", Integer, ForeignKey("authors.id"), primary_key=True),
)


class Publisher(Base):
    __tablename__ = "publishers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), unique=True, nullable=False)


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), unique=True, nullable=False)


class Author(Base):
    __tablename__ = "authors"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), unique=True, nullable=False)


class Book(Base):
    __tablename__ = "books"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False, index=True)
    isbn = Column(String(50), unique=True, index=True, nullable=False)
    publication_date = Column(Date, nullable=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    publisher_id = Column(Integer, ForeignKey("publishers.id"), nullable=True)

    publisher = relationship("Publisher")
    category = relationship("Category")
    authors = relationship("Author", secondary=book_authors)
    # copies with loan history keep their transactions' foreign keys alive,
    # so deleting such a book fails in the store
    copies = relationship("BookCopy", back_populates="book", cascade="all, delete-orphan")


class BookCopy(Base):
    __tablename__ = "book_copies"

    id = Column(Integer, primary_key=True, index=True)
    book_id = Column(Integer, ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=COPY_AVAILABLE)  # Available / On Loan
    purchase_date = Column(Date, nullable=True)
    shelf_location = Column(String(100), nullable=True)

    book = relationship("Book", back_populates="copies")


class Member(Base):
    __tablename__ = "members"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False, index=True)
    email = Column(String(100), unique=True, index=True, nullable=True)
    phone = Column(String(50), unique=True, nullable=True)
    address = Column(String, nullable=True)
    join_date = Column(Date, nullable=True)
    membership_type = Column(String(50), nullable=True)  # Monthly / Annual / other
    expiry_date = Column(Date, nullable=True)


class Staff(Base):
    __tablename__ = "staff"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    username = Column(String(100), unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(String(50), nullable=True)  # Admin, Librarian, Assistant


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    copy_id = Column(Integer, ForeignKey("book_copies.id"), nullable=False, index=True)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False, index=True)
    staff_id = Column(Integer, ForeignKey("staff.id"), nullable=False)
    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    return_date = Column(Date, nullable=True)  # null while the loan is open

    copy = relationship("BookCopy")
    member = relationship("Member")
    fine = relationship("Fine", back_populates="transaction", uselist=False)


class Fine(Base):
    __tablename__ = "fines"

    id = Column(Integer, primary_key=True, index=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), unique=True, nullable=False)
    amount = Column(Float, nullable=False)
    fine_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default=FINE_UNPAID)  # Unpaid / Paid

    transaction = relationship("Transaction", back_populates="fine")
