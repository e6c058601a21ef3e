import logging
import uvicorn
from typing import List
from fastapi import FastAPI, HTTPException, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from schemas import BookCreate, BookUpdate, BookListItem, BookDetail, BookFormOptions, CopyCreate, CopyOut, ManageCopies
from crud import add_book, list_books, book_form_options, get_book_by_id, get_book_detail, update_book, delete_book
from crud import get_copies, add_copy, delete_copy
from schemas import MemberCreate, MemberOut, MemberUpdate
from crud import add_member, get_members, get_member_by_id, update_member, delete_member, MEMBERSHIP_TYPES
from schemas import StaffCreate, StaffOut
from crud import add_staff, get_staff, delete_staff, ensure_default_staff, STAFF_ROLES
from schemas import IssueRequest, TransactionOut, TransactionListItem, ReturnResult, FineOut, FineListItem, IssueFormOptions
from circulation import issue_copy, return_copy, pay_fine, list_transactions, list_fines, issue_form_options
from schemas import Dashboard
from crud import dashboard
from database import get_db, engine, Base, SessionLocal
from errors import LibraryError, StoreUnavailable
import models  # ensure models are imported so tables are registered

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("library")

app = FastAPI(title="Library Administration")


@app.exception_handler(LibraryError)
async def library_error_handler(request: Request, exc: LibraryError):
    logger.warning("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Store error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Unexpected database error"})


# Log every request
@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.debug("Incoming request: %s %s", request.method, request.url)
    response = await call_next(request)
    logger.info("%s %s -> %s", request.method, request.url.path, response.status_code)
    return response


@app.on_event("startup")
def on_startup():
    try:
        Base.metadata.create_all(bind=engine)
    except OperationalError as e:
        logger.error("Database connection failed: %s", e)
        raise StoreUnavailable("Database connection failed") from e
    logger.info("Connected to database %s", engine.url.render_as_string(hide_password=True))
    db = SessionLocal()
    try:
        ensure_default_staff(db, settings.default_staff_username, settings.default_staff_password)
    finally:
        db.close()


@app.get("/health")
def health(db: Session = Depends(get_db)):
    """Basic health check endpoint. Returns DB connectivity and basic counts."""
    try:
        db.execute(text("SELECT 1"))
        total = db.query(models.Book).count()
        members = db.query(models.Member).count()
        return {"status": "ok", "database": "connected", "total_books": total, "total_members": members}
    except SQLAlchemyError as e:
        return {"status": "error", "database": "disconnected", "detail": str(e)}


# Dashboard
@app.get("/", response_model=Dashboard)
def home(db: Session = Depends(get_db)):
    return dashboard(db)


# Books
@app.get("/books", response_model=List[BookListItem])
def books(db: Session = Depends(get_db)):
    return list_books(db)


@app.get("/add-book", response_model=BookFormOptions)
def add_book_form(db: Session = Depends(get_db)):
    return book_form_options(db)


@app.post("/add-book", response_model=BookDetail, status_code=status.HTTP_201_CREATED)
def create_book(book: BookCreate, db: Session = Depends(get_db)):
    new_book = add_book(book, db)
    return get_book_detail(new_book.id, db)


@app.get("/edit-book/{book_id}", response_model=BookDetail)
def edit_book_form(book_id: int, db: Session = Depends(get_db)):
    b = get_book_detail(book_id, db)
    if not b:
        raise HTTPException(status_code=404, detail="Book not found")
    return b


@app.post("/edit-book/{book_id}", response_model=BookDetail)
def modify_book(book_id: int, book: BookUpdate, db: Session = Depends(get_db)):
    updated = update_book(book_id, book, db)
    if not updated:
        raise HTTPException(status_code=404, detail="Book not found")
    return get_book_detail(book_id, db)


@app.delete("/delete-book/{book_id}")
def remove_book(book_id: int, db: Session = Depends(get_db)):
    ok = delete_book(book_id, db)
    if not ok:
        raise HTTPException(status_code=404, detail="Book not found")
    return {"detail": "Book deleted"}


# Copies
@app.get("/manage-copies/{book_id}", response_model=ManageCopies)
def manage_copies(book_id: int, db: Session = Depends(get_db)):
    b = get_book_by_id(book_id, db)
    if not b:
        raise HTTPException(status_code=404, detail="Book not found")
    copies = [CopyOut.model_validate(c) for c in get_copies(book_id, db)]
    return {"book_id": b.id, "title": b.title, "copies": copies}


@app.post("/add-copy/{book_id}", response_model=CopyOut, status_code=status.HTTP_201_CREATED)
def create_copy(book_id: int, payload: CopyCreate, db: Session = Depends(get_db)):
    return add_copy(book_id, payload.shelf_location, db)


@app.delete("/delete-copy/{copy_id}")
def remove_copy(copy_id: int, db: Session = Depends(get_db)):
    book_id = delete_copy(copy_id, db)
    if book_id is None:
        raise HTTPException(status_code=404, detail="Copy not found")
    return {"detail": "Copy deleted", "book_id": book_id}


# Members
@app.get("/members", response_model=List[MemberOut])
def members(skip: int = 0, limit: int = 100, db: Session = Depends(get_db)):
    return get_members(db, skip=skip, limit=limit)


@app.get("/add-member")
def add_member_form():
    return {"membership_types": MEMBERSHIP_TYPES}


@app.post("/add-member", response_model=MemberOut, status_code=status.HTTP_201_CREATED)
def create_member(member: MemberCreate, db: Session = Depends(get_db)):
    return add_member(member, db)


@app.get("/edit-member/{member_id}", response_model=MemberOut)
def edit_member_form(member_id: int, db: Session = Depends(get_db)):
    m = get_member_by_id(member_id, db)
    if not m:
        raise HTTPException(status_code=404, detail="Member not found")
    return m


@app.post("/edit-member/{member_id}", response_model=MemberOut)
def modify_member(member_id: int, member: MemberUpdate, db: Session = Depends(get_db)):
    updated = update_member(member_id, member, db)
    if not updated:
        raise HTTPException(status_code=404, detail="Member not found")
    return updated


@app.delete("/delete-member/{member_id}")
def remove_member(member_id: int, db: Session = Depends(get_db)):
    ok = delete_member(member_id, db)
    if not ok:
        raise HTTPException(status_code=404, detail="Member not found")
    return {"detail": "Member deleted"}


# Staff
@app.get("/staff", response_model=List[StaffOut])
def staff(skip: int = 0, limit: int = 100, db: Session = Depends(get_db)):
    return get_staff(db, skip=skip, limit=limit)


@app.get("/add-staff")
def add_staff_form():
    return {"roles": STAFF_ROLES}


@app.post("/add-staff", response_model=StaffOut, status_code=status.HTTP_201_CREATED)
def create_staff(payload: StaffCreate, db: Session = Depends(get_db)):
    return add_staff(payload, db)


@app.delete("/delete-staff/{staff_id}")
def remove_staff(staff_id: int, db: Session = Depends(get_db)):
    ok = delete_staff(staff_id, db)
    if not ok:
        raise HTTPException(status_code=404, detail="Staff not found")
    return {"detail": "Staff deleted"}


# Transactions
@app.get("/transactions", response_model=List[TransactionListItem])
def transactions(db: Session = Depends(get_db)):
    return list_transactions(db)


@app.get("/issue-book", response_model=IssueFormOptions)
def issue_book_form(db: Session = Depends(get_db)):
    return issue_form_options(db)


@app.post("/issue-book", response_model=TransactionOut, status_code=status.HTTP_201_CREATED)
def issue_book(payload: IssueRequest, db: Session = Depends(get_db)):
    return issue_copy(payload.member_id, payload.copy_id, payload.due_date, db, staff_id=payload.staff_id)


@app.post("/return-book/{txn_id}", response_model=ReturnResult)
def return_book(txn_id: int, db: Session = Depends(get_db)):
    txn, fine = return_copy(txn_id, db)
    return ReturnResult(
        transaction=TransactionOut.model_validate(txn),
        fine=FineOut.model_validate(fine) if fine else None,
    )


# Fines
@app.get("/fines", response_model=List[FineListItem])
def fines(db: Session = Depends(get_db)):
    return list_fines(db)


@app.post("/pay-fine/{fine_id}", response_model=FineOut)
def settle_fine(fine_id: int, db: Session = Depends(get_db)):
    f = pay_fine(fine_id, db)
    if not f:
        raise HTTPException(status_code=404, detail="Fine not found")
    return f


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.port,
    )
