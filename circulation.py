"""Issue / return / fine lifecycle for book copies.

A loan moves through three states:

- open: ``return_date`` is null and the copy is On Loan;
- closed: ``return_date`` is set and the copy is Available again;
- closed with fine: closed, plus one Unpaid fine when the copy came back late.

Every transition runs as a single store transaction (see ``database.atomic``).
Issuing flips the copy status and returning sets ``return_date`` with
conditional UPDATEs, so two concurrent issues of the same copy, or two
returns of the same loan, cannot both succeed.
"""
import logging
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import settings
from database import atomic, today as current_date
from errors import CopyUnavailable, LoanAlreadyClosed, NotFound, classify_integrity_error
from models import Book, BookCopy, Fine, Member, COPY_AVAILABLE, COPY_ON_LOAN, FINE_PAID, FINE_UNPAID
from models import Transaction as Txn

logger = logging.getLogger(__name__)


def days_late(due_date: date, returned_on: date) -> int:
    """Whole calendar days between the due date and the return date, 0 if on time."""
    if returned_on <= due_date:
        return 0
    return (returned_on - due_date).days


def fine_amount(due_date: date, returned_on: date, rate: Optional[int] = None) -> float:
    rate = settings.fine_rate_per_day if rate is None else rate
    return float(days_late(due_date, returned_on) * rate)


def issue_copy(
    member_id: int,
    copy_id: int,
    due_date: date,
    db: Session,
    staff_id: Optional[int] = None,
    today: Optional[date] = None,
) -> Txn:
    """Lend a copy to a member.

    Raises CopyUnavailable when the copy is already on loan and NotFound when
    it does not exist. Membership expiry and loan counts are not checked.
    """
    today = today or current_date()
    staff_id = settings.default_staff_id if staff_id is None else staff_id
    try:
        with atomic(db):
            claimed = (
                db.query(BookCopy)
                .filter(BookCopy.id == copy_id, BookCopy.status == COPY_AVAILABLE)
                .update({"status": COPY_ON_LOAN}, synchronize_session=False)
            )
            if claimed == 0:
                if db.query(BookCopy.id).filter(BookCopy.id == copy_id).first() is None:
                    raise NotFound("Copy not found")
                raise CopyUnavailable(f"Copy {copy_id} is not available")
            txn = Txn(
                copy_id=copy_id,
                member_id=member_id,
                staff_id=staff_id,
                issue_date=today,
                due_date=due_date,
                return_date=None,
            )
            db.add(txn)
    except IntegrityError as e:
        raise classify_integrity_error(
            e, "Duplicate transaction.", "Unknown member or staff member."
        ) from e
    db.refresh(txn)
    logger.info("Issued copy %s to member %s (transaction %s, due %s)", copy_id, member_id, txn.id, due_date)
    return txn


def get_transaction_by_id(txn_id: int, db: Session) -> Optional[Txn]:
    return db.query(Txn).filter(Txn.id == txn_id).first()


def return_copy(txn_id: int, db: Session, today: Optional[date] = None) -> Tuple[Txn, Optional[Fine]]:
    """Close an open loan and charge a fine if it is overdue.

    The loan is closed with a conditional UPDATE on ``return_date IS NULL``,
    so a repeated return of the same loan fails with LoanAlreadyClosed even
    when this session's copy of the row is stale. The return, the copy status
    change and the fine insert commit together: if the fine cannot be
    recorded the loan stays open.
    """
    today = today or current_date()
    txn = get_transaction_by_id(txn_id, db)
    if not txn:
        raise NotFound("Transaction not found")
    copy_id, due_date = txn.copy_id, txn.due_date

    fine = None
    try:
        with atomic(db):
            closed = (
                db.query(Txn)
                .filter(Txn.id == txn_id, Txn.return_date.is_(None))
                .update({"return_date": today}, synchronize_session=False)
            )
            if closed == 0:
                raise LoanAlreadyClosed(f"Transaction {txn_id} was already returned")
            db.query(BookCopy).filter(BookCopy.id == copy_id, BookCopy.status == COPY_ON_LOAN).update(
                {"status": COPY_AVAILABLE}, synchronize_session=False
            )
            if today > due_date:
                fine = Fine(
                    transaction_id=txn_id,
                    amount=fine_amount(due_date, today),
                    fine_date=today,
                    status=FINE_UNPAID,
                )
                db.add(fine)
    except IntegrityError as e:
        logger.error("Return of transaction %s failed: %s", txn_id, e)
        raise classify_integrity_error(
            e, "A fine already exists for this transaction.", "Invalid transaction reference."
        ) from e
    db.refresh(txn)
    if fine is not None:
        db.refresh(fine)
        logger.info("Transaction %s returned %s day(s) late, fine %s", txn_id, days_late(due_date, today), fine.amount)
    return txn, fine


def pay_fine(fine_id: int, db: Session) -> Optional[Fine]:
    # no check that the fine was Unpaid; paying twice leaves it Paid
    f = db.query(Fine).filter(Fine.id == fine_id).first()
    if not f:
        return None
    with atomic(db):
        f.status = FINE_PAID
    db.refresh(f)
    return f


def open_loans_for_copy(copy_id: int, db: Session) -> List[Txn]:
    return db.query(Txn).filter(Txn.copy_id == copy_id, Txn.return_date.is_(None)).all()


def list_transactions(db: Session) -> List[dict]:
    rows = (
        db.query(Txn, Member.name, Book.title)
        .join(Member, Txn.member_id == Member.id)
        .join(BookCopy, Txn.copy_id == BookCopy.id)
        .join(Book, BookCopy.book_id == Book.id)
        .order_by(Txn.id.desc())
        .all()
    )
    results = []
    for txn, member_name, title in rows:
        results.append({
            'id': txn.id,
            'issue_date': txn.issue_date,
            'due_date': txn.due_date,
            'return_date': txn.return_date,
            'copy_id': txn.copy_id,
            'member_name': member_name,
            'title': title,
        })
    return results


def list_fines(db: Session) -> List[dict]:
    rows = (
        db.query(Fine, Member.name, Book.title)
        .join(Txn, Fine.transaction_id == Txn.id)
        .join(Member, Txn.member_id == Member.id)
        .join(BookCopy, Txn.copy_id == BookCopy.id)
        .join(Book, BookCopy.book_id == Book.id)
        .order_by(Fine.id.desc())
        .all()
    )
    results = []
    for f, member_name, title in rows:
        results.append({
            'id': f.id,
            'amount': f.amount,
            'fine_date': f.fine_date,
            'status': f.status,
            'member_name': member_name,
            'title': title,
        })
    return results


def issue_form_options(db: Session) -> dict:
    """Members and the copies that can currently be lent out."""
    members = db.query(Member.id, Member.name).order_by(Member.id).all()
    copies = (
        db.query(BookCopy.id, Book.title, BookCopy.shelf_location)
        .join(Book, BookCopy.book_id == Book.id)
        .filter(BookCopy.status == COPY_AVAILABLE)
        .order_by(BookCopy.id)
        .all()
    )
    return {
        'members': [{'id': m[0], 'name': m[1]} for m in members],
        'copies': [{'copy_id': c[0], 'title': c[1], 'shelf_location': c[2]} for c in copies],
    }
