from datetime import date
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


# --- Catalog ---
class BookCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    isbn: str = Field(..., min_length=1, max_length=50)
    publication_date: Optional[date] = None
    category: str = Field(..., min_length=1, max_length=200)
    publisher: str = Field(..., min_length=1, max_length=200)
    author: str = Field(..., min_length=1, max_length=200)
    shelf_location: Optional[str] = Field(None, max_length=100)


class BookUpdate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    isbn: str = Field(..., min_length=1, max_length=50)
    publication_date: Optional[date] = None


class BookListItem(BaseModel):
    id: int
    title: str
    isbn: str
    publication_date: Optional[date] = None
    publisher_name: Optional[str] = None
    category_name: Optional[str] = None
    authors: Optional[str] = None  # comma separated
    total_copies: int = 0


class BookDetail(BaseModel):
    id: int
    title: str
    isbn: str
    publication_date: Optional[date] = None
    publisher_name: Optional[str] = None
    category_name: Optional[str] = None


class BookFormOptions(BaseModel):
    publishers: List[str]
    categories: List[str]
    authors: List[str]


class CopyCreate(BaseModel):
    shelf_location: Optional[str] = Field(None, max_length=100)


class CopyOut(BaseModel):
    id: int
    book_id: int
    status: str
    purchase_date: Optional[date] = None
    shelf_location: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class ManageCopies(BaseModel):
    book_id: int
    title: str
    copies: List[CopyOut]


# --- Membership ---
class MemberBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = None
    membership_type: Optional[str] = Field(None, max_length=50)


class MemberCreate(MemberBase):
    pass


class MemberUpdate(MemberBase):
    # all fields optional for updates
    name: Optional[str] = None


class MemberOut(MemberBase):
    id: int
    join_date: Optional[date] = None
    expiry_date: Optional[date] = None
    model_config = ConfigDict(from_attributes=True)


class StaffCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1)
    role: Optional[str] = None


class StaffOut(BaseModel):
    id: int
    name: str
    username: str
    role: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


# --- Circulation ---
class IssueRequest(BaseModel):
    member_id: int
    copy_id: int
    due_date: date
    staff_id: Optional[int] = None


class TransactionOut(BaseModel):
    id: int
    copy_id: int
    member_id: int
    staff_id: int
    issue_date: date
    due_date: date
    return_date: Optional[date] = None
    model_config = ConfigDict(from_attributes=True)


class TransactionListItem(BaseModel):
    id: int
    issue_date: date
    due_date: date
    return_date: Optional[date] = None
    copy_id: int
    member_name: str
    title: str


class FineOut(BaseModel):
    id: int
    transaction_id: int
    amount: float
    fine_date: date
    status: str
    model_config = ConfigDict(from_attributes=True)


class ReturnResult(BaseModel):
    transaction: TransactionOut
    fine: Optional[FineOut] = None


class FineListItem(BaseModel):
    id: int
    amount: float
    fine_date: date
    status: str
    member_name: str
    title: str


class IssueMemberOption(BaseModel):
    id: int
    name: str


class IssueCopyOption(BaseModel):
    copy_id: int
    title: str
    shelf_location: Optional[str] = None


class IssueFormOptions(BaseModel):
    members: List[IssueMemberOption]
    copies: List[IssueCopyOption]


# --- Dashboard ---
class RecentTransaction(BaseModel):
    id: int
    member_name: str
    title: str
    issue_date: date
    return_date: Optional[date] = None


class DashboardCounts(BaseModel):
    books: int
    members: int
    active_loans: int
    pending_fines: float


class Dashboard(BaseModel):
    counts: DashboardCounts
    recent_transactions: List[RecentTransaction]
