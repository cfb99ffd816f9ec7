import logging
from datetime import datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from book import BookPatch
from config import settings
from errors import ConflictError, InventoryError, LibraryError, NotFoundError, UnavailableError
from library import Library
from spreadsheet import COLUMNS, SpreadsheetError, export_filename, import_collection, to_bytes
from store import COLLECTIONS
from transaction import Decision, TransactionKind

logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

app = FastAPI(title=settings.app_name, version=settings.app_version)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Library dependency ---
_library: Optional[Library] = None


def get_library() -> Library:
    """Process-wide Library, created on first use."""
    global _library
    if _library is None:
        _library = Library()
    return _library


# --- Admin role gate ---
api_key_header = APIKeyHeader(name="X-API-Key")


def get_api_key(api_key: str = Security(api_key_header)):
    """Dependency that checks the admin key."""
    if api_key == settings.api_key:
        return api_key
    raise HTTPException(status_code=403, detail="Could not validate credentials")


_STATUS_FOR_ERROR = {
    ConflictError: 409,
    NotFoundError: 404,
    UnavailableError: 409,
    InventoryError: 409,
}


def _http_error(exc: LibraryError) -> HTTPException:
    status = next((code for cls, code in _STATUS_FOR_ERROR.items() if isinstance(exc, cls)), 400)
    return HTTPException(status_code=status, detail=str(exc))


# --- Models ---
class BookModel(BaseModel):
    id: str
    title: str
    author: str
    category: str
    total_copies: int
    available_copies: int


class BookCreateModel(BaseModel):
    title: str
    author: str
    total_copies: int = Field(ge=1)
    category: Optional[str] = None


class BookUpdateModel(BaseModel):
    title: Optional[str] = None
    author: Optional[str] = None
    category: Optional[str] = None
    total_copies: Optional[int] = Field(default=None, ge=0)
    available_copies: Optional[int] = Field(default=None, ge=0)


class StudentModel(BaseModel):
    id: str
    name: str
    email: str
    phone: str
    borrowed_books: List[str]


class StudentLoginModel(BaseModel):
    email: str


class AdminLoginModel(BaseModel):
    password: str


class TransactionModel(BaseModel):
    id: str
    student_id: str
    book_id: str
    issue_date: str
    return_date: Optional[str] = None
    status: str
    book_title: Optional[str] = None
    student_name: Optional[str] = None


class TransactionCreateModel(BaseModel):
    student_id: str
    book_id: str
    kind: TransactionKind = TransactionKind.ISSUE


class DecisionResultModel(BaseModel):
    transaction_id: str
    found: bool
    transaction: Optional[TransactionModel] = None


class StatsModel(BaseModel):
    total_books: int
    total_copies: int
    available_copies: int
    total_students: int
    pending_requests: int
    issued_books: int


class ImportResultModel(BaseModel):
    collection: str
    imported: int


def _student_model(student) -> StudentModel:
    return StudentModel(id=student.id, name=student.name, email=student.email,
                        phone=student.phone, borrowed_books=student.borrowed_books)


def _check_collection(collection: str) -> None:
    if collection not in COLLECTIONS:
        raise HTTPException(status_code=404, detail=f"Unknown collection: {collection}")


# --- Health ---
@app.get("/health")
def health(lib: Library = Depends(get_library)):
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "total_books": len(lib.get_books()),
        "version": settings.app_version,
    }


# --- Login ---
@app.post("/login/student", response_model=StudentModel)
def login_student(payload: StudentLoginModel, lib: Library = Depends(get_library)):
    student = lib.get_student_by_email(payload.email)
    if not student:
        raise HTTPException(status_code=404, detail="Student not found. Please check your email.")
    return _student_model(student)


@app.post("/login/admin")
def login_admin(payload: AdminLoginModel):
    if payload.password != settings.api_key:
        raise HTTPException(status_code=403, detail="Invalid admin password")
    return {"role": "admin", "api_key": settings.api_key}


# --- Books ---
@app.get("/books", response_model=List[BookModel])
def list_books(q: Optional[str] = Query(default=None, description="Title, author or category"),
               lib: Library = Depends(get_library)):
    books = lib.search_books(q) if q else lib.get_books()
    return [BookModel(**b.to_dict()) for b in books]


@app.get("/books/{book_id}", response_model=BookModel)
def get_book(book_id: str, lib: Library = Depends(get_library)):
    book = lib.find_book(book_id)
    if not book:
        raise HTTPException(status_code=404, detail="Book not found.")
    return BookModel(**book.to_dict())


@app.post("/books", response_model=BookModel, status_code=201, dependencies=[Depends(get_api_key)])
def create_book(payload: BookCreateModel, lib: Library = Depends(get_library)):
    try:
        book = lib.add_book(payload.title, payload.author, payload.total_copies, payload.category)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return BookModel(**book.to_dict())


@app.put("/books/{book_id}", response_model=BookModel, dependencies=[Depends(get_api_key)])
def update_book(book_id: str, payload: BookUpdateModel, lib: Library = Depends(get_library)):
    patch = BookPatch(
        title=payload.title,
        author=payload.author,
        category=payload.category,
        total_copies=payload.total_copies,
        available_copies=payload.available_copies,
    )
    try:
        book = lib.update_book(book_id, patch)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if book is None:
        raise HTTPException(status_code=404, detail="Book not found.")
    return BookModel(**book.to_dict())


@app.delete("/books/{book_id}", dependencies=[Depends(get_api_key)])
def delete_book(book_id: str, lib: Library = Depends(get_library)):
    try:
        removed = lib.delete_book(book_id)
    except LibraryError as e:
        raise _http_error(e)
    if not removed:
        raise HTTPException(status_code=404, detail="Book not found.")
    return {"message": f"Book {book_id} has been removed."}


# --- Students ---
@app.get("/students", response_model=List[StudentModel], dependencies=[Depends(get_api_key)])
def list_students(lib: Library = Depends(get_library)):
    return [_student_model(s) for s in lib.get_students()]


@app.get("/students/{student_id}/transactions", response_model=List[TransactionModel])
def student_history(student_id: str, lib: Library = Depends(get_library)):
    if not lib.find_student(student_id):
        raise HTTPException(status_code=404, detail="Student not found.")
    rows = lib.describe_transactions(lib.transaction_history(student_id))
    return [TransactionModel(**r) for r in rows]


# --- Transactions ---
@app.get("/transactions", response_model=List[TransactionModel], dependencies=[Depends(get_api_key)])
def list_transactions(lib: Library = Depends(get_library)):
    rows = lib.describe_transactions(lib.transaction_history())
    return [TransactionModel(**r) for r in rows]


@app.get("/transactions/pending", response_model=List[TransactionModel], dependencies=[Depends(get_api_key)])
def list_pending(lib: Library = Depends(get_library)):
    rows = lib.describe_transactions(lib.pending_requests())
    return [TransactionModel(**r) for r in rows]


@app.post("/transactions", response_model=TransactionModel, status_code=201)
def create_transaction(payload: TransactionCreateModel, lib: Library = Depends(get_library)):
    try:
        tx = lib.create_transaction(payload.student_id, payload.book_id, payload.kind)
    except LibraryError as e:
        raise _http_error(e)
    return TransactionModel(**lib.describe_transaction(tx))


@app.post("/transactions/{transaction_id}/{action}", response_model=DecisionResultModel,
          dependencies=[Depends(get_api_key)])
def decide_transaction(transaction_id: str, action: Decision, lib: Library = Depends(get_library)):
    """Approve or reject a request. Unknown ids and settled requests are left alone."""
    try:
        tx = lib.process_transaction(transaction_id, action)
    except LibraryError as e:
        raise _http_error(e)
    if tx is None:
        return DecisionResultModel(transaction_id=transaction_id, found=False)
    return DecisionResultModel(
        transaction_id=transaction_id,
        found=True,
        transaction=TransactionModel(**lib.describe_transaction(tx)),
    )


# --- Stats ---
@app.get("/stats", response_model=StatsModel, dependencies=[Depends(get_api_key)])
def get_stats(lib: Library = Depends(get_library)):
    return StatsModel(**lib.get_statistics())


# --- Export/Import Endpoints ---
@app.get("/export/{collection}")
def export_spreadsheet(collection: str, lib: Library = Depends(get_library)):
    """Download a collection as <collection>.xlsx."""
    _check_collection(collection)
    content = to_bytes(lib.get_collection(collection), COLUMNS[collection])
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={export_filename(collection)}"},
    )


@app.post("/import/{collection}", response_model=ImportResultModel, dependencies=[Depends(get_api_key)])
async def import_spreadsheet(collection: str, request: Request, lib: Library = Depends(get_library)):
    """Replace a collection with the rows of the .xlsx request body."""
    _check_collection(collection)
    body = await request.body()
    if not body:
        raise HTTPException(status_code=400, detail="Upload an .xlsx file as the request body.")
    try:
        count = import_collection(lib, collection, body)
    except SpreadsheetError as e:
        logger.warning("Rejected %s upload: %s", collection, e)
        raise HTTPException(status_code=400, detail=str(e))
    return ImportResultModel(collection=collection, imported=count)
