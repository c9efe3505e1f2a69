"""
FastAPI web service for the genealogy store.

Provides REST endpoints for:
- Creating, listing and deleting trees
- Uploading GEDCOM files and importing them chunk by chunk
- Moderating pending changes
- Reading and creating records
"""

from __future__ import annotations

from contextlib import asynccontextmanager, contextmanager
from datetime import datetime
from typing import Generator

from fastapi import APIRouter, Depends, FastAPI, File, Form, Header, HTTPException, Query, UploadFile
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from genealogy_store import __version__
from genealogy_store.config import StoreConfig
from genealogy_store.core.exceptions import (
    ChangeConflict,
    ChangeNotFound,
    GedcomStoreError,
    MalformedRecord,
    TreeNotFound,
    UnsupportedEncoding,
)
from genealogy_store.core.models import Actor, ChangeStatus, RecordKind
from genealogy_store.services.export import export_gedcom
from genealogy_store.services.importer import GedcomImportService
from genealogy_store.services.ledger import PendingChangeLedger
from genealogy_store.services.records import TreeRecords
from genealogy_store.services.trees import TreeService
from genealogy_store.storage import Database, open_database

router = APIRouter(prefix="/trees", tags=["Trees"])

_config: StoreConfig | None = None


def get_config() -> StoreConfig:
    """Get or load the store configuration."""
    global _config
    if _config is None:
        _config = StoreConfig.load()
    return _config


def get_db(config: StoreConfig = Depends(get_config)) -> Generator[Database, None, None]:
    """One connection per request."""
    db = Database(config.database_path).connect()
    try:
        yield db
    finally:
        db.close()


def get_actor(
    x_user_id: int | None = Header(None),
    x_user_name: str = Header("system"),
) -> Actor:
    return Actor(id=x_user_id, user_name=x_user_name)


@contextmanager
def http_errors() -> Generator[None, None, None]:
    """Map store errors onto HTTP status codes."""
    try:
        yield
    except (TreeNotFound, ChangeNotFound) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ChangeConflict as e:
        raise HTTPException(status_code=409, detail=str(e))
    except (MalformedRecord, UnsupportedEncoding) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except GedcomStoreError as e:
        raise HTTPException(status_code=500, detail=str(e))


# =============================================================================
# Request/Response Models
# =============================================================================

class TreeCreate(BaseModel):
    name: str = Field(..., min_length=1, description="Unique tree name")
    title: str = Field(..., description="Display title")


class TreeResponse(BaseModel):
    id: int
    name: str
    title: str
    gedcom_filename: str
    imported: bool


class UploadResponse(BaseModel):
    filename: str
    chunks: int


class ImportIssueResponse(BaseModel):
    message: str
    line_number: int | None = None
    chunk_id: int | None = None


class ImportResponse(BaseModel):
    records: int
    chunks: int
    complete: bool
    errors: list[ImportIssueResponse] = Field(default_factory=list)


class ProgressResponse(BaseModel):
    imported_bytes: int
    total_bytes: int
    imported_chunks: int
    total_chunks: int
    fraction: float


class ChangeResponse(BaseModel):
    id: int
    xref: str
    old_gedcom: str
    new_gedcom: str
    status: ChangeStatus
    user_id: int | None = None
    change_time: datetime | None = None


class RecordCreate(BaseModel):
    gedcom: str = Field(..., description="Record text beginning 0 @@ TAG")
    kind: RecordKind | None = None
    auto_accept: bool = False


class RecordResponse(BaseModel):
    xref: str
    gedcom: str
    change_id: int | None = None
    committed: bool = True


def _tree_response(tree) -> TreeResponse:
    return TreeResponse(
        id=tree.id,
        name=tree.name,
        title=tree.title,
        gedcom_filename=tree.gedcom_filename,
        imported=tree.imported,
    )


def _change_response(change) -> ChangeResponse:
    return ChangeResponse(
        id=change.id,
        xref=change.xref,
        old_gedcom=change.old_gedcom,
        new_gedcom=change.new_gedcom,
        status=change.status,
        user_id=change.user_id,
        change_time=change.change_time,
    )


# =============================================================================
# Trees
# =============================================================================

@router.post("", response_model=TreeResponse, status_code=201)
def create_tree(
    request: TreeCreate,
    db: Database = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> TreeResponse:
    """Create a tree with a header and a placeholder individual."""
    trees = TreeService(db)
    if db.exists("gedcom", {"gedcom_name": request.name}):
        raise HTTPException(status_code=409, detail=f"Tree already exists: {request.name}")
    return _tree_response(trees.create(request.name, request.title, actor))


@router.get("", response_model=list[TreeResponse])
def list_trees(db: Database = Depends(get_db)) -> list[TreeResponse]:
    return [_tree_response(tree) for tree in TreeService(db).all()]


@router.get("/{tree_id}", response_model=TreeResponse)
def get_tree(tree_id: int, db: Database = Depends(get_db)) -> TreeResponse:
    with http_errors():
        return _tree_response(TreeService(db).find(tree_id))


@router.delete("/{tree_id}", status_code=204)
def delete_tree(tree_id: int, db: Database = Depends(get_db)) -> None:
    with http_errors():
        TreeService(db).delete(tree_id)


# =============================================================================
# GEDCOM import and export
# =============================================================================

@router.post("/{tree_id}/gedcom", response_model=UploadResponse)
def upload_gedcom(
    tree_id: int,
    file: UploadFile = File(...),
    encoding: str | None = Form(None),
    db: Database = Depends(get_db),
    config: StoreConfig = Depends(get_config),
) -> UploadResponse:
    """
    Upload a GEDCOM file, replacing the tree's data.

    The file is stored as chunks; call the import endpoint to process them.
    """
    filename = file.filename or "upload.ged"
    with http_errors():
        chunks = TreeService(db).import_gedcom_file(
            tree_id,
            file.file,
            filename,
            encoding=encoding or config.default_encoding,
            chunk_size=config.chunk_size,
        )
    return UploadResponse(filename=filename, chunks=chunks)


@router.post("/{tree_id}/gedcom/import", response_model=ImportResponse)
def import_chunks(
    tree_id: int,
    max_chunks: int | None = Query(None, ge=1, description="Chunks to process in this call"),
    auto_accept: bool = Query(False, description="Accept imported records immediately"),
    db: Database = Depends(get_db),
    actor: Actor = Depends(get_actor),
    config: StoreConfig = Depends(get_config),
) -> ImportResponse:
    """Process uploaded chunks."""
    with http_errors():
        TreeService(db).find(tree_id)
        result = GedcomImportService(db).import_chunks(
            tree_id,
            actor,
            auto_accept=auto_accept,
            strict=config.strict_import,
            max_chunks=max_chunks,
        )
    return ImportResponse(
        records=len(result.records),
        chunks=result.chunks,
        complete=result.complete,
        errors=[
            ImportIssueResponse(message=e.message, line_number=e.line_number, chunk_id=e.chunk_id)
            for e in result.errors
        ],
    )


@router.get("/{tree_id}/gedcom/progress", response_model=ProgressResponse)
def import_progress(tree_id: int, db: Database = Depends(get_db)) -> ProgressResponse:
    with http_errors():
        trees = TreeService(db)
        trees.find(tree_id)
        progress = trees.chunks.progress(tree_id)
    return ProgressResponse(
        imported_bytes=progress.imported_bytes,
        total_bytes=progress.total_bytes,
        imported_chunks=progress.imported_chunks,
        total_chunks=progress.total_chunks,
        fraction=progress.fraction,
    )


@router.get("/{tree_id}/gedcom", response_class=PlainTextResponse)
def download_gedcom(tree_id: int, db: Database = Depends(get_db)) -> str:
    with http_errors():
        TreeService(db).find(tree_id)
    return export_gedcom(db, tree_id)


# =============================================================================
# Pending changes
# =============================================================================

@router.get("/{tree_id}/changes", response_model=list[ChangeResponse])
def list_changes(tree_id: int, db: Database = Depends(get_db)) -> list[ChangeResponse]:
    with http_errors():
        TreeService(db).find(tree_id)
    return [_change_response(c) for c in PendingChangeLedger(db).pending_changes(tree_id)]


def _resolve(tree_id: int, change_id: int, accept: bool, db: Database, actor: Actor) -> ChangeResponse:
    ledger = PendingChangeLedger(db)
    with http_errors():
        change = ledger.get(change_id)
        if change.tree_id != tree_id:
            raise ChangeNotFound(change_id)
        if accept:
            change = ledger.accept_change(change_id, actor)
        else:
            change = ledger.reject_change(change_id, actor)
    return _change_response(change)


@router.post("/{tree_id}/changes/{change_id}/accept", response_model=ChangeResponse)
def accept_change(
    tree_id: int,
    change_id: int,
    db: Database = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> ChangeResponse:
    return _resolve(tree_id, change_id, True, db, actor)


@router.post("/{tree_id}/changes/{change_id}/reject", response_model=ChangeResponse)
def reject_change(
    tree_id: int,
    change_id: int,
    db: Database = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> ChangeResponse:
    return _resolve(tree_id, change_id, False, db, actor)


# =============================================================================
# Records
# =============================================================================

@router.get("/{tree_id}/records/{xref}", response_model=RecordResponse)
def get_record(tree_id: int, xref: str, db: Database = Depends(get_db)) -> RecordResponse:
    gedcom = TreeRecords(db, tree_id).get(xref)
    if gedcom is None:
        raise HTTPException(status_code=404, detail=f"Record not found: {xref}")
    return RecordResponse(xref=xref, gedcom=gedcom)


@router.post("/{tree_id}/records", response_model=RecordResponse, status_code=201)
def create_record(
    tree_id: int,
    request: RecordCreate,
    db: Database = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> RecordResponse:
    """Create a record; it stays pending unless auto_accept is set."""
    actor = actor.model_copy(update={"auto_accept_edits": request.auto_accept})
    with http_errors():
        TreeService(db).find(tree_id)
        handle = TreeRecords(db, tree_id).create_record(request.gedcom, actor, request.kind)
    return RecordResponse(
        xref=handle.xref,
        gedcom=handle.gedcom,
        change_id=handle.change_id,
        committed=handle.committed,
    )


# =============================================================================
# FastAPI Application
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create or migrate the schema on startup."""
    open_database(get_config().database_path).close()
    yield


app = FastAPI(
    title="Genealogy Store API",
    description="GEDCOM import and pending-change moderation.",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(router)


@app.get("/health", tags=["Health"])
def health() -> dict:
    return {"status": "healthy", "timestamp": datetime.now(), "version": __version__}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
