from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional

from microfiche.errors import MalformedRecordError, MicroficheError
from microfiche.knowledge_store import KnowledgeStore
from microfiche.query import QueryResult
from microfiche.shared import DISPLAY_LIMIT, KB_FILE, Record, configure_logging

logger = configure_logging()

# Global State
kb: Optional[KnowledgeStore] = None
kb_status = "Initializing..."


@asynccontextmanager
async def lifespan(app: FastAPI):
    global kb, kb_status

    # Load Knowledge Base; a missing file is reported, never replaced by a default
    kb_path = KB_FILE
    if not kb_path.exists():
        logger.warning("Knowledge base %s not found. Create it with the microfiche CLI.", kb_path)
        kb = KnowledgeStore(path=kb_path)
        kb_status = "Knowledge Base Missing."
        yield
        return

    kb = KnowledgeStore()
    try:
        outcome = kb.load(kb_path)
    except (MicroficheError, OSError) as e:
        logger.error("Failed to load %s: %s", kb_path, e)
        if isinstance(e, MalformedRecordError) and e.report is not None:
            for finding in e.report.errors:
                logger.error("  %s", finding.message)
            logger.error("%d validation problem(s) in %s", e.report.total_error_count, kb_path)
        kb = None
        kb_status = f"Load failed: {e}"
        yield
        return

    logger.info("Loaded knowledge base: %d notes", outcome.record_count)
    if not outcome.report.passed:
        logger.warning("%d validation problem(s) in %s", outcome.report.total_error_count, kb_path)
    kb_status = "Online."
    yield

app = FastAPI(lifespan=lifespan)

# ─────────────────────────────────────────────
# Models
# ─────────────────────────────────────────────
class RecordModel(BaseModel):
    category: str
    subcategory: str
    concept: str
    note: str
    key_detail: Optional[str] = None

    @classmethod
    def from_record(cls, record: Record) -> "RecordModel":
        return cls(**record.to_dict())

    def to_record(self) -> Record:
        return Record(**self.model_dump())

class MatchModel(BaseModel):
    path: List[str]
    record: RecordModel

class SearchRequest(BaseModel):
    query: str
    offset: int = Field(0, ge=0)
    limit: int = Field(DISPLAY_LIMIT, ge=0)

class SearchAllRequest(BaseModel):
    terms: List[str]
    offset: int = Field(0, ge=0)
    limit: int = Field(DISPLAY_LIMIT, ge=0)

class FilterRequest(BaseModel):
    text: str
    offset: int = Field(0, ge=0)
    limit: int = Field(DISPLAY_LIMIT, ge=0)

class SearchResponse(BaseModel):
    results: List[MatchModel]
    total: int
    has_more: bool

class StatsResponse(BaseModel):
    total_records: int
    category_count: int
    subcategory_count: int
    concept_count: int
    key_detail_count: Optional[int] = None
    per_category_counts: List[List]

class ValidateRequest(BaseModel):
    rows: List[List[str]]
    width: Optional[int] = Field(None, ge=4, le=5)

class FindingModel(BaseModel):
    kind: str
    line: int
    message: str

class ValidateResponse(BaseModel):
    passed: bool
    total_error_count: int
    rows_checked: int
    errors: List[FindingModel]

class DeleteNoteRequest(BaseModel):
    path: List[str]
    note: str

class DeleteSubtreeRequest(BaseModel):
    path: List[str]

class UpdateRequest(BaseModel):
    old: RecordModel
    new: RecordModel

class SaveRequest(BaseModel):
    # Saves always go to the file the service loaded; no caller-chosen paths
    model_config = ConfigDict(extra="forbid")

# ─────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────
def _require_kb() -> KnowledgeStore:
    if kb is None:
        raise HTTPException(status_code=503, detail=f"Knowledge base not loaded. Status: {kb_status}")
    return kb

def _to_response(result: QueryResult) -> SearchResponse:
    return SearchResponse(
        results=[MatchModel(path=list(m.path), record=RecordModel.from_record(m.record)) for m in result.matches],
        total=result.total,
        has_more=result.has_more,
    )

def _bad_request(e: Exception) -> HTTPException:
    return HTTPException(status_code=400, detail=str(e))

# ─────────────────────────────────────────────
# Endpoints
# ─────────────────────────────────────────────

@app.get("/health")
def health():
    return {
        "status": "online",
        "kb_records": len(kb.store) if kb else 0,
        "kb_file": str(kb.path) if kb and kb.path else None,
        "kb_status": kb_status,
    }

@app.get("/tree")
def get_tree_structure() -> Dict[str, Dict[str, List[str]]]:
    """Return the category/subcategory/concept skeleton (no notes)."""
    return _require_kb().list_structure()

@app.post("/search", response_model=SearchResponse)
def search(req: SearchRequest):
    """Single-term search: category name, then subcategory name, then any field."""
    return _to_response(_require_kb().search(req.query, req.offset, req.limit))

@app.post("/search/all", response_model=SearchResponse)
def search_all(req: SearchAllRequest):
    """Notes containing every term, possibly in different fields."""
    return _to_response(_require_kb().search_all(req.terms, req.offset, req.limit))

@app.post("/filter/category", response_model=SearchResponse)
def filter_category(req: FilterRequest):
    return _to_response(_require_kb().filter_by_category(req.text, req.offset, req.limit))

@app.post("/filter/subcategory", response_model=SearchResponse)
def filter_subcategory(req: FilterRequest):
    return _to_response(_require_kb().filter_by_subcategory(req.text, req.offset, req.limit))

@app.get("/stats", response_model=StatsResponse)
def get_stats():
    s = _require_kb().stats()
    return StatsResponse(
        total_records=s.total_records,
        category_count=s.category_count,
        subcategory_count=s.subcategory_count,
        concept_count=s.concept_count,
        key_detail_count=s.key_detail_count,
        per_category_counts=[[cat, n] for cat, n in s.per_category_counts],
    )

@app.get("/terms")
def get_terms(top: int = 10):
    """Word associations: frequent co-occurring pairs and top terms per category."""
    report = _require_kb().analyze_terms()
    return {
        "unique_terms": report.unique_terms,
        "cooccurrences": [
            {"pair": list(pair), "count": count, "categories": cats}
            for pair, count, cats in report.cooccurrences[:top]
        ],
        "category_terms": {
            cat: [{"term": t, "count": n} for t, n in terms]
            for cat, terms in report.category_terms.items()
        },
    }

@app.get("/unique/{field}")
def get_unique(field: str) -> List[str]:
    try:
        return _require_kb().unique_values(field)
    except MicroficheError as e:
        raise _bad_request(e)

@app.get("/random", response_model=List[RecordModel])
def get_random(n: int = 1):
    try:
        return [RecordModel.from_record(r) for r in _require_kb().random_sample(n)]
    except MicroficheError as e:
        raise _bad_request(e)

@app.post("/validate", response_model=ValidateResponse)
def validate_rows(req: ValidateRequest):
    report = _require_kb().validate(req.rows, width=req.width)
    return ValidateResponse(
        passed=report.passed,
        total_error_count=report.total_error_count,
        rows_checked=report.rows_checked,
        errors=[FindingModel(kind=e.kind, line=e.line, message=e.message) for e in report.errors],
    )

@app.post("/records", response_model=RecordModel, status_code=201)
def add_record(req: RecordModel):
    try:
        return RecordModel.from_record(_require_kb().add(req.to_record()))
    except MicroficheError as e:
        raise _bad_request(e)

@app.post("/records/delete")
def delete_note(req: DeleteNoteRequest):
    try:
        removed = _require_kb().delete_note(req.path, req.note)
    except MicroficheError as e:
        raise _bad_request(e)
    if not removed:
        raise HTTPException(status_code=404, detail="Note not found")
    return {"deleted": 1}

@app.post("/records/delete-subtree")
def delete_subtree(req: DeleteSubtreeRequest):
    try:
        return {"deleted": _require_kb().delete_subtree(req.path)}
    except MicroficheError as e:
        raise _bad_request(e)

@app.post("/records/update", response_model=RecordModel)
def update_record(req: UpdateRequest):
    try:
        updated = _require_kb().update(req.old.to_record(), req.new.to_record())
    except MicroficheError as e:
        raise _bad_request(e)
    if updated is None:
        raise HTTPException(status_code=404, detail="Record not found")
    return RecordModel.from_record(updated)

@app.post("/save")
def save(req: Optional[SaveRequest] = None):
    """Write the knowledge base back to the file it was loaded from."""
    store = _require_kb()
    try:
        target = store.save()
    except ValueError as e:
        raise _bad_request(e)
    except OSError as e:
        logger.error("Save failed: %s", e)
        raise HTTPException(status_code=500, detail=f"Save failed: {e}")
    logger.info("Saved %d notes to %s", len(store.store), target)
    return {"path": str(target), "records": len(store.store)}
