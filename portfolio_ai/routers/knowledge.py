from fastapi import APIRouter, File, Form, UploadFile

from portfolio_ai.models.models import CONTENT_SOURCE_TYPES
from portfolio_ai.models.schemas import IndexResponse, KnowledgeTextRequest, RebuildResponse
from portfolio_ai.services import indexer
from portfolio_ai.services.chunk_store import find_source_chunks
from portfolio_ai.utils.exceptions import MalformedInputError, NotFoundError
from portfolio_ai.utils.logging_config import get_logger, log_api_call

logger = get_logger(__name__)

router = APIRouter()

MAX_UPLOAD_BYTES = 10 * 1024 * 1024


def _check_source_type(source_type: str) -> str:
    if source_type not in CONTENT_SOURCE_TYPES:
        raise MalformedInputError(f"Unknown source type: {source_type}", field="source_type", value=source_type)
    return source_type


@router.post("/rebuild", response_model=RebuildResponse)
@log_api_call("rebuild_index")
async def rebuild_index():
    """Re-index every published record and drop chunks of unpublished ones"""
    counts = await indexer.rebuild_all()
    return RebuildResponse(counts=counts)


@router.post("/index/{source_type}/{source_id}", response_model=IndexResponse)
@log_api_call("sync_record")
async def sync_record(source_type: str, source_id: str):
    """Bring one record's chunks in line with its publish state"""
    result = await indexer.sync_record(_check_source_type(source_type), source_id)
    return IndexResponse(result=result)


@router.delete("/index/{source_type}/{source_id}", response_model=IndexResponse)
@log_api_call("remove_index")
async def remove_index(source_type: str, source_id: str):
    result = await indexer.remove_index(source_type, source_id)
    return IndexResponse(result=result)


@router.get("/index/{source_type}/{source_id}/chunks")
async def list_chunks(source_type: str, source_id: str):
    chunks = await find_source_chunks(source_type, source_id)
    if not chunks:
        raise NotFoundError(f"No chunks indexed for {source_type}:{source_id}", source_type=source_type, source_id=source_id)
    return {"source_type": source_type, "source_id": source_id, "count": len(chunks), "chunks": chunks}


@router.post("/knowledge/text", response_model=IndexResponse)
@log_api_call("ingest_text")
async def ingest_text(body: KnowledgeTextRequest):
    result = await indexer.ingest_text(body.title, body.content, body.source_type, body.source_id)
    return IndexResponse(success=result.failed == 0, result=result)


@router.post("/knowledge/upload", response_model=IndexResponse)
@log_api_call("ingest_upload")
async def ingest_upload(file: UploadFile = File(...), source_type: str = Form("article")):
    """Ingest a PDF, DOCX, TXT or Markdown file as free-form knowledge"""
    data = await file.read()
    if not data:
        raise MalformedInputError("Uploaded file is empty", field="file")
    if len(data) > MAX_UPLOAD_BYTES:
        raise MalformedInputError("Uploaded file is too large", field="file", value=len(data))
    result = await indexer.ingest_file(file.filename or "upload.txt", data, source_type)
    return IndexResponse(success=result.failed == 0, result=result)
