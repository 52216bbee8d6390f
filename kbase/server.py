"""
kbase Server

FastAPI server exposing the query pipeline and chunk ingestion.

Endpoints:
- GET /health: Health check
- POST /api/query/ask: Answer a question (JSON)
- POST /api/query/stream: Answer a question (Server-Sent Events)
- POST /api/ingestion/chunks: Store already-chunked text
- GET /api/ingestion/stats: Vector store statistics
- GET /api/ingestion/test: Vector store connection test
- DELETE /api/ingestion/clear: Remove all ingested chunks
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from .common.config import load_config, KBaseConfig, ensure_directories
from .common.embedding_service import get_embedding_service
from .common.errors import KBaseError
from .common.llm_client import LLMClient
from .common.schemas import Passage
from .common.vector_store import VectorStore, create_vector_store
from .retriever.orchestrator import QueryOrchestrator

logger = logging.getLogger("kbase.server")

# Global state
config: Optional[KBaseConfig] = None
llm_client: Optional[LLMClient] = None
vector_store: Optional[VectorStore] = None
orchestrator: Optional[QueryOrchestrator] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize components on startup"""
    global config, llm_client, vector_store, orchestrator

    logger.info("Starting up...")
    load_dotenv()
    ensure_directories()

    config = load_config()

    llm_client = LLMClient.from_config(config.llm)
    if not llm_client.is_available:
        logger.warning("LLM client unavailable (provider: %s), queries will fail", config.llm.provider)

    embedding_service = get_embedding_service(model=config.embedding.model)
    vector_store = create_vector_store(config.vector_store, embedding_service)
    logger.info("Vector store ready (%s, index: %s)", config.vector_store.backend, vector_store.index_name)

    orchestrator = QueryOrchestrator.from_config(config, llm_client, vector_store)
    logger.info("Ready to answer questions")

    yield

    logger.info("Shutting down...")


app = FastAPI(
    title="kbase",
    description="Question answering over an ingested knowledge base",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# Request/Response Models
# =============================================================================

class QueryRequest(BaseModel):
    """Question submission. Shape is checked by the pipeline, not here."""
    question: Any = None


class ChunkIn(BaseModel):
    """One already-chunked piece of a document"""
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class IngestRequest(BaseModel):
    """Chunks of one document plus document-level metadata"""
    chunks: List[ChunkIn]
    metadata: Dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Middleware & error handling
# =============================================================================

@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def _error_response(request: Request, message: str, status_code: int) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "message": message,
                "statusCode": status_code,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "path": request.url.path,
                "method": request.method,
                "requestId": _request_id(request),
            }
        },
    )


@app.exception_handler(KBaseError)
async def kbase_error_handler(request: Request, exc: KBaseError):
    logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return _error_response(request, exc.message, exc.status_code)


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return _error_response(request, str(exc), 400)


def _require(component, name: str):
    if component is None:
        raise HTTPException(status_code=503, detail=f"{name} not initialized")
    return component


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/health")
async def health(request: Request):
    """Health check endpoint"""
    return {
        "status": "OK",
        "service": "kbase",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "requestId": _request_id(request),
        "initialized": orchestrator is not None,
        "llmAvailable": llm_client.is_available if llm_client else False,
    }


@app.post("/api/query/ask")
async def ask(payload: QueryRequest, request: Request):
    """Answer a question and return the result with its sources."""
    pipeline = _require(orchestrator, "Query pipeline")
    result = await pipeline.ask(payload.question)
    return {
        "success": True,
        "data": result.to_dict(),
        "requestId": _request_id(request),
    }


@app.post("/api/query/stream")
async def ask_stream(payload: QueryRequest):
    """Answer a question as a Server-Sent-Events stream."""
    pipeline = _require(orchestrator, "Query pipeline")
    events = pipeline.stream(payload.question)

    async def frames():
        async for event in events:
            yield event.to_sse()

    return StreamingResponse(
        frames(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@app.post("/api/ingestion/chunks")
async def ingest_chunks(payload: IngestRequest, request: Request):
    """Store already-chunked document text in the vector store."""
    store = _require(vector_store, "Vector store")
    chunks = [Passage(content=c.content, metadata=c.metadata) for c in payload.chunks]
    result = await asyncio.to_thread(store.upsert, chunks, payload.metadata)
    return {
        "success": True,
        "data": result.to_dict(),
        "requestId": _request_id(request),
    }


@app.get("/api/ingestion/stats")
async def ingestion_stats(request: Request):
    """Vector store statistics"""
    store = _require(vector_store, "Vector store")
    stats = await asyncio.to_thread(store.get_stats)
    return {"success": True, "data": stats, "requestId": _request_id(request)}


@app.get("/api/ingestion/test")
async def ingestion_test(request: Request):
    """Vector store connection test"""
    store = _require(vector_store, "Vector store")
    connected = await asyncio.to_thread(store.test_connection)
    return {"success": connected, "data": {"connected": connected}, "requestId": _request_id(request)}


@app.delete("/api/ingestion/clear")
async def ingestion_clear(request: Request):
    """Drop everything ingested so far"""
    store = _require(vector_store, "Vector store")
    await asyncio.to_thread(store.clear)
    return {"success": True, "message": "All ingested data cleared", "requestId": _request_id(request)}


def main():
    """Run the server with uvicorn"""
    import uvicorn

    load_dotenv()
    cfg = load_config()
    logging.basicConfig(
        level=cfg.server.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host=cfg.server.host, port=cfg.server.port)


if __name__ == "__main__":
    main()
