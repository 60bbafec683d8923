# ruff: noqa: B008

import json
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Dict

from components.document_processing import DocumentLoaderError, detect_format
from components.kb_service.main import KnowledgeBaseService
from components.kb_service.models import StreamChunk, StreamEventType
from components.vector_store.vector_store import VectorStoreError
from fastapi import Depends, FastAPI, File, HTTPException, UploadFile
from fastapi.responses import StreamingResponse
from shared.config import RetrievalProfile
from sse_starlette.sse import EventSourceResponse

from .models import (
    ChatRequest,
    ExtractionResponse,
    HealthResponse,
    ReindexResponse,
)

logger = logging.getLogger(__name__)

CHAT_FAILURE_MESSAGE = "Failed to process chat request"


class StreamAbortedError(Exception):
    """Raised inside a plain-text stream to abort the response mid-flight."""


def _require_message(request: ChatRequest) -> str:
    message = (request.message or "").strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message required")
    return message


def create_app(service: KnowledgeBaseService) -> FastAPI:
    """
    Creates and configures the FastAPI application, registering all routes.
    This function returns the app object but does not run it.

    Args:
        service: The fully initialized KnowledgeBaseService instance.

    Returns:
        The configured FastAPI app instance.
    """
    app = FastAPI(title="Knowledge Base RAG API")

    def get_service() -> KnowledgeBaseService:
        return service

    async def _prepare_context(
        svc: KnowledgeBaseService, query: str, profile: RetrievalProfile
    ) -> str:
        try:
            return await svc.retrieve_context(query, profile)
        except Exception as e:
            logger.error(f"Retrieval failed: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=CHAT_FAILURE_MESSAGE) from e

    async def _start_answer(
        svc: KnowledgeBaseService, request: ChatRequest, profile: RetrievalProfile
    ) -> AsyncIterator[StreamChunk]:
        query = _require_message(request)
        context = await _prepare_context(svc, query, profile)
        try:
            return svc.answer_stream(query, request.history, context, profile)
        except ValueError as e:
            logger.error(f"Answer stream unavailable: {e}")
            raise HTTPException(status_code=500, detail=CHAT_FAILURE_MESSAGE) from e

    @app.get("/health", response_model=HealthResponse, tags=["admin"])
    def health(svc: KnowledgeBaseService = Depends(get_service)) -> HealthResponse:
        try:
            count = svc.vector_store.get_chunk_count()
        except VectorStoreError as e:
            raise HTTPException(status_code=500, detail=str(e)) from e
        return HealthResponse(status="operational", indexed_chunks=count)

    @app.post("/chat", tags=["chat"], operation_id="chat")
    async def chat(
        request: ChatRequest, svc: KnowledgeBaseService = Depends(get_service)
    ) -> EventSourceResponse:
        answer = await _start_answer(svc, request, svc.config.retrieval.knowledge_base)

        async def events() -> AsyncIterator[Dict[str, Any]]:
            async with aclosing(answer) as stream:
                async for chunk in stream:
                    if chunk.type is StreamEventType.DELTA:
                        yield {"data": json.dumps({"content": chunk.content})}
                    elif chunk.type is StreamEventType.DONE:
                        yield {"data": "[DONE]"}
                    else:
                        yield {
                            "event": "error",
                            "data": json.dumps({"error": CHAT_FAILURE_MESSAGE}),
                        }

        return EventSourceResponse(events(), headers={"Cache-Control": "no-cache"})

    @app.post("/support", tags=["chat"], operation_id="support_chat")
    async def support(
        request: ChatRequest, svc: KnowledgeBaseService = Depends(get_service)
    ) -> StreamingResponse:
        answer = await _start_answer(svc, request, svc.config.retrieval.support)

        async def text_fragments() -> AsyncIterator[str]:
            async with aclosing(answer) as stream:
                async for chunk in stream:
                    if chunk.type is StreamEventType.DELTA:
                        yield chunk.content
                    elif chunk.type is StreamEventType.ERROR:
                        raise StreamAbortedError(chunk.error)

        return StreamingResponse(
            text_fragments(), media_type="text/plain; charset=utf-8"
        )

    @app.post(
        "/documents/extract",
        response_model=ExtractionResponse,
        tags=["documents"],
        operation_id="extract_document",
    )
    async def extract_document(
        file: UploadFile = File(...),
        svc: KnowledgeBaseService = Depends(get_service),
    ) -> ExtractionResponse:
        data = await file.read()
        file_name = file.filename or "document.bin"
        result = await svc.aextract_document(data, file.content_type, file_name)
        problem = svc.describe_extraction(result)

        response = ExtractionResponse(
            file_name=file_name,
            format=detect_format(file.content_type, file_name).value,
            usable=problem is None,
            message=problem,
        )
        if result is not None:
            response.title = result.title
            response.is_scanned = result.is_scanned
            response.page_count = result.metadata.get("pageCount")
            response.content = result.content
            if result.text is not None:
                response.text_length = len(result.text)
        return response

    @app.post(
        "/reindex",
        response_model=ReindexResponse,
        tags=["admin"],
        operation_id="reindex_knowledge_base",
    )
    async def reindex(
        svc: KnowledgeBaseService = Depends(get_service),
    ) -> ReindexResponse:
        try:
            report = await svc.reindex()
        except (DocumentLoaderError, VectorStoreError) as e:
            logger.error(f"Re-indexing failed: {e}")
            raise HTTPException(status_code=500, detail=str(e)) from e

        return ReindexResponse(
            success=report.failed == 0,
            message=(
                f"Ingested {report.total_chunks} chunks from {report.succeeded} "
                f"files ({report.failed} failed)."
            ),
            total_chunks=report.total_chunks,
            files=report.files,
        )

    return app
