"""Tests for the KnowledgeBaseService."""

import io
import threading
from unittest.mock import MagicMock

import docx
import fitz
import pytest
from components.answer_engine import AnswerStreamer
from components.document_processing import DocumentFormat, DocumentLoaderError
from components.embedding_system import EmbeddingGenerator, l2_normalize
from components.kb_service.main import (
    SCANNED_DOCUMENT_MESSAGE,
    TOO_LITTLE_TEXT_MESSAGE,
    UNREADABLE_DOCUMENT_MESSAGE,
    KnowledgeBaseService,
)
from components.kb_service.models import ParseResult, StreamEventType
from components.vector_store.vector_store import VectorStore
from llama_index.core.llms import ChatMessage as LLMChatMessage
from llama_index.core.llms import ChatResponse
from shared.config import Config, PathsConfig, RetrievalConfig, RetrievalProfile

SECTION_BODY = (
    "Teachers can create an assignment from any book in the library and "
    "choose which class receives it."
)

TOPICS = ["assignment", "login", "library"]


class TopicModel:
    def encode(self, texts):
        return l2_normalize(
            [[float(t.lower().count(w)) for w in TOPICS] + [0.05] for t in texts]
        )


class EchoLLM:
    async def astream_chat(self, messages):
        async def gen():
            yield ChatResponse(
                message=LLMChatMessage(role="assistant", content="ok"), delta="ok"
            )

        return gen()


@pytest.fixture
def kb_dir(tmp_path):
    path = tmp_path / "kb"
    path.mkdir()
    return path


@pytest.fixture
def config(kb_dir, tmp_path):
    return Config(
        paths=PathsConfig(
            knowledge_base_dir=str(kb_dir), database_dir=str(tmp_path / "db")
        ),
        retrieval=RetrievalConfig(
            knowledge_base=RetrievalProfile(
                match_threshold=0.5, match_count=5, prompt_key="chat"
            ),
            support=RetrievalProfile(
                match_threshold=0.65, match_count=4, prompt_key="support"
            ),
        ),
    )


@pytest.fixture
def service(config, tmp_path):
    store = VectorStore(persist_directory=str(tmp_path / "db"), collection_name="test_kb")
    embedder = EmbeddingGenerator(config.embedding_model, factory=lambda c: TopicModel())
    return KnowledgeBaseService(
        config=config,
        vector_store=store,
        embedder=embedder,
        streamers={"chat": AnswerStreamer(EchoLLM())},
    )


def write_article(kb_dir, name, *sections):
    body = "".join(f"## {title}\n{text}\n" for title, text in sections)
    (kb_dir / name).write_text(f"# {name[:-3].title()}\n{body}")


class TestIngestion:
    def test_ingest_file_returns_chunk_count(self, service, kb_dir):
        write_article(
            kb_dir, "assignments.md", ("Creating", SECTION_BODY), ("Editing", SECTION_BODY)
        )

        assert service.ingest_file(kb_dir / "assignments.md") == 2
        assert service.vector_store.get_chunk_count() == 2

    def test_file_without_sections_ingests_nothing(self, service, kb_dir):
        (kb_dir / "empty.md").write_text("# Empty\nJust an intro.\n")

        assert service.ingest_file(kb_dir / "empty.md") == 0

    def test_failing_file_is_reported_and_others_continue(self, service, kb_dir):
        write_article(kb_dir, "a.md", ("One", SECTION_BODY))
        (kb_dir / "b.md").write_bytes(b"\xff\xfe not utf-8")
        write_article(kb_dir, "c.md", ("Three", SECTION_BODY))

        report = service.ingest_knowledge_base()

        assert [f.file for f in report.files] == ["a.md", "b.md", "c.md"]
        assert report.failed == 1
        assert report.succeeded == 2
        assert report.total_chunks == 2
        assert report.files[1].error

    def test_embedding_failure_is_recorded_per_file(self, service, kb_dir):
        write_article(kb_dir, "a.md", ("One", SECTION_BODY))
        service.embedder = MagicMock()
        service.embedder.embed_batch.side_effect = RuntimeError("model crashed")

        report = service.ingest_knowledge_base()

        assert report.files[0].success is False
        assert "model crashed" in report.files[0].error

    def test_missing_directory_aborts_before_clearing(self, service, kb_dir):
        write_article(kb_dir, "a.md", ("One", SECTION_BODY))
        service.ingest_knowledge_base()
        kb_dir.joinpath("a.md").unlink()
        kb_dir.rmdir()

        with pytest.raises(DocumentLoaderError):
            service.ingest_knowledge_base()
        assert service.vector_store.get_chunk_count() == 1

    @pytest.mark.asyncio
    async def test_reindex_runs_full_ingestion(self, service, kb_dir):
        write_article(kb_dir, "a.md", ("One", SECTION_BODY))

        report = await service.reindex()

        assert report.total_chunks == 1


class TestRetrieval:
    def test_search_uses_profile_operating_point(self, service, kb_dir):
        write_article(kb_dir, "a.md", ("One", SECTION_BODY))
        service.ingest_knowledge_base()

        loose = RetrievalProfile(match_threshold=0.0, match_count=5)
        strict = RetrievalProfile(match_threshold=0.999, match_count=5)

        assert len(service.search("login help", loose)) == 1
        assert service.search("login help", strict) == []

    @pytest.mark.asyncio
    async def test_retrieve_context_formats_sources(self, service, kb_dir):
        write_article(kb_dir, "assignments.md", ("Creating", SECTION_BODY))
        service.ingest_knowledge_base()

        context = await service.retrieve_context(
            "assignment library", service.config.retrieval.knowledge_base
        )

        assert context.startswith("[Source 1: Assignments > Creating]\n")

    @pytest.mark.asyncio
    async def test_retrieve_context_is_empty_without_matches(self, service):
        context = await service.retrieve_context(
            "anything", service.config.retrieval.knowledge_base
        )
        assert context == ""

    @pytest.mark.asyncio
    async def test_answer_stream_uses_profile_streamer(self, service):
        stream = service.answer_stream(
            "Q", [], "", service.config.retrieval.knowledge_base
        )
        chunks = [c async for c in stream]

        assert chunks[-1].type is StreamEventType.DONE

    def test_answer_stream_without_streamer_raises(self, service):
        with pytest.raises(ValueError, match="support"):
            service.answer_stream("Q", [], "", service.config.retrieval.support)


class TestDocumentExtraction:
    def test_pdf_upload_is_extracted(self, service):
        pdf = fitz.open()
        pdf.new_page().insert_text((72, 72), "Cell biology lecture notes, week one.")
        data = pdf.tobytes()

        result = service.extract_document(data, "application/pdf", "notes.pdf")

        assert result is not None
        assert "Cell biology" in result.content

    def test_docx_upload_is_extracted(self, service):
        document = docx.Document()
        document.add_paragraph("Essay draft about the water cycle.")
        buffer = io.BytesIO()
        document.save(buffer)

        result = service.extract_document(
            buffer.getvalue(), "application/octet-stream", "essay.docx"
        )

        assert result is not None
        assert result.content == "Essay draft about the water cycle."

    @pytest.mark.asyncio
    async def test_async_extraction_runs_off_the_event_loop(self, service):
        loop_thread = threading.get_ident()
        parser_threads = []

        def recording_parser(data):
            parser_threads.append(threading.get_ident())
            return ParseResult(content="x" * 100)

        service._parsers = {fmt: recording_parser for fmt in DocumentFormat}

        result = await service.aextract_document(b"%PDF", "application/pdf", "a.pdf")

        assert result is not None
        assert result.content == "x" * 100
        assert parser_threads and parser_threads[0] != loop_thread

    def test_unreadable_upload_is_none(self, service):
        assert service.extract_document(b"???", "image/png", "photo.png") is None

    def test_describe_unreadable(self, service):
        assert service.describe_extraction(None) == UNREADABLE_DOCUMENT_MESSAGE

    def test_describe_scanned(self, service):
        result = ParseResult(content="", metadata={"isScanned": True, "pageCount": 3})
        assert service.describe_extraction(result) == SCANNED_DOCUMENT_MESSAGE

    def test_describe_too_little_text(self, service):
        result = ParseResult(content="Too short.")
        assert service.describe_extraction(result) == TOO_LITTLE_TEXT_MESSAGE

    def test_describe_usable_text(self, service):
        assert service.describe_extraction(ParseResult(content="x" * 200)) is None

    def test_structured_cartridge_content_is_always_usable(self, service):
        result = ParseResult(content={"manifest": {}}, title=None)
        assert service.describe_extraction(result) is None
