"""Batch ingestion of the knowledge base.

Clears the vector index, then chunks, embeds and stores every article of the
knowledge-base directory, one file at a time.

Run with: kb-rag-ingest [-c config/]
"""

import logging
import sys
from typing import List, Optional

from components.document_processing import DocumentLoaderError
from components.kb_service.models import IngestionReport
from components.vector_store.vector_store import VectorStoreError
from shared.initializer import create_arg_parser, initialize_service_from_args

logger = logging.getLogger(__name__)


def print_report(report: IngestionReport) -> None:
    for entry in report.files:
        if entry.success:
            print(f"{entry.file}: {entry.chunks_ingested} chunks ✓")
        else:
            print(f"{entry.file}: ✗ {entry.error}")
    print(
        f"\nDone: {report.total_chunks} chunks ingested from {report.succeeded} "
        f"files ({report.failed} failed)"
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Run the ingestion job. Returns the process exit code."""
    parser = create_arg_parser()
    parser.description = "Rebuild the knowledge-base vector index."
    args = parser.parse_args(argv)

    _, service = initialize_service_from_args(args)

    print("=== Knowledge Base Ingestion ===\n")
    try:
        report = service.ingest_knowledge_base()
    except (DocumentLoaderError, VectorStoreError) as e:
        logger.error(f"Ingestion aborted: {e}")
        print(f"Ingestion aborted: {e}", file=sys.stderr)
        return 2

    print_report(report)
    return 1 if report.failed else 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
