# kb_rag/main.py

import asyncio
import logging

import uvicorn

from components.api_app.main import create_app
from shared.initializer import (
    create_arg_parser,
    initialize_service_from_args,
)

logger = logging.getLogger(__name__)


async def main() -> None:
    """
    Initializes the core services and serves the HTTP API.
    """
    parser = create_arg_parser()
    parser.description = "Run the Knowledge Base RAG API server."
    parser.add_argument("--port", type=int, default=None, help="Port for the API.")
    parser.add_argument("--host", type=str, default=None, help="Host for the API.")
    parser.add_argument(
        "--ingest-on-start",
        action="store_true",
        help="Rebuild the index from the knowledge base before serving.",
    )

    args = parser.parse_args()

    config, service = initialize_service_from_args(args)

    if args.ingest_on_start:
        report = await service.reindex()
        logger.info(
            f"Startup ingestion: {report.total_chunks} chunks, "
            f"{report.failed} failed files"
        )

    api_app = create_app(service)
    api_config = uvicorn.Config(
        api_app, host=config.server.host, port=config.server.port
    )
    api_server = uvicorn.Server(api_config)
    print(f"API will be served on http://{config.server.host}:{config.server.port}")
    await api_server.serve()


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("Server shut down gracefully.")


if __name__ == "__main__":
    run()
