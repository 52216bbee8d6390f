"""
kbase command line

Usage:
    kbase ask "What is the refund policy?" [--chunks chunks.json]
    kbase stream "What is the refund policy?" [--chunks chunks.json]
    kbase test
    kbase stats
    kbase serve [--host 0.0.0.0] [--port 3000]

``--chunks`` loads a JSON file of ``{"chunks": [{"content", "metadata"}], "metadata": {}}``
into the vector store before asking, which is how the in-memory backend is
populated outside the server.
"""

import sys
import json
import asyncio
import logging
import argparse
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .common.config import load_config, KBaseConfig
from .common.embedding_service import get_embedding_service
from .common.errors import KBaseError
from .common.llm_client import LLMClient
from .common.schemas import Passage, StreamEventType
from .common.vector_store import VectorStore, create_vector_store
from .retriever.orchestrator import QueryOrchestrator

logger = logging.getLogger("kbase.cli")


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _build_store(config: KBaseConfig) -> VectorStore:
    embedding_service = get_embedding_service(model=config.embedding.model)
    return create_vector_store(config.vector_store, embedding_service)


def _load_chunks(store: VectorStore, path: Optional[str]) -> None:
    if not path:
        return
    data = json.loads(Path(path).read_text())
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object with a \"chunks\" list")
    chunks = [
        Passage(content=item["content"], metadata=item.get("metadata", {}))
        for item in data.get("chunks", [])
    ]
    result = store.upsert(chunks, data.get("metadata", {}))
    print(f"[kbase] Loaded {result.chunks_stored} chunks into {result.collection_name}", file=sys.stderr)


def _build_orchestrator(config: KBaseConfig, store: VectorStore) -> QueryOrchestrator:
    llm_client = LLMClient.from_config(config.llm)
    if not llm_client.is_available:
        print(f"[kbase] WARNING: LLM client unavailable (provider: {config.llm.provider})", file=sys.stderr)
    return QueryOrchestrator.from_config(config, llm_client, store)


async def _ask(orchestrator: QueryOrchestrator, question: str, as_json: bool) -> int:
    result = await orchestrator.ask(question)
    if as_json:
        print(json.dumps(result.to_dict(), indent=2))
        return 0

    print(result.answer)
    if result.sources:
        print("\nSources:")
        for i, source in enumerate(result.sources, 1):
            label = source.metadata.get("source", "unknown")
            print(f"  [{i}] {label}: {source.content}")
    print(f"\n({result.documents_retrieved} documents, {result.processing_time_ms}ms)")
    return 0


async def _stream(orchestrator: QueryOrchestrator, question: str) -> int:
    status = 0
    async for event in orchestrator.stream(question):
        if event.type is StreamEventType.CONTENT:
            sys.stdout.write(event.text)
            sys.stdout.flush()
        elif event.type is StreamEventType.COMPLETE:
            meta = event.data["metadata"]
            print(f"\n\n({meta['documentsRetrieved']} documents, {meta['processingTimeMs']}ms)")
        elif event.type is StreamEventType.ERROR:
            print(f"\n[kbase] ERROR: {event.data['error']}", file=sys.stderr)
            status = 1
    return status


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="kbase", description="Question answering over a knowledge base")
    parser.add_argument("--log-level", type=str, default=None, help="Override LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    ask_parser = sub.add_parser("ask", help="Answer a question")
    ask_parser.add_argument("question", type=str)
    ask_parser.add_argument("--chunks", type=str, default=None, help="JSON file of chunks to load first")
    ask_parser.add_argument("--json", action="store_true", help="Print the full result as JSON")

    stream_parser = sub.add_parser("stream", help="Answer a question, streaming the answer")
    stream_parser.add_argument("question", type=str)
    stream_parser.add_argument("--chunks", type=str, default=None, help="JSON file of chunks to load first")

    sub.add_parser("test", help="Test the vector store connection")
    sub.add_parser("stats", help="Print vector store statistics")

    serve_parser = sub.add_parser("serve", help="Run the HTTP server")
    serve_parser.add_argument("--host", type=str, default=None)
    serve_parser.add_argument("--port", type=int, default=None)

    args = parser.parse_args(argv)

    load_dotenv()
    config = load_config()
    _setup_logging(args.log_level or config.server.log_level)

    if args.command == "serve":
        import uvicorn
        from .server import app

        uvicorn.run(
            app,
            host=args.host or config.server.host,
            port=args.port or config.server.port,
        )
        return 0

    store = _build_store(config)

    if args.command == "test":
        connected = store.test_connection()
        print(f"[kbase] Connection: {'OK' if connected else 'FAILED'}")
        return 0 if connected else 1

    if args.command == "stats":
        print(json.dumps(store.get_stats(), indent=2))
        return 0

    try:
        _load_chunks(store, args.chunks)
        orchestrator = _build_orchestrator(config, store)
        if args.command == "ask":
            return asyncio.run(_ask(orchestrator, args.question, args.json))
        return asyncio.run(_stream(orchestrator, args.question))
    except KBaseError as e:
        print(f"[kbase] ERROR: {e.message}", file=sys.stderr)
        return 1
    except (KeyError, TypeError, ValueError, json.JSONDecodeError) as e:
        print(f"[kbase] ERROR: invalid chunks file {args.chunks}: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
