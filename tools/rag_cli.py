from __future__ import annotations

"""CLI utility to inspect and query the configured RAG engine."""

import argparse
import asyncio
import json
import sys

from src.app.dependencies import get_engine
from src.rag.engine import RAGEngine


def _print(payload: object) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def _run(engine: RAGEngine, args: argparse.Namespace) -> object:
    await engine.initialize()
    try:
        if args.command == "stats":
            return engine.get_stats()
        if args.command == "refresh":
            return {"document_count": await engine.refresh()}
        if args.command == "search":
            results = await engine.retrieve(args.query, args.top_k)
            return [
                {
                    "id": result.document.doc_id,
                    "score": result.score,
                    "low_confidence": result.low_confidence,
                    "content": result.document.content,
                }
                for result in results
            ]
        result = await engine.query(args.query, top_k=args.top_k)
        return {
            "answer": result.answer,
            "low_confidence": result.low_confidence,
            "sources": [
                {"id": source.document_id, "score": source.score}
                for source in result.sources
            ],
        }
    finally:
        await engine.close()


def main(argv: list[str] | None = None) -> int:
    """Run one engine command using app settings and print JSON."""
    parser = argparse.ArgumentParser(description="Inspect and query the RAG engine.")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("stats", help="Show engine statistics.")
    sub.add_parser("refresh", help="Reload documents and rebuild the index.")
    for name, text in (("search", "Retrieve documents only."), ("query", "Answer a question.")):
        command = sub.add_parser(name, help=text)
        command.add_argument("query", help="Question or search text.")
        command.add_argument("--top-k", type=int, default=None, help="Results to return.")
    args = parser.parse_args(argv)

    try:
        payload = asyncio.run(_run(get_engine(), args))
    except (RuntimeError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    _print(payload)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
