"""
Command line entry point.

Usage:
    python -m trace_rag ask "why is checkout slow?"
    python -m trace_rag chat
    python -m trace_rag ingest-docs
    python -m trace_rag ingest-traces --lookback 6h --limit 50
    python -m trace_rag serve --port 8084
"""

import argparse
import logging
import sys

from . import config, services


def _chat(orchestrator):
    print("Trace RAG assistant")
    print("Type your question, or 'quit' to exit.\n")

    while True:
        try:
            question = input("you> ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nBye!")
            return

        if not question:
            continue
        if question.lower() in ("quit", "exit", "q"):
            print("Bye!")
            return

        print(f"\n{orchestrator.ask(question)}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="trace_rag", description="Trace narratives + RAG over Jaeger telemetry")
    sub = parser.add_subparsers(dest="command", required=True)

    ask = sub.add_parser("ask", help="Answer one question")
    ask.add_argument("question")

    sub.add_parser("chat", help="Interactive question loop")
    sub.add_parser("ingest-docs", help="Re-ingest markdown documentation")

    traces = sub.add_parser("ingest-traces", help="Ingest recent traces from Jaeger")
    traces.add_argument("--lookback", default=config.INGEST_TRACES_LOOKBACK, help="e.g. 30m, 1h, 2d")
    traces.add_argument("--limit", type=int, default=config.INGEST_TRACES_LIMIT, help="max traces per service")

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8084)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    if args.command == "serve":
        import uvicorn
        uvicorn.run("trace_rag.main:app", host=args.host, port=args.port)
        return 0

    try:
        if args.command == "ask":
            print(services.get_orchestrator().ask(args.question))
        elif args.command == "chat":
            _chat(services.get_orchestrator())
        elif args.command == "ingest-docs":
            count = services.get_document_ingestion().ingest_documents()
            print(f"Ingested {count} documents")
        elif args.command == "ingest-traces":
            if args.limit <= 0:
                print("Error: --limit must be positive", file=sys.stderr)
                return 2
            count = services.get_telemetry_ingestion().ingest_traces(args.lookback, args.limit)
            print(f"Ingested {count} traces (lookback: {args.lookback}, limit: {args.limit})")
    finally:
        services.shutdown()
    return 0
