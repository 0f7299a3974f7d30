"""
Document Q&A Bot — Entry Point
Supports CLI mode and web server mode.

Usage:
    python app.py --web                 # Launch the JSON API server (default)
    python app.py --question "..."      # Ask a single question
    python app.py --interactive         # Interactive CLI mode
    python app.py --status              # Print pipeline status
    python app.py --docs-dir ./docs     # Index a directory instead of the sample document
"""

import argparse
import json
from pathlib import Path

import config
from docbot.errors import DocbotError
from docbot.log_utils import configure_logging


def main():
    parser = argparse.ArgumentParser(
        description="Document Q&A Bot with relevance routing and web fallback"
    )
    parser.add_argument(
        "--web", action="store_true", default=True,
        help="Launch the web API (default)"
    )
    parser.add_argument(
        "--question", "-q", type=str, default=None,
        help="Ask a single question from the command line"
    )
    parser.add_argument(
        "--interactive", "-i", action="store_true",
        help="Run in interactive CLI mode"
    )
    parser.add_argument(
        "--status", action="store_true",
        help="Print pipeline status and exit"
    )
    parser.add_argument(
        "--docs-dir", type=Path, default=None,
        help="Directory of .txt/.md/.pdf documents to index"
    )
    parser.add_argument(
        "--port", type=int, default=None,
        help=f"Port for the web server (default: {config.WEB_PORT})"
    )

    args = parser.parse_args()
    configure_logging(config.LOG_LEVEL)

    from docbot.pipeline import DocumentQAPipeline

    pipeline = DocumentQAPipeline(docs_dir=args.docs_dir)
    pipeline.initialize()

    if args.status:
        print(json.dumps(pipeline.get_stats(), indent=2))
        return

    # Single question mode
    if args.question:
        result = pipeline.ask(args.question)
        _print_result(args.question, result)
        return

    # Interactive CLI mode
    if args.interactive:
        print("\n=== Interactive Mode (type 'quit' to exit) ===\n")
        history = []
        while True:
            try:
                question = input("You: ").strip()
                if question.lower() in ("quit", "exit", "q"):
                    print("Goodbye!")
                    break
                if not question:
                    continue

                result = pipeline.ask(question, history)
                print(f"\nAssistant: {result['response']}")
                _print_sources(result)
                print()
                history = _extend_history(history, question, result["response"])
            except DocbotError as e:
                print(f"\n[ERROR] {e}\n")
            except KeyboardInterrupt:
                print("\nGoodbye!")
                break
        return

    # Web mode (default)
    from frontend.server import create_app

    port = args.port or config.WEB_PORT
    app = create_app(pipeline)
    print(f"\n🌐 Starting web server at http://{config.WEB_HOST}:{port}")
    print("   Press Ctrl+C to stop.\n")
    app.run(host=config.WEB_HOST, port=port, debug=False, threaded=True)


def _extend_history(history, question, answer):
    from docbot.llm_backend import ConversationMessage

    return history + [
        ConversationMessage(role="user", content=question),
        ConversationMessage(role="assistant", content=answer),
    ]


def _print_sources(result):
    for source in result.get("sources", []):
        if source["type"] == "web":
            print(f"  [web] {source['title']} — {source['link']}")
        else:
            print(f"  [{source['confidence']}] {source['source']} / {source['section']}: {source['snippet']}")


def _print_result(question, result):
    print(f"\nQ: {question}")
    print(f"\n{result['response']}")
    if result.get("tier"):
        print(f"\nTier: {result['tier']} (best similarity {result.get('bestSimilarity', 0.0)})")
    _print_sources(result)


if __name__ == "__main__":
    main()
