"""CLI entrypoints for designgen commands."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict

from .config import ConfigError, load_config
from .logging import configure_logging
from .models import GenerationRequest, Strategy
from .orchestrator import GenerationFacade
from .templates.store import TemplateResolutionError


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_config_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("."),
        help="Path to .designgen.yml or the directory containing it (defaults to current directory).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="designgen",
        description="Generate tickets and wiki pages from design-tool context.",
    )
    _add_verbose_option(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate_parser = subparsers.add_parser(
        "generate",
        help="Generate a document from a JSON context file.",
    )
    _add_verbose_option(generate_parser, suppress_default=True)
    _add_config_option(generate_parser)
    generate_parser.add_argument(
        "context",
        type=Path,
        help="JSON file holding the raw design context ('-' reads stdin).",
    )
    generate_parser.add_argument("--platform", required=True, help="Target platform, e.g. jira.")
    generate_parser.add_argument(
        "--document-type",
        required=True,
        help="Document type, e.g. component or wiki.",
    )
    generate_parser.add_argument(
        "--strategy",
        choices=[member.value for member in Strategy],
        default=None,
        help="Generation strategy (defaults to auto).",
    )
    generate_parser.add_argument(
        "--instructions",
        default=None,
        help="Additional requirements passed to the reasoning step.",
    )
    generate_parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write the document to this file instead of stdout.",
    )
    generate_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full response payload as JSON.",
    )

    templates_parser = subparsers.add_parser(
        "templates",
        help="List available platform templates.",
    )
    _add_verbose_option(templates_parser, suppress_default=True)
    _add_config_option(templates_parser)

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP service.",
    )
    _add_verbose_option(serve_parser, suppress_default=True)
    _add_config_option(serve_parser)
    serve_parser.add_argument("--host", default="0.0.0.0", help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind.")

    return parser


def _create_facade(config_path: Path) -> GenerationFacade:
    return GenerationFacade.from_config(load_config(config_path))


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for designgen commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose))

    if args.command == "serve":
        from .service.app import run_service

        run_service(args.host, args.port, config_path=args.config)
        return

    try:
        facade = _create_facade(args.config)
    except ConfigError as exc:
        parser.exit(1, f"{exc}\n")

    try:
        if args.command == "generate":
            _run_generate(parser, facade, args)
        elif args.command == "templates":
            store = facade.template_store
            pairs = store.list_templates() if store is not None else []
            if not pairs:
                print("No platform templates found")
            for platform, document_type in pairs:
                print(f"{platform}/{document_type}")
        else:  # pragma: no cover - argparse enforces choices
            parser.exit(1, "Unknown command\n")
    finally:
        facade.close()


def _run_generate(
    parser: argparse.ArgumentParser, facade: GenerationFacade, args: argparse.Namespace
) -> None:
    raw_context = _read_context(parser, args.context)
    request = GenerationRequest(
        platform=args.platform,
        document_type=args.document_type,
        raw_context=raw_context,
        strategy=Strategy.parse(args.strategy),
        instructions=args.instructions,
    )
    try:
        result = facade.generate(request)
    except TemplateResolutionError as exc:
        parser.exit(1, f"designgen generate failed: {exc}\n")

    if args.json:
        output = json.dumps(result.to_response(), indent=2)
    else:
        output = result.content
    if args.output is not None:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(output + "\n", encoding="utf-8")
        print(f"Document written to {args.output} ({result.strategy_used.value})")
    else:
        print(output)
    if not args.json:
        for warning in result.warnings:
            print(f"warning: {warning}", file=sys.stderr)


def _read_context(parser: argparse.ArgumentParser, path: Path) -> Dict[str, Any]:
    try:
        text = sys.stdin.read() if str(path) == "-" else path.read_text(encoding="utf-8")
    except OSError as exc:
        parser.exit(1, f"Unable to read context file: {exc}\n")
    try:
        data = json.loads(text) if text.strip() else {}
    except json.JSONDecodeError as exc:
        parser.exit(1, f"Context file is not valid JSON: {exc}\n")
    if not isinstance(data, dict):
        parser.exit(1, "Context file must contain a JSON object\n")
    return data


if __name__ == "__main__":  # pragma: no cover
    main()
