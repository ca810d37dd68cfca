"""Command line interface for the Interlinear translator."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import pathlib
import re
import sys
from typing import Iterable, Optional

from .configuration import get_settings
from .errors import (
    EndpointConfigurationError,
    InterlinearError,
    OverwriteRefusedError,
    UnsupportedFileTypeError,
)
from .runner import (
    PageTranslationRunner,
    PipelineOptions,
    TranslationSummary,
    translate_text,
    validate_paths,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="interlinear",
        description=(
            "Translate the text of a saved web page and place each translation "
            "next to its original."
        ),
    )
    parser.add_argument(
        "input_file",
        nargs="?",
        help="Path to the .html page to translate.",
    )
    parser.add_argument(
        "--text",
        help="Translate this text and print the result instead of processing a page.",
    )
    parser.add_argument(
        "-t",
        "--target-language",
        help="Destination language code (default from configuration: zh-CN).",
    )
    parser.add_argument(
        "-s",
        "--source-language",
        help="Source language code, or 'auto' (default from configuration: en).",
    )
    parser.add_argument(
        "-o",
        "--output",
        help="Output file path. Defaults to appending the target language code.",
    )
    parser.add_argument(
        "-e",
        "--endpoint",
        help="Translation endpoint identifier: google or echo.",
    )
    parser.add_argument(
        "--selector",
        action="append",
        dest="selectors",
        help="CSS selector of translatable elements (repeatable).",
    )
    parser.add_argument(
        "--max-length",
        type=int,
        help="Maximum characters per translation request.",
    )
    parser.add_argument(
        "-c",
        "--max-concurrent",
        type=int,
        help="Maximum translation requests in flight at once.",
    )
    parser.add_argument(
        "-r",
        "--max-retries",
        type=int,
        help="Retries per segment before its fallback text is used.",
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Allow overwriting the output file if it already exists.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show detailed progress information.",
    )
    parser.add_argument(
        "--debug-endpoint",
        action="store_true",
        help="Log complete endpoint requests and responses for troubleshooting.",
    )
    return parser


def sanitise_language_for_filename(language: str) -> str:
    """Generate a filesystem-friendly suffix from a language descriptor."""

    collapsed = re.sub(r"\s+", "-", language.strip())
    ascii_only = collapsed.encode("ascii", "ignore").decode("ascii")
    cleaned = re.sub(r"[^A-Za-z0-9\-]+", "", ascii_only)
    return cleaned or "translated"


def derive_output_path(input_path: pathlib.Path, language: str) -> pathlib.Path:
    addition = sanitise_language_for_filename(language)
    return input_path.with_name(f"{input_path.stem}_{addition}{input_path.suffix}")


def apply_overrides(options: PipelineOptions, args: argparse.Namespace) -> PipelineOptions:
    """Layer command line flags over configured options."""

    overrides = {
        "target_language": args.target_language,
        "source_language": args.source_language,
        "endpoint_name": args.endpoint,
        "selectors": args.selectors,
        "max_segment_length": args.max_length,
        "max_concurrent": args.max_concurrent,
        "max_retries": args.max_retries,
    }
    changes = {key: value for key, value in overrides.items() if value is not None}
    if args.debug_endpoint:
        changes["endpoint_debug"] = True
    return dataclasses.replace(options, **changes)


def execute_translation(
    *,
    input_file: str,
    output_file: str | None,
    options: PipelineOptions,
    force_overwrite: bool,
    verbose: bool,
) -> tuple[int, TranslationSummary | None, str | None]:
    """Execute a page translation and return the exit code, summary, and message."""

    input_path = pathlib.Path(input_file).expanduser().resolve()
    output_path = (
        pathlib.Path(output_file).expanduser().resolve()
        if output_file
        else derive_output_path(input_path, options.target_language)
    )

    try:
        validate_paths(input_path, output_path, force_overwrite=force_overwrite)
    except FileNotFoundError as exc:
        return 1, None, str(exc)
    except OverwriteRefusedError as exc:
        return 1, None, str(exc)
    except InterlinearError as exc:
        return 1, None, str(exc)

    output_path.parent.mkdir(parents=True, exist_ok=True)

    runner = PageTranslationRunner(
        input_path=input_path,
        output_path=output_path,
        options=options,
        verbose=verbose,
    )

    try:
        summary = runner.run()
    except UnsupportedFileTypeError as exc:
        return 1, None, str(exc)
    except EndpointConfigurationError as exc:
        return 1, None, str(exc)
    except InterlinearError as exc:
        return 1, None, str(exc)
    except ValueError as exc:
        return 1, None, str(exc)
    except KeyboardInterrupt:
        return 2, None, "Translation interrupted by user."

    return 0, summary, None


def execute_text_translation(
    text: str,
    *,
    options: PipelineOptions,
    verbose: bool,
) -> tuple[int, str | None, str | None]:
    """Translate a single string and return the exit code, result, and message."""

    try:
        result = asyncio.run(translate_text(text, options, verbose=verbose))
    except (InterlinearError, ValueError) as exc:
        return 1, None, str(exc)
    except KeyboardInterrupt:
        return 2, None, "Translation interrupted by user."
    return 0, result, None


def print_summary(summary: TranslationSummary) -> None:
    """Output a friendly report once processing completes."""

    print("\nTranslation complete.")
    print(f"  Input file:      {summary.input_path}")
    print(f"  Output file:     {summary.output_path}")
    print(
        "  Elements:        "
        f"{summary.rendered_elements} rendered / {summary.discovered_elements} found "
        f"({summary.failed_elements} failed) in {summary.scans} scans"
    )
    print(
        f"  Segments:        {summary.segments_translated} translated, "
        f"{summary.segments_failed} fell back"
    )
    print(f"  Endpoint:        {summary.endpoint_name}")
    print(f"  Languages:       {summary.source_language} -> {summary.target_language}")
    print(f"  Elapsed time:    {summary.elapsed_seconds:.2f} seconds")
    if summary.error_messages:
        print("  Notes:")
        for message in summary.error_messages:
            print(f"    - {message}")


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.input_file is None and args.text is None:
        parser.error("provide an input_file or --text")

    try:
        settings = get_settings()
    except EndpointConfigurationError as exc:
        print(exc)
        return 1
    options = apply_overrides(PipelineOptions.from_settings(settings), args)

    if args.text is not None:
        exit_code, result, message = execute_text_translation(
            args.text,
            options=options,
            verbose=args.verbose,
        )
        if message:
            print(message)
        if result is not None:
            print(result)
        return exit_code

    exit_code, summary, message = execute_translation(
        input_file=args.input_file,
        output_file=args.output,
        options=options,
        force_overwrite=args.force,
        verbose=args.verbose,
    )

    if message:
        print(message)
    if summary:
        print_summary(summary)
    return exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
