"""Command line interface for the Interpress translator."""

from __future__ import annotations

import argparse
import asyncio
import logging
import pathlib
import signal
import sys
import time
from typing import Callable, Iterable, List, Optional

import httpx

from .configuration import InterpressConfig, get_settings, validate_provider_settings
from .errors import ConfigurationError, InterpressError
from .events import BatchEvent, ItemResolved, ItemStarted, ItemStateChanged, ProgressUpdated, RetryScheduled
from .invoker import TranslationInvoker
from .languages import LANGUAGES
from .logging_config import setup_logging
from .policy import RetryPolicy
from .providers import EchoTranslationProvider
from .states import ItemState, RunState
from .translator import BatchOrchestrator, TranslationSummary
from .wordpress import DryRunPublisher, WordPressClient

logger = logging.getLogger(__name__)

Printer = Callable[[str], None]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="interpress",
        description="Translate WordPress posts and publish each translation as a new post.",
    )
    parser.add_argument(
        "-t",
        "--target-language",
        help="Destination language code (see --list-languages).",
    )
    parser.add_argument(
        "-p",
        "--post",
        dest="post_ids",
        type=int,
        action="append",
        default=[],
        help="Id of a post to translate. Repeat for several posts.",
    )
    parser.add_argument(
        "-l",
        "--latest",
        type=int,
        help="Translate the N most recent posts.",
    )
    parser.add_argument(
        "--max-chunk-length",
        type=int,
        help="Maximum characters per body chunk sent to the provider.",
    )
    parser.add_argument(
        "--max-retries",
        type=int,
        help="Retries per post after a failed attempt.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Echo text instead of calling a provider and do not publish anything.",
    )
    parser.add_argument(
        "--list-languages",
        action="store_true",
        help="Print the supported target languages and exit.",
    )
    parser.add_argument(
        "--log-file",
        help="Also write logs to this file.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show detailed progress information.",
    )
    parser.add_argument(
        "--debug-provider",
        action="store_true",
        help="Log complete provider requests and responses for troubleshooting.",
    )
    return parser


class ConsoleReporter:
    """Prints batch events as they happen."""

    def __init__(self, printer: Printer = print, *, verbose: bool = False) -> None:
        self.printer = printer
        self.verbose = verbose
        self._titles: dict[int, str] = {}

    def __call__(self, event: BatchEvent) -> None:
        if isinstance(event, ItemStarted):
            self._titles[event.item_id] = event.title
            suffix = f" (attempt {event.attempt})" if event.attempt > 1 else ""
            self.printer(f"Translating post {event.item_id}: {event.title}{suffix}")
        elif isinstance(event, ItemStateChanged) and event.state is ItemState.PUBLISHING:
            title = self._titles.get(event.item_id, str(event.item_id))
            self.printer(f"Publishing translation for: {title}")
        elif isinstance(event, RetryScheduled):
            self.printer(
                f"Could not process post {event.item_id} ({event.error}). "
                f"Retrying in {event.delay:.1f}s..."
            )
        elif isinstance(event, ItemResolved):
            result = event.result
            if result.succeeded:
                self.printer(
                    f"Successfully translated and published: {result.item.title} "
                    f"(new post {result.published_id})"
                )
            else:
                self.printer(f"Failed to translate post: {result.item.title} ({result.last_error})")
        elif isinstance(event, ProgressUpdated) and self.verbose:
            self.printer(f"Progress: {event.progress:.0f}%")


def _install_cancel_handler(orchestrator: BatchOrchestrator) -> bool:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, orchestrator.cancel)
    except (NotImplementedError, RuntimeError):
        return False
    return True


def _remove_cancel_handler() -> None:
    loop = asyncio.get_running_loop()
    try:
        loop.remove_signal_handler(signal.SIGINT)
    except (NotImplementedError, RuntimeError):
        pass


async def execute_translation(
    *,
    settings: InterpressConfig,
    target_language: str,
    post_ids: List[int],
    latest: Optional[int],
    max_chunk_length: Optional[int] = None,
    max_retries: Optional[int] = None,
    dry_run: bool = False,
    provider_debug: bool = False,
    verbose: bool = False,
    printer: Printer = print,
    http_client: Optional[httpx.AsyncClient] = None,
) -> tuple[int, Optional[TranslationSummary], Optional[str]]:
    """Execute a batch and return the exit code, summary, and message."""

    wp_credentials = settings.wordpress_credentials()
    if wp_credentials is None:
        return 1, None, (
            "WordPress connection settings missing. "
            "Set WP_SITE_URL, WP_USERNAME and WP_APP_PASSWORD."
        )

    owns_client = http_client is None
    client = http_client or httpx.AsyncClient()
    try:
        if dry_run:
            invoker = TranslationInvoker([EchoTranslationProvider()])
        else:
            validate_provider_settings(settings)
            invoker = TranslationInvoker.from_credentials(
                settings.credentials(),
                http_client=client,
                title_timeout=settings.INTERPRESS_TITLE_TIMEOUT,
                body_timeout=settings.INTERPRESS_BODY_TIMEOUT,
                debug=provider_debug,
            )

        host = WordPressClient(
            wp_credentials,
            client=client,
            read_timeout=settings.WP_READ_TIMEOUT,
            write_timeout=settings.WP_WRITE_TIMEOUT,
        )
        if not await host.test_connection():
            return 1, None, "Failed to connect to WordPress site. Please check your credentials."

        if post_ids:
            items = [await host.fetch_item(post_id) for post_id in post_ids]
        else:
            items = await host.latest_posts(latest or 0)

        orchestrator = BatchOrchestrator(
            invoker,
            DryRunPublisher() if dry_run else host,
            max_chunk_length=max_chunk_length or settings.INTERPRESS_MAX_CHUNK_LENGTH,
            retry_policy=RetryPolicy(
                max_retries=settings.INTERPRESS_MAX_RETRIES if max_retries is None else max_retries,
                base_delay=settings.INTERPRESS_RETRY_BACKOFF,
            ),
        )
        orchestrator.subscribe(ConsoleReporter(printer, verbose=verbose))

        handler_installed = _install_cancel_handler(orchestrator)
        started = time.monotonic()
        try:
            run = await orchestrator.start(items, target_language)
        finally:
            if handler_installed:
                _remove_cancel_handler()
        summary = TranslationSummary.from_run(run, time.monotonic() - started)
    except InterpressError as exc:
        return 1, None, str(exc)
    finally:
        if owns_client:
            await client.aclose()

    if summary.state is RunState.ABORTED:
        return 2, summary, "Translation aborted at your request."
    if summary.failed:
        return 1, summary, None
    return 0, summary, None


def print_summary(summary: TranslationSummary, printer: Printer = print) -> None:
    """Output a friendly report once processing completes."""

    heading = (
        "Translation completed."
        if summary.state is RunState.COMPLETED
        else "Translation aborted."
    )
    printer(f"\n{heading}")
    printer(f"  Target language: {summary.target_language}")
    printer(f"  Successful:      {summary.succeeded}")
    printer(f"  Failed:          {summary.failed}")
    if summary.unprocessed:
        printer(f"  Not processed:   {summary.unprocessed}")
    printer(f"  Progress:        {summary.progress:.0f}%")
    printer(f"  Elapsed time:    {summary.elapsed_seconds:.2f} seconds")
    if summary.error_messages:
        printer("  Notes:")
        for message in summary.error_messages:
            printer(f"    - {message}")


def print_languages(printer: Printer = print) -> None:
    for code, name in LANGUAGES:
        printer(f"  {code}  {name}")


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.list_languages:
        print_languages()
        return 0

    try:
        settings = get_settings()
    except ConfigurationError as exc:
        print(exc)
        return 1

    setup_logging(
        "DEBUG" if args.verbose or args.debug_provider else settings.INTERPRESS_LOG_LEVEL,
        log_file=pathlib.Path(args.log_file) if args.log_file else None,
    )

    target_language = args.target_language or settings.INTERPRESS_TARGET_LANGUAGE
    if not target_language:
        parser.error("the following arguments are required: -t/--target-language")
    if not args.post_ids and not args.latest:
        parser.error("select posts with -p/--post or -l/--latest")

    try:
        exit_code, summary, message = asyncio.run(
            execute_translation(
                settings=settings,
                target_language=target_language,
                post_ids=args.post_ids,
                latest=args.latest,
                max_chunk_length=args.max_chunk_length,
                max_retries=args.max_retries,
                dry_run=args.dry_run,
                provider_debug=args.debug_provider or settings.INTERPRESS_PROVIDER_DEBUG,
                verbose=args.verbose,
            )
        )
    except KeyboardInterrupt:
        print("Translation interrupted by user.")
        return 2

    if message:
        print(message)
    if summary:
        print_summary(summary)
    return exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
