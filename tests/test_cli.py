import asyncio
import logging

import httpx

from interpress.cli import ConsoleReporter, build_parser, execute_translation, main, print_summary
from interpress.configuration import load_settings
from interpress.events import ItemStarted, RetryScheduled
from interpress.logging_config import setup_logging
from interpress.states import RunState
from interpress.translator import TranslationSummary

POST = {
    "id": 5,
    "slug": "hello",
    "link": "https://blog.example.com/hello/",
    "title": {"rendered": "Hello"},
    "content": {"rendered": "<p>Hello there</p>"},
}


def test_parser_collects_repeated_posts():
    args = build_parser().parse_args(["-t", "es", "-p", "3", "--post", "9", "--dry-run"])

    assert args.target_language == "es"
    assert args.post_ids == [3, 9]
    assert args.dry_run is True
    assert args.latest is None


def test_list_languages_exits_cleanly(capsys):
    assert main(["--list-languages"]) == 0

    output = capsys.readouterr().out
    assert "es  Spanish" in output
    assert "zh  Chinese (Simplified)" in output


def test_print_summary_reports_counts():
    lines = []
    summary = TranslationSummary(
        state=RunState.ABORTED,
        target_language="fr",
        total_items=4,
        succeeded=2,
        failed=1,
        unprocessed=1,
        progress=75.0,
        elapsed_seconds=3.2,
        error_messages=["Post 7: host rejected post 7"],
    )

    print_summary(summary, lines.append)

    text = "\n".join(lines)
    assert "Translation aborted." in text
    assert "Successful:      2" in text
    assert "Not processed:   1" in text
    assert "Post 7: host rejected post 7" in text


def test_console_reporter_prints_attempts_and_retries():
    lines = []
    reporter = ConsoleReporter(lines.append)

    reporter(ItemStarted(index=0, item_id=5, title="Hello", attempt=2))
    reporter(RetryScheduled(index=0, item_id=5, attempt=2, delay=2.0, error="HTTP 500"))

    assert lines == [
        "Translating post 5: Hello (attempt 2)",
        "Could not process post 5 (HTTP 500). Retrying in 2.0s...",
    ]


def test_missing_wordpress_settings_fail_fast(tmp_path):
    settings = load_settings(app_dir=tmp_path, environ={})

    code, summary, message = asyncio.run(
        execute_translation(settings=settings, target_language="es", post_ids=[1], latest=None)
    )

    assert code == 1
    assert summary is None
    assert "WP_SITE_URL" in message


def test_dry_run_translates_without_publishing(tmp_path):
    settings = load_settings(
        app_dir=tmp_path,
        environ={
            "WP_SITE_URL": "https://blog.example.com",
            "WP_USERNAME": "editor",
            "WP_APP_PASSWORD": "secret",
        },
    )
    methods = []

    def handler(request: httpx.Request) -> httpx.Response:
        methods.append(request.method)
        if request.url.path.endswith("/users/me"):
            return httpx.Response(200, json={"id": 1})
        return httpx.Response(200, json=POST)

    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await execute_translation(
                settings=settings,
                target_language="es",
                post_ids=[5],
                latest=None,
                dry_run=True,
                printer=lines.append,
                http_client=client,
            )

    lines = []
    code, summary, message = asyncio.run(_run())

    assert code == 0
    assert message is None
    assert summary.state is RunState.COMPLETED
    assert summary.succeeded == 1
    assert "POST" not in methods
    assert "Translating post 5: Hello" in lines


def test_setup_logging_writes_to_file(tmp_path):
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    log_file = tmp_path / "logs" / "interpress.log"
    try:
        setup_logging("debug", log_file=log_file, console=False)
        logging.getLogger("interpress.test").debug("hello from the test")
        for handler in root.handlers:
            handler.flush()
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)

    content = log_file.read_text(encoding="utf-8")
    assert "| DEBUG   | interpress.test | hello from the test" in content
    assert logging.getLogger("httpx").level == logging.WARNING


def test_latest_selects_most_recent_posts(tmp_path):
    settings = load_settings(
        app_dir=tmp_path,
        environ={
            "WP_SITE_URL": "https://blog.example.com",
            "WP_USERNAME": "editor",
            "WP_APP_PASSWORD": "secret",
        },
    )
    listings = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/users/me"):
            return httpx.Response(200, json={"id": 1})
        listings.append(dict(request.url.params))
        per_page = int(request.url.params["per_page"])
        return httpx.Response(200, json=[dict(POST, id=index) for index in (9, 8, 7)][:per_page])

    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await execute_translation(
                settings=settings,
                target_language="es",
                post_ids=[],
                latest=2,
                dry_run=True,
                printer=lambda line: None,
                http_client=client,
            )

    code, summary, _ = asyncio.run(_run())

    assert code == 0
    assert summary.total_items == 2
    assert listings[0]["per_page"] == "2"


def test_provider_configuration_errors_are_reported(tmp_path):
    settings = load_settings(
        app_dir=tmp_path,
        environ={
            "WP_SITE_URL": "https://blog.example.com",
            "WP_USERNAME": "editor",
            "WP_APP_PASSWORD": "secret",
            "INTERPRESS_PROVIDERS": "gemini",
        },
    )

    code, summary, message = asyncio.run(
        execute_translation(settings=settings, target_language="es", post_ids=[1], latest=None)
    )

    assert code == 1
    assert summary is None
    assert "GEMINI_API_KEYS is required" in message
