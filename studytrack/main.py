"""StudyTrack application entry point.

Supports two modes:
  - Server mode (default): runs the engine with its JSON API
  - CLI mode: prints history or summaries, or exports them, then exits

Usage:
    python -m studytrack.main                    # serve the JSON API
    python -m studytrack.main --history          # sessions grouped by day
    python -m studytrack.main --summary          # effective time per project
    python -m studytrack.main --export out.docx  # Word report
"""

import argparse
import logging
import os

from studytrack.core.config import (
    get_default_config_path,
    load_config,
    min_session_ms,
    pomodoro_settings,
)
from studytrack.core.engine import StudyEngine
from studytrack.core.models import TimerMode
from studytrack.core.notifier import LoggingNotifier
from studytrack.persistence.store import StudyStore
from studytrack.reporting.exporter import HistoryExporter
from studytrack.reporting.formatter import TextFormatter, project_summary

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="studytrack",
        description="StudyTrack: focus time tracking for projects, topics and sub-topics",
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "--history",
        action="store_true",
        help="Print the session history grouped by day and exit",
    )
    group.add_argument(
        "--daily",
        action="store_true",
        help="Print one total per day and exit",
    )
    group.add_argument(
        "--summary",
        action="store_true",
        help="Print effective time per project, topic and sub-topic and exit",
    )
    group.add_argument(
        "--export",
        metavar="PATH",
        help="Write the history and summary to a Word document and exit",
    )
    parser.add_argument("--config", metavar="PATH", help="Path to config.json")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def _open_store(config: dict) -> StudyStore:
    db_path = os.path.expanduser(config.get("database_path", "~/.studytrack/studytrack.db"))
    if os.path.dirname(db_path):
        os.makedirs(os.path.dirname(db_path), exist_ok=True)
    store = StudyStore(db_path)
    store.init_db()
    return store


def build_engine(config: dict, store: StudyStore) -> StudyEngine:
    """Create and load an engine for the configured user."""
    engine = StudyEngine(
        store,
        user_id=config.get("user_id", "local"),
        settings=pomodoro_settings(config),
        notifier=LoggingNotifier(),
        min_session_ms=min_session_ms(config),
    )
    try:
        default_mode = TimerMode(config.get("default_mode", TimerMode.STOPWATCH.value))
    except ValueError:
        default_mode = TimerMode.STOPWATCH
    engine.load(default_mode)
    return engine


def _report(config: dict, parsed: argparse.Namespace) -> None:
    store = _open_store(config)
    try:
        engine = build_engine(config, store)
        if parsed.history:
            print(TextFormatter.format_history(engine.history))
        elif parsed.daily:
            print(TextFormatter.format_daily(engine.history))
        elif parsed.summary:
            print(TextFormatter.format_summary(project_summary(engine.projects, engine.timers)))
        else:
            path = HistoryExporter().export(
                engine.history,
                project_summary(engine.projects, engine.timers),
                config.get("user_name", ""),
                os.path.expanduser(parsed.export),
            )
            print(f"Exported to {path}")
    finally:
        store.close()


def _serve(config: dict) -> None:
    from studytrack.ui.web import start_dashboard

    store = _open_store(config)
    engine = build_engine(config, store)
    engine.start_ticking(float(config.get("tick_interval_seconds", 1)))
    web = config.get("web") or {}
    thread = start_dashboard(engine, web.get("host", "127.0.0.1"), int(web.get("port", 5556)))
    try:
        thread.join()
    except KeyboardInterrupt:
        logger.info("Shutting down")
    finally:
        engine.dispose()
        store.close()


def main(args: list[str] | None = None) -> None:
    """Entry point for StudyTrack.

    When *args* is ``None`` the arguments are read from ``sys.argv``.
    """
    parser = build_parser()
    parsed = parser.parse_args(args)

    logging.basicConfig(
        level=logging.DEBUG if parsed.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    config_path = parsed.config or str(get_default_config_path())
    config = load_config(config_path)

    if parsed.history or parsed.daily or parsed.summary or parsed.export:
        _report(config, parsed)
    else:
        _serve(config)


if __name__ == "__main__":
    main()
