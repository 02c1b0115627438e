"""
Logging utilities for the playlist synchronizer.

Entrypoints call configure_logging() once at startup; library modules only
ever use logging.getLogger(__name__).
"""
import logging
import os
import re
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, List, Optional, Union

_logging_configured = False
_run_id: Optional[str] = None
_HANDLER_TAG = "_brainzsync_handler"
_CONSOLE_FMT = '%(asctime)s | %(levelname)-5s | %(name)s | %(message)s'
_CONSOLE_FMT_WITH_RUN_ID = '%(asctime)s | %(levelname)-5s | %(name)s | run_id=%(run_id)s | %(message)s'
_FILE_FMT = '%(asctime)s | %(levelname)-5s | %(name)s | %(funcName)s:%(lineno)d | run_id=%(run_id)s | %(message)s'

_NOISY_LOGGERS = ('urllib3', 'requests', 'charset_normalizer')

_REDACTED = '***REDACTED***'

# (pattern, replacement) applied in order
_DEFAULT_PATTERNS = [
    # "Authorization: Token abc" headers
    (r'(authorization["\']?\s*[:=]\s*["\']?token\s+)([^"\'\s,}]+)', rf'\1{_REDACTED}'),
    # key=value / "key": "value" for tokens, passwords and secrets
    (r'(["\']?(?:[a-z_]*token|password|secret|api[_-]?key)["\']?\s*[:=]\s*["\']?)([^"\'\s,}&]+)',
     rf'\1{_REDACTED}'),
    # Subsonic auth query parameters (token, salt, plain password)
    (r'([?&](?:t|s|p)=)([^&\s"\']+)', rf'\1{_REDACTED}'),
    # User home directories
    (r'/home/[^/\s]+', r'/home/***'),
    (r'/Users/[^/\s]+', r'/Users/***'),
]


class RunIdFilter(logging.Filter):
    """Inject run_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = _run_id or "-"
        return True


def set_run_id(run_id: Optional[str]) -> None:
    """Set the run_id attached to log records."""
    global _run_id
    _run_id = run_id


def configure_logging(
    level: str = 'INFO',
    log_file: Optional[str] = None,
    file_level: str = 'DEBUG',
    force: bool = False,
    run_id: Optional[str] = None,
    show_run_id: bool = False,
) -> None:
    """
    Configure logging for the whole process.

    Subsequent calls are ignored unless force=True.

    Args:
        level: Console log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional path to log file
        file_level: Log level for file output
        force: Reconfigure even if already configured
        run_id: Optional run identifier injected into log records
        show_run_id: Include run_id in console output

    Environment variable overrides:
        LOG_LEVEL: Override the level parameter
        LOG_FILE: Override the log_file parameter
    """
    global _logging_configured

    if run_id:
        set_run_id(run_id)

    if _logging_configured and not force:
        return

    level = os.getenv('LOG_LEVEL', level).upper()
    if log_file is None:
        log_file = os.getenv('LOG_FILE')

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Drop handlers installed by a previous call
    for handler in root.handlers[:]:
        if getattr(handler, _HANDLER_TAG, False):
            root.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, level, logging.INFO))
    console_handler.setFormatter(logging.Formatter(
        _CONSOLE_FMT_WITH_RUN_ID if (show_run_id or level == 'DEBUG') else _CONSOLE_FMT,
        datefmt='%H:%M:%S',
    ))
    console_handler.addFilter(RunIdFilter())
    setattr(console_handler, _HANDLER_TAG, True)
    root.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, encoding='utf-8')
        file_handler.setLevel(getattr(logging, file_level.upper(), logging.DEBUG))
        file_handler.setFormatter(logging.Formatter(_FILE_FMT, datefmt='%Y-%m-%d %H:%M:%S'))
        file_handler.addFilter(RunIdFilter())
        setattr(file_handler, _HANDLER_TAG, True)
        root.addHandler(file_handler)

    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    _logging_configured = True
    logging.getLogger(__name__).debug(
        f"Logging configured: level={level}, file={redact(log_file) if log_file else 'none'}, run_id={_run_id or '-'}"
    )


@contextmanager
def stage_timer(stage_name: str, logger: Optional[logging.Logger] = None):
    """
    Time a stage: DEBUG on start, INFO with the elapsed time on completion.

    Usage:
        with stage_timer("Generate Jams `Daily` for user alice", logger=logger):
            ...
    """
    logger = logger or logging.getLogger(__name__)
    logger.debug(f"{stage_name} starting...")
    start = time.perf_counter()

    try:
        yield
    finally:
        logger.info(f"{stage_name} completed in {format_elapsed(time.perf_counter() - start)}")


def format_elapsed(elapsed: float) -> str:
    if elapsed < 1:
        return f"{elapsed * 1000:.0f}ms"
    if elapsed < 60:
        return f"{elapsed:.1f}s"
    minutes = int(elapsed // 60)
    return f"{minutes}m {elapsed % 60:.0f}s"


def redact(value: Any, keys: Optional[Iterable[str]] = None) -> str:
    """
    Redact credentials from a value before logging or persisting it.

    Args:
        value: Value to redact (string, path, dict, exception...)
        keys: Extra dict keys whose values should be redacted

    Returns:
        Redacted string representation
    """
    if value is None:
        return "None"

    text = str(value)
    for pattern, replacement in _DEFAULT_PATTERNS:
        text = re.sub(pattern, replacement, text, flags=re.IGNORECASE)

    for key in keys or ():
        text = re.sub(
            rf'(["\']?{re.escape(key)}["\']?\s*[:=]\s*["\']?)([^"\'\s,}}]+)',
            rf'\1{_REDACTED}',
            text,
            flags=re.IGNORECASE,
        )
    return text


def format_count(n: int, singular: str, plural: Optional[str] = None) -> str:
    """
    Format a count with proper singular/plural form: "1 track", "5 tracks".
    """
    if plural is None:
        plural = singular + 's'
    return f"{n:,} {singular if n == 1 else plural}"


def truncate_list(items: List[Any], max_items: int = 3, format_fn=str) -> str:
    """
    Format a list for logging, truncating if needed.

    Returns:
        Formatted string like "a, b, c (+5 more)"
    """
    if not items:
        return "(none)"

    result = ', '.join(format_fn(item) for item in items[:max_items])
    if len(items) > max_items:
        result += f" (+{len(items) - max_items} more)"
    return result


def add_logging_args(parser) -> None:
    """
    Add standard logging CLI arguments to an argparse parser.

    Usage:
        add_logging_args(parser)
        args = parser.parse_args()
        configure_logging(level=resolve_log_level(args), log_file=args.log_file)
    """
    group = parser.add_argument_group('logging')
    group.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default='INFO',
        help='Set logging level (default: INFO)'
    )
    group.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging (shortcut for --log-level DEBUG)'
    )
    group.add_argument(
        '--quiet',
        action='store_true',
        help='Suppress most output (shortcut for --log-level WARNING)'
    )
    group.add_argument(
        '--log-file',
        type=str,
        metavar='PATH',
        help='Write logs to file'
    )
    group.add_argument(
        '--show-run-id',
        action='store_true',
        help='Include run_id in console logs (always included in file logs)',
    )


def resolve_log_level(args) -> str:
    """
    Resolve log level from parsed arguments.

    Priority: --debug > --quiet > --log-level
    """
    if getattr(args, 'debug', False):
        return 'DEBUG'
    if getattr(args, 'quiet', False):
        return 'WARNING'
    return getattr(args, 'log_level', 'INFO')


class RunSummary:
    """
    Collect metrics during a sweep and log a summary at the end.

    Usage:
        summary = RunSummary("Periodic sync")
        summary.increment("succeeded")
        summary.log()
    """

    def __init__(self, title: str, logger: Optional[logging.Logger] = None):
        self.title = title
        self.logger = logger or logging.getLogger(__name__)
        self.metrics: dict = {}
        self.start_time = time.perf_counter()

    def add(self, key: str, value: Union[int, float, str]) -> None:
        self.metrics[key] = value

    def increment(self, key: str, amount: int = 1) -> None:
        self.metrics[key] = self.metrics.get(key, 0) + amount

    def log(self, level: int = logging.INFO) -> None:
        elapsed = time.perf_counter() - self.start_time

        self.logger.log(level, "=" * 60)
        self.logger.log(level, f"{self.title.upper()} SUMMARY")
        for key, value in self.metrics.items():
            display_key = key.replace('_', ' ').title()
            if isinstance(value, float):
                self.logger.log(level, f"  {display_key}: {value:.2f}")
            else:
                self.logger.log(level, f"  {display_key}: {value}")
        self.logger.log(level, f"  Total Time: {format_elapsed(elapsed)}")
        self.logger.log(level, "=" * 60)
