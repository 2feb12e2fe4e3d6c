import datetime
import logging
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .settings import settings


_LOGGING_CONFIGURED = False


def _load_timezone(name: str | None) -> datetime.tzinfo:
    if name:
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            pass
    return datetime.datetime.now().astimezone().tzinfo or datetime.timezone.utc


class LocalTimezoneFormatter(logging.Formatter):
    """ISO-8601 timestamps in LOG_TIMEZONE, or the host zone when unset or unknown."""

    def __init__(
        self, fmt: str | None = None, datefmt: str | None = None, *, timezone_name: str | None = None
    ):
        super().__init__(fmt, datefmt)
        self.tz = _load_timezone(timezone_name)

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        stamp = datetime.datetime.fromtimestamp(record.created, tz=self.tz)
        return stamp.strftime(datefmt) if datefmt else stamp.isoformat(timespec="milliseconds")


class DailyFileHandler(logging.StreamHandler):
    """
    Writes records to <log_dir>/<prefix>-YYYY-MM-DD.log, switching files at
    midnight and pruning all but the newest `backup_count` files.
    """

    def __init__(
        self,
        log_dir: Path,
        filename_prefix: str = "app",
        backup_count: int = 7,
        encoding: str = "utf-8",
    ) -> None:
        super().__init__()
        self.stream = None
        self.log_dir = Path(log_dir)
        self.filename_prefix = filename_prefix
        self.backup_count = backup_count
        self.encoding = encoding
        self._day: datetime.date | None = None
        self._roll_over(datetime.date.today())

    def path_for(self, day: datetime.date) -> Path:
        return self.log_dir / f"{self.filename_prefix}-{day.isoformat()}.log"

    def _roll_over(self, day: datetime.date) -> None:
        if self.stream is not None:
            self.stream.close()
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.stream = self.path_for(day).open("a", encoding=self.encoding)
        self._day = day
        self._prune()

    def _prune(self) -> None:
        if self.backup_count <= 0:
            return
        files = sorted(self.log_dir.glob(f"{self.filename_prefix}-*.log"))
        for stale in files[: -self.backup_count]:
            # Another worker may have pruned it first.
            stale.unlink(missing_ok=True)

    def emit(self, record: logging.LogRecord) -> None:
        today = datetime.date.today()
        if today != self._day:
            try:
                self._roll_over(today)
            except OSError:
                self.handleError(record)
                return
        super().emit(record)

    def close(self) -> None:
        self.acquire()
        try:
            if self.stream is not None:
                self.stream.close()
                self.stream = None
        finally:
            self.release()
            super().close()


def setup_logging(log_dir: str | Path | None = None) -> None:
    """
    Configure process logging once.

    Records of the "duckchat" logger go to a daily file under LOG_DIR;
    everything (uvicorn included) is echoed to the console via the root logger.
    """
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    level = logging.getLevelName(str(settings.log_level).upper())
    if not isinstance(level, int):
        level = logging.INFO
    formatter = LocalTimezoneFormatter(
        "%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        timezone_name=settings.log_timezone,
    )

    daily = DailyFileHandler(Path(log_dir or settings.log_dir))
    daily.setFormatter(formatter)
    logger.setLevel(level)
    logger.addHandler(daily)

    root = logging.getLogger()
    root.setLevel(level)
    if not any(type(h) is logging.StreamHandler for h in root.handlers):
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        root.addHandler(console)

    _LOGGING_CONFIGURED = True


logger = logging.getLogger("duckchat")
