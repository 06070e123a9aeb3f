"""
Hierarchical structured logger with automatic name detection.

Features:
- Logger name derived from the caller's module (and class, when called from a method)
- One rotating log file per top-level application, shared between loggers
- Structured field logging: log.info("Fetched page", count=12, cursor=sig)

Usage:
    from ledgerdb.logging import getLogger

    class LedgerScanner:
        def __init__(self):
            self.log = getLogger()  # 'ledgerdb.core.scanner.LedgerScanner'

    log = getLogger()               # module-level: 'ledgerdb.core.chunkAssembler'
"""

# Imports
import inspect, logging, logging.handlers, os, socket
from pathlib import Path
from typing import Optional
from datetime import datetime, timezone as tz

from .context import ScanContextFilter


# Global state
_hostname = socket.gethostname()
_configured = False
_fileHandlers = {}  # logPath -> handler, shared between loggers of one app
_config = {
    'logDir': None,
    'maxBytes': 10_000_000,
    'backupCount': 5,
    'console': True,
    'file': True,
    'level': logging.INFO,
    'utc': False
}

# Attributes every LogRecord carries; anything else is a structured field
_RESERVED_FIELDS = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'message', 'pathname', 'process', 'processName',
    'relativeCreated', 'thread', 'threadName', 'exc_info',
    'exc_text', 'stack_info', 'hostname', 'asctime', 'taskName'
}


def configureLogging(logDir: Optional[str] = None, maxBytes: int = 10_000_000,
                     backupCount: int = 5, console: bool = True, file: bool = True,
                     level: str = 'INFO', utc: bool = False):
    """
    Configure global logging settings (call once at startup, before the first getLogger()).

    Args:
        logDir: Directory for log files (default: ./logs)
        maxBytes: Maximum size per log file before rotation
        backupCount: Number of rotated files kept per application
        console: Also log to stderr
        file: Write rotating log files at all (disabled by the CLI's --no-log-file)
        level: Minimum log level name
        utc: Use UTC timestamps instead of local time
    """
    global _configured

    if logDir is None:
        logDir = os.path.abspath(os.path.join(os.getcwd(), "logs"))

    _config.update({'logDir': logDir, 'maxBytes': maxBytes, 'backupCount': backupCount,
                    'console': console, 'file': file, 'level': getattr(logging, level.upper()), 'utc': utc})

    if file:
        Path(logDir).mkdir(parents=True, exist_ok=True)
    _configured = True


def _autoDetectName() -> str:
    """Walk the call stack to the first frame outside this package. Returns e.g. 'ledgerdb.core.scanner.LedgerScanner'"""

    frame = inspect.currentframe()
    try:
        current = frame
        while current is not None:
            current = current.f_back
            if current is None:
                break

            module = inspect.getmodule(current)
            if module is None:
                continue

            moduleName = module.__name__
            if moduleName.startswith('ledgerdb.logging') or moduleName.startswith('importlib'):
                continue

            className = None
            if 'self' in current.f_locals:
                className = current.f_locals['self'].__class__.__name__
            elif 'cls' in current.f_locals and inspect.isclass(current.f_locals['cls']):
                className = current.f_locals['cls'].__name__

            hierarchy = 'ledgerdb' if moduleName == '__main__' else moduleName
            if className:
                hierarchy = f"{hierarchy}.{className}"
            return hierarchy

        return 'unknown'
    finally:
        del frame


class StructuredFormatter(logging.Formatter):
    """Formats as: timestamp - hostname - logger.name - level - message [field1=value1, field2=value2]"""

    def __init__(self, fmt=None, datefmt=None, utc=False):
        super().__init__(fmt, datefmt)
        self.utc = utc

    def formatTime(self, record, datefmt=None):
        if self.utc:
            ct = datetime.fromtimestamp(record.created, tz=tz.utc)
        else:
            ct = datetime.fromtimestamp(record.created)

        if datefmt:
            return ct.strftime(datefmt)
        return f"{ct.strftime('%Y-%m-%d %H:%M:%S')},{int(record.msecs):03d}"

    def format(self, record):
        record.hostname = _hostname

        fields = [f"{key}={value}" for key, value in record.__dict__.items()
                  if key not in _RESERVED_FIELDS and not key.startswith('_')]

        # Append to a copy of msg so other handlers see the original
        originalMsg = record.msg
        if fields:
            record.msg = f"{originalMsg} [{', '.join(fields)}]"
        try:
            return super().format(record)
        finally:
            record.msg = originalMsg


def getLogger(name: Optional[str] = None, separateFile: bool = False) -> logging.Logger:
    """
    Get or create a logger, detecting its hierarchical name from the call stack.

    Stack inspection happens once per getLogger() call; keep the returned logger
    on the instance or module instead of calling getLogger() per message.

    Args:
        name: Logger name (auto-detected if None)
        separateFile: Write to '<name>.log' instead of the application's shared file

    Returns:
        logging.Logger whose debug/info/warning/error/critical accept structured kwargs
    """
    if not _configured:
        configureLogging()

    if name is None:
        name = _autoDetectName()

    logger = logging.getLogger(name)
    logger.propagate = False

    if not logger.handlers and not getattr(logger, '_configuredByLedgerdb', False):
        logger.setLevel(_config['level'])

        if _config['file']:
            logFilename = f"{name}.log" if separateFile else f"{name.split('.')[0]}.log"
            logPath = str(Path(_config['logDir']) / logFilename)

            if logPath not in _fileHandlers:
                fileHandler = logging.handlers.RotatingFileHandler(
                    logPath,
                    maxBytes=_config['maxBytes'],
                    backupCount=_config['backupCount'],
                    encoding='utf-8'
                )
                fileHandler.setLevel(_config['level'])
                fileHandler.addFilter(ScanContextFilter())
                fileHandler.setFormatter(StructuredFormatter(
                    '%(asctime)s - %(hostname)s - %(name)s - %(levelname)s - %(message)s',
                    utc=_config['utc']
                ))
                _fileHandlers[logPath] = fileHandler

            logger.addHandler(_fileHandlers[logPath])

        if _config['console']:
            consoleHandler = logging.StreamHandler()
            consoleHandler.setLevel(_config['level'])
            consoleHandler.addFilter(ScanContextFilter())
            consoleHandler.setFormatter(StructuredFormatter('%(name)s - %(levelname)s - %(message)s',
                                                            utc=_config['utc']))
            logger.addHandler(consoleHandler)

        logger._configuredByLedgerdb = True

    return _wrapLogger(logger)


def _wrapLogger(logger: logging.Logger) -> logging.Logger:
    """
    Replace the level methods so structured fields can be passed as kwargs.

    log.info("Message", field1=value1) instead of log.info("Message", extra={'field1': value1})
    """
    if getattr(logger, '_isWrapped', False):
        return logger

    def wrap(original):
        def method(msg, *args, **kwargs):
            excInfo = kwargs.pop('exc_info', False)
            if kwargs:
                original(msg, *args, extra=kwargs, exc_info=excInfo)
            else:
                original(msg, *args, exc_info=excInfo)
        return method

    logger.debug = wrap(logger.debug)
    logger.info = wrap(logger.info)
    logger.warning = wrap(logger.warning)
    logger.error = wrap(logger.error)
    logger.critical = wrap(logger.critical)
    logger._isWrapped = True

    return logger
