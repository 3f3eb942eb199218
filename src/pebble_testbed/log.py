"""Logging for pebble-testbed.

Until the command line is parsed, only errors reach the terminal and every
other record is held in memory. `post_arg_parse_setup` then opens the log
file of the subcommand, ``testbed-<verb>.log`` under ``--logs-dir``, replays
the held records into it and sets the terminal level from ``-v``/``-q``.

"""
import functools
import logging
import logging.handlers
import os
import sys
from types import TracebackType
from typing import Any
from typing import IO
from typing import Optional

from acme import messages

from pebble_testbed import constants
from pebble_testbed import errors

CLI_FMT = '%(message)s'
FILE_FMT = '%(asctime)s:%(levelname)s:%(name)s:%(message)s'

# Records logged before the command line is parsed
BUFFER_CAPACITY = 10000

ANSI_SGR_RED = '\033[31m'
ANSI_SGR_RESET = '\033[0m'

logger = logging.getLogger(__name__)


def log_filename(verb: str) -> str:
    """Name of the log file of a subcommand."""
    return 'testbed-{0}.log'.format(verb)


def terminal_level(config: Any) -> int:
    """Terminal logging level requested with ``-q`` or ``-v``."""
    if config.quiet:
        return constants.QUIET_LOGGING_LEVEL
    return max(constants.DEFAULT_LOGGING_LEVEL - config.verbose_count * 10, logging.DEBUG)


def pre_arg_parse_setup() -> None:
    """Send errors to the terminal and hold everything else in memory."""
    stream_handler = ColoredStreamHandler()
    stream_handler.setFormatter(logging.Formatter(CLI_FMT))
    stream_handler.setLevel(constants.QUIET_LOGGING_LEVEL)

    # flushLevel above CRITICAL: records are only released to a log file
    buffer_handler = logging.handlers.MemoryHandler(
        BUFFER_CAPACITY, flushLevel=logging.CRITICAL + 1)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(stream_handler)
    root_logger.addHandler(buffer_handler)

    sys.excepthook = functools.partial(
        except_hook, debug='--debug' in sys.argv, log_path=None)


def post_arg_parse_setup(config: Any) -> None:
    """Log to the file of the subcommand and apply the requested verbosity.

    :param pebble_testbed.configuration.NamespaceConfig config: parsed configuration

    """
    file_handler, log_path = setup_log_file_handler(config)

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if isinstance(handler, logging.handlers.MemoryHandler):
            handler.setTarget(file_handler)
            handler.flush()
            root_logger.removeHandler(handler)
            handler.close()
        elif isinstance(handler, ColoredStreamHandler):
            handler.setLevel(terminal_level(config))
    root_logger.addHandler(file_handler)

    logger.debug('Running %s with Compose file %s, work directory %s',
                 config.verb, config.compose_file, config.work_dir)
    logger.debug('Saving debug log to %s', log_path)

    sys.excepthook = functools.partial(except_hook, debug=config.debug, log_path=log_path)


def setup_log_file_handler(config: Any) -> tuple[logging.Handler, str]:
    """Rotating debug log of the subcommand in ``config.logs_dir``.

    Each run starts a new file; ``config.max_log_backups`` older runs are
    kept, none when it is 0.

    :returns: file handler and absolute path to the log file
    :rtype: tuple

    :raises .errors.Error: if the log directory is not writable

    """
    log_path = os.path.join(config.logs_dir, log_filename(config.verb))
    try:
        os.makedirs(config.logs_dir, mode=0o700, exist_ok=True)
        handler = logging.handlers.RotatingFileHandler(
            log_path, maxBytes=2 ** 20, backupCount=config.max_log_backups)
    except IOError as error:
        raise errors.Error('Unable to write logs to {0}: {1}'.format(config.logs_dir, error))
    if config.max_log_backups:
        handler.doRollover()
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FMT))
    return handler, log_path


class ColoredStreamHandler(logging.StreamHandler):
    """Stream handler printing warnings and errors in red on a tty.

    :ivar bool colored: True if output should be colored
    :ivar int red_level: lowest level printed in red

    """
    def __init__(self, stream: Optional[IO[str]] = None) -> None:
        super().__init__(stream)
        self.colored = (sys.stderr if stream is None else stream).isatty()
        self.red_level = logging.WARNING

    def format(self, record: logging.LogRecord) -> str:
        out = super().format(record)
        if self.colored and record.levelno >= self.red_level:
            return ''.join((ANSI_SGR_RED, out, ANSI_SGR_RESET))
        return out


def except_hook(exc_type: type[BaseException], exc_value: BaseException,
                trace: Optional[TracebackType], debug: bool,
                log_path: Optional[str]) -> None:
    """Report an uncaught exception and exit with a nonzero status.

    Errors raised by pebble-testbed are reported by their message alone, ACME
    problems by their detail. Anything else is unexpected: its type is shown
    along with the log file holding the traceback. With `debug`, the
    traceback is shown on the terminal too.

    :param str log_path: log file of the run, None before arguments are parsed

    """
    exc_info = (exc_type, exc_value, trace)
    if debug:
        logger.error('Exiting abnormally:', exc_info=exc_info)
    else:
        logger.debug('Exiting abnormally:', exc_info=exc_info)
        if issubclass(exc_type, errors.Error):
            sys.exit(str(exc_value))
        if messages.is_acme_error(exc_value):
            # "urn:ietf:params:acme:error:... :: description :: detail"
            _, _, detail = str(exc_value).partition(' :: ')
            logger.error('The ACME server reported an error: %s', detail)
        else:
            logger.error('An unexpected error occurred: %s: %s',
                         exc_type.__name__, exc_value)

    if log_path is None:
        sys.exit(1)
    sys.exit('See {0} for more details.'.format(log_path))
