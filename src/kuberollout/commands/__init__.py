"""
Kuberollout executes the stages of a progressive delivery pipeline (sync, primary/canary/baseline rollouts, clean-ups,
traffic routing and rollback) for Kubernetes applications.
"""

from enum import Enum
import sys
from loguru import logger
from typer import Option
from kuberollout.tools.typer import new_typer


app = new_typer(help=__doc__)


from . import execute  # noqa: F401,E402


class LogLevel(str, Enum):
    TRACE = "trace"
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@app.callback()
def _callback(
    log_level: LogLevel = Option(LogLevel.INFO, "--log-level", "-l", help="The log level to use."),
) -> None:
    logger.remove()
    logger.add(sys.stderr, level=log_level.name)
