from abc import ABC, abstractmethod
from typing import Literal

from loguru import logger

LogLevel = Literal["info", "success", "error"]


class LogPersister(ABC):
    """
    An append-only, ordered stream of progress lines for a stage. Messages are formatted with `str.format()` style
    placeholders, like loguru messages.
    """

    @abstractmethod
    def info(self, message: str, *args: object) -> None: ...

    @abstractmethod
    def success(self, message: str, *args: object) -> None: ...

    @abstractmethod
    def error(self, message: str, *args: object) -> None: ...


class LoguruLogPersister(LogPersister):
    """
    Writes progress lines to the loguru logger, bound to the stage they belong to.
    """

    def __init__(self, stage: str) -> None:
        self._logger = logger.bind(stage=stage)

    def info(self, message: str, *args: object) -> None:
        self._logger.opt(depth=1).info(message, *args)

    def success(self, message: str, *args: object) -> None:
        self._logger.opt(depth=1).success(message, *args)

    def error(self, message: str, *args: object) -> None:
        self._logger.opt(depth=1).error(message, *args)


class MemoryLogPersister(LogPersister):
    """
    Keeps progress lines in memory.
    """

    def __init__(self) -> None:
        self.lines: list[tuple[LogLevel, str]] = []

    def _add(self, level: LogLevel, message: str, args: tuple[object, ...]) -> None:
        self.lines.append((level, message.format(*args) if args else message))

    def info(self, message: str, *args: object) -> None:
        self._add("info", message, args)

    def success(self, message: str, *args: object) -> None:
        self._add("success", message, args)

    def error(self, message: str, *args: object) -> None:
        self._add("error", message, args)

    def messages(self, level: LogLevel | None = None) -> list[str]:
        return [message for lvl, message in self.lines if level is None or lvl == level]
