from abc import ABC, abstractmethod
from collections import OrderedDict
import copy
import threading
from collections.abc import Hashable
from typing import Generic, TypeVar

from loguru import logger

from kuberollout.manifest import Manifest

T = TypeVar("T")


class Cache(ABC, Generic[T]):
    """A simple in-memory key-value cache interface. A miss is not an error."""

    @abstractmethod
    def get(self, key: Hashable) -> T | None:
        """Get the value for a key, or `None` if it is not cached."""

    @abstractmethod
    def put(self, key: Hashable, value: T) -> None:
        """Save a value for a key."""


class LRUCache(Cache[T]):
    """
    A bounded, thread-safe cache that evicts the least recently used entry once *maxsize* entries are stored.

    Values are deep-copied when they are stored and when they are returned, so that callers can freely mutate what
    they get without affecting other readers of the same entry.
    """

    def __init__(self, maxsize: int = 256) -> None:
        if maxsize <= 0:
            raise ValueError(f"maxsize must be positive, got {maxsize}")
        self._maxsize = maxsize
        self._data: OrderedDict[Hashable, T] = OrderedDict()
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(maxsize={self._maxsize})"

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def get(self, key: Hashable) -> T | None:
        with self._lock:
            if key not in self._data:
                return None
            self._data.move_to_end(key)
            value = self._data[key]
        return copy.deepcopy(value)

    def put(self, key: Hashable, value: T) -> None:
        value = copy.deepcopy(value)
        with self._lock:
            self._data[key] = value
            self._data.move_to_end(key)
            while len(self._data) > self._maxsize:
                evicted, _ = self._data.popitem(last=False)
                logger.trace("Evicted {} from manifests cache", evicted)


class AppManifestsCache:
    """
    Stores the manifests of one application keyed by the commit they were loaded from. The commit hash is treated as
    a content address: the manifests of a commit never change, so entries are never invalidated.
    """

    def __init__(self, app_id: str, cache: Cache[list[Manifest]]) -> None:
        self._app_id = app_id
        self._cache = cache

    def _key(self, commit_hash: str) -> tuple[str, str]:
        return (self._app_id, commit_hash)

    def get(self, commit_hash: str) -> list[Manifest] | None:
        if not commit_hash:
            return None
        manifests = self._cache.get(self._key(commit_hash))
        if manifests is None:
            logger.debug("Manifests of application {} at commit {} are not cached", self._app_id, commit_hash)
        else:
            logger.debug("Using cached manifests of application {} at commit {}", self._app_id, commit_hash)
        return manifests

    def put(self, commit_hash: str, manifests: list[Manifest]) -> None:
        if not commit_hash:
            logger.warning("Not caching manifests of application {} without a commit hash", self._app_id)
            return
        self._cache.put(self._key(commit_hash), manifests)
