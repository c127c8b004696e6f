from __future__ import annotations

import errno
import os
import time
import typing as t
from abc import ABC, abstractmethod


class FileSystem(ABC):
    """File access the disk cache needs, in blocking and async forms.

    Paths are plain strings. Missing files raise ``FileNotFoundError``.
    """

    @abstractmethod
    def read_sync(self, path: str) -> bytes:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    async def read(self, path: str) -> bytes:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    def write_sync(self, path: str, data: bytes) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    async def write(self, path: str, data: bytes) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    def unlink_sync(self, path: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    async def unlink(self, path: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    def list_dir_sync(self, path: str) -> t.List[str]:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    async def list_dir(self, path: str) -> t.List[str]:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    def access_time_sync(self, path: str) -> float:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    async def access_time(self, path: str) -> float:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    def make_dirs_sync(self, path: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    async def make_dirs(self, path: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError


def _not_found(path: str) -> FileNotFoundError:
    return FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), path)


class InMemoryFileSystem(FileSystem):
    """A dict-backed file system for dev/test.

    Access times are wall-clock seconds and can be pinned with
    :meth:`set_access_time` to stage bootstrap scenarios.
    """

    def __init__(self, clock: t.Optional[t.Callable[[], float]] = None) -> None:
        self._clock = clock or time.time
        self._files: t.Dict[str, bytes] = {}
        self._atimes: t.Dict[str, float] = {}
        self._dirs: t.Set[str] = set()

    @staticmethod
    def _norm(path: str) -> str:
        return os.path.normpath(path)

    def set_access_time(self, path: str, atime: float) -> None:
        path = self._norm(path)
        if path not in self._files:
            raise _not_found(path)
        self._atimes[path] = atime

    def read_sync(self, path: str) -> bytes:
        path = self._norm(path)
        try:
            data = self._files[path]
        except KeyError:
            raise _not_found(path) from None
        self._atimes[path] = self._clock()
        return data

    async def read(self, path: str) -> bytes:
        return self.read_sync(path)

    def write_sync(self, path: str, data: bytes) -> None:
        path = self._norm(path)
        if os.path.dirname(path) not in self._dirs:
            raise _not_found(os.path.dirname(path))
        self._files[path] = bytes(data)
        self._atimes[path] = self._clock()

    async def write(self, path: str, data: bytes) -> None:
        self.write_sync(path, data)

    def unlink_sync(self, path: str) -> None:
        path = self._norm(path)
        if self._files.pop(path, None) is None:
            raise _not_found(path)
        self._atimes.pop(path, None)

    async def unlink(self, path: str) -> None:
        self.unlink_sync(path)

    def list_dir_sync(self, path: str) -> t.List[str]:
        path = self._norm(path)
        if path not in self._dirs:
            raise _not_found(path)
        return sorted(os.path.basename(p) for p in self._files if os.path.dirname(p) == path)

    async def list_dir(self, path: str) -> t.List[str]:
        return self.list_dir_sync(path)

    def access_time_sync(self, path: str) -> float:
        path = self._norm(path)
        try:
            return self._atimes[path]
        except KeyError:
            raise _not_found(path) from None

    async def access_time(self, path: str) -> float:
        return self.access_time_sync(path)

    def make_dirs_sync(self, path: str) -> None:
        path = self._norm(path)
        while path and path not in self._dirs:
            self._dirs.add(path)
            parent = os.path.dirname(path)
            if parent == path:
                break
            path = parent

    async def make_dirs(self, path: str) -> None:
        self.make_dirs_sync(path)
