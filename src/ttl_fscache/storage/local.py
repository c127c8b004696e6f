from __future__ import annotations

import typing as t
from pathlib import Path

import anyio

from .base import FileSystem


class LocalFileSystem(FileSystem):
    """Local disk access: ``pathlib`` for blocking calls, ``anyio.Path`` for async ones.

    ``anyio.Path`` runs each call in a worker thread, so the event loop keeps
    serving other tasks while a file is read or written.
    """

    def read_sync(self, path: str) -> bytes:
        return Path(path).read_bytes()

    async def read(self, path: str) -> bytes:
        return await anyio.Path(path).read_bytes()

    def write_sync(self, path: str, data: bytes) -> None:
        Path(path).write_bytes(data)

    async def write(self, path: str, data: bytes) -> None:
        await anyio.Path(path).write_bytes(data)

    def unlink_sync(self, path: str) -> None:
        Path(path).unlink()

    async def unlink(self, path: str) -> None:
        await anyio.Path(path).unlink()

    def list_dir_sync(self, path: str) -> t.List[str]:
        return [child.name for child in Path(path).iterdir() if child.is_file()]

    async def list_dir(self, path: str) -> t.List[str]:
        names: t.List[str] = []
        async for child in anyio.Path(path).iterdir():
            if await child.is_file():
                names.append(child.name)
        return names

    def access_time_sync(self, path: str) -> float:
        return Path(path).stat().st_atime

    async def access_time(self, path: str) -> float:
        return (await anyio.Path(path).stat()).st_atime

    def make_dirs_sync(self, path: str) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)

    async def make_dirs(self, path: str) -> None:
        await anyio.Path(path).mkdir(parents=True, exist_ok=True)
