from .base import FileSystem, InMemoryFileSystem
from .local import LocalFileSystem

__all__ = ["FileSystem", "InMemoryFileSystem", "LocalFileSystem"]
