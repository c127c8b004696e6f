from __future__ import annotations

import inspect
import typing as t
from dataclasses import dataclass

from ..core.errors import ConfigurationError

V = t.TypeVar("V")
R = t.TypeVar("R")

MaybeAwaitable = t.Union[R, t.Awaitable[R]]


async def resolve(value: MaybeAwaitable[R]) -> R:
    """Await ``value`` if it is awaitable, otherwise return it."""
    if inspect.isawaitable(value):
        return await value
    return value  # type: ignore[return-value]


@dataclass(frozen=True)
class AsyncCodec(t.Generic[V]):
    """Value hooks usable from async code only.

    Each callable may return a plain value or an awaitable.
    """

    generate: t.Callable[[str], MaybeAwaitable[V]]
    encode: t.Callable[[V], MaybeAwaitable[bytes]]
    decode: t.Callable[[bytes], MaybeAwaitable[V]]


@dataclass(frozen=True)
class DualCodec(AsyncCodec[V]):
    """Value hooks with blocking forms as well, enabling the ``*_sync`` methods."""

    generate_sync: t.Callable[[str], V]
    encode_sync: t.Callable[[V], bytes]
    decode_sync: t.Callable[[bytes], V]


def build_codec(
    *,
    generate: t.Optional[t.Callable[[str], t.Any]] = None,
    encode: t.Optional[t.Callable[[t.Any], t.Any]] = None,
    decode: t.Optional[t.Callable[[bytes], t.Any]] = None,
    generate_sync: t.Optional[t.Callable[[str], t.Any]] = None,
    encode_sync: t.Optional[t.Callable[[t.Any], bytes]] = None,
    decode_sync: t.Optional[t.Callable[[bytes], t.Any]] = None,
) -> AsyncCodec:
    """Pick the codec variant for the supplied hooks.

    A missing async hook falls back to its blocking counterpart. The result is
    a :class:`DualCodec` only when all three blocking hooks are given.
    """
    hooks = {
        "generate": generate or generate_sync,
        "encode": encode or encode_sync,
        "decode": decode or decode_sync,
    }
    missing = [name for name, fn in hooks.items() if fn is None]
    if missing:
        raise ConfigurationError(f"codec is missing: {', '.join(missing)}")
    resolved = t.cast(t.Dict[str, t.Callable[..., t.Any]], hooks)

    if generate_sync is not None and encode_sync is not None and decode_sync is not None:
        return DualCodec(
            generate_sync=generate_sync,
            encode_sync=encode_sync,
            decode_sync=decode_sync,
            **resolved,
        )
    return AsyncCodec(**resolved)
