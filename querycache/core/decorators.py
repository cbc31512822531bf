from __future__ import annotations

import functools
import inspect
from typing import Any, Awaitable, Callable, Optional

from .operations import Operation, OperationKind
from .service import QueryCache


def _arguments(fn: Callable[..., Any], key_fn: Optional[Callable[..., Any]]):
    if key_fn is not None:
        return key_fn
    sig = inspect.signature(fn)
    params = list(sig.parameters)
    # The instance or class of a decorated method is not part of the query
    skip = params[0] if params and params[0] in ("self", "cls") else None

    def from_signature(*args, **kwargs):
        bound = sig.bind(*args, **kwargs)
        bound.apply_defaults()
        return {k: v for k, v in bound.arguments.items() if k != skip}

    return from_signature


def cached_query(
    cache: QueryCache,
    entity: str,
    kind: OperationKind | str = OperationKind.FIND_MANY,
    key_fn: Optional[Callable[..., Any]] = None,
):
    """
    @cached_query(cache, "Post", "find_unique")
    async def read_post(post_id: int): ...

    The call's bound arguments (or ``key_fn(*args, **kwargs)``) become the
    operation arguments the cache key is derived from. On methods ``self`` or
    ``cls`` is left out; use ``key_fn`` if instance state selects the rows.
    """

    def wrap(fn: Callable[..., Awaitable[Any]]):
        arguments = _arguments(fn, key_fn)

        @functools.wraps(fn)
        async def inner(*args, **kwargs):
            op = Operation(entity, kind, arguments(*args, **kwargs))
            return await cache.read_through(op, lambda _op: fn(*args, **kwargs))

        return inner

    return wrap


def invalidates(
    cache: QueryCache,
    entity: str,
    kind: OperationKind | str = OperationKind.UPDATE,
):
    """
    @invalidates(cache, "Post")
    async def update_post(post_id: int, title: str): ...

    Purges the entity's cache after the wrapped write returns; a failing
    write purges nothing.
    """

    def wrap(fn: Callable[..., Awaitable[Any]]):
        arguments = _arguments(fn, None)

        @functools.wraps(fn)
        async def inner(*args, **kwargs):
            op = Operation(entity, kind, arguments(*args, **kwargs))
            return await cache.write(op, lambda _op: fn(*args, **kwargs))

        return inner

    return wrap
