from __future__ import annotations

"""Remote document store contract.

Documents live at slash separated paths that alternate collection and
document segments (``galleries/g1/pieces/p1``). Reads return
``DocumentSnapshot`` objects; writes accept plain dicts whose values may be
field transforms (``Increment``/``ArrayUnion``) resolved against the stored
document at write time.
"""

import abc
import copy
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Literal, Mapping, Sequence, TypeVar

T = TypeVar("T")

DOCUMENT_ID = '__name__'
MAX_IN_VALUES = 10

FilterOp = Literal['==', 'in']


@dataclass(slots=True)
class DocumentSnapshot:
    path: str
    data: dict[str, Any] | None = None

    @property
    def id(self) -> str:
        return self.path.rsplit('/', 1)[-1]

    @property
    def exists(self) -> bool:
        return self.data is not None

    def get(self, key: str, default: Any = None) -> Any:
        if self.data is None:
            return default
        return self.data.get(key, default)


@dataclass(slots=True, frozen=True)
class FieldFilter:
    field: str
    op: FilterOp
    value: Any

    def matches(self, snapshot: DocumentSnapshot) -> bool:
        actual = snapshot.id if self.field == DOCUMENT_ID else snapshot.get(self.field)
        if self.op == '==':
            return actual == self.value
        if self.op == 'in':
            return actual in self.value
        raise ValueError(f"unsupported filter op {self.op!r}")


@dataclass(slots=True, frozen=True)
class Increment:
    amount: int | float = 1


@dataclass(slots=True, frozen=True)
class ArrayUnion:
    values: tuple[Any, ...] = ()


SnapshotCallback = Callable[[DocumentSnapshot], None]
ErrorCallback = Callable[[BaseException], None]


class Subscription(abc.ABC):
    """Handle for one live document listener. ``close`` is idempotent."""

    @property
    @abc.abstractmethod
    def closed(self) -> bool: ...

    @abc.abstractmethod
    def close(self) -> None: ...


class DocumentStore(abc.ABC):
    @abc.abstractmethod
    async def get(self, path: str) -> DocumentSnapshot: ...

    @abc.abstractmethod
    async def set(self, path: str, data: Mapping[str, Any], *, merge: bool = False) -> None: ...

    @abc.abstractmethod
    async def update(self, path: str, data: Mapping[str, Any]) -> None:
        """Merge ``data`` into an existing document, raising ``NotFound`` when absent."""

    @abc.abstractmethod
    async def query(self, collection_path: str, filters: Sequence[FieldFilter] = ()) -> list[DocumentSnapshot]: ...

    @abc.abstractmethod
    def subscribe(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        """Open a live listener: one immediate push, then one push per change."""

    async def close(self) -> None:
        return None


def validate_filters(filters: Iterable[FieldFilter]) -> list[FieldFilter]:
    checked: list[FieldFilter] = []
    for flt in filters:
        if flt.op not in ('==', 'in'):
            raise ValueError(f"unsupported filter op {flt.op!r}")
        if flt.op == 'in':
            values = list(flt.value)
            if not values:
                raise ValueError("'in' filter requires at least one value")
            if len(values) > MAX_IN_VALUES:
                raise ValueError(f"'in' filter accepts at most {MAX_IN_VALUES} values, got {len(values)}")
        checked.append(flt)
    return checked


def chunked(values: Sequence[T], size: int) -> list[list[T]]:
    if size < 1:
        raise ValueError("chunk size must be positive")
    return [list(values[i:i + size]) for i in range(0, len(values), size)]


def _resolve_transform(current: Any, value: Any) -> Any:
    if isinstance(value, Increment):
        base = current if isinstance(current, (int, float)) and not isinstance(current, bool) else 0
        return base + value.amount
    if isinstance(value, ArrayUnion):
        result = list(current) if isinstance(current, list) else []
        for item in value.values:
            if item not in result:
                result.append(item)
        return result
    return copy.deepcopy(value)


def apply_write(existing: Mapping[str, Any] | None, data: Mapping[str, Any], *, merge: bool) -> dict[str, Any]:
    """Return the document that results from writing ``data`` over ``existing``."""
    base: dict[str, Any] = copy.deepcopy(dict(existing)) if (merge and existing) else {}
    for key, value in data.items():
        base[key] = _resolve_transform(base.get(key), value)
    return base


def path_parent(path: str) -> str:
    return path.rsplit('/', 1)[0] if '/' in path else ''
