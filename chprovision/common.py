"""Shared building blocks: diagnostics, schema descriptions, resource data and SQL helpers."""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Optional


class Severity(enum.Enum):
    """How serious a diagnostic is."""

    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Diagnostic:
    """A single message reported back to the caller of a resource operation."""

    severity: Severity
    summary: str
    detail: str = ""


class Diagnostics(list):
    """An ordered collection of diagnostics."""

    def has_error(self) -> bool:
        """Return True if any diagnostic is an error."""
        return any(item.severity is Severity.ERROR for item in self)


def diagnostics_from_error(error: BaseException | str) -> Diagnostics:
    """Wrap an error into diagnostics holding one error entry."""
    return Diagnostics([Diagnostic(Severity.ERROR, str(error))])


class ValueType(enum.Enum):
    """The type of value an attribute holds."""

    STRING = "string"
    INT = "int"
    BOOL = "bool"
    LIST = "list"
    SET = "set"


@dataclass
class Attribute:
    """Description of one attribute of a resource or provider schema."""

    type: ValueType
    description: str = ""
    required: bool = False
    optional: bool = False
    computed: bool = False
    force_new: bool = False
    sensitive: bool = False
    default: Any = None
    default_func: Optional[Callable[[], Any]] = None
    elem: Any = None
    validate: Optional[Callable[[Any], Diagnostics]] = None


@dataclass
class Resource:
    """A managed resource or data source: its schema and its operations."""

    description: str
    schema: Mapping[str, Attribute] = field(default_factory=dict)
    create: Optional[Callable[..., Diagnostics]] = None
    read: Optional[Callable[..., Diagnostics]] = None
    update: Optional[Callable[..., Diagnostics]] = None
    delete: Optional[Callable[..., Diagnostics]] = None


@dataclass
class ApiClient:
    """A configured server connection.

    The connection offers ``execute(query)`` for statements and
    ``query(query)`` returning an iterable of row mappings.
    """

    connection: Any
    default_cluster: str = ""


def _zero_value(attribute: Attribute) -> Any:
    if attribute.default is not None:
        return attribute.default
    return {
        ValueType.STRING: "",
        ValueType.INT: 0,
        ValueType.BOOL: False,
        ValueType.LIST: [],
        ValueType.SET: frozenset(),
    }[attribute.type]


def _normalise(key: str, attribute: Attribute, value: Any) -> Any:
    if value is None:
        return _zero_value(attribute)
    kind = attribute.type
    if kind is ValueType.STRING and not isinstance(value, str):
        raise TypeError(f"{key}: expected a string, got {type(value).__name__}")
    if kind is ValueType.INT and (isinstance(value, bool) or not isinstance(value, int)):
        raise TypeError(f"{key}: expected an integer, got {type(value).__name__}")
    if kind is ValueType.BOOL and not isinstance(value, bool):
        raise TypeError(f"{key}: expected a boolean, got {type(value).__name__}")
    if kind is ValueType.LIST:
        if isinstance(value, (str, bytes)):
            raise TypeError(f"{key}: expected a list, got {type(value).__name__}")
        return list(value)
    if kind is ValueType.SET:
        if isinstance(value, (str, bytes)):
            raise TypeError(f"{key}: expected a set, got {type(value).__name__}")
        return frozenset(value)
    return value


@dataclass
class ResourceData:
    """Planned values of a resource together with its previous state."""

    values: dict = field(default_factory=dict)
    previous: dict = field(default_factory=dict)
    schema: Mapping[str, Attribute] = field(default_factory=dict)
    id: str = ""

    def __post_init__(self) -> None:
        self.values = {key: self._coerce(key, value) for key, value in self.values.items()}
        self.previous = {key: self._coerce(key, value) for key, value in self.previous.items()}

    def _coerce(self, key: str, value: Any) -> Any:
        attribute = self.schema.get(key)
        return value if attribute is None else _normalise(key, attribute, value)

    def _fallback(self, key: str) -> Any:
        attribute = self.schema.get(key)
        return None if attribute is None else _zero_value(attribute)

    def get(self, key: str) -> Any:
        """Return the planned value of ``key``, or its zero value when unset."""
        if key in self.values:
            return self.values[key]
        return self._fallback(key)

    def set(self, key: str, value: Any) -> None:
        """Store ``value`` for ``key``, checking it against the schema."""
        if self.schema and key not in self.schema:
            raise KeyError(f"invalid address to set: {key}")
        self.values[key] = self._coerce(key, value)

    def get_change(self, key: str) -> tuple[Any, Any]:
        """Return the previous and the planned value of ``key``."""
        old = self.previous[key] if key in self.previous else self._fallback(key)
        return old, self.get(key)

    def has_change(self, key: str) -> bool:
        """Return True if the planned value of ``key`` differs from the previous one."""
        old, new = self.get_change(key)
        return old != new


def map_to_strings(items: Iterable[Any]) -> list[str]:
    """Return the items as a list of strings, rejecting anything else."""
    result = []
    for item in items:
        if not isinstance(item, str):
            raise TypeError(f"expected a string, got {type(item).__name__}")
        result.append(item)
    return result


def get_comment(comment: str, cluster: str) -> str:
    """Encode a comment and cluster name into the stored comment form."""
    stored = f'{{"comment":"{comment}","cluster":"{cluster}"}}'
    return stored.replace("'", "\\'")


def unmarshal_comment(stored_comment: str) -> tuple[str, str]:
    """Decode a stored comment into its comment and cluster name."""
    text = stored_comment.replace("\\'", "'")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as err:
        raise ValueError(f"invalid stored comment: {err}") from err
    if not isinstance(data, dict):
        raise ValueError("invalid stored comment: not an object")
    comment = data.get("comment")
    cluster = data.get("cluster")
    if not isinstance(comment, str) or not isinstance(cluster, str):
        raise ValueError("invalid stored comment: missing comment or cluster")
    return comment, cluster


def get_cluster_statement(cluster: str) -> str:
    """Return the ON CLUSTER clause for ``cluster``, or an empty string."""
    return f"ON CLUSTER {cluster}" if cluster else ""


_ESCAPES = {
    "\a": "\\a",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\v": "\\v",
    "\\": "\\\\",
    '"': '\\"',
}


def _quote_one(text: str) -> str:
    parts = []
    for char in text:
        if char in _ESCAPES:
            parts.append(_ESCAPES[char])
        elif char.isprintable():
            parts.append(char)
        else:
            code = ord(char)
            if code < 0x80:
                parts.append(f"\\x{code:02x}")
            elif code < 0x10000:
                parts.append(f"\\u{code:04x}")
            else:
                parts.append(f"\\U{code:08x}")
    return '"' + "".join(parts) + '"'


def quote(elems: Iterable[str]) -> list[str]:
    """Return every string double-quoted with escapes."""
    return [_quote_one(elem) for elem in elems]