"""Logical keys and cache key derivation.

A logical key is either a scalar identifier (a string or a number) or a
:class:`CompositeKey` for stores whose primary key spans several attributes.
Composite keys always name the field that identifies the entity, so the
derived cache key never depends on mapping iteration order.

Numbers are compared by value: ``1``, ``1.0`` and ``Decimal("1")`` identify
the same entity.

Examples:
    derive_cache_key("users", "u1")                          -> "users:u1"
    derive_cache_key("items", Decimal("2.50"))               -> "items:2.5"
    derive_cache_key("orders", CompositeKey({"id": 7, "sk": "2024"}, "id"))
                                                             -> "orders:7"
"""

from __future__ import annotations

import numbers
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Union

Scalar = Union[str, int, float, Decimal]


@dataclass(frozen=True)
class CompositeKey:
    """Multi-attribute key with an explicitly named primary field."""

    fields: Mapping[str, Any]
    primary: str

    def __post_init__(self) -> None:
        if not self.fields:
            raise ValueError("CompositeKey requires at least one field")
        if self.primary not in self.fields:
            raise ValueError(
                f"Primary field '{self.primary}' not present in key fields {list(self.fields)}"
            )
        # Copy so later caller mutations cannot change the derived key
        object.__setattr__(self, "fields", dict(self.fields))

    @property
    def primary_value(self) -> Any:
        return self.fields[self.primary]

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.fields)


LogicalKey = Union[Scalar, CompositeKey, Mapping[str, Any]]


def _is_scalar(key: Any) -> bool:
    # bool is an int subclass but never a meaningful identifier
    if isinstance(key, bool):
        return False
    return isinstance(key, (str, numbers.Real, Decimal))


def _canonical(value: Scalar) -> Union[str, int, Decimal]:
    """Normalize numeric identifiers so equal numbers yield one key."""
    if isinstance(value, str):
        return value
    if isinstance(value, numbers.Integral):
        return int(value)

    number = value if isinstance(value, Decimal) else Decimal(repr(float(value)))
    if not number.is_finite():
        raise ValueError(f"Key must be a finite number, got {value!r}")
    if number == number.to_integral_value():
        return int(number)
    return number.normalize()


def key_identifier(key: LogicalKey) -> Union[str, int, Decimal]:
    """Return the scalar that identifies ``key``.

    Raises:
        ValueError: If ``key`` is not a well-formed logical key.
    """
    if _is_scalar(key):
        return _canonical(key)  # type: ignore[arg-type]

    if isinstance(key, CompositeKey):
        value = key.primary_value
    elif isinstance(key, Mapping):
        if len(key) != 1:
            raise ValueError(
                "Composite keys with more than one field must name their primary "
                "field; use CompositeKey(fields, primary=...)"
            )
        (value,) = key.values()
    else:
        raise ValueError(f"Unsupported key type: {type(key).__name__}")

    if not _is_scalar(value):
        raise ValueError(f"Primary key value must be a string or number, got {value!r}")
    return _canonical(value)


def derive_cache_key(collection: str, key: LogicalKey, id_field: Optional[str] = None) -> str:
    """Derive the cache key for ``key`` within ``collection``.

    Args:
        collection: Collection or table name
        key: Logical key
        id_field: Identifier field of the backend. When given, a plain mapping
                  is only accepted if its single field is ``id_field``, since
                  any other field (``{"email": ...}``) is a query rather than
                  the entity's identity.

    Raises:
        ValueError: If ``key`` does not identify a single entity
    """
    if id_field is not None and isinstance(key, Mapping) and list(key) != [id_field]:
        raise ValueError(f"Mapping key {list(key)} does not address identifier field '{id_field}'")
    return f"{collection}:{key_identifier(key)}"


def key_fields(key: LogicalKey, default_field: str = "id") -> Dict[str, Any]:
    """Expand ``key`` into a field mapping for stores that address items by attributes."""
    if isinstance(key, CompositeKey):
        return key.as_dict()
    if isinstance(key, Mapping):
        return dict(key)
    if _is_scalar(key):
        return {default_field: key}
    raise ValueError(f"Unsupported key type: {type(key).__name__}")
