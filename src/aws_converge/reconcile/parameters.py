"""Desired-state reconciliation for cache parameter groups.

Given the parameters last applied to a parameter group and the parameters
now desired, ``reconcile`` works out which names must be reset to their
engine default and which must be set. The function is pure: callers issue
the remote Modify/Reset calls themselves and decide how to handle names the
API refuses to reset (see ``EXCLUDED_RESET_NAME``).
"""

import hashlib
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

from aws_converge.utils.errors import ValidationError


# ResetCacheParameterGroup rejects this name; callers switch to
# RESERVED_MEMORY_PERCENT_NAME and reset that instead.
EXCLUDED_RESET_NAME = 'reserved-memory'
RESERVED_MEMORY_PERCENT_NAME = 'reserved-memory-percent'

# Modify and Reset accept at most this many parameters per request
MAX_PARAMETERS_PER_REQUEST = 20


def parameter_hash(name: str, value: str) -> int:
    """Stable hash of a parameter, independent of name case.

    Uses a digest rather than ``hash()`` so that the value does not change
    between interpreter runs. The result is a signed 64-bit value so
    ``hash()`` returns it unchanged.
    """
    digest = hashlib.sha256(f"{name.lower()}-{value}-".encode('utf-8')).digest()
    return int.from_bytes(digest[:8], 'big', signed=True)


@dataclass(frozen=True)
class Parameter:
    """A single name/value pair in a parameter group."""

    name: str
    value: str

    def __post_init__(self):
        object.__setattr__(self, 'name', self.name.lower())
        object.__setattr__(self, 'value', str(self.value))

    def __hash__(self) -> int:
        return parameter_hash(self.name, self.value)

    def to_api(self) -> Dict[str, str]:
        """Render as an ElastiCache ``ParameterNameValue``."""
        return {'ParameterName': self.name, 'ParameterValue': self.value}


@dataclass(frozen=True)
class ParameterSet:
    """Parameters attached to a parameter group at one point in time.

    Names are unique within a set. Identical duplicates collapse; the same
    name with two different values is rejected.
    """

    parameters: frozenset = field(default_factory=frozenset)

    def __post_init__(self):
        params = frozenset(self.parameters)
        seen: Dict[str, str] = {}
        for param in params:
            if param.name in seen:
                raise ValidationError(
                    f"Parameter '{param.name}' is declared with conflicting values: "
                    f"{seen[param.name]!r} and {param.value!r}"
                )
            seen[param.name] = param.value
        object.__setattr__(self, 'parameters', params)

    @classmethod
    def of(cls, parameters: Iterable[Parameter]) -> 'ParameterSet':
        return cls(frozenset(parameters))

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str]) -> 'ParameterSet':
        return cls.of(Parameter(name, value) for name, value in mapping.items())

    @classmethod
    def from_dicts(cls, items: Iterable[Mapping[str, str]]) -> 'ParameterSet':
        """Build from ``{'name': ..., 'value': ...}`` dictionaries."""
        return cls.of(Parameter(item['name'], item['value']) for item in items)

    @classmethod
    def from_api(cls, items: Iterable[Mapping[str, str]]) -> 'ParameterSet':
        """Build from ElastiCache ``ParameterName``/``ParameterValue`` dictionaries.

        Entries without a value (engine defaults reported by the API) are skipped.
        """
        return cls.of(
            Parameter(item['ParameterName'], item['ParameterValue'])
            for item in items
            if item.get('ParameterValue') is not None
        )

    def as_mapping(self) -> Dict[str, str]:
        return {param.name: param.value for param in self.parameters}

    def names(self) -> frozenset:
        return frozenset(param.name for param in self.parameters)

    def __iter__(self) -> Iterator[Parameter]:
        return iter(sorted(self.parameters, key=lambda p: p.name))

    def __len__(self) -> int:
        return len(self.parameters)

    def __contains__(self, item) -> bool:
        return item in self.parameters


@dataclass(frozen=True)
class ReconciliationResult:
    """Operations needed to converge a parameter group.

    Ordering of both lists carries no meaning.
    """

    to_remove: List[Parameter]
    to_add_or_update: List[Parameter]

    @property
    def has_changes(self) -> bool:
        return bool(self.to_remove or self.to_add_or_update)

    def removes(self, name: str) -> bool:
        return any(param.name == name.lower() for param in self.to_remove)

    def sets(self, name: str) -> bool:
        return any(param.name == name.lower() for param in self.to_add_or_update)


def reconcile(old: Optional[ParameterSet], new: Optional[ParameterSet]) -> ReconciliationResult:
    """Compute the parameters to reset and to set to get from ``old`` to ``new``.

    A name in ``old`` but not in ``new`` is reset, carrying its old value.
    A name in ``new`` that is missing from ``old`` or has a different value
    there is set. Identical entries appear in neither list, and a changed
    value is an update, never a reset followed by a set.

    ``EXCLUDED_RESET_NAME`` is reported in ``to_remove`` like any other name.
    """
    old_values = old.as_mapping() if old is not None else {}
    new_values = new.as_mapping() if new is not None else {}

    to_remove = [
        Parameter(name, value)
        for name, value in sorted(old_values.items())
        if name not in new_values
    ]
    to_add_or_update = [
        Parameter(name, value)
        for name, value in sorted(new_values.items())
        if old_values.get(name) != value
    ]

    return ReconciliationResult(to_remove=to_remove, to_add_or_update=to_add_or_update)


def chunked(parameters: Sequence[Parameter], size: int = MAX_PARAMETERS_PER_REQUEST) -> Iterator[List[Parameter]]:
    """Split parameters into request-sized batches."""
    if size < 1:
        raise ValueError(f"Batch size must be positive: {size}")
    items = list(parameters)
    for start in range(0, len(items), size):
        yield items[start:start + size]
