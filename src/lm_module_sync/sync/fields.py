"""Managed field set and per-field comparison rules.

The engine edits a fixed allow-list of module fields. Each field has a
``FieldRule``: a normalizer applied before storing a value and a
comparator deciding whether two values are equal. Structured fields are
opaque units for comparison; there is no sub-field diffing.

Registering a rule is the only change needed to manage a new field::

    fields = DEFAULT_FIELDS.with_rule("thresholds", DEEP_RULE)
"""

from __future__ import annotations

import copy
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from .checksum import deep_equal, normalize_id_list, same_value
from .models import FieldMap


def _identity(value: Any) -> Any:
    return value


@dataclass(frozen=True)
class FieldRule:
    normalizer: Callable[[Any], Any] = _identity
    comparator: Callable[[Any, Any], bool] = same_value


SCALAR_RULE = FieldRule()
DEEP_RULE = FieldRule(comparator=deep_equal)
ID_SET_RULE = FieldRule(
    normalizer=normalize_id_list,
    comparator=lambda a, b: normalize_id_list(a) == normalize_id_list(b),
)


def _unwrap_interval(value: Any) -> Any:
    # collectInterval sometimes arrives as {"offset": n}
    if isinstance(value, dict) and "offset" in value:
        return value["offset"]
    return value


INTERVAL_RULE = FieldRule(normalizer=_unwrap_interval)


MANAGED_FIELDS: tuple[str, ...] = (
    "name",
    "displayName",
    "description",
    "appliesTo",
    "group",
    "technology",
    "tags",
    "collectInterval",
    "accessGroupIds",
    "enableAutoDiscovery",
    "autoDiscoveryConfig",
    "dataPoints",
    "configChecks",
    "alertSubjectTemplate",
    "alertBodyTemplate",
    "alertLevel",
    "clearAfterAck",
    "alertEffectiveIval",
)


class FieldRegistry:
    """Allow-list of managed fields with their comparison rules.

    Args:
        rules: Mapping of field name to rule; insertion order is the
            projection order.
    """

    def __init__(self, rules: dict[str, FieldRule]) -> None:
        self._rules = dict(rules)

    def __contains__(self, field_name: object) -> bool:
        return field_name in self._rules

    def __iter__(self):
        return iter(self._rules)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._rules)

    def rule(self, field_name: str) -> FieldRule:
        """Return the rule for *field_name*.

        Raises:
            ValueError: If the field is not managed.
        """
        try:
            return self._rules[field_name]
        except KeyError:
            raise ValueError(
                f"Field '{field_name}' is not a managed module field"
            ) from None

    def with_rule(self, field_name: str, rule: FieldRule) -> FieldRegistry:
        """Return a copy with *rule* registered for *field_name*."""
        rules = dict(self._rules)
        rules[field_name] = rule
        return FieldRegistry(rules)

    def normalize(self, field_name: str, value: Any) -> Any:
        return self.rule(field_name).normalizer(value)

    def equal(self, field_name: str, a: Any, b: Any) -> bool:
        return self.rule(field_name).comparator(a, b)

    def project(self, record: dict[str, Any]) -> FieldMap:
        """Project a remote record onto the managed fields.

        Unmanaged keys are dropped; managed keys absent from the record are
        left out rather than invented. Values are normalized and deep
        copied so the projection never aliases the record.
        """
        projected: FieldMap = {}
        for name, rule in self._rules.items():
            if name in record:
                projected[name] = rule.normalizer(
                    copy.deepcopy(record[name])
                )
        return projected

    def diff(
        self, before: FieldMap, after: FieldMap, names: Iterable[str] | None = None
    ) -> list[str]:
        """Return managed fields whose values differ, in registry order."""
        wanted = set(names) if names is not None else None
        changed = []
        for name, rule in self._rules.items():
            if wanted is not None and name not in wanted:
                continue
            if not rule.comparator(before.get(name), after.get(name)):
                changed.append(name)
        return changed


DEFAULT_FIELDS = FieldRegistry(
    {name: SCALAR_RULE for name in MANAGED_FIELDS}
    | {
        "collectInterval": INTERVAL_RULE,
        "accessGroupIds": ID_SET_RULE,
        "autoDiscoveryConfig": DEEP_RULE,
        "dataPoints": DEEP_RULE,
        "configChecks": DEEP_RULE,
    }
)
