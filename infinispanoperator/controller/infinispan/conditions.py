# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

"""Status conditions of an Infinispan cluster

Conditions are kept in status.conditions of the Infinispan object as a list of
{"type", "status", "message"} dicts. Condition types are case insensitive:
"wellformed" and "WellFormed" name the same condition.

A condition that is not present reads as False, never as Unknown. The
stability checks rely on that.
"""

from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Union


class ConditionStatus(Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def of(cls, value: Union['ConditionStatus', str, bool]) -> 'ConditionStatus':
        if isinstance(value, ConditionStatus):
            return value
        if isinstance(value, bool):
            return cls.TRUE if value else cls.FALSE
        for v in cls:
            if v.value == value:
                return v
        raise ValueError(f"Invalid condition status '{value}'")


StatusLike = Union[ConditionStatus, str, bool]


def fold(condition_type: str) -> str:
    return condition_type.casefold()


class Condition:
    def __init__(self, type: str, status: StatusLike, message: str = "") -> None:
        self.type = type
        self.status = ConditionStatus.of(status)
        self.message = message or ""

    @classmethod
    def from_dict(cls, d: dict) -> 'Condition':
        return Condition(d["type"], d.get("status", ConditionStatus.FALSE.value), d.get("message", ""))

    def to_dict(self) -> dict:
        d = {"type": self.type, "status": self.status.value}
        if self.message:
            d["message"] = self.message
        return d

    def __eq__(self, other) -> bool:
        if not isinstance(other, Condition):
            return NotImplemented
        return (fold(self.type) == fold(other.type) and self.status == other.status
                and self.message == other.message)

    def __repr__(self) -> str:
        return f"<Condition {self.type}={self.status.value} message={self.message!r}>"


class ConditionSet:
    """
    Ordered, case insensitive set of conditions backed by the list given to
    the constructor. Changes are made on that list, so the owning status dict
    can be patched as is.

    Not thread safe. Only one reconcile at a time may change the conditions
    of a given cluster.
    """

    def __init__(self, items: Optional[List[dict]] = None) -> None:
        self.items: List[dict] = items if items is not None else []
        self._index: Dict[str, int] = {}
        self._reindex()

    def _reindex(self) -> None:
        self._index = {}
        for i, c in enumerate(self.items):
            # keep the first one if the stored list has duplicates
            self._index.setdefault(fold(c["type"]), i)

    def _find(self, condition_type: str) -> Optional[int]:
        # the list may have been changed behind our back, check the hit
        key = fold(condition_type)
        i = self._index.get(key)
        if i is None or i >= len(self.items) or fold(self.items[i]["type"]) != key:
            self._reindex()
            i = self._index.get(key)
        return i

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[Condition]:
        return (Condition.from_dict(c) for c in self.items)

    def __contains__(self, condition_type: str) -> bool:
        return self.has(condition_type)

    def to_list(self) -> List[dict]:
        return [dict(c) for c in self.items]

    def get(self, condition_type: str) -> Condition:
        i = self._find(condition_type)
        if i is None:
            # Absence of condition means False
            return Condition(condition_type, ConditionStatus.FALSE, "")
        return Condition.from_dict(self.items[i])

    def has(self, condition_type: str) -> bool:
        return self._find(condition_type) is not None

    def is_true(self, condition_type: str) -> bool:
        return self.get(condition_type).status is ConditionStatus.TRUE

    def set(self, condition_type: str, status: StatusLike, message: str = "") -> bool:
        """
        Set the status and message of a condition, adding it if it doesn't
        exist yet. Returns True if anything changed.
        """
        status = ConditionStatus.of(status)
        message = message or ""

        i = self._find(condition_type)
        if i is None:
            self.items.append(Condition(condition_type, status, message).to_dict())
            self._index[fold(condition_type)] = len(self.items) - 1
            return True

        c = self.items[i]
        changed = False
        if c.get("status") != status.value:
            c["status"] = status.value
            changed = True
        if c.get("message", "") != message:
            if message:
                c["message"] = message
            else:
                c.pop("message", None)
            changed = True
        return changed

    def set_all(self, conditions: Iterable[Condition]) -> bool:
        changed = False
        for c in conditions:
            # every condition must be applied, don't short-circuit
            changed = self.set(c.type, c.status, c.message) or changed
        return changed

    def remove(self, condition_type: str) -> bool:
        i = self._find(condition_type)
        if i is None:
            return False
        del self.items[i]
        self._reindex()
        return True
