"""
Condition Ledger — ordered set of named status conditions.

Behavioral Contract:
- Conditions are keyed by type; iteration follows first insertion order
- A condition's transition time moves only when its status value changes
- Ready aggregates the others: it mirrors the first non-True condition
- No operation fails; marking an absent condition creates it
"""

from datetime import datetime
from typing import Dict, Iterable, Iterator, List, Optional

from volume_reconciler.models.conditions import (
    READY_MESSAGE,
    READY_REASON,
    Condition,
    ConditionStatus,
    Severity,
)


def unknown_condition(type_: str, reason: str, message: str) -> Condition:
    return Condition(
        type=type_,
        status=ConditionStatus.UNKNOWN,
        reason=reason,
        severity=Severity.NONE,
        message=message,
    )


def true_condition(type_: str, message: str) -> Condition:
    return Condition(
        type=type_,
        status=ConditionStatus.TRUE,
        reason=READY_REASON,
        severity=Severity.NONE,
        message=message,
    )


def false_condition(
    type_: str, reason: str, severity: Severity, message: str
) -> Condition:
    return Condition(
        type=type_,
        status=ConditionStatus.FALSE,
        reason=reason,
        severity=severity,
        message=message,
    )


class ConditionLedger:
    """
    Name-indexed conditions with upsert-preserving-timestamp semantics.
    """

    def __init__(
        self,
        conditions: Optional[Iterable[Condition]] = None,
        clock=datetime.utcnow,
    ):
        self._clock = clock
        self._conditions: Dict[str, Condition] = {}
        for c in conditions or []:
            self._conditions[c.type] = c.model_copy()

    def __iter__(self) -> Iterator[Condition]:
        return iter(self._conditions.values())

    def __len__(self) -> int:
        return len(self._conditions)

    def __contains__(self, type_: str) -> bool:
        return type_ in self._conditions

    def get(self, type_: str) -> Optional[Condition]:
        return self._conditions.get(type_)

    def to_list(self) -> List[Condition]:
        return [c.model_copy() for c in self._conditions.values()]

    def init(self, conditions: Iterable[Condition]) -> None:
        """Insert each condition whose type is not tracked yet. Never overwrites."""
        for c in conditions:
            if c.type in self._conditions:
                continue
            stamped = c.model_copy()
            if stamped.last_transition_time is None:
                stamped.last_transition_time = self._clock()
            self._conditions[c.type] = stamped

    def set(self, condition: Condition) -> None:
        """Upsert by type, stamping a new transition time only on a status change."""
        new = condition.model_copy()
        existing = self._conditions.get(new.type)
        if existing is not None and existing.status == new.status:
            new.last_transition_time = existing.last_transition_time
        else:
            new.last_transition_time = self._clock()
        self._conditions[new.type] = new

    def mark_true(self, type_: str, message: str) -> None:
        self.set(true_condition(type_, message))

    def mark_false(
        self, type_: str, reason: str, severity: Severity, message: str
    ) -> None:
        self.set(false_condition(type_, reason, severity, message))

    def is_unknown(self, type_: str) -> bool:
        c = self._conditions.get(type_)
        return c is not None and c.status == ConditionStatus.UNKNOWN

    def is_true(self, type_: str) -> bool:
        c = self._conditions.get(type_)
        return c is not None and c.status == ConditionStatus.TRUE

    def all_true(self, exclude: Iterable[str] = ()) -> bool:
        skipped = set(exclude)
        return all(
            c.status == ConditionStatus.TRUE
            for c in self._conditions.values()
            if c.type not in skipped
        )

    def mirror(self, target: str) -> Condition:
        """
        Synthesize `target` from the other conditions.

        Copies the first non-True condition in ledger order. All True yields
        a True target.
        """
        for c in self._conditions.values():
            if c.type == target or c.status == ConditionStatus.TRUE:
                continue
            return Condition(
                type=target,
                status=c.status,
                reason=c.reason,
                severity=c.severity,
                message=c.message,
            )
        return true_condition(target, READY_MESSAGE)

    def restore_last_transition_times(self, saved: Iterable[Condition]) -> None:
        """Put back saved transition times where the status did not change."""
        previous = {c.type: c for c in saved}
        for type_, c in self._conditions.items():
            old = previous.get(type_)
            if old is not None and old.status == c.status:
                c.last_transition_time = old.last_transition_time
