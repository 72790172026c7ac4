"""
Audience segment criteria.

A segment node carries either the simple form (tier, city, demographics, activity, ARPU, balance, tags) or the
advanced form (condition groups), or both; when condition groups hold at least one usable condition they take
precedence over the simple form.
"""

from typing import Annotated, Any, Literal

from pydantic import Field

from .common import CanvasModel, OptionalFloat, OptionalInt, OptionalStr

ComparisonOperator = Literal['>', '<', '=', '>=', '<=', 'in', 'contains']
GroupOperator = Literal['AND', 'OR']

ANY_VALUE = 'All'
"""Select-box value meaning 'no filter' for gender and SIM type."""


class NumericRange(CanvasModel):
    """Open-ended numeric range. Either bound may be missing."""

    min: OptionalFloat = None
    max: OptionalFloat = None

    def is_set(self) -> bool:
        return self.min is not None or self.max is not None


class SegmentCondition(CanvasModel):
    """A single advanced-mode condition, e.g. ``arpu_30d >= 25000``."""

    id: str
    field: str
    operator: ComparisonOperator = '='
    value: str | float | list[str] | None = None

    def is_usable(self) -> bool:
        return bool(self.field) and self.value is not None and self.value != '' and self.value != []


class SegmentConditionGroup(CanvasModel):
    """Conditions within a group are combined with AND.

    Attributes:
        group_operator: How this group combines with the groups before it. 'OR' on any group after the first
            switches the whole criteria to union semantics.
    """

    id: str
    conditions: Annotated[list[SegmentCondition], Field(default_factory=list)]
    operator: GroupOperator = 'AND'
    group_operator: GroupOperator | None = None

    def usable_conditions(self) -> list[SegmentCondition]:
        return [condition for condition in self.conditions if condition.is_usable()]


class SegmentCriteria(CanvasModel):
    """Structured audience filter owned by a segment node."""

    tier: OptionalStr = None
    city: OptionalStr = None
    gender: OptionalStr = None
    sim_type: OptionalStr = None
    age_min: OptionalInt = None
    age_max: OptionalInt = None
    activity_type: OptionalStr = None
    activity_operator: OptionalStr = None
    activity_value: OptionalStr = None
    arpu: NumericRange | None = None
    balance: NumericRange | None = None
    tags: Annotated[list[str], Field(default_factory=list)]
    condition_groups: Annotated[list[SegmentConditionGroup], Field(default_factory=list)]

    def uses_condition_groups(self) -> bool:
        return any(group.usable_conditions() for group in self.condition_groups)

    def has_criteria(self) -> bool:
        """True when at least one filter would narrow the audience."""
        if self.uses_condition_groups():
            return True
        simple_values: list[Any] = [
            self.tier,
            self.city,
            self.age_min,
            self.age_max,
            self.activity_type,
        ]
        if any(value is not None for value in simple_values):
            return True
        if self.gender not in (None, ANY_VALUE) or self.sim_type not in (None, ANY_VALUE):
            return True
        if (self.arpu and self.arpu.is_set()) or (self.balance and self.balance.is_set()):
            return True
        return bool(self.tags)

    def display_items(self) -> list[tuple[str, str]]:
        """Short (label, value) pairs summarising the criteria on the canvas card."""
        items: list[tuple[str, str]] = []
        if self.tier:
            items.append(('Tier', self.tier))
        if self.city:
            items.append(('City', self.city))
        if self.gender not in (None, ANY_VALUE):
            items.append(('Gender', str(self.gender)))
        if self.sim_type not in (None, ANY_VALUE):
            items.append(('SIM', str(self.sim_type)))
        if self.age_min is not None or self.age_max is not None:
            upper = '∞' if self.age_max is None else str(self.age_max)
            items.append(('Age', f'{self.age_min or 0} - {upper}'))
        if self.activity_type:
            items.append(
                (self.activity_type, f'{self.activity_operator or ""} {self.activity_value or "?"}d'.strip())
            )
        if self.arpu and self.arpu.is_set():
            items.append(('ARPU', f'>{self.arpu.min or 0:g}'))
        if self.balance and self.balance.is_set():
            items.append(('Bal', f'>{self.balance.min or 0:g}'))
        if self.tags:
            items.append(('Tags', f'{len(self.tags)} selected'))
        return items
