"""
Translation of segment criteria into profile filters.

Criteria become an ``AudienceQuery``: groups of clauses over profile columns. The same query is evaluated in
memory (``AudienceQuery.matches``) or handed to MongoDB (``AudienceQuery.to_mongo_filter``), so both audience
sources count the same population.

Profile columns: ``tier``, ``age``, ``gender``, ``location_city``, ``arpu_30d``, ``churn_score``, ``created_at``,
``status``, ``balance``, ``tags``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Literal

from ..api.v1.endpoints.campaigns.models.segment import ANY_VALUE, SegmentCondition, SegmentCriteria

ClauseOp = Literal['eq', 'gt', 'lt', 'gte', 'lte', 'in']

_MONGO_OPS: dict[str, str] = {
    'eq': '$eq',
    'gt': '$gt',
    'lt': '$lt',
    'gte': '$gte',
    'lte': '$lte',
    'in': '$in',
}

_COMPARISON_OPS: dict[str, ClauseOp] = {'=': 'eq', '>': 'gt', '<': 'lt', '>=': 'gte', '<=': 'lte'}

# tenure is "days since registration": more days means an earlier created_at
_TENURE_OPS: dict[str, ClauseOp] = {'>': 'lt', '<': 'gt', '>=': 'lte', '<=': 'gte'}

# profiles only record Active/Inactive
STATUS_ALIASES: dict[str, str] = {
    'Active': 'Active',
    'Inactive': 'Inactive',
    'Dormant': 'Inactive',
    'Register': 'Active',
}

NUMERIC_FIELDS = {'age': 'age', 'arpu_30d': 'arpu_30d', 'churn_score': 'churn_score', 'balance': 'balance'}
CATEGORICAL_FIELDS = {'city': 'location_city', 'tier': 'tier'}


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_aware(value: Any) -> Any:
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


@dataclass(frozen=True)
class Clause:
    column: str
    op: ClauseOp
    value: Any

    def matches(self, profile: dict[str, Any]) -> bool:
        actual = _as_aware(profile.get(self.column))
        if actual is None:
            return False
        expected = _as_aware(self.value)
        try:
            if self.op == 'eq':
                return actual == expected
            if self.op == 'in':
                return actual in expected
            if self.op == 'gt':
                return actual > expected
            if self.op == 'lt':
                return actual < expected
            if self.op == 'gte':
                return actual >= expected
            return actual <= expected
        except TypeError:
            # column holds a value of a different type than the filter, e.g. a string age
            return False

    def to_mongo(self) -> dict[str, Any]:
        return {self.column: {_MONGO_OPS[self.op]: self.value}}


@dataclass
class AudienceQuery:
    """Groups of clauses. Clauses in a group are ANDed; groups are ANDed, or ORed when ``union`` is set."""

    groups: list[list[Clause]] = field(default_factory=list)
    union: bool = False
    tags: list[str] = field(default_factory=list)

    def _active_groups(self) -> list[list[Clause]]:
        return [group for group in self.groups if group]

    def matches_nothing(self) -> bool:
        return self.union and not self._active_groups()

    def matches(self, profile: dict[str, Any]) -> bool:
        if self.tags and not set(profile.get('tags') or ()).intersection(self.tags):
            return False
        groups = self._active_groups()
        if self.union:
            return any(all(clause.matches(profile) for clause in group) for group in groups)
        return all(clause.matches(profile) for group in groups for clause in group)

    def to_mongo_filter(self) -> dict[str, Any]:
        parts: list[dict[str, Any]] = []
        if self.tags:
            parts.append({'tags': {'$in': list(self.tags)}})
        groups = self._active_groups()
        if self.union:
            parts.append({'$or': [{'$and': [clause.to_mongo() for clause in group]} for group in groups]})
        else:
            parts.extend(clause.to_mongo() for group in groups for clause in group)
        if not parts:
            return {}
        if len(parts) == 1:
            return parts[0]
        return {'$and': parts}


def _condition_clause(condition: SegmentCondition, now: datetime) -> Clause | None:
    """Clause for one advanced-mode condition, or None if the field/operator pair has no profile equivalent."""
    name, operator, value = condition.field, condition.operator, condition.value

    if name in NUMERIC_FIELDS:
        number = _as_number(value)
        op = _COMPARISON_OPS.get(operator)
        if number is None or op is None:
            return None
        return Clause(NUMERIC_FIELDS[name], op, number)

    if name in CATEGORICAL_FIELDS:
        column = CATEGORICAL_FIELDS[name]
        if operator == 'in' and isinstance(value, list):
            return Clause(column, 'in', list(value))
        if operator == '=':
            return Clause(column, 'eq', value)
        return None

    if name == 'created_at':
        days = _as_number(value)
        op = _TENURE_OPS.get(operator)
        if days is None or op is None:
            return None
        return Clause('created_at', op, now - timedelta(days=days))

    if name == 'active_status' and operator == '=':
        return Clause('status', 'eq', STATUS_ALIASES.get(str(value), value))

    if name == 'gender' and operator == '=':
        return Clause('gender', 'eq', value)

    return None


def _simple_clauses(criteria: SegmentCriteria) -> list[Clause]:
    clauses: list[Clause] = []
    if criteria.tier:
        clauses.append(Clause('tier', 'eq', criteria.tier))
    if criteria.age_min is not None:
        clauses.append(Clause('age', 'gte', criteria.age_min))
    if criteria.age_max is not None:
        clauses.append(Clause('age', 'lte', criteria.age_max))
    if criteria.gender not in (None, ANY_VALUE):
        clauses.append(Clause('gender', 'eq', criteria.gender))
    if criteria.city:
        clauses.append(Clause('location_city', 'eq', criteria.city))
    for column, bounds in (('arpu_30d', criteria.arpu), ('balance', criteria.balance)):
        if bounds is None:
            continue
        if bounds.min is not None:
            clauses.append(Clause(column, 'gt', bounds.min))
        if bounds.max is not None:
            clauses.append(Clause(column, 'lt', bounds.max))
    if criteria.activity_type:
        status = STATUS_ALIASES.get(criteria.activity_type, criteria.activity_type)
        clauses.append(Clause('status', 'eq', status))
    return clauses


def build_audience_query(criteria: SegmentCriteria, now: datetime | None = None) -> AudienceQuery:
    """Condition groups take precedence over the simple fields when they hold a usable condition."""
    now = now or datetime.now(UTC)
    tags = [tag for tag in criteria.tags if tag]

    if not criteria.uses_condition_groups():
        return AudienceQuery(groups=[_simple_clauses(criteria)], tags=tags)

    groups = []
    for group in criteria.condition_groups:
        clauses = [_condition_clause(condition, now) for condition in group.usable_conditions()]
        groups.append([clause for clause in clauses if clause is not None])
    union = any(group.group_operator == 'OR' for group in criteria.condition_groups[1:])
    return AudienceQuery(groups=groups, union=union, tags=tags)
