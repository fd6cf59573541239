"""
Condition matching for classification rules.

Field extraction and operator evaluation are lookup tables of pure
functions keyed by the ConditionField / ConditionOperator enums. Matching
never raises: unknown fields, unknown operators, and malformed regex
patterns all evaluate to False.
"""

import re
from collections.abc import Callable
from functools import lru_cache

from priority_inbox.features.triage.domain import Message

from .models import ClassificationRule, Condition, ConditionField, ConditionOperator


def extract_domain(address: str) -> str:
    """Return everything after the first '@', or '' when there is none."""
    _, at, domain = (address or "").partition("@")
    return domain if at else ""


def joined_headers(message: Message) -> str:
    return "\n".join(f"{key}: {value}" for key, value in message.headers.items())


FIELD_EXTRACTORS: dict[ConditionField, Callable[[Message], str]] = {
    ConditionField.FROM: lambda message: message.sender,
    ConditionField.TO: lambda message: message.recipient,
    ConditionField.SUBJECT: lambda message: message.subject,
    ConditionField.BODY: lambda message: message.body_snippet,
    ConditionField.HEADERS: joined_headers,
}


def _contains(field_value: str, condition: Condition) -> bool:
    return condition.value.lower() in field_value.lower()


def _contains_any(field_value: str, condition: Condition) -> bool:
    lowered = field_value.lower()
    return any(value.lower() in lowered for value in condition.values)


def _regex(field_value: str, condition: Condition) -> bool:
    pattern = _compile(condition.value)
    if pattern is None:
        return False
    return pattern.search(field_value) is not None


def _domain_in(field_value: str, condition: Condition) -> bool:
    return extract_domain(field_value) in condition.values


def _domain_not_in(field_value: str, condition: Condition) -> bool:
    return extract_domain(field_value) not in condition.values


OPERATORS: dict[ConditionOperator, Callable[[str, Condition], bool]] = {
    ConditionOperator.CONTAINS: _contains,
    ConditionOperator.CONTAINS_ANY: _contains_any,
    ConditionOperator.REGEX: _regex,
    ConditionOperator.DOMAIN_IN: _domain_in,
    ConditionOperator.DOMAIN_NOT_IN: _domain_not_in,
}


@lru_cache(maxsize=512)
def _compile(pattern: str) -> re.Pattern | None:
    try:
        return re.compile(pattern)
    except re.error:
        return None


def matches_condition(message: Message, condition: Condition) -> bool:
    extractor = FIELD_EXTRACTORS.get(condition.field)
    operator = OPERATORS.get(condition.operator)
    if extractor is None or operator is None:
        return False
    return operator(extractor(message) or "", condition)


def matches_rule(message: Message, rule: ClassificationRule) -> bool:
    """A rule fires only when every one of its conditions matches."""
    return all(matches_condition(message, condition) for condition in rule.conditions)
