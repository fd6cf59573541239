"""
Priority and classification rule set.

The rule file is parsed and validated here, at the boundary, so the
classifier and priority engine can treat the resulting PriorityConfig as a
trusted read-only structure.
"""

import re
from enum import StrEnum
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from priority_inbox.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class PriorityConfigError(Exception):
    """Raised when a rule file cannot be read or fails validation."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path


class ConditionField(StrEnum):
    FROM = "from"
    TO = "to"
    SUBJECT = "subject"
    BODY = "body"
    HEADERS = "headers"


class ConditionOperator(StrEnum):
    CONTAINS = "contains"
    CONTAINS_ANY = "contains_any"
    REGEX = "regex"
    DOMAIN_IN = "domain_in"
    DOMAIN_NOT_IN = "domain_not_in"


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class Condition(_FrozenModel):
    field: ConditionField
    operator: ConditionOperator
    value: str = ""
    values: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_regex(self) -> "Condition":
        if self.operator == ConditionOperator.REGEX and self.value:
            try:
                re.compile(self.value)
            except re.error as exc:
                raise ValueError(f"invalid regex pattern {self.value!r}: {exc}") from exc
        return self


class ClassificationRule(_FrozenModel):
    description: str = ""
    conditions: list[Condition] = Field(default_factory=list)
    priority_boost: int = 0
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    tags: list[str] = Field(default_factory=list)


class TimeDecayConfig(_FrozenModel):
    enabled: bool = False
    max_age_hours: int = Field(default=72, ge=0)
    decay_rate: float = Field(default=0.1, ge=0.0)


class PriorityRules(_FrozenModel):
    vip_senders: list[str] = Field(default_factory=list)
    important_domains: list[str] = Field(default_factory=list)
    urgent_keywords: list[str] = Field(default_factory=list)
    ignore_senders: list[str] = Field(default_factory=list)
    ignore_subjects: list[str] = Field(default_factory=list)
    category_priority: dict[str, int] = Field(default_factory=dict)
    time_decay: TimeDecayConfig = Field(default_factory=TimeDecayConfig)

    @field_validator("category_priority")
    @classmethod
    def check_category_range(cls, value: dict[str, int]) -> dict[str, int]:
        for category, points in value.items():
            if points < -100 or points > 100:
                raise ValueError(
                    f"invalid priority for category {category}: {points} (must be between -100 and 100)"
                )
        return value


class PriorityConfig(_FrozenModel):
    version: str = "1.0"
    priority_rules: PriorityRules = Field(default_factory=PriorityRules)
    classification_rules: dict[str, ClassificationRule] = Field(default_factory=dict)

    def is_vip_sender(self, address: str) -> bool:
        address = _normalize(address)
        return any(_normalize(vip) == address for vip in self.priority_rules.vip_senders)

    def is_important_domain(self, domain: str) -> bool:
        domain = _normalize(domain)
        return bool(domain) and any(
            _normalize(candidate) == domain for candidate in self.priority_rules.important_domains
        )

    def find_urgent_keyword(self, text: str) -> str | None:
        """Return the first configured urgent keyword contained in text."""
        text_lower = (text or "").lower()
        for keyword in self.priority_rules.urgent_keywords:
            if keyword and keyword.lower() in text_lower:
                return keyword
        return None

    def should_ignore_sender(self, address: str) -> bool:
        address = (address or "").lower()
        return any(
            match_pattern(address, pattern.lower()) for pattern in self.priority_rules.ignore_senders
        )

    def should_ignore_subject(self, subject: str) -> bool:
        subject = (subject or "").lower()
        return any(
            keyword and keyword.lower() in subject for keyword in self.priority_rules.ignore_subjects
        )

    def category_priority(self, category: str) -> int:
        return self.priority_rules.category_priority.get(category, 0)


def _normalize(value: str | None) -> str:
    return (value or "").strip().lower()


def match_pattern(value: str, pattern: str) -> bool:
    """
    Match value against a glob where '*' is the only wildcard.

    Supports '*', 'prefix*', '*suffix', exact strings, and interior
    wildcards such as 'news*@example.com'. The whole value must match.
    """
    if pattern == "*":
        return True
    if "*" not in pattern:
        return value == pattern
    return _compile_glob(pattern).fullmatch(value) is not None


@lru_cache(maxsize=256)
def _compile_glob(pattern: str) -> re.Pattern:
    return re.compile(".*".join(re.escape(part) for part in pattern.split("*")), re.DOTALL)


def load_priority_config(path: str | Path) -> PriorityConfig:
    """
    Load and validate a JSON rule file.

    Raises:
        PriorityConfigError: when the file is unreadable or invalid
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        logger.error("Failed to read priority rules", path=str(path), error=str(exc))
        raise PriorityConfigError(f"failed to read config file: {exc}", path=str(path)) from exc

    try:
        config = PriorityConfig.model_validate_json(raw)
    except ValidationError as exc:
        logger.error(
            "Invalid priority rules", path=str(path), error_count=exc.error_count(), error=str(exc)
        )
        raise PriorityConfigError(f"invalid config: {exc}", path=str(path)) from exc

    logger.info(
        "Priority rules loaded",
        path=str(path),
        version=config.version,
        rules=len(config.classification_rules),
        vip_senders=len(config.priority_rules.vip_senders),
        time_decay_enabled=config.priority_rules.time_decay.enabled,
    )
    return config
