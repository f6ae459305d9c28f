"""
Rule data models.
"""

from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from shared.config import get_settings
from shared.errors import ConfigurationError


class MatchType(str, Enum):
    """Combining policy over a list of boolean results."""
    ALL = "all"
    ANY = "any"
    NONE = "none"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if member.value == normalized:
                    return member
        return None

    def combine(self, results) -> bool:
        """Fold boolean results. Short-circuits on the deciding value."""
        if self is MatchType.ALL:
            return all(results)
        if self is MatchType.NONE:
            return not any(results)
        return any(results)


@dataclass(frozen=True)
class Scalar:
    """Single expected value."""
    value: Any = ""


@dataclass(frozen=True)
class ValueList:
    """Several expected values folded with ``match_type``."""
    values: Tuple[Any, ...] = ()
    match_type: MatchType = MatchType.ANY


ConditionValue = Union[Scalar, ValueList]


def normalize_operator(operator: Any) -> str:
    if not isinstance(operator, str):
        return "="
    return operator.strip().upper()


@dataclass(frozen=True)
class Condition:
    """Condition definition."""
    type: str
    operator: str = "="
    value: ConditionValue = field(default_factory=Scalar)
    name: Optional[str] = None
    has_value: bool = False
    options: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "operator", normalize_operator(self.operator))

    @property
    def match_type(self) -> Optional[MatchType]:
        if isinstance(self.value, ValueList):
            return self.value.match_type
        return None

    def get(self, key: str, default: Any = None) -> Any:
        """Read an extra configuration key."""
        return self.options.get(key, default)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "Condition":
        model = _validate(ConditionConfig, config, "condition")
        return model.to_condition()

    def to_config(self) -> Dict[str, Any]:
        config: Dict[str, Any] = dict(self.options)
        config["type"] = self.type
        config["operator"] = self.operator
        if self.name is not None:
            config["name"] = self.name
        if isinstance(self.value, ValueList):
            config["value"] = list(self.value.values)
            config["match_type"] = self.value.match_type.value
        elif self.has_value:
            config["value"] = self.value.value
        return config


@dataclass(frozen=True)
class Action:
    """Action definition."""
    type: str
    args: Mapping[str, Any] = field(default_factory=dict)
    locked: bool = False

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "Action":
        model = _validate(ActionConfig, config, "action")
        return model.to_action()

    def to_config(self) -> Dict[str, Any]:
        config: Dict[str, Any] = dict(self.args)
        config["type"] = self.type
        if self.locked:
            config["locked"] = True
        return config


@dataclass(frozen=True)
class RuleMetadata:
    """Registration metadata attached to a rule."""
    required_packages: Tuple[str, ...] = ()
    event_name: Optional[str] = None
    event_priority: Optional[int] = None
    type: Optional[str] = None


@dataclass(frozen=True)
class Rule:
    """A set of conditions, a match policy and the actions to run."""
    id: str
    title: str = ""
    enabled: bool = True
    match_type: MatchType = MatchType.ALL
    order: int = 10
    conditions: Tuple[Condition, ...] = ()
    actions: Tuple[Action, ...] = ()
    metadata: RuleMetadata = field(default_factory=RuleMetadata)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "Rule":
        """Build a rule from declarative configuration data."""
        model = _validate(RuleConfig, config, "rule")
        return model.to_rule()

    def with_metadata(self, **changes: Any) -> "Rule":
        values = {
            "required_packages": self.metadata.required_packages,
            "event_name": self.metadata.event_name,
            "event_priority": self.metadata.event_priority,
            "type": self.metadata.type,
        }
        values.update(changes)
        values["required_packages"] = tuple(values["required_packages"] or ())
        return Rule(
            id=self.id,
            title=self.title,
            enabled=self.enabled,
            match_type=self.match_type,
            order=self.order,
            conditions=self.conditions,
            actions=self.actions,
            metadata=RuleMetadata(**values),
        )


@dataclass
class ExecutionResult:
    """Outcome of one rule pass."""
    rules_processed: int = 0
    rules_skipped: int = 0
    rules_matched: int = 0
    actions_executed: int = 0
    matched_rule_ids: List[str] = field(default_factory=list)
    context: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


# Declarative configuration schema

class ConditionConfig(BaseModel):
    """Declarative condition configuration."""
    model_config = ConfigDict(extra="allow")

    type: str = Field(..., min_length=1, description="Condition type")
    operator: str = Field("=", description="Comparison operator")
    value: Any = Field(None, description="Expected scalar or list of scalars")
    match_type: Optional[MatchType] = Field(None, description="Policy for list values")
    name: Optional[str] = Field(None, description="Field name for name-based conditions")

    @field_validator("type")
    @classmethod
    def _strip_type(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("condition type must not be blank")
        return value

    def to_condition(self) -> Condition:
        has_value = "value" in self.model_fields_set
        if isinstance(self.value, (list, tuple)):
            value: ConditionValue = ValueList(
                values=tuple(self.value),
                match_type=self.match_type or MatchType.ANY,
            )
        else:
            value = Scalar(self.value if has_value and self.value is not None else "")
        return Condition(
            type=self.type,
            operator=self.operator,
            value=value,
            name=self.name,
            has_value=has_value,
            options=dict(self.model_extra or {}),
        )


class ActionConfig(BaseModel):
    """Declarative action configuration."""
    model_config = ConfigDict(extra="allow")

    type: str = Field(..., min_length=1, description="Action type")
    args: Optional[Dict[str, Any]] = Field(None, description="Action arguments")
    locked: bool = Field(False, description="Skip later actions of the same type")

    @model_validator(mode="before")
    @classmethod
    def _lock_alias(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and "_locked" in data:
            data = dict(data)
            flag = data.pop("_locked")
            data["locked"] = bool(data.get("locked")) or bool(flag)
        return data

    def to_action(self) -> Action:
        extra = dict(self.model_extra or {})
        args = dict(self.args) if self.args is not None else extra
        return Action(type=self.type.strip(), args=args, locked=self.locked)


class RuleMetadataConfig(BaseModel):
    """Registration metadata carried in a rule configuration."""
    model_config = ConfigDict(extra="ignore")

    required_packages: List[str] = Field(default_factory=list)
    event_name: Optional[str] = Field(None, min_length=1)
    event_priority: Optional[int] = None
    type: Optional[str] = None

    @field_validator("required_packages", mode="before")
    @classmethod
    def _single_package(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    def to_metadata(self) -> RuleMetadata:
        return RuleMetadata(
            required_packages=tuple(self.required_packages),
            event_name=self.event_name,
            event_priority=self.event_priority,
            type=self.type,
        )


class RuleConfig(BaseModel):
    """Declarative rule configuration."""

    id: str = Field(..., min_length=1, description="Rule ID")
    title: str = Field("", description="Rule title")
    enabled: bool = Field(True, description="Whether rule is enabled")
    match_type: MatchType = Field(MatchType.ALL, description="Condition combining policy")
    order: int = Field(default_factory=lambda: get_settings().default_rule_order, ge=0, le=999)
    conditions: List[ConditionConfig] = Field(default_factory=list)
    actions: List[ActionConfig] = Field(default_factory=list)
    metadata: RuleMetadataConfig = Field(default_factory=RuleMetadataConfig)

    def to_rule(self) -> Rule:
        return Rule(
            id=self.id,
            title=self.title,
            enabled=self.enabled,
            match_type=self.match_type,
            order=self.order,
            conditions=tuple(c.to_condition() for c in self.conditions),
            actions=tuple(a.to_action() for a in self.actions),
            metadata=self.metadata.to_metadata(),
        )


def _validate(model_cls, config: Mapping[str, Any], what: str):
    if isinstance(config, BaseModel):
        config = config.model_dump()
    if not isinstance(config, Mapping):
        raise ConfigurationError(f"Invalid {what} configuration", {"config": repr(config)})
    try:
        return model_cls.model_validate(dict(config))
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid {what} configuration",
            {"errors": e.errors(include_url=False, include_context=False)}
        ) from e
