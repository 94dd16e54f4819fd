"""Rule domain models."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class ConditionField(str, Enum):
    """Session/user attribute a condition tests."""

    # Session behavior
    CONCURRENT_STREAMS = "concurrent_streams"
    ACTIVE_SESSION_DISTANCE_KM = "active_session_distance_km"
    TRAVEL_SPEED_KMH = "travel_speed_kmh"
    UNIQUE_IPS_IN_WINDOW = "unique_ips_in_window"
    UNIQUE_DEVICES_IN_WINDOW = "unique_devices_in_window"
    INACTIVE_DAYS = "inactive_days"

    # Stream quality
    SOURCE_RESOLUTION = "source_resolution"
    OUTPUT_RESOLUTION = "output_resolution"
    IS_TRANSCODING = "is_transcoding"
    IS_TRANSCODE_DOWNGRADE = "is_transcode_downgrade"
    SOURCE_BITRATE_MBPS = "source_bitrate_mbps"

    # User attributes
    USER_ID = "user_id"
    TRUST_SCORE = "trust_score"
    ACCOUNT_AGE_DAYS = "account_age_days"

    # Device/client
    DEVICE_TYPE = "device_type"
    CLIENT_NAME = "client_name"
    PLATFORM = "platform"

    # Network/location
    IS_LOCAL_NETWORK = "is_local_network"
    COUNTRY = "country"
    IP_IN_RANGE = "ip_in_range"

    # Scope
    SERVER_ID = "server_id"
    LIBRARY_ID = "library_id"
    MEDIA_TYPE = "media_type"

    @classmethod
    def lookup(cls, value: "ConditionField | str") -> "ConditionField | None":
        """Resolve a field name, returning None for unknown names."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


class Operator(str, Enum):
    """Comparison operator."""

    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    NOT_IN = "not_in"


class TranscodingValue(str, Enum):
    """String values accepted by the is_transcoding condition."""

    VIDEO = "video"
    AUDIO = "audio"
    VIDEO_OR_AUDIO = "video_or_audio"
    NEITHER = "neither"


Scalar = str | int | float | bool | None


class Condition(BaseModel):
    """A single field/operator/value test."""

    model_config = {"frozen": True}

    # Unknown field names are kept as plain strings and fail closed at evaluation
    field: ConditionField | str = Field(..., description="Field under test")
    operator: Operator = Field(..., description="Comparison operator")
    value: Scalar | list[Scalar] = Field(default=None, description="Threshold value(s)")
    params: dict[str, Any] = Field(
        default_factory=dict,
        description="Evaluator parameters, e.g. window_hours or exclude_same_device",
    )

    @field_validator("field")
    @classmethod
    def _known_field_as_enum(cls, value: ConditionField | str) -> ConditionField | str:
        return ConditionField.lookup(value) or value

    @property
    def field_name(self) -> str:
        """Field name as a plain string."""
        if isinstance(self.field, ConditionField):
            return self.field.value
        return self.field


class ConditionGroup(BaseModel):
    """Conditions combined with OR."""

    model_config = {"frozen": True}

    conditions: list[Condition] = Field(default_factory=list)


class RuleConditions(BaseModel):
    """Condition groups combined with AND."""

    model_config = {"frozen": True}

    groups: list[ConditionGroup] = Field(default_factory=list)


class Action(BaseModel):
    """Action executed by the caller when a rule matches."""

    type: str = Field(..., description="Action type, e.g. 'create_violation' or 'notify'")
    config: dict[str, Any] = Field(default_factory=dict, description="Action settings")


class Rule(BaseModel):
    """Complete rule model."""

    id: str = Field(..., description="Rule unique identifier")
    name: str = Field(..., description="Rule name")
    is_active: bool = Field(default=True, description="Whether rule is active")
    server_id: str | None = Field(
        default=None,
        description="Restrict rule to one server; None means all servers",
    )
    conditions: RuleConditions | None = Field(
        default_factory=RuleConditions,
        description="Condition groups; None for legacy rules without conditions",
    )
    actions: list[Action] = Field(default_factory=list, description="Actions on match")

    def applies_to_server(self, server_id: str) -> bool:
        """Check if the rule is global or scoped to the given server."""
        return not self.server_id or self.server_id == server_id
