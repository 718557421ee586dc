"""Configuration schema using Pydantic."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_RESET_AT_HOUR = 4
DEFAULT_IDLE_MINUTES = 60


class Base(BaseModel):
    """Base model that accepts both camelCase and snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Session reset policies
# ---------------------------------------------------------------------------


class NeverResetPolicy(Base):
    """Sessions never expire. ``at_hour`` is kept only as a placeholder."""

    model_config = ConfigDict(frozen=True)

    mode: Literal["never"] = "never"
    at_hour: int = Field(default=DEFAULT_RESET_AT_HOUR, ge=0, le=23)


class DailyResetPolicy(Base):
    """Sessions expire once per day at ``at_hour:00`` local time."""

    model_config = ConfigDict(frozen=True)

    mode: Literal["daily"] = "daily"
    at_hour: int = Field(default=DEFAULT_RESET_AT_HOUR, ge=0, le=23)


class IdleResetPolicy(Base):
    """Sessions expire ``idle_minutes`` after their last update."""

    model_config = ConfigDict(frozen=True)

    mode: Literal["idle"] = "idle"
    idle_minutes: float = DEFAULT_IDLE_MINUTES
    at_hour: int = Field(default=DEFAULT_RESET_AT_HOUR, ge=0, le=23)


SessionResetPolicy = Annotated[
    Union[NeverResetPolicy, DailyResetPolicy, IdleResetPolicy],
    Field(discriminator="mode"),
]

reset_policy_adapter: TypeAdapter[SessionResetPolicy] = TypeAdapter(SessionResetPolicy)

DEFAULT_RESET_POLICY = DailyResetPolicy(at_hour=DEFAULT_RESET_AT_HOUR)


def coerce_reset_policy(value: Any) -> SessionResetPolicy | None:
    """Validate one raw policy entry; malformed entries come back as None."""
    if value is None:
        return None
    if isinstance(value, (NeverResetPolicy, DailyResetPolicy, IdleResetPolicy)):
        return value
    try:
        return reset_policy_adapter.validate_python(value)
    except ValidationError:
        return None


class SessionConfig(Base):
    """Layered reset configuration: global policy plus per-session-type entries.

    Malformed policy entries are dropped rather than failing the whole config.
    """

    reset: SessionResetPolicy | None = None
    reset_by_type: dict[str, SessionResetPolicy] | None = None

    @field_validator("reset", mode="before")
    @classmethod
    def _drop_malformed_reset(cls, value: Any) -> SessionResetPolicy | None:
        return coerce_reset_policy(value)

    @field_validator("reset_by_type", mode="before")
    @classmethod
    def _drop_malformed_entries(cls, value: Any) -> dict[str, SessionResetPolicy] | None:
        if not isinstance(value, Mapping):
            return None
        policies = {str(kind): coerce_reset_policy(entry) for kind, entry in value.items()}
        return {kind: policy for kind, policy in policies.items() if policy is not None}


# ---------------------------------------------------------------------------
# Compaction and memory archive
# ---------------------------------------------------------------------------

CompactionMode = Literal["default", "safeguard", "drop-only"]


class CompactionConfig(Base):
    """How history is pruned once it no longer fits the model context."""

    mode: CompactionMode | None = None
    max_history_share: float | None = Field(default=None, gt=0, le=1)
    context_window_tokens: int | None = Field(default=None, gt=0)


class MemoryConfig(Base):
    """Archive location settings. ``timezone`` is an IANA name; None means system local."""

    timezone: str | None = None


class Config(Base):
    """Root configuration for sessionvault."""

    session: SessionConfig = Field(default_factory=SessionConfig)
    compaction: CompactionConfig = Field(default_factory=CompactionConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
