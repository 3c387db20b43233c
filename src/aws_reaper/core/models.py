"""Pydantic models for AWS Reaper configuration."""
from datetime import timedelta
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator

from .durations import parse_duration


def _coerce_duration(value: Any) -> Any:
    if isinstance(value, str):
        return parse_duration(value)
    return value


# Accepts "24h", "1h30m" as well as anything pydantic takes for timedelta
Duration = Annotated[timedelta, BeforeValidator(_coerce_duration)]


class ResourceKind(str, Enum):
    """Supported AWS resource kinds, in dependency resolution order."""
    CLOUDFORMATION = "cloudformations"
    AUTOSCALING_GROUP = "autoscaling_groups"
    INSTANCE = "instances"
    SECURITY_GROUP = "security_groups"
    VOLUME = "volumes"


class FilterMode(str, Enum):
    """How named filter groups combine."""
    ANY = "any"
    ALL = "all"


class ReaperAction(str, Enum):
    """What the reaper does to resources that reached Final."""
    STOP = "Stop"
    TERMINATE = "Terminate"


class FilterSpec(BaseModel):
    """A single named predicate and its string arguments."""
    function: str
    arguments: List[str] = Field(default_factory=list)


class ResourceConfig(BaseModel):
    """Per-kind configuration."""
    model_config = ConfigDict(use_enum_values=True)

    enabled: bool = False
    filter_groups: Dict[str, List[FilterSpec]] = Field(
        default_factory=dict,
        description="Named groups of filters; AND within a group",
    )
    mode: FilterMode = Field(
        default=FilterMode.ANY,
        description="'any' matches if one group matches, 'all' requires every group",
    )


class StatesConfig(BaseModel):
    """Durations that gate the reclamation state machine."""
    interval: Duration = Field(default=timedelta(hours=6), description="Time between reap cycles")
    first_state_duration: Duration = Field(default=timedelta(hours=12))
    second_state_duration: Duration = Field(default=timedelta(hours=12))
    third_state_duration: Duration = Field(default=timedelta(hours=12))
    final_state_duration: Duration = Field(default=timedelta(hours=12))


class HTTPConfig(BaseModel):
    """Action link settings."""
    token_secret: str = Field(default="Default secrets are not safe")
    api_url: str = Field(default="http://localhost")
    action_param: str = Field(default="action")
    token_param: str = Field(default="token")
    token_lifetime: Duration = Field(default=timedelta(hours=24))


class ReaperActionConfig(BaseModel):
    """Automatic stop/terminate of resources in Final."""
    model_config = ConfigDict(use_enum_values=True)

    enabled: bool = False
    mode: ReaperAction = ReaperAction.STOP


class ScalingConfig(BaseModel):
    """Scale-down/scale-up schedules read from a tag on instances and autoscaling groups."""
    enabled: bool = False
    tag: str = Field(default="REAPER_AUTOSCALER", description="Tag holding the cron schedule pair")


class NotificationsConfig(BaseModel):
    """Owner notification settings."""
    enabled: bool = True
    max_batch_size: int = Field(default=4500, gt=0, description="Bytes of text per batched event")
    reaper_action: ReaperActionConfig = Field(default_factory=ReaperActionConfig)


class ReaperConfig(BaseModel):
    """Main configuration model for AWS Reaper."""
    model_config = ConfigDict(use_enum_values=True)

    regions: List[str] = Field(default_factory=lambda: ["us-east-1"])
    dry_run: bool = Field(default=True, description="If true, never write tags or act on resources")
    state_tag: str = Field(default="REAPER", description="Tag holding the serialized reaper state")
    whitelist_tag: str = Field(default="REAPER_SPARE_ME")
    default_owner: Optional[str] = None
    default_email_host: Optional[str] = None

    states: StatesConfig = Field(default_factory=StatesConfig)
    http: HTTPConfig = Field(default_factory=HTTPConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
    scaling: ScalingConfig = Field(default_factory=ScalingConfig)

    instances: ResourceConfig = Field(default_factory=ResourceConfig)
    autoscaling_groups: ResourceConfig = Field(default_factory=ResourceConfig)
    cloudformations: ResourceConfig = Field(default_factory=ResourceConfig)
    security_groups: ResourceConfig = Field(default_factory=ResourceConfig)
    volumes: ResourceConfig = Field(default_factory=ResourceConfig)

    state_file: Optional[str] = None
    load_from_state_file: bool = False

    @model_validator(mode="after")
    def _check_filter_names(self) -> "ReaperConfig":
        from ..filters.registry import FILTER_REGISTRY

        for kind in ResourceKind:
            for group_name, group in self.resource_config(kind).filter_groups.items():
                unknown = [f.function for f in group if not FILTER_REGISTRY.has(kind, f.function)]
                if unknown:
                    raise ValueError(
                        f"unknown filter function(s) {unknown} in {kind.value} group '{group_name}'"
                    )
        return self

    def resource_config(self, kind: ResourceKind) -> ResourceConfig:
        return getattr(self, ResourceKind(kind).value)

    def enabled_kinds(self) -> List[ResourceKind]:
        return [kind for kind in ResourceKind if self.resource_config(kind).enabled]
