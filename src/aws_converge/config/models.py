"""Pydantic models for the desired-state manifest."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from ..provisioners.base import Resource
from ..provisioners.parameter_group import DEFAULT_DESCRIPTION, ParameterGroupProvisioner
from ..provisioners.serverless_cache import ServerlessCacheProvisioner
from ..provisioners.auto_scaling_configuration import (
    AutoScalingConfigurationProvisioner,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_MAX_SIZE,
    DEFAULT_MIN_SIZE,
)
from ..reconcile import ParameterSet
from ..utils.errors import ValidationError as ParameterValidationError


def _stringify(v: Any) -> Any:
    """YAML turns yes/no and numbers into bool/int; parameter values are strings."""
    if isinstance(v, bool):
        return 'yes' if v else 'no'
    if isinstance(v, (int, float)):
        return str(v)
    return v


class ParameterConfig(BaseModel):
    """A single cache parameter."""

    name: str = Field(..., min_length=1)
    value: str

    @field_validator("name")
    @classmethod
    def lowercase_name(cls, v: str) -> str:
        return v.lower()

    @field_validator("value", mode="before")
    @classmethod
    def coerce_value(cls, v: Any) -> Any:
        return _stringify(v)


class ParameterGroupConfig(BaseModel):
    """ElastiCache parameter group."""

    name: str = Field(..., min_length=1, max_length=255)
    family: str = Field(..., min_length=1)
    description: str = Field(DEFAULT_DESCRIPTION, min_length=1)
    parameters: List[ParameterConfig] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def lowercase_name(cls, v: str) -> str:
        """ElastiCache stores parameter group names in lower case."""
        return v.lower()

    @model_validator(mode="after")
    def validate_parameters(self):
        """Reject a parameter declared twice with different values."""
        try:
            ParameterSet.from_dicts(p.model_dump() for p in self.parameters)
        except ParameterValidationError as e:
            raise ValueError(e.message)
        return self

    def to_resource(self) -> Resource:
        parameters = ParameterSet.from_dicts(p.model_dump() for p in self.parameters)
        return Resource(
            id=self.name,
            type=ParameterGroupProvisioner.resource_type,
            properties={
                'Name': self.name,
                'Family': self.family,
                'Description': self.description,
                'Parameters': [{'name': p.name, 'value': p.value} for p in parameters],
            },
        )


class DataStorageConfig(BaseModel):
    """Data storage limits for a serverless cache."""

    maximum: Optional[int] = Field(None, ge=1)
    minimum: Optional[int] = Field(None, ge=1)
    unit: str = Field("GB", pattern="^GB$")


class ECPUPerSecondConfig(BaseModel):
    """ElastiCache Processing Unit limits for a serverless cache."""

    maximum: Optional[int] = Field(None, ge=1000, le=15000000)
    minimum: Optional[int] = Field(None, ge=1000, le=15000000)


class CacheUsageLimitsConfig(BaseModel):
    """Usage limits for a serverless cache."""

    data_storage: Optional[DataStorageConfig] = None
    ecpu_per_second: Optional[ECPUPerSecondConfig] = None

    def to_api(self) -> Dict[str, Any]:
        limits: Dict[str, Any] = {}
        if self.data_storage:
            storage = {'Unit': self.data_storage.unit}
            if self.data_storage.maximum is not None:
                storage['Maximum'] = self.data_storage.maximum
            if self.data_storage.minimum is not None:
                storage['Minimum'] = self.data_storage.minimum
            limits['DataStorage'] = storage
        if self.ecpu_per_second:
            ecpu = {}
            if self.ecpu_per_second.maximum is not None:
                ecpu['Maximum'] = self.ecpu_per_second.maximum
            if self.ecpu_per_second.minimum is not None:
                ecpu['Minimum'] = self.ecpu_per_second.minimum
            limits['ECPUPerSecond'] = ecpu
        return limits


class ServerlessCacheConfig(BaseModel):
    """ElastiCache serverless cache."""

    name: str = Field(..., min_length=1, max_length=40)
    engine: str = Field(..., pattern="^(redis|valkey|memcached)$")
    major_engine_version: Optional[str] = None
    description: Optional[str] = None
    kms_key_id: Optional[str] = None
    security_group_ids: Optional[List[str]] = None
    subnet_ids: Optional[List[str]] = None
    snapshot_arns_to_restore: Optional[List[str]] = None
    snapshot_retention_limit: Optional[int] = Field(None, ge=0, le=35)
    daily_snapshot_time: Optional[str] = Field(None, pattern="^([01][0-9]|2[0-3]):[0-5][0-9]$")
    user_group_id: Optional[str] = None
    cache_usage_limits: Optional[CacheUsageLimitsConfig] = None

    @field_validator("major_engine_version", mode="before")
    @classmethod
    def coerce_version(cls, v: Any) -> Any:
        return _stringify(v)

    def to_resource(self) -> Resource:
        properties = {
            'ServerlessCacheName': self.name,
            'Engine': self.engine,
            'MajorEngineVersion': self.major_engine_version,
            'Description': self.description,
            'KmsKeyId': self.kms_key_id,
            'SecurityGroupIds': self.security_group_ids,
            'SubnetIds': self.subnet_ids,
            'SnapshotArnsToRestore': self.snapshot_arns_to_restore,
            'SnapshotRetentionLimit': self.snapshot_retention_limit,
            'DailySnapshotTime': self.daily_snapshot_time,
            'UserGroupId': self.user_group_id,
            'CacheUsageLimits': self.cache_usage_limits.to_api() if self.cache_usage_limits else None,
        }
        return Resource(
            id=self.name,
            type=ServerlessCacheProvisioner.resource_type,
            properties=properties,
        )


class AutoScalingConfigurationConfig(BaseModel):
    """App Runner auto scaling configuration version."""

    name: str = Field(..., pattern="^[A-Za-z0-9][A-Za-z0-9\\-_]{3,31}$")
    max_concurrency: int = Field(DEFAULT_MAX_CONCURRENCY, ge=1, le=200)
    max_size: int = Field(DEFAULT_MAX_SIZE, ge=1, le=25)
    min_size: int = Field(DEFAULT_MIN_SIZE, ge=1, le=25)

    @model_validator(mode="after")
    def validate_sizes(self):
        if self.min_size > self.max_size:
            raise ValueError(f"min_size ({self.min_size}) cannot exceed max_size ({self.max_size})")
        return self

    def to_resource(self) -> Resource:
        return Resource(
            id=self.name,
            type=AutoScalingConfigurationProvisioner.resource_type,
            properties={
                'AutoScalingConfigurationName': self.name,
                'MaxConcurrency': self.max_concurrency,
                'MaxSize': self.max_size,
                'MinSize': self.min_size,
            },
        )


class ManifestConfig(BaseModel):
    """Top-level manifest listing every managed resource."""

    region: Optional[str] = Field(None, pattern="^[a-z]{2}(-gov)?-[a-z]+-[0-9]$")
    parameter_groups: List[ParameterGroupConfig] = Field(default_factory=list)
    serverless_caches: List[ServerlessCacheConfig] = Field(default_factory=list)
    auto_scaling_configurations: List[AutoScalingConfigurationConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique_names(self):
        """Names must be unique within each resource kind."""
        for kind in ('parameter_groups', 'serverless_caches', 'auto_scaling_configurations'):
            seen = set()
            for item in getattr(self, kind):
                if item.name in seen:
                    raise ValueError(f"Duplicate name in {kind}: {item.name}")
                seen.add(item.name)
        return self

    def resources(self) -> List[Resource]:
        """Desired resources in creation order."""
        items = [*self.parameter_groups, *self.serverless_caches, *self.auto_scaling_configurations]
        return [item.to_resource() for item in items]
