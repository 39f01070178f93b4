"""Provisioners module for AWS resource management."""

from .base import BaseProvisioner, Resource, ProvisionPlan, ChangeType
from .parameter_group import ParameterGroupProvisioner
from .serverless_cache import (
    ServerlessCacheProvisioner,
    ServerlessCacheStatus,
    wait_serverless_cache_available,
    wait_serverless_cache_deleted,
)
from .auto_scaling_configuration import (
    AutoScalingConfigurationProvisioner,
    AutoScalingConfigurationStatus,
)

# Resource type -> provisioner class
PROVISIONERS = {
    ParameterGroupProvisioner.resource_type: ParameterGroupProvisioner,
    ServerlessCacheProvisioner.resource_type: ServerlessCacheProvisioner,
    AutoScalingConfigurationProvisioner.resource_type: AutoScalingConfigurationProvisioner,
}

__all__ = [
    'BaseProvisioner',
    'Resource',
    'ProvisionPlan',
    'ChangeType',
    'ParameterGroupProvisioner',
    'ServerlessCacheProvisioner',
    'ServerlessCacheStatus',
    'wait_serverless_cache_available',
    'wait_serverless_cache_deleted',
    'AutoScalingConfigurationProvisioner',
    'AutoScalingConfigurationStatus',
    'PROVISIONERS',
]
