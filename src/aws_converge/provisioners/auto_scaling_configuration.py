"""App Runner auto scaling configuration version provisioner.

Each create call registers a new revision under the configuration name.
Revisions are immutable: any change to the sizing settings is a
replacement, and deleting a revision marks it inactive.
"""

from enum import Enum
from typing import Any, Dict, Optional

from botocore.exceptions import ClientError

from .base import BaseProvisioner, Resource
from ..utils.errors import ProvisioningError, is_not_found
from ..utils.logging import get_logger
from ..waiter import RefreshFunc, coerce_status, wait_for_available, wait_for_deleted

logger = get_logger(__name__)


class AutoScalingConfigurationStatus(Enum):
    ACTIVE = 'active'
    INACTIVE = 'inactive'


DEFAULT_MAX_CONCURRENCY = 100
DEFAULT_MAX_SIZE = 25
DEFAULT_MIN_SIZE = 1

SIZING_FIELDS = ('MaxConcurrency', 'MaxSize', 'MinSize')

READ_FIELDS = SIZING_FIELDS + (
    'AutoScalingConfigurationArn',
    'AutoScalingConfigurationName',
    'AutoScalingConfigurationRevision',
    'Latest',
    'Status',
    'HasAssociatedService',
    'IsDefault',
    'CreatedAt',
)


def find_auto_scaling_configuration_by_arn(client, arn: str) -> Optional[Dict[str, Any]]:
    """Describe a revision by ARN; inactive revisions count as gone."""
    try:
        response = client.describe_auto_scaling_configuration(AutoScalingConfigurationArn=arn)
    except ClientError as e:
        if is_not_found(e):
            return None
        raise

    configuration = response.get('AutoScalingConfiguration')
    if not configuration:
        return None
    if configuration.get('Status') == AutoScalingConfigurationStatus.INACTIVE.value:
        return None
    return configuration


def find_latest_auto_scaling_configuration_arn(client, name: str) -> Optional[str]:
    """ARN of the latest active revision registered under ``name``."""
    kwargs = {'AutoScalingConfigurationName': name, 'LatestOnly': True}

    while True:
        response = client.list_auto_scaling_configurations(**kwargs)
        for summary in response.get('AutoScalingConfigurationSummaryList', []):
            if summary.get('AutoScalingConfigurationName') != name:
                continue
            if summary.get('Status') == AutoScalingConfigurationStatus.INACTIVE.value:
                continue
            return summary['AutoScalingConfigurationArn']

        token = response.get('NextToken')
        if not token:
            return None
        kwargs['NextToken'] = token


def status_auto_scaling_configuration(client, arn: str) -> RefreshFunc:
    def refresh():
        configuration = find_auto_scaling_configuration_by_arn(client, arn)
        if configuration is None:
            return None, None
        return configuration, coerce_status(AutoScalingConfigurationStatus, configuration.get('Status'))
    return refresh


class AutoScalingConfigurationProvisioner(BaseProvisioner):
    """Provisioner for App Runner auto scaling configuration versions."""

    resource_type = 'AWS::AppRunner::AutoScalingConfiguration'
    service_name = 'apprunner'

    CREATE_TIMEOUT = 2 * 60.0
    DELETE_TIMEOUT = 2 * 60.0
    POLL_INTERVAL = 2.0
    # The new revision can take a moment to become visible
    NOT_FOUND_CHECKS = 3

    def get_current_state(self, name: str) -> Optional[Resource]:
        """Fetch the latest active revision.

        Args:
            name: Configuration name, or the ARN of a specific revision

        Returns:
            Current resource state or None if doesn't exist
        """
        arn = name if name.startswith('arn:') else find_latest_auto_scaling_configuration_arn(self.client, name)
        if arn is None:
            return None

        configuration = find_auto_scaling_configuration_by_arn(self.client, arn)
        if configuration is None:
            return None
        return self._to_resource(configuration)

    def create(self, resource: Resource) -> Resource:
        """Register a new revision and wait until it is active."""
        name = resource.id
        response = self.client.create_auto_scaling_configuration(
            AutoScalingConfigurationName=name,
            MaxConcurrency=resource.properties.get('MaxConcurrency') or DEFAULT_MAX_CONCURRENCY,
            MaxSize=resource.properties.get('MaxSize') or DEFAULT_MAX_SIZE,
            MinSize=resource.properties.get('MinSize') or DEFAULT_MIN_SIZE,
        )
        arn = response['AutoScalingConfiguration']['AutoScalingConfigurationArn']
        logger.info(f"Created App Runner auto scaling configuration {arn}")

        configuration = wait_for_available(
            status_auto_scaling_configuration(self.client, arn),
            self.CREATE_TIMEOUT,
            target={AutoScalingConfigurationStatus.ACTIVE},
            pending=(),
            poll_interval=self.POLL_INTERVAL,
            not_found_checks=self.NOT_FOUND_CHECKS,
            cancel_event=self.cancel_event,
            resource_id=arn,
        )
        return self._to_resource(configuration)

    def update(self, desired: Resource, current: Resource) -> Resource:
        raise ProvisioningError(
            f"App Runner auto scaling configuration {desired.id} cannot be updated in place; "
            f"changes require a new revision"
        )

    def destroy(self, resource: Resource) -> None:
        """Delete the revision and wait until it is inactive."""
        arn = resource.physical_id
        if not arn:
            arn = find_latest_auto_scaling_configuration_arn(self.client, resource.id)
            if arn is None:
                return

        logger.info(f"Deleting App Runner auto scaling configuration {arn}")
        try:
            self.client.delete_auto_scaling_configuration(AutoScalingConfigurationArn=arn)
        except ClientError as e:
            if is_not_found(e):
                return
            raise

        wait_for_deleted(
            status_auto_scaling_configuration(self.client, arn),
            self.DELETE_TIMEOUT,
            pending={AutoScalingConfigurationStatus.ACTIVE},
            poll_interval=self.POLL_INTERVAL,
            cancel_event=self.cancel_event,
            resource_id=arn,
        )

    def _replacement_reasons(self, desired: Resource, current: Resource) -> list:
        defaults = {
            'MaxConcurrency': DEFAULT_MAX_CONCURRENCY,
            'MaxSize': DEFAULT_MAX_SIZE,
            'MinSize': DEFAULT_MIN_SIZE,
        }
        return [
            key for key in SIZING_FIELDS
            if (desired.properties.get(key) or defaults[key]) != current.properties.get(key)
        ]

    def _to_resource(self, configuration: Dict[str, Any]) -> Resource:
        return Resource(
            id=configuration['AutoScalingConfigurationName'],
            type=self.resource_type,
            physical_id=configuration['AutoScalingConfigurationArn'],
            properties={key: configuration[key] for key in READ_FIELDS if key in configuration},
        )
