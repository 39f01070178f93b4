"""ElastiCache parameter group provisioner."""

from typing import List, Optional, Sequence

from botocore.exceptions import ClientError

from .base import BaseProvisioner, Resource
from ..reconcile import (
    EXCLUDED_RESET_NAME,
    RESERVED_MEMORY_PERCENT_NAME,
    Parameter,
    ParameterSet,
    ReconciliationResult,
    chunked,
    reconcile,
)
from ..utils.errors import error_code, error_message, is_not_found
from ..utils.logging import get_logger
from ..utils.retry import retry_when_error_code

logger = get_logger(__name__)

DEFAULT_DESCRIPTION = 'Managed by aws-converge'

# Families that predate reserved-memory-percent
FAMILIES_WITHOUT_RESERVED_MEMORY_PERCENT = frozenset({'redis2.6', 'redis2.8'})


def is_reserved_memory_reset_rejection(error: Exception) -> bool:
    """Check whether a reset failed because reserved-memory cannot be reset.

    Commercial regions answer with InvalidParameterValue; GovCloud fails with
    an InternalFailure that only surfaces after the SDK's own retries.
    """
    code = error_code(error)
    if code == 'InvalidParameterValue':
        return f"Parameter {EXCLUDED_RESET_NAME} doesn't exist" in error_message(error)
    return code == 'InternalFailure'


class ParameterGroupProvisioner(BaseProvisioner):
    """Provisioner for ElastiCache cache parameter groups."""

    resource_type = 'AWS::ElastiCache::ParameterGroup'
    service_name = 'elasticache'

    STATE_RETRY_TIMEOUT = 30.0
    DELETE_RETRY_TIMEOUT = 180.0

    def get_current_state(self, name: str) -> Optional[Resource]:
        """Fetch the parameter group and its user-set parameters.

        Args:
            name: Parameter group name

        Returns:
            Current resource state or None if doesn't exist
        """
        name = name.lower()
        try:
            response = self.client.describe_cache_parameter_groups(CacheParameterGroupName=name)
        except ClientError as e:
            if is_not_found(e):
                return None
            raise

        groups = response.get('CacheParameterGroups', [])
        if not groups:
            return None
        group = groups[0]

        parameters = self._describe_user_parameters(name)

        return Resource(
            id=name,
            type=self.resource_type,
            physical_id=group['CacheParameterGroupName'],
            properties={
                'Name': group['CacheParameterGroupName'],
                'Family': group.get('CacheParameterGroupFamily'),
                'Description': group.get('Description'),
                'ARN': group.get('ARN'),
                'Parameters': [{'name': p.name, 'value': p.value} for p in parameters],
            },
        )

    def create(self, resource: Resource) -> Resource:
        """Create the parameter group, then apply its parameters.

        Args:
            resource: Resource definition

        Returns:
            Resource with physical_id set
        """
        name = resource.id.lower()
        family = resource.properties['Family']
        description = resource.properties.get('Description') or DEFAULT_DESCRIPTION

        logger.info(f"Creating ElastiCache parameter group {name} ({family})")
        response = self.client.create_cache_parameter_group(
            CacheParameterGroupName=name,
            CacheParameterGroupFamily=family,
            Description=description,
        )

        parameters = ParameterSet.from_dicts(resource.properties.get('Parameters') or [])
        if parameters:
            self._modify(name, list(parameters))

        resource.physical_id = name
        resource.properties['Name'] = name
        resource.properties['Description'] = description
        resource.properties['ARN'] = response.get('CacheParameterGroup', {}).get('ARN')
        return resource

    def update(self, desired: Resource, current: Resource) -> Resource:
        """Converge the group's parameters to the desired set.

        Args:
            desired: Resource definition with the desired parameters
            current: Current state as read from AWS

        Returns:
            Updated resource
        """
        name = current.physical_id or desired.id.lower()
        result = self.reconcile(desired, current)

        if result.to_remove:
            self._reset_parameters(name, current.properties.get('Family', ''), result)

        if result.to_add_or_update:
            logger.info(f"Setting {len(result.to_add_or_update)} parameter(s) on {name}")
            self._modify(name, result.to_add_or_update)

        desired.physical_id = name
        desired.properties['ARN'] = current.properties.get('ARN')
        return desired

    def destroy(self, resource: Resource) -> None:
        """Delete the parameter group.

        Args:
            resource: Parameter group resource to destroy
        """
        name = (resource.physical_id or resource.id).lower()
        logger.info(f"Deleting ElastiCache parameter group {name}")

        try:
            retry_when_error_code(
                lambda: self.client.delete_cache_parameter_group(CacheParameterGroupName=name),
                ['InvalidCacheParameterGroupState'],
                timeout=self.DELETE_RETRY_TIMEOUT,
            )
        except ClientError as e:
            if not is_not_found(e):
                raise

    @staticmethod
    def reconcile(desired: Resource, current: Optional[Resource]) -> ReconciliationResult:
        """Diff the desired parameters against the current ones."""
        old = ParameterSet.from_dicts(current.properties.get('Parameters') or []) if current else None
        new = ParameterSet.from_dicts(desired.properties.get('Parameters') or [])
        return reconcile(old, new)

    def _replacement_reasons(self, desired: Resource, current: Resource) -> list:
        reasons = self._changed(desired, current, ['Family'])
        description = desired.properties.get('Description') or DEFAULT_DESCRIPTION
        if description != current.properties.get('Description'):
            reasons.append('Description')
        return reasons

    def _update_reasons(self, desired: Resource, current: Resource) -> list:
        result = self.reconcile(desired, current)
        return ['Parameters'] if result.has_changes else []

    def _describe_user_parameters(self, name: str) -> ParameterSet:
        """Parameters set by the user; engine defaults are left out."""
        kwargs = {'CacheParameterGroupName': name, 'Source': 'user'}
        items = []

        while True:
            response = self.client.describe_cache_parameters(**kwargs)
            items.extend(response.get('Parameters', []))

            marker = response.get('Marker')
            if not marker:
                break
            kwargs['Marker'] = marker

        return ParameterSet.from_api(items)

    def _reset_parameters(self, name: str, family: str, result: ReconciliationResult) -> None:
        logger.info(f"Resetting {len(result.to_remove)} parameter(s) on {name}")

        resets_reserved_memory = result.removes(EXCLUDED_RESET_NAME)

        for batch in chunked(result.to_remove):
            try:
                self._reset(name, batch)
            except ClientError as e:
                in_batch = resets_reserved_memory and any(p.name == EXCLUDED_RESET_NAME for p in batch)
                if not in_batch or not is_reserved_memory_reset_rejection(e):
                    raise

                logger.warning(f"Cannot reset {EXCLUDED_RESET_NAME} on {name}: {error_message(e)}")
                self._reset_reserved_memory(name, family, result)

                remaining = [p for p in batch if p.name != EXCLUDED_RESET_NAME]
                if remaining:
                    self._reset(name, remaining)

    def _reset_reserved_memory(self, name: str, family: str, result: ReconciliationResult) -> None:
        """Clear reserved-memory by way of reserved-memory-percent.

        Setting reserved-memory-percent makes the service drop reserved-memory;
        resetting the percentage afterwards leaves both at their defaults.
        """
        if result.sets(RESERVED_MEMORY_PERCENT_NAME):
            return

        if family in FAMILIES_WITHOUT_RESERVED_MEMORY_PERCENT:
            logger.warning(
                f"Cannot reset ElastiCache parameter group ({name}) "
                f"{EXCLUDED_RESET_NAME} parameter with {family} family"
            )
            return

        workaround = [Parameter(RESERVED_MEMORY_PERCENT_NAME, '0')]
        self._modify(name, workaround)
        self._reset(name, workaround)

    def _modify(self, name: str, parameters: Sequence[Parameter]) -> None:
        for batch in chunked(parameters):
            retry_when_error_code(
                lambda batch=batch: self.client.modify_cache_parameter_group(
                    CacheParameterGroupName=name,
                    ParameterNameValues=[p.to_api() for p in batch],
                ),
                ['InvalidCacheParameterGroupState'],
                timeout=self.STATE_RETRY_TIMEOUT,
            )

    def _reset(self, name: str, parameters: List[Parameter]) -> None:
        retry_when_error_code(
            lambda: self.client.reset_cache_parameter_group(
                CacheParameterGroupName=name,
                ResetAllParameters=False,
                ParameterNameValues=[p.to_api() for p in parameters],
            ),
            ['InvalidCacheParameterGroupState'],
            timeout=self.STATE_RETRY_TIMEOUT,
        )
