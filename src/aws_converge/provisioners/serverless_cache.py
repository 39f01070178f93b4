"""ElastiCache serverless cache provisioner."""

import threading
from enum import Enum
from typing import Any, Dict, Optional

from botocore.exceptions import ClientError

from .base import BaseProvisioner, Resource
from ..utils.errors import ProvisioningError, is_not_found
from ..utils.logging import get_logger
from ..utils.retry import retry_when_error_code
from ..waiter import RefreshFunc, coerce_status, wait_for_available, wait_for_deleted

logger = get_logger(__name__)


class ServerlessCacheStatus(Enum):
    """Lifecycle states reported by DescribeServerlessCaches."""
    AVAILABLE = 'available'
    CREATING = 'creating'
    DELETING = 'deleting'
    MODIFYING = 'modifying'


PENDING_STATUSES = frozenset({
    ServerlessCacheStatus.CREATING,
    ServerlessCacheStatus.DELETING,
    ServerlessCacheStatus.MODIFYING,
})

ENGINE_REDIS = 'redis'
ENGINE_VALKEY = 'valkey'

# Fields accepted by CreateServerlessCache
CREATE_FIELDS = (
    'Description',
    'MajorEngineVersion',
    'CacheUsageLimits',
    'KmsKeyId',
    'SecurityGroupIds',
    'SnapshotArnsToRestore',
    'UserGroupId',
    'SubnetIds',
    'SnapshotRetentionLimit',
    'DailySnapshotTime',
)

# Fields ModifyServerlessCache can change in place
MODIFIABLE_FIELDS = (
    'Description',
    'CacheUsageLimits',
    'DailySnapshotTime',
    'SnapshotRetentionLimit',
    'SecurityGroupIds',
    'UserGroupId',
)

# Fields fixed at creation
REPLACEMENT_FIELDS = ('KmsKeyId', 'SubnetIds', 'MajorEngineVersion')

# Fields read back from DescribeServerlessCaches
READ_FIELDS = CREATE_FIELDS + (
    'ServerlessCacheName',
    'Engine',
    'FullEngineVersion',
    'Status',
    'ARN',
    'Endpoint',
    'ReaderEndpoint',
    'CreateTime',
)


def find_serverless_cache(client, name: str) -> Optional[Dict[str, Any]]:
    """Describe a single serverless cache by name.

    Returns:
        The cache description, or None if it does not exist

    Raises:
        ProvisioningError: If the name matches more than one cache
    """
    kwargs = {'ServerlessCacheName': name}
    caches = []

    try:
        while True:
            response = client.describe_serverless_caches(**kwargs)
            caches.extend(response.get('ServerlessCaches', []))

            token = response.get('NextToken')
            if not token:
                break
            kwargs['NextToken'] = token
    except ClientError as e:
        if is_not_found(e):
            return None
        raise

    if not caches:
        return None
    if len(caches) > 1:
        raise ProvisioningError(f"Expected one serverless cache named {name}, found {len(caches)}")
    return caches[0]


def status_serverless_cache(client, name: str) -> RefreshFunc:
    def refresh():
        cache = find_serverless_cache(client, name)
        if cache is None:
            return None, None
        return cache, coerce_status(ServerlessCacheStatus, cache.get('Status'))
    return refresh


def wait_serverless_cache_available(
    client,
    name: str,
    timeout: float,
    poll_interval: float = 10.0,
    delay: float = 30.0,
    cancel_event: Optional[threading.Event] = None,
) -> Dict[str, Any]:
    return wait_for_available(
        status_serverless_cache(client, name),
        timeout,
        target={ServerlessCacheStatus.AVAILABLE},
        pending=PENDING_STATUSES,
        poll_interval=poll_interval,
        delay=delay,
        cancel_event=cancel_event,
        resource_id=name,
    )


def wait_serverless_cache_deleted(
    client,
    name: str,
    timeout: float,
    poll_interval: float = 10.0,
    delay: float = 30.0,
    cancel_event: Optional[threading.Event] = None,
) -> None:
    wait_for_deleted(
        status_serverless_cache(client, name),
        timeout,
        pending=PENDING_STATUSES,
        poll_interval=poll_interval,
        delay=delay,
        cancel_event=cancel_event,
        resource_id=name,
    )


class ServerlessCacheProvisioner(BaseProvisioner):
    """Provisioner for ElastiCache serverless caches."""

    resource_type = 'AWS::ElastiCache::ServerlessCache'
    service_name = 'elasticache'

    CREATE_TIMEOUT = 40 * 60.0
    UPDATE_TIMEOUT = 80 * 60.0
    DELETE_TIMEOUT = 40 * 60.0
    DELETE_RETRY_TIMEOUT = 5 * 60.0
    POLL_INTERVAL = 10.0
    POLL_DELAY = 30.0

    def get_current_state(self, name: str) -> Optional[Resource]:
        """Fetch current serverless cache state from AWS.

        Args:
            name: Serverless cache name

        Returns:
            Current resource state or None if doesn't exist
        """
        cache = find_serverless_cache(self.client, name)
        if cache is None:
            return None
        return self._to_resource(cache)

    def create(self, resource: Resource) -> Resource:
        """Create the cache and wait until it is available."""
        name = resource.id
        params = {
            'ServerlessCacheName': name,
            'Engine': resource.properties['Engine'],
        }
        for key in CREATE_FIELDS:
            value = resource.properties.get(key)
            if value is not None:
                params[key] = value

        logger.info(f"Creating ElastiCache serverless cache {name}")
        self.client.create_serverless_cache(**params)

        cache = wait_serverless_cache_available(
            self.client,
            name,
            self.CREATE_TIMEOUT,
            poll_interval=self.POLL_INTERVAL,
            delay=self.POLL_DELAY,
            cancel_event=self.cancel_event,
        )
        return self._to_resource(cache, declared=resource)

    def update(self, desired: Resource, current: Resource) -> Resource:
        """Modify the cache in place and wait until it is available again."""
        name = current.physical_id or desired.id
        changed = self._update_reasons(desired, current)
        if not changed:
            return current

        params: Dict[str, Any] = {'ServerlessCacheName': name}
        for key in MODIFIABLE_FIELDS:
            if key in changed and desired.properties.get(key) is not None:
                params[key] = desired.properties[key]

        if 'UserGroupId' in changed and desired.properties.get('UserGroupId') is None:
            params['RemoveUserGroup'] = True

        # Engine fields are only accepted for a cross-engine upgrade, and the
        # major version must accompany the engine or nothing is modified.
        if 'Engine' in changed:
            params['Engine'] = desired.properties['Engine']
            params['MajorEngineVersion'] = (
                desired.properties.get('MajorEngineVersion')
                or current.properties.get('MajorEngineVersion')
            )

        logger.info(f"Modifying ElastiCache serverless cache {name}: {', '.join(changed)}")
        self.client.modify_serverless_cache(**params)

        cache = wait_serverless_cache_available(
            self.client,
            name,
            self.UPDATE_TIMEOUT,
            poll_interval=self.POLL_INTERVAL,
            delay=self.POLL_DELAY,
            cancel_event=self.cancel_event,
        )
        return self._to_resource(cache, declared=desired)

    def destroy(self, resource: Resource) -> None:
        """Delete the cache and wait until it is gone."""
        name = resource.physical_id or resource.id
        logger.info(f"Deleting ElastiCache serverless cache {name}")

        try:
            retry_when_error_code(
                lambda: self.client.delete_serverless_cache(ServerlessCacheName=name),
                ['DependencyViolation'],
                timeout=self.DELETE_RETRY_TIMEOUT,
            )
        except ClientError as e:
            if is_not_found(e):
                return
            raise

        wait_serverless_cache_deleted(
            self.client,
            name,
            self.DELETE_TIMEOUT,
            poll_interval=self.POLL_INTERVAL,
            delay=self.POLL_DELAY,
            cancel_event=self.cancel_event,
        )

    def _replacement_reasons(self, desired: Resource, current: Resource) -> list:
        reasons = self._changed(desired, current, REPLACEMENT_FIELDS)
        if self._engine_change(desired, current) and not self._is_valkey_upgrade(desired, current):
            reasons.append('Engine')
        return reasons

    def _update_reasons(self, desired: Resource, current: Resource) -> list:
        reasons = self._changed(desired, current, MODIFIABLE_FIELDS)
        if desired.properties.get('UserGroupId') is None and current.properties.get('UserGroupId'):
            reasons.append('UserGroupId')
        if self._engine_change(desired, current):
            reasons.append('Engine')
        return reasons

    @staticmethod
    def _engine_change(desired: Resource, current: Resource) -> bool:
        return desired.properties.get('Engine') != current.properties.get('Engine')

    @staticmethod
    def _is_valkey_upgrade(desired: Resource, current: Resource) -> bool:
        """Redis to Valkey is the only engine change supported in place."""
        return (
            current.properties.get('Engine') == ENGINE_REDIS
            and desired.properties.get('Engine') == ENGINE_VALKEY
        )

    def _to_resource(self, cache: Dict[str, Any], declared: Optional[Resource] = None) -> Resource:
        properties = {key: cache[key] for key in READ_FIELDS if key in cache}

        # The API does not echo restore ARNs; keep what was declared
        if declared is not None and declared.properties.get('SnapshotArnsToRestore'):
            properties['SnapshotArnsToRestore'] = declared.properties['SnapshotArnsToRestore']

        return Resource(
            id=cache['ServerlessCacheName'],
            type=self.resource_type,
            physical_id=cache['ServerlessCacheName'],
            properties=properties,
        )
