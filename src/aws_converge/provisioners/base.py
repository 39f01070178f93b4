"""Provisioner contract: plan a change against current state, then apply it."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from dataclasses import dataclass, field
from enum import Enum
import threading

import boto3
from botocore.config import Config


class ChangeType(Enum):
    """How a plan converges a resource."""
    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"
    NO_CHANGE = "no_change"


@dataclass
class Resource:
    """Represents a managed AWS resource.

    ``id`` is the resource name as declared; ``physical_id`` is what AWS
    identifies it by (a name or an ARN, depending on the service).
    """
    id: str
    type: str
    physical_id: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ProvisionPlan:
    """Planned change for one resource, with the property names that triggered it."""
    resource: Resource
    change_type: ChangeType
    current_state: Optional[Resource]
    reasons: list = field(default_factory=list)


class BaseProvisioner(ABC):
    """Converges one kind of resource through a single boto3 client.

    Subclasses declare which properties force a replacement and which can be
    updated in place; ``plan`` and ``provision`` are shared.
    """

    resource_type: str = ''
    service_name: str = ''

    def __init__(
        self,
        boto_session: boto3.Session,
        boto_config: Optional[Config] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.session = boto_session
        self.cancel_event = cancel_event
        self.client = boto_session.client(self.service_name, config=boto_config)

    def plan(self, desired: Resource, current: Optional[Resource]) -> ProvisionPlan:
        """Compare ``desired`` with ``current`` (None when absent).

        Replacement wins over update when both kinds of property changed.
        """
        if current is None:
            return ProvisionPlan(resource=desired, change_type=ChangeType.CREATE, current_state=None)

        reasons = self._replacement_reasons(desired, current)
        if reasons:
            return ProvisionPlan(
                resource=desired,
                change_type=ChangeType.REPLACE,
                current_state=current,
                reasons=reasons,
            )

        reasons = self._update_reasons(desired, current)
        if reasons:
            return ProvisionPlan(
                resource=desired,
                change_type=ChangeType.UPDATE,
                current_state=current,
                reasons=reasons,
            )

        return ProvisionPlan(resource=desired, change_type=ChangeType.NO_CHANGE, current_state=current)

    def provision(self, plan: ProvisionPlan) -> Resource:
        """Apply ``plan`` and return the resulting remote state.

        A replacement deletes the existing resource and waits for it to be
        gone before creating the new one.
        """
        if plan.change_type == ChangeType.CREATE:
            return self.create(plan.resource)
        if plan.change_type == ChangeType.UPDATE:
            return self.update(plan.resource, plan.current_state)
        if plan.change_type == ChangeType.REPLACE:
            self.destroy(plan.current_state)
            return self.create(plan.resource)
        if plan.change_type == ChangeType.DELETE:
            self.destroy(plan.current_state or plan.resource)
            return plan.resource
        return plan.current_state or plan.resource

    @abstractmethod
    def create(self, resource: Resource) -> Resource:
        """Create the resource and wait for it to settle."""

    @abstractmethod
    def update(self, desired: Resource, current: Resource) -> Resource:
        """Update the resource in place."""

    @abstractmethod
    def destroy(self, resource: Resource) -> None:
        """Delete the resource and wait until it is gone."""

    @abstractmethod
    def get_current_state(self, name: str) -> Optional[Resource]:
        """Describe ``name`` (a name, or an ARN where the service needs one).

        Returns None when the resource does not exist.
        """

    def _replacement_reasons(self, desired: Resource, current: Resource) -> list:
        """Names of changed properties that cannot be updated in place."""
        return []

    def _update_reasons(self, desired: Resource, current: Resource) -> list:
        """Names of changed properties that can be updated in place."""
        return []

    @staticmethod
    def _changed(desired: Resource, current: Resource, keys) -> list:
        """Keys declared in ``desired`` whose value differs from ``current``.

        Undeclared (None) desired values are left to the service default and
        never count as a change.
        """
        changed = []
        for key in keys:
            want = desired.properties.get(key)
            if want is None:
                continue
            have = current.properties.get(key)
            # ID lists behave as sets
            if isinstance(want, list) and isinstance(have, list):
                if sorted(want) != sorted(have):
                    changed.append(key)
            elif want != have:
                changed.append(key)
        return changed
