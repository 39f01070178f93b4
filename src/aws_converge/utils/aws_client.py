"""Shared boto3 session for the provisioners."""

from dataclasses import dataclass
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError, NoCredentialsError, PartialCredentialsError

from aws_converge.utils.errors import ConfigurationError
from aws_converge.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class AWSCredentials:
    """Identity the session resolved to."""
    account_id: str
    user_arn: str
    region: str
    profile: Optional[str] = None


def client_config(max_pool_connections: int = 10) -> Config:
    """botocore config used for every client.

    Throttling is retried here, with adaptive client-side rate limiting, so
    the waiters never have to.
    """
    return Config(
        max_pool_connections=max_pool_connections,
        retries={'mode': 'adaptive', 'max_attempts': 5},
        connect_timeout=10,
        read_timeout=60,
    )


class AWSClientManager:
    """Owns the boto3 session and the client config the provisioners share."""

    def __init__(
        self,
        profile: Optional[str] = None,
        region: Optional[str] = None,
        max_pool_connections: int = 10
    ):
        self.profile = profile
        self.region = region
        self.boto_config = client_config(max_pool_connections)
        self._session: Optional[boto3.Session] = None
        self._credentials: Optional[AWSCredentials] = None

    @property
    def session(self) -> boto3.Session:
        if self._session is None:
            session = boto3.Session(profile_name=self.profile, region_name=self.region)
            if not session.region_name:
                raise ConfigurationError(
                    "No AWS region configured",
                    suggestions=["Pass --region or set AWS_REGION / AWS_DEFAULT_REGION"],
                )
            logger.debug(f"Using region {session.region_name} "
                         f"(profile: {self.profile or 'default'})")
            self._session = session
        return self._session

    def validate_credentials(self) -> AWSCredentials:
        """Resolve the caller identity through STS.

        The result is cached for the lifetime of the manager.

        Raises:
            ConfigurationError: No region could be resolved
            NoCredentialsError: No credentials were found
            PartialCredentialsError: Credentials are incomplete
            ClientError: STS rejected the credentials
        """
        if self._credentials is None:
            sts = self.session.client('sts', config=self.boto_config)
            try:
                identity = sts.get_caller_identity()
            except (NoCredentialsError, PartialCredentialsError, ClientError) as e:
                logger.error(f"Could not validate AWS credentials: {e}")
                raise

            self._credentials = AWSCredentials(
                account_id=identity['Account'],
                user_arn=identity['Arn'],
                region=self.session.region_name,
                profile=self.profile,
            )
            logger.info(f"Authenticated as {self._credentials.user_arn}")

        return self._credentials
