"""Tests for the App Runner auto scaling configuration provisioner."""

import pytest
from botocore.stub import Stubber

from aws_converge.provisioners import AutoScalingConfigurationProvisioner, ChangeType, Resource
from aws_converge.provisioners.auto_scaling_configuration import find_latest_auto_scaling_configuration_arn
from aws_converge.utils.errors import NotFoundDuringPollError, ProvisioningError

NAME = "asc-one"
ARN = "arn:aws:apprunner:us-east-1:123456789012:autoscalingconfiguration/asc-one/1/0123456789abcdef"


@pytest.fixture
def provisioner(boto_session):
    provisioner = AutoScalingConfigurationProvisioner(boto_session)
    provisioner.POLL_INTERVAL = 0.01
    return provisioner


@pytest.fixture
def stubber(provisioner):
    with Stubber(provisioner.client) as stub:
        yield stub
        stub.assert_no_pending_responses()


def configuration(status="active", max_concurrency=50, max_size=10, min_size=2):
    return {
        "AutoScalingConfigurationArn": ARN,
        "AutoScalingConfigurationName": NAME,
        "AutoScalingConfigurationRevision": 1,
        "Latest": True,
        "Status": status,
        "MaxConcurrency": max_concurrency,
        "MaxSize": max_size,
        "MinSize": min_size,
    }


def desired(**properties) -> Resource:
    return Resource(
        id=NAME,
        type=AutoScalingConfigurationProvisioner.resource_type,
        properties={"AutoScalingConfigurationName": NAME, **properties},
    )


def current(**kwargs) -> Resource:
    return Resource(
        id=NAME,
        type=AutoScalingConfigurationProvisioner.resource_type,
        physical_id=ARN,
        properties=configuration(**kwargs),
    )


def expect_describe(stubber, config):
    stubber.add_response(
        "describe_auto_scaling_configuration",
        {"AutoScalingConfiguration": config},
        {"AutoScalingConfigurationArn": ARN},
    )


def expect_describe_missing(stubber):
    stubber.add_client_error(
        "describe_auto_scaling_configuration",
        service_error_code="ResourceNotFoundException",
        http_status_code=400,
    )


class TestGetCurrentState:
    """Tests for reading the latest revision."""

    def test_latest_active_revision(self, provisioner, stubber) -> None:
        stubber.add_response(
            "list_auto_scaling_configurations",
            {"AutoScalingConfigurationSummaryList": [{
                "AutoScalingConfigurationArn": ARN,
                "AutoScalingConfigurationName": NAME,
                "AutoScalingConfigurationRevision": 1,
                "Status": "active",
            }]},
            {"AutoScalingConfigurationName": NAME, "LatestOnly": True},
        )
        expect_describe(stubber, configuration())

        state = provisioner.get_current_state(NAME)

        assert state.physical_id == ARN
        assert state.properties["MaxSize"] == 10

    def test_follows_pages(self, provisioner, stubber) -> None:
        stubber.add_response(
            "list_auto_scaling_configurations",
            {"AutoScalingConfigurationSummaryList": [], "NextToken": "next"},
            {"AutoScalingConfigurationName": NAME, "LatestOnly": True},
        )
        stubber.add_response(
            "list_auto_scaling_configurations",
            {"AutoScalingConfigurationSummaryList": [{
                "AutoScalingConfigurationArn": ARN,
                "AutoScalingConfigurationName": NAME,
                "Status": "active",
            }]},
            {"AutoScalingConfigurationName": NAME, "LatestOnly": True, "NextToken": "next"},
        )

        assert find_latest_auto_scaling_configuration_arn(provisioner.client, NAME) == ARN

    def test_no_revisions(self, provisioner, stubber) -> None:
        stubber.add_response(
            "list_auto_scaling_configurations",
            {"AutoScalingConfigurationSummaryList": []},
            {"AutoScalingConfigurationName": NAME, "LatestOnly": True},
        )

        assert provisioner.get_current_state(NAME) is None

    def test_inactive_revision_is_gone(self, provisioner, stubber) -> None:
        expect_describe(stubber, configuration(status="inactive"))

        assert provisioner.get_current_state(ARN) is None


class TestPlan:
    """Tests for planning auto scaling configuration changes."""

    def test_defaults_match_existing(self, provisioner) -> None:
        plan = provisioner.plan(desired(), current(max_concurrency=100, max_size=25, min_size=1))

        assert plan.change_type == ChangeType.NO_CHANGE

    def test_sizing_change_is_replacement(self, provisioner) -> None:
        plan = provisioner.plan(
            desired(MaxConcurrency=50, MaxSize=20, MinSize=2),
            current(),
        )

        assert plan.change_type == ChangeType.REPLACE
        assert plan.reasons == ["MaxSize"]


class TestCreate:
    """Tests for registering a revision."""

    def test_creates_and_waits_for_active(self, provisioner, stubber) -> None:
        stubber.add_response(
            "create_auto_scaling_configuration",
            {"AutoScalingConfiguration": configuration()},
            {"AutoScalingConfigurationName": NAME, "MaxConcurrency": 50, "MaxSize": 10, "MinSize": 2},
        )
        expect_describe_missing(stubber)
        expect_describe(stubber, configuration())

        result = provisioner.create(desired(MaxConcurrency=50, MaxSize=10, MinSize=2))

        assert result.physical_id == ARN
        assert result.properties["Status"] == "active"

    def test_defaults_are_sent(self, provisioner, stubber) -> None:
        stubber.add_response(
            "create_auto_scaling_configuration",
            {"AutoScalingConfiguration": configuration(max_concurrency=100, max_size=25, min_size=1)},
            {"AutoScalingConfigurationName": NAME, "MaxConcurrency": 100, "MaxSize": 25, "MinSize": 1},
        )
        expect_describe(stubber, configuration(max_concurrency=100, max_size=25, min_size=1))

        provisioner.create(desired())

    def test_revision_never_appears(self, provisioner, stubber) -> None:
        stubber.add_response("create_auto_scaling_configuration", {"AutoScalingConfiguration": configuration()})
        for _ in range(provisioner.NOT_FOUND_CHECKS + 1):
            expect_describe_missing(stubber)

        with pytest.raises(NotFoundDuringPollError):
            provisioner.create(desired())


class TestUpdateAndDestroy:
    """Tests for update and delete."""

    def test_update_is_refused(self, provisioner) -> None:
        with pytest.raises(ProvisioningError):
            provisioner.update(desired(MaxSize=5), current())

    def test_replace_deletes_then_creates(self, provisioner, stubber) -> None:
        stubber.add_response(
            "delete_auto_scaling_configuration",
            {"AutoScalingConfiguration": configuration(status="inactive")},
            {"AutoScalingConfigurationArn": ARN},
        )
        expect_describe(stubber, configuration(status="inactive"))
        stubber.add_response(
            "create_auto_scaling_configuration",
            {"AutoScalingConfiguration": configuration(max_size=20)},
            {"AutoScalingConfigurationName": NAME, "MaxConcurrency": 50, "MaxSize": 20, "MinSize": 2},
        )
        expect_describe(stubber, configuration(max_size=20))

        want = desired(MaxConcurrency=50, MaxSize=20, MinSize=2)
        result = provisioner.provision(provisioner.plan(want, current()))

        assert result.properties["MaxSize"] == 20

    def test_delete_waits_while_active(self, provisioner, stubber) -> None:
        stubber.add_response(
            "delete_auto_scaling_configuration",
            {"AutoScalingConfiguration": configuration()},
            {"AutoScalingConfigurationArn": ARN},
        )
        expect_describe(stubber, configuration())
        expect_describe(stubber, configuration(status="inactive"))

        provisioner.destroy(current())

    def test_delete_missing_revision(self, provisioner, stubber) -> None:
        stubber.add_client_error(
            "delete_auto_scaling_configuration",
            service_error_code="ResourceNotFoundException",
            http_status_code=400,
        )

        provisioner.destroy(current())
