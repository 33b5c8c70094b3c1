"""Tests related to asgstack.ec2.autoscaling module."""

import itertools

import mock
import pytest
from botocore.exceptions import ClientError

from asgstack.ec2.autoscaling import AutoScalingGroup, find_groups_by_tag
from asgstack.errors import (
    AutoScalingGroupNotFoundError,
    CloudError,
    StackTimeoutError,
)
from asgstack.types import ScalingConfig

MPATH = "asgstack.ec2.autoscaling."


def _group(desired=2, instances=(), status=None):
    group = {
        "AutoScalingGroupName": "flask-test",
        "DesiredCapacity": desired,
        "Instances": list(instances),
    }
    if status:
        group["Status"] = status
    return {"AutoScalingGroups": [group]}


def _instance(instance_id, lifecycle="InService", health="Healthy"):
    return {
        "InstanceId": instance_id,
        "LifecycleState": lifecycle,
        "HealthStatus": health,
    }


NOT_FOUND = {"AutoScalingGroups": []}


@pytest.fixture
def fake_time(mocker):
    """Patch time so every call to time() advances one second."""
    m_time = mocker.patch(MPATH + "time")
    m_time.time.side_effect = itertools.count()
    return m_time


# pylint: disable=missing-function-docstring,redefined-outer-name
class TestAutoScalingGroup:
    """Tests for AutoScalingGroup."""

    def test_create(self):
        client = mock.MagicMock()
        scaling = ScalingConfig(min_size=1, max_size=4, desired_capacity=2)

        group = AutoScalingGroup.create(
            client, "flask-test", "flask-lt", ["subnet-1", "subnet-2"], scaling
        )

        assert "flask-test" == group.name
        kwargs = client.create_auto_scaling_group.call_args.kwargs
        assert "flask-test" == kwargs["AutoScalingGroupName"]
        assert {
            "LaunchTemplateName": "flask-lt",
            "Version": "$Latest",
        } == kwargs["LaunchTemplate"]
        assert (1, 4, 2) == (
            kwargs["MinSize"],
            kwargs["MaxSize"],
            kwargs["DesiredCapacity"],
        )
        assert "subnet-1,subnet-2" == kwargs["VPCZoneIdentifier"]
        assert "EC2" == kwargs["HealthCheckType"]
        assert {"Name", "asgstack:stack"} == {
            tag["Key"] for tag in kwargs["Tags"]
        }
        assert all(tag["PropagateAtLaunch"] for tag in kwargs["Tags"])

    def test_create_wraps_client_error(self):
        client = mock.MagicMock()
        client.create_auto_scaling_group.side_effect = ClientError(
            {"Error": {"Code": "AlreadyExists", "Message": "exists"}},
            "CreateAutoScalingGroup",
        )

        with pytest.raises(CloudError) as excinfo:
            AutoScalingGroup.create(client, "flask-test", "lt", ["subnet-1"])
        assert "AlreadyExists" == excinfo.value.code

    def test_put_target_tracking_policy(self):
        client = mock.MagicMock()
        client.put_scaling_policy.return_value = {"PolicyARN": "arn:policy"}
        group = AutoScalingGroup(client, "flask-test")

        assert "arn:policy" == group.put_target_tracking_policy(
            "flask-test-cpu", 60
        )
        kwargs = client.put_scaling_policy.call_args.kwargs
        assert "TargetTrackingScaling" == kwargs["PolicyType"]
        config = kwargs["TargetTrackingConfiguration"]
        assert 60.0 == config["TargetValue"]
        assert (
            "ASGAverageCPUUtilization"
            == config["PredefinedMetricSpecification"]["PredefinedMetricType"]
        )

    def test_describe_missing_group(self):
        client = mock.MagicMock()
        client.describe_auto_scaling_groups.return_value = NOT_FOUND

        with pytest.raises(AutoScalingGroupNotFoundError):
            AutoScalingGroup(client, "flask-test").describe()

    @pytest.mark.parametrize(
        "response,expected",
        [
            (_group(), True),
            (_group(status="Delete in progress"), False),
            (NOT_FOUND, False),
        ],
    )
    def test_exists(self, response, expected):
        client = mock.MagicMock()
        client.describe_auto_scaling_groups.return_value = response

        assert expected is AutoScalingGroup(client, "flask-test").exists()

    def test_healthy_instance_ids(self):
        client = mock.MagicMock()
        client.describe_auto_scaling_groups.return_value = _group(
            instances=[
                _instance("i-1"),
                _instance("i-2", lifecycle="Pending"),
                _instance("i-3", health="Unhealthy"),
            ]
        )

        group = AutoScalingGroup(client, "flask-test")
        assert ["i-1"] == group.healthy_instance_ids()

    def test_wait_until_healthy(self, fake_time):
        client = mock.MagicMock()
        client.describe_auto_scaling_groups.side_effect = [
            _group(instances=[_instance("i-1", lifecycle="Pending")]),
            _group(instances=[_instance("i-1", lifecycle="Pending")]),
            _group(instances=[_instance("i-1"), _instance("i-2")]),
            _group(instances=[_instance("i-1"), _instance("i-2")]),
        ]

        group = AutoScalingGroup(client, "flask-test")
        assert ["i-1", "i-2"] == group.wait_until_healthy(
            timeout=100, interval=5
        )
        assert [mock.call(5)] == fake_time.sleep.call_args_list

    def test_wait_until_healthy_timeout(self, fake_time):
        client = mock.MagicMock()
        client.describe_auto_scaling_groups.return_value = _group(
            instances=[_instance("i-1")]
        )

        group = AutoScalingGroup(client, "flask-test")
        with pytest.raises(StackTimeoutError, match="1/2 healthy"):
            group.wait_until_healthy(timeout=3, interval=1)

    def test_delete_waits_until_gone(self, fake_time):
        client = mock.MagicMock()
        client.describe_auto_scaling_groups.side_effect = [
            _group(status="Delete in progress"),
            NOT_FOUND,
        ]

        AutoScalingGroup(client, "flask-test").delete(interval=1)

        assert [
            mock.call(AutoScalingGroupName="flask-test", ForceDelete=True)
        ] == client.delete_auto_scaling_group.call_args_list
        assert 1 == fake_time.sleep.call_count

    def test_delete_timeout(self, fake_time):
        client = mock.MagicMock()
        client.describe_auto_scaling_groups.return_value = _group(
            status="Delete in progress"
        )

        with pytest.raises(StackTimeoutError, match="still exists"):
            AutoScalingGroup(client, "flask-test").delete(timeout=5)

    def test_delete_no_wait(self):
        client = mock.MagicMock()

        AutoScalingGroup(client, "flask-test").delete(wait=False)

        assert 0 == client.describe_auto_scaling_groups.call_count


def test_find_groups_by_tag():
    client = mock.MagicMock()
    paginator = client.get_paginator.return_value
    paginator.paginate.return_value = [
        {"AutoScalingGroups": [{"AutoScalingGroupName": "a"}]},
        {"AutoScalingGroups": [{"AutoScalingGroupName": "b"}]},
    ]

    assert ["a", "b"] == find_groups_by_tag(client, "flask-test")
    assert [
        mock.call(
            Filters=[{"Name": "tag:asgstack:stack", "Values": ["flask-test"]}]
        )
    ] == paginator.paginate.call_args_list
