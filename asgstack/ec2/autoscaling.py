# This file is part of asgstack. See LICENSE file for license information.
"""Auto Scaling Groups and their scaling policies."""

import logging
import time
from typing import Dict, List, Optional

from botocore.exceptions import ClientError

from asgstack.errors import (
    AutoScalingGroupNotFoundError,
    CloudError,
    StackTimeoutError,
)
from asgstack.types import ScalingConfig
from asgstack.util import STACK_TAG_KEY

logger = logging.getLogger(__name__)


class AutoScalingGroup:
    """Proxy for an AWS Auto Scaling Group."""

    def __init__(self, client, name):
        """Wrap an existing Auto Scaling Group.

        Args:
            client: boto3 autoscaling client
            name: name of the group
        """
        self._client = client
        self.name = name
        self._log = logging.getLogger(
            "{}.{}".format(__name__, self.__class__.__name__)
        )

    def __repr__(self):
        """Create string representation for class."""
        return "{}(name={})".format(self.__class__.__name__, self.name)

    @classmethod
    def create(
        cls,
        client,
        name,
        launch_template_name,
        subnet_ids: List[str],
        scaling: Optional[ScalingConfig] = None,
    ):
        """Create an Auto Scaling Group spread over `subnet_ids`.

        Instances are health checked through EC2 status checks; there is
        no load balancer in front of the group.

        Args:
            client: boto3 autoscaling client
            name: group name, also used as the stack tag
            launch_template_name: template instances are launched from
            subnet_ids: subnets, one per availability zone
            scaling: fleet size; defaults to ScalingConfig()

        Returns:
            asgstack.ec2.AutoScalingGroup instance

        """
        scaling = scaling or ScalingConfig()
        logger.debug(
            "creating auto scaling group %s (min=%s desired=%s max=%s)",
            name,
            scaling.min_size,
            scaling.desired_capacity,
            scaling.max_size,
        )
        try:
            client.create_auto_scaling_group(
                AutoScalingGroupName=name,
                LaunchTemplate={
                    "LaunchTemplateName": launch_template_name,
                    "Version": "$Latest",
                },
                MinSize=scaling.min_size,
                MaxSize=scaling.max_size,
                DesiredCapacity=scaling.desired_capacity,
                VPCZoneIdentifier=",".join(subnet_ids),
                HealthCheckType="EC2",
                HealthCheckGracePeriod=scaling.health_check_grace_period,
                Tags=[
                    {
                        "ResourceId": name,
                        "ResourceType": "auto-scaling-group",
                        "Key": key,
                        "Value": name,
                        "PropagateAtLaunch": True,
                    }
                    for key in ("Name", STACK_TAG_KEY)
                ],
            )
        except ClientError as error:
            raise CloudError(error) from error
        return cls(client, name)

    def put_target_tracking_policy(self, policy_name, target_cpu=50.0):
        """Keep average CPU utilization of the group near `target_cpu`.

        Returns:
            ARN of the scaling policy
        """
        self._log.debug(
            "putting cpu target tracking policy %s (%s%%) on %s",
            policy_name,
            target_cpu,
            self.name,
        )
        response = self._client.put_scaling_policy(
            AutoScalingGroupName=self.name,
            PolicyName=policy_name,
            PolicyType="TargetTrackingScaling",
            TargetTrackingConfiguration={
                "PredefinedMetricSpecification": {
                    "PredefinedMetricType": "ASGAverageCPUUtilization"
                },
                "TargetValue": float(target_cpu),
            },
        )
        return response["PolicyARN"]

    def delete_policy(self, policy_name):
        """Delete a scaling policy of the group."""
        self._log.debug("deleting scaling policy %s", policy_name)
        self._client.delete_policy(
            AutoScalingGroupName=self.name, PolicyName=policy_name
        )

    def describe(self) -> Dict:
        """Return the description of the group.

        Raises:
            AutoScalingGroupNotFoundError: if the group does not exist
        """
        groups = self._client.describe_auto_scaling_groups(
            AutoScalingGroupNames=[self.name]
        )["AutoScalingGroups"]
        if not groups:
            raise AutoScalingGroupNotFoundError(resource_name=self.name)
        return groups[0]

    def exists(self) -> bool:
        """Return True if the group exists and is not being deleted."""
        try:
            group = self.describe()
        except AutoScalingGroupNotFoundError:
            return False
        return group.get("Status") != "Delete in progress"

    def instances(self) -> List[Dict]:
        """Return instance descriptions of the group."""
        return self.describe().get("Instances", [])

    def healthy_instance_ids(self) -> List[str]:
        """Return ids of instances that are InService and Healthy."""
        return [
            instance["InstanceId"]
            for instance in self.instances()
            if instance["LifecycleState"] == "InService"
            and instance["HealthStatus"] == "Healthy"
        ]

    def wait_until_healthy(self, timeout=600, interval=15):
        """Wait until desired capacity instances are in service.

        Raises:
            StackTimeoutError: if the group is not healthy after `timeout`
                seconds
        """
        start = time.time()
        while True:
            desired = self.describe()["DesiredCapacity"]
            healthy = self.healthy_instance_ids()
            self._log.debug(
                "%s: %s/%s instances healthy", self.name, len(healthy), desired
            )
            if len(healthy) >= desired:
                return healthy
            if time.time() >= start + timeout:
                raise StackTimeoutError(
                    "{} has {}/{} healthy instances after {}s".format(
                        self.name, len(healthy), desired, timeout
                    )
                )
            time.sleep(interval)

    def delete(self, wait=True, timeout=900, interval=15):
        """Force delete the group, terminating its instances.

        Args:
            wait: wait until the group is gone
            timeout: seconds to wait before giving up
            interval: seconds between polls
        """
        self._log.debug("deleting auto scaling group %s", self.name)
        self._client.delete_auto_scaling_group(
            AutoScalingGroupName=self.name, ForceDelete=True
        )
        if not wait:
            return
        start = time.time()
        while time.time() < start + timeout:
            try:
                self.describe()
            except AutoScalingGroupNotFoundError:
                self._log.debug("auto scaling group %s deleted", self.name)
                return
            self._log.debug("waiting for %s deletion; sleeping", self.name)
            time.sleep(interval)
        raise StackTimeoutError(
            "{} still exists after {}s".format(self.name, timeout)
        )


def find_groups_by_tag(client, tag) -> List[str]:
    """Return names of the groups tagged with the stack tag `tag`."""
    names = []
    paginator = client.get_paginator("describe_auto_scaling_groups")
    for page in paginator.paginate(
        Filters=[
            {"Name": "tag:{}".format(STACK_TAG_KEY), "Values": [tag]}
        ]
    ):
        names.extend(g["AutoScalingGroupName"] for g in page["AutoScalingGroups"])
    return names
