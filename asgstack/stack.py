# This file is part of asgstack. See LICENSE file for license information.
"""Create, inspect and delete the resources of a plan on AWS."""

import logging
from typing import Dict, List, Optional

import botocore

from asgstack.ec2.autoscaling import AutoScalingGroup, find_groups_by_tag
from asgstack.ec2.cloud import EC2
from asgstack.ec2.launch_template import LaunchTemplate
from asgstack.ec2.security_group import SecurityGroup
from asgstack.ec2.util import _delete_on_error
from asgstack.ec2.vpc import VPC
from asgstack.errors import (
    AsgstackException,
    CleanupError,
    CloudError,
    PlanError,
    ResourceType,
)
from asgstack.outputs import StackOutputs
from asgstack.plan import Plan, Step, default_stack_plan
from asgstack.teardown import plan_teardown
from asgstack.types import StackSettings
from asgstack.userdata import flask_app_user_data
from asgstack.util import log_exception_list, stack_filter


class Stack:
    """A plan applied to AWS under a single stack tag.

    Identifiers returned by AWS are recorded in `outputs` as each step
    completes. Re-running `apply` skips steps that already have one.
    """

    def __init__(
        self,
        cloud: EC2,
        settings: Optional[StackSettings] = None,
        plan: Optional[Plan] = None,
        *,
        outputs: Optional[StackOutputs] = None,
        rollback: bool = False,
        keep: bool = True,
    ):
        """Initialize the stack.

        Args:
            cloud: connected EC2 cloud; its tag names every resource
            settings: what to build; defaults to StackSettings()
            plan: steps to apply; defaults to the Auto Scaling stack
            outputs: identifiers of an earlier, possibly partial, apply
            rollback: destroy created resources when a step fails
            keep: if False, destroy the stack on context manager exit
        """
        self.cloud = cloud
        self.settings = settings or StackSettings()
        self.plan = plan or default_stack_plan()
        self.tag = cloud.tag
        self.outputs = (
            outputs if outputs is not None else StackOutputs(tag=self.tag)
        )
        self.rollback = rollback
        self.keep = keep
        self._log = logging.getLogger(
            "{}.{}".format(__name__, self.__class__.__name__)
        )
        self._zones: List[str] = []
        self._creators = {
            ResourceType.VPC: self._create_vpc,
            ResourceType.INTERNET_GATEWAY: self._create_internet_gateway,
            ResourceType.SUBNET: self._create_subnet,
            ResourceType.ROUTE_TABLE: self._create_route_table,
            ResourceType.SECURITY_GROUP: self._create_security_group,
            ResourceType.IMAGE: self._find_image,
            ResourceType.LAUNCH_TEMPLATE: self._create_launch_template,
            ResourceType.AUTO_SCALING_GROUP: self._create_auto_scaling_group,
            ResourceType.SCALING_POLICY: self._create_scaling_policy,
            ResourceType.KEY_PAIR: self._import_key_pair,
            ResourceType.INSTANCE: self._create_instance,
        }
        self._deleters = {
            ResourceType.VPC: self._delete_vpc,
            ResourceType.INTERNET_GATEWAY: self._delete_internet_gateway,
            ResourceType.SUBNET: self._delete_subnet,
            ResourceType.ROUTE_TABLE: self._delete_route_table,
            ResourceType.SECURITY_GROUP: self._delete_security_group,
            ResourceType.LAUNCH_TEMPLATE: self._delete_launch_template,
            ResourceType.AUTO_SCALING_GROUP: self._delete_auto_scaling_group,
            ResourceType.KEY_PAIR: self.cloud.delete_key,
            ResourceType.INSTANCE: self._delete_instance,
        }

    def __enter__(self):
        """Enter context manager for this class."""
        return self

    def __exit__(self, _type, _value, _traceback):
        """Destroy the stack unless it is kept."""
        if not self.keep:
            self.destroy()

    def apply(self) -> StackOutputs:
        """Create every step of the plan in dependency order.

        Returns:
            outputs, mapping step keys to AWS identifiers

        Raises:
            CloudError: if AWS rejects a call or a waiter gives up
            PlanError: if a step's input is missing
            AsgstackError: if the configured SSH public key is unreadable
        """
        self._log.info("applying %s steps for %s", len(self.plan), self.tag)
        for step in self.plan.order():
            if step.key in self.outputs:
                self._log.debug(
                    "skipping %s, already created as %s",
                    step.key,
                    self.outputs[step.key],
                )
                continue
            try:
                identifier = self._creators[step.resource_type](step)
            except (
                botocore.exceptions.ClientError,
                botocore.exceptions.BotoCoreError,
            ) as e:
                error = CloudError(e, step=step.key)
                self._handle_failure(step, error)
                raise error from e
            except CloudError as e:
                e.step = e.step or step.key
                self._handle_failure(step, e)
                raise
            except AsgstackException as e:
                self._handle_failure(step, e)
                raise
            self.outputs[step.key] = identifier
            self._log.info("%s: %s", step.key, identifier)
        return self.outputs

    def destroy(self):
        """Delete every recorded resource, dependents first.

        Deletion continues past failures. Successfully deleted steps are
        removed from `outputs`.

        Raises:
            CleanupError: with every exception raised along the way
        """
        exceptions: List[Exception] = []
        for item in plan_teardown(self.plan, self.outputs):
            self._log.info(
                "deleting %s %s", item.resource_type, item.identifier
            )
            try:
                self._deleters[item.resource_type](item.identifier)
            # pylint: disable=broad-except
            except Exception as e:
                exceptions.append(e)
                continue
            del self.outputs[item.key]
        if exceptions:
            log_exception_list(exceptions)
            raise CleanupError(exceptions)
        self.outputs.clear()
        self._log.info("destroyed %s", self.tag)

    def discover(self) -> StackOutputs:
        """Rebuild outputs from the stack tag of existing resources.

        Resources of the same type are matched to steps in plan order;
        subnets are matched by CIDR block when possible.
        """
        discovered: Dict[ResourceType, List[str]] = {}
        for step in self.plan.order():
            resource_type = step.resource_type
            if resource_type not in discovered:
                discovered[resource_type] = self._find_tagged(resource_type)
            if discovered[resource_type]:
                self.outputs[step.key] = discovered[resource_type].pop(0)
        self._log.debug("discovered %r", self.outputs)
        return self.outputs

    def status(self) -> Dict[str, Dict[str, Optional[str]]]:
        """Return the identifier and state of every step."""
        result = {}
        for step in self.plan.order():
            identifier = self.outputs.get(step.key)
            result[step.key] = {
                "type": str(step.resource_type),
                "id": identifier,
                "state": (
                    self._state(step.resource_type, identifier)
                    if identifier
                    else "absent"
                ),
            }
        return result

    def wait_until_healthy(self, timeout=600):
        """Wait until the Auto Scaling Group reaches desired capacity.

        Returns:
            ids of the healthy instances
        """
        return self._group().wait_until_healthy(timeout=timeout)

    def _handle_failure(self, step: Step, error: Exception):
        self._log.error("step %s failed: %s", step.key, error)
        if not self.rollback:
            return
        self._log.warning("rolling back %s", self.tag)
        try:
            self.destroy()
        except CleanupError as cleanup_error:
            # The original error is what gets raised to the caller
            self._log.error("rollback incomplete: %s", cleanup_error)

    def _inputs(self, step: Step, resource_type: ResourceType) -> List[str]:
        """Return identifiers of the dependencies of `step` of a type."""
        inputs = []
        for key in step.depends_on:
            if self.plan[key].resource_type != resource_type:
                continue
            if key not in self.outputs:
                raise PlanError(
                    "Step `{}` needs `{}` which has not been created".format(
                        step.key, key
                    )
                )
            inputs.append(self.outputs[key])
        return inputs

    def _input(self, step: Step, resource_type: ResourceType) -> str:
        inputs = self._inputs(step, resource_type)
        if len(inputs) != 1:
            raise PlanError(
                "Step `{}` needs exactly one {} dependency, found {}".format(
                    step.key, resource_type, len(inputs)
                )
            )
        return inputs[0]

    def _output_of_type(self, resource_type: ResourceType) -> str:
        for step in self.plan.order():
            if step.resource_type == resource_type and step.key in self.outputs:
                return self.outputs[step.key]
        raise PlanError(
            "No {} has been created for {}".format(resource_type, self.tag)
        )

    def _vpc(self) -> VPC:
        return VPC.from_existing(
            self.cloud.resource, self._output_of_type(ResourceType.VPC)
        )

    def _group(self) -> AutoScalingGroup:
        return AutoScalingGroup(
            self.cloud.autoscaling,
            self._output_of_type(ResourceType.AUTO_SCALING_GROUP),
        )

    def _policy_name(self):
        return "{}-cpu".format(self.tag)

    def _create_vpc(self, step: Step) -> str:
        return VPC.create(
            self.cloud.resource, self.tag, self.settings.vpc_cidr
        ).id

    def _create_internet_gateway(self, step: Step) -> str:
        vpc = VPC.from_existing(
            self.cloud.resource, self._input(step, ResourceType.VPC)
        )
        return vpc.create_internet_gateway(self.tag)

    def _create_subnet(self, step: Step) -> str:
        vpc = VPC.from_existing(
            self.cloud.resource, self._input(step, ResourceType.VPC)
        )
        subnet_keys = [
            s.key
            for s in self.plan.steps.values()
            if s.resource_type == ResourceType.SUBNET
        ]
        index = subnet_keys.index(step.key)
        if index >= len(self.settings.subnet_cidrs):
            raise PlanError(
                "No subnet CIDR configured for step `{}`".format(step.key)
            )
        if not self._zones:
            self._zones = vpc.availability_zones(count=len(subnet_keys))
        return vpc.create_subnet(
            self.tag, self.settings.subnet_cidrs[index], self._zones[index]
        )

    def _create_route_table(self, step: Step) -> str:
        vpc = VPC.from_existing(
            self.cloud.resource, self._input(step, ResourceType.VPC)
        )
        return vpc.create_route_table(
            self.tag,
            self._input(step, ResourceType.INTERNET_GATEWAY),
            self._inputs(step, ResourceType.SUBNET),
        )

    def _create_security_group(self, step: Step) -> str:
        vpc_ids = self._inputs(step, ResourceType.VPC)
        vpc_id = vpc_ids[0] if vpc_ids else self.cloud.default_vpc().id
        return SecurityGroup.create(
            self.cloud.client,
            self.tag,
            vpc_id,
            self.settings.app_ingress_rules(),
        ).id

    def _find_image(self, step: Step) -> str:
        if self.settings.image_id:
            return self.cloud.check_image(self.settings.image_id)
        return self.cloud.released_image(
            self.settings.release, arch=self.settings.arch
        )

    def _user_data(self, key_name: Optional[str] = None) -> str:
        public_key = None
        if self.cloud.key_pair.public_key_path and not key_name:
            public_key = self.cloud.key_pair.public_key_content
        return flask_app_user_data(
            port=self.settings.app_port, public_key=public_key
        )

    def _create_launch_template(self, step: Step) -> str:
        return LaunchTemplate.create(
            self.cloud.client,
            self.tag,
            self._input(step, ResourceType.IMAGE),
            self.settings.instance_type,
            self._inputs(step, ResourceType.SECURITY_GROUP),
            user_data=self._user_data(self.settings.key_name),
            key_name=self.settings.key_name,
        ).name

    def _create_auto_scaling_group(self, step: Step) -> str:
        return AutoScalingGroup.create(
            self.cloud.autoscaling,
            self.tag,
            self._input(step, ResourceType.LAUNCH_TEMPLATE),
            self._inputs(step, ResourceType.SUBNET),
            self.settings.scaling,
        ).name

    def _create_scaling_policy(self, step: Step) -> str:
        group = AutoScalingGroup(
            self.cloud.autoscaling,
            self._input(step, ResourceType.AUTO_SCALING_GROUP),
        )
        return group.put_target_tracking_policy(
            self._policy_name(), self.settings.scaling.target_cpu
        )

    def _import_key_pair(self, step: Step) -> str:
        key_pair = self.cloud.key_pair
        self.cloud.upload_key(
            key_pair.public_key_path, key_pair.private_key_path, name=self.tag
        )
        return self.tag

    def _create_instance(self, step: Step) -> str:
        subnet_ids = self._inputs(step, ResourceType.SUBNET)
        key_names = self._inputs(step, ResourceType.KEY_PAIR)
        key_name = key_names[0] if key_names else self.settings.key_name
        instance = self.cloud.launch(
            self._input(step, ResourceType.IMAGE),
            instance_type=self.settings.instance_type,
            user_data=self._user_data(key_name),
            security_group_ids=self._inputs(step, ResourceType.SECURITY_GROUP),
            subnet_id=subnet_ids[0] if subnet_ids else None,
            key_name=key_name,
        )

        def terminate():
            exceptions = instance.delete(wait=False)
            if exceptions:
                raise CleanupError(exceptions)

        with _delete_on_error("instance {}".format(instance.id), terminate):
            instance.wait()
        return instance.id

    def _delete_vpc(self, identifier):
        VPC.from_existing(self.cloud.resource, identifier).delete()

    def _delete_internet_gateway(self, identifier):
        self._vpc().delete_internet_gateway(identifier)

    def _delete_subnet(self, identifier):
        VPC.delete_subnet(self.cloud.client, identifier)

    def _delete_route_table(self, identifier):
        self._vpc().delete_route_table(identifier)

    def _delete_security_group(self, identifier):
        SecurityGroup(self.cloud.client, identifier).delete()

    def _delete_launch_template(self, identifier):
        LaunchTemplate(self.cloud.client, identifier).delete()

    def _delete_auto_scaling_group(self, identifier):
        AutoScalingGroup(self.cloud.autoscaling, identifier).delete()

    def _delete_instance(self, identifier):
        exceptions = self.cloud.get_instance(identifier).delete()
        if exceptions:
            raise CleanupError(exceptions)

    def _find_tagged(self, resource_type: ResourceType) -> List[str]:
        """Return ids of resources of a type carrying the stack tag."""
        client = self.cloud.client
        filters = stack_filter(self.tag)
        if resource_type == ResourceType.VPC:
            return [
                v["VpcId"] for v in client.describe_vpcs(Filters=filters)["Vpcs"]
            ]
        if resource_type == ResourceType.INTERNET_GATEWAY:
            return [
                g["InternetGatewayId"]
                for g in client.describe_internet_gateways(Filters=filters)[
                    "InternetGateways"
                ]
            ]
        if resource_type == ResourceType.SUBNET:
            subnets = client.describe_subnets(Filters=filters)["Subnets"]
            order = self.settings.subnet_cidrs

            def cidr_position(subnet):
                cidr = subnet["CidrBlock"]
                return (
                    order.index(cidr) if cidr in order else len(order),
                    cidr,
                )

            return [s["SubnetId"] for s in sorted(subnets, key=cidr_position)]
        if resource_type == ResourceType.ROUTE_TABLE:
            return [
                t["RouteTableId"]
                for t in client.describe_route_tables(Filters=filters)[
                    "RouteTables"
                ]
            ]
        if resource_type == ResourceType.SECURITY_GROUP:
            return [
                g["GroupId"]
                for g in client.describe_security_groups(Filters=filters)[
                    "SecurityGroups"
                ]
            ]
        if resource_type == ResourceType.LAUNCH_TEMPLATE:
            return [
                t["LaunchTemplateName"]
                for t in client.describe_launch_templates(Filters=filters)[
                    "LaunchTemplates"
                ]
            ]
        if resource_type == ResourceType.AUTO_SCALING_GROUP:
            return find_groups_by_tag(self.cloud.autoscaling, self.tag)
        if resource_type == ResourceType.SCALING_POLICY:
            names = find_groups_by_tag(self.cloud.autoscaling, self.tag)
            if not names:
                return []
            policies = self.cloud.autoscaling.describe_policies(
                AutoScalingGroupName=names[0]
            )["ScalingPolicies"]
            return [p["PolicyARN"] for p in policies]
        if resource_type == ResourceType.KEY_PAIR:
            return [
                k["KeyName"]
                for k in client.describe_key_pairs(Filters=filters)[
                    "KeyPairs"
                ]
            ]
        if resource_type == ResourceType.INSTANCE:
            reservations =client.describe_instances(
                Filters=filters
                + [
                    {
                        "Name": "instance-state-name",
                        "Values": ["pending", "running", "stopping", "stopped"],
                    }
                ]
            )["Reservations"]
            return [
                i["InstanceId"] for r in reservations for i in r["Instances"]
            ]
        # Images are shared, not tagged by the stack
        return []

    def _state(self, resource_type: ResourceType, identifier: str) -> str:
        try:
            if resource_type == ResourceType.VPC:
                vpcs = self.cloud.client.describe_vpcs(VpcIds=[identifier])
                return vpcs["Vpcs"][0]["State"]
            if resource_type == ResourceType.SUBNET:
                subnets = self.cloud.client.describe_subnets(
                    SubnetIds=[identifier]
                )
                return subnets["Subnets"][0]["State"]
            if resource_type == ResourceType.AUTO_SCALING_GROUP:
                group = AutoScalingGroup(self.cloud.autoscaling, identifier)
                desired = group.describe()["DesiredCapacity"]
                return "{}/{} healthy".format(
                    len(group.healthy_instance_ids()), desired
                )
            if resource_type == ResourceType.INSTANCE:
                return self.cloud.get_instance(identifier).state
        except botocore.exceptions.ClientError as e:
            return "error: {}".format(CloudError(e).code)
        except AsgstackException as e:
            return "error: {}".format(e)
        return "present"
