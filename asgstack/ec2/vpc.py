# This file is part of asgstack. See LICENSE file for license information.
"""Used to define custom Virtual Private Clouds (VPC)."""

import logging
from typing import List

from botocore.exceptions import ClientError

from asgstack.ec2.util import (
    _delete_on_error,
    _tag_resource,
    _tag_specifications,
)
from asgstack.errors import AsgstackError, CloudError, VPCNotFoundError
from asgstack.utils.backoff import exponential_backoff, is_aws_error

logger = logging.getLogger(__name__)

# Deleting network resources fails while instances of a freshly deleted
# Auto Scaling Group still hold interfaces in them.
retry_dependency_violation = exponential_backoff(
    retries=8,
    base_delay=5,
    max_time=600,
    exceptions=(ClientError,),
    retry_if=is_aws_error("DependencyViolation"),
)


class VPC:
    """Virtual Private Cloud class proxy for AWS VPC resource."""

    def __init__(self, vpc):
        """Create a VPC proxy instance for an AWS VPC resource.

        Args:
            vpc: boto3 EC2 Vpc resource
        """
        self.vpc = vpc

    @classmethod
    def create(cls, resource, name, ipv4_cidr="10.0.0.0/16"):
        """Create an asgstack.ec2.VPC proxy for a new AWS VPC.

        Only the VPC itself is created; gateways, subnets and route tables
        are separate plan steps.

        Args:
            resource: EC2 resource client
            name: String for the name or tag of the VPC
            ipv4_cidr: String of the CIDR block of the VPC

        Returns:
            asgstack.ec2.VPC instance

        """
        logger.debug(
            "creating new vpc named %s with cidr %s", name, ipv4_cidr
        )
        try:
            vpc = resource.create_vpc(
                CidrBlock=ipv4_cidr,
                TagSpecifications=_tag_specifications("vpc", name),
            )
        except ClientError as error:
            raise CloudError(error) from error

        with _delete_on_error("vpc {}".format(vpc.id), vpc.delete):
            vpc.wait_until_available()
            # the sample app is reached through public DNS names
            vpc.modify_attribute(EnableDnsHostnames={"Value": True})
            vpc.reload()
        logger.debug("Created VPC (%s) named (%s)", vpc.id, name)
        return cls(vpc)

    @classmethod
    def from_existing(cls, resource, vpc_id):
        """Wrap an existing boto3 EC2 VPC resource given the vpc_id.

        Args:
            resource: EC2 resource client
            vpc_id: String for an existing VPC id.

        Returns:
            asgstack.ec2.VPC instance

        """
        logger.debug("Reusing existing VPC (%s)", vpc_id)
        return cls(resource.Vpc(vpc_id))

    @classmethod
    def default(cls, resource):
        """Return the account's default VPC in the current region."""
        vpcs = list(
            resource.vpcs.filter(
                Filters=[{"Name": "isDefault", "Values": ["true"]}]
            )
        )
        if not vpcs:
            raise VPCNotFoundError(resource_name="default")
        return cls(vpcs[0])

    @property
    def id(self):
        """ID of the VPC."""
        return self.vpc.id

    @property
    def name(self):
        """Name of the VPC from tags."""
        for tag in self.vpc.tags or []:
            if tag["Key"] == "Name":
                return tag["Value"]
        return "NO-TAG-NAME-PRESENT"

    @property
    def state(self):
        """State of the VPC, e.g. "available"."""
        self.vpc.reload()
        return self.vpc.state

    def availability_zones(self, count=2) -> List[str]:
        """Return the names of `count` available zones of the region.

        Raises:
            AsgstackError: if the region has fewer zones available
        """
        response = self.vpc.meta.client.describe_availability_zones(
            Filters=[{"Name": "state", "Values": ["available"]}]
        )
        zones = sorted(
            zone["ZoneName"] for zone in response["AvailabilityZones"]
        )
        if len(zones) < count:
            raise AsgstackError(
                "Need {} availability zones, region only has {}".format(
                    count, len(zones)
                )
            )
        return zones[:count]

    def create_internet_gateway(self, name):
        """Create Internet Gateway and attach it to the VPC.

        Returns:
            Internet gateway id

        """
        logger.debug("creating internet gateway for vpc %s", self.id)
        client = self.vpc.meta.client
        response = client.create_internet_gateway(
            TagSpecifications=_tag_specifications("internet-gateway", name)
        )
        gateway_id = response["InternetGateway"]["InternetGatewayId"]
        with _delete_on_error(
            "internet gateway {}".format(gateway_id),
            lambda: client.delete_internet_gateway(
                InternetGatewayId=gateway_id
            ),
        ):
            self.vpc.attach_internet_gateway(InternetGatewayId=gateway_id)
        logger.debug("attached internet gateway %s", gateway_id)
        return gateway_id

    def create_subnet(self, name, ipv4_cidr, availability_zone):
        """Create a public subnet in the VPC.

        Instances launched into it get a public IPv4 address.

        Args:
            name: the stack tag
            ipv4_cidr: CIDR of the subnet, inside the VPC's block
            availability_zone: zone the subnet lives in

        Returns:
            Subnet id

        """
        logger.debug(
            "creating subnet %s in %s for vpc %s",
            ipv4_cidr,
            availability_zone,
            self.id,
        )
        subnet = self.vpc.create_subnet(
            CidrBlock=ipv4_cidr,
            AvailabilityZone=availability_zone,
            TagSpecifications=_tag_specifications("subnet", name),
        )

        # enable public IP on instance launch
        client = subnet.meta.client
        with _delete_on_error(
            "subnet {}".format(subnet.id),
            lambda: client.delete_subnet(SubnetId=subnet.id),
        ):
            client.modify_subnet_attribute(
                SubnetId=subnet.id, MapPublicIpOnLaunch={"Value": True}
            )

        return subnet.id

    def create_route_table(self, name, gateway_id, subnet_ids):
        """Create a route table sending internet traffic to the gateway.

        The table is associated with every subnet in `subnet_ids`.

        Returns:
            Route table id

        """
        logger.debug("creating routing table for vpc %s", self.id)
        route_table = self.vpc.create_route_table()
        with _delete_on_error(
            "route table {}".format(route_table.id),
            lambda: self.delete_route_table(route_table.id),
        ):
            _tag_resource(route_table, name)
            route_table.create_route(
                DestinationCidrBlock="0.0.0.0/0", GatewayId=gateway_id
            )
            for subnet_id in subnet_ids:
                route_table.associate_with_subnet(SubnetId=subnet_id)
        return route_table.id

    def delete_internet_gateway(self, gateway_id):
        """Detach an internet gateway from the VPC and delete it."""
        logger.debug("deleting internet gateway %s", gateway_id)
        client = self.vpc.meta.client
        _detach_gateway(client, gateway_id, self.id)
        client.delete_internet_gateway(InternetGatewayId=gateway_id)

    def delete_route_table(self, route_table_id):
        """Disassociate a route table from its subnets and delete it."""
        client = self.vpc.meta.client
        response = client.describe_route_tables(RouteTableIds=[route_table_id])
        for table in response["RouteTables"]:
            for association in table.get("Associations", []):
                if association.get("Main"):
                    continue
                client.disassociate_route_table(
                    AssociationId=association["RouteTableAssociationId"]
                )
        logger.debug("deleting routing table %s", route_table_id)
        client.delete_route_table(RouteTableId=route_table_id)

    @staticmethod
    @retry_dependency_violation
    def delete_subnet(client, subnet_id):
        """Delete a subnet, waiting for instances to release it."""
        logger.debug("deleting subnet %s", subnet_id)
        client.delete_subnet(SubnetId=subnet_id)

    def delete(self):
        """Terminate all associated instances and delete an entire VPC."""
        client = self.vpc.meta.client
        for instance in self.vpc.instances.all():
            logger.debug("waiting for instance %s termination", instance.id)
            instance.terminate()
            instance.wait_until_terminated()

        for security_group in self.vpc.security_groups.all():
            if security_group.group_name == "default":
                continue
            logger.debug("deleting security group %s", security_group.id)
            security_group.delete()

        for subnet in self.vpc.subnets.all():
            self.delete_subnet(client, subnet.id)

        for route_table in self.vpc.route_tables.all():
            if any(a.get("Main") for a in route_table.associations_attribute):
                continue
            self.delete_route_table(route_table.id)

        for gateway in self.vpc.internet_gateways.all():
            self.delete_internet_gateway(gateway.id)

        self.delete_vpc()

    @retry_dependency_violation
    def delete_vpc(self):
        """Delete the VPC itself; every dependent must be gone already."""
        logger.debug("deleting vpc %s", self.vpc.id)
        self.vpc.delete()


@retry_dependency_violation
def _detach_gateway(client, gateway_id, vpc_id):
    """Detach a gateway, waiting for public addresses to be released."""
    try:
        client.detach_internet_gateway(
            InternetGatewayId=gateway_id, VpcId=vpc_id
        )
    except ClientError as error:
        if is_aws_error("Gateway.NotAttached")(error):
            return
        raise
