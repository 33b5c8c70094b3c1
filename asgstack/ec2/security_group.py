# This file is part of asgstack. See LICENSE file for license information.
"""Security groups and their ingress rules."""

import logging
from typing import Iterable, List

from botocore.exceptions import ClientError

from asgstack.ec2.util import _delete_on_error, _tag_specifications
from asgstack.ec2.vpc import retry_dependency_violation
from asgstack.errors import CloudError
from asgstack.types import IngressRule

logger = logging.getLogger(__name__)


class SecurityGroup:
    """Proxy for an AWS security group."""

    def __init__(self, client, group_id):
        """Wrap an existing security group.

        Args:
            client: boto3 EC2 client
            group_id: id of the security group
        """
        self._client = client
        self.id = group_id

    @classmethod
    def create(
        cls,
        client,
        name,
        vpc_id,
        rules: Iterable[IngressRule] = (),
        description="asgstack created security group",
    ):
        """Create a security group in `vpc_id` and open `rules`.

        Args:
            client: boto3 EC2 client
            name: group name, also used as the stack tag
            vpc_id: VPC the group belongs to
            rules: inbound rules to authorize
            description: free-form group description

        Returns:
            asgstack.ec2.SecurityGroup instance

        """
        logger.debug("creating security group %s in vpc %s", name, vpc_id)
        try:
            response = client.create_security_group(
                GroupName=name,
                Description=description,
                VpcId=vpc_id,
                TagSpecifications=_tag_specifications("security-group", name),
            )
        except ClientError as error:
            raise CloudError(error) from error
        group = cls(client, response["GroupId"])
        with _delete_on_error(
            "security group {}".format(group.id), group.delete
        ):
            group.authorize_ingress(rules)
        return group

    def authorize_ingress(self, rules: Iterable[IngressRule]):
        """Open inbound access for each rule."""
        permissions = [rule.to_permission() for rule in rules]
        if not permissions:
            return
        for permission in permissions:
            logger.debug(
                "authorizing %s %s-%s from %s on %s",
                permission["IpProtocol"],
                permission["FromPort"],
                permission["ToPort"],
                permission["IpRanges"][0]["CidrIp"],
                self.id,
            )
        self._client.authorize_security_group_ingress(
            GroupId=self.id, IpPermissions=permissions
        )

    def ingress_rules(self) -> List[IngressRule]:
        """Return the inbound rules currently set on the group."""
        response = self._client.describe_security_groups(GroupIds=[self.id])
        rules = []
        for permission in response["SecurityGroups"][0]["IpPermissions"]:
            protocol = permission["IpProtocol"]
            for ip_range in permission.get("IpRanges", []):
                rules.append(
                    IngressRule(
                        from_port=permission.get("FromPort", -1),
                        to_port=permission.get("ToPort", -1),
                        protocol=protocol,
                        cidr=ip_range["CidrIp"],
                        description=ip_range.get("Description", ""),
                    )
                )
        return rules

    @retry_dependency_violation
    def delete(self):
        """Delete the group, waiting for instances to release it."""
        logger.debug("deleting security group %s", self.id)
        self._client.delete_security_group(GroupId=self.id)
