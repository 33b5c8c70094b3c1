# This file is part of asgstack. See LICENSE file for license information.
"""EC2 launch templates describing how Auto Scaling boots instances."""

import logging
from typing import List, Optional

from botocore.exceptions import ClientError

from asgstack.ec2.util import _encode_user_data, _tag_specifications
from asgstack.errors import CloudError, ResourceNotFoundError, ResourceType
from asgstack.util import stack_tags

logger = logging.getLogger(__name__)


class LaunchTemplate:
    """Proxy for an AWS EC2 launch template."""

    def __init__(self, client, name, template_id=None, version=None):
        """Wrap an existing launch template.

        Args:
            client: boto3 EC2 client
            name: launch template name
            template_id: launch template id, when known
            version: latest version number, when known
        """
        self._client = client
        self.name = name
        self.id = template_id
        self.version = version

    def __repr__(self):
        """Create string representation for class."""
        return "{}(name={}, id={})".format(
            self.__class__.__name__, self.name, self.id
        )

    @classmethod
    def create(
        cls,
        client,
        name,
        image_id,
        instance_type,
        security_group_ids: List[str],
        *,
        user_data: Optional[str] = None,
        key_name: Optional[str] = None,
        disk_size_gb: int = 8,
    ):
        """Create a launch template.

        Args:
            client: boto3 EC2 client
            name: template name, also used as the stack tag
            image_id: AMI id instances boot from
            instance_type: EC2 instance type
            security_group_ids: groups attached to every instance
            user_data: plain text user data; encoded here
            key_name: optional SSH key pair name
            disk_size_gb: size of the root volume

        Returns:
            asgstack.ec2.LaunchTemplate instance

        """
        data = {
            "ImageId": image_id,
            "InstanceType": instance_type,
            "SecurityGroupIds": list(security_group_ids),
            "BlockDeviceMappings": [
                {
                    "DeviceName": "/dev/sda1",
                    "Ebs": {
                        "DeleteOnTermination": True,
                        "VolumeSize": disk_size_gb,
                        "VolumeType": "gp3",
                    },
                }
            ],
            "TagSpecifications": [
                {"ResourceType": "instance", "Tags": stack_tags(name)}
            ],
        }
        if user_data:
            data["UserData"] = _encode_user_data(user_data)
        if key_name:
            data["KeyName"] = key_name

        logger.debug("creating launch template %s from %s", name, image_id)
        try:
            response = client.create_launch_template(
                LaunchTemplateName=name,
                LaunchTemplateData=data,
                TagSpecifications=_tag_specifications(
                    "launch-template", name
                ),
            )
        except ClientError as error:
            raise CloudError(error) from error
        template = response["LaunchTemplate"]
        return cls(
            client,
            template["LaunchTemplateName"],
            template["LaunchTemplateId"],
            template["LatestVersionNumber"],
        )

    @classmethod
    def from_existing(cls, client, name):
        """Look up a launch template by name.

        Raises:
            ResourceNotFoundError: if no template has that name
        """
        try:
            response = client.describe_launch_templates(
                LaunchTemplateNames=[name]
            )
        except ClientError as error:
            code = error.response.get("Error", {}).get("Code", "")
            if code.startswith("InvalidLaunchTemplateName"):
                raise ResourceNotFoundError(
                    ResourceType.LAUNCH_TEMPLATE, resource_name=name
                ) from error
            raise CloudError(error) from error
        template = response["LaunchTemplates"][0]
        return cls(
            client,
            template["LaunchTemplateName"],
            template["LaunchTemplateId"],
            template["LatestVersionNumber"],
        )

    def delete(self):
        """Delete the template and all of its versions."""
        logger.debug("deleting launch template %s", self.name)
        self._client.delete_launch_template(LaunchTemplateName=self.name)
