# This file is part of asgstack. See LICENSE file for license information.
"""AWS EC2 Cloud type."""

import os
from typing import List, Optional

import botocore

from asgstack.cloud import BaseCloud
from asgstack.config import ConfigFile
from asgstack.ec2.instance import EC2Instance
from asgstack.ec2.util import _get_session, _tag_specifications
from asgstack.ec2.vpc import VPC
from asgstack.errors import CloudSetupError, ImageNotFoundError
from asgstack.types import ImageType

# Images before mantic don't have gp3 disk type
NO_GP3_RELEASES = ["xenial", "bionic", "focal", "jammy"]

CANONICAL_OWNER = "099720109477"


class EC2(BaseCloud):
    """EC2 Cloud Class."""

    _type = "ec2"

    def __init__(
        self,
        tag: str,
        timestamp_suffix: bool = True,
        config_file: Optional[ConfigFile] = None,
        *,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        region: Optional[str] = None,
    ):
        """Initialize the connection to EC2 and Auto Scaling.

        boto3 will read a users /home/$USER/.aws/* files if no
        arguments are provided here to find values.

        Args:
            tag: string used to name and tag resources with
            timestamp_suffix: bool set True to append a timestamp suffix to the
                tag
            config_file: path to asgstack configuration file
            access_key_id: user's access key ID
            secret_access_key: user's secret access key
            region: region to login to
        """
        super().__init__(
            tag,
            timestamp_suffix,
            config_file,
            required_values=[access_key_id, secret_access_key, region],
        )
        self._log.debug("logging into EC2")

        try:
            session = _get_session(
                access_key_id or self.config.get("access_key_id"),
                secret_access_key or self.config.get("secret_access_key"),
                region or self.config.get("region"),
            )
            self.client = session.client("ec2")
            self.resource = session.resource("ec2")
            self.autoscaling = session.client("autoscaling")
            self.region = session.region_name
        except botocore.exceptions.NoRegionError as e:
            raise CloudSetupError(
                "Please configure default region in $HOME/.aws/config"
            ) from e
        except botocore.exceptions.NoCredentialsError as e:
            raise CloudSetupError(
                "Please configure ec2 credentials in $HOME/.aws/credentials"
            ) from e

    def default_vpc(self) -> VPC:
        """Return the account's default VPC for this region."""
        return VPC.default(self.resource)

    def released_image(
        self,
        release: str,
        *,
        arch: str = "x86_64",
        image_type: ImageType = ImageType.GENERIC,
        **kwargs,
    ):
        """Find the id of the latest released image for a particular release.

        Args:
            release: string, Ubuntu release to look for
            arch: string, architecture to use
            image_type: generic server or minimal image

        Returns:
            string, id of latest image

        """
        self._log.debug("finding released Ubuntu image for %s", release)
        image = self._find_latest_image(
            release=release, arch=arch, image_type=image_type, daily=False
        )
        return image["ImageId"]

    def daily_image(
        self,
        release: str,
        *,
        arch: str = "x86_64",
        image_type: ImageType = ImageType.GENERIC,
        **kwargs,
    ):
        """Find the id of the latest daily image for a particular release.

        Args:
            release: string, Ubuntu release to look for
            arch: string, architecture to use
            image_type: generic server or minimal image

        Returns:
            string, id of latest image

        """
        self._log.debug("finding daily Ubuntu image for %s", release)
        image = self._find_latest_image(
            release=release, arch=arch, image_type=image_type, daily=True
        )
        return image["ImageId"]

    def check_image(self, image_id: str) -> str:
        """Ensure `image_id` exists and is available.

        Raises:
            ImageNotFoundError: if it does not
        """
        try:
            images = self.client.describe_images(ImageIds=[image_id])
        except botocore.exceptions.ClientError as e:
            raise ImageNotFoundError(image_id) from e
        if not images.get("Images"):
            raise ImageNotFoundError(image_id)
        state = images["Images"][0].get("State", "available")
        if state != "available":
            raise ImageNotFoundError(image_id, state=state)
        return image_id

    def _get_name_for_image_type(
        self, release: str, image_type: ImageType, daily: bool
    ):
        disk_type = "hvm-ssd" if release in NO_GP3_RELEASES else "hvm-ssd-gp3"
        if image_type not in (ImageType.GENERIC, ImageType.MINIMAL):
            raise ValueError("Invalid image_type")
        minimal = image_type == ImageType.MINIMAL
        return "ubuntu{}/{}/{}/ubuntu-{}{}-*-{}-*".format(
            "-minimal" if minimal else "",
            "images-testing" if daily else "images",
            disk_type,
            release,
            "-daily" if daily else "",
            "minimal" if minimal else "server",
        )

    def _get_search_filters(
        self, release: str, arch: str, image_type: ImageType, daily: bool
    ):
        return [
            {
                "Name": "name",
                "Values": [
                    self._get_name_for_image_type(release, image_type, daily)
                ],
            },
            {
                "Name": "architecture",
                "Values": [arch],
            },
        ]

    def _find_latest_image(
        self,
        release: str,
        arch: str,
        image_type: ImageType,
        daily: bool,
    ):
        filters = self._get_search_filters(
            release=release, arch=arch, image_type=image_type, daily=daily
        )

        images = self.client.describe_images(
            Owners=[CANONICAL_OWNER],
            Filters=filters,
        )

        if not images.get("Images"):
            raise ImageNotFoundError(
                resource_name=filters[0]["Values"][0],
                release=release,
                arch=arch,
            )

        return sorted(images["Images"], key=lambda x: x["CreationDate"])[-1]

    def delete_key(self, name):
        """Delete an uploaded key.

        Args:
            name: The key name to delete.
        """
        self._log.debug("deleting SSH key %s", name)
        self.client.delete_key_pair(KeyName=name)

    def get_instance(self, instance_id):
        """Get an instance by id.

        Args:
            instance_id: ID used to identify the instance

        Returns:
            An instance object to use to manipulate the instance further.

        """
        return EC2Instance(self.client, self.resource.Instance(instance_id))

    def launch(
        self,
        image_id,
        instance_type="t3.micro",
        user_data=None,
        *,
        security_group_ids: Optional[List[str]] = None,
        subnet_id: Optional[str] = None,
        key_name: Optional[str] = None,
        disk_size_gb: int = 8,
        **kwargs,
    ):
        """Launch instance on EC2.

        Args:
            image_id: string, AMI ID to use
            instance_type: string, instance type to launch
            user_data: string, user-data to pass to instance
            security_group_ids: groups to attach to the instance
            subnet_id: subnet to launch in; the default VPC's default
                subnet when unset
            key_name: SSH key pair name
            disk_size_gb: size of instance disk in GB
            kwargs: other named arguments to add to instance JSON

        Returns:
            EC2 Instance object
        Raises: ValueError on invalid image_id
        """
        if not image_id:
            raise ValueError(
                f"{self._type} launch requires image_id param."
                f" Found: {image_id}"
            )
        args = {
            "ImageId": image_id,
            "InstanceType": instance_type,
            "MaxCount": 1,
            "MinCount": 1,
            "TagSpecifications": _tag_specifications("instance", self.tag),
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
        }

        if user_data:
            args["UserData"] = user_data
        if security_group_ids:
            args["SecurityGroupIds"] = list(security_group_ids)
        if subnet_id:
            args["SubnetId"] = subnet_id
        if key_name:
            args["KeyName"] = key_name

        for key, value in kwargs.items():
            args[key] = value

        self._log.debug("launching instance from %s", image_id)
        instances = self.resource.create_instances(**args)
        instance = EC2Instance(self.client, instances[0])
        self.created_instances.append(instance)

        return instance

    def list_keys(self):
        """List all ssh key pair names loaded on this EC2 region."""
        keypair_names = []
        for keypair in self.client.describe_key_pairs()["KeyPairs"]:
            keypair_names.append(keypair["KeyName"])
        return keypair_names

    def upload_key(self, public_key_path, private_key_path=None, name=None):
        """Import a public key to EC2 and use it.

        Args:
            public_key_path: path to the public key to upload
            private_key_path: path to the private key
            name: name to reference key by
        """
        self.use_key(public_key_path, private_key_path, name)
        self._log.debug("uploading SSH key %s", self.key_pair.name)
        self.client.import_key_pair(
            KeyName=self.key_pair.name,
            PublicKeyMaterial=self.key_pair.public_key_content,
            TagSpecifications=_tag_specifications("key-pair", self.tag),
        )
        self.created_keys.append(self.key_pair.name)

    def generate_key(self, private_key_path, name=None):
        """Generate a new key pair, save it locally and use it.

        The private key is written with mode 0600 and the public key next
        to it with a ".pub" suffix. Importing it into EC2 is left to the
        `key_pair` step of a stack, which also deletes it again.

        Args:
            private_key_path: where to write the private key
            name: name to reference key by; defaults to the tag
        """
        public_key, private_key = self.create_key_pair()
        private_key_path = os.path.expanduser(private_key_path)
        public_key_path = private_key_path + ".pub"
        with open(
            os.open(
                private_key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600
            ),
            "w",
            encoding="utf-8",
        ) as key_file:
            key_file.write(private_key)
        with open(public_key_path, "w", encoding="utf-8") as key_file:
            key_file.write(public_key + "\n")
        self.use_key(public_key_path, private_key_path, name)

    def use_key(self, public_key_path, private_key_path=None, name=None):
        """Use an existing already uploaded key.

        Args:
            public_key_path: path to the public key to upload
            private_key_path: path to the private key to upload
            name: name to reference key by
        """
        if not name:
            name = self.tag
        super().use_key(public_key_path, private_key_path, name)
