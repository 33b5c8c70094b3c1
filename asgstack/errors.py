# This file is part of asgstack. See LICENSE file for license information.
"""Module containing asgstack errors.

Every error raised by asgstack inherits from `AsgstackException`, so client
code can catch all of them at once.
"""

import enum
from typing import List, Optional


class AsgstackException(Exception):
    """Root asgstack exception.

    This exception is not meant to be raised by asgstack. The intention
    is that every custom asgstack exception will inherit from this one,
    allowing client code to catch any exception by catching this one.
    """


class AsgstackError(AsgstackException):
    """Error that doesn't fall in any of the other categories."""


class ResourceType(enum.Enum):
    """Represent types of resources managed by a stack."""

    VPC = enum.auto()
    INTERNET_GATEWAY = enum.auto()
    SUBNET = enum.auto()
    ROUTE_TABLE = enum.auto()
    SECURITY_GROUP = enum.auto()
    IMAGE = enum.auto()
    LAUNCH_TEMPLATE = enum.auto()
    AUTO_SCALING_GROUP = enum.auto()
    SCALING_POLICY = enum.auto()
    KEY_PAIR = enum.auto()
    INSTANCE = enum.auto()

    def __str__(self) -> str:  # noqa: D105
        return self.name.lower().replace("_", " ")


class ResourceNotFoundError(AsgstackException):
    """Raised when a resource is not found.

    Examples:
    ---------
    >>> e = ResourceNotFoundError(ResourceType.VPC, "vpc-123")
    >>> e.resource_id
    'vpc-123'
    >>> raise e  # doctest: +ELLIPSIS
    Traceback (most recent call last):
        ...
    asgstack.errors.ResourceNotFoundError: \
Could not locate the resource type `vpc`: id=vpc-123
    """

    def __init__(
        self,
        resource_type: ResourceType,
        resource_id: Optional[str] = None,
        resource_name: Optional[str] = None,
        **kwargs,
    ):
        """Init method.

        :param resource_type: Instance of `ResourceType`
        :param resource_id: Resource's id
        :param resource_name: Resource's name
        """
        super().__init__()
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.resource_name = resource_name
        self._extra_info = kwargs

    def __str__(self) -> str:  # noqa: D105
        resource_info = self.__render_resource()
        msg = f"Could not locate the resource type `{self.resource_type}`"
        if resource_info:
            msg += f": {resource_info}"
        return msg

    def __render_resource(self) -> str:
        parts = []
        if self.resource_id:
            parts.append(f"id={self.resource_id}")
        if self.resource_name:
            parts.append(f"name={self.resource_name}")
        if self._extra_info:
            parts.extend(
                map(
                    lambda item: f"{item[0]}={item[1]}",
                    self._extra_info.items(),
                )
            )
        return ", ".join(parts)


class ImageNotFoundError(ResourceNotFoundError):
    """Specialized `ResourceNotFoundError` for images."""

    def __init__(self, *args, **kwargs):  # noqa: D107
        super().__init__(ResourceType.IMAGE, *args, **kwargs)


class VPCNotFoundError(ResourceNotFoundError):
    """Specialized `ResourceNotFoundError` for VPCs."""

    def __init__(self, *args, **kwargs):  # noqa: D107
        super().__init__(ResourceType.VPC, *args, **kwargs)


class AutoScalingGroupNotFoundError(ResourceNotFoundError):
    """Specialized `ResourceNotFoundError` for Auto Scaling Groups."""

    def __init__(self, *args, **kwargs):  # noqa: D107
        super().__init__(ResourceType.AUTO_SCALING_GROUP, *args, **kwargs)


class CloudSetupError(AsgstackException):
    """Raised if there is some problem with the AWS session set up."""


class CloudError(AsgstackException):
    """Represents errors coming from the AWS SDK.

    `code` holds the AWS error code (e.g. ``DependencyViolation``) when the
    wrapped error is a botocore ``ClientError``. `step` is the plan step
    that was being applied, if any.
    """

    def __init__(self, error: Exception, step: Optional[str] = None):
        """Init method.

        :param error: The underlying SDK exception
        :param step: Key of the plan step that failed
        """
        super().__init__(error)
        self.error = error
        self.step = step
        response = getattr(error, "response", None) or {}
        self.code = response.get("Error", {}).get("Code")

    def __str__(self) -> str:  # noqa: D105
        if self.step:
            return f"Step `{self.step}` failed: {self.error}"
        return str(self.error)


class PlanError(AsgstackException):
    """Raised when a plan has invalid or unmet dependencies."""


class StackTimeoutError(AsgstackException):
    """Timeout error."""


class CleanupError(AsgstackException):
    """Represents a list of exceptions that happen on resource cleanup.

    Don't be too eager to handle this one. If it gets caught and silently
    handled, you're likely to be leaking resources without realizing it.
    """

    def __init__(self, exceptions: List[Exception]):
        """Init method.

        :param exceptions: Every exception raised while deleting
        """
        super().__init__(exceptions)
        self.exceptions = exceptions

    def __str__(self) -> str:  # noqa: D105
        return "{} error(s) during cleanup: {}".format(
            len(self.exceptions), "; ".join(str(e) for e in self.exceptions)
        )


class UnsetSSHKeyError(AsgstackException):
    """Raised when a SSH key is needed but none was configured."""

    def __str__(self) -> str:  # noqa: D105
        return (
            "No public key path set. Set `public_key_path` in the [ec2] "
            "table of asgstack.toml or call `use_key`."
        )
