# This file is part of asgstack. See LICENSE file for license information.
"""EC2 Util Functions."""

import base64
import logging
from contextlib import contextmanager

import boto3
import botocore.session

from asgstack.util import stack_tags

logger = logging.getLogger(__name__)


def _tag_resource(resource, tag_value):
    """Tag a resource with the Name and stack tags.

    This makes finding and deleting resources specific to a stack
    much easier.

    Args:
        resource: boto3 resource to tag
        tag_value: string, the stack tag
    """
    resource.create_tags(Tags=stack_tags(tag_value))


def _tag_specifications(resource_type, tag_value):
    """Return TagSpecifications for create calls that accept them.

    Args:
        resource_type: EC2 resource type, e.g. "instance" or "vpc"
        tag_value: string, the stack tag
    """
    return [{"ResourceType": resource_type, "Tags": stack_tags(tag_value)}]


def _encode_user_data(user_data):
    """Base64 encode user data, as launch templates require."""
    if isinstance(user_data, str):
        user_data = user_data.encode("utf-8")
    return base64.b64encode(user_data).decode("ascii")


def _get_session(access_key_id, secret_access_key, region):
    """Get EC2 session.

    Args:
        access_key_id: user's access key ID
        secret_access_key: user's secret access key
        region: region to login to

    Returns:
        boto3 session object

    """
    return boto3.Session(
        botocore_session=botocore.session.get_session(),
        aws_access_key_id=access_key_id,
        aws_secret_access_key=secret_access_key,
        region_name=region,
    )


@contextmanager
def _delete_on_error(description, undo):
    """Call `undo` if the block fails, then re-raise.

    Wraps the calls that complete a resource after its create call
    succeeded; its id is not recorded anywhere until they all pass.

    Args:
        description: what is being deleted, for logging
        undo: callable deleting the resource
    """
    try:
        yield
    except Exception:
        logger.warning("deleting partially created %s", description)
        try:
            undo()
        except Exception as error:  # pylint: disable=broad-except
            logger.error("could not delete %s: %s", description, error)
        raise
