"""Test the errors.py module."""
import pytest
from botocore.exceptions import ClientError

from asgstack.errors import (
    CleanupError,
    CloudError,
    ResourceNotFoundError,
    ResourceType,
)


class TestResourceType:
    """Tests related to `ResourceType`."""

    @pytest.mark.parametrize(
        "item",
        list(map(lambda item: pytest.param(item, id=item.name), ResourceType)),
    )
    def test_str_representable(self, item):
        """Test that all instances of `ResourceType` are convertible to str."""
        assert str(item)
        assert "_" not in str(item)

    def test_multi_word(self):
        assert str(ResourceType.AUTO_SCALING_GROUP) == "auto scaling group"


class TestResourceNotFoundError:
    """Tests related to `ResourceNotFoundError`."""

    @pytest.mark.parametrize(
        ["exception", "expected_msg"],
        [
            (
                ResourceNotFoundError(
                    resource_type=ResourceType.INSTANCE,
                    resource_id="id",
                    resource_name="name",
                    custom_key="custom_key",
                ),
                (
                    "Could not locate the resource type `instance`: "
                    "id=id, name=name, custom_key=custom_key"
                ),
            ),
            (
                ResourceNotFoundError(
                    resource_type=ResourceType.IMAGE,
                    resource_id="id",
                    custom_key="custom_key",
                ),
                (
                    "Could not locate the resource type `image`: "
                    "id=id, custom_key=custom_key"
                ),
            ),
            (
                ResourceNotFoundError(
                    resource_type=ResourceType.LAUNCH_TEMPLATE,
                    resource_name="name",
                ),
                (
                    "Could not locate the resource type `launch template`: "
                    "name=name"
                ),
            ),
            (
                ResourceNotFoundError(
                    resource_type=ResourceType.VPC,
                ),
                ("Could not locate the resource type `vpc`"),
            ),
        ],
    )
    def test_exception_message(self, exception, expected_msg):
        """Test that exceptions have correct error messages."""
        assert expected_msg == str(exception)


class TestCloudError:
    """Tests related to `CloudError`."""

    def test_code_from_client_error(self):
        error = ClientError(
            {"Error": {"Code": "VpcLimitExceeded", "Message": "too many"}},
            "CreateVpc",
        )
        cloud_error = CloudError(error, step="vpc")
        assert cloud_error.code == "VpcLimitExceeded"
        assert cloud_error.step == "vpc"
        assert str(cloud_error).startswith("Step `vpc` failed: ")
        assert "VpcLimitExceeded" in str(cloud_error)

    def test_other_error(self):
        cloud_error = CloudError(RuntimeError("boom"))
        assert cloud_error.code is None
        assert str(cloud_error) == "boom"


def test_cleanup_error_lists_exceptions():
    error = CleanupError([ValueError("one"), KeyError("two")])
    assert len(error.exceptions) == 2
    assert str(error) == "2 error(s) during cleanup: one; 'two'"
