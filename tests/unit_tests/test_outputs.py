"""Tests related to asgstack.outputs module."""

import pytest

from asgstack.outputs import StackOutputs


def test_missing_key_message():
    outputs = StackOutputs(tag="flask-1017")
    with pytest.raises(KeyError) as exc_info:
        outputs["vpc"]
    assert "`vpc`" in str(exc_info.value)
    assert "flask-1017" in str(exc_info.value)


def test_get_does_not_raise():
    assert StackOutputs(tag="flask").get("vpc") is None


def test_dump_and_load(tmp_path):
    path = tmp_path / "stack.toml"
    outputs = StackOutputs(
        {"vpc": "vpc-1", "subnet_a": "subnet-a"}, tag="flask-1017"
    )
    outputs.dump(path)

    loaded = StackOutputs.load(path)
    assert loaded.tag == "flask-1017"
    assert loaded == {"vpc": "vpc-1", "subnet_a": "subnet-a"}
    assert 'tag = "flask-1017"' in path.read_text()


def test_load_without_tag(tmp_path):
    path = tmp_path / "stack.toml"
    path.write_text('[outputs]\nvpc = "vpc-1"\n')
    with pytest.raises(ValueError, match="no tag"):
        StackOutputs.load(path)


def test_load_invalid(tmp_path):
    path = tmp_path / "stack.toml"
    path.write_text("tag = ")
    with pytest.raises(ValueError, match="Could not parse"):
        StackOutputs.load(path)


def test_dump_without_tag(tmp_path):
    path = tmp_path / "stack.toml"
    with pytest.raises(ValueError, match="without a stack tag"):
        StackOutputs({"vpc": "vpc-1"}).dump(path)
    assert not path.exists()
