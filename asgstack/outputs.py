# This file is part of asgstack. See LICENSE file for license information.
"""Identifiers returned by AWS while applying a stack."""

import logging
from pathlib import Path
from typing import Optional, Union

import toml

log = logging.getLogger(__name__)


class StackOutputs(dict):
    """Map plan step keys to the AWS identifiers they created.

    Later steps read their inputs from here, e.g. the Auto Scaling Group
    reads the subnet ids. The mapping can be written to a TOML file so a
    later process can tear the stack down.
    """

    def __init__(self, *args, tag: Optional[str] = None, **kwargs):
        """Initialize outputs of the stack tagged `tag`."""
        super().__init__(*args, **kwargs)
        self.tag = tag

    def __getitem__(self, key):
        """Provide more meaningful KeyError on access."""
        try:
            return super().__getitem__(key)
        except KeyError:
            raise KeyError(
                "No identifier recorded for step `{}` of stack {}".format(
                    key, self.tag
                )
            ) from None

    def __repr__(self):
        """Create string representation for class."""
        return "{}(tag={}, {})".format(
            self.__class__.__name__, self.tag, dict.__repr__(self)
        )

    def dump(self, path: Union[str, Path]):
        """Write outputs to a TOML file.

        Raises:
            ValueError: if the outputs have no stack tag
        """
        if not self.tag:
            raise ValueError("Cannot write outputs without a stack tag")
        data = {"tag": self.tag, "outputs": dict(self)}
        with open(path, "w", encoding="utf-8") as outputs_file:
            toml.dump(data, outputs_file)
        log.debug("Wrote outputs of %s to %s", self.tag, path)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "StackOutputs":
        """Read outputs written by `dump`.

        Raises:
            ValueError: if the file is not a valid outputs file
        """
        try:
            data = toml.load(path)
        except toml.TomlDecodeError as e:
            raise ValueError(
                "Could not parse outputs file {}".format(path)
            ) from e
        if "tag" not in data:
            raise ValueError("Outputs file {} has no tag".format(path))
        return cls(data.get("outputs", {}), tag=data["tag"])
