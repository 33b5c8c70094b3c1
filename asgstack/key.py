# This file is part of asgstack. See LICENSE file for license information.
"""SSH key given to the instances of a stack."""

import os
from dataclasses import dataclass
from typing import Optional

from asgstack.errors import AsgstackError, UnsetSSHKeyError


def _expand(path: str) -> str:
    return os.path.expanduser(os.path.expandvars(path))


@dataclass(frozen=True)
class KeyPair:
    """Local SSH key and the EC2 key pair name it is imported under.

    Without a public key path the key is unset: instances are launched
    without SSH access unless `[stack] key_name` names an existing pair.
    """

    public_key_path: Optional[str] = None
    private_key_path: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_paths(
        cls,
        public_key_path: Optional[str],
        private_key_path: Optional[str] = None,
        name: Optional[str] = None,
    ) -> "KeyPair":
        """Build a key pair from configured paths.

        `~` and environment variables are expanded. The private key
        defaults to the public key path without its ".pub" suffix.
        """
        if not public_key_path:
            return cls(name=name)
        public_key_path = _expand(public_key_path)
        if private_key_path:
            private_key_path = _expand(private_key_path)
        elif public_key_path.endswith(".pub"):
            private_key_path = public_key_path[: -len(".pub")]
        else:
            private_key_path = public_key_path
        return cls(public_key_path, private_key_path, name)

    @property
    def public_key_content(self) -> str:
        """Public key in OpenSSH format, without trailing newline.

        Raises:
            UnsetSSHKeyError: if no public key path is set
            AsgstackError: if the public key file cannot be read
        """
        if self.public_key_path is None:
            raise UnsetSSHKeyError()
        try:
            with open(self.public_key_path, encoding="utf-8") as key_file:
                return key_file.read().strip()
        except OSError as e:
            raise AsgstackError(
                "Cannot read public key {}: {}".format(
                    self.public_key_path, e.strerror or e
                )
            ) from e
