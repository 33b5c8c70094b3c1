# This file is part of asgstack. See LICENSE file for license information.
"""This module contains types and enums used by asgstack."""

import enum
import ipaddress
from dataclasses import dataclass, field, fields
from typing import Any, List, Mapping, Optional


@enum.unique
class ImageType(enum.Enum):
    """Allowed image types when looking up Ubuntu AMIs."""

    GENERIC = "generic"
    MINIMAL = "minimal"


@dataclass(frozen=True)
class IngressRule:
    """A single inbound rule of a security group.

    A protocol of "-1" means all protocols, in which case the ports are
    ignored by AWS and must be -1.
    """

    from_port: int
    to_port: int
    protocol: str = "tcp"
    cidr: str = "0.0.0.0/0"
    description: str = ""

    def __post_init__(self):
        """Post initialization checks for IngressRule."""
        if self.protocol == "-1":
            if (self.from_port, self.to_port) != (-1, -1):
                raise ValueError("All-protocol rules must use ports -1")
        elif not 0 <= self.from_port <= self.to_port <= 65535:
            raise ValueError(
                "Invalid port range {}-{}".format(self.from_port, self.to_port)
            )
        ipaddress.ip_network(self.cidr)

    def to_permission(self) -> dict:
        """Convert to an IpPermissions entry for the EC2 API."""
        ip_range = {"CidrIp": self.cidr}
        if self.description:
            ip_range["Description"] = self.description
        return {
            "IpProtocol": self.protocol,
            "FromPort": self.from_port,
            "ToPort": self.to_port,
            "IpRanges": [ip_range],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "IngressRule":
        """Build a rule from a config table.

        A lone ``port`` key stands for a single-port range.
        """
        data = dict(data)
        port = data.pop("port", None)
        if port is not None:
            data.setdefault("from_port", port)
            data.setdefault("to_port", port)
        return cls(**data)


def _default_ingress_rules() -> List[IngressRule]:
    return [
        IngressRule(22, 22, description="ssh"),
        IngressRule(80, 80, description="http"),
    ]


@dataclass
class ScalingConfig:
    """Fleet sizing and scaling policy of the Auto Scaling Group."""

    min_size: int = 1
    max_size: int = 3
    desired_capacity: int = 2
    target_cpu: float = 50.0
    health_check_grace_period: int = 300

    def __post_init__(self):
        """Post initialization checks for ScalingConfig."""
        if not 0 <= self.min_size <= self.desired_capacity <= self.max_size:
            raise ValueError(
                "Expected 0 <= min_size <= desired_capacity <= max_size, "
                "got {}/{}/{}".format(
                    self.min_size, self.desired_capacity, self.max_size
                )
            )
        if not 0 < self.target_cpu <= 100:
            raise ValueError(
                "target_cpu must be in (0, 100], got {}".format(
                    self.target_cpu
                )
            )


@dataclass
class StackSettings:
    """Everything needed to build the sample Flask application stack.

    Either `image_id` is given, or the latest Ubuntu image for `release`
    and `arch` is looked up at apply time.
    """

    vpc_cidr: str = "10.0.0.0/16"
    subnet_cidrs: List[str] = field(
        default_factory=lambda: ["10.0.1.0/24", "10.0.2.0/24"]
    )
    instance_type: str = "t3.micro"
    release: str = "noble"
    arch: str = "x86_64"
    image_id: Optional[str] = None
    app_port: int = 80
    key_name: Optional[str] = None
    ingress_rules: List[IngressRule] = field(
        default_factory=_default_ingress_rules
    )
    scaling: ScalingConfig = field(default_factory=ScalingConfig)

    def __post_init__(self):
        """Post initialization checks for StackSettings."""
        vpc_net = ipaddress.ip_network(self.vpc_cidr)
        if len(self.subnet_cidrs) != 2:
            raise ValueError("Exactly two subnet CIDRs are required")
        subnets = [ipaddress.ip_network(cidr) for cidr in self.subnet_cidrs]
        for subnet in subnets:
            if not subnet.subnet_of(vpc_net):
                raise ValueError(
                    "Subnet {} is not inside VPC {}".format(subnet, vpc_net)
                )
        if subnets[0].overlaps(subnets[1]):
            raise ValueError("Subnet CIDRs must not overlap")
        if not 0 < self.app_port <= 65535:
            raise ValueError("Invalid app_port {}".format(self.app_port))

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "StackSettings":
        """Create settings from the [stack] table of asgstack.toml.

        Unknown keys are rejected so typos don't silently fall back to
        defaults.
        """
        config = dict(config)
        scaling_keys = {f.name for f in fields(ScalingConfig)}
        known = ({f.name for f in fields(cls)} - {"scaling"}) | scaling_keys
        unknown = set(config) - known
        if unknown:
            raise ValueError(
                "Unknown [stack] setting(s): {}".format(
                    ", ".join(sorted(unknown))
                )
            )
        scaling = ScalingConfig(
            **{k: config.pop(k) for k in list(config) if k in scaling_keys}
        )
        if "ingress_rules" in config:
            config["ingress_rules"] = [
                IngressRule.from_dict(rule) for rule in config["ingress_rules"]
            ]
        return cls(scaling=scaling, **config)

    def app_ingress_rules(self) -> List[IngressRule]:
        """Return the ingress rules, adding the app port if not covered."""
        rules = list(self.ingress_rules)
        covered = any(
            rule.protocol == "-1"
            or (
                rule.protocol == "tcp"
                and rule.from_port <= self.app_port <= rule.to_port
            )
            for rule in rules
        )
        if not covered:
            rules.append(
                IngressRule(self.app_port, self.app_port, description="app")
            )
        return rules
