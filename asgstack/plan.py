# This file is part of asgstack. See LICENSE file for license information.
"""Dependency ordering of the resources making up a stack.

A plan is a list of steps. Each step creates a single AWS resource and
names the steps whose identifiers it consumes. The plan only orders
steps; `asgstack.stack.Stack` is what talks to AWS.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

from asgstack.errors import PlanError, ResourceType

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Step:
    """A single resource to create, and the steps it depends on."""

    key: str
    resource_type: ResourceType
    depends_on: Tuple[str, ...] = ()


class Plan:
    """Ordered, validated collection of steps."""

    def __init__(self, steps: Iterable[Step]):
        """Validate the steps and compute the creation order.

        Args:
            steps: steps in declaration order. Ties in the dependency
                order keep this order.

        Raises:
            PlanError: on duplicate keys, unknown dependencies or cycles
        """
        self.steps: Dict[str, Step] = {}
        for step in steps:
            if step.key in self.steps:
                raise PlanError("Duplicate step `{}`".format(step.key))
            self.steps[step.key] = step
        for step in self.steps.values():
            for dependency in step.depends_on:
                if dependency not in self.steps:
                    raise PlanError(
                        "Step `{}` depends on unknown step `{}`".format(
                            step.key, dependency
                        )
                    )
        self._order = self._sort()

    def __iter__(self):
        """Iterate over steps in creation order."""
        return iter(self.order())

    def __len__(self):
        """Return number of steps."""
        return len(self.steps)

    def __contains__(self, key):
        """Return True if a step named `key` exists."""
        return key in self.steps

    def __getitem__(self, key) -> Step:
        """Return step named `key`."""
        return self.steps[key]

    def _sort(self) -> List[Step]:
        """Topologically sort steps (Kahn), keeping declaration order."""
        remaining = {
            key: set(step.depends_on) for key, step in self.steps.items()
        }
        order: List[Step] = []
        while remaining:
            ready = [key for key, deps in remaining.items() if not deps]
            if not ready:
                raise PlanError(
                    "Dependency cycle between steps: {}".format(
                        ", ".join(sorted(remaining))
                    )
                )
            key = ready[0]
            order.append(self.steps[key])
            del remaining[key]
            for deps in remaining.values():
                deps.discard(key)
        return order

    def order(self) -> List[Step]:
        """Return steps in the order they must be created."""
        return list(self._order)

    def teardown_order(self) -> List[Step]:
        """Return steps in the order they must be deleted."""
        return list(reversed(self._order))

    def dependents(self, key: str) -> List[Step]:
        """Return every step that depends on `key`, directly or not.

        Steps are returned in creation order.
        """
        if key not in self.steps:
            raise PlanError("Unknown step `{}`".format(key))
        found = {key}
        result = []
        for step in self._order:
            if found.intersection(step.depends_on):
                found.add(step.key)
                result.append(step)
        return result

    def describe(self) -> str:
        """Render the creation and teardown order as text."""
        lines = ["Creation order:"]
        for i, step in enumerate(self._order, start=1):
            after = (
                " (after {})".format(", ".join(step.depends_on))
                if step.depends_on
                else ""
            )
            lines.append(
                "  {}. {} [{}]{}".format(i, step.key, step.resource_type, after)
            )
        lines.append("Teardown order:")
        for i, step in enumerate(self.teardown_order(), start=1):
            lines.append("  {}. {}".format(i, step.key))
        return "\n".join(lines)


def default_stack_plan() -> Plan:
    """Plan for the VPC and Auto Scaling Group running the Flask app."""
    return Plan(
        [
            Step("vpc", ResourceType.VPC),
            Step(
                "internet_gateway", ResourceType.INTERNET_GATEWAY, ("vpc",)
            ),
            Step("subnet_a", ResourceType.SUBNET, ("vpc",)),
            Step("subnet_b", ResourceType.SUBNET, ("vpc",)),
            Step(
                "route_table",
                ResourceType.ROUTE_TABLE,
                ("vpc", "internet_gateway", "subnet_a", "subnet_b"),
            ),
            Step("security_group", ResourceType.SECURITY_GROUP, ("vpc",)),
            Step("image", ResourceType.IMAGE),
            Step(
                "launch_template",
                ResourceType.LAUNCH_TEMPLATE,
                ("image", "security_group"),
            ),
            Step(
                "auto_scaling_group",
                ResourceType.AUTO_SCALING_GROUP,
                ("launch_template", "subnet_a", "subnet_b", "route_table"),
            ),
            Step(
                "scaling_policy",
                ResourceType.SCALING_POLICY,
                ("auto_scaling_group",),
            ),
        ]
    )


def default_instance_plan(key_pair: bool = False) -> Plan:
    """Plan for a single instance in the account's default VPC.

    With `key_pair`, the cloud's public key is imported as an EC2 key pair
    named after the stack tag and attached to the instance.
    """
    steps = [
        Step("security_group", ResourceType.SECURITY_GROUP),
        Step("image", ResourceType.IMAGE),
    ]
    depends_on: Tuple[str, ...] = ("security_group", "image")
    if key_pair:
        steps.append(Step("key_pair", ResourceType.KEY_PAIR))
        depends_on += ("key_pair",)
    steps.append(Step("instance", ResourceType.INSTANCE, depends_on))
    return Plan(steps)
