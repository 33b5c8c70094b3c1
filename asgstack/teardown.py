# This file is part of asgstack. See LICENSE file for license information.
"""Order in which the resources of a stack are deleted."""

from typing import List, Mapping, NamedTuple

from asgstack.errors import ResourceType
from asgstack.plan import Plan

# Public AMIs are not owned by the stack, and scaling policies go away with
# their Auto Scaling Group.
RETAINED_TYPES = frozenset({ResourceType.IMAGE, ResourceType.SCALING_POLICY})


class TeardownItem(NamedTuple):
    """A single resource to delete."""

    key: str
    resource_type: ResourceType
    identifier: str


def plan_teardown(
    plan: Plan, outputs: Mapping[str, str]
) -> List[TeardownItem]:
    """Return the resources to delete, dependents first.

    Steps that never produced an identifier are skipped, so a partially
    applied stack tears down cleanly.
    """
    items = []
    for step in plan.teardown_order():
        if step.resource_type in RETAINED_TYPES:
            continue
        identifier = outputs.get(step.key)
        if not identifier:
            continue
        items.append(TeardownItem(step.key, step.resource_type, identifier))
    return items
