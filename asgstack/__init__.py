# This file is part of asgstack. See LICENSE file for license information.
"""Main asgstack module __init__."""

import logging

from asgstack.ec2.cloud import EC2
from asgstack.outputs import StackOutputs
from asgstack.plan import Plan, Step, default_instance_plan, default_stack_plan
from asgstack.stack import Stack
from asgstack.types import IngressRule, ScalingConfig, StackSettings

__all__ = [
    "EC2",
    "IngressRule",
    "Plan",
    "ScalingConfig",
    "Stack",
    "StackOutputs",
    "StackSettings",
    "Step",
    "default_instance_plan",
    "default_stack_plan",
]

logging.getLogger(__name__).addHandler(logging.NullHandler())
