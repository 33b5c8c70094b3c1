"""Tests related to asgstack.plan module."""

import pytest

from asgstack.errors import PlanError, ResourceType
from asgstack.plan import (
    Plan,
    Step,
    default_instance_plan,
    default_stack_plan,
)


def keys(steps):
    return [step.key for step in steps]


class TestDefaultPlans:
    def test_stack_creation_order(self):
        assert keys(default_stack_plan().order()) == [
            "vpc",
            "internet_gateway",
            "subnet_a",
            "subnet_b",
            "route_table",
            "security_group",
            "image",
            "launch_template",
            "auto_scaling_group",
            "scaling_policy",
        ]

    def test_stack_teardown_order_is_reversed(self):
        plan = default_stack_plan()
        assert keys(plan.teardown_order()) == list(
            reversed(keys(plan.order()))
        )
        assert keys(plan.teardown_order())[0] == "scaling_policy"
        assert keys(plan.teardown_order())[-1] == "vpc"

    def test_every_step_after_its_dependencies(self):
        plan = default_stack_plan()
        position = {key: i for i, key in enumerate(keys(plan.order()))}
        for step in plan:
            for dependency in step.depends_on:
                assert position[dependency] < position[step.key]

    def test_instance_plan(self):
        plan = default_instance_plan()
        assert keys(plan.order()) == ["security_group", "image", "instance"]
        assert plan["instance"].resource_type == ResourceType.INSTANCE

    def test_instance_plan_with_key_pair(self):
        plan = default_instance_plan(key_pair=True)
        assert keys(plan.order()) == [
            "security_group",
            "image",
            "key_pair",
            "instance",
        ]
        assert plan["instance"].depends_on == (
            "security_group",
            "image",
            "key_pair",
        )
        assert keys(plan.teardown_order())[:2] == ["instance", "key_pair"]


class TestPlan:
    def test_declaration_order_breaks_ties(self):
        plan = Plan(
            [
                Step("b", ResourceType.SUBNET, ("root",)),
                Step("root", ResourceType.VPC),
                Step("a", ResourceType.SUBNET, ("root",)),
            ]
        )
        assert keys(plan.order()) == ["root", "b", "a"]

    def test_duplicate_key(self):
        with pytest.raises(PlanError, match="Duplicate step `vpc`"):
            Plan([Step("vpc", ResourceType.VPC), Step("vpc", ResourceType.VPC)])

    def test_unknown_dependency(self):
        with pytest.raises(PlanError, match="unknown step `vpc`"):
            Plan([Step("subnet", ResourceType.SUBNET, ("vpc",))])

    def test_cycle(self):
        with pytest.raises(PlanError) as exc_info:
            Plan(
                [
                    Step("vpc", ResourceType.VPC),
                    Step("a", ResourceType.SUBNET, ("vpc", "b")),
                    Step("b", ResourceType.SUBNET, ("a",)),
                ]
            )
        assert str(exc_info.value) == "Dependency cycle between steps: a, b"

    def test_dependents_are_transitive(self):
        plan = default_stack_plan()
        assert keys(plan.dependents("security_group")) == [
            "launch_template",
            "auto_scaling_group",
            "scaling_policy",
        ]
        assert plan.dependents("scaling_policy") == []
        assert len(plan.dependents("vpc")) == len(plan) - 2

    def test_dependents_unknown_step(self):
        with pytest.raises(PlanError):
            default_stack_plan().dependents("nope")

    def test_container_protocol(self):
        plan = default_instance_plan()
        assert len(plan) == 3
        assert "image" in plan
        assert "vpc" not in plan

    def test_describe(self):
        text = default_instance_plan().describe()
        assert text.splitlines() == [
            "Creation order:",
            "  1. security_group [security group]",
            "  2. image [image]",
            "  3. instance [instance] (after security_group, image)",
            "Teardown order:",
            "  1. instance",
            "  2. image",
            "  3. security_group",
        ]
