#!/usr/bin/env python3
# This file is part of asgstack. See LICENSE file for license information.
"""Command line interface to plan, create and delete stacks."""

import argparse
import logging
import sys
from pathlib import Path

import yaml

from asgstack.config import load_section
from asgstack.ec2.cloud import EC2
from asgstack.errors import AsgstackException
from asgstack.outputs import StackOutputs
from asgstack.plan import default_instance_plan, default_stack_plan
from asgstack.stack import Stack
from asgstack.types import StackSettings

log = logging.getLogger("asgstack")

DEFAULT_TAG = "asgstack"


def _settings(args) -> StackSettings:
    return StackSettings.from_config(load_section("stack", args.config))


def _plan(args, key_pair=False):
    if getattr(args, "instance", False):
        return default_instance_plan(key_pair=key_pair)
    return default_stack_plan()


def _existing_stack(args, plan) -> Stack:
    """Return a stack for resources created by an earlier `up`."""
    outputs = None
    if args.outputs and Path(args.outputs).exists():
        outputs = StackOutputs.load(args.outputs)
        tag = outputs.tag
    elif args.tag:
        tag = args.tag
    else:
        raise SystemExit("Either --tag or an existing --outputs is required")
    cloud = EC2(tag, timestamp_suffix=False, config_file=args.config)
    stack = Stack(cloud, _settings(args), plan, outputs=outputs)
    if outputs is None:
        stack.discover()
    return stack


def cmd_plan(args):
    """Print creation and teardown order."""
    print(_plan(args).describe())


def cmd_up(args):
    """Create the Auto Scaling stack or the standalone instance."""
    cloud = EC2(
        args.tag,
        timestamp_suffix=not args.no_timestamp,
        config_file=args.config,
    )
    generate_key = getattr(args, "generate_key", None)
    if generate_key:
        cloud.generate_key(generate_key)
    stack = Stack(
        cloud,
        _settings(args),
        _plan(args, key_pair=bool(generate_key)),
        rollback=args.rollback,
    )
    try:
        stack.apply()
    finally:
        if args.outputs:
            stack.outputs.dump(args.outputs)
    print(yaml.safe_dump({stack.tag: dict(stack.outputs)}, sort_keys=False))
    if getattr(args, "wait", False):
        healthy = stack.wait_until_healthy(timeout=args.timeout)
        print("healthy instances: {}".format(", ".join(healthy)))
    if getattr(args, "wait_http", False):
        instance = cloud.get_instance(stack.outputs["instance"])
        instance.wait_for_http(
            "/health", port=stack.settings.app_port, timeout=args.timeout
        )
        print("http://{}:{}/".format(instance.ip, stack.settings.app_port))


def cmd_down(args):
    """Delete every resource of a stack."""
    stack = _existing_stack(args, _plan(args, key_pair=True))
    try:
        stack.destroy()
    finally:
        if args.outputs and Path(args.outputs).exists():
            if stack.outputs:
                stack.outputs.dump(args.outputs)
            else:
                Path(args.outputs).unlink()


def cmd_status(args):
    """Print identifier and state of every step."""
    stack = _existing_stack(args, _plan(args, key_pair=True))
    print(yaml.safe_dump({stack.tag: stack.status()}, sort_keys=False))


def _add_target_args(parser, instance_flag=True):
    parser.add_argument("--tag", help="stack tag", default=None)
    parser.add_argument(
        "--outputs", help="TOML file recording created identifiers"
    )
    if instance_flag:
        parser.add_argument(
            "--instance",
            action="store_true",
            help="use the standalone instance plan",
        )


def get_parser():
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="asgstack",
        description="Provision a VPC and Auto Scaling Group for a Flask app",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="debug logging"
    )
    parser.add_argument(
        "-c", "--config", type=Path, help="path to asgstack.toml"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    plan_parser = subparsers.add_parser("plan", help="show resource order")
    plan_parser.add_argument("--instance", action="store_true")
    plan_parser.set_defaults(func=cmd_plan)

    for name, instance, help_text in (
        ("up", False, "create the Auto Scaling stack"),
        ("instance-up", True, "launch the standalone instance example"),
    ):
        up_parser = subparsers.add_parser(name, help=help_text)
        up_parser.add_argument("--tag", default=DEFAULT_TAG)
        up_parser.add_argument("--outputs")
        up_parser.add_argument("--no-timestamp", action="store_true")
        up_parser.add_argument("--rollback", action="store_true")
        up_parser.add_argument("--timeout", type=int, default=600)
        if instance:
            up_parser.add_argument("--generate-key", metavar="PATH")
            up_parser.add_argument("--wait-http", action="store_true")
        else:
            up_parser.add_argument(
                "--wait",
                action="store_true",
                help="wait for the group to be healthy",
            )
        up_parser.set_defaults(func=cmd_up, instance=instance)

    down_parser = subparsers.add_parser("down", help="delete a stack")
    _add_target_args(down_parser)
    down_parser.set_defaults(func=cmd_down)

    instance_down_parser = subparsers.add_parser(
        "instance-down", help="delete the standalone instance example"
    )
    _add_target_args(instance_down_parser, instance_flag=False)
    instance_down_parser.set_defaults(func=cmd_down, instance=True)

    status_parser = subparsers.add_parser("status", help="describe a stack")
    _add_target_args(status_parser)
    status_parser.set_defaults(func=cmd_status)

    return parser


def main(argv=None):
    """Run the command line interface."""
    args = get_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        args.func(args)
    except AsgstackException as error:
        log.error("%s", error)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
