# This file is part of asgstack. See LICENSE file for license information.
"""Helpers for tags, tag filters and error reporting."""

import datetime
import logging
import re
import traceback
from typing import Dict, List

log = logging.getLogger(__name__)

STACK_TAG_KEY = "asgstack:stack"


def get_timestamped_tag(tag):
    """Create tag with current timestamp.

    Args:
        tag: string, Base tag to be used

    Returns
        An updated tag with current timestamp

    """
    return "%s-%s" % (tag, datetime.datetime.now().strftime("%m%d-%H%M%S"))


def validate_tag(tag):
    """Ensure tag will work as a name for every resource it is put on.

    Launch template and Auto Scaling Group names are the most restrictive
    consumers, so stick to lowercase letters, digits and hyphens.
    """
    regex = r"^(?:[a-z](?:[-a-z0-9]{0,61}[a-z0-9])?)$"
    if not re.match(regex, tag):
        raise ValueError(
            "Invalid tag specified. After being timestamped, "
            "tag must pass regex.\n"
            "Regex: {}\n"
            "Tag  : {}".format(regex, tag)
        )
    return tag


def stack_tags(tag: str) -> List[Dict[str, str]]:
    """Return the tags put on every resource created for a stack."""
    return [
        {"Key": "Name", "Value": tag},
        {"Key": STACK_TAG_KEY, "Value": tag},
    ]


def stack_filter(tag: str) -> List[Dict]:
    """Return a describe_* filter matching resources of a stack."""
    return [{"Name": "tag:{}".format(STACK_TAG_KEY), "Values": [tag]}]


def log_exception_list(exceptions: List[Exception]):
    """Print a list of exceptions (including traceback) to stderr."""
    if exceptions:
        log.error("Encountered exception(s) during cleanup!")
        for i, e in enumerate(exceptions, start=1):
            tb = traceback.format_exception(type(e), e, e.__traceback__)
            log.error("===== EXCEPTION %s =====\n%s", i, "".join(tb))
