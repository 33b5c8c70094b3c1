# This file is part of asgstack. See LICENSE file for license information.
"""EC2 instance."""

import logging
import time
from typing import List

import requests

from asgstack.errors import CleanupError, StackTimeoutError
from asgstack.util import log_exception_list


class EC2Instance:
    """Standalone EC2 instance serving the sample app."""

    _type = "ec2"

    def __init__(self, client, instance):
        """Set up instance.

        Args:
            client: boto3 client object
            instance: created boto3 instance object
        """
        self._instance = instance
        self._client = client
        self._log = logging.getLogger(
            "{}.{}".format(__name__, self.__class__.__name__)
        )

        self.boot_timeout = 300

    def __repr__(self):
        """Create string representation for class."""
        return "{}(client={}, instance={})".format(
            self.__class__.__name__,
            self._client,
            self._instance,
        )

    def __enter__(self):
        """Enter context manager for this class."""
        return self

    def __exit__(self, _type, _value, _traceback):
        """Delete the instance on exit."""
        exceptions = self.delete()
        log_exception_list(exceptions)
        if exceptions:
            raise CleanupError(exceptions)

    @property
    def availability_zone(self):
        """Return availability zone."""
        return self._instance.placement["AvailabilityZone"]

    @property
    def ip(self):
        """Return IP address of instance."""
        self._instance.reload()
        return self._instance.public_ip_address

    @property
    def id(self):
        """Return id of instance."""
        return self._instance.instance_id

    @property
    def image_id(self):
        """Return id of the image the instance booted from."""
        return self._instance.image_id

    @property
    def state(self):
        """Return state name, e.g. "running"."""
        self._instance.reload()
        return self._instance.state["Name"]

    def console_log(self):
        """Collect console log from instance.

        The console log is buffered and not always present, therefore
        may return empty string.

        Returns:
            The console log or error message

        """
        start = time.time()
        while time.time() < start + 300:
            response = self._instance.console_output(Latest=True)
            try:
                return response["Output"]
            except KeyError:
                self._log.debug("Console output not yet available; sleeping")
                time.sleep(5)
        return "No Console Output [%s]" % self._instance

    def wait(self):
        """Wait for instance to be running."""
        self._log.debug("wait for instance running %s", self.id)
        self._instance.wait_until_running()
        self._log.debug("reloading instance state %s", self.id)
        self._instance.reload()

    def wait_for_http(self, path="/", port=80, timeout=None, interval=10):
        """Poll the sample app until it answers with a 2xx status.

        Args:
            path: URL path to request
            port: port the app listens on
            timeout: seconds to wait; defaults to `boot_timeout`
            interval: seconds between requests

        Returns:
            the successful `requests.Response`

        Raises:
            StackTimeoutError: if the app never answered successfully
        """
        timeout = self.boot_timeout if timeout is None else timeout
        url = "http://{}:{}{}".format(self.ip, port, path)
        start = time.time()
        last_error = None
        while time.time() < start + timeout:
            try:
                response = requests.get(url, timeout=interval)
                if response.ok:
                    self._log.debug("%s answered %s", url, response.status_code)
                    return response
                last_error = "HTTP {}".format(response.status_code)
            except requests.RequestException as e:
                last_error = str(e)
            self._log.debug("%s not ready (%s); sleeping", url, last_error)
            time.sleep(interval)
        raise StackTimeoutError(
            "{} did not answer after {}s: {}".format(url, timeout, last_error)
        )

    # pylint: disable=broad-except
    def delete(self, wait=True) -> List[Exception]:
        """Terminate the instance.

        Returns:
            exceptions raised while terminating
        """
        exceptions = []
        self._log.debug("deleting instance %s", self.id)
        try:
            self._instance.terminate()
            if wait:
                self.wait_for_delete()
        except Exception as e:
            exceptions.append(e)

        return exceptions

    def wait_for_delete(self):
        """Wait for instance to be deleted."""
        self._instance.wait_until_terminated()
        self._instance.reload()
