"""Checks run before handing the Pebble service to the container runtime.

They cover what can be verified about the descriptor itself: mounted files
must exist, published ports must be free, and the mounted Pebble
configuration must agree with the descriptor.

"""
import contextlib
import errno
import logging
import os
import shlex
import socket
from typing import Any
from typing import Callable
from typing import NamedTuple
from typing import Optional

from pebble_testbed import compose
from pebble_testbed import errors
from pebble_testbed import pebble_config

logger = logging.getLogger(__name__)


class CheckResult(NamedTuple):
    """Outcome of one preflight check."""
    name: str
    error: Optional[errors.PreflightError] = None

    @property
    def ok(self) -> bool:  # pylint: disable=missing-function-docstring
        return self.error is None


class PreflightReport:
    """Results of all preflight checks, in the order they ran."""

    def __init__(self) -> None:
        self.results: list[CheckResult] = []

    def add(self, name: str, error: Optional[errors.PreflightError] = None) -> None:
        self.results.append(CheckResult(name, error))

    @property
    def ok(self) -> bool:
        """Did every check pass?"""
        return all(result.ok for result in self.results)

    @property
    def failures(self) -> list[CheckResult]:
        return [result for result in self.results if not result.ok]

    def raise_for_failure(self) -> None:
        """Raise the first failure, if any."""
        for result in self.results:
            if result.error is not None:
                raise result.error

    def __str__(self) -> str:
        lines = []
        for result in self.results:
            if result.ok:
                lines.append('[ok]   {0}'.format(result.name))
            else:
                lines.append('[fail] {0}: {1}'.format(result.name, result.error))
        return '\n'.join(lines)


def check_mounts(service: compose.ServiceDescriptor, base_dir: str) -> None:
    """Ensure every bind mount source exists.

    :raises .errors.MissingMountError: listing all missing sources

    """
    missing = [volume.host_path(base_dir) for volume in service.bind_mounts()
               if not os.path.exists(volume.host_path(base_dir))]
    if missing:
        raise errors.MissingMountError(missing)


def port_is_free(port: int, host: str = '') -> bool:
    """Can a TCP socket be bound to this port?"""
    with contextlib.closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as sock:
        try:
            sock.bind((host, port))
        except socket.error as error:
            if error.errno in (errno.EADDRINUSE, errno.EACCES):
                return False
            raise
    return True


def check_ports(service: compose.ServiceDescriptor) -> None:
    """Ensure every published host port is free.

    :raises .errors.PortInUseError: listing all busy ports

    """
    busy = [mapping.host for mapping in service.ports
            if not port_is_free(mapping.host, mapping.host_ip or '')]
    if busy:
        raise errors.PortInUseError(busy)


def check_config_consistency(service: compose.ServiceDescriptor,
                             config: dict[str, Any]) -> None:
    """Ensure the Pebble configuration matches the descriptor.

    Pebble must listen on published ports, and the certificate and key
    it loads must be mounted into the container.

    :raises .errors.ConfigMismatchError: on the first disagreement

    """
    try:
        listening = pebble_config.listen_ports(config)
    except errors.PebbleConfigError as error:
        raise errors.ConfigMismatchError(str(error))

    if service.network_mode == 'host':
        published = set(service.host_ports)
    else:
        published = {mapping.container for mapping in service.ports}
    unpublished = [port for port in listening if port not in published]
    if unpublished:
        raise errors.ConfigMismatchError(
            'Pebble listens on ports not published by service {0}: {1}'.format(
                service.name, ', '.join(str(port) for port in unpublished)))

    targets = {volume.target for volume in service.volumes}
    for key in ('certificate', 'privateKey'):
        path = config['pebble'][key]
        if path not in targets:
            raise errors.ConfigMismatchError(
                'Pebble {0} {1} is not mounted in service {2}'.format(key, path, service.name))


def check_existing_server(port: int = 80) -> bool:
    """Is a server already listening on the given port?"""
    for host in ('0.0.0.0', '127.0.0.1'):
        with contextlib.closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as sock:
            sock.settimeout(1)
            if sock.connect_ex((host, port)) == 0:
                return True
    return False


def find_pebble_config(service: compose.ServiceDescriptor, base_dir: str) -> Optional[str]:
    """Host path of the mounted Pebble configuration, if the command names one."""
    if not service.command:
        return None
    try:
        args = shlex.split(service.command)
    except ValueError:
        return None
    try:
        config_target = args[args.index('-config') + 1]
    except (ValueError, IndexError):
        return None
    for volume in service.bind_mounts():
        if volume.target == config_target:
            return volume.host_path(base_dir)
    return None


def run_all(service: compose.ServiceDescriptor, base_dir: str,
            ports: bool = True, strict: bool = False) -> PreflightReport:
    """Run all preflight checks.

    :param ServiceDescriptor service: service to check
    :param str base_dir: directory holding the Compose file
    :param bool ports: whether to check for busy ports; skipped when the
        stack is expected to be running already
    :param bool strict: raise the first failure instead of only
        recording it

    :returns: the collected results
    :rtype: PreflightReport

    """
    report = PreflightReport()
    checks: list[tuple[str, Callable[[], None]]] = [
        ('bind mounts exist', lambda: check_mounts(service, base_dir)),
    ]
    if ports:
        checks.append(('published ports are free', lambda: check_ports(service)))

    config_path = find_pebble_config(service, base_dir)
    if config_path is not None and os.path.exists(config_path):
        def _consistency() -> None:
            try:
                config = pebble_config.load(config_path)
            except errors.PebbleConfigError as error:
                raise errors.ConfigMismatchError(str(error))
            check_config_consistency(service, config)
        checks.append(('pebble configuration matches service', _consistency))

    for name, check in checks:
        try:
            check()
        except errors.PreflightError as error:
            logger.debug('Preflight check "%s" failed: %s', name, error)
            report.add(name, error)
        else:
            report.add(name)

    if strict:
        report.raise_for_failure()
    return report


def default_base_dir(compose_path: str) -> str:
    """Directory against which relative bind sources resolve."""
    return os.path.dirname(os.path.abspath(compose_path)) or os.getcwd()

