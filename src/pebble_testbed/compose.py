"""Compose service descriptor for the Pebble ACME test server.

Only the handful of Compose keys used to launch Pebble are understood:
``image``, ``command``, ``network_mode``, ``dns``, ``ports``, ``environment``
and ``volumes``. Parsing itself is left to PyYAML; this module turns the
resulting mapping into a `ServiceDescriptor` and back.

"""
import logging
import os
import re
import shlex
from typing import Any
from typing import Mapping
from typing import NamedTuple
from typing import Optional

import yaml

from pebble_testbed import constants
from pebble_testbed import errors

logger = logging.getLogger(__name__)

COMPOSE_VERSION = '3'


class ComposeLoader(yaml.SafeLoader):  # pylint: disable=too-many-ancestors
    """Safe YAML loader reading ``HOST:CONTAINER`` ports as strings.

    YAML 1.1 resolves ``22:22`` to the base 60 integer 1342, Compose does not.

    """


ComposeLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != 'tag:yaml.org,2002:int']
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}
ComposeLoader.add_implicit_resolver(
    'tag:yaml.org,2002:int',
    re.compile(r'''^(?:[-+]?0b[0-1_]+
    |[-+]?0[0-7_]+
    |[-+]?(?:0|[1-9][0-9_]*)
    |[-+]?0x[0-9a-fA-F_]+)$''', re.X),
    list('-+0123456789'))


class PortMapping(NamedTuple):
    """Published port, ``[IP:]HOST:CONTAINER[/PROTO]``."""
    host: int
    container: int
    protocol: str = 'tcp'
    host_ip: Optional[str] = None

    def __str__(self) -> str:
        value = '{0}:{1}'.format(self.host, self.container)
        if self.host_ip:
            value = '{0}:{1}'.format(self.host_ip, value)
        if self.protocol != 'tcp':
            value += '/' + self.protocol
        return value


class VolumeMount(NamedTuple):
    """Volume in Compose short syntax, ``SOURCE:TARGET[:MODE]``."""
    source: str
    target: str
    mode: Optional[str] = None

    @property
    def is_bind(self) -> bool:
        """Is the source a path on the host rather than a named volume?"""
        return self.source.startswith(('.', '/', '~'))

    def host_path(self, base_dir: str) -> str:
        """Absolute host path of a bind mount source.

        :param str base_dir: directory holding the Compose file, relative
            sources are resolved against it

        """
        return os.path.normpath(os.path.join(base_dir, os.path.expanduser(self.source)))

    def __str__(self) -> str:
        parts = [self.source, self.target]
        if self.mode:
            parts.append(self.mode)
        return ':'.join(parts)


class ServiceDescriptor(NamedTuple):
    """Static launch configuration of the Pebble service."""
    name: str
    image: str
    command: Optional[str] = None
    network_mode: Optional[str] = None
    dns: tuple[str, ...] = ()
    ports: tuple[PortMapping, ...] = ()
    environment: tuple[tuple[str, str], ...] = ()
    volumes: tuple[VolumeMount, ...] = ()

    @property
    def env(self) -> dict[str, str]:
        """Environment as a dict."""
        return dict(self.environment)

    @property
    def host_ports(self) -> list[int]:
        """Ports published on the host."""
        return [port.host for port in self.ports]

    def bind_mounts(self) -> list[VolumeMount]:
        """Volumes backed by files on the host."""
        return [volume for volume in self.volumes if volume.is_bind]

    def to_compose(self) -> dict[str, Any]:
        """Serialize to the mapping found under ``services.<name>``."""
        service: dict[str, Any] = {'image': self.image}
        if self.command:
            service['command'] = self.command
        if self.network_mode:
            service['network_mode'] = self.network_mode
        if self.dns:
            service['dns'] = list(self.dns)
        if self.ports:
            service['ports'] = [str(port) for port in self.ports]
        if self.environment:
            service['environment'] = ['{0}={1}'.format(key, value)
                                      for key, value in self.environment]
        if self.volumes:
            service['volumes'] = [str(volume) for volume in self.volumes]
        return service


def default_service() -> ServiceDescriptor:
    """The descriptor used to launch Pebble for local ACME testing."""
    assets = constants.CONTAINER_ASSETS_DIR
    return ServiceDescriptor(
        name=constants.SERVICE_NAME,
        image=constants.PEBBLE_IMAGE,
        command=constants.PEBBLE_COMMAND,
        network_mode=constants.NETWORK_MODE,
        dns=(constants.DNS_SERVER,),
        ports=(
            PortMapping(constants.ACME_PORT, constants.ACME_PORT),
            PortMapping(constants.MANAGEMENT_PORT, constants.MANAGEMENT_PORT),
        ),
        environment=tuple(sorted(constants.PEBBLE_ENVIRONMENT.items())),
        volumes=(
            VolumeMount('./' + constants.PEBBLE_CONFIG_FILENAME,
                        '{0}/{1}'.format(assets, constants.PEBBLE_CONFIG_FILENAME)),
            VolumeMount('./' + constants.LOCALHOST_CERT, assets + '/cert.pem'),
            VolumeMount('./' + constants.LOCALHOST_KEY, assets + '/key.pem'),
        ),
    )


def parse_port(value: Any) -> PortMapping:
    """Parse a port entry in Compose short syntax.

    :raises .errors.ComposeError: if the entry cannot be understood

    """
    text = str(value).strip()
    protocol = 'tcp'
    if '/' in text:
        text, protocol = text.rsplit('/', 1)
    parts = text.split(':')
    host_ip = None
    if len(parts) == 3:
        host_ip = parts.pop(0)
    if len(parts) == 1:
        parts = parts * 2
    if len(parts) != 2:
        raise errors.ComposeError('Invalid port mapping: {0!r}'.format(value))
    try:
        host, container = (int(part) for part in parts)
    except ValueError:
        raise errors.ComposeError('Invalid port mapping: {0!r}'.format(value))
    if not (0 < host < 65536 and 0 < container < 65536):
        raise errors.ComposeError('Port out of range in mapping: {0!r}'.format(value))
    return PortMapping(host, container, protocol, host_ip)


def parse_volume(value: Any) -> VolumeMount:
    """Parse a volume entry in Compose short syntax.

    :raises .errors.ComposeError: if the entry cannot be understood

    """
    if not isinstance(value, str):
        raise errors.ComposeError(
            'Only short volume syntax is supported, got: {0!r}'.format(value))
    parts = value.split(':')
    if len(parts) not in (2, 3) or not all(parts):
        raise errors.ComposeError('Invalid volume: {0!r}'.format(value))
    return VolumeMount(*parts)


def parse_environment(value: Any) -> tuple[tuple[str, str], ...]:
    """Parse ``environment`` given either as a list or as a mapping."""
    if isinstance(value, Mapping):
        items = []
        for key, val in value.items():
            if isinstance(val, bool):
                raise errors.ComposeError(
                    'Environment value of {0} must be quoted, got {1!r}'.format(key, val))
            items.append((str(key), '' if val is None else str(val)))
    elif isinstance(value, list):
        items = []
        for entry in value:
            key, _, val = str(entry).partition('=')
            if not key:
                raise errors.ComposeError('Invalid environment entry: {0!r}'.format(entry))
            items.append((key, val))
    else:
        raise errors.ComposeError('environment must be a list or a mapping')
    return tuple(items)


def parse_command(name: str, value: Any) -> Optional[str]:
    """Normalize ``command`` to a shell-quoted string, whatever its form."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, list):
        return shlex.join(str(arg) for arg in value)
    raise errors.ComposeError('Service {0} command must be a string or a list'.format(name))


def from_compose(name: str, service: Mapping[str, Any]) -> ServiceDescriptor:
    """Build a `ServiceDescriptor` from a ``services.<name>`` mapping."""
    if not isinstance(service, Mapping):
        raise errors.ComposeError('Service {0} is not a mapping'.format(name))
    if not service.get('image'):
        raise errors.ComposeError('Service {0} does not declare an image'.format(name))

    dns = service.get('dns', ())
    if isinstance(dns, str):
        dns = [dns]

    return ServiceDescriptor(
        name=name,
        image=str(service['image']),
        command=parse_command(name, service.get('command')),
        network_mode=service.get('network_mode'),
        dns=tuple(str(server) for server in dns),
        ports=tuple(parse_port(port) for port in service.get('ports') or ()),
        environment=parse_environment(service.get('environment') or []),
        volumes=tuple(parse_volume(volume) for volume in service.get('volumes') or ()),
    )


def loads(content: str, service_name: Optional[str] = None) -> ServiceDescriptor:
    """Load a service from Compose YAML content.

    :param str content: Compose document
    :param str service_name: service to pick, may be omitted if the
        document declares exactly one service

    :raises .errors.ComposeError: on invalid YAML or missing service

    """
    try:
        document = yaml.load(content, Loader=ComposeLoader)
    except yaml.YAMLError as error:
        raise errors.ComposeError('Invalid Compose YAML: {0}'.format(error))

    if not isinstance(document, Mapping) or not isinstance(document.get('services'), Mapping):
        raise errors.ComposeError('Compose document has no services mapping')
    services = document['services']

    if service_name is None:
        if len(services) != 1:
            raise errors.ComposeError(
                'Compose document declares {0} services, pick one of: {1}'.format(
                    len(services), ', '.join(sorted(services))))
        service_name = next(iter(services))
    elif service_name not in services:
        raise errors.ComposeError('Service {0} not found in Compose document'.format(
            service_name))

    return from_compose(service_name, services[service_name])


def load(path: str, service_name: Optional[str] = None) -> ServiceDescriptor:
    """Load a service from a Compose file.

    :raises .errors.ComposeError: if the file cannot be read or parsed

    """
    try:
        with open(path) as file_h:
            content = file_h.read()
    except IOError as error:
        raise errors.ComposeError('Unable to read Compose file {0}: {1}'.format(path, error))
    service = loads(content, service_name)
    logger.debug('Loaded service %s from %s', service.name, path)
    return service


def dump(service: ServiceDescriptor) -> str:
    """Render a Compose document holding only this service."""
    document = {
        'version': COMPOSE_VERSION,
        'services': {service.name: service.to_compose()},
    }
    return yaml.safe_dump(document, default_flow_style=False, sort_keys=False)


def write(service: ServiceDescriptor, path: str) -> None:
    """Write a Compose document holding only this service."""
    with open(path, 'w') as file_h:
        file_h.write(dump(service))
    logger.info('Wrote Compose file for service %s to %s', service.name, path)
