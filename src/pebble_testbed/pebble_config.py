"""Pebble JSON configuration, the file mounted as ``my-pebble-config.json``."""
import json
import logging
from typing import Any
from typing import Optional

from pebble_testbed import constants
from pebble_testbed import errors

logger = logging.getLogger(__name__)

REQUIRED_KEYS = ('listenAddress', 'managementListenAddress', 'certificate', 'privateKey')


def build(certificate: str = constants.CONTAINER_ASSETS_DIR + '/cert.pem',
          private_key: str = constants.CONTAINER_ASSETS_DIR + '/key.pem',
          acme_port: int = constants.ACME_PORT,
          management_port: int = constants.MANAGEMENT_PORT,
          http_01_port: int = constants.HTTP_01_PORT,
          tls_port: int = constants.TLS_ALPN_01_PORT,
          ocsp_responder_url: Optional[str] = None) -> dict[str, Any]:
    """Build a Pebble configuration.

    Certificate and key paths are as seen by the Pebble process, which is
    the container side of the bind mounts when run through Compose.

    """
    pebble: dict[str, Any] = {
        'listenAddress': '0.0.0.0:{0}'.format(acme_port),
        'managementListenAddress': '0.0.0.0:{0}'.format(management_port),
        'certificate': certificate,
        'privateKey': private_key,
        'httpPort': http_01_port,
        'tlsPort': tls_port,
    }
    if ocsp_responder_url:
        pebble['ocspResponderURL'] = ocsp_responder_url
    return {'pebble': pebble}


def validate(config: Any) -> dict[str, Any]:
    """Check that a parsed configuration has what Pebble needs.

    :returns: the inner ``pebble`` object
    :raises .errors.PebbleConfigError: if something is missing

    """
    if not isinstance(config, dict) or not isinstance(config.get('pebble'), dict):
        raise errors.PebbleConfigError('Pebble configuration needs a "pebble" object')
    pebble = config['pebble']
    missing = [key for key in REQUIRED_KEYS if key not in pebble]
    if missing:
        raise errors.PebbleConfigError('Pebble configuration lacks: {0}'.format(
            ', '.join(missing)))
    for key in ('listenAddress', 'managementListenAddress'):
        _port_of(pebble[key])
    return pebble


def _port_of(address: str) -> int:
    _, _, port = str(address).rpartition(':')
    try:
        return int(port)
    except ValueError:
        raise errors.PebbleConfigError('Invalid listen address: {0!r}'.format(address))


def listen_ports(config: dict[str, Any]) -> tuple[int, int]:
    """ACME and management ports a configuration listens on."""
    pebble = validate(config)
    return (_port_of(pebble['listenAddress']),
            _port_of(pebble['managementListenAddress']))


def load(path: str) -> dict[str, Any]:
    """Read and validate a Pebble configuration file.

    :raises .errors.PebbleConfigError: on unreadable or invalid file

    """
    try:
        with open(path) as file_h:
            config = json.load(file_h)
    except (IOError, ValueError) as error:
        raise errors.PebbleConfigError('Unable to load Pebble configuration {0}: {1}'.format(
            path, error))
    validate(config)
    return config


def write(path: str, config: dict[str, Any]) -> str:
    """Write a configuration file and return its path."""
    validate(config)
    with open(path, 'w') as file_h:
        file_h.write(json.dumps(config, indent=2))
    logger.debug('Wrote Pebble configuration to %s', path)
    return path
