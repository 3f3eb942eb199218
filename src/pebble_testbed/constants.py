"""pebble-testbed constants."""
import logging
import os
from typing import Any

SERVICE_NAME = 'pebble'
"""Name of the Compose service running the ACME test server."""

PEBBLE_IMAGE = 'letsencrypt/pebble'
PEBBLE_CONFIG_FILENAME = 'my-pebble-config.json'
CONTAINER_ASSETS_DIR = '/test'
PEBBLE_COMMAND = 'pebble -config {0}/{1}'.format(CONTAINER_ASSETS_DIR, PEBBLE_CONFIG_FILENAME)
NETWORK_MODE = 'host'
DNS_SERVER = '127.0.0.1:10053'

ACME_PORT = 14000
MANAGEMENT_PORT = 15000
HTTP_01_PORT = 5002
TLS_ALPN_01_PORT = 5001

PEBBLE_ENVIRONMENT = {
    # Validate challenges immediately instead of sleeping a random delay.
    'PEBBLE_VA_NOSLEEP': '1',
}

LOCALHOST_CERT = 'localhost/cert.pem'
LOCALHOST_KEY = 'localhost/key.pem'

PEBBLE_DIRECTORY_URL = 'https://localhost:{0}/dir'.format(ACME_PORT)
PEBBLE_MANAGEMENT_URL = 'https://localhost:{0}'.format(MANAGEMENT_PORT)

LETS_ENCRYPT_SERVER = 'https://acme-v02.api.letsencrypt.org/directory'
LETS_ENCRYPT_STAGING = 'https://acme-staging-v02.api.letsencrypt.org/directory'

PEBBLE_VERSION = 'v2.7.0'
PEBBLE_RELEASES_URL = 'https://github.com/letsencrypt/pebble/releases/download'

KEY_WIDTH = 2048
"""Size of generated RSA keys, for both account and certificate keys."""

USER_AGENT = 'pebble-testbed'

MAX_SUBPROCESS_WAIT = 120
READINESS_ATTEMPTS = 30

CERT_FILENAME = 'my_cert.crt'
CHAIN_FILENAME = 'cert_chain.crt'
PRIVATE_KEY_FILENAME = 'priv.pem'
PUBLIC_KEY_FILENAME = 'pub.pem'

QUIET_LOGGING_LEVEL = logging.ERROR
"""Logging level to use in quiet mode."""

DEFAULT_LOGGING_LEVEL = logging.WARNING
"""Default logging level to use when not in quiet mode."""

CLI_DEFAULTS: dict[str, Any] = dict(  # pylint: disable=use-dict-literal
    config_files=[
        os.path.join('~', '.config', 'pebble-testbed', 'cli.ini'),
    ],

    verbose_count=0,
    quiet=False,
    debug=False,
    max_log_backups=10,

    compose_file='docker-compose.yaml',
    service=SERVICE_NAME,
    project_name='pebble-testbed',
    runtime='docker',
    work_dir=os.path.join('~', '.cache', 'pebble-testbed'),
    logs_dir=os.path.join('~', '.cache', 'pebble-testbed', 'logs'),
    native=False,
    skip_preflight=False,
    readiness_attempts=READINESS_ATTEMPTS,
    directory_url=PEBBLE_DIRECTORY_URL,
    management_url=PEBBLE_MANAGEMENT_URL,
    with_pebble_config=False,
    force=False,

    server=LETS_ENCRYPT_SERVER,
    email=None,
    domain=None,
    private_key=None,
    public_key=None,
    csr_path=None,
    standalone=False,
    http_01_port=80,
    output_dir='.',
    no_verify_ssl=False,

    roots_index=0,
    roots_output=None,
    intermediate=False,
)
"""Defaults for CLI flags and `.NamespaceConfig` attributes."""
