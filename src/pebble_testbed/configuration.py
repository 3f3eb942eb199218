"""pebble-testbed user-supplied configuration."""
import argparse
import copy
import os
from typing import Any

from pebble_testbed import constants
from pebble_testbed import errors


class NamespaceConfig:
    """Configuration wrapper around :class:`argparse.Namespace`.

    Paths given on the command line are made absolute, and the following
    attributes are derived from them:

      - `base_dir`
      - `assets_dir`
      - `pebble_config_path`

    :ivar namespace: Namespace typically produced by
        :meth:`argparse.ArgumentParser.parse_args`.
    :type namespace: :class:`argparse.Namespace`

    """

    def __init__(self, namespace: argparse.Namespace) -> None:
        object.__setattr__(self, 'namespace', namespace)

        for name in ('compose_file', 'work_dir', 'logs_dir', 'output_dir'):
            value = getattr(self.namespace, name, None)
            if value is not None:
                setattr(self.namespace, name, os.path.abspath(os.path.expanduser(value)))

        check_config_sanity(self)

    def __getattr__(self, name: str) -> Any:
        return getattr(self.namespace, name)

    def __setattr__(self, name: str, value: Any) -> None:
        setattr(self.namespace, name, value)

    @property
    def base_dir(self) -> str:
        """Directory holding the Compose file."""
        return os.path.dirname(self.namespace.compose_file)

    @property
    def assets_dir(self) -> str:  # pylint: disable=missing-function-docstring
        return os.path.join(self.namespace.work_dir, 'assets')

    @property
    def pebble_config_path(self) -> str:
        """Where the default descriptor expects the Pebble configuration."""
        return os.path.join(self.base_dir, constants.PEBBLE_CONFIG_FILENAME)

    def __deepcopy__(self, _memo: Any) -> 'NamespaceConfig':
        new_ns = copy.deepcopy(self.namespace)
        return type(self)(new_ns)


def check_config_sanity(config: NamespaceConfig) -> None:
    """Validate command line options and display error message if
    requirements are not met.

    :param config: NamespaceConfig instance holding user configuration
    :type args: :class:`pebble_testbed.configuration.NamespaceConfig`

    """
    # Port check
    http_01_port = getattr(config.namespace, 'http_01_port', None)
    if http_01_port is not None and not 0 < http_01_port < 65536:
        raise errors.Error('Trying to use an invalid port: {0}'.format(http_01_port))

    if getattr(config.namespace, 'readiness_attempts', 1) < 1:
        raise errors.Error('--readiness-attempts must be at least 1')

    # Key pair and CSR checks, only relevant to issuance
    private_key = getattr(config.namespace, 'private_key', None)
    public_key = getattr(config.namespace, 'public_key', None)
    if bool(private_key) != bool(public_key):
        raise errors.Error('Provide both a public and a private key!')
    if getattr(config.namespace, 'csr_path', None) and not private_key:
        raise errors.Error('If you provide a CSR you must also specify the keypair '
                           'that signed the CSR via --private-key and --public-key')
