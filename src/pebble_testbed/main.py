"""pebble-testbed main entry point."""
import logging
import os
import sys
from typing import Callable
from typing import Optional
from typing import Union

from acme import messages

from pebble_testbed import cli
from pebble_testbed import compose
from pebble_testbed import constants
from pebble_testbed import crypto_util
from pebble_testbed import errors
from pebble_testbed import issuance
from pebble_testbed import log
from pebble_testbed import management
from pebble_testbed import pebble_config
from pebble_testbed import preflight
from pebble_testbed import readiness
from pebble_testbed import runtime
from pebble_testbed.configuration import NamespaceConfig

logger = logging.getLogger(__name__)


def _load_service(config: NamespaceConfig) -> compose.ServiceDescriptor:
    return compose.load(config.compose_file, config.service)


def _make_stack(config: NamespaceConfig,
                service: compose.ServiceDescriptor) -> runtime.PebbleStack:
    kwargs = {
        'directory_url': config.directory_url,
        'readiness_attempts': config.readiness_attempts,
        'run_preflight': not config.skip_preflight,
    }
    if config.native:
        return runtime.NativePebble(service, config.base_dir, config.assets_dir,
                                    stdout=config.verbose_count > 0, **kwargs)
    return runtime.ComposeStack(config.compose_file, service,
                                project_name=config.project_name,
                                runtime=config.runtime, **kwargs)


def render(config: NamespaceConfig) -> None:
    """Write the default Compose file, and optionally the Pebble configuration."""
    targets = [config.compose_file]
    if config.with_pebble_config:
        targets.append(config.pebble_config_path)
    existing = [path for path in targets if os.path.exists(path)]
    if existing and not config.force:
        raise errors.Error('Refusing to overwrite {0}, use --force'.format(', '.join(existing)))

    service = compose.default_service()
    if config.service != service.name:
        service = service._replace(name=config.service)
    compose.write(service, config.compose_file)
    print('Wrote {0}'.format(config.compose_file))
    if config.with_pebble_config:
        pebble_config.write(config.pebble_config_path, pebble_config.build())
        print('Wrote {0}'.format(config.pebble_config_path))


def check(config: NamespaceConfig) -> None:
    """Run the preflight checks and report each of them."""
    service = _load_service(config)
    report = preflight.run_all(service, config.base_dir)
    print(report)
    if not report.ok:
        raise errors.PreflightError('{0} preflight check(s) failed'.format(
            len(report.failures)))


def up(config: NamespaceConfig) -> None:
    """Start Pebble in the background, or in the foreground when native."""
    service = _load_service(config)
    stack = _make_stack(config, service)
    if config.native:
        with stack as directory:
            print('Pebble is running, directory URL is {0}'.format(config.directory_url))
            _print_directory(directory)
            print('Press CTRL+C to stop Pebble.')
            try:
                while True:
                    input()
            except (KeyboardInterrupt, EOFError):
                pass
    else:
        directory = stack.start()
        print('Pebble is running, directory URL is {0}'.format(config.directory_url))
        _print_directory(directory)


def down(config: NamespaceConfig) -> None:
    """Stop the Compose service."""
    if config.native:
        raise errors.Error('Native Pebble runs in the foreground, stop it with CTRL+C')
    service = _load_service(config)
    _make_stack(config, service).stop()


def status(config: NamespaceConfig) -> None:
    """Print the endpoints of a running Pebble instance."""
    directory = readiness.fetch_directory(config.directory_url)
    print('ACME directory {0} is up'.format(config.directory_url))
    _print_directory(directory)


def _print_directory(directory: messages.Directory) -> None:
    for name in readiness.DIRECTORY_ENDPOINTS:
        print('  {0:<11} {1}'.format(name, directory[name]))


def roots(config: NamespaceConfig) -> None:
    """Fetch a root, or intermediate, certificate from the management API."""
    client = management.ManagementClient(config.management_url)
    if config.intermediate:
        pem = client.intermediate(config.roots_index)
    else:
        pem = client.root(config.roots_index)
    if config.roots_output:
        with open(config.roots_output, 'wb') as file_h:
            file_h.write(pem)
        print('Saved certificate to {0}'.format(config.roots_output))
    else:
        sys.stdout.write(pem.decode())


def certs(config: NamespaceConfig) -> None:
    """Write the self-signed pair Pebble's bind mounts expect."""
    cert_path = os.path.join(config.base_dir, constants.LOCALHOST_CERT)
    key_path = os.path.join(config.base_dir, constants.LOCALHOST_KEY)
    crypto_util.write_self_signed(cert_path, key_path, force=config.force)
    print('Wrote {0} and {1}'.format(cert_path, key_path))


def issue(config: NamespaceConfig) -> None:
    """Obtain a certificate and save it along with any generated key pair."""
    if not config.email or not config.domain:
        raise errors.Error('issue needs both --email and --domain')
    if config.standalone and preflight.check_existing_server(config.http_01_port):
        raise errors.WebServerPresentError(
            'Provided the standalone option with a process already listening '
            'on port {0}'.format(config.http_01_port))

    if config.private_key:
        cert_key = crypto_util.load_keypair(config.private_key, config.public_key)
    else:
        cert_key = crypto_util.generate_rsa_key()

    csr = None
    if config.csr_path:
        csr = crypto_util.load_csr(config.csr_path)
        logger.info('Successfully loaded CSR')

    os.makedirs(config.output_dir, exist_ok=True)
    fullchain_pem = issuance.issue_certificate(
        config.server, config.email, config.domain, cert_key, csr=csr,
        use_standalone=config.standalone, webroot=config.webroot,
        http_01_port=config.http_01_port, verify_ssl=not config.no_verify_ssl)

    cert_path, chain_path = crypto_util.save_certificates(fullchain_pem, config.output_dir)
    print('Certificate saved to {0}, chain saved to {1}'.format(cert_path, chain_path))
    if not config.private_key:
        crypto_util.save_keypair(
            cert_key,
            os.path.join(config.output_dir, constants.PRIVATE_KEY_FILENAME),
            os.path.join(config.output_dir, constants.PUBLIC_KEY_FILENAME))
        print('Key pair saved to {0}'.format(config.output_dir))


VERBS: dict[str, Callable[[NamespaceConfig], None]] = {
    'render': render,
    'check': check,
    'up': up,
    'down': down,
    'status': status,
    'roots': roots,
    'certs': certs,
    'issue': issue,
}


def main(cli_args: Optional[list[str]] = None) -> Optional[Union[str, int]]:
    """Run pebble-testbed.

    :param cli_args: command line to use instead of sys.argv
    :type cli_args: `list` of `str`

    :returns: value for `sys.exit` about the exit status
    :rtype: `str` or `int` or `None`

    """
    if cli_args is None:
        cli_args = sys.argv[1:]

    log.pre_arg_parse_setup()
    config = cli.prepare_and_parse_args(cli_args)
    log.post_arg_parse_setup(config)

    logger.debug('Arguments: %r', cli_args)
    VERBS[config.verb](config)
    return None


if __name__ == '__main__':
    err_string = main()
    if err_string:
        logger.warning('Exiting with message %s', err_string)
    sys.exit(err_string)  # pragma: no cover
