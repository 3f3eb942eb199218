"""pebble-testbed command line argument parser"""
import argparse
from typing import Any
from typing import Optional

import configargparse

from pebble_testbed import __version__
from pebble_testbed import constants
from pebble_testbed.configuration import NamespaceConfig

SHORT_USAGE = """
  testbed [SUBCOMMAND] [options]

Set up and exercise a local Pebble ACME test server. Without a subcommand,
"check" is run.
"""

VERB_HELP = {
    'render': 'Write the default Compose file for the Pebble service',
    'check': 'Load the Compose file and run the preflight checks',
    'up': 'Start Pebble and wait for its ACME directory',
    'down': 'Stop Pebble',
    'status': 'Probe the ACME directory and list its endpoints',
    'roots': 'Print or save Pebble root or intermediate certificates',
    'certs': "Write a self-signed certificate for Pebble's listeners",
    'issue': 'Obtain a certificate for a domain through the ACME flow',
}


def flag_default(name: str) -> Any:
    """Default value for CLI flag."""
    return constants.CLI_DEFAULTS[name]


def _verbs_overview() -> str:
    longest = max(len(verb) for verb in VERB_HELP)
    return '\n'.join('  {0:<{length}}  {1}'.format(verb, doc, length=longest)
                     for verb, doc in VERB_HELP.items())


def _server_from_args(args: argparse.Namespace) -> None:
    """Resolve the ACME server shortcuts into ``server``."""
    if args.pebble:
        args.server = args.directory_url
        args.no_verify_ssl = True
    elif args.staging:
        args.server = constants.LETS_ENCRYPT_STAGING


def prepare_parser() -> configargparse.ArgParser:
    """Build the argument parser."""
    parser = configargparse.ArgParser(
        prog='testbed',
        usage=SHORT_USAGE,
        description='Subcommands:\n' + _verbs_overview(),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        args_for_setting_config_path=['-c', '--config'],
        default_config_files=flag_default('config_files'),
        auto_env_var_prefix='TESTBED_',
        config_arg_help_message='path to config file (default: {0})'.format(
            ' and '.join(flag_default('config_files'))))

    parser.add_argument('verb', nargs='?', default='check', choices=list(VERB_HELP),
                        help='subcommand to run')
    parser.add_argument('--version', action='version',
                        version='%(prog)s {0}'.format(__version__))

    general = parser.add_argument_group('general')
    general.add_argument(
        '-v', '--verbose', dest='verbose_count', action='count',
        default=flag_default('verbose_count'),
        help='This flag can be used multiple times to incrementally increase the verbosity '
             'of output, e.g. -vvv.')
    general.add_argument(
        '-q', '--quiet', action='store_true', default=flag_default('quiet'),
        help='Silence all output except errors.')
    general.add_argument(
        '--debug', action='store_true', default=flag_default('debug'),
        help='Show tracebacks in case of errors.')
    general.add_argument(
        '--work-dir', default=flag_default('work_dir'),
        help='Working directory, caches downloaded Pebble binaries.')
    general.add_argument(
        '--logs-dir', default=flag_default('logs_dir'),
        help='Logs directory.')
    general.add_argument(
        '--max-log-backups', type=int, default=flag_default('max_log_backups'),
        help='Number of rotated log files to keep, 0 disables rotation.')

    stack = parser.add_argument_group('stack')
    stack.add_argument(
        '-f', '--compose-file', default=flag_default('compose_file'),
        help='Compose file declaring the Pebble service.')
    stack.add_argument(
        '--service', default=flag_default('service'),
        help='Name of the Pebble service in the Compose file.')
    stack.add_argument(
        '--project-name', default=flag_default('project_name'),
        help='Compose project name.')
    stack.add_argument(
        '--runtime', default=flag_default('runtime'),
        help='Container runtime executable providing Compose, like docker or podman.')
    stack.add_argument(
        '--native', action='store_true', default=flag_default('native'),
        help='Run the Pebble release binary instead of a container.')
    stack.add_argument(
        '--skip-preflight', action='store_true', default=flag_default('skip_preflight'),
        help='Do not check mounts and ports before starting.')
    stack.add_argument(
        '--readiness-attempts', type=int, default=flag_default('readiness_attempts'),
        help='Seconds to wait for the ACME directory to answer.')
    stack.add_argument(
        '--directory-url', default=flag_default('directory_url'),
        help='ACME directory of the local Pebble instance.')
    stack.add_argument(
        '--management-url', default=flag_default('management_url'),
        help='Management interface of the local Pebble instance.')
    stack.add_argument(
        '--with-pebble-config', action='store_true',
        default=flag_default('with_pebble_config'),
        help='render: also write the Pebble configuration next to the Compose file.')
    stack.add_argument(
        '--force', action='store_true', default=flag_default('force'),
        help='render, certs: overwrite existing files.')

    roots = parser.add_argument_group('roots')
    roots.add_argument(
        '--index', dest='roots_index', type=int, default=flag_default('roots_index'),
        help='Which root chain to fetch, 0 is the default one.')
    roots.add_argument(
        '--intermediate', action='store_true', default=flag_default('intermediate'),
        help='Fetch the intermediate instead of the root.')
    roots.add_argument(
        '--roots-output', default=flag_default('roots_output'),
        help='Write the certificate to this file instead of printing it.')

    issue = parser.add_argument_group('issue')
    issue.add_argument(
        '-e', '--email', default=flag_default('email'),
        help='The email associated with the account.')
    issue.add_argument(
        '-d', '--domain', default=flag_default('domain'),
        help='The domain to register the certificate for.')
    issue.add_argument(
        '--private-key', default=flag_default('private_key'),
        help='Private key file of the certificate, generated if not given.')
    issue.add_argument(
        '--public-key', default=flag_default('public_key'),
        help='Public key file matching --private-key.')
    issue.add_argument(
        '--csr-path', default=flag_default('csr_path'),
        help='PEM Certificate Signing Request to finalize the order with.')
    issue.add_argument(
        '-s', '--server', default=flag_default('server'),
        help="The ACME server's directory URL.")
    issue.add_argument(
        '--staging', action='store_true', default=False,
        help="Use the Let's Encrypt staging server.")
    issue.add_argument(
        '--pebble', action='store_true', default=False,
        help='Use the local Pebble instance given by --directory-url.')
    issue.add_argument(
        '--standalone', action='store_true', default=flag_default('standalone'),
        help='Serve the http-01 challenge from a temporary web server.')
    issue.add_argument(
        '-w', '--webroot', default=None,
        help='Publish the http-01 challenge in the webroot of a running web server.')
    issue.add_argument(
        '--http-01-port', type=int, default=flag_default('http_01_port'),
        help='Port on which the CA validates http-01 challenges.')
    issue.add_argument(
        '--output-dir', default=flag_default('output_dir'),
        help='Where to save the certificate, chain and generated keys.')
    issue.add_argument(
        '--no-verify-ssl', action='store_true', default=flag_default('no_verify_ssl'),
        help="Do not verify the ACME server's TLS certificate.")

    return parser


def prepare_and_parse_args(args: Optional[list[str]] = None) -> NamespaceConfig:
    """Parse command line arguments into a configuration.

    :param list args: command line arguments, `sys.argv` if None

    :raises .errors.Error: if the options are inconsistent

    """
    parser = prepare_parser()
    namespace = parser.parse_args(args)
    _server_from_args(namespace)
    return NamespaceConfig(namespace)
