"""Wait for the ACME directory of a freshly started server."""
import logging
import time

from acme import messages
import requests
import urllib3

from pebble_testbed import constants
from pebble_testbed import errors

logger = logging.getLogger(__name__)

DIRECTORY_ENDPOINTS = ('newNonce', 'newAccount', 'newOrder', 'revokeCert', 'keyChange')


def suppress_x509_verification_warnings() -> None:
    """Pebble serves a throwaway certificate, silence urllib3 about it."""
    urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)


def check_until_timeout(url: str, attempts: int = constants.READINESS_ATTEMPTS,
                        interval: float = 1) -> None:
    """
    Wait and block until given url responds with status 200, or raise an exception
    after the specified number of attempts.
    :param str url: the URL to test
    :param int attempts: the number of times to try to connect to the URL
    :param float interval: seconds to wait before each attempt
    :raise .errors.ReadinessError: exception raised if unable to reach the URL
    """
    suppress_x509_verification_warnings()
    for attempt in range(attempts):
        time.sleep(interval)
        try:
            if requests.get(url, verify=False, timeout=10).status_code == 200:
                logger.debug('%s answered after %d attempt(s)', url, attempt + 1)
                return
        except requests.exceptions.RequestException as error:
            logger.debug('Attempt %d on %s failed: %s', attempt + 1, url, error)

    raise errors.ReadinessError(
        'Error, url did not respond after {0} attempts: {1}'.format(attempts, url))


def fetch_directory(url: str = constants.PEBBLE_DIRECTORY_URL,
                    verify_ssl: bool = False) -> messages.Directory:
    """Fetch an ACME directory and check it lists the RFC 8555 endpoints.

    :raises .errors.ReadinessError: if the server cannot be reached or
        the document is not a directory

    """
    if not verify_ssl:
        suppress_x509_verification_warnings()
    try:
        response = requests.get(url, verify=verify_ssl, timeout=10)
        response.raise_for_status()
        jobj = response.json()
    except requests.exceptions.RequestException as error:
        raise errors.ReadinessError('Unable to fetch directory {0}: {1}'.format(url, error))
    except ValueError:
        raise errors.ReadinessError('Directory {0} is not a JSON document'.format(url))

    if not isinstance(jobj, dict):
        raise errors.ReadinessError('Directory {0} is not a JSON object'.format(url))
    missing = [name for name in DIRECTORY_ENDPOINTS if name not in jobj]
    if missing:
        raise errors.ReadinessError('Directory {0} lacks endpoints: {1}'.format(
            url, ', '.join(missing)))
    return messages.Directory.from_json(jobj)


def wait_for_directory(url: str = constants.PEBBLE_DIRECTORY_URL,
                       attempts: int = constants.READINESS_ATTEMPTS) -> messages.Directory:
    """Block until `url` answers, then fetch and check the directory."""
    logger.info('Waiting for ACME directory at %s...', url)
    check_until_timeout(url, attempts)
    return fetch_directory(url)
