"""Client for the Pebble management interface.

Pebble regenerates its root and intermediate CAs on every start; the
management interface is how tests get hold of them, and of the
revocation status of issued certificates.

"""
import datetime
import logging
import re
from typing import NamedTuple
from typing import Optional
from typing import Union

from cryptography import x509
from dateutil import parser
import requests

from pebble_testbed import constants
from pebble_testbed import errors
from pebble_testbed import readiness

logger = logging.getLogger(__name__)


class CertStatus(NamedTuple):
    """Status of an issued certificate as known by Pebble."""
    status: str
    certificate: x509.Certificate
    revoked_at: Optional[datetime.datetime] = None

    @property
    def revoked(self) -> bool:  # pylint: disable=missing-function-docstring
        return self.status.lower() == 'revoked'


class ManagementClient:
    """Pebble management API client.

    :ivar str url: base URL of the management interface

    """
    def __init__(self, url: str = constants.PEBBLE_MANAGEMENT_URL, verify_ssl: bool = False,
                 timeout: int = 10) -> None:
        self.url = url.rstrip('/')
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        if not verify_ssl:
            readiness.suppress_x509_verification_warnings()

    def _get(self, path: str) -> requests.Response:
        url = '{0}/{1}'.format(self.url, path.lstrip('/'))
        logger.debug('Sending GET request to %s.', url)
        try:
            response = requests.get(url, verify=self.verify_ssl, timeout=self.timeout)
        except requests.exceptions.RequestException as error:
            raise errors.ManagementError('Request to {0} failed: {1}'.format(url, error))
        if not response.ok:
            raise errors.ManagementError('Request to {0} failed with HTTP {1}: {2}'.format(
                url, response.status_code, response.text.strip()))
        return response

    def root(self, index: int = 0) -> bytes:
        """PEM root certificate, `index` selects an alternate root."""
        return self._get('/roots/{0}'.format(index)).content

    def root_key(self, index: int = 0) -> bytes:
        """PEM private key of a root."""
        return self._get('/root-keys/{0}'.format(index)).content

    def intermediate(self, index: int = 0) -> bytes:
        """PEM intermediate certificate issued by root `index`."""
        return self._get('/intermediates/{0}'.format(index)).content

    def intermediate_key(self, index: int = 0) -> bytes:
        """PEM private key of an intermediate."""
        return self._get('/intermediate-keys/{0}'.format(index)).content

    def cert_status(self, serial: Union[int, str]) -> CertStatus:
        """Status of the certificate with this serial number.

        :param serial: serial as an int, or as a hexadecimal string

        """
        if isinstance(serial, int):
            serial = format(serial, 'x')
        data = self._get('/cert-status-by-serial/{0}'.format(serial)).json()
        try:
            cert = x509.load_pem_x509_certificate(data['Certificate'].encode())
            status = data['Status']
        except (KeyError, ValueError) as error:
            raise errors.ManagementError('Unexpected certificate status: {0}'.format(error))

        revoked_at = None
        if data.get('RevokedAt'):
            # "... +0000 UTC" => "+0000"
            revoked_at = parser.parse(re.sub(r'( \+\d{4}).*$', r'\1', data['RevokedAt']))
        return CertStatus(status, cert, revoked_at)
