"""Certificate issuance for one domain against an ACME server.

The flow is the minimal RFC 8555 one: register an account, order a
certificate for a single ``dns`` identifier, fulfill its http-01 challenge,
finalize and download the chain. It is meant to exercise a Pebble instance
but works against any ACME CA.

"""
import contextlib
import logging
import os
from typing import Iterator
from typing import Optional

from acme import challenges
from acme import client
from acme import messages
from acme import standalone
from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import rsa
import josepy as jose

from pebble_testbed import constants
from pebble_testbed import crypto_util
from pebble_testbed import errors
from pebble_testbed import preflight

logger = logging.getLogger(__name__)

PROBLEM_DESCRIPTIONS = dict(
    messages.ERROR_CODES,
    userActionRequired='Visit the "instance" URL and take actions specified there',
)


def describe_problem(error: messages.Error) -> str:
    """Readable message for an ACME problem document."""
    code = str(error.typ).rsplit(':', maxsplit=1)[-1]
    description = PROBLEM_DESCRIPTIONS.get(code, error.title or 'Unknown problem')
    if error.detail:
        return '{0}: {1}'.format(description, error.detail)
    return description


def new_client(directory_url: str, account_key: Optional[jose.JWKRSA] = None,
               verify_ssl: bool = True) -> client.ClientV2:
    """Connect to an ACME server and fetch its directory.

    A fresh account key is generated unless one is given.

    """
    if account_key is None:
        account_key = jose.JWKRSA(key=crypto_util.generate_rsa_key())
    net = client.ClientNetwork(account_key, alg=jose.RS256, verify_ssl=verify_ssl,
                               user_agent=constants.USER_AGENT)
    directory = client.ClientV2.get_directory(directory_url, net)
    return client.ClientV2(directory, net=net)


def register(acme_client: client.ClientV2, email: str) -> messages.RegistrationResource:
    """Create an account agreeing to the terms of service."""
    regr = acme_client.new_account(
        messages.NewRegistration.from_data(email=email, terms_of_service_agreed=True))
    logger.info('Registered account %s', regr.uri)
    return regr


def select_http01(orderr: messages.OrderResource) -> messages.ChallengeBody:
    """The http-01 challenge of the first authorization of an order.

    :raises .errors.NoHttpChallengeError: if none is offered

    """
    if not orderr.authorizations:
        raise errors.NoHttpChallengeError()
    for challb in orderr.authorizations[0].body.challenges:
        if isinstance(challb.chall, challenges.HTTP01):
            return challb
    raise errors.NoHttpChallengeError()


@contextlib.contextmanager
def standalone_server(resources: set[standalone.HTTP01RequestHandler.HTTP01Resource],
                      port: int) -> Iterator[standalone.HTTP01DualNetworkedServers]:
    """Serve http-01 resources on `port` for the lifetime of the context.

    :raises .errors.WebServerPresentError: if the port is already served

    """
    if preflight.check_existing_server(port):
        raise errors.WebServerPresentError(
            'A process already listens on port {0}, cannot start standalone server'.format(port))
    servers = standalone.HTTP01DualNetworkedServers(('', port), resources)
    servers.serve_forever()
    try:
        yield servers
    finally:
        servers.shutdown_and_server_close()


@contextlib.contextmanager
def webroot_resource(webroot: str, chall: challenges.HTTP01, validation: str,
                     port: int) -> Iterator[str]:
    """Publish the key authorization in the webroot of a running web server.

    :raises .errors.NoWebServerError: if nothing listens on `port`

    """
    if not preflight.check_existing_server(port):
        raise errors.NoWebServerError('No web server listens on port {0}'.format(port))
    path = os.path.join(webroot, chall.path.lstrip('/'))
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'w') as file_h:
        file_h.write(validation)
    try:
        yield path
    finally:
        os.remove(path)


def perform_http01(acme_client: client.ClientV2, challb: messages.ChallengeBody,
                   orderr: messages.OrderResource, use_standalone: bool = True,
                   webroot: Optional[str] = None,
                   http_01_port: int = 80) -> messages.OrderResource:
    """Answer an http-01 challenge and finalize the order."""
    response, validation = challb.response_and_validation(acme_client.net.key)

    if use_standalone:
        resource = standalone.HTTP01RequestHandler.HTTP01Resource(
            chall=challb.chall, response=response, validation=validation)
        context = standalone_server({resource}, http_01_port)
    elif webroot is not None:
        context = webroot_resource(webroot, challb.chall, validation, http_01_port)
    else:
        raise errors.NoWebServerError(
            'Either a standalone server or a webroot is needed to answer http-01')

    with context:
        acme_client.answer_challenge(challb, response)
        return acme_client.poll_and_finalize(orderr)


def issue_certificate(directory_url: str, email: str, domain: str,
                      cert_key: rsa.RSAPrivateKey,
                      csr: Optional[x509.CertificateSigningRequest] = None,
                      use_standalone: bool = False, webroot: Optional[str] = None,
                      http_01_port: int = 80, verify_ssl: bool = True) -> str:
    """Obtain a certificate for `domain`.

    :param str directory_url: ACME directory of the CA
    :param str email: account contact
    :param str domain: domain to certify
    :param cert_key: key of the certificate, used to build the CSR when
        `csr` is not given
    :param csr: CSR to finalize the order with
    :param bool use_standalone: serve the challenge from a temporary server
    :param str webroot: webroot of a running server to publish the
        challenge in, when not using a standalone server
    :param int http_01_port: port the CA validates http-01 on
    :param bool verify_ssl: verify the TLS certificate of the CA

    :returns: the certificate chain, leaf first
    :rtype: str

    :raises .errors.IssuanceError: if `csr` does not name `domain`

    """
    if csr is None:
        csr = crypto_util.make_csr(cert_key, domain)
    elif domain not in crypto_util.csr_domains(csr):
        raise errors.IssuanceError('CSR does not name {0}, it names: {1}'.format(
            domain, ', '.join(crypto_util.csr_domains(csr))))

    acme_client = new_client(directory_url, verify_ssl=verify_ssl)
    register(acme_client, email)

    orderr = acme_client.new_order(crypto_util.csr_pem(csr))
    logger.info('Created order %s', orderr.uri)
    challb = select_http01(orderr)
    logger.debug('Selected challenge %s', challb.uri)

    finalized = perform_http01(acme_client, challb, orderr, use_standalone, webroot,
                               http_01_port)
    logger.info('Certificate issued for %s', domain)
    return finalized.fullchain_pem
