"""Keys, CSRs and certificates used around the Pebble test server."""
import datetime
import logging
import os
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from pebble_testbed import constants
from pebble_testbed import errors

logger = logging.getLogger(__name__)

PEM_END_CERT = '-----END CERTIFICATE-----'


def generate_rsa_key(bits: int = constants.KEY_WIDTH) -> rsa.RSAPrivateKey:
    """Generate an RSA private key."""
    return rsa.generate_private_key(public_exponent=65537, key_size=bits)


def private_key_pem(key: rsa.RSAPrivateKey) -> bytes:
    """PKCS#8 PEM encoding of a private key, unencrypted."""
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption())


def public_key_pem(key: rsa.RSAPrivateKey) -> bytes:
    """SubjectPublicKeyInfo PEM encoding of the public half of a key."""
    return key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo)


def save_keypair(key: rsa.RSAPrivateKey,
                 private_path: str = constants.PRIVATE_KEY_FILENAME,
                 public_path: str = constants.PUBLIC_KEY_FILENAME) -> None:
    """Write a key pair as two PEM files.

    The private key file is readable by its owner only.

    """
    fd = os.open(private_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, 'wb') as file_h:
        file_h.write(private_key_pem(key))
    with open(public_path, 'wb') as file_h:
        file_h.write(public_key_pem(key))
    logger.debug('Saved key pair to %s and %s', private_path, public_path)


def load_keypair(private_path: str, public_path: str) -> rsa.RSAPrivateKey:
    """Load a key pair from PEM files.

    :returns: the private key
    :raises .errors.Error: if the files are unreadable, the key is not RSA,
        or the public key does not belong to the private key

    """
    try:
        with open(private_path, 'rb') as file_h:
            private_key = serialization.load_pem_private_key(file_h.read(), password=None)
        with open(public_path, 'rb') as file_h:
            public_key = serialization.load_pem_public_key(file_h.read())
    except (IOError, ValueError, TypeError) as error:
        raise errors.Error('Unable to load key pair: {0}'.format(error))

    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise errors.Error('Only RSA keys are supported, got {0}'.format(
            type(private_key).__name__))
    if not isinstance(public_key, rsa.RSAPublicKey) or \
            public_key.public_numbers() != private_key.public_key().public_numbers():
        raise errors.Error('Public key {0} does not match private key {1}'.format(
            public_path, private_path))
    return private_key


def load_csr(path: str) -> x509.CertificateSigningRequest:
    """Load a PEM encoded CSR.

    :raises .errors.Error: if the file is unreadable or not a valid CSR

    """
    try:
        with open(path, 'rb') as file_h:
            csr = x509.load_pem_x509_csr(file_h.read())
    except (IOError, ValueError) as error:
        raise errors.Error('Unable to load CSR from {0}: {1}'.format(path, error))
    if not csr.is_signature_valid:
        raise errors.Error('CSR in {0} has an invalid signature'.format(path))
    return csr


def make_csr(key: rsa.RSAPrivateKey, domain: str) -> x509.CertificateSigningRequest:
    """Build a CSR for a single domain, named in both CN and SAN."""
    return (
        x509.CertificateSigningRequestBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, domain)]))
        .add_extension(x509.SubjectAlternativeName([x509.DNSName(domain)]), critical=False)
        .sign(key, hashes.SHA256())
    )


def csr_pem(csr: x509.CertificateSigningRequest) -> bytes:
    return csr.public_bytes(serialization.Encoding.PEM)


def csr_domains(csr: x509.CertificateSigningRequest) -> list[str]:
    """DNS names in a CSR, common name first."""
    names = [attr.value for attr in csr.subject.get_attributes_for_oid(NameOID.COMMON_NAME)]
    try:
        san = csr.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        pass
    else:
        names.extend(name for name in san.value.get_values_for_type(x509.DNSName)
                     if name not in names)
    return [str(name) for name in names]


def split_chain(fullchain_pem: str) -> tuple[str, str]:
    """Split a PEM chain into the leaf certificate and the whole chain.

    :raises .errors.Error: if no certificate is found

    """
    end = fullchain_pem.find(PEM_END_CERT)
    if end == -1:
        raise errors.Error('No certificate found in chain')
    leaf = fullchain_pem[:end + len(PEM_END_CERT)].lstrip() + '\n'
    return leaf, fullchain_pem


def save_certificates(fullchain_pem: str, output_dir: str = '.') -> tuple[str, str]:
    """Write the leaf certificate and the full chain to `output_dir`.

    :returns: paths of the leaf certificate and of the chain
    :rtype: tuple

    """
    leaf, chain = split_chain(fullchain_pem)
    cert_path = os.path.join(output_dir, constants.CERT_FILENAME)
    chain_path = os.path.join(output_dir, constants.CHAIN_FILENAME)
    with open(cert_path, 'w') as file_h:
        file_h.write(leaf)
    with open(chain_path, 'w') as file_h:
        file_h.write(chain)
    logger.info('Saved certificate to %s and chain to %s', cert_path, chain_path)
    return cert_path, chain_path


def make_self_signed(domain: str = 'localhost', key: Optional[rsa.RSAPrivateKey] = None,
                     days: int = 365) -> tuple[bytes, bytes]:
    """Create a self-signed certificate for Pebble's HTTPS listeners.

    :returns: PEM certificate and PEM private key
    :rtype: tuple

    """
    if key is None:
        key = generate_rsa_key()
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, domain)])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=5))
        .not_valid_after(now + datetime.timedelta(days=days))
        .add_extension(x509.SubjectAlternativeName([x509.DNSName(domain)]), critical=False)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.PEM), private_key_pem(key)


def write_self_signed(cert_path: str, key_path: str, domain: str = 'localhost',
                      force: bool = False) -> None:
    """Write a self-signed pair where Pebble's bind mounts expect it.

    :raises .errors.Error: if a file exists and `force` is not set

    """
    if not force:
        existing = [path for path in (cert_path, key_path) if os.path.exists(path)]
        if existing:
            raise errors.Error('Refusing to overwrite {0}'.format(', '.join(existing)))
    cert_pem, key_pem = make_self_signed(domain)
    for path in (cert_path, key_path):
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
    with open(cert_path, 'wb') as file_h:
        file_h.write(cert_pem)
    fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, 'wb') as file_h:
        file_h.write(key_pem)
    logger.info('Wrote self-signed certificate for %s to %s', domain, cert_path)
