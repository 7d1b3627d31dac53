'''
Retrieve the certificate chain presented by a TLS endpoint.
'''
import ssl
import time
import socket
import logging
import datetime
import dataclasses

from typing import List, Tuple, Union

import cryptography.x509 as c_x509
import cryptography.exceptions as c_exceptions
import cryptography.hazmat.primitives.asymmetric.ec as c_ec
import cryptography.hazmat.primitives.asymmetric.rsa as c_rsa
import cryptography.hazmat.primitives.asymmetric.ed25519 as c_ed25519
import cryptography.hazmat.primitives.serialization as c_serialization

import ssltool.exc as s_exc
import ssltool.lib.const as s_const

logger = logging.getLogger(__name__)

# public key algorithms which may be rendered as a CERTIFICATE pem block
PEM_KEYALGOS = (s_const.KEYALGO_RSA, s_const.KEYALGO_ECDSA, s_const.KEYALGO_ED25519)

StrOrNone = Union[str, None]
HostAndPort = Tuple[str, int]

@dataclasses.dataclass(frozen=True)
class CertDetails:
    '''
    Details about a single certificate presented by a TLS peer.
    '''
    notafter: datetime.datetime
    notbefore: datetime.datetime
    issuer: str
    subject: str
    dnsnames: Tuple[str, ...]
    serial: int
    keyalgo: str
    raw: bytes
    cert: c_x509.Certificate = dataclasses.field(repr=False, compare=False)

def getKeyAlgo(pubkey) -> str:
    if isinstance(pubkey, c_rsa.RSAPublicKey):
        return s_const.KEYALGO_RSA
    if isinstance(pubkey, c_ec.EllipticCurvePublicKey):
        return s_const.KEYALGO_ECDSA
    if isinstance(pubkey, c_ed25519.Ed25519PublicKey):
        return s_const.KEYALGO_ED25519
    return s_const.KEYALGO_OTHER

def getDnsNames(cert: c_x509.Certificate) -> Tuple[str, ...]:
    try:
        ext = cert.extensions.get_extension_for_class(c_x509.SubjectAlternativeName)
    except c_x509.ExtensionNotFound:
        return ()
    return tuple(ext.value.get_values_for_type(c_x509.DNSName))

def getDetailsFromCert(cert: c_x509.Certificate) -> CertDetails:
    '''
    Build a CertDetails from a parsed certificate.

    Args:
        cert: The certificate.

    Returns:
        CertDetails: The certificate details.
    '''
    try:
        pubkey = cert.public_key()
    except (ValueError, TypeError):  # pragma: no cover
        keyalgo = s_const.KEYALGO_OTHER
    else:
        keyalgo = getKeyAlgo(pubkey)

    return CertDetails(
        notafter=cert.not_valid_after_utc,
        notbefore=cert.not_valid_before_utc,
        issuer=cert.issuer.rfc4514_string(),
        subject=cert.subject.rfc4514_string(),
        dnsnames=getDnsNames(cert),
        serial=cert.serial_number,
        keyalgo=keyalgo,
        raw=cert.public_bytes(c_serialization.Encoding.DER),
        cert=cert,
    )

def getDetailsFromDer(byts: bytes) -> CertDetails:
    '''
    Parse DER encoded certificate bytes into a CertDetails.

    Raises:
        ProtocolError: If the bytes are not a valid certificate.
    '''
    return getDetailsFromCert(_loadDerCert(byts))

def _loadDerCert(byts: bytes) -> c_x509.Certificate:
    try:
        return c_x509.load_der_x509_certificate(byts)
    except ValueError as e:
        raise s_exc.ProtocolError(mesg=f'Failed to parse peer certificate: {e}') from None

def getPemCert(details: CertDetails) -> str:
    '''
    Get the PEM encoded text of a certificate.

    Args:
        details: The certificate details.

    Returns:
        str: The certificate in a CERTIFICATE PEM block.

    Raises:
        UnsupportedAlgorithm: If the certificate public key is not RSA, ECDSA or Ed25519.
    '''
    if details.keyalgo not in PEM_KEYALGOS:
        mesg = f'Unsupported public key algorithm: {details.keyalgo}'
        raise s_exc.UnsupportedAlgorithm(mesg=mesg, keyalgo=details.keyalgo)
    return ssl.DER_cert_to_PEM_cert(details.raw)

def parseAddress(address: str) -> HostAndPort:
    '''
    Split a host:port address. IPv6 hosts must be enclosed in brackets.

    Raises:
        ConnectFailed: If the address is malformed.
    '''
    host, sep, port = address.rpartition(':')
    if not sep or not host:
        raise s_exc.ConnectFailed(mesg=f'Missing port in address: {address}', address=address)

    if host.startswith('[') and host.endswith(']'):
        host = host[1:-1]
    elif ':' in host:
        raise s_exc.ConnectFailed(mesg=f'Too many colons in address: {address}', address=address)

    try:
        port = int(port)
    except ValueError:
        raise s_exc.ConnectFailed(mesg=f'Invalid port in address: {address}', address=address) from None

    if not 0 <= port <= 65535:
        raise s_exc.ConnectFailed(mesg=f'Invalid port in address: {address}', address=address)

    return host, port

def getClientSSLContext(verify: bool = True, cafile: StrOrNone = None) -> ssl.SSLContext:
    '''
    Get a client SSLContext object.

    Args:
        verify: Enforce certificate trust and hostname validation.
        cafile: Optional path to CA certificates used instead of the system trust store.

    Returns:
        ssl.SSLContext: The context object.
    '''
    try:
        sslctx = ssl.create_default_context(cafile=cafile)
    except (OSError, ssl.SSLError) as e:
        raise s_exc.BadArg(mesg=f'Failed to load CA certificates from {cafile}: {e}', cafile=cafile) from None

    if not verify:
        sslctx.check_hostname = False
        sslctx.verify_mode = ssl.CERT_NONE

    return sslctx

def isIssuedBy(cert: c_x509.Certificate, issuer: c_x509.Certificate) -> bool:
    '''
    Check if a certificate names and is signed by the given issuer certificate.
    '''
    if cert.issuer != issuer.subject:
        return False

    try:
        cert.verify_directly_issued_by(issuer)
    except (ValueError, TypeError, c_exceptions.InvalidSignature):
        return False

    return True

def orderLeafFirst(certs: List[c_x509.Certificate], leaf: c_x509.Certificate) -> List[c_x509.Certificate]:
    '''
    Order a presented chain so the peer certificate is first and each following
    certificate is the issuer of the one before it.

    Certificates which do not link into the chain are kept, in presented order, at the end.
    '''
    todo = list(certs)
    if leaf in todo:
        todo.remove(leaf)

    ordered = [leaf]
    while todo:

        last = ordered[-1]
        if last.issuer == last.subject:
            break

        issuer = None
        for cert in todo:
            if isIssuedBy(last, cert):
                issuer = cert
                break

        if issuer is None:
            break

        todo.remove(issuer)
        ordered.append(issuer)

    ordered.extend(todo)
    return ordered

def _getPeerChain(sock: ssl.SSLSocket) -> List[bytes]:
    getchain = getattr(sock, 'get_unverified_chain', None)
    if getchain is not None:
        return list(getchain())
    return _getSslObjChain(sock)

def _getSslObjChain(sock: ssl.SSLSocket) -> List[bytes]:  # pragma: no cover
    # python 3.11 and 3.12 only expose the presented chain on the underlying ssl object.
    # Remove once 3.13 is the minimum supported version.
    chain = sock._sslobj.get_unverified_chain()
    if chain is None:
        return []
    return [cert.public_bytes(ssl._ssl.ENCODING_DER) for cert in chain]

def _connect(host: str, port: int, deadline: float) -> socket.socket:
    '''
    Connect to the first reachable address for host, giving each attempt what remains of deadline.
    '''
    err = None
    for family, socktype, proto, _, sockaddr in socket.getaddrinfo(host, port, type=socket.SOCK_STREAM):

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise TimeoutError('timed out')

        sock = socket.socket(family, socktype, proto)
        try:
            sock.settimeout(remaining)
            sock.connect(sockaddr)
            return sock

        except OSError as e:
            sock.close()
            if isinstance(e, TimeoutError):
                raise
            logger.debug('Connect to %s failed: %s', sockaddr, e)
            err = e

    if err is None:
        raise OSError(f'no addresses found for {host}')
    raise err

def _getSockDetails(sock) -> List[CertDetails]:

    if not isinstance(sock, ssl.SSLSocket) or sock.version() is None:
        raise s_exc.ProtocolError(mesg='Connection did not negotiate a TLS session.')

    leafbyts = sock.getpeercert(binary_form=True)
    if not leafbyts:
        raise s_exc.ProtocolError(mesg='TLS peer did not present a certificate.')

    chain = _getPeerChain(sock)
    if not chain:
        chain = [leafbyts]

    leaf = _loadDerCert(leafbyts)
    certs = [_loadDerCert(byts) for byts in chain]

    return [getDetailsFromCert(cert) for cert in orderLeafFirst(certs, leaf)]

def getCertDetails(address: str,
                   verify: bool = True,
                   timeout: float = s_const.DEFAULT_TIMEOUT,
                   cafile: StrOrNone = None) -> List[CertDetails]:
    '''
    Connect to a TLS endpoint and retrieve details about the certificate chain it presents.

    Args:
        address: The host:port address to connect to.
        verify: Enforce certificate trust and hostname validation during the handshake.
        timeout: Seconds allowed for the connection and handshake to complete.
        cafile: Optional path to CA certificates used instead of the system trust store.

    Examples:
        Get the expiration date of the certificate for www.example.com::

            details = getCertDetails('www.example.com:443')
            print(details[0].notafter)

    Returns:
        A list of CertDetails, with the certificate of the peer first.

    Raises:
        ConnectFailed: The address could not be resolved or connected to.
        ConnectionTimeout: The connection or handshake did not complete within the timeout.
        HandshakeFailed: TLS negotiation or certificate validation failed.
        ProtocolError: The connection did not carry a TLS session with a peer certificate.
    '''
    host, port = parseAddress(address)
    sslctx = getClientSSLContext(verify=verify, cafile=cafile)

    logger.debug('Connecting to %s (verify=%s, timeout=%s)', address, verify, timeout)

    deadline = time.monotonic() + timeout
    try:
        sock = _connect(host, port, deadline)
    except TimeoutError:
        raise s_exc.ConnectionTimeout(mesg=f'Timed out connecting to {address}', address=address,
                                      timeout=timeout) from None
    except OSError as e:
        raise s_exc.ConnectFailed(mesg=f'Failed to connect to {address}: {e}', address=address) from None

    with sock:

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise s_exc.ConnectionTimeout(mesg=f'Timed out connecting to {address}', address=address,
                                          timeout=timeout)
        sock.settimeout(remaining)

        try:
            with sslctx.wrap_socket(sock, server_hostname=host) as ssock:
                details = _getSockDetails(ssock)

        except TimeoutError:
            raise s_exc.ConnectionTimeout(mesg=f'Timed out during TLS handshake with {address}',
                                          address=address, timeout=timeout) from None

        except ssl.SSLCertVerificationError as e:
            raise s_exc.HandshakeFailed(mesg=f'Certificate verification failed for {address}: {e.verify_message}',
                                        address=address) from None

        except (ssl.SSLError, OSError) as e:
            raise s_exc.HandshakeFailed(mesg=f'TLS handshake with {address} failed: {e}',
                                        address=address) from None

    logger.debug('Retrieved %d certificates from %s', len(details), address)
    return details
