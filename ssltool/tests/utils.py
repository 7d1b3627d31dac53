'''
This contains the core test helper code used in ssltool.

This gives the opportunity for third-party users of ssltool to test their
code using some of the same helpers used to test ssltool.

The core class, SslTest is a subclass of unittest.TestCase, with several
wrapper functions to allow for easier calls to assert* functions, with less
typing.  There are also ssltool specific helpers, to generate test certificate
chains and to run local TLS servers.
'''
import io
import os
import ssl
import shutil
import socket
import typing
import logging
import ipaddress
import datetime
import tempfile
import unittest
import threading
import contextlib

import cryptography.x509 as c_x509
import cryptography.hazmat.primitives.hashes as c_hashes
import cryptography.hazmat.primitives.asymmetric.ec as c_ec
import cryptography.hazmat.primitives.asymmetric.rsa as c_rsa
import cryptography.hazmat.primitives.asymmetric.ed25519 as c_ed25519
import cryptography.hazmat.primitives.serialization as c_serialization

import ssltool.exc as s_exc
import ssltool.common as s_common
import ssltool.lib.output as s_output

logger = logging.getLogger(__name__)

ONE_DAY = datetime.timedelta(days=1)

def norm(z):
    if isinstance(z, (list, tuple)):
        return tuple([norm(n) for n in z])
    if isinstance(z, dict):
        return {norm(k): norm(v) for (k, v) in z.items()}
    return z

class TstOutPut(s_output.OutPutStr):

    def expect(self, substr, throw=True):
        '''
        Check if a string is present in the messages captured by the OutPutStr object.

        Args:
            substr (str): String to check for the existence of.
            throw (bool): If True, a missing substr results in a Exception being thrown.

        Returns:
            bool: True if the string is present; False if the string is not present and throw is False.
        '''
        outs = str(self)

        if outs.find(substr) == -1:
            if throw:
                mesg = 'TestOutPut.expect(%s) not in %s' % (substr, outs)
                raise s_exc.SslToolErr(mesg=mesg)
            return False
        return True

    def clear(self):
        self.mesgs.clear()

def getFileBytes(path):
    with open(path, 'rb') as fd:
        return fd.read()

def _genKey(keyalgo):
    if keyalgo == 'rsa':
        return c_rsa.generate_private_key(public_exponent=65537, key_size=2048)
    if keyalgo == 'ed25519':
        return c_ed25519.Ed25519PrivateKey.generate()
    return c_ec.generate_private_key(c_ec.SECP256R1())

def _signCert(builder, pkey):
    digest = None
    if not isinstance(pkey, c_ed25519.Ed25519PrivateKey):
        digest = c_hashes.SHA256()
    return builder.sign(private_key=pkey, algorithm=digest)

def genTestCert(name, pubkey, issuer=None, cakey=None, ca=False, sans=(), ipaddrs=()):
    '''
    Generate a test certificate.

    Args:
        name (str): The common name of the certificate subject.
        pubkey: The public key of the certificate.
        issuer (c_x509.Certificate): The issuing certificate. If None, the certificate is self-signed.
        cakey: The private key to sign with.
        ca (bool): Mark the certificate as a CA.
        sans (list): DNS names for the subject alternative name extension.
        ipaddrs (list): IP addresses for the subject alternative name extension.

    Returns:
        c_x509.Certificate: The signed certificate.
    '''
    subj = c_x509.Name([c_x509.NameAttribute(c_x509.NameOID.COMMON_NAME, name)])
    now = datetime.datetime.now(datetime.UTC)

    builder = c_x509.CertificateBuilder()
    builder = builder.subject_name(subj)
    builder = builder.issuer_name(subj if issuer is None else issuer.subject)
    builder = builder.not_valid_before(now - ONE_DAY)
    builder = builder.not_valid_after(now + 30 * ONE_DAY)
    builder = builder.serial_number(c_x509.random_serial_number())
    builder = builder.public_key(pubkey)
    builder = builder.add_extension(c_x509.BasicConstraints(ca=ca, path_length=None), critical=True)

    # key identifiers are required by the strict verification mode of newer python releases
    builder = builder.add_extension(c_x509.SubjectKeyIdentifier.from_public_key(pubkey), critical=False)
    builder = builder.add_extension(c_x509.AuthorityKeyIdentifier.from_issuer_public_key(cakey.public_key()),
                                    critical=False)

    if ca:
        builder = builder.add_extension(
            c_x509.KeyUsage(digital_signature=True, key_encipherment=False, data_encipherment=False,
                            key_agreement=False, key_cert_sign=True, crl_sign=True, encipher_only=False,
                            decipher_only=False, content_commitment=False),
            critical=True,
        )

    altnames = [c_x509.DNSName(san) for san in sans]
    altnames.extend([c_x509.IPAddress(ipaddress.ip_address(addr)) for addr in ipaddrs])
    if altnames:
        builder = builder.add_extension(c_x509.SubjectAlternativeName(altnames), critical=False)
        builder = builder.add_extension(c_x509.ExtendedKeyUsage([c_x509.oid.ExtendedKeyUsageOID.SERVER_AUTH]),
                                        critical=False)

    return _signCert(builder, cakey)

def genTestChain(dirn, sans=('localhost',), ipaddrs=('127.0.0.1',), keyalgo='ecdsa'):
    '''
    Generate a root CA, an intermediate CA and a leaf certificate, saving them into dirn.

    Files:
        ca.crt: The root CA certificate.
        chain.crt: The leaf certificate followed by the intermediate certificate.
        leaf.key: The leaf private key.

    Returns:
        dict: The certificates and the paths of the saved files.
    '''
    rootkey = _genKey('ecdsa')
    rootcert = genTestCert('ssltool test root', rootkey.public_key(), cakey=rootkey, ca=True)

    interkey = _genKey('ecdsa')
    intercert = genTestCert('ssltool test intermediate', interkey.public_key(), issuer=rootcert, cakey=rootkey,
                            ca=True)

    leafkey = _genKey(keyalgo)
    leafcert = genTestCert(sans[0] if sans else 'ssltool test leaf', leafkey.public_key(), issuer=intercert,
                           cakey=interkey, sans=sans, ipaddrs=ipaddrs)

    pem = c_serialization.Encoding.PEM
    keybyts = leafkey.private_bytes(encoding=pem,
                                    format=c_serialization.PrivateFormat.PKCS8,
                                    encryption_algorithm=c_serialization.NoEncryption())

    return {
        'root': rootcert,
        'inter': intercert,
        'leaf': leafcert,
        'cafile': s_common.putbytes(rootcert.public_bytes(pem), dirn, 'ca.crt'),
        'certfile': s_common.putbytes(leafcert.public_bytes(pem) + intercert.public_bytes(pem), dirn, 'chain.crt'),
        'keyfile': s_common.putbytes(keybyts, dirn, 'leaf.key'),
    }

class TlsServer(threading.Thread):
    '''
    A threaded TLS server which completes a handshake with each client and then hangs up.
    '''
    def __init__(self, sslctx):
        threading.Thread.__init__(self, daemon=True)
        self.sslctx = sslctx
        self.finievt = threading.Event()
        self.lsock = socket.create_server(('127.0.0.1', 0))
        self.lsock.settimeout(0.1)
        self.port = self.lsock.getsockname()[1]

    def run(self):
        with self.lsock:
            while not self.finievt.is_set():
                try:
                    conn, addr = self.lsock.accept()
                except TimeoutError:
                    continue
                self._serve(conn)

    def _serve(self, conn):
        conn.settimeout(5)
        try:
            with self.sslctx.wrap_socket(conn, server_side=True) as ssock:
                logger.debug('test server handshake complete: %s', ssock.version())
        except (ssl.SSLError, OSError) as e:
            logger.debug('test server connection ended: %s', e)
        finally:
            conn.close()

    def fini(self):
        self.finievt.set()
        self.join(timeout=5)

class SslTest(unittest.TestCase):

    def getTestOutp(self):
        '''
        Get a Output instance with a expects() function.

        Returns:
            TstOutPut: A TstOutPut instance.
        '''
        return TstOutPut()

    @contextlib.contextmanager
    def getTestDir(self, chdir=False) -> typing.Iterator[str]:
        '''
        Get a temporary directory for test purposes.
        This destroys the directory afterwards.

        Args:
            chdir (boolean): If true, chdir the current process to that directory. This is undone when the context
                             manager exits.

        Returns:
            str: The path to a temporary directory.
        '''
        curd = os.getcwd()
        tempdir = tempfile.mkdtemp()

        try:

            if chdir:
                os.chdir(tempdir)

            yield tempdir

        finally:

            if chdir:
                os.chdir(curd)

            shutil.rmtree(tempdir, ignore_errors=True)

    @contextlib.contextmanager
    def getTestChain(self, **kwargs):
        '''
        Generate a test certificate chain in a temporary directory.

        Yields:
            dict: The output of genTestChain().
        '''
        with self.getTestDir() as dirn:
            yield genTestChain(dirn, **kwargs)

    @contextlib.contextmanager
    def getTlsServer(self, chain) -> typing.Iterator[TlsServer]:
        '''
        Run a local TLS server presenting a test certificate chain.

        Args:
            chain (dict): The output of genTestChain().

        Examples:
            Get the details of the certificates presented by a local server::

                with self.getTestChain() as chain:
                    with self.getTlsServer(chain) as server:
                        details = s_details.getCertDetails(f'127.0.0.1:{server.port}', verify=False)

        Yields:
            TlsServer: The running server.
        '''
        sslctx = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
        sslctx.load_cert_chain(chain['certfile'], chain['keyfile'])

        server = TlsServer(sslctx)
        server.start()
        try:
            yield server
        finally:
            server.fini()

    @contextlib.contextmanager
    def getSilentServer(self) -> typing.Iterator[int]:
        '''
        Listen on a local TCP port which accepts connections but never responds.

        Yields:
            int: The port number.
        '''
        with socket.create_server(('127.0.0.1', 0)) as lsock:
            yield lsock.getsockname()[1]

    @contextlib.contextmanager
    def getLoggerStream(self, logname):
        '''
        Get a logger and attach a io.StringIO object to the logger to capture log messages.

        Args:
            logname (str): Name of the logger to get.

        Examples:
            Do an action and get the stream of log messages to check against::

                with self.getLoggerStream('ssltool.lib.details') as stream:
                    # Do something that triggers a log message
                    doSomething()

                stream.seek(0)
                mesgs = stream.read()
                # Do something with messages

        Yields:
            io.StringIO: The captured log messages.
        '''
        stream = io.StringIO()
        handler = logging.StreamHandler(stream)
        slogger = logging.getLogger(logname)
        slogger.addHandler(handler)
        level = slogger.level
        slogger.setLevel('DEBUG')
        try:
            yield stream
        finally:
            slogger.removeHandler(handler)
            slogger.setLevel(level)

    @contextlib.contextmanager
    def setTstEnvars(self, **props):
        '''
        Set Environment variables for the purposes of running a specific test.

        Args:
            **props: A kwarg list of envars to set. The values set are run
            through str() to ensure we're setting strings. A value of None
            removes the envar for the duration of the test.

        Examples:
            Run a test while a envar is set::

                with self.setTstEnvars(COUNTRY='US'):
                    ret = dostuff()
                    self.true(ret)

        Yields:
            None. Upon exiting, envars are either removed from os.environ or reset to their previous values.
        '''
        old_data = {}
        for key, valu in props.items():
            old_data[key] = os.environ.get(key)
            if valu is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = str(valu)

        try:
            yield None
        finally:
            for key, valu in old_data.items():
                if valu is None:
                    os.environ.pop(key, None)
                else:
                    os.environ[key] = valu

    def eq(self, x, y, msg=None):
        '''
        Assert X is equal to Y
        '''
        self.assertEqual(norm(x), norm(y), msg=msg)

    def ne(self, x, y):
        '''
        Assert X is not equal to Y
        '''
        self.assertNotEqual(norm(x), norm(y))

    def true(self, x, msg=None):
        '''
        Assert X is True
        '''
        self.assertTrue(x, msg=msg)

    def false(self, x, msg=None):
        '''
        Assert X is False
        '''
        self.assertFalse(x, msg=msg)

    def nn(self, x, msg=None):
        '''
        Assert X is not None
        '''
        self.assertIsNotNone(x, msg=msg)
        return x

    def none(self, x, msg=None):
        '''
        Assert X is None
        '''
        self.assertIsNone(x, msg=msg)

    def raises(self, *args, **kwargs):
        '''
        Assert a function raises an exception.
        '''
        return self.assertRaises(*args, **kwargs)

    def isinstance(self, obj, cls, msg=None):
        '''
        Assert a object is the instance of a given class or tuple of classes.
        '''
        self.assertIsInstance(obj, cls, msg=msg)

    def isin(self, member, container, msg=None):
        '''
        Assert a member is inside of a container.
        '''
        self.assertIn(member, container, msg=msg)

    def notin(self, member, container, msg=None):
        '''
        Assert a member is not inside of a container.
        '''
        self.assertNotIn(member, container, msg=msg)

    def gt(self, x, y, msg=None):
        '''
        Assert that X is greater than Y
        '''
        self.assertGreater(x, y, msg=msg)

    def len(self, x, obj, msg=None):
        '''
        Assert that the length of an object is equal to X
        '''
        self.eq(x, len(obj), msg=msg)
