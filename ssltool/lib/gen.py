'''
Generate certificate signing requests and their private keys.
'''
import os
import logging
import dataclasses

from typing import Callable, List, Sequence, Union

import cryptography.x509 as c_x509
import cryptography.exceptions as c_exc
import cryptography.hazmat.primitives.hashes as c_hashes
import cryptography.hazmat.primitives.asymmetric.ec as c_ec
import cryptography.hazmat.primitives.asymmetric.rsa as c_rsa
import cryptography.hazmat.primitives.asymmetric.ed25519 as c_ed25519
import cryptography.hazmat.primitives.serialization as c_serialization

import ssltool.exc as s_exc
import ssltool.lib.const as s_const

logger = logging.getLogger(__name__)

StrOrNone = Union[str, None]
RandFunc = Callable[[int], bytes]
PrivKey = Union[c_rsa.RSAPrivateKey, c_ec.EllipticCurvePrivateKey, c_ed25519.Ed25519PrivateKey]

# per-algorithm key serialization and csr signature behavior
keyalgos = {
    s_const.KEYALGO_RSA: {
        'ctor': c_rsa.RSAPrivateKey,
        'format': c_serialization.PrivateFormat.TraditionalOpenSSL,  # PKCS#1
        'pemtype': 'RSA PRIVATE KEY',
        'digest': c_hashes.SHA256,  # PKCS#1 v1.5
        'signopts': {},
    },
    s_const.KEYALGO_ECDSA: {
        'ctor': c_ec.EllipticCurvePrivateKey,
        'format': c_serialization.PrivateFormat.TraditionalOpenSSL,  # SEC1
        'pemtype': 'EC PRIVATE KEY',
        'digest': c_hashes.SHA256,
        # RFC 6979 nonces
        'signopts': {'ecdsa_deterministic': True},
    },
    s_const.KEYALGO_ED25519: {
        'ctor': c_ed25519.Ed25519PrivateKey,
        'format': c_serialization.PrivateFormat.PKCS8,
        'pemtype': 'PRIVATE KEY',
        'digest': None,
        'signopts': {},
    },
}

curves = {
    'P-256': c_ec.SECP256R1,
    'P-384': c_ec.SECP384R1,
    'P-521': c_ec.SECP521R1,
}

# Subject attribute names in the order they are encoded.
nameattrs = (
    ('country', c_x509.NameOID.COUNTRY_NAME),
    ('province', c_x509.NameOID.STATE_OR_PROVINCE_NAME),
    ('locality', c_x509.NameOID.LOCALITY_NAME),
    ('org', c_x509.NameOID.ORGANIZATION_NAME),
    ('orgunit', c_x509.NameOID.ORGANIZATIONAL_UNIT_NAME),
    ('commonname', c_x509.NameOID.COMMON_NAME),
)

@dataclasses.dataclass(frozen=True)
class Subject:
    '''
    The distinguished name fields of a certificate signing request.

    Blank fields are omitted from the encoded name.
    '''
    commonname: str = ''
    country: str = ''
    org: str = ''
    orgunit: str = ''
    locality: str = ''
    province: str = ''

    def getX509Name(self) -> c_x509.Name:
        '''
        Get the cryptography Name for the non-blank subject fields.

        Raises:
            InvalidSubject: If a field value can not be encoded.
        '''
        attrs = []
        for name, oid in nameattrs:
            valu = getattr(self, name).strip()
            if not valu:
                continue
            try:
                attrs.append(c_x509.NameAttribute(oid, valu))
            except ValueError as e:
                raise s_exc.InvalidSubject(mesg=f'Invalid subject {name}: {e}', name=name, valu=valu) from None
        return c_x509.Name(attrs)

@dataclasses.dataclass(frozen=True)
class CsrResult:
    csrpem: str
    keypem: str

class KeyMaterial:
    '''
    A private key of one of the supported algorithms (rsa, ecdsa, ed25519).

    Args:
        keyalgo: The key algorithm name.
        pkey: The cryptography private key.
    '''
    def __init__(self, keyalgo: str, pkey: PrivKey):

        info = keyalgos.get(keyalgo)
        if info is None or not isinstance(pkey, info['ctor']):
            raise s_exc.UnsupportedKeyType(mesg=f'Unsupported private key type: {keyalgo}', keyalgo=keyalgo)

        self.keyalgo = keyalgo
        self.pkey = pkey
        self.info = info

    @property
    def pemtype(self) -> str:
        return self.info['pemtype']

    @staticmethod
    def fromPrivKey(pkey: PrivKey) -> 'KeyMaterial':
        '''
        Wrap an existing cryptography private key.

        Raises:
            UnsupportedKeyType: If the key is not an RSA, EC or Ed25519 private key.
        '''
        for keyalgo, info in keyalgos.items():
            if isinstance(pkey, info['ctor']):
                return KeyMaterial(keyalgo, pkey)

        mesg = f'Unsupported private key type: {pkey.__class__.__name__}'
        raise s_exc.UnsupportedKeyType(mesg=mesg, keyalgo=pkey.__class__.__name__)

    @staticmethod
    def load(byts: bytes, passwd: StrOrNone = None) -> 'KeyMaterial':
        '''
        Load a PEM encoded private key.

        Args:
            byts: The PEM bytes.
            passwd: The passphrase for an encrypted key.

        Returns:
            KeyMaterial: The loaded key.
        '''
        if passwd is not None:
            passwd = passwd.encode()

        try:
            pkey = c_serialization.load_pem_private_key(byts, password=passwd)
        except c_exc.UnsupportedAlgorithm as e:
            raise s_exc.UnsupportedKeyType(mesg=f'Unsupported private key: {e}') from None
        except (ValueError, TypeError) as e:
            raise s_exc.BadArg(mesg=f'Failed to load private key: {e}') from None

        return KeyMaterial.fromPrivKey(pkey)

    def sign(self, builder: c_x509.CertificateSigningRequestBuilder) -> c_x509.CertificateSigningRequest:
        '''
        Sign a CSR builder with the algorithm specific signature scheme.

        Raises:
            SigningFailed: If the request could not be signed.
        '''
        digest = self.info['digest']
        if digest is not None:
            digest = digest()

        try:
            return builder.sign(self.pkey, digest, **self.info['signopts'])
        except (ValueError, TypeError, c_exc.UnsupportedAlgorithm) as e:
            raise s_exc.SigningFailed(mesg=f'Failed to sign certificate request: {e}', keyalgo=self.keyalgo) from None

    def getPemKey(self, passwd: StrOrNone = None) -> str:
        '''
        Get the PEM encoded private key.

        Args:
            passwd: If set, encrypt the key with AES-256-CBC using this passphrase.

        Notes:
            RSA and EC keys encrypt as legacy PEM blocks carrying Proc-Type and DEK-Info headers.
            Ed25519 keys have no legacy format and encrypt as an ENCRYPTED PRIVATE KEY block.

        Returns:
            str: The PEM text.

        Raises:
            KeyEncryptionFailed: If the key could not be encrypted.
        '''
        if passwd is None:
            encalgo = c_serialization.NoEncryption()
        else:
            if not passwd:
                raise s_exc.KeyEncryptionFailed(mesg='A non-empty passphrase is required to encrypt the private key.')
            encalgo = c_serialization.BestAvailableEncryption(passwd.encode())

        try:
            byts = self.pkey.private_bytes(encoding=c_serialization.Encoding.PEM,
                                           format=self.info['format'],
                                           encryption_algorithm=encalgo)
        except (ValueError, TypeError) as e:
            if passwd is not None:
                raise s_exc.KeyEncryptionFailed(mesg=f'Failed to encrypt private key: {e}',
                                                keyalgo=self.keyalgo) from None
            raise s_exc.UnsupportedKeyType(mesg=f'Failed to serialize private key: {e}',
                                           keyalgo=self.keyalgo) from None

        return byts.decode()

def _genRsaKey(bits: int, curve: str, rand: RandFunc) -> c_rsa.RSAPrivateKey:
    if bits < s_const.RSA_MIN_BITS:
        raise s_exc.BadArg(mesg=f'RSA keys must be at least {s_const.RSA_MIN_BITS} bits, got {bits}', bits=bits)
    # rsa keys are generated from the OpenSSL random source
    return c_rsa.generate_private_key(public_exponent=s_const.RSA_PUBLIC_EXPONENT, key_size=bits)

def _genEcdsaKey(bits: int, curve: str, rand: RandFunc) -> c_ec.EllipticCurvePrivateKey:

    ctor = curves.get(curve)
    if ctor is None:
        raise s_exc.BadArg(mesg=f'Unsupported curve: {curve}', curve=curve)

    ecurve = ctor()
    size = (ecurve.key_size + 7) // 8
    extra = size * 8 - ecurve.key_size

    for _ in range(64):
        valu = int.from_bytes(rand(size), 'big') >> extra
        if valu == 0:
            continue
        try:
            return c_ec.derive_private_key(valu, ecurve)
        except ValueError:
            # scalar outside the curve order
            continue

    raise s_exc.KeyGenerationFailed(mesg=f'Failed to derive a {curve} private key from the random source.',
                                    curve=curve)

def _genEd25519Key(bits: int, curve: str, rand: RandFunc) -> c_ed25519.Ed25519PrivateKey:
    return c_ed25519.Ed25519PrivateKey.from_private_bytes(rand(32))

keygens = {
    s_const.KEYALGO_RSA: _genRsaKey,
    s_const.KEYALGO_ECDSA: _genEcdsaKey,
    s_const.KEYALGO_ED25519: _genEd25519Key,
}

def genKeyMaterial(keyalgo: str = s_const.KEYALGO_RSA,
                   bits: int = s_const.RSA_DEFAULT_BITS,
                   curve: str = 'P-256',
                   rand: Union[RandFunc, None] = None) -> KeyMaterial:
    '''
    Generate a new private key.

    Args:
        keyalgo: One of rsa, ecdsa or ed25519.
        bits: The RSA key size.
        curve: The ECDSA curve name (P-256, P-384 or P-521).
        rand: A callable returning the requested number of random bytes. Defaults to os.urandom.

    Notes:
        ECDSA and Ed25519 keys are derived from bytes drawn from rand, so a deterministic rand
        yields the same key. RSA keys are always drawn from the OpenSSL random source.

    Returns:
        KeyMaterial: The new key.
    '''
    if rand is None:
        rand = os.urandom

    func = keygens.get(keyalgo)
    if func is None:
        raise s_exc.UnsupportedKeyType(mesg=f'Unsupported key type: {keyalgo}', keyalgo=keyalgo)

    try:
        pkey = func(bits, curve, rand)
    except s_exc.SslToolErr:
        raise
    except (ValueError, TypeError, c_exc.UnsupportedAlgorithm) as e:
        raise s_exc.KeyGenerationFailed(mesg=f'Failed to generate {keyalgo} private key: {e}',
                                        keyalgo=keyalgo) from None

    logger.debug('Generated %s private key', keyalgo)
    return KeyMaterial(keyalgo, pkey)

def normSans(sans: Sequence[str]) -> List[str]:
    '''
    Strip surrounding whitespace from DNS names and drop blank entries.
    '''
    ret = []
    for san in sans:
        san = san.strip()
        if san:
            ret.append(san)
    return ret

def genCsr(subject: Subject,
           sans: Sequence[str] = (),
           key: Union[KeyMaterial, PrivKey, None] = None,
           keyalgo: str = s_const.KEYALGO_RSA,
           bits: int = s_const.RSA_DEFAULT_BITS,
           curve: str = 'P-256',
           encrypt: bool = False,
           passwd: StrOrNone = None,
           rand: Union[RandFunc, None] = None) -> CsrResult:
    '''
    Generate a PEM encoded certificate signing request and private key.

    Args:
        subject: The subject of the request.
        sans: DNS names for the subject alternative name extension.
        key: The private key to sign with. If None, a new key is generated with keyalgo, bits and curve.
        keyalgo: The algorithm of a generated key.
        bits: The RSA key size of a generated key.
        curve: The ECDSA curve of a generated key.
        encrypt: Encrypt the private key PEM with passwd.
        passwd: The passphrase used when encrypt is set.
        rand: A callable returning the requested number of random bytes. Defaults to os.urandom.

    Examples:
        Generate a CSR for www.example.com with a new ECDSA key::

            result = genCsr(Subject(commonname='www.example.com'), keyalgo='ecdsa')

    Returns:
        CsrResult: The CSR and private key PEM text.

    Raises:
        InvalidSubject: If the common name and SANs are both empty.
        KeyEncryptionFailed: If encrypt is set and the key can not be encrypted with passwd.
    '''
    sans = normSans(sans)
    if not subject.commonname.strip() and not sans:
        raise s_exc.InvalidSubject(mesg='At least one of CommonName or SANs must be provided.')

    if encrypt and not passwd:
        raise s_exc.KeyEncryptionFailed(mesg='A non-empty passphrase is required to encrypt the private key.')

    name = subject.getX509Name()

    builder = c_x509.CertificateSigningRequestBuilder()
    builder = builder.subject_name(name)

    if sans:
        try:
            ext = c_x509.SubjectAlternativeName([c_x509.DNSName(san) for san in sans])
        except ValueError as e:
            raise s_exc.InvalidSubject(mesg=f'Invalid SAN value: {e}') from None
        builder = builder.add_extension(ext, critical=False)

    if key is None:
        key = genKeyMaterial(keyalgo=keyalgo, bits=bits, curve=curve, rand=rand)
    elif not isinstance(key, KeyMaterial):
        key = KeyMaterial.fromPrivKey(key)

    request = key.sign(builder)
    csrpem = request.public_bytes(c_serialization.Encoding.PEM).decode()

    keypem = key.getPemKey(passwd=passwd if encrypt else None)

    logger.debug('Generated %s certificate request for %s with %d SANs',
                 key.keyalgo, name.rfc4514_string(), len(sans))

    return CsrResult(csrpem=csrpem, keypem=keypem)
