'''
Exceptions used by ssltool, all inheriting from SslToolErr
'''

class SslToolErr(Exception):

    def __init__(self, *args, **info):
        self.errinfo = info
        self.errname = self.__class__.__name__
        Exception.__init__(self, self._getExcMsg())

    def _getExcMsg(self):
        props = sorted(self.errinfo.items())
        displ = ' '.join(['%s=%r' % (p, v) for (p, v) in props])
        return '%s: %s' % (self.__class__.__name__, displ)

    def _setExcMesg(self):
        '''Should be called when self.errinfo is modified.'''
        self.args = (self._getExcMsg(),)

    def items(self):
        return {k: v for k, v in self.errinfo.items()}

    def get(self, name, defv=None):
        '''
        Return a value from the errinfo dict.

        Example:

            try:
                getCertDetails('www.example.com:443')
            except SslToolErr as e:
                mesg = e.get('mesg')

        '''
        return self.errinfo.get(name, defv)

    def set(self, name, valu):
        '''
        Set a value in the errinfo dict.
        '''
        self.errinfo[name] = valu
        self._setExcMesg()

class BadArg(SslToolErr):
    '''
    An argument provided to an API or tool is not valid.
    '''

class ParserExit(SslToolErr):
    '''
    Raised by ssltool.lib.cmd.Parser on Parser exit()
    '''

# certificate retrieval
class ConnectFailed(SslToolErr):
    '''
    The remote address could not be resolved or connected to.
    '''

class ConnectionTimeout(SslToolErr):
    '''
    The connection or TLS handshake did not complete within the timeout.
    '''

class HandshakeFailed(SslToolErr):
    '''
    TLS negotiation failed, including peer certificate trust validation.
    '''

class ProtocolError(SslToolErr):
    '''
    A connection completed without a usable TLS session.
    '''

class UnsupportedAlgorithm(SslToolErr):
    '''
    A certificate uses a public key algorithm which can not be encoded.
    '''

# csr generation
class InvalidSubject(SslToolErr):
    '''
    Neither a common name nor any subject alternative names were provided.
    '''

class UnsupportedKeyType(SslToolErr): pass
class KeyGenerationFailed(SslToolErr): pass
class SigningFailed(SslToolErr): pass

class KeyEncryptionFailed(SslToolErr):
    '''
    The private key could not be encrypted with the provided passphrase.
    '''
