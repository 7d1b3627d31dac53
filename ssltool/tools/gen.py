import os
import getpass

import ssltool.exc as s_exc
import ssltool.common as s_common

import ssltool.lib.cmd as s_cmd
import ssltool.lib.gen as s_gen
import ssltool.lib.const as s_const
import ssltool.lib.output as s_output

descr = '''
Generate a certificate signing request and private key.

The subject fields are read from the COUNTRY, ORG, OU, LOCALITY and PROVINCE
environment variables, or entered interactively when they are not set.
'''

epilog = '''
examples:
    LOCALITY="Bowling Green" PROVINCE="Kentucky" COUNTRY="US" ORG="Example ORG" OU="Example OU" \\
        python -m ssltool.tools.gen -c www.example.com
    python -m ssltool.tools.gen -c www.example.com -s www.example.com,www-prod01.example.com -k ecdsa
'''

# (subject field, environment variable, prompt)
subjfields = (
    ('country', 'COUNTRY', 'COUNTRY: '),
    ('org', 'ORG', 'ORG: '),
    ('orgunit', 'OU', 'OU: '),
    ('locality', 'LOCALITY', 'LOCALITY: '),
    ('province', 'PROVINCE', 'PROVINCE: '),
)

def promptForInfo(envname, prompt):
    valu = os.getenv(envname)
    if valu is None:
        try:
            valu = input(prompt)
        except EOFError:
            valu = ''
    return valu

def getSubject(commonname):
    info = {name: promptForInfo(envname, prompt) for (name, envname, prompt) in subjfields}
    return s_gen.Subject(commonname=commonname, **info)

def getPasswd(opts):
    if opts.passwd is not None:
        return opts.passwd

    passwd = os.getenv('SSLTOOL_KEY_PASSWD')
    if passwd is not None:
        return passwd

    return getpass.getpass('Key passphrase: ')

def splitSans(vals):
    sans = []
    for valu in vals:
        sans.extend(valu.split(','))
    return sans

def writeOutput(outp, text, path, name):
    if path == '-':
        outp.printf(text)
        return

    path = s_common.putbytes(text.encode(), path)
    outp.printf(f'{name} saved: {path}')

def main(argv, outp=s_output.stdout):

    pars = getArgParser(outp)
    opts = pars.parse_args(argv)

    subject = getSubject(opts.cn)
    sans = splitSans(opts.sans)

    passwd = None
    if opts.encrypt:
        passwd = getPasswd(opts)

    try:
        result = s_gen.genCsr(subject, sans, keyalgo=opts.key_type, bits=opts.bits, curve=opts.curve,
                              encrypt=opts.encrypt, passwd=passwd)
    except s_exc.SslToolErr as e:
        outp.printf(f'ERROR: {e.get("mesg")}')
        return 1

    try:
        writeOutput(outp, result.csrpem, opts.csrout, 'csr')
        writeOutput(outp, result.keypem, opts.keyout, 'key')
    except OSError as e:
        outp.printf(f'ERROR: Failed to write output: {e}')
        return 1

    return 0

def getArgParser(outp):

    pars = s_cmd.Parser(prog='ssltool gen', outp=outp, description=descr, epilog=epilog)
    pars.add_argument('-c', '--cn', default='', help='Common name.')
    pars.add_argument('-s', '--sans', default=[], action='append',
                      help='SANs list. In the form www.example.com,www-prod01.example.com')
    pars.add_argument('--csrout', default='-', help='CSR output filename. - for stdout')
    pars.add_argument('--keyout', default='-', help='Key output filename. - for stdout')
    pars.add_argument('-b', '--bits', type=int, default=s_const.RSA_DEFAULT_BITS,
                      help='RSA bits (only for the rsa key type).')
    pars.add_argument('-k', '--key-type', default=s_const.KEYALGO_RSA, choices=sorted(s_gen.keyalgos),
                      help='Key type.')
    pars.add_argument('--curve', default='P-256', choices=sorted(s_gen.curves),
                      help='Curve (only for the ecdsa key type).')
    pars.add_argument('-e', '--encrypt', default=False, action='store_true',
                      help='Encrypt the private key with a passphrase.')
    pars.add_argument('--passwd', default=None,
                      help='Private key passphrase. Defaults to $SSLTOOL_KEY_PASSWD or a prompt.')
    return pars

if __name__ == '__main__':  # pragma: no cover
    s_cmd.exitmain(main)
