import ssltool.exc as s_exc
import ssltool.common as s_common

import ssltool.lib.cmd as s_cmd
import ssltool.lib.const as s_const
import ssltool.lib.output as s_output
import ssltool.lib.details as s_details

descr = '''
Retrieve details about the certificates returned from a host.
'''

epilog = '''
examples:
    python -m ssltool.tools.details --host www.example.com
    python -m ssltool.tools.details --host www.example.com --cert
'''

def fmtTime(valu):
    return valu.strftime('%Y-%m-%dT%H:%M:%SZ')

def getAddress(host, port):
    if ':' in host:
        return f'[{host}]:{port}'
    return f'{host}:{port}'

def printDetails(outp, details, pem=False):
    '''
    Print a single certificate. Returns False if the PEM could not be rendered.
    '''
    outp.printf(f'Issuer: {details.issuer}')
    outp.printf(f'  Expiration Date: {fmtTime(details.notafter)}')
    outp.printf(f'  Issue Date: {fmtTime(details.notbefore)}')
    outp.printf(f'  Serial: {details.serial:x}')

    if details.dnsnames:
        outp.printf('  DNS Names:')
        for name in details.dnsnames:
            outp.printf(f'  - {name}')

    ok = True
    if pem:
        try:
            outp.printf(s_details.getPemCert(details))
        except s_exc.UnsupportedAlgorithm as e:
            outp.printf(f'ERROR: {e.get("mesg")}')
            ok = False

    outp.printf('')
    return ok

def main(argv, outp=s_output.stdout):

    try:
        pars = getArgParser(outp)
    except s_exc.BadArg as e:
        outp.printf(f'ERROR: {e.get("mesg")}')
        return 1

    opts = pars.parse_args(argv)

    address = getAddress(opts.host, opts.port)

    try:
        certs = s_details.getCertDetails(address, verify=not opts.insecure, timeout=opts.timeout,
                                         cafile=opts.cafile)
    except s_exc.SslToolErr as e:
        outp.printf(f'ERROR: {e.get("mesg")}')
        return 1

    ret = 0
    for details in certs:
        if not printDetails(outp, details, pem=opts.cert):
            ret = 1

    return ret

def getArgParser(outp):

    timeout = s_common.envfloat('SSLTOOL_TIMEOUT', s_const.DEFAULT_TIMEOUT)

    pars = s_cmd.Parser(prog='ssltool details', outp=outp, description=descr, epilog=epilog)
    pars.add_argument('--host', required=True, help='Hostname to check the certificates of.')
    pars.add_argument('--port', type=int, default=s_const.DEFAULT_PORT, help='Port to connect to.')
    pars.add_argument('-i', '--insecure', default=False, action='store_true',
                      help="Don't verify certificates.")
    pars.add_argument('-c', '--cert', default=False, action='store_true',
                      help='Print certificates in PEM format.')
    pars.add_argument('--timeout', type=float, default=timeout,
                      help='Seconds allowed for the connection and TLS handshake.')
    pars.add_argument('--cafile', default=None,
                      help='CA certificates to verify with instead of the system trust store.')
    return pars

if __name__ == '__main__':  # pragma: no cover
    s_cmd.exitmain(main)
