'''
Various SSL utilities.
'''
import ssltool.lib.cmd as s_cmd
import ssltool.lib.output as s_output

import ssltool.tools.gen as s_t_gen
import ssltool.tools.details as s_t_details

usage = '''
usage: ssltool <command> [options]
       ssltool <host> [details options]

commands:
    details     Retrieve certificate details.
    gen         Generate a certificate signing request.

examples:
    ssltool www.example.com
    ssltool details --host www.example.com
    ssltool details --host www.example.com --cert
'''

cmds = {
    'details': s_t_details.main,
    'gen': s_t_gen.main,
}

def main(argv, outp=s_output.stdout):

    if not argv or argv[0] in ('-h', '--help'):
        outp.printf(usage)
        return 0

    name = argv[0]
    func = cmds.get(name)
    if func is None:
        # anything which is not a command is a host to get the details of
        return s_t_details.main(['--host', name] + list(argv[1:]), outp=outp)

    return func(argv[1:], outp=outp)

def cli():  # pragma: no cover
    s_cmd.exitmain(main)

if __name__ == '__main__':  # pragma: no cover
    cli()
