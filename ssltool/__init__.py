'''
TLS certificate chain inspection and certificate signing request generation.
'''
import sys
if (sys.version_info.major, sys.version_info.minor) < (3, 11):  # pragma: no cover
    raise Exception('ssltool is not supported on Python versions < 3.11')

from ssltool.lib.version import version, verstring
