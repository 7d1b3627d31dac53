'''
ssltool version information.
'''
##############################################################################
# The following are touched during the release process by bumpversion.
# Do not modify these directly.
version = (0, 1, 0)
verstring = '.'.join([str(x) for x in version])
commit = ''
