import logging

# Logging related constants
LOG_FORMAT = '%(asctime)s [%(levelname)s] %(message)s ' \
             '[%(filename)s:%(funcName)s:%(threadName)s:%(processName)s]'
LOG_LEVEL_CHOICES = {
    'DEBUG': logging.DEBUG,
    'INFO': logging.INFO,
    'WARNING': logging.WARNING,
    'ERROR': logging.ERROR,
    'CRITICAL': logging.CRITICAL,
}
LOG_LEVEL_INVERSE_CHOICES = {v: k for k, v in LOG_LEVEL_CHOICES.items()}

# TLS related constants
DEFAULT_PORT = 443
DEFAULT_TIMEOUT = 5.0

# Key generation related constants
RSA_MIN_BITS = 2048
RSA_DEFAULT_BITS = 2048
RSA_PUBLIC_EXPONENT = 65537

# Key algorithm names
KEYALGO_RSA = 'rsa'
KEYALGO_ECDSA = 'ecdsa'
KEYALGO_ED25519 = 'ed25519'
KEYALGO_OTHER = 'other'
