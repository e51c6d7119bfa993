"""circle_cctp package root.

Cross-chain USDC transfers with Circle's developer-controlled wallets and CCTP.
Start from :py:mod:`circle_cctp.saga` for the transfer flow or
:py:mod:`circle_cctp.cli` for the command line.
"""

import sys


#: Minimum required Python version to run this package
MIN_PYTHON_VERSION = (3, 11)


def _check_python_version():
    """Try early abort if the Python version is too old."""
    if sys.version_info < MIN_PYTHON_VERSION:
        raise RuntimeError(f"circle-cctp needs Python {MIN_PYTHON_VERSION[0]}.{MIN_PYTHON_VERSION[1]} or later")


_check_python_version()
