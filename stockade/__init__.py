# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Stockade is a local certificate authority which issues and stores an X.509
trust hierarchy for TLS clients and servers.
"""

from ._version import __version__

__all__ = ["__version__"]


def _redirect_eliot_logs_for_trial():
    """
    Enable Eliot logging to the ``_trial/test.log`` file.

    This wrapper function allows ``stockade._version`` to be imported by
    packaging tools without them having to install the Eliot dependency.
    """
    import os
    import sys
    if os.path.basename(sys.argv[0]) == "trial":
        from eliot.twisted import redirectLogsForTrial
        redirectLogsForTrial()
_redirect_eliot_logs_for_trial()
del _redirect_eliot_logs_for_trial
