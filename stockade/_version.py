# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
The version of Stockade.
"""

__version__ = "0.1.0"
