# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Shared stockade components.
"""
