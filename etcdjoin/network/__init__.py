"""
Network clients used during bootstrap.

This package contains the etcd members API client, the cluster probe built on
it, and the instance metadata client.
"""

from etcdjoin.network.members import MembersAPI, HTTPMembersAPI, MembersAPIError
from etcdjoin.network.probe import ClusterProbe
from etcdjoin.network.metadata import InstanceMetadata

__all__ = [
    'MembersAPI',
    'HTTPMembersAPI',
    'MembersAPIError',
    'ClusterProbe',
    'InstanceMetadata',
]
