"""
Discovery of sibling instances in the node's Auto Scaling group.
"""

from etcdjoin.discovery.directory import PeerDirectory

__all__ = [
    'PeerDirectory',
]
