"""
Core components of the bootstrap.

This package contains the data model, the classification, reconciliation and
enrollment steps, the pipeline that runs them in order, and the writer for the
resulting bootstrap configuration. Only the data model is re-exported here;
import the steps from their modules.
"""

from etcdjoin.core.constants import Classification, ClusterState, ExitCode
from etcdjoin.core.models import (
    BootstrapDecision, ClusterMember, InitialClusterDescriptor, NodeIdentity, ProbeResult,
)

__all__ = [
    'Classification',
    'ClusterState',
    'ExitCode',
    'BootstrapDecision',
    'ClusterMember',
    'InitialClusterDescriptor',
    'NodeIdentity',
    'ProbeResult',
]
