"""
Constants and enumerations for cluster bootstrap.
"""

from enum import Enum, IntEnum, auto


class Classification(Enum):
    """
    The bootstrap situation of the local node.

    Computed once per run from the probe result and drives every later step.
    """
    FORM_NEW = auto()
    SELF_IS_MEMBER = auto()
    JOIN_EXISTING = auto()
    JOIN_AS_RELAY = auto()


class ClusterState(Enum):
    """
    Value of ETCD_INITIAL_CLUSTER_STATE handed to the daemon.
    """
    NEW = "new"
    EXISTING = "existing"


class ExitCode(IntEnum):
    """
    Process exit codes, one per distinguishable fatal condition.
    """
    OK = 0
    UNEXPECTED = 1
    METADATA_UNAVAILABLE = 2
    GROUP_NOT_FOUND = 3
    EMPTY_GROUP = 4
    MALFORMED_PEER_SET = 5
    NO_CLUSTER = 6
    RECONCILIATION_FAILED = 7
    ENROLLMENT_FAILED = 8
    CONFIG_WRITE_FAILED = 9
    BAD_CONFIGURATION = 10


# etcd v2 members API status codes
MEMBER_ADDED = 201
MEMBER_ALREADY_ADDED = 409
MEMBER_DELETED = 204

IN_SERVICE = "InService"

MEMBERS_PATH = "/v2/members"
