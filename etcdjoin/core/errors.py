"""
Exception hierarchy for the bootstrap pipeline.

Every fatal condition has its own exception type carrying the process exit
code the CLI reports for it, so operators can tell failures apart from the
exit status alone.
"""

from etcdjoin.core.constants import ExitCode


class BootstrapError(Exception):
    """Base class for all fatal bootstrap conditions."""

    exit_code = ExitCode.UNEXPECTED


class ConfigurationError(BootstrapError):
    """An environment switch or CLI flag has an invalid value."""

    exit_code = ExitCode.BAD_CONFIGURATION


# Only subclasses are raised; each names its own exit code.
class DiscoveryError(BootstrapError):
    """The node's group or its in-service peers could not be determined."""

    exit_code = ExitCode.UNEXPECTED


class MetadataError(DiscoveryError):
    """The instance metadata service did not answer with usable content."""

    exit_code = ExitCode.METADATA_UNAVAILABLE


class GroupNotFoundError(DiscoveryError):
    """The instance does not belong to any Auto Scaling group."""

    exit_code = ExitCode.GROUP_NOT_FOUND


class EmptyGroupError(DiscoveryError):
    """The group has no instances in service."""

    exit_code = ExitCode.EMPTY_GROUP


class PeerSetError(DiscoveryError):
    """Addresses for in-service instances could not be resolved."""

    exit_code = ExitCode.MALFORMED_PEER_SET


class ProbeError(BootstrapError):
    """
    No candidate answered the membership probe.

    The probe itself never raises this: an unanswered probe means no cluster
    exists yet. It only becomes fatal where a cluster was required.
    """

    exit_code = ExitCode.NO_CLUSTER


class NoClusterError(ProbeError):
    """Relay mode found no running cluster to forward to."""


class ReconciliationError(BootstrapError):
    """A stale member could not be removed from the cluster."""

    exit_code = ExitCode.RECONCILIATION_FAILED


class EnrollmentError(BootstrapError):
    """The cluster rejected registration of the local node."""

    exit_code = ExitCode.ENROLLMENT_FAILED


class ConfigWriteError(BootstrapError):
    """The bootstrap configuration file could not be written."""

    exit_code = ExitCode.CONFIG_WRITE_FAILED
