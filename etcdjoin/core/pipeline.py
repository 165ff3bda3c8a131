from typing import Callable, Optional
import logging

from etcdjoin.core.classifier import classify
from etcdjoin.core.constants import Classification, ClusterState
from etcdjoin.core.enrollment import Enrollment
from etcdjoin.core.errors import NoClusterError
from etcdjoin.core.models import BootstrapDecision
from etcdjoin.core.reconciler import PeerSetReconciler
from etcdjoin.core.writer import BootstrapConfigWriter
from etcdjoin.discovery.directory import PeerDirectory
from etcdjoin.network.members import MembersAPI
from etcdjoin.network.metadata import InstanceMetadata
from etcdjoin.network.probe import ClusterProbe
from etcdjoin.utils.logging_config import add_bootstrap_context, clear_bootstrap_context

JOINING = (Classification.JOIN_EXISTING, Classification.JOIN_AS_RELAY)


class BootstrapPipeline:
    """
    Runs the bootstrap once for the local node.

    The steps run strictly in order, each consuming the previous step's
    result: resolve the group's in-service peers, probe them for a running
    cluster, classify the node, remove stale members, enroll, and write the
    bootstrap configuration. Any fatal error aborts the run before the
    configuration is written, so a retry starts from a clean slate.
    """

    def __init__(
        self,
        writer: BootstrapConfigWriter,
        metadata: InstanceMetadata,
        directory_factory: Callable[[str], PeerDirectory],
        members_api: MembersAPI,
        peer_scheme: str = "http",
        peer_port: int = 2380,
        proxy_group: Optional[str] = None,
        region: Optional[str] = None,
    ):
        """
        Initialize a new bootstrap pipeline.

        Args:
            writer: Writes the bootstrap configuration and guards re-runs.
            metadata: Source of the local node identity.
            directory_factory: Builds a PeerDirectory for a region.
            members_api: Client for the etcd members API.
            peer_scheme: Scheme of peer URLs.
            peer_port: Port of peer URLs.
            proxy_group: Group of the voting cluster. Enables relay mode.
            region: Region override for the directory.
        """
        self.writer = writer
        self.metadata = metadata
        self.directory_factory = directory_factory
        self.members_api = members_api
        self.peer_scheme = peer_scheme
        self.peer_port = peer_port
        self.proxy_group = proxy_group
        self.region = region
        self.logger = logging.getLogger("etcdjoin.pipeline")

    @property
    def relay_mode(self) -> bool:
        return bool(self.proxy_group)

    async def run(self) -> Optional[BootstrapDecision]:
        """
        Execute the bootstrap.

        Returns:
            The decision that was written, or None if the node was already
            bootstrapped and nothing was done.

        Raises:
            BootstrapError: On any fatal condition. Nothing is written.
        """
        clear_bootstrap_context()

        if self.writer.exists():
            self.logger.info(f"{self.writer.path} already exists, node is bootstrapped")
            return None

        identity = await self.metadata.fetch_identity()
        add_bootstrap_context(instance_id=identity.id)

        directory = self.directory_factory(self.region or identity.region)
        candidates = await directory.resolve(identity, group_name=self.proxy_group)

        async with self.members_api:
            probe = await ClusterProbe(self.members_api).probe(candidates, identity)
            if probe.responding_url:
                add_bootstrap_context(peer=probe.responding_url)

            classification = classify(probe, identity, self.relay_mode)
            add_bootstrap_context(classification=classification)

            if classification is Classification.FORM_NEW and self.relay_mode:
                raise NoClusterError(
                    f"Relay mode needs a running cluster in group {self.proxy_group}, "
                    f"but none of {len(candidates)} peers answered"
                )

            removed = set()
            if classification in JOINING:
                removed = await PeerSetReconciler(self.members_api).reconcile(probe, candidates)

            enrollment = Enrollment(self.members_api, self.peer_scheme, self.peer_port)
            descriptor = await enrollment.enroll(classification, probe, identity)

        decision = BootstrapDecision(
            state=ClusterState.EXISTING if classification in JOINING else ClusterState.NEW,
            name=identity.id,
            descriptor=descriptor,
            relay=self.relay_mode,
            removed=tuple(sorted(removed)),
        )
        self.writer.write(decision)

        self.logger.info(f"Bootstrap complete: state={decision.state.value} "
                         f"initial_cluster={decision.descriptor}")
        return decision
