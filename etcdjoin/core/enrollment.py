from typing import Tuple
import logging

from etcdjoin.core.constants import Classification, MEMBER_ADDED, MEMBER_ALREADY_ADDED
from etcdjoin.core.errors import EnrollmentError
from etcdjoin.core.models import (
    ClusterMember, InitialClusterDescriptor, NodeIdentity, ProbeResult,
)
from etcdjoin.network.members import MembersAPI, MembersAPIError


class Enrollment:
    """
    Registers the local node and assembles the initial cluster descriptor.

    Only JOIN_EXISTING talks to the cluster to register; relays are never
    added to the member list and the other classifications have nothing to
    register with.
    """

    def __init__(self, members_api: MembersAPI, peer_scheme: str = "http", peer_port: int = 2380):
        """
        Initialize a new enrollment step.

        Args:
            members_api: Client for the members API.
            peer_scheme: Scheme of the local node's peer URL.
            peer_port: Port of the local node's peer URL.
        """
        self.members_api = members_api
        self.peer_scheme = peer_scheme
        self.peer_port = peer_port
        self.logger = logging.getLogger("etcdjoin.enrollment")

    async def enroll(self, classification: Classification, probe: ProbeResult,
                     identity: NodeIdentity) -> InitialClusterDescriptor:
        """
        Produce the initial cluster descriptor for a classification.

        Args:
            classification: The bootstrap situation of the local node.
            probe: The probe result, naming the responding peer.
            identity: The local node.

        Returns:
            The descriptor to hand to the daemon.

        Raises:
            EnrollmentError: If the member list cannot be re-read or the
                cluster rejects the registration.
        """
        peer_url = identity.peer_url(self.peer_scheme, self.peer_port)

        if classification is Classification.FORM_NEW:
            return InitialClusterDescriptor().with_entry(identity.id, peer_url)

        if classification is Classification.SELF_IS_MEMBER:
            return InitialClusterDescriptor.from_members(probe.members)

        members = await self._current_members(probe)
        descriptor = InitialClusterDescriptor.from_members(members)

        if classification is Classification.JOIN_AS_RELAY:
            self.logger.info(f"Joining {probe.responding_url} as a relay, skipping registration")
            return descriptor

        descriptor = descriptor.with_entry(identity.id, peer_url)
        await self._register(probe.responding_url, identity.id, peer_url)
        return descriptor

    async def _current_members(self, probe: ProbeResult) -> Tuple[ClusterMember, ...]:
        try:
            members = await self.members_api.list_members(probe.responding_url)
        except MembersAPIError as e:
            raise EnrollmentError(f"Could not re-read members from {probe.responding_url}: {e}") from e
        return tuple(members)

    async def _register(self, base_url: str, name: str, peer_url: str) -> None:
        try:
            status = await self.members_api.add_member(base_url, name, peer_url)
        except MembersAPIError as e:
            raise EnrollmentError(f"Registering {name} with {base_url} failed: {e}") from e

        if status == MEMBER_ADDED:
            self.logger.info(f"Registered {name} at {peer_url} with {base_url}")
        elif status == MEMBER_ALREADY_ADDED:
            self.logger.info(f"{name} at {peer_url} was already registered with {base_url}")
        else:
            raise EnrollmentError(
                f"Registering {name} with {base_url} returned {status}, "
                f"expected {MEMBER_ADDED} or {MEMBER_ALREADY_ADDED}"
            )
