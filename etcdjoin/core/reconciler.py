from typing import Iterable, List, Set
import logging

from etcdjoin.core.constants import MEMBER_DELETED
from etcdjoin.core.errors import ReconciliationError
from etcdjoin.core.models import ClusterMember, ProbeResult, host_of
from etcdjoin.network.members import MembersAPI, MembersAPIError


def find_stale_members(members: Iterable[ClusterMember], candidates: Iterable[str]) -> List[ClusterMember]:
    """
    Find members that are not backed by an in-service instance.

    A member is live when the host of any of its peer URLs equals the host of
    a candidate URL. Members with no parseable peer URL are stale.

    Args:
        members: Members reported by the cluster.
        candidates: Client URLs of in-service instances.

    Returns:
        The stale members, in reported order.
    """
    live_hosts = {host for host in (host_of(url) for url in candidates) if host}
    return [member for member in members if not live_hosts.intersection(member.peer_hosts)]


class PeerSetReconciler:
    """
    Removes cluster members whose instances have left the group.

    etcd cannot reach quorum while unreachable voting members remain listed,
    so stale members are removed through the responding peer before the local
    node enrolls. Each removal must be acknowledged as deleted; anything else
    aborts the run.
    """

    def __init__(self, members_api: MembersAPI):
        self.members_api = members_api
        self.logger = logging.getLogger("etcdjoin.reconciler")

    async def reconcile(self, probe: ProbeResult, candidates: Iterable[str]) -> Set[str]:
        """
        Remove stale members from the probed cluster.

        Args:
            probe: The probe result naming the responding peer and its members.
            candidates: Client URLs of in-service instances.

        Returns:
            Ids of the removed members. Empty if nothing was stale.

        Raises:
            ReconciliationError: If a removal was not acknowledged as deleted.
        """
        stale = find_stale_members(probe.members, candidates)
        if not stale:
            self.logger.info("No stale members to remove")
            return set()

        removed = set()
        for member in stale:
            self.logger.info(f"Removing stale member {member.id} ({member.name or 'unstarted'}) "
                             f"at {', '.join(member.peer_urls) or 'no peer URL'}")
            try:
                status = await self.members_api.remove_member(probe.responding_url, member.id)
            except MembersAPIError as e:
                raise ReconciliationError(f"Removing stale member {member.id} failed: {e}") from e

            if status != MEMBER_DELETED:
                raise ReconciliationError(
                    f"Removing stale member {member.id} returned {status}, expected {MEMBER_DELETED}"
                )
            removed.add(member.id)

        self.logger.info(f"Removed {len(removed)} stale members")
        return removed
