from typing import Iterable, List, Tuple
import ipaddress
import logging

from etcdjoin.core.models import NodeIdentity, ProbeResult, host_of
from etcdjoin.network.members import MembersAPI, MembersAPIError


def _address_key(url: str) -> Tuple[int, int, str]:
    host = host_of(url) or ''
    try:
        return (0, int(ipaddress.ip_address(host)), url)
    except ValueError:
        return (1, 0, url)


def probe_order(candidates: Iterable[str]) -> List[str]:
    """
    Order candidate URLs by address, numerically where possible.

    Args:
        candidates: Client URLs of candidate peers.

    Returns:
        The candidates sorted so that probing is deterministic.
    """
    return sorted(set(candidates), key=_address_key)


class ClusterProbe:
    """
    Finds a running cluster by asking candidate peers for their member list.

    Candidates are tried one at a time in address order and the first peer
    that answers with a non-empty, well-formed list wins. Unreachable or
    misbehaving peers are skipped. If nobody answers, the result is empty,
    which callers read as "no cluster exists yet".
    """

    def __init__(self, members_api: MembersAPI):
        self.members_api = members_api
        self.logger = logging.getLogger("etcdjoin.probe")

    async def probe(self, candidates: Iterable[str], identity: NodeIdentity) -> ProbeResult:
        """
        Probe candidates until one reports a membership list.

        Args:
            candidates: Client URLs of peers in the group.
            identity: The local node, which is never probed.

        Returns:
            The first successful answer, or an empty ProbeResult.
        """
        for url in probe_order(candidates):
            if host_of(url) == identity.address:
                self.logger.debug(f"Skipping own address {url}")
                continue

            try:
                members = await self.members_api.list_members(url)
            except MembersAPIError as e:
                self.logger.warning(f"Peer {url} did not answer: {e}")
                continue

            if not members:
                self.logger.warning(f"Peer {url} reported an empty member list")
                continue

            self.logger.info(f"Peer {url} reported {len(members)} members")
            return ProbeResult(responding_url=url, members=tuple(members))

        self.logger.info("No peer reported a running cluster")
        return ProbeResult()
