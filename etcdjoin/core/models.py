from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Tuple
from urllib.parse import urlsplit

from etcdjoin.core.constants import ClusterState


def host_of(url: str) -> Optional[str]:
    """
    Extract the host component of a URL.

    Args:
        url: A URL such as ``http://10.0.1.5:2380``.

    Returns:
        The lower-cased host, or None if the URL has no host.
    """
    try:
        return urlsplit(url).hostname
    except ValueError:
        return None


@dataclass(frozen=True)
class NodeIdentity:
    """
    Identity of the local node, fixed for the whole run.

    Attributes:
        id: The instance id, also used as the etcd member name.
        address: The private IPv4 address of the instance.
        region: The AWS region the instance runs in.
    """
    id: str
    address: str
    region: Optional[str] = None

    def peer_url(self, scheme: str, port: int) -> str:
        return f"{scheme}://{self.address}:{port}"


@dataclass(frozen=True)
class ClusterMember:
    """
    A member record as reported by a live cluster.

    Attributes:
        id: The etcd member id (hex string).
        name: The member name. Empty for members added but not yet started.
        peer_urls: The peer URLs the member advertises.
    """
    id: str
    name: str
    peer_urls: Tuple[str, ...]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ClusterMember':
        """
        Build a member from one entry of a ``GET /v2/members`` response.

        Raises:
            ValueError: If the entry is not a well-formed member record.
        """
        if not isinstance(data, dict):
            raise ValueError(f"member entry is not an object: {data!r}")

        member_id = data.get('id')
        if not isinstance(member_id, str) or not member_id:
            raise ValueError(f"member entry has no id: {data!r}")

        name = data.get('name') or ''
        if not isinstance(name, str):
            raise ValueError(f"member {member_id} has a non-string name")

        peer_urls = data.get('peerURLs')
        if not isinstance(peer_urls, list) or not all(isinstance(u, str) for u in peer_urls):
            raise ValueError(f"member {member_id} has malformed peerURLs")

        return cls(id=member_id, name=name, peer_urls=tuple(peer_urls))

    @property
    def peer_url(self) -> Optional[str]:
        return self.peer_urls[0] if self.peer_urls else None

    @property
    def peer_hosts(self) -> Tuple[str, ...]:
        return tuple(h for h in (host_of(u) for u in self.peer_urls) if h)


@dataclass(frozen=True)
class ProbeResult:
    """
    Outcome of probing the candidate peers.

    An empty ``members`` tuple means no cluster answered.

    Attributes:
        responding_url: Client URL of the peer that answered, or None.
        members: Members reported by that peer, in reported order.
    """
    responding_url: Optional[str] = None
    members: Tuple[ClusterMember, ...] = ()

    @property
    def found(self) -> bool:
        return bool(self.members)

    def member_named(self, name: str) -> Optional[ClusterMember]:
        for member in self.members:
            if member.name == name:
                return member
        return None


@dataclass(frozen=True)
class InitialClusterDescriptor:
    """
    Ordered ``name=peer-url`` pairs used for ETCD_INITIAL_CLUSTER.

    Attributes:
        entries: The pairs in insertion order, names unique.
    """
    entries: Tuple[Tuple[str, str], ...] = ()

    @classmethod
    def from_members(cls, members: Iterable[ClusterMember]) -> 'InitialClusterDescriptor':
        """
        Build a descriptor from reported members.

        Members without a name or without a peer URL are left out, since etcd
        cannot place them in an initial cluster.
        """
        descriptor = cls()
        for member in members:
            if member.name and member.peer_url:
                descriptor = descriptor.with_entry(member.name, member.peer_url)
        return descriptor

    def with_entry(self, name: str, peer_url: str) -> 'InitialClusterDescriptor':
        """
        Return a copy with ``name`` mapped to ``peer_url``.

        An existing entry for ``name`` is replaced in place; otherwise the
        pair is appended.
        """
        entries = list(self.entries)
        for i, (existing, _) in enumerate(entries):
            if existing == name:
                entries[i] = (name, peer_url)
                break
        else:
            entries.append((name, peer_url))
        return InitialClusterDescriptor(entries=tuple(entries))

    def as_dict(self) -> Dict[str, str]:
        return dict(self.entries)

    def serialize(self) -> str:
        return ','.join(f"{name}={url}" for name, url in self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __str__(self) -> str:
        return self.serialize()


@dataclass(frozen=True)
class BootstrapDecision:
    """
    Everything the bootstrap configuration writer needs.

    Attributes:
        state: Whether the daemon forms a new cluster or joins an existing one.
        name: The local member name.
        descriptor: The initial cluster descriptor.
        relay: Whether the daemon runs as a non-voting proxy.
        removed: Ids of stale members removed during this run.
    """
    state: ClusterState
    name: str
    descriptor: InitialClusterDescriptor
    relay: bool = False
    removed: Tuple[str, ...] = field(default=())

    def environment(self) -> Dict[str, str]:
        env = {
            'ETCD_INITIAL_CLUSTER_STATE': self.state.value,
            'ETCD_NAME': self.name,
            'ETCD_INITIAL_CLUSTER': self.descriptor.serialize(),
        }
        if self.relay:
            env['ETCD_PROXY'] = 'on'
        return env
