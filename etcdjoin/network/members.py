from abc import ABC, abstractmethod
from typing import Any, List, Optional
import asyncio
import json
import logging
import ssl

import aiohttp

from etcdjoin.core.constants import MEMBERS_PATH
from etcdjoin.core.models import ClusterMember


class MembersAPIError(Exception):
    """
    A members API call did not complete.

    Raised for timeouts, refused connections, unexpected status codes on reads
    and unparseable payloads. Callers decide whether this is fatal.
    """


class MembersAPI(ABC):
    """
    Abstract interface to the etcd members API of a single peer.

    Every method takes the client URL of the peer to talk to, because the peer
    is only known once the probe has found one that answers.
    """

    @abstractmethod
    async def list_members(self, base_url: str) -> List[ClusterMember]:
        """
        Fetch the membership list from a peer.

        Args:
            base_url: Client URL of the peer.

        Returns:
            The members in the order the peer reported them.

        Raises:
            MembersAPIError: If the peer does not answer with a valid list.
        """
        pass

    @abstractmethod
    async def add_member(self, base_url: str, name: str, peer_url: str) -> int:
        """
        Register a new member through a peer.

        Args:
            base_url: Client URL of the peer.
            name: Name of the member to add.
            peer_url: Peer URL of the member to add.

        Returns:
            The HTTP status code of the response.

        Raises:
            MembersAPIError: If no response was received.
        """
        pass

    @abstractmethod
    async def remove_member(self, base_url: str, member_id: str) -> int:
        """
        Remove a member through a peer.

        Args:
            base_url: Client URL of the peer.
            member_id: Id of the member to remove.

        Returns:
            The HTTP status code of the response.

        Raises:
            MembersAPIError: If no response was received.
        """
        pass

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    async def __aenter__(self) -> 'MembersAPI':
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()


class HTTPMembersAPI(MembersAPI):
    """
    aiohttp implementation of the etcd v2 members API.

    Each call is bounded by ``timeout`` seconds and is attempted exactly once;
    retrying is left to whoever re-runs the bootstrap.
    """

    def __init__(self, timeout: float = 5.0, ssl_context: Optional[ssl.SSLContext] = None):
        """
        Initialize a new members API client.

        Args:
            timeout: Upper bound in seconds for each request.
            ssl_context: TLS context for https peers. None uses aiohttp defaults.
        """
        self.timeout = timeout
        self.ssl_context = ssl_context
        self.session: Optional[aiohttp.ClientSession] = None
        self.logger = logging.getLogger("etcdjoin.members")

    async def start(self) -> None:
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )

    async def stop(self) -> None:
        if self.session is not None:
            await self.session.close()
            self.session = None

    def _url(self, base_url: str, suffix: str = '') -> str:
        return base_url.rstrip('/') + MEMBERS_PATH + suffix

    async def _request(self, method: str, url: str, **kwargs: Any):
        if self.session is None:
            raise RuntimeError("HTTPMembersAPI used before start()")
        if self.ssl_context is not None:
            kwargs['ssl'] = self.ssl_context
        self.logger.debug(f"{method} {url}")
        try:
            return await self.session.request(method, url, **kwargs)
        except asyncio.TimeoutError as e:
            raise MembersAPIError(f"{method} {url} timed out after {self.timeout}s") from e
        except aiohttp.ClientError as e:
            raise MembersAPIError(f"{method} {url} failed: {e}") from e

    async def list_members(self, base_url: str) -> List[ClusterMember]:
        url = self._url(base_url)
        response = await self._request('GET', url)
        async with response:
            if response.status != 200:
                raise MembersAPIError(f"GET {url} returned {response.status}")
            try:
                body = await response.read()
                payload = json.loads(body)
            except asyncio.TimeoutError as e:
                raise MembersAPIError(f"GET {url} timed out reading body") from e
            except (aiohttp.ClientError, ValueError) as e:
                raise MembersAPIError(f"GET {url} returned an unreadable body: {e}") from e

        if isinstance(payload, dict):
            payload = payload.get('members')
        if not isinstance(payload, list):
            raise MembersAPIError(f"GET {url} did not return a member list")

        try:
            return [ClusterMember.from_dict(entry) for entry in payload]
        except ValueError as e:
            raise MembersAPIError(f"GET {url} returned a malformed member: {e}") from e

    async def add_member(self, base_url: str, name: str, peer_url: str) -> int:
        url = self._url(base_url)
        response = await self._request('POST', url, json={'peerURLs': [peer_url], 'name': name})
        async with response:
            self.logger.debug(f"POST {url} for {name} returned {response.status}")
            return response.status

    async def remove_member(self, base_url: str, member_id: str) -> int:
        url = self._url(base_url, f"/{member_id}")
        response = await self._request('DELETE', url)
        async with response:
            self.logger.debug(f"DELETE {url} returned {response.status}")
            return response.status
