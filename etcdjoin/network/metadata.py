from typing import Any, Dict, Optional
import asyncio
import json
import logging

import aiohttp

from etcdjoin.core.errors import MetadataError
from etcdjoin.core.models import NodeIdentity

TOKEN_PATH = "/latest/api/token"
IDENTITY_DOCUMENT_PATH = "/latest/dynamic/instance-identity/document"
TOKEN_TTL_HEADER = "X-aws-ec2-metadata-token-ttl-seconds"
TOKEN_HEADER = "X-aws-ec2-metadata-token"


class InstanceMetadata:
    """
    Client for the EC2 instance metadata service.

    Reads the instance identity document, which carries the instance id,
    private address and region in a single JSON response. A session token
    (IMDSv2) is requested first; hosts that only offer IMDSv1 are read
    without one.
    """

    def __init__(self, base_url: str = "http://169.254.169.254", timeout: float = 2.0,
                 token_ttl: int = 300):
        """
        Initialize a new metadata client.

        Args:
            base_url: Base URL of the metadata service.
            timeout: Upper bound in seconds for each request.
            token_ttl: Lifetime in seconds requested for the IMDSv2 token.
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.token_ttl = token_ttl
        self.logger = logging.getLogger("etcdjoin.metadata")

    async def _fetch_token(self, session: aiohttp.ClientSession) -> Optional[str]:
        url = self.base_url + TOKEN_PATH
        try:
            async with session.put(url, headers={TOKEN_TTL_HEADER: str(self.token_ttl)}) as response:
                if response.status != 200:
                    self.logger.debug(f"Token request returned {response.status}, using IMDSv1")
                    return None
                token = (await response.text()).strip()
                return token or None
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.debug(f"Token request failed ({e!r}), using IMDSv1")
            return None

    async def fetch_document(self) -> Dict[str, Any]:
        """
        Fetch the instance identity document.

        Returns:
            The decoded JSON document.

        Raises:
            MetadataError: If the service does not return a non-empty JSON object
                within the timeout.
        """
        url = self.base_url + IDENTITY_DOCUMENT_PATH
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                token = await self._fetch_token(session)
                headers = {TOKEN_HEADER: token} if token else {}
                async with session.get(url, headers=headers) as response:
                    if response.status != 200:
                        raise MetadataError(f"Metadata service returned {response.status} for {url}")
                    body = await response.text()
        except asyncio.TimeoutError as e:
            raise MetadataError(f"Metadata service did not answer within {self.timeout}s") from e
        except aiohttp.ClientError as e:
            raise MetadataError(f"Metadata service unreachable: {e}") from e

        if not body.strip():
            raise MetadataError(f"Metadata service returned an empty document for {url}")
        try:
            document = json.loads(body)
        except ValueError as e:
            raise MetadataError(f"Metadata document is not JSON: {e}") from e
        if not isinstance(document, dict):
            raise MetadataError("Metadata document is not a JSON object")
        return document

    async def fetch_identity(self) -> NodeIdentity:
        """
        Build the local node identity from the identity document.

        Returns:
            The identity of this instance.

        Raises:
            MetadataError: If the document lacks the instance id, address or region.
        """
        document = await self.fetch_document()

        missing = [key for key in ('instanceId', 'privateIp', 'region') if not document.get(key)]
        if missing:
            raise MetadataError(f"Metadata document is missing {', '.join(missing)}")

        identity = NodeIdentity(
            id=document['instanceId'],
            address=document['privateIp'],
            region=document['region'],
        )
        self.logger.info(f"Instance {identity.id} at {identity.address} in {identity.region}")
        return identity
