from typing import Any, Dict, List, Optional, Set
import asyncio
import logging

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from etcdjoin.core.constants import IN_SERVICE
from etcdjoin.core.errors import EmptyGroupError, GroupNotFoundError, PeerSetError
from etcdjoin.core.models import NodeIdentity


class PeerDirectory:
    """
    Resolves the in-service siblings of this instance to client URLs.

    The directory asks Auto Scaling which group the instance belongs to (or
    uses an explicitly named group), keeps only instances whose lifecycle
    state is InService, and asks EC2 for their private addresses. Instances
    that are still launching or already terminating are never returned.
    """

    def __init__(self, autoscaling: Any, ec2: Any, client_scheme: str = "http",
                 client_port: int = 2379):
        """
        Initialize a new peer directory.

        Args:
            autoscaling: A boto3 Auto Scaling client.
            ec2: A boto3 EC2 client.
            client_scheme: Scheme of the returned client URLs.
            client_port: Port of the returned client URLs.
        """
        self.autoscaling = autoscaling
        self.ec2 = ec2
        self.client_scheme = client_scheme
        self.client_port = client_port
        self.logger = logging.getLogger("etcdjoin.directory")

    @classmethod
    def from_region(cls, region: str, client_scheme: str = "http", client_port: int = 2379,
                    api_timeout: float = 10.0) -> 'PeerDirectory':
        """
        Create a directory with boto3 clients for a region.

        The clients make a single attempt per call, bounded by ``api_timeout``.
        """
        config = Config(
            region_name=region,
            connect_timeout=api_timeout,
            read_timeout=api_timeout,
            retries={'total_max_attempts': 1},
        )
        return cls(
            autoscaling=boto3.client('autoscaling', config=config),
            ec2=boto3.client('ec2', config=config),
            client_scheme=client_scheme,
            client_port=client_port,
        )

    async def resolve(self, identity: NodeIdentity, group_name: Optional[str] = None) -> Set[str]:
        """
        Resolve the candidate client URLs.

        Args:
            identity: The local node.
            group_name: Group to read instead of the one the node belongs to.

        Returns:
            Client URLs of every in-service instance in the group.

        Raises:
            GroupNotFoundError: If no group could be determined.
            EmptyGroupError: If the group has no in-service instances.
            PeerSetError: If an in-service instance has no resolvable address.
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._resolve, identity, group_name)

    def _resolve(self, identity: NodeIdentity, group_name: Optional[str]) -> Set[str]:
        if not group_name:
            group_name = self.group_of(identity.id)

        instance_ids = self.in_service_instances(group_name)
        addresses = self.addresses_of(instance_ids)

        urls = {f"{self.client_scheme}://{address}:{self.client_port}" for address in addresses.values()}
        self.logger.info(f"Group {group_name} has {len(urls)} in-service peers")
        return urls

    def group_of(self, instance_id: str) -> str:
        """Return the name of the Auto Scaling group the instance belongs to."""
        try:
            response = self.autoscaling.describe_auto_scaling_instances(InstanceIds=[instance_id])
        except (BotoCoreError, ClientError) as e:
            raise GroupNotFoundError(f"Could not look up the group of {instance_id}: {e}") from e

        for entry in response.get('AutoScalingInstances', []):
            if entry.get('InstanceId') == instance_id and entry.get('AutoScalingGroupName'):
                return entry['AutoScalingGroupName']
        raise GroupNotFoundError(f"Instance {instance_id} is not in an Auto Scaling group")

    def in_service_instances(self, group_name: str) -> List[str]:
        """Return the ids of the group's instances that are InService."""
        try:
            response = self.autoscaling.describe_auto_scaling_groups(AutoScalingGroupNames=[group_name])
        except (BotoCoreError, ClientError) as e:
            raise GroupNotFoundError(f"Could not describe group {group_name}: {e}") from e

        groups = response.get('AutoScalingGroups', [])
        if not groups:
            raise GroupNotFoundError(f"Auto Scaling group {group_name} does not exist")

        instance_ids = [
            instance['InstanceId']
            for instance in groups[0].get('Instances', [])
            if instance.get('LifecycleState') == IN_SERVICE
        ]
        if not instance_ids:
            raise EmptyGroupError(f"Auto Scaling group {group_name} has no in-service instances")
        return instance_ids

    def addresses_of(self, instance_ids: List[str]) -> Dict[str, str]:
        """Map each instance id to its private IPv4 address."""
        try:
            response = self.ec2.describe_instances(InstanceIds=instance_ids)
        except (BotoCoreError, ClientError) as e:
            raise PeerSetError(f"Could not describe instances {instance_ids}: {e}") from e

        addresses = {}
        for reservation in response.get('Reservations', []):
            for instance in reservation.get('Instances', []):
                address = instance.get('PrivateIpAddress')
                if address:
                    addresses[instance['InstanceId']] = address

        unresolved = sorted(set(instance_ids) - set(addresses))
        if unresolved:
            raise PeerSetError(f"No private address for instances {', '.join(unresolved)}")
        return addresses
