import unittest
import asyncio
import os
import sys
import logging
from unittest.mock import MagicMock

from aiohttp import web, test_utils
from botocore.exceptions import ClientError

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from etcdjoin.core.errors import EmptyGroupError, GroupNotFoundError, MetadataError, PeerSetError
from etcdjoin.core.models import NodeIdentity
from etcdjoin.discovery.directory import PeerDirectory
from etcdjoin.network.members import HTTPMembersAPI, MembersAPIError
from etcdjoin.network.metadata import InstanceMetadata

SELF = NodeIdentity(id='i-1', address='10.0.0.1', region='us-east-1')

# Nothing listens on port 1 on the loopback interface.
UNREACHABLE = 'http://127.0.0.1:1'


class FakeEtcd:
    """Just enough of the etcd v2 members API."""

    def __init__(self):
        self.members = [
            {'id': 'a2', 'name': 'i-2', 'peerURLs': ['http://10.0.0.2:2380'],
             'clientURLs': ['http://10.0.0.2:2379']},
        ]
        self.raw_body = None
        self.get_status = 200
        self.add_status = 201
        self.delete_status = 204
        self.delay = 0
        self.added = []
        self.deleted = []

    def app(self):
        app = web.Application()
        app.router.add_get('/v2/members', self.get_members)
        app.router.add_post('/v2/members', self.add_member)
        app.router.add_delete('/v2/members/{id}', self.delete_member)
        return app

    async def get_members(self, request):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.raw_body is not None:
            return web.Response(text=self.raw_body, status=self.get_status, content_type='application/json')
        return web.json_response({'members': self.members}, status=self.get_status)

    async def add_member(self, request):
        self.added.append(await request.json())
        return web.Response(status=self.add_status)

    async def delete_member(self, request):
        self.deleted.append(request.match_info['id'])
        return web.Response(status=self.delete_status)


class TestHTTPMembersAPI(unittest.IsolatedAsyncioTestCase):
    """Test the aiohttp members API client against a fake etcd."""

    async def asyncSetUp(self):
        logging.disable(logging.CRITICAL)
        self.etcd = FakeEtcd()
        self.server = test_utils.TestServer(self.etcd.app())
        await self.server.start_server()
        self.base_url = str(self.server.make_url('/'))
        self.api = HTTPMembersAPI(timeout=0.5)
        await self.api.start()

    async def asyncTearDown(self):
        await self.api.stop()
        await self.server.close()
        logging.disable(logging.NOTSET)

    async def test_list_members(self):
        members = await self.api.list_members(self.base_url)
        self.assertEqual(len(members), 1)
        self.assertEqual(members[0].id, 'a2')
        self.assertEqual(members[0].name, 'i-2')
        self.assertEqual(members[0].peer_urls, ('http://10.0.0.2:2380',))

    async def test_list_members_accepts_bare_list(self):
        self.etcd.raw_body = '[{"id": "a2", "name": "i-2", "peerURLs": ["http://10.0.0.2:2380"]}]'
        members = await self.api.list_members(self.base_url)
        self.assertEqual([m.name for m in members], ['i-2'])

    async def test_malformed_body(self):
        for body in ('not json', '{"members": 3}', '{"members": [{"name": "x"}]}'):
            self.etcd.raw_body = body
            with self.assertRaises(MembersAPIError):
                await self.api.list_members(self.base_url)

    async def test_error_status(self):
        self.etcd.get_status = 503
        with self.assertRaises(MembersAPIError):
            await self.api.list_members(self.base_url)

    async def test_timeout(self):
        self.etcd.delay = 1.5
        with self.assertRaises(MembersAPIError):
            await self.api.list_members(self.base_url)

    async def test_unreachable(self):
        with self.assertRaises(MembersAPIError):
            await self.api.list_members(UNREACHABLE)

    async def test_add_member(self):
        status = await self.api.add_member(self.base_url, 'i-1', 'http://10.0.0.1:2380')
        self.assertEqual(status, 201)
        self.assertEqual(self.etcd.added, [{'peerURLs': ['http://10.0.0.1:2380'], 'name': 'i-1'}])

    async def test_add_member_reports_conflict(self):
        self.etcd.add_status = 409
        status = await self.api.add_member(self.base_url, 'i-1', 'http://10.0.0.1:2380')
        self.assertEqual(status, 409)

    async def test_remove_member(self):
        status = await self.api.remove_member(self.base_url, 'a3')
        self.assertEqual(status, 204)
        self.assertEqual(self.etcd.deleted, ['a3'])

    async def test_remove_member_unreachable(self):
        with self.assertRaises(MembersAPIError):
            await self.api.remove_member(UNREACHABLE, 'a3')

    async def test_requires_start(self):
        api = HTTPMembersAPI(timeout=0.5)
        with self.assertRaises(RuntimeError):
            await api.list_members(self.base_url)
        self.assertIsNone(api.session)

    async def test_context_manager_closes_session(self):
        api = HTTPMembersAPI(timeout=0.5)
        async with api:
            members = await api.list_members(self.base_url)
        self.assertEqual([m.name for m in members], ['i-2'])
        self.assertIsNone(api.session)


class FakeMetadata:
    """Instance metadata service serving an identity document."""

    def __init__(self, token_enabled=True):
        self.token_enabled = token_enabled
        self.document = '{"instanceId": "i-1", "privateIp": "10.0.0.1", "region": "us-east-1"}'
        self.seen_tokens = []

    def app(self):
        app = web.Application()
        if self.token_enabled:
            app.router.add_put('/latest/api/token', self.token)
        app.router.add_get('/latest/dynamic/instance-identity/document', self.identity_document)
        return app

    async def token(self, request):
        return web.Response(text='secret-token')

    async def identity_document(self, request):
        self.seen_tokens.append(request.headers.get('X-aws-ec2-metadata-token'))
        return web.Response(text=self.document, content_type='text/plain')


class TestInstanceMetadata(unittest.IsolatedAsyncioTestCase):
    """Test the instance metadata client."""

    async def asyncSetUp(self):
        logging.disable(logging.CRITICAL)
        self.servers = []

    async def asyncTearDown(self):
        for server in self.servers:
            await server.close()
        logging.disable(logging.NOTSET)

    async def serve(self, fake):
        server = test_utils.TestServer(fake.app())
        await server.start_server()
        self.servers.append(server)
        return InstanceMetadata(str(server.make_url('/')), timeout=1.0)

    async def test_identity_with_token(self):
        fake = FakeMetadata()
        metadata = await self.serve(fake)

        identity = await metadata.fetch_identity()

        self.assertEqual(identity, SELF)
        self.assertEqual(fake.seen_tokens, ['secret-token'])

    async def test_identity_without_token(self):
        fake = FakeMetadata(token_enabled=False)
        metadata = await self.serve(fake)

        identity = await metadata.fetch_identity()

        self.assertEqual(identity.id, 'i-1')
        self.assertEqual(fake.seen_tokens, [None])

    async def test_empty_document(self):
        fake = FakeMetadata()
        fake.document = '  '
        metadata = await self.serve(fake)
        with self.assertRaises(MetadataError):
            await metadata.fetch_identity()

    async def test_incomplete_document(self):
        fake = FakeMetadata()
        fake.document = '{"instanceId": "i-1"}'
        metadata = await self.serve(fake)
        with self.assertRaises(MetadataError) as ctx:
            await metadata.fetch_identity()
        self.assertIn('privateIp', str(ctx.exception))

    async def test_unreachable(self):
        metadata = InstanceMetadata(UNREACHABLE, timeout=1.0)
        with self.assertRaises(MetadataError):
            await metadata.fetch_identity()


def client_error(operation):
    return ClientError({'Error': {'Code': 'ValidationError', 'Message': 'boom'}}, operation)


class TestPeerDirectory(unittest.IsolatedAsyncioTestCase):
    """Test resolution of in-service peers with mocked AWS clients."""

    def setUp(self):
        logging.disable(logging.CRITICAL)
        self.autoscaling = MagicMock()
        self.autoscaling.describe_auto_scaling_instances.return_value = {
            'AutoScalingInstances': [{'InstanceId': 'i-1', 'AutoScalingGroupName': 'etcd'}],
        }
        self.autoscaling.describe_auto_scaling_groups.return_value = {
            'AutoScalingGroups': [{
                'AutoScalingGroupName': 'etcd',
                'Instances': [
                    {'InstanceId': 'i-1', 'LifecycleState': 'InService'},
                    {'InstanceId': 'i-2', 'LifecycleState': 'InService'},
                    {'InstanceId': 'i-3', 'LifecycleState': 'Pending'},
                    {'InstanceId': 'i-4', 'LifecycleState': 'Terminating'},
                ],
            }],
        }
        self.ec2 = MagicMock()
        self.ec2.describe_instances.return_value = {
            'Reservations': [
                {'Instances': [{'InstanceId': 'i-1', 'PrivateIpAddress': '10.0.0.1'}]},
                {'Instances': [{'InstanceId': 'i-2', 'PrivateIpAddress': '10.0.0.2'}]},
            ],
        }
        self.directory = PeerDirectory(self.autoscaling, self.ec2, 'https', 4001)

    def tearDown(self):
        logging.disable(logging.NOTSET)

    async def test_resolves_in_service_instances_only(self):
        urls = await self.directory.resolve(SELF)

        self.assertEqual(urls, {'https://10.0.0.1:4001', 'https://10.0.0.2:4001'})
        self.autoscaling.describe_auto_scaling_groups.assert_called_once_with(AutoScalingGroupNames=['etcd'])
        self.ec2.describe_instances.assert_called_once_with(InstanceIds=['i-1', 'i-2'])

    async def test_explicit_group_skips_membership_lookup(self):
        await self.directory.resolve(SELF, group_name='etcd-voters')

        self.autoscaling.describe_auto_scaling_instances.assert_not_called()
        self.autoscaling.describe_auto_scaling_groups.assert_called_once_with(
            AutoScalingGroupNames=['etcd-voters'])

    async def test_instance_not_in_a_group(self):
        self.autoscaling.describe_auto_scaling_instances.return_value = {'AutoScalingInstances': []}
        with self.assertRaises(GroupNotFoundError):
            await self.directory.resolve(SELF)

    async def test_group_lookup_fails(self):
        self.autoscaling.describe_auto_scaling_instances.side_effect = client_error(
            'DescribeAutoScalingInstances')
        with self.assertRaises(GroupNotFoundError):
            await self.directory.resolve(SELF)

    async def test_missing_group(self):
        self.autoscaling.describe_auto_scaling_groups.return_value = {'AutoScalingGroups': []}
        with self.assertRaises(GroupNotFoundError):
            await self.directory.resolve(SELF)

    async def test_no_instances_in_service(self):
        self.autoscaling.describe_auto_scaling_groups.return_value = {
            'AutoScalingGroups': [{'Instances': [{'InstanceId': 'i-3', 'LifecycleState': 'Pending'}]}],
        }
        with self.assertRaises(EmptyGroupError):
            await self.directory.resolve(SELF)
        self.ec2.describe_instances.assert_not_called()

    async def test_unresolved_address(self):
        self.ec2.describe_instances.return_value = {
            'Reservations': [{'Instances': [{'InstanceId': 'i-1', 'PrivateIpAddress': '10.0.0.1'},
                                            {'InstanceId': 'i-2'}]}],
        }
        with self.assertRaises(PeerSetError) as ctx:
            await self.directory.resolve(SELF)
        self.assertIn('i-2', str(ctx.exception))

    async def test_describe_instances_fails(self):
        self.ec2.describe_instances.side_effect = client_error('DescribeInstances')
        with self.assertRaises(PeerSetError):
            await self.directory.resolve(SELF)


if __name__ == '__main__':
    unittest.main()
