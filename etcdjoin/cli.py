#!/usr/bin/env python3
import asyncio
import dataclasses
import argparse
import logging
import sys

from etcdjoin.core.constants import ExitCode
from etcdjoin.core.errors import BootstrapError
from etcdjoin.core.pipeline import BootstrapPipeline
from etcdjoin.core.writer import BootstrapConfigWriter
from etcdjoin.discovery.directory import PeerDirectory
from etcdjoin.network.members import HTTPMembersAPI
from etcdjoin.network.metadata import InstanceMetadata
from etcdjoin.utils.config import Settings
from etcdjoin.utils.logging_config import setup_bootstrap_logging


def build_pipeline(settings: Settings) -> BootstrapPipeline:
    """
    Wire a pipeline from settings.

    Args:
        settings: The run settings.

    Returns:
        A pipeline talking to the real metadata service, AWS and etcd.
    """
    def directory_factory(region):
        return PeerDirectory.from_region(
            region,
            client_scheme=settings.client_scheme,
            client_port=settings.client_port,
            api_timeout=settings.api_timeout,
        )

    return BootstrapPipeline(
        writer=BootstrapConfigWriter(settings.peers_file),
        metadata=InstanceMetadata(settings.metadata_url, timeout=settings.metadata_timeout),
        directory_factory=directory_factory,
        members_api=HTTPMembersAPI(settings.request_timeout, settings.ssl_context()),
        peer_scheme=settings.peer_scheme,
        peer_port=settings.server_port,
        proxy_group=settings.proxy_group,
        region=settings.region,
    )


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Decide whether this instance forms or joins an etcd cluster '
                    'and write the etcd bootstrap configuration'
    )
    parser.add_argument('--peers-file', help='Path of the bootstrap configuration file '
                                             '(default: $ETCD_PEERS_FILE or /etc/sysconfig/etcd-peers)')
    parser.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], help='Logging level')
    parser.add_argument('--log-dir', help='Directory to store log files')
    parser.add_argument('--json-logs', action='store_true', help='Emit console logs as JSON lines')
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """
    Parse command line arguments and run the bootstrap.

    Returns:
        The process exit code.
    """
    args = parse_args(argv)
    logger = setup_bootstrap_logging(
        log_dir=args.log_dir,
        log_level=getattr(logging, args.log_level),
        enable_json=args.json_logs,
    )

    try:
        settings = Settings.from_env()
        if args.peers_file:
            settings = dataclasses.replace(settings, peers_file=args.peers_file)
        pipeline = build_pipeline(settings)
        asyncio.run(pipeline.run())
    except BootstrapError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return int(e.exit_code)
    except Exception:
        logger.exception("Unexpected error during bootstrap")
        return int(ExitCode.UNEXPECTED)

    return int(ExitCode.OK)


if __name__ == '__main__':
    sys.exit(main())
