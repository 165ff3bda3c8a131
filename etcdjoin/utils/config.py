from dataclasses import dataclass
from typing import Mapping, Optional
import os
import ssl

from etcdjoin.core.errors import ConfigurationError

SCHEMES = ('http', 'https')


@dataclass(frozen=True)
class Settings:
    """
    Run settings, read from the environment.

    Attributes:
        client_port: Client-facing etcd port.
        server_port: Peer-facing etcd port.
        client_scheme: Scheme of client URLs.
        peer_scheme: Scheme of peer URLs.
        proxy_group: Auto Scaling group of the voting cluster. When set the
            node runs as a relay and discovers peers in that group.
        peers_file: Path of the bootstrap configuration file.
        request_timeout: Bound in seconds on each etcd request.
        metadata_timeout: Bound in seconds on each metadata request.
        api_timeout: Connect and read bound in seconds on AWS API calls.
        metadata_url: Base URL of the instance metadata service.
        ca_file: CA bundle for https peers.
        cert_file: Client certificate for https peers.
        key_file: Client key for https peers.
        region: Region override; None uses the region from metadata.
    """
    client_port: int = 2379
    server_port: int = 2380
    client_scheme: str = "http"
    peer_scheme: str = "http"
    proxy_group: Optional[str] = None
    peers_file: str = "/etc/sysconfig/etcd-peers"
    request_timeout: float = 5.0
    metadata_timeout: float = 2.0
    api_timeout: float = 10.0
    metadata_url: str = "http://169.254.169.254"
    ca_file: Optional[str] = None
    cert_file: Optional[str] = None
    key_file: Optional[str] = None
    region: Optional[str] = None

    @property
    def relay_mode(self) -> bool:
        return bool(self.proxy_group)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'Settings':
        """
        Load settings from environment variables.

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.

        Raises:
            ConfigurationError: If a variable has an invalid value.
        """
        env = os.environ if environ is None else environ

        def text(name: str, default: Optional[str] = None) -> Optional[str]:
            value = env.get(name, '').strip()
            return value or default

        def port(name: str, default: int) -> int:
            raw = text(name)
            if raw is None:
                return default
            try:
                value = int(raw)
            except ValueError:
                raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
            if not 0 < value < 65536:
                raise ConfigurationError(f"{name} must be a valid port, got {value}")
            return value

        def scheme(name: str, default: str) -> str:
            value = text(name, default).lower()
            if value not in SCHEMES:
                raise ConfigurationError(f"{name} must be one of {', '.join(SCHEMES)}, got {value!r}")
            return value

        def seconds(name: str, default: float) -> float:
            raw = text(name)
            if raw is None:
                return default
            try:
                value = float(raw)
            except ValueError:
                raise ConfigurationError(f"{name} must be a number of seconds, got {raw!r}")
            if value <= 0:
                raise ConfigurationError(f"{name} must be positive, got {value}")
            return value

        settings = cls(
            client_port=port('ETCD_CLIENT_PORT', cls.client_port),
            server_port=port('ETCD_SERVER_PORT', cls.server_port),
            client_scheme=scheme('ETCD_CLIENT_SCHEME', cls.client_scheme),
            peer_scheme=scheme('ETCD_PEER_SCHEME', cls.peer_scheme),
            proxy_group=text('PROXY_ASG'),
            peers_file=text('ETCD_PEERS_FILE', cls.peers_file),
            request_timeout=seconds('ETCD_REQUEST_TIMEOUT', cls.request_timeout),
            metadata_timeout=seconds('METADATA_TIMEOUT', cls.metadata_timeout),
            api_timeout=seconds('AWS_API_TIMEOUT', cls.api_timeout),
            metadata_url=text('METADATA_URL', cls.metadata_url),
            ca_file=text('ETCD_CA_FILE'),
            cert_file=text('ETCD_CERT_FILE'),
            key_file=text('ETCD_KEY_FILE'),
            region=text('AWS_DEFAULT_REGION'),
        )
        if settings.key_file and not settings.cert_file:
            raise ConfigurationError("ETCD_KEY_FILE is set without ETCD_CERT_FILE")
        return settings

    def ssl_context(self) -> Optional[ssl.SSLContext]:
        """
        Build the TLS context for https client URLs.

        Returns:
            None for plain http or when no TLS material is configured.
        """
        if self.client_scheme != 'https' or not (self.ca_file or self.cert_file):
            return None
        try:
            context = ssl.create_default_context(cafile=self.ca_file)
            if self.cert_file:
                context.load_cert_chain(self.cert_file, self.key_file)
        except (OSError, ssl.SSLError) as e:
            raise ConfigurationError(f"Could not load TLS material: {e}") from e
        return context
