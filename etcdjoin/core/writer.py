import logging
import os
import tempfile

from etcdjoin.core.errors import ConfigWriteError
from etcdjoin.core.models import BootstrapDecision


class BootstrapConfigWriter:
    """
    Persists the bootstrap decision as an environment file for etcd.

    The file holds one ``KEY=value`` line per setting. Its presence marks the
    node as already bootstrapped.
    """

    def __init__(self, path: str = "/etc/sysconfig/etcd-peers"):
        self.path = path
        self.logger = logging.getLogger("etcdjoin.writer")

    def exists(self) -> bool:
        return os.path.exists(self.path)

    def render(self, decision: BootstrapDecision) -> str:
        return ''.join(f"{key}={value}\n" for key, value in decision.environment().items())

    def write(self, decision: BootstrapDecision) -> None:
        """
        Write the decision atomically.

        The content goes to a temporary file in the target directory which is
        then renamed over the target, so readers never see a partial file.

        Args:
            decision: The decision to persist.

        Raises:
            ConfigWriteError: If the file cannot be written.
        """
        directory = os.path.dirname(os.path.abspath(self.path))
        content = self.render(decision)
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix='.etcd-peers.', dir=directory)
            with os.fdopen(fd, 'w') as f:
                f.write(content)
            os.chmod(tmp_path, 0o644)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise ConfigWriteError(f"Could not write {self.path}: {e}") from e

        self.logger.info(f"Wrote bootstrap configuration to {self.path}")
