"""
Utility modules for etcdjoin.
"""

from .config import Settings
from .logging_config import setup_bootstrap_logging, add_bootstrap_context, BootstrapFormatter

__all__ = [
    'Settings',
    'setup_bootstrap_logging',
    'add_bootstrap_context',
    'BootstrapFormatter',
]
