import logging
import json
import time
import os
from typing import Any, Dict, Optional
from enum import Enum

CONTEXT_FIELDS = ('instance_id', 'classification', 'peer')

_context: Dict[str, Any] = {}
_base_factory = None


def _record_factory(*args, **kwargs):
    record = _base_factory(*args, **kwargs)
    for key, value in _context.items():
        setattr(record, key, value)
    return record


def _install_record_factory():
    global _base_factory
    if logging.getLogRecordFactory() is _record_factory:
        return
    _base_factory = logging.getLogRecordFactory()
    logging.setLogRecordFactory(_record_factory)


class BootstrapFormatter(logging.Formatter):
    """Formatter that appends bootstrap context to each record."""

    def format(self, record):
        """
        Format log records with bootstrap context.

        Adds these fields when known:
        - instance_id: The local instance id
        - classification: The bootstrap classification
        - peer: The peer the run is talking to
        """
        message = super().format(record)

        context = {
            'timestamp': time.time(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            context[name] = getattr(record, name, None)

        context = {k: v for k, v in context.items() if v is not None}

        for key, value in context.items():
            if isinstance(value, Enum):
                context[key] = value.name

        if getattr(record, 'json_format', False):
            return json.dumps(context)

        context_str = ' '.join([f"{k}={v}" for k, v in context.items()
                               if k not in ('timestamp', 'level', 'logger', 'message')])

        if context_str:
            return f"{message} [{context_str}]"
        return message


class _JsonFilter(logging.Filter):
    def filter(self, record):
        record.json_format = True
        return True


def setup_bootstrap_logging(log_dir: Optional[str] = None,
                            log_level: int = logging.INFO,
                            enable_json: bool = False):
    """
    Setup logging for a bootstrap run.

    Args:
        log_dir: Directory to store log files. If None, only console logging is used.
        log_level: Logging level (default: INFO).
        enable_json: Whether console output is JSON lines (default: False).

    Returns:
        The logger used for run-level messages.
    """
    formatter = BootstrapFormatter(
        '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(log_level)
    if enable_json:
        console_handler.addFilter(_JsonFilter())

    handlers = [console_handler]

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

        file_handler = logging.FileHandler(os.path.join(log_dir, "etcdjoin.log"))
        file_handler.setFormatter(formatter)
        file_handler.setLevel(log_level)
        handlers.append(file_handler)

        json_handler = logging.FileHandler(os.path.join(log_dir, "etcdjoin-json.log"))
        json_handler.setFormatter(BootstrapFormatter('%(message)s'))
        json_handler.setLevel(log_level)
        json_handler.addFilter(_JsonFilter())
        handlers.append(json_handler)

    logging.basicConfig(
        level=log_level,
        handlers=handlers,
        force=True
    )

    # botocore is chatty at DEBUG
    logging.getLogger('botocore').setLevel(max(log_level, logging.INFO))

    _install_record_factory()

    return logging.getLogger("etcdjoin")


def add_bootstrap_context(instance_id=None, classification=None, peer=None):
    """
    Attach run context to every subsequent log record.

    Args:
        instance_id: The local instance id.
        classification: The bootstrap classification.
        peer: The peer the run is talking to.
    """
    if instance_id is not None:
        _context['instance_id'] = instance_id
    if classification is not None:
        _context['classification'] = classification
    if peer is not None:
        _context['peer'] = peer


def clear_bootstrap_context():
    _context.clear()
