"""
Decides how the local node relates to whatever cluster the probe found.
"""

import logging

from etcdjoin.core.constants import Classification
from etcdjoin.core.models import NodeIdentity, ProbeResult

logger = logging.getLogger("etcdjoin.classifier")


def classify(probe: ProbeResult, identity: NodeIdentity, relay_mode: bool = False) -> Classification:
    """
    Classify the bootstrap situation of the local node.

    Args:
        probe: The result of probing the group's peers.
        identity: The local node.
        relay_mode: Whether the node should join as a non-voting proxy.

    Returns:
        FORM_NEW if no cluster answered, SELF_IS_MEMBER if the cluster already
        lists a member named after this node, otherwise JOIN_AS_RELAY or
        JOIN_EXISTING depending on ``relay_mode``.
    """
    if not probe.found:
        classification = Classification.FORM_NEW
    elif probe.member_named(identity.id) is not None:
        classification = Classification.SELF_IS_MEMBER
    elif relay_mode:
        classification = Classification.JOIN_AS_RELAY
    else:
        classification = Classification.JOIN_EXISTING

    logger.info(f"Node {identity.id} classified as {classification.name}")
    return classification
