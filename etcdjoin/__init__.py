"""
etcdjoin: bootstrap etcd membership for nodes in an AWS Auto Scaling group.

This library decides, once per node boot, whether the local node should form a
new etcd cluster or join one that is already running, repairs stale membership
records left behind by terminated instances, registers the node with the
cluster, and writes the environment file the etcd daemon reads at startup.

Running it more than once is safe: the presence of the bootstrap configuration
file short-circuits the whole run, and registration tolerates the node already
being present in the cluster.
"""

__version__ = "0.1.0"
