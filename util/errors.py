"""Error types for the multicloud program."""


class MulticloudError(Exception):
    """Base exception for multicloud errors."""
    pass


class ConfigurationError(MulticloudError):
    """Missing or invalid configuration, detected before provisioning."""
    pass


class ProvisioningError(MulticloudError):
    """A provider rejected or returned an unusable infrastructure resource."""
    pass


class ClusterProvisioningError(ProvisioningError):
    """Cluster or node pool outputs cannot produce cluster access."""
    pass


class DeploymentError(MulticloudError):
    """The workload or its service cannot be exposed."""
    pass
