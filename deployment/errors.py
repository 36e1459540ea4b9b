"""
Exceptions raised while deploying contracts
"""


class DeploymentError(Exception):
    """A deployment could not be submitted or did not confirm"""


class ArtifactNotFoundError(DeploymentError):
    """No deployable compiled artifact exists for a contract name"""


class DependencyNotReadyError(Exception):
    """A contract address was requested before its deployment confirmed"""


class PlanError(Exception):
    """A deployment plan is malformed"""


class ConfigError(Exception):
    """A configuration value is missing or invalid"""
