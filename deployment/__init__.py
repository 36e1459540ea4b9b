"""
Contract Deployment
===================

Deploys the ValueFeed contracts to an EVM network.

Structure:
- artifacts: compiled contract loading (Hardhat / Truffle layouts)
- backend: Web3 transaction submission and receipt tracking
- plan: step sequencing with address dependencies
- ledger: deployment.json bookkeeping
- deploy_contracts: the deployment script
"""

from .errors import (
    ArtifactNotFoundError,
    ConfigError,
    DependencyNotReadyError,
    DeploymentError,
    PlanError,
)

__version__ = "1.0.0"

__all__ = [
    'ArtifactNotFoundError',
    'ConfigError',
    'DependencyNotReadyError',
    'DeploymentError',
    'PlanError',
]
