"""
deployment.json bookkeeping: records where each contract was deployed so
off-chain services (and resumed runs) can find it.
"""

import os
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from web3 import Web3

from .errors import ConfigError
from .plan import DeploymentReport

logger = logging.getLogger(__name__)


def load_ledger(path: str, chain_id: Optional[int] = None) -> Dict[str, Any]:
    """
    Read the deployment file, or return an empty ledger if there is none

    Raises:
        ConfigError: if the file is not valid JSON or belongs to another chain
    """
    try:
        with open(path, 'r') as f:
            ledger = json.load(f)
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as e:
        raise ConfigError(f"Could not read deployment data from {path}: {e}")

    if not isinstance(ledger, dict):
        raise ConfigError(f"Deployment data in {path} is not a JSON object")

    recorded_chain = ledger.get('network', {}).get('chainId')
    if chain_id is not None and recorded_chain is not None and recorded_chain != chain_id:
        raise ConfigError(
            f"{path} records deployments on chain {recorded_chain}, not {chain_id}. "
            f"Set DEPLOYMENT_FILE to a separate file for this network."
        )
    return ledger


def record_deployment(path: str, report: DeploymentReport, chain_id: int, rpc_url: str,
                      deployer: str) -> Dict[str, Any]:
    """Merge the confirmed deployments of a run into the deployment file."""
    ledger = load_ledger(path, chain_id)
    ledger['network'] = {'chainId': chain_id, 'rpcUrl': rpc_url}
    ledger.setdefault('roles', {})['deployer'] = deployer
    contracts = ledger.setdefault('contracts', {})
    transactions = ledger.setdefault('transactions', {})

    for result in report.confirmed:
        contracts[result.step] = result.address
        if result.tx_hash:
            transactions[result.step] = {
                'hash': result.tx_hash,
                'blockNumber': result.block_number,
                'args': result.args or [],
            }

    ledger['updatedAt'] = datetime.now(timezone.utc).isoformat()

    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    tmp_path = f"{path}.tmp"
    with open(tmp_path, 'w') as f:
        json.dump(ledger, f, indent=2, default=str)
    os.replace(tmp_path, path)

    logger.info(f"Deployment data written to {path}")
    return ledger


def reusable_addresses(ledger: Dict[str, Any], has_code: Callable[[str], bool]) -> Dict[str, str]:
    """Recorded contracts that still have code on-chain."""
    reusable = {}
    for name, address in ledger.get('contracts', {}).items():
        if not Web3.is_address(address):
            logger.warning(f"Recorded address {address!r} for {name} is not valid, it will be redeployed")
            continue
        if has_code(address):
            reusable[name] = address
        else:
            logger.warning(f"No code at recorded address {address} for {name}, it will be redeployed")
    return reusable


def recorded_args(ledger: Dict[str, Any]) -> Dict[str, List[Any]]:
    """Constructor arguments each recorded contract was deployed with."""
    recorded = {}
    for name, tx in ledger.get('transactions', {}).items():
        if isinstance(tx, dict) and isinstance(tx.get('args'), list):
            recorded[name] = tx['args']
    return recorded
