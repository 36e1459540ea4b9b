#!/usr/bin/env python3
"""
Deploys TestToken, ValueToken and ValueFeed.

ValueFeed is constructed with the address of ValueToken, so it is only
submitted once ValueToken has confirmed. TestToken is independent.
"""

import sys
import logging
from typing import Optional

from .alerts import notify_failures
from .artifacts import ArtifactStore
from .backend import Web3Backend, connect
from .config import DeployConfig
from .errors import ConfigError, DeploymentError
from .ledger import load_ledger, record_deployment, recorded_args, reusable_addresses
from .plan import AddressOf, DeploymentPlan, DeploymentReport, DeploymentStep, StepResult

logger = logging.getLogger(__name__)


def value_feed_plan() -> DeploymentPlan:
    return DeploymentPlan([
        DeploymentStep("TestToken", artifact="./TestToken.sol"),
        DeploymentStep("ValueToken"),
        DeploymentStep("ValueFeed", args=(AddressOf("ValueToken"),)),
    ])


def configure_logging(log_file: str = 'deployment.log'):
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )


def run_migration(config: DeployConfig, plan: Optional[DeploymentPlan] = None) -> DeploymentReport:
    """Connect, deploy the plan and record the result in the deployment file."""
    plan = plan or value_feed_plan()
    w3 = connect(config.rpc_url)

    chain_id = w3.eth.chain_id
    if config.chain_id is not None and config.chain_id != chain_id:
        raise ConfigError(f"CHAIN_ID is {config.chain_id} but {config.rpc_url} is chain {chain_id}")

    ledger = load_ledger(config.deployment_file, chain_id)
    backend = Web3Backend(
        w3,
        ArtifactStore(config.artifacts_dirs),
        private_key=config.private_key,
        gas_limit=config.gas_limit,
        receipt_timeout=config.receipt_timeout,
        chain_id=chain_id,
    )

    existing, built_with = {}, {}
    if config.resume:
        existing = reusable_addresses(ledger, backend.has_code)
        built_with = recorded_args(ledger)

    def record(result: StepResult):
        # written as each contract confirms so an interrupted run can resume
        record_deployment(config.deployment_file, DeploymentReport([result]), chain_id=chain_id,
                          rpc_url=config.rpc_url, deployer=backend.deployer_address)

    report = plan.run(backend, existing=existing, recorded_args=built_with, on_confirmed=record)

    record_deployment(config.deployment_file, report, chain_id=chain_id,
                      rpc_url=config.rpc_url, deployer=backend.deployer_address)
    notify_failures(config.slack_webhook, report, chain_id)
    return report


def main() -> int:
    configure_logging()
    try:
        config = DeployConfig.from_env()
        report = run_migration(config)
    except (ConfigError, DeploymentError) as e:
        logger.error(f"Deployment aborted: {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Deployment interrupted, check deployment.json and the deployer's "
                       "pending transactions before re-running")
        return 130

    for result in report.results:
        detail = result.address or result.error
        logger.info(f"{result.step}: {result.status.value} {detail}")

    if not report.succeeded:
        failed = ", ".join(r.step for r in report.failures + report.skipped)
        logger.error(f"Deployment incomplete: {failed}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
