import logging
from typing import Optional

import requests

from .plan import DeploymentReport

logger = logging.getLogger(__name__)


def build_slack_payload(report: DeploymentReport, chain_id: Optional[int] = None) -> dict:
    fields = []
    for result in report.failures + report.skipped:
        fields.append({
            "title": f"{result.step} ({result.status.value})",
            "value": result.error or "",
            "short": False
        })
    for result in report.confirmed:
        fields.append({
            "title": f"{result.step} ({result.status.value})",
            "value": result.address,
            "short": True
        })

    network = f" on chain {chain_id}" if chain_id is not None else ""
    return {
        "text": f"Contract deployment{network} incomplete: "
                f"{len(report.failures)} failed, {len(report.skipped)} skipped",
        "attachments": [{"fields": fields}]
    }


def send_slack_alert(webhook: str, report: DeploymentReport, chain_id: Optional[int] = None):
    response = requests.post(webhook, json=build_slack_payload(report, chain_id), timeout=10)
    response.raise_for_status()


def notify_failures(webhook: Optional[str], report: DeploymentReport, chain_id: Optional[int] = None) -> bool:
    """Post a Slack alert for an incomplete run. Returns whether one was sent."""
    if report.succeeded or not webhook:
        return False
    try:
        send_slack_alert(webhook, report, chain_id)
    except requests.RequestException as e:
        logger.error(f"Failed to send Slack alert: {e}")
        return False
    return True
