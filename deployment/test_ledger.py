#!/usr/bin/env python3
"""
Tests for deployment.json bookkeeping
"""

import json
import pytest

from deployment.deploy_contracts import value_feed_plan
from deployment.errors import ConfigError
from deployment.ledger import load_ledger, record_deployment, recorded_args, reusable_addresses
from deployment.plan import DeploymentReport, StepResult, StepStatus
from deployment.test_plan import RecordingBackend

DEPLOYER = "0x" + "11" * 20
TOKEN_V1 = "0x" + "a1" * 20
TOKEN_V2 = "0x" + "a2" * 20
FEED_V1 = "0x" + "f1" * 20
TEST_TOKEN = "0x" + "cc" * 20


def sample_report():
    return DeploymentReport([
        StepResult("TestToken", StepStatus.FAILED, error="rejected"),
        StepResult("ValueToken", StepStatus.CONFIRMED, address=TOKEN_V1, tx_hash="0x01", block_number=5),
        StepResult("ValueFeed", StepStatus.REUSED, address=FEED_V1, args=[TOKEN_V1]),
    ])


def record(path, results):
    record_deployment(str(path), DeploymentReport(results), chain_id=31337,
                      rpc_url="http://localhost:8545", deployer=DEPLOYER)


class TestLoadLedger:

    def test_missing_file(self, tmp_path):
        """Test a missing deployment file is an empty ledger"""
        assert load_ledger(str(tmp_path / "deployment.json")) == {}

    def test_invalid_json(self, tmp_path):
        """Test corrupt deployment data is a configuration error"""
        path = tmp_path / "deployment.json"
        path.write_text("[broken")
        with pytest.raises(ConfigError, match="Could not read deployment data"):
            load_ledger(str(path))

    def test_other_chain(self, tmp_path):
        """Test a ledger recorded on another chain is refused"""
        path = tmp_path / "deployment.json"
        path.write_text(json.dumps({"network": {"chainId": 1}, "contracts": {}}))
        with pytest.raises(ConfigError, match="chain 1"):
            load_ledger(str(path), chain_id=31337)
        assert load_ledger(str(path), chain_id=1)["network"]["chainId"] == 1


class TestRecordDeployment:

    def test_writes_confirmed_contracts(self, tmp_path):
        """Test only confirmed and reused contracts are recorded"""
        path = tmp_path / "deployment.json"
        record_deployment(str(path), sample_report(), chain_id=31337,
                          rpc_url="http://localhost:8545", deployer=DEPLOYER)

        data = json.loads(path.read_text())
        assert data["network"] == {"chainId": 31337, "rpcUrl": "http://localhost:8545"}
        assert data["roles"]["deployer"] == DEPLOYER
        assert data["contracts"] == {"ValueToken": TOKEN_V1, "ValueFeed": FEED_V1}
        assert data["transactions"] == {"ValueToken": {"hash": "0x01", "blockNumber": 5, "args": []}}
        assert "updatedAt" in data

    def test_records_constructor_args(self, tmp_path):
        """Test the resolved constructor arguments are stored with the transaction"""
        path = tmp_path / "deployment.json"
        record(path, [StepResult("ValueFeed", StepStatus.CONFIRMED, address=FEED_V1,
                                 tx_hash="0x02", block_number=6, args=[TOKEN_V1])])

        data = json.loads(path.read_text())
        assert data["transactions"]["ValueFeed"]["args"] == [TOKEN_V1]
        assert recorded_args(data) == {"ValueFeed": [TOKEN_V1]}

    def test_preserves_other_entries(self, tmp_path):
        """Test existing contracts and roles are kept"""
        path = tmp_path / "deployment.json"
        path.write_text(json.dumps({
            "network": {"chainId": 31337},
            "contracts": {"TestToken": TEST_TOKEN},
            "roles": {"updater": "0x22"},
        }))
        record_deployment(str(path), sample_report(), chain_id=31337,
                          rpc_url="http://localhost:8545", deployer=DEPLOYER)

        data = json.loads(path.read_text())
        assert data["contracts"]["TestToken"] == TEST_TOKEN
        assert data["roles"] == {"updater": "0x22", "deployer": DEPLOYER}
        assert not (tmp_path / "deployment.json.tmp").exists()


class TestReusableAddresses:

    def test_only_addresses_with_code(self):
        """Test recorded contracts without code on-chain are dropped"""
        ledger = {"contracts": {"ValueToken": TOKEN_V1, "ValueFeed": FEED_V1}}
        reusable = reusable_addresses(ledger, has_code=lambda address: address == TOKEN_V1)
        assert reusable == {"ValueToken": TOKEN_V1}

    def test_invalid_address_not_reused(self):
        """Test a malformed recorded address is skipped without querying the node"""
        checked = []
        ledger = {"contracts": {"ValueToken": "0xAAA", "ValueFeed": None, "TestToken": TEST_TOKEN}}
        reusable = reusable_addresses(ledger, has_code=lambda address: checked.append(address) or True)
        assert reusable == {"TestToken": TEST_TOKEN}
        assert checked == [TEST_TOKEN]

    def test_empty_ledger(self):
        """Test an empty ledger reuses nothing"""
        assert reusable_addresses({}, has_code=lambda address: True) == {}

    def test_recorded_args_ignores_entries_without_args(self):
        """Test ledgers written before arguments were recorded give no arguments"""
        ledger = {"transactions": {"ValueFeed": {"hash": "0x02", "blockNumber": 6}, "Broken": "0x03"}}
        assert recorded_args(ledger) == {}


class TestResumeAfterPartialRedeploy:
    """A recorded contract built against an older dependency is not reused"""

    def test_value_feed_built_with_old_token_is_redeployed(self, tmp_path):
        """Test resume redeploys ValueFeed when ValueToken moved since it was built"""
        path = tmp_path / "deployment.json"
        record(path, [
            StepResult("ValueToken", StepStatus.CONFIRMED, address=TOKEN_V1, tx_hash="0x01", args=[]),
            StepResult("ValueFeed", StepStatus.CONFIRMED, address=FEED_V1, tx_hash="0x02", args=[TOKEN_V1]),
        ])
        # second run: a new ValueToken confirmed but ValueFeed reverted
        record(path, [
            StepResult("ValueToken", StepStatus.CONFIRMED, address=TOKEN_V2, tx_hash="0x03", args=[]),
            StepResult("ValueFeed", StepStatus.FAILED, error="reverted", args=[TOKEN_V2]),
        ])

        ledger = load_ledger(str(path), 31337)
        backend = RecordingBackend()
        report = value_feed_plan().run(
            backend,
            existing=reusable_addresses(ledger, lambda address: True),
            recorded_args=recorded_args(ledger),
        )

        assert report.get("ValueToken").status is StepStatus.REUSED
        assert report.get("ValueToken").address == TOKEN_V2
        assert report.get("ValueFeed").status is StepStatus.CONFIRMED
        assert backend.deployed("ValueFeed") == [("ValueFeed", [TOKEN_V2])]

    def test_value_feed_reused_when_token_unchanged(self, tmp_path):
        """Test resume keeps ValueFeed when it was built with the recorded ValueToken"""
        path = tmp_path / "deployment.json"
        record(path, [
            StepResult("ValueToken", StepStatus.CONFIRMED, address=TOKEN_V1, tx_hash="0x01", args=[]),
            StepResult("ValueFeed", StepStatus.CONFIRMED, address=FEED_V1, tx_hash="0x02",
                       args=[TOKEN_V1.upper().replace("0X", "0x")]),
        ])

        ledger = load_ledger(str(path), 31337)
        backend = RecordingBackend()
        report = value_feed_plan().run(
            backend,
            existing=reusable_addresses(ledger, lambda address: True),
            recorded_args=recorded_args(ledger),
        )

        assert report.get("ValueFeed").status is StepStatus.REUSED
        assert report.get("ValueFeed").address == FEED_V1
        assert backend.deployed("ValueFeed") == []


if __name__ == "__main__":
    pytest.main([__file__])
