#!/usr/bin/env python3
"""
Tests for the deploy-sequencer command line
"""

import json

import pytest

from deployment.address_table import AddressTable
from deployment.cli import main
from deployment.conftest import (
    ARITHMETIC_ADDRESS,
    ARITHMETIC_CODE,
    EXCHANGE_ABI,
    EXCHANGE_ADDRESS,
    EXCHANGE_CODE,
    FakeDeployer,
)
from deployment.errors import DeploymentFailed


@pytest.fixture
def project(tmp_path, monkeypatch):
    """Build directory, manifest and environment for one CLI run"""
    monkeypatch.setattr('deployment.config.load_dotenv', lambda *args, **kwargs: None)
    for name in ["CHAIN_ID", "PRIVATE_KEY", "SLACK_WEBHOOK", "NOTIFICATION_EMAIL", "ARTIFACTS_DIR", "DEPLOYMENT_FILE"]:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DEPLOYMENT_LOG", str(tmp_path / "deployment.log"))

    build_dir = tmp_path / "build" / "contracts"
    build_dir.mkdir(parents=True)
    (build_dir / "Arithmetic.json").write_text(json.dumps({
        "contractName": "Arithmetic", "abi": [], "bytecode": ARITHMETIC_CODE,
    }))
    (build_dir / "Exchange.json").write_text(json.dumps({
        "contractName": "Exchange", "abi": EXCHANGE_ABI, "bytecode": EXCHANGE_CODE,
    }))

    manifest = tmp_path / "2_deploy_exchange.json"
    manifest.write_text(json.dumps({"artifacts": ["Arithmetic", "Exchange"]}))

    deployment_file = tmp_path / "deployment.json"
    return {
        "argv": [str(manifest), "--artifacts-dir", str(build_dir), "--deployment-file", str(deployment_file)],
        "deployment_file": deployment_file,
        "tmp_path": tmp_path,
    }


class TestCli:
    def test_deploys_and_writes_table(self, project, capsys):
        """Test a full run deploys both contracts and writes the table"""
        deployer = FakeDeployer({"Arithmetic": ARITHMETIC_ADDRESS, "Exchange": EXCHANGE_ADDRESS})

        assert main(project["argv"], deployer=deployer) == 0

        assert deployer.deployed_names == ["Arithmetic", "Exchange"]
        table = AddressTable.load(str(project["deployment_file"]), chain_id=31337)
        assert table.addresses() == {"Arithmetic": ARITHMETIC_ADDRESS, "Exchange": EXCHANGE_ADDRESS}
        out = capsys.readouterr().out
        assert f"Exchange: {EXCHANGE_ADDRESS}" in out

    def test_failure_keeps_partial_table(self, project, capsys):
        """Test a failed run still writes what was deployed"""
        deployer = FakeDeployer(
            {"Arithmetic": ARITHMETIC_ADDRESS},
            fail={"Exchange": DeploymentFailed("Exchange", "reverted")},
        )

        assert main(project["argv"], deployer=deployer) == 1

        table = AddressTable.load(str(project["deployment_file"]))
        assert table.addresses() == {"Arithmetic": ARITHMETIC_ADDRESS}
        assert "Deployment failed at Exchange" in capsys.readouterr().err

    def test_resume_skips_deployed(self, project):
        """Test resuming skips contracts in the deployment file"""
        prior = AddressTable(network="development", chain_id=31337)
        prior.insert("Arithmetic", ARITHMETIC_ADDRESS, "0x01")
        prior.save(str(project["deployment_file"]))

        deployer = FakeDeployer({"Exchange": EXCHANGE_ADDRESS})
        assert main(project["argv"] + ["--resume"], deployer=deployer) == 0

        assert deployer.deployed_names == ["Exchange"]
        table = AddressTable.load(str(project["deployment_file"]))
        assert table.names() == ["Arithmetic", "Exchange"]
        assert table.get("Arithmetic").transaction_hash == "0x01"

    def test_resume_rejects_other_chain(self, project):
        """Test resuming from another chain's file is a setup error"""
        prior = AddressTable(network="mainnet", chain_id=1)
        prior.insert("Arithmetic", ARITHMETIC_ADDRESS)
        prior.save(str(project["deployment_file"]))

        deployer = FakeDeployer()
        assert main(project["argv"] + ["--resume"], deployer=deployer) == 2
        assert deployer.calls == []

    def test_dry_run_writes_nothing(self, project, capsys):
        """Test a dry run prints addresses without writing a file"""
        assert main(project["argv"] + ["--dry-run"]) == 0
        assert not project["deployment_file"].exists()
        out = capsys.readouterr().out
        assert "Arithmetic: 0x" in out
        assert "Exchange: 0x" in out

    def test_plan(self, project, capsys):
        """Test the plan lists the order without deploying"""
        deployer = FakeDeployer()
        assert main(project["argv"] + ["--plan"], deployer=deployer) == 0
        assert deployer.calls == []
        out = capsys.readouterr().out
        assert "1. Arithmetic (pending)" in out
        assert "2. Exchange (pending)" in out

    def test_missing_manifest(self, project):
        """Test a missing manifest is a setup error"""
        argv = [str(project["tmp_path"] / "missing.json")] + project["argv"][1:]
        assert main(argv, deployer=FakeDeployer()) == 2

    def test_structural_failure(self, project):
        """Test an unresolved dependency fails before deploying"""
        manifest = project["tmp_path"] / "only_exchange.json"
        manifest.write_text(json.dumps({"artifacts": ["Exchange"]}))
        deployer = FakeDeployer()

        assert main([str(manifest)] + project["argv"][1:], deployer=deployer) == 1
        assert deployer.calls == []
        assert not project["deployment_file"].exists()

    def test_unwritable_deployment_file(self, project, monkeypatch, capsys):
        """Test a deployment file that cannot be written fails the run cleanly"""
        def save(self, path):
            raise OSError("disk full")

        monkeypatch.setattr(AddressTable, "save", save)
        deployer = FakeDeployer({"Arithmetic": ARITHMETIC_ADDRESS, "Exchange": EXCHANGE_ADDRESS})

        assert main(project["argv"], deployer=deployer) == 1

        assert deployer.deployed_names == ["Arithmetic"]
        captured = capsys.readouterr()
        assert f"Arithmetic: {ARITHMETIC_ADDRESS}" in captured.out
        assert "Deployment failed at Arithmetic" in captured.err
        assert "disk full" in captured.err

    def test_resume_with_corrupt_chain_id(self, project):
        """Test a deployment file with a corrupt chainId is a setup error"""
        project["deployment_file"].write_text(json.dumps({"chainId": "garbage", "contracts": {}}))
        deployer = FakeDeployer()

        assert main(project["argv"] + ["--resume"], deployer=deployer) == 2
        assert deployer.calls == []
