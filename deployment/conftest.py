"""
Shared fixtures for the deployment tests
"""

from unittest.mock import MagicMock

import pytest
from web3 import Web3

from deployment.artifacts import Artifact, ArtifactRegistry, legacy_marker
from deployment.deployer import Deployer, DeploymentReceipt, check_constructor_args
from deployment.errors import DeploymentFailed

ARITHMETIC_ADDRESS = Web3.to_checksum_address("0x" + "aa" * 20)
EXCHANGE_ADDRESS = Web3.to_checksum_address("0x" + "ee" * 20)

ARITHMETIC_CODE = "0x6080604052348015600f57600080fd5b50"
EXCHANGE_CODE = "0x608060405273" + legacy_marker("Arithmetic") + "6000f3"

EXCHANGE_ABI = [
    {"type": "constructor", "inputs": [], "stateMutability": "nonpayable"},
]

SENDER = Web3.to_checksum_address("0x" + "12" * 20)
TX_HASH = bytes.fromhex("ab" * 32)
PRIVATE_KEY = "0x" + "01" * 32


def make_w3():
    """Mocked web3 connection whose deployments all succeed"""
    w3 = MagicMock()
    w3.eth.account.from_key.return_value.address = SENDER
    w3.eth.get_transaction_count.return_value = 7
    w3.eth.gas_price = 1000
    w3.eth.contract.return_value.constructor.return_value.build_transaction.side_effect = (
        lambda params: dict(params, data="0x6080")
    )
    w3.eth.account.sign_transaction.return_value.raw_transaction = b"signed"
    w3.eth.send_raw_transaction.return_value = TX_HASH
    w3.eth.wait_for_transaction_receipt.return_value = {
        "status": 1,
        "contractAddress": EXCHANGE_ADDRESS.lower(),
        "blockNumber": 42,
    }
    return w3


class FakeDeployer(Deployer):
    """Hands out preset addresses and remembers what it was asked to deploy"""

    def __init__(self, addresses=None, fail=None):
        self.addresses = dict(addresses or {})
        self.fail = dict(fail or {})
        self.calls = []
        self._counter = 0

    def deploy(self, linked, constructor_args=()):
        check_constructor_args(linked, constructor_args)
        self.calls.append((linked.name, linked.bytecode, list(constructor_args)))
        if linked.name in self.fail:
            raise self.fail[linked.name]
        self._counter += 1
        address = self.addresses.get(linked.name) or "0x" + f"{self._counter:040x}"
        return DeploymentReceipt(address=address, transaction_hash="0x" + f"{self._counter:064x}")

    @property
    def deployed_names(self):
        return [call[0] for call in self.calls]


@pytest.fixture
def arithmetic():
    return Artifact(name="Arithmetic", bytecode=ARITHMETIC_CODE)


@pytest.fixture
def exchange():
    return Artifact.from_dependencies("Exchange", EXCHANGE_CODE, ["Arithmetic"], abi=EXCHANGE_ABI)


@pytest.fixture
def registry(arithmetic, exchange):
    # Registered dependent-first on purpose: order must come from the graph
    return ArtifactRegistry([exchange, arithmetic])


@pytest.fixture
def fake_deployer():
    return FakeDeployer({"Arithmetic": ARITHMETIC_ADDRESS, "Exchange": EXCHANGE_ADDRESS})


@pytest.fixture
def failing_deployer():
    return FakeDeployer(fail={"Arithmetic": DeploymentFailed("Arithmetic", "out of gas")})
