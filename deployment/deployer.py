"""
Deployer adapters: the one place that touches the chain.

A deployer takes linked bytecode plus constructor arguments and returns the
address of the new contract. Every call creates a new instance; there is
nothing idempotent about it, so nothing here resubmits a transaction.
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

import requests
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception
from web3.middleware import ExtraDataToPOAMiddleware

from .artifacts import PLACEHOLDER_PATTERN
from .errors import (
    DeploymentError,
    DeploymentFailed,
    DeploymentRejected,
    DeploymentTimeout,
)
from .linker import LinkedArtifact

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeploymentReceipt:
    """Address of the created contract and the transaction that created it"""
    address: str
    transaction_hash: str


def check_constructor_args(linked: LinkedArtifact, args: Sequence[Any]) -> None:
    """Validation shared by all deployers, done before anything is sent."""
    name = linked.name
    if PLACEHOLDER_PATTERN.search(linked.bytecode):
        raise DeploymentRejected(name, "bytecode still contains library placeholders")
    if len(linked.bytecode) <= 2:
        raise DeploymentRejected(name, "bytecode is empty (abstract contract or interface?)")

    expected = linked.artifact.constructor_inputs
    if len(args) != len(expected):
        raise DeploymentRejected(
            name, f"constructor takes {len(expected)} argument(s), got {len(args)}"
        )


class Deployer:
    """Interface of a deployment target."""

    def deploy(self, linked: LinkedArtifact, constructor_args: Sequence[Any] = ()) -> DeploymentReceipt:
        """
        Create a new contract instance.

        Args:
            linked: Deployment-ready artifact
            constructor_args: Ordered constructor arguments

        Returns:
            DeploymentReceipt of the new instance

        Raises:
            DeploymentRejected: refused before submission
            DeploymentFailed: submitted but creation failed
            DeploymentTimeout: no receipt within the configured time
        """
        raise NotImplementedError


class Web3Deployer(Deployer):
    """Deploys through a web3.py connection with a local signing key."""

    def __init__(self, w3: Web3, private_key: str, chain_id: int,
                 gas_limit: Optional[int] = None, receipt_timeout: float = 120.0,
                 poll_latency: float = 0.5):
        self.w3 = w3
        self.private_key = private_key
        self.chain_id = chain_id
        self.gas_limit = gas_limit
        self.receipt_timeout = receipt_timeout
        self.poll_latency = poll_latency
        self.account = w3.eth.account.from_key(private_key)
        self._nonce: Optional[int] = None

    @classmethod
    def from_config(cls, config) -> "Web3Deployer":
        """Connect to ``config.rpc_url`` the way the oracle updaters do."""
        if not config.private_key:
            raise DeploymentError("PRIVATE_KEY not found in environment")

        w3 = Web3(Web3.HTTPProvider(config.rpc_url))
        w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        if not w3.is_connected():
            raise DeploymentError(f"Could not connect to RPC URL: {config.rpc_url}")
        logger.info(f"Connected to blockchain at {config.rpc_url}")

        deployer = cls(
            w3,
            config.private_key,
            config.chain_id,
            gas_limit=config.gas_limit,
            receipt_timeout=config.receipt_timeout,
            poll_latency=config.poll_latency,
        )
        logger.info(f"Using deployer account: {deployer.account.address}")
        return deployer

    @property
    def address(self) -> str:
        return self.account.address

    def _next_nonce(self) -> int:
        if self._nonce is None:
            self._nonce = self.w3.eth.get_transaction_count(self.account.address, 'pending')
        return self._nonce

    def _build_transaction(self, linked: LinkedArtifact, args: Sequence[Any]) -> dict:
        contract = self.w3.eth.contract(abi=list(linked.artifact.abi), bytecode=linked.bytecode)
        tx_params = {
            'from': self.account.address,
            'nonce': self._next_nonce(),
            'gasPrice': self.w3.eth.gas_price,
            'chainId': self.chain_id,
        }
        if self.gas_limit:
            tx_params['gas'] = self.gas_limit
        # Without 'gas', build_transaction estimates it; a reverting constructor fails here
        return contract.constructor(*args).build_transaction(tx_params)

    def deploy(self, linked: LinkedArtifact, constructor_args: Sequence[Any] = ()) -> DeploymentReceipt:
        name = linked.name
        check_constructor_args(linked, constructor_args)

        try:
            tx = self._build_transaction(linked, constructor_args)
            signed_tx = self.w3.eth.account.sign_transaction(tx, self.private_key)
        except ContractLogicError as e:
            raise DeploymentRejected(name, f"constructor reverted during gas estimation: {e}")
        except (requests.exceptions.RequestException, OSError) as e:
            raise DeploymentRejected(name, f"node unreachable while preparing transaction: {e}")
        except (Web3Exception, ValueError, TypeError) as e:
            raise DeploymentRejected(name, str(e))

        try:
            tx_hash = self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        except (requests.exceptions.RequestException, OSError) as e:
            raise DeploymentRejected(name, f"node unreachable, transaction not sent: {e}")
        except (Web3Exception, ValueError) as e:
            # The node refused the transaction, e.g. nonce too low or insufficient funds
            raise DeploymentRejected(name, f"transaction not accepted: {e}")

        self._nonce = tx['nonce'] + 1
        tx_hex = Web3.to_hex(tx_hash)
        logger.info(f"Deployment of {name} sent: {tx_hex}")

        # From here on the transaction may be on chain; errors carry its hash
        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout, poll_latency=self.poll_latency
            )
        except (TimeExhausted, requests.exceptions.Timeout):
            raise DeploymentTimeout(name, self.receipt_timeout, tx_hex)
        except (requests.exceptions.RequestException, OSError, Web3Exception) as e:
            raise DeploymentFailed(name, f"lost connection while waiting for receipt: {e}", tx_hex)

        if receipt['status'] != 1:
            raise DeploymentFailed(name, "transaction reverted", tx_hex)
        address = receipt.get('contractAddress')
        if not address:
            raise DeploymentFailed(name, "receipt has no contract address", tx_hex)

        logger.info(f"{name} deployed at {address} in block {receipt['blockNumber']}")
        return DeploymentReceipt(address=Web3.to_checksum_address(address), transaction_hash=tx_hex)


class DryRunDeployer(Deployer):
    """Offline deployer handing out deterministic addresses.

    Addresses are derived from the sender and a running nonce, so the same
    plan always produces the same table. Nothing is sent anywhere.
    """

    def __init__(self, sender: str = "0x" + "00" * 19 + "a0", start_nonce: int = 0):
        self.sender = sender
        self.nonce = start_nonce
        self.deployments: List[Tuple[str, str, Tuple[Any, ...]]] = []

    def deploy(self, linked: LinkedArtifact, constructor_args: Sequence[Any] = ()) -> DeploymentReceipt:
        check_constructor_args(linked, constructor_args)

        digest = Web3.keccak(text=f"{self.sender.lower()}:{self.nonce}")
        address = Web3.to_checksum_address(Web3.to_hex(digest[-20:]))
        tx_hash = Web3.to_hex(Web3.keccak(text=f"{linked.name}:{self.nonce}:{linked.bytecode}"))
        self.nonce += 1
        self.deployments.append((linked.name, linked.bytecode, tuple(constructor_args)))

        logger.info(f"[dry-run] {linked.name} would be deployed at {address}")
        return DeploymentReceipt(address=address, transaction_hash=tx_hash)
