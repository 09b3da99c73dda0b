"""
Insert-only table of deployed addresses for a run.

The table is what the rest of the world consumes after a deployment: tests,
client configuration and later runs all read the ``deployment.json`` file
written from it.
"""

import json
import logging
import os
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from web3 import Web3

from .errors import AddressTableError, DuplicateDeployment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeploymentRecord:
    """Result of deploying one artifact"""
    name: str
    address: str
    transaction_hash: Optional[str]
    sequence: int
    timestamp: datetime
    seeded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'address': self.address,
            'transactionHash': self.transaction_hash,
            'sequence': self.sequence,
            'timestamp': self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, name: str, data: Mapping[str, Any]) -> "DeploymentRecord":
        try:
            address = data['address']
            timestamp = datetime.fromisoformat(data['timestamp']) if data.get('timestamp') else _now()
            sequence = int(data.get('sequence', 0))
        except (KeyError, TypeError, ValueError) as e:
            raise AddressTableError(f"Malformed deployment record for {name}: {e}")
        return cls(
            name=name,
            address=_checksum(name, address),
            transaction_hash=data.get('transactionHash'),
            sequence=sequence,
            timestamp=timestamp,
        )


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _checksum(name: str, address: Any) -> str:
    if not isinstance(address, str) or not Web3.is_address(address):
        raise AddressTableError(f"Invalid address for {name}: {address!r}")
    return Web3.to_checksum_address(address)


class AddressTable:
    """Mapping of artifact name to DeploymentRecord.

    Entries are only ever added. Writing a name twice raises
    DuplicateDeployment, so a record seen by a reader never changes.
    """

    def __init__(self, network: Optional[str] = None, chain_id: Optional[int] = None):
        self.network = network
        self.chain_id = chain_id
        self._records: Dict[str, DeploymentRecord] = {}
        self._next_sequence = 0

    def insert(self, name: str, address: str, transaction_hash: Optional[str] = None) -> DeploymentRecord:
        """Record a deployment made in this run."""
        if name in self._records:
            raise DuplicateDeployment(name)
        record = DeploymentRecord(
            name=name,
            address=_checksum(name, address),
            transaction_hash=transaction_hash,
            sequence=self._next_sequence,
            timestamp=_now(),
        )
        self._add(record)
        return record

    def seed(self, records: Iterable[DeploymentRecord]) -> None:
        """Start from records of an earlier run; they are flagged as seeded."""
        for record in records:
            if record.name in self._records:
                raise DuplicateDeployment(record.name)
            self._add(replace(record, seeded=True))

    def _add(self, record: DeploymentRecord) -> None:
        self._records[record.name] = record
        self._next_sequence = max(self._next_sequence, record.sequence + 1)

    def get(self, name: str) -> Optional[DeploymentRecord]:
        return self._records.get(name)

    def address_of(self, name: str) -> Optional[str]:
        record = self._records.get(name)
        return record.address if record else None

    def names(self) -> List[str]:
        return list(self._records)

    def records(self) -> List[DeploymentRecord]:
        return list(self._records.values())

    def addresses(self) -> Dict[str, str]:
        return {name: record.address for name, record in self._records.items()}

    def read_only(self) -> Mapping[str, DeploymentRecord]:
        return MappingProxyType(self._records)

    def __contains__(self, name: object) -> bool:
        return name in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def __repr__(self) -> str:
        return f"AddressTable({self.addresses()!r})"

    @classmethod
    def from_records(cls, records: Iterable[DeploymentRecord], network: Optional[str] = None,
                     chain_id: Optional[int] = None) -> "AddressTable":
        table = cls(network=network, chain_id=chain_id)
        table.seed(records)
        return table

    def to_dict(self) -> Dict[str, Any]:
        return {
            'network': self.network,
            'chainId': self.chain_id,
            'contracts': {name: record.to_dict() for name, record in self._records.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], chain_id: Optional[int] = None) -> "AddressTable":
        """Rebuild a table written by to_dict(); all records come back seeded.

        Args:
            data: Parsed deployment.json content
            chain_id: Expected chain; a different stored chain id is an error
        """
        if not isinstance(data, Mapping) or not isinstance(data.get('contracts', {}), Mapping):
            raise AddressTableError("Deployment data must contain a 'contracts' object")

        stored_chain = data.get('chainId')
        if stored_chain is not None:
            try:
                stored_chain = int(stored_chain)
            except (TypeError, ValueError):
                raise AddressTableError(
                    f"Deployment data has an invalid chainId: {stored_chain!r}",
                    {"found": stored_chain},
                ) from None
        if chain_id is not None and stored_chain is not None and stored_chain != int(chain_id):
            raise AddressTableError(
                f"Deployment data is for chain {stored_chain}, not {chain_id}",
                {"expected": chain_id, "found": stored_chain},
            )

        records = [DeploymentRecord.from_dict(name, entry) for name, entry in data.get('contracts', {}).items()]
        records.sort(key=lambda record: record.sequence)
        return cls.from_records(
            records,
            network=data.get('network'),
            chain_id=stored_chain if stored_chain is not None else chain_id,
        )

    def save(self, path: str) -> None:
        """Write the table as JSON, replacing the file atomically."""
        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)
        tmp_path = f"{path}.tmp"
        with open(tmp_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)
        os.replace(tmp_path, path)
        logger.debug(f"Saved {len(self)} deployment record(s) to {path}")

    @classmethod
    def load(cls, path: str, chain_id: Optional[int] = None) -> "AddressTable":
        try:
            with open(path, 'r') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise AddressTableError(f"Could not read deployment data from {path}: {e}")
        table = cls.from_dict(data, chain_id=chain_id)
        logger.info(f"Loaded {len(table)} deployment record(s) from {path}")
        return table
