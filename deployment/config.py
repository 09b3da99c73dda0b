"""
Environment configuration and migration manifests.

Settings come from the environment (and a ``.env`` file) like the rest of
the Halom tooling; what to deploy comes from a JSON manifest:

    {
        "artifacts": ["Arithmetic", "Exchange"],
        "constructorArgs": {"Exchange": ["@Arithmetic", 1000]}
    }

A string argument starting with ``@`` refers to the deployed address of the
named artifact.
"""

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from .artifacts import AddressRef
from .errors import ConfigError

REF_PREFIX = "@"


def _int_env(name: str, default: Optional[str]) -> Optional[int]:
    value = os.getenv(name, default)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {value!r}")


def _float_env(name: str, default: str) -> float:
    value = os.getenv(name, default)
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {value!r}")


@dataclass
class DeploymentConfig:
    rpc_url: str = "http://localhost:8545"
    private_key: Optional[str] = None
    chain_id: int = 31337
    network: str = "development"
    artifacts_dir: str = "build/contracts"
    deployment_file: str = "deployment.json"
    gas_limit: Optional[int] = None
    receipt_timeout: float = 120.0
    poll_latency: float = 0.5
    log_file: str = "deployment.log"

    # Notifications
    slack_webhook: Optional[str] = None
    smtp_server: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    notification_email: Optional[str] = None

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "DeploymentConfig":
        """Load settings from the environment after reading ``.env``."""
        load_dotenv(dotenv_path)

        chain_id = _int_env("CHAIN_ID", "31337")
        smtp_port = _int_env("SMTP_PORT", "587")
        return cls(
            rpc_url=os.getenv("RPC_URL", "http://localhost:8545"),
            private_key=os.getenv("PRIVATE_KEY"),
            chain_id=chain_id if chain_id is not None else 31337,
            network=os.getenv("NETWORK", "development"),
            artifacts_dir=os.getenv("ARTIFACTS_DIR", "build/contracts"),
            deployment_file=os.getenv("DEPLOYMENT_FILE", "deployment.json"),
            gas_limit=_int_env("GAS_LIMIT", None),
            receipt_timeout=_float_env("RECEIPT_TIMEOUT", "120"),
            poll_latency=_float_env("POLL_LATENCY", "0.5"),
            log_file=os.getenv("DEPLOYMENT_LOG", "deployment.log"),
            slack_webhook=os.getenv("SLACK_WEBHOOK"),
            smtp_server=os.getenv("SMTP_SERVER", "smtp.gmail.com"),
            smtp_port=smtp_port if smtp_port is not None else 587,
            smtp_username=os.getenv("SMTP_USERNAME"),
            smtp_password=os.getenv("SMTP_PASSWORD"),
            notification_email=os.getenv("NOTIFICATION_EMAIL"),
        )


@dataclass
class Manifest:
    """Which artifacts to deploy, in registration order, and their arguments"""
    artifacts: List[str]
    constructor_args: Dict[str, List[Any]] = field(default_factory=dict)


def parse_argument(value: Any) -> Any:
    if isinstance(value, str) and value.startswith(REF_PREFIX) and len(value) > 1:
        return AddressRef(value[len(REF_PREFIX):])
    return value


def parse_manifest(data: Any) -> Manifest:
    if not isinstance(data, dict):
        raise ConfigError("Manifest must be a JSON object")

    names = data.get("artifacts")
    if not isinstance(names, list) or not names:
        raise ConfigError("Manifest needs a non-empty 'artifacts' list")

    artifacts: List[str] = []
    constructor_args: Dict[str, List[Any]] = {}
    for entry in names:
        # Either "Name" or {"name": "Name", "args": [...]}
        if isinstance(entry, str):
            artifacts.append(entry)
        elif isinstance(entry, dict) and isinstance(entry.get("name"), str):
            artifacts.append(entry["name"])
            if "args" in entry:
                constructor_args[entry["name"]] = entry["args"]
        else:
            raise ConfigError(f"Invalid manifest entry: {entry!r}")

    for name, args in (data.get("constructorArgs") or {}).items():
        constructor_args[name] = args

    for name, args in constructor_args.items():
        if name not in artifacts:
            raise ConfigError(f"Constructor arguments given for unlisted artifact {name}")
        if not isinstance(args, list):
            raise ConfigError(f"Constructor arguments of {name} must be a list")
        constructor_args[name] = [parse_argument(arg) for arg in args]

    return Manifest(artifacts=artifacts, constructor_args=constructor_args)


def load_manifest(path: str) -> Manifest:
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Could not read manifest {path}: {e}")
    return parse_manifest(data)
