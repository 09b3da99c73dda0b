"""
Deployment Sequencer
====================

Dependency-ordered contract deployment with library linking:

- artifacts: compiled artifacts and the registry
- graph: dependency graph and deployment order
- linker: placeholder substitution
- deployer: web3 and dry-run deployment targets
- orchestrator: the run state machine
- address_table: deployed addresses (deployment.json)
"""

from .address_table import AddressTable, DeploymentRecord
from .artifacts import AddressRef, Artifact, ArtifactRegistry, DependencySlot, load_artifact
from .deployer import Deployer, DeploymentReceipt, DryRunDeployer, Web3Deployer
from .errors import (
    AddressTableError,
    ArtifactFormatError,
    ConfigError,
    CyclicDependency,
    DeploymentError,
    DeploymentFailed,
    DeploymentRejected,
    DeploymentTimeout,
    DuplicateArtifact,
    DuplicateDeployment,
    LinkError,
    MissingAddress,
    OrchestrationFailed,
    UnknownArtifact,
    UnresolvedDependency,
)
from .graph import DependencyGraph, build
from .linker import LinkedArtifact, link
from .orchestrator import DeploymentRun, Orchestrator, RunState

__version__ = "1.0.0"

__all__ = [
    "AddressRef",
    "AddressTable",
    "AddressTableError",
    "Artifact",
    "ArtifactFormatError",
    "ArtifactRegistry",
    "ConfigError",
    "CyclicDependency",
    "DependencyGraph",
    "DependencySlot",
    "Deployer",
    "DeploymentError",
    "DeploymentFailed",
    "DeploymentReceipt",
    "DeploymentRecord",
    "DeploymentRejected",
    "DeploymentRun",
    "DeploymentTimeout",
    "DryRunDeployer",
    "DuplicateArtifact",
    "DuplicateDeployment",
    "LinkError",
    "LinkedArtifact",
    "MissingAddress",
    "OrchestrationFailed",
    "Orchestrator",
    "RunState",
    "UnknownArtifact",
    "UnresolvedDependency",
    "Web3Deployer",
    "build",
    "link",
    "load_artifact",
]
