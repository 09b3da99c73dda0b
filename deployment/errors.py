"""
Deployment Errors
=================

Exception hierarchy for the deployment sequencer:

- DeploymentError (base)
  - ConfigError
  - ArtifactFormatError
  - DuplicateArtifact / UnknownArtifact
  - UnresolvedDependency / CyclicDependency
  - MissingAddress / LinkError
  - DeploymentRejected / DeploymentFailed / DeploymentTimeout
  - DuplicateDeployment / AddressTableError
  - OrchestrationFailed
"""

from typing import Any, Dict, List, Optional


class DeploymentError(Exception):
    """Base exception for everything raised by the deployment package.

    Attributes:
        message: Human-readable error description.
        details: Extra context (artifact name, dependency, step...).
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


class ConfigError(DeploymentError):
    """Invalid environment or manifest configuration."""


class ArtifactFormatError(DeploymentError):
    """A compiled artifact file could not be parsed."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message, {"path": path} if path else None)
        self.path = path


class DuplicateArtifact(DeploymentError):
    """An artifact with the same name is already registered."""

    def __init__(self, name: str):
        super().__init__(f"Artifact already registered: {name}", {"artifact": name})
        self.name = name


class UnknownArtifact(DeploymentError):
    """Lookup of an artifact name that was never registered."""

    def __init__(self, name: str):
        super().__init__(f"Unknown artifact: {name}", {"artifact": name})
        self.name = name


class UnresolvedDependency(DeploymentError):
    """A dependency slot names an artifact that is not in the registry."""

    def __init__(self, artifact: str, dependency: str):
        super().__init__(
            f"{artifact} depends on {dependency}, which is not registered",
            {"artifact": artifact, "dependency": dependency},
        )
        self.artifact = artifact
        self.dependency = dependency


class CyclicDependency(DeploymentError):
    """The dependency graph contains a cycle.

    ``cycle`` is the path with its first node repeated at the end,
    e.g. ``["A", "B", "A"]``.
    """

    def __init__(self, cycle: List[str]):
        super().__init__(
            f"Circular dependency detected: {' -> '.join(cycle)}",
            {"cycle": " -> ".join(cycle)},
        )
        self.cycle = list(cycle)


class MissingAddress(DeploymentError):
    """Linking was attempted before a dependency had an address.

    The orchestrator deploys in topological order, so seeing this means a
    bug in the caller rather than a configuration problem.
    """

    def __init__(self, artifact: str, dependency: str):
        super().__init__(
            f"No deployed address for {dependency} while linking {artifact}",
            {"artifact": artifact, "dependency": dependency},
        )
        self.artifact = artifact
        self.dependency = dependency


class LinkError(DeploymentError):
    """Bytecode could not be linked (marker absent or left unresolved)."""

    def __init__(self, message: str, artifact: str, dependency: Optional[str] = None):
        details = {"artifact": artifact}
        if dependency is not None:
            details["dependency"] = dependency
        super().__init__(message, details)
        self.artifact = artifact
        self.dependency = dependency


class DeploymentRejected(DeploymentError):
    """The deployment was refused before submission."""

    def __init__(self, artifact: str, reason: str):
        super().__init__(f"Deployment of {artifact} rejected: {reason}", {"artifact": artifact})
        self.artifact = artifact
        self.reason = reason


class DeploymentFailed(DeploymentError):
    """The transaction was submitted but contract creation failed."""

    def __init__(self, artifact: str, reason: str, transaction_hash: Optional[str] = None):
        details = {"artifact": artifact}
        if transaction_hash:
            details["transaction"] = transaction_hash
        super().__init__(f"Deployment of {artifact} failed: {reason}", details)
        self.artifact = artifact
        self.reason = reason
        self.transaction_hash = transaction_hash


class DeploymentTimeout(DeploymentError):
    """No receipt arrived for a submitted deployment within the timeout.

    The transaction may still be mined later; the address is unknown.
    """

    def __init__(self, artifact: str, timeout: float, transaction_hash: Optional[str] = None):
        details: Dict[str, Any] = {"artifact": artifact, "timeout": timeout}
        if transaction_hash:
            details["transaction"] = transaction_hash
        super().__init__(f"Timed out waiting for deployment of {artifact}", details)
        self.artifact = artifact
        self.timeout = timeout
        self.transaction_hash = transaction_hash


class DuplicateDeployment(DeploymentError):
    """An address table entry was written twice in one run."""

    def __init__(self, name: str):
        super().__init__(f"{name} already has a deployment record", {"artifact": name})
        self.name = name


class AddressTableError(DeploymentError):
    """A persisted address table is unreadable, unwritable or belongs to another chain."""


class OrchestrationFailed(DeploymentError):
    """Raised by DeploymentRun.raise_for_state() for a failed run."""

    def __init__(self, step: str, cause: BaseException, artifact: Optional[str] = None):
        details = {"step": step}
        if artifact is not None:
            details["artifact"] = artifact
        super().__init__(f"Deployment run failed during {step}: {cause}", details)
        self.step = step
        self.artifact = artifact
        self.cause = cause
