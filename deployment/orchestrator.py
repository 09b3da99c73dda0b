"""
Deployment orchestrator: deploy a registry in dependency order.

A run goes INIT -> RUNNING -> COMPLETED, or ends in FAILED. Structural
problems (unknown dependency, cycle) fail the run before anything is sent.
A deployment failure stops the run where it is; the address table keeps
everything deployed so far so that a later run seeded with it can carry on
from the failed artifact. If the ``on_deployed`` hook cannot persist a
record, the run fails at the "record" step with the record still in the
in-memory table.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .address_table import AddressTable, DeploymentRecord
from .artifacts import AddressRef, ArtifactRegistry
from .deployer import Deployer
from .errors import (
    AddressTableError,
    CyclicDependency,
    DeploymentError,
    MissingAddress,
    OrchestrationFailed,
    UnresolvedDependency,
)
from .graph import DependencyGraph, build
from .linker import LinkedArtifact, link

logger = logging.getLogger(__name__)


class RunState(Enum):
    INIT = "init"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class DeploymentRun:
    """Outcome of Orchestrator.run()"""
    state: RunState
    address_table: AddressTable
    order: Tuple[str, ...] = ()
    deployed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed_artifact: Optional[str] = None
    failed_step: Optional[str] = None
    error: Optional[DeploymentError] = None

    @property
    def succeeded(self) -> bool:
        return self.state is RunState.COMPLETED

    @property
    def addresses(self) -> Dict[str, str]:
        return self.address_table.addresses()

    def raise_for_state(self) -> None:
        """Raise OrchestrationFailed if the run failed, like requests' raise_for_status."""
        if self.state is RunState.FAILED and self.error is not None:
            raise OrchestrationFailed(self.failed_step or "unknown", self.error, self.failed_artifact) from self.error


class Orchestrator:
    """Drives graph building, linking and deployment for one run.

    Args:
        registry: Artifacts to deploy
        deployer: Deployment target
        constructor_args: Per-artifact ordered constructor arguments; an
            AddressRef is replaced by the referenced artifact's address
        address_table: Table to fill; a table from an earlier run makes
            its artifacts count as deployed (they are skipped, not redeployed)
        on_deployed: Called with each new DeploymentRecord as it is written
    """

    def __init__(self, registry: ArtifactRegistry, deployer: Deployer,
                 constructor_args: Optional[Mapping[str, Sequence[Any]]] = None,
                 address_table: Optional[AddressTable] = None,
                 on_deployed: Optional[Callable[[DeploymentRecord], None]] = None):
        self.registry = registry
        self.deployer = deployer
        self.constructor_args = dict(constructor_args or {})
        self.address_table = address_table if address_table is not None else AddressTable()
        self.on_deployed = on_deployed
        self.state = RunState.INIT

    def plan(self) -> DependencyGraph:
        """Build the dependency graph without deploying anything."""
        return build(
            self.registry,
            external=self.address_table.names(),
            constructor_args=self.constructor_args,
        )

    def run(self) -> DeploymentRun:
        if self.state is not RunState.INIT:
            raise RuntimeError(f"Orchestrator already used (state: {self.state.value})")

        result = DeploymentRun(state=self.state, address_table=self.address_table)

        try:
            graph = self.plan()
        except (UnresolvedDependency, CyclicDependency) as e:
            logger.error(f"Deployment aborted before any transaction: {e}")
            result.failed_artifact = getattr(e, 'artifact', None)
            return self._fail(result, "build", e)

        result.order = graph.order
        self._transition(result, RunState.RUNNING)
        logger.info(f"Deployment order: {' -> '.join(graph.order) or '(empty)'}")

        for name in graph.order:
            if name in self.address_table:
                logger.info(f"Skipping {name}: already deployed at {self.address_table.address_of(name)}")
                result.skipped.append(name)
                continue

            step = "link"
            try:
                linked = self._link(name)
                step = "deploy"
                args = self._resolve_args(name)
                receipt = self.deployer.deploy(linked, args)
            except MissingAddress:
                # Topological order guarantees addresses; reaching this is a bug
                self._transition(result, RunState.FAILED)
                raise
            except DeploymentError as e:
                logger.error(f"{step.capitalize()} of {name} failed: {e}")
                result.failed_artifact = name
                return self._fail(result, step, e)

            record = self.address_table.insert(name, receipt.address, receipt.transaction_hash)
            result.deployed.append(name)
            logger.info(f"Recorded {name} at {record.address} (#{record.sequence})")
            if self.on_deployed is not None:
                try:
                    self.on_deployed(record)
                except OSError as e:
                    error = AddressTableError(
                        f"Could not persist record for {name}: {e}",
                        {"artifact": name, "address": record.address},
                    )
                    logger.error(f"Record of {name} failed: {error}")
                    result.failed_artifact = name
                    return self._fail(result, "record", error)
                except DeploymentError as e:
                    logger.error(f"Record of {name} failed: {e}")
                    result.failed_artifact = name
                    return self._fail(result, "record", e)

        self._transition(result, RunState.COMPLETED)
        logger.info(f"Deployment completed: {len(result.deployed)} deployed, {len(result.skipped)} skipped")
        return result

    def _link(self, name: str) -> LinkedArtifact:
        artifact = self.registry.get(name)
        linked = link(artifact, self.address_table)
        if artifact.has_slots:
            logger.info(f"Linked {name} with {linked.links}")
        return linked

    def _resolve_args(self, name: str) -> List[Any]:
        args = []
        for arg in self.constructor_args.get(name, ()):
            if isinstance(arg, AddressRef):
                address = self.address_table.address_of(arg.name)
                if address is None:
                    raise MissingAddress(name, arg.name)
                args.append(address)
            else:
                args.append(arg)
        return args

    def _transition(self, result: DeploymentRun, state: RunState) -> None:
        logger.debug(f"Run state: {self.state.value} -> {state.value}")
        self.state = state
        result.state = state

    def _fail(self, result: DeploymentRun, step: str, error: DeploymentError) -> DeploymentRun:
        result.failed_step = step
        result.error = error
        self._transition(result, RunState.FAILED)
        return result
