"""
Compiled artifacts and the registry that owns them for a deployment run.

An artifact is what the compiler hands us: a name, an ABI and creation
bytecode in which every library reference is still a 40 character
placeholder. Each placeholder is a DependencySlot that the linker fills in
with the deployed library address.
"""

import glob
import json
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from web3 import Web3

from .errors import ArtifactFormatError, DuplicateArtifact, UnknownArtifact

logger = logging.getLogger(__name__)

# Hex width of a 20 byte address, and therefore of every placeholder
MARKER_LENGTH = 40

PLACEHOLDER_PATTERN = re.compile(r"__[A-Za-z0-9$_]{38}")


def strip_hex_prefix(bytecode: str) -> str:
    return bytecode[2:] if bytecode.startswith(("0x", "0X")) else bytecode


def legacy_marker(name: str) -> str:
    """Truffle style placeholder: ``__Name`` padded with underscores."""
    return ("__" + name[:MARKER_LENGTH - 4] + "_" * MARKER_LENGTH)[:MARKER_LENGTH]


def hashed_marker(fully_qualified_name: str) -> str:
    """solc >= 0.5 placeholder: ``__$`` + 34 hex chars of keccak256(fqn) + ``$__``."""
    digest = Web3.to_hex(Web3.keccak(text=fully_qualified_name))[2:]
    return "__$" + digest[:34] + "$__"


@dataclass(frozen=True)
class DependencySlot:
    """A placeholder inside an artifact's bytecode.

    Args:
        name: Name of the artifact whose address fills the slot
        marker: Exact placeholder text, 40 characters long
        offsets: Hex character offsets of the marker in the bytecode, when
            the compiler reported them; empty means "search for the marker"
    """
    name: str
    marker: str
    offsets: Tuple[int, ...] = ()

    def __post_init__(self):
        if len(self.marker) != MARKER_LENGTH:
            raise ArtifactFormatError(
                f"Placeholder for {self.name} must be {MARKER_LENGTH} characters, got {len(self.marker)}"
            )

    @classmethod
    def for_library(cls, name: str, fully_qualified_name: Optional[str] = None,
                    offsets: Iterable[int] = ()) -> "DependencySlot":
        """Build a slot using the legacy marker, or the hashed one when a
        fully qualified name (``contracts/Arithmetic.sol:Arithmetic``) is given."""
        marker = hashed_marker(fully_qualified_name) if fully_qualified_name else legacy_marker(name)
        return cls(name=name, marker=marker, offsets=tuple(offsets))


@dataclass(frozen=True)
class AddressRef:
    """Constructor argument standing for the deployed address of another artifact."""
    name: str


@dataclass(frozen=True)
class Artifact:
    """A compiled deployable unit (library or contract)."""
    name: str
    bytecode: str
    abi: Tuple[Dict[str, Any], ...] = ()
    slots: Tuple[DependencySlot, ...] = ()

    def __post_init__(self):
        if not self.name:
            raise ArtifactFormatError("Artifact name must not be empty")
        # Lists from JSON become tuples
        object.__setattr__(self, "abi", tuple(self.abi))
        object.__setattr__(self, "slots", tuple(self.slots))

        seen = set()
        for slot in self.slots:
            if slot.marker in seen:
                raise ArtifactFormatError(
                    f"Duplicate placeholder {slot.marker} in artifact {self.name}"
                )
            seen.add(slot.marker)

    @classmethod
    def from_dependencies(cls, name: str, bytecode: str, dependencies: Iterable[str] = (),
                          abi: Iterable[Dict[str, Any]] = ()) -> "Artifact":
        """Create an artifact whose slots use legacy markers for each dependency."""
        slots = tuple(DependencySlot.for_library(dep) for dep in dependencies)
        return cls(name=name, bytecode=bytecode, abi=tuple(abi), slots=slots)

    @property
    def has_slots(self) -> bool:
        return bool(self.slots)

    @property
    def dependencies(self) -> List[str]:
        """Names filling this artifact's slots, in slot order, without repeats."""
        names: List[str] = []
        for slot in self.slots:
            if slot.name not in names:
                names.append(slot.name)
        return names

    @property
    def constructor_inputs(self) -> List[Dict[str, Any]]:
        """Constructor argument schema from the ABI (empty if no constructor)."""
        for entry in self.abi:
            if entry.get("type") == "constructor":
                return list(entry.get("inputs", []))
        return []


def _slots_from_link_references(bytecode: str, link_references: Dict[str, Any],
                                path: Optional[str]) -> Tuple[DependencySlot, ...]:
    """Hardhat/solc ``linkReferences``: {source: {Lib: [{start, length}]}}, byte offsets."""
    by_name: Dict[str, Dict[str, Any]] = {}
    for source, libraries in sorted(link_references.items()):
        for library, positions in sorted(libraries.items()):
            for position in positions:
                try:
                    start = int(position["start"]) * 2
                except (KeyError, TypeError, ValueError):
                    raise ArtifactFormatError(f"Bad link reference for {library}", path)
                marker = bytecode[start:start + MARKER_LENGTH]
                entry = by_name.setdefault(library, {"marker": marker, "offsets": []})
                if marker != entry["marker"]:
                    raise ArtifactFormatError(
                        f"Inconsistent placeholders for {library} at offset {start}", path
                    )
                entry["offsets"].append(start)

    return tuple(
        DependencySlot(name=library, marker=entry["marker"], offsets=tuple(sorted(entry["offsets"])))
        for library, entry in by_name.items()
    )


def _slots_from_placeholders(bytecode: str, path: Optional[str]) -> Tuple[DependencySlot, ...]:
    """Scan for legacy ``__Name____`` placeholders, in order of first occurrence."""
    slots: List[DependencySlot] = []
    markers = set()
    for match in PLACEHOLDER_PATTERN.finditer(bytecode):
        marker = match.group(0)
        if marker in markers:
            continue
        if marker.startswith("__$"):
            raise ArtifactFormatError(
                "Hashed library placeholder found but the artifact has no linkReferences", path
            )
        markers.add(marker)
        slots.append(DependencySlot(name=marker[2:].rstrip("_"), marker=marker))
    return tuple(slots)


def load_artifact(path: str) -> Artifact:
    """Load a Truffle or Hardhat JSON artifact from disk."""
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ArtifactFormatError(f"Could not read artifact: {e}", path)

    if not isinstance(data, dict):
        raise ArtifactFormatError("Artifact must be a JSON object", path)

    abi = data.get("abi")
    bytecode = data.get("bytecode")
    if not isinstance(abi, list):
        raise ArtifactFormatError("Artifact has no 'abi' list", path)
    if isinstance(bytecode, dict):
        # Raw solc output nests the hex under "object"
        link_references = bytecode.get("linkReferences")
        bytecode = bytecode.get("object")
    else:
        link_references = data.get("linkReferences")
    if not isinstance(bytecode, str):
        raise ArtifactFormatError("Artifact has no 'bytecode' string", path)

    name = data.get("contractName") or os.path.splitext(os.path.basename(path))[0]
    body = strip_hex_prefix(bytecode)

    if link_references:
        slots = _slots_from_link_references(body, link_references, path)
    else:
        slots = _slots_from_placeholders(body, path)

    logger.debug(f"Loaded artifact {name} from {path} with {len(slots)} slot(s)")
    return Artifact(name=name, bytecode=body, abi=tuple(abi), slots=slots)


class ArtifactRegistry:
    """Named artifacts for one deployment run.

    Registration order is kept; the graph builder uses it to break ties so
    that two runs over the same registry deploy in the same order.
    """

    def __init__(self, artifacts: Iterable[Artifact] = ()):
        self._artifacts: Dict[str, Artifact] = {}
        for artifact in artifacts:
            self.register(artifact)

    def register(self, artifact: Artifact) -> None:
        if artifact.name in self._artifacts:
            raise DuplicateArtifact(artifact.name)
        self._artifacts[artifact.name] = artifact

    def get(self, name: str) -> Artifact:
        try:
            return self._artifacts[name]
        except KeyError:
            raise UnknownArtifact(name) from None

    def names(self) -> List[str]:
        return list(self._artifacts)

    def index_of(self, name: str) -> int:
        """Registration position of an artifact."""
        try:
            return list(self._artifacts).index(name)
        except ValueError:
            raise UnknownArtifact(name) from None

    def __contains__(self, name: object) -> bool:
        return name in self._artifacts

    def __len__(self) -> int:
        return len(self._artifacts)

    def __iter__(self) -> Iterator[Artifact]:
        return iter(self._artifacts.values())

    @classmethod
    def from_directory(cls, directory: str, names: Optional[Iterable[str]] = None) -> "ArtifactRegistry":
        """Load artifacts from a build directory.

        Works with Truffle's flat ``build/contracts/<Name>.json`` and with
        Hardhat's nested ``artifacts/contracts/<File>.sol/<Name>.json``.

        Args:
            directory: Root of the compiler output
            names: Artifacts to load, in registration order; all when omitted
        """
        paths: Dict[str, str] = {}
        for path in sorted(glob.glob(os.path.join(directory, "**", "*.json"), recursive=True)):
            if path.endswith(".dbg.json"):
                continue
            stem = os.path.splitext(os.path.basename(path))[0]
            paths.setdefault(stem, path)

        registry = cls()
        wanted = list(names) if names is not None else sorted(paths)
        for name in wanted:
            if name not in paths:
                raise UnknownArtifact(name)
            registry.register(load_artifact(paths[name]))

        logger.info(f"Loaded {len(registry)} artifact(s) from {directory}")
        return registry
