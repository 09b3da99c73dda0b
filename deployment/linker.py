"""
Library linking: substitute deployed addresses for bytecode placeholders.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Mapping

from .address_table import AddressTable
from .artifacts import MARKER_LENGTH, PLACEHOLDER_PATTERN, Artifact, DependencySlot, strip_hex_prefix
from .errors import LinkError, MissingAddress

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LinkedArtifact:
    """Deployment-ready bytecode for an artifact.

    Attributes:
        artifact: The artifact the bytecode came from
        bytecode: Fully resolved creation code, ``0x`` prefixed
        links: Dependency name -> address substituted into the bytecode
    """
    artifact: Artifact
    bytecode: str
    links: Mapping[str, str] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.artifact.name


def _address_hex(address: str) -> str:
    return strip_hex_prefix(address).lower()


def _patch_offsets(code: str, slot: DependencySlot, replacement: str, artifact: str) -> str:
    for offset in slot.offsets:
        found = code[offset:offset + MARKER_LENGTH]
        if found != slot.marker:
            raise LinkError(
                f"Expected placeholder for {slot.name} at offset {offset}, found {found!r}",
                artifact, slot.name,
            )
        code = code[:offset] + replacement + code[offset + MARKER_LENGTH:]
    return code


def _replace_marker(code: str, slot: DependencySlot, replacement: str, artifact: str) -> str:
    if slot.marker not in code:
        raise LinkError(f"Placeholder for {slot.name} not found in bytecode", artifact, slot.name)
    return code.replace(slot.marker, replacement)


def link(artifact: Artifact, address_table: AddressTable) -> LinkedArtifact:
    """Resolve every dependency slot of an artifact.

    An artifact without slots is passed through untouched and the table is
    not consulted.

    Raises:
        MissingAddress: a dependency has no entry in the address table
        LinkError: a placeholder could not be located, or one is left over
    """
    if not artifact.has_slots:
        return LinkedArtifact(artifact=artifact, bytecode="0x" + strip_hex_prefix(artifact.bytecode))

    links: Dict[str, str] = {}
    for dependency in artifact.dependencies:
        address = address_table.address_of(dependency)
        if address is None:
            raise MissingAddress(artifact.name, dependency)
        links[dependency] = address

    code = strip_hex_prefix(artifact.bytecode)
    for slot in artifact.slots:
        replacement = _address_hex(links[slot.name])
        if slot.offsets:
            code = _patch_offsets(code, slot, replacement, artifact.name)
        else:
            code = _replace_marker(code, slot, replacement, artifact.name)

    leftover = PLACEHOLDER_PATTERN.search(code)
    if leftover:
        raise LinkError(
            f"Unresolved placeholder {leftover.group(0)} left after linking",
            artifact.name,
        )

    logger.debug(f"Linked {artifact.name} against {links}")
    return LinkedArtifact(artifact=artifact, bytecode="0x" + code, links=links)
