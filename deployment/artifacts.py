"""
Compiled contract artifact loading.

Supports the Hardhat layout (artifacts/contracts/<Name>.sol/<Name>.json)
and the Truffle layout (build/contracts/<Name>.json).
"""

import os
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import ArtifactNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArtifactHandle:
    """A compiled contract ready to be deployed"""
    name: str
    abi: List[Dict[str, Any]] = field(repr=False)
    bytecode: str = field(repr=False)
    source_path: str = ""


def contract_name(reference: str) -> str:
    """Turns './TestToken.sol' or 'TestToken' into 'TestToken'."""
    base = os.path.basename(reference.strip())
    if base.endswith('.sol'):
        base = base[:-len('.sol')]
    if not base:
        raise ArtifactNotFoundError(f"Invalid artifact reference: {reference!r}")
    return base


def load_artifact(file_path: str, name: Optional[str] = None) -> ArtifactHandle:
    """Loads ABI and creation bytecode from a JSON artifact file."""
    with open(file_path, 'r') as f:
        data = json.load(f)

    if not isinstance(data, dict):
        raise ArtifactNotFoundError(f"Artifact {file_path} is not a JSON object")

    name = name or data.get('contractName') or contract_name(file_path)
    abi = data.get('abi')
    bytecode = data.get('bytecode') or ''
    # Some toolchains nest it as {"object": "..."}
    if isinstance(bytecode, dict):
        bytecode = bytecode.get('object') or ''

    if abi is None:
        raise ArtifactNotFoundError(f"Artifact {file_path} has no ABI")
    if bytecode in ('', '0x'):
        raise ArtifactNotFoundError(
            f"Artifact {name} has no bytecode (interface or abstract contract?)"
        )
    if not bytecode.startswith('0x'):
        bytecode = '0x' + bytecode

    return ArtifactHandle(name=name, abi=abi, bytecode=bytecode, source_path=file_path)


class ArtifactStore:
    """Resolves contract names to compiled artifacts across build directories"""

    def __init__(self, search_dirs: List[str]):
        self.search_dirs = list(search_dirs)
        self._cache: Dict[str, ArtifactHandle] = {}

    def candidate_paths(self, name: str) -> List[str]:
        paths = []
        for directory in self.search_dirs:
            paths.append(os.path.join(directory, 'contracts', f'{name}.sol', f'{name}.json'))
            paths.append(os.path.join(directory, f'{name}.json'))
        return paths

    def require(self, reference: str) -> ArtifactHandle:
        """
        Resolve a contract by name or source path

        Args:
            reference: Contract name ("ValueFeed") or source path ("./TestToken.sol")

        Returns:
            The loaded artifact

        Raises:
            ArtifactNotFoundError: if no artifact file exists or it cannot be deployed
        """
        name = contract_name(reference)
        if name in self._cache:
            return self._cache[name]

        for path in self.candidate_paths(name):
            if os.path.isfile(path):
                try:
                    artifact = load_artifact(path, name)
                except (OSError, ValueError) as e:
                    raise ArtifactNotFoundError(f"Could not read artifact {path}: {e}") from e
                logger.info(f"Loaded artifact {name} from {path}")
                self._cache[name] = artifact
                return artifact

        raise ArtifactNotFoundError(
            f"No artifact for {name} in {', '.join(self.search_dirs) or '<no search dirs>'}"
        )
