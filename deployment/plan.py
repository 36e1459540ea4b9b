"""
Deployment sequencing

A plan is an ordered list of steps. A step may take the address of an
earlier step as a constructor argument; such a step is only submitted once
that earlier deployment has confirmed. Steps nothing depends on are left
in flight and only awaited at the end of the run.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .backend import DeploymentHandle
from .errors import DependencyNotReadyError, DeploymentError, PlanError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AddressOf:
    """Placeholder for the address of an earlier step"""
    step: str


@dataclass(frozen=True)
class DeploymentStep:
    name: str
    args: Tuple[Any, ...] = ()
    artifact: Optional[str] = None

    @property
    def artifact_reference(self) -> str:
        return self.artifact or self.name

    @property
    def dependencies(self) -> List[str]:
        return [arg.step for arg in self.args if isinstance(arg, AddressOf)]


def _normalise(value):
    # addresses compare case-insensitively, JSON turns tuples into lists
    if isinstance(value, str) and value.startswith("0x"):
        return value.lower()
    if isinstance(value, (list, tuple)):
        return [_normalise(v) for v in value]
    return value


def same_args(recorded: Optional[List[Any]], current: List[Any]) -> bool:
    """Whether recorded constructor arguments match the current ones."""
    if not isinstance(recorded, (list, tuple)):
        return False
    return _normalise(list(recorded)) == _normalise(list(current))


class StepStatus(Enum):
    CONFIRMED = "confirmed"
    REUSED = "reused"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class StepResult:
    step: str
    status: StepStatus
    address: Optional[str] = None
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    error: Optional[str] = None
    args: Optional[List[Any]] = None

    @property
    def ok(self) -> bool:
        return self.status in (StepStatus.CONFIRMED, StepStatus.REUSED)


@dataclass
class DeploymentReport:
    """Outcome of one run of a plan, in step order"""
    results: List[StepResult] = field(default_factory=list)

    def get(self, step: str) -> Optional[StepResult]:
        for result in self.results:
            if result.step == step:
                return result
        return None

    @property
    def confirmed(self) -> List[StepResult]:
        return [r for r in self.results if r.ok]

    @property
    def failures(self) -> List[StepResult]:
        return [r for r in self.results if r.status is StepStatus.FAILED]

    @property
    def skipped(self) -> List[StepResult]:
        return [r for r in self.results if r.status is StepStatus.SKIPPED]

    @property
    def succeeded(self) -> bool:
        return all(r.ok for r in self.results)

    def addresses(self) -> Dict[str, str]:
        return {r.step: r.address for r in self.results if r.ok and r.address}


class DeploymentPlan:
    """
    Runs deployment steps against a backend.

    The backend provides require(name), deploy(artifact, *args) returning a
    DeploymentHandle, and await_address(handle).
    """

    def __init__(self, steps: Iterable[DeploymentStep]):
        self.steps = list(steps)
        self.validate()

    def validate(self):
        seen = set()
        for step in self.steps:
            if step.name in seen:
                raise PlanError(f"Step {step.name} is declared twice")
            for dependency in step.dependencies:
                if dependency not in seen:
                    raise PlanError(f"Step {step.name} uses the address of {dependency}, "
                                    f"which is not declared before it")
            seen.add(step.name)

    def run(self, backend, existing: Optional[Dict[str, str]] = None,
            recorded_args: Optional[Dict[str, List[Any]]] = None,
            on_confirmed: Optional[Callable[[StepResult], None]] = None) -> DeploymentReport:
        """
        Deploy every step, honouring address dependencies

        Args:
            backend: Deployment backend
            existing: Addresses of contracts already deployed, keyed by step
                name; those steps are reused instead of redeployed
            recorded_args: Constructor arguments the existing contracts were
                deployed with. A step that takes arguments is only reused when
                they match the arguments it would be deployed with now.
            on_confirmed: Called with each result as soon as its deployment
                confirms

        Returns:
            DeploymentReport with one result per step
        """
        existing = existing or {}
        recorded_args = recorded_args or {}
        results: Dict[str, StepResult] = {}
        in_flight: Dict[str, DeploymentHandle] = {}

        for step in self.steps:
            addresses, blocker = self._await_dependencies(step, backend, results, in_flight, on_confirmed)
            if blocker is not None:
                logger.error(f"Skipping {step.name}: {blocker} did not deploy")
                results[step.name] = StepResult(step.name, StepStatus.SKIPPED,
                                                error=f"dependency {blocker} did not deploy")
                continue

            args = [addresses[arg.step] if isinstance(arg, AddressOf) else arg for arg in step.args]

            if step.name in existing:
                if not args or same_args(recorded_args.get(step.name), args):
                    logger.info(f"Reusing {step.name} at {existing[step.name]}")
                    results[step.name] = StepResult(step.name, StepStatus.REUSED,
                                                    address=existing[step.name], args=args)
                    continue
                logger.warning(f"Redeploying {step.name}: recorded constructor arguments "
                               f"{recorded_args.get(step.name)} differ from {args}")

            try:
                artifact = backend.require(step.artifact_reference)
                in_flight[step.name] = backend.deploy(artifact, *args)
            except (DeploymentError, DependencyNotReadyError) as e:
                logger.error(f"Deployment of {step.name} failed: {e}")
                results[step.name] = StepResult(step.name, StepStatus.FAILED, error=str(e), args=args)

        for name, handle in in_flight.items():
            if name not in results:
                results[name] = self._confirm(name, handle, backend, on_confirmed)

        report = DeploymentReport([results[step.name] for step in self.steps])
        logger.info(f"Plan finished: {len(report.confirmed)} deployed, "
                    f"{len(report.failures)} failed, {len(report.skipped)} skipped")
        return report

    def _await_dependencies(self, step, backend, results, in_flight, on_confirmed):
        addresses: Dict[str, str] = {}
        for dependency in step.dependencies:
            if dependency not in results:
                results[dependency] = self._confirm(dependency, in_flight[dependency], backend, on_confirmed)
            result = results[dependency]
            if not result.ok:
                return addresses, dependency
            addresses[dependency] = result.address
        return addresses, None

    @staticmethod
    def _confirm(name: str, handle: DeploymentHandle, backend, on_confirmed=None) -> StepResult:
        try:
            address = backend.await_address(handle)
        except DeploymentError as e:
            logger.error(f"Deployment of {name} failed: {e}")
            return StepResult(name, StepStatus.FAILED, tx_hash=handle.tx_hash, error=str(e),
                              args=list(handle.args))
        result = StepResult(name, StepStatus.CONFIRMED, address=address, tx_hash=handle.tx_hash,
                            block_number=handle.block_number, args=list(handle.args))
        if on_confirmed is not None:
            on_confirmed(result)
        return result
