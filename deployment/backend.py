"""
Web3 deployment backend

Submits contract-creation transactions and waits for their receipts.
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from web3 import Web3
from web3.exceptions import TimeExhausted, Web3Exception
from web3.middleware import ExtraDataToPOAMiddleware

from .artifacts import ArtifactHandle, ArtifactStore
from .errors import DependencyNotReadyError, DeploymentError

logger = logging.getLogger(__name__)


class DeploymentStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class DeploymentHandle:
    """A submitted deployment, pending until its receipt is observed"""

    def __init__(self, artifact: ArtifactHandle, args: Sequence[Any], tx_hash: Optional[str] = None):
        self.artifact = artifact
        self.args = list(args)
        self.tx_hash = tx_hash
        self.status = DeploymentStatus.PENDING
        self.receipt: Optional[Dict[str, Any]] = None
        self.error: Optional[Exception] = None
        self._address: Optional[str] = None

    def __repr__(self):
        return f"<DeploymentHandle {self.artifact.name} {self.status.value} tx={self.tx_hash}>"

    @property
    def address(self) -> str:
        if self.status is not DeploymentStatus.CONFIRMED:
            raise DependencyNotReadyError(
                f"{self.artifact.name} has no address yet (status: {self.status.value})"
            )
        return self._address  # type: ignore[return-value]

    @property
    def block_number(self) -> Optional[int]:
        if self.receipt is None:
            return None
        return self.receipt.get('blockNumber')

    def confirm(self, address: str, receipt: Optional[Dict[str, Any]] = None):
        if self.status is not DeploymentStatus.PENDING:
            raise DeploymentError(f"{self.artifact.name} already {self.status.value}")
        self._address = address
        self.receipt = receipt
        self.status = DeploymentStatus.CONFIRMED

    def fail(self, error: Exception):
        if self.status is not DeploymentStatus.PENDING:
            raise DeploymentError(f"{self.artifact.name} already {self.status.value}")
        self.error = error
        self.status = DeploymentStatus.FAILED


def resolve_args(args: Sequence[Any]) -> List[Any]:
    """Replaces deployment handles by their confirmed addresses."""
    return [arg.address if isinstance(arg, DeploymentHandle) else arg for arg in args]


def connect(rpc_url: str, timeout: int = 30) -> Web3:
    """Connect to an RPC endpoint, with PoA extra-data support"""
    w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={'timeout': timeout}))
    w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
    if not w3.is_connected():
        raise DeploymentError(f"Could not connect to RPC URL: {rpc_url}")
    logger.info(f"Connected to blockchain at {rpc_url}")
    return w3


class Web3Backend:
    """
    Deploys artifacts through a Web3 connection.

    With a private key, transactions are built and signed locally and nonces
    are tracked here so several deployments can be in flight at once. Without
    one, the node's first unlocked account sends them (ganache, anvil, hardhat).
    """

    def __init__(self, w3: Web3, artifacts: ArtifactStore, private_key: Optional[str] = None,
                 gas_limit: Optional[int] = None, receipt_timeout: int = 300,
                 chain_id: Optional[int] = None):
        self.w3 = w3
        self.artifacts = artifacts
        self.private_key = private_key
        self.gas_limit = gas_limit
        self.receipt_timeout = receipt_timeout
        self.chain_id = chain_id
        self._next_nonce: Optional[int] = None

        if private_key:
            self.deployer_address = w3.eth.account.from_key(private_key).address
        else:
            accounts = w3.eth.accounts
            if not accounts:
                raise DeploymentError("PRIVATE_KEY not set and the node has no unlocked accounts")
            self.deployer_address = accounts[0]
        logger.info(f"Using deployer account: {self.deployer_address}")

    def require(self, reference: str) -> ArtifactHandle:
        return self.artifacts.require(reference)

    def deploy(self, artifact: ArtifactHandle, *args) -> DeploymentHandle:
        """
        Submit a contract-creation transaction

        Args:
            artifact: Compiled contract to deploy
            *args: Constructor arguments; DeploymentHandle values must be confirmed

        Returns:
            A pending DeploymentHandle

        Raises:
            DependencyNotReadyError: if an argument handle has not confirmed
            DeploymentError: if the node rejects the transaction or is unreachable
        """
        constructor_args = resolve_args(args)
        handle = DeploymentHandle(artifact, constructor_args)
        try:
            contract = self.w3.eth.contract(abi=artifact.abi, bytecode=artifact.bytecode)
            constructor = contract.constructor(*constructor_args)
            if self.private_key:
                tx_hash = self._send_signed(constructor)
            else:
                tx_params: Dict[str, Any] = {'from': self.deployer_address}
                if self.gas_limit:
                    tx_params['gas'] = self.gas_limit
                tx_hash = constructor.transact(tx_params)
        except (Web3Exception, ValueError, TypeError, OSError) as e:
            raise DeploymentError(f"Deployment of {artifact.name} rejected: {e}") from e

        handle.tx_hash = Web3.to_hex(tx_hash)
        logger.info(f"{artifact.name} deployment transaction sent: {handle.tx_hash}")
        return handle

    def _reserve_nonce(self) -> int:
        pending = self.w3.eth.get_transaction_count(self.deployer_address, 'pending')
        nonce = pending if self._next_nonce is None else max(pending, self._next_nonce)
        self._next_nonce = nonce + 1
        return nonce

    def _send_signed(self, constructor):
        nonce = self._reserve_nonce()
        tx_params: Dict[str, Any] = {
            'from': self.deployer_address,
            'nonce': nonce,
            'gasPrice': self.w3.eth.gas_price,
        }
        if self.gas_limit:
            tx_params['gas'] = self.gas_limit
        if self.chain_id is not None:
            tx_params['chainId'] = self.chain_id

        try:
            tx = constructor.build_transaction(tx_params)
            signed_tx = self.w3.eth.account.sign_transaction(tx, self.private_key)
            return self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        except Exception:
            # nonce was not consumed, re-read it from the node next time
            self._next_nonce = None
            raise

    def await_address(self, handle: DeploymentHandle) -> str:
        """
        Wait for a deployment to confirm

        Returns:
            The deployed contract address

        Raises:
            DeploymentError: if the transaction reverted, timed out or was never sent
        """
        if handle.status is DeploymentStatus.CONFIRMED:
            return handle.address
        if handle.status is DeploymentStatus.FAILED:
            raise DeploymentError(f"{handle.artifact.name} deployment failed: {handle.error}")
        if handle.tx_hash is None:
            error = DeploymentError(f"{handle.artifact.name} deployment was never submitted")
            handle.fail(error)
            raise error

        name = handle.artifact.name
        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(handle.tx_hash, timeout=self.receipt_timeout)
        except TimeExhausted as e:
            error = DeploymentError(
                f"{name} deployment not confirmed after {self.receipt_timeout}s (tx {handle.tx_hash})"
            )
            handle.fail(error)
            raise error from e
        except (Web3Exception, ValueError, OSError) as e:
            error = DeploymentError(f"Could not fetch receipt for {name} (tx {handle.tx_hash}): {e}")
            handle.fail(error)
            raise error from e

        if receipt['status'] != 1:
            error = DeploymentError(f"{name} deployment reverted in block {receipt.get('blockNumber')}")
            handle.fail(error)
            raise error

        address = receipt.get('contractAddress')
        if not address:
            error = DeploymentError(f"Receipt for {name} has no contract address")
            handle.fail(error)
            raise error

        handle.confirm(address, dict(receipt))
        logger.info(f"{name} deployed at {address} in block {receipt.get('blockNumber')}")
        return address

    def has_code(self, address: str) -> bool:
        """Whether a contract exists at the given address"""
        try:
            code = self.w3.eth.get_code(Web3.to_checksum_address(address))
        except (Web3Exception, ValueError, TypeError, OSError) as e:
            raise DeploymentError(f"Could not read code at {address}: {e}") from e
        return len(code) > 0
