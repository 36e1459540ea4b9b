import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigError

DEFAULT_RPC_URL = "http://localhost:8545"
DEFAULT_ARTIFACTS_DIRS = "artifacts,build/contracts"


def _get_int(env: Mapping[str, str], key: str, default: Optional[int] = None) -> Optional[int]:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw, 0)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}")


def _get_bool(env: Mapping[str, str], key: str, default: bool = False) -> bool:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ConfigError(f"{key} must be a boolean, got {raw!r}")


@dataclass
class DeployConfig:
    """Deployment settings, normally read from the environment / .env file"""
    rpc_url: str = DEFAULT_RPC_URL
    private_key: Optional[str] = None
    chain_id: Optional[int] = None
    gas_limit: Optional[int] = None
    receipt_timeout: int = 300
    artifacts_dirs: List[str] = field(default_factory=lambda: DEFAULT_ARTIFACTS_DIRS.split(","))
    deployment_file: str = "deployment.json"
    resume: bool = False
    slack_webhook: Optional[str] = None

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "DeployConfig":
        if env is None:
            load_dotenv()
            env = os.environ

        receipt_timeout = _get_int(env, "RECEIPT_TIMEOUT", 300)
        if receipt_timeout is None or receipt_timeout <= 0:
            raise ConfigError("RECEIPT_TIMEOUT must be positive")

        dirs = env.get("ARTIFACTS_DIRS") or DEFAULT_ARTIFACTS_DIRS
        return cls(
            rpc_url=env.get("RPC_URL") or DEFAULT_RPC_URL,
            private_key=env.get("PRIVATE_KEY") or None,
            chain_id=_get_int(env, "CHAIN_ID"),
            gas_limit=_get_int(env, "GAS_LIMIT"),
            receipt_timeout=receipt_timeout,
            artifacts_dirs=[d.strip() for d in dirs.split(",") if d.strip()],
            deployment_file=env.get("DEPLOYMENT_FILE") or "deployment.json",
            resume=_get_bool(env, "DEPLOY_RESUME"),
            slack_webhook=env.get("SLACK_WEBHOOK") or None,
        )
