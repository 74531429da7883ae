"""
StakePool Configuration

Configuration classes for the stake pool and the operator registry.

Sections map to TOML tables:

    [pool]
    submit_threshold = "1000000"       # whole tokens
    protocol_fee_rate = 1000           # basis points
    withdrawal_delay_epochs = 80

    [registry]
    default_commission_rate = 0
    min_stake_amount = "10"
    allow_unjail = true

Token amounts are written as whole-token strings and held in base units.
Environment variables prefixed with ``STAKEPOOL_`` override file values.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import tomli
except ImportError:
    import tomllib as tomli

from .constants import (
    BASIS_POINTS,
    DEFAULT_COMMISSION_RATE,
    DEFAULT_DELEGATION_LOWER_BOUND,
    DEFAULT_INSURANCE_FEE_SHARE,
    DEFAULT_MAX_DELEGATION_LIMIT,
    DEFAULT_MIN_AUX_FEE,
    DEFAULT_MIN_REWARD_DISTRIBUTION,
    DEFAULT_MIN_STAKE_AMOUNT,
    DEFAULT_PROTOCOL_FEE_RATE,
    DEFAULT_REGISTRY_VERSION,
    DEFAULT_REWARD_DISTRIBUTION_LOWER_BOUND,
    DEFAULT_SUBMIT_THRESHOLD,
    DEFAULT_WITHDRAWAL_DELAY_EPOCHS,
    from_units,
    parse_bool,
    to_units,
)
from .exceptions import ConfigurationError


def _units(data: Dict[str, Any], key: str, default: int) -> int:
    if key not in data:
        return default
    try:
        return to_units(data[key])
    except (ValueError, ArithmeticError) as e:
        raise ConfigurationError(f"Invalid token amount for '{key}': {data[key]!r}") from e


def _bool(value: Any) -> bool:
    parsed = parse_bool(value)
    if not isinstance(parsed, bool):
        raise ConfigurationError(f"Expected a boolean, got {value!r}")
    return parsed


# -- Pool ---------------------------------------------------------------

@dataclass
class PoolConfig:
    """[pool]."""

    # Cap on total pooled value accepted through submit
    submit_threshold: int = DEFAULT_SUBMIT_THRESHOLD

    # Whether submit enforces the threshold
    submit_handler_enabled: bool = True

    # Buffer must reach this before delegate() moves anything
    delegation_lower_bound: int = DEFAULT_DELEGATION_LOWER_BOUND

    # Operators with less accrued reward are skipped
    reward_distribution_lower_bound: int = DEFAULT_REWARD_DISTRIBUTION_LOWER_BOUND

    # distribute_rewards() fails below this total
    min_reward_distribution: int = DEFAULT_MIN_REWARD_DISTRIBUTION

    # Epochs a ticket must wait before it can be claimed
    withdrawal_delay_epochs: int = DEFAULT_WITHDRAWAL_DELAY_EPOCHS

    # Protocol fee on rewards, and the insurance part of it (basis points)
    protocol_fee_rate: int = DEFAULT_PROTOCOL_FEE_RATE
    insurance_fee_share: int = DEFAULT_INSURANCE_FEE_SHARE

    dao_address: str = "dao"
    insurance_address: str = "insurance"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PoolConfig":
        return cls(
            submit_threshold=_units(data, "submit_threshold", DEFAULT_SUBMIT_THRESHOLD),
            submit_handler_enabled=_bool(data.get("submit_handler_enabled", True)),
            delegation_lower_bound=_units(data, "delegation_lower_bound", DEFAULT_DELEGATION_LOWER_BOUND),
            reward_distribution_lower_bound=_units(
                data, "reward_distribution_lower_bound", DEFAULT_REWARD_DISTRIBUTION_LOWER_BOUND
            ),
            min_reward_distribution=_units(data, "min_reward_distribution", DEFAULT_MIN_REWARD_DISTRIBUTION),
            withdrawal_delay_epochs=int(data.get("withdrawal_delay_epochs", DEFAULT_WITHDRAWAL_DELAY_EPOCHS)),
            protocol_fee_rate=int(data.get("protocol_fee_rate", DEFAULT_PROTOCOL_FEE_RATE)),
            insurance_fee_share=int(data.get("insurance_fee_share", DEFAULT_INSURANCE_FEE_SHARE)),
            dao_address=data.get("dao_address", "dao"),
            insurance_address=data.get("insurance_address", "insurance"),
        )

    def apply_env(self) -> None:
        """Override from environment variables."""
        if v := os.environ.get("STAKEPOOL_SUBMIT_THRESHOLD"):
            self.submit_threshold = to_units(v)
        if v := os.environ.get("STAKEPOOL_WITHDRAWAL_DELAY_EPOCHS"):
            self.withdrawal_delay_epochs = int(v)
        if v := os.environ.get("STAKEPOOL_PROTOCOL_FEE_RATE"):
            self.protocol_fee_rate = int(v)
        if v := os.environ.get("STAKEPOOL_DAO_ADDRESS"):
            self.dao_address = v
        if v := os.environ.get("STAKEPOOL_INSURANCE_ADDRESS"):
            self.insurance_address = v

    def validate(self) -> None:
        if not 0 <= self.protocol_fee_rate <= BASIS_POINTS:
            raise ConfigurationError(f"protocol_fee_rate must be 0-{BASIS_POINTS} basis points")
        if not 0 <= self.insurance_fee_share <= BASIS_POINTS:
            raise ConfigurationError(f"insurance_fee_share must be 0-{BASIS_POINTS} basis points")
        if self.withdrawal_delay_epochs < 0:
            raise ConfigurationError("withdrawal_delay_epochs cannot be negative")
        if self.submit_threshold <= 0:
            raise ConfigurationError("submit_threshold must be positive")
        if self.min_reward_distribution < 0 or self.reward_distribution_lower_bound < 0:
            raise ConfigurationError("Reward bounds cannot be negative")
        if self.delegation_lower_bound < 0:
            raise ConfigurationError("delegation_lower_bound cannot be negative")
        if not self.dao_address or not self.insurance_address:
            raise ConfigurationError("dao_address and insurance_address are required")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "submit_threshold": str(from_units(self.submit_threshold)),
            "submit_handler_enabled": self.submit_handler_enabled,
            "delegation_lower_bound": str(from_units(self.delegation_lower_bound)),
            "reward_distribution_lower_bound": str(from_units(self.reward_distribution_lower_bound)),
            "min_reward_distribution": str(from_units(self.min_reward_distribution)),
            "withdrawal_delay_epochs": self.withdrawal_delay_epochs,
            "protocol_fee_rate": self.protocol_fee_rate,
            "insurance_fee_share": self.insurance_fee_share,
            "dao_address": self.dao_address,
            "insurance_address": self.insurance_address,
        }


# -- Registry -----------------------------------------------------------

@dataclass
class RegistryConfig:
    """[registry]."""
    default_commission_rate: int = DEFAULT_COMMISSION_RATE
    default_max_delegation_limit: int = DEFAULT_MAX_DELEGATION_LIMIT
    min_stake_amount: int = DEFAULT_MIN_STAKE_AMOUNT
    min_aux_fee: int = DEFAULT_MIN_AUX_FEE
    allow_unjail: bool = True
    allow_restake: bool = False
    version: str = DEFAULT_REGISTRY_VERSION

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegistryConfig":
        return cls(
            default_commission_rate=int(data.get("default_commission_rate", DEFAULT_COMMISSION_RATE)),
            default_max_delegation_limit=_units(
                data, "default_max_delegation_limit", DEFAULT_MAX_DELEGATION_LIMIT
            ),
            min_stake_amount=_units(data, "min_stake_amount", DEFAULT_MIN_STAKE_AMOUNT),
            min_aux_fee=_units(data, "min_aux_fee", DEFAULT_MIN_AUX_FEE),
            allow_unjail=_bool(data.get("allow_unjail", True)),
            allow_restake=_bool(data.get("allow_restake", False)),
            version=str(data.get("version", DEFAULT_REGISTRY_VERSION)),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("STAKEPOOL_DEFAULT_COMMISSION_RATE"):
            self.default_commission_rate = int(v)
        if v := os.environ.get("STAKEPOOL_MIN_STAKE_AMOUNT"):
            self.min_stake_amount = to_units(v)
        if v := os.environ.get("STAKEPOOL_ALLOW_RESTAKE"):
            self.allow_restake = _bool(v)

    def validate(self) -> None:
        if not 0 <= self.default_commission_rate <= BASIS_POINTS:
            raise ConfigurationError(f"default_commission_rate must be 0-{BASIS_POINTS} basis points")
        if self.min_stake_amount < 0 or self.min_aux_fee < 0:
            raise ConfigurationError("Stake minimums cannot be negative")
        if self.default_max_delegation_limit < 0:
            raise ConfigurationError("default_max_delegation_limit cannot be negative")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "default_commission_rate": self.default_commission_rate,
            "default_max_delegation_limit": str(from_units(self.default_max_delegation_limit)),
            "min_stake_amount": str(from_units(self.min_stake_amount)),
            "min_aux_fee": str(from_units(self.min_aux_fee)),
            "allow_unjail": self.allow_unjail,
            "allow_restake": self.allow_restake,
            "version": self.version,
        }


# -- Top-level ----------------------------------------------------------

@dataclass
class StakePoolConfig:
    """Complete configuration: one section per component."""
    pool: PoolConfig = field(default_factory=PoolConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StakePoolConfig":
        return cls(
            pool=PoolConfig.from_dict(data.get("pool", {})),
            registry=RegistryConfig.from_dict(data.get("registry", {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "StakePoolConfig":
        """
        Load configuration from a TOML file.

        Missing files yield the defaults. Environment overrides are applied
        and the result is validated.
        """
        path = Path(config_path)

        if path.exists():
            try:
                with open(path, "rb") as f:
                    data = tomli.load(f)
            except tomli.TOMLDecodeError as e:
                raise ConfigurationError(f"Cannot parse {path}: {e}") from e
            config = cls.from_dict(data)
        else:
            config = cls()

        config.apply_env()
        config.validate()
        return config

    def apply_env(self) -> None:
        self.pool.apply_env()
        self.registry.apply_env()

    def validate(self) -> None:
        self.pool.validate()
        self.registry.validate()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for diagnostics, NOT for re-creating TOML)."""
        return {
            "pool": self.pool.to_dict(),
            "registry": self.registry.to_dict(),
        }


def load_config(path: Optional[str] = None) -> StakePoolConfig:
    """
    Load stake pool configuration.

    Resolution order:
        1. Explicit *path* argument
        2. STAKEPOOL_CONFIG env var (or .env entry)
        3. ./stakepool.toml in current directory
        4. Defaults (with env overrides)
    """
    if path is None:
        from .constants import STAKEPOOL_CONFIG
        path = os.environ.get("STAKEPOOL_CONFIG") or str(STAKEPOOL_CONFIG) or "stakepool.toml"

    return StakePoolConfig.from_file(path)
