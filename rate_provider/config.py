"""
Configuration for the SolvBTC rate provider

Supports:
- YAML/JSON file loading
- Environment variable overrides
- Per-network RPC settings
- Validation with sensible defaults
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Any, Union
from pathlib import Path
import os
import json
import logging

import yaml
from dotenv import load_dotenv
from eth_utils import is_address

from .validation import RATE_PRECISION_FACTOR, is_valid_max_difference_percent

logger = logging.getLogger(__name__)

# Load .env file if present
load_dotenv()

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def _address_errors(value: str, name: str, required: bool = True) -> List[str]:
    if not value:
        return [f"{name} is required"] if required else []
    if not is_address(value):
        return [f"{name} is not a valid address: {value}"]
    if value.lower() == ZERO_ADDRESS:
        return [f"{name} cannot be the zero address"]
    return []


def _infura_url(network: str) -> str:
    key = os.getenv("INFURA_KEY", "")
    return f"https://{network}.infura.io/v3/{key}" if key else ""


# ============ Sub-Configurations ============

@dataclass
class ProviderConfig:
    """Initial values of the rate snapshot"""
    owner: str = ""
    reserve_feed: str = "0xda9258afc797cd64d1b6fc651051224cdab1b25e"
    updater: str = "0x4afa6424e6a0ee021d4676238cdd4fea94799a96"

    # 1e18 = 100%
    max_difference_percent: int = 5 * 10**16

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors"""
        errors = []
        errors.extend(_address_errors(self.owner, "owner", required=False))
        errors.extend(_address_errors(self.reserve_feed, "reserve_feed"))
        errors.extend(_address_errors(self.updater, "updater"))
        if isinstance(self.max_difference_percent, bool) or not isinstance(self.max_difference_percent, int):
            errors.append("max_difference_percent must be an integer (1e18 = 100%)")
        elif not is_valid_max_difference_percent(self.max_difference_percent):
            errors.append(f"max_difference_percent must be in (0, {RATE_PRECISION_FACTOR}]")
        return errors


@dataclass
class NetworkConfig:
    """Network-specific configuration"""
    chain_id: int
    name: str
    rpc_url: str = ""

    # Overrides provider.reserve_feed on this network when set
    reserve_feed: str = ""

    request_timeout_seconds: float = 10.0
    max_retries: int = 3

    def validate(self) -> List[str]:
        errors = []
        if self.chain_id <= 0:
            errors.append("chain_id must be positive")
        if not self.name:
            errors.append("network name is required")
        errors.extend(_address_errors(self.reserve_feed, f"network {self.name}: reserve_feed", required=False))
        if self.request_timeout_seconds <= 0:
            errors.append(f"network {self.name}: request_timeout_seconds must be positive")
        if self.max_retries < 1:
            errors.append(f"network {self.name}: max_retries must be >= 1")
        return errors


@dataclass
class UpdaterConfig:
    """Off-chain updater loop configuration"""
    # HTTP endpoint returning {"totalSupply": ..., "totalTVL": ...}
    supply_tvl_url: str = ""

    update_interval_seconds: int = 3600

    def validate(self) -> List[str]:
        errors = []
        if self.update_interval_seconds <= 0:
            errors.append("update_interval_seconds must be positive")
        return errors


# ============ Default Networks ============

def get_default_networks() -> Dict[str, NetworkConfig]:
    """Get default network configurations"""
    return {
        "mainnet": NetworkConfig(
            chain_id=1,
            name="mainnet",
            rpc_url=os.getenv("ETH_URL", "") or _infura_url("mainnet"),
        ),
        "sepolia": NetworkConfig(
            chain_id=11155111,
            name="sepolia",
            rpc_url=os.getenv("SEPOLIA_URL", "") or _infura_url("sepolia"),
        ),
    }


# ============ Main Configuration ============

@dataclass
class RateProviderConfig:
    """Main rate provider configuration"""
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    updater: UpdaterConfig = field(default_factory=UpdaterConfig)

    networks: Dict[str, NetworkConfig] = field(default_factory=get_default_networks)
    active_network: str = "mainnet"

    # JSON file holding the persisted snapshot
    state_path: str = "rate_provider_state.json"

    # Logging
    log_level: str = "INFO"
    log_file: str = ""

    def get_active_network(self) -> NetworkConfig:
        """Get the active network configuration"""
        if self.active_network not in self.networks:
            raise ValueError(f"Unknown network: {self.active_network}")
        return self.networks[self.active_network]

    def get_reserve_feed(self) -> str:
        """Reserve feed address for the active network"""
        network = self.networks.get(self.active_network)
        if network is not None and network.reserve_feed:
            return network.reserve_feed
        return self.provider.reserve_feed

    def validate(self) -> List[str]:
        """Validate entire configuration"""
        errors = []

        errors.extend(self.provider.validate())
        errors.extend(self.updater.validate())

        for network in self.networks.values():
            errors.extend(network.validate())

        if self.active_network not in self.networks:
            errors.append(f"active_network '{self.active_network}' not in networks")

        if not self.state_path:
            errors.append("state_path is required")

        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            errors.append(f"unknown log_level: {self.log_level}")

        return errors

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (for serialization)"""
        return asdict(self)


# ============ Configuration Loading ============

def _apply_env_overrides(config_dict: Dict) -> Dict:
    """Apply environment variable overrides to config"""
    env_mappings = {
        # Network RPC URLs
        "ETH_URL": ("networks", "mainnet", "rpc_url"),
        "SEPOLIA_URL": ("networks", "sepolia", "rpc_url"),

        # Provider snapshot values
        "OWNER_ADDRESS": ("provider", "owner"),
        "RESERVE_FEED_ADDRESS": ("provider", "reserve_feed"),
        "UPDATER_ADDRESS": ("provider", "updater"),
        "MAX_DIFFERENCE_PERCENT": ("provider", "max_difference_percent"),

        # Updater loop
        "SUPPLY_TVL_URL": ("updater", "supply_tvl_url"),

        "ACTIVE_NETWORK": ("active_network",),
        "STATE_PATH": ("state_path",),
        "LOG_LEVEL": ("log_level",),
    }

    for env_var, path in env_mappings.items():
        value = os.getenv(env_var)
        if value is not None:
            current = config_dict
            for key in path[:-1]:
                if key not in current or current[key] is None:
                    current[key] = {}
                current = current[key]
            current[path[-1]] = value

    return config_dict


def _to_int(value: Any, name: str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            return int(value.replace("_", ""))
        except ValueError:
            pass
    raise ValueError(f"{name} must be an integer, got {value!r}")


def _dict_to_config(d: Dict) -> RateProviderConfig:
    """Convert dictionary to RateProviderConfig"""
    provider_dict = dict(d.get("provider") or {})
    if "max_difference_percent" in provider_dict:
        provider_dict["max_difference_percent"] = _to_int(
            provider_dict["max_difference_percent"], "max_difference_percent"
        )
    provider = ProviderConfig(**provider_dict)
    updater = UpdaterConfig(**(d.get("updater") or {}))

    # Merge network overrides onto the defaults
    networks = get_default_networks()
    for name, n in (d.get("networks") or {}).items():
        if isinstance(n, NetworkConfig):
            networks[name] = n
        elif name in networks:
            base = asdict(networks[name])
            base.update(n)
            networks[name] = NetworkConfig(**base)
        else:
            networks[name] = NetworkConfig(**{"name": name, **n})

    return RateProviderConfig(
        provider=provider,
        updater=updater,
        networks=networks,
        active_network=d.get("active_network", "mainnet"),
        state_path=d.get("state_path", "rate_provider_state.json"),
        log_level=d.get("log_level", "INFO"),
        log_file=d.get("log_file", ""),
    )


def load_config(config_path: Optional[Union[str, Path]] = None) -> RateProviderConfig:
    """
    Load configuration from file or environment.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (YAML/JSON)
    3. Default values

    Args:
        config_path: Path to config file. If None, looks for:
            - RATE_PROVIDER_CONFIG_PATH env var
            - ./rate_provider.yaml
            - ./rate_provider.json
            - ./config/rate_provider.yaml
            - ./config/rate_provider.json

    Returns:
        RateProviderConfig instance
    """
    config_dict: Dict[str, Any] = {}

    if config_path is None:
        config_path = os.getenv("RATE_PROVIDER_CONFIG_PATH")

    if config_path is None:
        search_paths = [
            Path("rate_provider.yaml"),
            Path("rate_provider.json"),
            Path("config/rate_provider.yaml"),
            Path("config/rate_provider.json"),
        ]
        for path in search_paths:
            if path.exists():
                config_path = path
                break

    if config_path is not None:
        config_path = Path(config_path)
        if config_path.exists():
            logger.info(f"Loading config from {config_path}")

            with open(config_path, 'r') as f:
                if config_path.suffix in ['.yaml', '.yml']:
                    config_dict = yaml.safe_load(f) or {}
                elif config_path.suffix == '.json':
                    config_dict = json.load(f)
                else:
                    raise ValueError(f"Unsupported config file format: {config_path.suffix}")
        else:
            logger.warning(f"Config file not found: {config_path}")

    config_dict = _apply_env_overrides(config_dict)

    config = _dict_to_config(config_dict)

    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"Config validation error: {error}")
        raise ValueError(f"Configuration validation failed with {len(errors)} errors")

    return config


def save_config(config: RateProviderConfig, path: Union[str, Path], format: str = "yaml") -> None:
    """
    Save configuration to file.

    RPC URLs are left out since they usually embed an API key.

    Args:
        config: RateProviderConfig to save
        path: Output file path
        format: "yaml" or "json"
    """
    path = Path(path)
    config_dict = config.to_dict()

    for network in config_dict.get("networks", {}).values():
        network.pop("rpc_url", None)

    with open(path, 'w') as f:
        if format == "yaml":
            yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)
        elif format == "json":
            json.dump(config_dict, f, indent=2)
        else:
            raise ValueError(f"Unsupported format: {format}")

    logger.info(f"Config saved to {path}")


def generate_default_config(path: Union[str, Path], format: str = "yaml") -> None:
    """Generate a default configuration file"""
    config = RateProviderConfig()
    save_config(config, path, format)
