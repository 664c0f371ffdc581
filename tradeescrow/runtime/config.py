"""
Escrow configuration, loaded from YAML.

    escrow:
      owner: <64-hex identity>
      custodian_key: keys/custodian.pem
      journal: .tradeescrow/journal
    asset:
      symbol: USDC
      decimals: 6
    logging:
      level: INFO

Relative paths resolve against the directory holding the config file.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from tradeescrow.core.crypto import is_identity
from tradeescrow.core.exceptions import ConfigError

DEFAULT_JOURNAL_DIR = ".tradeescrow/journal"
DEFAULT_KEY_PATH    = ".tradeescrow/keys/custodian.pem"

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass
class EscrowConfig:
    owner:          str
    custodian_key:  Path
    journal_dir:    Optional[Path]
    asset_symbol:   str = "USDC"
    asset_decimals: int = 6
    log_level:      str = "INFO"

    @classmethod
    def from_yaml(cls, path: Path) -> "EscrowConfig":
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}", {"error": exc}) from exc
        return cls.from_dict(data or {}, base_dir=path.parent)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base_dir: Optional[Path] = None) -> "EscrowConfig":
        if not isinstance(data, dict):
            raise ConfigError("Config root must be a mapping")

        escrow  = data.get("escrow") or {}
        asset   = data.get("asset") or {}
        logging = data.get("logging") or {}
        base    = Path(base_dir) if base_dir else Path.cwd()

        owner = escrow.get("owner")
        if owner is None:
            raise ConfigError("escrow.owner is required")
        owner = str(owner).lower()
        if not is_identity(owner):
            raise ConfigError("escrow.owner must be a 64-char hex identity", {"owner": owner})

        decimals = asset.get("decimals", 6)
        if not isinstance(decimals, int) or isinstance(decimals, bool) or decimals < 0:
            raise ConfigError("asset.decimals must be a non-negative integer", {"decimals": decimals})

        level = str(logging.get("level", "INFO")).upper()
        if level not in _LOG_LEVELS:
            raise ConfigError(f"logging.level must be one of {sorted(_LOG_LEVELS)}", {"level": level})

        journal = escrow.get("journal", DEFAULT_JOURNAL_DIR)

        return cls(
            owner=          owner,
            custodian_key=  base / escrow.get("custodian_key", DEFAULT_KEY_PATH),
            journal_dir=    (base / journal) if journal else None,
            asset_symbol=   str(asset.get("symbol", "USDC")),
            asset_decimals= decimals,
            log_level=      level,
        )
