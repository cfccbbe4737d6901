"""
Runtime context for a MultiSend deployment.

Wires a WorldState, its EventLog (optionally signing), and one
MultiSendEngine from a YAML settings file.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from multisend.chain.world import WorldState
from multisend.core.crypto import Ed25519KeyManager
from multisend.ledger.event_log import EventLog
from multisend.settlement.engine import MultiSendEngine


logger = logging.getLogger(__name__)


@dataclass
class EngineSettings:
    """Deployment settings. Unknown keys are rejected."""

    owner:          str
    engine_address: Optional[str]  = None
    fee_collector:  Optional[str]  = None
    flat_fee:       int            = 0
    fees_enabled:   bool           = False
    signing_key:    Optional[Path] = None
    log_level:      Optional[str]  = None
    balances:       Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineSettings":
        if not isinstance(data, dict):
            raise ValueError("Settings must be a mapping")
        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown settings keys: {unknown}")
        if not data.get("owner"):
            raise ValueError("Settings must define 'owner'")

        values = dict(data)
        if values.get("signing_key") is not None:
            values["signing_key"] = Path(values["signing_key"])
        values["balances"] = dict(values.get("balances") or {})
        return cls(**values)

    @classmethod
    def from_yaml(cls, path: Path) -> "EngineSettings":
        """Load settings from a YAML file."""
        path = Path(path)
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        settings = cls.from_dict(data)
        if settings.signing_key is not None and not settings.signing_key.is_absolute():
            settings.signing_key = path.parent / settings.signing_key
        return settings


@dataclass
class RuntimeContext:
    """A running engine and the world it settles on."""

    world:       WorldState
    engine:      MultiSendEngine
    event_log:   EventLog
    key_manager: Optional[Ed25519KeyManager] = None

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> "RuntimeContext":
        if settings.log_level:
            logging.getLogger("multisend").setLevel(settings.log_level.upper())

        key_manager = None
        if settings.signing_key is not None:
            key_manager = Ed25519KeyManager.from_file(settings.signing_key)

        event_log = EventLog(key_manager)
        world = WorldState(event_log)
        for address, amount in settings.balances.items():
            world.fund(address, amount)

        engine = MultiSendEngine(
            world,
            owner=         settings.owner,
            fee_collector= settings.fee_collector,
            flat_fee=      settings.flat_fee,
            fees_enabled=  settings.fees_enabled,
            address=       settings.engine_address,
        )
        logger.info("Runtime ready: %r", engine)
        return cls(world=world, engine=engine, event_log=event_log, key_manager=key_manager)

    @classmethod
    def from_config(cls, config_file: Path) -> "RuntimeContext":
        """Create runtime context from a YAML settings file."""
        return cls.from_settings(EngineSettings.from_yaml(config_file))

    def __repr__(self) -> str:
        return (
            f"RuntimeContext("
            f"engine={self.engine.address}, "
            f"events={len(self.event_log)}, "
            f"signed={self.key_manager is not None})"
        )
