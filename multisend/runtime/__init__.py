"""
MultiSend Runtime - deployment wiring from a YAML settings file.
"""

from multisend.runtime.context import EngineSettings, RuntimeContext

__all__ = [
    "EngineSettings",
    "RuntimeContext",
]
