"""
Infrastructure module exports.

Configuration and bootstrap for all service backends.
"""

from .config import InfraConfig, get_config, LLMBackendType
from .bootstrap import InfraBootstrap

__all__ = [
    "InfraConfig",
    "get_config",
    "LLMBackendType",
    "InfraBootstrap",
]
