"""
Context-providing packages and the registry that composes them.
"""

from .base import BasePackage
from .core import CorePackage
from .hooks import HookGateway, HookState, InMemoryEventHost
from .registry import PackageRegistry
from .request import RequestPackage

__all__ = [
    "BasePackage",
    "CorePackage",
    "HookGateway",
    "HookState",
    "InMemoryEventHost",
    "PackageRegistry",
    "RequestPackage",
]
