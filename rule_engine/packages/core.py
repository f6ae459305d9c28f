"""
Core package: always available, no dependencies.
"""

from typing import List

from ..rules.actions import LogAction
from ..rules.conditions import ContextCondition
from ..rules.handlers import HandlerRegistry
from .base import BasePackage


class CorePackage(BasePackage):
    """Generic handlers every other package can rely on."""

    @property
    def name(self) -> str:
        return "core"

    @property
    def namespaces(self) -> List[str]:
        return ["core", "context"]

    def is_available(self) -> bool:
        return True

    def register_handlers(self, handlers: HandlerRegistry) -> None:
        handlers.register_action("log", LogAction, owner=self.name)
        handlers.register_condition("context", ContextCondition, owner=self.name)
