"""
Package registry: composes the evaluation context from available packages.

Availability is transitive. A package counts as available only when its
own predicate holds and every package it requires is available too; an
unavailable package contributes neither context nor rules.

Merge precedence is dependency order: a package's fragment is merged after
the fragments of the packages it requires, so dependents override their
dependencies. Unrelated packages merge in registration order.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from shared.errors import DependencyError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from ..context import Context
from ..rules.engine import RuleEngine
from ..rules.handlers import HandlerRegistry
from ..rules.models import ExecutionResult, Rule, RuleMetadata
from ..rules.placeholders import CategoryResolver
from .base import BasePackage


class PackageRegistry:
    """Explicit registry of packages; one per process or per test."""

    def __init__(self, handlers: Optional[HandlerRegistry] = None, metrics: Optional[MetricsCollector] = None):
        self.logger = get_logger("rule_engine.registry")
        self.handlers = handlers or HandlerRegistry()
        self.metrics = metrics
        self._packages: Dict[str, BasePackage] = {}
        self._loaded: List[str] = []
        self._namespaces: Dict[str, str] = {}

    # Registration

    def register(self, package: BasePackage) -> None:
        """Add a package; a package with the same name is replaced."""
        name = package.name
        if name in self._packages:
            self.logger.info("Package replaced", package=name)
            if name in self._loaded:
                self._loaded.remove(name)
            self._namespaces = {ns: owner for ns, owner in self._namespaces.items() if owner != name}

        self._packages[name] = package
        for namespace in package.namespaces:
            self._namespaces[namespace] = name
        package.on_register(self)

    def get_package(self, name: str) -> Optional[BasePackage]:
        return self._packages.get(name)

    def packages(self) -> List[BasePackage]:
        return list(self._packages.values())

    def has_packages(self) -> bool:
        return bool(self._packages)

    def map_namespace_to_package(self, capability: str) -> Optional[str]:
        """Longest registered namespace prefix of ``capability`` wins."""
        for namespace in sorted(self._namespaces, key=len, reverse=True):
            if capability == namespace or capability.startswith(namespace + "."):
                return self._namespaces[namespace]
        return None

    # Availability and loading

    def resolve_available(self, names: Optional[Iterable[str]] = None) -> List[str]:
        """Currently available packages in dependency order."""
        ordered: List[str] = []
        failed: Set[str] = set()
        for name in (list(names) if names is not None else list(self._packages)):
            try:
                self._visit(name, ordered, failed, [])
            except DependencyError as e:
                self.logger.error("Package dependency error", package=name, error=e.message, **e.details)
        return ordered

    def _visit(self, name: str, ordered: List[str], failed: Set[str], stack: List[str]) -> bool:
        if name in ordered:
            return True
        if name in failed:
            return False

        package = self._packages.get(name)
        if package is None:
            self.logger.warning("Package not registered", package=name)
            failed.add(name)
            return False

        if name in stack:
            failed.update(stack)
            raise DependencyError(
                "Circular dependency detected",
                {"cycle": " -> ".join(stack + [name])}
            )

        if not self._is_available(package):
            self.logger.debug("Package not available", package=name)
            failed.add(name)
            return False

        stack.append(name)
        try:
            for required in package.required_packages():
                if not self._visit(required, ordered, failed, stack):
                    self.logger.warning("Required package unavailable", package=name, required=required)
                    failed.add(name)
                    return False
        finally:
            stack.pop()

        ordered.append(name)
        return True

    def _is_available(self, package: BasePackage) -> bool:
        try:
            return bool(package.is_available())
        except Exception as e:
            self.logger.error("Availability check failed", package=package.name, error=str(e))
            return False

    def load_packages(self, names: Optional[Iterable[str]] = None) -> List[str]:
        """Load available packages (and their dependencies), registering their handlers."""
        for name in self.resolve_available(names):
            if name in self._loaded:
                continue
            package = self._packages[name]
            package.register_handlers(self.handlers)
            for category, resolver in package.placeholder_resolvers().items():
                self.handlers.register_placeholder(category, resolver)
            self.handlers.add_name_resolver(package.resolve_handler_name)
            self._loaded.append(name)
            self.logger.debug("Package loaded", package=name)

        if not self._loaded:
            self.logger.warning("No packages were loaded")
        return list(self._loaded)

    def loaded_package_names(self) -> List[str]:
        return list(self._loaded)

    def is_package_loaded(self, name: str) -> bool:
        return name in self._loaded

    def available_packages(self) -> List[str]:
        """Loaded packages that are still available right now."""
        current = self.resolve_available(self._loaded)
        return [name for name in self._loaded if name in current]

    def placeholder_resolvers(self) -> Dict[str, CategoryResolver]:
        """Category resolvers contributed by the loaded packages."""
        resolvers: Dict[str, CategoryResolver] = {}
        for name in self._loaded:
            resolvers.update(self._packages[name].placeholder_resolvers())
        return resolvers

    # Context

    def build_context(self, extra: Optional[Mapping[str, Any]] = None) -> Context:
        """Compose a fresh context from every available package."""
        context = Context()
        for name in self.resolve_available():
            if name not in self._loaded:
                self.load_packages([name])
            package = self._packages[name]

            providers = package.context_providers()
            if providers:
                for category, provider in providers.items():
                    context.register_provider(category, provider)
                continue

            try:
                fragment = package.build_context_fragment()
            except Exception as e:
                self.logger.error("Error building context fragment", package=name, error=str(e))
                continue
            if fragment:
                context.merge(fragment)

        if extra:
            context.merge(extra)
        return context

    # Rules

    def register_rule(self, rule: Rule, metadata: Optional[RuleMetadata] = None) -> bool:
        """Hand ``rule`` to every package named in its required packages."""
        if metadata is not None:
            rule = rule.with_metadata(
                required_packages=metadata.required_packages or rule.metadata.required_packages,
                event_name=metadata.event_name,
                event_priority=metadata.event_priority,
                type=metadata.type,
            )

        required = rule.metadata.required_packages
        if not required:
            self.logger.error("Rule has no required packages, cannot register", rule_id=rule.id)
            return False

        accepted = False
        for name in required:
            package = self._packages.get(name)
            if package is None:
                self.logger.error("Cannot register rule, package not registered", rule_id=rule.id, package=name)
                continue
            package.register_rule(rule)
            accepted = True
            if name not in self._loaded:
                self.logger.warning("Rule registered with a package that is not loaded yet", rule_id=rule.id, package=name)
        return accepted

    def collect_rules(self, allowed_packages: Optional[Iterable[str]] = None) -> List[Rule]:
        """Rules of available packages, each rule once.

        Rules bound to a host event are left out; they run when the event fires.
        """
        names = self.available_packages()
        if allowed_packages is not None:
            allowed = set(allowed_packages)
            names = [name for name in names if name in allowed]

        seen: Set[str] = set()
        rules: List[Rule] = []
        for name in names:
            try:
                package_rules = self._packages[name].get_rules()
            except Exception as e:
                self.logger.error("Error collecting rules", package=name, error=str(e))
                continue
            for rule in package_rules:
                if rule.metadata.event_name is not None:
                    continue
                key = f"{rule.id}:{id(rule)}"
                if key not in seen:
                    seen.add(key)
                    rules.append(rule)
        return rules

    def engine(self, allowed_packages: Optional[Iterable[str]] = None) -> RuleEngine:
        available = self.available_packages()
        if allowed_packages is not None:
            allowed = set(allowed_packages)
            available = [name for name in available if name in allowed]
        return RuleEngine(self.handlers, self.metrics, available_packages=available)

    def execute_rules(
        self,
        allowed_packages: Optional[Iterable[str]] = None,
        context: Optional[Context] = None,
    ) -> ExecutionResult:
        """Collect rules from available packages and run one pass. Never raises."""
        try:
            if allowed_packages is not None:
                allowed_packages = list(allowed_packages)
                unknown = [name for name in allowed_packages if name not in self._loaded]
                if unknown:
                    self.logger.warning("Allowed packages not loaded, skipping", packages=unknown)

            if context is None:
                context = self.build_context()

            rules = self.collect_rules(allowed_packages)
            if not rules:
                self.logger.info("No rules found for execution")
                return ExecutionResult(context=context.to_dict())

            return self.engine(allowed_packages).execute(rules, context)

        except Exception as e:
            self.logger.error("Error executing rules", error=str(e))
            return ExecutionResult(context=context.to_dict() if context is not None else {}, error=str(e))

    # Lifecycle

    def clear(self) -> None:
        """Clear every package's rules and the loaded list; keep registrations."""
        for package in self._packages.values():
            package.clear_rules()
        self._loaded = []

    def reset(self) -> None:
        """Forget all packages and handlers. Host event bindings are untouched."""
        self.clear()
        self._packages = {}
        self._namespaces = {}
        self.handlers.clear()
