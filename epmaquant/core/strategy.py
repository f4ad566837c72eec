"""
Algorithm roles and the Strategy registry.

A correction is assembled from several cooperating algorithms (the matrix
correction itself, the mass-absorption coefficients it needs, the iteration
scheme that drives the solver). A :class:`Strategy` maps each
:class:`AlgorithmRole` to one implementation so that any single algorithm can
be exchanged while every other part of the calculation stays the same.

Example
-------
>>> from epmaquant.core.strategy import AlgorithmRole, Strategy
>>> from epmaquant.quant.mac import ConstantMAC
>>> st = Strategy()
>>> st.add_algorithm(AlgorithmRole.MASS_ABSORPTION, ConstantMAC(1500.0))
>>> st.get_algorithm(AlgorithmRole.MASS_ABSORPTION)
ConstantMAC(value=1500.0)
"""

from enum import Enum
from importlib import import_module
from typing import Any, Dict, List, Optional

from epmaquant.core.exceptions import InvalidConfigurationError, MissingAlgorithmError
from epmaquant.core.logging_config import get_logger

logger = get_logger("core.strategy")


class AlgorithmRole(Enum):
    """
    Abstract roles an algorithm can fill.

    The value of each member names the interface class an implementation must
    derive from. The interface is imported on first use.
    """

    CORRECTION = "epmaquant.quant.correction:CorrectionAlgorithm"
    MASS_ABSORPTION = "epmaquant.quant.mac:MassAbsorptionCoefficient"
    ITERATION = "epmaquant.quant.iteration:IterationAlgorithm"

    @property
    def interface(self) -> type:
        """The abstract base class implementing this role."""
        module_name, cls_name = self.value.split(":")
        return getattr(import_module(module_name), cls_name)


class Strategy:
    """
    One-to-one mapping between algorithm roles and implementations.
    """

    def __init__(self, algorithms: Optional[Dict[AlgorithmRole, Any]] = None):
        self._map: Dict[AlgorithmRole, Any] = {}
        for role, impl in (algorithms or {}).items():
            self.add_algorithm(role, impl)

    def add_algorithm(self, role: AlgorithmRole, impl: Any) -> None:
        """
        Register an implementation for a role.

        Parameters
        ----------
        role : AlgorithmRole
            Role to fill
        impl : object
            Instance deriving from ``role.interface``

        Raises
        ------
        InvalidConfigurationError
            If ``impl`` does not implement the role
        """
        if not isinstance(role, AlgorithmRole):
            raise InvalidConfigurationError(f"{role!r} is not an AlgorithmRole")
        if not isinstance(impl, role.interface):
            raise InvalidConfigurationError(
                f"{impl!r} does not implement {role.interface.__name__} ({role.name})"
            )
        self._map[role] = impl
        logger.debug(f"Registered {impl!r} for {role.name}")

    def get_algorithm(self, role: AlgorithmRole) -> Optional[Any]:
        """Return the implementation registered for ``role`` or None."""
        return self._map.get(role)

    def remove_algorithm(self, role: AlgorithmRole) -> None:
        self._map.pop(role, None)

    def apply(self, other: "Strategy") -> None:
        """
        Override the roles already defined here with those from ``other``.

        Roles in ``other`` that are not present in this strategy are ignored.
        """
        for role, impl in other._map.items():
            if role in self._map:
                self._map[role] = impl

    def add_all(self, other: "Strategy") -> None:
        """Add every mapping in ``other``, overriding existing ones."""
        self._map.update(other._map)

    def roles(self) -> List[AlgorithmRole]:
        return list(self._map.keys())

    def copy(self) -> "Strategy":
        res = Strategy()
        res._map.update(self._map)
        return res

    def __contains__(self, role: AlgorithmRole) -> bool:
        return role in self._map

    def __len__(self) -> int:
        return len(self._map)

    def __repr__(self) -> str:
        items = ", ".join(f"{r.name}={impl!r}" for r, impl in self._map.items())
        return f"Strategy({items})"


class AlgorithmUser:
    """
    Mixin for objects that depend on other algorithms.

    Subclasses describe their dependencies in :meth:`default_strategy`. Users
    substitute dependencies with :meth:`apply_strategy`, which only replaces
    roles the object actually uses.
    """

    def __init__(self, strategy: Optional[Strategy] = None):
        self._strategy = self.default_strategy()
        if strategy is not None:
            self._strategy.apply(strategy)

    def default_strategy(self) -> Strategy:
        """Return the algorithms this object uses unless told otherwise."""
        return Strategy()

    @property
    def strategy(self) -> Strategy:
        return self._strategy.copy()

    def apply_strategy(self, strategy: Strategy) -> None:
        self._strategy.apply(strategy)

    def set_algorithm(self, role: AlgorithmRole, impl: Any) -> None:
        """Register ``impl`` for ``role`` even if the role was not a default."""
        self._strategy.add_algorithm(role, impl)

    def get_algorithm(self, role: AlgorithmRole) -> Optional[Any]:
        return self._strategy.get_algorithm(role)

    def require_algorithm(self, role: AlgorithmRole) -> Any:
        """
        Return the implementation for ``role``.

        Raises
        ------
        MissingAlgorithmError
            If no implementation is registered
        """
        impl = self._strategy.get_algorithm(role)
        if impl is None:
            raise MissingAlgorithmError(
                f"{type(self).__name__} requires an algorithm for {role.name}"
            )
        return impl
