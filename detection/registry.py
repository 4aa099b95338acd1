"""Perception backend registry.

The pipeline selects its person detector by name from configuration
(``detection.backend``). Backends register themselves with
`register_backend` at import time.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List

DetectorFactory = Callable[..., Any]

_BACKENDS: Dict[str, DetectorFactory] = {}


def register_backend(name: str) -> Callable[[DetectorFactory], DetectorFactory]:
    """Decorator registering a detector factory under ``name``.

    Names are case-insensitive. Registering the same name twice is an error.
    """

    def decorator(factory: DetectorFactory) -> DetectorFactory:
        key = name.lower()
        if key in _BACKENDS:
            raise ValueError(f"Person detector backend '{name}' is already registered")
        _BACKENDS[key] = factory
        return factory

    return decorator


def build_person_detector(name: str, **kwargs: Any) -> Any:
    """Instantiate the backend registered as ``name``.

    Raises
    ------
    KeyError
        If no backend is registered under that name.
    """
    factory = _BACKENDS.get(name.lower())
    if factory is None:
        available = ", ".join(available_backends()) or "none"
        raise KeyError(f"Unknown person detector backend '{name}'. Available: {available}")
    return factory(**kwargs)


def available_backends() -> List[str]:
    """Return registered backend names, sorted."""
    return sorted(_BACKENDS)
