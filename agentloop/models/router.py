# ==============================
# Backend Router
# ==============================
"""
Backend selection.

Goals:
- Centralize the provider decision behind one function.
- Avoid vendor-specific imports outside providers/.
- No env reads here. Settings are injected by the caller.

Extra providers are plugged in through `factories` (name -> callable(model_id)).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional

from agentloop.config.schema import Settings
from agentloop.contracts.errors import ConfigurationError
from agentloop.models.backend import GenerationBackend
from agentloop.models.providers.echo_provider import EchoBackend
from agentloop.models.providers.scripted_provider import ScriptedBackend

BackendFactory = Callable[[str], GenerationBackend]

DEFAULT_FACTORIES: Dict[str, BackendFactory] = {
    "echo": lambda model_id: EchoBackend(model_id=model_id),
    "scripted": lambda model_id: ScriptedBackend(model_id=model_id),
}


@dataclass(frozen=True)
class ModelSelection:
    provider: str
    model: str


def select_model(settings: Settings, *, provider: Optional[str] = None, model: Optional[str] = None) -> ModelSelection:
    return ModelSelection(
        provider=(provider or settings.models.default_provider).strip().lower(),
        model=model or settings.models.default_model,
    )


def build_backend(
    settings: Settings,
    *,
    provider: Optional[str] = None,
    model: Optional[str] = None,
    factories: Optional[Dict[str, BackendFactory]] = None,
) -> GenerationBackend:
    selection = select_model(settings, provider=provider, model=model)
    table = dict(DEFAULT_FACTORIES)
    table.update(factories or {})
    factory = table.get(selection.provider)
    if factory is None:
        raise ConfigurationError(f"Unknown model provider: {selection.provider}")
    return factory(selection.model)
