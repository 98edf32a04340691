"""FastAPI dependency injection providers.

Services are resolved from app.state, which the lifespan populates at
startup. Tests override ``get_orchestrator`` to inject fake sources.
"""

from functools import lru_cache

from fastapi import Request

from caselaw.core.config import Settings
from caselaw.services.search.orchestrator import UnifiedOrchestrator


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached application settings singleton."""
    return Settings()


def get_settings_from_app(request: Request) -> Settings:
    """Retrieve settings stored on the running app instance.

    Preferred over the cached version inside route handlers since it
    respects the settings the app was actually started with.
    """
    settings: Settings = request.app.state.settings
    return settings


def get_orchestrator(request: Request) -> UnifiedOrchestrator:
    """Retrieve the shared orchestrator from app state."""
    orchestrator: UnifiedOrchestrator = request.app.state.orchestrator
    return orchestrator
