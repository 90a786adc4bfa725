"""Lazy loading helpers for serverless cold starts.

Heavy dependencies (the Supabase client, Google service-account credentials)
are only imported and constructed when a request actually needs them.
"""

import importlib
import logging
import threading
import time
from datetime import datetime, timezone
from types import ModuleType
from typing import Any, Dict, Iterable, Optional

from .config import Config


logger = logging.getLogger(__name__)

FCM_SCOPES = ["https://www.googleapis.com/auth/firebase.messaging"]
COMMON_DEPENDENCIES = ("supabase", "jwt")

_module_cache: Dict[str, ModuleType] = {}
_module_lock = threading.Lock()

_STARTED_AT = time.time()
_STARTED_AT_MONOTONIC = time.monotonic()


def lazy_import(name: str) -> ModuleType:
    """Import ``name`` on first use and return the cached module afterwards."""
    module = _module_cache.get(name)
    if module is not None:
        return module
    with _module_lock:
        module = _module_cache.get(name)
        if module is None:
            module = importlib.import_module(name)
            _module_cache[name] = module
    return module


def loaded_modules() -> list[str]:
    return sorted(_module_cache)


class LazyLoader:
    """Cached accessors for expensive clients."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._supabase: Optional[Any] = None
        self._google_credentials: Optional[Any] = None

    def get_supabase(self):
        if self._supabase is None:
            with self._lock:
                if self._supabase is None:
                    supabase = lazy_import("supabase")
                    self._supabase = supabase.create_client(Config.SUPABASE_URL, Config.SUPABASE_SERVICE_KEY)
                    logger.info("Supabase client initialised")
        return self._supabase

    def get_google_credentials(self):
        """Return refreshed service-account credentials for FCM, or None when unconfigured."""
        if not Config.GOOGLE_APPLICATION_CREDENTIALS:
            return None
        if self._google_credentials is None:
            with self._lock:
                if self._google_credentials is None:
                    service_account = lazy_import("google.oauth2.service_account")
                    self._google_credentials = service_account.Credentials.from_service_account_file(
                        Config.GOOGLE_APPLICATION_CREDENTIALS,
                        scopes=FCM_SCOPES,
                    )
        credentials = self._google_credentials
        if not credentials.valid:
            transport = lazy_import("google.auth.transport.requests")
            credentials.refresh(transport.Request())
        return credentials

    def reset(self) -> None:
        with self._lock:
            self._supabase = None
            self._google_credentials = None


loader = LazyLoader()


def preload_common_dependencies(names: Iterable[str] = COMMON_DEPENDENCIES) -> threading.Thread:
    """Import commonly used modules in a background thread after startup."""

    def _preload() -> None:
        for name in names:
            try:
                lazy_import(name)
            except ImportError as e:
                logger.warning(f"Dependency preload failed for {name} (non-critical): {e}")
        logger.info(f"Common dependencies preloaded: {', '.join(loaded_modules())}")

    thread = threading.Thread(target=_preload, name="dependency-preload", daemon=True)
    thread.start()
    return thread


def startup_info() -> Dict[str, Any]:
    return {
        "started_at": datetime.fromtimestamp(_STARTED_AT, tz=timezone.utc).isoformat(),
        "uptime_seconds": int(time.monotonic() - _STARTED_AT_MONOTONIC),
    }
