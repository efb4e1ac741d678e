from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from vpnpass.core.config import settings
from vpnpass.core.errors import AccessDenied, PersistenceError
from vpnpass.models.access_config import AccessConfig, AccessMode
from vpnpass.storage.files import atomic_write_json, read_json, read_text
from vpnpass.storage.lock import StoreLock

logger = logging.getLogger(__name__)


class AccessConfigService:
    """
    Loads and saves bot-config.json. The loaded config is cached; every
    flow start reads `current`, only the administrator mutates it.
    """

    def __init__(
        self,
        path: Path | None = None,
        domain_path: Path | None = None,
        lock: StoreLock | None = None,
    ) -> None:
        self.path = Path(path or settings.bot_config_path)
        self.domain_path = Path(domain_path or settings.domain_path)
        self.mutex = lock or StoreLock()
        self._config: AccessConfig | None = None

    def load(self) -> AccessConfig:
        with self.mutex:
            raw = read_json(self.path, {})
        if not isinstance(raw, dict):
            raise PersistenceError(f"{self.path.name} must contain an object")
        try:
            config = AccessConfig.model_validate(raw)
        except PydanticValidationError as e:
            raise PersistenceError(f"{self.path.name} is invalid: {e.error_count()} error(s)") from e
        self._config = config
        return config

    @property
    def current(self) -> AccessConfig:
        if self._config is None:
            return self.load()
        return self._config

    def display_domain(self) -> str:
        """bot-config domain, else the domain file written by the setup script (read fresh)."""
        config = self.current
        return config.display_domain(fallback="" if config.domain else read_text(self.domain_path))

    def save(self, config: AccessConfig) -> AccessConfig:
        with self.mutex:
            raw = read_json(self.path, {})
            if not isinstance(raw, dict):
                raw = {}
            raw.update(config.model_dump(mode="json"))
            atomic_write_json(self.path, raw)
        self._config = config
        return config

    def toggle_mode(self, actor_id: int) -> AccessConfig:
        config = self.current
        if not config.is_admin(actor_id):
            raise AccessDenied("Only the administrator can change the mode")
        new_mode = AccessMode.PRIVATE if config.is_public else AccessMode.PUBLIC
        updated = self.save(config.model_copy(update={"mode": new_mode}))
        logger.info("access_mode_changed", extra={"actor_id": actor_id, "status": new_mode.value})
        return updated
