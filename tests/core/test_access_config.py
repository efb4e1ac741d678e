"""AccessConfigService: load, domain fallback, admin-only mode toggle."""
import json

import pytest

from vpnpass.core.errors import AccessDenied, PersistenceError
from vpnpass.models.access_config import AccessMode
from vpnpass.services.access_config.settings_service import AccessConfigService

ADMIN_ID = 1001


def test_load_reads_bot_config(access_config):
    config = access_config.load()

    assert config.admin_id == ADMIN_ID
    assert config.mode == AccessMode.PRIVATE
    assert config.payments_enabled is False


def test_domain_falls_back_to_domain_file(data_dir, lock, write_access_config):
    write_access_config(domain="")
    (data_dir / "domain").write_text("tunnel.example.org\n")

    service = AccessConfigService(data_dir / "bot-config.json", data_dir / "domain", lock=lock)

    assert service.display_domain() == "tunnel.example.org"
    assert service.current.domain == ""


def test_invalid_config_is_persistence_error(data_dir, lock, write_access_config):
    write_access_config(daily_price=-5)
    service = AccessConfigService(data_dir / "bot-config.json", data_dir / "domain", lock=lock)

    with pytest.raises(PersistenceError):
        service.load()


def test_toggle_mode_keeps_unknown_keys(access_config, data_dir, write_access_config):
    write_access_config(custom_flag=True)
    access_config.load()

    access_config.toggle_mode(ADMIN_ID)

    saved = json.loads((data_dir / "bot-config.json").read_text())
    assert saved["mode"] == "public"
    assert saved["custom_flag"] is True
    assert access_config.current.is_public


def test_toggle_mode_is_admin_only(access_config):
    with pytest.raises(AccessDenied):
        access_config.toggle_mode(42)

    assert access_config.current.mode == AccessMode.PRIVATE


def test_toggle_does_not_pin_the_domain_file(data_dir, lock, write_access_config):
    write_access_config(domain="")
    (data_dir / "domain").write_text("old.example.com\n")
    service = AccessConfigService(data_dir / "bot-config.json", data_dir / "domain", lock=lock)

    service.toggle_mode(ADMIN_ID)
    (data_dir / "domain").write_text("new.example.com\n")

    saved = json.loads((data_dir / "bot-config.json").read_text())
    assert saved["domain"] == ""
    assert service.load().domain == ""
    assert service.display_domain() == "new.example.com"


def test_explicit_domain_wins_over_domain_file(access_config, data_dir):
    (data_dir / "domain").write_text("file.example.com\n")

    assert access_config.display_domain() == "vpn.example.com"
