"""Capability policy and input validators: pure logic, no files."""
import pytest

from vpnpass.conversation.policy import decide_capabilities
from vpnpass.conversation.steps import Flow
from vpnpass.conversation.validators import validate_credential, validate_duration
from vpnpass.core.errors import ValidationError
from vpnpass.models.access_config import AccessConfig, AccessMode

ADMIN_ID = 1001
USER_ID = 2002


def _config(**values):
    base = {"admin_id": ADMIN_ID, "mode": AccessMode.PRIVATE}
    base.update(values)
    return AccessConfig(**base)


class TestCapabilities:
    def test_admin_gets_every_flow_without_payment(self):
        caps = decide_capabilities(_config(pakasir_slug="s", pakasir_api_key="k", daily_price=1000), ADMIN_ID)

        assert caps.flows == frozenset(Flow)
        assert caps.create_requires_payment is False
        assert (caps.min_days, caps.max_days) == (1, 9999)
        assert caps.can_manage

    def test_private_mode_denies_everyone_else(self):
        caps = decide_capabilities(_config(), USER_ID)

        assert not caps.can_start(Flow.CREATE)
        assert not caps.can_manage

    def test_public_mode_allows_free_self_service_create(self):
        caps = decide_capabilities(_config(mode=AccessMode.PUBLIC), USER_ID)

        assert caps.flows == frozenset({Flow.CREATE})
        assert caps.create_requires_payment is False
        assert (caps.min_days, caps.max_days) == (1, 365)

    def test_public_mode_with_provider_requires_payment(self):
        config = _config(mode=AccessMode.PUBLIC, pakasir_slug="shop", pakasir_api_key="k", daily_price=1000)

        caps = decide_capabilities(config, USER_ID)

        assert caps.create_requires_payment is True
        assert caps.daily_price == 1000
        assert not caps.can_start(Flow.DELETE)

    def test_unset_admin_id_matches_nobody(self):
        assert decide_capabilities(_config(admin_id=0), 0).is_admin is False


class TestValidators:
    @pytest.mark.parametrize("text", ["abc", "user_01", "A-b-C", "x" * 20, "  padded  "])
    def test_valid_credentials(self, text):
        assert validate_credential(text) == text.strip()

    @pytest.mark.parametrize("text", ["ab", "x" * 21, "has space", "bad!", "ünï", ""])
    def test_invalid_credentials(self, text):
        with pytest.raises(ValidationError):
            validate_credential(text)

    def test_duration_bounds(self):
        assert validate_duration("1", 1, 365) == 1
        assert validate_duration("365", 1, 365) == 365
        for bad in ("0", "366", "-1", "ten", "1.5", ""):
            with pytest.raises(ValidationError):
                validate_duration(bad, 1, 365)

    @pytest.mark.parametrize("text", ["²", "³", "٣", "１０", "3²"])
    def test_duration_rejects_non_ascii_digits(self, text):
        with pytest.raises(ValidationError):
            validate_duration(text, 1, 9999)
