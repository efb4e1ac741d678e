"""
Capability policy: one decision function instead of separate admin / public /
paid bots. Pure, no I/O.
"""
from __future__ import annotations

from dataclasses import dataclass

from vpnpass.conversation.steps import Flow
from vpnpass.core.config import settings
from vpnpass.models.access_config import AccessConfig


@dataclass(frozen=True)
class Capabilities:
    is_admin: bool
    flows: frozenset[Flow]
    create_requires_payment: bool
    min_days: int
    max_days: int
    daily_price: int = 0

    def can_start(self, flow: Flow) -> bool:
        return flow in self.flows

    @property
    def can_manage(self) -> bool:
        """One-shot admin commands: list, info, backup, mode toggle."""
        return self.is_admin


NO_CAPABILITIES = Capabilities(
    is_admin=False,
    flows=frozenset(),
    create_requires_payment=False,
    min_days=settings.self_service_min_days,
    max_days=settings.self_service_max_days,
)


def decide_capabilities(config: AccessConfig, actor_id: int) -> Capabilities:
    """
    - administrator: every flow, no payment, admin duration bounds
    - anyone else in public mode: create only, paid when the provider is configured
    - anyone else in private mode: nothing
    """
    if config.is_admin(actor_id):
        return Capabilities(
            is_admin=True,
            flows=frozenset(Flow),
            create_requires_payment=False,
            min_days=settings.admin_min_days,
            max_days=settings.admin_max_days,
        )
    if config.is_public:
        return Capabilities(
            is_admin=False,
            flows=frozenset({Flow.CREATE}),
            create_requires_payment=config.payments_enabled,
            min_days=settings.self_service_min_days,
            max_days=settings.self_service_max_days,
            daily_price=config.daily_price,
        )
    return NO_CAPABILITIES
