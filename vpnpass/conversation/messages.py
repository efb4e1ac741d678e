"""
Message texts shared by the engine and the payment poller.
"""
from __future__ import annotations

from vpnpass.conversation.pagination import Page
from vpnpass.models.subscription import DATE_FORMAT, Subscription, SubscriptionStatus, SubscriptionView

STATUS_ICONS = {
    SubscriptionStatus.ACTIVE: "🟢",
    SubscriptionStatus.EXPIRED: "🔴",
    SubscriptionStatus.LOCKED: "🔒",
}


def format_price(amount: int) -> str:
    return f"Rp {amount:,}".replace(",", ".")


def account_details(title: str, sub: Subscription, domain: str) -> str:
    return (
        f"{title}\n\n"
        f"Domain: {domain}\n"
        f"Password: {sub.credential}\n"
        f"Expired: {sub.expires_on.strftime(DATE_FORMAT)}"
    )


def listing_line(view: SubscriptionView) -> str:
    return (
        f"{STATUS_ICONS[view.status]} {view.credential} "
        f"({view.expires_on.strftime(DATE_FORMAT)}, {view.status.value})"
    )


def listing(title: str, page: Page[SubscriptionView]) -> str:
    lines = [f"{title} ({page.total_items} total, page {page.number}/{page.total_pages})", ""]
    lines.extend(listing_line(v) for v in page.items)
    return "\n".join(lines)


def payment_request(credential: str, days: int, price: int, expired_at: str) -> str:
    text = (
        "💳 Payment\n\n"
        f"Password: {credential}\n"
        f"Duration: {days} days\n"
        f"Total: {format_price(price)}\n\n"
        "Scan the QRIS code to pay. The account is created automatically "
        "once the payment is confirmed."
    )
    if expired_at:
        text += f"\nPay before: {expired_at}"
    return text


def payment_failed(order_id: str) -> str:
    return f"❌ Payment {order_id} failed or expired. No account was created."


def payment_unprovisioned(order_id: str, reason: str) -> str:
    return (
        f"⚠️ Payment {order_id} was received but the account could not be created: "
        f"{reason}\nPlease contact the administrator."
    )
