"""
Alert Gate.

Fires only for newly created active signals. Hard blocks:
- event already started
- event more than 24h away (defends against corrupted start times)

Message layout varies by tier.
"""

from datetime import datetime
from typing import Optional, Protocol

import structlog

from config.settings import AlertSettings
from sharpedge.models.schemas import SignalOpportunity, SignalStatus, SignalTier

logger = structlog.get_logger()


class AlertDispatcher(Protocol):
    async def send(self, destination: str, message: str) -> bool: ...


TIER_HEADLINES = {
    SignalTier.ELITE: "🔥 ELITE SIGNAL",
    SignalTier.STRONG: "⚡ STRONG SIGNAL",
    SignalTier.STATIC: "📊 Signal",
}


def format_time_to_start(seconds: float) -> str:
    """3725 -> "1h 2m", 540 -> "9m"."""
    minutes = max(0, int(seconds // 60))
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


class AlertGate:
    """
    Decides whether a signal alert goes out, then formats and sends it.

    Usage:
        gate = AlertGate(settings.alerts, dispatcher)
        sent = await gate.process(signal, created=True, now=now)
    """

    def __init__(self, config: AlertSettings, dispatcher: Optional[AlertDispatcher] = None):
        self.config = config
        self.dispatcher = dispatcher
        self.logger = logger.bind(component="alert_gate")

    def block_reason(self, signal: SignalOpportunity, created: bool, now: datetime) -> Optional[str]:
        """Why an alert must not fire, or None if it should."""
        if not created:
            return "update"
        if signal.status != SignalStatus.ACTIVE:
            return "inactive"
        seconds = (signal.event_start - now).total_seconds()
        if seconds <= 0:
            return "started"
        if seconds > self.config.max_hours_ahead * 3600:
            return "too_far_ahead"
        return None

    def should_alert(self, signal: SignalOpportunity, created: bool, now: datetime) -> bool:
        return self.block_reason(signal, created, now) is None

    def format_message(self, signal: SignalOpportunity, now: datetime) -> str:
        headline = TIER_HEADLINES[signal.tier]
        starts_in = format_time_to_start((signal.event_start - now).total_seconds())
        lines = [
            f"{headline} | {signal.sport.upper()}",
            f"**{signal.event_title}**",
            f"BUY {signal.side.value} {signal.outcome} @ {signal.market_price:.2f}",
            f"Edge: {signal.net_edge:+.1%} net ({signal.raw_edge:+.1%} raw)",
            f"Fair {signal.fair_prob:.1%} vs market {signal.market_price:.1%}",
        ]
        if signal.tier != SignalTier.STATIC:
            lines.append(f"Confidence: {signal.confidence} | Trigger: {signal.trigger.value}")
            lines.append(f"Stake: {signal.stake_fraction:.1%} of bankroll")
        lines.append(f"⏰ Starts in {starts_in} ({signal.urgency.value})")
        return "\n".join(lines)

    async def process(self, signal: SignalOpportunity, created: bool, now: datetime) -> bool:
        """
        Gate and dispatch.

        Returns:
            True if an alert was delivered; dispatch failures are logged,
            never raised
        """
        reason = self.block_reason(signal, created, now)
        if reason is not None:
            if reason != "update":
                self.logger.debug("Alert blocked", signal_id=signal.signal_id, reason=reason)
            return False

        if self.dispatcher is None or not self.config.webhook_url:
            self.logger.debug("No alert destination configured", signal_id=signal.signal_id)
            return False

        message = self.format_message(signal, now)
        try:
            sent = await self.dispatcher.send(self.config.webhook_url, message)
        except Exception as e:
            self.logger.error("Alert dispatch failed", signal_id=signal.signal_id, error=str(e))
            return False

        if sent:
            self.logger.info("📣 Alert sent", signal_id=signal.signal_id, tier=signal.tier.value)
        else:
            self.logger.warning("Alert not delivered", signal_id=signal.signal_id)
        return sent
