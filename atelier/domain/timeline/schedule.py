from __future__ import annotations

from dataclasses import dataclass, field

from atelier.domain.timeline.schemas import ScheduledPayment
from atelier.settings import Settings, settings as default_settings


@dataclass(frozen=True)
class PaymentSchedule:
    """Milestone plan mapping a stage to its share of the accepted price.

    The terminal stage absorbs whatever the floor-divided earlier stages leave,
    so a full schedule always adds up to the accepted price exactly.
    """

    percentages: dict[str, int] = field(default_factory=dict)
    terminal_stage: str = "delivered"

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "PaymentSchedule":
        config = config or default_settings
        return cls(percentages=dict(config.payment_schedule), terminal_stage=config.terminal_stage)

    def requires_payment(self, stage: str) -> bool:
        return stage in self.percentages

    def _share(self, stage: str, accepted_price_cents: int) -> int:
        return accepted_price_cents * self.percentages[stage] // 100

    def default_amount(self, stage: str, accepted_price_cents: int | None) -> int | None:
        if stage not in self.percentages or not accepted_price_cents:
            return None
        if stage == self.terminal_stage:
            earlier = sum(
                self._share(other, accepted_price_cents)
                for other in self.percentages
                if other != self.terminal_stage
            )
            return accepted_price_cents - earlier
        return self._share(stage, accepted_price_cents)

    def preview(self, accepted_price_cents: int | None) -> list[ScheduledPayment]:
        if not accepted_price_cents:
            return []
        return [
            ScheduledPayment(
                stage=stage,
                percent=percent,
                amount_cents=self.default_amount(stage, accepted_price_cents) or 0,
            )
            for stage, percent in self.percentages.items()
        ]
