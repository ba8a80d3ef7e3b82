import logging
from typing import Mapping, Optional

from renewal_billing.billing.errors import UnknownPrice
from renewal_billing.models.subscription import PlanName

logger = logging.getLogger(__name__)


def parse_plan_name(value) -> Optional[PlanName]:
    """Case-insensitive match against the plan vocabulary; None if it isn't one."""
    if not isinstance(value, str):
        return None
    wanted = value.strip().lower()
    for plan in PlanName:
        if plan.value.lower() == wanted:
            return plan
    return None


class PlanResolver:
    """
    Maps a Stripe price id to a plan name.

    Lookup order: price table, then `plan_name` in the event metadata,
    then the configured default. The default path is always logged at
    WARNING and counted so an incomplete price table shows up on alerts.
    """

    def __init__(
        self,
        price_plans: Mapping[str, str],
        default_plan: str = PlanName.PROFESSIONAL.value,
        strict: bool = False,
        metrics=None,
    ):
        self.price_plans = {price_id: PlanName(name) for price_id, name in price_plans.items()}
        self.default_plan = PlanName(default_plan)
        self.strict = strict
        self.metrics = metrics

    def resolve(self, price_id: Optional[str], metadata: Optional[Mapping] = None) -> PlanName:
        if price_id and price_id in self.price_plans:
            return self.price_plans[price_id]

        from_metadata = parse_plan_name((metadata or {}).get("plan_name"))
        if from_metadata is not None:
            logger.info(
                "Price id not in plan table, using metadata plan name",
                extra={"price_id": price_id, "plan_name": from_metadata.value},
            )
            self._count_fallback("metadata")
            return from_metadata

        if self.strict:
            self._count_fallback("rejected")
            raise UnknownPrice(price_id)

        logger.warning(
            "Unmapped price id %s and no metadata plan name; defaulting to %s",
            price_id,
            self.default_plan.value,
            extra={"price_id": price_id, "plan_name": self.default_plan.value},
        )
        self._count_fallback("default")
        return self.default_plan

    def _count_fallback(self, reason):
        if self.metrics is not None:
            self.metrics.record_plan_fallback(reason)
