from typing import Optional, Dict, Any, List
import logging

from orgpay.schemas.paypal import PlanSnapshot
from orgpay.schemas.payments import PlanView
from orgpay.services.paypal_service import paypal_service
from orgpay.services.order_service import format_amount
from orgpay.core.exceptions import PayPalAPIError, UpstreamUnavailableError, ValidationError

logger = logging.getLogger(__name__)

PLAN_INTERVALS = {"DAY", "WEEK", "MONTH", "YEAR"}


class PlanService:
    """Billing plans in the platform's PayPal catalog"""

    @staticmethod
    def _cycle(interval: str, tenure_type: str, sequence: int, total_cycles: int, price: str) -> Dict[str, Any]:
        return {
            "frequency": {"interval_unit": interval, "interval_count": 1},
            "tenure_type": tenure_type,
            "sequence": sequence,
            "total_cycles": total_cycles,
            "pricing_scheme": {"fixed_price": {"value": price, "currency_code": "USD"}},
        }

    async def create_plan(
        self,
        name: str,
        description: str,
        price: str,
        interval: str,
        trial_price: Optional[str] = None,
        trial_duration: Optional[int] = None
    ) -> PlanView:
        """Create a catalog product and a plan for it, with an optional trial cycle first"""
        if not name or not description or not price or not interval:
            raise ValidationError("Required fields missing")

        interval_unit = interval.upper()
        if interval_unit not in PLAN_INTERVALS:
            raise ValidationError(f"Invalid interval: {interval}")
        price = format_amount(price, "price")

        product = await paypal_service.create_product(name, description)

        billing_cycles = []
        has_trial = bool(trial_price and trial_duration)
        if has_trial:
            billing_cycles.append(
                self._cycle(interval_unit, "TRIAL", 1, int(trial_duration), format_amount(trial_price, "trial price"))
            )
        # total_cycles 0 bills until cancelled
        billing_cycles.append(self._cycle(interval_unit, "REGULAR", 2 if has_trial else 1, 0, price))

        plan = await paypal_service.create_plan({
            "product_id": product.get("id"),
            "name": name,
            "description": description,
            "billing_cycles": billing_cycles,
            "payment_preferences": {
                "auto_bill_outstanding": True,
                "payment_failure_threshold": 3,
            },
        })
        logger.info(f"Created plan {plan.get('id')} ({name}, {price}/{interval.lower()})")

        return PlanView(
            id=plan.get("id") or "",
            name=plan.get("name"),
            description=plan.get("description"),
            status=plan.get("status"),
            price=price,
            interval=interval.lower(),
        )

    async def get_plan(self, plan_id: str) -> Dict[str, Any]:
        if not plan_id:
            raise ValidationError("Plan ID is required")
        return await paypal_service.get_plan(plan_id)

    async def get_plan_details(self, plan_id: Optional[str], access_token: Optional[str] = None) -> Optional[PlanSnapshot]:
        """Plan name, price and interval; None when PayPal can't tell us"""
        if not plan_id:
            return None
        try:
            return PlanSnapshot.from_payload(await paypal_service.get_plan(plan_id, access_token=access_token))
        except (PayPalAPIError, UpstreamUnavailableError) as e:
            logger.warning(f"⚠️ Plan details unavailable for {plan_id}: {e.detail}")
            return None

    async def list_plans(self) -> List[PlanView]:
        """Active plans, each priced from its REGULAR cycle"""
        plans = await paypal_service.list_plans()

        views = []
        for plan in plans:
            details = await self.get_plan_details(plan.get("id"))
            if details is None or details.price is None:
                continue
            views.append(
                PlanView(
                    id=details.plan_id,
                    name=plan.get("name") or details.name,
                    description=plan.get("description") or details.description,
                    status=details.status,
                    price=details.price,
                    interval=details.interval,
                )
            )
        return views


# Create a singleton instance
plan_service = PlanService()
