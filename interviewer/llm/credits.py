from loguru import logger


class CreditGate:
    """Quota check in front of every paid AI call.

    When disabled every call is allowed. When enabled, each operation costs
    a fixed number of credits; a call that cannot be paid is refused and the
    caller uses its local fallback instead.
    """

    def __init__(self, enabled: bool = False, balance: float = 0.0,
                 costs: dict[str, float] | None = None):
        self.enabled = enabled
        self.balance = balance
        self.costs = costs or {}

    def cost_of(self, operation: str) -> float:
        return self.costs.get(operation, 0.0)

    def try_spend(self, operation: str) -> bool:
        if not self.enabled:
            return True
        cost = self.cost_of(operation)
        if cost > self.balance:
            logger.info("Credits exhausted for '{}' (cost {}, balance {}).",
                        operation, cost, round(self.balance, 2))
            return False
        self.balance = round(self.balance - cost, 2)
        logger.debug("Spent {} credits on '{}', {} left.", cost, operation, self.balance)
        return True
