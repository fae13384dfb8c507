from dataclasses import dataclass


@dataclass(frozen=True)
class CreditPackage:
    package_id: str
    name: str
    credits: int
    price: int


CREDIT_PACKAGES: dict[str, CreditPackage] = {
    package.package_id: package
    for package in (
        CreditPackage("basic", "Basic package", credits=1000, price=2500),
        CreditPackage("standard", "Standard package", credits=5000, price=10000),
        CreditPackage("premium", "Premium package", credits=12000, price=20000),
        CreditPackage("enterprise", "Enterprise package", credits=30000, price=45000),
    )
}

ORDER_ID_PREFIX = "ORDER"

# Gateway payment statuses
GATEWAY_STATUS_DONE = "DONE"
GATEWAY_FAILED_STATUSES = frozenset({"ABORTED", "EXPIRED", "CANCELED"})

# Gateway error code for a payment that was already captured
GATEWAY_ALREADY_PROCESSED = "ALREADY_PROCESSED_PAYMENT"

WEBHOOK_SECRET_HEADER = "X-Payment-Webhook-Secret"
