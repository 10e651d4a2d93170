"""Mock data generator for demos and manual testing.

Seeds a DataStore with the kind of operational noise a headless-commerce
platform sees mid-migration: merchants in various migration stages, support
tickets, failing API calls, undelivered webhooks and failed checkouts.
Timestamps are spread over the recent past so the Observer's window picks up
only part of it, the way it would in production.

simulate_migration_crisis() layers a correlated burst on top. The first three
merchants hit the same checkout endpoint with 500s, their checkouts time out
and each files an urgent ticket. One agent cycle over that data exercises
every phase end to end.

Pass a seeded random.Random for reproducible output.
"""

import logging
import random
import uuid
from dataclasses import dataclass, field
from datetime import timedelta

from store.base import (
    AGENT_ACTIONS,
    AGENT_PATTERNS,
    AGENT_STATE,
    CHECKOUT_SESSIONS,
    INCIDENTS,
    MERCHANT_API_LOGS,
    MERCHANTS,
    REASONING_LOGS,
    SUPPORT_TICKETS,
    WEBHOOK_LOGS,
    DataStore,
)
from utils.clock import utcnow

logger = logging.getLogger(__name__)

CRISIS_ENDPOINT = "/api/v2/checkout/create"
CRISIS_MERCHANT_COUNT = 3

_ALL_COLLECTIONS = (
    REASONING_LOGS,
    AGENT_ACTIONS,
    INCIDENTS,
    AGENT_PATTERNS,
    AGENT_STATE,
    SUPPORT_TICKETS,
    CHECKOUT_SESSIONS,
    WEBHOOK_LOGS,
    MERCHANT_API_LOGS,
    MERCHANTS,
)

# ── Templates ─────────────────────────────────────────────────────────────────

MOCK_MERCHANTS = [
    {"store_name": "TechGadgets Pro", "store_slug": "techgadgets-pro", "email": "support@techgadgets.com", "status": "active", "migration_status": "completed", "migration_stage": 100},
    {"store_name": "Fashion Forward", "store_slug": "fashion-forward", "email": "help@fashionforward.io", "status": "active", "migration_status": "in_progress", "migration_stage": 75},
    {"store_name": "Home & Living", "store_slug": "home-living", "email": "contact@homeliving.store", "status": "migrating", "migration_status": "in_progress", "migration_stage": 45},
    {"store_name": "Sports Elite", "store_slug": "sports-elite", "email": "team@sportselite.com", "status": "active", "migration_status": "completed", "migration_stage": 100},
    {"store_name": "Organic Foods Co", "store_slug": "organic-foods", "email": "hello@organicfoods.co", "status": "onboarding", "migration_status": "not_started", "migration_stage": 0},
    {"store_name": "Digital Downloads", "store_slug": "digital-downloads", "email": "support@digitaldownloads.net", "status": "active", "migration_status": "completed", "migration_stage": 100},
    {"store_name": "Pet Paradise", "store_slug": "pet-paradise", "email": "woof@petparadise.shop", "status": "migrating", "migration_status": "in_progress", "migration_stage": 60},
    {"store_name": "Artisan Crafts", "store_slug": "artisan-crafts", "email": "create@artisancrafts.com", "status": "active", "migration_status": "completed", "migration_stage": 100},
]

TICKET_TEMPLATES = [
    # Migration
    {"subject": "Checkout not working after migration", "body": "After completing the migration to headless, our checkout is completely broken. Customers can add items to cart but get a 500 error when trying to pay.", "category": "checkout", "priority": "urgent"},
    {"subject": "API returns 401 on all requests", "body": "Since switching to the new headless API, all our requests return 401 Unauthorized even though we set up the API keys correctly.", "category": "api", "priority": "high"},
    {"subject": "Webhooks stopped working", "body": "Our order webhooks were working fine before migration but now we dont receive any webhook calls. Orders are coming through but our fulfillment system isnt getting notified.", "category": "webhook", "priority": "high"},
    {"subject": "Product images not loading", "body": "After migration, none of our product images are loading on the storefront. The URLs seem different than before.", "category": "migration", "priority": "medium"},
    {"subject": "How to configure webhooks in headless?", "body": "I cannot find documentation on how to set up webhooks for the new headless platform. Where do I configure these?", "category": "webhook", "priority": "low"},
    # Checkout and payments
    {"subject": "Payment failed but order created", "body": "Customer was charged on Stripe but the order shows as failed in our dashboard. This has happened 3 times today.", "category": "payment", "priority": "urgent"},
    {"subject": "Stripe connection lost", "body": "Getting \"Stripe not connected\" error when customers try to checkout. Was working yesterday.", "category": "payment", "priority": "urgent"},
    {"subject": "Cart total mismatch", "body": "The cart total shown to customers doesnt match what we receive in the order. Discounts seem to not be applying correctly.", "category": "checkout", "priority": "high"},
    # API
    {"subject": "Rate limiting errors", "body": "We are getting 429 Too Many Requests errors during peak hours. Our traffic hasnt increased.", "category": "api", "priority": "medium"},
    {"subject": "Slow API responses", "body": "API responses that used to take 200ms are now taking 3-5 seconds. This is affecting our page load times.", "category": "api", "priority": "high"},
    {"subject": "Product sync failing", "body": "The product sync API keeps timing out when we try to update our catalog of 10,000 products.", "category": "api", "priority": "medium"},
    # General
    {"subject": "Need documentation for inventory API", "body": "Looking for docs on how to use the inventory management API. Cant find it in the developer portal.", "category": "general", "priority": "low"},
    {"subject": "Feature request: bulk order export", "body": "Would be great to have a bulk export option for orders. Currently can only export one at a time.", "category": "general", "priority": "low"},
]

API_ERROR_TEMPLATES = [
    {"endpoint": "/api/v2/checkout/create", "method": "POST", "status_code": 500, "error_message": "Internal server error: database connection timeout"},
    {"endpoint": "/api/v2/products", "method": "GET", "status_code": 401, "error_message": "Invalid or expired API key"},
    {"endpoint": "/api/v2/orders", "method": "POST", "status_code": 400, "error_message": "Invalid shipping address format"},
    {"endpoint": "/api/v2/webhooks/register", "method": "POST", "status_code": 422, "error_message": "Webhook URL not reachable"},
    {"endpoint": "/api/v2/inventory/update", "method": "PUT", "status_code": 504, "error_message": "Gateway timeout"},
    {"endpoint": "/api/v2/cart/add", "method": "POST", "status_code": 500, "error_message": "Failed to calculate tax"},
    {"endpoint": "/api/v2/checkout/confirm", "method": "POST", "status_code": 402, "error_message": "Payment declined"},
]

WEBHOOK_FAILURE_TEMPLATES = [
    {"event_type": "order.created", "last_error": "Connection refused: ECONNREFUSED"},
    {"event_type": "order.fulfilled", "last_error": "SSL certificate error"},
    {"event_type": "payment.captured", "last_error": "Endpoint returned 500"},
    {"event_type": "inventory.updated", "last_error": "Request timeout after 30s"},
    {"event_type": "customer.created", "last_error": "Invalid response format"},
]

CHECKOUT_FAILURE_TEMPLATES = [
    {"failure_reason": "Payment declined by card issuer", "error_code": "card_declined"},
    {"failure_reason": "Insufficient funds", "error_code": "insufficient_funds"},
    {"failure_reason": "Card expired", "error_code": "expired_card"},
    {"failure_reason": "Stripe API error: rate limit exceeded", "error_code": "rate_limit"},
    {"failure_reason": "Invalid shipping address", "error_code": "invalid_address"},
    {"failure_reason": "Cart validation failed: product out of stock", "error_code": "out_of_stock"},
    {"failure_reason": "Tax calculation service unavailable", "error_code": "tax_service_error"},
]


@dataclass
class MockDataCounts:
    """What generate() created."""

    merchants: list[str] = field(default_factory=list)
    tickets: int = 0
    api_errors: int = 0
    webhook_failures: int = 0
    checkout_failures: int = 0


class MockDataGenerator:
    """Writes demo records into a DataStore.

    Attributes:
        store: Target store. Every collection the agent reads is written here.
        rng: Source of randomness. Seed it for deterministic data.
    """

    def __init__(self, store: DataStore, rng: random.Random | None = None) -> None:
        self.store = store
        self.rng = rng or random.Random()

    async def generate(
        self,
        merchants: int = 8,
        tickets: int = 15,
        api_errors: int = 20,
        webhook_failures: int = 10,
        checkout_failures: int = 12,
    ) -> MockDataCounts:
        """Seed every source collection.

        merchants is capped at the number of merchant templates. Records are
        attached to random merchants, so nothing else is created when no
        merchant is.
        """
        counts = MockDataCounts()

        for template in MOCK_MERCHANTS[:merchants]:
            stage = template["migration_stage"]
            [record] = await self.store.insert(MERCHANTS, {
                **template,
                "api_key_configured": self.rng.random() > 0.3,
                "webhook_configured": self.rng.random() > 0.4,
                "stripe_connected": self.rng.random() > 0.2,
                "migration_started_at": self._hours_ago(168) if stage > 0 else None,
                "migration_completed_at": self._hours_ago(48) if stage == 100 else None,
            })
            counts.merchants.append(record["id"])

        if not counts.merchants:
            logger.warning("No merchants generated; skipping dependent records.")
            return counts

        ids = counts.merchants
        counts.tickets = await self._insert(SUPPORT_TICKETS, [
            self._ticket(self.rng.choice(TICKET_TEMPLATES), self.rng.choice(ids))
            for _ in range(tickets)
        ])
        counts.api_errors = await self._insert(MERCHANT_API_LOGS, [
            {
                **self.rng.choice(API_ERROR_TEMPLATES),
                "merchant_id": self.rng.choice(ids),
                "duration_ms": self.rng.randint(100, 5099),
                "created_at": self._hours_ago(2),
            }
            for _ in range(api_errors)
        ])
        counts.webhook_failures = await self._insert(WEBHOOK_LOGS, [
            {
                **self.rng.choice(WEBHOOK_FAILURE_TEMPLATES),
                "merchant_id": self.rng.choice(ids),
                "payload": {"order_id": f"order_{uuid.uuid4().hex[:8]}"},
                "delivery_status": "failed",
                "retry_count": self.rng.randint(1, 5),
                "created_at": self._hours_ago(4),
            }
            for _ in range(webhook_failures)
        ])
        counts.checkout_failures = await self._insert(CHECKOUT_SESSIONS, [
            {
                **self.rng.choice(CHECKOUT_FAILURE_TEMPLATES),
                "merchant_id": self.rng.choice(ids),
                "customer_email": f"customer{i}@example.com",
                "cart_total": self.rng.randint(20, 519),
                "status": "failed",
                "created_at": self._hours_ago(6),
            }
            for i in range(checkout_failures)
        ])

        logger.info(
            "Mock data generated: %d merchants, %d tickets, %d API errors, "
            "%d webhook failures, %d checkout failures.",
            len(counts.merchants),
            counts.tickets,
            counts.api_errors,
            counts.webhook_failures,
            counts.checkout_failures,
        )
        return counts

    async def clear(self) -> int:
        """Delete every record the agent reads or writes. Returns the count."""
        removed = 0
        for collection in _ALL_COLLECTIONS:
            removed += await self.store.delete(collection)
        logger.info("Mock data cleared: %d record(s) removed.", removed)
        return removed

    async def simulate_migration_crisis(self, merchant_ids: list[str]) -> list[str]:
        """Create a correlated checkout outage for the first three merchants.

        Per affected merchant: five 500s from the checkout endpoint in the
        last 30 minutes, three gateway-timeout checkouts in the last 15 and
        one urgent ticket stamped now. Returns the affected merchant ids.
        """
        affected = merchant_ids[:CRISIS_MERCHANT_COUNT]

        for merchant_id in affected:
            await self._insert(MERCHANT_API_LOGS, [
                {
                    "merchant_id": merchant_id,
                    "endpoint": CRISIS_ENDPOINT,
                    "method": "POST",
                    "status_code": 500,
                    "error_message": "Internal server error: payment processor unreachable",
                    "duration_ms": 30000,
                    "created_at": self._hours_ago(0.5),
                }
                for _ in range(5)
            ])
            await self._insert(CHECKOUT_SESSIONS, [
                {
                    "merchant_id": merchant_id,
                    "customer_email": f"crisis_customer{i}@example.com",
                    "cart_total": self.rng.randint(50, 249),
                    "status": "failed",
                    "failure_reason": "Payment processor connection timeout",
                    "error_code": "gateway_timeout",
                    "created_at": self._hours_ago(0.25),
                }
                for i in range(3)
            ])
            await self.store.insert(SUPPORT_TICKETS, {
                "merchant_id": merchant_id,
                "subject": "URGENT: All checkouts failing since 10 minutes ago",
                "body": (
                    "Our checkout has completely stopped working. Every customer is getting "
                    "an error. This is costing us thousands in lost sales. Please help immediately!"
                ),
                "category": "checkout",
                "priority": "urgent",
                "status": "open",
                "source": "chat",
                "created_at": utcnow(),
            })

        logger.warning("Migration crisis simulated for %d merchant(s).", len(affected))
        return affected

    # ── Private helpers ───────────────────────────────────────────────────────

    def _ticket(self, template: dict, merchant_id: str) -> dict:
        return {
            **template,
            "merchant_id": merchant_id,
            "status": self.rng.choice(["open", "open", "open", "in_progress", "waiting"]),
            "source": self.rng.choice(["email", "email", "chat", "phone"]),
            "created_at": self._hours_ago(24),
        }

    def _hours_ago(self, hours: float):
        """A random timestamp within the last `hours` hours."""
        return utcnow() - timedelta(hours=self.rng.random() * hours)

    async def _insert(self, collection: str, records: list[dict]) -> int:
        if not records:
            return 0
        return len(await self.store.insert(collection, records))
