"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from wtb_deals.adapters.automation_webhook import HttpxAutomationWebhook
from wtb_deals.adapters.discord_client import DiscordClient, HttpxDiscordClient
from wtb_deals.adapters.supabase_deal_repository import SupabaseDealRepository
from wtb_deals.adapters.supabase_seller_repository import SupabaseSellerRepository
from wtb_deals.config import Settings, parse_id_list
from wtb_deals.services.authorization import ApproverPolicy
from wtb_deals.services.cache import InMemoryCache
from wtb_deals.services.deals import DealRepository, DealService
from wtb_deals.services.expiry import ExpirySweeper
from wtb_deals.services.listings import ListingService
from wtb_deals.services.messages import PaymentInstructions
from wtb_deals.services.notifications import NotificationDispatcher
from wtb_deals.services.sessions import InMemorySessionStore


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    discord_client: DiscordClient
    deal_repository: DealRepository
    session_store: InMemorySessionStore
    notifier: NotificationDispatcher
    deal_service: DealService
    listing_service: ListingService
    expiry_sweeper: ExpirySweeper
    event_cache: InMemoryCache
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    deal_repository = SupabaseDealRepository(
        supabase_client, table_name=resolved_settings.deals_table
    )
    seller_repository = SupabaseSellerRepository(
        supabase_client, table_name=resolved_settings.sellers_table
    )
    discord_client = HttpxDiscordClient.create(resolved_settings.discord_bot_token)
    webhook = HttpxAutomationWebhook.create(resolved_settings.automation_webhook_url)
    approver_role_ids = parse_id_list(resolved_settings.approver_role_ids)
    notifier = NotificationDispatcher(
        discord=discord_client,
        guild_id=resolved_settings.discord_guild_id,
        category_ids=parse_id_list(resolved_settings.deal_category_ids),
        approver_role_ids=approver_role_ids,
        listings_channel_id=resolved_settings.listings_channel_id,
        max_channels_per_category=resolved_settings.max_channels_per_category,
        channel_delete_delay=resolved_settings.channel_delete_delay_seconds,
    )
    session_store = InMemorySessionStore(
        upload_ttl_seconds=resolved_settings.upload_session_ttl_minutes * 60,
        claim_ttl_seconds=resolved_settings.claim_context_ttl_minutes * 60,
    )
    deal_service = DealService(
        deals=deal_repository,
        sellers=seller_repository,
        sessions=session_store,
        notifier=notifier,
        webhook=webhook,
        policy=ApproverPolicy(
            role_ids=frozenset(approver_role_ids),
            user_ids=frozenset(parse_id_list(resolved_settings.approver_user_ids)),
        ),
        payment=PaymentInstructions(
            iban=resolved_settings.payment_iban,
            paypal_email=resolved_settings.payment_paypal_email,
            beneficiary=resolved_settings.payment_beneficiary,
        ),
        evidence_required=resolved_settings.evidence_required,
        evidence_example_url=resolved_settings.evidence_example_url,
        tracking_prefix=resolved_settings.tracking_prefix,
    )
    listing_service = ListingService(deals=deal_repository, notifier=notifier)
    expiry_sweeper = ExpirySweeper(
        deals=deal_repository,
        notifier=notifier,
        expiry_hours=resolved_settings.expiry_hours,
        batch_size=resolved_settings.expiry_batch_size,
    )

    async def close_resources() -> None:
        await discord_client.close()
        await webhook.close()

    return AppContainer(
        settings=resolved_settings,
        discord_client=discord_client,
        deal_repository=deal_repository,
        session_store=session_store,
        notifier=notifier,
        deal_service=deal_service,
        listing_service=listing_service,
        expiry_sweeper=expiry_sweeper,
        event_cache=InMemoryCache(),
        close_resources=close_resources,
    )
