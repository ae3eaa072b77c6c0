"""
Wiring of the channel adapters, called once during application start-up.

get_channel_credentials: reads marketplace credentials from settings and keeps
only the channels whose essential credentials are present.
build_channel_adapters: instantiates one adapter per configured channel and
returns them keyed by ChannelName. PWA is never registered.
"""

import logging
from typing import Dict, Optional, Type

from app.core.config import Settings, get_settings
from app.core.enums import ChannelName
from app.integrations.base import ChannelAdapter
from app.integrations.platforms.amazon import AmazonChannel
from app.integrations.platforms.etsy import EtsyChannel

logger = logging.getLogger(__name__)

ADAPTER_CLASSES: Dict[ChannelName, Type[ChannelAdapter]] = {
    ChannelName.AMAZON: AmazonChannel,
    ChannelName.ETSY: EtsyChannel,
}


def get_channel_credentials(settings: Optional[Settings] = None) -> Dict[ChannelName, Dict[str, str]]:
    """
    Get credentials for all channels from environment/config
    """
    settings = settings or get_settings()
    creds: Dict[ChannelName, Dict[str, str]] = {}

    if settings.amazon_configured:
        creds[ChannelName.AMAZON] = {
            "client_id": settings.AMAZON_CLIENT_ID,
            "client_secret": settings.AMAZON_CLIENT_SECRET,
            "refresh_token": settings.AMAZON_REFRESH_TOKEN,
            "seller_id": settings.AMAZON_SELLER_ID,
            "marketplace_id": settings.AMAZON_MARKETPLACE_ID,
            "endpoint": settings.AMAZON_ENDPOINT,
        }
    else:
        logger.info("Amazon credentials not found or incomplete in config, skipping registration.")

    if settings.etsy_configured:
        creds[ChannelName.ETSY] = {
            "api_key": settings.ETSY_API_KEY,
            "access_token": settings.ETSY_ACCESS_TOKEN,
            "shop_id": settings.ETSY_SHOP_ID,
        }
    else:
        logger.info("Etsy credentials not found or incomplete in config, skipping registration.")

    return creds


def build_channel_adapters(settings: Optional[Settings] = None) -> Dict[ChannelName, ChannelAdapter]:
    """
    Initialize one adapter per configured marketplace
    """
    adapters: Dict[ChannelName, ChannelAdapter] = {}

    for channel, credentials in get_channel_credentials(settings).items():
        try:
            adapters[channel] = ADAPTER_CLASSES[channel](credentials)
            logger.info(f"Registered {channel.value} channel adapter")
        except Exception as e:
            logger.error(f"Failed to initialize/register {channel.value} adapter: {e}")

    return adapters
