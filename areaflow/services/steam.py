"""Steam service - public store feeds, no authentication."""

import logging
from typing import Any, Dict, List, Optional

from ..engine.models import CheckResult, EvaluationContext
from ..errors import ExternalServiceError
from .base import Parameter, Service, Trigger, advance_cursor
from .http import fetch_json

logger = logging.getLogger(__name__)

SERVICE_NAME = "steam"
FEATURED_URL = "https://store.steampowered.com/api/featuredcategories"
STORE_APP_URL = "https://store.steampowered.com/app"


def format_price(cents: Optional[int]) -> str:
    if not cents:
        return "Free"
    return f"{cents / 100:.2f}"


async def _featured_items(category: str, country: str = "US") -> List[Dict[str, Any]]:
    data = await fetch_json(
        FEATURED_URL,
        service=SERVICE_NAME,
        params={"cc": country, "l": "english"},
    )
    section = data.get(category) if isinstance(data, dict) else None
    items = section.get("items") if isinstance(section, dict) else None
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


def _min_discount(params: Dict[str, Any]) -> Optional[float]:
    value = params.get("minDiscount")
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-numeric minDiscount {value!r}")
        return None


def _discount_percent(game: Dict[str, Any]) -> float:
    try:
        return float(game.get("discount_percent") or 0)
    except (TypeError, ValueError):
        return 0.0


async def check_new_specials(params: Dict[str, Any], context: EvaluationContext) -> CheckResult:
    try:
        specials = await _featured_items("specials", params.get("country") or "US")
    except ExternalServiceError as e:
        logger.warning(f"Steam specials check failed: {e}")
        return CheckResult.idle()

    if not specials or specials[0].get("id") is None:
        return CheckResult.idle()
    game = specials[0]

    result = advance_cursor(
        context.metadata,
        "lastGameId",
        game["id"],
        lambda: {
            "gameName": game.get("name", ""),
            "discount": f"{_discount_percent(game):g}%",
            "oldPrice": format_price(game.get("original_price")),
            "newPrice": format_price(game.get("final_price")),
            "url": f"{STORE_APP_URL}/{game['id']}",
            "imageUrl": game.get("large_capsule_image", ""),
        },
    )
    min_discount = _min_discount(params)
    if result.fired and min_discount is not None and _discount_percent(game) < min_discount:
        # Below threshold: move the cursor without firing
        return CheckResult(fired=False, metadata=result.metadata)
    return result


async def check_top_sellers(params: Dict[str, Any], context: EvaluationContext) -> CheckResult:
    try:
        top = await _featured_items("top_sellers", params.get("country") or "US")
    except ExternalServiceError as e:
        logger.warning(f"Steam top sellers check failed: {e}")
        return CheckResult.idle()

    if not top or top[0].get("id") is None:
        return CheckResult.idle()
    game = top[0]

    return advance_cursor(
        context.metadata,
        "lastTopId",
        game["id"],
        lambda: {
            "place": 1,
            "gameName": game.get("name", ""),
            "price": format_price(game.get("final_price")),
            "url": f"{STORE_APP_URL}/{game['id']}",
            "imageUrl": game.get("large_capsule_image", ""),
        },
    )


async def setup_store_feed(params: Dict[str, Any], context: EvaluationContext) -> Optional[Dict[str, Any]]:
    """Fail early when the store API is unreachable."""
    await fetch_json(FEATURED_URL, service=SERVICE_NAME)
    return None


_COUNTRY_PARAM = Parameter(
    type="string",
    label="Store country",
    required=False,
    default="US",
    description="Two-letter country code used for prices",
)


steam_service = Service(
    name=SERVICE_NAME,
    description="Steam game discounts and best sellers",
    requires_auth=False,
    auth_type="none",
    triggers=(
        Trigger(
            name="new_specials",
            description="Triggered when a new game is on sale on Steam",
            check=check_new_specials,
            setup=setup_store_feed,
            params={
                "minDiscount": Parameter(
                    type="number",
                    label="Minimum Discount (%)",
                    required=False,
                    description="Only trigger if the discount is at least this percentage",
                ),
                "country": _COUNTRY_PARAM,
            },
            variables={
                "gameName": "The name of the game",
                "discount": "The discount percentage",
                "oldPrice": "Original price before discount",
                "newPrice": "Current price with discount",
                "url": "Link to the Steam store page",
                "imageUrl": "The game's thumbnail image",
            },
        ),
        Trigger(
            name="top_sellers",
            description="Triggered when a new game reaches the top of the best sellers list",
            check=check_top_sellers,
            setup=setup_store_feed,
            params={"country": _COUNTRY_PARAM},
            variables={
                "place": "The rank of the game in the top sellers",
                "gameName": "The name of the game",
                "price": "The current price of the game",
                "url": "Link to the Steam store page",
                "imageUrl": "The game's thumbnail image",
            },
        ),
    ),
)
