"""
Symbol classification and per-asset-class instrument properties
"""

import logging
import re
from dataclasses import dataclass

from models import AssetClass
import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Instrument:
    """Pip convention and price precision for an asset class"""
    asset_class: AssetClass
    pip_size: float
    pip_value: float  # Value of one pip for one standard lot
    digits: int


INSTRUMENTS = {
    asset_class: Instrument(asset_class=asset_class, **config.INSTRUMENTS[asset_class.value])
    for asset_class in AssetClass
}


def normalize_symbol(symbol: str) -> str:
    """
    Normalize a symbol by removing spaces, hyphens, slashes and converting to uppercase

    Args:
        symbol: The symbol to normalize

    Returns:
        The normalized symbol
    """
    if not symbol:
        return ""

    # Remove spaces, hyphens, and slashes, then convert to uppercase
    normalized = re.sub(r'[\s\-/]', '', symbol).upper()
    return normalized


def classify_symbol(symbol: str) -> AssetClass:
    """
    Decide the asset class of a trading symbol

    Metals are checked before JPY so that a gold/yen quote is priced as a metal.
    Anything unrecognized is treated as a standard FX pair.

    Args:
        symbol: The symbol as reported by the analysis (e.g. "XAU/USD", "gbpjpy")

    Returns:
        The asset class
    """
    normalized = normalize_symbol(symbol)

    if any(marker in normalized for marker in config.METAL_MARKERS):
        asset_class = AssetClass.METAL
    elif any(marker in normalized for marker in config.JPY_MARKERS):
        asset_class = AssetClass.JPY_CROSS
    else:
        asset_class = AssetClass.STANDARD_FX

    logger.debug(f"Symbol classification: '{symbol}' -> '{normalized}' -> {asset_class.value}")
    return asset_class


def get_instrument(symbol: str) -> Instrument:
    """Instrument properties for a symbol"""
    return INSTRUMENTS[classify_symbol(symbol)]
