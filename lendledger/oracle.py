"""
oracle.py - Price oracle carried in the vault configuration

The vault holds a single asset and values collateral against debt 1:1, so the
health-factor and liquidation math never consult the oracle. It is kept as a
pluggable configuration field for deployments that quote the asset
externally.

Classes:
- StaticPriceOracle: Fixed prices; the vault asset quotes at SCALE (1.0)
"""

from typing import Dict, Optional

from .core import SCALE


class StaticPriceOracle:
    """
    Oracle with fixed prices.

    Prices are fixed-point fractions of SCALE. Unknown assets quote None.
    Implements the PriceOracle protocol.
    """

    def __init__(self, prices: Optional[Dict[str, int]] = None, base_asset: str = "ASSET"):
        """
        Args:
            prices: Mapping of asset symbol to price
            base_asset: Asset quoted at exactly SCALE
        """
        self.base_asset = base_asset
        self.prices = dict(prices or {})
        self.prices[base_asset] = SCALE

    def get_price(self, asset: str) -> Optional[int]:
        return self.prices.get(asset)

    def update_price(self, asset: str, price: int):
        self.prices[asset] = price

    def __repr__(self):
        return f"StaticPriceOracle({len(self.prices)} prices, base={self.base_asset})"
