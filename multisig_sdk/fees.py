"""
Fee Estimator - gas price from the network baseline plus a markup.
"""
import logging
from typing import Optional

from .chains import profile_for
from .config import DEFAULT_GAS_PRICE_INCREASE_PERCENT

logger = logging.getLogger(__name__)


def apply_markup(baseline: int, markup_percent: int) -> int:
    """
    Scale a gas price by ``(100 + markup_percent) / 100``, rounding down.

    Raises:
        ValueError: If either argument is negative or not an integer
    """
    for name, value in (("baseline", baseline), ("markup_percent", markup_percent)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{name} must be an integer, got {type(value).__name__}")
        if value < 0:
            raise ValueError(f"{name} must not be negative, got {value}")
    return baseline * (100 + markup_percent) // 100


class FeeEstimator:
    """
    Computes the gas price used for executor submissions.

    Args:
        chain_client: Object exposing ``get_baseline_gas_price()``
        default_markup_percent: Markup used when none is passed per call
        logger: Optional logger instance
    """

    def __init__(
        self,
        chain_client,
        default_markup_percent: int = DEFAULT_GAS_PRICE_INCREASE_PERCENT,
        logger: Optional[logging.Logger] = None,
    ):
        self.chain_client = chain_client
        self.default_markup_percent = default_markup_percent
        self.logger = logger or logging.getLogger(__name__)

    def estimate_gas_price(self, chain_id: int, markup_percent: Optional[int] = None) -> int:
        """
        Args:
            chain_id: Chain the transaction will be sent on
            markup_percent: Percentage added to the baseline (default from constructor)

        Returns:
            Gas price in wei

        Raises:
            UnsupportedChain: If the chain id is not supported
            ValueError: If the markup is negative
            ChainReadError: If the baseline could not be read
        """
        profile_for(chain_id)
        markup = self.default_markup_percent if markup_percent is None else markup_percent
        if isinstance(markup, int) and not isinstance(markup, bool) and markup < 0:
            raise ValueError(f"markup_percent must not be negative, got {markup}")
        baseline = self.chain_client.get_baseline_gas_price()
        price = apply_markup(baseline, markup)
        self.logger.debug(f"Gas price on chain {chain_id}: baseline {baseline} +{markup}% = {price}")
        return price
