"""
Provider try-order
"""

from typing import List, Optional

from ..core.models import PRIMARY, SECONDARY, ProviderId


def provider_order(preferred: Optional[ProviderId], secondary_enabled: bool) -> List[ProviderId]:
    """
    Order in which providers are tried for one track

    The secondary source goes first only when it is both preferred and
    enabled; otherwise the primary source leads and the secondary source
    follows when enabled.

    Args:
        preferred: Preferred provider, None for no preference
        secondary_enabled: Whether the secondary source may be used at all

    Returns:
        Fresh list of providers, never empty
    """
    if preferred is SECONDARY and secondary_enabled:
        return [SECONDARY, PRIMARY]

    order = [PRIMARY]
    if secondary_enabled:
        order.append(SECONDARY)
    return order
