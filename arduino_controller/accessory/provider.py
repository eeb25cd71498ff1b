"""Accessory provider interface and accessory selection.

The provider is the boundary to the platform transport: it lists what is
attached and opens sessions. ``select_accessory`` decides which accessory
and protocol connect() should use.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Tuple

from ..errors import AccessoryNotFoundError
from ..models import AccessoryDescriptor, SelectionPolicy
from ..session import Session

logger = logging.getLogger(__name__)


class AccessoryProvider(ABC):
    """Source of attached accessories and sessions against them."""

    @abstractmethod
    def connected_accessories(self) -> List[AccessoryDescriptor]:
        """List accessories currently attached.

        Raises:
            DiscoveryError: if the platform could not be queried
        """
        pass

    @abstractmethod
    def open_session(self,
                     accessory: AccessoryDescriptor,
                     protocol: str,
                     session_id: int = 0) -> Session:
        """Create an unopened session for ``accessory`` speaking ``protocol``.

        Raises:
            SessionCreationError: if the platform refuses the session
        """
        pass


def select_accessory(
    accessories: Iterable[AccessoryDescriptor],
    protocol: str,
    policy: SelectionPolicy = SelectionPolicy.STRICT,
) -> Tuple[AccessoryDescriptor, str]:
    """
    Pick the accessory and protocol to open a session with.

    Behaviour:
        - STRICT:   first accessory advertising ``protocol``
        - FALLBACK: as STRICT, else the first accessory that advertises
                    anything, using its first protocol

    Returns:
        (accessory, protocol) tuple.

    Raises:
        AccessoryNotFoundError: nothing suitable is attached. The exception's
            ``accessories`` lists everything that was inspected.
    """
    accessories = list(accessories)

    if not accessories:
        raise AccessoryNotFoundError("No accessories found", accessories=accessories)

    for accessory in accessories:
        if accessory.supports(protocol):
            return accessory, protocol

    if policy is SelectionPolicy.FALLBACK:
        for accessory in accessories:
            if accessory.protocols:
                logger.info(
                    f"No accessory advertises {protocol}; falling back to "
                    f"{accessory.name} ({accessory.protocols[0]})"
                )
                return accessory, accessory.protocols[0]

    raise AccessoryNotFoundError(
        f"No accessory advertises {protocol}",
        accessories=accessories,
    )
