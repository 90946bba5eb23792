"""
Sensor subscription state.

A device goes through ``inactive -> pending -> active``:
- subscribe() stages a device as pending while a message is dispatched
- commit() promotes pending devices once the step's snapshot is built, so a
  device enabled in step N is reported from step N+1 onward
- unsubscribe() drops a device immediately, it is skipped in the current
  step's snapshot already
"""

import logging
from typing import Dict, Iterator, List

from .devices import DeviceRef

logger = logging.getLogger(__name__)


class SensorSubscription:
    """Active and pending sensor sets, keyed by device name."""

    def __init__(self):
        self._active: Dict[str, DeviceRef] = {}
        self._pending: Dict[str, DeviceRef] = {}

    def subscribe(self, device: DeviceRef) -> None:
        """Stage a device for reporting from the next step, unless already active."""
        if device.name in self._active:
            return
        self._pending[device.name] = device

    def unsubscribe(self, device: DeviceRef) -> None:
        """Stop reporting a device, effective immediately."""
        self._active.pop(device.name, None)
        self._pending.pop(device.name, None)

    def commit(self) -> List[str]:
        """
        Promote every pending device to active.

        Returns:
            Names of the promoted devices
        """
        promoted = list(self._pending)
        self._active.update(self._pending)
        self._pending.clear()
        if promoted:
            logger.debug(f"Activated sensors: {', '.join(promoted)}")
        return promoted

    def clear(self) -> List[DeviceRef]:
        """
        Forget every subscription.

        Returns:
            The devices that were active or pending
        """
        devices = list(self._active.values()) + list(self._pending.values())
        self._active.clear()
        self._pending.clear()
        return devices

    def active(self) -> Iterator[DeviceRef]:
        return iter(list(self._active.values()))

    def is_active(self, name: str) -> bool:
        return name in self._active

    def is_pending(self, name: str) -> bool:
        return name in self._pending

    @property
    def active_names(self) -> List[str]:
        return list(self._active)

    @property
    def pending_names(self) -> List[str]:
        return list(self._pending)
