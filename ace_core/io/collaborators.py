"""
External collaborator contracts.

The calibration engine talks to two collaborators it does not implement:

- a sensing device that starts/stops/pauses/resumes collection per session
  and delivers events (device lifecycle and observation samples)
- a persistence store for calibration records and antenna placements

Both are expressed as typing.Protocol classes so any object with matching
methods can be plugged in.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Protocol
import time

from ace_core.proto import AntennaPosition, CalibrationData, ObservationPoint


class DeviceEventType(Enum):
    """Kinds of events a sensing device emits."""

    DEVICE_FOUND = 'device_found'
    DEVICE_CONNECTED = 'device_connected'
    DEVICE_DISCONNECTED = 'device_disconnected'
    DATA_RECEIVED = 'data_received'
    ERROR = 'error'


@dataclass(frozen=True)
class DeviceEvent:
    """
    Single event from the sensing device.

    Attributes:
        type: Event kind
        device_id: Emitting device
        observation: Sample (DATA_RECEIVED only)
        message: Human-readable detail (ERROR, lifecycle events)
        timestamp: Emission time
    """

    type: DeviceEventType
    device_id: str = ""
    observation: Optional[ObservationPoint] = None
    message: str = ""
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def data(cls, observation: ObservationPoint, device_id: str = "") -> "DeviceEvent":
        return cls(DeviceEventType.DATA_RECEIVED, device_id=device_id, observation=observation)

    @classmethod
    def connected(cls, device_id: str) -> "DeviceEvent":
        return cls(DeviceEventType.DEVICE_CONNECTED, device_id=device_id)

    @classmethod
    def disconnected(cls, device_id: str, message: str = "") -> "DeviceEvent":
        return cls(DeviceEventType.DEVICE_DISCONNECTED, device_id=device_id, message=message)

    @classmethod
    def error(cls, device_id: str, message: str) -> "DeviceEvent":
        return cls(DeviceEventType.ERROR, device_id=device_id, message=message)


EventHandler = Callable[[DeviceEvent], None]


class SensingCollaborator(Protocol):
    """Sensing device command / event contract."""

    def is_connected(self) -> bool:
        ...

    def subscribe(self, handler: EventHandler) -> None:
        """Register a handler that receives every DeviceEvent."""
        ...

    async def start_collection(self, antenna_id: str, session_id: str) -> None:
        """Begin streaming samples for antenna_id tagged with session_id."""
        ...

    async def stop_collection(self, session_id: str) -> None:
        ...

    async def pause_collection(self, session_id: str) -> None:
        ...

    async def resume_collection(self, session_id: str) -> None:
        ...


class CalibrationRepository(Protocol):
    """Persistence contract for calibration state."""

    async def load_calibration_data(
        self, antenna_id: Optional[str] = None
    ) -> List[CalibrationData]:
        ...

    async def save_calibration_data(self, data: CalibrationData) -> None:
        ...

    async def update_calibration_data(self, data: CalibrationData) -> None:
        ...

    async def delete_calibration_data(self, antenna_id: str) -> None:
        ...

    async def save_antenna_position(self, position: AntennaPosition) -> None:
        ...

    async def load_antenna_positions(self, floor_map_id: str) -> List[AntennaPosition]:
        ...
