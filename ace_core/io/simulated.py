"""
Scripted sensing device for demos and tests.

Each start_collection() for an antenna consumes the next scripted measured
position for that antenna and emits a burst of DATA_RECEIVED events around
it, with optional Gaussian noise. Events go synchronously to subscribed
handlers.
"""

from collections import deque
from typing import Deque, Dict, List, Optional, Sequence, Set
import logging

import numpy as np

from ace_core.errors import DeviceNotConnected, SessionNotFound
from ace_core.geometry import Point3D
from ace_core.proto import ObservationPoint, SignalQuality
from .collaborators import DeviceEvent, EventHandler

logger = logging.getLogger(__name__)


class SimulatedSensingDevice:
    """
    SensingCollaborator that replays scripted positions.

    Usage:
        device = SimulatedSensingDevice(samples_per_collection=20, noise_std_m=0.02)
        device.script_positions("A1", [p0, p1, p2])
        device.subscribe(workflow.handle_event)
        await device.start_collection("A1", session_id)
    """

    def __init__(
        self,
        device_id: str = "sim-0",
        samples_per_collection: int = 10,
        noise_std_m: float = 0.0,
        quality: Optional[SignalQuality] = None,
        rssi: float = -55.0,
        seed: Optional[int] = None,
    ):
        """
        Initialize device.

        Args:
            device_id: Identifier used in emitted events
            samples_per_collection: Samples emitted per start_collection
            noise_std_m: Std dev of planar position noise (m)
            quality: Signal quality attached to every sample
            rssi: RSSI attached to every sample (dBm)
            seed: Random seed for reproducible noise
        """
        if samples_per_collection < 0:
            raise ValueError("samples_per_collection cannot be negative")
        self.device_id = device_id
        self.samples_per_collection = samples_per_collection
        self.noise_std_m = noise_std_m
        self.quality = quality or SignalQuality(
            strength=0.9, is_line_of_sight=True, confidence=0.9, error_estimate=0.1
        )
        self.rssi = rssi

        self._rng = np.random.default_rng(seed)
        self._handlers: List[EventHandler] = []
        self._scripts: Dict[str, Deque[Point3D]] = {}
        self._active: Dict[str, str] = {}
        self._paused: Set[str] = set()
        self._connected = True

    def script_positions(self, antenna_id: str, positions: Sequence[Point3D]):
        """Queue measured positions for successive collections of an antenna."""
        self._scripts.setdefault(antenna_id, deque()).extend(positions)

    def subscribe(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def is_connected(self) -> bool:
        return self._connected

    def connect(self):
        self._connected = True
        self._emit(DeviceEvent.connected(self.device_id))

    def disconnect(self, message: str = ""):
        self._connected = False
        self._active.clear()
        self._paused.clear()
        self._emit(DeviceEvent.disconnected(self.device_id, message))

    @property
    def active_sessions(self) -> List[str]:
        return list(self._active)

    def _emit(self, event: DeviceEvent):
        for handler in self._handlers:
            handler(event)

    def emit_observation(
        self,
        antenna_id: str,
        position: Point3D,
        session_id: Optional[str] = None,
        quality: Optional[SignalQuality] = None,
    ) -> ObservationPoint:
        """
        Emit one sample immediately.

        Returns:
            The emitted ObservationPoint
        """
        observation = ObservationPoint(
            antenna_id=antenna_id,
            position=position,
            quality=quality or self.quality,
            distance=position.magnitude,
            rssi=self.rssi,
            session_id=session_id,
        )
        self._emit(DeviceEvent.data(observation, self.device_id))
        return observation

    async def start_collection(self, antenna_id: str, session_id: str) -> None:
        """
        Start a session and emit its scripted burst.

        Raises:
            DeviceNotConnected: If the device is disconnected
        """
        if not self._connected:
            raise DeviceNotConnected(self.device_id)
        self._active[session_id] = antenna_id

        script = self._scripts.get(antenna_id)
        if not script:
            logger.debug(f"No scripted position for antenna {antenna_id}; emitting nothing")
            return
        center = script.popleft()
        for _ in range(self.samples_per_collection):
            dx, dy = self._rng.normal(0.0, self.noise_std_m, 2) if self.noise_std_m > 0 else (0.0, 0.0)
            sample = Point3D(center.x + float(dx), center.y + float(dy), center.z)
            self.emit_observation(antenna_id, sample, session_id)

    async def stop_collection(self, session_id: str) -> None:
        self._active.pop(session_id, None)
        self._paused.discard(session_id)

    async def pause_collection(self, session_id: str) -> None:
        if session_id not in self._active:
            raise SessionNotFound(session_id)
        self._paused.add(session_id)

    async def resume_collection(self, session_id: str) -> None:
        if session_id not in self._active:
            raise SessionNotFound(session_id)
        self._paused.discard(session_id)
