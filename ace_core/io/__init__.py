"""
IO Module: collaborator contracts, reference implementations, file loaders.

- collaborators: SensingCollaborator / CalibrationRepository protocols, DeviceEvent
- memory_repository: InMemoryCalibrationRepository
- simulated: SimulatedSensingDevice (scripted samples)
- csv_loader: TAG_CONFIG / INITIAL_ANTENNA_CONFIG / measurement CSV loaders
"""

from .collaborators import (
    CalibrationRepository,
    DeviceEvent,
    DeviceEventType,
    EventHandler,
    SensingCollaborator,
)
from .memory_repository import InMemoryCalibrationRepository
from .simulated import SimulatedSensingDevice
from .csv_loader import (
    CSVFormatError,
    InitialAntennaConfig,
    load_antenna_config,
    load_tag_config,
    load_tag_measurements,
)

__all__ = [
    'CalibrationRepository',
    'DeviceEvent',
    'DeviceEventType',
    'EventHandler',
    'SensingCollaborator',
    'InMemoryCalibrationRepository',
    'SimulatedSensingDevice',
    'CSVFormatError',
    'InitialAntennaConfig',
    'load_antenna_config',
    'load_tag_config',
    'load_tag_measurements',
]
