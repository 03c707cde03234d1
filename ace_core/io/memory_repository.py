"""
In-memory calibration repository.

Stores serialized records (to_dict output), so what is stored is independent
of the live objects the caller keeps mutating.
"""

from typing import Dict, List, Optional, Tuple
import logging

from ace_core.errors import NoCalibrationData
from ace_core.proto import AntennaPosition, CalibrationData

logger = logging.getLogger(__name__)


class InMemoryCalibrationRepository:
    """
    Dictionary-backed CalibrationRepository.

    Usage:
        repository = InMemoryCalibrationRepository()
        await repository.save_calibration_data(data)
        records = await repository.load_calibration_data()
    """

    def __init__(self):
        self._calibration: Dict[str, dict] = {}
        self._positions: Dict[Tuple[str, str], dict] = {}

    async def load_calibration_data(
        self, antenna_id: Optional[str] = None
    ) -> List[CalibrationData]:
        """
        Load active calibration records.

        Args:
            antenna_id: Restrict to one antenna (None = all)

        Returns:
            List of CalibrationData
        """
        records = [CalibrationData.from_dict(r) for r in self._calibration.values()]
        records = [r for r in records if r.is_active]
        if antenna_id is not None:
            records = [r for r in records if r.antenna_id == antenna_id]
        return records

    async def save_calibration_data(self, data: CalibrationData) -> None:
        """Insert or replace the record for data.antenna_id."""
        self._calibration[data.antenna_id] = data.to_dict()
        logger.debug(f"Saved calibration data for antenna {data.antenna_id}")

    async def update_calibration_data(self, data: CalibrationData) -> None:
        """
        Replace an existing record.

        Raises:
            NoCalibrationData: If no record exists for the antenna
        """
        if data.antenna_id not in self._calibration:
            raise NoCalibrationData(data.antenna_id)
        self._calibration[data.antenna_id] = data.to_dict()

    async def delete_calibration_data(self, antenna_id: str) -> None:
        self._calibration.pop(antenna_id, None)

    async def save_antenna_position(self, position: AntennaPosition) -> None:
        """Insert or replace the placement of an antenna on a floor map."""
        self._positions[(position.floor_map_id, position.antenna_id)] = position.to_dict()
        logger.debug(
            f"Saved position for antenna {position.antenna_id} on map {position.floor_map_id}"
        )

    async def load_antenna_positions(self, floor_map_id: str) -> List[AntennaPosition]:
        return [
            AntennaPosition.from_dict(record)
            for (map_id, _), record in self._positions.items()
            if map_id == floor_map_id
        ]
