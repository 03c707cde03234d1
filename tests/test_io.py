"""
Tests for CSV loaders, the in-memory repository and the simulated device.
"""

import pytest

from ace_core.errors import DeviceNotConnected, NoCalibrationData, SessionNotFound
from ace_core.geometry import AffineTransform, Point3D
from ace_core.io import (
    CSVFormatError,
    DeviceEventType,
    InMemoryCalibrationRepository,
    SimulatedSensingDevice,
    load_antenna_config,
    load_tag_config,
    load_tag_measurements,
)
from ace_core.proto import AntennaPosition, CalibrationData, CalibrationPoint
from tests.conftest import run


def _write(tmp_path, name, text):
    path = tmp_path / name
    path.write_text(text, encoding='utf-8')
    return path


class TestTagConfig:

    def test_load(self, tmp_path):
        path = _write(tmp_path, "TAG_CONFIG.csv",
                      "NAME,POSITION_X,POSITION_Y\nT1,0,0\n\nT2,5.5,-1.25\n")

        tags = load_tag_config(path)

        assert list(tags) == ["T1", "T2"]
        assert tags["T2"] == Point3D(5.5, -1.25, 0.0)

    def test_bad_header(self, tmp_path):
        path = _write(tmp_path, "TAG_CONFIG.csv", "ID,X,Y\nT1,0,0\n")

        with pytest.raises(CSVFormatError) as exc_info:
            load_tag_config(path)
        assert exc_info.value.line == 1

    def test_bad_value_reports_line(self, tmp_path):
        path = _write(tmp_path, "TAG_CONFIG.csv", "NAME,POSITION_X,POSITION_Y\nT1,0,0\nT2,abc,1\n")

        with pytest.raises(CSVFormatError) as exc_info:
            load_tag_config(path)
        assert exc_info.value.line == 3
        assert "POSITION_X" in str(exc_info.value)

    def test_empty_file(self, tmp_path):
        path = _write(tmp_path, "TAG_CONFIG.csv", "NAME,POSITION_X,POSITION_Y\n")

        with pytest.raises(CSVFormatError):
            load_tag_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_tag_config(tmp_path / "missing.csv")


class TestAntennaConfig:

    def test_angle_column(self, tmp_path):
        path = _write(tmp_path, "INITIAL_ANTENNA_CONFIG.csv",
                      "NAME,POSITION_X,POSITION_Y,ANGLE\nA1,1,2,90\n")

        antennas = load_antenna_config(path)

        assert antennas["A1"].position == Point3D(1.0, 2.0, 0.0)
        assert antennas["A1"].rotation_degrees == 90.0

    def test_rotation_column_case_insensitive(self, tmp_path):
        path = _write(tmp_path, "INITIAL_ANTENNA_CONFIG.csv",
                      "name,position_x,position_y,rotation\nA2,0,0,-30\n")

        assert load_antenna_config(path)["A2"].rotation_degrees == -30.0

    def test_missing_angle(self, tmp_path):
        path = _write(tmp_path, "INITIAL_ANTENNA_CONFIG.csv",
                      "NAME,POSITION_X,POSITION_Y,HEIGHT\nA1,0,0,3\n")

        with pytest.raises(CSVFormatError):
            load_antenna_config(path)


class TestTagMeasurements:

    def test_load_with_z(self, tmp_path):
        path = _write(tmp_path, "measurements.csv",
                      "ANTENNA,TAG,X,Y,Z\nA1,T1,1,2,0.5\nA1,T1,1.1,2.1,0.5\nA2,T1,3,4,0\n")

        measurements = load_tag_measurements(path)

        assert len(measurements["A1"]["T1"]) == 2
        assert measurements["A1"]["T1"][0] == Point3D(1.0, 2.0, 0.5)
        assert measurements["A2"]["T1"] == [Point3D(3.0, 4.0, 0.0)]

    def test_load_without_z(self, tmp_path):
        path = _write(tmp_path, "measurements.csv", "ANTENNA,TAG,X,Y\nA1,T1,1,2\n")

        assert load_tag_measurements(path)["A1"]["T1"] == [Point3D(1.0, 2.0, 0.0)]

    def test_short_row(self, tmp_path):
        path = _write(tmp_path, "measurements.csv", "ANTENNA,TAG,X,Y\nA1,T1,1\n")

        with pytest.raises(CSVFormatError) as exc_info:
            load_tag_measurements(path)
        assert exc_info.value.line == 2


class TestInMemoryRepository:

    def test_save_and_load(self):
        repository = InMemoryCalibrationRepository()
        data = CalibrationData(antenna_id="A1", transform=AffineTransform.identity())
        data.calibration_points.append(
            CalibrationPoint(Point3D(0.0, 0.0), Point3D(1.0, 1.0), antenna_id="A1")
        )

        run(repository.save_calibration_data(data))
        loaded = run(repository.load_calibration_data())

        assert len(loaded) == 1
        assert loaded[0].antenna_id == "A1"
        assert loaded[0].transform == AffineTransform.identity()
        assert loaded[0].calibration_points[0].id == data.calibration_points[0].id

    def test_stored_copy_is_independent(self):
        repository = InMemoryCalibrationRepository()
        data = CalibrationData(antenna_id="A1")
        run(repository.save_calibration_data(data))

        data.calibration_points.append(
            CalibrationPoint(Point3D(0.0, 0.0), Point3D(1.0, 1.0), antenna_id="A1")
        )

        assert run(repository.load_calibration_data("A1"))[0].calibration_points == []

    def test_inactive_records_hidden(self):
        repository = InMemoryCalibrationRepository()
        run(repository.save_calibration_data(CalibrationData(antenna_id="A1", is_active=False)))
        run(repository.save_calibration_data(CalibrationData(antenna_id="A2")))

        assert [r.antenna_id for r in run(repository.load_calibration_data())] == ["A2"]

    def test_update_requires_existing(self):
        repository = InMemoryCalibrationRepository()

        with pytest.raises(NoCalibrationData):
            run(repository.update_calibration_data(CalibrationData(antenna_id="A1")))

    def test_delete(self):
        repository = InMemoryCalibrationRepository()
        run(repository.save_calibration_data(CalibrationData(antenna_id="A1")))

        run(repository.delete_calibration_data("A1"))

        assert run(repository.load_calibration_data()) == []

    def test_positions_by_floor_map(self):
        repository = InMemoryCalibrationRepository()
        run(repository.save_antenna_position(
            AntennaPosition("A1", "A1", Point3D(1.0, 1.0), 90.0, "floor-1")))
        run(repository.save_antenna_position(
            AntennaPosition("A1", "A1", Point3D(2.0, 2.0), 45.0, "floor-1")))
        run(repository.save_antenna_position(
            AntennaPosition("A1", "A1", Point3D(0.0, 0.0), 0.0, "floor-2")))

        positions = run(repository.load_antenna_positions("floor-1"))

        assert len(positions) == 1
        assert positions[0].rotation_degrees == 45.0


class TestSimulatedDevice:

    def test_emits_scripted_burst(self):
        device = SimulatedSensingDevice(samples_per_collection=4)
        device.script_positions("A1", [Point3D(1.0, 2.0), Point3D(3.0, 4.0)])
        events = []
        device.subscribe(events.append)

        run(device.start_collection("A1", "s1"))
        run(device.start_collection("A1", "s2"))

        assert len(events) == 8
        assert all(e.type == DeviceEventType.DATA_RECEIVED for e in events)
        assert events[0].observation.position == Point3D(1.0, 2.0)
        assert events[0].observation.session_id == "s1"
        assert events[-1].observation.position == Point3D(3.0, 4.0)

    def test_noise_is_reproducible(self):
        positions = []
        for _ in range(2):
            device = SimulatedSensingDevice(samples_per_collection=3, noise_std_m=0.1, seed=5)
            device.script_positions("A1", [Point3D(0.0, 0.0)])
            events = []
            device.subscribe(events.append)
            run(device.start_collection("A1", "s1"))
            positions.append([e.observation.position for e in events])

        assert positions[0] == positions[1]
        assert positions[0][0] != Point3D(0.0, 0.0)

    def test_disconnected(self):
        device = SimulatedSensingDevice()
        events = []
        device.subscribe(events.append)

        device.disconnect("cable")

        assert events[-1].type == DeviceEventType.DEVICE_DISCONNECTED
        with pytest.raises(DeviceNotConnected):
            run(device.start_collection("A1", "s1"))

    def test_session_bookkeeping(self):
        device = SimulatedSensingDevice()
        run(device.start_collection("A1", "s1"))

        assert device.active_sessions == ["s1"]
        run(device.pause_collection("s1"))
        run(device.resume_collection("s1"))
        run(device.stop_collection("s1"))
        assert device.active_sessions == []

        with pytest.raises(SessionNotFound):
            run(device.pause_collection("s1"))
