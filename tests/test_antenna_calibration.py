"""
Tests for multi-tag antenna calibration (AntennaCalibrator).
"""

import math

import pytest

from ace_core.calibration import AntennaCalibrationConfig, AntennaCalibrator, TransformModel
from ace_core.errors import InsufficientTags, NoCalibrationData
from ace_core.geometry import AffineTransform, Point3D
from ace_core.proto import ObservationSession
from tests.conftest import assert_points_close, make_observation, measured_from, run

TAGS = {
    "T1": Point3D(0.0, 0.0),
    "T2": Point3D(8.0, 0.0),
    "T3": Point3D(8.0, 6.0),
    "T4": Point3D(0.0, 6.0),
}


def _calibrator(truths, samples_per_tag=5, config=None):
    calibrator = AntennaCalibrator(config)
    calibrator.set_true_tag_positions(TAGS)
    tag_ids = list(TAGS)
    for antenna_id, transform in truths.items():
        local = measured_from(list(TAGS.values()), transform)
        for tag_id, point in zip(tag_ids, local):
            calibrator.add_measurements(antenna_id, tag_id, [point] * samples_per_tag)
    return calibrator


class TestAntennaCalibrator:

    def test_calibrate_antenna(self):
        truth = AffineTransform.from_similarity(1.0, math.radians(120.0), Point3D(3.0, 2.0, 0.0))
        calibrator = _calibrator({"A1": truth})

        config = calibrator.calibrate_antenna("A1")

        assert_points_close(config.position, Point3D(3.0, 2.0, 0.0), tol=1e-9)
        assert config.heading_degrees == pytest.approx(120.0, abs=1e-9)
        assert config.rmse == pytest.approx(0.0, abs=1e-9)
        assert len(config.tags_used) == 4

    def test_no_true_positions(self):
        calibrator = AntennaCalibrator()
        calibrator.add_measurement("A1", "T1", Point3D(0.0, 0.0))

        with pytest.raises(NoCalibrationData):
            calibrator.calibrate_antenna("A1")

    def test_no_samples_for_antenna(self):
        calibrator = _calibrator({})

        with pytest.raises(NoCalibrationData):
            calibrator.calibrate_antenna("A1")

    def test_min_observations_per_tag(self):
        calibrator = _calibrator({"A1": AffineTransform.identity()}, samples_per_tag=4)

        with pytest.raises(InsufficientTags) as exc_info:
            calibrator.calibrate_antenna("A1")
        assert exc_info.value.found == 0

    def test_antennas_are_independent(self, fresh_metrics):
        truth = AffineTransform.from_similarity(1.0, math.radians(-45.0), Point3D(1.0, 1.0, 0.0))
        calibrator = _calibrator({"A1": truth, "A2": truth})
        # A2 only sees two tags with enough samples
        calibrator.measurements["A2"]["T3"] = calibrator.measurements["A2"]["T3"][:1]
        calibrator.measurements["A2"]["T4"] = calibrator.measurements["A2"]["T4"][:1]

        outcomes = calibrator.calibrate_all()

        assert outcomes["A1"].success
        assert outcomes["A1"].config.heading_degrees == pytest.approx(-45.0, abs=1e-9)
        assert not outcomes["A2"].success
        assert isinstance(outcomes["A2"].error, InsufficientTags)
        assert outcomes["A2"].error.found == 2
        assert fresh_metrics.get_counter('calibrations_succeeded') == 1
        assert fresh_metrics.get_counter('calibrations_failed') == 1

    def test_calibrate_all_explicit_ids(self):
        calibrator = _calibrator({"A1": AffineTransform.identity()})

        outcomes = calibrator.calibrate_all(["A1", "A7"])

        assert outcomes["A1"].success
        assert isinstance(outcomes["A7"].error, NoCalibrationData)

    def test_exact_model_needs_three_tags(self):
        config = AntennaCalibrationConfig(model=TransformModel.EXACT)
        calibrator = _calibrator({"A1": AffineTransform.identity()}, config=config)
        del calibrator.true_tag_positions["T4"]

        result = calibrator.calibrate_antenna("A1")

        assert result.rmse == pytest.approx(0.0, abs=1e-9)
        assert result.tags_used == ("T1", "T2", "T3")

    def test_collect_from_session(self):
        calibrator = AntennaCalibrator()
        session = ObservationSession(antenna_id="A1")
        for _ in range(3):
            session.append(make_observation(position=Point3D(1.0, 2.0)))

        assert calibrator.collect_from_session(session, "T1") == 3
        assert calibrator.data_statistics()['samples'] == {"A1": {"T1": 3}}

    def test_load_measurements_merges(self):
        calibrator = AntennaCalibrator()
        calibrator.add_measurement("A1", "T1", Point3D(0.0, 0.0))

        calibrator.load_measurements({"A1": {"T1": [Point3D(1.0, 0.0)], "T2": [Point3D(2.0, 0.0)]}})

        assert len(calibrator.measurements["A1"]["T1"]) == 2
        assert len(calibrator.measurements["A1"]["T2"]) == 1

    def test_save_results(self, repository):
        calibrator = _calibrator({"A1": AffineTransform.identity()})
        calibrator.add_measurement("A2", "T1", Point3D(0.0, 0.0))
        outcomes = calibrator.calibrate_all()

        saved = run(calibrator.save_results(repository, "floor-1", outcomes))

        assert [p.antenna_id for p in saved] == ["A1"]
        stored = run(repository.load_antenna_positions("floor-1"))
        assert len(stored) == 1
        assert stored[0].rotation_degrees == pytest.approx(0.0, abs=1e-9)

    def test_save_results_best_effort(self, failing_repository, fresh_metrics):
        calibrator = _calibrator({"A1": AffineTransform.identity()})
        outcomes = calibrator.calibrate_all()

        saved = run(calibrator.save_results(failing_repository, "floor-1", outcomes))

        assert saved == []
        assert fresh_metrics.get_drop_count('persistence_failed') == 1

    def test_clear(self):
        calibrator = _calibrator({"A1": AffineTransform.identity()})
        calibrator.clear()

        assert calibrator.data_statistics()['antenna_count'] == 0

    def test_config_validation(self):
        with pytest.raises(AssertionError):
            AntennaCalibrationConfig(min_tags=2)
