"""
Tests for the command-line entry point.
"""

from ace_core import config
from ace_core.localization import SolveMethod
from main import build_position_estimator, build_quality_config, main


def _write_inputs(tmp_path, tags=("T1", "T2", "T3", "T4"), samples=5):
    positions = {"T1": (0, 0), "T2": (8, 0), "T3": (8, 6), "T4": (0, 6)}
    tag_file = tmp_path / "TAG_CONFIG.csv"
    tag_file.write_text(
        "NAME,POSITION_X,POSITION_Y\n"
        + "".join(f"{name},{x},{y}\n" for name, (x, y) in positions.items()),
        encoding='utf-8',
    )
    measurement_file = tmp_path / "measurements.csv"
    rows = [
        f"A1,{name},{positions[name][0]},{positions[name][1]}\n"
        for name in tags
        for _ in range(samples)
    ]
    measurement_file.write_text("ANTENNA,TAG,X,Y\n" + "".join(rows), encoding='utf-8')
    return str(tag_file), str(measurement_file)


class TestCalibrateCommand:

    def test_success(self, tmp_path, capsys):
        tags, measurements = _write_inputs(tmp_path)

        code = main(["calibrate", "--tags", tags, "--measurements", measurements])

        out = capsys.readouterr().out
        assert code == 0
        assert "ANTENNA CALIBRATION" in out
        assert "A1" in out
        assert "FAILED" not in out

    def test_too_few_tags_fails(self, tmp_path, capsys):
        tags, measurements = _write_inputs(tmp_path, tags=("T1", "T2"))

        code = main(["calibrate", "--tags", tags, "--measurements", measurements])

        assert code == 1
        assert "FAILED" in capsys.readouterr().out

    def test_metrics_flag(self, tmp_path, capsys):
        tags, measurements = _write_inputs(tmp_path)

        main(["--metrics", "calibrate", "--tags", tags, "--measurements", measurements,
              "--min-observations", "2", "--model", "affine"])

        assert "METRICS SUMMARY" in capsys.readouterr().out


class TestDemoCommand:

    def test_noise_free_demo(self, capsys):
        code = main(["demo", "--duration", "0.05", "--noise", "0"])

        out = capsys.readouterr().out
        assert code == 0
        assert "WORKFLOW RESULT" in out
        assert "FAILED" not in out
        assert "live tag T1: position=(2.500, 2.500," in out


class TestConfigBuilders:

    def test_quality_config(self, monkeypatch):
        monkeypatch.setitem(config.QUALITY_CONFIG, "min_strength", 0.7)

        quality = build_quality_config()

        assert quality.min_strength == 0.7
        assert quality.nlos_los_percentage == config.QUALITY_CONFIG["nlos_los_percentage"]

    def test_position_estimator(self, monkeypatch):
        monkeypatch.setitem(config.LOCALIZATION_CONFIG, "max_range_m", 30.0)

        estimator = build_position_estimator()

        assert estimator.config.method == SolveMethod.FIRST_THREE
        assert estimator.gate.config.d_max_m == 30.0

    def test_method_override(self):
        estimator = build_position_estimator("least_squares")

        assert estimator.config.method == SolveMethod.LEAST_SQUARES
