"""
Antenna calibration command-line entry point.

    python main.py calibrate --tags TAG_CONFIG.csv --measurements measurements.csv
    python main.py demo --duration 2
"""

import sys
import asyncio
import logging
import argparse
import math
from typing import Dict, List, Optional, Tuple

from ace_core import config
from ace_core.calibration import (
    AntennaCalibrationConfig,
    AntennaCalibrator,
    CalibrationWorkflow,
    TransformModel,
    WorkflowConfig,
)
from ace_core.geometry import AffineTransform, Point3D
from ace_core.io import (
    InMemoryCalibrationRepository,
    SimulatedSensingDevice,
    load_tag_config,
    load_tag_measurements,
)
from ace_core.localization import (
    AnchorRangeGatingConfig,
    PositionEstimator,
    PositionEstimatorConfig,
    SolveMethod,
)
from ace_core.metrics import get_metrics
from ace_core.proto import (
    AnchorRange,
    CalibrationWorkflowResult,
    PositionEstimate,
    WorkflowProgress,
)
from ace_core.quality import ObservationQualityConfig, ObservationQualityEvaluator

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOGGING_CONFIG["level"]),
    format=config.LOGGING_CONFIG["format"]
)
logger = logging.getLogger(__name__)


def build_antenna_calibration_config(
    min_observations: Optional[int] = None,
    model: Optional[str] = None,
) -> AntennaCalibrationConfig:
    """Antenna calibration config from CALIBRATION_CONFIG plus CLI overrides."""
    return AntennaCalibrationConfig(
        min_observations_per_tag=(min_observations if min_observations is not None
                                  else config.CALIBRATION_CONFIG["min_observations_per_tag"]),
        min_tags=config.CALIBRATION_CONFIG["min_tags"],
        model=TransformModel(model or config.CALIBRATION_CONFIG["model"]),
    )


def build_workflow_config(duration_s: Optional[float] = None) -> WorkflowConfig:
    """Workflow config from WORKFLOW_CONFIG plus CLI overrides."""
    settings = config.WORKFLOW_CONFIG
    return WorkflowConfig(
        collection_duration_s=duration_s or settings["collection_duration_s"],
        tick_interval_s=settings["tick_interval_s"],
        acceptance_radius_m=settings["acceptance_radius_m"],
        mapping_min_strength=settings["mapping_min_strength"],
        require_line_of_sight=settings["require_line_of_sight"],
        min_mappings=settings["min_mappings"],
    )


def build_quality_config() -> ObservationQualityConfig:
    """Observation quality thresholds from QUALITY_CONFIG."""
    settings = config.QUALITY_CONFIG
    return ObservationQualityConfig(
        min_strength=settings["min_strength"],
        min_confidence=settings["min_confidence"],
        rssi_warning_dbm=settings["rssi_warning_dbm"],
        error_estimate_warning_m=settings["error_estimate_warning_m"],
        nlos_los_percentage=settings["nlos_los_percentage"],
    )


def build_position_estimator(method: Optional[str] = None) -> PositionEstimator:
    """Position estimator and range gate from LOCALIZATION_CONFIG."""
    settings = config.LOCALIZATION_CONFIG
    return PositionEstimator(
        PositionEstimatorConfig(method=SolveMethod(method or settings["method"])),
        AnchorRangeGatingConfig(d_min_m=settings["min_range_m"], d_max_m=settings["max_range_m"]),
    )


def run_calibrate(args) -> int:
    """Multi-tag calibration from CSV files."""
    calibrator = AntennaCalibrator(
        build_antenna_calibration_config(args.min_observations, args.model)
    )
    calibrator.set_true_tag_positions(load_tag_config(args.tags))
    calibrator.load_measurements(load_tag_measurements(args.measurements))

    outcomes = calibrator.calibrate_all()

    print("\n" + "=" * 60)
    print("               ANTENNA CALIBRATION")
    print("=" * 60)
    for antenna_id, outcome in outcomes.items():
        if outcome.success:
            cfg = outcome.config
            print(f"{antenna_id:12s} position={cfg.position}  heading={cfg.heading_degrees:8.2f} deg  "
                  f"rmse={cfg.rmse:.4f} m  tags={len(cfg.tags_used)}")
        else:
            print(f"{antenna_id:12s} FAILED: {outcome.error}")
    print("=" * 60)

    if args.metrics:
        print("\n".join(get_metrics().summary_lines()))
    return 0 if outcomes and all(o.success for o in outcomes.values()) else 1


# Tag positioned from the calibrated antennas once the demo run completes
DEMO_TAG = Point3D(2.5, 2.5, 0.0)


def _demo_script(
    references: List[Point3D], truths: Dict[str, AffineTransform]
) -> Dict[str, List[Point3D]]:
    """Antenna-local positions each antenna would report at the references."""
    return {
        antenna_id: [transform.inverse().apply(p) for p in references]
        for antenna_id, transform in truths.items()
    }


def _print_progress(progress: WorkflowProgress):
    logger.debug(f"[{progress.progress * 100:5.1f}%] {progress.instruction}")


def _locate_demo_tag(
    anchors: Dict[str, Point3D], truths: Dict[str, AffineTransform]
) -> PositionEstimate:
    """Solve DEMO_TAG from true distances and the calibrated anchor positions."""
    ranges = [
        AnchorRange(
            anchor_id=antenna_id,
            anchor_position=position,
            distance_m=DEMO_TAG.distance_to(truths[antenna_id].translation),
            tag_id="T1",
        )
        for antenna_id, position in anchors.items()
    ]
    return build_position_estimator().solve(ranges, "T1")


async def run_demo_async(
    duration_s: float, noise_std_m: float
) -> Tuple[Optional[CalibrationWorkflowResult], PositionEstimate]:
    """Step-by-step workflow against the simulated device, then a live fix."""
    references = [Point3D(0.0, 0.0, 0.0), Point3D(5.0, 0.0, 0.0),
                  Point3D(0.0, 5.0, 0.0), Point3D(5.0, 5.0, 0.0)]
    truths = {
        "A1": AffineTransform.from_similarity(1.0, math.radians(90.0), Point3D(1.0, 1.0, 0.0)),
        "A2": AffineTransform.from_similarity(1.0, math.radians(-30.0), Point3D(8.0, 2.0, 0.0)),
        "A3": AffineTransform.from_similarity(1.0, math.radians(180.0), Point3D(3.0, 9.0, 0.0)),
    }

    device = SimulatedSensingDevice(samples_per_collection=20, noise_std_m=noise_std_m, seed=7)
    for antenna_id, positions in _demo_script(references, truths).items():
        device.script_positions(antenna_id, positions)

    repository = InMemoryCalibrationRepository()
    workflow = CalibrationWorkflow(
        device, repository, build_workflow_config(duration_s),
        quality_evaluator=ObservationQualityEvaluator(build_quality_config()),
    )
    workflow.add_observer(_print_progress)
    workflow.set_reference_points(references)
    result = await workflow.start_step_by_step(list(truths))
    return result, _locate_demo_tag(workflow.final_antenna_positions, truths)


def run_demo(args) -> int:
    result, live = asyncio.run(run_demo_async(args.duration, args.noise))
    if result is None:
        print("Workflow cancelled")
        return 1

    print("\n" + "=" * 60)
    print("               WORKFLOW RESULT")
    print("=" * 60)
    for antenna_id, r in result.calibration_results.items():
        if r.success:
            t = r.transform
            print(f"{antenna_id:6s} position={t.translation}  heading={t.rotation_degrees:8.2f} deg  "
                  f"rmse={t.accuracy:.4f} m")
        else:
            print(f"{antenna_id:6s} FAILED: {r.error_message}")
    stats = result.quality_statistics
    print(f"observations={stats.total_observations}  LOS={stats.line_of_sight_percentage:.0f}%  "
          f"mapping quality={stats.mapping_accuracy:.2f}")
    if live.has_fix:
        print(f"live tag {live.tag_id}: position={live.position}  quality={live.quality_score:.2f}  "
              f"(true {DEMO_TAG})")
    else:
        print(f"live tag {live.tag_id}: no fix ({live.failure_reason})")
    print("=" * 60)

    if args.metrics:
        print("\n".join(get_metrics().summary_lines()))
    return 0 if result.success else 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main function."""
    parser = argparse.ArgumentParser(description='UWB antenna calibration')
    parser.add_argument('--debug', '-d', action='store_true',
                        help='Enable debug logging')
    parser.add_argument('--metrics', action='store_true',
                        help='Print metrics summary at exit')
    subparsers = parser.add_subparsers(dest='command', required=True)

    calibrate = subparsers.add_parser('calibrate', help='Multi-tag calibration from CSV files')
    calibrate.add_argument('--tags', required=True, help='TAG_CONFIG.csv path')
    calibrate.add_argument('--measurements', required=True,
                           help='CSV with ANTENNA,TAG,X,Y[,Z] samples')
    calibrate.add_argument('--min-observations', type=int, default=None,
                           help='Samples required per tag')
    calibrate.add_argument('--model', choices=[m.value for m in TransformModel], default=None,
                           help='Transform model to fit')
    calibrate.set_defaults(handler=run_calibrate)

    demo = subparsers.add_parser('demo', help='Step-by-step workflow with a simulated device')
    demo.add_argument('--duration', type=float, default=None,
                      help='Collection window per reference point (s)')
    demo.add_argument('--noise', type=float, default=0.02,
                      help='Simulated position noise std dev (m)')
    demo.set_defaults(handler=run_demo)

    args = parser.parse_args(argv)

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
