"""
Guided step-by-step calibration workflow.

State machine:

    IDLE -> COLLECTING_REFERENCE -> COLLECTING_OBSERVATION -> CALCULATING
         -> COMPLETED | FAILED

While collecting, each reference point walks through
PLACING_TAG -> READY_TO_START -> COLLECTING -> SHOWING_ANTENNA_POSITION.
Collection at a point opens one observation session per antenna and is
ended by a CollectionWindow (hard timeout with progress ticks) or early by
the operator. Afterwards observations are mapped to reference points and
each antenna is calibrated independently.

Concurrency model: the workflow belongs to one asyncio event loop. Every
state mutation happens on that loop, so sample ingestion, timer ticks and
cancel() never interleave inside a method. cancel() bumps a run generation
counter; any coroutine resuming with an older generation stops without
touching state.
"""

from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence
import asyncio
import logging

from ace_core.errors import (
    DeviceNotConnected,
    DuplicateReference,
    InsufficientMappings,
    InsufficientPoints,
    InvalidCalibrationData,
    PersistenceFailure,
    SessionNotFound,
    WorkflowStateError,
)
from ace_core.geometry import AffineTransform, Point3D, centroid
from ace_core.io.collaborators import DeviceEvent, DeviceEventType
from ace_core.metrics import get_metrics
from ace_core.proto import (
    AntennaPosition,
    CalibrationPoint,
    CalibrationResult,
    CalibrationWorkflowResult,
    ObservationPoint,
    ObservationSession,
    ObservationStatus,
    ReferenceObservationMapping,
    StepPhase,
    WorkflowProgress,
    WorkflowQualityStatistics,
    WorkflowStatus,
    WorkflowValidation,
)
from ace_core.quality import ObservationPreprocessor, ObservationQualityEvaluator, PreprocessingConfig
from .calibration_session import CalibrationManager
from .collection import CollectionWindow, WindowOutcome
from .transform_estimator import MIN_POINTS

logger = logging.getLogger(__name__)

ProgressObserver = Callable[[WorkflowProgress], None]
PlacementGate = Callable[[int, Point3D], Awaitable[None]]

# Strength above which a sample counts toward workflow quality statistics
VALID_OBSERVATION_STRENGTH = 0.3


@dataclass
class WorkflowConfig:
    """
    Configuration for the guided workflow.

    Attributes:
        collection_duration_s: Hard timeout per reference point (s)
        tick_interval_s: Progress tick period (s)
        acceptance_radius_m: Max distance of free-form observations from a
            reference point (m)
        mapping_min_strength: Observations need strength strictly above this
        require_line_of_sight: Only line-of-sight observations are mapped
        min_mappings: Reference mappings required before calibrating
        min_valid_observations: Validation threshold for collected samples
        min_mapping_quality: Validation threshold for mean mapping quality
        floor_map_id: Floor map antenna positions are saved under
        preprocessing: Applied per session before mapping (None = raw samples)
    """

    collection_duration_s: float = 15.0
    tick_interval_s: float = 0.1
    acceptance_radius_m: float = 5.0
    mapping_min_strength: float = 0.5
    require_line_of_sight: bool = True
    min_mappings: int = 3
    min_valid_observations: int = 10
    min_mapping_quality: float = 0.6
    floor_map_id: str = "default"
    preprocessing: Optional[PreprocessingConfig] = None

    def __post_init__(self):
        """Validate configuration."""
        assert self.collection_duration_s > 0, "collection duration must be positive"
        assert self.tick_interval_s > 0, "tick interval must be positive"
        assert self.acceptance_radius_m > 0, "acceptance radius must be positive"
        assert 0.0 <= self.mapping_min_strength <= 1.0, "mapping strength must be in [0,1]"
        assert self.min_mappings >= MIN_POINTS, "at least 3 mappings are needed to calibrate"


class CalibrationWorkflow:
    """
    Step-by-step calibration over reference points.

    Usage:
        workflow = CalibrationWorkflow(sensing, repository)
        workflow.add_observer(lambda progress: print(progress.instruction))
        workflow.set_reference_points([p0, p1, p2])
        result = await workflow.start_step_by_step(["A1", "A2"])

    Notes:
        - Estimation failures of one antenna never block the others; the
          run is FAILED unless every attempted antenna succeeds, but
          succeeded transforms stay available
        - Persistence is best effort; failures are logged and counted
    """

    def __init__(
        self,
        sensing,
        repository=None,
        config: Optional[WorkflowConfig] = None,
        quality_evaluator: Optional[ObservationQualityEvaluator] = None,
    ):
        """
        Initialize workflow.

        Args:
            sensing: SensingCollaborator (events are subscribed immediately)
            repository: CalibrationRepository collaborator (optional)
            config: Workflow configuration (uses defaults if None)
            quality_evaluator: Evaluator for statistics and validation
        """
        self.sensing = sensing
        self.repository = repository
        self.config = config or WorkflowConfig()
        self.manager = CalibrationManager(repository)
        self.evaluator = quality_evaluator or ObservationQualityEvaluator()
        self.preprocessor = (ObservationPreprocessor(self.config.preprocessing)
                             if self.config.preprocessing is not None else None)
        self.metrics = get_metrics()

        self.status = WorkflowStatus.IDLE
        self.step_phase: Optional[StepPhase] = None
        self.current_step = 0
        self.reference_points: List[Point3D] = []
        self.sessions: Dict[str, ObservationSession] = {}
        self.mappings: List[ReferenceObservationMapping] = []
        self.antenna_positions: Dict[str, Point3D] = {}
        self.result: Optional[CalibrationWorkflowResult] = None
        self.error_message: Optional[str] = None

        self._observers: List[ProgressObserver] = []
        self._window: Optional[CollectionWindow] = None
        self._collection_progress = 0.0
        self._generation = 0

        if sensing is not None:
            sensing.subscribe(self.handle_event)

    # ------------------------------------------------------------------
    # Observers and progress
    # ------------------------------------------------------------------

    def add_observer(self, observer: ProgressObserver):
        self._observers.append(observer)

    def remove_observer(self, observer: ProgressObserver):
        if observer in self._observers:
            self._observers.remove(observer)

    @property
    def progress(self) -> WorkflowProgress:
        """Current progress snapshot."""
        return WorkflowProgress(
            status=self.status,
            step_phase=self.step_phase,
            current_step=self.current_step,
            total_steps=len(self.reference_points),
            progress=self._overall_progress(),
            collection_progress=self._collection_progress,
            instruction=self._instruction(),
            antenna_positions=dict(self.antenna_positions),
            error_message=self.error_message,
        )

    def _overall_progress(self) -> float:
        total = len(self.reference_points)
        if self.status == WorkflowStatus.COMPLETED:
            return 1.0
        if total == 0 or self.status in (WorkflowStatus.IDLE, WorkflowStatus.COLLECTING_REFERENCE):
            return 0.0
        if self.step_phase == StepPhase.COMPLETED:
            return 1.0

        done = float(self.current_step)
        if self.step_phase == StepPhase.COLLECTING:
            done += self._collection_progress
        elif self.step_phase == StepPhase.SHOWING_ANTENNA_POSITION:
            done += 1.0
        return min(max(done / total, 0.0), 1.0)

    def _instruction(self) -> str:
        total = len(self.reference_points)
        if self.status == WorkflowStatus.IDLE:
            return "Enter the reference points"
        if self.status == WorkflowStatus.COLLECTING_REFERENCE:
            return f"{total} reference points set; start step-by-step collection"
        if self.status == WorkflowStatus.CALCULATING:
            return "Calculating antenna calibration"
        if self.status == WorkflowStatus.COMPLETED:
            return "Calibration completed"
        if self.status == WorkflowStatus.FAILED:
            return f"Calibration failed: {self.error_message}"

        point = self.reference_points[self.current_step] if total else None
        step = f"{self.current_step + 1}/{total}"
        if self.step_phase == StepPhase.PLACING_TAG:
            return f"Place the tag on reference point {step} at {point}"
        if self.step_phase == StepPhase.READY_TO_START:
            return f"Tag placed on reference point {step}; starting collection"
        if self.step_phase == StepPhase.COLLECTING:
            return f"Collecting at reference point {step} ({self._collection_progress * 100:.0f}%)"
        if self.step_phase == StepPhase.SHOWING_ANTENNA_POSITION:
            return f"Collection at reference point {step} finished"
        return "All reference points collected"

    def _publish(self):
        snapshot = self.progress
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception:
                logger.exception("Workflow observer raised")

    def _set_status(self, status: WorkflowStatus):
        if status != self.status:
            logger.info(f"Workflow {self.status.value} -> {status.value}")
        self.status = status
        self._publish()

    # ------------------------------------------------------------------
    # Derived results
    # ------------------------------------------------------------------

    @property
    def calibrated_transforms(self) -> Dict[str, AffineTransform]:
        """Valid transforms per antenna (also after partial failure)."""
        return {
            antenna_id: session.transform
            for antenna_id, session in self.manager.sessions.items()
            if session.is_valid()
        }

    @property
    def final_antenna_positions(self) -> Dict[str, Point3D]:
        """Calibrated world position (transform translation) per antenna."""
        return {aid: t.translation for aid, t in self.calibrated_transforms.items()}

    # ------------------------------------------------------------------
    # Reference points
    # ------------------------------------------------------------------

    def set_reference_points(self, points: Sequence[Point3D]):
        """
        Set the ordered reference points for a new run.

        Raises:
            WorkflowStateError: While collecting or calculating
            InvalidCalibrationData: Empty list or non-finite coordinates
            DuplicateReference: Two identical points
        """
        if self.status in (WorkflowStatus.COLLECTING_OBSERVATION, WorkflowStatus.CALCULATING):
            raise WorkflowStateError('set reference points', self.status.value)
        if not points:
            raise InvalidCalibrationData("at least one reference point is required")

        seen = set()
        for point in points:
            if not point.is_finite:
                raise InvalidCalibrationData(f"non-finite reference point {point}")
            key = point.to_tuple()
            if key in seen:
                raise DuplicateReference(point)
            seen.add(key)

        self._clear_run()
        self.reference_points = list(points)
        self.step_phase = StepPhase.PLACING_TAG
        logger.info(f"Reference points set: {len(self.reference_points)}")
        self._set_status(WorkflowStatus.COLLECTING_REFERENCE)

    def _clear_run(self):
        self.reference_points = []
        self.sessions = {}
        self.mappings = []
        self.antenna_positions = {}
        self.result = None
        self.error_message = None
        self.current_step = 0
        self.step_phase = None
        self._collection_progress = 0.0
        self.manager.clear()

    def _is_stale(self, generation: int) -> bool:
        """True when the run that captured generation has been cancelled."""
        if generation == self._generation:
            return False
        self.metrics.increment_drop('stale_event')
        logger.debug(f"Dropping continuation of cancelled run {generation}")
        return True

    # ------------------------------------------------------------------
    # Step-by-step collection
    # ------------------------------------------------------------------

    async def start_step_by_step(
        self,
        antenna_ids: Sequence[str],
        placement_gate: Optional[PlacementGate] = None,
    ) -> Optional[CalibrationWorkflowResult]:
        """
        Collect at every reference point in order, then calibrate.

        Args:
            antenna_ids: Antennas to observe at each point
            placement_gate: Awaited before each collection (e.g. operator
                confirmation that the tag is placed)

        Returns:
            CalibrationWorkflowResult, or None if the run was cancelled

        Raises:
            WorkflowStateError: Reference points not set or run in progress
            DeviceNotConnected: Sensing device disconnected
            InsufficientMappings: Too few reference points got usable data
        """
        if self.status != WorkflowStatus.COLLECTING_REFERENCE or not self.reference_points:
            raise WorkflowStateError('start step-by-step collection', self.status.value)
        if not antenna_ids:
            raise ValueError("At least one antenna id is required")
        if not self.sensing.is_connected():
            raise DeviceNotConnected()

        generation = self._generation
        self._set_status(WorkflowStatus.COLLECTING_OBSERVATION)

        for index, point in enumerate(self.reference_points):
            self.current_step = index
            self._collection_progress = 0.0
            self.step_phase = StepPhase.PLACING_TAG
            self._publish()

            if placement_gate is not None:
                await placement_gate(index, point)
                if self._is_stale(generation):
                    return None

            self.step_phase = StepPhase.READY_TO_START
            self._publish()

            outcome = await self._collect_at(index, antenna_ids, generation)
            if outcome == WindowOutcome.CANCELLED or self._is_stale(generation):
                return None

            self.antenna_positions = self._interim_positions(index)
            self.step_phase = StepPhase.SHOWING_ANTENNA_POSITION
            self._publish()

        self.step_phase = StepPhase.COMPLETED
        self.map_observations_to_references()
        return await self.execute_calibration()

    async def _collect_at(
        self, index: int, antenna_ids: Sequence[str], generation: int
    ) -> WindowOutcome:
        opened: List[ObservationSession] = []
        for antenna_id in antenna_ids:
            session = ObservationSession(
                antenna_id=antenna_id,
                name=f"{antenna_id} @ reference {index + 1}",
                reference_index=index,
            )
            self.sessions[session.id] = session
            opened.append(session)
            try:
                await self.sensing.start_collection(antenna_id, session.id)
            except Exception as e:
                if self._is_stale(generation):
                    return WindowOutcome.CANCELLED
                await self._abort_collection(opened, e)
                raise
            if self._is_stale(generation):
                return WindowOutcome.CANCELLED
            self.metrics.increment('sessions_started')
            logger.info(f"Session {session.id} started for antenna {antenna_id} (point {index + 1})")

        window = CollectionWindow(
            self.config.collection_duration_s,
            self.config.tick_interval_s,
            on_tick=self._on_collection_tick,
        )
        self._window = window
        self.step_phase = StepPhase.COLLECTING
        self._publish()
        outcome = await window.run()
        if self._window is window:
            self._window = None
        if outcome == WindowOutcome.CANCELLED or self._is_stale(generation):
            return WindowOutcome.CANCELLED

        # Close before stopping the device so late samples are discarded
        for session in opened:
            if session.is_open:
                session.complete()
                self.metrics.increment('sessions_completed')
                self.metrics.record_histogram('collection_samples', len(session.observations))
        for session in opened:
            await self._stop_device_session(session.id)
        return outcome

    async def _abort_collection(self, opened: List[ObservationSession], error: Exception):
        for session in opened:
            if session.is_open:
                session.fail()
        for session in opened:
            await self._stop_device_session(session.id)
        self.error_message = str(error)
        logger.error(f"Collection aborted: {error}")
        self._set_status(WorkflowStatus.FAILED)

    async def _stop_device_session(self, session_id: str):
        try:
            await self.sensing.stop_collection(session_id)
        except Exception as e:
            logger.warning(f"Failed to stop device session {session_id}: {e}")

    def _on_collection_tick(self, progress: float):
        self._collection_progress = progress
        self._publish()

    def _interim_positions(self, index: int) -> Dict[str, Point3D]:
        """Per-antenna centroid of the samples just collected at a point."""
        positions = {}
        for session in self.sessions.values():
            if session.reference_index == index and session.observations:
                positions[session.antenna_id] = session.average_position()
        return positions

    def stop_current_collection(self) -> bool:
        """
        End the running collection window early, keeping its data.

        Returns:
            True if a window was running
        """
        if self._window is None:
            return False
        self._window.stop()
        return True

    # ------------------------------------------------------------------
    # Free-form sessions
    # ------------------------------------------------------------------

    async def start_session(self, antenna_id: str, name: str = "") -> ObservationSession:
        """
        Open a session not tied to a reference point.

        Raises:
            DeviceNotConnected: Sensing device disconnected
        """
        if not self.sensing.is_connected():
            raise DeviceNotConnected()
        session = ObservationSession(antenna_id=antenna_id, name=name or antenna_id)
        self.sessions[session.id] = session
        try:
            await self.sensing.start_collection(antenna_id, session.id)
        except Exception:
            session.fail()
            raise
        self.metrics.increment('sessions_started')
        return session

    def _require_session(self, session_id: str) -> ObservationSession:
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    async def stop_session(self, session_id: str) -> ObservationSession:
        """Complete a session and stop it on the device."""
        session = self._require_session(session_id)
        if session.is_open:
            session.complete()
            self.metrics.increment('sessions_completed')
        await self._stop_device_session(session_id)
        return session

    async def pause_session(self, session_id: str) -> ObservationSession:
        """
        Pause a recording session; samples arriving while paused are discarded.

        Raises:
            SessionNotFound: Unknown session id
        """
        session = self._require_session(session_id)
        session.pause()
        await self.sensing.pause_collection(session_id)
        return session

    async def resume_session(self, session_id: str) -> ObservationSession:
        """
        Resume a paused session.

        Raises:
            SessionNotFound: Unknown session id
        """
        session = self._require_session(session_id)
        session.resume()
        await self.sensing.resume_collection(session_id)
        return session

    # ------------------------------------------------------------------
    # Event ingestion
    # ------------------------------------------------------------------

    def handle_event(self, event: DeviceEvent):
        """Dispatch one sensing event."""
        if event.type == DeviceEventType.DATA_RECEIVED:
            if event.observation is not None:
                self.ingest_observation(event.observation)
        elif event.type == DeviceEventType.DEVICE_DISCONNECTED:
            logger.warning(f"Sensing device {event.device_id} disconnected {event.message}")
        elif event.type == DeviceEventType.ERROR:
            logger.error(f"Sensing device {event.device_id} error: {event.message}")
        else:
            logger.info(f"Sensing device {event.device_id}: {event.type.value}")

    async def consume(self, stream: AsyncIterator[DeviceEvent]):
        """Feed an async event stream into handle_event()."""
        async for event in stream:
            self.handle_event(event)

    def ingest_observation(self, observation: ObservationPoint) -> bool:
        """
        Append a sample to its session if that session is recording.

        Samples without a session id go to the antenna's recording session.

        Returns:
            True if recorded, False if discarded (reason counted)
        """
        self.metrics.increment('observations_ingested')
        session = None
        if observation.session_id is not None:
            session = self.sessions.get(observation.session_id)
        else:
            recording = [s for s in self.sessions.values()
                         if s.antenna_id == observation.antenna_id and s.is_recording]
            session = recording[-1] if recording else None

        if session is None:
            self.metrics.increment_drop('unknown_session')
            logger.debug(f"Discarded sample {observation.id}: no matching session")
            return False
        if not session.append(observation):
            self.metrics.increment_drop('session_not_recording')
            logger.debug(
                f"Discarded sample {observation.id}: session {session.id} is {session.status.value}"
            )
            return False

        self.metrics.increment('observations_accepted')
        return True

    # ------------------------------------------------------------------
    # Mapping and calibration
    # ------------------------------------------------------------------

    def _session_observations(self, session: ObservationSession) -> List[ObservationPoint]:
        if self.preprocessor is None:
            return list(session.observations)
        return self.preprocessor.process(session.observations)

    def _passes_quality(self, observation: ObservationPoint) -> bool:
        if observation.quality.strength <= self.config.mapping_min_strength:
            self.metrics.increment_drop('low_quality')
            return False
        if self.config.require_line_of_sight and not observation.quality.is_line_of_sight:
            self.metrics.increment_drop('nlos')
            return False
        return True

    def map_observations_to_references(self) -> List[ReferenceObservationMapping]:
        """
        Attribute qualifying observations to reference points.

        Observations recorded in a reference point's collection window belong
        to that point. Free-form observations (no reference window) are
        attributed to every reference point within the acceptance radius.
        Only observations with strength above the threshold and line of sight
        qualify. Reference points with nothing qualifying get no mapping.

        Returns:
            Mappings in reference order
        """
        if not self.reference_points:
            raise WorkflowStateError('map observations', self.status.value)
        if self.status != WorkflowStatus.CALCULATING:
            self._set_status(WorkflowStatus.CALCULATING)

        windowed: Dict[int, List[ObservationPoint]] = {}
        free_form: List[ObservationPoint] = []
        for session in self.sessions.values():
            if session.status == ObservationStatus.FAILED:
                continue
            qualified = [o for o in self._session_observations(session) if self._passes_quality(o)]
            if session.reference_index is None:
                free_form.extend(qualified)
            else:
                windowed.setdefault(session.reference_index, []).extend(qualified)

        radius = self.config.acceptance_radius_m
        used_free_form = set()
        mappings = []
        for index, reference in enumerate(self.reference_points):
            observations = list(windowed.get(index, []))
            for observation in free_form:
                if observation.position.distance_to(reference) <= radius:
                    observations.append(observation)
                    used_free_form.add(observation.id)
            if not observations:
                logger.warning(f"Reference point {index + 1} has no qualifying observations")
                continue
            mapping = ReferenceObservationMapping(
                reference_index=index,
                reference_point=reference,
                observations=observations,
            )
            self.metrics.record_histogram('mapping_position_error_m', mapping.position_error)
            mappings.append(mapping)

        unused = sum(1 for o in free_form if o.id not in used_free_form)
        if unused:
            self.metrics.increment_drop('outside_acceptance_radius', unused)

        self.mappings = mappings
        logger.info(f"Mapped observations to {len(mappings)}/{len(self.reference_points)} reference points")
        return mappings

    def _calibration_antennas(self) -> List[str]:
        """Antennas with at least one active or completed session, in first-seen order."""
        antennas = {}
        for session in self.sessions.values():
            if session.status != ObservationStatus.FAILED:
                antennas[session.antenna_id] = True
        return list(antennas)

    def _points_for(self, antenna_id: str) -> List[CalibrationPoint]:
        points = []
        for mapping in self.mappings:
            observations = mapping.observations_for(antenna_id)
            if observations:
                points.append(CalibrationPoint(
                    reference_position=mapping.reference_point,
                    measured_position=centroid(o.position for o in observations),
                    antenna_id=antenna_id,
                ))
        return points

    async def execute_calibration(self) -> Optional[CalibrationWorkflowResult]:
        """
        Calibrate every antenna from the current mappings.

        Returns:
            CalibrationWorkflowResult (success only if all antennas succeed),
            or None if the run was cancelled while calibrating

        Raises:
            InsufficientMappings: Fewer than min_mappings mappings
        """
        if len(self.mappings) < self.config.min_mappings:
            error = InsufficientMappings(required=self.config.min_mappings, found=len(self.mappings))
            self.error_message = str(error)
            self._set_status(WorkflowStatus.FAILED)
            raise error
        if self.status != WorkflowStatus.CALCULATING:
            self._set_status(WorkflowStatus.CALCULATING)

        generation = self._generation
        antennas = self._calibration_antennas()
        results: Dict[str, CalibrationResult] = {}
        for antenna_id in antennas:
            points = self._points_for(antenna_id)
            if len(points) < MIN_POINTS:
                error = InsufficientPoints(required=MIN_POINTS, provided=len(points),
                                           antenna_id=antenna_id)
                self.metrics.increment_drop('insufficient_points')
                self.metrics.increment('calibrations_failed')
                logger.warning(str(error))
                results[antenna_id] = CalibrationResult(
                    antenna_id=antenna_id, success=False,
                    processed_points=len(points), error=error,
                )
                continue
            self.manager.install_points(antenna_id, points)
            result = await self.manager.perform_calibration(antenna_id)
            if self._is_stale(generation):
                return None
            results[antenna_id] = result

        success = bool(results) and all(r.success for r in results.values())
        if success:
            await self._persist_positions(results, generation)
            if self._is_stale(generation):
                return None
            self.error_message = None
        else:
            failed = [f"{aid} ({r.error_message})" for aid, r in results.items() if not r.success]
            self.error_message = ("Calibration failed for antennas: " + ", ".join(failed)
                                  if failed else "No antenna sessions to calibrate")

        self.result = CalibrationWorkflowResult(
            success=success,
            processed_antennas=antennas,
            calibration_results=results,
            quality_statistics=self.quality_statistics(),
            error_message=self.error_message,
        )
        self._set_status(WorkflowStatus.COMPLETED if success else WorkflowStatus.FAILED)
        return self.result

    async def _persist_positions(self, results: Dict[str, CalibrationResult], generation: int):
        if self.repository is None:
            return
        for antenna_id, result in results.items():
            if generation != self._generation:
                # Cancelled mid-save; the remaining positions are discarded
                return
            position = AntennaPosition(
                antenna_id=antenna_id,
                antenna_name=antenna_id,
                position=result.transform.translation,
                rotation_degrees=result.transform.rotation_degrees,
                floor_map_id=self.config.floor_map_id,
            )
            try:
                await self.repository.save_antenna_position(position)
            except Exception as e:
                failure = PersistenceFailure('save_antenna_position', str(e))
                self.metrics.increment_drop('persistence_failed')
                logger.warning(f"{failure} (antenna {antenna_id}); keeping in-memory result")

    # ------------------------------------------------------------------
    # Statistics and validation
    # ------------------------------------------------------------------

    def all_observations(self) -> List[ObservationPoint]:
        return [o for s in self.sessions.values() for o in s.observations]

    def quality_statistics(self) -> WorkflowQualityStatistics:
        """Quality summary over every sample of the run."""
        observations = self.all_observations()
        total = len(observations)
        if total == 0:
            return WorkflowQualityStatistics(processed_antennas=len(self._calibration_antennas()))

        mapping_quality = [m.mapping_quality for m in self.mappings]
        return WorkflowQualityStatistics(
            total_observations=total,
            valid_observations=sum(1 for o in observations
                                   if o.quality.strength > VALID_OBSERVATION_STRENGTH),
            average_signal_quality=sum(o.quality.strength for o in observations) / total,
            line_of_sight_percentage=(sum(1 for o in observations if o.quality.is_line_of_sight)
                                      / total * 100.0),
            mapping_accuracy=(sum(mapping_quality) / len(mapping_quality)
                              if mapping_quality else 0.0),
            processed_antennas=len(self._calibration_antennas()),
        )

    def validate_current_state(self) -> WorkflowValidation:
        """Check whether the collected data is enough to calibrate."""
        issues = []
        recommendations = []

        if len(self.reference_points) < MIN_POINTS:
            issues.append(f"Only {len(self.reference_points)} reference points (need {MIN_POINTS})")
            recommendations.append("Add reference points spread across the floor")

        if not self.sessions:
            issues.append("No observation sessions")
            recommendations.append("Collect observations at each reference point")
        else:
            stats = self.quality_statistics()
            if stats.valid_observations < self.config.min_valid_observations:
                issues.append(f"Only {stats.valid_observations} valid observations")
                recommendations.append("Collect longer or improve signal conditions")

            nlos = self.evaluator.detect_nlos(self.all_observations())
            if nlos.is_nlos_detected:
                issues.append(f"Line of sight only {nlos.line_of_sight_percentage:.0f}%")
                recommendations.append(nlos.recommendation)

        if self.mappings:
            mean_quality = sum(m.mapping_quality for m in self.mappings) / len(self.mappings)
            if mean_quality < self.config.min_mapping_quality:
                issues.append(f"Low mapping quality ({mean_quality:.2f})")
                recommendations.append("Keep the tag still on each reference point")

        return WorkflowValidation(
            can_proceed=not issues, issues=issues, recommendations=recommendations
        )

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def _abort_run(self, action: str) -> List[str]:
        """
        Invalidate the current run and return to IDLE.

        Returns:
            Ids of sessions that were still open on the device
        """
        self._generation += 1
        if self._window is not None:
            self._window.cancel()
            self._window = None

        open_ids = []
        for session in self.sessions.values():
            if session.is_open:
                session.fail()
                open_ids.append(session.id)

        self._clear_run()
        logger.info(f"Workflow {action} ({len(open_ids)} open sessions stopped)")
        self._set_status(WorkflowStatus.IDLE)
        return open_ids

    async def cancel(self):
        """
        Abort the run from any state.

        Stops the collection window and all open sessions, discards collected
        data and returns to IDLE. Coroutines of the cancelled run stop at
        their next resumption.
        """
        for session_id in self._abort_run('cancelled'):
            await self._stop_device_session(session_id)

    def reset(self):
        """
        Synchronous cancel(): return to IDLE from any state.

        Device sessions left open by an active run are stopped in the
        background when an event loop is running.
        """
        open_ids = self._abort_run('reset')
        if not open_ids:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running event loop; {len(open_ids)} device sessions left open")
            return
        for session_id in open_ids:
            asyncio.ensure_future(self._stop_device_session(session_id))


def create_default_workflow(sensing, repository=None) -> CalibrationWorkflow:
    """
    Create workflow with the standard 15 s window and 5 m acceptance radius.

    Returns:
        Configured CalibrationWorkflow instance
    """
    return CalibrationWorkflow(sensing, repository, WorkflowConfig())
