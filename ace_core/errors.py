"""
Calibration error taxonomy.

Every estimation, workflow and collaborator failure surfaces as a subclass of
CalibrationError carrying structured fields, so callers can branch on the
failure kind and the workflow can record per-antenna failures while other
antennas succeed.
"""

from typing import Optional


class CalibrationError(Exception):
    """Base class for all calibration engine errors."""

    recovery_suggestion = "Check the calibration input and try again."

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        """Convert to dictionary for result reporting."""
        return {
            'error': type(self).__name__,
            'message': self.message,
            'recovery_suggestion': self.recovery_suggestion,
        }


class InsufficientPoints(CalibrationError):
    """Fewer correspondence points than the estimator requires."""

    recovery_suggestion = "Collect observations at 3 or more reference points."

    def __init__(self, required: int, provided: int, antenna_id: Optional[str] = None):
        self.required = required
        self.provided = provided
        self.antenna_id = antenna_id
        target = f" for antenna {antenna_id}" if antenna_id else ""
        super().__init__(
            f"Insufficient calibration points{target}: "
            f"required {required}, provided {provided}"
        )


class InsufficientTags(CalibrationError):
    """Fewer usable tags than needed to estimate an antenna configuration."""

    recovery_suggestion = "Place more tags or record more observations per tag."

    def __init__(self, antenna_id: str, required: int, found: int):
        self.antenna_id = antenna_id
        self.required = required
        self.found = found
        super().__init__(
            f"Insufficient tags for antenna {antenna_id}: "
            f"required {required}, found {found}"
        )


class DegenerateGeometry(CalibrationError):
    """Point configuration does not determine a unique transform."""

    recovery_suggestion = "Spread the reference points so they are not collinear."

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Degenerate geometry: {reason}")


class SingularConfiguration(DegenerateGeometry):
    """Exact 3-point system is singular (collinear measured points)."""


class InvalidCalibrationData(CalibrationError):
    """Calibration input is malformed (non-finite values, bad shapes)."""

    recovery_suggestion = "Remove invalid points and re-enter the calibration data."

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid calibration data: {reason}")


class DuplicateReference(InvalidCalibrationData):
    """Two calibration points share identical reference coordinates."""

    def __init__(self, position):
        self.position = position
        super().__init__(f"duplicate reference point {position}")


class NoCalibrationData(CalibrationError):
    """No calibration data exists for the antenna."""

    recovery_suggestion = "Add calibration points before computing a transform."

    def __init__(self, antenna_id: Optional[str] = None):
        self.antenna_id = antenna_id
        target = f" for antenna {antenna_id}" if antenna_id else ""
        super().__init__(f"No calibration data{target}")


class SessionNotFound(CalibrationError):
    """Referenced observation session does not exist."""

    recovery_suggestion = "Start a new observation session."

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Observation session not found: {session_id}")


class DeviceNotConnected(CalibrationError):
    """Sensing device is not connected."""

    recovery_suggestion = "Connect the UWB sensing device and retry."

    def __init__(self, detail: str = ""):
        suffix = f": {detail}" if detail else ""
        super().__init__(f"Sensing device not connected{suffix}")


class InsufficientMappings(CalibrationError):
    """Too few reference points received qualifying observations."""

    recovery_suggestion = "Re-collect observations with the tag in line of sight."

    def __init__(self, required: int, found: int):
        self.required = required
        self.found = found
        super().__init__(
            f"Insufficient reference mappings: required {required}, found {found}"
        )


class PersistenceFailure(CalibrationError):
    """Persistence collaborator failed to load or store calibration state."""

    recovery_suggestion = "Check storage availability; in-memory results are kept."

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        suffix = f": {detail}" if detail else ""
        super().__init__(f"Persistence failure during {operation}{suffix}")


class WorkflowStateError(CalibrationError):
    """Operation is not allowed in the current workflow state."""

    recovery_suggestion = "Reset the workflow and start again."

    def __init__(self, operation: str, state: str):
        self.operation = operation
        self.state = state
        super().__init__(f"Cannot {operation} while workflow is {state}")
