"""Error taxonomy and warning categories for the control-allocation core."""

from __future__ import annotations


class SynergyControlError(Exception):
    """Root of every error raised by synergy_control."""


class InvalidParameterError(SynergyControlError, ValueError):
    """A scalar or array configuration value is out of range."""


class UnresolvedReferenceError(SynergyControlError, LookupError):
    """An actuator's identity reference cannot be matched in the model."""


class ActuatorResolutionError(SynergyControlError, LookupError):
    """A controller label is missing from, or ambiguous in, the model."""


class DimensionMismatchError(SynergyControlError, ValueError):
    """A synergy vector does not match the number of controlled actuators."""


class UnmatchedColumnError(SynergyControlError, LookupError):
    """A tabulated control column has no matching actuator in the model."""

    def __init__(self, column: str, message: str | None = None) -> None:
        self.column = column
        super().__init__(
            message
            or (
                f"Column '{column}' does not match the name or path of any actuator.\n"
                f"Column labels must be an actuator name or an absolute path such as "
                f"'/forceset/{column}'."
            )
        )


class ControllerNotReadyError(SynergyControlError, RuntimeError):
    """Controls were requested before the controller was fully configured."""


class ControlWarning(UserWarning):
    """Reported, non-fatal condition in the control-allocation core."""


class ConvergenceWarning(ControlWarning):
    """The factorizer stopped at its iteration cap before meeting its tolerance."""


__all__ = [
    "SynergyControlError",
    "InvalidParameterError",
    "UnresolvedReferenceError",
    "ActuatorResolutionError",
    "DimensionMismatchError",
    "UnmatchedColumnError",
    "ControllerNotReadyError",
    "ControlWarning",
    "ConvergenceWarning",
]
