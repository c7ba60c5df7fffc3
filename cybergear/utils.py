"""Human-readable rendering of motor status and faults."""

from __future__ import annotations

import logging

from .defs import State
from .motor import Faults, Status

logger = logging.getLogger("CyberGear")

_FAULT_LABELS = (
    ("overload", "Overload"),
    ("uncalibrated", "Uncalibrated"),
    ("over_current_phase_a", "Over-Current Phase A"),
    ("over_current_phase_b", "Over-Current Phase B"),
    ("over_current_phase_c", "Over-Current Phase C"),
    ("over_voltage", "Over Voltage"),
    ("under_voltage", "Under Voltage"),
    ("driver_chip", "Driver-Chip"),
    ("over_temperature", "Over-Temperature"),
    ("magnetic_code_failure", "Magnetic Encoder"),
    ("hall_coded_faults", "Hall-Coded"),
)


def state_name(state: int) -> str:
    """Name of a run state, or "UNKNOWN"."""
    try:
        return State(state).name
    except ValueError:
        return "UNKNOWN"


def format_faults(faults: Faults) -> str:
    """One line per fault flag."""
    return "\n".join(
        f"Fault {label}: {'true' if getattr(faults, attr) else 'false'}" for attr, label in _FAULT_LABELS
    )


def format_status(status: Status) -> str:
    return (
        f"Temp: {status.temperature:f} [°C] Mode: {state_name(status.state)} "
        f"Pos: {status.position:f} Speed: {status.speed:f} [rad/s] Torque: {status.torque:f} [Nm]"
    )


def print_faults(faults: Faults) -> None:
    for line in format_faults(faults).splitlines():
        logger.info(line)


def print_status(status: Status) -> None:
    logger.info(format_status(status))