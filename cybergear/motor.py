"""CyberGear motor control over CAN: frame encoding and decoding of motor replies."""

from __future__ import annotations

import struct
from dataclasses import dataclass, fields, replace
from typing import Any, Callable

from .defs import (
    CURRENT_FILTER_GAIN_MAX,
    CURRENT_FILTER_GAIN_MIN,
    I_MAX,
    I_MIN,
    KD_MAX,
    KD_MIN,
    KI_MAX,
    KI_MIN,
    KP_MAX,
    KP_MIN,
    POS_MAX,
    POS_MIN,
    T_MAX,
    T_MIN,
    V_MAX,
    V_MIN,
    Address,
    Command,
    Mode,
    State,
)


class CyberGearError(Exception):
    """Base error for motor communication."""


class MessageNotForMotor(CyberGearError):
    """A received frame was addressed from another motor."""


class InvalidResponse(CyberGearError):
    """A received frame could not be interpreted."""


@dataclass(frozen=True)
class CanMessage:
    """A CAN frame with an extended identifier and up to 8 data bytes."""

    identifier: int
    data: bytes = bytes(8)
    extended: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", bytes(self.data))
        if len(self.data) > 8:
            raise ValueError("a CAN frame carries at most 8 data bytes")

    @property
    def data_length_code(self) -> int:
        return len(self.data)


@dataclass
class Status:
    """Feedback reported by the motor."""

    position: float = 0.0
    speed: float = 0.0
    torque: float = 0.0
    temperature: float = 0.0
    state: State = State.RESET


@dataclass
class MotionCommand:
    """Set points for motion control mode."""

    position: float = 0.0
    speed: float = 0.0
    torque: float = 0.0
    kp: float = 0.0
    kd: float = 0.0


@dataclass
class Faults:
    """Fault flags reported by the motor."""

    overload: bool = False
    uncalibrated: bool = False
    over_current_phase_a: bool = False
    over_current_phase_b: bool = False
    over_current_phase_c: bool = False
    over_voltage: bool = False
    under_voltage: bool = False
    driver_chip: bool = False
    over_temperature: bool = False
    magnetic_code_failure: bool = False
    hall_coded_faults: bool = False

    def any(self) -> bool:
        return any(getattr(self, f.name) for f in fields(self))


@dataclass
class Params:
    """Parameter values read back from the motor."""

    run_mode: int = 0
    iq_ref: float = 0.0
    spd_ref: float = 0.0
    limit_torque: float = 0.0
    cur_kp: float = 0.0
    cur_ki: float = 0.0
    cur_filt_gain: float = 0.0
    loc_ref: float = 0.0
    limit_spd: float = 0.0
    limit_cur: float = 0.0
    mech_pos: float = 0.0
    iqf: float = 0.0
    mech_vel: float = 0.0
    vbus: float = 0.0
    rotation: int = 0
    loc_kp: float = 0.0
    spd_kp: float = 0.0
    spd_ki: float = 0.0
    updated: bool = False


_PARAM_FIELDS: dict[int, tuple[str, str]] = {
    Address.RUN_MODE: ("run_mode", "u8"),
    Address.IQ_REF: ("iq_ref", "f"),
    Address.SPEED_REF: ("spd_ref", "f"),
    Address.LIMIT_TORQUE: ("limit_torque", "f"),
    Address.CURRENT_KP: ("cur_kp", "f"),
    Address.CURRENT_KI: ("cur_ki", "f"),
    Address.CURRENT_FILTER_GAIN: ("cur_filt_gain", "f"),
    Address.LOC_REF: ("loc_ref", "f"),
    Address.LIMIT_SPEED: ("limit_spd", "f"),
    Address.LIMIT_CURRENT: ("limit_cur", "f"),
    Address.MECH_POS: ("mech_pos", "f"),
    Address.IQF: ("iqf", "f"),
    Address.MECH_VEL: ("mech_vel", "f"),
    Address.VBUS: ("vbus", "f"),
    Address.ROTATION: ("rotation", "i16"),
    Address.LOC_KP: ("loc_kp", "f"),
    Address.SPD_KP: ("spd_kp", "f"),
    Address.SPD_KI: ("spd_ki", "f"),
}

_STATUS_FAULT_BITS = {
    16: "under_voltage",
    17: "overload",
    18: "over_temperature",
    19: "magnetic_code_failure",
    20: "hall_coded_faults",
    21: "uncalibrated",
}

_FAULT_FRAME_BITS = {
    16: "over_current_phase_a",
    7: "uncalibrated",
    5: "over_current_phase_c",
    4: "over_current_phase_b",
    3: "over_voltage",
    2: "under_voltage",
    1: "driver_chip",
}


def float_to_uint(x: float, x_min: float, x_max: float, bits: int = 16) -> int:
    """Scale x, clamped to [x_min, x_max], onto an unsigned integer of the given width."""
    bits = min(bits, 16)
    span = x_max - x_min
    x = min(max(x, x_min), x_max)
    return int((x - x_min) * float((1 << bits) - 1) / span)


def uint_to_float(x: int, x_min: float, x_max: float) -> float:
    """Map a 16-bit unsigned value back onto [x_min, x_max]."""
    return x / 0xFFFF * (x_max - x_min) + x_min


def _check_id(value: int, name: str) -> int:
    if not 0 <= value <= 0xFF:
        raise ValueError(f"{name} must be in 0..255, got {value}")
    return value


Transmit = Callable[[CanMessage, Any], Any]


class CyberGearMotor:
    """One motor on the bus. Frames go out through ``transmit(message, timeout)``,
    which is expected to raise on failure."""

    def __init__(self, master_can_id: int, can_id: int, transmit: Transmit, timeout: Any = None) -> None:
        self.master_can_id = _check_id(master_can_id, "master_can_id")
        self.can_id = _check_id(can_id, "can_id")
        self.transmit = transmit
        self.timeout = timeout
        self.params = Params()
        self.status = Status()
        self.faults = Faults()

    # -- sending -------------------------------------------------------------

    def _send(self, command: int, data: bytes, option: int | None = None) -> None:
        if option is None:
            option = self.master_can_id
        identifier = (command << 24) | ((option & 0xFF) << 8) | self.can_id
        self.transmit(CanMessage(identifier, bytes(data)), self.timeout)

    def _send_float(self, address: int, value: float) -> None:
        data = address.to_bytes(2, "little") + bytes(2) + struct.pack("<f", value)
        self._send(Command.RAM_WRITE, data)

    def enable(self) -> None:
        self._send(Command.ENABLE, bytes(8))

    def stop(self) -> None:
        self._send(Command.RESET, bytes(8))

    def set_mode(self, mode: Mode) -> None:
        data = bytearray(8)
        data[0:2] = Address.RUN_MODE.to_bytes(2, "little")
        data[4] = int(mode) & 0xFF
        self._send(Command.RAM_WRITE, data)

    def get_param(self, index: int) -> None:
        """Request a parameter; the reply is applied by :meth:`process_message`."""
        self.params.updated = False
        data = bytearray(8)
        data[0:2] = (index & 0xFFFF).to_bytes(2, "little")
        self._send(Command.RAM_READ, data)

    def set_motor_can_id(self, can_id: int) -> None:
        _check_id(can_id, "can_id")
        option = can_id << 8 | self.master_can_id
        self._send(Command.SET_CAN_ID, bytes(8), option)
        self.can_id = can_id

    def set_mech_position_to_zero(self) -> None:
        self._send(Command.SET_MECH_POSITION_TO_ZERO, b"\x01" + bytes(7))

    def request_status(self) -> None:
        self._send(Command.GET_STATUS, bytes(8))

    def set_limit_speed(self, speed: float) -> None:
        self._send_float(Address.LIMIT_SPEED, speed)

    def set_limit_current(self, current: float) -> None:
        self._send_float(Address.LIMIT_CURRENT, current)

    def set_limit_torque(self, torque: float) -> None:
        self._send_float(Address.LIMIT_TORQUE, torque)

    def set_motion_cmd(self, cmd: MotionCommand) -> None:
        data = struct.pack(
            ">HHHH",
            float_to_uint(cmd.position, POS_MIN, POS_MAX, 16),
            float_to_uint(cmd.speed, V_MIN, V_MAX, 16),
            float_to_uint(cmd.kp, KP_MIN, KP_MAX, 16),
            float_to_uint(cmd.kd, KD_MIN, KD_MAX, 16),
        )
        torque = float_to_uint(cmd.torque, T_MIN, T_MAX, 16)
        self._send(Command.POSITION, data, torque)

    def set_current_kp(self, kp: float) -> None:
        self._send_float(Address.CURRENT_KP, kp)

    def set_current_ki(self, ki: float) -> None:
        self._send_float(Address.CURRENT_KI, ki)

    def set_current_filter_gain(self, gain: float) -> None:
        self._send_float(Address.CURRENT_FILTER_GAIN, gain)

    def set_current(self, current: float) -> None:
        self._send_float(Address.I_REF, current)

    def set_position_kp(self, kp: float) -> None:
        self._send_float(Address.POSITION_KP, kp)

    def set_position(self, position: float) -> None:
        self._send_float(Address.POSITION_REF, position)

    def set_speed_kp(self, kp: float) -> None:
        self._send_float(Address.SPEED_KP, kp)

    def set_speed_ki(self, ki: float) -> None:
        self._send_float(Address.SPEED_KI, ki)

    def set_speed(self, speed: float) -> None:
        self._send_float(Address.SPEED_REF, speed)

    # -- receiving -----------------------------------------------------------

    def process_message(self, message: CanMessage) -> None:
        """Apply a frame received from this motor to its status, faults or params."""
        can_id = (message.identifier & 0xFF00) >> 8
        packet_type = (message.identifier & 0x3F000000) >> 24
        if can_id != self.can_id:
            raise MessageNotForMotor(f"frame from CAN id {can_id}, motor is {self.can_id}")
        data = message.data.ljust(8, b"\0")
        if packet_type == Command.REQUEST:
            self._process_motor_message(message.identifier, data)
        elif packet_type == Command.RAM_READ:
            self._process_param_message(data)
        elif packet_type == Command.GET_MOTOR_FAIL:
            self._process_fault_message(data)
        else:
            raise InvalidResponse(f"unknown packet type {packet_type:#x}")

    def _process_motor_message(self, identifier: int, data: bytes) -> None:
        raw_position, raw_speed, raw_torque, raw_temperature = struct.unpack(">HHHH", data)
        run_mode = (identifier & 0xC00000) >> 22
        known_state = run_mode in State._value2member_map_
        if known_state:
            self.status.state = State(run_mode)
        self.status.position = uint_to_float(raw_position, POS_MIN, POS_MAX)
        self.status.speed = uint_to_float(raw_speed, V_MIN, V_MAX)
        self.status.torque = uint_to_float(raw_torque, T_MIN, T_MAX)
        self.status.temperature = raw_temperature / 10
        for bit, name in _STATUS_FAULT_BITS.items():
            setattr(self.faults, name, bool(identifier & (1 << bit)))
        if not known_state:
            raise InvalidResponse(f"unknown run state {run_mode}")

    def _process_fault_message(self, data: bytes) -> None:
        fault = int.from_bytes(data[0:4], "big")
        warning = int.from_bytes(data[4:8], "big")
        for bit, name in _FAULT_FRAME_BITS.items():
            setattr(self.faults, name, bool(fault & (1 << bit)))
        self.faults.over_temperature = bool(warning & 1)

    def _process_param_message(self, data: bytes) -> None:
        index = int.from_bytes(data[0:2], "little")
        try:
            name, kind = _PARAM_FIELDS[index]
        except KeyError:
            raise InvalidResponse(f"unknown parameter index {index:#06x}") from None
        if kind == "u8":
            value: float | int = data[4]
        elif kind == "i16":
            (value,) = struct.unpack_from("<h", data, 4)
        else:
            (value,) = struct.unpack_from("<f", data, 4)
        setattr(self.params, name, value)
        self.params.updated = True

    # -- queries -------------------------------------------------------------

    def get_status(self) -> Status:
        return replace(self.status)

    def get_faults(self) -> Faults:
        return replace(self.faults)

    def has_faults(self) -> bool:
        return self.faults.any()