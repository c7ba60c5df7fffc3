import struct

import pytest

from cybergear.defs import (
    KD_MAX,
    KD_MIN,
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
from cybergear.motor import (
    CanMessage,
    CyberGearMotor,
    InvalidResponse,
    MessageNotForMotor,
    MotionCommand,
    float_to_uint,
    uint_to_float,
)

MASTER = 0x00
MOTOR = 0x7F


@pytest.fixture
def sent():
    return []


@pytest.fixture
def motor(sent):
    return CyberGearMotor(MASTER, MOTOR, lambda msg, timeout: sent.append((msg, timeout)), timeout=5)


def _reply_id(motor, command, extra=0):
    return (command << 24) | extra | (motor.can_id << 8) | motor.master_can_id


def test_enable_frame(motor, sent):
    motor.enable()
    msg, timeout = sent[-1]
    assert msg.identifier.to_bytes(4, "big") == Command.ENABLE.to_bytes(1, "big") + bytes(
        [0, MASTER, MOTOR]
    )
    assert msg.data == bytes(8)
    assert msg.extended
    assert timeout == 5


def test_stop_and_status_request(motor, sent):
    motor.stop()
    motor.request_status()
    assert sent[0][0].identifier.to_bytes(4, "big")[0:1] == Command.RESET.to_bytes(1, "big")
    assert sent[1][0].identifier.to_bytes(4, "big")[0:1] == Command.GET_STATUS.to_bytes(1, "big")


def test_set_mode(motor, sent):
    motor.set_mode(Mode.POSITION)
    msg = sent[-1][0]
    assert msg.identifier >> 24 == Command.RAM_WRITE
    assert msg.data[0:2] == Address.RUN_MODE.to_bytes(2, "little")
    assert msg.data[4] == Mode.POSITION
    assert msg.data_length_code == 8


def test_mech_zero(motor, sent):
    motor.set_mech_position_to_zero()
    msg = sent[-1][0]
    assert msg.identifier.to_bytes(4, "big") == Command.SET_MECH_POSITION_TO_ZERO.to_bytes(
        1, "big"
    ) + bytes([0, MASTER, MOTOR])
    assert msg.data == b"\x01" + bytes(7)


@pytest.mark.parametrize(
    "method, address, value",
    [
        ("set_limit_speed", Address.LIMIT_SPEED, 3.0),
        ("set_limit_current", Address.LIMIT_CURRENT, 5.0),
        ("set_limit_torque", Address.LIMIT_TORQUE, 1.5),
        ("set_current_kp", Address.CURRENT_KP, 0.125),
        ("set_current_ki", Address.CURRENT_KI, 0.25),
        ("set_current_filter_gain", Address.CURRENT_FILTER_GAIN, 0.5),
        ("set_current", Address.I_REF, -2.0),
        ("set_position_kp", Address.POSITION_KP, 30.0),
        ("set_position", Address.POSITION_REF, 10.0),
        ("set_speed_kp", Address.SPEED_KP, 2.0),
        ("set_speed_ki", Address.SPEED_KI, 0.75),
        ("set_speed", Address.SPEED_REF, -4.5),
    ],
)
def test_float_writes(motor, sent, method, address, value):
    getattr(motor, method)(value)
    msg = sent[-1][0]
    assert msg.identifier >> 24 == Command.RAM_WRITE
    assert msg.data[0:2] == address.to_bytes(2, "little")
    assert struct.unpack("<f", msg.data[4:8])[0] == value


def test_float_write_is_not_clamped(motor, sent):
    motor.set_limit_speed(100.0)
    msg = sent[-1][0]
    assert msg.data[0:2] == Address.LIMIT_SPEED.to_bytes(2, "little")
    assert msg.data[4:8] == struct.pack("<f", 100.0)


def test_set_motor_can_id_updates_id(motor, sent):
    motor.set_motor_can_id(0x10)
    assert motor.can_id == 0x10
    msg = sent[-1][0]
    assert msg.identifier >> 24 == Command.SET_CAN_ID
    assert msg.identifier & 0xFF == MOTOR


def test_set_motor_can_id_failure_keeps_id():
    def failing(msg, timeout):
        raise TimeoutError("bus busy")

    m = CyberGearMotor(MASTER, MOTOR, failing)
    with pytest.raises(TimeoutError):
        m.set_motor_can_id(0x10)
    assert m.can_id == MOTOR


def test_invalid_ids_rejected():
    with pytest.raises(ValueError):
        CyberGearMotor(MASTER, 300, lambda m, t: None)


def test_float_to_uint_endpoints_and_clamp():
    assert float_to_uint(POS_MIN, POS_MIN, POS_MAX, 16) == 0
    assert float_to_uint(POS_MAX, POS_MIN, POS_MAX, 16) == 0xFFFF
    assert float_to_uint(100.0, POS_MIN, POS_MAX, 16) == 0xFFFF
    assert float_to_uint(-100.0, POS_MIN, POS_MAX, 16) == 0
    assert float_to_uint(POS_MAX, POS_MIN, POS_MAX, 32) == 0xFFFF


@pytest.mark.parametrize("x", [-12.0, -3.3, 0.0, 1.25, 11.9])
def test_uint_float_round_trip(x):
    back = uint_to_float(float_to_uint(x, POS_MIN, POS_MAX, 16), POS_MIN, POS_MAX)
    assert abs(back - x) <= (POS_MAX - POS_MIN) / 0xFFFF + 1e-9


def test_motion_command_frame(motor, sent):
    cmd = MotionCommand(position=1.0, speed=-2.0, torque=3.0, kp=10.0, kd=0.5)
    motor.set_motion_cmd(cmd)
    msg = sent[-1][0]
    assert msg.identifier >> 24 == Command.POSITION
    expected = struct.pack(
        ">HHHH",
        float_to_uint(1.0, POS_MIN, POS_MAX, 16),
        float_to_uint(-2.0, V_MIN, V_MAX, 16),
        float_to_uint(10.0, KP_MIN, KP_MAX, 16),
        float_to_uint(0.5, KD_MIN, KD_MAX, 16),
    )
    assert msg.data == expected
    torque = float_to_uint(3.0, T_MIN, T_MAX, 16)
    assert (msg.identifier >> 8) & 0xFF == torque & 0xFF


def test_status_message(motor):
    data = struct.pack(">HHHH", 0xFFFF, 0, 0xFFFF, 250)
    motor.process_message(CanMessage(_reply_id(motor, Command.REQUEST, 2 << 22), data))
    status = motor.get_status()
    assert status.state is State.RUNNING
    assert status.position == pytest.approx(POS_MAX)
    assert status.speed == pytest.approx(V_MIN)
    assert status.torque == pytest.approx(T_MAX)
    assert status.temperature == pytest.approx(25.0)
    assert not motor.has_faults()


def test_status_fault_bits(motor):
    extra = (1 << 22) | (1 << 17) | (1 << 21)
    motor.process_message(CanMessage(_reply_id(motor, Command.REQUEST, extra), bytes(8)))
    faults = motor.get_faults()
    assert faults.overload and faults.uncalibrated
    assert not faults.under_voltage
    assert motor.status.state is State.CALIBRATION
    assert motor.has_faults()


def test_unknown_run_state_still_updates(motor):
    data = struct.pack(">HHHH", 0, 0, 0, 100)
    with pytest.raises(InvalidResponse):
        motor.process_message(CanMessage(_reply_id(motor, Command.REQUEST, 3 << 22), data))
    assert motor.status.state is State.RESET
    assert motor.status.position == pytest.approx(POS_MIN)


def test_foreign_motor_rejected(motor):
    ident = (Command.REQUEST << 24) | (0x01 << 8)
    with pytest.raises(MessageNotForMotor):
        motor.process_message(CanMessage(ident, bytes(8)))


def test_unknown_packet_type(motor):
    with pytest.raises(InvalidResponse):
        motor.process_message(CanMessage(_reply_id(motor, Command.ENABLE), bytes(8)))


def test_fault_message(motor):
    fault = (1 << 16) | (1 << 7) | (1 << 3)
    data = fault.to_bytes(4, "big") + (1).to_bytes(4, "big")
    motor.process_message(CanMessage(_reply_id(motor, Command.GET_MOTOR_FAIL), data))
    faults = motor.get_faults()
    assert faults.over_current_phase_a
    assert faults.uncalibrated
    assert faults.over_voltage
    assert faults.over_temperature
    assert not faults.driver_chip
    assert not faults.over_current_phase_b


def _param_reply(motor, address, payload):
    data = address.to_bytes(2, "little") + bytes(2) + payload
    return CanMessage(_reply_id(motor, Command.RAM_READ), data)


def test_get_param_round_trip(motor, sent):
    motor.params.updated = True
    motor.get_param(Address.VBUS)
    assert motor.params.updated is False
    assert sent[-1][0].data[0:2] == Address.VBUS.to_bytes(2, "little")
    assert sent[-1][0].identifier >> 24 == Command.RAM_READ
    motor.process_message(_param_reply(motor, Address.VBUS, struct.pack("<f", 24.5)))
    assert motor.params.vbus == 24.5
    assert motor.params.updated is True


def test_param_integer_kinds(motor):
    motor.process_message(_param_reply(motor, Address.ROTATION, struct.pack("<hxx", -3)))
    motor.process_message(_param_reply(motor, Address.RUN_MODE, bytes([Mode.SPEED, 0, 0, 0])))
    assert motor.params.rotation == -3
    assert motor.params.run_mode == Mode.SPEED


def test_unknown_param_index(motor):
    with pytest.raises(InvalidResponse):
        motor.process_message(_param_reply(motor, 0x1234, bytes(4)))
    assert motor.params.updated is False


def test_get_status_returns_copy(motor):
    status = motor.get_status()
    status.position = 99.0
    assert motor.status.position != 99.0
    assert motor.get_status().position == motor.status.position