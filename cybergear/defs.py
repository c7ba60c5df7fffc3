"""Protocol constants for the CyberGear motor: commands, register addresses and ranges."""

from enum import IntEnum


class Command(IntEnum):
    """Communication types carried in bits 24..28 of the extended CAN identifier."""

    POSITION = 0x1
    REQUEST = 0x2
    ENABLE = 0x3
    RESET = 0x4
    SET_MECH_POSITION_TO_ZERO = 0x6
    SET_CAN_ID = 0x7
    RAM_READ = 0x11
    RAM_WRITE = 0x12
    GET_STATUS = 0x15
    GET_MOTOR_FAIL = 21


class Address(IntEnum):
    """Parameter register addresses."""

    SPEED_KP = 0x2014
    SPEED_KI = 0x2015
    POSITION_KP = 0x2016
    RUN_MODE = 0x7005
    I_REF = 0x7006
    SPEED_REF = 0x700A
    LIMIT_TORQUE = 0x700B
    CURRENT_KP = 0x7010
    CURRENT_KI = 0x7011
    CURRENT_FILTER_GAIN = 0x7014
    POSITION_REF = 0x7016
    LIMIT_SPEED = 0x7017
    LIMIT_CURRENT = 0x7018

    IQ_REF = 0x7006
    LOC_REF = 0x7016
    MECH_POS = 0x7019
    IQF = 0x701A
    MECH_VEL = 0x701B
    VBUS = 0x701C
    ROTATION = 0x701D
    LOC_KP = 0x701E
    SPD_KP = 0x701F
    SPD_KI = 0x7020


class Mode(IntEnum):
    """Run modes the motor can be switched to."""

    MOTION = 0x00
    POSITION = 0x01
    SPEED = 0x02
    CURRENT = 0x03


class State(IntEnum):
    """Run states reported by the motor."""

    RESET = 0x00
    CALIBRATION = 0x01
    RUNNING = 0x02


POS_MIN = -12.5
POS_MAX = 12.5
V_MIN = -30.0
V_MAX = 30.0
KP_MIN = 0.0
KP_MAX = 500.0
KI_MIN = 0.0
KI_MAX = 10.0
KD_MIN = 0.0
KD_MAX = 5.0
T_MIN = -12.0
T_MAX = 12.0
I_MIN = -27.0
I_MAX = 27.0
CURRENT_FILTER_GAIN_MIN = 0.0
CURRENT_FILTER_GAIN_MAX = 1.0