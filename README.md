# cybergear

Build the CAN frames a CyberGear micromotor understands, and decode the
frames it sends back.

The package does not open a CAN bus. You give the motor a `transmit`
callable; every command builds a `CanMessage` (extended identifier, 8 data
bytes) and calls `transmit(message, timeout)` with it. `transmit` should
raise if sending fails; the error passes straight through to the caller.

## Installation

```
pip install .
```

## Usage

```python
import logging

from cybergear.defs import Mode
from cybergear.motor import CanMessage, CyberGearMotor, MessageNotForMotor
from cybergear.utils import print_faults, print_status

logging.basicConfig(level=logging.INFO)

def transmit(message, timeout):
    # send message.identifier / message.data as an extended frame
    ...

motor = CyberGearMotor(master_can_id=0x00, can_id=0x7F, transmit=transmit, timeout=0.5)

motor.stop()
motor.set_mode(Mode.POSITION)
motor.set_limit_speed(3.0)
motor.set_limit_current(5.0)
motor.enable()
motor.set_position(10.0)

motor.request_status()

# for every frame received from the bus:
def on_frame(identifier, data):
    try:
        motor.process_message(CanMessage(identifier=identifier, data=bytes(data)))
    except MessageNotForMotor:
        return
    print_status(motor.get_status())
    if motor.has_faults():
        print_faults(motor.get_faults())
```

`master_can_id`, `can_id` and the id passed to `set_motor_can_id` must be
in 0..255; anything else raises `ValueError`. `timeout` is handed to
`transmit` unchanged.

### Commands

- `enable()`, `stop()`, `set_mode(mode)` with a `Mode` value,
  `set_mech_position_to_zero()`, `request_status()`,
  `set_motor_can_id(can_id)` (updates `motor.can_id` once the frame is sent).
- Limits: `set_limit_speed`, `set_limit_current`, `set_limit_torque`.
- Motion mode: `set_motion_cmd(MotionCommand(...))` with position, speed,
  torque, kp and kd. Each value is clamped to its range and scaled to 16 bits.
- Position mode: `set_position_kp`, `set_position`.
- Speed mode: `set_speed_kp`, `set_speed_ki`, `set_speed`.
- Current mode: `set_current_kp`, `set_current_ki`,
  `set_current_filter_gain`, `set_current`.

Limit and mode-parameter setters write the value as a 32-bit float to the
register named in `Address`; the value is sent as given, not clamped.

### Receiving

`process_message(message)` applies a frame from this motor:

- status replies update `motor.status` (position, speed, torque,
  temperature, `State`) and the status fault flags in `motor.faults`;
- fault replies update the fault flags in `motor.faults`;
- parameter replies update the matching field of `motor.params` and set
  `motor.params.updated`.

`get_param(index)` clears `motor.params.updated` and asks the motor for the
register `index` (an `Address` value).

`get_status()` and `get_faults()` return copies; `has_faults()` is true if
any fault flag is set.

### Errors

`process_message` raises `MessageNotForMotor` for a frame from another CAN
id, and `InvalidResponse` for an unknown packet type, an unknown parameter
index or an unknown run state (the rest of a status reply is still applied).
Both derive from `CyberGearError`.

### Helpers

`cybergear.motor.float_to_uint` and `uint_to_float` do the protocol's
fixed-point scaling. In `cybergear.utils`, `state_name`, `format_status` and
`format_faults` return readable text; `print_status` and `print_faults` log
it at INFO level on the `CyberGear` logger. Ranges and register addresses
are in `cybergear.defs`.

## What it does not do

There is no command-line program and no CAN driver: talking to the bus,
receiving frames and polling the motor are left to your code.