"""CAN frame building and decoding for CyberGear micromotors."""

__version__ = "0.1.0"
__all__ = ["defs", "motor", "utils"]