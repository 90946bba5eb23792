"""
Player Gateway - per-robot controller gateway for simulated robot players.

This module runs inside a robot's simulation controller and:
- Accepts a single TCP connection from an allowed remote controller
- Applies length-prefixed actuator requests to the robot's devices
- Replies every simulation step with a snapshot of enabled sensors
- Enforces a per-team bandwidth quota shared between player processes
"""

__version__ = "1.0.0"
