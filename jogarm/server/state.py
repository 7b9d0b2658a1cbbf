"""
Shared state between command ingestion, the jog calculator and the collision
monitor.

Every field has its own lock and a single writer role:

- ingestion: ``command``, ``joint_state``
- collision monitor: ``collision_scale``
- jog calculator: ``trajectory``, ``ok_to_publish``, ``zero_cartesian_cmd``,
  ``zero_joint_cmd``, ``command_is_stale``, ``warning``

Accessors hold a lock only for the copy in or out and never take a second
lock while holding one. Values stored are immutable, so a copy is a
reference swap. Reads of different fields are independent: a reader can see
a command, joint state and collision scale written at slightly different
times.
"""

from __future__ import annotations

import logging
import math
import threading
from typing import Generic, TypeVar

from jogarm.protocol.types import JogCommand, JointState, JointTrajectory

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _Field(Generic[T]):
    """A single lock-protected value."""

    __slots__ = ("_lock", "_value")

    def __init__(self, value: T):
        self._lock = threading.Lock()
        self._value = value

    def get(self) -> T:
        with self._lock:
            return self._value

    def set(self, value: T) -> None:
        with self._lock:
            self._value = value


class SharedState:
    """
    Field-scoped, lock-per-field shared state.

    Created once by the controller and passed to each task; lives for the
    process lifetime.
    """

    __slots__ = (
        "_command",
        "_joint_state",
        "_collision_scale",
        "_trajectory",
        "_ok_to_publish",
        "_zero_cartesian_cmd",
        "_zero_joint_cmd",
        "_command_is_stale",
        "_warning",
    )

    def __init__(self) -> None:
        self._command: _Field[JogCommand | None] = _Field(None)
        self._joint_state: _Field[JointState | None] = _Field(None)
        self._collision_scale: _Field[float] = _Field(1.0)
        self._trajectory: _Field[JointTrajectory | None] = _Field(None)
        self._ok_to_publish: _Field[bool] = _Field(False)
        self._zero_cartesian_cmd: _Field[bool] = _Field(True)
        self._zero_joint_cmd: _Field[bool] = _Field(True)
        self._command_is_stale: _Field[bool] = _Field(False)
        self._warning: _Field[bool] = _Field(False)

    # -- ingestion -----------------------------------------------------------

    def get_command(self) -> JogCommand | None:
        return self._command.get()

    def set_command(self, command: JogCommand) -> None:
        self._command.set(command)

    def get_joint_state(self) -> JointState | None:
        return self._joint_state.get()

    def set_joint_state(self, joint_state: JointState) -> None:
        self._joint_state.set(joint_state)

    # -- collision monitor ---------------------------------------------------

    def get_collision_scale(self) -> float:
        return self._collision_scale.get()

    def set_collision_scale(self, scale: float) -> None:
        """Store a scale clamped to [0, 1]; nan is stored as 0."""
        if math.isnan(scale):
            scale = 0.0
        self._collision_scale.set(min(1.0, max(0.0, float(scale))))

    # -- jog calculator ------------------------------------------------------

    def get_trajectory(self) -> JointTrajectory | None:
        return self._trajectory.get()

    def set_trajectory(self, trajectory: JointTrajectory) -> None:
        self._trajectory.set(trajectory)

    def get_ok_to_publish(self) -> bool:
        return self._ok_to_publish.get()

    def set_ok_to_publish(self, ok: bool) -> None:
        self._ok_to_publish.set(ok)

    def get_zero_cartesian_cmd(self) -> bool:
        return self._zero_cartesian_cmd.get()

    def set_zero_cartesian_cmd(self, flag: bool) -> None:
        self._zero_cartesian_cmd.set(flag)

    def get_zero_joint_cmd(self) -> bool:
        return self._zero_joint_cmd.get()

    def set_zero_joint_cmd(self, flag: bool) -> None:
        self._zero_joint_cmd.set(flag)

    def get_command_is_stale(self) -> bool:
        return self._command_is_stale.get()

    def set_command_is_stale(self, flag: bool) -> None:
        self._command_is_stale.set(flag)

    def get_warning(self) -> bool:
        return self._warning.get()

    def set_warning(self, flag: bool) -> None:
        self._warning.set(flag)
