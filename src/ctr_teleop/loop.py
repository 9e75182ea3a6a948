"""Fixed-rate control loop wiring the controller to its collaborators.

The loop is single-threaded: each cycle reads the input device, ticks the
controller, emits the result and asks the kinematics provider to solve at
the new joint vector. The provider, device and sink are plain callables or
objects satisfying the protocols below, so the real forward-kinematics solver
and transport can be swapped for synthetic ones.
"""

import logging
import time
from typing import Callable, NamedTuple, Optional, Protocol, Sequence

import jax.numpy as jnp
from jax import Array

from .core import KinematicsSample
from .errors import KinematicsError, KinematicsTimeoutError
from .teleop import TeleopController, TickResult

logger = logging.getLogger(__name__)


class DeviceState(NamedTuple):
    """One reading of the input device."""
    position: Sequence[float]
    quaternion: Sequence[float]  # (w, x, y, z)
    button: bool


class KinematicsProvider(Protocol):
    def __call__(self, q: Array) -> KinematicsSample:
        """Solve the forward kinematics at a beta-space joint vector.

        Raises KinematicsError if the solver does not converge.
        """


class InputDevice(Protocol):
    def read(self) -> Optional[DeviceState]:
        """Latest device state, or None if nothing was received yet."""


class CommandSink(Protocol):
    def __call__(self, result: TickResult) -> None:
        """Publish the joint command and status of one tick."""


def starting_configuration(controller: TeleopController) -> Array:
    """Joint vector the controller starts from."""
    return jnp.asarray(controller.config.home, dtype=jnp.float64)


class ControlLoop:
    """Runs a TeleopController at its configured rate.

    Args:
        controller: the controller to drive.
        provider: forward kinematics.
        device: input device.
        sink: receives every tick's TickResult.
        clock: monotonic time source in seconds.
        sleep: sleeps for a number of seconds.
    """

    def __init__(self, controller: TeleopController, provider: KinematicsProvider,
                 device: InputDevice, sink: CommandSink,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        self.controller = controller
        self.provider = provider
        self.device = device
        self.sink = sink
        self.clock = clock
        self.sleep = sleep
        self._running = False

    @property
    def period(self) -> float:
        return 1.0 / self.controller.config.rate

    def start(self, timeout: Optional[float] = None) -> KinematicsSample:
        """
        Solve the kinematics at the starting configuration.

        Retries once per period until the provider succeeds.

        Raises:
            KinematicsTimeoutError: no sample within `timeout` seconds
                (default: config.startup_timeout).
        """
        if timeout is None:
            timeout = self.controller.config.startup_timeout
        deadline = self.clock() + timeout
        q = starting_configuration(self.controller)

        while True:
            try:
                sample = self.provider(q)
            except KinematicsError as e:
                if self.clock() >= deadline:
                    raise KinematicsTimeoutError(
                        f"No kinematics for the starting configuration after {timeout}s"
                    ) from e
                logger.warning(f"Starting kinematics failed, retrying: {e}")
                self.sleep(self.period)
                continue

            self.controller.update_kinematics(sample, self.clock())
            logger.info(f"Starting kinematics received, tip at {sample.tip_position}")
            return sample

    def spin_once(self, now: Optional[float] = None) -> TickResult:
        """Run one control cycle and return its result."""
        if now is None:
            now = self.clock()

        state = self.device.read()
        if state is not None:
            self.controller.update_device_pose(state.position, state.quaternion)
            self.controller.update_button(state.button)

        result = self.controller.tick(now)
        self.sink(result)

        # keep solving at the held command while faulted; the latch blocks motion
        try:
            sample = self.provider(result.q)
        except KinematicsError as e:
            logger.warning(f"Kinematics failed at q={result.q}: {e}")
            self.controller.mark_kinematics_failed()
        else:
            self.controller.update_kinematics(sample, self.clock())

        return result

    def run(self, max_ticks: Optional[int] = None) -> int:
        """Loop at the configured rate until stop() or max_ticks cycles.

        Returns the number of cycles run.
        """
        self._running = True
        ticks = 0
        logger.info(f"Control loop running at {self.controller.config.rate} Hz")
        while self._running and (max_ticks is None or ticks < max_ticks):
            started = self.clock()
            self.spin_once(started)
            ticks += 1
            remaining = self.period - (self.clock() - started)
            if remaining > 0.0:
                self.sleep(remaining)
        self._running = False
        return ticks

    def stop(self) -> None:
        self._running = False
