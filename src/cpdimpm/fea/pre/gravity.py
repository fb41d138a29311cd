from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import matplotlib.pyplot as plt

if TYPE_CHECKING:
    import numpy.typing as npt


class GravityRamp:
    """
    Linear increase of gravity used to reach equilibrium before plastic flow.

    The ramp holds ``round((elastic_time / 1.5) / dt)`` values spaced evenly from
    zero to the target gravity. Iteration ``it`` (1-based) uses ``ramp[it]`` while
    the ramp lasts and the target gravity afterwards.
    """
    NAME: str = "Gravity ramp"

    def __init__(self, gravity: float, elastic_time: float, dt: float) -> None:
        """
        Initialize the ramp.

        Args:
            gravity: Target gravitational acceleration in m/s².
            elastic_time: Duration of the elastic loading phase in s.
            dt: Time step in s.
        """
        self.gravity = gravity
        n_steps = int(round((elastic_time / 1.5) / dt))
        self.values: npt.NDArray[np.float64] = np.linspace(0.0, gravity, n_steps)

    def __len__(self) -> int:
        return self.values.size

    def get_gravity(self, iteration: int) -> float:
        """
        Get the gravity for an iteration.

        Args:
            iteration: 1-based iteration number.

        Returns:
            Gravitational acceleration in m/s².
        """
        if iteration < 1:
            raise ValueError(f"Iterations are counted from 1, got {iteration}.")
        if iteration <= self.values.size:
            return float(self.values[iteration - 1])
        return self.gravity

    def plot(self, dt: float) -> None:
        """
        Plot the ramp against simulated time.
        """
        times = np.arange(1, self.values.size + 1) * dt

        plt.rcParams["figure.constrained_layout.use"] = True
        plt.figure(figsize=(7, 5))

        plt.plot(times, self.values, 'b', lw=2)

        plt.grid(visible=True, which='major', axis='both', linestyle='-', color='gray', lw=0.5)
        plt.minorticks_on()
        plt.grid(visible=True, which='minor', axis='both', linestyle=':', color='gray', lw=0.5)

        plt.title(self.NAME)
        plt.xlabel("Time (s)")
        plt.ylabel("Gravity (m/s²)")
        plt.show()
