"""
MPM Solver Engine
=================
The explicit time-marching loop of the CPDI2q material point method.

Why is this file needed?
------------------------
1. Pipeline: every iteration runs the six stages in order (corner location,
   basis functions, projection, interpolation, deformation, stress update).
2. Time-Stepping: it advances the simulated time by the stable time step,
   ramps gravity during the elastic loading phase and switches plasticity on.
3. Reporting: it records the wall time of every stage and calls back the
   reporting layer once per frame interval.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
import math
import time
from typing import TYPE_CHECKING, Callable, Optional

import numpy as np

from cpdimpm.fea.errors import MPMError, DivergenceError
from cpdimpm.fea.pre.gravity import GravityRamp
from cpdimpm.fea.analysis.locator import locate_corners
from cpdimpm.fea.analysis.shape_functions import cpdi2q
from cpdimpm.fea.analysis.projection import project
from cpdimpm.fea.analysis.interpolation import interpolate
from cpdimpm.fea.analysis.deformation import update_deformation
from cpdimpm.fea.analysis.constitutive import constitutive_update
from cpdimpm.utils import format_duration

if TYPE_CHECKING:
    import numpy.typing as npt

    from cpdimpm.config import SimulationConfig
    from cpdimpm.fea.analysis.model import Model
    from cpdimpm.fea.analysis.shape_functions import Connectivity

logger = logging.getLogger(__name__)

# Columns of the stage timing history
STAGES = ("shape_functions", "projection", "interpolation", "deformation", "constitutive", "iteration")


@dataclass
class SimulationState:
    """
    Mutable counters of one run, passed through the pipeline.
    """
    dt: float
    total_time: float
    elastic_time: float
    iteration: int = 0
    time: float = 0.0
    gravity: float = 0.0
    plastic: bool = False
    n_active_elements: int = 0
    n_yielded: int = 0
    extra_iterations: int = 0

    @property
    def nominal_iterations(self) -> int:
        return int(math.ceil(self.total_time / self.dt))


@dataclass
class SolverResult:
    """Timing history and counters of a finished run."""
    iterations: int
    time: float
    dt: float
    runtime: float
    cycle_time: npt.NDArray[np.float64] = field(default_factory=lambda: np.empty((0, len(STAGES))))
    active_elements: npt.NDArray[np.int64] = field(default_factory=lambda: np.empty(0, dtype=np.int64))
    gravity: npt.NDArray[np.float64] = field(default_factory=lambda: np.empty(0))

    @property
    def iterations_per_second(self) -> float:
        totals = self.cycle_time[:, -1]
        totals = totals[totals > 0.0]
        if totals.size == 0:
            return 0.0
        return float(np.mean(1.0 / totals))


class Solver:
    """
    Class for the explicit MPM solver.
    """

    def __init__(
        self,
        model: Model,
        dt: float,
        total_time: float,
        elastic_time: float = 0.0,
        gravity: float = 9.81,
        flip: float = 1.0,
        musl: bool = True,
        jaumann: bool = True,
        fps: int = 25,
        max_extra_iterations: int = 0,
    ) -> None:
        """
        Initialize the solver with a model.

        Args:
            model: The model to be solved.
            dt: Time step in s.
            total_time: Simulated duration in s.
            elastic_time: Duration of the elastic loading phase in s.
            gravity: Target gravitational acceleration in m/s².
            flip: FLIP fraction of the particle velocity update.
            musl: Rebuild nodal velocities from the updated particles.
            jaumann: Use the Jaumann objective stress rate.
            fps: Frames per simulated second for reporting.
            max_extra_iterations: Iterations allowed past `total_time` while
                particle velocities are not finite.
        """
        if dt <= 0.0:
            raise ValueError("Time step must be positive.")

        self.model = model
        self.flip = flip
        self.musl = musl
        self.jaumann = jaumann
        self.max_extra_iterations = max_extra_iterations

        self.state = SimulationState(dt=dt, total_time=total_time, elastic_time=elastic_time)
        self.gravity_ramp = GravityRamp(gravity=gravity, elastic_time=elastic_time, dt=dt)
        self.frame_interval = max(2, math.ceil(round(1.0 / dt) / fps))

        self.connectivity: Optional[Connectivity] = None
        self._cycle_time: list[npt.NDArray[np.float64]] = []
        self._active_elements: list[int] = []
        self._gravity: list[float] = []

    @classmethod
    def from_config(cls, model: Model, config: SimulationConfig) -> Solver:
        solver_config = config.solver
        return cls(
            model=model,
            dt=config.time_step(),
            total_time=solver_config.total_time,
            elastic_time=solver_config.elastic_time,
            gravity=solver_config.gravity,
            flip=solver_config.flip,
            musl=solver_config.musl,
            jaumann=solver_config.jaumann,
            fps=solver_config.fps,
            max_extra_iterations=solver_config.max_extra_iterations,
        )

    @property
    def dt(self) -> float:
        return self.state.dt

    def step(self) -> None:
        """
        Advance the model by one time step.

        Raises:
            MPMError: If a stage detects a fatal condition; the error carries
                the iteration number.
        """
        state = self.state
        model = self.model
        particles = model.particles
        dt = state.dt

        state.iteration += 1
        state.gravity = self.gravity_ramp.get_gravity(state.iteration)
        state.plastic = state.iteration * dt > state.elastic_time
        timings = np.zeros(len(STAGES))

        try:
            t_iteration = time.perf_counter()

            # 1) Corner location and basis functions
            t0 = time.perf_counter()
            c2e, n_active = locate_corners(model.mesh, particles.corners)
            self.connectivity = cpdi2q(model.mesh, particles.corners, c2e, n_active)
            timings[0] = time.perf_counter() - t0

            # 2) Projection to the nodes and nodal solve
            t0 = time.perf_counter()
            model.nodal = project(model.mesh, particles, self.connectivity, state.gravity, dt)
            timings[1] = time.perf_counter() - t0

            # 3) Interpolation back to the particles
            t0 = time.perf_counter()
            interpolate(model.mesh, particles, model.nodal, self.connectivity, dt, flip=self.flip, musl=self.musl)
            timings[2] = time.perf_counter() - t0

            # 4) Deformation and strain
            t0 = time.perf_counter()
            update_deformation(particles, model.nodal, self.connectivity, dt)
            timings[3] = time.perf_counter() - t0

            # 5) Elastic predictor, plastic corrector
            t0 = time.perf_counter()
            state.n_yielded = constitutive_update(particles, model.material, state.plastic, jaumann=self.jaumann)
            timings[4] = time.perf_counter() - t0

            timings[5] = time.perf_counter() - t_iteration

        except MPMError as e:
            e.iteration = state.iteration
            logger.error(f"Solver aborted: {e}")
            raise

        state.n_active_elements = n_active
        state.time += dt

        self._cycle_time.append(timings)
        self._active_elements.append(n_active)
        self._gravity.append(state.gravity)

    def _velocities_finite(self) -> bool:
        return bool(np.all(np.isfinite(self.model.particles.v)))

    def _should_continue(self) -> bool:
        state = self.state
        if state.time < state.total_time:
            return True
        if self._velocities_finite():
            return False

        state.extra_iterations += 1
        if state.extra_iterations > self.max_extra_iterations:
            bad = np.flatnonzero(~np.all(np.isfinite(self.model.particles.v), axis=1))
            raise DivergenceError(
                f"{bad.size} particle(s) hold non-finite velocities past the end time "
                f"{state.total_time:g} s (first: {bad[0]})",
                iteration=state.iteration,
                particle=int(bad[0]),
            )
        logger.warning(f"Non-finite particle velocities at the end time, continuing "
                       f"({state.extra_iterations}/{self.max_extra_iterations}).")
        return True

    def result(self, runtime: float = 0.0) -> SolverResult:
        """Collect the history recorded so far."""
        return SolverResult(
            iterations=self.state.iteration,
            time=self.state.time,
            dt=self.state.dt,
            runtime=runtime,
            cycle_time=np.array(self._cycle_time).reshape(-1, len(STAGES)),
            active_elements=np.array(self._active_elements, dtype=np.int64),
            gravity=np.array(self._gravity, dtype=np.float64),
        )

    def solve(
        self,
        callback: Optional[Callable[[Model, SimulationState], None]] = None,
    ) -> SolverResult:
        """
        Run the time loop until the simulated duration is reached.

        Args:
            callback: Called with the model and the state once per frame interval.

        Raises:
            MPMError: On a fatal geometric or numerical failure.

        Returns:
            The timing history of the run.
        """
        model = self.model
        state = self.state
        nit = state.nominal_iterations

        logger.info(f"MPM solver on: {model.number_of_elements} elements, "
                    f"{model.number_of_nodes} nodes, {model.number_of_particles} material points")
        logger.info(f"Time step {state.dt:.4e} s, {nit} iterations, gravity ramp over {len(self.gravity_ramp)} iterations")

        t_solve = time.perf_counter()
        while self._should_continue():
            self.step()

            if state.iteration % self.frame_interval == 1:
                last = self._cycle_time[-1][-1]
                remaining = max(nit - state.iteration, 0) * last
                rate = 1.0 / last if last > 0.0 else float("inf")
                logger.info(f"Iteration {state.iteration}/{nit} - Time: {state.time:.3f} s - "
                            f"Active elements: {state.n_active_elements} - Yielded: {state.n_yielded} - "
                            f"Remaining: {format_duration(remaining)} ({rate:.1f} it/s)")
                if callback is not None:
                    callback(model, state)

        runtime = time.perf_counter() - t_solve
        result = self.result(runtime=runtime)
        logger.info(f"Runtime MPM solver: {format_duration(runtime)} "
                    f"({result.iterations_per_second:.1f} it/s, {result.iterations} iterations)")
        return result
