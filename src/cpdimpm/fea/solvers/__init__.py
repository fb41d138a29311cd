from cpdimpm.fea.solvers.solver import Solver, SimulationState, SolverResult, STAGES

__all__ = ["Solver", "SimulationState", "SolverResult", "STAGES"]
