"""
MPM Solver Engine
=================
The core implementation of the material point method: setup collaborators
(`pre`), the pipeline stages (`analysis`) and the time loop (`solvers`).
"""
