"""Explicit CPDI2q material point method for plane strain elasto-plasticity."""
