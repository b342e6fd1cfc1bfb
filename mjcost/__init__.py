"""Differentiable optimal-control cost terms based on JAX and MuJoCo MJX.

This package provides cost terms which penalize task-space quantities of a robot,
such as the pose of an end effector. Every term is written once against JAX arrays,
so the same code evaluates the cost and, through automatic differentiation, its
derivatives for the surrounding optimizer.
"""

__version__ = "0.1.0"
