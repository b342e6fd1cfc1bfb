"""
Example of the task-space pose cost for a Kuka iiwa robot.

This example demonstrates how to construct the task-space pose term from a
configuration file, evaluate it together with its gradient for a batch of
states, and how to keep independent copies of the term for parallel workers.
"""

import logging
from pathlib import Path
from time import perf_counter

import jax
import jax.numpy as jnp
import mujoco as mj
import numpy as np
from robot_descriptions.iiwa14_mj_description import MJCF_PATH

from mjcost.components.terms import TaskspacePoseTerm
from mjcost.kinematics import MjxKinematics

logging.basicConfig(level=logging.INFO)

print("=== Initializing ===")

# === Mujoco ===
print("Loading MuJoCo model...")
mj_model = mj.MjModel.from_xml_path(MJCF_PATH)
kinematics = MjxKinematics.from_model(mj_model, ["link7"])

# === Mjcost ===
print("Loading cost terms...")
config_path = Path(__file__).parent / "config" / "taskspace_pose.yaml"
state_dim = 2 * kinematics.n_joints
control_dim = kinematics.n_joints

ee_pose = TaskspacePoseTerm.from_config(
    config_path, "ee_pose", kinematics, state_dim=state_dim, control_dim=control_dim, verbose=True
)
# The same robot, with the orientation given via Euler angles
ee_pose_euler = TaskspacePoseTerm.from_config(
    config_path, "ee_pose_euler", kinematics, state_dim=state_dim, control_dim=control_dim
)

# Initial condition
q0 = jnp.array([-1.4238753, -1.7268502, -0.84355015, 2.0962472, 2.1339328, 2.0837479, -2.5521986])
x0 = jnp.concatenate([q0, jnp.zeros(kinematics.n_joints)])
u0 = jnp.zeros(control_dim)

cost, dx, du = ee_pose.evaluate_differentiable(x0, u0, 0.0)
print(f"Cost at initial state: {cost:.4f}, |dl/dx| = {jnp.linalg.norm(dx):.4f}")
print(f"Cost with euler reference: {ee_pose_euler.evaluate(x0, u0, 0.0):.4f}")

# === Batched evaluation ===
# The compiled term is a pytree, so it is an argument of jitted function
N_batch = 1024
x_batch = x0 + 0.1 * jax.random.normal(jax.random.PRNGKey(0), (N_batch, state_dim))


def value_and_grad(jax_term, x):
    return jax.value_and_grad(lambda x_: jax_term(x_, u0, 0.0))(x)


value_and_grad_jit = jax.jit(jax.vmap(value_and_grad, in_axes=(None, 0)))

t_warmup = perf_counter()
costs, grads = value_and_grad_jit(ee_pose.jax_component, x_batch)
costs.block_until_ready()
print(f"Warmup completed in {perf_counter() - t_warmup:.3f} seconds")

t1 = perf_counter()
costs, grads = value_and_grad_jit(ee_pose.jax_component, x_batch)
costs.block_until_ready()
print(f"Batch of {N_batch} states evaluated in {(perf_counter() - t1) * 1000:.3f} ms")
print(f"Cost over batch: min={np.min(costs):.4f}, mean={np.mean(costs):.4f}, max={np.max(costs):.4f}")

# === Independent copies ===
# Every worker holds its own clone, changes in one clone never affect the others
workers = [ee_pose.clone() for _ in range(4)]
for i, worker in enumerate(workers):
    worker.target_pos = np.array([0.5, 0.1 * i, 0.5])

for i, worker in enumerate(workers):
    print(f"worker {i}: target={np.asarray(worker.target_pos)}, cost={worker.evaluate(x0, u0, 0.0):.4f}")
print(f"original: target={np.asarray(ee_pose.target_pos)}, cost={ee_pose.evaluate(x0, u0, 0.0):.4f}")
