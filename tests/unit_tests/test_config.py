import os
import tempfile
import unittest

import jax.numpy as jnp
import mujoco as mj
import numpy as np
import yaml
from jaxlie import SO3
from pydantic import ValidationError

from mjcost.components.terms import TaskspacePoseTerm
from mjcost.config import (
    TaskspacePoseConfig,
    get_section,
    load_config_source,
    load_orientation,
    load_taskspace_pose_config,
    parse_matrix,
)
from mjcost.configuration import so3_from_euler_xyz
from mjcost.exceptions import ConfigurationError
from mjcost.kinematics import MjxKinematics


class TestConfigValues(unittest.TestCase):
    section = {
        "eeId": 0,
        "Q_rot": 2.0,
        "Q_pos": [[1.0, 0.0, 0.0], [0.0, 2.0, 0.0], [0.0, 0.0, 3.0]],
        "x_des": [1.0, 0.0, 0.5],
        "quat_des": [1.0, 0.0, 0.0, 0.0],
    }

    def test_scalar(self):
        for value, expected in ((1, 1.0), (2.5, 2.5), ("1e-3", 1e-3)):
            config = TaskspacePoseConfig.model_validate(self.section | {"Q_rot": value})
            self.assertEqual(config.rotation_weight, expected)

        for value in ("abc", True, [1.0], float("nan"), float("inf"), -1.0):
            with self.assertRaises(ValidationError):
                TaskspacePoseConfig.model_validate(self.section | {"Q_rot": value})
        with self.assertRaises(ValidationError):
            TaskspacePoseConfig.model_validate({k: v for k, v in self.section.items() if k != "Q_rot"})

    def test_index(self):
        self.assertEqual(TaskspacePoseConfig.model_validate(self.section | {"eeId": 2}).ee_id, 2)
        for value in (1.5, -1, True, "first"):
            with self.assertRaises(ValidationError):
                TaskspacePoseConfig.model_validate(self.section | {"eeId": value})

    def test_validation_error_is_configuration_error(self):
        with self.assertRaises(ConfigurationError) as cm:
            load_taskspace_pose_config({"ee_pose": self.section | {"eeId": -1}}, "ee_pose")
        self.assertIsInstance(cm.exception.__cause__, ValidationError)
        self.assertIn("eeId", str(cm.exception))

    def test_matrix_formats(self):
        expected = np.array([[1.0, 2.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 3.0]])
        values = [
            expected.tolist(),
            expected.ravel().tolist(),
            {"(0,0)": 0.5, "(0,1)": 1.0, "(1, 1)": 0.5, "(2,2)": 1.5, "scaling": 2.0},
        ]
        for value in values:
            np.testing.assert_array_equal(parse_matrix(value, (3, 3)), expected)
            config = TaskspacePoseConfig.model_validate(self.section | {"Q_pos": value})
            np.testing.assert_array_equal(config.position_weight, expected)

    def test_vector_formats(self):
        np.testing.assert_array_equal(parse_matrix([1, 2, 3], (3,)), np.array([1.0, 2.0, 3.0]))
        np.testing.assert_array_equal(parse_matrix([[1], [2], [3]], (3,)), np.array([1.0, 2.0, 3.0]))
        np.testing.assert_array_equal(parse_matrix({"(2,0)": 3.0, "(0,0)": 1.0}, (3,)), np.array([1.0, 0.0, 3.0]))

    def test_malformed_matrix(self):
        values = [
            [1.0, 2.0],
            ["a", "b", "c"],
            {"0,0": 1.0},
            {"(3,0)": 1.0},
            {"(0,0)": "one"},
            {"(0,0)": 1.0, "scaling": "twice"},
            [1.0, float("inf"), 0.0],
        ]
        for value in values:
            with self.assertRaises(ValueError):
                parse_matrix(value, (3,))
            with self.assertRaises(ConfigurationError):
                load_taskspace_pose_config({"ee_pose": self.section | {"x_des": value}}, "ee_pose")

    def test_sections(self):
        document = {
            "flat": {"eeId": 1},
            "nested": {"costs": {"ee_pose": {"eeId": 2}}},
            "weighted": {"eeId": 3, "weights": {"eeId": 4, "Q_rot": 1.0}},
            "scalar": 5,
        }
        self.assertEqual(get_section(document, "flat")["eeId"], 1)
        self.assertEqual(get_section(document, "nested.costs.ee_pose")["eeId"], 2)
        # Values from weights shadow the ones in the section
        self.assertEqual(get_section(document, "weighted")["eeId"], 4)
        self.assertEqual(get_section(document, "weighted")["Q_rot"], 1.0)

        for name in ("missing", "nested.costs.missing", "scalar", "flat.eeId"):
            with self.assertRaises(ConfigurationError):
                get_section(document, name)

    def test_config_file(self):
        document = {"term": {"eeId": 0}}
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "config.yaml")
            with open(path, "w") as f:
                yaml.safe_dump(document, f)
            self.assertEqual(load_config_source(path), document)

            with open(path, "w") as f:
                f.write("- just\n- a list\n")
            with self.assertRaises(ConfigurationError):
                load_config_source(path)

            with open(path, "w") as f:
                f.write("term: [unclosed\n")
            with self.assertRaises(ConfigurationError):
                load_config_source(path)

            with self.assertRaises(ConfigurationError):
                load_config_source(os.path.join(tmpdir, "missing.yaml"))


class TestOrientationLoading(unittest.TestCase):
    euler = [np.pi / 2, 0.0, 0.0]

    def assert_rotation(self, rotation: SO3, expected: SO3):
        np.testing.assert_allclose(rotation.as_matrix(), expected.as_matrix(), atol=1e-6)

    def test_quaternion(self):
        self.assert_rotation(load_orientation({"quat_des": [0.0, 0.0, 0.0, 2.0]}), SO3.from_z_radians(np.pi))

    def test_euler(self):
        self.assert_rotation(load_orientation({"eulerXyz_des": self.euler}), SO3.from_x_radians(np.pi / 2))

    def test_quaternion_priority(self):
        rotation = load_orientation({"quat_des": [1.0, 0.0, 0.0, 0.0], "eulerXyz_des": self.euler})
        self.assert_rotation(rotation, SO3.identity())

    def test_malformed_quaternion_falls_back(self):
        for quat in ([1.0, 0.0, 0.0], [0.0, 0.0, 0.0, 0.0], "identity"):
            rotation = load_orientation({"quat_des": quat, "eulerXyz_des": self.euler})
            self.assert_rotation(rotation, SO3.from_x_radians(np.pi / 2))

    def test_no_orientation(self):
        with self.assertRaises(ConfigurationError):
            load_orientation({})
        with self.assertRaises(ConfigurationError):
            load_orientation({"quat_des": [0.0, 0.0, 0.0, 0.0], "eulerXyz_des": [1.0, 2.0]})


class TestTaskspacePoseTermLoading(unittest.TestCase):
    def setUp(self):
        self.kinematics = MjxKinematics.from_model(
            mj.MjModel.from_xml_string(
                """
        <mujoco>
            <worldbody>
                <body name="ee" pos="1 0 0">
                    <joint name="slide_x" type="slide" axis="1 0 0"/>
                    <geom name="ee_geom" size=".1"/>
                </body>
            </worldbody>
        </mujoco>
        """
            ),
            ["ee"],
        )
        self.section = {
            "eeId": 0,
            "Q_rot": 2.0,
            "Q_pos": [[1.0, 0.0, 0.0], [0.0, 2.0, 0.0], [0.0, 0.0, 3.0]],
            "x_des": [1.0, 0.0, 0.5],
            "quat_des": [1.0, 0.0, 0.0, 0.0],
        }
        self.term = TaskspacePoseTerm(
            "ee_pose",
            self.kinematics,
            state_dim=2,
            control_dim=1,
            ee_id=0,
            position_weight=1.0,
            rotation_weight=1.0,
            target_pos=(0.0, 0.0, 0.0),
            target_euler_xyz=(0.1, 0.2, 0.3),
        )

    def test_load_configuration(self):
        self.term.load_configuration({"ee_pose": self.section}, "ee_pose")

        self.assertEqual(self.term.ee_id, 0)
        self.assertEqual(float(self.term.rotation_weight), 2.0)
        np.testing.assert_array_equal(self.term.jax_component.position_weight, jnp.diag(jnp.array([1.0, 2.0, 3.0])))
        np.testing.assert_array_equal(self.term.jax_component.target_pos, jnp.array([1.0, 0.0, 0.5]))
        np.testing.assert_array_almost_equal(self.term.jax_component.target_rotation.as_matrix(), jnp.eye(3))

        # End effector at (1, 0, 0), 0.5 below the reference, weighted by 3
        self.assertAlmostEqual(float(self.term.evaluate(jnp.zeros(2), jnp.zeros(1))), 0.75, places=5)

    def test_quaternion_shadows_euler(self):
        section = self.section | {"eulerXyz_des": [0.0, 0.0, 1.0]}
        self.term.load_configuration({"ee_pose": section}, "ee_pose")
        np.testing.assert_array_almost_equal(self.term.target_rotation.as_matrix(), jnp.eye(3))

    def test_euler_fallback(self):
        section = {k: v for k, v in self.section.items() if k != "quat_des"} | {"eulerXyz_des": [0.0, 0.0, 1.0]}
        self.term.load_configuration({"ee_pose": section}, "ee_pose")
        np.testing.assert_allclose(
            self.term.target_rotation.as_matrix(), SO3.from_z_radians(1.0).as_matrix(), atol=1e-6
        )

    def test_failed_load_keeps_term(self):
        """Failed loading does not touch any parameter of the term"""
        expected_rotation = so3_from_euler_xyz(jnp.array([0.1, 0.2, 0.3])).as_matrix()
        x, u = jnp.array([0.4, 0.0]), jnp.zeros(1)
        cost_before = float(self.term.evaluate(x, u))

        broken_sections = [
            {k: v for k, v in self.section.items() if k != "quat_des"},
            {k: v for k, v in self.section.items() if k != "eeId"},
            {k: v for k, v in self.section.items() if k != "Q_rot"},
            {k: v for k, v in self.section.items() if k != "Q_pos"},
            {k: v for k, v in self.section.items() if k != "x_des"},
            self.section | {"eeId": 1},
            self.section | {"Q_rot": -1.0},
            self.section | {"x_des": [1.0, 2.0]},
        ]
        for section in broken_sections:
            with self.assertRaises(ConfigurationError):
                self.term.load_configuration({"ee_pose": section}, "ee_pose")

            np.testing.assert_allclose(self.term.target_rotation.as_matrix(), expected_rotation, atol=1e-6)
            np.testing.assert_array_equal(self.term.target_pos, jnp.zeros(3))
            self.assertEqual(float(self.term.rotation_weight), 1.0)
            self.assertAlmostEqual(float(self.term.evaluate(x, u)), cost_before, places=6)

    def test_from_config_file(self):
        document = {"costs": {"ee_pose": {"weights": self.section}}}
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "costs.yaml")
            with open(path, "w") as f:
                yaml.safe_dump(document, f)

            with self.assertLogs("mjcost.config", level="INFO") as logs:
                term = TaskspacePoseTerm.from_config(
                    path, "costs.ee_pose", self.kinematics, state_dim=2, control_dim=1, verbose=True
                )

        self.assertEqual(term.name, "costs.ee_pose")
        self.assertTrue(any("eeId" in message for message in logs.output))
        self.assertAlmostEqual(float(term.evaluate(jnp.zeros(2), jnp.zeros(1))), 0.75, places=5)

    def test_from_config_failure(self):
        with self.assertRaises(ConfigurationError):
            TaskspacePoseTerm.from_config(
                {"ee_pose": self.section | {"eeId": 3}}, "ee_pose", self.kinematics, state_dim=2, control_dim=1
            )
        with self.assertRaises(ConfigurationError):
            TaskspacePoseTerm.from_config({}, "ee_pose", self.kinematics, state_dim=2, control_dim=1)

    def test_parsed_config(self):
        config = load_taskspace_pose_config({"ee_pose": self.section}, "ee_pose")
        self.assertEqual(config.ee_id, 0)
        self.assertEqual(config.rotation_weight, 2.0)
        self.assertEqual(config.position_weight.shape, (3, 3))
        self.assertEqual(config.target_pos.shape, (3,))
