import os
import sys
import numpy as np
import pytest
import tensorflow as tf

sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from linear_kf.filters import KalmanFilter
from linear_kf.ssm import LinearGaussianSSM
from linear_kf.utility import tfp_lgssm


@pytest.fixture
def cv_params():
    """Constant-velocity model with a position sensor."""
    return {
        "x": np.zeros((2, 1)),
        "P": np.eye(2),
        "F": np.array([[1.0, 1.0], [0.0, 1.0]]),
        "Q": 1e-4 * np.eye(2),
        "H": np.array([[1.0, 0.0]]),
        "R": np.array([[0.01]]),
    }

@pytest.fixture
def cv_filter(cv_params):
    return KalmanFilter(**cv_params)

@pytest.fixture
def lgssm_3d():
    dx, dy = 3, 2
    dtype = tf.float64
    F = tf.constant([[0.9, 0.1, 0.0],
                     [0.0, 0.8, 0.1],
                     [0.0, 0.0, 0.9]], dtype=dtype)
    Q = tf.eye(dx, dtype=dtype)
    H = tf.constant([[1.0, 0.5, 0.0],
                     [0.0, 0.9, 0.0]], dtype=dtype)
    R = 0.09 * tf.eye(dy, dtype=dtype)

    m0 = np.zeros(dx)
    P0 = np.eye(dx)
    return LinearGaussianSSM(F, Q, H, R, m0, P0, seed=42)

@pytest.fixture
def sim_data_3d(lgssm_3d):
    T = 80
    x_traj, y_traj = lgssm_3d.simulate(T=T)
    return {
        "T": T,
        "x_traj": x_traj,
        "y_traj": y_traj,
    }

@pytest.fixture
def kf_3d(lgssm_3d):
    return KalmanFilter(
        x=lgssm_3d.m0,
        P=lgssm_3d.P0,
        F=lgssm_3d.F,
        Q=lgssm_3d.Q,
        H=lgssm_3d.H,
        R=lgssm_3d.R,
    )

@pytest.fixture
def tfp_ref_3d(lgssm_3d, sim_data_3d):
    """Ground Truth for kalman filter"""
    y_traj = sim_data_3d["y_traj"]
    m = lgssm_3d
    return tfp_lgssm(y_traj, m.m0, m.P0, m.F, m.Q, m.H, m.R)
