import logging

import numpy as np
import tensorflow as tf

from linear_kf.errors import (
    InvalidObservationError,
    ShapeMismatchError,
    SingularInnovationCovarianceError,
)
from linear_kf.filters.base import GaussianFilter
from linear_kf.utility import quadratic_matmul, symmetrize, tf_cond

logger = logging.getLogger(__name__)


class KalmanFilter(GaussianFilter):
    """Discrete-time linear Kalman filter.

    Holds the state estimate ``x`` (n x 1), its covariance ``P`` (n x n) and the
    model matrices ``F`` (n x n), ``Q`` (n x n), ``H`` (m x n), ``R`` (m x m).
    ``predict`` and ``update`` overwrite ``x`` and ``P``; a call that raises
    leaves both untouched.

    The covariance update uses the Joseph form unless ``joseph=False``, in which
    case the short form ``(I - K H) P`` is used. Either way ``P`` is
    re-symmetrized after every step.

    Instances are not safe for concurrent mutation; guard a shared filter with
    a lock or keep one filter per tracked entity.
    """

    def __init__(self, x, P, F, Q, H, R, joseph=True, dtype=tf.float64, rcond=1e-12, atol=1e-8):
        super().__init__(dtype=dtype, rcond=rcond, atol=atol)
        x = self._as_matrix("x", x, column=True)
        P = self._as_matrix("P", P)
        F = self._as_matrix("F", F)
        Q = self._as_matrix("Q", Q)
        H = self._as_matrix("H", H)
        R = self._as_matrix("R", R)

        for name, M in (("P", P), ("Q", Q), ("R", R)):
            self._check_square(name, M)

        n = int(x.shape[0])
        m = int(H.shape[0])
        self._check_shape("P", P, (n, n))
        self._check_shape("F", F, (n, n))
        self._check_shape("Q", Q, (n, n))
        self._check_shape("H", H, (m, n))
        self._check_shape("R", R, (m, m))

        for name, M in (("x", x), ("F", F), ("H", H)):
            self._check_finite(name, M)
        for name, M in (("P", P), ("Q", Q), ("R", R)):
            self._check_covariance(name, M)

        self.joseph = bool(joseph)
        self.F = F
        self.Q = Q
        self.H = H
        self.R = R
        self._x = x
        self._P = P

        self.innovation = None
        self.innovation_cov = None
        self.gain = None
        logger.debug("KalmanFilter(state_dim=%d, obs_dim=%d, joseph=%s, dtype=%s)",
                     n, m, self.joseph, self.dtype.name)

    @property
    def state_dim(self):
        return int(self._x.shape[0])

    @property
    def obs_dim(self):
        return int(self.H.shape[0])

    # Tensor.numpy() may share memory with the tensor, so hand out fresh buffers
    def get_state(self):
        return tf.convert_to_tensor(np.array(self._x), dtype=self.dtype)

    def get_covariance(self):
        return tf.convert_to_tensor(np.array(self._P), dtype=self.dtype)

    def predict(self):
        x_pred = tf.linalg.matmul(self.F, self._x)
        P_pred = symmetrize(quadratic_matmul(self.F, self._P, self.F) + self.Q)
        self._x, self._P = x_pred, P_pred

    def update(self, z):
        z = self._as_observation(z)
        v = z - tf.linalg.matmul(self.H, self._x)

        K, S = self._kalman_gain(self.H, self._P, self.R)

        x_filt = self._x + tf.linalg.matmul(K, v)
        if self.joseph:
            P_filt = self._joseph_update(self.H, self._P, K, self.R)
        else:
            P_filt = self._short_update(self.H, self._P, K)

        self._x, self._P = x_filt, symmetrize(P_filt)
        self.innovation, self.innovation_cov, self.gain = v, S, K

    def filter(self, observations, predict_first=True):
        """Run predict/update over a stack of observations.

        observations: [T, m] or [T, m, 1]. With ``predict_first=False`` the
        current (x, P) is used as the prior of ``observations[0]``.

        A step whose innovation covariance is singular, or whose observation is
        not finite, is logged and skipped: its posterior is the prior and ``rejected[t]`` is set.
        """
        obs = np.array(observations, dtype=self.dtype.as_numpy_dtype)
        if obs.ndim == 1 and self.obs_dim == 1:
            obs = obs[:, np.newaxis]
        elif obs.ndim == 3 and obs.shape[-1] == 1:
            obs = obs[..., 0]
        if obs.ndim != 2 or obs.shape[1] != self.obs_dim:
            raise ShapeMismatchError(
                f"observations must be [T, {self.obs_dim}], got shape {obs.shape}"
            )
        T = obs.shape[0]
        n = self.state_dim

        m_pred_ta = tf.TensorArray(dtype=self.dtype, size=T, element_shape=[n])
        P_pred_ta = tf.TensorArray(dtype=self.dtype, size=T, element_shape=[n, n])
        m_filt_ta = tf.TensorArray(dtype=self.dtype, size=T, element_shape=[n])
        P_filt_ta = tf.TensorArray(dtype=self.dtype, size=T, element_shape=[n, n])
        cond_S_ta = tf.TensorArray(dtype=self.dtype, size=T, element_shape=[])
        rejected = np.zeros(T, dtype=bool)

        for t in range(T):
            if predict_first or t > 0:
                self.predict()
            m_pred_ta = m_pred_ta.write(t, self._x[:, 0])
            P_pred_ta = P_pred_ta.write(t, self._P)

            try:
                self.update(obs[t])
            except (SingularInnovationCovarianceError, InvalidObservationError) as exc:
                logger.warning("step %d: measurement rejected: %s", t, exc)
                rejected[t] = True
                cond_S = tf.constant(np.nan, dtype=self.dtype)
            else:
                cond_S = tf_cond(self.innovation_cov)

            m_filt_ta = m_filt_ta.write(t, self._x[:, 0])
            P_filt_ta = P_filt_ta.write(t, self._P)
            cond_S_ta = cond_S_ta.write(t, cond_S)

        if rejected.any():
            logger.info("%d of %d measurements rejected", int(rejected.sum()), T)

        return {
            "m_pred": m_pred_ta.stack(),
            "P_pred": P_pred_ta.stack(),
            "m_filt": m_filt_ta.stack(),
            "P_filt": P_filt_ta.stack(),
            "cond_S": cond_S_ta.stack(),
            "rejected": tf.convert_to_tensor(rejected),
        }

    def _as_observation(self, z):
        arr = np.array(z, dtype=self.dtype.as_numpy_dtype)
        if arr.ndim == 1:
            arr = arr[:, np.newaxis]
        if arr.shape != (self.obs_dim, 1):
            raise ShapeMismatchError(
                f"observation has shape {arr.shape}, expected ({self.obs_dim}, 1)"
            )
        if not np.all(np.isfinite(arr)):
            raise InvalidObservationError(f"observation contains NaN or Inf: {arr[:, 0]}")
        return tf.convert_to_tensor(arr, dtype=self.dtype)
