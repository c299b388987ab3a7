import logging

import tensorflow as tf
import tensorflow_probability as tfp

tfd = tfp.distributions

logger = logging.getLogger(__name__)


class LinearGaussianSSM(tf.Module):
    """Linear-Gaussian state-space model used to simulate ground truth.

    x_0 ~ N(m0, P0), x_t ~ N(F x_{t-1}, Q), y_t ~ N(H x_t, R).
    A small jitter is added before each Cholesky factorization so that
    singular (e.g. zero) noise covariances can still be sampled.
    """

    def __init__(self, F, Q, H, R, m0, P0, jitter=1e-12, seed=42, dtype=tf.float64):
        super().__init__()
        if seed is not None:
            self.rng = tf.random.Generator.from_seed(seed)
        else:
            self.rng = tf.random.Generator.from_non_deterministic_state()
        self.dtype = tf.as_dtype(dtype)
        self.jitter = tf.convert_to_tensor(jitter, dtype=self.dtype)
        self.F = tf.convert_to_tensor(F, dtype=self.dtype)
        self.Q = tf.convert_to_tensor(Q, dtype=self.dtype)
        self.H = tf.convert_to_tensor(H, dtype=self.dtype)
        self.R = tf.convert_to_tensor(R, dtype=self.dtype)
        self.m0 = tf.reshape(tf.convert_to_tensor(m0, dtype=self.dtype), [-1])
        self.P0 = tf.convert_to_tensor(P0, dtype=self.dtype)

        self.L0 = tf.linalg.cholesky(self.P0 + self.jitter * tf.eye(self.state_dim, dtype=self.dtype))
        self.Lq = tf.linalg.cholesky(self.Q + self.jitter * tf.eye(self.state_dim, dtype=self.dtype))
        self.Lr = tf.linalg.cholesky(self.R + self.jitter * tf.eye(self.obs_dim, dtype=self.dtype))

    @property
    def state_dim(self):
        return int(self.F.shape[-1])

    @property
    def obs_dim(self):
        return int(self.H.shape[-2])

    def set_seed(self, seed):
        self.rng = tf.random.Generator.from_seed(seed)
        logger.debug("%s set seed to %s", self.__class__.__name__, seed)

    def _tfp_seed(self):
        return tf.cast(self.rng.make_seeds(2)[0], dtype=tf.int32)

    def f(self, x):
        return tf.einsum("ij,...j->...i", self.F, x)

    def h(self, x):
        return tf.einsum("ij,...j->...i", self.H, x)

    def initial_state_dist(self):
        return tfd.MultivariateNormalTriL(loc=self.m0, scale_tril=self.L0)

    def transition_dist(self, x_prev):
        return tfd.MultivariateNormalTriL(loc=self.f(x_prev), scale_tril=self.Lq)

    def observation_dist(self, x):
        return tfd.MultivariateNormalTriL(loc=self.h(x), scale_tril=self.Lr)

    def step(self, x_prev):
        x_next = self.transition_dist(x_prev).sample(seed=self._tfp_seed())
        y_next = self.observation_dist(x_next).sample(seed=self._tfp_seed())
        return x_next, y_next

    def simulate(self, T, x0=None):
        """Returns (x_traj [T, n], y_traj [T, m])."""
        if x0 is None:
            x = self.initial_state_dist().sample(seed=self._tfp_seed())
        else:
            x = tf.reshape(tf.convert_to_tensor(x0, dtype=self.dtype), [self.state_dim])

        x_traj = []
        y_traj = []
        for _ in range(T):
            x, y = self.step(x)
            x_traj.append(x)
            y_traj.append(y)
        return tf.stack(x_traj, axis=0), tf.stack(y_traj, axis=0)
