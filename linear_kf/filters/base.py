import numpy as np
import tensorflow as tf

from linear_kf.errors import (
    NonConformantInitializationError,
    ShapeMismatchError,
    SingularInnovationCovarianceError,
)
from linear_kf.utility import cholesky_solve, max_asym, quadratic_matmul, symmetrize


class GaussianFilter(tf.Module):
    """Shared plumbing for filters that carry a Gaussian (mean, covariance) belief.

    Handles owned-copy conversion of user matrices, eager shape/covariance
    validation and the linear-algebra steps of the measurement update.
    """

    def __init__(self, dtype=tf.float64, rcond=1e-12, atol=1e-8, name=None):
        super().__init__(name=name)
        self.dtype = tf.as_dtype(dtype)
        self.rcond = float(rcond)
        self.atol = float(atol)

    def _as_matrix(self, name, value, column=False):
        # np.array copies, so the filter never shares a buffer with the caller
        arr = np.array(value, dtype=self.dtype.as_numpy_dtype)
        if column and arr.ndim == 1:
            arr = arr[:, np.newaxis]
        if arr.ndim != 2:
            raise ShapeMismatchError(f"{name} must be a matrix, got shape {arr.shape}")
        if column and arr.shape[1] != 1:
            raise ShapeMismatchError(f"{name} must be a column vector, got shape {arr.shape}")
        return tf.convert_to_tensor(arr, dtype=self.dtype)

    @staticmethod
    def _check_square(name, M):
        rows, cols = M.shape
        if rows != cols:
            raise NonConformantInitializationError(f"{name} must be square, got shape {tuple(M.shape)}")

    @staticmethod
    def _check_shape(name, M, expected):
        if tuple(M.shape) != tuple(expected):
            raise ShapeMismatchError(
                f"{name} has shape {tuple(M.shape)}, expected {tuple(expected)}"
            )

    def _check_covariance(self, name, M):
        self._check_finite(name, M)
        scale = max(1.0, float(tf.reduce_max(tf.abs(M))))
        asym = float(max_asym(M))
        if asym > self.atol * scale:
            raise NonConformantInitializationError(f"{name} is not symmetric (max |M - M^T| = {asym:.3e})")
        min_eig = float(tf.reduce_min(tf.linalg.eigvalsh(symmetrize(M))))
        if min_eig < -self.atol * scale:
            raise NonConformantInitializationError(
                f"{name} is not positive semi-definite (min eigenvalue {min_eig:.3e})"
            )

    @staticmethod
    def _check_finite(name, M):
        if not bool(tf.reduce_all(tf.math.is_finite(M))):
            raise NonConformantInitializationError(f"{name} contains NaN or Inf")

    def _check_invertible(self, S):
        eigvals = tf.linalg.eigvalsh(S)
        min_eig = float(tf.reduce_min(eigvals))
        max_eig = float(tf.reduce_max(eigvals))
        if not np.isfinite(min_eig) or not np.isfinite(max_eig):
            raise SingularInnovationCovarianceError(
                "innovation covariance is not finite", min_eig=min_eig, max_eig=max_eig
            )
        if max_eig <= 0.0 or min_eig <= self.rcond * max_eig:
            raise SingularInnovationCovarianceError(
                f"innovation covariance is singular (eigenvalues in [{min_eig:.3e}, {max_eig:.3e}], "
                f"rcond={self.rcond:.1e})",
                min_eig=min_eig,
                max_eig=max_eig,
            )
        return min_eig, max_eig

    def _kalman_gain(self, H, P, R):
        S = symmetrize(quadratic_matmul(H, P, H) + R)
        min_eig, max_eig = self._check_invertible(S)
        RHS = tf.linalg.matmul(H, P, transpose_b=True)
        try:
            K_transpose = cholesky_solve(S, RHS)
        except tf.errors.InvalidArgumentError as exc:
            raise SingularInnovationCovarianceError(
                "Cholesky factorization of the innovation covariance failed",
                min_eig=min_eig,
                max_eig=max_eig,
            ) from exc
        if not bool(tf.reduce_all(tf.math.is_finite(K_transpose))):
            raise SingularInnovationCovarianceError(
                "Kalman gain is not finite", min_eig=min_eig, max_eig=max_eig
            )
        K = tf.linalg.matrix_transpose(K_transpose)
        return K, S

    @staticmethod
    def _joseph_update(H, P, K, R):
        I = tf.eye(tf.shape(P)[-1], dtype=P.dtype)
        I_KH = I - tf.linalg.matmul(K, H)
        return quadratic_matmul(I_KH, P, I_KH) + quadratic_matmul(K, R, K)

    @staticmethod
    def _short_update(H, P, K):
        I = tf.eye(tf.shape(P)[-1], dtype=P.dtype)
        return tf.linalg.matmul(I - tf.linalg.matmul(K, H), P)
