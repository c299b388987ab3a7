import tensorflow as tf
import tensorflow_probability as tfp

tfd = tfp.distributions


def quadratic_matmul(A, B, C): # A B C^T, [..., n, k] x [..., k, k] x [..., m, k] -> [..., n, m]
    return tf.linalg.matmul(tf.linalg.matmul(A, B), C, transpose_b=True)


def symmetrize(P):
    return 0.5 * (P + tf.linalg.matrix_transpose(P))


def cholesky_solve(A, B): # solve AX = B for SPD A, [n, n] x [n] or [n, k]
    A = tf.convert_to_tensor(A)
    B = tf.convert_to_tensor(B, dtype=A.dtype)
    vector = B.shape.rank == 1
    if vector:
        B = B[:, tf.newaxis]
    L = tf.linalg.cholesky(A)
    U = tf.linalg.triangular_solve(L, B, lower=True)
    X = tf.linalg.triangular_solve(tf.linalg.matrix_transpose(L), U, lower=False)
    if vector:
        X = X[:, 0]
    return X


def tf_cond(M): # condition number of M, [..., n, n] -> [...]
    s = tf.linalg.svd(M, compute_uv=False)
    s_max = tf.reduce_max(s, axis=-1)
    s_min = tf.reduce_min(s, axis=-1)
    eps = 1e-300 if M.dtype == tf.float64 else 1e-20
    return s_max / (s_min + eps)


def max_asym(P):
    # degree of asymmetry of P, [..., n, n] -> scalar
    skew = P - tf.linalg.matrix_transpose(P)
    return tf.reduce_max(tf.abs(skew))


def is_psd(P, tol=1e-7):
    # check the minimum eigenvalue of the symmetric part of P
    eigvals = tf.linalg.eigvalsh(symmetrize(P))
    return tf.reduce_min(eigvals) >= -tol


def tfp_lgssm(observations, x0, P0, F, Q, H, R):
    """Reference forward filter p(x_t | y_1:t) from tfp.

    ``x0``, ``P0`` are the prior of the first observation, i.e. no transition
    is applied before ``observations[0]``. Returns ``(means [T, n], covs [T, n, n])``.
    """
    observations = tf.convert_to_tensor(observations)
    dtype = observations.dtype
    F = tf.convert_to_tensor(F, dtype=dtype)
    Q = tf.convert_to_tensor(Q, dtype=dtype)
    H = tf.convert_to_tensor(H, dtype=dtype)
    R = tf.convert_to_tensor(R, dtype=dtype)
    x0 = tf.reshape(tf.convert_to_tensor(x0, dtype=dtype), [-1])
    P0 = tf.convert_to_tensor(P0, dtype=dtype)
    n = int(F.shape[-1])
    m = int(H.shape[-2])

    lgssm = tfd.LinearGaussianStateSpaceModel(
        num_timesteps=observations.shape[0],
        transition_matrix=F,
        transition_noise=tfd.MultivariateNormalTriL(
            loc=tf.zeros(n, dtype=dtype),
            scale_tril=tf.linalg.cholesky(Q),
        ),
        observation_matrix=H,
        observation_noise=tfd.MultivariateNormalTriL(
            loc=tf.zeros(m, dtype=dtype),
            scale_tril=tf.linalg.cholesky(R),
        ),
        initial_state_prior=tfd.MultivariateNormalTriL(
            loc=x0,
            scale_tril=tf.linalg.cholesky(P0),
        ),
    )
    (_,
     means, covs,
     _, _,
     _, _) = lgssm.forward_filter(observations)
    return means, covs
