import numpy as np
import tensorflow as tf

def make_spd(n, eps=1e-3, seed=0):
    A = tf.random.stateless_normal([n, n], seed=[seed, 1], dtype=tf.float64)
    P = tf.linalg.matmul(A, A, transpose_b=True)
    return P + eps * tf.eye(n, dtype=tf.float64)

def assert_all_finite(*tensors):
    for t in tensors:
        tf.debugging.assert_all_finite(t, "Found NaN/Inf.")


def assert_symmetric(P, tol=1e-12):
    # P: [..., n, n]
    PT = tf.linalg.matrix_transpose(P)
    assert float(tf.reduce_max(tf.abs(P - PT))) <= tol


def assert_psd(P, eps=-1e-10):
    eigvals = tf.linalg.eigvalsh(0.5 * (P + tf.linalg.matrix_transpose(P)))
    assert float(tf.reduce_min(eigvals)) >= eps


def assert_loewner_le(A, B, eps=1e-10):
    """A <= B in the Loewner order, i.e. B - A is PSD."""
    assert_psd(tf.convert_to_tensor(B) - tf.convert_to_tensor(A), eps=-eps)
    np.testing.assert_array_less(np.diag(np.asarray(A)), np.diag(np.asarray(B)) + eps)
