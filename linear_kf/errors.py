"""Exceptions raised by the Kalman filter."""


class KalmanFilterError(Exception):
    pass


class ShapeMismatchError(KalmanFilterError, ValueError):
    """Operand matrices have non-conformant dimensions."""


class NonConformantInitializationError(KalmanFilterError, ValueError):
    """Initial P, Q or R is not square, not finite, not symmetric or not PSD."""


class SingularInnovationCovarianceError(KalmanFilterError, ArithmeticError):
    """The innovation covariance S cannot be inverted.

    Raised by ``KalmanFilter.update``; the filter state is left untouched so
    the caller may drop the measurement and carry on with the next one.
    """

    def __init__(self, message, min_eig=None, max_eig=None):
        super().__init__(message)
        self.min_eig = min_eig
        self.max_eig = max_eig


class InvalidObservationError(KalmanFilterError, ValueError):
    """An observation passed to ``update`` contains NaN or Inf."""
