from linear_kf import errors, filters, ssm, utility
from linear_kf.errors import (
    InvalidObservationError,
    KalmanFilterError,
    NonConformantInitializationError,
    ShapeMismatchError,
    SingularInnovationCovarianceError,
)
from linear_kf.filters import KalmanFilter
from linear_kf.ssm import LinearGaussianSSM

__all__ = [
    "errors",
    "filters",
    "ssm",
    "utility",
    "InvalidObservationError",
    "KalmanFilter",
    "KalmanFilterError",
    "LinearGaussianSSM",
    "NonConformantInitializationError",
    "ShapeMismatchError",
    "SingularInnovationCovarianceError",
]
