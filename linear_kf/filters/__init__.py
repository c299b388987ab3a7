from linear_kf.filters.base import GaussianFilter
from linear_kf.filters.kalman import KalmanFilter

__all__ = [
    "GaussianFilter",
    "KalmanFilter",
]
