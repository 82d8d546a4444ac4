# blazepose_tracker/blazepose_engine/processing/one_euro_filter.py
import numpy as np

class OneEuroFilter:
    """
    A vectorized One-Euro filter used to steady the tracked crop region.

    Each element of the input vector is filtered independently. Elements
    flagged in ``angular`` are treated as radians: the new sample is unwrapped
    next to the previous estimate before filtering and wrapped back into
    [-pi, pi) afterwards, so a rotation crossing +/-pi does not swing the
    long way round.
    """
    def __init__(self, min_cutoff=2.0, beta=1.5, d_cutoff=1.0, angular=None):
        self.min_cutoff = min_cutoff
        self.beta = beta
        self.d_cutoff = d_cutoff
        self.angular = None if angular is None else np.asarray(angular, dtype=bool)
        self.reset()

    def reset(self):
        self._estimate = None
        self._rate = None
        self._t_prev = None

    @property
    def initialized(self) -> bool:
        return self._t_prev is not None

    @staticmethod
    def _alpha(te, cutoff):
        r = 2 * np.pi * cutoff * te
        return r / (r + 1)

    def _unwrap(self, x):
        if self.angular is None:
            return x
        delta = x - self._estimate
        wrapped = (delta + np.pi) % (2 * np.pi) - np.pi
        return np.where(self.angular, self._estimate + wrapped, x)

    def _wrap(self, x):
        if self.angular is None:
            return x
        return np.where(self.angular, (x + np.pi) % (2 * np.pi) - np.pi, x)

    def __call__(self, x, t):
        x = np.asarray(x, dtype=np.float64)
        if self._t_prev is None:
            self._t_prev = t
            self._estimate = x
            self._rate = np.zeros_like(x)
            return x.copy()

        te = t - self._t_prev
        # Repeated or rewound timestamps carry no new information
        if te < 1e-6:
            return self._wrap(self._estimate)

        x = self._unwrap(x)
        alpha_rate = self._alpha(te, self.d_cutoff)
        rate = alpha_rate * (x - self._estimate) / te + (1 - alpha_rate) * self._rate

        cutoff = self.min_cutoff + self.beta * np.abs(rate)
        alpha = self._alpha(te, cutoff)
        estimate = alpha * x + (1 - alpha) * self._estimate

        self._estimate = self._wrap(estimate)
        self._rate = rate
        self._t_prev = t
        return self._estimate.copy()
