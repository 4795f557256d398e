from __future__ import annotations
# estimators/pll/core.py
# ---------------------------------------------------------------------
# Single-phase SOGI-PLL core: phase, angular frequency and RMS of one
# AC waveform, one sample per call.
#
# Provides:
#   - PllConfig:                 frozen, validated configuration
#   - RecursiveIntegrator:       3-tap integrator (23, -16, 5 rule)
#   - OrthogonalSignalGenerator: SOGI quadrature pair at the live omega
#   - alpha_beta_to_dq(), phase_error(), wrap_angle()
#   - PllResult:                 per-sample result bundle
#   - PllEstimator:              the closed loop, update(v) -> PllResult
#
# Defaults (sogi_k = 1.0, Kp = 178, Ki = 1e-4) are tuned for 50 Hz,
# sampling at 1 kHz or faster and per-unit input. q scales with the
# input amplitude, so does the loop gain: normalise large signals.
# ---------------------------------------------------------------------

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray

from estimators.pll.controller import FrequencyController, make_controller

logger = logging.getLogger(__name__)

TWO_PI = 2.0 * math.pi

# --------------------------- Config ---------------------------

_MISSING = object()


def _cfg_get(cfg: Any, key: str, default: Any) -> Any:
    """Fetch config value from object attribute or mapping key (fallback to default)."""
    try:
        return getattr(cfg, key)
    except AttributeError:
        try:
            return cfg[key]
        except (KeyError, TypeError):
            return default


@dataclass(frozen=True, slots=True)
class PllConfig:
    """Runtime knobs for the SOGI-PLL. Immutable once built."""

    sample_time: float
    sogi_k: float = 1.0
    proportional_gain: float = 178.0
    integral_gain: float = 0.0001
    derivative_gain: float = 0.0  # non-zero selects the PID loop filter
    nominal_angular_frequency: float = TWO_PI * 50.0  # omega_zero [rad/s]
    frequency_correction_limit: float | None = None  # symmetric bound [rad/s]
    lock_threshold: float = 0.1  # smoothed |q| / peak below this -> locked
    lock_smoothing: float = 0.01  # EMA coefficient of the lock metric
    check_finite: bool = False  # raise on NaN/Inf samples instead of propagating

    def __post_init__(self) -> None:
        if not math.isfinite(self.sample_time) or self.sample_time <= 0.0:
            raise ValueError("PllConfig requires config['sample_time'] > 0")
        if not math.isfinite(self.sogi_k) or self.sogi_k <= 0.0:
            raise ValueError("PllConfig requires config['sogi_k'] > 0")
        for key in ("proportional_gain", "integral_gain", "derivative_gain"):
            if not math.isfinite(getattr(self, key)):
                raise ValueError(f"PllConfig requires a finite config['{key}']")
        w0 = self.nominal_angular_frequency
        if not math.isfinite(w0) or w0 <= 0.0:
            raise ValueError("PllConfig requires config['nominal_angular_frequency'] > 0")
        limit = self.frequency_correction_limit
        if limit is not None and (not math.isfinite(limit) or limit <= 0.0):
            raise ValueError("PllConfig requires config['frequency_correction_limit'] > 0 or None")
        if not math.isfinite(self.lock_threshold) or self.lock_threshold <= 0.0:
            raise ValueError("PllConfig requires config['lock_threshold'] > 0")
        if not 0.0 < self.lock_smoothing <= 1.0:
            raise ValueError("PllConfig requires 0 < config['lock_smoothing'] <= 1")

    @property
    def omega_zero(self) -> float:
        return self.nominal_angular_frequency

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any] | Any) -> PllConfig:
        """
        Build from a dict or an attribute object. Besides the field names,
        accepts `fs` [Hz] for the sample rate and `nominal_hz` [Hz] for the
        nominal frequency.
        """
        if isinstance(config, PllConfig):
            return config

        sample_time = _cfg_get(config, "sample_time", _MISSING)
        if sample_time is _MISSING:
            fs = float(_cfg_get(config, "fs", 0.0))
            if not math.isfinite(fs) or fs <= 0.0:
                raise ValueError("PllConfig requires config['sample_time'] > 0 or config['fs'] > 0")
            sample_time = 1.0 / fs

        w0 = _cfg_get(config, "nominal_angular_frequency", _MISSING)
        if w0 is _MISSING:
            w0 = TWO_PI * float(_cfg_get(config, "nominal_hz", 50.0))

        limit = _cfg_get(config, "frequency_correction_limit", None)

        return cls(
            sample_time=float(sample_time),
            sogi_k=float(_cfg_get(config, "sogi_k", 1.0)),
            proportional_gain=float(_cfg_get(config, "proportional_gain", 178.0)),
            integral_gain=float(_cfg_get(config, "integral_gain", 0.0001)),
            derivative_gain=float(_cfg_get(config, "derivative_gain", 0.0)),
            nominal_angular_frequency=float(w0),
            frequency_correction_limit=None if limit is None else float(limit),
            lock_threshold=float(_cfg_get(config, "lock_threshold", 0.1)),
            lock_smoothing=float(_cfg_get(config, "lock_smoothing", 0.01)),
            check_finite=bool(_cfg_get(config, "check_finite", False)),
        )


# ------------------------- Numeric kernels -------------------------


class RecursiveIntegrator:
    """
    Discrete integrator over a 3-tap history (newest first).

    value() = 23*z1 - 16*z2 + 5*z3, with z1 accumulating x * sample_time/12.
    The coefficients fix the stability of the SOGI loop; do not change them.
    """

    __slots__ = ("gain", "z1", "z2", "z3")

    def __init__(self, gain: float) -> None:
        self.gain = gain
        self.z1 = 0.0
        self.z2 = 0.0
        self.z3 = 0.0

    @classmethod
    def from_sample_time(cls, sample_time: float) -> RecursiveIntegrator:
        return cls(sample_time / 12.0)

    def reset(self) -> None:
        self.z1 = 0.0
        self.z2 = 0.0
        self.z3 = 0.0

    def update(self, x: float) -> None:
        self.z3 = self.z2
        self.z2 = self.z1
        self.z1 += x * self.gain

    def value(self) -> float:
        return self.z1 * 23.0 - self.z2 * 16.0 + self.z3 * 5.0


class OrthogonalSignalGenerator:
    """
    SOGI built from two RecursiveIntegrators.

    update(v, omega) returns (v_alpha, v_beta): v_alpha follows the
    fundamental in phase with v, v_beta lags it by 90 degrees. Outputs are
    the integrator values *before* this sample is folded in (one-step delay,
    needed for the cross-coupled loop to be causal). `omega` must be the
    live estimate, the generator keeps no frequency of its own.
    """

    __slots__ = ("k", "integrator_alpha", "integrator_beta")

    def __init__(self, k: float, sample_time: float) -> None:
        self.k = k
        self.integrator_alpha = RecursiveIntegrator.from_sample_time(sample_time)
        self.integrator_beta = RecursiveIntegrator.from_sample_time(sample_time)

    def reset(self) -> None:
        self.integrator_alpha.reset()
        self.integrator_beta.reset()

    def update(self, v: float, omega: float) -> tuple[float, float]:
        v_alpha = self.integrator_alpha.value()
        v_beta = self.integrator_beta.value()

        in_alpha = ((v - v_alpha) * self.k - v_beta) * omega
        in_beta = v_alpha * omega

        self.integrator_alpha.update(in_alpha)
        self.integrator_beta.update(in_beta)

        return v_alpha, v_beta


def alpha_beta_to_dq(alpha: float, beta: float, theta: float) -> tuple[float, float]:
    """Rotate the quadrature pair onto the frame at angle theta."""
    sin_t = math.sin(theta)
    cos_t = math.cos(theta)
    d = alpha * cos_t + beta * sin_t
    q = -alpha * sin_t + beta * cos_t
    return d, q


def phase_error(alpha: float, beta: float, theta: float) -> float:
    """q component; zero when theta tracks the input phase, sign gives the correction direction."""
    return -alpha * math.sin(theta) + beta * math.cos(theta)


def wrap_angle(angle: float) -> float:
    """Floor-based modulo into [0, 2*pi), also for negative angles."""
    wrapped = angle % TWO_PI
    # -tiny % 2pi rounds to exactly 2pi
    if wrapped >= TWO_PI:
        wrapped = 0.0
    return wrapped


# --------------------------- Result ---------------------------


@dataclass(frozen=True, slots=True)
class PllResult:
    v_alpha: float
    v_beta: float
    omega: float  # rad/s, used for this sample
    theta: float  # rad, in [0, 2*pi)
    q: float  # phase error fed to the loop filter
    locked: bool = False

    @property
    def v_peak(self) -> float:
        return math.sqrt(self.v_alpha * self.v_alpha + self.v_beta * self.v_beta)

    @property
    def v_rms(self) -> float:
        return self.v_peak / math.sqrt(2.0)

    @property
    def frequency_hz(self) -> float:
        return self.omega / TWO_PI

    @property
    def reference(self) -> float:
        """Clean unit-amplitude wave aligned with the input fundamental."""
        return math.cos(self.theta)


# --------------------------- Estimator ---------------------------

_UNLOCKED_METRIC = math.pi / 2.0


class PllEstimator:
    """
    Closed-loop SOGI-PLL. Construct once, call update() once per sample
    period in chronological order.

    Per call:
        omega  = correction + omega_zero
        alpha, beta = sogi.update(v, omega)
        q      = phase_error(alpha, beta, theta)
        theta  = wrap_angle(omega * Ts + theta)
        correction = controller.step(q)

    The controller is anything with step(error) and reset(); by default it
    is built from the config (PI, or PID when derivative_gain != 0).
    """

    def __init__(
        self,
        config: PllConfig | Mapping[str, Any] | Any,
        controller: FrequencyController | None = None,
    ) -> None:
        self.config: PllConfig = PllConfig.from_mapping(config)
        cfg = self.config

        self.sogi = OrthogonalSignalGenerator(cfg.sogi_k, cfg.sample_time)
        self.controller: FrequencyController = (
            controller if controller is not None else make_controller(cfg)
        )

        self._correction = 0.0
        self._theta = 0.0
        self._lock_metric = _UNLOCKED_METRIC
        self._locked = False

        logger.debug(
            "PllEstimator: Ts=%.3g s, omega_zero=%.4g rad/s, k=%.3g, kp=%.4g, ki=%.4g, "
            "kd=%.4g, limit=%s, controller=%s",
            cfg.sample_time, cfg.omega_zero, cfg.sogi_k, cfg.proportional_gain,
            cfg.integral_gain, cfg.derivative_gain, cfg.frequency_correction_limit,
            type(self.controller).__name__,
        )

    @property
    def theta(self) -> float:
        return self._theta

    @property
    def omega(self) -> float:
        """Angular frequency the next update() will use."""
        return self._correction + self.config.omega_zero

    @property
    def locked(self) -> bool:
        return self._locked

    def reset(self) -> None:
        self.sogi.reset()
        self.controller.reset()
        self._correction = 0.0
        self._theta = 0.0
        self._lock_metric = _UNLOCKED_METRIC
        self._locked = False

    def _update_lock(self, v_alpha: float, v_beta: float, q: float) -> None:
        cfg = self.config
        peak = math.sqrt(v_alpha * v_alpha + v_beta * v_beta)
        err = abs(q) / peak if peak > 0.0 else _UNLOCKED_METRIC
        self._lock_metric += cfg.lock_smoothing * (err - self._lock_metric)

        locked = self._lock_metric < cfg.lock_threshold
        if locked != self._locked:
            logger.info(
                "PLL %s (metric=%.4f, omega=%.4f rad/s)",
                "locked" if locked else "lost lock", self._lock_metric, self.omega,
            )
            self._locked = locked

    def update(self, v: float) -> PllResult:
        cfg = self.config
        if cfg.check_finite and not math.isfinite(v):
            raise ValueError(f"Non-finite input sample: {v!r}")

        omega = self._correction + cfg.omega_zero
        v_alpha, v_beta = self.sogi.update(v, omega)

        q = phase_error(v_alpha, v_beta, self._theta)

        self._theta = wrap_angle(omega * cfg.sample_time + self._theta)
        self._correction = self.controller.step(q)

        self._update_lock(v_alpha, v_beta, q)

        return PllResult(
            v_alpha=v_alpha,
            v_beta=v_beta,
            omega=omega,
            theta=self._theta,
            q=q,
            locked=self._locked,
        )

    def process(self, samples: Iterable[float]) -> dict[str, NDArray[Any]]:
        """Run update() over a whole record and return the traces as arrays."""
        x: NDArray[np.float64] = np.asarray(list(samples), dtype=float).ravel()
        n = x.shape[0]

        out: dict[str, NDArray[Any]] = {
            name: np.empty(n, dtype=float) for name in ("v_alpha", "v_beta", "omega", "theta", "q")
        }
        locked: NDArray[np.bool_] = np.zeros(n, dtype=bool)

        for i, v in enumerate(x.tolist()):
            r = self.update(v)
            out["v_alpha"][i] = r.v_alpha
            out["v_beta"][i] = r.v_beta
            out["omega"][i] = r.omega
            out["theta"][i] = r.theta
            out["q"][i] = r.q
            locked[i] = r.locked

        out["v_rms"] = np.hypot(out["v_alpha"], out["v_beta"]) / np.sqrt(2.0)
        out["locked"] = locked
        return out
