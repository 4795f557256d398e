# tests/test_sogi_pll_single.py
import math

import numpy as np
import pytest

from estimators.pll.single import SogiPllSingle
from utils.pmu.pmu_input import PMU_Input
from utils.pmu.pmu_output import PMUStatus


def _run(est: SogiPllSingle, sig: np.ndarray, fs: float, channel: str = "V1") -> list:
    out = []
    for n, x in enumerate(sig.tolist()):
        ts = n / fs
        # el resto de canales en 0.0
        out.append(est.update(PMU_Input.from_scalar(x, ts, channel=channel)))
    return out


def test_sogi_pll_single_smoke() -> None:
    fs = 10000
    duration = 0.5
    t = np.arange(int(duration * fs), dtype=float) / fs
    sig = np.sin(2.0 * np.pi * 50.0 * t)

    est = SogiPllSingle(config={"fs": fs, "nominal_hz": 50.0, "channel": "V1"})
    out = _run(est, sig, fs)

    assert len(out) == len(sig)

    tail = out[-2000:]
    freqs = np.array([o.frequency_hz for o in tail], dtype=float)
    assert abs(float(freqs.mean()) - 50.0) < 0.25

    mags = np.array([abs(o.phasors["V1"]) for o in tail], dtype=float)
    assert abs(float(mags.mean()) - 1.0 / math.sqrt(2.0)) < 0.05 / math.sqrt(2.0)

    assert out[0].status_word & PMUStatus.PLL_UNLOCKED
    assert not out[0].locked
    assert out[-1].status_word == PMUStatus.OK
    assert out[-1].locked

    row = out[-1].to_standard_dict()
    assert row["FREQUENCY_HZ"] == pytest.approx(out[-1].frequency_hz)
    assert row["STATUS_WORD"] == 0
    assert -math.pi <= row["V1_ANGLE_RAD"] <= math.pi
    assert row["V1_MAG"] == pytest.approx(abs(out[-1].phasors["V1"]))


def test_sogi_pll_single_reads_configured_channel() -> None:
    fs = 12000
    t = np.arange(int(0.5 * fs), dtype=float) / fs
    sig = np.sin(2.0 * np.pi * 60.0 * t)

    est = SogiPllSingle(config={"fs": fs, "nominal_hz": 60.0, "channel": "I1"})
    out = _run(est, sig, fs, channel="I1")

    assert set(out[-1].phasors) == {"I1"}
    assert out[-1].locked
    assert abs(out[-1].frequency_hz - 60.0) < 1.0


def test_sogi_pll_single_unknown_channel_falls_back() -> None:
    est = SogiPllSingle(config={"fs": 5000, "channel": "X9"})
    assert est.channel == "V1"


def test_sogi_pll_single_rocof_and_reset() -> None:
    fs = 8000
    est = SogiPllSingle(config={"sample_time": 1.0 / fs})
    first = est.update(PMU_Input.from_scalar(0.0, 0.0))
    assert first.rocof_hz_s == 0.0
    assert first.frequency_hz == pytest.approx(50.0)

    # same timestamp twice -> dt == 0, no division
    again = est.update(PMU_Input.from_scalar(0.0, 0.0))
    assert again.rocof_hz_s == 0.0

    for n in range(1, 200):
        est.update(PMU_Input.from_scalar(math.sin(2.0 * math.pi * 50.0 * n / fs), n / fs))

    est.reset()
    after = est.update(PMU_Input.from_scalar(0.0, 1.0))
    assert after.rocof_hz_s == 0.0
    assert after.frequency_hz == pytest.approx(50.0)
    assert est.pll.theta == pytest.approx(2.0 * math.pi * 50.0 / fs)


def test_sogi_pll_single_flags_non_finite_sample() -> None:
    est = SogiPllSingle(config={"fs": 5000})
    out = est.update(PMU_Input.from_scalar(float("nan"), 0.0))
    assert out.status_word & PMUStatus.DATA_ERROR


def test_sogi_pll_single_rejects_wrong_type() -> None:
    est = SogiPllSingle(config={"fs": 5000})
    with pytest.raises(TypeError):
        est.update(0.5)  # type: ignore[arg-type]


def test_sogi_pll_single_requires_sample_rate() -> None:
    with pytest.raises(ValueError):
        SogiPllSingle(config={"nominal_hz": 50.0})


def test_sogi_pll_single_keeps_rocof_history_in_memory() -> None:
    fs = 5000
    est = SogiPllSingle(config={"fs": fs})
    est.update(PMU_Input.from_scalar(0.0, 0.0))
    assert est.memory["last_ts"] == 0.0
    assert est.memory["last_freq"] == pytest.approx(50.0)
    est.reset()
    assert est.memory == {}


def test_sogi_pll_single_flags_bad_snapshot_on_other_channel() -> None:
    est = SogiPllSingle(config={"fs": 5000, "channel": "V1"})
    m = PMU_Input(V1=0.5, V2=0.0, V3=0.0, I1=0.0, I2=0.0, I3=float("inf"), timestamp=0.0)
    out = est.update(m)
    assert out.status_word & PMUStatus.DATA_ERROR
    # the tracked channel is finite, so the estimate stays usable
    nxt = est.update(PMU_Input.from_scalar(0.5, 1.0 / 5000))
    assert math.isfinite(nxt.frequency_hz)
    assert not nxt.status_word & PMUStatus.DATA_ERROR
