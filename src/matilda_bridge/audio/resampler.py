"""Cheap sample-rate conversion for 16-bit PCM.

The bridge codec already band-limits its output, so no anti-aliasing filter
is applied:

- equal rates return the input untouched
- an integer downsampling ratio keeps every Nth sample
- 16 kHz -> 24 kHz interpolates linearly between neighbouring samples
- any other pair picks the nearest earlier sample at the real-valued ratio

Output lengths are always floored, so a chain of conversions never invents
samples beyond the source duration.
"""

import numpy as np

# Rate pairs that get linear interpolation instead of sample picking
LINEAR_UPSAMPLE_PAIRS = {(16000, 24000)}


def resample(samples: np.ndarray, from_rate: int, to_rate: int) -> np.ndarray:
    """Convert int16 ``samples`` from ``from_rate`` to ``to_rate``.

    Args:
        samples: Mono int16 PCM
        from_rate: Source sample rate in Hz
        to_rate: Target sample rate in Hz

    Returns:
        Mono int16 PCM at ``to_rate``

    """
    if from_rate <= 0 or to_rate <= 0:
        raise ValueError(f"Sample rates must be positive, got {from_rate} -> {to_rate}")
    if from_rate == to_rate:
        return samples
    if len(samples) == 0:
        return np.zeros(0, dtype=np.int16)

    if from_rate > to_rate and from_rate % to_rate == 0:
        return decimate(samples, from_rate // to_rate)

    if (from_rate, to_rate) in LINEAR_UPSAMPLE_PAIRS:
        return linear_upsample(samples, from_rate, to_rate)

    return nearest_resample(samples, from_rate, to_rate)


def decimate(samples: np.ndarray, factor: int) -> np.ndarray:
    """Keep every ``factor``-th sample; output length is ``len // factor``."""
    out_len = len(samples) // factor
    return samples[: out_len * factor : factor].copy()


def linear_upsample(samples: np.ndarray, from_rate: int, to_rate: int) -> np.ndarray:
    """Linear interpolation between neighbours; past the last pair the final sample is held."""
    out_len = len(samples) * to_rate // from_rate
    steps = np.arange(out_len, dtype=np.int64) * from_rate
    index = steps // to_rate
    fraction = (steps % to_rate) / to_rate
    last = len(samples) - 1
    following = np.minimum(index + 1, last)

    source = samples.astype(np.float64)
    blended = source[index] * (1.0 - fraction) + source[following] * fraction
    out = np.where(index < last, np.floor(blended + 0.5), source[last])
    return np.clip(out, -32768, 32767).astype(np.int16)


def nearest_resample(samples: np.ndarray, from_rate: int, to_rate: int) -> np.ndarray:
    """``out[i] = in[floor(i * from / to)]`` with ``floor(len * to / from)`` outputs."""
    out_len = len(samples) * to_rate // from_rate
    index = np.arange(out_len, dtype=np.int64) * from_rate // to_rate
    return samples[index].astype(np.int16, copy=True)
