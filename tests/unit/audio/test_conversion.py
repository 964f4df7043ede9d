"""Unit tests for PCM conversion helpers."""

import base64

import numpy as np

from matilda_bridge.audio.conversion import downmix_to_mono, ensure_int16, pcm16_to_base64


class TestEnsureInt16:
    """Decoded samples of any dtype become flat int16."""

    def test_int16_passes_through(self):
        samples = np.array([1, -2, 3], dtype=np.int16)
        assert ensure_int16(samples) is samples

    def test_float_scaled_and_clipped(self):
        samples = np.array([0.0, 0.5, -1.0, 1.0, 2.0], dtype=np.float32)
        assert ensure_int16(samples).tolist() == [0, 16384, -32768, 32767, 32767]

    def test_wide_integers_clipped(self):
        samples = np.array([[40000, -40000], [7, -7]], dtype=np.int32)
        assert ensure_int16(samples).tolist() == [32767, -32768, 7, -7]


class TestDownmix:
    def test_stereo_averaged(self):
        interleaved = np.array([100, 300, -50, -150], dtype=np.int16)
        assert downmix_to_mono(interleaved, 2).tolist() == [200, -100]

    def test_trailing_partial_frame_dropped(self):
        interleaved = np.array([10, 20, 30], dtype=np.int16)
        assert downmix_to_mono(interleaved, 2).tolist() == [15]


def test_base64_is_little_endian():
    encoded = pcm16_to_base64(np.array([1, -1], dtype=np.int16))
    assert base64.b64decode(encoded) == b"\x01\x00\xff\xff"
