"""
Tests for the offline effect library.
"""
import math
import pytest
import numpy as np

from waveforge.core import effects as fx
from waveforge.core import biquad
from waveforge.core.buffer import PCMBuffer
from waveforge.core.errors import EmptyInput, InvalidParameter, UnsupportedEffect
from waveforge.core.impulse import generate_impulse_response, normalization_scale
from waveforge.core.types import EffectKind, EffectRequest

from conftest import SR, rms, sine


class TestFilter:
    """Tests for the basic filter effect."""

    def test_preserves_shape(self, sample_stereo_buffer):
        result = fx.apply_filter(sample_stereo_buffer, 1000)
        assert result.data.shape == sample_stereo_buffer.data.shape
        assert result.sample_rate == SR

    def test_default_shape_is_lowpass(self, sample_mono_buffer):
        default = fx.apply_filter(sample_mono_buffer, 200)
        lowpass = fx.apply_filter(sample_mono_buffer, 200, shape="lowpass")
        assert default == lowpass

    def test_lowpass_attenuates_above_cutoff(self, sample_mono_buffer):
        result = fx.apply_filter(sample_mono_buffer, 100, shape="lowpass")
        assert rms(result.data) < 0.2 * rms(sample_mono_buffer.data)

    def test_highpass_passes_above_cutoff(self, sample_mono_buffer):
        result = fx.apply_filter(sample_mono_buffer, 50, shape="highpass")
        assert np.isclose(rms(result.data), rms(sample_mono_buffer.data), rtol=0.05)

    def test_shelf_shapes_are_not_basic_filters(self, sample_mono_buffer):
        with pytest.raises(InvalidParameter):
            fx.apply_filter(sample_mono_buffer, 1000, shape="lowshelf")

    def test_frequency_above_nyquist(self, sample_mono_buffer):
        with pytest.raises(InvalidParameter):
            fx.apply_filter(sample_mono_buffer, 30000)


class TestTimeStretch:
    """Tests for the resampling time stretch."""

    @pytest.mark.parametrize("factor", [0.5, 0.73, 1.0, 1.5, 2.0, 3.3])
    def test_output_length(self, short_buffer, factor):
        result = fx.apply_time_stretch(short_buffer, factor)
        assert result.length == math.ceil(short_buffer.length * factor)
        assert result.number_of_channels == short_buffer.number_of_channels
        assert result.sample_rate == short_buffer.sample_rate

    def test_factor_one_is_identity(self, short_buffer):
        result = fx.apply_time_stretch(short_buffer, 1.0)
        assert np.allclose(result.data, short_buffer.data)

    def test_double_length_reads_at_half_rate(self, short_buffer):
        result = fx.apply_time_stretch(short_buffer, 2.0)
        assert np.allclose(result.data[0:200:2], short_buffer.data[0:100])
        # Interpolated between neighbours
        expected = (short_buffer.data[10] + short_buffer.data[11]) / 2
        assert np.allclose(result.data[21], expected, atol=1e-6)

    def test_past_source_end_is_silence(self, short_buffer):
        result = fx.apply_time_stretch(short_buffer, 2.0)
        assert np.all(result.data[-1] == 0.0)

    def test_half_length_skips_samples(self, short_buffer):
        result = fx.apply_time_stretch(short_buffer, 0.5)
        assert np.allclose(result.data[:100], short_buffer.data[0:200:2])

    @pytest.mark.parametrize("factor", [0, -1.0, float("nan"), float("inf")])
    def test_invalid_factor(self, short_buffer, factor):
        with pytest.raises(InvalidParameter):
            fx.apply_time_stretch(short_buffer, factor)


class TestPitchShift:
    """Tests for the index-remapping pitch shift."""

    def test_zero_semitones_is_exact_identity(self, sample_stereo_buffer):
        result = fx.apply_pitch_shift(sample_stereo_buffer, 0)
        assert np.array_equal(result.data, sample_stereo_buffer.data)

    def test_length_preserved(self, sample_stereo_buffer):
        result = fx.apply_pitch_shift(sample_stereo_buffer, 7)
        assert result.length == sample_stereo_buffer.length

    def test_octave_up_whole_buffer(self):
        data = np.arange(10, dtype=np.float32) / 10
        result = fx.pitch_shift_array(data[:, np.newaxis], 12, block_size=None)[:, 0]
        assert np.allclose(result[:5], data[0:10:2])
        assert np.all(result[5:] == 0.0)

    def test_octave_down_rounds_half_up(self):
        data = np.arange(8, dtype=np.float32)[:, np.newaxis]
        result = fx.pitch_shift_array(data, -12, block_size=None)[:, 0]
        assert np.array_equal(result[:6], [0, 1, 1, 2, 2, 3])

    def test_remap_restarts_each_block(self):
        data = np.arange(16, dtype=np.float32)[:, np.newaxis]
        result = fx.pitch_shift_array(data, 12, block_size=8)[:, 0]
        assert np.array_equal(result, [0, 2, 4, 6, 0, 0, 0, 0, 8, 10, 12, 14, 0, 0, 0, 0])

    def test_every_channel_processed(self, sample_stereo_buffer):
        result = fx.apply_pitch_shift(sample_stereo_buffer, 12)
        assert np.allclose(result.data[:100, 1], sample_stereo_buffer.data[0:200:2, 1])

    def test_invalid_block_size(self, short_buffer):
        with pytest.raises(InvalidParameter):
            fx.apply_pitch_shift(short_buffer, 3, block_size=0)


class TestReverb:
    """Tests for the convolution reverb."""

    def test_dry_only_equals_padded_source(self, short_buffer):
        result = fx.apply_reverb(short_buffer, 0.0)
        tail = 2 * short_buffer.sample_rate
        assert result.length == short_buffer.length + tail
        assert np.array_equal(result.data[:short_buffer.length], short_buffer.data)
        assert not np.any(result.data[short_buffer.length:])

    def test_seeded_reverb_is_deterministic(self, short_buffer):
        a = fx.apply_reverb(short_buffer, 0.5, seed=7)
        b = fx.apply_reverb(short_buffer, 0.5, seed=7)
        c = fx.apply_reverb(short_buffer, 0.5, seed=8)
        assert a == b
        assert a != c

    def test_output_is_clamped(self, short_buffer):
        loud = PCMBuffer(short_buffer.data * 2, short_buffer.sample_rate)
        result = fx.apply_reverb(loud, 1.0, seed=1, normalize=False)
        assert np.max(np.abs(result.data)) <= 1.0

    def test_mono_source_stays_mono(self):
        buf = PCMBuffer(sine(300, 0.1, 8000, 0.5), 8000)
        result = fx.apply_reverb(buf, 0.3, seed=3)
        assert result.number_of_channels == 1
        assert result.sample_rate == 8000

    def test_matches_direct_convolution(self):
        data = np.array([[1.0, 0.5], [0.0, -0.5], [0.25, 0.0]], dtype=np.float32)
        impulse = np.array([[0.5, 0.1], [0.25, 0.2]])
        out = fx.reverb_array(data, 8000, impulse, amount=1.0, normalize=False)
        assert out.shape == (5, 2)
        assert np.allclose(out[:4, 0], np.convolve(data[:, 0], impulse[:, 0]))
        assert np.allclose(out[:4, 1], np.convolve(data[:, 1], impulse[:, 1]))
        assert np.all(out[4] == 0.0)

    def test_wet_dry_mix(self):
        data = np.array([[0.4], [0.0]], dtype=np.float32)
        impulse = np.array([[1.0], [0.5]])
        out = fx.reverb_array(data, 8000, impulse, amount=0.25, normalize=False)[:, 0]
        assert np.allclose(out[:3], [0.75 * 0.4 + 0.25 * 0.4, 0.25 * 0.2, 0.0])

    @pytest.mark.parametrize("amount", [-0.1, 1.5])
    def test_amount_out_of_range(self, short_buffer, amount):
        with pytest.raises(InvalidParameter):
            fx.apply_reverb(short_buffer, amount)


class TestImpulseResponse:
    """Tests for the synthetic impulse response."""

    def test_shape(self):
        ir = generate_impulse_response(8000, rng=np.random.default_rng(0))
        assert ir.length == 16000
        assert ir.number_of_channels == 2

    def test_decay_envelope(self):
        ir = generate_impulse_response(8000, rng=np.random.default_rng(0)).data
        assert np.all(np.abs(ir) <= (1 - np.arange(16000) / 16000)[:, np.newaxis] ** 2 + 1e-7)
        assert rms(ir[:1000]) > 10 * rms(ir[-1000:])

    def test_seeded(self):
        a = generate_impulse_response(8000, rng=np.random.default_rng(5))
        b = generate_impulse_response(8000, rng=np.random.default_rng(5))
        assert a == b

    def test_normalization_scale(self):
        scale = normalization_scale(np.ones((100, 2)), 44100)
        assert np.isclose(scale, 10 ** (-58 / 20))
        # Sample rate compensation
        assert np.isclose(normalization_scale(np.ones((100, 2)), 22050), 2 * scale)


class TestNoiseGate:
    """Tests for the noise gate."""

    def test_zero_db_silences_everything(self, sample_stereo_buffer):
        result = fx.apply_noise_gate(sample_stereo_buffer, 0)
        assert result.length == sample_stereo_buffer.length
        assert not np.any(result.data)

    def test_threshold(self):
        buf = PCMBuffer(np.array([0.05, -0.2, 0.09, 0.5, -0.01]), 8000)
        result = fx.apply_noise_gate(buf, -20)
        assert np.allclose(result.channel(0), [0.0, -0.2, 0.0, 0.5, 0.0])

    def test_every_channel_gated(self):
        buf = PCMBuffer(np.array([[0.5, 0.01], [0.01, 0.5]]), 8000)
        result = fx.apply_noise_gate(buf, -20)
        assert np.allclose(result.data, [[0.5, 0.0], [0.0, 0.5]])


class TestCompression:
    """Tests for the dynamics compressor."""

    def test_silence_stays_silence(self, silence_buffer):
        result = fx.apply_compression(silence_buffer, 0)
        assert result.length == silence_buffer.length
        assert not np.any(result.data)

    def test_threshold_mapping(self):
        assert fx.compression_threshold_db(0) == -50
        assert fx.compression_threshold_db(0.5) == -25
        assert fx.compression_threshold_db(1) == 0

    def test_loud_signal_is_reduced(self, sample_mono_buffer):
        result = fx.apply_compression(sample_mono_buffer, 0)
        assert np.max(np.abs(result.data)) < 0.5 * np.max(np.abs(sample_mono_buffer.data))

    def test_signal_below_knee_untouched(self):
        quiet = PCMBuffer(sine(440, 0.1, 8000, 1e-4), 8000)
        result = fx.apply_compression(quiet, 0)
        assert np.allclose(result.data, quiet.data)

    def test_linked_channels_share_gain(self):
        left = sine(200, 0.2, 8000, 0.9)
        right = sine(300, 0.2, 8000, 0.01)
        buf = PCMBuffer(np.column_stack((left, right)), 8000)
        result = fx.apply_compression(buf, 0.2)
        mask = (np.abs(left) > 0.1) & (np.abs(right) > 0.001)
        gain_left = result.data[mask, 0] / left[mask]
        gain_right = result.data[mask, 1] / right[mask]
        assert np.allclose(gain_left, gain_right, rtol=1e-4)
        assert np.all(gain_left < 1.0)

    def test_static_curve_is_continuous_at_knee_edges(self):
        threshold, knee, ratio = -30.0, 10.0, 4.0
        edges = np.array([threshold - knee / 2, threshold + knee / 2])
        gain = fx.compressor_gain_db(edges, threshold, knee, ratio)
        assert np.isclose(gain[0], 0.0)
        assert np.isclose(gain[1], (knee / 2) / ratio - knee / 2)

    def test_release_smooths_gain_recovery(self):
        burst = np.concatenate([np.full(800, 0.9), np.full(800, 0.05)]).astype(np.float32)
        result = fx.compress_array(burst[:, np.newaxis], 8000, threshold_db=-40.0)[:, 0]
        gains = result[800:] / burst[800:]
        # Gain recovers over time instead of jumping back
        assert gains[0] < gains[-1]
        assert np.all(np.diff(gains) >= -1e-7)

    @pytest.mark.parametrize("amount", [-0.5, 2.0])
    def test_amount_out_of_range(self, sample_mono_buffer, amount):
        with pytest.raises(InvalidParameter):
            fx.apply_compression(sample_mono_buffer, amount)


class TestEQ:
    """Tests for the three band EQ."""

    def test_flat_eq_is_near_identity(self, sample_stereo_buffer):
        result = fx.apply_eq(sample_stereo_buffer, [0, 0, 0])
        assert np.allclose(result.data, sample_stereo_buffer.data, atol=1e-5)

    def test_bands_in_fixed_order(self, sample_stereo_buffer):
        gains = [6.0, -3.0, 4.0]
        result = fx.apply_eq(sample_stereo_buffer, gains)
        expected = sample_stereo_buffer.data
        for shape, freq, q, gain in [("lowshelf", 320, 0.7071, 6.0),
                                     ("peaking", 1000, 0.5, -3.0),
                                     ("highshelf", 3200, 0.7071, 4.0)]:
            expected = biquad.apply_biquad_array(expected, SR, shape, freq, q, gain)
        assert np.allclose(result.data, expected, atol=1e-6)

    def test_low_boost_raises_bass(self):
        buf = PCMBuffer(sine(80), SR)
        result = fx.apply_eq(buf, [12, 0, 0])
        assert rms(result.data) > 2.5 * rms(buf.data)

    @pytest.mark.parametrize("gains", [[0, 0], [0, 0, 0, 0], "abc", [0, "x", 0], [0, 100, 0]])
    def test_malformed_gains(self, sample_mono_buffer, gains):
        with pytest.raises(InvalidParameter):
            fx.apply_eq(sample_mono_buffer, gains)

    def test_low_sample_rate_rejected(self):
        # 3200 Hz shelf is above Nyquist at 6 kHz
        buf = PCMBuffer(np.zeros(100), 6000)
        with pytest.raises(InvalidParameter):
            fx.apply_eq(buf, [1, 1, 1])


class TestDispatch:
    """Tests for apply_effect / apply_request / render_chain."""

    @pytest.mark.parametrize("kind, params", [
        ("filter", 800),
        ("timeStretch", 1.25),
        ("pitchShift", -5),
        ("reverb", 0.4),
        ("noiseGate", -40),
        ("compression", 0.5),
        ("eq", [3, -2, 1]),
    ])
    def test_preserves_channels_and_rate(self, short_buffer, kind, params):
        result = fx.apply_effect(short_buffer, kind, params, seed=1)
        assert result.number_of_channels == short_buffer.number_of_channels
        assert result.sample_rate == short_buffer.sample_rate

    def test_unknown_kind(self, short_buffer):
        with pytest.raises(UnsupportedEffect):
            fx.apply_effect(short_buffer, "chorus", 0.5)

    def test_volume_is_not_offline(self, short_buffer):
        with pytest.raises(UnsupportedEffect):
            fx.apply_effect(short_buffer, EffectKind.VOLUME, 0.5)

    def test_snake_case_kind(self, short_buffer):
        result = fx.apply_effect(short_buffer, "time_stretch", 2.0)
        assert result.length == 2 * short_buffer.length

    def test_filter_shape(self, short_buffer):
        result = fx.apply_effect(short_buffer, "filter", 500, shape="highpass")
        assert result == fx.apply_filter(short_buffer, 500, shape="highpass")

    def test_no_buffer(self):
        with pytest.raises(EmptyInput):
            fx.apply_effect(None, "reverb", 0.5)

    def test_zero_length_buffer_is_noop(self):
        empty = PCMBuffer.silence(0, channels=2, sample_rate=8000)
        assert fx.apply_effect(empty, "timeStretch", 2.0) is empty

    def test_eq_needs_three_gains(self, short_buffer):
        with pytest.raises(InvalidParameter):
            fx.apply_effect(short_buffer, "eq", 3.0)

    def test_scalar_effect_rejects_list(self, short_buffer):
        with pytest.raises(InvalidParameter):
            fx.apply_effect(short_buffer, "reverb", [0.1, 0.2])

    def test_source_not_modified(self, short_buffer):
        before = short_buffer.data.copy()
        fx.apply_effect(short_buffer, "compression", 0.0)
        assert np.array_equal(short_buffer.data, before)

    def test_render_chain_applies_in_order(self, short_buffer):
        requests = [
            EffectRequest("timeStretch", 2.0),
            EffectRequest("volume", 0.3),
            EffectRequest("noiseGate", -30),
        ]
        result = fx.render_chain(short_buffer, requests)
        expected = fx.apply_noise_gate(fx.apply_time_stretch(short_buffer, 2.0), -30)
        assert result == expected

    def test_request_reverb_seed_replays(self, short_buffer):
        request = EffectRequest(EffectKind.REVERB, 0.6, seed=99)
        assert fx.apply_request(short_buffer, request) == fx.apply_request(short_buffer, request)

    @pytest.mark.parametrize("kind", ["reverb", "eq", "filter"])
    def test_missing_params(self, short_buffer, kind):
        with pytest.raises(InvalidParameter):
            fx.apply_effect(short_buffer, kind, None)

    def test_zero_dim_array_param(self, short_buffer):
        result = fx.apply_effect(short_buffer, "timeStretch", np.array(2.0))
        assert result.length == 2 * short_buffer.length

    def test_request_rejects_non_numeric_params(self):
        with pytest.raises(InvalidParameter):
            EffectRequest("reverb", None)
        assert EffectRequest("eq", np.array([1.0, 2.0, 3.0])).params == (1.0, 2.0, 3.0)
        assert EffectRequest("reverb", np.array(0.5)).params == 0.5
