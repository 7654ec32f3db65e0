"""
Offline effect library for WaveForge.

Each ``apply_*`` function validates its parameters, builds a SignalGraph and
renders it into a new PCMBuffer. The ``*_array`` helpers are the pure numpy
stages those graphs are made of. ``apply_effect`` is the single dispatch
used by the session and the command line.
"""
from __future__ import annotations
import logging
import math
from contextlib import nullcontext
from functools import partial
from typing import Optional, Sequence

import numpy as np
from scipy.signal import fftconvolve

from . import biquad
from .buffer import PCMBuffer
from .config import EFFECTS_CONFIG, FILTER_CONFIG
from .errors import EmptyInput, InvalidParameter, UnsupportedEffect
from .impulse import generate_impulse_response, make_rng, normalization_scale
from .renderer import OfflineRenderer, SignalGraph
from .types import AudioArray, EffectKind, EffectParams, EffectRequest

logger = logging.getLogger("WaveForge")

FILTER_SHAPES = ("lowpass", "highpass", "bandpass")


# =============================================================================
# HELPERS
# =============================================================================

def _check_input(buffer: Optional[PCMBuffer]) -> bool:
    """False when the buffer is empty (the effect is a no-op)."""
    if buffer is None:
        raise EmptyInput("No buffer loaded")
    return buffer.length > 0


def _finite(value: float, name: str) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidParameter(f"{name} must be a number, got {value!r}") from e
    if not math.isfinite(value):
        raise InvalidParameter(f"{name} must be finite, got {value}")
    return value


def _render(buffer: PCMBuffer, graph: SignalGraph, renderer: Optional[OfflineRenderer]) -> PCMBuffer:
    """Render with the caller's engine, or a throwaway one."""
    ctx = nullcontext(renderer) if renderer is not None else OfflineRenderer()
    with ctx as engine:
        return engine.render(buffer, graph)


def _clamp(data: AudioArray, sr: int) -> AudioArray:
    return np.clip(data, -1.0, 1.0).astype(np.float32)


# =============================================================================
# STAGES
# =============================================================================

def time_stretch_array(data: AudioArray, factor: float) -> AudioArray:
    """
    Read the source at rate 1/factor with linear interpolation.

    Duration and pitch change together. Output positions past the end of the
    source are silence.
    """
    n = len(data)
    out_len = math.ceil(n * factor)
    out = np.zeros((out_len, data.shape[1]), dtype=np.float32)
    if n == 0 or out_len == 0:
        return out

    positions = np.arange(out_len, dtype=np.float64) / factor
    xp = np.arange(n, dtype=np.float64)
    for ch in range(data.shape[1]):
        out[:, ch] = np.interp(positions, xp, data[:, ch], right=0.0)
    return out


def pitch_shift_array(
    data: AudioArray,
    semitones: float,
    block_size: Optional[int] = EFFECTS_CONFIG.pitch_block_size
) -> AudioArray:
    """
    Remap output sample i of each block to source sample round(i * 2**(semitones/12)).

    Indices past the block (or past the buffer) give silence, so the length
    never changes. ``block_size=None`` remaps over the whole buffer.
    """
    n = len(data)
    out = np.zeros_like(data, dtype=np.float32)
    if n == 0:
        return out

    pitch_factor = 2 ** (semitones / 12)
    block = n if block_size is None else int(block_size)

    i = np.arange(n)
    local = i % block
    # floor(x + 0.5) rounds halves up
    src_local = np.floor(local * pitch_factor + 0.5).astype(np.int64)
    src = i - local + src_local
    valid = (src_local < block) & (src < n)

    out[valid] = data[src[valid]]
    return out


def noise_gate_array(data: AudioArray, threshold_db: float) -> AudioArray:
    """Zero every sample whose magnitude is not above the threshold."""
    threshold = 10 ** (threshold_db / 20)
    return np.where(np.abs(data) > threshold, data, 0.0).astype(np.float32)


def compressor_gain_db(
    level_db: np.ndarray,
    threshold_db: float,
    knee_db: float,
    ratio: float
) -> np.ndarray:
    """
    Static soft-knee curve: gain change in dB (<= 0) for each input level.
    """
    over = level_db - threshold_db
    out_db = level_db.copy()

    above = 2 * over > knee_db
    out_db[above] = threshold_db + over[above] / ratio

    if knee_db > 0:
        in_knee = np.abs(2 * over) <= knee_db
        out_db[in_knee] = level_db[in_knee] + (
            (1 / ratio - 1) * (over[in_knee] + knee_db / 2) ** 2 / (2 * knee_db)
        )
    return out_db - level_db


def compress_array(
    data: AudioArray,
    sr: int,
    threshold_db: float,
    knee_db: float = EFFECTS_CONFIG.compressor_knee_db,
    ratio: float = EFFECTS_CONFIG.compressor_ratio,
    attack_s: float = EFFECTS_CONFIG.compressor_attack_s,
    release_s: float = EFFECTS_CONFIG.compressor_release_s
) -> AudioArray:
    """
    Feed-forward compressor with linked channels.

    The detector is the peak over all channels; the gain reduction is
    smoothed with one-pole attack/release filters and the same gain is
    applied to every channel.
    """
    if len(data) == 0:
        return np.array(data, dtype=np.float32, copy=True)

    detector = np.max(np.abs(data), axis=1).astype(np.float64)
    level_db = 20 * np.log10(np.maximum(detector, 1e-12))
    target = compressor_gain_db(level_db, threshold_db, knee_db, ratio)

    # Time constants (0 s = instantaneous)
    attack_coeff = math.exp(-1.0 / (attack_s * sr)) if attack_s > 0 else 0.0
    release_coeff = math.exp(-1.0 / (release_s * sr)) if release_s > 0 else 0.0

    smoothed = np.empty_like(target)
    g = 0.0
    for i in range(len(target)):
        t = target[i]
        # More reduction = attack phase, recovering = release phase
        coeff = attack_coeff if t < g else release_coeff
        g = coeff * g + (1.0 - coeff) * t
        smoothed[i] = g

    gain = 10 ** (smoothed / 20)
    return (data * gain[:, np.newaxis]).astype(np.float32)


def reverb_array(
    data: AudioArray,
    sr: int,
    impulse: AudioArray,
    amount: float,
    normalize: bool = True
) -> AudioArray:
    """
    Mix (1 - amount) * dry with amount * (dry convolved with impulse).

    Input channel c is convolved with impulse channel c % impulse_channels.
    The result is len(data) + len(impulse) samples long; the full
    convolution (len(data) + len(impulse) - 1) fits inside it.
    """
    n = len(data)
    channels = data.shape[1]
    out = np.zeros((n + len(impulse), channels), dtype=np.float64)

    if amount > 0 and n > 0:
        ir = np.asarray(impulse, dtype=np.float64)
        if normalize:
            ir = ir * normalization_scale(ir, sr)
        for ch in range(channels):
            wet = fftconvolve(data[:, ch].astype(np.float64), ir[:, ch % ir.shape[1]])
            out[:len(wet), ch] = amount * wet

    out[:n] += (1.0 - amount) * data
    return out.astype(np.float32)


# =============================================================================
# EFFECTS
# =============================================================================

def apply_filter(
    buffer: PCMBuffer,
    frequency: float,
    shape: Optional[str] = None,
    Q: float = FILTER_CONFIG.default_q,
    renderer: Optional[OfflineRenderer] = None
) -> PCMBuffer:
    """
    Apply one lowpass, highpass or bandpass biquad.

    Args:
        buffer: Source buffer
        frequency: Cutoff / center frequency in Hz
        shape: Filter shape, lowpass when None
        Q: Quality factor
        renderer: Render engine (a temporary one when None)
    """
    shape = shape or FILTER_CONFIG.default_shape
    if shape not in FILTER_SHAPES:
        raise InvalidParameter(f"Filter shape must be one of {FILTER_SHAPES}, got {shape!r}")
    if not _check_input(buffer):
        return buffer
    frequency = _finite(frequency, "frequency")
    biquad.validate(shape, frequency, buffer.sample_rate, Q)

    graph = SignalGraph(f"filter:{shape}", buffer.length).connect(
        shape, partial(_biquad_stage, shape=shape, frequency=frequency, Q=Q)
    )
    return _render(buffer, graph, renderer)


def _biquad_stage(data: AudioArray, sr: int, shape: str, frequency: float,
                  Q: float = FILTER_CONFIG.default_q, gain_db: float = 0.0) -> AudioArray:
    return biquad.apply_biquad_array(data, sr, shape, frequency, Q, gain_db)


def apply_time_stretch(
    buffer: PCMBuffer,
    factor: float,
    renderer: Optional[OfflineRenderer] = None
) -> PCMBuffer:
    """
    Naive resampling stretch: output length is ceil(length * factor).

    Args:
        factor: Stretch factor (> 0; 2.0 = twice as long and an octave lower)
    """
    factor = _finite(factor, "stretch factor")
    if factor <= 0:
        raise InvalidParameter(f"Stretch factor must be positive, got {factor}")
    if not _check_input(buffer):
        return buffer

    graph = SignalGraph("timeStretch", math.ceil(buffer.length * factor)).connect(
        "resample", lambda data, sr: time_stretch_array(data, factor)
    )
    return _render(buffer, graph, renderer)


def apply_pitch_shift(
    buffer: PCMBuffer,
    semitones: float,
    block_size: Optional[int] = EFFECTS_CONFIG.pitch_block_size,
    renderer: Optional[OfflineRenderer] = None
) -> PCMBuffer:
    """
    Duration-preserving index-remapping pitch shift, applied to every channel.

    Args:
        semitones: Shift in semitones (+/- 12 typical)
        block_size: Remap block in samples, None for the whole buffer
    """
    semitones = _finite(semitones, "semitones")
    if block_size is not None and block_size < 1:
        raise InvalidParameter(f"Block size must be positive, got {block_size}")
    if not _check_input(buffer):
        return buffer

    graph = SignalGraph("pitchShift", buffer.length).connect(
        "remap", lambda data, sr: pitch_shift_array(data, semitones, block_size)
    )
    return _render(buffer, graph, renderer)


def apply_reverb(
    buffer: PCMBuffer,
    amount: float,
    rng: Optional[np.random.Generator] = None,
    seed: Optional[int] = None,
    normalize: bool = True,
    renderer: Optional[OfflineRenderer] = None
) -> PCMBuffer:
    """
    Convolution reverb with a fresh synthetic impulse response.

    Args:
        amount: Wet/dry mix (0.0 = dry, 1.0 = wet)
        rng: Random source for the impulse response
        seed: Seed for a new random source when rng is None
        normalize: Scale the impulse like a Web Audio convolver

    Returns:
        Buffer extended by the reverb tail (2 seconds)
    """
    amount = _finite(amount, "reverb amount")
    if not 0.0 <= amount <= 1.0:
        raise InvalidParameter(f"Reverb amount must be within [0, 1], got {amount}")
    if not _check_input(buffer):
        return buffer

    sr = buffer.sample_rate
    impulse = generate_impulse_response(sr, rng=make_rng(rng, seed))
    graph = (
        SignalGraph("reverb", buffer.length + impulse.length)
        .connect("convolver", lambda data, rate: reverb_array(data, rate, impulse.data, amount, normalize))
        .connect("clamp", _clamp)
    )
    return _render(buffer, graph, renderer)


def apply_noise_gate(
    buffer: PCMBuffer,
    threshold_db: float,
    renderer: Optional[OfflineRenderer] = None
) -> PCMBuffer:
    """Hard gate on every channel; |x| <= 10**(threshold_db/20) becomes 0."""
    threshold_db = _finite(threshold_db, "threshold")
    if not _check_input(buffer):
        return buffer

    graph = SignalGraph("noiseGate", buffer.length).connect(
        "gate", lambda data, sr: noise_gate_array(data, threshold_db)
    )
    return _render(buffer, graph, renderer)


def compression_threshold_db(amount: float) -> float:
    """Map amount 0..1 onto -50..0 dB."""
    return EFFECTS_CONFIG.compressor_threshold_floor_db + amount * EFFECTS_CONFIG.compressor_threshold_span_db


def apply_compression(
    buffer: PCMBuffer,
    amount: float,
    renderer: Optional[OfflineRenderer] = None
) -> PCMBuffer:
    """
    Dynamics compression: threshold -50 + 50*amount dB, knee 40 dB,
    ratio 12:1, attack 0 s, release 0.25 s.
    """
    amount = _finite(amount, "compression amount")
    if not 0.0 <= amount <= 1.0:
        raise InvalidParameter(f"Compression amount must be within [0, 1], got {amount}")
    if not _check_input(buffer):
        return buffer

    threshold_db = compression_threshold_db(amount)
    graph = SignalGraph("compression", buffer.length).connect(
        "compressor", partial(compress_array, threshold_db=threshold_db)
    )
    return _render(buffer, graph, renderer)


def eq_bands(gains: Sequence[float]) -> list[tuple[str, float, float, float]]:
    """(shape, frequency, Q, gain_db) for the low/mid/high bands, in order."""
    low, mid, high = gains
    return [
        ("lowshelf", EFFECTS_CONFIG.eq_low_frequency, FILTER_CONFIG.default_q, low),
        ("peaking", EFFECTS_CONFIG.eq_mid_frequency, EFFECTS_CONFIG.eq_mid_q, mid),
        ("highshelf", EFFECTS_CONFIG.eq_high_frequency, FILTER_CONFIG.default_q, high),
    ]


def apply_eq(
    buffer: PCMBuffer,
    gains: Sequence[float],
    renderer: Optional[OfflineRenderer] = None
) -> PCMBuffer:
    """
    Three band EQ: low-shelf 320 Hz -> peaking 1 kHz (Q 0.5) -> high-shelf 3.2 kHz.

    Args:
        gains: [low, mid, high] gains in dB
    """
    if (isinstance(gains, (str, bytes)) or not hasattr(gains, "__len__")
            or getattr(gains, "ndim", 1) != 1 or len(gains) != 3):
        raise InvalidParameter(f"EQ expects [low, mid, high] gains, got {gains!r}")
    gains = [_finite(g, "EQ gain") for g in gains]
    limit = EFFECTS_CONFIG.eq_max_gain_db
    if any(abs(g) > limit for g in gains):
        raise InvalidParameter(f"EQ gains must be within +/-{limit} dB, got {gains}")
    if not _check_input(buffer):
        return buffer

    graph = SignalGraph("eq", buffer.length)
    for shape, frequency, Q, gain_db in eq_bands(gains):
        biquad.validate(shape, frequency, buffer.sample_rate, Q)
        graph.connect(shape, partial(_biquad_stage, shape=shape, frequency=frequency, Q=Q, gain_db=gain_db))
    return _render(buffer, graph, renderer)


# =============================================================================
# DISPATCH
# =============================================================================

def scalar_param(params: EffectParams, kind: EffectKind) -> float:
    """The single number a scalar effect takes (a one element list is accepted)."""
    if params is None or np.isscalar(params) or getattr(params, "ndim", 1) == 0:
        return _finite(params, kind.value)
    if hasattr(params, "__len__") and len(params) == 1:
        return _finite(params[0], kind.value)
    raise InvalidParameter(f"{kind.value} expects a single number, got {params!r}")


def apply_effect(
    buffer: Optional[PCMBuffer],
    kind,
    params: EffectParams,
    renderer: Optional[OfflineRenderer] = None,
    shape: Optional[str] = None,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None
) -> PCMBuffer:
    """
    Render one effect over ``buffer``.

    Args:
        kind: EffectKind or its name ("timeStretch", "time_stretch", ...)
        params: Number, or [low, mid, high] for eq
        shape: Filter shape for the filter kind
        seed / rng: Random source for reverb

    Raises:
        UnsupportedEffect: Unknown kind, or volume (a playback gain)
        InvalidParameter: Bad parameters
        EmptyInput: buffer is None
    """
    kind = EffectKind.parse(kind)
    logger.debug("Dispatching %s with %r", kind.value, params)

    if kind is EffectKind.FILTER:
        return apply_filter(buffer, scalar_param(params, kind), shape=shape, renderer=renderer)
    if kind is EffectKind.TIME_STRETCH:
        return apply_time_stretch(buffer, scalar_param(params, kind), renderer=renderer)
    if kind is EffectKind.PITCH_SHIFT:
        return apply_pitch_shift(buffer, scalar_param(params, kind), renderer=renderer)
    if kind is EffectKind.REVERB:
        return apply_reverb(buffer, scalar_param(params, kind), rng=rng, seed=seed, renderer=renderer)
    if kind is EffectKind.NOISE_GATE:
        return apply_noise_gate(buffer, scalar_param(params, kind), renderer=renderer)
    if kind is EffectKind.COMPRESSION:
        return apply_compression(buffer, scalar_param(params, kind), renderer=renderer)
    if kind is EffectKind.EQ:
        if params is None or np.isscalar(params) or getattr(params, "ndim", 1) == 0:
            raise InvalidParameter(f"eq expects [low, mid, high] gains, got {params!r}")
        return apply_eq(buffer, params, renderer=renderer)

    raise UnsupportedEffect(f"{kind.value} is a playback gain, not an offline effect")


def apply_request(
    buffer: Optional[PCMBuffer],
    request: EffectRequest,
    renderer: Optional[OfflineRenderer] = None
) -> PCMBuffer:
    """Render an EffectRequest."""
    return apply_effect(buffer, request.kind, request.params, renderer=renderer,
                        shape=request.shape, seed=request.seed)


def render_chain(
    original: PCMBuffer,
    requests: Sequence[EffectRequest],
    renderer: Optional[OfflineRenderer] = None
) -> PCMBuffer:
    """
    Replay ``requests`` in order starting from ``original``.

    Each effect is applied to the previous result. Volume requests are
    skipped because they do not change the buffer.
    """
    ctx = nullcontext(renderer) if renderer is not None else OfflineRenderer()
    current = original
    with ctx as engine:
        for request in requests:
            if request.kind is EffectKind.VOLUME:
                continue
            current = apply_request(current, request, renderer=engine)
    return current
