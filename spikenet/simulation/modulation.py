"""Global oscillator and neuromodulator state of one network.

Three oscillators (theta 7 Hz, alpha 10 Hz, gamma 40 Hz) advance their
phase deterministically every step. Four neuromodulator levels live in
[0, 1]:

    dopamine        reward
    serotonin       mood / inhibitory tone
    acetylcholine   attention
    norepinephrine  arousal

The state feeds back into the neurons two ways: an oscillatory current
bias for regions tied to a band, and a multiplicative gain on external
and synaptic current that depends on a neuron's region tags and class.

Every network owns its own ModulationState; nothing here is shared at
module level.
"""

import math
from dataclasses import dataclass, field

import numpy as np

TWO_PI = 2.0 * math.pi

THETA = "theta"
ALPHA = "alpha"
GAMMA = "gamma"
BAND_FREQUENCIES = {THETA: 7.0, ALPHA: 10.0, GAMMA: 40.0}
# Current bias amplitude for neurons in a region tied to the band (pA)
BAND_GAINS = {THETA: 5.0, ALPHA: 4.0, GAMMA: 3.0}

DOPAMINE = "dopamine"
SEROTONIN = "serotonin"
ACETYLCHOLINE = "acetylcholine"
NOREPINEPHRINE = "norepinephrine"
MODULATORS = (DOPAMINE, SEROTONIN, ACETYLCHOLINE, NOREPINEPHRINE)
# Region tags that make a region sensitive to a modulator
REGION_MODULATORS = (DOPAMINE, ACETYLCHOLINE)
BASELINE = 0.5


def clamp01(x):
    return min(1.0, max(0.0, float(x)))


@dataclass
class Oscillator:
    """A phase oscillator with fixed frequency (Hz)."""
    name: str
    frequency: float
    phase: float = 0.0

    def advance(self, dt):
        """Advance by dt (ms), wrapping into [0, 2pi)."""
        phase = (self.phase + TWO_PI * self.frequency * dt / 1000.0) % TWO_PI
        # float modulo can land on 2pi itself
        self.phase = 0.0 if phase >= TWO_PI else phase
        return self.phase

    @property
    def value(self):
        return math.sin(self.phase)

    def to_dict(self):
        return {"phase": self.phase, "frequency": self.frequency}


def _default_oscillators():
    return {name: Oscillator(name, freq) for name, freq in BAND_FREQUENCIES.items()}


@dataclass
class ModulationState:
    """Oscillator phases and neuromodulator levels.

    Parameters
    ----------
    homeostasis_high, homeostasis_low : float
        Firing-fraction band; above it serotonin rises, below it falls.
    homeostasis_step : float
        Serotonin change per step outside the band.
    decay : float
        Per-step multiplicative decay of dopamine and norepinephrine.
    """
    homeostasis_high: float = 0.3
    homeostasis_low: float = 0.1
    homeostasis_step: float = 0.01
    decay: float = 0.99

    dopamine: float = BASELINE
    serotonin: float = BASELINE
    acetylcholine: float = BASELINE
    norepinephrine: float = BASELINE
    oscillators: dict = field(default_factory=_default_oscillators)

    @property
    def theta(self):
        return self.oscillators[THETA]

    @property
    def alpha(self):
        return self.oscillators[ALPHA]

    @property
    def gamma(self):
        return self.oscillators[GAMMA]

    def advance(self, dt):
        """Advance every oscillator by dt (ms)."""
        for osc in self.oscillators.values():
            osc.advance(dt)

    def band_values(self):
        """sin(phase) per band, in BAND_FREQUENCIES order."""
        return np.array([self.oscillators[b].value for b in BAND_FREQUENCIES])

    def set_level(self, name, value):
        """Set a neuromodulator level, clamped into [0, 1]."""
        if name not in MODULATORS:
            raise KeyError(f"Unknown neuromodulator '{name}'. "
                           f"Available: {list(MODULATORS)}")
        level = clamp01(value)
        setattr(self, name, level)
        return level

    def shift(self, name, delta):
        return self.set_level(name, getattr(self, name) + delta)

    def gain(self, reward_mask, attention_mask, inhibitory_mask):
        """Per-neuron modulation factor.

        Parameters
        ----------
        reward_mask : np.ndarray of bool
            Neurons in dopamine-tagged regions.
        attention_mask : np.ndarray of bool
            Neurons in acetylcholine-tagged regions.
        inhibitory_mask : np.ndarray of bool
            Interneurons (serotonin sensitive).

        Returns
        -------
        np.ndarray
            Multiplicative factor per neuron.
        """
        factor = np.ones(len(inhibitory_mask), dtype=np.float64)
        factor[reward_mask] *= 0.5 + self.dopamine
        factor[inhibitory_mask] *= 0.5 + self.serotonin
        factor[attention_mask] *= 0.8 + 0.4 * self.acetylcholine
        factor *= 0.7 + 0.6 * self.norepinephrine
        return factor

    def update(self, firing_fraction):
        """Per-step homeostatic and decay rule.

        Serotonin moves against the firing fraction when it leaves the
        homeostatic band, dopamine and norepinephrine decay, and
        acetylcholine follows the theta phase.
        """
        if firing_fraction > self.homeostasis_high:
            self.shift(SEROTONIN, self.homeostasis_step)
        elif firing_fraction < self.homeostasis_low:
            self.shift(SEROTONIN, -self.homeostasis_step)
        self.set_level(DOPAMINE, self.dopamine * self.decay)
        self.set_level(NOREPINEPHRINE, self.norepinephrine * self.decay)
        self.set_level(ACETYLCHOLINE, 0.5 + 0.3 * self.theta.value)

    def levels(self):
        return {name: getattr(self, name) for name in MODULATORS}

    def phases(self):
        return {name: osc.to_dict() for name, osc in self.oscillators.items()}

    def reset(self):
        """Back to baseline levels and zero phase."""
        for name in MODULATORS:
            setattr(self, name, BASELINE)
        for osc in self.oscillators.values():
            osc.phase = 0.0
