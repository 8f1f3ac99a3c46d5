"""spikenet — Region-structured spiking neural network with neuromodulation.

A simulation core for a brain-inspired network: regions of adaptive
exponential integrate-and-fire neurons, delayed synapses with STDP,
theta/alpha/gamma rhythms, and four global neuromodulators.

Subpackages:
    models      Neuron parameter presets and cell type registry
    simulation  Dynamics, synapses, plasticity, topology and the stepper
    utils       Logging
"""

__version__ = "0.1.0"
