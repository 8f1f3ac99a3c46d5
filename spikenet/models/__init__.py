"""models — Neuron parameter presets and the cell type registry."""

from .neuron_params import (
    NeuronParams,
    PRESETS,
    get_preset,
    CellTypeDB,
    CELL_TYPES,
    PYRAMIDAL,
    INTERNEURON,
    SENSORY,
    MOTOR,
)
