import os
import sys

import jax
jax.config.update("jax_enable_x64", True)
import pytest

# Add src to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

from gaskinx.kinetics import GasKinetics, use_legacy_rate_constants
from gaskinx.mech_data import make_species_data
from gaskinx.thermo import IdealGasThermo


def flat_species(g_offsets):
    """Species with g/RT = a5/T - a6.

    A number stands for a6 alone: NASA coefficients [0, 0, 0, 0, 0, 0, a6]
    give H/RT = 0 and S/R = a6. A 7-coefficient list is used as given.
    """
    species = {}
    for name, coeffs in g_offsets.items():
        if isinstance(coeffs, (int, float)):
            coeffs = [0.0] * 6 + [coeffs]
        species[name] = coeffs
    return make_species_data(species)


def make_gas(g_offsets, reactions=()):
    thermo = IdealGasThermo(flat_species(g_offsets))
    kin = GasKinetics(thermo)
    for rxn in reactions:
        kin.add_reaction(rxn)
    return thermo, kin


@pytest.fixture
def gas_factory():
    return make_gas


@pytest.fixture(autouse=True)
def reset_legacy_rate_constants():
    yield
    use_legacy_rate_constants(False)
