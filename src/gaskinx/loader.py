import logging

import numpy as np
import cantera as ct

from .errors import InputError, UnknownReactionTypeError
from .falloff import SRI, Lindemann, Troe
from .kinetics import GasKinetics
from .mech_data import make_species_data
from .reactions import (
    Arrhenius, ChebyshevRate, FalloffRate, PlogRate, Reaction, ThirdBody,
)
from .thermo import IdealGasThermo

logger = logging.getLogger(__name__)


def _arrhenius(rate, order):
    """Cantera Arrhenius rate in kmol-based units -> mol-based units."""
    return Arrhenius(
        rate.pre_exponential_factor * (1000.0 ** (1.0 - order)),
        rate.temperature_exponent,
        rate.activation_energy / 1000.0,  # J/kmol -> J/mol
    )


def _blending_function(rate):
    coeffs = list(rate.falloff_coeffs)
    if isinstance(rate, ct.LindemannRate) or not coeffs:
        return Lindemann()
    if isinstance(rate, ct.TroeRate):
        return Troe(*coeffs[:3], T2=coeffs[3] if len(coeffs) > 3 else None)
    if isinstance(rate, ct.SriRate):
        return SRI(*coeffs)
    raise UnknownReactionTypeError("load_mechanism",
        f"Unsupported falloff function '{type(rate).__name__}'")


def convert_species(sol):
    """NASA-7 data of every species of a Cantera phase."""
    species = {}
    for spec in sol.species():
        poly = spec.thermo
        if not isinstance(poly, ct.NasaPoly2):
            raise ValueError(f"Species {spec.name} does not use NASA-7 (NasaPoly2) format.")
        coeffs = poly.coeffs
        # Cantera layout: [T_mid, high(7), low(7)]
        species[spec.name] = (coeffs[0], coeffs[8:15], coeffs[1:8])
    return make_species_data(species)


def convert_reaction(rxn, legacy=False):
    """Translate a Cantera reaction into a Reaction descriptor.

    Orders are the stoichiometric coefficients of the reactants and every rate
    is converted to mol-based units.
    """
    rate = rxn.rate
    rate_type = rate.type
    if any(order != rxn.reactants.get(k) for k, order in rxn.orders.items()):
        raise InputError("load_mechanism",
            f"Non-mass-action reaction orders are not supported: {rxn.equation}",
            context={"orders": dict(rxn.orders)})
    order = sum(rxn.reactants.values())
    third_body = None
    if rxn.third_body is not None:
        third_body = ThirdBody(dict(rxn.third_body.efficiencies),
                               rxn.third_body.default_efficiency)

    if rate_type == "Arrhenius":
        if third_body is not None:
            tag = "three-body"
            params = _arrhenius(rate, order + 1)
        else:
            tag = "elementary"
            params = _arrhenius(rate, order)
    elif rate_type in ("falloff", "chemically-activated"):
        tag = rate_type
        params = FalloffRate(_arrhenius(rate.low_rate, order + 1),
                             _arrhenius(rate.high_rate, order),
                             _blending_function(rate))
        if third_body is None:
            third_body = ThirdBody()
    elif rate_type == "pressure-dependent-Arrhenius":
        tag = rate_type
        params = PlogRate(tuple((P, _arrhenius(arr, order)) for P, arr in rate.rates))
    elif rate_type == "Chebyshev":
        tag = rate_type
        coeffs = np.array(rate.data, dtype=float)
        coeffs[0, 0] += (1.0 - order) * 3.0
        params = ChebyshevRate(rate.temperature_range[0], rate.temperature_range[1],
                               rate.pressure_range[0], rate.pressure_range[1],
                               coeffs.tolist())
    else:
        raise UnknownReactionTypeError("load_mechanism",
            f"Unknown reaction type specified: '{rate_type}' in {rxn.equation}")

    if legacy:
        tag += "-legacy"
    return Reaction(tag, dict(rxn.reactants), dict(rxn.products), params,
                    rxn.reversible, third_body)


def load_mechanism(yaml_file: str, legacy=False):
    """Load a Cantera YAML mechanism.

    Returns the ideal-gas phase and its kinetics engine, with the phase at
    the state given in the YAML file.
    """
    sol = ct.Solution(yaml_file)
    thermo = IdealGasThermo(convert_species(sol))
    kinetics = GasKinetics(thermo)
    for rxn in sol.reactions():
        kinetics.add_reaction(convert_reaction(rxn, legacy=legacy))
    thermo.TPX = sol.T, sol.P, sol.X
    logger.info("Loaded %s: %d species, %d reactions",
                yaml_file, thermo.n_species, kinetics.n_reactions)
    return thermo, kinetics
