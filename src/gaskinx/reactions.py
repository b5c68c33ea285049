"""Reaction descriptors.

A reaction is a ``Reaction`` record whose ``reaction_type`` tag selects one
of a closed set of rate-parameter shapes:

    ==============================  =================  ==============
    tag                             rate shape         third body
    ==============================  =================  ==============
    elementary                      Arrhenius          no
    three-body                      Arrhenius          multiplier
    falloff                         FalloffRate        in k
    chemically-activated            FalloffRate        in k
    pressure-dependent-Arrhenius    PlogRate           no
    Chebyshev                       ChebyshevRate      no
    ==============================  =================  ==============

Every tag also exists with a ``-legacy`` suffix, which routes the reaction
through the legacy single-rate tables.

Units are mol-based SI: A in (m^3/mol)^(order-1)/s, Ea in J/mol, P in Pa.
"""
from typing import Any, Mapping, NamedTuple, Optional, Sequence, Tuple

from .constants import J_PER_CAL
from .errors import InputError, UnknownReactionTypeError
from .falloff import BLENDING_FUNCTIONS, Lindemann
from .rates import check_chebyshev, check_plog

LEGACY_SUFFIX = "-legacy"


class Arrhenius(NamedTuple):
    """k = A * T^b * exp(-Ea / RT)"""
    A: float
    b: float
    Ea: float

    @classmethod
    def from_cal(cls, A, b, Ea_cal):
        """Activation energy given in cal/mol."""
        return cls(A, b, Ea_cal * J_PER_CAL)


class ThirdBody(NamedTuple):
    """Collision efficiencies by species name, plus the default efficiency."""
    efficiencies: Optional[Mapping[str, float]] = None
    default_efficiency: float = 1.0


class FalloffRate(NamedTuple):
    low: Arrhenius
    high: Arrhenius
    falloff: Any = Lindemann()


class PlogRate(NamedTuple):
    """Arrhenius expressions at pressure levels: ``((P, Arrhenius), ...)``."""
    rates: Tuple[Tuple[float, Arrhenius], ...]


class ChebyshevRate(NamedTuple):
    """log10(k) = sum_t sum_p coeffs[t][p] * T_t(T~) * T_p(P~)"""
    T_min: float
    T_max: float
    P_min: float
    P_max: float
    coeffs: Sequence[Sequence[float]]


class Reaction(NamedTuple):
    reaction_type: str
    reactants: Mapping[str, float]
    products: Mapping[str, float]
    rate: Any
    reversible: bool = True
    third_body: Optional[ThirdBody] = None

    @property
    def equation(self):
        def side(species):
            return " + ".join(
                name if nu == 1 else f"{nu:g} {name}" for name, nu in species.items())
        arrow = " <=> " if self.reversible else " => "
        suffix = ""
        if self.base_type == "three-body":
            suffix = " + M"
        elif self.base_type in ("falloff", "chemically-activated"):
            suffix = " (+M)"
        return side(self.reactants) + suffix + arrow + side(self.products) + suffix

    @property
    def base_type(self):
        return split_type(self.reaction_type)[0]

    @property
    def uses_legacy(self):
        return split_type(self.reaction_type)[1]


RATE_SHAPES = {
    "elementary": Arrhenius,
    "three-body": Arrhenius,
    "falloff": FalloffRate,
    "chemically-activated": FalloffRate,
    "pressure-dependent-Arrhenius": PlogRate,
    "Chebyshev": ChebyshevRate,
}

THIRD_BODY_TYPES = ("three-body", "falloff", "chemically-activated")


def split_type(reaction_type, procedure="split_type"):
    """(base tag, uses legacy path) for a type tag."""
    base = reaction_type
    legacy = reaction_type.endswith(LEGACY_SUFFIX)
    if legacy:
        base = reaction_type[:-len(LEGACY_SUFFIX)]
    if base not in RATE_SHAPES:
        raise UnknownReactionTypeError(
            procedure, f"Unknown reaction type specified: '{reaction_type}'")
    return base, legacy


def check_shape(reaction, procedure):
    """Raise InputError unless the rate parameters match the type tag."""
    base, _ = split_type(reaction.reaction_type, procedure)
    shape = RATE_SHAPES[base]
    if not isinstance(reaction.rate, shape):
        raise InputError(procedure,
            f"Reaction type '{reaction.reaction_type}' needs a {shape.__name__} "
            f"rate, got {type(reaction.rate).__name__}")
    if shape is FalloffRate and not isinstance(reaction.rate.falloff, BLENDING_FUNCTIONS):
        raise InputError(procedure,
            f"Unknown falloff function {type(reaction.rate.falloff).__name__}")
    if reaction.third_body is not None and base not in THIRD_BODY_TYPES:
        raise InputError(procedure,
            f"Reaction type '{reaction.reaction_type}' does not take a third body")
    try:
        if shape is FalloffRate:
            reaction.rate.falloff.params()
        elif shape is PlogRate:
            check_plog(reaction.rate)
        elif shape is ChebyshevRate:
            check_chebyshev(reaction.rate)
    except ValueError as err:
        raise InputError(procedure, str(err)) from err
    if not reaction.reactants:
        raise InputError(procedure, "Reaction has no reactants")
    return base


# {{{ constructors

def _make(tag, reactants, products, rate, reversible, legacy, third_body=None):
    return Reaction(tag + (LEGACY_SUFFIX if legacy else ""), dict(reactants),
                    dict(products), rate, reversible, third_body)


def elementary(reactants, products, rate, reversible=True, legacy=False):
    return _make("elementary", reactants, products, rate, reversible, legacy)


def three_body(reactants, products, rate, efficiencies=None, default_efficiency=1.0,
               reversible=True, legacy=False):
    return _make("three-body", reactants, products, rate, reversible, legacy,
                 ThirdBody(efficiencies, default_efficiency))


def falloff(reactants, products, low, high, func=Lindemann(), efficiencies=None,
            default_efficiency=1.0, reversible=True, legacy=False):
    return _make("falloff", reactants, products, FalloffRate(low, high, func),
                 reversible, legacy, ThirdBody(efficiencies, default_efficiency))


def chemically_activated(reactants, products, low, high, func=Lindemann(),
                         efficiencies=None, default_efficiency=1.0,
                         reversible=True, legacy=False):
    return _make("chemically-activated", reactants, products,
                 FalloffRate(low, high, func), reversible, legacy,
                 ThirdBody(efficiencies, default_efficiency))


def plog(reactants, products, rates, reversible=True, legacy=False):
    return _make("pressure-dependent-Arrhenius", reactants, products,
                 PlogRate(tuple(rates)), reversible, legacy)


def chebyshev(reactants, products, T_range, P_range, coeffs, reversible=True,
              legacy=False):
    rate = ChebyshevRate(T_range[0], T_range[1], P_range[0], P_range[1], coeffs)
    return _make("Chebyshev", reactants, products, rate, reversible, legacy)

# }}}
