"""Rate-constant kernels and the multi-rate evaluators.

A multi-rate evaluator owns every reaction of one rate family and evaluates
them in one batched call. Evaluators are queried on every update cycle and
report whether their inputs changed since the last evaluation.
"""
import math
from typing import NamedTuple

import jax
import jax.numpy as jnp
import numpy as np

from .constants import R_GAS, SMALL_NUMBER
from .errors import NumericalConsistencyError
from .falloff import FalloffManager, falloff_update_temp, blend


class RateInputs(NamedTuple):
    """Shared state handed to every evaluator on an update cycle."""
    temperature: float
    log_temperature: float
    pressure: float
    log_pressure: float
    log10_pressure: float
    molar_density: float
    conc_3b: jax.Array              # (n_reactions,) third-body concentrations


def assert_finite(values, procedure, name):
    finite = np.isfinite(np.asarray(values))
    if not finite.all():
        i = int(np.argmin(finite))
        raise NumericalConsistencyError(
            procedure, f"{name}[{i}] is not finite.",
            context={"index": i, "value": float(values[i])})


# {{{ kernels

@jax.jit
def arrhenius_rates(T, logT, A, b, Ea_R):
    """k = A * T^b * exp(-Ea / (R * T))"""
    return A * jnp.exp(b * logT - Ea_R / T)


@jax.jit
def arrhenius_ddT_scaled(T, b, Ea_R):
    """d ln(k) / dT"""
    return (Ea_R / T + b) / T


@jax.jit
def reduced_pressure(T, logT, conc_3b, low, high):
    """Low- and high-pressure limits and the reduced pressure pr = [M] k0 / kinf."""
    k_low = arrhenius_rates(T, logT, *low)
    k_high = arrhenius_rates(T, logT, *high)
    return conc_3b * k_low / (k_high + SMALL_NUMBER), k_low, k_high


@jax.jit
def falloff_rates(T, pr, k_low, k_high, ftype, params, chem_act):
    """Blended falloff / chemically-activated rate constants."""
    work = falloff_update_temp(T, ftype, params)
    pr = blend(pr, ftype, work, chem_act)
    return pr * jnp.where(chem_act, k_low, k_high)


@jax.jit
def plog_interpolation(logP, levels, n_levels):
    """Bracketing pressure levels and the ln(P) interpolation weight.

    Pressures outside the tabulated range use the nearest end level.
    """
    last = n_levels - 1
    i = jnp.sum(levels <= logP, axis=1) - 1
    outside = (i < 0) | (i >= last)
    i1 = jnp.clip(i, 0, last)
    i2 = jnp.where(outside, i1, i1 + 1)
    l1 = jnp.take_along_axis(levels, i1[:, None], axis=1)[:, 0]
    l2 = jnp.take_along_axis(levels, i2[:, None], axis=1)[:, 0]
    frac = jnp.where(outside, 0.0, (logP - l1) / jnp.where(outside, 1.0, l2 - l1))
    return i1, i2, frac


@jax.jit
def plog_rates(T, logT, i1, i2, frac, A, b, Ea_R):
    # Sum of the Arrhenius expressions at every pressure level: (n, n_levels)
    k_levels = jnp.sum(A * jnp.exp(b * logT - Ea_R / T), axis=2)
    logk1 = jnp.log(jnp.take_along_axis(k_levels, i1[:, None], axis=1)[:, 0])
    logk2 = jnp.log(jnp.take_along_axis(k_levels, i2[:, None], axis=1)[:, 0])
    return jnp.exp(logk1 + frac * (logk2 - logk1))


def _chebyshev_basis(x, n):
    cols = [jnp.ones_like(x)]
    if n > 1:
        cols.append(x)
    for _ in range(2, n):
        cols.append(2.0 * x * cols[-1] - cols[-2])
    return jnp.stack(cols, axis=1)


@jax.jit
def chebyshev_pressure(log10P, log10P_min, log10P_max, coeffs):
    """Contract the pressure direction: (n, n_temperature) coefficients."""
    Pr = (2.0 * log10P - log10P_min - log10P_max) / (log10P_max - log10P_min)
    phi = _chebyshev_basis(Pr, coeffs.shape[2])
    return jnp.einsum("ntp,np->nt", coeffs, phi)


@jax.jit
def chebyshev_rates(T, Tmin_inv, Tmax_inv, dot_prod):
    Tr = (2.0 / T - Tmin_inv - Tmax_inv) / (Tmax_inv - Tmin_inv)
    phi = _chebyshev_basis(Tr, dot_prod.shape[1])
    return jnp.power(10.0, jnp.sum(dot_prod * phi, axis=1))

# }}}


# {{{ parameter packing

def pack_arrhenius(rates):
    """(A, b, Ea/R) arrays from a list of Arrhenius descriptors."""
    A = jnp.array([r.A for r in rates], dtype=float)
    b = jnp.array([r.b for r in rates], dtype=float)
    Ea_R = jnp.array([r.Ea / R_GAS for r in rates], dtype=float)
    return A, b, Ea_R


def check_plog(rate):
    if not rate.rates:
        raise ValueError("Pressure-log rate needs at least one pressure level.")
    for P, _ in rate.rates:
        if P <= 0.0:
            raise ValueError(f"Pressure-log levels must be positive, got {P}")


def pack_plog(rates):
    """Padded level / Arrhenius arrays for pressure-log rates.

    Arrhenius expressions given at the same pressure are summed.
    """
    grouped = []
    for rate in rates:
        levels = {}
        for P, arr in rate.rates:
            levels.setdefault(math.log(P), []).append(arr)
        grouped.append(sorted(levels.items()))
    n = len(rates)
    n_levels_max = max([len(g) for g in grouped] + [1])
    n_terms_max = max([len(terms) for g in grouped for _, terms in g] + [1])

    levels = np.full((n, n_levels_max), np.inf)
    n_levels = np.zeros(n, dtype=np.int32)
    A = np.zeros((n, n_levels_max, n_terms_max))
    b = np.zeros_like(A)
    Ea_R = np.zeros_like(A)
    for i, g in enumerate(grouped):
        n_levels[i] = len(g)
        for j, (logP, terms) in enumerate(g):
            levels[i, j] = logP
            for m, arr in enumerate(terms):
                A[i, j, m] = arr.A
                b[i, j, m] = arr.b
                Ea_R[i, j, m] = arr.Ea / R_GAS
    return {
        "levels": jnp.array(levels),
        "n_levels": jnp.array(n_levels),
        "A": jnp.array(A),
        "b": jnp.array(b),
        "Ea_R": jnp.array(Ea_R),
    }


def check_chebyshev(rate):
    if not 0.0 < rate.T_min < rate.T_max:
        raise ValueError(f"Invalid Chebyshev temperature range ({rate.T_min}, {rate.T_max})")
    if not 0.0 < rate.P_min < rate.P_max:
        raise ValueError(f"Invalid Chebyshev pressure range ({rate.P_min}, {rate.P_max})")
    coeffs = np.atleast_2d(np.asarray(rate.coeffs, dtype=float))
    if coeffs.ndim != 2 or coeffs.size == 0:
        raise ValueError("Chebyshev coefficients must be a non-empty 2D table.")


def pack_chebyshev(rates):
    """Zero-padded (n, n_temperature, n_pressure) coefficient tables."""
    tables = [np.atleast_2d(np.asarray(r.coeffs, dtype=float)) for r in rates]
    nT = max([t.shape[0] for t in tables] + [1])
    nP = max([t.shape[1] for t in tables] + [1])
    coeffs = np.zeros((len(rates), nT, nP))
    for i, t in enumerate(tables):
        coeffs[i, :t.shape[0], :t.shape[1]] = t
    return {
        "Tmin_inv": jnp.array([1.0 / r.T_min for r in rates], dtype=float),
        "Tmax_inv": jnp.array([1.0 / r.T_max for r in rates], dtype=float),
        "log10P_min": jnp.array([math.log10(r.P_min) for r in rates], dtype=float),
        "log10P_max": jnp.array([math.log10(r.P_max) for r in rates], dtype=float),
        "coeffs": jnp.array(coeffs),
    }

# }}}


# {{{ multi-rate evaluators

class MultiRate:
    """Base class for the evaluators of one rate family."""

    rate_type = None

    def __init__(self):
        self._indices = []
        self._slot_of = {}
        self._reactions = []
        self._arrays = None
        self._inputs = None
        self._key = None
        self._values = None

    def __len__(self):
        return len(self._indices)

    @property
    def n_reactions(self):
        return len(self._indices)

    def add(self, rxn_index, reaction):
        self._slot_of[rxn_index] = len(self._indices)
        self._indices.append(rxn_index)
        self._reactions.append(reaction)
        self._arrays = None
        self.invalidate_cache()
        return self._slot_of[rxn_index]

    def replace(self, rxn_index, reaction):
        self._reactions[self._slot_of[rxn_index]] = reaction
        self._arrays = None
        self.invalidate_cache()

    def invalidate_cache(self):
        self._key = None

    def _build(self):
        if self._arrays is None:
            self._arrays = self._pack([r.rate for r in self._reactions])
            self._arrays["ridx"] = jnp.array(self._indices, dtype=jnp.int32)
        return self._arrays

    def _pack(self, rates):
        raise NotImplementedError

    def _input_key(self, inputs):
        return (inputs.temperature,)

    def _evaluate(self, inputs):
        raise NotImplementedError

    def _ddT_scaled(self, inputs):
        """Analytic d ln(k)/dT, or None to use a finite difference."""
        return None

    def update(self, inputs):
        """Re-evaluate if the inputs this family depends on changed."""
        key = self._input_key(inputs)
        if self._key is not None and self._key == key:
            return False
        self._key = key
        self._inputs = inputs
        self._values = self._evaluate(inputs)
        return True

    def get_rate_constants(self, kf):
        return kf.at[self._build()["ridx"]].set(self._values)

    def process_rate_constants_ddT(self, rop, kf, delta_t):
        """Multiply *rop* by d ln(k)/dT for the reactions of this family."""
        ridx = self._build()["ridx"]
        scaled = self._ddT_scaled(self._inputs)
        if scaled is None:
            T = self._inputs.temperature
            T1 = T * (1.0 + delta_t)
            k1 = self._evaluate(self._inputs._replace(
                temperature=T1, log_temperature=math.log(T1)))
            k0 = kf[ridx]
            ok = k0 != 0.0
            scaled = jnp.where(ok, (k1 / jnp.where(ok, k0, 1.0) - 1.0) / (delta_t * T), 1.0)
        return rop.at[ridx].multiply(scaled)

    def process_rate_constants_ddM(self, rop, kf, delta_m, ctot):
        """Multiply *rop* by d ln(k)/d(ctot) through the third-body concentration.

        Zero for families whose rate constants do not depend on [M].
        """
        return rop.at[self._build()["ridx"]].set(0.0)


class ArrheniusMultiRate(MultiRate):
    rate_type = "Arrhenius"

    def _pack(self, rates):
        A, b, Ea_R = pack_arrhenius(rates)
        return {"A": A, "b": b, "Ea_R": Ea_R}

    def _evaluate(self, inputs):
        a = self._build()
        return arrhenius_rates(inputs.temperature, inputs.log_temperature,
                               a["A"], a["b"], a["Ea_R"])

    def _ddT_scaled(self, inputs):
        a = self._build()
        return arrhenius_ddT_scaled(inputs.temperature, a["b"], a["Ea_R"])


class FalloffMultiRate(MultiRate):
    """Falloff and chemically-activated reactions with their blending functions."""

    rate_type = "falloff"

    def _pack(self, rates):
        blending = FalloffManager()
        for slot, reaction in enumerate(self._reactions):
            blending.install(slot, reaction.reaction_type == "chemically-activated",
                             reaction.rate.falloff)
        ftype, params, chem_act = blending._build()
        return {
            "low": pack_arrhenius([r.low for r in rates]),
            "high": pack_arrhenius([r.high for r in rates]),
            "ftype": ftype,
            "params": params,
            "chem_act": chem_act,
        }

    def _input_key(self, inputs):
        conc = np.asarray(inputs.conc_3b)[np.asarray(self._indices, dtype=int)]
        return (inputs.temperature, conc.tobytes())

    def _evaluate(self, inputs):
        a = self._build()
        conc_3b = inputs.conc_3b[a["ridx"]]
        pr, k_low, k_high = reduced_pressure(inputs.temperature, inputs.log_temperature,
                                             conc_3b, a["low"], a["high"])
        assert_finite(pr, "FalloffMultiRate.update", "pr")
        return falloff_rates(inputs.temperature, pr, k_low, k_high,
                             a["ftype"], a["params"], a["chem_act"])

    def process_rate_constants_ddM(self, rop, kf, delta_m, ctot):
        ridx = self._build()["ridx"]
        k1 = self._evaluate(self._inputs._replace(conc_3b=self._inputs.conc_3b * (1.0 + delta_m)))
        k0 = kf[ridx]
        ok = k0 != 0.0
        scaled = jnp.where(ok, (k1 / jnp.where(ok, k0, 1.0) - 1.0) / (delta_m * ctot), 0.0)
        return rop.at[ridx].multiply(scaled)


class PlogMultiRate(MultiRate):
    rate_type = "pressure-dependent-Arrhenius"

    def _pack(self, rates):
        return pack_plog(rates)

    def _input_key(self, inputs):
        return (inputs.temperature, inputs.pressure)

    def _evaluate(self, inputs):
        a = self._build()
        i1, i2, frac = plog_interpolation(inputs.log_pressure, a["levels"], a["n_levels"])
        return plog_rates(inputs.temperature, inputs.log_temperature, i1, i2, frac,
                          a["A"], a["b"], a["Ea_R"])


class ChebyshevMultiRate(MultiRate):
    rate_type = "Chebyshev"

    def _pack(self, rates):
        return pack_chebyshev(rates)

    def _input_key(self, inputs):
        return (inputs.temperature, inputs.pressure)

    def _evaluate(self, inputs):
        a = self._build()
        dot_prod = chebyshev_pressure(inputs.log10_pressure, a["log10P_min"],
                                      a["log10P_max"], a["coeffs"])
        return chebyshev_rates(inputs.temperature, a["Tmin_inv"], a["Tmax_inv"], dot_prod)


MULTI_RATE_TYPES = {
    cls.rate_type: cls
    for cls in (ArrheniusMultiRate, FalloffMultiRate, PlogMultiRate, ChebyshevMultiRate)
}

# }}}
