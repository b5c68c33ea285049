"""Legacy single-rate tables.

Compatibility path for reactions installed with a ``*-legacy`` type tag.
The engine evaluates these only when temperature (or pressure) changes and
refuses to differentiate them.
"""
import jax.numpy as jnp

from .rates import (
    arrhenius_rates, pack_arrhenius,
    pack_plog, plog_interpolation, plog_rates,
    pack_chebyshev, chebyshev_pressure, chebyshev_rates,
)


class RateTable:
    """Rate parameters stored by an external index (reaction or falloff slot)."""

    def __init__(self):
        self._indices = []
        self._slot_of = {}
        self._rates = []
        self._arrays = None

    def __len__(self):
        return len(self._indices)

    @property
    def n_reactions(self):
        return len(self._indices)

    def install(self, index, rate):
        self._slot_of[index] = len(self._indices)
        self._indices.append(index)
        self._rates.append(rate)
        self._arrays = None

    def replace(self, index, rate):
        self._rates[self._slot_of[index]] = rate
        self._arrays = None

    def _build(self):
        if self._arrays is None:
            self._arrays = self._pack(self._rates)
            self._arrays["index"] = jnp.array(self._indices, dtype=jnp.int32)
        return self._arrays

    def _pack(self, rates):
        raise NotImplementedError

    def _evaluate(self, T, logT):
        raise NotImplementedError

    def update(self, T, logT, out):
        """Write the rate constants into *out* at the stored indices."""
        return out.at[self._build()["index"]].set(self._evaluate(T, logT))


class ArrheniusTable(RateTable):

    def _pack(self, rates):
        A, b, Ea_R = pack_arrhenius(rates)
        return {"A": A, "b": b, "Ea_R": Ea_R}

    def _evaluate(self, T, logT):
        a = self._build()
        return arrhenius_rates(T, logT, a["A"], a["b"], a["Ea_R"])


class PlogTable(RateTable):

    def __init__(self):
        super().__init__()
        self._logP = None

    def _pack(self, rates):
        return pack_plog(rates)

    def update_C(self, logP):
        self._logP = logP

    def _evaluate(self, T, logT):
        a = self._build()
        i1, i2, frac = plog_interpolation(self._logP, a["levels"], a["n_levels"])
        return plog_rates(T, logT, i1, i2, frac, a["A"], a["b"], a["Ea_R"])


class ChebyshevTable(RateTable):

    def __init__(self):
        super().__init__()
        self._log10P = None

    def _pack(self, rates):
        return pack_chebyshev(rates)

    def update_C(self, log10P):
        self._log10P = log10P

    def _evaluate(self, T, logT):
        a = self._build()
        dot_prod = chebyshev_pressure(self._log10P, a["log10P_min"],
                                      a["log10P_max"], a["coeffs"])
        return chebyshev_rates(T, a["Tmin_inv"], a["Tmax_inv"], dot_prod)
