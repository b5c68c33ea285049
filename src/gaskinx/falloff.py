"""Falloff blending functions (Lindemann, Troe, SRI).

Every blending function is stored as a type code plus a padded parameter row
so that one jitted kernel evaluates a heterogeneous set of reactions.

Work array per reaction, computed once per temperature:
    Lindemann: unused
    Troe:      [log10(Fcent), 0]
    SRI:       [log10(a*exp(-b/T) + exp(-T/c)), log10(d * T^e)]
"""
from typing import NamedTuple, Optional

import jax
import jax.numpy as jnp
import numpy as np

from .constants import SMALL_NUMBER

LINDEMANN, TROE, SRI_TYPE = 0, 1, 2


class Lindemann(NamedTuple):
    """F = 1"""
    family = "Lindemann"

    def params(self):
        return LINDEMANN, [0.0, 0.0, 0.0, 0.0, 0.0]


class Troe(NamedTuple):
    """Troe falloff function; T2 is optional."""
    A: float
    T3: float
    T1: float
    T2: Optional[float] = None

    family = "Troe"

    def params(self):
        # 1/T3 and 1/T1, infinite when the temperature is (near) zero
        rt3 = np.inf if abs(self.T3) < SMALL_NUMBER else 1.0 / self.T3
        rt1 = np.inf if abs(self.T1) < SMALL_NUMBER else 1.0 / self.T1
        # T2 = 0 means no T2 term
        has_t2 = 1.0 if self.T2 else 0.0
        t2 = float(self.T2) if self.T2 else 0.0
        return TROE, [self.A, rt3, rt1, t2, has_t2]


class SRI(NamedTuple):
    """SRI falloff function; D and E default to 1 and 0."""
    A: float
    B: float
    C: float
    D: float = 1.0
    E: float = 0.0

    family = "SRI"

    def params(self):
        if self.C < 0.0:
            raise ValueError(f"SRI parameter C must be non-negative, got {self.C}")
        if self.D < 0.0:
            raise ValueError(f"SRI parameter D must be non-negative, got {self.D}")
        return SRI_TYPE, [self.A, self.B, self.C, self.D, self.E]


BLENDING_FUNCTIONS = (Lindemann, Troe, SRI)


@jax.jit
def falloff_update_temp(T, ftype, params):
    """Temperature-dependent work for every blending function."""
    # Troe
    a, rt3, rt1, t2, has_t2 = (params[:, i] for i in range(5))
    f_cent = (1.0 - a) * jnp.exp(-T * rt3) + a * jnp.exp(-T * rt1)
    f_cent = f_cent + jnp.where(has_t2 > 0.0, jnp.exp(-t2 / T), 0.0)
    troe = jnp.log10(jnp.maximum(f_cent, SMALL_NUMBER))

    # SRI; guard c against zero so that the unused lanes stay finite
    sa, sb, sc, sd, se = (params[:, i] for i in range(5))
    sc_safe = jnp.where(sc > 0.0, sc, 1.0)
    sri_x = sa * jnp.exp(-sb / T) + jnp.where(sc > 0.0, jnp.exp(-T / sc_safe), 0.0)
    sri_log_x = jnp.log10(jnp.maximum(sri_x, SMALL_NUMBER))
    sri_log_de = jnp.log10(jnp.maximum(sd, SMALL_NUMBER)) + se * jnp.log10(T)

    work0 = jnp.where(ftype == TROE, troe, jnp.where(ftype == SRI_TYPE, sri_log_x, 0.0))
    work1 = jnp.where(ftype == SRI_TYPE, sri_log_de, 0.0)
    return jnp.stack([work0, work1], axis=1)


@jax.jit
def falloff_function(pr, ftype, work):
    """Blending factor F(pr) for every reaction."""
    lpr = jnp.log10(jnp.maximum(pr, SMALL_NUMBER))

    log_fcent = work[:, 0]
    cc = -0.4 - 0.67 * log_fcent
    nn = 0.75 - 1.27 * log_fcent
    f1 = (lpr + cc) / (nn - 0.14 * (lpr + cc))
    troe = jnp.power(10.0, log_fcent / (1.0 + f1 * f1))

    xx = 1.0 / (1.0 + lpr * lpr)
    sri = jnp.power(10.0, work[:, 0] * xx + work[:, 1])

    return jnp.where(ftype == TROE, troe, jnp.where(ftype == SRI_TYPE, sri, 1.0))


@jax.jit
def blend(pr, ftype, work, chemically_activated):
    """Fold the blending factor into the reduced pressure.

    falloff:               pr * F / (1 + pr)
    chemically activated:  F / (1 + pr)
    """
    F = falloff_function(pr, ftype, work)
    return jnp.where(chemically_activated, F / (1.0 + pr), pr * F / (1.0 + pr))


class FalloffManager:
    """Blending functions for a set of falloff reactions, indexed by slot."""

    def __init__(self):
        self._types = []
        self._params = []
        self._chem_act = []
        self._arrays = None

    def __len__(self):
        return len(self._types)

    def install(self, slot, chemically_activated, func):
        if slot != len(self._types):
            raise IndexError(f"FalloffManager.install: expected slot {len(self)}, got {slot}")
        ftype, params = func.params()
        self._types.append(ftype)
        self._params.append(params)
        self._chem_act.append(bool(chemically_activated))
        self._arrays = None

    def replace(self, slot, func):
        ftype, params = func.params()
        self._types[slot] = ftype
        self._params[slot] = params
        self._arrays = None

    def _build(self):
        if self._arrays is None:
            self._arrays = (
                jnp.array(self._types, dtype=jnp.int32),
                jnp.array(self._params, dtype=float).reshape(len(self._types), 5),
                jnp.array(self._chem_act, dtype=bool),
            )
        return self._arrays

    @property
    def chemically_activated(self):
        return self._build()[2]

    def update_temp(self, T):
        ftype, params, _ = self._build()
        return falloff_update_temp(T, ftype, params)

    def pr_to_falloff(self, pr, work):
        ftype, _, chem_act = self._build()
        return blend(pr, ftype, work, chem_act)
