"""Effective third-body concentrations.

For every registered reaction:

    [M]_i = default_i * ctot + sum_{k in map_i} (eff_ik - default_i) * C_k

which is ``sum(eff_k * C_k) + default * (ctot - sum_{k in map} C_k)``.
"""
import jax
import jax.numpy as jnp
import numpy as np
from jax.experimental import sparse

from .stoich import empty_sparse


@jax.jit
def third_body_update(conc, ctot, default, delta):
    return default * ctot + delta @ conc


class ThirdBodyCalc:
    """Third-body weighting for one disjoint set of reactions."""

    def __init__(self, n_species):
        self.n_species = n_species
        self._reaction_index = []
        self._efficiencies = []
        self._default = []
        self._mass_action = []
        self._arrays = None

    def __len__(self):
        return len(self._reaction_index)

    @property
    def n_reactions(self):
        return len(self._reaction_index)

    @property
    def reaction_indices(self):
        return list(self._reaction_index)

    def install(self, slot, efficiencies, default_efficiency, reaction_index=None,
                mass_action=True):
        """Register a reaction at *slot*.

        efficiencies: mapping species index -> efficiency; entries must
            already be restricted to known species.
        mass_action: False when [M] enters through the rate constant
            (falloff) rather than as a multiplier of the rate.
        """
        if slot != len(self._reaction_index):
            raise IndexError(f"ThirdBodyCalc.install: expected slot {len(self)}, got {slot}")
        self._reaction_index.append(slot if reaction_index is None else reaction_index)
        self._efficiencies.append(dict(efficiencies))
        self._default.append(float(default_efficiency))
        self._mass_action.append(bool(mass_action))
        self._arrays = None

    def replace(self, slot, efficiencies, default_efficiency):
        self._efficiencies[slot] = dict(efficiencies)
        self._default[slot] = float(default_efficiency)
        self._arrays = None

    def _build(self):
        if self._arrays is None:
            n = len(self._reaction_index)
            default = np.array(self._default, dtype=float)
            delta = np.zeros((n, self.n_species))
            for i, effs in enumerate(self._efficiencies):
                for k, eff in effs.items():
                    delta[i, k] = eff - default[i]
            full = delta + default[:, None]
            ridx = np.array(self._reaction_index, dtype=np.int32)
            mass_action = np.array(self._mass_action, dtype=bool)
            self._arrays = {
                "default": jnp.array(default),
                "delta": jnp.array(delta),
                "full": full,
                "ridx": jnp.array(ridx),
                "ridx_host": ridx,
                "ma_slots": jnp.array(np.nonzero(mass_action)[0].astype(np.int32)),
                "ma_ridx": jnp.array(ridx[mass_action]),
                "mass_action": mass_action,
            }
        return self._arrays

    def update(self, conc, ctot):
        """Effective third-body concentration for every slot."""
        a = self._build()
        return third_body_update(conc, ctot, a["default"], a["delta"])

    def multiply(self, rates, values):
        """Scale the rates of mass-action third-body reactions by [M]."""
        a = self._build()
        return rates.at[a["ma_ridx"]].multiply(values[a["ma_slots"]])

    def copy(self, values, dest):
        """Scatter slot values into a per-reaction vector."""
        a = self._build()
        return dest.at[a["ridx"]].set(values)

    def scale_order(self, rates, factor=1.0):
        """Rates of mass-action reactions times *factor*, zero elsewhere.

        Third-body reactions are first order in [M].
        """
        a = self._build()
        out = jnp.zeros_like(rates)
        return out.at[a["ma_ridx"]].set(rates[a["ma_ridx"]] * factor)

    def jacobian(self, rates, n_reactions):
        """Sparse d(rates * [M]) / d(concentration) for mass-action reactions."""
        a = self._build()
        shape = (n_reactions, self.n_species)
        full = np.where(a["mass_action"][:, None], a["full"], 0.0)
        slots_nz, species_nz = np.nonzero(full)
        if slots_nz.size == 0:
            return empty_sparse(shape)
        rows = a["ridx_host"][slots_nz]
        data = rates[jnp.array(rows)] * jnp.array(full[slots_nz, species_nz])
        indices = np.stack([rows, species_nz], axis=1).astype(np.int32)
        return sparse.BCOO((data, jnp.array(indices)), shape=shape)
