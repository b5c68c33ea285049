"""Concentration-product bookkeeping for one side of a reaction set.

Uses the fixed-width sparse layout: per reaction, the participating species
indices and their orders, padded with a dummy species index ``n_species``
whose concentration is 1.
"""
from functools import partial

import jax
import jax.numpy as jnp
import numpy as np
from jax.experimental import sparse


@jax.jit
def _conc_terms(conc, idx, nu):
    conc_ext = jnp.concatenate([conc, jnp.ones(1)])
    return jnp.power(conc_ext[idx], nu)


@jax.jit
def stoich_multiply(conc, rates, idx, nu):
    """rates_i * prod_k conc_k^nu_ik"""
    return rates * jnp.prod(_conc_terms(conc, idx, nu), axis=1)


@jax.jit
def stoich_species_sum(prop, idx, nu):
    """sum_k nu_ik * prop_k for every reaction."""
    prop_ext = jnp.concatenate([prop, jnp.zeros(1)])
    return jnp.sum(nu * prop_ext[idx], axis=1)


@jax.jit
def stoich_jacobian_values(conc, rates, idx, nu):
    """d(rates_i * prod_k conc_k^nu_ik) / d conc_k for every (reaction, slot)."""
    conc_ext = jnp.concatenate([conc, jnp.ones(1)])
    c = conc_ext[idx]
    terms = jnp.power(c, nu)
    width = idx.shape[1]
    cols = jnp.arange(width)
    # product of the other participants in the row, no division by conc
    others = jnp.stack(
        [jnp.prod(jnp.where(cols[None, :] == s, 1.0, terms), axis=1) for s in range(width)],
        axis=1)
    deriv = nu * jnp.power(c, nu - 1.0) * others
    return rates[:, None] * deriv


@partial(jax.jit, static_argnames="n_species")
def stoich_increment_species(rates, idx, nu, n_species):
    """sum_i nu_ik * rates_i for every species k."""
    out = jnp.zeros(n_species + 1)
    return out.at[idx].add(nu * rates[:, None])[:-1]


def empty_sparse(shape):
    return sparse.BCOO((jnp.zeros(0), jnp.zeros((0, 2), dtype=jnp.int32)), shape=shape)


def sparse_add(shape, *terms):
    """Sum of ``(sign, BCOO)`` terms as a single BCOO matrix."""
    data = [sign * m.data for sign, m in terms]
    indices = [m.indices.astype(jnp.int32) for _, m in terms]
    if not data:
        return empty_sparse(shape)
    mat = sparse.BCOO((jnp.concatenate(data), jnp.concatenate(indices)), shape=shape)
    if mat.nse == 0:
        return mat
    return mat.sum_duplicates()


class StoichManager:
    """Species orders for one side (reactants or products) of every reaction.

    Reactions that do not participate get an empty row, so all vectors are
    indexed by the global reaction index.
    """

    def __init__(self, n_species):
        self.n_species = n_species
        self._rows = []
        self._arrays = None

    @property
    def n_reactions(self):
        return len(self._rows)

    def add(self, rxn_index, orders):
        if rxn_index != len(self._rows):
            raise IndexError(f"StoichManager.add: expected index {len(self._rows)}, got {rxn_index}")
        self._rows.append({int(k): float(v) for k, v in orders.items() if v != 0.0})
        self._arrays = None

    def _build(self):
        if self._arrays is None:
            n = len(self._rows)
            width = max([len(r) for r in self._rows] + [1])
            idx = np.full((n, width), self.n_species, dtype=np.int32)
            nu = np.zeros((n, width))
            for i, row in enumerate(self._rows):
                for s, (k, order) in enumerate(sorted(row.items())):
                    idx[i, s] = k
                    nu[i, s] = order
            # sparsity pattern is static, keep it on the host
            rows_nz, slots_nz = np.nonzero(idx < self.n_species)
            self._arrays = (jnp.array(idx), jnp.array(nu), rows_nz, slots_nz, idx)
        return self._arrays

    def multiply(self, conc, rates):
        """Multiply *rates* by the concentration products of this side."""
        idx, nu = self._build()[:2]
        return stoich_multiply(conc, rates, idx, nu)

    @property
    def order_sum(self):
        nu = self._build()[1]
        return jnp.sum(nu, axis=1)

    def scale(self, rates, factor=1.0):
        """rates_i * (total order of reaction i) * factor"""
        return rates * self.order_sum * factor

    def species_sum(self, prop):
        """Stoichiometric sum of species property *prop* per reaction."""
        idx, nu = self._build()[:2]
        return stoich_species_sum(prop, idx, nu)

    def increment_species(self, rates):
        """Per-species sum of *rates* weighted by the orders of this side."""
        idx, nu = self._build()[:2]
        return stoich_increment_species(rates, idx, nu, self.n_species)

    def jacobian(self, conc, rates):
        """Sparse d(rates * concentration product)/d(concentration)."""
        idx, nu, rows_nz, slots_nz, idx_host = self._build()
        shape = (self.n_reactions, self.n_species)
        if rows_nz.size == 0:
            return empty_sparse(shape)
        values = stoich_jacobian_values(conc, rates, idx, nu)
        data = values[rows_nz, slots_nz]
        indices = np.stack([rows_nz, idx_host[rows_nz, slots_nz]], axis=1).astype(np.int32)
        return sparse.BCOO((data, jnp.array(indices)), shape=shape)
