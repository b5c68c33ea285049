import equinox as eqx
import jax
import jax.numpy as jnp
import numpy as np

# Sentinel for "species not in this phase"
NPOS = -1


class SpeciesData(eqx.Module):
    """Frozen Equinox module holding the species data of an ideal-gas phase."""

    n_species: int = eqx.field(static=True)
    species_names: tuple = eqx.field(static=True)

    # NASA-7 coefficients
    # Format: (n_species, 7)
    nasa_low: jax.Array
    nasa_high: jax.Array
    nasa_T_mid: jax.Array           # (n_species,)

    def species_index(self, name):
        """Index of species *name*, or NPOS if it is not part of the phase."""
        try:
            return self.species_names.index(name)
        except ValueError:
            return NPOS


def make_species_data(species):
    """Build SpeciesData from ``{name: (T_mid, low_coeffs, high_coeffs)}``.

    A single 7-coefficient sequence may be given instead of the tuple, in
    which case it is used on both sides of an arbitrary T_mid.
    """
    names = tuple(species)
    n_species = len(names)
    nasa_low = np.zeros((n_species, 7))
    nasa_high = np.zeros((n_species, 7))
    nasa_T_mid = np.full(n_species, 1000.0)

    for i, name in enumerate(names):
        entry = species[name]
        if len(entry) == 3:
            T_mid, low, high = entry
            nasa_T_mid[i] = T_mid
        else:
            low = high = entry
        if len(low) != 7 or len(high) != 7:
            raise ValueError(f"Species {name} needs 7 NASA coefficients per range.")
        nasa_low[i] = low
        nasa_high[i] = high

    return SpeciesData(
        n_species=n_species,
        species_names=names,
        nasa_low=jnp.array(nasa_low),
        nasa_high=jnp.array(nasa_high),
        nasa_T_mid=jnp.array(nasa_T_mid),
    )
