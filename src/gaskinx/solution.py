import numpy as np

from .loader import load_mechanism


class Solution:
    """A user-friendly wrapper for chemical state and kinetics.

    Combines the ideal-gas phase and its kinetics engine behind the usual
    ``T``, ``P``, ``X`` state properties. Rates are returned as numpy arrays.
    """

    def __init__(self, yaml_file: str, legacy=False):
        self.thermo, self.kinetics = load_mechanism(yaml_file, legacy=legacy)
        self.n_species = self.thermo.n_species
        self.species_names = self.thermo.species_names

    @property
    def n_reactions(self): return self.kinetics.n_reactions

    @property
    def T(self): return self.thermo.T
    @T.setter
    def T(self, value): self.thermo.T = value

    @property
    def P(self): return self.thermo.P
    @P.setter
    def P(self, value): self.thermo.P = value

    @property
    def X(self): return np.array(self.thermo.X)
    @X.setter
    def X(self, value): self.thermo.X = value

    @property
    def TP(self): return self.T, self.P
    @TP.setter
    def TP(self, value): self.thermo.TP = value

    @property
    def TPX(self): return self.T, self.P, self.X
    @TPX.setter
    def TPX(self, value): self.thermo.TPX = value

    def set_TPX(self, T, P, X):
        self.TPX = T, P, X

    @property
    def concentrations(self): return np.array(self.thermo.concentrations)

    @concentrations.setter
    def concentrations(self, value): self.thermo.set_concentrations(value)

    @property
    def density_mole(self): return float(self.thermo.molar_density)

    def species_index(self, name):
        return self.thermo.species_index(name)

    def reaction(self, i):
        return self.kinetics.reaction(i)

    # Kinetics
    @property
    def forward_rate_constants(self):
        return np.array(self.kinetics.forward_rate_constants)

    @property
    def reverse_rate_constants(self):
        return np.array(self.kinetics.reverse_rate_constants)

    @property
    def equilibrium_constants(self):
        return np.array(self.kinetics.equilibrium_constants)

    @property
    def forward_rates_of_progress(self):
        return np.array(self.kinetics.forward_rates_of_progress)

    @property
    def reverse_rates_of_progress(self):
        return np.array(self.kinetics.reverse_rates_of_progress)

    @property
    def net_rates_of_progress(self):
        return np.array(self.kinetics.net_rates_of_progress)

    @property
    def creation_rates(self):
        return np.array(self.kinetics.creation_rates)

    @property
    def destruction_rates(self):
        return np.array(self.kinetics.destruction_rates)

    @property
    def net_production_rates(self):
        return np.array(self.kinetics.net_production_rates)

    @property
    def jacobian_settings(self):
        return self.kinetics.jacobian_settings

    @jacobian_settings.setter
    def jacobian_settings(self, settings):
        self.kinetics.jacobian_settings = settings

    @property
    def forward_rates_of_progress_ddT(self):
        return np.array(self.kinetics.forward_rates_of_progress_ddT)

    @property
    def net_rates_of_progress_ddT(self):
        return np.array(self.kinetics.net_rates_of_progress_ddT)

    @property
    def net_rates_of_progress_ddC(self):
        """Dense d(net rop)/dC."""
        return np.array(self.kinetics.net_rates_of_progress_ddC.todense())
