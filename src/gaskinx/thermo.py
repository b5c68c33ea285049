import jax
import jax.numpy as jnp
from .constants import R_GAS, ONE_ATM
from .errors import InputError
from .mech_data import SpeciesData, NPOS

@jax.jit
def get_h_RT(T, nasa_low, nasa_high, T_mid):
    """Compute non-dimensional enthalpy H/RT for all species.

    H/RT = a0 + a1*T/2 + a2*T^2/3 + a3*T^3/4 + a4*T^4/5 + a5/T
    """
    T = jnp.atleast_1d(T)
    mask = T > T_mid
    coeffs = jnp.where(mask[:, None], nasa_high, nasa_low)

    h_RT = (coeffs[:, 0] +
            coeffs[:, 1] * T / 2.0 +
            coeffs[:, 2] * T**2 / 3.0 +
            coeffs[:, 3] * T**3 / 4.0 +
            coeffs[:, 4] * T**4 / 5.0 +
            coeffs[:, 5] / T)

    return h_RT

@jax.jit
def get_s_R(T, nasa_low, nasa_high, T_mid):
    """Compute non-dimensional entropy S/R for all species.

    S/R = a0*ln(T) + a1*T + a2*T^2/2 + a3*T^3/3 + a4*T^4/4 + a6
    """
    T = jnp.atleast_1d(T)
    mask = T > T_mid
    coeffs = jnp.where(mask[:, None], nasa_high, nasa_low)

    s_R = (coeffs[:, 0] * jnp.log(T) +
           coeffs[:, 1] * T +
           coeffs[:, 2] * T**2 / 2.0 +
           coeffs[:, 3] * T**3 / 3.0 +
           coeffs[:, 4] * T**4 / 4.0 +
           coeffs[:, 6])

    return s_R

@jax.jit
def get_mu0(T, P, nasa_low, nasa_high, T_mid):
    """Standard chemical potentials [J/mol] at T and the current pressure P.

    mu0_k = RT * (H/RT - S/R) + RT * ln(P / P_ref)
    """
    g_RT = get_h_RT(T, nasa_low, nasa_high, T_mid) - get_s_R(T, nasa_low, nasa_high, T_mid)
    return R_GAS * T * (g_RT + jnp.log(P / ONE_ATM))


class IdealGasThermo:
    """Ideal-gas phase state used by the kinetics engine.

    Holds temperature, pressure and mole fractions. Every state change bumps
    ``state_id`` so that consumers can tell when cached results are stale.
    """

    thermo_type = "IdealGas"

    def __init__(self, species: SpeciesData):
        self.species = species
        self.n_species = species.n_species
        self.species_names = species.species_names

        # Default state: 300K, 1 atm, pure first species
        self._T = 300.0
        self._P = ONE_ATM
        self._X = jnp.zeros(self.n_species).at[0].set(1.0)
        self._state_id = 0

    def _touch(self):
        self._state_id += 1

    @property
    def state_id(self):
        return self._state_id

    def species_index(self, name):
        return self.species.species_index(name)

    @property
    def T(self): return self._T
    @T.setter
    def T(self, value):
        self._T = float(value)
        self._touch()

    @property
    def P(self): return self._P
    @P.setter
    def P(self, value):
        self._P = float(value)
        self._touch()

    @property
    def temperature(self): return self._T

    @property
    def pressure(self): return self._P

    def _parse_composition(self, value):
        if isinstance(value, str):
            value = dict(p.split(':') for p in value.split(','))
        if isinstance(value, dict):
            res = jnp.zeros(self.n_species)
            for spec, val in value.items():
                k = self.species_index(spec.strip())
                if k == NPOS:
                    raise InputError("IdealGasThermo", f"Unknown species: {spec.strip()}")
                res = res.at[k].set(float(val))
            return res
        res = jnp.asarray(value, dtype=float)
        if res.shape != (self.n_species,):
            raise InputError("IdealGasThermo",
                f"Expected {self.n_species} values, got shape {res.shape}")
        return res

    @property
    def X(self): return self._X
    @X.setter
    def X(self, value):
        X = self._parse_composition(value)
        total = float(jnp.sum(X))
        if total <= 0.0:
            raise InputError("IdealGasThermo", "Mole fractions must have a positive sum.")
        self._X = X / total
        self._touch()

    @property
    def TP(self): return self.T, self.P
    @TP.setter
    def TP(self, value):
        self.set_state_TP(*value)

    @property
    def TPX(self): return self.T, self.P, self.X
    @TPX.setter
    def TPX(self, value):
        T, P, X = value
        self.X = X
        self.set_state_TP(T, P)

    def set_state_TP(self, T, P):
        self._T = float(T)
        self._P = float(P)
        self._touch()

    def set_concentrations(self, conc):
        """Set mole fractions and pressure from molar concentrations at fixed T."""
        conc = self._parse_composition(conc)
        ctot = float(jnp.sum(conc))
        if ctot <= 0.0:
            raise InputError("IdealGasThermo", "Concentrations must have a positive sum.")
        self._X = conc / ctot
        self._P = ctot * R_GAS * self._T
        self._touch()

    # Thermodynamics
    @property
    def RT(self):
        return R_GAS * self._T

    @property
    def molar_density(self):
        return self._P / self.RT

    @property
    def concentrations(self):
        return self._X * self.molar_density

    @property
    def activity_concentrations(self):
        # Ideal gas: activity concentrations are the molar concentrations
        return self.concentrations

    @property
    def standard_concentration(self):
        return self.molar_density

    @property
    def standard_chem_potentials(self):
        sp = self.species
        return get_mu0(self._T, self._P, sp.nasa_low, sp.nasa_high, sp.nasa_T_mid)
