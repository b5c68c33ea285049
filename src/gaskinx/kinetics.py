"""Gas-phase kinetics engine.

``GasKinetics`` owns the reaction registry and turns the thermodynamic state
of an ideal-gas phase into forward, reverse and net rates of progress. Rate
constants are evaluated by one multi-rate evaluator per rate family; the
``*-legacy`` reaction types go through the single-rate tables instead and
are excluded from the analytic Jacobian entry points.

Units are mol-based SI throughout (concentrations in mol/m^3).
"""
import logging
import math
import warnings
from typing import NamedTuple

import jax.numpy as jnp
import numpy as np

from .constants import BIG_NUMBER, SMALL_NUMBER
from .errors import (
    ConfigurationError, InputError, KineticsDeprecationWarning,
    UnsupportedOperationError,
)
from .falloff import FalloffManager
from .legacy import ArrheniusTable, ChebyshevTable, PlogTable
from .mech_data import NPOS
from .rates import MULTI_RATE_TYPES, RateInputs, assert_finite
from .reactions import THIRD_BODY_TYPES, ThirdBody, check_shape
from .stoich import StoichManager, empty_sparse, sparse_add
from .thirdbody import ThirdBodyCalc

logger = logging.getLogger(__name__)

_legacy_rate_constants = False


def use_legacy_rate_constants(legacy=True):
    """Select whether ``forward_rate_constants`` includes third-body terms.

    The legacy behavior multiplies the rate constants of three-body reactions
    by the effective third-body concentration and is deprecated.
    """
    global _legacy_rate_constants
    _legacy_rate_constants = bool(legacy)


def legacy_rate_constants_used():
    return _legacy_rate_constants


# Rate family of the evaluator that owns each base reaction type
_MULTI_RATE_FAMILY = {
    "elementary": "Arrhenius",
    "three-body": "Arrhenius",
    "falloff": "falloff",
    "chemically-activated": "falloff",
    "pressure-dependent-Arrhenius": "pressure-dependent-Arrhenius",
    "Chebyshev": "Chebyshev",
}


class ReactionSlot(NamedTuple):
    """Where the rate parameters of one reaction live."""
    family: str
    slot: int


class JacobianSettings(NamedTuple):
    constant_pressure: bool = True
    mole_fractions: bool = True
    skip_third_bodies: bool = False
    skip_falloff: bool = True
    rtol_delta_T: float = 1e-6


_SETTING_KEYS = {
    "constant-pressure": "constant_pressure",
    "mole-fractions": "mole_fractions",
    "skip-third-bodies": "skip_third_bodies",
    "skip-falloff": "skip_falloff",
    "rtol-delta-T": "rtol_delta_T",
}


def _grow(values, size):
    """Zero-extend a 1D array to *size* entries."""
    if values.shape[0] >= size:
        return values
    return jnp.concatenate([values, jnp.zeros(size - values.shape[0])])


class GasKinetics:
    """Homogeneous reaction mechanism of an ideal-gas phase.

    Args:
        thermo: phase state providing temperature, pressure, concentrations
            and standard chemical potentials (see ``IdealGasThermo``).
    """

    def __init__(self, thermo):
        self.thermo = thermo
        self.n_species = thermo.n_species
        n = self.n_species

        self._reactions = []
        self._slots = []
        self._legacy = []
        self._reversible = []
        self._perturb = []

        self._reactant_stoich = StoichManager(n)
        self._product_stoich = StoichManager(n)
        # products of reversible reactions only
        self._rev_product_stoich = StoichManager(n)

        # Multi-rate evaluators, one per rate family
        self._bulk_rates = []
        self._bulk_types = {}
        self._multi_concm = ThirdBodyCalc(n)
        self._multi_tb_slot = {}

        # Legacy tables
        self._rates = ArrheniusTable()
        self._3b_concm = ThirdBodyCalc(n)
        self._3b_slot = {}
        self._falloff_low_rates = ArrheniusTable()
        self._falloff_high_rates = ArrheniusTable()
        self._falloff_concm = ThirdBodyCalc(n)
        self._falloffn = FalloffManager()
        self._fallindx = []
        self._plog_rates = PlogTable()
        self._cheb_rates = ChebyshevTable()

        self._rfn = jnp.zeros(0)
        self._rkcn = jnp.zeros(0)
        self._ropf = jnp.zeros(0)
        self._ropr = jnp.zeros(0)
        self._ropnet = jnp.zeros(0)
        self._concm = jnp.zeros(0)
        self._rfn_low = jnp.zeros(0)
        self._rfn_high = jnp.zeros(0)
        self._falloff_work = jnp.zeros((0, 2))
        self._multi_values = jnp.zeros(0)
        self._concm_3b_values = jnp.zeros(0)
        self._concm_falloff_values = jnp.zeros(0)
        self._act_conc = jnp.zeros(n)
        self._phys_conc = jnp.zeros(n)
        self._ctot = 0.0
        self._resize_reactions()

        self._temp = None
        self._pres = None
        self._log_stand_conc = 0.0
        self._rop_ok = False
        self._state_id = None
        self._jac = JacobianSettings()

    # {{{ registry

    @property
    def n_reactions(self):
        return len(self._reactions)

    def reaction(self, i):
        return self._reactions[self._check_index(i)]

    def reaction_type(self, i):
        return self._reactions[self._check_index(i)].reaction_type

    def is_reversible(self, i):
        return self._reversible[self._check_index(i)]

    def reaction_slot(self, i):
        return self._slots[self._check_index(i)]

    @property
    def legacy_reactions(self):
        """Indices of reactions installed through the legacy tables."""
        return tuple(self._legacy)

    def _check_index(self, i):
        if not 0 <= i < self.n_reactions:
            raise IndexError(f"Reaction index {i} out of range [0, {self.n_reactions})")
        return i

    def _species_orders(self, species, procedure):
        orders = {}
        for name, nu in species.items():
            k = self.thermo.species_index(name)
            if k == NPOS:
                raise InputError(procedure, f"Reaction contains undeclared species '{name}'",
                                 context={"species": name})
            orders[k] = orders.get(k, 0.0) + float(nu)
        return orders

    def _efficiencies(self, reaction):
        third_body = reaction.third_body or ThirdBody()
        effs = {}
        # TODO: warn about efficiencies given for undeclared species
        for name, eff in (third_body.efficiencies or {}).items():
            k = self.thermo.species_index(name)
            if k != NPOS:
                effs[k] = float(eff)
        return effs, float(third_body.default_efficiency)

    def _bulk_rate(self, family):
        if family not in self._bulk_types:
            self._bulk_types[family] = len(self._bulk_rates)
            self._bulk_rates.append(MULTI_RATE_TYPES[family]())
        return self._bulk_rates[self._bulk_types[family]]

    def add_reaction(self, reaction):
        """Install *reaction* and return its index.

        The descriptor is validated completely before the registry changes,
        so a rejected reaction leaves the mechanism untouched.
        """
        procedure = "GasKinetics.add_reaction"
        base = check_shape(reaction, procedure)
        reactants = self._species_orders(reaction.reactants, procedure)
        products = self._species_orders(reaction.products, procedure)
        efficiencies = self._efficiencies(reaction) if base in THIRD_BODY_TYPES else None

        i = self.n_reactions
        reversible = bool(reaction.reversible)
        self._reactions.append(reaction)
        self._reversible.append(reversible)
        self._perturb.append(1.0)
        self._reactant_stoich.add(i, reactants)
        self._product_stoich.add(i, products)
        self._rev_product_stoich.add(i, products if reversible else {})

        if reaction.uses_legacy:
            slot = self._install_legacy(i, base, reaction, efficiencies)
            self._legacy.append(i)
        else:
            slot = self._install_multi(i, base, reaction, efficiencies)
        self._slots.append(slot)

        self._resize_reactions()
        self.invalidate_cache()
        logger.debug("Added reaction %d (%s): %s", i, reaction.reaction_type, reaction.equation)
        return i

    def _install_multi(self, i, base, reaction, efficiencies):
        family = _MULTI_RATE_FAMILY[base]
        slot = self._bulk_rate(family).add(i, reaction)
        if efficiencies is not None:
            effs, default = efficiencies
            tb_slot = len(self._multi_concm)
            self._multi_concm.install(tb_slot, effs, default, reaction_index=i,
                                      mass_action=(base == "three-body"))
            self._multi_tb_slot[i] = tb_slot
        return ReactionSlot(family, slot)

    def _install_legacy(self, i, base, reaction, efficiencies):
        rate = reaction.rate
        if base in ("elementary", "three-body"):
            self._rates.install(i, rate)
            if base == "three-body":
                effs, default = efficiencies
                self._3b_slot[i] = len(self._3b_concm)
                self._3b_concm.install(len(self._3b_concm), effs, default, reaction_index=i)
            return ReactionSlot("legacy-" + base, len(self._rates) - 1)
        if base in ("falloff", "chemically-activated"):
            nfall = len(self._fallindx)
            effs, default = efficiencies
            self._falloff_low_rates.install(nfall, rate.low)
            self._falloff_high_rates.install(nfall, rate.high)
            self._falloff_concm.install(nfall, effs, default, reaction_index=i,
                                        mass_action=False)
            self._falloffn.install(nfall, base == "chemically-activated", rate.falloff)
            self._fallindx.append(i)
            return ReactionSlot("legacy-falloff", nfall)
        if base == "pressure-dependent-Arrhenius":
            self._plog_rates.install(i, rate)
            return ReactionSlot("legacy-" + base, len(self._plog_rates) - 1)
        self._cheb_rates.install(i, rate)
        return ReactionSlot("legacy-Chebyshev", len(self._cheb_rates) - 1)

    def modify_reaction(self, i, reaction):
        """Replace the rate parameters of reaction *i*.

        The type tag, the participating species and the reversibility must
        match the installed reaction.
        """
        procedure = "GasKinetics.modify_reaction"
        base = check_shape(reaction, procedure)
        try:
            old = self._reactions[self._check_index(i)]
        except IndexError as err:
            raise InputError(procedure, str(err), context={"index": i}) from err
        if reaction.reaction_type != old.reaction_type:
            raise InputError(procedure,
                f"Reaction types are different: {old.reaction_type} != {reaction.reaction_type}",
                context={"index": i})
        if (dict(reaction.reactants) != dict(old.reactants)
                or dict(reaction.products) != dict(old.products)
                or bool(reaction.reversible) != bool(old.reversible)):
            raise InputError(procedure,
                f"Reaction {i} cannot change its stoichiometry: {old.equation}",
                context={"index": i})
        efficiencies = self._efficiencies(reaction) if base in THIRD_BODY_TYPES else None

        slot = self._slots[i]
        rate = reaction.rate
        if not reaction.uses_legacy:
            self._bulk_rates[self._bulk_types[slot.family]].replace(i, reaction)
            if efficiencies is not None:
                self._multi_concm.replace(self._multi_tb_slot[i], *efficiencies)
        elif base in ("elementary", "three-body"):
            self._rates.replace(i, rate)
            if base == "three-body":
                self._3b_concm.replace(self._3b_slot[i], *efficiencies)
        elif base in ("falloff", "chemically-activated"):
            self._falloff_low_rates.replace(slot.slot, rate.low)
            self._falloff_high_rates.replace(slot.slot, rate.high)
            self._falloff_concm.replace(slot.slot, *efficiencies)
            self._falloffn.replace(slot.slot, rate.falloff)
        elif base == "pressure-dependent-Arrhenius":
            self._plog_rates.replace(i, rate)
        else:
            self._cheb_rates.replace(i, rate)

        self._reactions[i] = reaction
        self.invalidate_cache()
        logger.debug("Modified reaction %d (%s)", i, reaction.reaction_type)

    def _resize_reactions(self):
        n = self.n_reactions
        self._rfn = _grow(self._rfn, n)
        self._rkcn = _grow(self._rkcn, n)
        self._ropf = _grow(self._ropf, n)
        self._ropr = _grow(self._ropr, n)
        self._ropnet = _grow(self._ropnet, n)
        self._concm = _grow(self._concm, n)
        nfall = len(self._fallindx)
        self._rfn_low = _grow(self._rfn_low, nfall)
        self._rfn_high = _grow(self._rfn_high, nfall)
        self._perturb_arr = jnp.array(self._perturb, dtype=float)
        self._rev_mask = jnp.array(self._reversible, dtype=bool)
        self._dn = self._product_stoich.order_sum - self._reactant_stoich.order_sum

    def invalidate_cache(self):
        """Force every rate to be re-evaluated on the next update."""
        self._temp = None
        self._pres = None
        self._rop_ok = False
        for rates in self._bulk_rates:
            rates.invalidate_cache()
        logger.debug("Invalidated rate cache")

    def multiplier(self, i):
        return self._perturb[self._check_index(i)]

    def set_multiplier(self, f, i=None):
        """Scale the forward rate constant of reaction *i* (all if None) by *f*."""
        if i is None:
            self._perturb = [float(f)] * self.n_reactions
        else:
            self._perturb[self._check_index(i)] = float(f)
        self._perturb_arr = jnp.array(self._perturb, dtype=float)
        self.invalidate_cache()

    # }}}

    # {{{ rate pipeline

    def _update_rates_C(self):
        th = self.thermo
        self._act_conc = th.activity_concentrations
        self._phys_conc = th.concentrations
        self._ctot = th.molar_density

        concm = jnp.zeros(self.n_reactions)
        if len(self._multi_concm):
            self._multi_values = self._multi_concm.update(self._phys_conc, self._ctot)
            concm = self._multi_concm.copy(self._multi_values, concm)
        if len(self._3b_concm):
            self._concm_3b_values = self._3b_concm.update(self._phys_conc, self._ctot)
            concm = self._3b_concm.copy(self._concm_3b_values, concm)
        if len(self._falloff_concm):
            self._concm_falloff_values = self._falloff_concm.update(self._phys_conc, self._ctot)
            concm = self._falloff_concm.copy(self._concm_falloff_values, concm)
        self._concm = concm

        if len(self._plog_rates):
            self._plog_rates.update_C(math.log(th.pressure))
        if len(self._cheb_rates):
            self._cheb_rates.update_C(math.log10(th.pressure))
        self._rop_ok = False

    def _update_rates_T(self):
        th = self.thermo
        T = th.temperature
        P = th.pressure
        logT = math.log(T)
        self._log_stand_conc = math.log(th.standard_concentration)

        if T != self._temp:
            if len(self._rates):
                self._rfn = self._rates.update(T, logT, self._rfn)
            if len(self._falloff_high_rates):
                self._rfn_low = self._falloff_low_rates.update(T, logT, self._rfn_low)
                self._rfn_high = self._falloff_high_rates.update(T, logT, self._rfn_high)
                self._falloff_work = self._falloffn.update_temp(T)
            self._update_kc()
            self._rop_ok = False

        inputs = RateInputs(T, logT, P, math.log(P), math.log10(P),
                            th.molar_density, self._concm)
        for rates in self._bulk_rates:
            if rates.update(inputs):
                self._rfn = rates.get_rate_constants(self._rfn)
                self._rop_ok = False

        if T != self._temp or P != self._pres:
            if len(self._plog_rates):
                self._rfn = self._plog_rates.update(T, logT, self._rfn)
                self._rop_ok = False
            if len(self._cheb_rates):
                self._rfn = self._cheb_rates.update(T, logT, self._rfn)
                self._rop_ok = False
        self._temp = T
        self._pres = P

    def _reaction_delta(self, prop):
        """Products minus reactants of a species property, per reaction."""
        return self._product_stoich.species_sum(prop) - self._reactant_stoich.species_sum(prop)

    def _update_kc(self):
        """Reciprocal equilibrium constants of the reversible reactions."""
        th = self.thermo
        delta_g = self._reaction_delta(th.standard_chem_potentials)
        rkcn = jnp.minimum(jnp.exp(delta_g / th.RT - self._dn * self._log_stand_conc),
                           BIG_NUMBER)
        self._rkcn = jnp.where(self._rev_mask, rkcn, 0.0)

    def _process_falloff_reactions(self, ropf):
        pr = self._concm_falloff_values * self._rfn_low / (self._rfn_high + SMALL_NUMBER)
        assert_finite(pr, "GasKinetics.process_falloff_reactions", "pr")
        pr = self._falloffn.pr_to_falloff(pr, self._falloff_work)
        pr = pr * jnp.where(self._falloffn.chemically_activated, self._rfn_low, self._rfn_high)
        return ropf.at[jnp.array(self._fallindx, dtype=jnp.int32)].set(pr)

    def _process_fwd_rate_coefficients(self):
        self._update_rates_C()
        self._update_rates_T()
        ropf = self._rfn
        if len(self._fallindx):
            ropf = self._process_falloff_reactions(ropf)
        return ropf * self._perturb_arr

    def _process_third_bodies(self, rop):
        if len(self._3b_concm):
            rop = self._3b_concm.multiply(rop, self._concm_3b_values)
        if len(self._multi_concm):
            rop = self._multi_concm.multiply(rop, self._multi_values)
        return rop

    def update_rop(self):
        """Bring the rates of progress up to date with the thermo state."""
        if self._rop_ok and self._state_id == self.thermo.state_id:
            return
        procedure = "GasKinetics.update_rop"
        rate_constants = self._process_fwd_rate_coefficients()
        assert_finite(self._rfn, procedure, "rate constant")

        ropf = self._process_third_bodies(rate_constants)
        ropr = ropf * self._rkcn
        ropf = self._reactant_stoich.multiply(self._act_conc, ropf)
        ropr = self._rev_product_stoich.multiply(self._act_conc, ropr)
        assert_finite(ropf, procedure, "forward rate of progress")
        assert_finite(ropr, procedure, "reverse rate of progress")

        self._ropf = ropf
        self._ropr = ropr
        self._ropnet = ropf - ropr
        self._rop_ok = True
        self._state_id = self.thermo.state_id

    # }}}

    # {{{ rate accessors

    @property
    def forward_rates_of_progress(self):
        self.update_rop()
        return self._ropf

    @property
    def reverse_rates_of_progress(self):
        self.update_rop()
        return self._ropr

    @property
    def net_rates_of_progress(self):
        self.update_rop()
        return self._ropnet

    @property
    def third_body_concentrations(self):
        """Effective [M] per reaction; zero for reactions without a third body."""
        self.update_rop()
        return self._concm

    @property
    def equilibrium_constants(self):
        """Kc in concentration units for every reaction."""
        th = self.thermo
        delta_g = self._reaction_delta(th.standard_chem_potentials)
        kc = jnp.exp(-delta_g / th.RT + self._dn * math.log(th.standard_concentration))
        # temperature-dependent data is re-read on the next update
        self._temp = None
        self._rop_ok = False
        return kc

    @property
    def forward_rate_constants(self):
        kf = self._process_fwd_rate_coefficients()
        if _legacy_rate_constants:
            warnings.warn(
                "Forward rate constants include third-body concentrations for "
                "three-body reactions. This behavior is deprecated; call "
                "use_legacy_rate_constants(False) to exclude them.",
                KineticsDeprecationWarning, stacklevel=2)
            kf = self._process_third_bodies(kf)
        return kf

    @property
    def reverse_rate_constants(self):
        """Forward rate constants divided by Kc; zero for irreversible reactions."""
        return self._process_fwd_rate_coefficients() * self._rkcn

    @property
    def creation_rates(self):
        self.update_rop()
        return (self._product_stoich.increment_species(self._ropf)
                + self._reactant_stoich.increment_species(self._ropr))

    @property
    def destruction_rates(self):
        self.update_rop()
        return (self._reactant_stoich.increment_species(self._ropf)
                + self._product_stoich.increment_species(self._ropr))

    @property
    def net_production_rates(self):
        self.update_rop()
        return (self._product_stoich.increment_species(self._ropnet)
                - self._reactant_stoich.increment_species(self._ropnet))

    # }}}

    # {{{ Jacobian settings

    @property
    def jacobian_settings(self):
        return {key: getattr(self._jac, field) for key, field in _SETTING_KEYS.items()}

    @jacobian_settings.setter
    def jacobian_settings(self, settings):
        self.set_jacobian_settings(settings)

    def set_jacobian_settings(self, settings):
        """Update derivative settings; an empty mapping restores the defaults.

        Unknown keys are ignored. Setting ``skip-falloff`` to False raises
        ConfigurationError and leaves the settings unchanged.
        """
        procedure = "GasKinetics.set_jacobian_settings"
        if not settings:
            self._jac = JacobianSettings()
            logger.info("Jacobian settings reset to defaults")
            return
        updates = {}
        for key, value in settings.items():
            field = _SETTING_KEYS.get(key)
            if field is None:
                logger.warning("Ignoring unknown Jacobian setting '%s'", key)
                continue
            if field == "rtol_delta_T":
                updates[field] = float(value)
            elif isinstance(value, (bool, np.bool_)):
                updates[field] = bool(value)
            else:
                raise InputError(procedure, f"Jacobian setting '{key}' must be a boolean.",
                                 context={key: value})
        if not updates.get("skip_falloff", True):
            raise ConfigurationError(procedure,
                "Derivative term related to reaction rate dependence on third "
                "bodies in falloff reactions is not implemented.",
                context={"skip-falloff": False})
        if updates.get("rtol_delta_T", 1.0) <= 0.0:
            raise InputError(procedure, "rtol-delta-T must be positive.",
                             context={"rtol-delta-T": updates["rtol_delta_T"]})
        self._jac = self._jac._replace(**updates)
        logger.info("Jacobian settings: %s", self._jac)

    def get_jacobian_settings(self):
        return self.jacobian_settings

    # }}}

    # {{{ temperature derivatives

    def _check_legacy_rates(self, procedure):
        if self._legacy:
            raise UnsupportedOperationError(procedure,
                "Not supported for reactions using the legacy rate types.",
                context={"legacy_reactions": list(self._legacy)})

    def _dctot_dT(self):
        th = self.thermo
        if th.thermo_type == "IdealGas":
            return -th.molar_density / th.temperature
        T, P = th.temperature, th.pressure
        delta = self._jac.rtol_delta_T
        ctot0 = th.molar_density
        try:
            th.set_state_TP(T * (1.0 + delta), P)
            ctot1 = th.molar_density
        finally:
            th.set_state_TP(T, P)
        return (ctot1 - ctot0) / (T * delta)

    def _process_concentrations_ddT(self, rop):
        return rop * self._dctot_dT()

    def _process_equilibrium_constants_ddT(self, drkcn):
        """Multiply *drkcn* by d ln(1/Kc)/dT for reversible reactions."""
        th = self.thermo
        T, P = th.temperature, th.pressure
        delta = self._jac.rtol_delta_T
        try:
            th.set_state_TP(T * (1.0 + delta), P)
            kc1 = self.equilibrium_constants
        finally:
            th.set_state_TP(T, P)
        kc0 = self.equilibrium_constants
        d = drkcn * (kc0 - kc1) / (delta * T * kc0)
        return jnp.where(self._rev_mask, d, 0.0)

    def _rate_constants_ddT(self, rop, rfn):
        delta = self._jac.rtol_delta_T
        for rates in self._bulk_rates:
            rop = rates.process_rate_constants_ddT(rop, rfn, delta)
        return rop

    def _rate_constants_ddM(self, rop, rfn, ctot):
        delta = self._jac.rtol_delta_T
        for rates in self._bulk_rates:
            rop = rates.process_rate_constants_ddM(rop, rfn, delta, ctot)
        return rop

    def _third_body_ddM(self, rop, ctot):
        if not len(self._multi_concm):
            return jnp.zeros_like(rop)
        return self._multi_concm.scale_order(rop, 1.0 / ctot)

    @property
    def forward_rate_constants_ddT(self):
        """d(kf)/dT, including the pressure effect at constant pressure."""
        self._check_legacy_rates("GasKinetics.forward_rate_constants_ddT")
        self.update_rop()
        rfn, ctot = self._rfn, self._ctot
        kf = rfn * self._perturb_arr
        dkf = self._rate_constants_ddT(kf, rfn)
        if self._jac.constant_pressure:
            dkf_m = self._rate_constants_ddM(kf, rfn, ctot)
            dkf = dkf + self._process_concentrations_ddT(dkf_m)
        return dkf

    @property
    def forward_rates_of_progress_ddT(self):
        self._check_legacy_rates("GasKinetics.forward_rates_of_progress_ddT")
        self.update_rop()
        ropf, rfn, ctot = self._ropf, self._rfn, self._ctot
        drop = self._rate_constants_ddT(ropf, rfn)
        if self._jac.constant_pressure:
            d_conc = self._reactant_stoich.scale(ropf, 1.0 / ctot)
            d_m = self._rate_constants_ddM(ropf, rfn, ctot) + self._third_body_ddM(ropf, ctot)
            drop = drop + self._process_concentrations_ddT(d_conc + d_m)
        return drop

    @property
    def reverse_rates_of_progress_ddT(self):
        self._check_legacy_rates("GasKinetics.reverse_rates_of_progress_ddT")
        self.update_rop()
        ropr, rfn, ctot = self._ropr, self._rfn, self._ctot
        drop = self._rate_constants_ddT(ropr, rfn)
        drop = drop + self._process_equilibrium_constants_ddT(ropr)
        if self._jac.constant_pressure:
            d_conc = self._rev_product_stoich.scale(ropr, 1.0 / ctot)
            d_m = self._rate_constants_ddM(ropr, rfn, ctot) + self._third_body_ddM(ropr, ctot)
            drop = drop + self._process_concentrations_ddT(d_conc + d_m)
        return drop

    @property
    def net_rates_of_progress_ddT(self):
        return self.forward_rates_of_progress_ddT - self.reverse_rates_of_progress_ddT

    # }}}

    # {{{ concentration derivatives

    def _rop_ddC(self, rate_constants, stoich):
        """Sparse d(rop)/dC for one direction, as ``(sign, BCOO)`` terms."""
        if self._jac.mole_fractions:
            rate_constants = rate_constants * self._ctot
        terms = [(1.0, stoich.jacobian(self._act_conc,
                                       self._process_third_bodies(rate_constants)))]
        if not self._jac.skip_third_bodies and len(self._multi_concm):
            rop = stoich.multiply(self._act_conc, rate_constants)
            terms.append((1.0, self._multi_concm.jacobian(rop, self.n_reactions)))
        return terms

    @property
    def _ddC_shape(self):
        return (self.n_reactions, self.n_species)

    @property
    def forward_rate_constants_ddC(self):
        """Sparse d(kf)/dC.

        Rate constants depend on concentrations only through falloff
        reactions, which are always skipped, so the matrix is empty.
        """
        self._check_legacy_rates("GasKinetics.forward_rate_constants_ddC")
        self.update_rop()
        return empty_sparse(self._ddC_shape)

    @property
    def forward_rates_of_progress_ddC(self):
        self._check_legacy_rates("GasKinetics.forward_rates_of_progress_ddC")
        kf = self._process_fwd_rate_coefficients()
        return sparse_add(self._ddC_shape, *self._rop_ddC(kf, self._reactant_stoich))

    @property
    def reverse_rates_of_progress_ddC(self):
        self._check_legacy_rates("GasKinetics.reverse_rates_of_progress_ddC")
        kr = self._process_fwd_rate_coefficients() * self._rkcn
        return sparse_add(self._ddC_shape, *self._rop_ddC(kr, self._rev_product_stoich))

    @property
    def net_rates_of_progress_ddC(self):
        self._check_legacy_rates("GasKinetics.net_rates_of_progress_ddC")
        kf = self._process_fwd_rate_coefficients()
        kr = kf * self._rkcn
        fwd = self._rop_ddC(kf, self._reactant_stoich)
        rev = [(-sign, m) for sign, m in self._rop_ddC(kr, self._rev_product_stoich)]
        return sparse_add(self._ddC_shape, *fwd, *rev)

    # }}}
