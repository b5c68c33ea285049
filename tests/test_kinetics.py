import math
import warnings

import jax.numpy as jnp
import numpy as np
import pytest

from gaskinx import reactions as rx
from gaskinx.constants import J_PER_CAL, ONE_ATM, R_GAS
from gaskinx.errors import (
    InputError, KineticsDeprecationWarning, NumericalConsistencyError,
    UnknownReactionTypeError,
)
from gaskinx.kinetics import ReactionSlot, use_legacy_rate_constants
from gaskinx.reactions import Arrhenius, Reaction


def test_single_reaction_rate(gas_factory):
    rxn = rx.elementary({"A": 1}, {"B": 1}, Arrhenius.from_cal(1e13, 0.0, 30000.0),
                        reversible=False)
    thermo, kin = gas_factory({"A": 0.0, "B": 0.0}, [rxn])
    thermo.T = 1000.0
    thermo.set_concentrations({"A": 2.0})

    kf = 1e13 * math.exp(-30000.0 * J_PER_CAL / (R_GAS * 1000.0))
    ropf = np.array(kin.forward_rates_of_progress)
    print(f"kf = {kf:.6e}, ropf = {ropf[0]:.6e}")

    np.testing.assert_allclose(ropf, [2.0 * kf], rtol=1e-12)
    np.testing.assert_allclose(kin.reverse_rates_of_progress, [0.0])
    np.testing.assert_allclose(kin.net_rates_of_progress, ropf, rtol=1e-12)
    np.testing.assert_allclose(kin.forward_rate_constants, [kf], rtol=1e-12)


def test_net_is_forward_minus_reverse(gas_factory):
    rxns = [
        rx.elementary({"A": 1}, {"B": 1}, Arrhenius(2e3, 0.5, 4e4)),
        rx.elementary({"A": 1, "B": 1}, {"C": 2}, Arrhenius(1e5, 0.0, 1e4)),
        rx.elementary({"C": 1}, {"A": 1}, Arrhenius(10.0, 0.0, 0.0), reversible=False),
    ]
    thermo, kin = gas_factory({"A": 0.0, "B": 1.0, "C": -0.5}, rxns)
    thermo.TPX = 1200.0, ONE_ATM, "A:0.2, B:0.3, C:0.5"

    ropf = kin.forward_rates_of_progress
    ropr = kin.reverse_rates_of_progress
    ropnet = kin.net_rates_of_progress
    assert np.array_equal(np.array(ropnet), np.array(ropf - ropr))
    assert float(ropr[2]) == 0.0


def test_equilibrium_constants(gas_factory):
    rxns = [
        rx.elementary({"A": 1}, {"B": 1}, Arrhenius(1.0, 0.0, 0.0)),
        rx.elementary({"A": 1}, {"B": 2}, Arrhenius(1.0, 0.0, 0.0)),
    ]
    thermo, kin = gas_factory({"A": 0.0, "B": 1.0}, rxns)
    T = 800.0
    thermo.TPX = T, 2.0 * ONE_ATM, "A:0.5, B:0.5"

    # g/RT: A = 0, B = -1
    kc_expected = [math.e, math.exp(2.0) * ONE_ATM / (R_GAS * T)]
    np.testing.assert_allclose(kin.equilibrium_constants, kc_expected, rtol=1e-12)

    # ropr = kf * prod(C_products) / Kc
    conc = np.array(thermo.concentrations)
    expected_ropr = [conc[1] / kc_expected[0], conc[1] ** 2 / kc_expected[1]]
    np.testing.assert_allclose(kin.reverse_rates_of_progress, expected_ropr, rtol=1e-10)
    np.testing.assert_allclose(kin.reverse_rate_constants,
                               1.0 / np.array(kc_expected), rtol=1e-10)


def test_equilibrium_constants_do_not_depend_on_pressure(gas_factory):
    rxn = rx.elementary({"A": 2}, {"B": 1}, Arrhenius(1.0, 0.0, 0.0))
    thermo, kin = gas_factory({"A": 0.3, "B": 1.0}, [rxn])
    thermo.TP = 1000.0, ONE_ATM
    kc1 = np.array(kin.equilibrium_constants)
    rkc1 = np.array(kin.reverse_rate_constants)
    thermo.TP = 1000.0, 10.0 * ONE_ATM
    np.testing.assert_allclose(kin.equilibrium_constants, kc1, rtol=1e-12)
    np.testing.assert_allclose(kin.reverse_rate_constants, rkc1, rtol=1e-12)


def test_irreversible_reaction_has_no_reverse_rate(gas_factory):
    rxn = rx.elementary({"A": 1}, {"B": 1}, Arrhenius(5.0, 0.0, 0.0), reversible=False)
    thermo, kin = gas_factory({"A": 0.0, "B": 3.0}, [rxn])
    thermo.TPX = 500.0, ONE_ATM, "A:0.5, B:0.5"
    assert not kin.is_reversible(0)
    assert float(kin.reverse_rate_constants[0]) == 0.0
    assert float(kin.reverse_rates_of_progress[0]) == 0.0


def test_three_body_concentration(gas_factory):
    k = Arrhenius(3.0, 0.0, 0.0)
    rxns = [
        rx.three_body({"A": 1}, {"B": 1}, k, reversible=False),
        rx.three_body({"A": 1}, {"B": 1}, k, efficiencies={"B": 5.0, "Z": 9.0},
                      reversible=False),
        rx.three_body({"A": 1}, {"B": 1}, k, efficiencies={"A": 1.0},
                      default_efficiency=0.0, reversible=False),
        rx.elementary({"A": 1}, {"B": 1}, k, reversible=False),
    ]
    thermo, kin = gas_factory({"A": 0.0, "B": 0.0, "C": 0.0}, rxns)
    thermo.T = 700.0
    thermo.set_concentrations({"A": 2.0, "B": 3.0, "C": 4.0})

    # ctot + (5 - 1) * [B] = 2 + 5 * 3 + 4
    concm = np.array(kin.third_body_concentrations)
    np.testing.assert_allclose(concm, [9.0, 21.0, 2.0, 0.0], rtol=1e-12)
    np.testing.assert_allclose(kin.forward_rates_of_progress,
                               3.0 * 2.0 * np.array([9.0, 21.0, 2.0, 1.0]), rtol=1e-12)
    # rate constants exclude the third-body concentration
    np.testing.assert_allclose(kin.forward_rate_constants, [3.0] * 4, rtol=1e-12)


def test_legacy_rate_constants_include_third_body(gas_factory):
    rxn = rx.three_body({"A": 1}, {"B": 1}, Arrhenius(3.0, 0.0, 0.0))
    thermo, kin = gas_factory({"A": 0.0, "B": 0.0}, [rxn])
    thermo.set_concentrations({"A": 2.0, "B": 3.0})

    with warnings.catch_warnings():
        warnings.simplefilter("error")
        np.testing.assert_allclose(kin.forward_rate_constants, [3.0])

    use_legacy_rate_constants(True)
    with pytest.warns(KineticsDeprecationWarning):
        kf = kin.forward_rate_constants
    np.testing.assert_allclose(kf, [15.0], rtol=1e-12)


def test_falloff_lindemann_limits(gas_factory):
    low = Arrhenius(1e3, 0.0, 0.0)
    high = Arrhenius(1e2, 0.0, 0.0)
    rxns = [
        rx.falloff({"A": 1}, {"B": 1}, low, high, reversible=False),
        rx.chemically_activated({"A": 1}, {"B": 1}, low, high, reversible=False),
    ]
    thermo, kin = gas_factory({"A": 0.0, "B": 0.0}, rxns)
    thermo.T = 1000.0

    for ctot in [1e-6, 0.05, 1.0, 1e6]:
        thermo.set_concentrations({"A": ctot})
        pr = 1e3 * ctot / 1e2
        expected = [1e2 * pr / (1.0 + pr), 1e3 / (1.0 + pr)]
        np.testing.assert_allclose(kin.forward_rate_constants, expected, rtol=1e-10)

    thermo.set_concentrations({"A": 1e-9})
    assert abs(float(kin.forward_rate_constants[0]) / (1e3 * 1e-9) - 1.0) < 1e-6
    thermo.set_concentrations({"A": 1e9})
    assert abs(float(kin.forward_rate_constants[0]) / 1e2 - 1.0) < 1e-6


def test_falloff_troe(gas_factory):
    from gaskinx.falloff import Troe
    low = Arrhenius(5e6, -1.0, 2e4)
    high = Arrhenius(2e8, 0.2, 4e4)
    troe = Troe(0.6, 100.0, 2000.0, 5000.0)
    rxn = rx.falloff({"A": 1}, {"B": 1}, low, high, troe, reversible=False)
    thermo, kin = gas_factory({"A": 0.0, "B": 0.0}, [rxn])
    T = 1200.0
    thermo.TPX = T, ONE_ATM, "A:1"

    def arr(r):
        return r.A * T ** r.b * math.exp(-r.Ea / (R_GAS * T))

    ctot = ONE_ATM / (R_GAS * T)
    pr = arr(low) * ctot / arr(high)
    f_cent = (0.4 * math.exp(-T / 100.0) + 0.6 * math.exp(-T / 2000.0)
              + math.exp(-5000.0 / T))
    log_fcent = math.log10(f_cent)
    c = -0.4 - 0.67 * log_fcent
    n = 0.75 - 1.27 * log_fcent
    f1 = (math.log10(pr) + c) / (n - 0.14 * (math.log10(pr) + c))
    F = 10.0 ** (log_fcent / (1.0 + f1 * f1))
    expected = arr(high) * pr / (1.0 + pr) * F
    np.testing.assert_allclose(kin.forward_rate_constants, [expected], rtol=1e-10)


def test_troe_zero_T2_means_no_T2_term(gas_factory):
    from gaskinx.falloff import Troe
    low = Arrhenius(5e6, -1.0, 2e4)
    high = Arrhenius(2e8, 0.2, 4e4)
    rxns = [rx.falloff({"A": 1}, {"B": 1}, low, high, troe, reversible=False)
            for troe in (Troe(0.6, 100.0, 2000.0), Troe(0.6, 100.0, 2000.0, 0.0),
                         Troe(0.6, 100.0, 2000.0, 5000.0))]
    thermo, kin = gas_factory({"A": 0.0, "B": 0.0}, rxns)
    thermo.TPX = 1200.0, ONE_ATM, "A:1"

    kf = np.array(kin.forward_rate_constants)
    np.testing.assert_allclose(kf[1], kf[0], rtol=1e-14)
    assert kf[2] != kf[0]


def test_plog_interpolation(gas_factory):
    rates = [(1e4, Arrhenius(1.0, 0.0, 0.0)), (1e6, Arrhenius(100.0, 0.0, 0.0))]
    rxn = rx.plog({"A": 1}, {"B": 1}, rates, reversible=False)
    thermo, kin = gas_factory({"A": 0.0, "B": 0.0}, [rxn])

    for P, expected in [(1e5, 10.0), (1e4, 1.0), (1e6, 100.0), (1e3, 1.0), (1e8, 100.0)]:
        thermo.TP = 900.0, P
        np.testing.assert_allclose(kin.forward_rate_constants, [expected], rtol=1e-10)


def test_plog_sums_duplicate_pressures(gas_factory):
    rates = [(1e5, Arrhenius(1.0, 0.0, 0.0)), (1e5, Arrhenius(2.0, 0.0, 0.0))]
    rxn = rx.plog({"A": 1}, {"B": 1}, rates, reversible=False)
    thermo, kin = gas_factory({"A": 0.0, "B": 0.0}, [rxn])
    thermo.TP = 900.0, 3e5
    np.testing.assert_allclose(kin.forward_rate_constants, [3.0], rtol=1e-12)


def test_chebyshev(gas_factory):
    coeffs = [[1.0, 0.1], [0.5, -0.2]]
    rxn = rx.chebyshev({"A": 1}, {"B": 1}, (300.0, 2000.0), (1e3, 1e7), coeffs,
                       reversible=False)
    thermo, kin = gas_factory({"A": 0.0, "B": 0.0}, [rxn])
    T, P = 1000.0, 1e5
    thermo.TP = T, P

    Tr = (2.0 / T - 1.0 / 300.0 - 1.0 / 2000.0) / (1.0 / 2000.0 - 1.0 / 300.0)
    Pr = (2.0 * math.log10(P) - 3.0 - 7.0) / (7.0 - 3.0)
    log10k = 1.0 + 0.1 * Pr + 0.5 * Tr - 0.2 * Tr * Pr
    np.testing.assert_allclose(kin.forward_rate_constants, [10.0 ** log10k], rtol=1e-10)


def test_unknown_type_is_rejected(gas_factory):
    thermo, kin = gas_factory({"A": 0.0, "B": 0.0},
                              [rx.elementary({"A": 1}, {"B": 1}, Arrhenius(1.0, 0.0, 0.0))])
    bogus = Reaction("interface", {"A": 1}, {"B": 1}, Arrhenius(1.0, 0.0, 0.0))
    with pytest.raises(UnknownReactionTypeError):
        kin.add_reaction(bogus)
    assert kin.n_reactions == 1
    assert kin.forward_rates_of_progress.shape == (1,)


def test_malformed_reactions_are_rejected(gas_factory):
    thermo, kin = gas_factory({"A": 0.0, "B": 0.0})
    with pytest.raises(InputError):
        kin.add_reaction(rx.elementary({"A": 1}, {"X": 1}, Arrhenius(1.0, 0.0, 0.0)))
    with pytest.raises(InputError):
        kin.add_reaction(Reaction("falloff", {"A": 1}, {"B": 1}, Arrhenius(1.0, 0.0, 0.0)))
    with pytest.raises(InputError):
        kin.add_reaction(rx.plog({"A": 1}, {"B": 1}, []))
    with pytest.raises(InputError):
        kin.add_reaction(rx.chebyshev({"A": 1}, {"B": 1}, (2000.0, 300.0), (1e3, 1e7),
                                      [[1.0]]))
    assert kin.n_reactions == 0


def test_reaction_slots(gas_factory):
    k = Arrhenius(1.0, 0.0, 0.0)
    rxns = [
        rx.elementary({"A": 1}, {"B": 1}, k),
        rx.three_body({"A": 1}, {"B": 1}, k),
        rx.falloff({"A": 1}, {"B": 1}, k, k),
        rx.elementary({"B": 1}, {"A": 1}, k, legacy=True),
        rx.falloff({"B": 1}, {"A": 1}, k, k, legacy=True),
        rx.plog({"A": 1}, {"B": 1}, [(1e5, k)]),
    ]
    thermo, kin = gas_factory({"A": 0.0, "B": 0.0}, rxns)
    assert kin.reaction_slot(0) == ReactionSlot("Arrhenius", 0)
    assert kin.reaction_slot(1) == ReactionSlot("Arrhenius", 1)
    assert kin.reaction_slot(2) == ReactionSlot("falloff", 0)
    assert kin.reaction_slot(3) == ReactionSlot("legacy-elementary", 0)
    assert kin.reaction_slot(4) == ReactionSlot("legacy-falloff", 0)
    assert kin.reaction_slot(5) == ReactionSlot("pressure-dependent-Arrhenius", 0)
    assert kin.legacy_reactions == (3, 4)
    assert kin.reaction_type(4) == "falloff-legacy"


def test_rates_are_cached_until_state_changes(gas_factory):
    rxn = rx.elementary({"A": 1}, {"B": 1}, Arrhenius(1e3, 0.0, 5e4))
    thermo, kin = gas_factory({"A": 0.0, "B": 0.2}, [rxn])
    thermo.TPX = 1000.0, ONE_ATM, "A:0.6, B:0.4"

    ropf = kin.forward_rates_of_progress
    assert kin.forward_rates_of_progress is ropf

    kin.invalidate_cache()
    np.testing.assert_allclose(kin.forward_rates_of_progress, ropf, rtol=1e-14)

    thermo.T = 1100.0
    assert float(kin.forward_rates_of_progress[0]) > float(ropf[0])
    thermo.T = 1000.0
    np.testing.assert_allclose(kin.forward_rates_of_progress, ropf, rtol=1e-14)


def test_composition_change_keeps_rate_constants(gas_factory, monkeypatch):
    from gaskinx.rates import ArrheniusMultiRate
    rxn = rx.elementary({"A": 1}, {"B": 1}, Arrhenius(1e3, 0.0, 5e4))
    thermo, kin = gas_factory({"A": 0.0, "B": 0.2}, [rxn])
    thermo.TPX = 1000.0, ONE_ATM, "A:0.6, B:0.4"
    ropf = np.array(kin.forward_rates_of_progress)
    kf = np.array(kin.forward_rate_constants)

    calls = []
    evaluate = ArrheniusMultiRate._evaluate

    def counting_evaluate(self, inputs):
        calls.append(inputs.temperature)
        return evaluate(self, inputs)

    monkeypatch.setattr(ArrheniusMultiRate, "_evaluate", counting_evaluate)
    thermo.X = "A:0.2, B:0.8"
    new_ropf = np.array(kin.forward_rates_of_progress)

    assert calls == []
    np.testing.assert_allclose(new_ropf, ropf / 3.0, rtol=1e-12)
    np.testing.assert_allclose(kin.forward_rate_constants, kf, rtol=1e-14)

    thermo.T = 1100.0
    kin.forward_rates_of_progress
    assert calls == [1100.0]


def test_modify_reaction(gas_factory):
    rxn = rx.three_body({"A": 1}, {"B": 1}, Arrhenius(1.0, 0.0, 0.0))
    thermo, kin = gas_factory({"A": 0.0, "B": 0.0}, [rxn])
    thermo.set_concentrations({"A": 1.0, "B": 1.0})
    np.testing.assert_allclose(kin.forward_rates_of_progress, [2.0])

    kin.modify_reaction(0, rx.three_body({"A": 1}, {"B": 1}, Arrhenius(3.0, 0.0, 0.0),
                                         efficiencies={"B": 2.0}))
    np.testing.assert_allclose(kin.forward_rates_of_progress, [9.0], rtol=1e-12)

    with pytest.raises(InputError):
        kin.modify_reaction(0, rx.elementary({"A": 1}, {"B": 1}, Arrhenius(1.0, 0.0, 0.0)))
    with pytest.raises(InputError):
        kin.modify_reaction(0, rx.three_body({"A": 2}, {"B": 1}, Arrhenius(1.0, 0.0, 0.0)))
    with pytest.raises(UnknownReactionTypeError):
        kin.modify_reaction(0, Reaction("surface", {"A": 1}, {"B": 1},
                                        Arrhenius(1.0, 0.0, 0.0)))


def test_multiplier(gas_factory):
    rxns = [rx.elementary({"A": 1}, {"B": 1}, Arrhenius(2.0, 0.0, 0.0)),
            rx.elementary({"B": 1}, {"A": 1}, Arrhenius(2.0, 0.0, 0.0))]
    thermo, kin = gas_factory({"A": 0.0, "B": 0.0}, rxns)
    thermo.set_concentrations({"A": 1.0, "B": 1.0})
    base = np.array(kin.forward_rates_of_progress)

    kin.set_multiplier(0.5, 1)
    assert kin.multiplier(1) == 0.5
    np.testing.assert_allclose(kin.forward_rates_of_progress, base * [1.0, 0.5])
    kin.set_multiplier(3.0)
    np.testing.assert_allclose(kin.forward_rates_of_progress, base * 3.0)


def test_species_production_rates(gas_factory):
    rxns = [rx.elementary({"A": 2}, {"B": 1}, Arrhenius(2.0, 0.0, 0.0)),
            rx.elementary({"B": 1}, {"C": 1}, Arrhenius(1.0, 0.0, 0.0), reversible=False)]
    thermo, kin = gas_factory({"A": 0.0, "B": 0.5, "C": 0.0}, rxns)
    thermo.TPX = 600.0, ONE_ATM, "A:0.5, B:0.3, C:0.2"

    q = np.array(kin.net_rates_of_progress)
    wdot = np.array(kin.net_production_rates)
    np.testing.assert_allclose(wdot, [-2.0 * q[0], q[0] - q[1], q[1]], rtol=1e-12)
    np.testing.assert_allclose(np.array(kin.creation_rates) - np.array(kin.destruction_rates),
                               wdot, rtol=1e-10, atol=1e-12 * np.abs(wdot).max())


def test_non_finite_rate_is_reported(gas_factory):
    rxn = rx.elementary({"A": 1}, {"B": 1}, Arrhenius(jnp.inf, 0.0, 0.0))
    thermo, kin = gas_factory({"A": 0.0, "B": 0.0}, [rxn])
    with pytest.raises(NumericalConsistencyError) as excinfo:
        kin.net_rates_of_progress
    assert excinfo.value.context["index"] == 0


@pytest.mark.parametrize("legacy", [False, True])
def test_non_finite_reduced_pressure_is_reported(gas_factory, legacy):
    rxns = [
        rx.elementary({"A": 1}, {"B": 1}, Arrhenius(1.0, 0.0, 0.0), legacy=legacy),
        rx.falloff({"A": 1}, {"B": 1}, Arrhenius(1.0, 0.0, 0.0), Arrhenius(1.0, 0.0, 0.0),
                   legacy=legacy),
        rx.falloff({"B": 1}, {"A": 1}, Arrhenius(jnp.inf, 0.0, 0.0),
                   Arrhenius(1.0, 0.0, 0.0), legacy=legacy),
    ]
    thermo, kin = gas_factory({"A": 0.0, "B": 0.0}, rxns)
    thermo.TPX = 1000.0, ONE_ATM, "A:1"
    with pytest.raises(NumericalConsistencyError) as excinfo:
        kin.net_rates_of_progress
    assert "pr[1]" in str(excinfo.value)
    assert excinfo.value.context["index"] == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
