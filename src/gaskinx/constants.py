"""Physical constants for gaskinx.

Everything is mol-based SI: concentrations in mol/m^3, energies in J/mol.
"""
import jax

jax.config.update("jax_enable_x64", True)

# Universal gas constant in J/(mol·K)
R_GAS = 8.31446261815324

# One atmosphere in Pascals, also the reference pressure of the NASA-7 data
ONE_ATM = 101325.0

# Calories to Joules
J_PER_CAL = 4.184

# Guards used by the rate pipeline
SMALL_NUMBER = 1e-300
BIG_NUMBER = 1e300
