"""Weight learning for conditional random fields used in object localization.

The package trains CRF weights by maximizing a regularized log-likelihood with
L-BFGS, verifies analytic gradients with finite differences, and stores
weights as plain-text files.
"""

__version__ = "0.1.0"
