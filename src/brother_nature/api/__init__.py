"""HTTP surface for the wallet verification and reward core."""
