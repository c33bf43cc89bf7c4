"""Demo session login bound to platform user ids."""
