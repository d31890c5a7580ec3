"""AWS implementations of the control plane and parameter store."""
