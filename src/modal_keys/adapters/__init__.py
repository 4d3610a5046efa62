"""Front ends that host a modal-keys session."""
