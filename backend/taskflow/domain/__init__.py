"""Pure domain rules: roles, capabilities and the task status machine."""
