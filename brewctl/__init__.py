"""Bluetooth capsule machine control for smart home assistants."""
