"""iothub-device command-line interface."""
