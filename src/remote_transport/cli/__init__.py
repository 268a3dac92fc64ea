"""Command line interface for exercising remote transports."""
