"""pushpilot -- turns repository pushes into AI-drafted pull requests."""

VERSION = "0.1.0"
